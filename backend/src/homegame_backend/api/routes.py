from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from homegame_backend.api.deps import game_service, settings
from homegame_backend.engine.errors import EngineRejectedAction
from homegame_backend.engine.models import (
    AllowedActions,
    HandHistory,
    HandUpdateResponse,
    PlayerSnapshot,
    ReplayResult,
    SeatRequest,
    SubmitActionRequest,
    SubmitActionResponse,
    TableConfig,
    ViewState,
)


router = APIRouter(prefix="/api")


class CreateTableRequest(BaseModel):
    config: TableConfig | None = None
    seats: list[SeatRequest]


class CreateTableResponse(BaseModel):
    table_id: str
    view_state: ViewState


class ShowdownRequest(BaseModel):
    winners_by_pot: dict[str, list[str]]


class ConnectionRequest(BaseModel):
    connected: bool


class ReplayRequest(BaseModel):
    hand_history: dict


def _bad_request(exc: EngineRejectedAction, status_code: int = 400) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": exc.code, "message": exc.message})


@router.post("/tables", response_model=CreateTableResponse)
async def create_table(request: CreateTableRequest) -> CreateTableResponse:
    config = request.config or settings.default_table_config()
    try:
        table_id = await game_service.create_table(config, request.seats)
    except EngineRejectedAction as exc:
        raise _bad_request(exc) from exc
    view = await game_service.get_view_state(table_id)
    return CreateTableResponse(table_id=table_id, view_state=view)


@router.post("/tables/{table_id}/hands", response_model=HandUpdateResponse)
async def start_hand(table_id: str) -> HandUpdateResponse:
    try:
        return await game_service.start_new_hand(table_id)
    except EngineRejectedAction as exc:
        raise _bad_request(exc) from exc


@router.get("/tables/{table_id}/view", response_model=ViewState)
async def get_view(table_id: str, viewer_id: str | None = None) -> ViewState:
    return await game_service.get_view_state(table_id, viewer_id)


@router.get("/tables/{table_id}/players/{player_id}/allowed-actions", response_model=AllowedActions)
async def get_allowed_actions(table_id: str, player_id: str) -> AllowedActions:
    try:
        return await game_service.get_allowed_actions(table_id, player_id)
    except EngineRejectedAction as exc:
        raise _bad_request(exc, status_code=404) from exc


@router.post("/tables/{table_id}/actions", response_model=SubmitActionResponse)
async def submit_action(table_id: str, request: SubmitActionRequest) -> SubmitActionResponse:
    try:
        return await game_service.submit_action(
            table_id=table_id,
            player_id=request.player_id,
            action=request.action,
            action_seq=request.action_seq,
            idempotency_key=request.idempotency_key,
            amount_to=request.amount_to,
        )
    except EngineRejectedAction as exc:
        view_state = await game_service.get_view_state(table_id, request.player_id)
        return SubmitActionResponse(
            accepted=False,
            error={"code": exc.code, "message": exc.message},
            view_state=view_state,
            server_action_seq=view_state.server_action_seq,
        )


@router.post("/tables/{table_id}/players/{player_id}/timeout", response_model=SubmitActionResponse)
async def timeout_player(table_id: str, player_id: str) -> SubmitActionResponse:
    try:
        return await game_service.timeout_player(table_id, player_id)
    except EngineRejectedAction as exc:
        raise _bad_request(exc) from exc


@router.post("/tables/{table_id}/players/{player_id}/connection", response_model=PlayerSnapshot)
async def set_connection(table_id: str, player_id: str, request: ConnectionRequest) -> PlayerSnapshot:
    try:
        return await game_service.set_connected(table_id, player_id, request.connected)
    except EngineRejectedAction as exc:
        raise _bad_request(exc, status_code=404) from exc


@router.post("/tables/{table_id}/reveal", response_model=HandUpdateResponse)
async def reveal_next_street(table_id: str) -> HandUpdateResponse:
    try:
        return await game_service.reveal_next_street(table_id)
    except EngineRejectedAction as exc:
        raise _bad_request(exc) from exc


@router.post("/tables/{table_id}/showdown", response_model=HandUpdateResponse)
async def resolve_showdown(table_id: str, request: ShowdownRequest) -> HandUpdateResponse:
    try:
        return await game_service.resolve_showdown(table_id, request.winners_by_pot)
    except EngineRejectedAction as exc:
        raise _bad_request(exc) from exc


@router.post("/tables/{table_id}/abort", response_model=HandUpdateResponse)
async def abort_hand(table_id: str) -> HandUpdateResponse:
    try:
        return await game_service.abort_hand(table_id)
    except EngineRejectedAction as exc:
        raise _bad_request(exc) from exc


@router.get("/tables/{table_id}/hands/{round_id}/history")
async def export_history(table_id: str, round_id: str) -> dict:
    try:
        return await game_service.export_hand_history(table_id, round_id)
    except EngineRejectedAction as exc:
        raise _bad_request(exc, status_code=404) from exc


@router.post("/replay", response_model=ReplayResult)
async def replay(request: ReplayRequest) -> ReplayResult:
    history = HandHistory.model_validate(request.hand_history)
    return await game_service.replay_hand_history(history.model_dump(mode="json"))
