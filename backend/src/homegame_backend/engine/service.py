from __future__ import annotations

import logging
import random
from collections.abc import Mapping, Sequence
from typing import Any
from uuid import uuid4

from homegame_backend.engine.betting import apply_action, cards_to_reveal
from homegame_backend.engine.errors import EngineRejectedAction, EngineStateError, ErrorCode
from homegame_backend.engine.hand import abort_hand, resolve_showdown, reveal_next_street, start_hand
from homegame_backend.engine.internal import HandRecord, TableRuntime
from homegame_backend.engine.models import (
    AllowedActions,
    EngineError,
    EngineStep,
    HandEndReason,
    HandHistory,
    HandUpdateResponse,
    HistoryStep,
    HistoryStepKind,
    PlayerSnapshot,
    PokerAction,
    RejectReason,
    ReplayResult,
    Round,
    SeatRequest,
    SubmitActionResponse,
    TableConfig,
    ViewState,
    ENGINE_VERSION,
    RULESET_VERSION,
)
from homegame_backend.engine.pots import apply_chip_deltas, total_pot
from homegame_backend.engine.seating import active_players, next_dealer_seat
from homegame_backend.engine.validator import allowed_actions
from homegame_backend.policy.timeout import TimeoutPolicy
from homegame_backend.repo.base import TableRepository
from homegame_backend.utils.cards import derive_seed
from homegame_backend.utils.hashing import table_state_hash


logger = logging.getLogger(__name__)


class HomeGameService:
    def __init__(
        self,
        repository: TableRepository,
        timeout_policy: TimeoutPolicy | None = None,
    ) -> None:
        self._repo = repository
        self._timeout_policy = timeout_policy or TimeoutPolicy()

    async def create_table(self, config: TableConfig, seats: Sequence[SeatRequest]) -> str:
        table_id = f"tbl_{uuid4().hex[:12]}"
        table_seed = config.seed if config.seed is not None else random.randrange(1, 2**63)

        players: dict[str, PlayerSnapshot] = {}
        taken: set[int] = set()
        for seat in seats:
            if seat.player_id in players or seat.seat_index in taken:
                raise EngineRejectedAction(
                    ErrorCode.SEAT_TAKEN,
                    f"Seat {seat.seat_index} or player {seat.player_id} is already seated.",
                )
            if not 0 <= seat.seat_index < config.num_seats:
                raise EngineRejectedAction(
                    ErrorCode.INVALID_SEAT,
                    f"Seat {seat.seat_index} does not exist at a {config.num_seats}-seat table.",
                )
            taken.add(seat.seat_index)
            players[seat.player_id] = PlayerSnapshot(
                player_id=seat.player_id,
                seat_index=seat.seat_index,
                stack=seat.stack,
                display_name=seat.display_name,
            )

        table = TableRuntime(
            table_id=table_id,
            config=config,
            players=players,
            table_seed=table_seed,
            dealer_seat=config.first_dealer_seat,
        )
        self._repo.create(table)
        logger.info("created table %s with %d players", table_id, len(players))
        return table_id

    async def start_new_hand(self, table_id: str) -> HandUpdateResponse:
        table = self._repo.get(table_id)
        async with table.lock:
            current = table.current_round
            if current is not None and not current.is_settled:
                raise EngineRejectedAction(ErrorCode.HAND_ALREADY_RUNNING, "A hand is already in progress.")

            players = table.player_list()
            if table.dealer_seat is None:
                seats = [p.seat_index for p in active_players(players)]
                dealer = seats[0] if seats else 0
            elif current is None:
                dealer = table.dealer_seat
            else:
                dealer = next_dealer_seat(players, table.dealer_seat)

            round_number = table.next_round_number
            deal_seed = derive_seed(table.table_seed, round_number, "deal")
            step = start_hand(
                players,
                dealer_seat=dealer,
                small_blind=table.config.small_blind,
                big_blind=table.config.big_blind,
                deal_seed=deal_seed,
                round_id=f"rnd_{uuid4().hex[:12]}",
                round_number=round_number,
            )

            table.next_round_number += 1
            table.idempotency_cache.clear()
            table.dealer_seat = step.round.dealer_seat_index
            table.current_record = HandRecord(
                round_id=step.round.round_id,
                round_number=round_number,
                dealer_seat=dealer,
                deal_seed=deal_seed,
                initial_players=[p.model_copy() for p in players],
            )
            logger.info(
                "table %s hand %d started: dealer=%s sb=%s bb=%s",
                table_id,
                round_number,
                step.round.dealer_seat_index,
                step.round.small_blind_seat_index,
                step.round.big_blind_seat_index,
            )
            self._commit_step(table, step)
            return self._hand_update(table, step)

    async def submit_action(
        self,
        table_id: str,
        player_id: str,
        action: PokerAction,
        action_seq: int,
        idempotency_key: str,
        amount_to: int | None = None,
    ) -> SubmitActionResponse:
        table = self._repo.get(table_id)
        async with table.lock:
            return self._submit_locked(table, player_id, action, action_seq, idempotency_key, amount_to)

    async def timeout_player(self, table_id: str, player_id: str) -> SubmitActionResponse:
        table = self._repo.get(table_id)
        async with table.lock:
            round = self._require_round(table)
            player = self._require_player(table, player_id)
            if round.current_turn_seat_index != player.seat_index:
                raise EngineRejectedAction(
                    RejectReason.NOT_YOUR_TURN,
                    f"Seat {player.seat_index} is not on the clock.",
                )
            decision = self._timeout_policy.choose_action(
                allowed=allowed_actions(player, round),
                rule=table.config.timeout_rule,
            )
            logger.info(
                "table %s: %s timed out, submitting %s",
                table_id,
                player_id,
                decision.action.value,
            )
            seq = table.action_seq + 1
            return self._submit_locked(
                table,
                player_id,
                decision.action,
                seq,
                f"timeout-{round.round_id}-{seq}",
                decision.amount_to,
            )

    async def set_connected(self, table_id: str, player_id: str, connected: bool) -> PlayerSnapshot:
        table = self._repo.get(table_id)
        async with table.lock:
            player = self._require_player(table, player_id)
            updated = player.model_copy(update={"connected": connected})
            table.players[player_id] = updated
            return updated

    async def reveal_next_street(self, table_id: str) -> HandUpdateResponse:
        table = self._repo.get(table_id)
        async with table.lock:
            round = self._require_round(table)
            step = reveal_next_street(round, table.player_list())
            self._record(table, HistoryStep(
                step_index=0,
                kind=HistoryStepKind.REVEAL,
                stage_after=step.round.stage,
            ))
            self._commit_step(table, step)
            return self._hand_update(table, step)

    async def resolve_showdown(
        self,
        table_id: str,
        winners_by_pot: Mapping[str, Sequence[str]],
    ) -> HandUpdateResponse:
        table = self._repo.get(table_id)
        async with table.lock:
            round = self._require_round(table)
            step = resolve_showdown(round, winners_by_pot)
            self._record(table, HistoryStep(
                step_index=0,
                kind=HistoryStepKind.SHOWDOWN,
                winners_by_pot={pot_id: list(winners) for pot_id, winners in winners_by_pot.items()},
                stage_after=step.round.stage,
            ))
            self._commit_step(table, step)
            return self._hand_update(table, step)

    async def abort_hand(self, table_id: str) -> HandUpdateResponse:
        table = self._repo.get(table_id)
        async with table.lock:
            round = self._require_round(table)
            step = abort_hand(round)
            self._record(table, HistoryStep(
                step_index=0,
                kind=HistoryStepKind.ABORT,
                stage_after=step.round.stage,
            ))
            self._commit_step(table, step)
            return self._hand_update(table, step)

    async def get_view_state(self, table_id: str, viewer_id: str | None = None) -> ViewState:
        table = self._repo.get(table_id)
        async with table.lock:
            return self._build_view_state(table, viewer_id)

    async def get_allowed_actions(self, table_id: str, player_id: str) -> AllowedActions:
        table = self._repo.get(table_id)
        async with table.lock:
            player = self._require_player(table, player_id)
            round = table.current_round
            if round is None or round.current_turn_seat_index != player.seat_index:
                return AllowedActions(effective_stack=player.stack)
            return allowed_actions(player, round)

    async def get_round(self, round_id: str) -> Round:
        return self._repo.get_round(round_id)

    async def get_server_action_seq(self, table_id: str) -> int:
        table = self._repo.get(table_id)
        async with table.lock:
            return table.action_seq

    async def export_hand_history(self, table_id: str, round_id: str) -> dict[str, Any]:
        table = self._repo.get(table_id)
        async with table.lock:
            if round_id not in table.completed_hands:
                raise EngineRejectedAction(ErrorCode.HAND_NOT_FOUND, f"Hand {round_id} does not exist.")
            return table.completed_hands[round_id].model_dump(mode="json")

    async def replay_hand_history(self, hand_history_json: dict[str, Any]) -> ReplayResult:
        history = HandHistory.model_validate(hand_history_json)
        simulation = self._replay_from_history(history)
        terminal = {
            "round_id": history.round_id,
            "final_stacks_by_player": simulation["final_stacks_by_player"],
            "community_cards": simulation["community_cards"],
            "end_reason": simulation["end_reason"],
            "payouts": simulation["payouts"],
        }
        checks = {
            "chip_conservation": simulation["chip_conservation"],
            "hand_terminated": simulation["hand_terminated"],
            "action_replay_match": simulation["action_replay_match"],
            "final_stacks_match": simulation["final_stacks_by_player"] == history.final_stacks_by_player,
        }
        return ReplayResult(terminal_state=terminal, invariant_checks=checks)

    def _submit_locked(
        self,
        table: TableRuntime,
        player_id: str,
        action: PokerAction,
        action_seq: int,
        idempotency_key: str,
        amount_to: int | None,
    ) -> SubmitActionResponse:
        cache_key = (player_id, idempotency_key)
        if cache_key in table.idempotency_cache:
            return table.idempotency_cache[cache_key]

        round = self._require_round(table)
        self._require_player(table, player_id)
        if action_seq != table.action_seq + 1:
            raise EngineRejectedAction(
                ErrorCode.BAD_ACTION_SEQ,
                f"Expected action_seq {table.action_seq + 1}, got {action_seq}.",
            )

        try:
            step = apply_action(round, table.player_list(), player_id, action, amount_to)
        except EngineRejectedAction as exc:
            logger.info("table %s rejected %s from %s: %s", table.table_id, action.value, player_id, exc.code)
            return SubmitActionResponse(
                accepted=False,
                error=EngineError(code=exc.code, message=exc.message),
                view_state=self._build_view_state(table, player_id),
                server_action_seq=table.action_seq,
            )
        except EngineStateError:
            logger.exception("table %s round %s is inconsistent", table.table_id, round.round_id)
            raise

        self._record(table, HistoryStep(
            step_index=0,
            kind=HistoryStepKind.ACTION,
            player_id=player_id,
            action=action,
            amount_to=amount_to,
            stage_after=step.round.stage,
        ))
        self._commit_step(table, step)
        response = SubmitActionResponse(
            accepted=True,
            view_state=self._build_view_state(table, player_id),
            chip_deltas=step.chip_deltas,
            revealed_cards=step.revealed_cards,
            server_action_seq=table.action_seq,
        )
        table.idempotency_cache[cache_key] = response
        return response

    def _commit_step(self, table: TableRuntime, step: EngineStep) -> None:
        for player in apply_chip_deltas(table.player_list(), step.chip_deltas):
            if player.stack < 0:
                raise EngineStateError(f"player {player.player_id} would go below zero chips")
            table.players[player.player_id] = player

        table.current_round = step.round
        table.action_seq += 1
        self._repo.save_round(table.table_id, step.round)

        if step.round.is_settled:
            self._complete_hand(table, step.round)

    def _record(self, table: TableRuntime, row: HistoryStep) -> None:
        record = table.current_record
        if record is None:
            raise EngineStateError(f"table {table.table_id} has a round but no hand record")
        row.step_index = len(record.steps) + 1
        record.steps.append(row)

    def _complete_hand(self, table: TableRuntime, round: Round) -> None:
        record = table.current_record
        if record is None:
            raise EngineStateError(f"table {table.table_id} settled a hand it never recorded")
        table.completed_hands[round.round_id] = HandHistory(
            round_id=round.round_id,
            round_number=record.round_number,
            table_id=table.table_id,
            config=table.config,
            initial_players=record.initial_players,
            final_stacks_by_player={p.player_id: p.stack for p in table.player_list()},
            dealer_seat=record.dealer_seat,
            deal_seed=record.deal_seed,
            steps=list(record.steps),
            end_reason=round.end_reason,
            payouts=dict(round.payouts),
            engine_version=ENGINE_VERSION,
            ruleset_version=RULESET_VERSION,
        )
        table.current_record = None
        logger.info(
            "table %s hand %d settled (%s): %s",
            table.table_id,
            round.round_number,
            round.end_reason.value if round.end_reason else "unknown",
            round.payouts,
        )

    def _require_round(self, table: TableRuntime) -> Round:
        round = table.current_round
        if round is None or round.is_settled:
            raise EngineRejectedAction(ErrorCode.NO_ACTIVE_HAND, "No active hand.")
        return round

    def _require_player(self, table: TableRuntime, player_id: str) -> PlayerSnapshot:
        if player_id not in table.players:
            raise EngineRejectedAction(ErrorCode.UNKNOWN_PLAYER, f"Player {player_id} is not seated.")
        return table.players[player_id]

    def _hand_update(self, table: TableRuntime, step: EngineStep) -> HandUpdateResponse:
        return HandUpdateResponse(
            view_state=self._build_view_state(table, None),
            chip_deltas=step.chip_deltas,
            revealed_cards=step.revealed_cards,
        )

    def _public_round(self, round: Round, viewer_id: str | None) -> Round:
        show_all = round.end_reason is HandEndReason.SHOWDOWN_AWARDED
        hole_cards = {
            pid: cards
            for pid, cards in round.hole_cards.items()
            if show_all or pid == viewer_id
        }
        return round.model_copy(update={"deck": [], "hole_cards": hole_cards})

    def _build_view_state(self, table: TableRuntime, viewer_id: str | None) -> ViewState:
        players = table.player_list()
        round = table.current_round
        public_round = self._public_round(round, viewer_id) if round is not None else None

        allowed = None
        if round is not None and viewer_id in table.players:
            viewer = table.players[viewer_id]
            if round.current_turn_seat_index == viewer.seat_index:
                allowed = allowed_actions(viewer, round)

        hand_running = round is not None and not round.is_settled
        return ViewState(
            table_id=table.table_id,
            round_id=round.round_id if round is not None else None,
            session_over=not hand_running and len(active_players(players)) < 2,
            players=players,
            round=public_round,
            allowed_actions=allowed,
            cards_to_reveal=cards_to_reveal(round.stage) if round is not None else 0,
            server_action_seq=table.action_seq,
            state_hash=table_state_hash(table.table_id, table.action_seq, players, public_round),
        )

    def _replay_from_history(self, history: HandHistory) -> dict[str, Any]:
        players = list(history.initial_players)
        chips_in_play = sum(p.stack for p in players)

        step = start_hand(
            players,
            dealer_seat=history.dealer_seat,
            small_blind=history.config.small_blind,
            big_blind=history.config.big_blind,
            deal_seed=history.deal_seed,
            round_id=history.round_id,
            round_number=history.round_number,
        )
        players = apply_chip_deltas(players, step.chip_deltas)
        round = step.round
        conserved = _chips_conserved(round, players, chips_in_play)
        replay_match = True

        for recorded in history.steps:
            try:
                if recorded.kind is HistoryStepKind.ACTION:
                    step = apply_action(
                        round,
                        players,
                        recorded.player_id or "",
                        recorded.action or PokerAction.FOLD,
                        recorded.amount_to,
                    )
                elif recorded.kind is HistoryStepKind.REVEAL:
                    step = reveal_next_street(round, players)
                elif recorded.kind is HistoryStepKind.SHOWDOWN:
                    step = resolve_showdown(round, recorded.winners_by_pot or {})
                else:
                    step = abort_hand(round)
            except (EngineRejectedAction, EngineStateError):
                replay_match = False
                break

            players = apply_chip_deltas(players, step.chip_deltas)
            round = step.round
            if round.stage is not recorded.stage_after:
                replay_match = False
            conserved = conserved and _chips_conserved(round, players, chips_in_play)

        return {
            "final_stacks_by_player": {p.player_id: p.stack for p in players},
            "community_cards": list(round.community_cards),
            "end_reason": round.end_reason.value if round.end_reason else None,
            "payouts": dict(round.payouts),
            "chip_conservation": conserved,
            "hand_terminated": round.is_settled,
            "action_replay_match": replay_match and round.payouts == history.payouts,
        }


def _chips_conserved(round: Round, players: Sequence[PlayerSnapshot], chips_in_play: int) -> bool:
    committed = sum(state.committed for state in round.player_states.values())
    in_pots = total_pot(round.pots)
    if in_pots != committed:
        return False
    on_table = 0 if round.is_settled else in_pots
    return sum(p.stack for p in players) + on_table == chips_in_play
