from __future__ import annotations

import pytest

from homegame_backend.engine.errors import EngineRejectedAction, ErrorCode
from homegame_backend.engine.models import HandEndReason, PokerAction, SeatRequest, Stage, TableConfig
from homegame_backend.engine.service import HomeGameService

from .test_utils import acting_player, create_table, submit


async def _play_checked_down(service: HomeGameService, table_id: str) -> None:
    await submit(service, table_id, "p0", PokerAction.CALL)
    await submit(service, table_id, "p1", PokerAction.CALL)
    await submit(service, table_id, "p2", PokerAction.CHECK)
    for _ in range(3):
        await service.reveal_next_street(table_id)
        for _ in range(3):
            await submit(service, table_id, await acting_player(service, table_id), PokerAction.CHECK)


@pytest.mark.asyncio
async def test_full_hand_split_at_showdown(service: HomeGameService) -> None:
    table_id = await create_table(service)
    await service.start_new_hand(table_id)
    await _play_checked_down(service, table_id)

    view = await service.get_view_state(table_id)
    assert view.round is not None
    assert view.round.stage is Stage.SHOWDOWN
    assert view.cards_to_reveal == 0

    update = await service.resolve_showdown(table_id, {"main": ["p0", "p2"]})
    stacks = {p.player_id: p.stack for p in update.view_state.players}
    assert stacks == {"p0": 1_005, "p1": 990, "p2": 1_005}
    assert update.view_state.round.end_reason is HandEndReason.SHOWDOWN_AWARDED
    assert set(update.view_state.round.hole_cards) == {"p0", "p1", "p2"}


@pytest.mark.asyncio
async def test_view_hides_deck_and_other_hole_cards(service: HomeGameService) -> None:
    table_id = await create_table(service)
    await service.start_new_hand(table_id)

    view = await service.get_view_state(table_id, "p0")
    assert view.round is not None
    assert view.round.deck == []
    assert list(view.round.hole_cards) == ["p0"]
    assert view.allowed_actions is not None and view.allowed_actions.can_call

    spectator = await service.get_view_state(table_id)
    assert spectator.round.hole_cards == {}
    assert spectator.allowed_actions is None

    full = await service.get_round(view.round_id)
    assert len(full.deck) == 46


@pytest.mark.asyncio
async def test_state_hash_only_changes_with_state(service: HomeGameService) -> None:
    table_id = await create_table(service)
    await service.start_new_hand(table_id)
    first = await service.get_view_state(table_id)
    again = await service.get_view_state(table_id)
    assert first.state_hash == again.state_hash

    await submit(service, table_id, "p0", PokerAction.CALL)
    after = await service.get_view_state(table_id)
    assert after.state_hash != first.state_hash
    assert after.server_action_seq == first.server_action_seq + 1


@pytest.mark.asyncio
async def test_idempotency_key_returns_cached_response(service: HomeGameService) -> None:
    table_id = await create_table(service)
    await service.start_new_hand(table_id)
    seq = await service.get_server_action_seq(table_id)

    first = await service.submit_action(
        table_id=table_id,
        player_id="p0",
        action=PokerAction.CALL,
        action_seq=seq + 1,
        idempotency_key="same-key",
    )
    second = await service.submit_action(
        table_id=table_id,
        player_id="p0",
        action=PokerAction.CALL,
        action_seq=seq + 1,
        idempotency_key="same-key",
    )

    assert first.accepted is True
    assert second == first
    assert await service.get_server_action_seq(table_id) == seq + 1


@pytest.mark.asyncio
async def test_idempotency_keys_are_scoped_to_player_and_hand(service: HomeGameService) -> None:
    table_id = await create_table(service)
    await service.start_new_hand(table_id)
    seq = await service.get_server_action_seq(table_id)

    first = await service.submit_action(
        table_id=table_id,
        player_id="p0",
        action=PokerAction.CALL,
        action_seq=seq + 1,
        idempotency_key="shared",
    )
    second = await service.submit_action(
        table_id=table_id,
        player_id="p1",
        action=PokerAction.CALL,
        action_seq=seq + 2,
        idempotency_key="shared",
    )

    assert first.accepted is True
    assert second.accepted is True
    assert second.server_action_seq == seq + 2
    assert second.view_state.round.player_states["p1"].committed == 10

    table = service._repo.get(table_id)  # noqa: SLF001
    assert len(table.idempotency_cache) == 2
    await service.abort_hand(table_id)
    await service.start_new_hand(table_id)
    assert table.idempotency_cache == {}


@pytest.mark.asyncio
async def test_stale_action_seq_is_rejected(service: HomeGameService) -> None:
    table_id = await create_table(service)
    await service.start_new_hand(table_id)
    seq = await service.get_server_action_seq(table_id)

    with pytest.raises(EngineRejectedAction) as excinfo:
        await service.submit_action(
            table_id=table_id,
            player_id="p0",
            action=PokerAction.CALL,
            action_seq=seq + 5,
            idempotency_key="stale",
        )
    assert excinfo.value.code == ErrorCode.BAD_ACTION_SEQ


@pytest.mark.asyncio
async def test_illegal_action_is_reported_not_raised(service: HomeGameService) -> None:
    table_id = await create_table(service)
    await service.start_new_hand(table_id)
    seq = await service.get_server_action_seq(table_id)

    response = await submit(service, table_id, "p1", PokerAction.CALL)
    assert response.accepted is False
    assert response.error is not None and response.error.code == "NOT_YOUR_TURN"
    assert response.server_action_seq == seq
    assert response.chip_deltas == []


@pytest.mark.asyncio
async def test_timeouts_check_when_free_and_fold_otherwise(service: HomeGameService) -> None:
    table_id = await create_table(service)
    await service.start_new_hand(table_id)

    with pytest.raises(EngineRejectedAction) as excinfo:
        await service.timeout_player(table_id, "p2")
    assert excinfo.value.code == "NOT_YOUR_TURN"

    await submit(service, table_id, "p0", PokerAction.CALL)
    await submit(service, table_id, "p1", PokerAction.CALL)
    response = await service.timeout_player(table_id, "p2")
    assert response.accepted is True
    assert response.view_state.round.player_states["p2"].has_folded is False
    assert response.view_state.round.stage is Stage.AWAITING_FLOP


@pytest.mark.asyncio
async def test_timeout_folds_out_the_hand(service: HomeGameService) -> None:
    table_id = await create_table(service)
    await service.start_new_hand(table_id)

    await service.timeout_player(table_id, "p0")
    response = await service.timeout_player(table_id, "p1")

    round = response.view_state.round
    assert round.stage is Stage.SETTLED
    assert round.end_reason is HandEndReason.FOLDED_OUT
    assert round.payouts == {"p2": 15}

    with pytest.raises(EngineRejectedAction) as excinfo:
        await service.timeout_player(table_id, "p2")
    assert excinfo.value.code == ErrorCode.NO_ACTIVE_HAND


@pytest.mark.asyncio
async def test_history_export_replays_cleanly(service: HomeGameService) -> None:
    table_id = await create_table(service)
    start = await service.start_new_hand(table_id)
    round_id = start.view_state.round_id
    await _play_checked_down(service, table_id)
    await service.resolve_showdown(table_id, {"main": ["p1"]})

    history = await service.export_hand_history(table_id, round_id)
    assert [step["kind"] for step in history["steps"]][:4] == ["action", "action", "action", "reveal"]
    assert history["payouts"] == {"p1": 30}

    replay = await service.replay_hand_history(history)
    assert all(replay.invariant_checks.values()), replay.invariant_checks
    assert replay.terminal_state["final_stacks_by_player"] == history["final_stacks_by_player"]

    history["final_stacks_by_player"]["p1"] += 1
    tampered = await service.replay_hand_history(history)
    assert tampered.invariant_checks["final_stacks_match"] is False


@pytest.mark.asyncio
async def test_unknown_hand_history(service: HomeGameService) -> None:
    table_id = await create_table(service)
    with pytest.raises(EngineRejectedAction) as excinfo:
        await service.export_hand_history(table_id, "rnd_missing")
    assert excinfo.value.code == ErrorCode.HAND_NOT_FOUND


@pytest.mark.asyncio
async def test_dealer_rotates_between_hands(service: HomeGameService) -> None:
    table_id = await create_table(service)
    await service.start_new_hand(table_id)

    with pytest.raises(EngineRejectedAction) as excinfo:
        await service.start_new_hand(table_id)
    assert excinfo.value.code == ErrorCode.HAND_ALREADY_RUNNING

    await service.abort_hand(table_id)
    update = await service.start_new_hand(table_id)
    assert update.view_state.round.dealer_seat_index == 1
    assert update.view_state.round.round_number == 2


@pytest.mark.asyncio
async def test_abort_refunds_to_unfolded_players(service: HomeGameService) -> None:
    table_id = await create_table(service)
    await service.start_new_hand(table_id)
    await submit(service, table_id, "p0", PokerAction.FOLD)

    update = await service.abort_hand(table_id)
    assert update.view_state.round.end_reason is HandEndReason.ABORTED
    assert sum(p.stack for p in update.view_state.players) == 3_000
    # aborted hands keep hole cards private
    assert update.view_state.round.hole_cards == {}


@pytest.mark.asyncio
async def test_session_over_when_one_player_has_chips(service: HomeGameService) -> None:
    table_id = await create_table(service, 1_000, 0)
    view = await service.get_view_state(table_id)
    assert view.session_over is True

    with pytest.raises(EngineRejectedAction) as excinfo:
        await service.start_new_hand(table_id)
    assert excinfo.value.code == ErrorCode.NOT_ENOUGH_PLAYERS


@pytest.mark.asyncio
async def test_seat_conflicts_are_rejected(service: HomeGameService) -> None:
    seats = [
        SeatRequest(player_id="a", seat_index=0, stack=100),
        SeatRequest(player_id="b", seat_index=0, stack=100),
    ]
    with pytest.raises(EngineRejectedAction) as excinfo:
        await service.create_table(TableConfig(), seats)
    assert excinfo.value.code == ErrorCode.SEAT_TAKEN

    with pytest.raises(EngineRejectedAction) as excinfo:
        await service.create_table(TableConfig(num_seats=2), [SeatRequest(player_id="a", seat_index=5, stack=100)])
    assert excinfo.value.code == ErrorCode.INVALID_SEAT


@pytest.mark.asyncio
async def test_allowed_actions_and_connection_flag(service: HomeGameService) -> None:
    table_id = await create_table(service)
    await service.start_new_hand(table_id)

    on_turn = await service.get_allowed_actions(table_id, "p0")
    assert on_turn.can_call and on_turn.call_amount == 10

    waiting = await service.get_allowed_actions(table_id, "p1")
    assert not waiting.can_call and waiting.effective_stack == 995

    updated = await service.set_connected(table_id, "p1", False)
    assert updated.connected is False
    view = await service.get_view_state(table_id)
    assert [p.connected for p in view.players] == [True, False, True]

    with pytest.raises(EngineRejectedAction) as excinfo:
        await service.get_allowed_actions(table_id, "ghost")
    assert excinfo.value.code == ErrorCode.UNKNOWN_PLAYER
