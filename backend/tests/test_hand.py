from __future__ import annotations

import pytest

from homegame_backend.engine.errors import EngineRejectedAction, ErrorCode
from homegame_backend.engine.hand import abort_hand, resolve_showdown, reveal_next_street, start_hand
from homegame_backend.engine.models import ChipDeltaReason, HandEndReason, PokerAction, Round, Stage
from homegame_backend.engine.pots import apply_chip_deltas

from .test_utils import act, deal, make_players


def _to_flop_wait():
    round, players = deal(make_players(1_000, 1_000, 1_000), dealer_seat=0)
    round, players = act(round, players, "p0", PokerAction.CALL)
    round, players = act(round, players, "p1", PokerAction.CALL)
    round, players = act(round, players, "p2", PokerAction.CHECK)
    return round, players


def _three_way_all_in():
    round, players = deal(make_players(100, 300, 1_000), dealer_seat=0)
    round, players = act(round, players, "p0", PokerAction.ALL_IN)
    round, players = act(round, players, "p1", PokerAction.ALL_IN)
    round, players = act(round, players, "p2", PokerAction.CALL)
    return round, players


def test_start_hand_posts_blinds_and_deals() -> None:
    players = make_players(1_000, 1_000, 1_000)
    step = start_hand(players, dealer_seat=0, small_blind=5, big_blind=10, deal_seed=42, round_id="r1")
    round = step.round

    assert round.stage is Stage.PREFLOP
    assert (round.small_blind_seat_index, round.big_blind_seat_index) == (1, 2)
    assert round.current_bet == 10
    assert [(d.player_id, d.amount, d.reason) for d in step.chip_deltas] == [
        ("p1", -5, ChipDeltaReason.BLIND),
        ("p2", -10, ChipDeltaReason.BLIND),
    ]
    assert all(len(cards) == 2 for cards in round.hole_cards.values())
    assert len(round.deck) == 46
    assert round.community_cards == []


def test_same_seed_deals_the_same_cards() -> None:
    players = make_players(1_000, 1_000)
    first = start_hand(players, dealer_seat=0, small_blind=5, big_blind=10, deal_seed=9, round_id="a")
    second = start_hand(players, dealer_seat=0, small_blind=5, big_blind=10, deal_seed=9, round_id="b")
    assert first.round.hole_cards == second.round.hole_cards
    assert first.round.deck == second.round.deck


def test_short_small_blind_goes_all_in() -> None:
    round, players = deal(make_players(1_000, 3, 1_000), dealer_seat=0)
    assert round.player_states["p1"].committed == 3
    assert round.player_states["p1"].is_all_in is True
    assert players[1].stack == 0
    assert round.current_turn_seat_index == 0


def test_blinds_can_put_everyone_all_in() -> None:
    round, players = deal(make_players(3, 1_000), dealer_seat=0)
    assert round.stage is Stage.SHOWDOWN
    assert len(round.community_cards) == 5
    assert [(pot.amount, pot.eligible_player_ids) for pot in round.pots] == [(6, ["p0", "p1"]), (7, ["p1"])]


def test_start_hand_requires_two_funded_players() -> None:
    with pytest.raises(EngineRejectedAction) as excinfo:
        start_hand(make_players(1_000, 0), dealer_seat=0, small_blind=5, big_blind=10, deal_seed=1, round_id="r")
    assert excinfo.value.code == ErrorCode.NOT_ENOUGH_PLAYERS


def test_host_reveals_flop_and_postflop_action_starts_left_of_dealer() -> None:
    round, players = _to_flop_wait()
    deck_before = list(round.deck)

    step = reveal_next_street(round, players)
    assert step.revealed_cards == deck_before[:3]
    assert step.round.community_cards == deck_before[:3]
    assert step.round.stage is Stage.FLOP
    assert step.round.current_turn_seat_index == 1
    assert round.stage is Stage.AWAITING_FLOP


def test_reveal_outside_awaiting_stage_is_rejected() -> None:
    round, players = deal(make_players(1_000, 1_000), dealer_seat=0)
    with pytest.raises(EngineRejectedAction) as excinfo:
        reveal_next_street(round, players)
    assert excinfo.value.code == ErrorCode.NOT_AWAITING_REVEAL


def test_checked_down_hand_reaches_showdown_after_river() -> None:
    round, players = _to_flop_wait()
    for _ in range(3):
        round = reveal_next_street(round, players).round
        for player_id in ("p1", "p2", "p0"):
            round, players = act(round, players, player_id, PokerAction.CHECK)
    assert round.stage is Stage.SHOWDOWN
    assert len(round.community_cards) == 5


def test_showdown_pays_main_and_side_pots() -> None:
    round, players = _three_way_all_in()
    assert round.stage is Stage.SHOWDOWN
    assert [(pot.pot_id, pot.amount) for pot in round.pots] == [("main", 300), ("side-1", 400)]

    step = resolve_showdown(round, {"main": ["p0"], "side-1": ["p2"]})
    players = apply_chip_deltas(players, step.chip_deltas)

    assert step.round.stage is Stage.SETTLED
    assert step.round.end_reason is HandEndReason.SHOWDOWN_AWARDED
    assert step.round.payouts == {"p0": 300, "p2": 400}
    assert [p.stack for p in players] == [300, 0, 1_100]


@pytest.mark.parametrize(
    "winners",
    [
        {"main": ["p0"]},
        {"main": ["p0"], "side-1": ["p0"]},
        {"main": ["p0", "p0"], "side-1": ["p2"]},
        {"main": ["p0"], "side-1": ["p2"], "side-9": ["p2"]},
    ],
)
def test_invalid_showdown_selection(winners) -> None:
    round, _ = _three_way_all_in()
    with pytest.raises(EngineRejectedAction) as excinfo:
        resolve_showdown(round, winners)
    assert excinfo.value.code == ErrorCode.INVALID_WINNERS
    assert round.stage is Stage.SHOWDOWN


def test_uncontested_side_pot_is_returned_automatically() -> None:
    round, players = deal(make_players(1_000, 6), dealer_seat=0)
    round, players = act(round, players, "p0", PokerAction.CALL)
    assert round.stage is Stage.SHOWDOWN

    step = resolve_showdown(round, {"main": ["p1"]})
    players = apply_chip_deltas(players, step.chip_deltas)
    assert step.round.payouts == {"p1": 12, "p0": 4}
    assert [p.stack for p in players] == [994, 12]


def test_showdown_before_river_is_rejected() -> None:
    round, _ = _to_flop_wait()
    with pytest.raises(EngineRejectedAction) as excinfo:
        resolve_showdown(round, {"main": ["p0"]})
    assert excinfo.value.code == ErrorCode.NOT_AT_SHOWDOWN


def test_abort_splits_the_pot_between_remaining_players() -> None:
    round, players = deal(make_players(1_000, 1_000, 1_000), dealer_seat=0)
    round, players = act(round, players, "p0", PokerAction.FOLD)

    step = abort_hand(round)
    players = apply_chip_deltas(players, step.chip_deltas)
    assert step.round.end_reason is HandEndReason.ABORTED
    assert step.round.payouts == {"p1": 8, "p2": 7}
    assert sum(p.stack for p in players) == 3_000

    with pytest.raises(EngineRejectedAction) as excinfo:
        abort_hand(step.round)
    assert excinfo.value.code == ErrorCode.HAND_ALREADY_SETTLED


def test_round_survives_json_round_trip() -> None:
    round, _ = _three_way_all_in()
    restored = Round.model_validate(round.model_dump(mode="json"))
    assert restored == round


def test_big_blind_opens_the_flop_once_a_fold_leaves_two_players() -> None:
    round, players = deal(make_players(1_000, 1_000, 1_000), dealer_seat=0)
    round, players = act(round, players, "p0", PokerAction.FOLD)
    round, players = act(round, players, "p1", PokerAction.CALL)
    round, players = act(round, players, "p2", PokerAction.CHECK)
    assert round.stage is Stage.AWAITING_FLOP

    flop = reveal_next_street(round, players).round
    assert flop.current_turn_seat_index == flop.big_blind_seat_index == 2
    assert flop.betting_round_start_seat == 2
