from __future__ import annotations

import logging
from collections.abc import Sequence

from homegame_backend.engine.errors import EngineRejectedAction, EngineStateError
from homegame_backend.engine.models import (
    BOARD_SIZE,
    ChipDelta,
    ChipDeltaReason,
    EngineStep,
    HandEndReason,
    PlayerSnapshot,
    PokerAction,
    RejectReason,
    Round,
    Stage,
)
from homegame_backend.engine.pots import apply_chip_deltas, calculate_pots, total_pot
from homegame_backend.engine.seating import (
    eligible_players,
    next_eligible_seat,
    non_folded_players,
)
from homegame_backend.engine.validator import validate_action


logger = logging.getLogger(__name__)

BETTING_STAGES = frozenset({Stage.PREFLOP, Stage.FLOP, Stage.TURN, Stage.RIVER})

_NEXT_STAGE = {
    Stage.PREFLOP: Stage.AWAITING_FLOP,
    Stage.AWAITING_FLOP: Stage.FLOP,
    Stage.FLOP: Stage.AWAITING_TURN,
    Stage.AWAITING_TURN: Stage.TURN,
    Stage.TURN: Stage.AWAITING_RIVER,
    Stage.AWAITING_RIVER: Stage.RIVER,
    Stage.RIVER: Stage.SHOWDOWN,
    Stage.SHOWDOWN: Stage.SETTLED,
    Stage.SETTLED: Stage.SETTLED,
}

_CARDS_TO_REVEAL = {
    Stage.AWAITING_FLOP: 3,
    Stage.AWAITING_TURN: 1,
    Stage.AWAITING_RIVER: 1,
}


def next_stage(stage: Stage) -> Stage:
    return _NEXT_STAGE[stage]


def is_awaiting_stage(stage: Stage) -> bool:
    return stage in _CARDS_TO_REVEAL


def is_betting_stage(stage: Stage) -> bool:
    return stage in BETTING_STAGES


def cards_to_reveal(stage: Stage) -> int:
    return _CARDS_TO_REVEAL.get(stage, 0)


def is_betting_round_complete(players: Sequence[PlayerSnapshot], round: Round) -> bool:
    if len(non_folded_players(players, round)) <= 1:
        return True

    eligible = eligible_players(players, round)
    if not eligible:
        return True

    # a lone player left to act only has to match the bet
    if len(eligible) == 1:
        state = round.player_states[eligible[0].player_id]
        return state.committed_this_street >= round.current_bet

    for player in eligible:
        state = round.player_states[player.player_id]
        if not state.has_acted_this_round:
            return False
        if state.committed_this_street != round.current_bet:
            return False
    return True


def all_players_all_in(players: Sequence[PlayerSnapshot], round: Round) -> bool:
    if len(non_folded_players(players, round)) <= 1:
        return False
    return len(eligible_players(players, round)) <= 1


def reveal_cards(round: Round, count: int) -> list[str]:
    cards = round.deck[:count]
    round.deck = round.deck[count:]
    round.community_cards.extend(cards)
    return cards


def reset_street(round: Round) -> None:
    round.current_bet = 0
    round.last_raise_amount = round.min_raise
    round.last_aggressor_seat = None
    round.betting_round_start_seat = None
    round.current_turn_seat_index = None
    for state in round.player_states.values():
        state.committed_this_street = 0
        if not state.has_folded and not state.is_all_in:
            state.has_acted_this_round = False
            state.last_action = None


def award_fold_out(
    round: Round,
    players: Sequence[PlayerSnapshot],
    deltas: list[ChipDelta],
    revealed: list[str] | None = None,
) -> EngineStep:
    survivors = non_folded_players(players, round)
    if len(survivors) != 1:
        raise EngineStateError(
            f"fold-out in round {round.round_id} expected one survivor, found {len(survivors)}",
        )
    winner = survivors[0]
    amount = total_pot(round.pots)
    round.payouts = {winner.player_id: amount}
    round.stage = Stage.SETTLED
    round.end_reason = HandEndReason.FOLDED_OUT
    round.current_turn_seat_index = None
    if amount > 0:
        deltas = [*deltas, ChipDelta(player_id=winner.player_id, amount=amount, reason=ChipDeltaReason.AWARD)]
    return EngineStep(round=round, chip_deltas=deltas, revealed_cards=revealed or [])


def close_betting_round(
    round: Round,
    players: Sequence[PlayerSnapshot],
    deltas: list[ChipDelta],
    revealed: list[str] | None = None,
) -> EngineStep:
    revealed = list(revealed or [])
    reset_street(round)
    if all_players_all_in(players, round) or round.stage is Stage.RIVER:
        round.stage = Stage.SHOWDOWN
        revealed.extend(reveal_cards(round, BOARD_SIZE - len(round.community_cards)))
    else:
        round.stage = next_stage(round.stage)
    return EngineStep(round=round, chip_deltas=deltas, revealed_cards=revealed)


def advance_after_action(
    round: Round,
    players: Sequence[PlayerSnapshot],
    deltas: list[ChipDelta],
    from_seat: int,
) -> EngineStep:
    if len(non_folded_players(players, round)) <= 1:
        return award_fold_out(round, players, deltas)

    if is_betting_round_complete(players, round):
        return close_betting_round(round, players, deltas)

    seat = next_eligible_seat(players, round, from_seat)
    if seat is None:
        logger.warning(
            "no eligible seat after %s in round %s, closing betting round",
            from_seat,
            round.round_id,
        )
        return close_betting_round(round, players, deltas)

    round.current_turn_seat_index = seat
    return EngineStep(round=round, chip_deltas=deltas)


def apply_action(
    round: Round,
    players: Sequence[PlayerSnapshot],
    player_id: str,
    action: PokerAction,
    amount_to: int | None = None,
) -> EngineStep:
    # returns a new round; rejected actions raise and leave the input untouched
    if not is_betting_stage(round.stage):
        raise EngineRejectedAction(
            RejectReason.NOT_BETTING_STAGE,
            f"Round is in stage {round.stage.value}, no betting is open.",
        )

    state = round.player_states.get(player_id)
    player = next((p for p in players if p.player_id == player_id), None)
    if state is None or player is None:
        raise EngineStateError(f"player {player_id} is not part of round {round.round_id}")

    if round.current_turn_seat_index != player.seat_index:
        raise EngineRejectedAction(
            RejectReason.NOT_YOUR_TURN,
            f"Seat {player.seat_index} acted but seat {round.current_turn_seat_index} is to act.",
        )

    validation = validate_action(player, round, action, amount_to)
    if validation.reason is not None:
        raise EngineRejectedAction(validation.reason, validation.message or "Action is not allowed.")

    updated = round.model_copy(deep=True)
    actor = updated.player_states[player_id]
    actor.committed += validation.chip_delta
    actor.committed_this_street = validation.new_street_total
    actor.has_acted_this_round = True
    actor.last_action = action
    if action is PokerAction.FOLD:
        actor.has_folded = True
    if validation.is_all_in:
        actor.is_all_in = True

    deltas: list[ChipDelta] = []
    if validation.chip_delta > 0:
        deltas.append(
            ChipDelta(player_id=player_id, amount=-validation.chip_delta, reason=ChipDeltaReason.COMMIT),
        )

    if actor.committed_this_street > updated.current_bet:
        increment = actor.committed_this_street - updated.current_bet
        updated.current_bet = actor.committed_this_street
        if increment >= updated.last_raise_amount:
            updated.last_raise_amount = increment
        updated.last_aggressor_seat = player.seat_index
        # any increase reopens action, short all-in raises included
        for other in updated.player_states.values():
            if other.player_id != player_id and not other.has_folded and not other.is_all_in:
                other.has_acted_this_round = False

    updated.pots = calculate_pots(updated.player_states)
    players_after = apply_chip_deltas(players, deltas)
    return advance_after_action(updated, players_after, deltas, player.seat_index)
