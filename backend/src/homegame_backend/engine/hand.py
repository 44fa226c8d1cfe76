from __future__ import annotations

from collections.abc import Mapping, Sequence

from homegame_backend.engine.betting import (
    all_players_all_in,
    award_fold_out,
    cards_to_reveal,
    close_betting_round,
    is_awaiting_stage,
    is_betting_round_complete,
    next_stage,
    reveal_cards,
)
from homegame_backend.engine.errors import EngineRejectedAction, EngineStateError, ErrorCode
from homegame_backend.engine.models import (
    HOLE_CARDS_PER_PLAYER,
    ChipDelta,
    ChipDeltaReason,
    EngineStep,
    HandEndReason,
    PlayerHandState,
    PlayerSnapshot,
    Pot,
    Round,
    Stage,
    Street,
)
from homegame_backend.engine.pots import apply_chip_deltas, calculate_pots, distribute_pot, total_pot
from homegame_backend.engine.seating import (
    active_players,
    compute_blind_seats,
    first_to_act,
    non_folded_players,
    payout_order,
)
from homegame_backend.utils.cards import build_shuffled_deck


def start_hand(
    players: Sequence[PlayerSnapshot],
    *,
    dealer_seat: int,
    small_blind: int,
    big_blind: int,
    deal_seed: int,
    round_id: str,
    round_number: int = 1,
) -> EngineStep:
    seats = compute_blind_seats(players, dealer_seat)
    dealt_in = active_players(players)
    by_seat = {p.seat_index: p for p in dealt_in}

    round = Round(
        round_id=round_id,
        round_number=round_number,
        stage=Stage.PREFLOP,
        dealer_seat_index=seats.dealer_seat,
        small_blind_seat_index=seats.sb_seat,
        big_blind_seat_index=seats.bb_seat,
        current_bet=big_blind,
        min_raise=big_blind,
        last_raise_amount=big_blind,
        small_blind=small_blind,
        big_blind=big_blind,
        player_states={
            p.player_id: PlayerHandState(player_id=p.player_id, seat_index=p.seat_index)
            for p in dealt_in
        },
    )

    deltas: list[ChipDelta] = []
    for seat, blind in ((seats.sb_seat, small_blind), (seats.bb_seat, big_blind)):
        poster = by_seat[seat]
        posted = min(blind, poster.stack)
        state = round.player_states[poster.player_id]
        state.committed = posted
        state.committed_this_street = posted
        state.is_all_in = poster.stack <= blind
        deltas.append(ChipDelta(player_id=poster.player_id, amount=-posted, reason=ChipDeltaReason.BLIND))

    deck = build_shuffled_deck(deal_seed)
    deal_order = [by_seat[seat].player_id for seat in payout_order(by_seat, seats.dealer_seat)]
    round.hole_cards = {pid: [] for pid in deal_order}
    for _ in range(HOLE_CARDS_PER_PLAYER):
        for pid in deal_order:
            round.hole_cards[pid].append(deck.pop(0))
    round.deck = deck

    round.pots = calculate_pots(round.player_states)
    players_after = apply_chip_deltas(players, deltas)

    first = first_to_act(players_after, round, Street.PREFLOP)
    round.current_turn_seat_index = first
    round.betting_round_start_seat = first
    if first is None or is_betting_round_complete(players_after, round):
        # blinds put everyone who could act all-in
        return close_betting_round(round, players_after, deltas)
    return EngineStep(round=round, chip_deltas=deltas)


def reveal_next_street(round: Round, players: Sequence[PlayerSnapshot]) -> EngineStep:
    if not is_awaiting_stage(round.stage):
        raise EngineRejectedAction(
            ErrorCode.NOT_AWAITING_REVEAL,
            f"Round is in stage {round.stage.value}, nothing to reveal.",
        )

    updated = round.model_copy(deep=True)
    revealed = reveal_cards(updated, cards_to_reveal(updated.stage))
    updated.stage = next_stage(updated.stage)

    if len(non_folded_players(players, updated)) <= 1:
        return award_fold_out(updated, players, [], revealed)
    if all_players_all_in(players, updated):
        return close_betting_round(updated, players, [], revealed)

    first = first_to_act(players, updated, Street.POSTFLOP)
    updated.current_turn_seat_index = first
    updated.betting_round_start_seat = first
    return EngineStep(round=updated, revealed_cards=revealed)


def _award(
    round: Round,
    payouts: dict[str, int],
    reason: HandEndReason,
) -> EngineStep:
    seat_of = {pid: state.seat_index for pid, state in round.player_states.items()}
    round.payouts = payouts
    round.stage = Stage.SETTLED
    round.end_reason = reason
    round.current_turn_seat_index = None
    deltas = [
        ChipDelta(player_id=pid, amount=amount, reason=ChipDeltaReason.AWARD)
        for pid, amount in sorted(payouts.items(), key=lambda item: seat_of[item[0]])
        if amount > 0
    ]
    return EngineStep(round=round, chip_deltas=deltas)


def resolve_showdown(
    round: Round,
    winners_by_pot: Mapping[str, Sequence[str]],
) -> EngineStep:
    if round.stage is not Stage.SHOWDOWN:
        raise EngineRejectedAction(
            ErrorCode.NOT_AT_SHOWDOWN,
            f"Round is in stage {round.stage.value}, not at showdown.",
        )

    pot_ids = {pot.pot_id for pot in round.pots}
    unknown = sorted(set(winners_by_pot) - pot_ids)
    if unknown:
        raise EngineRejectedAction(ErrorCode.INVALID_WINNERS, f"Unknown pots: {', '.join(unknown)}.")

    updated = round.model_copy(deep=True)
    seat_of = {pid: state.seat_index for pid, state in updated.player_states.items()}
    payouts: dict[str, int] = {}

    for pot in updated.pots:
        winners = list(winners_by_pot.get(pot.pot_id) or [])
        # a pot with a single eligible player may be left out
        if not winners:
            if len(pot.eligible_player_ids) != 1:
                raise EngineRejectedAction(
                    ErrorCode.INVALID_WINNERS,
                    f"Pot {pot.pot_id} needs at least one winner.",
                )
            winners = list(pot.eligible_player_ids)
        if len(set(winners)) != len(winners):
            raise EngineRejectedAction(ErrorCode.INVALID_WINNERS, f"Duplicate winners for pot {pot.pot_id}.")
        ineligible = [pid for pid in winners if pid not in pot.eligible_player_ids]
        if ineligible:
            raise EngineRejectedAction(
                ErrorCode.INVALID_WINNERS,
                f"Players {', '.join(ineligible)} cannot win pot {pot.pot_id}.",
            )
        for pid, amount in distribute_pot(pot, winners, seat_of, updated.dealer_seat_index).items():
            payouts[pid] = payouts.get(pid, 0) + amount

    return _award(updated, payouts, HandEndReason.SHOWDOWN_AWARDED)


def abort_hand(round: Round) -> EngineStep:
    if round.is_settled:
        raise EngineRejectedAction(ErrorCode.HAND_ALREADY_SETTLED, "Hand is already settled.")

    updated = round.model_copy(deep=True)
    survivors = [pid for pid, state in updated.player_states.items() if not state.has_folded]
    if not survivors:
        raise EngineStateError(f"round {round.round_id} has no unfolded player to refund")

    seat_of = {pid: state.seat_index for pid, state in updated.player_states.items()}
    whole = Pot(pot_id="aborted", amount=total_pot(updated.pots), eligible_player_ids=survivors)
    payouts = distribute_pot(whole, survivors, seat_of, updated.dealer_seat_index)
    return _award(updated, payouts, HandEndReason.ABORTED)
