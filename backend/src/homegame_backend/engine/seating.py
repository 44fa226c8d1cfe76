from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from homegame_backend.engine.errors import EngineRejectedAction, ErrorCode
from homegame_backend.engine.models import PlayerHandState, PlayerSnapshot, Round, Street


@dataclass(frozen=True)
class BlindSeats:
    dealer_seat: int
    sb_seat: int
    bb_seat: int


def is_eligible_to_act(player: PlayerSnapshot, state: PlayerHandState | None) -> bool:
    if state is None:
        return False
    if state.has_folded or state.is_all_in:
        return False
    return player.stack > 0


def eligible_players(players: Iterable[PlayerSnapshot], round: Round) -> list[PlayerSnapshot]:
    return sorted(
        (p for p in players if is_eligible_to_act(p, round.player_states.get(p.player_id))),
        key=lambda p: p.seat_index,
    )


def non_folded_players(players: Iterable[PlayerSnapshot], round: Round) -> list[PlayerSnapshot]:
    result = []
    for player in players:
        state = round.player_states.get(player.player_id)
        if state is not None and not state.has_folded and player.active:
            result.append(player)
    return sorted(result, key=lambda p: p.seat_index)


def active_players(players: Iterable[PlayerSnapshot]) -> list[PlayerSnapshot]:
    return sorted((p for p in players if p.active and p.stack > 0), key=lambda p: p.seat_index)


def _seat_after(seat: int, ordered: Sequence[int]) -> int:
    for candidate in ordered:
        if candidate > seat:
            return candidate
    return ordered[0]


def next_seat_after(seat: int, seats: Sequence[int]) -> int | None:
    ordered = sorted(seats)
    if not ordered:
        return None
    return _seat_after(seat, ordered)


def next_eligible_seat(
    players: Iterable[PlayerSnapshot],
    round: Round,
    from_seat: int,
) -> int | None:
    seats = [p.seat_index for p in eligible_players(players, round)]
    return next_seat_after(from_seat, seats)


def compute_blind_seats(players: Iterable[PlayerSnapshot], dealer_seat: int) -> BlindSeats:
    active = active_players(players)
    if len(active) < 2:
        raise EngineRejectedAction(ErrorCode.NOT_ENOUGH_PLAYERS, "Need at least 2 players with chips.")

    seats = [p.seat_index for p in active]
    if dealer_seat not in seats:
        dealer_seat = _seat_after(dealer_seat, seats)

    if len(seats) == 2:
        # heads-up: the button posts the small blind
        return BlindSeats(dealer_seat=dealer_seat, sb_seat=dealer_seat, bb_seat=_seat_after(dealer_seat, seats))

    sb_seat = _seat_after(dealer_seat, seats)
    return BlindSeats(dealer_seat=dealer_seat, sb_seat=sb_seat, bb_seat=_seat_after(sb_seat, seats))


def is_heads_up(players: Iterable[PlayerSnapshot], round: Round) -> bool:
    return len(non_folded_players(players, round)) == 2


def first_to_act(players: Sequence[PlayerSnapshot], round: Round, street: Street) -> int | None:
    eligible = eligible_players(players, round)
    if not eligible:
        return None
    eligible_seats = {p.seat_index for p in eligible}

    if street is Street.PREFLOP:
        # blinds were posted heads-up only when two players were dealt in
        if len(round.player_states) == 2:
            if round.small_blind_seat_index in eligible_seats:
                return round.small_blind_seat_index
            return eligible[0].seat_index
        return next_eligible_seat(players, round, round.big_blind_seat_index)

    if is_heads_up(players, round) and round.big_blind_seat_index in eligible_seats:
        return round.big_blind_seat_index
    return next_eligible_seat(players, round, round.dealer_seat_index)


def next_dealer_seat(players: Iterable[PlayerSnapshot], current_dealer_seat: int) -> int:
    seats = [p.seat_index for p in active_players(players)]
    if not seats:
        return current_dealer_seat
    return _seat_after(current_dealer_seat, seats)


def payout_order(seats: Iterable[int], dealer_seat: int) -> list[int]:
    seat_list = list(seats)
    if not seat_list:
        return []
    modulus = max(max(seat_list), dealer_seat) + 1
    return sorted(seat_list, key=lambda seat: (seat - dealer_seat - 1) % modulus)
