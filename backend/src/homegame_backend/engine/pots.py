from __future__ import annotations

from collections.abc import Iterable, Mapping

from homegame_backend.engine.models import ChipDelta, PlayerHandState, PlayerSnapshot, Pot
from homegame_backend.engine.seating import payout_order


def calculate_pots(player_states: Mapping[str, PlayerHandState]) -> list[Pot]:
    # layers with no eligible winner, or the same eligible players as the layer
    # below, merge into that layer
    remaining = {
        player_id: state.committed
        for player_id, state in player_states.items()
        if state.committed > 0
    }
    pots: list[Pot] = []

    while remaining:
        smallest = min(remaining.values())
        contributors = sorted(remaining, key=lambda pid: player_states[pid].seat_index)
        eligible = [pid for pid in contributors if not player_states[pid].has_folded]
        amount = smallest * len(contributors)

        if pots and (not eligible or eligible == pots[-1].eligible_player_ids):
            pots[-1].amount += amount
        else:
            pot_id = "main" if not pots else f"side-{len(pots)}"
            pots.append(Pot(pot_id=pot_id, amount=amount, eligible_player_ids=eligible))

        remaining = {
            pid: owed - smallest
            for pid, owed in remaining.items()
            if owed - smallest > 0
        }

    return pots


def total_pot(pots: Iterable[Pot]) -> int:
    return sum(pot.amount for pot in pots)


def distribute_pot(
    pot: Pot,
    winner_ids: list[str],
    seat_by_player: Mapping[str, int],
    dealer_seat: int,
) -> dict[str, int]:
    # odd chips go clockwise starting left of the dealer
    if not winner_ids:
        return {}
    if len(winner_ids) == 1:
        return {winner_ids[0]: pot.amount}

    by_seat = {seat_by_player[pid]: pid for pid in winner_ids}
    ordered = [by_seat[seat] for seat in payout_order(by_seat, dealer_seat)]

    share, remainder = divmod(pot.amount, len(ordered))
    return {
        pid: share + (1 if index < remainder else 0)
        for index, pid in enumerate(ordered)
    }


def apply_chip_deltas(
    players: Iterable[PlayerSnapshot],
    deltas: Iterable[ChipDelta],
) -> list[PlayerSnapshot]:
    net: dict[str, int] = {}
    for delta in deltas:
        net[delta.player_id] = net.get(delta.player_id, 0) + delta.amount
    return [
        player.model_copy(update={"stack": player.stack + net[player.player_id]})
        if player.player_id in net
        else player
        for player in players
    ]
