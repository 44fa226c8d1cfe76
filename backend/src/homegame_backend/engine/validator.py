from __future__ import annotations

from homegame_backend.engine.errors import EngineStateError
from homegame_backend.engine.models import (
    ActionValidation,
    AllowedActions,
    PlayerSnapshot,
    PokerAction,
    RejectReason,
    Round,
)
from homegame_backend.engine.pots import total_pot
from homegame_backend.engine.seating import is_eligible_to_act


def _reject(reason: RejectReason, message: str) -> ActionValidation:
    return ActionValidation(valid=False, reason=reason, message=message)


def _accept(street_total: int, target: int, stack: int) -> ActionValidation:
    delta = target - street_total
    return ActionValidation(
        valid=True,
        chip_delta=delta,
        new_street_total=target,
        is_all_in=delta >= stack,
    )


def validate_action(
    player: PlayerSnapshot,
    round: Round,
    action: PokerAction,
    amount_to: int | None = None,
) -> ActionValidation:
    # amount_to is the new street total, not the chips added; turn order is checked by the caller
    state = round.player_states.get(player.player_id)
    if state is None:
        raise EngineStateError(f"player {player.player_id} has no hand state in round {round.round_id}")

    if state.has_folded:
        return _reject(RejectReason.PLAYER_FOLDED, "Player has folded.")
    if state.is_all_in:
        return _reject(RejectReason.PLAYER_ALL_IN, "Player is all-in.")
    if player.stack <= 0:
        return _reject(RejectReason.NO_CHIPS, "Player has no chips.")

    stack = player.stack
    street_total = state.committed_this_street
    max_total = street_total + stack
    to_call = max(0, round.current_bet - street_total)

    if action is PokerAction.FOLD:
        return ActionValidation(valid=True, new_street_total=street_total)

    if action is PokerAction.CHECK:
        if to_call > 0:
            return _reject(RejectReason.CANNOT_CHECK, f"Cannot check, {to_call} to call.")
        return ActionValidation(valid=True, new_street_total=street_total)

    if action is PokerAction.CALL:
        if to_call == 0:
            return _reject(RejectReason.NOTHING_TO_CALL, "Nothing to call, check instead.")
        return _accept(street_total, street_total + min(to_call, stack), stack)

    if action is PokerAction.BET:
        if round.current_bet > 0:
            return _reject(RejectReason.BET_NOT_ALLOWED, "Cannot bet, there is already a bet.")
        min_bet = round.min_raise
        if amount_to is None:
            return _accept(street_total, min(min_bet, max_total), stack)
        if amount_to > max_total:
            return _reject(RejectReason.INSUFFICIENT_CHIPS, f"Cannot bet more than {max_total}.")
        if amount_to < min_bet:
            if max_total < min_bet:
                return _accept(street_total, max_total, stack)
            return _reject(RejectReason.BELOW_MIN_BET, f"Minimum bet is {min_bet}.")
        return _accept(street_total, amount_to, stack)

    if action is PokerAction.RAISE:
        if round.current_bet == 0:
            return _reject(RejectReason.RAISE_NOT_ALLOWED, "Cannot raise, there is no bet.")
        if amount_to is None:
            return _reject(RejectReason.MISSING_AMOUNT, "Raise requires amount_to.")
        if amount_to > max_total:
            return _reject(RejectReason.INSUFFICIENT_CHIPS, f"Cannot raise to more than {max_total}.")
        if amount_to <= round.current_bet:
            return _reject(
                RejectReason.RAISE_NOT_ABOVE_BET,
                f"Raise must be higher than the current bet of {round.current_bet}.",
            )
        min_raise_to = round.current_bet + round.last_raise_amount
        # a raise that puts the whole stack in may fall short of the minimum
        if amount_to < min_raise_to and amount_to != max_total:
            return _reject(RejectReason.BELOW_MIN_RAISE, f"Minimum raise is to {min_raise_to}.")
        return _accept(street_total, amount_to, stack)

    if action is PokerAction.ALL_IN:
        return _accept(street_total, max_total, stack)

    raise ValueError(f"unsupported action {action!r}")


def allowed_actions(player: PlayerSnapshot, round: Round) -> AllowedActions:
    pot_size = total_pot(round.pots)
    state = round.player_states.get(player.player_id)
    if state is None or not is_eligible_to_act(player, state):
        return AllowedActions(pot_size=pot_size, effective_stack=max(player.stack, 0))

    stack = player.stack
    street_total = state.committed_this_street
    to_call = max(0, round.current_bet - street_total)
    max_to = street_total + stack
    has_bet = round.current_bet > 0
    can_raise = has_bet and stack > to_call

    return AllowedActions(
        can_fold=True,
        can_check=to_call == 0,
        can_call=to_call > 0,
        can_bet=not has_bet,
        can_raise=can_raise,
        can_all_in=True,
        call_amount=min(to_call, stack),
        min_bet_to=min(round.min_raise, max_to) if not has_bet else None,
        min_raise_to=min(round.current_bet + round.last_raise_amount, max_to) if can_raise else None,
        max_raise_to=max_to,
        pot_size=pot_size,
        effective_stack=stack,
    )
