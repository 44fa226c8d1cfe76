from __future__ import annotations

from dataclasses import dataclass

from homegame_backend.engine.models import AllowedActions, PokerAction, TimeoutRule


@dataclass
class TimeoutDecision:
    action: PokerAction
    amount_to: int | None = None


class TimeoutPolicy:
    def choose_action(
        self,
        *,
        allowed: AllowedActions,
        rule: TimeoutRule,
    ) -> TimeoutDecision:
        if rule is TimeoutRule.CHECK_OR_FOLD and allowed.can_check:
            return TimeoutDecision(action=PokerAction.CHECK)
        if allowed.can_fold:
            return TimeoutDecision(action=PokerAction.FOLD)
        raise ValueError("timeout requested for a player with no legal action")
