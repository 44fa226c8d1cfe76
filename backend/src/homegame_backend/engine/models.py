from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


ENGINE_VERSION = "0.1.0"
RULESET_VERSION = "homegame-host-reveal-v1"

HOLE_CARDS_PER_PLAYER = 2
BOARD_SIZE = 5


class Stage(str, Enum):
    PREFLOP = "preflop"
    AWAITING_FLOP = "awaiting_flop"
    FLOP = "flop"
    AWAITING_TURN = "awaiting_turn"
    TURN = "turn"
    AWAITING_RIVER = "awaiting_river"
    RIVER = "river"
    SHOWDOWN = "showdown"
    SETTLED = "settled"


class Street(str, Enum):
    PREFLOP = "preflop"
    POSTFLOP = "postflop"


class PokerAction(str, Enum):
    FOLD = "fold"
    CHECK = "check"
    CALL = "call"
    BET = "bet"
    RAISE = "raise"
    ALL_IN = "allin"


class HandEndReason(str, Enum):
    FOLDED_OUT = "folded_out"
    SHOWDOWN_AWARDED = "showdown_awarded"
    ABORTED = "aborted"


class ChipDeltaReason(str, Enum):
    BLIND = "blind"
    COMMIT = "commit"
    AWARD = "award"


class RejectReason(str, Enum):
    NOT_YOUR_TURN = "NOT_YOUR_TURN"
    NOT_BETTING_STAGE = "NOT_BETTING_STAGE"
    PLAYER_FOLDED = "PLAYER_FOLDED"
    PLAYER_ALL_IN = "PLAYER_ALL_IN"
    NO_CHIPS = "NO_CHIPS"
    CANNOT_CHECK = "CANNOT_CHECK"
    NOTHING_TO_CALL = "NOTHING_TO_CALL"
    BET_NOT_ALLOWED = "BET_NOT_ALLOWED"
    BELOW_MIN_BET = "BELOW_MIN_BET"
    RAISE_NOT_ALLOWED = "RAISE_NOT_ALLOWED"
    RAISE_NOT_ABOVE_BET = "RAISE_NOT_ABOVE_BET"
    BELOW_MIN_RAISE = "BELOW_MIN_RAISE"
    INSUFFICIENT_CHIPS = "INSUFFICIENT_CHIPS"
    MISSING_AMOUNT = "MISSING_AMOUNT"


class TimeoutRule(str, Enum):
    FOLD = "fold"
    CHECK_OR_FOLD = "check_or_fold"


class TableConfig(BaseModel):
    num_seats: int = 9
    small_blind: int = 5
    big_blind: int = 10
    first_dealer_seat: int | None = None
    timeout_rule: TimeoutRule = TimeoutRule.CHECK_OR_FOLD
    seed: int | None = None

    model_config = ConfigDict(extra="forbid")


class PlayerSnapshot(BaseModel):
    player_id: str
    seat_index: int
    stack: int
    active: bool = True
    connected: bool = True
    display_name: str | None = None

    model_config = ConfigDict(extra="forbid")


class PlayerHandState(BaseModel):
    player_id: str
    seat_index: int
    committed: int = 0
    committed_this_street: int = 0
    has_folded: bool = False
    is_all_in: bool = False
    has_acted_this_round: bool = False
    last_action: PokerAction | None = None

    model_config = ConfigDict(extra="forbid")


class Pot(BaseModel):
    pot_id: str
    amount: int
    eligible_player_ids: list[str]

    model_config = ConfigDict(extra="forbid")


class ChipDelta(BaseModel):
    player_id: str
    amount: int
    reason: ChipDeltaReason

    model_config = ConfigDict(extra="forbid")


class Round(BaseModel):
    round_id: str
    round_number: int = 1
    stage: Stage = Stage.PREFLOP
    dealer_seat_index: int
    small_blind_seat_index: int
    big_blind_seat_index: int
    current_turn_seat_index: int | None = None
    current_bet: int = 0
    min_raise: int
    last_raise_amount: int
    small_blind: int
    big_blind: int
    player_states: dict[str, PlayerHandState] = Field(default_factory=dict)
    pots: list[Pot] = Field(default_factory=list)
    community_cards: list[str] = Field(default_factory=list)
    hole_cards: dict[str, list[str]] = Field(default_factory=dict)
    deck: list[str] = Field(default_factory=list)
    betting_round_start_seat: int | None = None
    last_aggressor_seat: int | None = None
    end_reason: HandEndReason | None = None
    payouts: dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    @property
    def is_settled(self) -> bool:
        return self.stage is Stage.SETTLED


class ActionValidation(BaseModel):
    valid: bool
    reason: RejectReason | None = None
    message: str | None = None
    chip_delta: int = 0
    new_street_total: int = 0
    is_all_in: bool = False

    model_config = ConfigDict(extra="forbid")


class AllowedActions(BaseModel):
    can_fold: bool = False
    can_check: bool = False
    can_call: bool = False
    can_bet: bool = False
    can_raise: bool = False
    can_all_in: bool = False
    call_amount: int = 0
    min_bet_to: int | None = None
    min_raise_to: int | None = None
    max_raise_to: int | None = None
    pot_size: int = 0
    effective_stack: int = 0

    model_config = ConfigDict(extra="forbid")


class EngineStep(BaseModel):
    round: Round
    chip_deltas: list[ChipDelta] = Field(default_factory=list)
    revealed_cards: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class EngineError(BaseModel):
    code: str
    message: str

    model_config = ConfigDict(extra="forbid")


class SeatRequest(BaseModel):
    player_id: str
    seat_index: int
    stack: int
    display_name: str | None = None

    model_config = ConfigDict(extra="forbid")


class ViewState(BaseModel):
    table_id: str
    round_id: str | None
    session_over: bool
    players: list[PlayerSnapshot]
    round: Round | None
    allowed_actions: AllowedActions | None = None
    cards_to_reveal: int = 0
    server_action_seq: int
    state_hash: str

    model_config = ConfigDict(extra="forbid")


class HandUpdateResponse(BaseModel):
    view_state: ViewState
    chip_deltas: list[ChipDelta]
    revealed_cards: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class SubmitActionRequest(BaseModel):
    player_id: str
    action: PokerAction
    amount_to: int | None = None
    action_seq: int
    idempotency_key: str

    model_config = ConfigDict(extra="forbid")


class SubmitActionResponse(BaseModel):
    accepted: bool
    error: EngineError | None = None
    view_state: ViewState
    chip_deltas: list[ChipDelta] = Field(default_factory=list)
    revealed_cards: list[str] = Field(default_factory=list)
    server_action_seq: int

    model_config = ConfigDict(extra="forbid")


class HistoryStepKind(str, Enum):
    ACTION = "action"
    REVEAL = "reveal"
    SHOWDOWN = "showdown"
    ABORT = "abort"


class HistoryStep(BaseModel):
    step_index: int
    kind: HistoryStepKind
    player_id: str | None = None
    action: PokerAction | None = None
    amount_to: int | None = None
    winners_by_pot: dict[str, list[str]] | None = None
    stage_after: Stage

    model_config = ConfigDict(extra="forbid")


class HandHistory(BaseModel):
    round_id: str
    round_number: int
    table_id: str
    config: TableConfig
    initial_players: list[PlayerSnapshot]
    final_stacks_by_player: dict[str, int]
    dealer_seat: int
    deal_seed: int
    steps: list[HistoryStep]
    end_reason: HandEndReason | None
    payouts: dict[str, int]
    engine_version: str
    ruleset_version: str

    model_config = ConfigDict(extra="forbid")


class ReplayResult(BaseModel):
    terminal_state: dict[str, Any]
    invariant_checks: dict[str, bool]

    model_config = ConfigDict(extra="forbid")
