from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from homegame_backend.engine.models import (
    HandHistory,
    HistoryStep,
    PlayerSnapshot,
    Round,
    SubmitActionResponse,
    TableConfig,
)


@dataclass
class HandRecord:
    round_id: str
    round_number: int
    dealer_seat: int
    deal_seed: int
    initial_players: list[PlayerSnapshot]
    steps: list[HistoryStep] = field(default_factory=list)


@dataclass
class TableRuntime:
    table_id: str
    config: TableConfig
    players: dict[str, PlayerSnapshot]
    table_seed: int
    dealer_seat: int | None = None
    next_round_number: int = 1
    action_seq: int = 0
    current_round: Round | None = None
    current_record: HandRecord | None = None
    completed_hands: dict[str, HandHistory] = field(default_factory=dict)
    idempotency_cache: dict[tuple[str, str], SubmitActionResponse] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def player_list(self) -> list[PlayerSnapshot]:
        return sorted(self.players.values(), key=lambda p: p.seat_index)
