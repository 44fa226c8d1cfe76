from __future__ import annotations

from homegame_backend.engine.internal import TableRuntime
from homegame_backend.engine.models import Round
from homegame_backend.repo.base import TableRepository


class InMemoryTableRepository(TableRepository):
    def __init__(self) -> None:
        self._tables: dict[str, TableRuntime] = {}
        self._rounds: dict[str, Round] = {}
        self._round_table: dict[str, str] = {}

    def create(self, table: TableRuntime) -> None:
        if table.table_id in self._tables:
            raise KeyError(f"table {table.table_id} already exists")
        self._tables[table.table_id] = table

    def get(self, table_id: str) -> TableRuntime:
        if table_id not in self._tables:
            raise KeyError(f"table {table_id} not found")
        return self._tables[table_id]

    def all(self) -> list[TableRuntime]:
        return list(self._tables.values())

    def save_round(self, table_id: str, round: Round) -> None:
        owner = self._round_table.setdefault(round.round_id, table_id)
        if owner != table_id:
            raise KeyError(f"round {round.round_id} belongs to table {owner}")
        self._rounds[round.round_id] = round

    def get_round(self, round_id: str) -> Round:
        if round_id not in self._rounds:
            raise KeyError(f"round {round_id} not found")
        return self._rounds[round_id]

    def rounds_for_table(self, table_id: str) -> list[Round]:
        rounds = [
            self._rounds[round_id]
            for round_id, owner in self._round_table.items()
            if owner == table_id
        ]
        return sorted(rounds, key=lambda r: r.round_number)
