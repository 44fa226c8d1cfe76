from __future__ import annotations

from abc import ABC, abstractmethod

from homegame_backend.engine.internal import TableRuntime
from homegame_backend.engine.models import Round


class TableRepository(ABC):
    @abstractmethod
    def create(self, table: TableRuntime) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, table_id: str) -> TableRuntime:
        raise NotImplementedError

    @abstractmethod
    def all(self) -> list[TableRuntime]:
        raise NotImplementedError

    @abstractmethod
    def save_round(self, table_id: str, round: Round) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_round(self, round_id: str) -> Round:
        raise NotImplementedError

    @abstractmethod
    def rounds_for_table(self, table_id: str) -> list[Round]:
        raise NotImplementedError
