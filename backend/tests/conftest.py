from __future__ import annotations

import pytest

from homegame_backend.engine.service import HomeGameService
from homegame_backend.repo.in_memory import InMemoryTableRepository


@pytest.fixture
def service() -> HomeGameService:
    return HomeGameService(InMemoryTableRepository())
