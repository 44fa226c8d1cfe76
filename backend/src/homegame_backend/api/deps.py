from __future__ import annotations

from homegame_backend.config import load_settings
from homegame_backend.engine.service import HomeGameService
from homegame_backend.repo.in_memory import InMemoryTableRepository


settings = load_settings()
repository = InMemoryTableRepository()
game_service = HomeGameService(repository)
