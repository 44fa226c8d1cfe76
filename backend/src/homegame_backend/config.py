from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict

from homegame_backend.engine.models import TableConfig, TimeoutRule


ENV_PREFIX = "HOMEGAME_"


class ServiceSettings(BaseModel):
    log_level: str = "INFO"
    default_num_seats: int = 9
    default_small_blind: int = 5
    default_big_blind: int = 10
    default_timeout_rule: TimeoutRule = TimeoutRule.CHECK_OR_FOLD
    cors_origins: list[str] = ["*"]

    model_config = ConfigDict(extra="forbid")

    def default_table_config(self) -> TableConfig:
        return TableConfig(
            num_seats=self.default_num_seats,
            small_blind=self.default_small_blind,
            big_blind=self.default_big_blind,
            timeout_rule=self.default_timeout_rule,
        )


def load_settings(environ: Mapping[str, str] | None = None) -> ServiceSettings:
    env = os.environ if environ is None else environ
    raw: dict[str, object] = {}
    for field_name in ServiceSettings.model_fields:
        value = env.get(f"{ENV_PREFIX}{field_name.upper()}")
        if value is None:
            continue
        if field_name == "cors_origins":
            raw[field_name] = [origin.strip() for origin in value.split(",") if origin.strip()]
        else:
            raw[field_name] = value
    return ServiceSettings.model_validate(raw)
