from __future__ import annotations

import hashlib
import json
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    raise TypeError(f"cannot hash a {type(value).__name__}")


def stable_hash(payload: Any) -> str:
    encoded = json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        default=_jsonable,
    ).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def table_state_hash(
    table_id: str,
    action_seq: int,
    players: Sequence[BaseModel],
    round: BaseModel | None,
) -> str:
    return stable_hash(
        {
            "table_id": table_id,
            "action_seq": action_seq,
            "players": list(players),
            "round": round,
        },
    )
