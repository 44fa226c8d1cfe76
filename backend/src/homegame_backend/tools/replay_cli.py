from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from homegame_backend.api.deps import game_service


async def _run(path: Path) -> bool:
    history = json.loads(path.read_text())
    result = await game_service.replay_hand_history(history)
    print(json.dumps(result.model_dump(mode="json"), indent=2))
    return all(result.invariant_checks.values())


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay an exported hand history and check its invariants")
    parser.add_argument("history_file", type=Path)
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING))
    ok = asyncio.run(_run(args.history_file))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
