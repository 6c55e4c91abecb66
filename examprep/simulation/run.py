from __future__ import annotations

import json
import sys

from examprep.connections.mongo import init_mongo, close_mongo
from examprep.simulation import simulate_test_for_users
from examprep.utils.logging_config import configure_logging


def main(argv: list[str] | None = None) -> None:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        raise SystemExit("usage: python -m examprep.simulation.run <test_id> [seed]")

    configure_logging()
    init_mongo()
    try:
        seed = int(argv[1]) if len(argv) > 1 else None
        outcome = simulate_test_for_users(argv[0], seed=seed)
        print(json.dumps(outcome, indent=2))
    finally:
        close_mongo()


if __name__ == "__main__":
    main()
