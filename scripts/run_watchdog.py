#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import logging

from scanboard.config import Settings
from scanboard.main import analyses_repository
from scanboard.watchdog import fail_stuck_analyses


def main() -> int:
    settings = Settings.from_env()
    parser = argparse.ArgumentParser(description="Fail analyses stuck in a non-terminal status.")
    parser.add_argument(
        "--threshold-s",
        type=int,
        default=settings.watchdog_stuck_threshold_s,
        help="Age in seconds after which a non-terminal analysis counts as stuck.",
    )
    args = parser.parse_args()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    failed_ids = fail_stuck_analyses(analyses_repository, threshold_s=max(1, args.threshold_s))
    print(json.dumps({"success": True, "failed": failed_ids}, ensure_ascii=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
