#!/usr/bin/env python3
"""
Auto-release worker: settles escrow for bookings whose client confirmation
deadline has passed. Meant to be run from cron.

Environment:
  - SQLALCHEMY_DATABASE_URL (read by escrow settings)
  - AUTO_RELEASE_BATCH (default 100, clamped to AUTO_RELEASE_MAX_BATCH_SIZE)
  - AUTO_RELEASE_MAX_WORKERS (default 1)
  - AUTO_RELEASE_POLL_INTERVAL_S (unset: run once and exit)

Safe to run alongside API instances and other workers: a booking is only
ever released by one of them.
"""
from __future__ import annotations

import logging
import os
import sys
import time

import orjson

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "backend")))

from escrow.core.observability import setup_logging  # noqa: E402
from escrow.services.auto_release import run_auto_release  # noqa: E402
from escrow.utils import background_worker  # noqa: E402

logger = logging.getLogger("escrow.auto_release_worker")


def run_once(batch_size: int) -> int:
    """Run one batch, print the summary, and return the error count."""
    summary = run_auto_release(batch_size)
    print(orjson.dumps(summary.model_dump(mode="json")).decode())
    return len(summary.errors)


def main() -> int:
    setup_logging()
    batch_size = int(os.getenv("AUTO_RELEASE_BATCH") or 100)
    interval = os.getenv("AUTO_RELEASE_POLL_INTERVAL_S")
    if not interval:
        errors = run_once(batch_size)
        background_worker.shutdown(wait=True)
        return 1 if errors else 0
    while True:
        try:
            run_once(batch_size)
        except Exception:
            # Keep going; the next tick retries whatever is still eligible
            logger.exception("auto_release_worker tick failed")
        time.sleep(float(interval))


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        pass
