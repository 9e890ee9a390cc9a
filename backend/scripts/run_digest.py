#!/usr/bin/env python3
"""
Run the notification digest sweep once (same as one scheduler tick).
Use from cron when the API runs with SCHEDULER_ENABLED=false.
Run: cd backend && python scripts/run_digest.py [daily|weekly]
"""
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from blognotify.core.constants import DIGEST_CADENCES
from blognotify.db.session import SessionLocal
from blognotify.services.deferred import InlineDeferredTasks
from blognotify.services.digest_service import run_digest


def main():
    cadences = sys.argv[1:] or list(DIGEST_CADENCES)
    unknown = [c for c in cadences if c not in DIGEST_CADENCES]
    if unknown:
        print(f"Unknown cadence(s): {', '.join(unknown)}. Use: {', '.join(DIGEST_CADENCES)}")
        return 2
    now = datetime.now(timezone.utc)
    db = SessionLocal()
    try:
        for cadence in cadences:
            # Inline: the script must not exit before email/push went out
            result = run_digest(db, cadence, now=now, deferred=InlineDeferredTasks())
            print(
                f"{cadence}: users={result['users']}, "
                f"notifications={result['notifications']}, failed={result['failed']}"
            )
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(main())
