"""
Digest tick: every DIGEST_TICK_MINUTES, send daily and weekly digests to users whose
slot has passed since their last digest.
"""
import logging
from datetime import datetime, timezone

from blognotify.core.constants import DIGEST_CADENCES
from blognotify.db.session import SessionLocal
from blognotify.services.digest_service import run_digest

logger = logging.getLogger(__name__)


def run_digest_job() -> None:
    now = datetime.now(timezone.utc)
    db = SessionLocal()
    try:
        for cadence in DIGEST_CADENCES:
            try:
                run_digest(db, cadence, now=now)
            except Exception as e:
                db.rollback()
                logger.warning("%s digest sweep failed: %s", cadence, e, exc_info=True)
    finally:
        db.close()
