"""Notification preferences API: read, partial update, quiet-hours status."""
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from blognotify.api.deps import current_user_id
from blognotify.config import settings
from blognotify.core.errors import SettingsValidationError, error_to_http
from blognotify.db.session import get_db
from blognotify.services.preferences import get_or_create_settings, resolve, settings_to_dict, update_settings
from blognotify.services.quiet_hours import quiet_status

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/notifications/settings")
def get_settings(
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> dict[str, Any]:
    """Settings document; the row is created with defaults on first read."""
    return settings_to_dict(resolve(get_or_create_settings(db, user_id)))


@router.put("/notifications/settings")
def put_settings(
    body: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> dict[str, Any]:
    """
    Partial update. Groups: system, interaction (with subtypes), private_message,
    do_not_disturb, digest_time; inside a group only the given fields change.
    Invalid input -> 400 with {field, message}.
    """
    try:
        effective = update_settings(db, user_id, body)
    except SettingsValidationError as e:
        logger.info("Rejected settings update for user %s: %s", user_id, e)
        raise error_to_http(e) from e
    return settings_to_dict(effective)


@router.get("/notifications/settings/quiet-status")
def get_quiet_status(
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> dict[str, Any]:
    effective = resolve(get_or_create_settings(db, user_id))
    return quiet_status(effective.do_not_disturb, zero_length_quiet=settings.zero_length_quiet)
