"""
Notification preferences: the per-user settings row, its defaults and validation.

A missing row (or a missing key inside a row) means "default", never "disabled": an
event producer must not lose notifications because a user never opened the settings
page. resolve() is the single place defaults are applied; every read goes through it.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from blognotify.core.constants import (
    FREQUENCIES,
    INTERACTION_SUBTYPES,
    TYPE_INTERACTION,
    TYPE_PRIVATE_MESSAGE,
    TYPE_SYSTEM,
)
from blognotify.core.errors import SettingsValidationError
from blognotify.models.notification_settings import NotificationSettings
from blognotify.services.quiet_hours import DoNotDisturb, is_valid_time, is_valid_timezone

logger = logging.getLogger(__name__)

CHANNEL_FLAGS = ("in_app", "email", "push")
TYPE_GROUPS = (TYPE_SYSTEM, TYPE_INTERACTION, TYPE_PRIVATE_MESSAGE)
SETTINGS_GROUPS = TYPE_GROUPS + ("do_not_disturb", "digest_time")
# Keys of the GET document that PUT accepts back and ignores
READ_ONLY_KEYS = ("user_id",)

DEFAULT_SETTINGS: dict[str, dict[str, Any]] = {
    TYPE_SYSTEM: {"in_app": True, "email": True, "push": False, "frequency": "realtime"},
    TYPE_INTERACTION: {
        "in_app": True,
        "email": False,
        "push": True,
        "frequency": "realtime",
        "subtypes": {name: True for name in INTERACTION_SUBTYPES},
    },
    TYPE_PRIVATE_MESSAGE: {"in_app": True, "email": False, "push": True, "frequency": "realtime"},
    "do_not_disturb": {"enabled": False, "start": "22:00", "end": "08:00", "timezone": "UTC"},
    "digest_time": {"daily": "09:00", "weekly_day": 1, "weekly_time": "09:00"},
}


@dataclass(frozen=True)
class TypeSettings:
    in_app: bool = True
    email: bool = True
    push: bool = True
    frequency: str = "realtime"
    subtypes: Mapping[str, bool] = field(default_factory=dict)

    @property
    def enabled(self) -> bool:
        return self.frequency != "off"

    @property
    def any_channel(self) -> bool:
        return self.in_app or self.email or self.push

    @property
    def realtime(self) -> bool:
        return self.frequency == "realtime"

    def subtype_enabled(self, subtype: str | None) -> bool:
        if not subtype:
            return True
        return bool(self.subtypes.get(subtype, True))


@dataclass(frozen=True)
class DigestTime:
    daily: str = "09:00"
    weekly_day: int = 1  # 0 = Sunday
    weekly_time: str = "09:00"


@dataclass(frozen=True)
class EffectiveSettings:
    user_id: int
    system: TypeSettings
    interaction: TypeSettings
    private_message: TypeSettings
    do_not_disturb: DoNotDisturb
    digest_time: DigestTime
    last_daily_digest_at: datetime | None = None
    last_weekly_digest_at: datetime | None = None

    def for_type(self, notification_type: str) -> TypeSettings:
        if notification_type == TYPE_SYSTEM:
            return self.system
        if notification_type == TYPE_INTERACTION:
            return self.interaction
        if notification_type == TYPE_PRIVATE_MESSAGE:
            return self.private_message
        # Unknown categories fail open
        return TypeSettings()


def _pick_bool(stored: Mapping | None, key: str, default: bool) -> bool:
    value = (stored or {}).get(key)
    return value if isinstance(value, bool) else default


def _pick_time(stored: Mapping | None, key: str, default: str | None) -> str | None:
    value = (stored or {}).get(key, default)
    if value is None or is_valid_time(value):
        return value
    return default


def _resolve_type(stored: Mapping | None, defaults: Mapping[str, Any]) -> TypeSettings:
    stored = stored if isinstance(stored, Mapping) else {}
    frequency = stored.get("frequency")
    if frequency not in FREQUENCIES:
        frequency = defaults["frequency"]
    subtypes: dict[str, bool] = dict(defaults.get("subtypes") or {})
    stored_subtypes = stored.get("subtypes")
    if isinstance(stored_subtypes, Mapping):
        subtypes.update({k: v for k, v in stored_subtypes.items() if isinstance(v, bool)})
    return TypeSettings(
        in_app=_pick_bool(stored, "in_app", defaults["in_app"]),
        email=_pick_bool(stored, "email", defaults["email"]),
        push=_pick_bool(stored, "push", defaults["push"]),
        frequency=frequency,
        subtypes=subtypes,
    )


def resolve(row: NotificationSettings | None, user_id: int | None = None) -> EffectiveSettings:
    """Effective settings for a row, or defaults for everything when row is None."""
    uid = row.user_id if row is not None else (user_id or 0)
    dnd_stored = row.do_not_disturb if row is not None else None
    if not isinstance(dnd_stored, Mapping):
        dnd_stored = {}
    dnd_defaults = DEFAULT_SETTINGS["do_not_disturb"]
    tz = dnd_stored.get("timezone")
    digest_stored = row.digest_time if row is not None else None
    if not isinstance(digest_stored, Mapping):
        digest_stored = {}
    digest_defaults = DEFAULT_SETTINGS["digest_time"]
    weekly_day = digest_stored.get("weekly_day")
    if isinstance(weekly_day, bool) or not isinstance(weekly_day, int) or not 0 <= weekly_day <= 6:
        weekly_day = digest_defaults["weekly_day"]
    return EffectiveSettings(
        user_id=uid,
        system=_resolve_type(row.system if row is not None else None, DEFAULT_SETTINGS[TYPE_SYSTEM]),
        interaction=_resolve_type(row.interaction if row is not None else None, DEFAULT_SETTINGS[TYPE_INTERACTION]),
        private_message=_resolve_type(
            row.private_message if row is not None else None, DEFAULT_SETTINGS[TYPE_PRIVATE_MESSAGE]
        ),
        do_not_disturb=DoNotDisturb(
            enabled=_pick_bool(dnd_stored, "enabled", dnd_defaults["enabled"]),
            start=_pick_time(dnd_stored, "start", dnd_defaults["start"]),
            end=_pick_time(dnd_stored, "end", dnd_defaults["end"]),
            timezone=tz if is_valid_timezone(tz) else dnd_defaults["timezone"],
        ),
        digest_time=DigestTime(
            daily=_pick_time(digest_stored, "daily", digest_defaults["daily"]) or digest_defaults["daily"],
            weekly_day=weekly_day,
            weekly_time=_pick_time(digest_stored, "weekly_time", digest_defaults["weekly_time"])
            or digest_defaults["weekly_time"],
        ),
        last_daily_digest_at=row.last_daily_digest_at if row is not None else None,
        last_weekly_digest_at=row.last_weekly_digest_at if row is not None else None,
    )


# --- Store ---


def get_settings_row(db: Session, user_id: int) -> NotificationSettings | None:
    return db.query(NotificationSettings).filter(NotificationSettings.user_id == user_id).first()


def get_or_create_settings(db: Session, user_id: int) -> NotificationSettings:
    """Settings row for user_id; inserted with defaults (all JSON groups empty) on first access."""
    row = get_settings_row(db, user_id)
    if row is not None:
        return row
    row = NotificationSettings(user_id=user_id)
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent first access created it
        db.rollback()
        return get_settings_row(db, user_id)
    db.refresh(row)
    logger.info("Created default notification settings for user %s", user_id)
    return row


def get_effective_settings(db: Session, user_id: int) -> EffectiveSettings:
    """Read path for the writer: never inserts, missing row resolves to defaults."""
    return resolve(get_settings_row(db, user_id), user_id=user_id)


def is_type_enabled(db: Session, user_id: int, notification_type: str) -> bool:
    return get_effective_settings(db, user_id).for_type(notification_type).enabled


def is_subtype_enabled(db: Session, user_id: int, subtype: str) -> bool:
    return get_effective_settings(db, user_id).interaction.subtype_enabled(subtype)


# --- Validation ---


def _validate_type_group(group: str, data: Any) -> None:
    if not isinstance(data, Mapping):
        raise SettingsValidationError(group, "must be an object")
    for key, value in data.items():
        field_name = f"{group}.{key}"
        if key in CHANNEL_FLAGS:
            if not isinstance(value, bool):
                raise SettingsValidationError(field_name, "must be a boolean")
        elif key == "frequency":
            if value not in FREQUENCIES:
                raise SettingsValidationError(field_name, f"must be one of {', '.join(FREQUENCIES)}")
        elif key == "subtypes" and group == TYPE_INTERACTION:
            if not isinstance(value, Mapping):
                raise SettingsValidationError(field_name, "must be an object")
            for name, enabled in value.items():
                if name not in INTERACTION_SUBTYPES:
                    raise SettingsValidationError(f"{field_name}.{name}", "unknown subtype")
                if not isinstance(enabled, bool):
                    raise SettingsValidationError(f"{field_name}.{name}", "must be a boolean")
        else:
            raise SettingsValidationError(field_name, "unknown field")


def _validate_do_not_disturb(data: Any) -> None:
    if not isinstance(data, Mapping):
        raise SettingsValidationError("do_not_disturb", "must be an object")
    for key, value in data.items():
        field_name = f"do_not_disturb.{key}"
        if key == "enabled":
            if not isinstance(value, bool):
                raise SettingsValidationError(field_name, "must be a boolean")
        elif key in ("start", "end"):
            if value is not None and not is_valid_time(value):
                raise SettingsValidationError(field_name, "must be a time in HH:mm format")
        elif key == "timezone":
            if not is_valid_timezone(value):
                raise SettingsValidationError(field_name, "unknown timezone")
        else:
            raise SettingsValidationError(field_name, "unknown field")


def _validate_digest_time(data: Any) -> None:
    if not isinstance(data, Mapping):
        raise SettingsValidationError("digest_time", "must be an object")
    for key, value in data.items():
        field_name = f"digest_time.{key}"
        if key in ("daily", "weekly_time"):
            if not is_valid_time(value):
                raise SettingsValidationError(field_name, "must be a time in HH:mm format")
        elif key == "weekly_day":
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 6:
                raise SettingsValidationError(field_name, "must be an integer 0-6 (0 = Sunday)")
        else:
            raise SettingsValidationError(field_name, "unknown field")


def validate_settings_update(updates: Mapping[str, Any]) -> None:
    """Raise SettingsValidationError for the first invalid field; no side effects."""
    if not isinstance(updates, Mapping):
        raise SettingsValidationError("settings", "must be an object")
    for group, data in updates.items():
        if data is None:
            continue
        if group in TYPE_GROUPS:
            _validate_type_group(group, data)
        elif group == "do_not_disturb":
            _validate_do_not_disturb(data)
        elif group == "digest_time":
            _validate_digest_time(data)
        elif group in READ_ONLY_KEYS:
            continue
        else:
            raise SettingsValidationError(group, "unknown settings group")


def update_settings(db: Session, user_id: int, updates: Mapping[str, Any]) -> EffectiveSettings:
    """
    Partial update: each group (system, interaction, private_message, do_not_disturb,
    digest_time) is optional and merged key by key; unspecified groups are untouched.
    Subtype maps merge too. Validation runs before anything is written.
    """
    validate_settings_update(updates)
    row = get_or_create_settings(db, user_id)
    changed = False
    for group in SETTINGS_GROUPS:
        data = updates.get(group)
        if not data:
            continue
        current = dict(getattr(row, group) or {})
        for key, value in data.items():
            if key == "subtypes":
                merged = dict(current.get("subtypes") or {})
                merged.update(value)
                current["subtypes"] = merged
            else:
                current[key] = value
        # New dict so the JSON column is flagged dirty
        setattr(row, group, current)
        changed = True
    if changed:
        db.commit()
        db.refresh(row)
        logger.info("Updated notification settings for user %s: %s", user_id, sorted(k for k in updates if updates[k]))
    return resolve(row)


def mark_digest_sent(db: Session, user_id: int, cadence: str, at: datetime) -> None:
    row = get_or_create_settings(db, user_id)
    if cadence == "daily":
        row.last_daily_digest_at = at
    else:
        row.last_weekly_digest_at = at
    db.commit()


def _type_to_dict(ts: TypeSettings, with_subtypes: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {"in_app": ts.in_app, "email": ts.email, "push": ts.push, "frequency": ts.frequency}
    if with_subtypes:
        out["subtypes"] = dict(ts.subtypes)
    return out


def settings_to_dict(effective: EffectiveSettings) -> dict[str, Any]:
    """The settings document returned by GET/PUT."""
    dnd = effective.do_not_disturb
    digest = effective.digest_time
    return {
        "user_id": effective.user_id,
        "system": _type_to_dict(effective.system),
        "interaction": _type_to_dict(effective.interaction, with_subtypes=True),
        "private_message": _type_to_dict(effective.private_message),
        "do_not_disturb": {"enabled": dnd.enabled, "start": dnd.start, "end": dnd.end, "timezone": dnd.timezone},
        "digest_time": {"daily": digest.daily, "weekly_day": digest.weekly_day, "weekly_time": digest.weekly_time},
    }
