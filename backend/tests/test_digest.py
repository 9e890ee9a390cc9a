from datetime import datetime, timezone

import pytest

from blognotify.models.notification import Notification
from blognotify.models.notification_settings import NotificationSettings
from blognotify.services.digest_service import digest_due, latest_slot, run_digest
from blognotify.services.notification_service import NotificationEvent, create_notification
from blognotify.services.preferences import DigestTime, update_settings
from blognotify.services.push_subscription_service import subscribe


def _at(day, hour, minute=0):
    return datetime(2024, 3, day, hour, minute, tzinfo=timezone.utc)


def _notify(db, user_id, when, title, type="interaction", subtype="comment"):
    return create_notification(
        db,
        NotificationEvent(
            recipient_user_id=user_id,
            type=type,
            subtype=subtype,
            title=title,
            related_data={"link": f"#/posts/{title}"},
        ),
        now=when,
    )


def test_latest_slot_daily_and_weekly():
    digest = DigestTime(daily="09:00", weekly_day=1, weekly_time="09:00")
    assert latest_slot("daily", digest, "UTC", _at(5, 10)) == _at(5, 9)
    assert latest_slot("daily", digest, "UTC", _at(5, 8)) == _at(4, 9)
    # 2024-03-06 is a Wednesday; weekly_day 1 = Monday
    assert latest_slot("weekly", digest, "UTC", _at(6, 12)) == _at(4, 9)
    sunday = DigestTime(weekly_day=0, weekly_time="09:00")
    # 2024-03-03 is a Sunday, before the slot -> previous Sunday
    assert latest_slot("weekly", sunday, "UTC", _at(3, 8)) == datetime(2024, 2, 25, 9, tzinfo=timezone.utc)
    assert latest_slot("weekly", sunday, "UTC", _at(3, 9)) == _at(3, 9)


def test_latest_slot_uses_user_timezone():
    digest = DigestTime(daily="09:00")
    # 01:00 UTC is 10:00 in Tokyo; the slot is 09:00 JST = 00:00 UTC
    assert latest_slot("daily", digest, "Asia/Tokyo", _at(5, 1)) == _at(5, 0)


def test_digest_due():
    digest = DigestTime(daily="09:00")
    assert digest_due("daily", digest, "UTC", _at(5, 10), None) == _at(4, 9)
    assert digest_due("daily", digest, "UTC", _at(5, 10), _at(5, 9, 30)) is None
    assert digest_due("daily", digest, "UTC", _at(5, 10), _at(4, 9, 30)) == _at(4, 9, 30)
    with pytest.raises(ValueError):
        digest_due("hourly", digest, "UTC", _at(5, 10), None)


def test_daily_digest_batches_instead_of_realtime(db, make_user, outbox, deferred):
    user = make_user("reader", display_name="Reader")
    update_settings(db, user.id, {"interaction": {"frequency": "daily", "email": True, "push": True}})
    subscribe(db, user.id, "https://push.example.com/ep", "key", "auth")

    _notify(db, user.id, _at(4, 8), "too-early")
    _notify(db, user.id, _at(4, 12), "first")
    _notify(db, user.id, _at(4, 20), "second")
    # frequency=daily: rows are written but nothing goes out in realtime
    assert db.query(Notification).count() == 3
    assert outbox.emails == [] and outbox.pushes == []

    result = run_digest(db, "daily", now=_at(5, 10), deferred=deferred)

    assert result == {"users": 1, "notifications": 2, "failed": 0}
    assert len(outbox.digests) == 1
    digest = outbox.digests[0]
    assert digest["to"] == "reader@example.com"
    assert digest["name"] == "Reader"
    assert [i["title"] for i in digest["items"]] == ["first", "second"]
    assert digest["items"][0]["link"] == "#/posts/first"
    assert len(outbox.pushes) == 1
    assert outbox.pushes[0]["topic"] == "digest-daily"

    db.expire_all()
    row = db.query(NotificationSettings).filter(NotificationSettings.user_id == user.id).one()
    assert row.last_daily_digest_at is not None
    sent = db.query(Notification).filter(Notification.title == "first").one()
    assert sent.email_sent is True and sent.push_sent is True

    # Same slot again: nothing to do
    assert run_digest(db, "daily", now=_at(5, 11), deferred=deferred)["users"] == 0

    _notify(db, user.id, _at(5, 15), "third")
    result = run_digest(db, "daily", now=_at(6, 9, 30), deferred=deferred)
    assert result["notifications"] == 1
    assert [i["title"] for i in outbox.digests[-1]["items"]] == ["third"]


def test_digest_only_covers_types_on_that_cadence(db, make_user, outbox, deferred):
    user = make_user("reader")
    update_settings(
        db,
        user.id,
        {"system": {"frequency": "weekly"}, "interaction": {"frequency": "daily", "email": True}},
    )
    _notify(db, user.id, _at(4, 12), "announcement", type="system", subtype="announcement")
    _notify(db, user.id, _at(4, 12), "comment")

    run_digest(db, "daily", now=_at(5, 10), deferred=deferred)
    assert [i["title"] for i in outbox.digests[-1]["items"]] == ["comment"]

    # 2024-03-11 is a Monday (default weekly_day 1)
    run_digest(db, "weekly", now=_at(11, 10), deferred=deferred)
    assert outbox.digests[-1]["cadence"] == "weekly"
    assert [i["title"] for i in outbox.digests[-1]["items"]] == ["announcement"]


def test_realtime_users_are_not_digested(db, make_user, outbox, deferred):
    user = make_user("reader")
    update_settings(db, user.id, {"interaction": {"email": True}})
    _notify(db, user.id, _at(4, 12), "comment")
    outbox.emails.clear()
    assert run_digest(db, "daily", now=_at(5, 10), deferred=deferred) == {"users": 0, "notifications": 0, "failed": 0}
    assert outbox.digests == []


def test_digest_waits_for_quiet_hours_to_end(db, make_user, outbox, deferred):
    user = make_user("reader")
    update_settings(
        db,
        user.id,
        {
            "interaction": {"frequency": "daily", "email": True},
            "digest_time": {"daily": "05:00"},
            "do_not_disturb": {"enabled": True, "start": "22:00", "end": "07:00"},
        },
    )
    _notify(db, user.id, _at(4, 12), "comment")

    assert run_digest(db, "daily", now=_at(5, 6), deferred=deferred)["users"] == 0
    assert outbox.digests == []
    assert run_digest(db, "daily", now=_at(5, 7, 30), deferred=deferred)["users"] == 1
    assert len(outbox.digests) == 1
