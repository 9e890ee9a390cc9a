from datetime import datetime, timedelta, timezone

import pytest

from blognotify.core.errors import NotFoundError
from blognotify.models.notification import Notification
from blognotify.services import events
from blognotify.services.dispatch import Channel, ChannelHints, plan_channels
from blognotify.services.notification_service import (
    NotificationEvent,
    admin_list_notifications,
    create_notification,
    delete_notification,
    get_unread_count,
    list_notifications,
    mark_all_as_read,
    mark_as_read,
    purge_notifications,
)
from blognotify.services.preferences import TypeSettings, update_settings
from blognotify.services.push_subscription_service import subscribe

NIGHT = datetime(2024, 3, 5, 23, 0, tzinfo=timezone.utc)
NOON = datetime(2024, 3, 5, 12, 0, tzinfo=timezone.utc)


def _event(user_id, type="interaction", subtype="comment", title="hello"):
    return NotificationEvent(recipient_user_id=user_id, type=type, subtype=subtype, title=title, body="body")


def test_plan_channels_table():
    ts = TypeSettings(in_app=True, email=True, push=True, frequency="realtime")
    assert plan_channels(ts) == {Channel.IN_APP, Channel.EMAIL, Channel.PUSH}
    assert plan_channels(ts, quiet=True) == {Channel.IN_APP}
    assert plan_channels(ts, ChannelHints.only([Channel.EMAIL])) == {Channel.IN_APP, Channel.EMAIL}
    assert plan_channels(TypeSettings(email=True, push=True, frequency="daily")) == {Channel.IN_APP}
    assert plan_channels(TypeSettings(email=False, push=True)) == {Channel.IN_APP, Channel.PUSH}
    assert plan_channels(TypeSettings(in_app=False, email=True, push=False)) == {Channel.EMAIL}
    assert plan_channels(TypeSettings(in_app=False, email=True), quiet=True) == frozenset()


def test_disabled_subtype_writes_nothing(db, make_user, outbox):
    actor = make_user("actor")
    author = make_user("author")
    update_settings(db, author.id, {"interaction": {"subtypes": {"like": False}}})

    result = events.notify_like(db, actor.id, author.id, post_id=1, post_slug="p", comment_id=9, comment_content="nice")

    assert result is None
    assert db.query(Notification).count() == 0
    assert outbox.emails == [] and outbox.pushes == []


def test_disabled_type_writes_nothing(db, make_user, outbox):
    user = make_user("u1")
    update_settings(db, user.id, {"system": {"frequency": "off"}})
    assert create_notification(db, _event(user.id, type="system", subtype="announcement"), now=NOON) is None
    assert db.query(Notification).count() == 0


def test_quiet_hours_keep_in_app_and_suppress_dispatch(db, make_user, outbox, deferred):
    actor = make_user("actor")
    author = make_user("author")
    update_settings(
        db,
        author.id,
        {
            "interaction": {"email": True, "subtypes": {"like": True}},
            "do_not_disturb": {"enabled": True, "start": "22:00", "end": "07:00", "timezone": "UTC"},
        },
    )
    subscribe(db, author.id, "https://push.example.com/ep1", "key", "auth")

    row = events.notify_like(db, actor.id, author.id, 1, "p", 9, "nice", now=NIGHT)

    assert row is not None
    assert db.query(Notification).filter(Notification.recipient_user_id == author.id).count() == 1
    assert outbox.emails == []
    assert outbox.pushes == []


def test_outside_quiet_hours_dispatches_email_and_push(db, make_user, outbox, deferred):
    actor = make_user("actor")
    author = make_user("author")
    update_settings(
        db,
        author.id,
        {
            "interaction": {"email": True},
            "do_not_disturb": {"enabled": True, "start": "22:00", "end": "07:00", "timezone": "UTC"},
        },
    )
    subscribe(db, author.id, "https://push.example.com/ep1", "key", "auth")
    subscribe(db, author.id, "https://push.example.com/ep2", "key", "auth")

    row = events.notify_comment(db, actor.id, author.id, 1, "Post", "post", 3, "great post", now=NOON)

    assert [e["to"] for e in outbox.emails] == ["author@example.com"]
    assert outbox.emails[0]["link"] == "#/posts/post"
    assert sorted(p["endpoint"] for p in outbox.pushes) == [
        "https://push.example.com/ep1",
        "https://push.example.com/ep2",
    ]
    db.expire_all()
    stored = db.get(Notification, row.id)
    assert stored.email_sent is True
    assert stored.push_sent is True


def test_hints_only_narrow_recipient_preferences(db, make_user, outbox, deferred):
    user = make_user("u1")
    subscribe(db, user.id, "https://push.example.com/ep", "key", "auth")
    # system defaults: email on, push off
    create_notification(
        db,
        _event(user.id, type="system", subtype="announcement"),
        ChannelHints.only([Channel.IN_APP, Channel.PUSH]),
        now=NOON,
    )
    assert outbox.emails == []
    assert outbox.pushes == []


def test_channel_failure_does_not_fail_the_call(db, make_user, outbox, deferred, monkeypatch):
    user = make_user("u1")
    update_settings(db, user.id, {"interaction": {"email": True}})

    def boom(*args, **kwargs):
        raise RuntimeError("smtp down")

    monkeypatch.setattr("blognotify.services.dispatch.send_notification_email", boom)
    subscribe(db, user.id, "https://push.example.com/ep", "key", "auth")

    row = create_notification(db, _event(user.id), now=NOON)

    assert row is not None and row.id
    assert len(outbox.pushes) == 1


def test_gone_push_endpoint_is_deactivated(db, make_user, outbox, deferred):
    from blognotify.models.push_subscription import PushSubscription
    from blognotify.services.push import PushResult

    user = make_user("u1")
    subscribe(db, user.id, "https://push.example.com/old", "key", "auth")
    outbox.push_result = PushResult.GONE

    create_notification(db, _event(user.id), now=NOON)

    db.expire_all()
    sub = db.query(PushSubscription).one()
    assert sub.is_active is False


def test_in_app_off_still_delivers_other_channels(db, make_user, outbox, deferred):
    user = make_user("bob")
    update_settings(db, user.id, {"interaction": {"in_app": False, "email": True, "push": False}})

    row = create_notification(db, _event(user.id, subtype="like"), now=NOON)

    assert row is not None
    assert [e["to"] for e in outbox.emails] == ["bob@example.com"]
    assert outbox.pushes == []


def test_every_channel_off_writes_nothing(db, make_user, outbox):
    user = make_user("u1")
    update_settings(db, user.id, {"private_message": {"in_app": False, "email": False, "push": False}})
    assert create_notification(db, _event(user.id, type="private_message", subtype=None), now=NOON) is None
    assert db.query(Notification).count() == 0


def test_unknown_type_is_rejected(db, make_user):
    user = make_user("u1")
    with pytest.raises(ValueError):
        create_notification(db, _event(user.id, type="newsletter", subtype=None))
    assert db.query(Notification).count() == 0


def test_self_notifications_are_dropped(db, make_user, outbox):
    user = make_user("u1")
    assert events.notify_comment(db, user.id, user.id, 1, "Post", "post", 3, "me") is None
    assert events.notify_private_message(db, user.id, user.id, 5, "hi me") is None
    assert db.query(Notification).count() == 0


def test_broadcast_recipient_is_reserved(db):
    with pytest.raises(ValueError):
        create_notification(db, _event(0))


def test_excerpt_truncates_long_bodies(db, make_user, outbox):
    sender = make_user("sender")
    recipient = make_user("recipient")
    row = events.notify_private_message(db, sender.id, recipient.id, 5, "x" * 150)
    assert row.content == "x" * 100 + "..."
    assert row.type == "private_message"


def test_recipient_listing_and_read_state(db, make_user, outbox):
    user = make_user("u1")
    other = make_user("u2")
    for i in range(3):
        create_notification(db, _event(user.id, title=f"i{i}"))
    create_notification(db, _event(user.id, type="system", subtype="announcement", title="s0"))
    create_notification(db, _event(other.id, title="not mine"))

    page = list_notifications(db, user.id, limit=2)
    assert [n["title"] for n in page["notifications"]] == ["s0", "i2"]
    assert page["pagination"] == {"page": 1, "limit": 2, "total": 4, "total_pages": 2}
    assert list_notifications(db, user.id, limit=500)["pagination"]["limit"] == 50

    counts = get_unread_count(db, user.id)
    assert counts == {"total": 4, "by_type": {"system": 1, "interaction": 3, "private_message": 0}}

    first = list_notifications(db, user.id, notification_type="interaction")["notifications"][0]
    read = mark_as_read(db, user.id, first["id"])
    assert read.is_read is True and read.read_at is not None
    assert get_unread_count(db, user.id)["total"] == 3
    assert len(list_notifications(db, user.id, is_read=True)["notifications"]) == 1

    assert mark_all_as_read(db, user.id, "interaction") == 2
    assert get_unread_count(db, user.id)["by_type"]["system"] == 1
    assert mark_all_as_read(db, user.id) == 1
    assert get_unread_count(db, user.id)["total"] == 0

    with pytest.raises(NotFoundError):
        mark_as_read(db, other.id, first["id"])


def test_soft_delete_hides_rows_until_purge(db, make_user, outbox):
    user = make_user("u1")
    row = create_notification(db, _event(user.id))
    delete_notification(db, user.id, row.id)

    assert list_notifications(db, user.id)["pagination"]["total"] == 0
    db.expire_all()
    assert db.get(Notification, row.id).is_deleted is True
    with pytest.raises(NotFoundError):
        delete_notification(db, user.id, row.id)

    old = create_notification(db, _event(user.id), now=datetime.now(timezone.utc) - timedelta(days=120))
    fresh = create_notification(db, _event(user.id))
    old_id, fresh_id = old.id, fresh.id
    assert purge_notifications(db, 90) == 1
    db.expire_all()
    assert db.get(Notification, old_id) is None
    assert db.get(Notification, fresh_id) is not None
    assert db.query(Notification).filter(Notification.id == old_id).count() == 0


def test_admin_listing_includes_recipient(db, make_user, outbox):
    alice = make_user("alice", display_name="Alice A")
    bob = make_user("bob")
    create_notification(db, _event(alice.id))
    create_notification(db, _event(bob.id, type="system", subtype="announcement"))

    everything = admin_list_notifications(db)
    assert everything["pagination"]["total"] == 2
    only_alice = admin_list_notifications(db, user_id=alice.id)
    assert only_alice["notifications"][0]["user"] == {
        "username": "alice",
        "display_name": "Alice A",
        "email": "alice@example.com",
    }
    assert admin_list_notifications(db, notification_type="system")["notifications"][0]["user_id"] == bob.id
    assert admin_list_notifications(db, limit=1000)["pagination"]["limit"] == 100
