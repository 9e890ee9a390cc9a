import pytest

from blognotify.config import settings
from blognotify.core.errors import BroadcastValidationError, NotFoundError
from blognotify.models.notification import Notification
from blognotify.services.broadcast_service import (
    create_system_broadcast,
    delete_system_broadcast,
    get_system_broadcast,
    list_carousel,
    list_system_broadcasts,
    send_broadcast,
    update_system_broadcast,
)
from blognotify.services.preferences import update_settings


def test_broadcast_to_all_active_users(db, make_user, outbox):
    users = [make_user(f"user{i}") for i in range(3)]
    make_user("gone", status="deleted")

    result = send_broadcast(db, "Maintenance", "Back soon", "all", None, ["in_app"], link="#/status")

    assert result == {"sent_count": 3, "failed_count": 0, "errors": []}
    rows = db.query(Notification).order_by(Notification.recipient_user_id).all()
    assert [r.recipient_user_id for r in rows] == [u.id for u in users]
    assert all(r.type == "system" and r.subtype == "announcement" for r in rows)
    assert rows[0].related_data == {"link": "#/status"}
    # in_app only: system email default is on but the sender narrowed the channels
    assert outbox.emails == []


def test_broadcast_counts_suppressed_targets_as_failed(db, make_user, outbox):
    users = [make_user(f"user{i}") for i in range(15)]
    muted = users[:12]
    for u in muted:
        update_settings(db, u.id, {"system": {"frequency": "off"}})

    result = send_broadcast(db, "Hi", None, "specific_users", [u.id for u in users], ["in_app", "email"])

    assert result["sent_count"] == 3
    assert result["failed_count"] == 12
    assert len(result["errors"]) == settings.broadcast_max_errors == 10
    assert result["errors"][0] == f"user {muted[0].id}: notification suppressed by user preferences"
    assert len(outbox.emails) == 3


def test_broadcast_continues_after_a_target_raises(db, make_user, outbox):
    alice = make_user("alice")
    # 0 is the broadcast sentinel and is refused by the writer
    result = send_broadcast(db, "Hi", None, "specific_users", [0, alice.id], ["in_app"])
    assert result["sent_count"] == 1
    assert result["failed_count"] == 1
    assert result["errors"][0].startswith("user 0:")


def test_broadcast_ceiling_rejects_outright(db, make_user, outbox, monkeypatch):
    monkeypatch.setattr(settings, "broadcast_max_targets", 2)
    ids = [make_user(f"user{i}").id for i in range(3)]
    with pytest.raises(BroadcastValidationError) as exc_info:
        send_broadcast(db, "Hi", None, "specific_users", ids, ["in_app"])
    assert exc_info.value.field == "target"
    assert db.query(Notification).count() == 0


@pytest.mark.parametrize(
    "title,target,user_ids,channels,field",
    [
        ("", "all", None, ["in_app"], "title"),
        ("Hi", "everyone", None, ["in_app"], "target"),
        ("Hi", "all", None, [], "channels"),
        ("Hi", "all", None, ["sms"], "channels"),
        ("Hi", "specific_users", [], ["in_app"], "user_ids"),
        ("Hi", "specific_users", None, ["in_app"], "user_ids"),
    ],
)
def test_broadcast_validation(db, title, target, user_ids, channels, field):
    with pytest.raises(BroadcastValidationError) as exc_info:
        send_broadcast(db, title, None, target, user_ids, channels)
    assert exc_info.value.field == field


def test_broadcast_with_no_targets(db):
    assert send_broadcast(db, "Hi", None, "all", None, ["in_app"]) == {"sent_count": 0, "failed_count": 0, "errors": []}


def test_system_broadcast_crud_and_carousel(db):
    ids = [create_system_broadcast(db, f"News {i}", link=f"#/news/{i}").id for i in range(6)]
    hidden = create_system_broadcast(db, "Draft", is_active=False)

    carousel = list_carousel(db)
    assert [c["title"] for c in carousel] == ["News 5", "News 4", "News 3", "News 2", "News 1"]
    assert carousel[0]["link"] == "#/news/5"

    assert list_system_broadcasts(db)["pagination"]["total"] == 7
    assert list_system_broadcasts(db, active_only=True)["pagination"]["total"] == 6

    updated = update_system_broadcast(db, hidden.id, {"is_active": True, "link": "#/draft", "title": "Published"})
    assert updated.is_active is True
    assert updated.related_data == {"link": "#/draft"}
    assert list_carousel(db)[0]["title"] == "Published"

    delete_system_broadcast(db, ids[5])
    with pytest.raises(NotFoundError):
        get_system_broadcast(db, ids[5])
    assert "News 5" not in [c["title"] for c in list_carousel(db)]

    with pytest.raises(BroadcastValidationError):
        update_system_broadcast(db, ids[0], {"title": "  "})


def test_carousel_ignores_per_user_announcements(db, make_user, outbox):
    user = make_user("u1")
    send_broadcast(db, "Per-user", None, "specific_users", [user.id], ["in_app"])
    assert list_carousel(db) == []
