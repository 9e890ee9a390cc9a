from blognotify.models.notification import Notification
from blognotify.models.notification_settings import NotificationSettings
from blognotify.models.push_subscription import PushSubscription
from blognotify.models.user import User

__all__ = [
    "Notification",
    "NotificationSettings",
    "PushSubscription",
    "User",
]
