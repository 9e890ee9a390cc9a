from blognotify.services.notification_service import NotificationEvent, create_notification
from blognotify.services.preferences import get_effective_settings, update_settings

__all__ = ["NotificationEvent", "create_notification", "get_effective_settings", "update_settings"]
