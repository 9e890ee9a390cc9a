"""
Single source of truth for database tables owned by this service.

`users` is a read model of the external account service; it is listed so alembic's
metadata check in env.py stays exact.
"""
ALL_TABLE_NAMES = (
    "users",
    "notifications",
    "notification_settings",
    "push_subscriptions",
)
