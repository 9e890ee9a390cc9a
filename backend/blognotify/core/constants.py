"""
Centralized constants for notifications, settings and scheduler jobs.

Change job IDs, limits or vocabularies here instead of scattering literals across
services and routes. Env-driven knobs (batch ceiling, digest tick) live in config.
"""

# Scheduler job ID (must match the id used in main.py add_job)
DIGEST_JOB_ID = "notification_digest"

# Notification vocabulary
TYPE_SYSTEM = "system"
TYPE_INTERACTION = "interaction"
TYPE_PRIVATE_MESSAGE = "private_message"
NOTIFICATION_TYPES = (TYPE_SYSTEM, TYPE_INTERACTION, TYPE_PRIVATE_MESSAGE)

INTERACTION_SUBTYPES = ("comment", "reply", "like", "favorite", "mention", "follow")
SUBTYPE_ANNOUNCEMENT = "announcement"
SUBTYPE_MENTION = "mention"

FREQUENCIES = ("realtime", "daily", "weekly", "off")
DIGEST_CADENCES = ("daily", "weekly")

# Recipient sentinel for system broadcast (carousel) rows; never a per-user row
BROADCAST_RECIPIENT_ID = 0
BROADCAST_TARGETS = ("all", "specific_users")

USER_STATUS_ACTIVE = "active"
ROLE_ADMIN = "admin"

# Pagination: hard caps so response size stays bounded
NOTIFICATIONS_DEFAULT_LIMIT = 20
NOTIFICATIONS_MAX_LIMIT = 50
ADMIN_NOTIFICATIONS_MAX_LIMIT = 100
CAROUSEL_LIMIT = 5

# Body text of interaction notifications is truncated to this many chars (+ "...")
NOTIFICATION_EXCERPT_CHARS = 100
# Max lines listed in one digest email
DIGEST_EMAIL_MAX_ITEMS = 25
# Endpoint prefix length shown in push status / logs
ENDPOINT_PREVIEW_CHARS = 50
