"""
Send notification emails via SMTP (Gmail or any other relay).
Set SMTP_USER, SMTP_PASSWORD (and optionally NOTIFY_FROM, SMTP_HOST, SMTP_PORT) in .env.
When SMTP is not configured every send is a logged no-op that returns False.
"""
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from blognotify.config import settings
from blognotify.core.constants import DIGEST_EMAIL_MAX_ITEMS

logger = logging.getLogger(__name__)


def _from_address() -> str:
    if (settings.notify_from or "").strip():
        return settings.notify_from.strip()
    user = (settings.smtp_user or "").strip()
    if user:
        return f"Blog Notifications <{user}>"
    return "Blog Notifications <noreply@localhost>"


def smtp_configured() -> bool:
    return bool((settings.smtp_user or "").strip() and (settings.smtp_password or "").strip())


def absolute_link(link: str | None) -> str | None:
    """Deep links are stored relative ('#/posts/slug'); email needs the site URL in front."""
    if not link:
        return None
    if link.startswith(("http://", "https://")):
        return link
    base = (settings.site_url or "").rstrip("/")
    return f"{base}/{link.lstrip('/')}"


def _send(to_email: str, subject: str, text_body: str) -> bool:
    user = (settings.smtp_user or "").strip()
    password = (settings.smtp_password or "").strip()
    if not user or not password:
        logger.debug("SMTP_USER or SMTP_PASSWORD not set; skipping email to %s", to_email)
        return False
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = _from_address()
    msg["To"] = to_email
    msg.attach(MIMEText(text_body, "plain"))
    msg.attach(MIMEText(f"<pre style='font-family:sans-serif'>{html.escape(text_body)}</pre>", "html"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
            server.starttls()
            server.login(user, password)
            server.sendmail(user, [to_email], msg.as_string())
        return True
    except Exception as e:
        logger.exception("Failed to send email to %s: %s", to_email, e)
        return False


def send_notification_email(to_email: str, title: str, body: str | None = None, link: str | None = None) -> bool:
    """
    Send one realtime notification email. Returns True if sent, False if skipped or failed.
    """
    to_email = (to_email or "").strip()
    if not to_email or not title:
        return False
    lines = [title]
    if body:
        lines += ["", body]
    url = absolute_link(link)
    if url:
        lines += ["", f"Open: {url}"]
    sent = _send(to_email, title, "\n".join(lines))
    if sent:
        logger.info("Notification email sent to %s: %s", to_email, title)
    return sent


def send_digest_email(
    to_email: str,
    name: str,
    items: list[dict[str, Any]],
    cadence: str,
) -> bool:
    """
    Send a single digest email listing notifications. Each item can have title, content, link.
    Returns True if sent, False if skipped or failed.
    """
    to_email = (to_email or "").strip()
    if not to_email or not items:
        return False
    period = "today" if cadence == "daily" else "this week"
    lines = [f"Hi {name or 'there'}, here is what happened {period}:", ""]
    for item in items[:DIGEST_EMAIL_MAX_ITEMS]:
        line = f"• {(item.get('title') or 'Notification').strip()}"
        url = absolute_link(item.get("link"))
        if url:
            line += f" ({url})"
        lines.append(line)
    if len(items) > DIGEST_EMAIL_MAX_ITEMS:
        lines.append(f"…and {len(items) - DIGEST_EMAIL_MAX_ITEMS} more")
    subject = f"Your {cadence} digest: {len(items)} notification{'s' if len(items) != 1 else ''}"
    sent = _send(to_email, subject, "\n".join(lines))
    if sent:
        logger.info("Digest email (%s) sent to %s for %s notifications", cadence, to_email, len(items))
    return sent
