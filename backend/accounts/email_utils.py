import logging

from django.conf import settings
import resend

logger = logging.getLogger("printbroker.email")


def send_resend_email(to_emails, subject, html, text, *, reply_to=None, tags=None):
    """Send one message through Resend.

    Returns ``(ok, reason)``. Provider errors are reported, never raised, so
    callers running after a commit can record the outcome without failing.
    """
    if not settings.RESEND_API_KEY:
        return False, "missing_resend_api_key"
    if isinstance(to_emails, str):
        to_emails = [to_emails]
    recipients = [email for email in dict.fromkeys(to_emails or []) if email]
    if not recipients:
        return False, "no_recipients"

    resend.api_key = settings.RESEND_API_KEY
    payload = {
        "from": settings.RESEND_FROM_EMAIL,
        "to": recipients,
        "subject": subject,
        "html": html,
        "text": text,
    }
    if reply_to:
        payload["reply_to"] = reply_to
    if tags:
        payload["tags"] = [{"name": key, "value": str(value)} for key, value in tags.items()]
    try:
        resend.Emails.send(payload)
    except Exception as error:
        logger.warning(f"Resend delivery to {recipients} failed: {error}")
        return False, str(error)
    return True, ""
