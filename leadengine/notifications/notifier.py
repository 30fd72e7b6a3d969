"""
leadengine/notifications/notifier.py — SMTP lead notifier with dry-run support.

LeadNotifier tells contractors about new assignments and the admin inbox about
quote requests. Delivery is best-effort: every call returns a DeliveryOutcome
and never raises. Without SMTP credentials, or with NOTIFIER_DRY_RUN=true, the
message is logged instead of sent.
"""

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Optional

from leadengine.config import settings
from leadengine.exceptions import NotificationError
from leadengine.notifications.templates import (
    RenderedEmail,
    render_admin_alert,
    render_contractor_notification,
)

logger = logging.getLogger(__name__)


@dataclass
class DeliveryOutcome:
    recipient: Optional[str]
    delivered: bool
    simulated: bool = False
    error: Optional[str] = None


class LeadNotifier:
    """
    Sends lead notifications over SMTP (SSL).

    In dry-run mode emails are logged and never transmitted — the default for
    development, and the automatic fallback when SMTP is not configured.
    """

    def __init__(self, dry_run: Optional[bool] = None):
        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_user = settings.smtp_user
        self.smtp_password = settings.smtp_password
        self.sender = settings.notification_from
        self.dry_run = dry_run if dry_run is not None else settings.notifier_dry_run
        if not self.dry_run and not (self.smtp_user and self.smtp_password):
            logger.warning("SMTP credentials not set — notifications will be simulated.")
            self.dry_run = True

    # ── Public API ────────────────────────────────────────────────────────────

    def notify_contractor(self, contractor: Any, lead: Any, assignment_id: Optional[int] = None) -> DeliveryOutcome:
        """Tell a contractor a lead was assigned to them."""
        email = render_contractor_notification(lead, contractor, assignment_id, settings.dashboard_url)
        return self.deliver(contractor.email, email)

    def notify_admin(self, lead: Any) -> DeliveryOutcome:
        """Alert the admin inbox about a lead (used for quote requests)."""
        recipient = settings.admin_notification_email
        if not recipient:
            logger.debug("ADMIN_NOTIFICATION_EMAIL not set — admin alert for lead %s skipped.", lead.id)
            return DeliveryOutcome(recipient=None, delivered=False, simulated=True, error="no admin address configured")
        return self.deliver(recipient, render_admin_alert(lead))

    def deliver(self, to_address: Optional[str], email: RenderedEmail) -> DeliveryOutcome:
        """
        Send (or simulate) one email.

        Returns:
            DeliveryOutcome — delivered=False with an error message on failure.
        """
        if not to_address:
            logger.warning("Notification '%s' has no recipient — skipped.", email.subject)
            return DeliveryOutcome(recipient=None, delivered=False, error="missing recipient address")

        if self.dry_run:
            logger.info("DRY RUN: notification to %s — %s", to_address, email.subject)
            return DeliveryOutcome(recipient=to_address, delivered=True, simulated=True)

        try:
            self._send_via_smtp(to_address, email)
        except (smtplib.SMTPException, OSError) as exc:
            error = NotificationError(f"Delivery to {to_address} failed: {exc}")
            logger.error("%s", error.message)
            return DeliveryOutcome(recipient=to_address, delivered=False, error=error.message)

        logger.info("Notification sent to %s.", to_address)
        return DeliveryOutcome(recipient=to_address, delivered=True)

    # ── Private helpers ───────────────────────────────────────────────────────

    def _send_via_smtp(self, to_address: str, email: RenderedEmail) -> None:
        """Establish an SSL connection and transmit the message."""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = email.subject
        msg["From"] = self.sender
        msg["To"] = to_address

        # Plain text first, HTML second — clients prefer the last part
        msg.attach(MIMEText(email.plain_body, "plain", "utf-8"))
        msg.attach(MIMEText(email.html_body, "html", "utf-8"))

        with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, timeout=15) as server:
            server.login(self.smtp_user, self.smtp_password)
            server.sendmail(self.smtp_user, to_address, msg.as_string())
