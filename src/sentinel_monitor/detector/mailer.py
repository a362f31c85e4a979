"""Email notifier for threshold violations."""

import html
import smtplib
import ssl
from collections.abc import Sequence
from email.message import EmailMessage
from email.utils import formataddr

import structlog

from sentinel_monitor.config import SmtpConfig
from sentinel_monitor.errors import NotificationFailure
from sentinel_monitor.metrics import NOTIFICATIONS

log = structlog.get_logger()

SENDER_NAME = "Sentinel Monitor"


def build_alert_email(
    sender_email: str,
    recipients: Sequence[str],
    instance_name: str,
    messages: Sequence[str],
) -> EmailMessage:
    """Build the alert email with a plain text body and an HTML alternative."""
    intro = (
        f"Bad news. The Sentinel from {instance_name} is acting weird. "
        "We found these problems:"
    )
    text_lines = [f" - {message}" for message in messages]
    text_body = "Hello,\n" + intro + "\n" + "\n".join(text_lines) + "\n"

    html_items = "".join(f"<p> - {html.escape(message)}</p>" for message in messages)
    html_body = f"<b>Hello!</b> <p>{html.escape(intro)}{html_items}</p>"

    msg = EmailMessage()
    msg["Subject"] = f"Sentinel alert for {instance_name}!"
    msg["From"] = formataddr((SENDER_NAME, sender_email))
    msg["To"] = ", ".join(recipients)
    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")
    return msg


class EmailNotifier:
    """Sends alert emails over SMTP with SSL."""

    def __init__(self, smtp: SmtpConfig | None = None):
        self.smtp = smtp or SmtpConfig()

    def send(
        self,
        sender_email: str,
        sender_password: str,
        recipients: Sequence[str],
        instance_name: str,
        messages: Sequence[str],
        dryrun: bool = False,
    ) -> bool:
        """Send one email listing every alert message.

        Args:
            sender_email: Mailbox to send from, also used as the SMTP login
            sender_password: SMTP password for sender_email
            recipients: Addresses to deliver to
            instance_name: Name of the monitored instance, used in the subject
            messages: Alert messages, one per violated rule
            dryrun: If True, log the email and report success without sending

        Returns:
            True once the email was handed to the server (or dry-run logged)

        Raises:
            NotificationFailure: if the SMTP exchange fails
        """
        msg = build_alert_email(sender_email, recipients, instance_name, messages)
        log.info(
            "Sending email",
            subject=msg["Subject"],
            to=msg["To"],
            messages=list(messages),
        )

        if dryrun:
            log.info("Dryrun! No email sent.")
            NOTIFICATIONS.labels(status="dryrun").inc()
            return True

        try:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(
                self.smtp.host, self.smtp.port, timeout=self.smtp.timeout, context=context
            ) as server:
                server.login(sender_email, sender_password)
                refused = server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            NOTIFICATIONS.labels(status="failed").inc()
            log.error("Error sending message", error=str(e))
            raise NotificationFailure(f"Couldn't send alert email: {e}") from e

        if refused:
            log.warning("Some recipients were refused", refused=list(refused))
        NOTIFICATIONS.labels(status="sent").inc()
        log.info("Message sent", recipients=len(recipients))
        return True
