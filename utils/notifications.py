"""SMTP status notifications sent to civic reporters."""
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import List

from flask import current_app

from models import Complaint
from utils.markdown_formatter import (
    STATUS_EMOJI,
    format_status_label,
    format_status_update_markdown,
    markdown_to_email_html,
    markdown_to_plaintext,
)


class EmailDeliveryError(Exception):
    """Raised when email dispatch fails."""


def _dispatch_email(subject: str, text_body: str, html_body: str, sender: str, recipients: List[str]) -> None:
    if not recipients:
        raise EmailDeliveryError("No recipients resolved for email dispatch")

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = ", ".join(recipients)
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid()
    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")

    host = current_app.config.get("MAIL_SERVER")
    port = int(current_app.config.get("MAIL_PORT", 25))
    username = current_app.config.get("MAIL_USERNAME")
    password = current_app.config.get("MAIL_PASSWORD")
    use_tls = bool(current_app.config.get("MAIL_USE_TLS"))
    use_ssl = bool(current_app.config.get("MAIL_USE_SSL"))

    if not host:
        raise EmailDeliveryError("MAIL_SERVER is not configured")

    try:
        if use_ssl:
            with smtplib.SMTP_SSL(host, port, context=ssl.create_default_context()) as server:
                if username and password:
                    server.login(username, password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(host, port) as server:
                server.ehlo()
                if use_tls:
                    server.starttls(context=ssl.create_default_context())
                if username and password:
                    server.login(username, password)
                server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:  # pragma: no cover - external I/O
        raise EmailDeliveryError(str(exc)) from exc


def build_status_email(complaint: Complaint, old_status: str | None, points_awarded: int | None = None):
    label = format_status_label(complaint.status)
    subject = f"{STATUS_EMOJI.get(complaint.status, '📋')} Your complaint \"{complaint.title}\" is now {label}"
    markdown_body = format_status_update_markdown(
        complaint.complaint_id,
        complaint.title,
        old_status,
        complaint.status,
        resolution=complaint.resolution if complaint.status == "resolved" else None,
        assigned_worker=complaint.assigned_to,
        points_awarded=points_awarded,
    )
    return subject, markdown_to_plaintext(markdown_body), markdown_to_email_html(markdown_body)


def send_status_notification(complaint: Complaint, old_status: str | None, points_awarded: int | None = None) -> bool:
    """Email the civic reporter; returns False when there is nobody to notify."""
    if not current_app.config.get("STATUS_NOTIFICATIONS_ENABLED", True):
        return False
    if complaint.type != "civic" or not complaint.reporter_email:
        return False
    subject, text_body, html_body = build_status_email(complaint, old_status, points_awarded)
    sender = current_app.config.get("MAIL_DEFAULT_SENDER") or ""
    _dispatch_email(subject, text_body, html_body, sender, [complaint.reporter_email])
    current_app.logger.info(
        "Status notification sent",
        extra={"complaint_id": complaint.complaint_id, "status": complaint.status},
    )
    return True
