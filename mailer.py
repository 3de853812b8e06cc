"""
Outbound notification emails.

Notifications are handed to FastAPI background tasks by the routes; a
failed send is logged and reported as ``False`` but never raised, so it
cannot change the outcome of the request that triggered it.
"""

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from enum import Enum
from typing import Any, Dict, Iterable, List

from pymongo.database import Database

import config

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    NEW_ADMIN_WELCOME = "new-admin-welcome"
    PROFILE_UPDATED = "profile-updated"
    NEW_QUOTE = "new-quote"


@dataclass
class Notification:
    kind: NotificationKind
    recipients: List[str]
    subject: str
    body: str


def send_notification(notification: Notification) -> bool:
    if not notification.recipients:
        logger.warning("No recipients for %s notification, skipping", notification.kind.value)
        return False
    if not config.SMTP_HOST:
        logger.warning("SMTP not configured, %s notification not sent", notification.kind.value)
        return False
    if not config.MAIL_FROM:
        logger.warning("No sender address configured, %s notification not sent", notification.kind.value)
        return False

    msg = EmailMessage()
    msg["Subject"] = notification.subject
    msg["From"] = config.MAIL_FROM
    msg["To"] = ", ".join(notification.recipients)
    msg.set_content(notification.body)

    try:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=10) as server:
            server.starttls()
            if config.SMTP_USER and config.SMTP_PASS:
                server.login(config.SMTP_USER, config.SMTP_PASS)
            server.send_message(msg)
    except Exception:
        logger.exception("Failed to send %s notification to %s", notification.kind.value, msg["To"])
        return False

    logger.info("Sent %s notification to %s", notification.kind.value, msg["To"])
    return True


def new_admin_welcome(name: str, email: str, password: str) -> Notification:
    body = (
        f"Hello {name},\n\n"
        "You have been added as an administrator. Your login credentials:\n\n"
        f"Email: {email}\n"
        f"Password: {password}\n"
        f"Login URL: {config.FRONTEND_URL}/login\n\n"
        "Please change your password after your first login."
    )
    return Notification(NotificationKind.NEW_ADMIN_WELCOME, [email], "Welcome as Admin - Your Account Has Been Created", body)


def profile_updated(name: str, email: str, updated_fields: Dict[str, Any]) -> Notification:
    lines = "\n".join(f"{field.replace('_', ' ').capitalize()}: {value}" for field, value in updated_fields.items())
    body = (
        f"Hello {name},\n\n"
        f"Your profile has been updated. Changes:\n\n{lines}\n\n"
        "If you did not make these changes, contact the system administrator immediately."
    )
    return Notification(NotificationKind.PROFILE_UPDATED, [email], "Your Profile Has Been Updated", body)


def new_quote(enquiry: Dict[str, Any], items: Iterable[Dict[str, Any]], recipients: List[str]) -> Notification:
    lines = []
    total = 0.0
    for item in items:
        product = item.get("product") or {}
        price = product.get("sale_price") or product.get("price") or 0
        quantity = item.get("quantity", 1)
        total += price * quantity
        lines.append(f"- {product.get('name', 'Unknown Product')} (SKU {product.get('sku', 'N/A')}) x {quantity}")
    body = (
        f"Enquiry number: {enquiry['enquiry_number']}\n"
        f"Name: {enquiry['name']}\n"
        f"Email: {enquiry['email']}\n"
        f"Phone: {enquiry.get('phone') or '-'}\n"
        f"Country: {enquiry.get('country') or '-'}\n\n"
        f"Message:\n{enquiry.get('message') or '-'}\n\n"
        "Requested products:\n" + "\n".join(lines) + "\n\n"
        f"Total quote value: {total:,.2f}\n"
        f"Review it at {config.FRONTEND_URL}/adminquotes"
    )
    return Notification(NotificationKind.NEW_QUOTE, recipients, f"New Quote Request Received - {enquiry['enquiry_number']}", body)


def admin_emails(database: Database) -> List[str]:
    return [u["email"] for u in database["user"].find({"role": "Admin", "is_active": True}, {"email": 1})]


def notify_new_quote(database: Database, enquiry: Dict[str, Any], items: List[Dict[str, Any]]) -> bool:
    try:
        recipients = admin_emails(database)
    except Exception:
        logger.exception("Could not load admin emails for enquiry %s", enquiry.get("enquiry_number"))
        return False
    return send_notification(new_quote(enquiry, items, recipients))
