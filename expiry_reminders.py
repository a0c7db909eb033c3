"""Daily warranty/expiry reminders.

A reminder key is recorded on the document before the push goes out, so a
failed send is never retried but a reminder is never sent twice.
"""

import json
import logging
from datetime import date, datetime, timezone
from typing import List, NamedTuple, Optional, Tuple

from dateutil.parser import isoparse
from sqlalchemy.orm import Session

from database import Document, User, UserSettings, DEFAULT_REMINDER_DAYS
from notifications import mask_token
from periods import owner_today, owner_zone
from schemas import ExpiryScanSummary, PushMessage

logger = logging.getLogger(__name__)

WARRANTY_CHANNEL = "warranty_reminders"

# (max days until expiry, marker, level)
URGENCY_LEVELS = (
    (1, "🔴", "critical"),
    (7, "🟠", "high"),
    (14, "🟡", "medium"),
)
LOW_URGENCY = ("🟢", "low")


class DueReminder(NamedTuple):
    document_id: int
    document_name: str
    days_until_expiry: int
    expiry_date: str
    folder_name: Optional[str]
    reminder_key: str


def urgency(days: int) -> Tuple[str, str]:
    for max_days, marker, level in URGENCY_LEVELS:
        if days <= max_days:
            return marker, level
    return LOW_URGENCY


def parse_expiry(value, tz_name: Optional[str] = None) -> date:
    """Calendar date of an expiry value in the owner's zone.

    Timestamps with an offset are moved into the owner's zone first; plain
    dates and naive timestamps are taken as already local.
    """
    if not isinstance(value, date):
        value = isoparse(str(value))
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(owner_zone(tz_name))
        return value.date()
    return value


def days_until_expiry(expiry: date, today: date) -> int:
    return (expiry - today).days


def reminder_key(offset: int, expiry: date) -> str:
    return f"{offset}d_{expiry.isoformat()}"


def collect_due_reminders(
    db: Session, document: Document, offsets, today: date, tz_name: Optional[str] = None
) -> List[DueReminder]:
    expiry = parse_expiry(document.expiry_date, tz_name)
    days = days_until_expiry(expiry, today)
    logger.info("%s: %s days until expiry", document.title, days)

    if days < 0:
        return []

    due = []
    for offset in offsets:
        if days != offset:
            continue
        key = reminder_key(offset, expiry)
        sent = list(document.reminders_sent or [])
        if key in sent:
            logger.info("Already sent %s-day reminder for %s", offset, document.title)
            continue

        document.reminders_sent = sent + [key]
        document.last_reminder_sent_at = datetime.now(timezone.utc).replace(tzinfo=None)
        db.commit()

        due.append(
            DueReminder(
                document_id=document.id,
                document_name=document.title,
                days_until_expiry=days,
                expiry_date=str(document.expiry_date),
                folder_name=document.folder_name,
                reminder_key=key,
            )
        )
    return due


def expiry_message(token: str, reminder: DueReminder) -> PushMessage:
    marker, _ = urgency(reminder.days_until_expiry)
    days = reminder.days_until_expiry
    return PushMessage(
        token=token,
        title=f"{marker} {reminder.document_name} Expiring Soon",
        body=f"This document expires in {days} day{'' if days == 1 else 's'}",
        data={
            "type": "warranty_expiry",
            "documentId": str(reminder.document_id),
            "documentName": reminder.document_name,
            "daysUntilExpiry": str(days),
            "expiryDate": reminder.expiry_date,
            "urgency": marker,
        },
        channel_id=WARRANTY_CHANNEL,
    )


def email_trigger_message(
    token: str, email: Optional[str], reminders: List[DueReminder], now: datetime
) -> PushMessage:
    """Silent data push asking the app to send the reminder email itself."""
    documents = [
        {
            "documentName": r.document_name,
            "daysUntilExpiry": r.days_until_expiry,
            "expiryDate": r.expiry_date,
            "folderName": r.folder_name or "",
            "urgency": urgency(r.days_until_expiry)[1],
        }
        for r in reminders
    ]
    return PushMessage(
        token=token,
        data={
            "type": "warranty_email_trigger",
            "recipient_email": email or "",
            "document_count": str(len(reminders)),
            "notifications_json": json.dumps(documents),
            "timestamp": now.isoformat(),
        },
        data_only=True,
    )


def _reminders_for_user(
    db: Session, user: User, settings: UserSettings, today: date, summary: ExpiryScanSummary
) -> List[DueReminder]:
    offsets = settings.warranty_reminder_days
    if offsets is None:
        offsets = DEFAULT_REMINDER_DAYS
    documents = (
        db.query(Document)
        .filter(
            Document.user_id == user.user_id,
            Document.expiry_date.isnot(None),
            Document.expiry_date != "",
        )
        .all()
    )
    logger.info("Found %d documents with expiry dates for %s", len(documents), user.user_id)

    due = []
    for document in documents:
        try:
            due.extend(
                collect_due_reminders(db, document, offsets, today, settings.timezone)
            )
        except Exception:
            logger.exception("Error processing document %s", document.id)
            db.rollback()
            summary.errors += 1
    return due


def _notify_user(dispatcher, user: User, due: List[DueReminder], now: datetime,
                 summary: ExpiryScanSummary):
    logger.info("Sending %d reminders to %s", len(due), mask_token(user.fcm_token))
    sent = 0
    for reminder in due:
        try:
            dispatcher.send(expiry_message(user.fcm_token, reminder))
            sent += 1
        except Exception:
            logger.exception("Push failed for %s", reminder.document_name)
            summary.errors += 1

    try:
        dispatcher.send(email_trigger_message(user.fcm_token, user.email, due, now))
    except Exception:
        logger.exception("Email trigger failed for %s", user.user_id)
        summary.errors += 1

    summary.notifications_sent += sent
    if sent:
        summary.users_notified += 1


def scan_expiring_documents(
    db: Session, dispatcher, today: Optional[date] = None, now: Optional[datetime] = None
) -> ExpiryScanSummary:
    summary = ExpiryScanSummary()
    now = now or datetime.now(timezone.utc)

    try:
        users = (
            db.query(User)
            .filter(User.fcm_token.isnot(None), User.fcm_token != "")
            .all()
        )
    except Exception:
        logger.exception("Failed to load users for expiry scan")
        summary.errors += 1
        return summary

    logger.info("Found %d users with FCM tokens", len(users))

    for user in users:
        summary.users_processed += 1
        try:
            settings = (
                db.query(UserSettings).filter(UserSettings.user_id == user.user_id).first()
            )
            if settings is None or not settings.warranty_reminders_enabled:
                logger.info("Warranty reminders disabled for %s, skipping", user.user_id)
                continue

            user_today = today or owner_today(now, settings.timezone)
            due = _reminders_for_user(db, user, settings, user_today, summary)
            if due:
                _notify_user(dispatcher, user, due, now, summary)
        except Exception:
            logger.exception("Error processing user %s", user.user_id)
            db.rollback()
            summary.errors += 1

    logger.info(
        "Expiry scan done: %d users notified, %d notifications sent",
        summary.users_notified, summary.notifications_sent,
    )
    return summary
