"""Budget threshold alerts, run once per expense change event.

For each budget period with a positive limit the period's spend is summed,
compared against ``alert_threshold`` percent of the limit, and a push is
sent at most once per exact total. Spend at or above the limit is a
separate state and never alerts.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import (
    BudgetAlert,
    Expense,
    User,
    UserSettings,
    DEFAULT_ALERT_THRESHOLD,
)
from notifications import mask_token
from periods import PERIODS, owner_window
from schemas import (
    BudgetCheckOutcome,
    ExpenseChangeEvent,
    PeriodResult,
    PushMessage,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
BUDGET_ALERT_CHANNEL = "budget_alerts"


def _to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def budget_key(period: str) -> str:
    return f"{period}_budget"


def spent_in_window(db: Session, user_id: str, start: datetime, end: datetime) -> Decimal:
    # SUM skips NULL amounts, COALESCE covers the no-rows case
    total = (
        db.query(func.coalesce(func.sum(Expense.amount), 0))
        .filter(
            Expense.user_id == user_id,
            Expense.date >= start,
            Expense.date < end,
        )
        .scalar()
    )
    return _to_decimal(total).quantize(CENTS)


def threshold_amount(budget_limit, alert_threshold=None) -> Decimal:
    percent = alert_threshold or DEFAULT_ALERT_THRESHOLD
    return _to_decimal(budget_limit) * _to_decimal(percent) / 100


def should_alert(total_spent, budget_limit, alert_threshold=None) -> bool:
    if budget_limit is None or _to_decimal(budget_limit) <= 0:
        return False
    total = _to_decimal(total_spent)
    return threshold_amount(budget_limit, alert_threshold) <= total < _to_decimal(budget_limit)


def already_alerted(db: Session, user_id: str, key: str, amount) -> bool:
    existing = (
        db.query(BudgetAlert)
        .filter(
            BudgetAlert.user_id == user_id,
            BudgetAlert.budget_key == key,
            BudgetAlert.amount == _to_decimal(amount),
        )
        .first()
    )
    return existing is not None


def record_alert(
    db: Session, user_id: str, key: str, period: str, amount, alerted_at: Optional[datetime] = None
) -> bool:
    """Insert the alert marker. Returns False if a concurrent trigger won the race."""
    db.add(
        BudgetAlert(
            user_id=user_id,
            budget_key=key,
            period=period,
            amount=_to_decimal(amount),
            alerted_at=alerted_at or datetime.now(timezone.utc).replace(tzinfo=None),
        )
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Alert for %s %s at %s was already recorded", user_id, key, amount)
        return False
    return True


def budget_alert_message(token: str, period: str, total_spent, budget_limit, alert_threshold) -> PushMessage:
    spent = _to_decimal(total_spent).quantize(CENTS)
    limit = _to_decimal(budget_limit).quantize(CENTS)
    return PushMessage(
        token=token,
        title=f"{period.capitalize()} Budget Alert",
        body=f"You've spent ${spent} of ${limit} ({alert_threshold}% threshold reached)",
        data={
            "type": "budget_alert",
            "period": period,
            "spent": str(spent),
            "budget": str(limit),
        },
        channel_id=BUDGET_ALERT_CHANNEL,
    )


def check_period(
    db: Session,
    dispatcher,
    settings: UserSettings,
    token: str,
    period: str,
    budget_limit,
    now: datetime,
) -> PeriodResult:
    user_id = settings.user_id
    alert_threshold = settings.alert_threshold or DEFAULT_ALERT_THRESHOLD
    limit = _to_decimal(budget_limit)

    start, end = owner_window(now, period, settings.timezone)
    total = spent_in_window(db, user_id, start, end)
    logger.info(
        "%s budget for %s: limit=%s spent=%s threshold=%s",
        period, user_id, limit, total, threshold_amount(limit, alert_threshold),
    )

    if not should_alert(total, limit, alert_threshold):
        status = "over_budget" if total >= limit else "below_threshold"
        return PeriodResult(period=period, limit=limit, total_spent=total, status=status)

    key = budget_key(period)
    if already_alerted(db, user_id, key, total):
        logger.info("Already alerted %s for %s at %s", user_id, key, total)
        return PeriodResult(period=period, limit=limit, total_spent=total, status="already_alerted")

    # the marker is recorded only once the send returned without raising
    dispatcher.send(budget_alert_message(token, period, total, limit, alert_threshold))
    record_alert(db, user_id, key, period, total)
    logger.info("Sent %s budget alert to %s", period, user_id)
    return PeriodResult(period=period, limit=limit, total_spent=total, status="alerted")


def handle_expense_change(
    event: ExpenseChangeEvent, db: Session, dispatcher, now: Optional[datetime] = None
) -> BudgetCheckOutcome:
    outcome = BudgetCheckOutcome()

    document = event.full_document
    if document is None or not document.userId:
        logger.info("No userId in expense, skipping")
        outcome.skipped = "missing_user"
        return outcome

    user_id = document.userId
    outcome.user_id = user_id

    try:
        settings = db.query(UserSettings).filter(UserSettings.user_id == user_id).first()
        user = db.query(User).filter(User.user_id == user_id).first()
    except Exception:
        logger.exception("Failed to load settings for %s", user_id)
        outcome.errors += 1
        return outcome

    if settings is None:
        logger.info("No settings found for %s", user_id)
        outcome.skipped = "no_settings"
        return outcome
    if settings.notifications_enabled is False:
        logger.info("Notifications disabled for %s, skipping", user_id)
        outcome.skipped = "notifications_disabled"
        return outcome
    if user is None or not user.fcm_token:
        logger.info("No FCM token found for %s", user_id)
        outcome.skipped = "no_token"
        return outcome

    logger.info("Checking budgets for %s (token %s)", user_id, mask_token(user.fcm_token))
    now = now or datetime.now(timezone.utc)

    for period in PERIODS:
        limit = getattr(settings, budget_key(period))
        if limit is None or limit <= 0:
            continue
        try:
            result = check_period(db, dispatcher, settings, user.fcm_token, period, limit, now)
        except Exception:
            logger.exception("Error in %s budget check for %s", period, user_id)
            db.rollback()
            result = PeriodResult(period=period, limit=_to_decimal(limit), status="error")
            outcome.errors += 1
        outcome.periods.append(result)
        if result.status == "alerted":
            outcome.alerts_sent += 1

    return outcome
