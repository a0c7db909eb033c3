from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth import verify_trigger_token
from budget_alerts import handle_expense_change
from database import get_db, User
from expiry_reminders import scan_expiring_documents
from notifications import FcmDispatcher
from schemas import (
    BudgetCheckOutcome,
    DeviceRegistration,
    DeviceResponse,
    ExpenseChangeEvent,
    ExpiryScanSummary,
)

router = APIRouter(dependencies=[Depends(verify_trigger_token)])


def get_dispatcher():
    return FcmDispatcher()


@router.post("/triggers/expense-change", response_model=BudgetCheckOutcome)
def expense_change(
    event: ExpenseChangeEvent,
    db: Session = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
):
    return handle_expense_change(event, db, dispatcher)


@router.post("/triggers/expiry-scan", response_model=ExpiryScanSummary)
def expiry_scan(
    db: Session = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
):
    return scan_expiring_documents(db, dispatcher)


@router.put("/devices/{user_id}", response_model=DeviceResponse)
def register_device(
    user_id: str,
    registration: DeviceRegistration,
    db: Session = Depends(get_db),
):
    # one row per user id; re-registering replaces the token
    user = db.query(User).filter(User.user_id == user_id).first()
    if user is None:
        user = User(user_id=user_id)
        db.add(user)

    user.fcm_token = registration.fcm_token
    if registration.email is not None:
        user.email = registration.email
    user.fcm_token_updated_at = datetime.now(timezone.utc).replace(tzinfo=None)

    db.commit()
    db.refresh(user)
    return user
