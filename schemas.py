from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional


class ExpenseDocument(BaseModel):
    userId: Optional[str] = None
    amount: Optional[Decimal] = None
    date: Optional[datetime] = None
    category: Optional[str] = None


class ExpenseChangeEvent(BaseModel):
    operationType: Optional[str] = None
    full_document: Optional[ExpenseDocument] = Field(default=None, alias="fullDocument")

    class Config:
        populate_by_name = True


class PushMessage(BaseModel):
    token: str
    title: Optional[str] = None
    body: Optional[str] = None
    data: Dict[str, str] = Field(default_factory=dict)
    channel_id: Optional[str] = None
    sound: str = "default"
    badge: Optional[int] = 1
    data_only: bool = False


class PushResult(BaseModel):
    success: bool
    status_code: int
    message_id: Optional[str] = None


class PeriodResult(BaseModel):
    period: str
    limit: Decimal
    total_spent: Optional[Decimal] = None
    status: str


class BudgetCheckOutcome(BaseModel):
    user_id: Optional[str] = None
    skipped: Optional[str] = None
    periods: List[PeriodResult] = Field(default_factory=list)
    alerts_sent: int = 0
    errors: int = 0


class ExpiryScanSummary(BaseModel):
    users_processed: int = 0
    users_notified: int = 0
    notifications_sent: int = 0
    errors: int = 0


class DeviceRegistration(BaseModel):
    fcm_token: str
    email: Optional[str] = None


class DeviceResponse(BaseModel):
    user_id: str
    email: Optional[str] = None
    fcm_token_updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
