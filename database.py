from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    Boolean,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import sessionmaker, declarative_base

from config import Config

DEFAULT_ALERT_THRESHOLD = 80
DEFAULT_REMINDER_DAYS = [30, 7, 1]

connect_args = (
    {"check_same_thread": False} if Config.DATABASE_URL.startswith("sqlite") else {}
)
engine = create_engine(Config.DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String, unique=True, index=True, nullable=False)
    email = Column(String)
    fcm_token = Column(String, nullable=True)
    fcm_token_updated_at = Column(DateTime, nullable=True)


class UserSettings(Base):
    __tablename__ = "user_settings"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String, unique=True, index=True, nullable=False)
    daily_budget = Column(Numeric(12, 2), nullable=True)
    weekly_budget = Column(Numeric(12, 2), nullable=True)
    monthly_budget = Column(Numeric(12, 2), nullable=True)
    alert_threshold = Column(Integer, default=DEFAULT_ALERT_THRESHOLD)
    notifications_enabled = Column(Boolean, default=True)
    warranty_reminders_enabled = Column(Boolean, default=False)
    warranty_reminder_days = Column(JSON, nullable=True)
    timezone = Column(String, nullable=True)


class Expense(Base):
    __tablename__ = "expenses"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    category = Column(String, index=True)
    amount = Column(Numeric(12, 2), nullable=True)
    date = Column(DateTime, index=True, nullable=False)


class BudgetAlert(Base):
    __tablename__ = "budget_alerts"
    __table_args__ = (
        UniqueConstraint("user_id", "budget_key", "amount", name="uq_budget_alert"),
    )
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    budget_key = Column(String, nullable=False)
    period = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    alerted_at = Column(DateTime, nullable=False)


class Document(Base):
    __tablename__ = "documents"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False)
    # ISO date text as synced by the mobile app
    expiry_date = Column(String, nullable=True)
    reminders_sent = Column(JSON, default=list)
    last_reminder_sent_at = Column(DateTime, nullable=True)
    folder_name = Column(String, nullable=True)
    cloud_image_url = Column(String, nullable=True)


def init_db(bind=engine):
    Base.metadata.create_all(bind=bind)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
