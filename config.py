import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./pocket_organizer.db")
    TRIGGER_SECRET = os.getenv("TRIGGER_SECRET", "change-me")

    FCM_PROJECT_ID = os.getenv("FCM_PROJECT_ID")
    # "static" uses FCM_ACCESS_TOKEN as is, "service_account" exchanges a signed JWT
    FCM_CREDENTIAL_MODE = os.getenv("FCM_CREDENTIAL_MODE", "static")
    FCM_ACCESS_TOKEN = os.getenv("FCM_ACCESS_TOKEN")
    FIREBASE_CLIENT_EMAIL = os.getenv("FIREBASE_CLIENT_EMAIL")
    FIREBASE_PRIVATE_KEY = os.getenv("FIREBASE_PRIVATE_KEY")
    PUSH_TIMEOUT_SECONDS = float(os.getenv("PUSH_TIMEOUT_SECONDS", "10"))

    REFERENCE_TIMEZONE = os.getenv("REFERENCE_TIMEZONE", "UTC")
    EXPIRY_SCAN_HOUR = int(os.getenv("EXPIRY_SCAN_HOUR", "9"))
    EXPIRY_SCAN_MINUTE = int(os.getenv("EXPIRY_SCAN_MINUTE", "0"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
