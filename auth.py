import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from config import Config

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
TRIGGER_TOKEN_EXPIRE_MINUTES = 60

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"

trigger_scheme = HTTPBearer(auto_error=False)


class CredentialError(Exception):
    """Raised when no usable push credential can be produced."""


class StaticTokenCredentials:
    """A pre-generated, long-lived bearer token."""

    def __init__(self, access_token: Optional[str], project_id: Optional[str]):
        self.access_token = access_token
        self.project_id = project_id

    def get_access_token(self) -> str:
        if not self.access_token:
            raise CredentialError("FCM access token not configured")
        return self.access_token


class ServiceAccountCredentials:
    """Service-account OAuth2 credentials scoped to FCM, refreshed on demand."""

    def __init__(
        self,
        client_email: Optional[str],
        private_key: Optional[str],
        project_id: Optional[str],
        token_uri: str = GOOGLE_TOKEN_URI,
        request: Optional[Request] = None,
    ):
        self.client_email = client_email
        # keys pasted into env files usually carry escaped newlines
        self.private_key = private_key.replace("\\n", "\n") if private_key else None
        self.project_id = project_id
        self.token_uri = token_uri
        self.request = request or Request()
        self._credentials = None

    def _service_account(self) -> service_account.Credentials:
        if self._credentials is None:
            if not self.private_key or not self.client_email:
                raise CredentialError("Firebase service account credentials not configured")
            info = {
                "type": "service_account",
                "client_email": self.client_email,
                "private_key": self.private_key,
                "token_uri": self.token_uri,
                "project_id": self.project_id,
            }
            try:
                self._credentials = service_account.Credentials.from_service_account_info(
                    info, scopes=[FCM_SCOPE]
                )
            except ValueError as exc:
                raise CredentialError(f"Invalid service account key: {exc}") from exc
        return self._credentials

    def get_access_token(self) -> str:
        credentials = self._service_account()
        if not credentials.valid:
            try:
                credentials.refresh(self.request)
            except GoogleAuthError as exc:
                raise CredentialError(f"Token exchange failed: {exc}") from exc
            logger.info("Obtained FCM access token for %s", self.client_email)
        return credentials.token


def credentials_from_config():
    if Config.FCM_CREDENTIAL_MODE == "service_account":
        return ServiceAccountCredentials(
            client_email=Config.FIREBASE_CLIENT_EMAIL,
            private_key=Config.FIREBASE_PRIVATE_KEY,
            project_id=Config.FCM_PROJECT_ID,
        )
    if Config.FCM_CREDENTIAL_MODE == "static":
        return StaticTokenCredentials(Config.FCM_ACCESS_TOKEN, Config.FCM_PROJECT_ID)
    raise CredentialError(
        f"Unknown FCM credential mode: {Config.FCM_CREDENTIAL_MODE!r}"
    )


def create_trigger_token(subject: str = "database-trigger", secret: Optional[str] = None):
    expire = datetime.now(timezone.utc) + timedelta(minutes=TRIGGER_TOKEN_EXPIRE_MINUTES)
    return jwt.encode(
        {"sub": subject, "exp": expire},
        secret or Config.TRIGGER_SECRET,
        algorithm=ALGORITHM,
    )


async def verify_trigger_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(trigger_scheme),
):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    if credentials is None:
        raise credentials_exception
    try:
        payload = jwt.decode(
            credentials.credentials, Config.TRIGGER_SECRET, algorithms=[ALGORITHM]
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError:
        raise credentials_exception

    subject = payload.get("sub")
    if subject is None:
        raise credentials_exception
    return subject
