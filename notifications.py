"""Push delivery through the FCM HTTP V1 API.

Callers depend only on ``send(message) -> PushResult``; the credential
strategy is injected so a static token and a service-account exchange
share one code path.
"""

import logging
from typing import Any, Dict, Optional

import requests

from auth import CredentialError, credentials_from_config
from config import Config
from schemas import PushMessage, PushResult

logger = logging.getLogger(__name__)

FCM_ENDPOINT = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"


class PushDeliveryError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def mask_token(token: Optional[str]) -> str:
    if not token:
        return "<none>"
    return f"{token[:20]}..."


def stringify_data(data: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """FCM data payloads only accept string values."""
    result: Dict[str, str] = {}
    for key, value in (data or {}).items():
        if value is None:
            continue
        result[str(key)] = value if isinstance(value, str) else str(value)
    return result


def build_envelope(message: PushMessage) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "token": message.token,
        "data": stringify_data(message.data),
    }

    if message.data_only:
        body["android"] = {"priority": "high"}
        body["apns"] = {
            "headers": {"apns-priority": "10"},
            "payload": {"aps": {"content-available": 1}},
        }
        return {"message": body}

    body["notification"] = {"title": message.title, "body": message.body}

    android_notification: Dict[str, Any] = {"sound": message.sound}
    if message.channel_id:
        android_notification["channel_id"] = message.channel_id
    body["android"] = {"priority": "high", "notification": android_notification}

    aps: Dict[str, Any] = {"sound": message.sound}
    if message.badge is not None:
        aps["badge"] = message.badge
    body["apns"] = {"payload": {"aps": aps}}

    return {"message": body}


class FcmDispatcher:
    def __init__(self, credentials=None, session: Optional[requests.Session] = None,
                 timeout: float = Config.PUSH_TIMEOUT_SECONDS):
        self._credentials = credentials
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def credentials(self):
        # resolved on first send so a bad setup fails per message
        if self._credentials is None:
            self._credentials = credentials_from_config()
        return self._credentials

    @property
    def endpoint(self) -> str:
        return FCM_ENDPOINT.format(project_id=self.credentials.project_id)

    def send(self, message: PushMessage) -> PushResult:
        try:
            credentials = self.credentials
            if not credentials.project_id:
                raise PushDeliveryError("Firebase project ID not configured")
            access_token = credentials.get_access_token()
        except CredentialError as exc:
            raise PushDeliveryError(f"FCM credentials unavailable: {exc}") from exc

        logger.info("Sending push to %s", mask_token(message.token))

        try:
            response = self.session.post(
                self.endpoint,
                json=build_envelope(message),
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise PushDeliveryError(f"FCM request failed: {exc}") from exc

        if response.status_code != 200:
            logger.error("FCM error %s: %s", response.status_code, response.text)
            raise PushDeliveryError(
                f"FCM failed: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError:
            payload = None  # plain-text success body
        message_id = payload.get("name") if isinstance(payload, dict) else None
        return PushResult(success=True, status_code=response.status_code, message_id=message_id)
