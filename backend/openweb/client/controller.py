from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx

from openweb.client.notifications import NotificationCenter, NotificationVariant
from openweb.client.widget import ChallengeWidget, WidgetHandle

logger = logging.getLogger(__name__)

SUBSCRIBE_PATH = "/api/subscribe"
CONFIG_PATH = "/api/challenge/config"

CHALLENGE_NOT_COMPLETED_MESSAGE = "Please complete the challenge"
FAILURE_MESSAGE = "Failed to subscribe"
RETRY_MESSAGE = "Failed to subscribe. Please try again."
SUCCESS_TITLE = "Success!"
SUCCESS_DESCRIPTION = "You've been subscribed to our newsletter."
ERROR_TITLE = "Error"


class ChallengeNotCompleted(Exception):
    """The widget has no solved token; nothing is sent to the server."""

    code = "ChallengeNotCompleted"

    def __init__(self, message: str = CHALLENGE_NOT_COMPLETED_MESSAGE) -> None:
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class SubscriptionAttempt:
    email: str
    challenge_token: str
    submitted_at: datetime


@dataclass(frozen=True)
class SubmitResult:
    ok: bool
    message: str
    error: str | None = None
    status_code: int | None = None


@dataclass(frozen=True)
class ClientConfig:
    site_key: str
    theme: str = "auto"
    enabled: bool = True

    @classmethod
    async def fetch(cls, http: httpx.AsyncClient, path: str = CONFIG_PATH) -> "ClientConfig":
        resp = await http.get(path)
        resp.raise_for_status()
        data = resp.json()
        return cls(
            site_key=str(data.get("siteKey") or ""),
            theme=str(data.get("theme") or "auto"),
            enabled=bool(data.get("enabled", True)),
        )


def _json_body(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class SubscriptionController:
    """
    Owns the subscribe form: the email text, the in-flight flag and the request lifecycle.

    State goes Idle -> Submitting -> Idle. While submitting, further ``submit`` calls are
    ignored, which is what a disabled submit button gives a browser user. Every attempt
    ends with exactly one notification and a widget reset; nothing is retried.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        widget: ChallengeWidget,
        handle: WidgetHandle,
        notifications: NotificationCenter,
        *,
        path: str = SUBSCRIBE_PATH,
    ) -> None:
        self.http = http
        self.widget = widget
        self.handle = handle
        self.notifications = notifications
        self.path = path
        self.email = ""
        self.is_submitting = False

    @property
    def submit_disabled(self) -> bool:
        return self.is_submitting

    @property
    def submit_label(self) -> str:
        return "Subscribing..." if self.is_submitting else "Subscribe"

    def _begin_attempt(self) -> SubscriptionAttempt:
        token = self.widget.get_token(self.handle)
        if not token:
            raise ChallengeNotCompleted()
        return SubscriptionAttempt(email=self.email, challenge_token=token, submitted_at=datetime.now(timezone.utc))

    async def _send(self, attempt: SubscriptionAttempt) -> SubmitResult:
        try:
            resp = await self.http.post(self.path, json={"email": attempt.email, "token": attempt.challenge_token})
        except httpx.HTTPError as exc:
            logger.warning("subscribe_request_failed", extra={"error": type(exc).__name__})
            return SubmitResult(ok=False, message=RETRY_MESSAGE, error="NetworkError")
        data = _json_body(resp)
        if resp.is_success and data.get("ok", True) is not False:
            return SubmitResult(ok=True, message=SUCCESS_DESCRIPTION, status_code=resp.status_code)
        error = data.get("error") if isinstance(data.get("error"), str) else None
        message = data.get("message") if isinstance(data.get("message"), str) else None
        return SubmitResult(
            ok=False,
            message=message or error or FAILURE_MESSAGE,
            error=error,
            status_code=resp.status_code,
        )

    async def submit(self) -> SubmitResult | None:
        """Run one attempt. Returns None when an attempt is already in flight."""
        if self.is_submitting:
            return None
        self.is_submitting = True
        try:
            attempt = self._begin_attempt()
            result = await self._send(attempt)
        except ChallengeNotCompleted as exc:
            result = SubmitResult(ok=False, message=exc.message, error=exc.code)
        finally:
            self.is_submitting = False
            # Solved tokens are single use; the user has to solve a fresh challenge.
            self.widget.reset(self.handle)

        if result.ok:
            self.email = ""
            self.notifications.push(SUCCESS_TITLE, SUCCESS_DESCRIPTION, variant=NotificationVariant.success)
        else:
            self.notifications.push(ERROR_TITLE, result.message, variant=NotificationVariant.error)
        return result
