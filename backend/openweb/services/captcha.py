from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from openweb.core.config import settings
from openweb.core.errors import ChallengeFailed, InternalError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChallengeVerificationResult:
    success: bool
    error_codes: frozenset[str] = field(default_factory=frozenset)
    challenge_ts: datetime | None = None
    hostname: str | None = None


def _require_turnstile_secret() -> str:
    secret = (settings.turnstile_secret_key or "").strip()
    if secret:
        return secret
    logger.error("turnstile_secret_missing")
    raise InternalError()


def _require_captcha_token(token: str | None) -> str:
    normalized = (token or "").strip()
    if normalized:
        return normalized
    raise ChallengeFailed()


def _turnstile_payload(secret: str, token: str, remote_ip: str | None) -> dict[str, Any]:
    payload: dict[str, Any] = {"secret": secret, "response": token}
    if remote_ip:
        payload["remoteip"] = remote_ip
    return payload


def _parse_timestamp(raw: Any) -> datetime | None:
    if not isinstance(raw, str) or not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_verification(data: dict[str, Any]) -> ChallengeVerificationResult:
    codes = data.get("error-codes") or []
    if not isinstance(codes, list):
        codes = [codes]
    hostname = data.get("hostname")
    return ChallengeVerificationResult(
        success=data.get("success") is True,
        error_codes=frozenset(str(code) for code in codes),
        challenge_ts=_parse_timestamp(data.get("challenge_ts")),
        hostname=hostname if isinstance(hostname, str) else None,
    )


async def _turnstile_verify(payload: dict[str, Any]) -> dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=settings.turnstile_timeout_seconds) as client:
            resp = await client.post(settings.turnstile_verify_url, data=payload)
    except httpx.TimeoutException:
        logger.warning("turnstile_verify_timeout")
        raise ChallengeFailed()
    except httpx.HTTPError as exc:
        logger.error("turnstile_verify_unreachable", extra={"error": type(exc).__name__})
        raise InternalError()
    if resp.status_code != 200:
        logger.error("turnstile_verify_bad_status", extra={"upstream_status": resp.status_code})
        raise InternalError()
    try:
        parsed = resp.json()
    except ValueError:
        logger.error("turnstile_verify_bad_body")
        raise InternalError()
    if not isinstance(parsed, dict):
        raise InternalError()
    return parsed


def _hostname_matches(result: ChallengeVerificationResult) -> bool:
    expected = (settings.turnstile_expected_hostname or "").strip().lower()
    if not expected:
        return True
    return (result.hostname or "").strip().lower() == expected


async def verify(token: str | None, *, remote_ip: str | None = None) -> ChallengeVerificationResult:
    """
    Confirm a Turnstile token with the siteverify endpoint.

    Tokens are single use; every call goes to the provider and nothing is cached. Any
    outcome other than a successful, hostname-matching result raises ChallengeFailed
    (or InternalError when the provider itself is broken).
    """
    if not settings.captcha_enabled:
        return ChallengeVerificationResult(success=True)
    normalized_token = _require_captcha_token(token)
    secret = _require_turnstile_secret()
    payload = _turnstile_payload(secret, normalized_token, remote_ip)
    result = parse_verification(await _turnstile_verify(payload))
    if not result.success:
        logger.info("turnstile_rejected", extra={"error_codes": sorted(result.error_codes)})
        raise ChallengeFailed()
    if not _hostname_matches(result):
        logger.warning("turnstile_hostname_mismatch", extra={"hostname": result.hostname})
        raise ChallengeFailed()
    return result
