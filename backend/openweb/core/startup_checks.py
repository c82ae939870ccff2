from __future__ import annotations

import logging

from openweb.core.config import settings

logger = logging.getLogger(__name__)


def _is_production() -> bool:
    env = (settings.environment or "").strip().lower()
    return env in {"prod", "production"}


def _looks_like_localhost(url: str | None) -> bool:
    value = (url or "").strip().lower()
    if not value:
        return False
    return "localhost" in value or "127.0.0.1" in value


def _append_if(problems: list[str], *, condition: bool, message: str) -> None:
    if condition:
        problems.append(message)


def _validate_turnstile_settings(problems: list[str]) -> None:
    enabled = bool(settings.captcha_enabled)
    _append_if(
        problems,
        condition=not enabled,
        message="CAPTCHA_ENABLED must be on in production.",
    )
    _append_if(
        problems,
        condition=enabled and not (settings.turnstile_secret_key or "").strip(),
        message="TURNSTILE_SECRET_KEY must be set when CAPTCHA_ENABLED=1.",
    )
    _append_if(
        problems,
        condition=enabled and not (settings.turnstile_site_key or "").strip(),
        message="TURNSTILE_SITE_KEY must be set when CAPTCHA_ENABLED=1.",
    )


def _validate_rate_limit_settings(problems: list[str]) -> None:
    _append_if(
        problems,
        condition=int(settings.rate_limit_max) <= 0 or int(settings.rate_limit_window_seconds) <= 0,
        message="RATE_LIMIT_MAX and RATE_LIMIT_WINDOW_SECONDS must be positive.",
    )
    _append_if(
        problems,
        condition=(settings.rate_limit_key or "").strip().lower() not in {"address", "email", "both"},
        message="RATE_LIMIT_KEY must be one of: address | email | both.",
    )


def _validate_deployment_settings(problems: list[str]) -> None:
    _append_if(
        problems,
        condition=_looks_like_localhost(settings.frontend_origin),
        message="FRONTEND_ORIGIN must be set to the public site origin (not localhost) in production.",
    )
    _append_if(
        problems,
        condition=not (settings.sentry_dsn or "").strip(),
        message="SENTRY_DSN must be configured in production.",
    )
    _append_if(
        problems,
        condition=settings.database_url.startswith("sqlite"),
        message="DATABASE_URL must point at a server database (not SQLite) in production.",
    )


def validate_production_settings() -> None:
    """
    Fail fast on insecure defaults when running in production.

    An unprotected subscribe endpoint is an open relay for list-bombing, so a missing
    Turnstile secret is treated the same as a missing database.
    """
    if not _is_production():
        return

    problems: list[str] = []
    _validate_turnstile_settings(problems)
    _validate_rate_limit_settings(problems)
    _validate_deployment_settings(problems)

    if problems:
        raise RuntimeError("Production configuration checks failed:\n- " + "\n- ".join(problems))
    logger.info("production_settings_validated")
