import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from openweb.core import metrics
from openweb.core.config import settings
from openweb.core.errors import ChallengeFailed, InvalidEmail
from openweb.core.rate_limit import SlidingWindowLimiter
from openweb.db.session import get_session
from openweb.schemas.subscription import ChallengeConfigResponse, SubscribeRequest, SubscribeResponse
from openweb.services import captcha as captcha_service
from openweb.services import subscriptions as subscription_service
from openweb.services.pii import client_address

logger = logging.getLogger(__name__)

router = APIRouter(tags=["subscriptions"])

subscribe_rate_limit = SlidingWindowLimiter(
    "subscribe",
    limit_fn=lambda: settings.rate_limit_max,
    window_fn=lambda: settings.rate_limit_window_seconds,
)


def _remote_ip(request: Request) -> str:
    peer = request.client.host if request.client else None
    forwarded = request.headers.get("x-forwarded-for") if settings.trust_forwarded_for else None
    return client_address(forwarded, peer)


def _rate_limit_identifiers(remote_ip: str, email: str) -> list[str]:
    mode = (settings.rate_limit_key or "both").strip().lower()
    identifiers: list[str] = []
    if mode in {"address", "both"}:
        identifiers.append(f"addr:{remote_ip}")
    if mode in {"email", "both"}:
        identifiers.append(f"email:{email.strip().lower()}")
    return identifiers or [f"addr:{remote_ip}"]


@router.post("/subscribe", response_model=SubscribeResponse)
async def subscribe(
    payload: SubscribeRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> SubscribeResponse:
    if settings.captcha_enabled and not (payload.token or "").strip():
        raise ChallengeFailed()
    if not (payload.email or "").strip():
        raise InvalidEmail()

    remote_ip = _remote_ip(request)
    await subscribe_rate_limit.hit(*_rate_limit_identifiers(remote_ip, payload.email or ""))
    # Must complete before any write; the token is burned by this call either way.
    await captcha_service.verify(payload.token, remote_ip=remote_ip)

    email = subscription_service.normalize_email(payload.email)
    outcome = await subscription_service.subscribe(session, email)
    metrics.record_subscription(outcome.value)
    # New, already-active and reactivated all look the same to the caller.
    return SubscribeResponse(ok=True)


@router.get("/challenge/config", response_model=ChallengeConfigResponse)
def challenge_config() -> ChallengeConfigResponse:
    return ChallengeConfigResponse(
        site_key=settings.turnstile_site_key,
        theme=settings.turnstile_theme or "auto",
        enabled=bool(settings.captcha_enabled),
    )
