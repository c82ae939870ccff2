from __future__ import annotations

import enum
import logging
import uuid
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from openweb.core.errors import InternalError, InvalidEmail
from openweb.models.subscriber import Subscriber, SubscriberStatus
from openweb.services.pii import mask_email

logger = logging.getLogger(__name__)

EMAIL_MAX_LENGTH = 255

_subscribers = Subscriber.__table__


class SubscribeOutcome(str, enum.Enum):
    created = "created"
    already_active = "already_active"
    reactivated = "reactivated"


def normalize_email(raw: str | None) -> str:
    """Trim and lowercase, then apply a permissive syntax check (no DNS lookups)."""
    candidate = (raw or "").strip().lower()
    if not candidate or len(candidate) > EMAIL_MAX_LENGTH:
        raise InvalidEmail()
    try:
        # Syntax only: dotless hosts and ``.test`` names pass. Names IANA reserves as
        # never mail-routable (.invalid, .local, localhost, .onion, .arpa) still fail.
        validate_email(
            candidate,
            check_deliverability=False,
            globally_deliverable=False,
            test_environment=True,
        )
    except EmailNotValidError:
        raise InvalidEmail()
    return candidate


async def _insert_if_absent(session: AsyncSession, email: str, now: datetime) -> bool:
    values = {
        "id": uuid.uuid4(),
        "email": email,
        "status": SubscriberStatus.active,
        "subscribed_at": now,
        "unsubscribed_at": None,
        "created_at": now,
        "updated_at": now,
    }
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(_subscribers).values(**values).on_conflict_do_nothing(index_elements=["email"])
    elif dialect == "sqlite":
        stmt = sqlite_insert(_subscribers).values(**values).on_conflict_do_nothing(index_elements=["email"])
    else:
        try:
            async with session.begin_nested():
                await session.execute(_subscribers.insert().values(**values))
        except IntegrityError:
            return False
        return True
    result = await session.execute(stmt)
    return bool(result.rowcount)


async def _reactivate_if_unsubscribed(session: AsyncSession, email: str, now: datetime) -> bool:
    result = await session.execute(
        update(_subscribers)
        .where(_subscribers.c.email == email)
        .where(_subscribers.c.status == SubscriberStatus.unsubscribed)
        .values(status=SubscriberStatus.active, subscribed_at=now, unsubscribed_at=None, updated_at=now)
    )
    return bool(result.rowcount)


async def subscribe(session: AsyncSession, email: str, *, now: datetime | None = None) -> SubscribeOutcome:
    """
    Record an active subscription for an already-normalized email.

    The unique index on ``email`` is what keeps one row per address: the insert is a
    single ``ON CONFLICT DO NOTHING`` statement, so two racing requests can both run it
    and exactly one row results. Nothing is visible to other sessions until commit.
    """
    now = now or datetime.now(timezone.utc)
    try:
        if await _insert_if_absent(session, email, now):
            outcome = SubscribeOutcome.created
        elif await _reactivate_if_unsubscribed(session, email, now):
            outcome = SubscribeOutcome.reactivated
        else:
            outcome = SubscribeOutcome.already_active
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("subscriber_write_failed", extra={"email": mask_email(email)})
        raise InternalError()
    logger.info("subscriber_recorded", extra={"email": mask_email(email), "outcome": outcome.value})
    return outcome


async def unsubscribe(session: AsyncSession, email: str, *, now: datetime | None = None) -> bool:
    """Flip an active subscriber to unsubscribed. Returns False when there was nothing to change."""
    normalized = normalize_email(email)
    now = now or datetime.now(timezone.utc)
    try:
        result = await session.execute(
            update(_subscribers)
            .where(_subscribers.c.email == normalized)
            .where(_subscribers.c.status == SubscriberStatus.active)
            .values(status=SubscriberStatus.unsubscribed, unsubscribed_at=now, updated_at=now)
        )
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("subscriber_write_failed", extra={"email": mask_email(normalized)})
        raise InternalError()
    return bool(result.rowcount)
