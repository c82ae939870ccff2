from openweb.db.base import Base  # noqa: F401
from openweb.models.subscriber import Subscriber, SubscriberStatus  # noqa: F401

__all__ = [
    "Base",
    "Subscriber",
    "SubscriberStatus",
]
