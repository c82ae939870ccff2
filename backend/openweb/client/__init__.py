"""Async client-side pieces of the subscribe form: challenge widget, controller, toasts."""

from openweb.client.controller import (
    ChallengeNotCompleted,
    ClientConfig,
    SubmitResult,
    SubscriptionAttempt,
    SubscriptionController,
)
from openweb.client.notifications import Notification, NotificationCenter, NotificationVariant
from openweb.client.widget import (
    ChallengeWidget,
    ScriptHost,
    ScriptRegistry,
    TurnstileApi,
    TurnstileWidgetBinding,
    WidgetHandle,
    script_registry,
)

__all__ = [
    "ChallengeNotCompleted",
    "ChallengeWidget",
    "ClientConfig",
    "Notification",
    "NotificationCenter",
    "NotificationVariant",
    "ScriptHost",
    "ScriptRegistry",
    "SubmitResult",
    "SubscriptionAttempt",
    "SubscriptionController",
    "TurnstileApi",
    "TurnstileWidgetBinding",
    "WidgetHandle",
    "script_registry",
]
