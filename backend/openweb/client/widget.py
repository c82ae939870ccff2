from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Protocol

logger = logging.getLogger(__name__)

TURNSTILE_SCRIPT_URL = "https://challenges.cloudflare.com/turnstile/v0/api.js"


class ScriptHost(Protocol):
    """The page the widget lives on: something that can add and remove script tags."""

    def inject_script(self, src: str, *, async_: bool = True, defer: bool = True) -> Any: ...

    def remove_script(self, handle: Any) -> None: ...


class TurnstileApi(Protocol):
    """Subset of the provider's global ``turnstile`` object the binding relies on."""

    def render(self, container: Any, options: dict[str, Any]) -> str: ...

    def get_response(self, widget_id: str) -> str | None: ...

    def reset(self, widget_id: str) -> None: ...

    def remove(self, widget_id: str) -> None: ...


class ChallengeWidget(Protocol):
    def render(self, container: Any, site_key: str, theme: str = "auto") -> "WidgetHandle": ...

    def get_token(self, handle: "WidgetHandle") -> str | None: ...

    def reset(self, handle: "WidgetHandle") -> None: ...


@dataclass(frozen=True)
class WidgetHandle:
    widget_id: str
    site_key: str
    theme: str


class ScriptRegistry:
    """
    Process-wide record of whether the provider script is on the page.

    The first ``acquire`` injects the script, later ones only bump a reference count;
    ``release`` removes the script once the last user is gone. One registry exists per
    process (see ``script_registry``); tests may build their own.
    """

    def __init__(self, src: str = TURNSTILE_SCRIPT_URL) -> None:
        self.src = src
        self._lock = Lock()
        self._users = 0
        self._handle: Any = None
        self._host: ScriptHost | None = None

    @property
    def loaded(self) -> bool:
        return self._host is not None

    @property
    def users(self) -> int:
        return self._users

    def acquire(self, host: ScriptHost) -> None:
        with self._lock:
            if self._host is None:
                self._handle = host.inject_script(self.src, async_=True, defer=True)
                self._host = host
                logger.debug("challenge_script_injected", extra={"src": self.src})
            self._users += 1

    def release(self) -> None:
        with self._lock:
            if self._users == 0:
                return
            self._users -= 1
            if self._users == 0 and self._host is not None:
                self._host.remove_script(self._handle)
                logger.debug("challenge_script_removed", extra={"src": self.src})
                self._host = None
                self._handle = None


script_registry = ScriptRegistry()


class TurnstileWidgetBinding:
    """
    ``ChallengeWidget`` backed by Cloudflare Turnstile.

    The binding never stores a token. ``get_token`` asks the widget every time, because
    tokens are single use and expire after a few minutes.
    """

    def __init__(self, api: TurnstileApi, host: ScriptHost, registry: ScriptRegistry | None = None) -> None:
        self.api = api
        self.host = host
        self.registry = registry or script_registry
        self._handles: list[WidgetHandle] = []

    def render(self, container: Any, site_key: str, theme: str = "auto") -> WidgetHandle:
        if not site_key:
            raise ValueError("site_key is required to render the challenge widget")
        self.registry.acquire(self.host)
        try:
            widget_id = self.api.render(container, {"sitekey": site_key, "theme": theme})
        except Exception:
            self.registry.release()
            raise
        handle = WidgetHandle(widget_id=widget_id, site_key=site_key, theme=theme)
        self._handles.append(handle)
        return handle

    def get_token(self, handle: WidgetHandle) -> str | None:
        token = self.api.get_response(handle.widget_id)
        return token or None

    def reset(self, handle: WidgetHandle) -> None:
        self.api.reset(handle.widget_id)

    def teardown(self) -> None:
        """Remove every widget this binding rendered and drop its hold on the script."""
        while self._handles:
            handle = self._handles.pop()
            self.api.remove(handle.widget_id)
            self.registry.release()
