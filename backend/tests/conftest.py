import asyncio
import os
from collections.abc import Generator
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

# Keep tests offline: no Sentry, no shared Redis counters, no stray SQLite file.
os.environ["SENTRY_DSN"] = ""
os.environ["REDIS_URL"] = ""
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from openweb.api import subscribe as subscribe_api  # noqa: E402
from openweb.client.widget import ScriptRegistry, TurnstileWidgetBinding  # noqa: E402
from openweb.core import metrics  # noqa: E402
from openweb.core.config import settings  # noqa: E402
from openweb.db.base import Base  # noqa: E402
from openweb.db.session import get_session  # noqa: E402
from openweb.main import app  # noqa: E402
from openweb.services import captcha as captcha_service  # noqa: E402

TEST_HOSTNAME = "openwebconference.com"


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "captcha_enabled", True)
    monkeypatch.setattr(settings, "turnstile_site_key", "0x4AAAAAAA-site-key")
    monkeypatch.setattr(settings, "turnstile_secret_key", "0x4AAAAAAA-secret")
    monkeypatch.setattr(settings, "turnstile_expected_hostname", None)
    monkeypatch.setattr(settings, "rate_limit_max", 100)
    monkeypatch.setattr(settings, "rate_limit_window_seconds", 600)
    monkeypatch.setattr(settings, "rate_limit_key", "both")
    monkeypatch.setattr(settings, "trust_forwarded_for", False)


@pytest.fixture(autouse=True)
def _clear_rate_limits_and_metrics() -> Generator[None, None, None]:
    # The in-memory rate-limit buckets are process-global and can leak across tests.
    subscribe_api.subscribe_rate_limit.buckets.clear()
    metrics.reset()
    yield
    subscribe_api.subscribe_rate_limit.buckets.clear()
    metrics.reset()


class FakeTurnstile:
    """Stands in for siteverify: issued tokens pass once, anything else is rejected."""

    def __init__(self) -> None:
        self.valid: set[str] = set()
        self.used: set[str] = set()
        self.calls: list[dict[str, Any]] = []

    def issue(self, token: str | None = None) -> str:
        token = token or f"tok-{len(self.valid) + 1}"
        self.valid.add(token)
        return token

    async def __call__(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(dict(payload))
        token = payload["response"]
        if token in self.used:
            return {"success": False, "error-codes": ["timeout-or-duplicate"]}
        if token not in self.valid:
            return {"success": False, "error-codes": ["invalid-input-response"]}
        self.used.add(token)
        return {
            "success": True,
            "error-codes": [],
            "challenge_ts": "2026-10-19T10:00:00.000Z",
            "hostname": TEST_HOSTNAME,
        }


@pytest.fixture
def turnstile(monkeypatch: pytest.MonkeyPatch) -> FakeTurnstile:
    fake = FakeTurnstile()
    monkeypatch.setattr(captcha_service, "_turnstile_verify", fake)
    return fake


@pytest.fixture
def test_app(turnstile: FakeTurnstile) -> Generator[Dict[str, object], None, None]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())

    async def override_get_session():
        async with SessionLocal() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    client = TestClient(app)
    yield {"client": client, "session_factory": SessionLocal, "turnstile": turnstile}
    client.close()
    app.dependency_overrides.clear()
    asyncio.run(engine.dispose())


class FakeScriptHost:
    def __init__(self) -> None:
        self.scripts: list[str] = []
        self.injections = 0

    def inject_script(self, src: str, *, async_: bool = True, defer: bool = True) -> str:
        self.injections += 1
        self.scripts.append(src)
        return src

    def remove_script(self, handle: str) -> None:
        self.scripts.remove(handle)


class FakeTurnstileApi:
    """In-memory widget: tests "solve" a challenge by setting the token for a widget."""

    def __init__(self) -> None:
        self.widgets: dict[str, Dict[str, Any]] = {}
        self.responses: dict[str, str] = {}
        self.reset_calls = 0

    def render(self, container: Any, options: dict[str, Any]) -> str:
        widget_id = f"cf-chl-widget-{len(self.widgets) + 1}"
        self.widgets[widget_id] = {"container": container, **options}
        return widget_id

    def solve(self, widget_id: str, token: str) -> None:
        self.responses[widget_id] = token

    def get_response(self, widget_id: str) -> str | None:
        return self.responses.get(widget_id)

    def reset(self, widget_id: str) -> None:
        self.reset_calls += 1
        self.responses.pop(widget_id, None)

    def remove(self, widget_id: str) -> None:
        self.widgets.pop(widget_id, None)
        self.responses.pop(widget_id, None)


@pytest.fixture
def script_host() -> FakeScriptHost:
    return FakeScriptHost()


@pytest.fixture
def turnstile_api() -> FakeTurnstileApi:
    return FakeTurnstileApi()


@pytest.fixture
def widget_binding(turnstile_api: FakeTurnstileApi, script_host: FakeScriptHost) -> Generator[TurnstileWidgetBinding, None, None]:
    binding = TurnstileWidgetBinding(turnstile_api, script_host, registry=ScriptRegistry())
    yield binding
    binding.teardown()
