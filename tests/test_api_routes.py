from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from clarity.api.main import app
from clarity.api.routes.rewrite import get_rewrite_gateway
from clarity.core.auth import AuthContext, require_auth_context, resolve_optional_caller
from clarity.core.db import get_db_session
from clarity.core.errors import ConfigurationError, RewriteProviderError
from clarity.core.gateway import RewriteGateway
from clarity.core.repositories.base import SaveOutcome

TODAY = date(2026, 10, 19)


class _FakeLedger:
    """In-memory stand-in for the usage ledger, shared by every route."""

    def __init__(self, record: SimpleNamespace | None = None) -> None:
        self.record = record
        self.saved: list[dict] = []
        self.cancelled: list[str] = []

    async def load(self, user_id):  # noqa: ANN001
        return self.record

    async def create_record(self, user_id, email, today):  # noqa: ANN001
        self.record = _user(id=user_id, email=email, last=today)
        return self.record

    async def reset_daily_count(self, user_id, today):  # noqa: ANN001
        if self.record.last_rewrite_date == today:
            return SaveOutcome(operation="reset_daily_count", ok=True, rows=0)
        self.record.rewrites_today = 0
        self.record.last_rewrite_date = today
        return SaveOutcome(operation="reset_daily_count", ok=True, rows=1)

    async def record_rewrite(self, user_id, today):  # noqa: ANN001
        same_day = self.record.last_rewrite_date == today
        self.record.rewrites_today = self.record.rewrites_today + 1 if same_day else 1
        self.record.rewrites_total += 1
        self.record.last_rewrite_date = today
        return SaveOutcome(
            operation="record_rewrite",
            ok=True,
            rows=1,
            values={"rewrites_today": self.record.rewrites_today, "rewrites_total": self.record.rewrites_total},
        )

    async def save(self, user_id, **values):  # noqa: ANN001, ANN003
        self.saved.append({"user_id": user_id, **values})
        return SaveOutcome(operation="save", ok=True, rows=1 if self.record else 0)

    async def save_by_subscription(self, subscription_id, **values):  # noqa: ANN001, ANN003
        self.cancelled.append(subscription_id)
        return SaveOutcome(operation="save_by_subscription", ok=True, rows=1)


class _FakeHistory:
    async def add(self, user_id, input_text, output_text, style):  # noqa: ANN001
        return SaveOutcome(operation="history", ok=True, rows=1)


class _FakeRewriter:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error

    def ensure_configured(self) -> None:
        if isinstance(self.error, ConfigurationError):
            raise self.error

    async def rewrite(self, text, style):  # noqa: ANN001
        if self.error is not None:
            raise self.error
        return f"Rewritten: {text}"


def _user(**overrides: object) -> SimpleNamespace:
    values = {
        "id": uuid4(),
        "email": "user@example.com",
        "tier": "free",
        "rewrites_today": 0,
        "rewrites_total": 0,
        "last": TODAY,
        "stripe_customer_id": None,
        "stripe_subscription_id": None,
        "updated_at": datetime.now(timezone.utc),
    }
    values.update(overrides)
    values["last_rewrite_date"] = values.pop("last")
    return SimpleNamespace(**values)


@pytest.fixture
def auth_context() -> AuthContext:
    return AuthContext(user_id=uuid4(), email="user@example.com")


@pytest.fixture
def client(auth_context: AuthContext):
    async def _auth_override() -> AuthContext:
        return auth_context

    async def _db_override():
        yield SimpleNamespace()

    app.dependency_overrides[require_auth_context] = _auth_override
    app.dependency_overrides[get_db_session] = _db_override
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _serve_rewrites(
    ledger: _FakeLedger,
    caller: AuthContext | None,
    rewriter: _FakeRewriter | None = None,
) -> None:
    async def _caller_override() -> AuthContext | None:
        return caller

    async def _gateway_override() -> RewriteGateway:
        return RewriteGateway(
            ledger=ledger,
            history=_FakeHistory(),
            rewriter=rewriter or _FakeRewriter(),
            today=lambda: TODAY,
        )

    app.dependency_overrides[resolve_optional_caller] = _caller_override
    app.dependency_overrides[get_rewrite_gateway] = _gateway_override


def test_health_endpoint(client: TestClient) -> None:
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_startup_applies_configured_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    from clarity.api import main

    package_logger = logging.getLogger("clarity")
    monkeypatch.setattr(package_logger, "level", package_logger.level)
    monkeypatch.setattr(main.settings, "log_level", "debug")

    with TestClient(app):
        assert package_logger.level == logging.DEBUG


def test_preflight_is_answered_with_cors_headers(client: TestClient) -> None:
    res = client.options("/api/rewrite")
    assert res.status_code == 200
    assert res.headers["access-control-allow-origin"] == "*"
    assert res.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
    assert res.headers["access-control-allow-headers"] == "Content-Type, Authorization"


def test_rewrite_free_user_until_limit(client: TestClient, auth_context: AuthContext) -> None:
    ledger = _FakeLedger(_user(id=auth_context.user_id))
    _serve_rewrites(ledger, auth_context)

    first = client.post("/api/rewrite", json={"text": "buy milk", "style": "professional"})
    assert first.status_code == 200
    assert first.json() == {"result": "Rewritten: buy milk", "remaining": 1}
    assert first.headers["access-control-allow-origin"] == "*"

    second = client.post("/api/rewrite", json={"text": "buy milk", "style": "professional"})
    assert second.json()["remaining"] == 0

    third = client.post("/api/rewrite", json={"text": "buy milk", "style": "professional"})
    assert third.status_code == 429
    body = third.json()
    assert body["error"] == "Daily limit reached"
    assert body["remaining"] == 0
    assert "Standard" in body["message"]


def test_rewrite_style_not_on_plan(client: TestClient, auth_context: AuthContext) -> None:
    ledger = _FakeLedger(_user(id=auth_context.user_id))
    _serve_rewrites(ledger, auth_context)

    res = client.post("/api/rewrite", json={"text": "hello", "style": "persuasive"})

    assert res.status_code == 403
    assert res.json() == {
        "error": "Style not available on your plan",
        "message": "This style requires the Pro plan.",
        "remaining": 2,
        "required_tiers": ["pro"],
    }
    assert ledger.record.rewrites_today == 0


def test_rewrite_after_day_boundary(client: TestClient, auth_context: AuthContext) -> None:
    ledger = _FakeLedger(_user(id=auth_context.user_id, rewrites_today=2, last=TODAY - timedelta(days=1)))
    _serve_rewrites(ledger, auth_context)

    res = client.post("/api/rewrite", json={"text": "hello", "style": "direct"})

    assert res.status_code == 200
    assert res.json()["remaining"] == 1


def test_rewrite_anonymous(client: TestClient) -> None:
    _serve_rewrites(_FakeLedger(), None)

    res = client.post("/api/rewrite", json={"text": "hello", "style": "concise"})

    assert res.status_code == 200
    assert res.json()["remaining"] == 999


@pytest.mark.parametrize(
    ("payload", "error"),
    [
        ({"style": "professional"}, "Text is required"),
        ({"text": "", "style": "professional"}, "Text is required"),
        ({"text": "hello"}, "Style is required"),
    ],
)
def test_rewrite_validation(client: TestClient, payload: dict, error: str) -> None:
    _serve_rewrites(_FakeLedger(), None)

    res = client.post("/api/rewrite", json=payload)

    assert res.status_code == 400
    assert res.json() == {"error": error}


@pytest.mark.parametrize(
    ("failure", "error"),
    [
        (ConfigurationError(), "Server configuration error"),
        (RewriteProviderError(), "AI service error"),
    ],
)
def test_rewrite_server_errors(client: TestClient, auth_context: AuthContext, failure: Exception, error: str) -> None:
    ledger = _FakeLedger(_user(id=auth_context.user_id, rewrites_today=1))
    _serve_rewrites(ledger, auth_context, _FakeRewriter(failure))

    res = client.post("/api/rewrite", json={"text": "hello", "style": "email"})

    assert res.status_code == 500
    assert res.json() == {"error": error}
    assert ledger.record.rewrites_today == 1


def test_usage_reports_stale_day_as_zero(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    from clarity.api.routes import billing

    ledger = _FakeLedger(_user(tier="standard", rewrites_today=20, rewrites_total=90, last=TODAY - timedelta(days=1)))
    monkeypatch.setattr(billing, "UsageLedger", lambda session: ledger)
    monkeypatch.setattr(billing, "utc_today", lambda: TODAY)

    res = client.get("/api/billing/usage")

    assert res.status_code == 200
    body = res.json()
    assert body["tier"] == "standard"
    assert body["daily_quota"] == 25
    assert body["rewrites_today"] == 0
    assert body["rewrites_total"] == 90
    assert body["remaining"] == 25
    assert body["next_tier"] == "pro"
    assert "formal" in body["allowed_styles"]
    assert ledger.saved == []


def test_usage_for_unknown_user_is_free(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    from clarity.api.routes import billing

    monkeypatch.setattr(billing, "UsageLedger", lambda session: _FakeLedger())

    body = client.get("/api/billing/usage").json()

    assert body["tier"] == "free"
    assert body["remaining"] == 2
    assert body["allowed_styles"] == ["direct", "email", "professional"]


class _FakeStripeClient:
    created_customers: list[str] = []

    def tier_for_price(self, price_id: str) -> str:
        return {"price_pro": "pro"}.get(price_id, "standard")

    def create_customer(self, email, user_id):  # noqa: ANN001
        self.created_customers.append(user_id)
        return "cus_new"

    def create_checkout_session(self, **kwargs):  # noqa: ANN003
        return {"url": f"https://checkout.example/{kwargs['customer_id']}/{kwargs['tier']}", "session_id": "cs_1"}

    def create_portal_session(self, customer_id, origin=None):  # noqa: ANN001
        return f"{origin or 'https://claritytext.app'}/portal/{customer_id}"


def test_checkout_creates_customer_once(
    client: TestClient, monkeypatch: pytest.MonkeyPatch, auth_context: AuthContext
) -> None:
    from clarity.api.routes import billing

    ledger = _FakeLedger(_user(id=auth_context.user_id))
    monkeypatch.setattr(billing, "UsageLedger", lambda session: ledger)
    monkeypatch.setattr(billing, "StripeBillingClient", _FakeStripeClient)
    _FakeStripeClient.created_customers = []

    res = client.post("/api/billing/checkout-session", json={"price_id": "price_pro"})

    assert res.status_code == 200
    assert res.json() == {"url": "https://checkout.example/cus_new/pro", "session_id": "cs_1"}
    assert ledger.saved == [{"user_id": auth_context.user_id, "stripe_customer_id": "cus_new"}]

    ledger.record.stripe_customer_id = "cus_existing"
    res = client.post("/api/billing/checkout-session", json={"price_id": "price_pro"})
    assert res.json()["url"] == "https://checkout.example/cus_existing/pro"
    assert _FakeStripeClient.created_customers == [str(auth_context.user_id)]


def test_portal_requires_customer(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    from clarity.api.routes import billing

    ledger = _FakeLedger(_user())
    monkeypatch.setattr(billing, "UsageLedger", lambda session: ledger)
    monkeypatch.setattr(billing, "StripeBillingClient", _FakeStripeClient)

    res = client.post("/api/billing/portal-session")
    assert res.status_code == 400
    assert res.json() == {"detail": "No subscription found"}

    ledger.record.stripe_customer_id = "cus_1"
    res = client.post("/api/billing/portal-session", headers={"Origin": "https://app.example"})
    assert res.status_code == 200
    assert res.json() == {"url": "https://app.example/portal/cus_1"}


def _post_event(client: TestClient, event: dict):  # noqa: ANN202
    return client.post(
        "/api/webhooks/stripe",
        content=json.dumps(event),
        headers={"Stripe-Signature": "t=1,v1=signed"},
    )


@pytest.fixture
def webhook_ledger(monkeypatch: pytest.MonkeyPatch) -> _FakeLedger:
    from clarity.api.routes import webhooks

    ledger = _FakeLedger(_user())
    monkeypatch.setattr(webhooks.settings, "stripe_webhook_secret", "whsec_test")
    monkeypatch.setattr(webhooks.stripe.Webhook, "construct_event", lambda **kwargs: object())
    monkeypatch.setattr(webhooks, "UsageLedger", lambda session: ledger)
    return ledger


def test_webhook_checkout_completed_sets_tier(client: TestClient, webhook_ledger: _FakeLedger) -> None:
    user_id = uuid4()
    res = _post_event(
        client,
        {
            "type": "checkout.session.completed",
            "data": {"object": {"subscription": "sub_1", "metadata": {"supabase_user_id": str(user_id), "tier": "pro"}}},
        },
    )

    assert res.status_code == 200
    assert res.json() == {
        "received": True,
        "event_type": "checkout.session.completed",
        "user_id": str(user_id),
        "updated": True,
    }
    assert webhook_ledger.saved[0]["tier"] == "pro"
    assert webhook_ledger.saved[0]["stripe_subscription_id"] == "sub_1"


def test_webhook_subscription_updated_with_unknown_tier(client: TestClient, webhook_ledger: _FakeLedger) -> None:
    res = _post_event(
        client,
        {
            "type": "customer.subscription.updated",
            "data": {"object": {"id": "sub_1", "metadata": {"supabase_user_id": str(uuid4()), "tier": "gold"}}},
        },
    )

    assert res.status_code == 200
    assert res.json()["updated"] is False
    assert webhook_ledger.saved == []


def test_webhook_tier_event_requires_user(client: TestClient, webhook_ledger: _FakeLedger) -> None:
    res = _post_event(client, {"type": "customer.subscription.updated", "data": {"object": {"id": "sub_1"}}})
    assert res.status_code == 400


def test_webhook_subscription_deleted_downgrades(client: TestClient, webhook_ledger: _FakeLedger) -> None:
    res = _post_event(client, {"type": "customer.subscription.deleted", "data": {"object": {"id": "sub_9"}}})

    assert res.status_code == 200
    assert res.json()["updated"] is True
    assert webhook_ledger.cancelled == ["sub_9"]


def test_webhook_other_events_are_acknowledged(client: TestClient, webhook_ledger: _FakeLedger) -> None:
    res = _post_event(client, {"type": "invoice.payment_failed", "data": {"object": {"subscription": "sub_1"}}})

    assert res.status_code == 200
    assert res.json()["updated"] is False
    assert webhook_ledger.saved == []
    assert webhook_ledger.cancelled == []


def test_webhook_without_configured_secret_changes_nothing(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    from clarity.api.routes import webhooks

    ledger = _FakeLedger(_user())
    monkeypatch.setattr(webhooks.settings, "stripe_webhook_secret", "")
    monkeypatch.setattr(webhooks, "UsageLedger", lambda session: ledger)

    res = client.post(
        "/api/webhooks/stripe",
        content=json.dumps(
            {
                "type": "checkout.session.completed",
                "data": {"object": {"metadata": {"supabase_user_id": str(uuid4()), "tier": "pro"}}},
            }
        ),
    )

    assert res.status_code == 500
    assert ledger.saved == []
