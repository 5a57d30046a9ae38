"""HTTP-level tests: status codes, error bodies and the full sale flow.

The app runs in-process over httpx.ASGITransport. The lifespan does not run,
so the provider and verifier are attached to ``app.state`` by the fixture and
the database/Redis dependencies are overridden with the test doubles.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import uuid

import httpx
import pytest
import pytest_asyncio
from factories import FakeProvider, paid_verification

from grochain.api.deps import get_app_settings, get_db_session, get_redis_client
from grochain.api.routes import health
from grochain.main import create_app
from grochain.services.payment_verifier import PaymentVerifier

FARMER = {"X-User-Id": "farmer-1", "X-User-Role": "farmer"}
OTHER_FARMER = {"X-User-Id": "farmer-2", "X-User-Role": "farmer"}
PARTNER = {"X-User-Id": "partner-1", "X-User-Role": "partner"}
BUYER = {"X-User-Id": "buyer-1", "X-User-Role": "buyer"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}


@pytest.fixture
def api_provider() -> FakeProvider:
    return FakeProvider()


@pytest_asyncio.fixture
async def client(session_factory, settings, fake_redis, api_provider):
    app = create_app()

    async def _session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _session
    app.dependency_overrides[get_redis_client] = lambda: fake_redis
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.state.payment_provider = api_provider
    app.state.payment_verifier = PaymentVerifier(session_factory, api_provider, settings)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _submit(client, **overrides) -> dict:
    body = {"crop_type": "Maize", "quantity": 500, "unit": "kg", "partner_id": "partner-1"}
    body.update(overrides)
    response = await client.post("/api/v1/harvests", json=body, headers=FARMER)
    assert response.status_code == 201, response.text
    return response.json()


async def _approved(client) -> dict:
    harvest = await _submit(client)
    response = await client.patch(
        f"/api/v1/harvest-approval/{harvest['id']}/approve",
        json={"quality": "excellent"},
        headers=PARTNER,
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.mark.asyncio
class TestAuthentication:
    async def test_missing_headers(self, client) -> None:
        response = await client.post("/api/v1/harvests", json={"crop_type": "Maize", "quantity": 1})
        assert response.status_code == 401
        assert response.json()["error"] == "UNAUTHENTICATED"

    async def test_unknown_role(self, client) -> None:
        response = await client.get(
            "/api/v1/harvest-approval/pending",
            headers={"X-User-Id": "u", "X-User-Role": "superuser"},
        )
        assert response.status_code == 401

    async def test_health(self, client, engine, fake_redis, monkeypatch) -> None:
        monkeypatch.setattr(health, "get_engine", lambda: engine)
        monkeypatch.setattr(health, "get_redis", lambda: fake_redis)

        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["reconciler"] == "stopped"
        assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
class TestHarvestApproval:
    async def test_approve(self, client) -> None:
        harvest = await _approved(client)
        assert harvest["status"] == "approved"
        assert harvest["quality"] == "excellent"
        assert harvest["verified_by"] == "partner-1"

    async def test_buyer_forbidden(self, client) -> None:
        harvest = await _submit(client)
        response = await client.patch(
            f"/api/v1/harvest-approval/{harvest['id']}/approve",
            json={"quality": "good"},
            headers=BUYER,
        )
        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"

    async def test_unknown_harvest(self, client) -> None:
        response = await client.patch(
            f"/api/v1/harvest-approval/{uuid.uuid4()}/approve",
            json={"quality": "good"},
            headers=ADMIN,
        )
        assert response.status_code == 404
        assert response.json()["error"] == "HARVEST_NOT_FOUND"

    async def test_second_approval_is_not_pending(self, client) -> None:
        harvest = await _approved(client)
        response = await client.patch(
            f"/api/v1/harvest-approval/{harvest['id']}/approve",
            json={"quality": "good"},
            headers=ADMIN,
        )
        assert response.status_code == 404
        assert response.json()["error"] == "HARVEST_NOT_PENDING"

    async def test_reject_requires_reason(self, client) -> None:
        harvest = await _submit(client)
        response = await client.patch(
            f"/api/v1/harvest-approval/{harvest['id']}/reject",
            json={"rejectionReason": "   "},
            headers=PARTNER,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "REJECTION_REASON_REQUIRED"

    async def test_pending_queue(self, client) -> None:
        await _submit(client)
        await _submit(client, partner_id="partner-2")
        response = await client.get(
            "/api/v1/harvest-approval/pending", params={"limit": 500}, headers=PARTNER
        )
        assert response.status_code == 200
        body = response.json()
        assert body["meta"]["limit"] == 100
        assert body["meta"]["total"] == 1


@pytest.mark.asyncio
class TestCreateListing:
    async def test_negative_price(self, client) -> None:
        harvest = await _approved(client)
        response = await client.post(
            f"/api/v1/harvest-approval/{harvest['id']}/create-listing",
            json={"price": -5},
            headers=FARMER,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    async def test_created_then_conflict(self, client) -> None:
        harvest = await _approved(client)
        url = f"/api/v1/harvest-approval/{harvest['id']}/create-listing"

        first = await client.post(url, json={"price": 1200}, headers=FARMER)
        assert first.status_code == 201
        assert first.json()["quality"] == "excellent"

        second = await client.post(url, json={"price": 1300}, headers=FARMER)
        assert second.status_code == 409
        assert second.json()["error"] == "LISTING_ALREADY_EXISTS"

    async def test_pending_harvest_conflicts(self, client) -> None:
        harvest = await _submit(client)
        response = await client.post(
            f"/api/v1/harvest-approval/{harvest['id']}/create-listing",
            json={"price": 1200},
            headers=FARMER,
        )
        assert response.status_code == 409
        assert response.json()["error"] == "HARVEST_NOT_APPROVED"

    async def test_other_farmer_forbidden(self, client) -> None:
        harvest = await _approved(client)
        response = await client.post(
            f"/api/v1/harvest-approval/{harvest['id']}/create-listing",
            json={"price": 1200},
            headers=OTHER_FARMER,
        )
        assert response.status_code == 403


@pytest.mark.asyncio
class TestPayments:
    async def test_verify_unknown_reference(self, client) -> None:
        response = await client.get("/api/v1/payments/verify/NOPE", headers=ADMIN)
        assert response.status_code == 404
        assert response.json()["error"] == "TRANSACTION_NOT_FOUND"

    async def test_webhook_bad_signature(self, client) -> None:
        response = await client.post(
            "/api/v1/payments/webhook",
            content=b'{"event": "charge.success", "data": {"reference": "X"}}',
            headers={"x-paystack-signature": "bad"},
        )
        assert response.status_code == 401
        assert response.json()["error"] == "INVALID_SIGNATURE"

    async def test_reconcile_is_admin_only(self, client) -> None:
        response = await client.post("/api/v1/payments/reconcile", headers=BUYER)
        assert response.status_code == 403

    async def test_sale_flow(self, client, api_provider) -> None:
        harvest = await _approved(client)
        listing = (
            await client.post(
                f"/api/v1/harvest-approval/{harvest['id']}/create-listing",
                json={"price": 1200},
                headers=FARMER,
            )
        ).json()

        order = await client.post(
            "/api/v1/orders",
            json={"items": [{"listing_id": listing["id"], "quantity": 5}]},
            headers=BUYER,
        )
        assert order.status_code == 201
        order_id = order.json()["id"]

        mismatch = await client.post(
            "/api/v1/payments/initialize",
            json={"order_id": order_id, "amount": 5000, "email": "buyer@example.com"},
            headers=BUYER,
        )
        assert mismatch.status_code == 400

        initialized = await client.post(
            "/api/v1/payments/initialize",
            json={"order_id": order_id, "amount": 6000, "email": "buyer@example.com"},
            headers=BUYER,
        )
        assert initialized.status_code == 201, initialized.text
        reference = initialized.json()["reference"]
        assert reference.startswith("GROCHAIN_")

        api_provider.results[reference] = paid_verification(reference, 600000)
        report = await client.post("/api/v1/payments/reconcile", headers=ADMIN)
        assert report.json()["verified"] == 1

        paid = (await client.get(f"/api/v1/orders/{order_id}", headers=BUYER)).json()
        assert paid["status"] == "paid"
        assert paid["payment_reference"] == reference

        commissions = await client.get("/api/v1/commissions", headers=PARTNER)
        assert commissions.status_code == 200
        items = commissions.json()["items"]
        assert [c["transaction_id"] for c in items] == [reference]
        assert items[0]["commission_amount"] == "300.00"

        again = await client.get(f"/api/v1/payments/verify/{reference}", headers=ADMIN)
        assert again.status_code == 200
        assert again.json()["verification"] is None
        assert again.json()["settlement"]["order_paid"] is False

    async def test_webhook_settles(self, client, settings) -> None:
        harvest = await _approved(client)
        listing = (
            await client.post(
                f"/api/v1/harvest-approval/{harvest['id']}/create-listing",
                json={"price": 100},
                headers=FARMER,
            )
        ).json()
        order_id = (
            await client.post(
                "/api/v1/orders",
                json={"items": [{"listing_id": listing["id"], "quantity": 2}]},
                headers=BUYER,
            )
        ).json()["id"]
        reference = (
            await client.post(
                "/api/v1/payments/initialize",
                json={"order_id": order_id, "amount": 200, "email": "buyer@example.com"},
                headers=BUYER,
            )
        ).json()["reference"]

        body = json.dumps(
            {"event": "charge.success", "data": {"reference": reference, "status": "success"}}
        ).encode()
        signature = hmac.new(
            settings.paystack_secret_key.encode(), body, hashlib.sha512
        ).hexdigest()
        headers = {"x-paystack-signature": signature, "Content-Type": "application/json"}

        first = await client.post("/api/v1/payments/webhook", content=body, headers=headers)
        assert first.status_code == 200
        assert first.json()["status"] == "processed"

        second = await client.post("/api/v1/payments/webhook", content=body, headers=headers)
        assert second.json()["status"] == "duplicate"
