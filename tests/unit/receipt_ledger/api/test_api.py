# SPDX-License-Identifier: MPL-2.0
"""Tests for the HTTP API."""

import dataclasses

import pytest
from fastapi.testclient import TestClient

from receipt_ledger.api.main import create_app
from receipt_ledger.core.crypto import KeyManager
from receipt_ledger.services import InMemoryEventStore


@pytest.fixture
def app(settings, key_pair):
    return create_app(settings, KeyManager(key_pair=key_pair), InMemoryEventStore())


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def service(app):
    return app.state.service


def test_root_and_health(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["message"] == "Receipt Ledger API"
    assert response.headers["X-Content-Type-Options"] == "nosniff"

    response = client.get("/health")
    assert response.json() == {"status": "healthy", "service": "receipt-ledger-api"}


def test_public_key(client, key_pair):
    response = client.get("/api/receipts/public-key")
    assert response.status_code == 200
    assert response.text == key_pair.public_key_b64u
    assert response.headers["content-type"] == "application/octet-stream"
    assert response.headers["cache-control"] == "public, max-age=86400"


def test_public_key_unavailable(settings, key_pair):
    manager = KeyManager(private_key_pem=key_pair.private_pem())
    client = TestClient(create_app(settings, manager, InMemoryEventStore()))
    response = client.get("/api/receipts/public-key")
    assert response.status_code == 404
    assert response.json()["success"] is False


class TestVerifyReceipt:
    def test_valid_receipt(self, client, signing_builder, make_event):
        receipt = signing_builder.build(make_event())
        response = client.post("/api/receipts/verify", json={"receipt": receipt.to_dict()})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["valid"] is True
        assert body["data"]["receipt_type"] == "ed25519_signed"

    def test_invalid_receipt_is_still_200(self, client, chain_builder, make_event):
        receipt = chain_builder.build(make_event())
        tampered = dataclasses.replace(receipt, inputs_hash="0" * 64)
        response = client.post("/api/receipts/verify", json={"receipt": tampered.to_dict()})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["valid"] is False
        assert data["checks"][0]["status"] == "mismatch"
        assert data["checks"][0]["components"]["inputs_hash"] == "0" * 64

    @pytest.mark.parametrize("body", [{}, {"receipt": None}, {"receipt": {}}])
    def test_missing_receipt(self, client, body):
        response = client.post("/api/receipts/verify", json=body)
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Receipt object is required"}

    def test_malformed_receipt(self, client, signing_builder, make_event):
        data = signing_builder.build(make_event()).to_dict()
        data["signature"] = None
        response = client.post("/api/receipts/verify", json={"receipt": data})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Unrecognized receipt format"


class TestVerifyStored:
    def test_verify_event(self, client, service, make_event):
        service.record(make_event())
        response = client.get("/api/receipts/verify/0f8fad5b-d9cb-469f-a165-70867728950e")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["valid"] is True
        assert data["session_id"] == "session-1"

    def test_unknown_event(self, client):
        response = client.get("/api/receipts/verify/does-not-exist")
        assert response.status_code == 404
        assert response.json()["error"] == "Event not found"

    def test_verify_session(self, client, service, make_event):
        for i in range(3):
            service.record(
                make_event(event_id=f"evt-{i}", timestamp=f"2025-01-01T00:00:0{i}.000Z")
            )
        response = client.get("/api/receipts/verify-session", params={"session_id": "session-1"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["valid"] is True
        assert data["count"] == 3
        assert data["break_at"] is None
        assert [r["event_id"] for r in data["results"]] == ["evt-0", "evt-1", "evt-2"]

    def test_empty_session(self, client):
        response = client.get("/api/receipts/verify-session", params={"session_id": "none"})
        data = response.json()["data"]
        assert data["valid"] is True
        assert data["count"] == 0
        assert data["message"] == "No events found in session"

    def test_session_id_required(self, client):
        response = client.get("/api/receipts/verify-session")
        assert response.status_code == 400
        assert response.json()["error"] == "session_id is required"


class TestDemo:
    def test_generate_and_verify(self, client):
        response = client.post(
            "/api/demo-receipts/generate", json={"session_id": "demo-1", "prompt": "hi"}
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["meta"]["demo"] is True
        receipt = data["receipt"]
        assert receipt["policy_id"] == "demo.receipt.v1"

        response = client.post("/api/receipts/verify", json={"receipt": receipt})
        assert response.json()["data"]["valid"] is True

    def test_status(self, client):
        response = client.get("/api/demo-receipts/status")
        service = response.json()["data"]["service"]
        assert service["can_sign"] is True
        assert service["ephemeral"] is False

    def test_key_error_is_500(self, settings, key_pair):
        manager = KeyManager(public_key_b64u=key_pair.public_key_b64u)
        client = TestClient(create_app(settings, manager, InMemoryEventStore()))
        response = client.post("/api/demo-receipts/generate", json={})
        assert response.status_code == 500
        assert "private key" in response.json()["error"]


def test_metrics_exposed(client, chain_builder, make_event):
    client.post("/api/receipts/verify", json={"receipt": chain_builder.build(make_event()).to_dict()})
    response = client.get("/metrics/")
    assert response.status_code == 200
    assert "receipt_ledger_receipts_verified_total" in response.text
