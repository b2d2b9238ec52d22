"""Integration tests for invoice parsing API

Tests the parsing workflow end to end with stub LLM providers:
- Caller identity required
- Default (hybrid) strategy and explicit strategies
- Chain exhaustion as a 200 response with the attempt ledger
- Unknown strategy and invalid request bodies
- Strategy listing and cost estimates
- Client disconnect cancels the run
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from api.v1.extraction import router as extraction_router

SAMPLE_INVOICE = """ACME BUILDERS LTD
Invoice #: INV-1001
Date: 15/01/2024
Item 1: Concrete - Qty: 10 - $100.00 each - $1000.00
Subtotal: $1,000.00
GST (15%): $150.00
Total: $1,150.00
"""


class TestParseInvoiceAPI:
    """Integration tests for POST /api/v1/invoices/parse"""

    def test_requires_user_header(self, client: TestClient):
        response = client.post("/api/v1/invoices/parse", json={"text": SAMPLE_INVOICE})

        assert response.status_code == 401
        data = response.json()
        assert data["success"] is False
        assert data["error"]["kind"] == "UNAUTHORIZED"

    def test_default_strategy_first_provider_wins(self, client: TestClient, auth_headers: dict):
        response = client.post("/api/v1/invoices/parse", json={"text": SAMPLE_INVOICE}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "SUCCEEDED"
        assert data["strategy"] == "hybrid"
        assert data["winningProvider"] == "openai"
        assert data["totalCost"] == "0.0012"
        assert [a["provider"] for a in data["attempts"]] == ["openai"]
        assert data["invoice"]["invoiceNumber"] == "OPENAI-1"
        assert data["error"] is None

    def test_traditional_primary(self, client: TestClient, auth_headers: dict):
        response = client.post(
            "/api/v1/invoices/parse",
            json={"text": SAMPLE_INVOICE, "strategy": "traditional-primary", "expectedFormat": "nz-tax-invoice"},
            headers=auth_headers,
        )

        data = response.json()
        assert data["success"] is True
        assert data["winningProvider"] == "traditional"
        assert data["totalCost"] == "0"
        invoice = data["invoice"]
        assert invoice["invoiceNumber"] == "INV-1001"
        assert invoice["issueDate"] == "2024-01-15"
        assert invoice["total"] == "1150.00"
        assert invoice["lineItems"][0]["lineTotal"] == "1000.00"

    def test_chain_exhausted_is_not_an_http_error(self, client: TestClient, auth_headers: dict):
        response = client.post(
            "/api/v1/invoices/parse",
            json={"text": "hello world", "strategy": "accuracy-optimized"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["status"] == "FAILED"
        assert data["winningProvider"] is None
        assert data["error"]["kind"] == "CHAIN_EXHAUSTED"
        attempts = data["attempts"]
        assert [a["provider"] for a in attempts] == ["openai", "openai-accurate", "traditional"]
        assert [a["outcome"] for a in attempts] == ["BELOW_THRESHOLD", "FAILED", "BELOW_THRESHOLD"]
        assert [a["position"] for a in attempts] == [0, 1, 2]

    def test_unknown_strategy(self, client: TestClient, auth_headers: dict):
        response = client.post(
            "/api/v1/invoices/parse",
            json={"text": SAMPLE_INVOICE, "strategy": "fastest"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == {"kind": "VALIDATION_ERROR", "message": "Unknown strategy: fastest"}

    @pytest.mark.parametrize("body", [{}, {"text": ""}, {"text": "x", "expectedFormat": "martian"}])
    def test_invalid_body(self, client: TestClient, auth_headers: dict, body):
        response = client.post("/api/v1/invoices/parse", json=body, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "VALIDATION_ERROR"


class TestClientDisconnect:
    """Test a disconnected client stops the fallback chain"""

    def test_disconnect_cancels_run(self, client: TestClient, auth_headers: dict, stub_orchestrator, monkeypatch):
        monkeypatch.setattr(Request, "is_disconnected", AsyncMock(return_value=True))

        response = client.post("/api/v1/invoices/parse", json={"text": SAMPLE_INVOICE}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["status"] == "CANCELLED"
        assert data["attempts"] == []
        assert data["totalCost"] == "0"
        assert stub_orchestrator.providers["openai"].calls == 0

    def test_connected_client_not_cancelled(self, client: TestClient, auth_headers: dict, monkeypatch):
        monkeypatch.setattr(Request, "is_disconnected", AsyncMock(return_value=False))

        response = client.post("/api/v1/invoices/parse", json={"text": SAMPLE_INVOICE}, headers=auth_headers)

        assert response.json()["status"] == "SUCCEEDED"

    @pytest.mark.asyncio
    async def test_watcher_polls_until_disconnect(self, monkeypatch):
        monkeypatch.setattr(extraction_router, "DISCONNECT_POLL_SECONDS", 0)
        http_request = MagicMock()
        http_request.url.path = "/api/v1/invoices/parse"
        http_request.is_disconnected = AsyncMock(side_effect=[False, False, True])
        cancel_event = asyncio.Event()

        await asyncio.wait_for(extraction_router.watch_disconnect(http_request, cancel_event), timeout=1)

        assert cancel_event.is_set()
        assert http_request.is_disconnected.await_count == 3


class TestStrategiesAPI:
    """Integration tests for GET /api/v1/invoices/strategies"""

    def test_list_strategies(self, client: TestClient, auth_headers: dict):
        response = client.get("/api/v1/invoices/strategies", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["default"] == "hybrid"
        by_name = {s["name"]: s for s in data["strategies"]}
        assert set(by_name) == {
            "llm-primary", "traditional-primary", "hybrid", "cost-optimized", "accuracy-optimized",
        }
        assert by_name["hybrid"]["fallbackChain"] == ["openai", "traditional", "openai-accurate"]
        assert by_name["hybrid"]["isDefault"] is True
        assert by_name["cost-optimized"]["maxCostPerInvoice"] == "0.01"

    def test_estimate(self, client: TestClient, auth_headers: dict):
        response = client.post(
            "/api/v1/invoices/parse/estimate",
            json={"text": SAMPLE_INVOICE, "strategy": "cost-optimized"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["strategy"] == "cost-optimized"
        assert data["estimatedCost"] == "0"
        assert data["maxCostPerInvoice"] == "0.01"
