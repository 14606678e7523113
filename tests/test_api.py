"""
HTTP contract tests for the dashboard API.

Guards against:
1. Validation errors returned with the wrong status or body
2. Upstream failures surfacing as 5xx instead of the success=false envelope
3. Auto-refresh status drifting from what the dashboard polls for
4. Prompt parsing without a key failing without the fallback flag
"""
import asyncio
import re

import pytest
from fastapi.testclient import TestClient

from app.api import assistant as assistant_api
from app.connectors.base_connector import BaseConnector, UpstreamAPIError
from app.main import app
from app.models.order import Order, OrderStatus
from app.scheduler import auto_refresh
from app.services.assistant_service import ChatSession, WELCOME_MESSAGE
from app.services.fetch_orchestrator import FetchOrchestrator
from app.services.order_service import order_service

client = TestClient(app)

ORDERS = [
    Order(id="B1", order_date="2025-10-02", delivery_date="2025-10-02", customer_name="Acme",
          establishment="Freshco", status=OrderStatus.DELIVERED, total=120.0, revenue=100.0, tax=8.0),
    Order(id="B2", order_date="2025-10-03", delivery_date="2025-10-04", customer_name="Beta",
          establishment="Store-East", status=OrderStatus.PENDING, total=60.0, revenue=50.0),
    Order(id="B3", order_date="2025-10-05", customer_name="Gamma",
          establishment="Freshco", status=OrderStatus.ACCEPTED, total=30.0, revenue=25.0),
]

QUERY = {"startDate": "2025-10-01", "endDate": "2025-10-15"}


class StubConnector(BaseConnector):
    RETRY_MAX_ATTEMPTS = 1

    def __init__(self, orders=None, error=None):
        super().__init__("Stub")
        self.orders = orders if orders is not None else list(ORDERS)
        self.error = error
        self.calls = []

    async def validate_connection(self) -> bool:
        return True

    async def fetch_data(self, start_date: str, end_date: str, timeout=None):
        self.calls.append((start_date, end_date))
        if self.error is not None:
            raise self.error
        return list(self.orders)

    def request_url(self, start_date: str, end_date: str) -> str:
        return f"https://stub/report?startDate={start_date}&endDate={end_date}"


@pytest.fixture
def stub(monkeypatch):
    connector = StubConnector()
    monkeypatch.setattr(order_service, "connector", connector)
    return connector


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

def test_health():
    response = client.get("/api/health")
    body = response.json()

    assert response.status_code == 200
    assert body["status"] == "OK"
    assert body["message"].endswith("API is running")
    assert "active" in body["autoRefresh"]


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def test_orders_require_both_dates():
    response = client.get("/api/orders", params={"startDate": "2025-10-01"})
    assert response.status_code == 400
    assert response.json() == {"error": "Start date and end date are required"}


def test_orders_reject_far_future_dates():
    response = client.get("/api/orders", params={"startDate": "2099-01-01", "endDate": "2099-01-02"})
    body = response.json()

    assert response.status_code == 400
    assert body["success"] is False
    assert body["error"] == "Invalid date range"
    assert "maxFuture" in body


def test_orders_success_tracks_range_for_auto_refresh(stub):
    response = client.get("/api/orders", params=QUERY)
    body = response.json()

    assert response.status_code == 200
    assert body["success"] is True
    assert body["totalOrders"] == 3
    assert body["data"][0]["id"] == "B1"
    assert body["data"][0]["customerName"] == "Acme"
    assert auto_refresh.current_range == QUERY

    again = client.get("/api/orders", params=QUERY).json()
    assert again["cached"] is True
    assert stub.calls == [("2025-10-01", "2025-10-15")]


def test_upstream_failure_is_200_envelope(monkeypatch):
    failing = StubConnector(error=UpstreamAPIError("Bevvi API returned 502", status_code=502))
    monkeypatch.setattr(order_service, "connector", failing)

    response = client.get("/api/orders", params=QUERY)
    body = response.json()

    assert response.status_code == 200
    assert body["success"] is False
    assert body["apiStatus"] == 502
    assert body["data"] == []


def test_summary_filters_and_tiles(stub):
    response = client.get("/api/orders/summary", params={
        **QUERY, "status": ["delivered", "accepted"], "sort": "total", "direction": "desc",
    })
    body = response.json()

    assert [o["id"] for o in body["data"]] == ["B1", "B3"]
    assert body["summary"]["acceptedOrders"] == 2
    assert body["summary"]["totalRevenue"] == 125.0


def test_orders_csv_export(stub):
    response = client.get("/api/orders/export.csv", params=QUERY)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "orders-2025-10-01-to-2025-10-15.csv" in response.headers["content-disposition"]
    assert response.text.splitlines()[0].startswith('"Order ID","Customer"')


def test_cache_clear_reports_previous_size(stub):
    client.get("/api/orders", params=QUERY)

    body = client.post("/api/cache/clear").json()

    assert body["success"] is True
    assert body["previousSize"] == 1
    assert body["message"] == "Cache cleared successfully. 1 entries removed."


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def test_retailer_report_counts_accepted_orders_only(stub):
    body = client.get("/api/reports/retailers", params=QUERY).json()

    assert body["success"] is True
    assert [row["name"] for row in body["retailers"]] == ["Freshco"]
    assert body["totals"]["orderCount"] == 2
    assert body["totals"]["gmv"] == 125.0


def test_retailer_report_downloads(stub):
    csv_response = client.get("/api/reports/retailers.csv", params=QUERY)
    assert csv_response.headers["content-type"].startswith("text/csv")
    assert csv_response.text.splitlines()[0] == "Retailer,GMV,Service Fee,Retailer Fee,Total Charges,Order Count"

    xlsx_response = client.get("/api/reports/retailers.xlsx", params={**QUERY, "retailer": "Freshco"})
    assert xlsx_response.status_code == 200
    assert "spreadsheetml" in xlsx_response.headers["content-type"]
    assert xlsx_response.content[:2] == b"PK"


def test_workbook_for_retailer_without_orders_is_404(stub):
    response = client.get("/api/reports/retailers.xlsx", params={**QUERY, "retailer": "Nowhere"})
    assert response.status_code == 404
    assert response.json()["success"] is False


# ---------------------------------------------------------------------------
# Prompt parsing and assistant
# ---------------------------------------------------------------------------

def test_parse_prompt_requires_string():
    response = client.post("/api/parse-prompt", json={"prompt": 42})
    assert response.status_code == 400
    assert response.json() == {"error": "Prompt is required and must be a string"}


def test_parse_prompt_without_key_signals_fallback(monkeypatch):
    monkeypatch.setattr(assistant_api.prompt_parser, "client", None)

    response = client.post("/api/parse-prompt", json={"prompt": "revenue today"})

    assert response.status_code == 500
    assert response.json() == {"error": "Anthropic API key not configured", "fallback": True}


@pytest.fixture
def fresh_assistant(monkeypatch):
    monkeypatch.setattr(assistant_api.assistant_service, "orchestrator", FetchOrchestrator())
    monkeypatch.setattr(assistant_api.assistant_service, "session", ChatSession())
    return assistant_api.assistant_service


def test_assistant_query_and_transcript(stub, fresh_assistant):
    response = client.post("/api/assistant/query", json={
        "command": "how many orders", **QUERY, "usePromptParser": False,
    })
    body = response.json()

    assert response.status_code == 200
    assert body["success"] is True
    assert body["data"]["count"] == 3

    messages = client.get("/api/assistant/messages").json()["messages"]
    assert [m["type"] for m in messages] == ["assistant", "user", "assistant"]
    assert messages[1]["content"] == "how many orders"

    cleared = client.delete("/api/assistant/messages").json()
    assert cleared["success"] is True
    assert [m["content"] for m in cleared["messages"]] == [WELCOME_MESSAGE]


# ---------------------------------------------------------------------------
# Auto-refresh
# ---------------------------------------------------------------------------

def test_auto_refresh_start_requires_dates():
    response = client.post("/api/auto-refresh/start", json={"startDate": "2025-10-01"})
    assert response.status_code == 400
    assert response.json() == {"error": "Start date and end date are required"}


def test_auto_refresh_lifecycle():
    with TestClient(app) as live:
        started = live.post("/api/auto-refresh/start", json=QUERY).json()
        assert started["success"] is True
        assert started["interval"] == f"{auto_refresh.interval_minutes} minutes"
        assert started["dateRange"] == QUERY

        status = live.get("/api/auto-refresh/status").json()
        assert status["active"] is True
        assert status["currentRange"] == QUERY
        assert re.fullmatch(r"\d+m \d+s", status["timeUntilNext"])

        assert live.post("/api/auto-refresh/stop").json() == {"success": True, "message": "Auto-refresh stopped"}
        stopped = live.get("/api/auto-refresh/status").json()
        assert stopped["active"] is False
        assert stopped["nextRefresh"] is None


def test_refresh_without_range_does_nothing(monkeypatch):
    monkeypatch.setattr(auto_refresh, "current_range", None)
    assert asyncio.run(auto_refresh.refresh_now()) is None


def test_refresh_stores_orders_for_current_range(stub, monkeypatch):
    monkeypatch.setattr(auto_refresh, "current_range", dict(QUERY))

    record = asyncio.run(auto_refresh.refresh_now())

    assert [o.id for o in record["orders"]] == ["B1", "B2", "B3"]
    assert record["dateRange"] == QUERY
    assert auto_refresh.last_refresh is not None
