"""
Order retrieval tests: validation, caching, chunking and the response
envelopes of GET /api/orders. The upstream report API is replaced by an
httpx.MockTransport.
"""
import asyncio
from datetime import date

import httpx
import pytest

from app.config import Settings
from app.connectors.bevvi_connector import BevviOrderConnector
from app.models.order import Order
from app.services.order_service import InvalidDateRangeError, OrderService, filter_orders_for_range
from app.utils.cache import cache_size


API_URL = "https://bevvi.test/api/bevviutils/getAllStoreTransactionsReportCsv"

HEADER = "orderNum,date,customerName,estName,status,totalAmount,revenue,tax,tip,deliveryDateTime,shippingFee"


def _run(coro):
    return asyncio.run(coro)


class FakeUpstream:
    """Serves canned responses and records every request"""

    def __init__(self, *responses, handler=None):
        self.responses = list(responses)
        self.handler = handler
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.handler is not None:
            return self.handler(request)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    @property
    def call_count(self) -> int:
        return len(self.requests)


def _settings(**overrides):
    values = {"bevvi_api_url": API_URL, "fetch_max_attempts": 1, "use_sample_orders": False}
    values.update(overrides)
    return Settings(**values)


def _service(upstream=None, **overrides):
    settings = _settings(**overrides)
    transport = httpx.MockTransport(upstream) if upstream is not None else None
    return OrderService(connector=BevviOrderConnector(settings, transport=transport), settings=settings)


def _csv(*rows):
    return "\n".join([HEADER, *rows])


REPORT = _csv(
    "A1,10/05/2025,Acme,Freshco,Order Delivered,110,100,8,2,,0",
    "A2,10/06/2025,Beta,Uptown,pending,55,50,4,1,,0",
    "A3,09/20/2025,Gamma,Uptown,accepted,30,25,2,1,,0",
)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def test_missing_dates_rejected():
    with pytest.raises(InvalidDateRangeError) as exc:
        _service().validate_range(None, "2025-10-31")
    assert exc.value.payload == {"error": "Start date and end date are required"}
    assert exc.value.status_code == 400


def test_malformed_dates_rejected():
    with pytest.raises(InvalidDateRangeError):
        _service().validate_range("10/01/2025", "2025-10-31")


def test_start_after_end_rejected():
    with pytest.raises(InvalidDateRangeError) as exc:
        _service().validate_range("2025-10-31", "2025-10-01")
    assert exc.value.payload["success"] is False


def test_far_future_dates_rejected_with_bounds():
    with pytest.raises(InvalidDateRangeError) as exc:
        _service().validate_range("2025-10-20", "2025-10-30", today=date(2025, 10, 15))

    payload = exc.value.payload
    assert payload["error"] == "Invalid date range"
    assert payload["today"] == "2025-10-15"
    assert payload["maxFuture"] == "2025-10-22"
    assert payload["data"] == [] and payload["totalOrders"] == 0


def test_next_week_is_allowed():
    _service().validate_range("2025-10-15", "2025-10-22", today=date(2025, 10, 15))


# ---------------------------------------------------------------------------
# Range filter
# ---------------------------------------------------------------------------

def test_filter_uses_delivery_date_or_order_date():
    orders = [
        Order(id="in-by-delivery", order_date="2025-09-28", delivery_date="2025-10-02"),
        Order(id="in-by-order", order_date="2025-10-02", delivery_date="2025-11-15"),
        Order(id="no-delivery", order_date="2025-10-03"),
        Order(id="outside", order_date="2025-09-01", delivery_date="2025-09-02"),
    ]
    kept = filter_orders_for_range(orders, "2025-10-01", "2025-10-31")
    assert [o.id for o in kept] == ["in-by-delivery", "in-by-order", "no-delivery"]


# ---------------------------------------------------------------------------
# Fetching and caching
# ---------------------------------------------------------------------------

def test_success_envelope_then_cache_hit():
    upstream = FakeUpstream(httpx.Response(200, json={"results": REPORT}))
    service = _service(upstream)

    body = _run(service.get_orders("2025-10-01", "2025-10-31"))

    assert body["success"] is True
    assert body["source"] == "Bevvi API"
    assert body["cached"] is False
    assert body["totalOrders"] == 2
    assert body["dateRange"] == {"startDate": "2025-10-01", "endDate": "2025-10-31"}
    assert body["data"][0]["customerName"] == "Acme"
    params = upstream.requests[-1].url.params
    assert params["startDate"] == "2025-10-01"
    assert params["endDate"] == "2025-10-31"

    again = _run(service.get_orders("2025-10-01", "2025-10-31"))
    assert again["source"] == "Cache"
    assert again["cached"] is True
    assert upstream.call_count == 1


def test_upstream_failure_envelope_has_no_sample_data():
    upstream = FakeUpstream(httpx.Response(500))
    service = _service(upstream, use_sample_orders=True)

    body = _run(service.get_orders("2025-10-01", "2025-10-31"))

    assert body["success"] is False
    assert body["error"] == "Bevvi API call failed"
    assert body["apiStatus"] == 500
    assert "startDate=2025-10-01" in body["apiUrl"]
    assert body["data"] == []
    assert cache_size() == 0

    _run(service.get_orders("2025-10-01", "2025-10-31"))
    assert upstream.call_count == 2


def test_missing_results_field_is_a_failure():
    upstream = FakeUpstream(httpx.Response(200, json={"status": "ok"}))
    body = _run(_service(upstream).get_orders("2025-10-01", "2025-10-31"))
    assert body["success"] is False


def test_transient_error_is_retried():
    upstream = FakeUpstream(
        httpx.Response(503),
        httpx.Response(200, json={"results": REPORT}),
    )
    service = _service(upstream, fetch_max_attempts=2, fetch_base_delay=0.0)

    body = _run(service.get_orders("2025-10-01", "2025-10-31"))

    assert body["success"] is True
    assert upstream.call_count == 2


def test_empty_report_message_and_note():
    upstream = FakeUpstream(httpx.Response(200, json={"results": HEADER}))
    body = _run(_service(upstream).get_orders("2025-10-01", "2025-10-31"))

    assert body["success"] is True
    assert body["totalOrders"] == 0
    assert body["message"].startswith("No orders found")
    assert "note" in body


def test_sample_orders_only_when_enabled():
    upstream = FakeUpstream(httpx.Response(200, json={"results": HEADER}))

    plain = _run(_service(upstream).get_orders("2025-10-01", "2025-10-31"))
    assert plain["totalOrders"] == 0

    demo = _run(_service(upstream, use_sample_orders=True).load_orders("2025-10-01", "2025-10-31", use_cache=False))
    assert [o.id for o in demo.orders] == ["ORD001", "ORD002", "ORD003"]


def test_long_range_fetched_in_chunks_with_partial_failure():
    def respond(request):
        start = request.url.params["startDate"]
        if start == "2025-01-31":
            return httpx.Response(502)
        year, month, day = start.split("-")
        row = f"C-{start},{int(month)}/{int(day)}/{year},Acme,Freshco,accepted,10,10,0,0,,0"
        return httpx.Response(200, json={"results": _csv(row)})

    upstream = FakeUpstream(handler=respond)
    fetched = _run(_service(upstream).load_orders("2025-01-01", "2025-05-31"))

    assert upstream.call_count == 6
    assert fetched.chunked
    assert fetched.chunks == 6
    assert fetched.successful_chunks == 5
    assert fetched.incomplete

    body = fetched.to_response()
    assert body["source"] == "Bevvi API (Chunked)"
    assert body["incompleteData"] is True
    assert body["message"].startswith("Partial data")
    assert body["totalOrders"] == 5
    assert cache_size() == 0


def test_all_chunks_failing_is_a_failure():
    upstream = FakeUpstream(httpx.Response(404))
    fetched = _run(_service(upstream).load_orders("2025-01-01", "2025-05-31"))
    assert fetched.success is False
    assert fetched.to_response()["apiStatus"] == 404


def test_clear_cache_reports_previous_size():
    from app.utils.cache import set_cached

    set_cached("2025-10-01-2025-10-31", [])
    set_cached("2025-09-01-2025-09-30", [])
    assert _service().clear_cache() == 2
    assert cache_size() == 0
