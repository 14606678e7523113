"""
Intent classification and aggregation tests.

Guards against:
1. Pending / canceled orders counted as revenue
2. Generic intents shadowing specific ones ("revenue" vs "revenue by store")
3. Customer lookups that fail without offering close names
4. Commands answered from the wrong date range instead of being deferred
"""
from app.models.order import LineItem, Order, OrderStatus
from app.models.query import DateRange
from app.services.intent_service import (
    HELP_RESPONSE,
    INTENT_ORDER,
    UNKNOWN_INTENT_RESPONSE,
    IntentClassifier,
    extract_brand_name,
    extract_customer_name,
    hint_date_range,
)


def _order(**kwargs):
    defaults = {
        "id": "A1",
        "order_date": "2025-10-05",
        "customer_name": "Acme",
        "establishment": "Freshco",
        "status": OrderStatus.DELIVERED,
        "revenue": 0.0,
    }
    defaults.update(kwargs)
    return Order(**defaults)


classifier = IntentClassifier()


# ---------------------------------------------------------------------------
# Revenue
# ---------------------------------------------------------------------------

def test_revenue_excludes_pending_orders():
    orders = [
        _order(id="1", status=OrderStatus.PENDING, revenue=100.0),
        _order(id="2", status=OrderStatus.DELIVERED, revenue=200.0),
    ]
    result = classifier.classify("revenue", orders)

    assert result.intent == "revenue"
    assert result.data["revenue"] == 200
    assert result.data["orderCount"] == 1
    assert result.data["averageOrderValue"] == 200


def test_revenue_filters_by_date_range_in_text():
    orders = [
        _order(id="1", order_date="2024-09-10", revenue=10.0),
        _order(id="2", order_date="2024-10-10", revenue=99.0),
    ]
    loaded = DateRange(start_date="2024-09-01", end_date="2024-09-30")
    result = classifier.classify("revenue for sept 2024", orders, loaded_range=loaded)
    assert result.data["revenue"] == 10.0


def test_revenue_for_fuzzy_customer_names_matches():
    orders = [
        _order(id="1", customer_name="Air Culinaire Worldwide", revenue=300.0),
        _order(id="2", customer_name="Acme", revenue=50.0),
    ]
    result = classifier.classify("revenue for Air Culinaire", orders)

    assert result.intent == "revenue_by_customer"
    assert result.data["revenue"] == 300.0
    assert "Air Culinaire Worldwide" in result.data["suggestions"]
    assert "Air Culinaire Worldwide" in result.content


def test_unknown_customer_gets_suggestions():
    orders = [_order(customer_name="Air Culinaire Worldwide", revenue=300.0)]
    result = classifier.classify("revenue for Air Culinary", orders)

    assert result.data["type"] == "customer_not_found"
    assert result.data["suggestions"] == ["Air Culinaire Worldwide"]
    assert "Did you mean" in result.content


def test_revenue_by_store_beats_plain_revenue():
    orders = [
        _order(id="1", establishment="Freshco", revenue=10.0),
        _order(id="2", establishment="Uptown", revenue=30.0),
        _order(id="3", establishment="Uptown", revenue=5.0, status=OrderStatus.REJECTED),
    ]
    result = classifier.classify("revenue by store", orders)

    assert result.intent == "revenue_by_store"
    assert result.data["rows"] == [
        {"key": "Uptown", "value": 30.0, "orderCount": 1},
        {"key": "Freshco", "value": 10.0, "orderCount": 1},
    ]
    assert result.data["total"] == 40.0


def test_revenue_by_month_sorted_chronologically():
    orders = [
        _order(id="1", order_date="2025-10-02", revenue=5.0),
        _order(id="2", order_date="2025-08-02", revenue=7.0),
    ]
    result = classifier.classify("show me revenue by month", orders)
    assert [row["key"] for row in result.data["rows"]] == ["2025-08", "2025-10"]


def test_revenue_by_brand_groups_line_items():
    orders = [
        _order(items=[LineItem(name="Tito's Vodka", quantity=2, price=20.0), LineItem(name="Lime", price=1.0)]),
    ]
    result = classifier.classify("top brands", orders)
    assert result.intent == "revenue_by_brand"
    assert result.data["rows"][0] == {"key": "Tito's Vodka", "value": 40.0}


def test_customers_by_brand():
    orders = [
        _order(id="1", customer_name="Acme", items=[LineItem(name="Grey Goose 750ml")]),
        _order(id="2", customer_name="Beta", items=[LineItem(name="Wine")]),
    ]
    result = classifier.classify("which customers bought Grey Goose", orders)
    assert result.intent == "customers_by_brand"
    assert result.data["customers"] == [{"customer": "Acme", "orderCount": 1}]


# ---------------------------------------------------------------------------
# Amounts, states and statuses
# ---------------------------------------------------------------------------

def test_tax_by_state_before_plain_tax():
    orders = [
        _order(id="1", shipping_state="CA", tax=8.0),
        _order(id="2", shipping_state="NY", tax=2.0),
    ]
    result = classifier.classify("tax by state", orders)
    assert result.intent == "tax_by_state"
    assert result.data["groupBy"] == "state"
    assert result.data["rows"][0]["key"] == "CA"


def test_sales_by_state():
    result = classifier.classify("sales by state", [_order(shipping_state="TX", revenue=12.0)])
    assert result.intent == "sales_by_state"


def test_tips_total():
    orders = [_order(id="1", tip=3.0), _order(id="2", tip=4.5), _order(id="3", tip=9.0, status=OrderStatus.PENDING)]
    result = classifier.classify("how much in tips", orders)
    assert result.intent == "tip"
    assert result.data["amount"] == 7.5


def test_pending_and_not_delivered():
    orders = [
        _order(id="1", status=OrderStatus.PENDING),
        _order(id="2", status=OrderStatus.IN_TRANSIT),
        _order(id="3", status=OrderStatus.DELIVERED),
    ]
    pending = classifier.classify("pending orders", orders)
    assert pending.intent == "pending_orders"
    assert pending.data["total"] == 1

    open_orders = classifier.classify("orders not delivered", orders)
    assert open_orders.intent == "not_delivered"
    assert open_orders.data["total"] == 2

    delivered = classifier.classify("delivered orders", orders)
    assert delivered.intent == "delivered_orders"
    assert delivered.data["total"] == 1


def test_delayed_orders():
    orders = [_order(id="1", delivery_status="Delayed"), _order(id="2", delivery_status="On Time")]
    result = classifier.classify("show delayed orders", orders)
    assert result.intent == "delayed_orders"
    assert [o["id"] for o in result.data["orders"]] == ["1"]


def test_delayed_orders_for_customer():
    orders = [
        _order(id="1", customer_name="Acme", delivery_status="Delayed"),
        _order(id="2", customer_name="Beta", delivery_status="Delayed"),
    ]
    result = classifier.classify("delayed orders for Acme", orders)
    assert result.intent == "delayed_orders_by_customer"
    assert result.data["total"] == 1


def test_order_list_capped_at_ten():
    orders = [_order(id=str(i), status=OrderStatus.PENDING) for i in range(15)]
    result = classifier.classify("pending orders", orders)
    assert len(result.data["orders"]) == 10
    assert result.data["total"] == 15


def test_status_summary():
    orders = [_order(id="1", status=OrderStatus.REJECTED), _order(id="2")]
    result = classifier.classify("order status", orders)
    assert result.intent == "order_status_check"
    assert result.data["counts"]["rejected"] == 1
    assert result.data["counts"]["delivered"] == 1


def test_order_count_and_average():
    orders = [_order(id="1", revenue=10.0), _order(id="2", revenue=30.0), _order(id="3", status=OrderStatus.PENDING)]

    count = classifier.classify("how many orders", orders)
    assert count.data == {"type": "count", "count": 3}

    aov = classifier.classify("average order value", orders)
    assert aov.data["average"] == 20.0
    assert aov.data["orderCount"] == 2


# ---------------------------------------------------------------------------
# Hints, fallbacks and deferral
# ---------------------------------------------------------------------------

def test_unknown_hint_short_circuits():
    result = classifier.classify("tell me a joke", [], hint={"intent": "unknown"})
    assert result.content == UNKNOWN_INTENT_RESPONSE


def test_hint_intent_and_range_drive_classification():
    orders = [_order(id="1", tip=2.0, order_date="2025-10-02"), _order(id="2", tip=5.0, order_date="2025-11-02")]
    hint = {"intent": "tip", "startDate": "2025-10-01", "endDate": "2025-10-31"}
    loaded = DateRange(start_date="2025-10-01", end_date="2025-10-31")
    result = classifier.classify("how much did drivers get", orders, hint=hint, loaded_range=loaded)
    assert result.intent == "tip"
    assert result.data["amount"] == 2.0


def test_unrecognized_command_gets_help():
    result = classifier.classify("what's the weather", [])
    assert result.content == HELP_RESPONSE


def test_command_for_other_range_is_deferred():
    loaded = DateRange(start_date="2025-10-01", end_date="2025-10-15")
    result = classifier.classify("revenue for sept 2025", [], loaded_range=loaded)

    assert result.deferred
    assert result.required_range.start_date == "2025-09-01"
    assert result.required_range.end_date == "2025-09-30"


def test_dated_command_with_nothing_loaded_is_deferred():
    result = classifier.classify("revenue for sept 2025", [])

    assert result.deferred
    assert result.required_range.start_date == "2025-09-01"


def test_defer_disabled_answers_with_loaded_orders():
    loaded = DateRange(start_date="2025-10-01", end_date="2025-10-15")
    result = classifier.classify("revenue for sept 2025", [], loaded_range=loaded, allow_defer=False)
    assert not result.deferred
    assert result.intent == "revenue"


def test_intent_order_is_specific_first():
    assert INTENT_ORDER.index("revenue_by_customer") < INTENT_ORDER.index("revenue")
    assert INTENT_ORDER.index("delayed_orders_by_customer") < INTENT_ORDER.index("delayed_orders")
    assert INTENT_ORDER.index("tax_by_state") < INTENT_ORDER.index("tax")
    assert INTENT_ORDER.index("not_delivered") < INTENT_ORDER.index("delivered_orders")


# ---------------------------------------------------------------------------
# Name and range extraction
# ---------------------------------------------------------------------------

def test_customer_name_strips_trailing_dates():
    assert extract_customer_name("revenue for Sendoso in October 2025") == "Sendoso"
    assert extract_customer_name("Acme's revenue") == "Acme"
    assert extract_customer_name("revenue for October") is None


def test_brand_name():
    assert extract_brand_name("who bought Grey Goose this month") == "Grey Goose"


def test_hint_date_range_nested():
    parsed = hint_date_range({"dateRange": {"startDate": "2025-10-01T00:00:00", "endDate": "2025-10-31"}})
    assert (parsed.start_date, parsed.end_date) == ("2025-10-01", "2025-10-31")
    assert hint_date_range({"intent": "revenue"}) is None
