"""
Dashboard table helpers: filters, sorting and revenue tiles.
"""
from app.models.order import NA_DATE, Order, OrderStatus
from app.services.dashboard_service import base_revenue, filter_orders, revenue_tiles, sort_orders


def _order(**kwargs):
    defaults = {"id": "A1", "order_date": "2025-10-05", "customer_name": "Acme", "status": OrderStatus.ACCEPTED}
    defaults.update(kwargs)
    return Order(**defaults)


ORDERS = [
    _order(id="A1", delivery_date="2025-10-05", status=OrderStatus.DELIVERED, customer_name="Acme"),
    _order(id="A2", delivery_date="2025-10-06", status=OrderStatus.PENDING, customer_name="Beta"),
    _order(id="A3", delivery_date=NA_DATE, status=OrderStatus.ACCEPTED, customer_name="Gamma"),
    _order(id="A4", delivery_date="2025-10-09", status=OrderStatus.IN_TRANSIT, customer_name="Acme West"),
]


# ---------------------------------------------------------------------------
# Base revenue
# ---------------------------------------------------------------------------

def test_base_revenue_removes_fees_and_adds_back_promo():
    order = _order(
        total=100.0, gift_note_charge=2.0, tax=8.0, tip=5.0, shipping_fee=0.0,
        delivery_fee=5.0, service_charge=10.0, service_charge_tax=1.0, promo_disc_amt=4.0,
    )
    assert base_revenue(order) == 73.0


def test_base_revenue_never_negative():
    assert base_revenue(_order(total=5.0, tax=10.0)) == 0.0


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def test_empty_status_selection_shows_nothing():
    assert filter_orders(ORDERS, statuses=[]) == []


def test_status_filter():
    kept = filter_orders(ORDERS, statuses=["delivered", "in_transit"])
    assert [o.id for o in kept] == ["A1", "A4"]


def test_delivery_windows_relative_to_selected_range():
    def ids(windows):
        return [o.id for o in filter_orders(
            ORDERS, delivery_windows=windows, range_start="2025-10-05", range_end="2025-10-11"
        )]

    assert ids(["today"]) == ["A1"]
    assert ids(["tomorrow"]) == ["A2"]
    assert ids(["this_week"]) == ["A1", "A2", "A4"]
    assert ids(["today", "tomorrow"]) == ["A1", "A2"]
    # N/A delivery dates never match a delivery window
    assert ids(["all_dates"]) == ["A1", "A2", "A4"]


def test_search_matches_id_customer_or_status():
    assert [o.id for o in filter_orders(ORDERS, search="acme")] == ["A1", "A4"]
    assert [o.id for o in filter_orders(ORDERS, search="a3")] == ["A3"]
    assert [o.id for o in filter_orders(ORDERS, search="PENDING")] == ["A2"]


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

def test_na_delivery_dates_sort_first_ascending():
    ordered = sort_orders(ORDERS, "deliveryDate", "asc")
    assert [o.id for o in ordered] == ["A3", "A1", "A2", "A4"]


def test_sort_customer_case_insensitive_descending():
    orders = [_order(id="1", customer_name="beta"), _order(id="2", customer_name="Alpha")]
    assert [o.id for o in sort_orders(orders, "customerName", "desc")] == ["1", "2"]


def test_revenue_column_sorts_by_base_revenue():
    orders = [_order(id="1", total=50.0, tax=45.0), _order(id="2", total=20.0)]
    assert [o.id for o in sort_orders(orders, "revenue", "desc")] == ["2", "1"]


def test_unknown_sort_key_keeps_order():
    assert sort_orders(ORDERS, "nope") == ORDERS


# ---------------------------------------------------------------------------
# Tiles
# ---------------------------------------------------------------------------

def test_revenue_tiles_count_accepted_delivered_in_transit():
    orders = [
        _order(id="1", status=OrderStatus.DELIVERED, total=110.0, revenue=100.0),
        _order(id="2", status=OrderStatus.IN_TRANSIT, total=55.0, revenue=50.0, tax=5.0),
        _order(id="3", status=OrderStatus.PENDING, total=999.0, revenue=999.0),
        _order(id="4", status=OrderStatus.CANCELED, total=10.0, revenue=10.0),
    ]
    tiles = revenue_tiles(orders)

    assert tiles["totalOrders"] == 4
    assert tiles["acceptedOrders"] == 2
    assert tiles["totalRevenueWithFees"] == 165.0
    assert tiles["totalRevenue"] == 150.0
    assert tiles["baseRevenue"] == 160.0
    assert tiles["statusCounts"] == {"delivered": 1, "in_transit": 1, "pending": 1, "canceled": 1}
