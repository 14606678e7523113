"""
Dashboard table helpers: filtering, sorting and revenue tiles
"""
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from app.models.order import NA_DATE, Order
from app.utils.helpers import round_money, to_date


DELIVERY_WINDOWS = ("all_dates", "today", "tomorrow", "this_week")
TILE_STATUSES = frozenset({"accepted", "delivered", "in_transit"})
NA_SORT_DATE = "1900-01-01"

SORT_FIELDS = {
    "id": lambda o: o.id,
    "orderDate": lambda o: o.order_date,
    "deliveryDate": lambda o: o.delivery_date,
    "customerName": lambda o: o.customer_name,
    "establishment": lambda o: o.establishment,
    "status": lambda o: o.status_value,
    "deliveryStatus": lambda o: o.delivery_status,
    "total": lambda o: o.total,
    "revenue": lambda o: base_revenue(o),
}


def base_revenue(order: Order) -> float:
    """Order total with every fee taken out and the promo discount added back, never negative."""
    value = (
        order.total
        - order.gift_note_charge
        - order.tax
        - order.tip
        - order.shipping_fee
        - order.delivery_fee
        - order.service_charge
        - order.service_charge_tax
        + order.promo_disc_amt
    )
    return max(0.0, value)


def _in_window(delivery_date: str, window: str, range_start: str, range_end: str) -> bool:
    if window == "all_dates":
        return True
    if window == "today":
        return delivery_date == range_start
    if window == "tomorrow":
        return delivery_date == (to_date(range_start) + timedelta(days=1)).isoformat()
    if window == "this_week":
        return range_start <= delivery_date <= range_end
    return False


def filter_orders(
    orders: Iterable[Order],
    statuses: Optional[List[str]] = None,
    delivery_windows: Optional[List[str]] = None,
    search: Optional[str] = None,
    range_start: Optional[str] = None,
    range_end: Optional[str] = None,
) -> List[Order]:
    """
    Apply the dashboard filters.

    An empty status list selects nothing. Delivery windows are relative to
    the selected range: "today" is its first day, "tomorrow" the day after,
    "this_week" the whole range. Orders with an "N/A" delivery date never
    match a delivery window. Search matches id, customer or status.
    """
    filtered = list(orders)

    if statuses is not None:
        wanted = set(statuses)
        filtered = [o for o in filtered if o.status_value in wanted]

    if delivery_windows:
        start = range_start or ""
        end = range_end or start
        filtered = [
            o for o in filtered
            if o.delivery_date != NA_DATE
            and any(_in_window(o.delivery_date, w, start, end) for w in delivery_windows)
        ]

    if search:
        term = search.lower()
        filtered = [
            o for o in filtered
            if term in o.id.lower() or term in o.customer_name.lower() or term in o.status_value.lower()
        ]

    return filtered


def sort_orders(orders: Iterable[Order], key: str, direction: str = "asc") -> List[Order]:
    """Sort by a dashboard column; "N/A" dates sort as the earliest date."""
    getter = SORT_FIELDS.get(key)
    if getter is None:
        return list(orders)

    def sort_value(order: Order):
        value = getter(order)
        if key in ("orderDate", "deliveryDate") and value == NA_DATE:
            return NA_SORT_DATE
        if isinstance(value, str):
            return value.lower()
        return value

    return sorted(orders, key=sort_value, reverse=direction == "desc")


def revenue_tiles(orders: Iterable[Order]) -> Dict:
    """Headline figures over accepted, delivered and in-transit orders."""
    orders = list(orders)
    counted = [o for o in orders if o.status_value in TILE_STATUSES]
    status_counts: Dict[str, int] = {}
    for order in orders:
        status_counts[order.status_value] = status_counts.get(order.status_value, 0) + 1

    return {
        "totalOrders": len(orders),
        "acceptedOrders": len(counted),
        "totalRevenueWithFees": round_money(sum(o.total for o in counted)),
        "totalRevenue": round_money(sum(o.revenue or 0.0 for o in counted)),
        "baseRevenue": round_money(sum(base_revenue(o) for o in counted)),
        "statusCounts": status_counts,
    }
