"""
Fee allocation: per-order marketing fee rates and per-retailer summaries.
"""
from typing import Dict, Iterable, List, Optional, Tuple

from app.models.order import Order
from app.utils.helpers import round_money


DEFAULT_FEE_RATE = 0.20

# Retailer names are matched exactly (after trimming), case-sensitive
TEN_PERCENT_RETAILERS = frozenset({
    "Wine & Spirits Market",
    "Freshco",
    "National Liquor and Package",
    "Mavy Clippership Wine & Spirits",
    "LIQUOR MASTER",
    "Sam's Liquor & Market",
    "Dallas Fine Wine",
    "Super Duper Liquor",
    "Fountain Liquor & Spirits",
    "Aficionados",
    "Wine & Spirits Discount Warehouse",
    "Youbooze",
    "Garfields Beverage",
    "ROYAL WINES & SPIRITS",
    "Sundance Liquor & Gifts",
})

SUMMARY_SORT_KEYS = ("name", "gmv", "serviceFee", "retailerFee", "totalCharges", "orderCount")


def calculate_fee_rate(retailer: Optional[str], customer: Optional[str]) -> float:
    """
    Resolve the fee rate for a (retailer, customer) pair.

    Rules are checked in order, first match wins. Customer names are
    compared lower-cased; retailer names are compared as written.
    """
    customer_key = (customer or "").lower()
    retailer_key = (retailer or "").strip()

    if customer_key == "vistajet":
        return 0.08
    if retailer_key in TEN_PERCENT_RETAILERS:
        return 0.10
    if customer_key == "sendoso":
        return 0.12
    if retailer_key == "In Good Taste Wines":
        return 0.25
    return DEFAULT_FEE_RATE


def calculate_order_fees(order: Order) -> Dict[str, float]:
    """Service and retailer fee for one order; zero revenue means zero fees."""
    if not order.revenue:
        return {"serviceFee": 0.0, "retailerFee": 0.0}

    rate = calculate_fee_rate(order.establishment, order.customer_name)
    return {
        "serviceFee": order.service_charge,
        "retailerFee": round_money(order.revenue * rate),
    }


def accepted_orders_in_range(
    orders: Iterable[Order],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None
) -> List[Order]:
    """Orders counting toward GMV whose order date falls in [start, end]."""
    selected = []
    for order in orders:
        if start_date and order.order_date < start_date:
            continue
        if end_date and order.order_date > end_date:
            continue
        if order.counts_toward_revenue:
            selected.append(order)
    return selected


def summarize_by_retailer(
    orders: Iterable[Order],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    sort_key: str = "gmv",
    direction: str = "desc"
) -> Tuple[List[Dict], Dict]:
    """
    Group accepted orders by retailer.

    Returns:
        (rows, totals). Each row has name, gmv, serviceFee, retailerFee,
        totalCharges and orderCount, rounded to cents. Recomputed on every
        call; nothing is cached.
    """
    groups: Dict[str, Dict] = {}

    for order in accepted_orders_in_range(orders, start_date, end_date):
        name = order.establishment or "Unknown Retailer"
        fees = calculate_order_fees(order)
        row = groups.setdefault(name, {
            "name": name,
            "gmv": 0.0,
            "serviceFee": 0.0,
            "retailerFee": 0.0,
            "totalCharges": 0.0,
            "orderCount": 0,
        })
        row["gmv"] += order.revenue
        row["serviceFee"] += fees["serviceFee"]
        row["retailerFee"] += fees["retailerFee"]
        row["totalCharges"] += fees["serviceFee"] + fees["retailerFee"]
        row["orderCount"] += 1

    rows = list(groups.values())
    for row in rows:
        for key in ("gmv", "serviceFee", "retailerFee", "totalCharges"):
            row[key] = round_money(row[key])

    if sort_key not in SUMMARY_SORT_KEYS:
        sort_key = "gmv"
    if sort_key == "name":
        rows.sort(key=lambda r: r["name"].lower(), reverse=direction == "desc")
    else:
        rows.sort(key=lambda r: r[sort_key], reverse=direction == "desc")

    totals = {
        "gmv": round_money(sum(r["gmv"] for r in rows)),
        "serviceFee": round_money(sum(r["serviceFee"] for r in rows)),
        "retailerFee": round_money(sum(r["retailerFee"] for r in rows)),
        "totalCharges": round_money(sum(r["totalCharges"] for r in rows)),
        "orderCount": sum(r["orderCount"] for r in rows),
    }
    return rows, totals
