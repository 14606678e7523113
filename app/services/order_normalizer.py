"""
Order normalization: maps the upstream transactions report onto Order records.

Header names are matched case-insensitively against a fixed vocabulary;
unknown columns are ignored. Every field degrades to a default instead of
raising, so one bad cell never costs a whole report.
"""
import re
import time
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

from dateutil import parser as date_parser

from app.models.order import LineItem, NA_DATE, Order, OrderStatus
from app.services.csv_parser import parse_csv_line, parse_header_line, split_csv_rows
from app.utils.helpers import local_now, parse_money, to_local
from app.utils.logger import log


CORPORATE_GIFT_PREFIX = "GD-BEVVI-"

DEFAULT_CUSTOMER = "Unknown Customer"
DEFAULT_ESTABLISHMENT = "Unknown Establishment"

# Substring checks against the raw status text, first match wins
STATUS_KEYWORDS = [
    ("delivered", OrderStatus.DELIVERED),
    ("transit", OrderStatus.IN_TRANSIT),
    ("accepted", OrderStatus.ACCEPTED),
    ("canceled", OrderStatus.CANCELED),
    ("cancelled", OrderStatus.CANCELED),
    ("rejected", OrderStatus.REJECTED),
    ("pending", OrderStatus.PENDING),
]

MONEY_COLUMNS = {
    "totalamount": "total",
    "revenue": "revenue",
    "tax": "tax",
    "tip": "tip",
    "shippingfee": "shipping_fee",
    "deliveryfee": "delivery_fee",
    "servicecharge": "service_charge",
    "servicechargetax": "service_charge_tax",
    "giftnotecharge": "gift_note_charge",
    "promodiscamt": "promo_disc_amt",
}

TEXT_COLUMNS = {
    "monthyear": "month_year",
    "stripepaymentid": "stripe_payment_id",
    "doordashdeliverywindow": "doordash_delivery_window",
    "doordashpickupwindow": "doordash_pickup_window",
    "doordashstatus": "doordash_status",
    "address": "address",
    "phone": "phone",
    "shippingstate": "shipping_state",
    "shipping_state": "shipping_state",
    "state": "shipping_state",
    "billingstate": "billing_state",
    "billing_state": "billing_state",
    "shippingcity": "shipping_city",
    "shipping_city": "shipping_city",
    "city": "shipping_city",
    "shippingzip": "shipping_zip",
    "shipping_zip": "shipping_zip",
    "zip": "shipping_zip",
    "zipcode": "shipping_zip",
}

AIRPORT_STATES = {
    "LGB": "CA", "LAX": "CA", "SFO": "CA", "SAN": "CA", "SMF": "CA", "SJC": "CA",
    "TEB": "NJ", "EWR": "NJ",
    "DAL": "TX", "DFW": "TX", "IAH": "TX", "AUS": "TX",
    "SDL": "AZ", "PHX": "AZ",
    "PBI": "FL", "MIA": "FL", "FLL": "FL", "TPA": "FL", "MCO": "FL", "JAX": "FL",
    "BOS": "MA", "ORH": "MA",
    "JFK": "NY", "LGA": "NY", "BUF": "NY",
    "ORD": "IL", "CHI": "IL", "MDW": "IL",
    "ATL": "GA", "DEN": "CO", "SEA": "WA", "PDX": "OR", "LAS": "NV",
    "MSP": "MN", "DTW": "MI", "PHL": "PA", "CLT": "NC", "BWI": "MD",
    "DCA": "DC", "IAD": "VA", "SLC": "UT", "HNL": "HI",
}

US_STATES = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas",
    "CA": "California", "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware",
    "FL": "Florida", "GA": "Georgia", "HI": "Hawaii", "ID": "Idaho",
    "IL": "Illinois", "IN": "Indiana", "IA": "Iowa", "KS": "Kansas",
    "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine", "MD": "Maryland",
    "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota", "MS": "Mississippi",
    "MO": "Missouri", "MT": "Montana", "NE": "Nebraska", "NV": "Nevada",
    "NH": "New Hampshire", "NJ": "New Jersey", "NM": "New Mexico", "NY": "New York",
    "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio", "OK": "Oklahoma",
    "OR": "Oregon", "PA": "Pennsylvania", "RI": "Rhode Island", "SC": "South Carolina",
    "SD": "South Dakota", "TN": "Tennessee", "TX": "Texas", "UT": "Utah",
    "VT": "Vermont", "VA": "Virginia", "WA": "Washington", "WV": "West Virginia",
    "WI": "Wisconsin", "WY": "Wyoming", "DC": "District of Columbia",
}

SHIPPING_DELAY_BUSINESS_DAYS = 3
DELIVERY_GRACE_MINUTES = 30


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------

def normalize_status(raw: Optional[str]) -> OrderStatus:
    """Map free-text source status onto the fixed enum (default pending)."""
    text = (raw or "").lower()
    for keyword, status in STATUS_KEYWORDS:
        if keyword in text:
            return status
    return OrderStatus.PENDING


def parse_order_date(value: Optional[str], fallback: str) -> str:
    """
    Parse the order date column into YYYY-MM-DD.

    Tries M/D/YYYY first, then generic parsing; keeps the fallback date
    when both fail.
    """
    if not value:
        return fallback

    parts = value.strip().split("/")
    if len(parts) == 3:
        try:
            return date(int(parts[2][:4]), int(parts[0]), int(parts[1])).isoformat()
        except ValueError:
            return fallback

    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError):
        return fallback
    if parsed.tzinfo is not None:
        parsed = to_local(parsed)
    return parsed.date().isoformat()


def parse_delivery_datetime(value: Optional[str]) -> tuple:
    """
    Parse the delivery instant.

    Returns:
        (delivery_date, delivery_date_time); ("N/A", None) when absent or
        unparsable. The calendar date comes from the local (business
        timezone) fields of the instant, not its UTC fields.
    """
    if not value or not value.strip() or value.strip() in ("null", "undefined"):
        return NA_DATE, None
    try:
        moment = date_parser.parse(value)
    except (ValueError, OverflowError):
        return NA_DATE, None
    return to_local(moment).date().isoformat(), value


def extract_state(text: Optional[str]) -> Optional[str]:
    """
    Guess a US state from free text such as an establishment name.

    Airport codes win over two-letter abbreviations, which win over full
    state names.
    """
    if not text:
        return None

    for code in re.findall(r"\b([A-Z]{3})\b", text):
        if code in AIRPORT_STATES:
            return AIRPORT_STATES[code]

    for abbr in re.findall(r"\b([A-Z]{2})\b", text):
        if abbr in US_STATES:
            return abbr

    lower = text.lower()
    for abbr, name in US_STATES.items():
        if name.lower() in lower:
            return abbr
    return None


def count_business_days(start: date, end: date) -> int:
    """Weekdays between start and end, both inclusive."""
    days = 0
    current = start
    while current <= end:
        if current.weekday() < 5:
            days += 1
        current += timedelta(days=1)
    return days


def compute_delivery_status(order: Order, now: Optional[datetime] = None) -> str:
    """
    Classify an order as "On Time", "Delayed" or "N/A".

    Shipped orders (shipping fee > 0) are late once more than three
    business days pass without them leaving the store. Local deliveries are
    late when the delivery time is more than 30 minutes in the past and they
    are not delivered, or were delivered that late.
    """
    now = to_local(now) if now else local_now()
    status = order.status_value

    if order.shipping_fee > 0:
        if status in (OrderStatus.DELIVERED.value, OrderStatus.IN_TRANSIT.value):
            return "On Time"
        try:
            ordered = date.fromisoformat(order.order_date)
        except ValueError:
            return "N/A"
        if count_business_days(ordered, now.date()) > SHIPPING_DELAY_BUSINESS_DAYS:
            return "Delayed"
        return "On Time"

    if order.has_delivery_date:
        try:
            if order.delivery_date_time:
                due = to_local(date_parser.parse(order.delivery_date_time))
            else:
                due = to_local(datetime.fromisoformat(order.delivery_date))
        except (ValueError, OverflowError):
            return "N/A"

        minutes_until_due = (due - now).total_seconds() / 60
        if minutes_until_due < -DELIVERY_GRACE_MINUTES:
            return "Delayed"
        return "On Time"

    return "N/A"


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------

def create_order(
    headers: List[str],
    values: List[str],
    index: int,
    fallback_order_date: str,
    now: Optional[datetime] = None
) -> Order:
    """Build one Order from a header row and a value row."""
    fields: Dict[str, object] = {"order_date": fallback_order_date, "delivery_date": ""}

    for position, header in enumerate(headers):
        value = values[position] if position < len(values) else ""
        key = header.lower().strip()

        if key == "ordernum":
            fields["id"] = value or f"ORD{int(time.time() * 1000)}-{index}"
        elif key == "customername":
            fields["customer_name"] = value or DEFAULT_CUSTOMER
        elif key == "estname":
            fields["establishment"] = value or DEFAULT_ESTABLISHMENT
        elif key in MONEY_COLUMNS:
            fields[MONEY_COLUMNS[key]] = parse_money(value)
        elif key == "status":
            fields["status"] = normalize_status(value)
        elif key == "date":
            fields["order_date"] = parse_order_date(value, fallback_order_date)
        elif key == "deliverydatetime":
            fields["delivery_date"], fields["delivery_date_time"] = parse_delivery_datetime(value)
        elif key == "senttodoordash":
            fields["sent_to_doordash"] = value.strip().lower() == "true"
        elif key in TEXT_COLUMNS:
            fields[TEXT_COLUMNS[key]] = value

    order = Order(**fields)
    return finalize_order(order, index, now=now)


def finalize_order(order: Order, index: int = 0, now: Optional[datetime] = None) -> Order:
    """Post-pass: defaults, gift-order dates, state, synthetic line item, delivery status."""
    if not order.id:
        order.id = f"ORD{int(time.time() * 1000)}-{index}"
    if not order.customer_name:
        order.customer_name = DEFAULT_CUSTOMER
    if not order.establishment:
        order.establishment = DEFAULT_ESTABLISHMENT

    if not order.shipping_state:
        order.shipping_state = extract_state(order.establishment) or ""

    if not order.delivery_date or order.id.startswith(CORPORATE_GIFT_PREFIX):
        order.delivery_date = NA_DATE

    if not order.items:
        order.items = [LineItem(name=f"Order from {order.establishment}", quantity=1, price=order.total)]

    order.delivery_status = compute_delivery_status(order, now=now)
    return order


def parse_csv_to_orders(
    csv_text: str,
    fallback_order_date: str,
    now: Optional[datetime] = None,
    on_skip: Optional[Callable[[int, int], None]] = None
) -> List[Order]:
    """
    Parse the report CSV into orders.

    Args:
        csv_text: Raw CSV (header line first)
        fallback_order_date: Order date used when a row has no usable date
        now: Reference time for delivery status (defaults to local now)
        on_skip: Called with (line_number, field_count) for each skipped row

    Returns:
        One Order per data line having at least as many fields as headers.
        An empty list when the report has no data lines.
    """
    lines = split_csv_rows(csv_text)
    if len(lines) < 2:
        log.warning("Report has no data lines")
        return []
    if len(lines) == 2 and len(lines[1].strip()) < 10:
        log.warning("Report data line too short to hold an order")
        return []

    headers = parse_header_line(lines[0])
    orders = []
    skipped = 0

    for line_number, line in enumerate(lines[1:], start=1):
        values = parse_csv_line(line)
        if len(values) < len(headers):
            skipped += 1
            log.warning(
                f"Skipping line {line_number}: {len(values)} fields, expected {len(headers)}"
            )
            if on_skip:
                on_skip(line_number, len(values))
            continue
        orders.append(create_order(headers, values, line_number - 1, fallback_order_date, now=now))

    log.info(f"Parsed {len(orders)} orders ({skipped} lines skipped)")
    return orders


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------

def sample_orders(order_date: str) -> List[Order]:
    """
    Three illustrative orders for demos and tests.

    Only served by the connector when ``use_sample_orders`` is enabled.
    """
    samples = [
        Order(
            id="ORD001",
            customer_name="John Smith",
            order_date=order_date,
            delivery_date=order_date,
            status=OrderStatus.DELIVERED,
            total=45.99,
            revenue=45.99,
            establishment="Downtown Wine & Spirits",
            address="123 Main St, New York, NY 10001",
            phone="(555) 123-4567",
            items=[
                LineItem(name="Cabernet Sauvignon", quantity=1, price=29.99),
                LineItem(name="Craft IPA 6-pack", quantity=1, price=16.00),
            ],
        ),
        Order(
            id="ORD002",
            customer_name="Sarah Johnson",
            order_date=order_date,
            delivery_date=order_date,
            status=OrderStatus.IN_TRANSIT,
            total=67.50,
            revenue=67.50,
            establishment="Uptown Liquors",
            address="456 Oak Ave, Brooklyn, NY 11201",
            phone="(555) 987-6543",
            items=[
                LineItem(name="Champagne", quantity=1, price=52.50),
                LineItem(name="Sparkling Water", quantity=3, price=5.00),
            ],
        ),
        Order(
            id="ORD003",
            customer_name="Mike Wilson",
            order_date=order_date,
            delivery_date="2025-08-17",
            status=OrderStatus.PENDING,
            total=89.99,
            revenue=89.99,
            establishment="Harbor Bottle Shop",
            address="789 Pine St, Queens, NY 11375",
            phone="(555) 456-7890",
            items=[
                LineItem(name="Single Malt Scotch", quantity=1, price=89.99),
            ],
        ),
    ]
    return [finalize_order(order, index) for index, order in enumerate(samples)]
