"""
Intent classification and aggregation for assistant commands.

A command is matched against an ordered list of intent matchers; the first
match answers it. Several intents share trigger words ("revenue" also
appears in "revenue by store"), so the more specific matchers come first
and the order of INTENT_ORDER must not change.

An optional structured hint (from the prompt parser) can name the intent,
customer, brand and date range directly. The classifier works without it.
"""
import re
from collections import OrderedDict, defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from app.models.order import Order, OrderStatus
from app.models.query import DateRange, QueryResult
from app.services.customer_matching import names_match, normalize_name, suggest_customers
from app.services.date_parser import MONTHS, parse_date
from app.utils.helpers import format_currency, round_money, safe_divide
from app.utils.logger import log


INTENT_ORDER = [
    "delayed_orders_by_customer",
    "delayed_orders",
    "revenue_by_customer",
    "revenue_by_store",
    "revenue_by_brand",
    "customers_by_brand",
    "revenue_by_month",
    "revenue",
    "service_charge",
    "tip",
    "delivery_charge",
    "tax_by_state",
    "sales_by_state",
    "tax",
    "pending_orders",
    "not_delivered",
    "delivered_orders",
    "order_status_check",
    "accepted_orders",
    "total_orders",
    "average_order_value",
]

UNKNOWN_INTENT_RESPONSE = (
    "I can only help with questions about orders, revenue, fees, taxes, tips "
    "and deliveries. Try asking something like \"revenue for October\"."
)

HELP_RESPONSE = (
    "I can help with: revenue (\"revenue for Oct 2025\"), delayed orders, "
    "pending or delivered orders, order counts, average order value, taxes, "
    "tips, service and delivery charges, and breakdowns by customer, store, "
    "month or state."
)

MAX_LISTED_ORDERS = 10

CUSTOMER_PATTERNS = [
    re.compile(r"\bcustomer\s+([A-Za-z0-9&'.\- ]+)", re.IGNORECASE),
    re.compile(r"\b(?:for|from)\s+([A-Za-z0-9&'.\- ]+)", re.IGNORECASE),
    re.compile(r"([A-Za-z0-9&.\-]+(?:\s+[A-Za-z0-9&.\-]+)*)'s\s+(?:revenue|orders|sales|delayed)", re.IGNORECASE),
]

BRAND_PATTERNS = [
    re.compile(r"\b(?:bought|ordered|purchased)\s+([A-Za-z0-9&'.\- ]+)", re.IGNORECASE),
    re.compile(r"\bbrand\s+([A-Za-z0-9&'.\- ]+)", re.IGNORECASE),
]

# Tokens peeled off the end of an extracted name ("Sendoso in October 2025")
TRAILING_TOKENS = {
    "in", "for", "during", "on", "since", "of", "the", "this", "last", "month",
    "week", "year", "today", "ytd", "mtd", "so", "far", "to", "date", "orders",
    "order", "revenue", "please",
}

# Extracted "names" that are really part of the question
GENERIC_NAMES = {
    "store", "stores", "retailer", "retailers", "establishment", "brand",
    "brands", "state", "states", "month", "months", "customer", "customers",
    "all", "orders", "all orders", "delivered", "pending", "accepted",
    "delayed", "everyone", "each", "every",
}


@dataclass
class QueryContext:
    text: str
    lower: str
    hint_intent: Optional[str]
    customer: Optional[str]
    brand: Optional[str]
    date_range: Optional[DateRange]
    orders: List[Order]
    all_orders: List[Order]

    @property
    def period_text(self) -> str:
        if not self.date_range:
            return ""
        suffix = " (Month-to-Date)" if self.date_range.is_mtd else ""
        return f" for {self.date_range.start_date} to {self.date_range.end_date}{suffix}"

    @property
    def accepted(self) -> List[Order]:
        return [o for o in self.orders if o.counts_toward_revenue]


@dataclass
class IntentMatcher:
    """One tagged intent: matches on the hint or on a text heuristic."""
    intent: str
    heuristic: Callable[[QueryContext], bool]
    handler: Callable[[QueryContext], QueryResult]
    hint_intents: tuple = field(default_factory=tuple)

    def matches(self, ctx: QueryContext) -> bool:
        if ctx.hint_intent and (ctx.hint_intent == self.intent or ctx.hint_intent in self.hint_intents):
            return True
        return self.heuristic(ctx)


# ---------------------------------------------------------------------------
# Name extraction
# ---------------------------------------------------------------------------

def _clean_name(raw: str) -> Optional[str]:
    """Strip trailing date words and reject month-only or numeric names."""
    raw = re.split(r"[?!,;]", raw)[0]
    tokens = raw.strip().rstrip(".").split()

    while tokens:
        token = tokens[-1].lower().strip(".")
        if token in TRAILING_TOKENS or token in MONTHS or token.isdigit():
            tokens.pop()
        else:
            break
    while tokens and tokens[0].lower() in ("the", "customer"):
        tokens.pop(0)

    name = " ".join(tokens).strip()
    if not name:
        return None
    lowered = name.lower()
    if lowered in MONTHS or lowered in GENERIC_NAMES:
        return None
    if re.fullmatch(r"[\d\s/\-.]+", name):
        return None
    if all(word in GENERIC_NAMES or word in TRAILING_TOKENS for word in lowered.split()):
        return None
    return name


def extract_customer_name(text: str) -> Optional[str]:
    """Customer name mentioned in free text, or None."""
    for pattern in CUSTOMER_PATTERNS:
        match = pattern.search(text)
        if match:
            name = _clean_name(match.group(1))
            if name:
                return name
    return None


def extract_brand_name(text: str) -> Optional[str]:
    for pattern in BRAND_PATTERNS:
        match = pattern.search(text)
        if match:
            name = _clean_name(match.group(1))
            if name:
                return name
    return None


def _hint_value(hint: Optional[dict], key: str) -> Optional[str]:
    if not hint:
        return None
    value = hint.get(key)
    return value.strip() if isinstance(value, str) and value.strip() else None


def hint_date_range(hint: Optional[dict]) -> Optional[DateRange]:
    """Date range carried by a parsed-prompt hint, flat or nested."""
    if not hint:
        return None
    source = hint.get("dateRange") if isinstance(hint.get("dateRange"), dict) else hint
    start = source.get("startDate")
    end = source.get("endDate")
    if not start or not end:
        return None
    return DateRange(
        start_date=str(start)[:10],
        end_date=str(end)[:10],
        is_mtd=bool(source.get("isMTD", hint.get("isMTD", False))),
    )


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------

def _has(*words: str) -> Callable[[QueryContext], bool]:
    return lambda ctx: any(word in ctx.lower for word in words)


def _summarize_order(order: Order) -> dict:
    return {
        "id": order.id,
        "customerName": order.customer_name,
        "establishment": order.establishment,
        "orderDate": order.order_date,
        "deliveryDate": order.delivery_date,
        "status": order.status_value,
        "deliveryStatus": order.delivery_status,
        "total": order.total,
        "revenue": order.revenue,
    }


class IntentClassifier:
    """Answers assistant commands from an in-memory order set."""

    def __init__(self):
        self.matchers: List[IntentMatcher] = self._build_matchers()

    def _build_matchers(self) -> List[IntentMatcher]:
        revenue_words = _has("revenue", "gmv", "total sales", "sales")
        by_state = _has("by state", "per state", "each state")

        table: Dict[str, IntentMatcher] = {
            "delayed_orders_by_customer": IntentMatcher(
                "delayed_orders_by_customer",
                lambda ctx: "delayed" in ctx.lower and ctx.customer is not None,
                self._delayed_by_customer,
            ),
            "delayed_orders": IntentMatcher(
                "delayed_orders", _has("delayed", "late orders", "running late"), self._delayed,
            ),
            "revenue_by_customer": IntentMatcher(
                "revenue_by_customer",
                lambda ctx: revenue_words(ctx) and not by_state(ctx) and ctx.customer is not None,
                self._revenue_by_customer,
            ),
            "revenue_by_store": IntentMatcher(
                "revenue_by_store",
                _has("by store", "per store", "by retailer", "per retailer", "by establishment",
                     "top stores", "top retailers", "which retailers", "which stores"),
                self._revenue_by_store,
            ),
            "revenue_by_brand": IntentMatcher(
                "revenue_by_brand", _has("by brand", "top brands", "brand performance"), self._revenue_by_brand,
            ),
            "customers_by_brand": IntentMatcher(
                "customers_by_brand",
                lambda ctx: bool(re.search(r"\b(which customers|who)\s+(bought|ordered|purchased)\b", ctx.lower)),
                self._customers_by_brand,
            ),
            "revenue_by_month": IntentMatcher(
                "revenue_by_month", _has("by month", "per month", "monthly", "each month"), self._revenue_by_month,
            ),
            "revenue": IntentMatcher(
                "revenue", lambda ctx: revenue_words(ctx) and not by_state(ctx), self._revenue,
            ),
            "service_charge": IntentMatcher(
                "service_charge", _has("service charge", "service fee"), self._service_charge,
            ),
            "tip": IntentMatcher(
                "tip", lambda ctx: bool(re.search(r"\b(tips?|gratuity|gratuities)\b", ctx.lower)), self._tip,
            ),
            "delivery_charge": IntentMatcher(
                "delivery_charge",
                _has("delivery fee", "delivery charge", "shipping fee", "shipping charge"),
                self._delivery_charge,
            ),
            "tax_by_state": IntentMatcher(
                "tax_by_state", lambda ctx: "tax" in ctx.lower and by_state(ctx), self._tax_by_state,
            ),
            "sales_by_state": IntentMatcher(
                "sales_by_state", lambda ctx: revenue_words(ctx) and by_state(ctx), self._sales_by_state,
            ),
            "tax": IntentMatcher(
                "tax", lambda ctx: bool(re.search(r"\btax(es)?\b", ctx.lower)), self._tax,
            ),
            "pending_orders": IntentMatcher("pending_orders", _has("pending"), self._pending),
            "not_delivered": IntentMatcher(
                "not_delivered",
                _has("not delivered", "undelivered", "not been delivered", "not yet delivered",
                     "haven't been delivered", "have not been delivered"),
                self._not_delivered,
            ),
            "delivered_orders": IntentMatcher("delivered_orders", _has("delivered"), self._delivered),
            "order_status_check": IntentMatcher(
                "order_status_check",
                _has("status", "are all orders", "are any orders", "how many rejected",
                     "how many canceled", "how many cancelled"),
                self._status_check,
            ),
            "accepted_orders": IntentMatcher("accepted_orders", _has("accepted"), self._accepted),
            "total_orders": IntentMatcher(
                "total_orders",
                _has("how many orders", "total orders", "order count", "number of orders",
                     "show me orders", "all orders", "orders placed", "list orders"),
                self._total_orders,
            ),
            "average_order_value": IntentMatcher(
                "average_order_value",
                lambda ctx: "average" in ctx.lower or bool(re.search(r"\baov\b", ctx.lower)),
                self._average_order_value,
            ),
        }
        return [table[intent] for intent in INTENT_ORDER]

    def classify(
        self,
        text: str,
        orders: List[Order],
        hint: Optional[dict] = None,
        loaded_range: Optional[DateRange] = None,
        allow_defer: bool = True
    ) -> QueryResult:
        """
        Answer one command.

        Args:
            text: Raw user command
            orders: Orders currently loaded
            hint: Optional parsed-prompt structure {intent, customer, brand, startDate, endDate, isMTD}
            loaded_range: Date range the loaded orders were fetched for,
                None when nothing is loaded yet
            allow_defer: When False, answer from loaded orders even if the
                command needs a different range

        Returns:
            QueryResult; deferred=True with required_range when the command
            needs orders for a range that is not loaded
        """
        hint_intent = _hint_value(hint, "intent")
        if hint_intent == "unknown":
            return QueryResult(content=UNKNOWN_INTENT_RESPONSE, intent="unknown")

        date_range = hint_date_range(hint) or parse_date(text)

        # Nothing loaded counts as the wrong range
        if date_range and allow_defer and (loaded_range is None or not loaded_range.same_bounds(date_range)):
            log.info(f"Deferring command until orders for {date_range.start_date} to {date_range.end_date} load")
            return QueryResult(
                content=f"Loading orders for {date_range.start_date} to {date_range.end_date}...",
                deferred=True,
                required_range=date_range,
            )

        relevant = [o for o in orders if date_range.contains(o.order_date)] if date_range else list(orders)

        ctx = QueryContext(
            text=text,
            lower=text.lower(),
            hint_intent=hint_intent,
            customer=_hint_value(hint, "customer") or extract_customer_name(text),
            brand=_hint_value(hint, "brand") or extract_brand_name(text),
            date_range=date_range,
            orders=relevant,
            all_orders=list(orders),
        )

        for matcher in self.matchers:
            if matcher.matches(ctx):
                result = matcher.handler(ctx)
                result.intent = matcher.intent
                return result

        return QueryResult(content=HELP_RESPONSE, intent="help")

    # -----------------------------------------------------------------------
    # Customer helpers
    # -----------------------------------------------------------------------

    def _match_customer(self, ctx: QueryContext, orders: List[Order]) -> tuple:
        """(matching orders, matched names, suggestions)"""
        matched = [o for o in orders if names_match(ctx.customer, o.customer_name)]
        matched_names = sorted({o.customer_name for o in matched})
        exact = any(normalize_name(n) == normalize_name(ctx.customer) for n in matched_names)

        if matched and exact:
            return matched, matched_names, []
        if matched:
            return matched, matched_names, matched_names

        known_names = [o.customer_name for o in ctx.all_orders]
        return [], [], suggest_customers(ctx.customer, known_names)

    def _customer_not_found(self, ctx: QueryContext, suggestions: List[str]) -> QueryResult:
        content = f"No orders found for \"{ctx.customer}\"{ctx.period_text}."
        if suggestions:
            content += " Did you mean: " + ", ".join(suggestions) + "?"
        return QueryResult(
            content=content,
            data={"type": "customer_not_found", "customer": ctx.customer, "suggestions": suggestions},
        )

    # -----------------------------------------------------------------------
    # Handlers
    # -----------------------------------------------------------------------

    def _order_list(self, title: str, orders: List[Order], ctx: QueryContext) -> QueryResult:
        return QueryResult(
            content=f"Found {len(orders)} {title}{ctx.period_text}.",
            data={
                "type": "orders",
                "orders": [_summarize_order(o) for o in orders[:MAX_LISTED_ORDERS]],
                "total": len(orders),
            },
        )

    def _delayed(self, ctx: QueryContext) -> QueryResult:
        delayed = [o for o in ctx.orders if (o.delivery_status or "").lower() == "delayed"]
        return self._order_list("delayed orders", delayed, ctx)

    def _delayed_by_customer(self, ctx: QueryContext) -> QueryResult:
        if not ctx.customer:
            return self._delayed(ctx)
        matched, names, suggestions = self._match_customer(ctx, ctx.orders)
        if not matched:
            return self._customer_not_found(ctx, suggestions)
        delayed = [o for o in matched if (o.delivery_status or "").lower() == "delayed"]
        result = self._order_list(f"delayed orders for {ctx.customer}", delayed, ctx)
        result.data.update({"customer": ctx.customer, "matchedCustomers": names, "suggestions": suggestions})
        return result

    def _revenue_payload(self, orders: List[Order]) -> dict:
        accepted = [o for o in orders if o.counts_toward_revenue]
        revenue = round_money(sum(o.revenue for o in accepted))
        return {
            "type": "revenue",
            "revenue": revenue,
            "orderCount": len(accepted),
            "averageOrderValue": round_money(safe_divide(revenue, len(accepted))),
        }

    def _revenue(self, ctx: QueryContext) -> QueryResult:
        payload = self._revenue_payload(ctx.orders)
        if not ctx.orders:
            return QueryResult(content=f"No orders found{ctx.period_text}.", data=payload)
        return QueryResult(
            content=f"Total revenue{ctx.period_text}: {format_currency(payload['revenue'])} "
                    f"from {payload['orderCount']} orders.",
            data=payload,
        )

    def _revenue_by_customer(self, ctx: QueryContext) -> QueryResult:
        if not ctx.customer:
            return self._revenue(ctx)
        matched, names, suggestions = self._match_customer(ctx, ctx.orders)
        if not matched:
            return self._customer_not_found(ctx, suggestions)
        payload = self._revenue_payload(matched)
        payload.update({"customer": ctx.customer, "matchedCustomers": names, "suggestions": suggestions})
        content = (
            f"Revenue for {ctx.customer}{ctx.period_text}: {format_currency(payload['revenue'])} "
            f"from {payload['orderCount']} orders."
        )
        if suggestions:
            content += " Matched customers: " + ", ".join(names) + "."
        return QueryResult(content=content, data=payload)

    def _breakdown(self, ctx: QueryContext, group_by: str, key_fn, value_fn, label: str) -> QueryResult:
        totals: Dict[str, float] = defaultdict(float)
        counts: Dict[str, int] = defaultdict(int)
        for order in ctx.accepted:
            key = key_fn(order) or "Unknown"
            totals[key] += value_fn(order)
            counts[key] += 1

        if group_by == "month":
            keys = sorted(totals)
        else:
            keys = sorted(totals, key=lambda k: (-totals[k], k))
        rows = [{"key": k, "value": round_money(totals[k]), "orderCount": counts[k]} for k in keys]
        total = round_money(sum(totals.values()))

        if not rows:
            return QueryResult(
                content=f"No accepted orders found{ctx.period_text}.",
                data={"type": "breakdown", "groupBy": group_by, "rows": [], "total": 0.0},
            )
        lines = [f"{r['key']}: {format_currency(r['value'])}" for r in rows[:MAX_LISTED_ORDERS]]
        return QueryResult(
            content=f"{label}{ctx.period_text}:\n" + "\n".join(lines),
            data={"type": "breakdown", "groupBy": group_by, "rows": rows, "total": total},
        )

    def _revenue_by_store(self, ctx: QueryContext) -> QueryResult:
        return self._breakdown(ctx, "store", lambda o: o.establishment, lambda o: o.revenue, "Revenue by store")

    def _revenue_by_month(self, ctx: QueryContext) -> QueryResult:
        return self._breakdown(ctx, "month", lambda o: o.order_date[:7], lambda o: o.revenue, "Revenue by month")

    def _tax_by_state(self, ctx: QueryContext) -> QueryResult:
        return self._breakdown(ctx, "state", lambda o: o.shipping_state, lambda o: o.tax, "Tax by state")

    def _sales_by_state(self, ctx: QueryContext) -> QueryResult:
        return self._breakdown(ctx, "state", lambda o: o.shipping_state, lambda o: o.revenue, "Sales by state")

    def _revenue_by_brand(self, ctx: QueryContext) -> QueryResult:
        totals: Dict[str, float] = defaultdict(float)
        for order in ctx.accepted:
            for item in order.items:
                if ctx.brand and ctx.brand.lower() not in item.name.lower():
                    continue
                totals[item.name] += item.price * item.quantity
        rows = [
            {"key": name, "value": round_money(value)}
            for name, value in sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))
        ]
        if not rows:
            return QueryResult(
                content=f"No product sales found{ctx.period_text}.",
                data={"type": "breakdown", "groupBy": "brand", "rows": [], "total": 0.0},
            )
        lines = [f"{r['key']}: {format_currency(r['value'])}" for r in rows[:MAX_LISTED_ORDERS]]
        return QueryResult(
            content=f"Revenue by brand{ctx.period_text}:\n" + "\n".join(lines),
            data={
                "type": "breakdown",
                "groupBy": "brand",
                "rows": rows,
                "total": round_money(sum(totals.values())),
            },
        )

    def _customers_by_brand(self, ctx: QueryContext) -> QueryResult:
        if not ctx.brand:
            return QueryResult(content="Which brand are you asking about?", data=None)
        brand = ctx.brand.lower()
        customers: Dict[str, int] = OrderedDict()
        for order in ctx.orders:
            if any(brand in item.name.lower() for item in order.items):
                customers[order.customer_name] = customers.get(order.customer_name, 0) + 1
        if not customers:
            return QueryResult(
                content=f"No customers bought {ctx.brand}{ctx.period_text}.",
                data={"type": "customers", "brand": ctx.brand, "customers": []},
            )
        rows = [{"customer": name, "orderCount": count} for name, count in customers.items()]
        return QueryResult(
            content=f"Customers who bought {ctx.brand}{ctx.period_text}: " + ", ".join(customers),
            data={"type": "customers", "brand": ctx.brand, "customers": rows},
        )

    def _amount(self, ctx: QueryContext, metric: str, label: str, value_fn) -> QueryResult:
        accepted = ctx.accepted
        amount = round_money(sum(value_fn(o) for o in accepted))
        return QueryResult(
            content=f"Total {label}{ctx.period_text}: {format_currency(amount)} across {len(accepted)} orders.",
            data={"type": "amount", "metric": metric, "amount": amount, "orderCount": len(accepted)},
        )

    def _service_charge(self, ctx: QueryContext) -> QueryResult:
        return self._amount(ctx, "service_charge", "service charges", lambda o: o.service_charge)

    def _tip(self, ctx: QueryContext) -> QueryResult:
        return self._amount(ctx, "tip", "tips", lambda o: o.tip)

    def _delivery_charge(self, ctx: QueryContext) -> QueryResult:
        return self._amount(ctx, "delivery_charge", "delivery charges", lambda o: o.delivery_fee + o.shipping_fee)

    def _tax(self, ctx: QueryContext) -> QueryResult:
        return self._amount(ctx, "tax", "tax", lambda o: o.tax)

    def _with_status(self, ctx: QueryContext, *statuses: OrderStatus) -> List[Order]:
        wanted = {s.value for s in statuses}
        return [o for o in ctx.orders if o.status_value in wanted]

    def _pending(self, ctx: QueryContext) -> QueryResult:
        return self._order_list("pending orders", self._with_status(ctx, OrderStatus.PENDING), ctx)

    def _not_delivered(self, ctx: QueryContext) -> QueryResult:
        open_orders = self._with_status(ctx, OrderStatus.PENDING, OrderStatus.ACCEPTED, OrderStatus.IN_TRANSIT)
        return self._order_list("orders not yet delivered", open_orders, ctx)

    def _delivered(self, ctx: QueryContext) -> QueryResult:
        return self._order_list("delivered orders", self._with_status(ctx, OrderStatus.DELIVERED), ctx)

    def _accepted(self, ctx: QueryContext) -> QueryResult:
        return self._order_list("accepted orders", self._with_status(ctx, OrderStatus.ACCEPTED), ctx)

    def _status_check(self, ctx: QueryContext) -> QueryResult:
        counts = OrderedDict((status.value, 0) for status in OrderStatus)
        for order in ctx.orders:
            counts[order.status_value] = counts.get(order.status_value, 0) + 1
        parts = [f"{status}: {count}" for status, count in counts.items() if count]
        summary = ", ".join(parts) if parts else "no orders"
        return QueryResult(
            content=f"Order status breakdown{ctx.period_text}: {summary}.",
            data={"type": "status_summary", "counts": dict(counts), "total": len(ctx.orders)},
        )

    def _total_orders(self, ctx: QueryContext) -> QueryResult:
        return QueryResult(
            content=f"There are {len(ctx.orders)} orders{ctx.period_text}.",
            data={"type": "count", "count": len(ctx.orders)},
        )

    def _average_order_value(self, ctx: QueryContext) -> QueryResult:
        accepted = ctx.accepted
        revenue = sum(o.revenue for o in accepted)
        average = round_money(safe_divide(revenue, len(accepted)))
        return QueryResult(
            content=f"Average order value{ctx.period_text}: {format_currency(average)} "
                    f"across {len(accepted)} orders.",
            data={"type": "aov", "average": average, "orderCount": len(accepted)},
        )
