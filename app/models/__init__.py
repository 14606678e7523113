"""Data model for the order dashboard (in-memory, never persisted)"""

from app.models.order import (
    LineItem,
    Order,
    OrderStatus,
    NA_DATE,
    EXCLUDED_REVENUE_STATUSES,
)
from app.models.query import DateRange, Message, QueryResult

__all__ = [
    "LineItem",
    "Order",
    "OrderStatus",
    "NA_DATE",
    "EXCLUDED_REVENUE_STATUSES",
    "DateRange",
    "Message",
    "QueryResult",
]
