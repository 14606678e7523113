"""
Order retrieval for the dashboard: validation, caching, chunked fetches and
the response envelopes of GET /api/orders.
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional

from app.config import get_settings
from app.connectors.bevvi_connector import BevviOrderConnector
from app.models.order import Order
from app.utils.cache import _MISS, clear_cache, get_cached, orders_cache_key, set_cached
from app.utils.helpers import days_between, local_today, split_date_range, to_date
from app.utils.logger import log


class InvalidDateRangeError(Exception):
    """Request rejected before any upstream call; payload is the response body."""

    def __init__(self, message: str, payload: Dict, status_code: int = 400):
        super().__init__(message)
        self.payload = payload
        self.status_code = status_code


def filter_orders_for_range(orders: List[Order], start_date: str, end_date: str) -> List[Order]:
    """
    Keep orders belonging to [start, end].

    Orders without a delivery date are judged by order date; others are kept
    when either their delivery date or their order date is in range.
    """
    def in_range(day: str) -> bool:
        return bool(day) and start_date <= day <= end_date

    kept = []
    for order in orders:
        if not order.has_delivery_date:
            if in_range(order.order_date):
                kept.append(order)
        elif in_range(order.delivery_date) or in_range(order.order_date):
            kept.append(order)
    return kept


@dataclass
class OrderFetchResult:
    start_date: str
    end_date: str
    orders: List[Order] = field(default_factory=list)
    success: bool = True
    source: str = "Bevvi API"
    cached: bool = False
    chunked: bool = False
    chunks: int = 1
    successful_chunks: int = 1
    error: Optional[str] = None
    status_code: Optional[int] = None
    api_url: Optional[str] = None

    @property
    def incomplete(self) -> bool:
        return self.successful_chunks < self.chunks

    @property
    def date_range(self) -> Dict[str, str]:
        return {"startDate": self.start_date, "endDate": self.end_date}

    def to_response(self) -> Dict:
        """JSON body for GET /api/orders."""
        if not self.success:
            return {
                "success": False,
                "error": "Bevvi API call failed",
                "message": f"Failed to fetch orders from Bevvi API: {self.error}",
                "apiStatus": self.status_code,
                "apiError": self.error,
                "apiUrl": self.api_url,
                "dateRange": self.date_range,
                "data": [],
                "totalOrders": 0,
                "note": "No sample data is substituted; retry or check the upstream API.",
            }

        body = {
            "success": True,
            "data": [order.to_dict() for order in self.orders],
            "dateRange": self.date_range,
            "totalOrders": len(self.orders),
            "message": f"Orders fetched for {self.start_date} to {self.end_date}",
            "source": self.source,
            "cached": self.cached,
        }

        if self.chunked:
            body.update({
                "chunked": True,
                "chunks": self.chunks,
                "successfulChunks": self.successful_chunks,
                "incompleteData": self.incomplete,
            })
            if self.incomplete:
                body["message"] = (
                    f"Partial data: {len(self.orders)} orders from {self.successful_chunks}/"
                    f"{self.chunks} successful chunks. Some data may be missing."
                )
            else:
                body["message"] += f" ({self.chunks} chunks)"
        elif not self.orders:
            body["message"] = f"No orders found for {self.start_date} to {self.end_date}"
            body["note"] = "The Bevvi API returned no orders for this date range."

        return body


class OrderService:
    """Fetches orders through the Bevvi connector with a short-lived cache"""

    def __init__(self, connector: Optional[BevviOrderConnector] = None, settings=None):
        self.settings = settings or get_settings()
        self.connector = connector or BevviOrderConnector(self.settings)

    def validate_range(self, start_date: Optional[str], end_date: Optional[str], today: Optional[date] = None):
        """
        Reject unusable ranges before any network call.

        Raises:
            InvalidDateRangeError: missing or malformed dates, start after
                end, or dates too far in the future
        """
        if not start_date or not end_date:
            raise InvalidDateRangeError(
                "missing dates", {"error": "Start date and end date are required"}
            )

        try:
            start, end = to_date(start_date), to_date(end_date)
        except ValueError:
            raise InvalidDateRangeError(
                "malformed dates", {"error": "Dates must be in YYYY-MM-DD format"}
            )

        today = today or local_today()
        max_future = today + timedelta(days=self.settings.max_future_days)
        base = {
            "success": False,
            "error": "Invalid date range",
            "dateRange": {"startDate": start_date, "endDate": end_date},
            "data": [],
            "totalOrders": 0,
        }

        if start > end:
            raise InvalidDateRangeError("start after end", {
                **base,
                "message": "Start date must be on or before end date.",
            })

        if start > max_future or end > max_future:
            raise InvalidDateRangeError("range in the future", {
                **base,
                "message": (
                    f"Cannot fetch orders for dates more than {self.settings.max_future_days} days "
                    "in the future. Please select dates within the next week."
                ),
                "today": today.isoformat(),
                "maxFuture": max_future.isoformat(),
            })

    async def _fetch_range(self, start_date: str, end_date: str) -> Dict:
        result = await self.connector.sync(start_date, end_date)
        if result["success"]:
            result["data"] = filter_orders_for_range(result["data"], start_date, end_date)
        return result

    async def load_orders(self, start_date: str, end_date: str, use_cache: bool = True) -> OrderFetchResult:
        """
        Orders for a validated range.

        Spans over the chunk threshold are fetched in consecutive chunks;
        failed chunks are reported, not fatal, unless every chunk fails.
        """
        key = orders_cache_key(start_date, end_date)
        if use_cache:
            cached = get_cached(key)
            if cached is not _MISS:
                log.debug(f"Cache hit for {key}")
                return OrderFetchResult(start_date, end_date, orders=cached, source="Cache", cached=True)

        api_url = self.connector.request_url(start_date, end_date)

        if days_between(start_date, end_date) > self.settings.chunk_threshold_days:
            chunks = split_date_range(start_date, end_date, self.settings.chunk_size_days)
            log.info(f"Large range {start_date} to {end_date}: fetching {len(chunks)} chunks")

            orders: List[Order] = []
            successful = 0
            last_failure = None
            for chunk_start, chunk_end in chunks:
                result = await self._fetch_range(chunk_start, chunk_end)
                if result["success"]:
                    orders.extend(result["data"])
                    successful += 1
                else:
                    last_failure = result
                    log.warning(f"Chunk {chunk_start} to {chunk_end} failed: {result['error']}")

            if successful == 0:
                return OrderFetchResult(
                    start_date, end_date, success=False,
                    error=last_failure["error"], status_code=last_failure.get("status_code"),
                    api_url=api_url,
                )

            fetched = OrderFetchResult(
                start_date, end_date, orders=orders, source="Bevvi API (Chunked)",
                chunked=True, chunks=len(chunks), successful_chunks=successful,
            )
            if fetched.incomplete:
                log.warning(f"Only {successful}/{len(chunks)} chunks succeeded, data may be incomplete")
            else:
                set_cached(key, orders, self.settings.orders_cache_ttl)
            return fetched

        result = await self._fetch_range(start_date, end_date)
        if not result["success"]:
            return OrderFetchResult(
                start_date, end_date, success=False,
                error=result["error"], status_code=result.get("status_code"), api_url=api_url,
            )

        set_cached(key, result["data"], self.settings.orders_cache_ttl)
        return OrderFetchResult(start_date, end_date, orders=result["data"])

    async def get_orders(self, start_date: Optional[str], end_date: Optional[str]) -> Dict:
        """Validate, load and build the response body."""
        self.validate_range(start_date, end_date)
        fetched = await self.load_orders(start_date, end_date)
        return fetched.to_response()

    def clear_cache(self) -> int:
        size = clear_cache()
        log.info(f"Cache cleared - {size} entries removed")
        return size


order_service = OrderService()
