"""
Bevvi transactions report connector

The upstream endpoint answers with JSON whose ``results`` field holds the
whole report as CSV text.
"""
from typing import List, Optional

import httpx

from app.config import get_settings
from app.connectors.base_connector import BaseConnector, UpstreamAPIError
from app.models.order import Order
from app.services.order_normalizer import parse_csv_to_orders, sample_orders
from app.utils.logger import log


class BevviOrderConnector(BaseConnector):
    """Fetches and normalizes orders from the Bevvi store transactions report"""

    RETRY_JITTER = False

    def __init__(self, settings=None, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__("Bevvi API")
        self.settings = settings or get_settings()
        self.api_url = self.settings.bevvi_api_url
        self.timeout = self.settings.bevvi_api_timeout
        self.transport = transport

        self.RETRY_MAX_ATTEMPTS = self.settings.fetch_max_attempts
        self.RETRY_BASE_DELAY = self.settings.fetch_base_delay
        self.RETRY_MAX_DELAY = self.settings.fetch_max_delay

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.timeout,
            headers={
                "Accept": "application/json",
                "User-Agent": self.settings.bevvi_user_agent,
            },
            transport=self.transport,
        )

    async def validate_connection(self) -> bool:
        return bool(self.api_url)

    async def fetch_raw(self, start_date: str, end_date: str, timeout: Optional[float] = None) -> str:
        """
        Download the report CSV for a date range.

        Raises:
            UpstreamAPIError: non-2xx status or a payload without CSV
            httpx.TransportError: network failures and timeouts
        """
        params = {"startDate": start_date, "endDate": end_date}
        async with self._client(timeout) as client:
            response = await client.get(self.api_url, params=params)

        if response.status_code != 200:
            raise UpstreamAPIError(
                f"Bevvi API returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamAPIError(f"Bevvi API returned invalid JSON: {e}", status_code=response.status_code)

        results = payload.get("results") if isinstance(payload, dict) else None
        if results is None:
            raise UpstreamAPIError("Bevvi API response has no results field", status_code=response.status_code)
        return results if isinstance(results, str) else str(results)

    async def fetch_data(self, start_date: str, end_date: str, timeout: Optional[float] = None) -> List[Order]:
        """Fetch and normalize orders for a date range."""
        csv_text = await self.fetch_raw(start_date, end_date, timeout=timeout)
        orders = parse_csv_to_orders(csv_text, start_date)

        if not orders and self.settings.use_sample_orders:
            log.warning(f"No orders in report for {start_date} to {end_date}, serving sample orders")
            return sample_orders(start_date)
        return orders

    def request_url(self, start_date: str, end_date: str) -> str:
        """Full upstream URL, reported back to clients on failure."""
        return str(httpx.URL(self.api_url, params={"startDate": start_date, "endDate": end_date}))

    def get_status(self) -> dict:
        status = super().get_status()
        status["api_url"] = self.api_url
        status["timeout"] = self.timeout
        return status
