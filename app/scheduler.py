"""
Server-side auto-refresh of the most recently requested order range

Uses APScheduler to refetch orders on a fixed interval, independent of any
dashboard being open.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from datetime import datetime
import asyncio
import pytz
from typing import Dict, List, Optional

from app.config import get_settings
from app.models.order import Order
from app.services.order_service import OrderService, filter_orders_for_range, order_service
from app.utils.cache import invalidate, orders_cache_key
from app.utils.helpers import format_countdown, local_now
from app.utils.logger import log
from app.utils.retry import RetryContext


class AutoRefreshScheduler:
    """Owns the refresh timer, the range it refreshes and the last result"""

    JOB_ID = "auto_refresh_orders"

    def __init__(self, service: OrderService, settings=None):
        self.service = service
        self.settings = settings or get_settings()
        self.interval_minutes = self.settings.auto_refresh_minutes

        self._scheduler: Optional[AsyncIOScheduler] = None
        self.current_range: Optional[Dict[str, str]] = None
        self.last_refresh: Optional[datetime] = None
        self.last_refreshed_orders: Optional[Dict] = None

    @property
    def active(self) -> bool:
        return self._scheduler is not None and self._scheduler.get_job(self.JOB_ID) is not None

    def update_range(self, start_date: str, end_date: str):
        """Track the range the dashboard last asked for."""
        self.current_range = {"startDate": start_date, "endDate": end_date}

    def start(self, start_date: Optional[str] = None, end_date: Optional[str] = None):
        """Start (or restart) the periodic refresh. Must be called from a running event loop."""
        if start_date and end_date:
            self.update_range(start_date, end_date)

        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())
            self._scheduler.start()

        self._scheduler.add_job(
            self.refresh_now,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=self.JOB_ID,
            name="Auto-refresh orders",
            replace_existing=True,
        )
        log.info(f"Auto-refresh started every {self.interval_minutes} minutes for {self.current_range}")

    def stop(self):
        if self._scheduler is not None and self._scheduler.get_job(self.JOB_ID):
            self._scheduler.remove_job(self.JOB_ID)
            log.info("Auto-refresh stopped")

    def shutdown(self):
        if self._scheduler is not None:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None
            log.info("Auto-refresh scheduler shut down")

    async def _fetch(self, start_date: str, end_date: str) -> List[Order]:
        orders = await self.service.connector.fetch_data(
            start_date, end_date, timeout=self.settings.auto_refresh_timeout
        )
        return filter_orders_for_range(orders, start_date, end_date)

    async def refresh_now(self) -> Optional[Dict]:
        """
        Refetch the current range.

        Returns the stored refresh record, or None when there is no range
        or every attempt failed.
        """
        if not self.current_range:
            log.info("Auto-refresh skipped: no date range requested yet")
            return None

        start_date = self.current_range["startDate"]
        end_date = self.current_range["endDate"]

        try:
            async with RetryContext(
                max_attempts=self.settings.auto_refresh_attempts,
                base_delay=self.settings.auto_refresh_retry_delay,
                exponential_base=1.0,
                jitter=False,
            ) as ctx:
                orders = await ctx.execute(self._fetch, start_date, end_date)
        except Exception as e:
            log.error(f"Auto-refresh failed for {start_date} to {end_date}: {str(e)}")
            return None

        self.last_refresh = local_now()
        self.last_refreshed_orders = {
            "orders": orders,
            "dateRange": dict(self.current_range),
            "refreshTime": self.last_refresh.isoformat(),
        }
        # The next dashboard request should see the refreshed data
        invalidate(orders_cache_key(start_date, end_date))
        log.info(f"Auto-refresh loaded {len(orders)} orders for {start_date} to {end_date}")
        return self.last_refreshed_orders

    def next_refresh(self) -> Optional[datetime]:
        if not self.active:
            return None
        job = self._scheduler.get_job(self.JOB_ID)
        return getattr(job, "next_run_time", None)

    def status(self) -> Dict:
        now = local_now()
        next_run = self.next_refresh()
        return {
            "active": self.active,
            "interval": f"{self.interval_minutes} minutes",
            "lastRefresh": self.last_refresh.isoformat() if self.last_refresh else None,
            "currentRange": self.current_range,
            "nextRefresh": next_run.isoformat() if next_run else None,
            "timeUntilNext": format_countdown((next_run - now).total_seconds()) if next_run else None,
            "serverTime": now.strftime("%m/%d/%Y, %I:%M:%S %p"),
            "serverTimeISO": now.astimezone(pytz.utc).isoformat(),
        }


auto_refresh = AutoRefreshScheduler(order_service)
