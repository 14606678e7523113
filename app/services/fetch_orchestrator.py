"""
Deferred command execution against asynchronous order loads.

When a command needs orders for a range that is not loaded, the command is
parked (AwaitingFetch) and a fetch for that range is requested. It is
replayed once orders for exactly that range arrive and at least one of them
falls inside it (Ready), or when the timeout for the range elapses, in
which case it runs against whatever is loaded.
"""
import math
import time
from enum import Enum
from typing import Callable, List, Optional

from app.models.order import Order
from app.models.query import DateRange, QueryResult
from app.services.intent_service import IntentClassifier
from app.utils.helpers import days_between
from app.utils.logger import log


BASE_TIMEOUT_SECONDS = 10.0
PER_CHUNK_TIMEOUT_SECONDS = 5.0
MAX_TIMEOUT_SECONDS = 60.0
CHUNK_DAYS = 30


class FetchState(str, Enum):
    IDLE = "idle"
    AWAITING_FETCH = "awaiting_fetch"
    READY = "ready"


def timeout_for(date_range: DateRange) -> float:
    """Seconds to wait for a range: base plus extra per additional 30-day chunk, capped."""
    span_days = days_between(date_range.start_date, date_range.end_date) + 1
    chunks = max(1, math.ceil(span_days / CHUNK_DAYS))
    return min(BASE_TIMEOUT_SECONDS + PER_CHUNK_TIMEOUT_SECONDS * (chunks - 1), MAX_TIMEOUT_SECONDS)


class FetchOrchestrator:
    """Owns the loaded order set and at most one pending command."""

    def __init__(
        self,
        classifier: Optional[IntentClassifier] = None,
        fetcher: Optional[Callable[[DateRange], None]] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.classifier = classifier or IntentClassifier()
        self.fetcher = fetcher
        self.clock = clock

        self.state = FetchState.IDLE
        self.orders: List[Order] = []
        self.loaded_range: Optional[DateRange] = None
        self.requested_range: Optional[DateRange] = None

        self.pending_command: Optional[str] = None
        self.pending_hint: Optional[dict] = None
        self.pending_range: Optional[DateRange] = None
        self.deadline: Optional[float] = None

    def submit(self, command: str, hint: Optional[dict] = None) -> QueryResult:
        """Run a command now, or park it until its orders are loaded."""
        result = self.classifier.classify(command, self.orders, hint=hint, loaded_range=self.loaded_range)
        if not result.deferred:
            return result

        self.pending_command = command
        self.pending_hint = hint
        self.pending_range = result.required_range
        self.deadline = self.clock() + timeout_for(result.required_range)
        self.state = FetchState.AWAITING_FETCH
        self.request_fetch(result.required_range)
        return result

    def request_fetch(self, date_range: DateRange) -> bool:
        """
        Ask for orders in a range.

        Returns False without fetching when that range is already loaded.
        Otherwise the loaded orders are cleared so nothing stale is read
        while the fetch is in flight.
        """
        if self.loaded_range is not None and self.loaded_range.same_bounds(date_range):
            return False

        self.orders = []
        self.loaded_range = None
        self.requested_range = date_range
        log.info(f"Requesting orders for {date_range.start_date} to {date_range.end_date}")
        if self.fetcher:
            self.fetcher(date_range)
        return True

    def on_orders_loaded(self, date_range: DateRange, orders: List[Order]) -> Optional[QueryResult]:
        """
        Record a completed fetch.

        Responses for a range other than the one last requested are stale
        and dropped. Returns the replayed command's result when the pending
        command became ready.
        """
        if self.requested_range is not None and not self.requested_range.same_bounds(date_range):
            log.info(
                f"Discarding late response for {date_range.start_date} to {date_range.end_date}"
            )
            return None

        self.orders = list(orders)
        self.loaded_range = date_range
        self.requested_range = None

        if self.state == FetchState.AWAITING_FETCH and self._is_ready():
            self.state = FetchState.READY
            return self._replay()
        return None

    def check_timeout(self, now: Optional[float] = None) -> Optional[QueryResult]:
        """Replay the pending command with current data once its deadline passed."""
        if self.state != FetchState.AWAITING_FETCH:
            return None
        now = self.clock() if now is None else now
        if now < self.deadline:
            return None
        log.warning(f"Fetch for pending command timed out, answering with {len(self.orders)} loaded orders")
        return self._replay()

    def expire(self) -> Optional[QueryResult]:
        """Replay the pending command immediately with whatever is loaded."""
        if self.state != FetchState.AWAITING_FETCH:
            return None
        return self._replay()

    def _is_ready(self) -> bool:
        if not self.loaded_range or not self.loaded_range.same_bounds(self.pending_range):
            return False
        return any(self.pending_range.contains(order.order_date) for order in self.orders)

    def _replay(self) -> QueryResult:
        result = self.classifier.classify(
            self.pending_command,
            self.orders,
            hint=self.pending_hint,
            loaded_range=self.loaded_range,
            allow_defer=False,
        )
        self.pending_command = None
        self.pending_hint = None
        self.pending_range = None
        self.deadline = None
        self.state = FetchState.IDLE
        return result

    def cancel(self):
        """Drop the pending command without answering it."""
        self.pending_command = None
        self.pending_hint = None
        self.pending_range = None
        self.deadline = None
        self.requested_range = None
        self.state = FetchState.IDLE
