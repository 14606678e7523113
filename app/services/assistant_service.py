"""
Order assistant: chat transcript plus command execution over loaded orders
"""
import asyncio
from typing import Dict, List, Optional

from app.models.query import DateRange, Message, QueryResult
from app.services.fetch_orchestrator import FetchOrchestrator, timeout_for
from app.services.order_service import InvalidDateRangeError, OrderService
from app.services.prompt_parser_service import (
    PromptParseError,
    PromptParserService,
    PromptParserUnavailable,
)
from app.utils.logger import log


WELCOME_MESSAGE = (
    "Hi! Ask me about your orders, for example \"revenue for October\", "
    "\"delayed orders this week\" or \"revenue by store last month\"."
)


class ChatSession:
    """In-memory, ordered transcript for one assistant session"""

    def __init__(self):
        self.messages: List[Message] = []
        self.clear()

    def add_user(self, content: str) -> Message:
        message = Message(type="user", content=content)
        self.messages.append(message)
        return message

    def add_assistant(self, result: QueryResult) -> Message:
        message = Message(type="assistant", content=result.content, data=result.data, loading=result.deferred)
        self.messages.append(message)
        return message

    def clear(self):
        self.messages = [Message(type="assistant", content=WELCOME_MESSAGE)]

    def to_list(self) -> List[Dict]:
        return [message.model_dump() for message in self.messages]


class AssistantService:
    """Answers commands, loading the orders a command needs first"""

    def __init__(
        self,
        service: OrderService,
        prompt_parser: Optional[PromptParserService] = None,
        orchestrator: Optional[FetchOrchestrator] = None
    ):
        self.service = service
        self.prompt_parser = prompt_parser
        self.orchestrator = orchestrator or FetchOrchestrator()
        self.session = ChatSession()
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop = None

    def _command_lock(self) -> asyncio.Lock:
        """One command at a time per event loop; they share the loaded orders."""
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def _parse_hint(self, command: str) -> Optional[Dict]:
        if self.prompt_parser is None or not self.prompt_parser.is_available():
            return None
        try:
            return self.prompt_parser.parse(command)["parsed"]
        except (PromptParserUnavailable, PromptParseError) as e:
            log.warning(f"Prompt parser unavailable, using built-in heuristics: {e}")
            return None

    async def load_range(self, date_range: DateRange):
        """Make date_range the loaded range (no fetch when it already is)."""
        if not self.orchestrator.request_fetch(date_range):
            return None
        fetched = await self.service.load_orders(date_range.start_date, date_range.end_date)
        return self.orchestrator.on_orders_loaded(date_range, fetched.orders if fetched.success else [])

    async def _resolve(self, required: DateRange) -> QueryResult:
        try:
            self.service.validate_range(required.start_date, required.end_date)
        except InvalidDateRangeError as e:
            self.orchestrator.cancel()
            return QueryResult(content=e.payload.get("message") or e.payload.get("error"))

        try:
            fetched = await asyncio.wait_for(
                self.service.load_orders(required.start_date, required.end_date),
                timeout=timeout_for(required),
            )
        except asyncio.TimeoutError:
            log.warning(f"Orders for {required.start_date} to {required.end_date} did not load in time")
            return self.orchestrator.expire()

        replay = self.orchestrator.on_orders_loaded(required, fetched.orders if fetched.success else [])
        return replay or self.orchestrator.expire()

    async def ask(
        self,
        command: str,
        hint: Optional[Dict] = None,
        current_range: Optional[DateRange] = None,
        use_prompt_parser: bool = True
    ) -> QueryResult:
        """
        Answer one command and record it in the transcript.

        Args:
            command: User text
            hint: Pre-parsed hint; parsed with Claude when omitted and available
            current_range: Range the dashboard is showing, loaded first
            use_prompt_parser: Set False to rely on heuristics only
        """
        if hint is None and use_prompt_parser:
            hint = self._parse_hint(command)

        async with self._command_lock():
            self.session.add_user(command)

            if current_range is not None:
                await self.load_range(current_range)

            result = self.orchestrator.submit(command, hint=hint)
            if result.deferred:
                result = await self._resolve(result.required_range)

            self.session.add_assistant(result)
        return result
