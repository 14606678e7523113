"""
Prompt parsing with Claude

Turns a free-text assistant question into a structured hint
{intent, customer, brand, startDate, endDate, isMTD, needsClarification,
clarificationNeeded}. The intent classifier treats the hint as optional.
"""
import json
import re
from datetime import date
from typing import Dict, Optional

from anthropic import Anthropic

from app.config import get_settings
from app.utils.helpers import local_today
from app.utils.logger import log


SUPPORTED_INTENTS = [
    "revenue", "tax", "service_charge", "tip", "delivery_charge",
    "delayed_orders", "pending_orders", "delivered_orders", "accepted_orders",
    "total_orders", "order_status_check", "average_order_value",
    "revenue_by_month", "revenue_by_customer", "revenue_by_brand",
    "revenue_by_store", "customers_by_brand", "delayed_orders_by_customer",
    "tax_by_state", "sales_by_state", "unknown",
]

SYSTEM_PROMPT = """You parse natural language questions about order data into structured JSON.

Today's date is {today}.

Fields:
- intent: one of {intents}.
  * revenue: total revenue/sales for a period
  * revenue_by_month: only for an explicit breakdown by month
  * revenue_by_customer / delayed_orders_by_customer: a specific customer is named
  * revenue_by_store: breakdown by store, retailer or establishment
  * revenue_by_brand / customers_by_brand: product brands (Tito's, Grey Goose, ...)
  * total_orders: all orders, order counts, "orders placed today"
  * pending_orders / delivered_orders / accepted_orders: only when that status is named
  * order_status_check: validating or summarizing order statuses
  * unknown: anything not about orders, revenue, tax, tips, delivery or customers
- customer: full company name if mentioned ("Air Culinaire", not "air")
- brand: full brand name if mentioned
- startDate, endDate: YYYY-MM-DD
- isMTD: true for "month to date" or "this month so far"
- needsClarification: true when no timeframe is given, except for status queries
- clarificationNeeded: "date_range", "customer_name" or "brand_name"

Date rules:
- "today" = today for both dates
- "this month", "MTD" = first day of this month to today
- "last month" = full previous month
- "YTD", "this year" = January 1st to today
- "Oct 2025" = 2025-10-01 to 2025-10-31
- an end date in the future becomes today

Return ONLY a JSON object. Omit customer and brand when not mentioned."""


class PromptParserUnavailable(Exception):
    """No Anthropic API key configured."""


class PromptParseError(Exception):
    """The model call failed or returned something that is not JSON."""


def extract_json(text: str) -> Dict:
    """Parse the first JSON object in a model reply (code fences tolerated)."""
    cleaned = re.sub(r"^```(?:json)?|```$", "", text.strip(), flags=re.MULTILINE).strip()
    match = re.search(r"\{.*\}", cleaned, re.DOTALL)
    if not match:
        raise PromptParseError(f"No JSON object in model reply: {text[:100]}")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise PromptParseError(f"Invalid JSON in model reply: {e}")
    if not isinstance(parsed, dict):
        raise PromptParseError("Model reply is not a JSON object")
    return parsed


def normalize_hint(parsed: Dict) -> Dict:
    """Coerce unexpected intents to 'unknown' and drop empty name fields."""
    hint = dict(parsed)
    if hint.get("intent") not in SUPPORTED_INTENTS:
        hint["intent"] = "unknown"
    for key in ("customer", "brand"):
        if not hint.get(key):
            hint.pop(key, None)
    hint["isMTD"] = bool(hint.get("isMTD", False))
    hint["needsClarification"] = bool(hint.get("needsClarification", False))
    if not hint.get("clarificationNeeded"):
        hint["clarificationNeeded"] = None
    return hint


class PromptParserService:
    """Structured intent extraction backed by Claude"""

    def __init__(self, settings=None, client=None):
        self.settings = settings or get_settings()
        self.client = client
        if self.client is None and self.settings.anthropic_api_key:
            self.client = Anthropic(api_key=self.settings.anthropic_api_key)
            log.info("Prompt parser initialized with Claude")
        elif self.client is None:
            log.info("Prompt parser disabled (no ANTHROPIC_API_KEY)")

    def is_available(self) -> bool:
        return self.client is not None

    def parse(self, prompt: str, today: Optional[date] = None) -> Dict:
        """
        Parse a prompt into a hint.

        Returns:
            {"parsed": hint, "usage": {promptTokens, completionTokens, totalTokens}}

        Raises:
            PromptParserUnavailable: no API key configured
            PromptParseError: the call failed or the reply was not JSON
        """
        if not self.is_available():
            raise PromptParserUnavailable("Anthropic API key not configured")

        system = SYSTEM_PROMPT.format(
            today=(today or local_today()).isoformat(),
            intents=", ".join(SUPPORTED_INTENTS),
        )

        try:
            response = self.client.messages.create(
                model=self.settings.llm_model,
                max_tokens=self.settings.prompt_parser_max_tokens,
                temperature=self.settings.prompt_parser_temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}]
            )
        except Exception as e:
            log.error(f"Error parsing prompt: {str(e)}")
            raise PromptParseError(str(e))

        hint = normalize_hint(extract_json(response.content[0].text))
        usage = {
            "promptTokens": response.usage.input_tokens,
            "completionTokens": response.usage.output_tokens,
            "totalTokens": response.usage.input_tokens + response.usage.output_tokens,
        }
        log.info(f"Parsed prompt into intent {hint['intent']} ({usage['totalTokens']} tokens)")
        return {"parsed": hint, "usage": usage}
