"""
Assistant query types: date ranges, results and chat transcript entries
"""
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from app.models.order import CamelModel


class DateRange(CamelModel):
    start_date: str
    end_date: str
    is_mtd: bool = Field(default=False, alias="isMTD")

    def contains(self, day: str) -> bool:
        """Inclusive string comparison on YYYY-MM-DD dates"""
        return bool(day) and self.start_date <= day <= self.end_date

    def same_bounds(self, other: Optional["DateRange"]) -> bool:
        return (
            other is not None
            and self.start_date == other.start_date
            and self.end_date == other.end_date
        )


class QueryResult(BaseModel):
    """Answer produced for one assistant command"""
    content: str
    data: Optional[dict] = None
    intent: Optional[str] = None
    deferred: bool = False
    required_range: Optional[DateRange] = None


class Message(BaseModel):
    type: Literal["user", "assistant"]
    content: str
    data: Optional[Any] = None
    loading: bool = False
