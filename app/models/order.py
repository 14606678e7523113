"""
Canonical order record built from the upstream CSV report
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


NA_DATE = "N/A"

# Statuses left out of revenue, GMV and average-order-value figures
EXCLUDED_REVENUE_STATUSES = frozenset({"pending", "cancelled", "canceled", "rejected"})


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELED = "canceled"
    REJECTED = "rejected"


class CamelModel(BaseModel):
    """Serializes to the camelCase JSON the dashboard consumes"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)


class LineItem(CamelModel):
    name: str
    quantity: int = 1
    price: float = 0.0


class Order(CamelModel):
    id: str = ""
    order_date: str = ""
    delivery_date: str = NA_DATE
    delivery_date_time: Optional[str] = None
    month_year: str = ""

    total: float = 0.0
    revenue: float = 0.0
    tax: float = 0.0
    tip: float = 0.0
    shipping_fee: float = 0.0
    delivery_fee: float = 0.0
    service_charge: float = 0.0
    service_charge_tax: float = 0.0
    gift_note_charge: float = 0.0
    promo_disc_amt: float = 0.0

    status: OrderStatus = OrderStatus.PENDING
    delivery_status: str = NA_DATE

    customer_name: str = ""
    establishment: str = ""
    address: str = ""
    phone: str = ""
    items: List[LineItem] = Field(default_factory=list)

    shipping_state: str = ""
    billing_state: str = ""
    shipping_city: str = ""
    shipping_zip: str = ""

    stripe_payment_id: str = ""
    doordash_delivery_window: str = ""
    doordash_pickup_window: str = ""
    doordash_status: str = ""
    sent_to_doordash: bool = False

    @property
    def status_value(self) -> str:
        return self.status.value if isinstance(self.status, OrderStatus) else str(self.status)

    @property
    def counts_toward_revenue(self) -> bool:
        return self.status_value.lower() not in EXCLUDED_REVENUE_STATUSES

    @property
    def has_delivery_date(self) -> bool:
        return bool(self.delivery_date) and self.delivery_date != NA_DATE
