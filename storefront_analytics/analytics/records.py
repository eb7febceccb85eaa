"""
Storefront Record Models

Read-only projections of the rows the pipeline fetches. Each raw row is
validated on its own so that one malformed record is dropped and logged
instead of failing the whole reduction.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, Iterable, List, Optional, Tuple, Type, TypeVar

import structlog
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

logger = structlog.get_logger(__name__)


def _as_text(value: Any) -> Any:
    # UUID primary keys come back as uuid.UUID from asyncpg
    if value is None or isinstance(value, str):
        return value
    return str(value)


def _as_list(value: Any) -> Any:
    return [] if value is None else value


def _as_amount(value: Any) -> Any:
    if value is None:
        return 0.0
    if isinstance(value, Decimal):
        return float(value)
    return value


Identifier = Annotated[str, BeforeValidator(_as_text)]
Amount = Annotated[float, BeforeValidator(_as_amount)]


class StorefrontRecord(BaseModel):
    """Base class for all fetched records"""

    model_config = ConfigDict(extra="ignore", frozen=True)

    created_at: Optional[datetime] = None


class OrderItem(BaseModel):
    """Line item embedded in an order"""

    model_config = ConfigDict(extra="ignore", frozen=True)

    product_id: Optional[Identifier] = None
    name: Optional[str] = None
    price: Amount = 0.0
    quantity: int = 1
    size: Optional[str] = None
    color: Optional[str] = None


class OrderRecord(StorefrontRecord):
    id: Identifier
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    subtotal: Amount = 0.0
    discount: Amount = 0.0
    shipping_cost: Amount = 0.0
    tax: Amount = 0.0
    total: Amount = 0.0
    status: str
    payment_method: Optional[str] = None
    items: Annotated[List[OrderItem], BeforeValidator(_as_list)] = Field(default_factory=list)


class CartItemRecord(StorefrontRecord):
    id: Optional[Identifier] = None
    session_id: Identifier
    product_id: Identifier
    size: Optional[str] = None
    color: Optional[str] = None
    quantity: int = 1
    updated_at: Optional[datetime] = None


class AnalyticsEventRecord(StorefrontRecord):
    id: Optional[Identifier] = None
    session_id: Identifier
    event_type: str
    page_url: str
    page_title: Optional[str] = None
    click_target: Optional[str] = None
    product_id: Optional[Identifier] = None
    scroll_depth: Optional[float] = None
    session_duration: Optional[float] = None
    device_type: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None


class ProductRecord(StorefrontRecord):
    id: Identifier
    slug: Optional[str] = None
    name: str
    category: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[float] = None
    original_price: Optional[float] = None
    stock_count: Optional[int] = None
    visible: bool = True


class WishlistRecord(StorefrontRecord):
    product_id: Identifier
    session_id: Optional[Identifier] = None
    converted_to_cart: bool = False


class RecentlyViewedRecord(StorefrontRecord):
    product_id: Identifier
    session_id: Optional[Identifier] = None
    view_count: Optional[int] = None
    total_time_spent: Optional[float] = None


class FitFeedbackRecord(StorefrontRecord):
    product_id: Optional[Identifier] = None
    fit_rating: str


class AbandonmentReasonRecord(StorefrontRecord):
    session_id: Optional[Identifier] = None
    reason: str


class FunnelEventRecord(StorefrontRecord):
    session_id: Optional[Identifier] = None
    step: str


class PaymentRecord(StorefrontRecord):
    order_id: Optional[Identifier] = None
    amount: Amount
    status: str
    method: Optional[str] = None


class RefundRecord(StorefrontRecord):
    order_id: Optional[Identifier] = None
    amount: Amount
    reason: Optional[str] = None


RecordT = TypeVar("RecordT", bound=BaseModel)


def parse_records(
    model: Type[RecordT],
    rows: Iterable[Dict[str, Any]],
    collection: str,
) -> Tuple[List[RecordT], int]:
    """
    Validate raw rows against a record model.

    Returns:
        Tuple of (valid records, number of rows dropped)
    """
    records: List[RecordT] = []
    skipped = 0

    for index, row in enumerate(rows):
        try:
            records.append(model.model_validate(row))
        except ValidationError as e:
            skipped += 1
            logger.warning(
                "Dropping malformed record",
                collection=collection,
                index=index,
                errors=e.error_count(),
                detail=str(e.errors()[0]["msg"]) if e.errors() else None,
            )

    return records, skipped
