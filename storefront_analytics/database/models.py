"""
Database Models - Storefront Tables

The storefront's operational tables as the analytics pipeline reads them.
Rows are written by the storefront and admin back-office; this package
only reads them (and the seeding script writes demo data).

Tables:
- orders, cart_items, products: commerce core
- analytics_events: client-side instrumentation
- checkout_funnel, cart_abandonment_reasons, product_fit_feedback,
  wishlist, recently_viewed: auxiliary engagement tables
- payments, refunds: money movement for live order stats
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class OrderStatus(str, Enum):
    """Workflow labels the admin screens assign; the column stays free text"""
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class FunnelStep(str, Enum):
    """Checkout funnel steps in order"""
    HOMEPAGE = "homepage"
    PRODUCT = "product"
    CART = "cart"
    SHIPPING = "shipping"
    PAYMENT = "payment"
    REVIEW = "review"
    COMPLETE = "complete"


# =============================================================================
# COMMERCE TABLES
# =============================================================================

class Product(Base):
    """Product catalog entry"""
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    brand: Mapped[Optional[str]] = mapped_column(String(100))
    price: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    original_price: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    stock_count: Mapped[int] = mapped_column(Integer, default=0)
    visible: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_products_category", "category"),
    )


class Order(Base):
    """
    Checkout order.

    ``items`` embeds the purchased lines as JSON; ``total`` is stored as
    entered and is not reconciled against the other monetary columns.
    """
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50))
    subtotal: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    discount: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    shipping_cost: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    tax: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    total: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    status: Mapped[str] = mapped_column(String(50), default=OrderStatus.PENDING.value)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50))
    items: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index("ix_orders_created_at", "created_at"),
        Index("ix_orders_status", "status"),
    )


class CartItem(Base):
    """Anonymous cart line keyed by session"""
    __tablename__ = "cart_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    size: Mapped[Optional[str]] = mapped_column(String(20))
    color: Mapped[Optional[str]] = mapped_column(String(50))
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index("ix_cart_items_created_at", "created_at"),
        Index("ix_cart_items_session", "session_id"),
    )


class Payment(Base):
    """Payment recorded against an order"""
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    order_id: Mapped[Optional[str]] = mapped_column(String(36))
    amount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    method: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Refund(Base):
    """Refund issued against an order"""
    __tablename__ = "refunds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    order_id: Mapped[Optional[str]] = mapped_column(String(36))
    amount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# =============================================================================
# ENGAGEMENT TABLES
# =============================================================================

class AnalyticsEvent(Base):
    """Client-side instrumentation event (append-only)"""
    __tablename__ = "analytics_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    page_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    page_title: Mapped[Optional[str]] = mapped_column(String(500))
    click_target: Mapped[Optional[str]] = mapped_column(String(100))
    product_id: Mapped[Optional[str]] = mapped_column(String(36))
    scroll_depth: Mapped[Optional[float]] = mapped_column(Float)
    session_duration: Mapped[Optional[float]] = mapped_column(Float)
    device_type: Mapped[Optional[str]] = mapped_column(String(20))
    browser: Mapped[Optional[str]] = mapped_column(String(50))
    os: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_analytics_events_created_at", "created_at"),
        Index("ix_analytics_events_session", "session_id"),
    )


class FunnelEvent(Base):
    """Checkout funnel step reached by a session"""
    __tablename__ = "checkout_funnel"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    session_id: Mapped[Optional[str]] = mapped_column(String(64))
    step: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class AbandonmentReason(Base):
    """Exit-survey answer for an abandoned cart"""
    __tablename__ = "cart_abandonment_reasons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    session_id: Mapped[Optional[str]] = mapped_column(String(64))
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class FitFeedback(Base):
    """Post-purchase fit rating"""
    __tablename__ = "product_fit_feedback"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    product_id: Mapped[Optional[str]] = mapped_column(String(36))
    fit_rating: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class WishlistItem(Base):
    """Wishlist entry"""
    __tablename__ = "wishlist"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    session_id: Mapped[Optional[str]] = mapped_column(String(64))
    converted_to_cart: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class RecentlyViewedItem(Base):
    """Per-session product view tally"""
    __tablename__ = "recently_viewed"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    session_id: Mapped[Optional[str]] = mapped_column(String(64))
    view_count: Mapped[int] = mapped_column(Integer, default=1)
    total_time_spent: Mapped[Optional[float]] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


COLLECTION_MODELS: Dict[str, Type[Base]] = {
    model.__tablename__: model
    for model in (
        Product,
        Order,
        CartItem,
        Payment,
        Refund,
        AnalyticsEvent,
        FunnelEvent,
        AbandonmentReason,
        FitFeedback,
        WishlistItem,
        RecentlyViewedItem,
    )
}
