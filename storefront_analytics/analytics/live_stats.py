"""
Live order statistics over the full order, payment and refund history.
"""

from datetime import datetime, timedelta
from typing import Optional, Sequence

from .date_range import as_local
from .rates import mean, round_half_up
from .records import OrderRecord, PaymentRecord, RefundRecord
from .snapshot import LiveStats

DELIVERED_STATUSES = frozenset({"delivered", "completed"})
CANCELLED_STATUSES = frozenset({"cancelled"})
PENDING_STATUSES = frozenset({"pending", "processing", "paid", "shipped"})
PAID_PAYMENT_STATUSES = frozenset({"paid", "completed", "success"})


def _status(value: str) -> str:
    return value.strip().lower()


def reduce_live_stats(
    orders: Sequence[OrderRecord],
    payments: Sequence[PaymentRecord],
    refunds: Sequence[RefundRecord],
    active_days: int = 30,
    now: Optional[datetime] = None,
) -> LiveStats:
    """
    Revenue and order status counts.

    Revenue is the sum of settled payments; average order value divides it
    by delivered orders. Active customers are distinct order emails seen
    in the last ``active_days`` days.
    """
    now = as_local(now) if now is not None else datetime.now().astimezone()
    cutoff = now - timedelta(days=active_days)

    statuses = [_status(order.status) for order in orders]
    delivered = sum(1 for s in statuses if s in DELIVERED_STATUSES)

    revenue = sum(p.amount for p in payments if _status(p.status) in PAID_PAYMENT_STATUSES)
    refunded = sum(r.amount for r in refunds)

    active_customers = {
        order.customer_email
        for order in orders
        if order.created_at is not None and as_local(order.created_at) >= cutoff
    }

    return LiveStats(
        total_revenue=round_half_up(revenue, 2),
        net_revenue=round_half_up(revenue - refunded, 2),
        avg_order_value=mean(revenue, delivered, 2),
        total_orders=len(statuses),
        delivered_orders=delivered,
        cancelled_orders=sum(1 for s in statuses if s in CANCELLED_STATUSES),
        pending_orders=sum(1 for s in statuses if s in PENDING_STATUSES),
        refunded_amount=round_half_up(refunded, 2),
        active_customers=len(active_customers),
    )
