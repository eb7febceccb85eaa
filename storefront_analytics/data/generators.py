"""
Synthetic Storefront Data Generator

Generates browsing sessions and everything they leave behind:
- Products with slugs and categories
- Analytics events (page views, thumbnail and add-to-cart clicks)
- Cart items, wishlist entries and recently viewed rows
- Checkout funnel steps and abandonment reasons
- Orders with payments, refunds and fit feedback

Rows are plain dicts keyed by collection name, ready for
InMemoryDataSource or a bulk insert into the storefront tables.
"""

import random
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from faker import Faker

from storefront_analytics.analytics.reducers import (
    ADD_TO_CART_TARGET,
    DEFAULT_ABANDONMENT_REASONS,
    DEFAULT_FIT_RATINGS,
    FUNNEL_STEPS,
    PAGE_VIEW,
)
from storefront_analytics.analytics.traffic import PRODUCT_THUMBNAIL_TARGET

Row = Dict[str, Any]


# =============================================================================
# CONFIGURATION
# =============================================================================

CATEGORIES = ["sneakers", "running", "boots", "sandals", "accessories"]
BRANDS = ["Stride", "Northpeak", "Aero", "Fieldline", "Kinetic"]
SIZES = ["38", "39", "40", "41", "42", "43", "44", "45"]
COLORS = ["black", "white", "grey", "navy", "red"]
STATIC_PAGES = ["/", "/new-arrivals", "/sale", "/faq", "/shipping"]

DEVICE_TYPES = [("desktop", 0.45), ("mobile", 0.45), ("tablet", 0.10)]
BROWSERS = [("Chrome", 0.55), ("Safari", 0.30), ("Firefox", 0.10), ("Edge", 0.05)]
PAYMENT_METHODS = ["card", "bank_transfer", "cash_on_delivery"]

ORDER_STATUSES = [
    ("pending", 0.10),
    ("paid", 0.15),
    ("processing", 0.10),
    ("shipped", 0.15),
    ("delivered", 0.40),
    ("completed", 0.05),
    ("cancelled", 0.05),
]

EMPTY_DATASET = (
    "products", "orders", "cart_items", "analytics_events", "checkout_funnel",
    "cart_abandonment_reasons", "product_fit_feedback", "wishlist",
    "recently_viewed", "payments", "refunds",
)


class StorefrontDataGenerator:
    """
    Seeded generator of a coherent storefront dataset.

    Example:
        dataset = StorefrontDataGenerator(seed=7).generate(sessions=300, days=30)
        source = InMemoryDataSource(dataset)
    """

    def __init__(self, seed: int = 42, now: Optional[datetime] = None):
        self.rng = random.Random(seed)
        self.fake = Faker()
        self.fake.seed_instance(seed)
        self.now = now or datetime.now().astimezone()

    def _pick(self, weighted):
        values, weights = zip(*weighted)
        return self.rng.choices(values, weights=weights, k=1)[0]

    def _id(self) -> str:
        return str(uuid.UUID(int=self.rng.getrandbits(128), version=4))

    # -- catalog ------------------------------------------------------------

    def products(self, n: int = 40) -> List[Row]:
        rows = []
        for i in range(n):
            name = f"{self.rng.choice(BRANDS)} {self.fake.word().title()} {i + 1}"
            price = round(self.rng.uniform(40, 220), 2)
            rows.append({
                "id": self._id(),
                "slug": name.lower().replace(" ", "-"),
                "name": name,
                "category": self.rng.choice(CATEGORIES),
                "brand": name.split(" ")[0],
                "price": price,
                "original_price": round(price * self.rng.choice([1.0, 1.0, 1.2, 1.35]), 2),
                "stock_count": self.rng.randint(0, 120),
                "visible": self.rng.random() > 0.05,
                "created_at": self.now - timedelta(days=self.rng.randint(60, 400)),
            })
        return rows

    # -- sessions -----------------------------------------------------------

    def generate(self, sessions: int = 200, days: int = 30, products: int = 40) -> Dict[str, List[Row]]:
        dataset: Dict[str, List[Row]] = {name: [] for name in EMPTY_DATASET}
        dataset["products"] = self.products(products)
        catalog = [p for p in dataset["products"] if p["visible"]] or dataset["products"]

        for _ in range(sessions):
            started = self.now - timedelta(seconds=self.rng.randint(60, days * 86400))
            self._session(dataset, catalog, started)

        return dataset

    def _session(self, dataset: Dict[str, List[Row]], catalog: List[Row], started: datetime) -> None:
        session_id = self._id()
        device = self._pick(DEVICE_TYPES)
        browser = self._pick(BROWSERS)
        moment = started
        viewed: List[Row] = []
        carted: List[Row] = []

        def event(page_url: str, event_type: str = PAGE_VIEW, **extra: Any) -> None:
            dataset["analytics_events"].append({
                "id": self._id(),
                "session_id": session_id,
                "event_type": event_type,
                "page_url": page_url,
                "page_title": extra.pop("page_title", None),
                "device_type": device,
                "browser": browser,
                "os": {"desktop": "Windows", "mobile": "iOS", "tablet": "Android"}[device],
                "created_at": moment,
                **extra,
            })

        for _ in range(self.rng.choices([1, 2, 3, 5, 8], weights=[30, 25, 20, 15, 10])[0]):
            moment += timedelta(seconds=self.rng.randint(5, 240))
            if self.rng.random() < 0.6:
                product = self.rng.choice(catalog)
                viewed.append(product)
                page = f"/product/{product['slug']}"
                event(
                    page,
                    product_id=product["id"],
                    page_title=product["name"],
                    scroll_depth=self.rng.randint(10, 100),
                    session_duration=self.rng.randint(5, 600),
                )
                if self.rng.random() < 0.25:
                    carted.append(product)
                    event(page, "click", product_id=product["id"], click_target=ADD_TO_CART_TARGET)
            else:
                event(
                    self.rng.choice(STATIC_PAGES),
                    scroll_depth=self.rng.randint(5, 100),
                    session_duration=self.rng.randint(5, 300),
                )
                if catalog and self.rng.random() < 0.4:
                    product = self.rng.choice(catalog)
                    event("/", "click", product_id=product["id"], click_target=PRODUCT_THUMBNAIL_TARGET)

        for product in dict.fromkeys(p["id"] for p in viewed):
            dataset["recently_viewed"].append({
                "id": self._id(),
                "product_id": product,
                "session_id": session_id,
                "view_count": sum(1 for p in viewed if p["id"] == product),
                "total_time_spent": self.rng.randint(10, 900),
                "created_at": moment,
            })
            if self.rng.random() < 0.15:
                dataset["wishlist"].append({
                    "id": self._id(),
                    "product_id": product,
                    "session_id": session_id,
                    "converted_to_cart": any(p["id"] == product for p in carted),
                    "created_at": moment,
                })

        if not carted:
            return
        self._checkout(dataset, session_id, carted, moment)

    def _checkout(self, dataset: Dict[str, List[Row]], session_id: str, carted: List[Row], moment: datetime) -> None:
        for product in carted:
            dataset["cart_items"].append({
                "id": self._id(),
                "session_id": session_id,
                "product_id": product["id"],
                "size": self.rng.choice(SIZES) if self.rng.random() > 0.05 else None,
                "color": self.rng.choice(COLORS),
                "quantity": self.rng.randint(1, 2),
                "created_at": moment,
                "updated_at": moment,
            })

        reached = self.rng.randint(2, len(FUNNEL_STEPS))
        for step in FUNNEL_STEPS[:reached]:
            dataset["checkout_funnel"].append({
                "id": self._id(),
                "session_id": session_id,
                "step": step,
                "created_at": moment,
            })

        if FUNNEL_STEPS[reached - 1] != "complete":
            if self.rng.random() < 0.5:
                dataset["cart_abandonment_reasons"].append({
                    "id": self._id(),
                    "session_id": session_id,
                    "reason": self.rng.choice(DEFAULT_ABANDONMENT_REASONS),
                    "created_at": moment,
                })
            return

        self._order(dataset, carted, moment + timedelta(minutes=self.rng.randint(1, 20)))

    def _order(self, dataset: Dict[str, List[Row]], carted: List[Row], placed: datetime) -> None:
        items = [
            {
                "product_id": p["id"],
                "name": p["name"],
                "price": p["price"],
                "quantity": 1,
                "size": self.rng.choice(SIZES),
                "color": self.rng.choice(COLORS),
            }
            for p in carted
            if self.rng.random() > 0.2
        ]
        if not items:
            items = [{"product_id": carted[0]["id"], "name": carted[0]["name"], "price": carted[0]["price"], "quantity": 1}]

        subtotal = round(sum(i["price"] * i["quantity"] for i in items), 2)
        discount = round(subtotal * 0.1, 2) if self.rng.random() < 0.2 else 0.0
        shipping = self.rng.choice([0.0, 4.99, 9.99])
        tax = round((subtotal - discount) * 0.07, 2)
        status = self._pick(ORDER_STATUSES)
        order_id = self._id()
        total = round(subtotal - discount + shipping + tax, 2)

        dataset["orders"].append({
            "id": order_id,
            "customer_name": self.fake.name(),
            "customer_email": self.fake.email(),
            "customer_phone": self.fake.phone_number(),
            "subtotal": subtotal,
            "discount": discount,
            "shipping_cost": shipping,
            "tax": tax,
            "total": total,
            "status": status,
            "payment_method": self.rng.choice(PAYMENT_METHODS),
            "items": items,
            "created_at": placed,
        })

        if status in ("pending", "cancelled"):
            return

        dataset["payments"].append({
            "id": self._id(),
            "order_id": order_id,
            "amount": total,
            "status": self.rng.choice(["paid", "completed", "success"]),
            "method": dataset["orders"][-1]["payment_method"],
            "created_at": placed,
        })
        if self.rng.random() < 0.05:
            dataset["refunds"].append({
                "id": self._id(),
                "order_id": order_id,
                "amount": round(total * self.rng.choice([0.5, 1.0]), 2),
                "reason": self.rng.choice(["damaged", "wrong_size", "changed_mind"]),
                "created_at": placed + timedelta(days=self.rng.randint(1, 10)),
            })
        if status in ("delivered", "completed") and self.rng.random() < 0.5:
            for item in items:
                dataset["product_fit_feedback"].append({
                    "id": self._id(),
                    "product_id": item["product_id"],
                    "fit_rating": self.rng.choice(DEFAULT_FIT_RATINGS),
                    "created_at": placed,
                })
