"""
Seed the storefront database with synthetic data.

Usage:
    storefront-seed --sessions 500 --days 30
    storefront-seed --database-url sqlite+aiosqlite:///demo.db --create-tables
"""

import argparse
import asyncio
from typing import Dict, List, Optional

import structlog
from sqlalchemy import insert

from storefront_analytics.analytics.change_feed import RedisChangeFeed
from storefront_analytics.config import get_settings
from storefront_analytics.config.logging import configure_logging
from storefront_analytics.data.generators import StorefrontDataGenerator
from storefront_analytics.database.connection import close_database, get_db, init_database
from storefront_analytics.database.models import COLLECTION_MODELS, Base
from storefront_analytics.database.redis_client import close_redis, init_redis

logger = structlog.get_logger(__name__)


async def load_dataset(dataset: Dict[str, List[dict]]) -> Dict[str, int]:
    """Bulk insert a generated dataset; returns rows written per table."""
    written: Dict[str, int] = {}
    async with get_db() as db:
        for collection, rows in dataset.items():
            if not rows:
                continue
            await db.execute(insert(COLLECTION_MODELS[collection]), rows)
            written[collection] = len(rows)
            logger.info("Seeded table", table=collection, rows=len(rows))
    return written


async def announce_changes(collections) -> None:
    """Tell live pipelines that the seeded tables changed."""
    settings = get_settings()
    try:
        redis = await init_redis()
    except Exception as e:
        logger.warning("Redis unavailable, skipping change notifications", error=str(e))
        return

    feed = RedisChangeFeed(redis, prefix=settings.redis.change_channel_prefix)
    try:
        for collection in collections:
            await feed.publish(collection)
    finally:
        await feed.close()
        await close_redis()


async def seed(
    sessions: int,
    days: int,
    products: int,
    seed_value: int,
    database_url: Optional[str] = None,
    create_tables: bool = False,
    notify: bool = True,
) -> Dict[str, int]:
    engine = await init_database(database_url)
    try:
        if create_tables:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        dataset = StorefrontDataGenerator(seed=seed_value).generate(
            sessions=sessions, days=days, products=products
        )
        written = await load_dataset(dataset)
    finally:
        await close_database()

    if notify:
        await announce_changes(written)
    return written


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the storefront database with synthetic data")
    parser.add_argument("--sessions", type=int, default=500, help="Browsing sessions to simulate")
    parser.add_argument("--days", type=int, default=30, help="Spread sessions over this many days")
    parser.add_argument("--products", type=int, default=40, help="Catalog size")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables first")
    parser.add_argument("--no-notify", action="store_true", help="Do not publish change notifications")
    args = parser.parse_args()

    configure_logging(log_format="text")
    written = asyncio.run(seed(
        sessions=args.sessions,
        days=args.days,
        products=args.products,
        seed_value=args.seed,
        database_url=args.database_url,
        create_tables=args.create_tables,
        notify=not args.no_notify,
    ))
    logger.info("Seeding complete", tables=len(written), rows=sum(written.values()))


if __name__ == "__main__":
    main()
