"""Initialize database schema for the recruiting CRM.

Creates all tables and seeds default field definitions, pricing and SMS
provider rows. Run this before starting the API server.
"""

import argparse
import asyncio
import logging
import sys

from sqlalchemy import select

from catalog.field_definitions import FIELD_DEFINITIONS
from catalog.pricing import PRICING_CONFIGS, PRICING_PACKAGES, SMS_PROVIDER_CONFIGS
from crm import models
from crm.config import settings
from crm.db import AsyncSessionMaker, engine
from crm.logging_config import setup_logging

logger = logging.getLogger("init_db")


async def seed(session, model, rows, key: str) -> int:
    """Insert rows whose ``key`` value is not present yet."""
    existing = set((await session.execute(select(getattr(model, key)))).scalars().all())
    added = 0
    for row in rows:
        if row[key] not in existing:
            session.add(model(**row))
            added += 1
    return added


async def init_database(drop: bool = False) -> None:
    """Create all database tables and seed defaults."""
    logger.info(f"Initializing database: {settings.db.url.split('@')[-1]}")

    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(models.Base.metadata.drop_all)
            logger.info("Dropped existing tables")
        await conn.run_sync(models.Base.metadata.create_all)
        logger.info(f"Tables ready: {', '.join(models.Base.metadata.tables.keys())}")

    async with AsyncSessionMaker() as session:
        counts = {
            "field_definitions": await seed(session, models.FieldDefinition, FIELD_DEFINITIONS, "field_name"),
            "pricing_packages": await seed(session, models.PricingPackage, PRICING_PACKAGES, "name"),
            "sms_provider_configs": await seed(session, models.SMSProviderConfig, SMS_PROVIDER_CONFIGS, "provider_type"),
        }
        has_pricing = (await session.execute(select(models.PricingConfig.id).limit(1))).first() is not None
        if not has_pricing:
            session.add_all(models.PricingConfig(**row) for row in PRICING_CONFIGS)
            counts["pricing_configs"] = len(PRICING_CONFIGS)
        await session.commit()

    logger.info(f"Seeded rows: {counts}")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--drop", action="store_true", help="Drop all tables first")
    args = parser.parse_args()

    setup_logging(fmt="text")
    try:
        asyncio.run(init_database(drop=args.drop))
    except Exception as e:
        logger.error(f"Error initializing database: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
