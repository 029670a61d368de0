#!/usr/bin/env python3
"""
Seed rooms and products from the V3 price table.
Usage: python seed_catalog.py
"""

import logging
import sys

from app.database import Base, SessionLocal, engine
from app.domain.catalog.seed import seed_catalog

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


def main():
    Base.metadata.create_all(bind=engine, checkfirst=True)
    db = SessionLocal()
    try:
        result = seed_catalog(db)
        logger.info(f"✅ Done: {result}")
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Seeding failed: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
