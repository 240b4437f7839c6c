"""
Migration script to create all database tables

Run this script to create all database tables and their indexes:
    python -m catalog.migrations.create_all_tables
"""
import logging

from catalog.database import engine, Base
# Import all models to ensure they're registered with Base
from catalog.models import Movie, Rating

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_tables():
    """Create all database tables (idempotent)"""
    logger.info("=" * 60)
    logger.info("Creating all database tables...")

    Base.metadata.create_all(bind=engine)

    for table in (Movie.__table__, Rating.__table__):
        index_names = ", ".join(sorted(str(index.name) for index in table.indexes)) or "none"
        logger.info(f"   - {table.name} (indexes: {index_names})")

    logger.info("All tables created successfully")
    logger.info("=" * 60)


if __name__ == "__main__":
    create_tables()
