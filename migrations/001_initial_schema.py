"""
Initial database schema migration.
"""
from typing import Optional

from sqlalchemy.engine import Engine

from config.settings import settings
from models import build_engine, create_tables, drop_tables


def upgrade(engine: Optional[Engine] = None):
    """Create the downloaded episodes ledger."""
    create_tables(engine or build_engine(settings.database_url))


def downgrade(engine: Optional[Engine] = None):
    """Drop all tables."""
    drop_tables(engine or build_engine(settings.database_url))


if __name__ == '__main__':
    upgrade()
