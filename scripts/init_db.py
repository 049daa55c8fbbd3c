#!/usr/bin/env python3
"""
Database initialization script for the Asset Inventory Backend.

Creates the tables (including the partial unique index on pending deletion
requests). Use Alembic for databases that must keep their data.
"""

import sys
from pathlib import Path

# Add the parent directory to the path so we can import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlmodel import SQLModel

from app.core.config import settings
from app.db import base  # noqa: F401  import all models to register with SQLModel
from app.db.session import create_db_engine


def create_db_and_tables():
    """Create database tables."""
    print("Creating database tables...")

    engine = create_db_engine(settings.database_url)
    SQLModel.metadata.create_all(engine)

    print("✅ Database tables created successfully!")
    print(f"Database URL: {settings.database_url}")
    print("\nTables created:")
    for table in SQLModel.metadata.tables.keys():
        print(f"  - {table}")


if __name__ == "__main__":
    create_db_and_tables()
