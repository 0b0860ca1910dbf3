#!/usr/bin/env python3
# backend/init_db.py
"""
Database initialization script.

This script can be run from any directory:
    python backend/init_db.py
    cd backend && python init_db.py
"""
import sys
from pathlib import Path

# Add the backend directory to Python path so 'cryptofolio' package is importable
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from cryptofolio.config import settings
from cryptofolio.database import engine
from cryptofolio.models import Base


def init_db() -> None:
    """Create the users and assets tables if they do not exist."""
    print(f"Creating database tables ({engine.url.render_as_string(hide_password=True)})...")
    Base.metadata.create_all(bind=engine)
    print(f"Tables created: {', '.join(sorted(Base.metadata.tables))}")
    if settings.is_sqlite:
        print("Note: SQLite stores amounts through Decimal conversion; use PostgreSQL in production")


if __name__ == "__main__":
    init_db()
