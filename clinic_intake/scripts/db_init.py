"""
Database Initializer.

Run this script to create the 'consultations' table in the PostgreSQL
database configured by DATABASE_URL.

Usage:
    python -m clinic_intake.scripts.db_init

This script uses the sync database connection since it runs as a CLI tool
outside of the async application context.
"""

import sys

from clinic_intake.config import settings
from clinic_intake.infrastructure.database.connection import get_engine, init_db


def main() -> int:
    if not settings.DATABASE_URL:
        print("DATABASE_URL is not set; nothing to initialize (the app runs in mock mode).")
        return 1

    print("Initializing Database Connection...")
    init_db(get_engine())
    print("Tables created (existing tables were left untouched).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
