"""
Database engine initialisation and schema creation.
"""

import sys
from typing import Optional

from sqlalchemy import create_engine, text

from telehealth.config import DB_URI
from telehealth.schema import metadata


def init_engine(db_uri: Optional[str] = None):
    """Create a SQLAlchemy engine and verify the connection."""
    engine = create_engine(db_uri or DB_URI, echo=False, future=True)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


def create_schema(engine) -> None:
    """Create every table that does not exist yet."""
    metadata.create_all(engine)
