"""Initialize the database - creates all tables and adds columns missing from older databases."""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from snippetbase.database import engine, Base
import snippetbase.models  # noqa: F401 - registers all models
from snippetbase.utils.schema_sync import sync_missing_schema_objects


def init_db():
    print("Creating all database tables...")
    Base.metadata.create_all(bind=engine)
    applied = sync_missing_schema_objects(engine, Base.metadata)
    print(f"Database initialized successfully ({len(applied)} schema change(s) applied).")


if __name__ == "__main__":
    init_db()
