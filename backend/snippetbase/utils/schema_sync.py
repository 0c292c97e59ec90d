"""Additive schema sync for databases created by an older release."""

from __future__ import annotations

import logging
from typing import List

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.schema import CreateColumn, CreateIndex, MetaData

logger = logging.getLogger(__name__)


def sync_missing_schema_objects(engine: Engine, metadata: MetaData) -> List[str]:
    """Add columns and indexes present in ``metadata`` but missing from existing tables.

    Tables that do not exist yet are left to ``create_all``. Nothing is ever
    dropped or altered. Returns a description of each change applied.
    """
    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())
    preparer = engine.dialect.identifier_preparer
    applied: List[str] = []

    with engine.begin() as conn:
        for table in metadata.sorted_tables:
            if table.name not in existing_tables:
                continue
            table_sql = preparer.format_table(table)

            existing_columns = {col["name"] for col in inspector.get_columns(table.name)}
            for column in table.columns:
                if column.name in existing_columns:
                    continue
                column_sql = str(CreateColumn(column).compile(dialect=engine.dialect)).strip()
                # Existing rows cannot satisfy NOT NULL without a server default.
                if not column.nullable and column.server_default is None:
                    column_sql = column_sql.replace(" NOT NULL", "")
                conn.execute(text(f"ALTER TABLE {table_sql} ADD COLUMN {column_sql}"))
                applied.append(f"{table.name}.{column.name}")

            existing_indexes = {idx["name"] for idx in inspector.get_indexes(table.name) if idx.get("name")}
            for index in table.indexes:
                if not index.name or index.name in existing_indexes:
                    continue
                conn.execute(CreateIndex(index))
                applied.append(f"{table.name}:{index.name}")

    for change in applied:
        logger.info("[schema] added %s", change)
    return applied
