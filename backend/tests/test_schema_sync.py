from pathlib import Path
from uuid import uuid4

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, create_engine, inspect

from snippetbase.utils.schema_sync import sync_missing_schema_objects


def test_sync_missing_schema_objects_adds_column_and_index():
    db_path = Path(f"./schema_sync_{uuid4().hex}.db").resolve()
    engine = create_engine(f"sqlite:///{db_path}")

    base_metadata = MetaData()
    Table(
        "sync_target",
        base_metadata,
        Column("id", Integer, primary_key=True),
        Column("static_id", String(32), nullable=False),
    )
    base_metadata.create_all(engine)

    target_metadata = MetaData()
    table = Table(
        "sync_target",
        target_metadata,
        Column("id", Integer, primary_key=True),
        Column("static_id", String(32), nullable=False),
        Column("archive_reason", String(20), nullable=True),
        Column("branch_type", String(20), nullable=False),
    )
    Index("idx_sync_target_static", table.c.static_id)
    Table("brand_new", target_metadata, Column("id", Integer, primary_key=True))

    applied = sync_missing_schema_objects(engine, target_metadata)

    inspector = inspect(engine)
    column_names = {row["name"] for row in inspector.get_columns("sync_target")}
    index_names = {row.get("name") for row in inspector.get_indexes("sync_target")}

    assert {"archive_reason", "branch_type"} <= column_names
    assert "idx_sync_target_static" in index_names
    assert applied == [
        "sync_target.archive_reason",
        "sync_target.branch_type",
        "sync_target:idx_sync_target_static",
    ]
    assert "brand_new" not in inspector.get_table_names()
    assert sync_missing_schema_objects(engine, target_metadata) == []

    engine.dispose()
    if db_path.exists():
        db_path.unlink()
