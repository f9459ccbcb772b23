"""Small, idempotent schema upgrades for existing SQLite databases."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import text
from sqlalchemy.engine import Engine

# ``create_all`` builds fresh tables; these helpers only ADD what older files
# lack. Nothing here drops or rewrites a column.


def _table_columns(engine: Engine, table: str) -> list[dict[str, object]]:
    """Fetch SQLite's description of a table so we know what columns exist."""

    with engine.connect() as conn:
        return conn.execute(text(f"PRAGMA table_info({table})")).mappings().all()


def _column_names(engine: Engine, table: str) -> set[str]:
    return {record["name"] for record in _table_columns(engine, table)}


def _add_column_sqlite(engine: Engine, table: str, col_def: str) -> None:
    """ALTER TABLE ADD COLUMN helper."""
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))


def _create_index_if_not_exists(engine: Engine, table: str, name: str, cols: Iterable[str], unique: bool = False) -> None:
    cols_sql = ", ".join(cols)
    unique_sql = "UNIQUE " if unique else ""
    with engine.begin() as conn:
        conn.execute(text(f"CREATE {unique_sql}INDEX IF NOT EXISTS {name} ON {table} ({cols_sql})"))


def _ensure_columns(engine: Engine, table: str, needed: dict[str, str]) -> None:
    existing = _column_names(engine, table)
    if not existing:
        # Table absent; create_all owns it.
        return
    for name, dtype in needed.items():
        if name not in existing:
            _add_column_sqlite(engine, table, f"{name} {dtype}")


def run_migrations(engine: Engine) -> None:
    """Bring an existing database up to date with the models."""

    if engine.dialect.name != "sqlite":
        return

    _ensure_columns(
        engine,
        "equipment",
        {
            "version": "INTEGER DEFAULT 1 NOT NULL",
            "maintenance_frequency_days": "INTEGER DEFAULT 90 NOT NULL",
            "serial_number": "TEXT",
            "barcode": "TEXT",
            "location": "TEXT",
            "purchase_date": "TEXT",
            "purchase_price": "REAL",
        },
    )
    _ensure_columns(
        engine,
        "audit_ledger",
        {
            "quantity_change": "INTEGER DEFAULT 0 NOT NULL",
            "reference": "TEXT",
            "notes": "TEXT",
        },
    )
    _ensure_columns(
        engine,
        "stock_orders",
        {
            "tracking_number": "TEXT",
            "carrier": "TEXT",
            "tracking_url": "TEXT",
        },
    )

    if _column_names(engine, "reorder_policies"):
        _create_index_if_not_exists(
            engine, "reorder_policies", "ix_reorder_policies_equipment_unique", ["equipment_id"], unique=True
        )
    if _column_names(engine, "audit_ledger"):
        _create_index_if_not_exists(
            engine, "audit_ledger", "ix_audit_ledger_equipment_created", ["equipment_id", "created_at"]
        )
