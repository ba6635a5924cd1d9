from __future__ import annotations

from sqlalchemy import Table


def dialect_insert(db, table: Table):
    """Return an insert construct that supports ``ON CONFLICT``, or None.

    PostgreSQL and SQLite both expose ``on_conflict_do_update`` /
    ``on_conflict_do_nothing``; other backends fall back to row locking in the
    calling repository.
    """
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert

        return insert(table)
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert

        return insert(table)
    return None
