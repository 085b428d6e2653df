"""Dialect-specific INSERT ... ON CONFLICT for PostgreSQL and SQLite."""

from typing import Any, Callable, Sequence

from sqlalchemy import Table
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, CursorResult


def upsert(
    conn: Connection,
    table: Table,
    values: dict[str, Any],
    index_elements: Sequence[str],
    is_sqlite: bool,
    set_: Callable[[Any], dict[str, Any]] | None = None,
) -> CursorResult:
    """Insert `values`, or update the row matching `index_elements`.

    By default every non-key column in `values` is overwritten with the
    incoming value (last write wins). `set_` receives the statement's
    `excluded` pseudo-table and returns the update clause; an empty clause
    turns the statement into DO NOTHING.
    """
    stmt = (sqlite_insert if is_sqlite else pg_insert)(table).values(values)
    if set_ is None:
        update = {
            name: stmt.excluded[name] for name in values if name not in index_elements
        }
    else:
        update = set_(stmt.excluded)

    if not update:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(index_elements))
    else:
        stmt = stmt.on_conflict_do_update(index_elements=list(index_elements), set_=update)
    return conn.execute(stmt)
