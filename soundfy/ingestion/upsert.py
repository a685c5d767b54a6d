"""
Bulk upsert on a unique key.

upsert_all issues one INSERT ... ON CONFLICT (unique_by) DO UPDATE per call:
- new rows are inserted with ids and timestamps filled in
- existing rows get only the allow-listed columns, plus updated_at
- a row is only touched when one of those columns actually changed, so
  replaying the same batch is a no-op

Supports PostgreSQL (production) and SQLite (tests).
"""

import logging
from typing import Any, Dict, Iterable, List, Sequence

from sqlalchemy import or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from soundfy.models.base import generate_uuid, utcnow

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _dialect_insert(db: Session):
    dialect = db.get_bind().dialect.name
    try:
        return _DIALECT_INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(f"upsert_all is not supported on {dialect}") from None


def _prepare_records(table, records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Fill ids, timestamps and scalar defaults so every row has the same keys."""
    now = utcnow()
    rows = [dict(record) for record in records]

    keys = set()
    for row in rows:
        keys.update(row)

    for row in rows:
        if "id" in table.c and row.get("id") is None:
            row["id"] = generate_uuid()
        if "created_at" in table.c:
            row.setdefault("created_at", now)
        if "updated_at" in table.c:
            row.setdefault("updated_at", now)

        for column in table.c:
            if column.key in row:
                continue
            default = column.default
            if column.key in keys:
                row[column.key] = None
            elif default is not None and default.is_scalar:
                row[column.key] = default.arg

    return rows


def upsert_all(
    db: Session,
    model,
    records: Sequence[Dict[str, Any]],
    unique_by: Sequence[str],
    update_only: Sequence[str],
) -> int:
    """
    Insert or update records keyed by unique_by.

    Does not commit. The caller owns the transaction.

    Args:
        db: Database session
        model: Mapped model class
        records: Column dicts to write
        unique_by: Columns of the unique constraint to conflict on
        update_only: Columns overwritten on conflict

    Returns:
        Number of rows inserted or changed as reported by the driver
    """
    if not records:
        return 0
    if not update_only:
        raise ValueError("update_only must name at least one column")

    table = model.__table__
    rows = _prepare_records(table, records)

    insert = _dialect_insert(db)
    stmt = insert(table).values(rows)
    excluded = stmt.excluded

    set_ = {column: excluded[column] for column in update_only}
    if "updated_at" in table.c:
        set_["updated_at"] = excluded["updated_at"]

    changed = or_(*(table.c[column].is_distinct_from(excluded[column]) for column in update_only))

    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c[column] for column in unique_by],
        set_=set_,
        where=changed,
    )

    result = db.execute(stmt)

    logger.debug("upsert.executed", extra={
        "table": table.name,
        "records": len(rows),
        "rowcount": result.rowcount,
    })
    return result.rowcount
