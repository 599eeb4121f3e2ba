"""
Conflict-ignoring inserts backed by storage-level unique constraints.

PostgreSQL and SQLite get a single `INSERT ... ON CONFLICT DO NOTHING`
statement; other dialects insert inside a SAVEPOINT and treat an
IntegrityError as a lost race. Either way the database decides which of
two concurrent writers wins; there is no check-then-insert.
"""

import logging
from typing import Any, Dict, Sequence

from elibrary.core.exceptions import PersistenceConflictError
from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def _dialect_insert(dialect_name: str):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as pg_insert

        return pg_insert
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as sqlite_insert

        return sqlite_insert
    return None


def _insert_in_savepoint(db: Session, model, values: Dict[str, Any]) -> None:
    try:
        with db.begin_nested():
            db.execute(insert(model).values(**values))
    except IntegrityError as exc:
        raise PersistenceConflictError(
            f"Duplicate {model.__tablename__} row rejected by unique constraint"
        ) from exc


def insert_ignoring_conflict(
    db: Session,
    model,
    values: Dict[str, Any],
    conflict_columns: Sequence[str],
) -> bool:
    """
    Insert one row unless the unique key in `conflict_columns` already exists.

    Args:
        db: Session whose transaction the insert joins
        model: Mapped class to insert into
        values: Column values for the new row
        conflict_columns: Columns of the unique constraint that identifies the row

    Returns:
        True if this call inserted the row, False if another row already held
        the key (including a concurrent writer that committed first)
    """
    dialect_insert = _dialect_insert(db.get_bind().dialect.name)

    if dialect_insert is not None:
        stmt = (
            dialect_insert(model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=list(conflict_columns))
        )
        result = db.execute(stmt)
        return result.rowcount == 1

    try:
        _insert_in_savepoint(db, model, values)
    except PersistenceConflictError:
        logger.debug(
            "Insert lost uniqueness race; existing row kept",
            extra={
                "context": {
                    "table": model.__tablename__,
                    "key": {col: values.get(col) for col in conflict_columns},
                }
            },
        )
        return False
    return True
