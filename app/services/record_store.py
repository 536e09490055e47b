"""
Record-store helpers shared by the lifecycle and context services.

Why this module exists:
  Module tracking and context snapshots are an optional enhancement layer.
  A database that has not been migrated yet (missing table or column) must
  read as "no data", while a genuinely unreachable database must surface as
  StoreUnavailableError. Centralising the classification keeps that rule in
  one place instead of in every service method.

Usage:
    with store_operation("update module_activations", table="module_activations"):
        row.progress = 40
        db.session.commit()

    rows = read_or_empty(lambda: ModuleActivation.query.filter_by(user_id=uid).all(),
                         table="module_activations")
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import FeatureNotProvisionedError, StoreUnavailableError
from app.models import db

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE codes for undefined_table / undefined_column
_MISSING_SCHEMA_CODES = {"42P01", "42703"}
# SQLite / generic driver messages for the same conditions
_MISSING_SCHEMA_MESSAGES = ("no such table", "no such column", "does not exist", "undefinedtable")


def is_missing_schema(exc: Exception) -> bool:
    """True when ``exc`` means the table or column has not been created yet."""
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in _MISSING_SCHEMA_CODES:
        return True
    text = str(orig if orig is not None else exc).lower()
    return any(marker in text for marker in _MISSING_SCHEMA_MESSAGES)


def classify_store_error(exc: SQLAlchemyError, operation: str, table: str):
    """Translate a driver error into the platform's store taxonomy."""
    if is_missing_schema(exc):
        return FeatureNotProvisionedError(table, cause=exc)
    return StoreUnavailableError(operation, cause=exc)


@contextmanager
def store_operation(operation: str, *, table: str):
    """Run a block of session work; roll back and re-raise as a typed store error."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.session.rollback()
        error = classify_store_error(exc, operation, table)
        if isinstance(error, FeatureNotProvisionedError):
            logger.info("%s skipped: table %s not provisioned", operation, table)
        else:
            logger.error("%s failed: %s", operation, exc)
        raise error from exc


def read_or_empty(query_fn, *, table: str, operation: str | None = None):
    """Execute a read; missing schema degrades to ``[]``, other failures raise."""
    try:
        with store_operation(operation or f"read {table}", table=table):
            return query_fn()
    except FeatureNotProvisionedError:
        return []


def upsert(model, natural_key: dict, values: dict):
    """Insert or update the row identified by ``natural_key``.

    Portable across SQLite and PostgreSQL (query-then-write), which is
    enough under the single-session-per-user model. Caller commits.
    """
    row = model.query.filter_by(**natural_key).first()
    if row is None:
        row = model(**natural_key, **values)
        db.session.add(row)
    else:
        for attr, value in values.items():
            setattr(row, attr, value)
    db.session.flush()
    return row
