"""
purchasing/store.py

Entity store helpers on top of Flask-SQLAlchemy.

Responsibilities:
- load-by-id (optionally row-locked for a load -> compute -> save sequence)
- query-by-predicate
- one transaction per engine operation (unit_of_work), translating SQLAlchemy
  failures into the engine's typed errors:
    StaleDataError  -> ConcurrentModificationError (optimistic version check lost)
    IntegrityError  -> ConcurrentModificationError (unique number taken by a parallel write)
    DBAPIError      -> StoreUnavailableError (timeouts, lost connections, locked database)

IMPORTANT:
- Nothing here retries. Retryable errors go back to the caller.
- Any failure rolls the whole transaction back: no partial writes survive.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Type

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from .exceptions import ConcurrentModificationError, NotFoundError, StoreUnavailableError
from .extensions import db
from .logging_config import get_logger
from .models import utcnow

logger = get_logger("store")


def _describe(entity: Any) -> tuple[str, Any]:
    if entity is None:
        return "Entity", None
    for attr in ("order_number", "invoice_number", "receipt_number", "code"):
        value = getattr(entity, attr, None)
        if value:
            return type(entity).__name__, value
    return type(entity).__name__, getattr(entity, "id", None)


def load(model: Type, entity_id: Any, not_found: Type[NotFoundError], *, for_update: bool = False):
    """
    Load one entity by primary key or raise ``not_found``.

    for_update=True takes a row lock (SELECT ... FOR UPDATE) where the database
    supports it and refreshes any stale identity-map copy.
    """
    stmt = db.select(model).where(model.id == entity_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)

    try:
        entity = db.session.execute(stmt).scalar_one_or_none()
    except DBAPIError as exc:
        db.session.rollback()
        logger.error("store_load_failed", extra={"model": model.__name__, "entity_id": entity_id})
        raise StoreUnavailableError(f"load {model.__name__}", str(exc.orig)) from exc

    if entity is None:
        raise not_found(entity_id)
    return entity


def find(model: Type, *criteria, order_by=None) -> list:
    """Query-by-predicate."""
    stmt = db.select(model).where(*criteria)
    if order_by is not None:
        stmt = stmt.order_by(order_by)
    try:
        return list(db.session.execute(stmt).scalars())
    except DBAPIError as exc:
        db.session.rollback()
        raise StoreUnavailableError(f"query {model.__name__}", str(exc.orig)) from exc


def check_version(entity: Any, expected_version: int | None) -> None:
    """Reject work based on a stale read (caller passes the version it saw)."""
    if expected_version is None:
        return
    if entity.version_id != int(expected_version):
        entity_type, entity_id = _describe(entity)
        raise ConcurrentModificationError(
            entity_type,
            entity_id,
            expected_version=int(expected_version),
            current_version=entity.version_id,
        )


def touch(entity: Any) -> None:
    """
    Force an UPDATE of the aggregate row so its version check always runs,
    even when only child rows (lines, ledger entries) changed.
    """
    entity.updated_at = utcnow()
    flag_modified(entity, "updated_at")


@contextmanager
def unit_of_work(operation: str, entity: Any = None) -> Iterator[None]:
    """Run the block and commit it as one transaction."""
    try:
        yield
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        entity_type, entity_id = _describe(entity)
        logger.warning("store_version_conflict", extra={"operation": operation, "entity_type": entity_type})
        raise ConcurrentModificationError(entity_type, entity_id) from exc
    except IntegrityError as exc:
        db.session.rollback()
        entity_type, entity_id = _describe(entity)
        logger.warning("store_integrity_conflict", extra={"operation": operation, "detail": str(exc.orig)})
        raise ConcurrentModificationError(entity_type, entity_id) from exc
    except DBAPIError as exc:
        db.session.rollback()
        logger.error("store_unavailable", extra={"operation": operation, "detail": str(exc.orig)})
        raise StoreUnavailableError(operation, str(exc.orig)) from exc
    except Exception:
        db.session.rollback()
        raise
