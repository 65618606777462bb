"""
Generic owner-scoped CRUD helpers.

These functions work with any SQLAlchemy model. When a model carries an
``owner_id`` column and an owner is supplied, every query is filtered by it so
a record is never visible to another owner.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import BaseError, ErrorCode, not_found
from ..utils.logger import get_logger

T = TypeVar("T")


def _scoped_query(session: Session, model_class: Type[T], owner_id: Optional[str]):
    query = session.query(model_class)
    if owner_id and hasattr(model_class, "owner_id"):
        query = query.filter(model_class.owner_id == owner_id)  # type: ignore[attr-defined]
    return query


def create_record(
    session: Session, model_class: Type[T], data: Dict[str, Any], owner_id: Optional[str] = None
) -> T:
    """
    Generic create operation for any model.

    Args:
        session: Database session
        model_class: SQLAlchemy model class
        data: Data dictionary
        owner_id: Optional owner ID to add

    Returns:
        Created record instance

    Raises:
        BaseError: If creation fails
    """
    logger = get_logger()

    try:
        if owner_id and hasattr(model_class, "owner_id") and "owner_id" not in data:
            data["owner_id"] = owner_id

        record = model_class(**data)
        session.add(record)
        session.commit()

        logger.info(
            f"Created {model_class.__name__}",
            extra={"model": model_class.__name__, "record_id": getattr(record, "id", None)},
        )

        return record

    except SQLAlchemyError as e:
        session.rollback()
        raise BaseError(
            f"Failed to create {model_class.__name__}: {str(e)}",
            error_code=ErrorCode.DATABASE_ERROR,
            cause=e,
        )


def get_record(
    session: Session, model_class: Type[T], filters: Dict[str, Any], owner_id: Optional[str] = None
) -> Optional[T]:
    """
    Generic get operation for any model.

    Returns:
        Record instance or None
    """
    query = _scoped_query(session, model_class, owner_id)

    for key, value in filters.items():
        if hasattr(model_class, key) and value is not None:
            query = query.filter(getattr(model_class, key) == value)

    return query.first()


def get_record_by_id(
    session: Session, model_class: Type[T], record_id: str, owner_id: Optional[str] = None
) -> Optional[T]:
    """Generic get by ID operation."""
    return get_record(session, model_class, {"id": record_id}, owner_id)


def update_record(
    session: Session,
    model_class: Type[T],
    record_id: str,
    data: Dict[str, Any],
    owner_id: Optional[str] = None,
) -> T:
    """
    Generic update operation for any model.

    Fields whose value is None are left untouched.

    Raises:
        NotFoundError: If the record does not exist for this owner
        BaseError: If update fails
    """
    logger = get_logger()

    record = get_record_by_id(session, model_class, record_id, owner_id)
    if not record:
        raise not_found(model_class.__name__, record_id=record_id)

    try:
        for key, value in data.items():
            if hasattr(record, key) and value is not None:
                setattr(record, key, value)

        if hasattr(record, "updated_at"):
            record.updated_at = datetime.now(timezone.utc)

        session.commit()

        logger.info(
            f"Updated {model_class.__name__}",
            extra={"model": model_class.__name__, "record_id": record_id},
        )

        return record

    except SQLAlchemyError as e:
        session.rollback()
        raise BaseError(
            f"Failed to update {model_class.__name__}: {str(e)}",
            error_code=ErrorCode.DATABASE_ERROR,
            cause=e,
        )


def delete_record(
    session: Session, model_class: Type[T], record_id: str, owner_id: Optional[str] = None
) -> bool:
    """
    Generic delete operation for any model.

    Returns:
        True if deleted, False if not found
    """
    logger = get_logger()

    record = get_record_by_id(session, model_class, record_id, owner_id)
    if not record:
        return False

    try:
        session.delete(record)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise BaseError(
            f"Failed to delete {model_class.__name__}: {str(e)}",
            error_code=ErrorCode.DATABASE_ERROR,
            cause=e,
        )

    logger.info(
        f"Deleted {model_class.__name__}",
        extra={"model": model_class.__name__, "record_id": record_id},
    )
    return True


def list_records(
    session: Session,
    model_class: Type[T],
    filters: Optional[Dict[str, Any]] = None,
    owner_id: Optional[str] = None,
    limit: Optional[int] = None,
    order_by: Optional[str] = None,
) -> List[T]:
    """
    Generic list operation for any model, newest first unless ``order_by`` is given.
    """
    query = _scoped_query(session, model_class, owner_id)

    if filters:
        for key, value in filters.items():
            if hasattr(model_class, key) and value is not None:
                query = query.filter(getattr(model_class, key) == value)

    if order_by and hasattr(model_class, order_by):
        query = query.order_by(getattr(model_class, order_by))
    elif hasattr(model_class, "created_at"):
        query = query.order_by(model_class.created_at.desc())  # type: ignore[attr-defined]

    if limit:
        query = query.limit(limit)

    return query.all()
