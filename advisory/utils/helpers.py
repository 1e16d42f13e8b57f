"""Shared service-layer helpers.

get_or_raise:      primary-key lookup that raises NotFoundError
commit_or_raise:   commit the session, translating SQLAlchemy failures
parse_percentage:  0–100 numeric coercion for billability input
"""
import logging

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from advisory.core.exceptions import NotFoundError, PersistenceError, ValidationError
from advisory.models import db

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    label = label or model.__name__
    obj = db.session.get(model, pk) if pk is not None else None
    if obj is None:
        raise NotFoundError(resource=label, resource_id=pk)
    return obj


def commit_or_raise(operation: str) -> None:
    """Commit the current SQLAlchemy session or roll back and raise PersistenceError.

    Usage::

        commit_or_raise("update_billability")

    IntegrityError → logged as warning (constraint violation)
    OperationalError → logged with traceback (connection / lock issues)
    Other SQLAlchemyError → logged with traceback
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit during %s: %s", operation, exc.orig)
        raise PersistenceError(operation, exc) from exc
    except OperationalError as exc:
        db.session.rollback()
        logger.exception("Database operational error on commit during %s", operation)
        raise PersistenceError(operation, exc) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Unexpected database error on commit during %s", operation)
        raise PersistenceError(operation, exc) from exc


def parse_percentage(value):
    """Parse a 0–100 percentage.  ``None``/empty → None; anything else invalid raises."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("invalid_percentage")
    try:
        pct = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("invalid_percentage") from exc
    if pct < 0 or pct > 100:
        raise ValidationError("invalid_percentage")
    return pct
