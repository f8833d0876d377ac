import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dental_backend.core.errors import AppError, StorageUnavailableError

logger = logging.getLogger(__name__)


@contextmanager
def storage_guard(db: Session, action: str):
    """Roll back on any failure; storage errors surface as ``StorageUnavailableError``."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Database error while %s.', action)
        raise StorageUnavailableError(
            'Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc
    except AppError:
        # Releases row locks taken before a rejected booking.
        db.rollback()
        raise


def paginate(query, limit: int, offset: int) -> tuple[list, int]:
    total = query.order_by(None).count()
    return query.limit(limit).offset(offset).all(), total
