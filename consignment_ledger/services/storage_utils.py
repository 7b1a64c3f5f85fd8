from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from consignment_ledger.errors import StorageError

logger = logging.getLogger(__name__)


@contextmanager
def storage_guard(action: str) -> Iterator[None]:
    """Translate driver failures raised inside the block into ``StorageError``."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error('Storage failure while trying to %s: %s', action, exc)
        raise StorageError(f'Could not {action}: {exc.__class__.__name__}') from exc


def flush(db: Session, *, action: str) -> None:
    with storage_guard(action):
        db.flush()
