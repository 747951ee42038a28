from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import Iterator
from sqlalchemy.orm import Session
from factory_mrp.core.errors import PlanningError

logger = logging.getLogger(__name__)

@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Commit on success, roll back everything on any exception."""
    try:
        yield db
        db.commit()
    except PlanningError as e:
        db.rollback()
        logger.warning("transaction rolled back: %s (%s)", e.code, e.message)
        raise
    except Exception:
        db.rollback()
        logger.error("transaction rolled back", exc_info=True)
        raise
