# Overview: Retry helpers for transient database contention.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a unit of work that owns its transaction, retrying on lock contention.

    func must be safe to re-run from the start: on OperationalError (locked
    database, deadlock) or StaleDataError the session is rolled back before
    the next attempt, so nothing from the failed attempt survives.
    Every other exception rolls back and propagates immediately.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after database contention (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
