# Overview: Row locking and conflict retry for bill mutations.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


class RetriesExhausted(Exception):
    """Every attempt hit a lock or version conflict."""

    def __init__(self, attempts: int, last_exc: Exception):
        self.attempts = attempts
        self.last_exc = last_exc
        super().__init__(f"Gave up after {attempts} attempts: {last_exc}")


def lock_for_update(query):
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func, rolling back and retrying on lock/version conflicts.

    Raises RetriesExhausted once attempts are used up. Anything else func
    raises propagates immediately.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            logger.warning("Conflict on attempt %s/%s: %s", attempt + 1, attempts, exc)
            if attempt >= attempts - 1:
                break
            time.sleep(backoff_base * (2 ** attempt))
    raise RetriesExhausted(attempts, last_exc)
