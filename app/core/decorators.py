import functools
import logging
from typing import Callable

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.exceptions import ConflictException

logger = logging.getLogger(__name__)


def _find_session(args: tuple, kwargs: dict) -> Session | None:
    db = kwargs.get('db')
    if isinstance(db, Session):
        return db
    return next((arg for arg in args if isinstance(arg, Session)), None)


def retry_on_stale(func: Callable) -> Callable:
    """Re-run a read-check-write service call when its optimistic version check loses a race.

    The wrapped call must re-read its rows, so a retry sees the winner's state.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        db = _find_session(args, kwargs)
        attempts = max(1, settings.STALE_RETRY_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except StaleDataError:
                if db is not None:
                    db.rollback()
                logger.warning(f"Stale write in {func.__name__} (try {attempt}/{attempts})")
        raise ConflictException("The record was modified concurrently, please retry.")
    return wrapper


def closes_transaction(func: Callable) -> Callable:
    """End whatever transaction a service call leaves open when it returns.

    Services commit their own writes; building the response afterwards reloads
    rows, which begins a new transaction. On SQLite that transaction keeps a
    SHARED lock that blocks every other writer until it ends.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        db = _find_session(args, kwargs)
        try:
            result = func(*args, **kwargs)
        except Exception:
            if db is not None and db.in_transaction():
                db.rollback()
            raise
        if db is not None and db.in_transaction():
            db.commit()
        return result
    return wrapper
