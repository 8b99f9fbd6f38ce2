"""
Backend call policy — timeout budget, bounded retry, error translation,
and request sequencing for list refreshes.

Every repository method runs through ``call_backend``:

  - Transient failures (dropped connection, lock timeout, server gone away:
    SQLAlchemy ``OperationalError`` / ``InterfaceError`` / invalidated DBAPI
    connections) are retried with exponential backoff
    ``backoff * min(2 ** (attempt - 1), 4)``.
  - Retries stop at ``BACKEND_MAX_RETRIES`` or when the next sleep would
    overrun ``BACKEND_TIMEOUT_SECONDS`` measured from the first attempt.
  - A single statement is bounded by the engine's statement timeout
    (see ``ProductionConfig.SQLALCHEMY_ENGINE_OPTIONS``).
  - Unique/constraint violations become ``ConflictError``; anything else the
    backend raises becomes ``NetworkError``. The session is rolled back before
    either is raised so no partial write survives.
"""

import functools
import logging
import threading
import time

from flask import current_app, has_app_context
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError, SQLAlchemyError

from app.core.exceptions import ConflictError, NetworkError, StaleResponseError
from app.models import db

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_SECONDS = 0.5


def _policy() -> tuple[float, int, float]:
    if not has_app_context():
        return DEFAULT_TIMEOUT_SECONDS, DEFAULT_MAX_RETRIES, DEFAULT_BACKOFF_SECONDS
    cfg = current_app.config
    return (
        float(cfg.get("BACKEND_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)),
        int(cfg.get("BACKEND_MAX_RETRIES", DEFAULT_MAX_RETRIES)),
        float(cfg.get("BACKEND_RETRY_BACKOFF_SECONDS", DEFAULT_BACKOFF_SECONDS)),
    )


def is_transient(exc: Exception) -> bool:
    """True for failures worth retrying: lost connections and operational hiccups."""
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def call_backend(operation: str, fn, *args, resource: str = "record", **kwargs):
    """Run ``fn`` under the timeout/retry policy and translate backend errors.

    Args:
        operation: Name used in logs and in the raised NetworkError.
        fn: Callable doing the actual backend work.
        resource: Entity name used when a constraint violation is reported.

    Raises:
        ConflictError: Unique or check constraint rejected the write.
        NetworkError: Backend still failing after the retry budget.
    """
    timeout, max_retries, backoff = _policy()
    started = time.monotonic()
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn(*args, **kwargs)
        except IntegrityError as exc:
            db.session.rollback()
            logger.info("Constraint violation in %s: %s", operation, exc.orig)
            raise ConflictError(resource, "constraint", message=f"{resource} violates a uniqueness or integrity rule") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            if not is_transient(exc) or attempt > max_retries:
                logger.error(
                    "Backend call %s failed after %d attempt(s): %s", operation, attempt, exc,
                    extra={"operation": operation, "attempt": attempt},
                )
                raise NetworkError(operation, exc) from exc

            delay = backoff * min(2 ** (attempt - 1), 4)
            if time.monotonic() - started + delay > timeout:
                logger.error(
                    "Backend call %s exceeded %.1fs timeout budget", operation, timeout,
                    extra={"operation": operation, "attempt": attempt},
                )
                raise NetworkError(operation, exc) from exc

            logger.warning(
                "Backend call %s attempt %d/%d failed: %s", operation, attempt, max_retries + 1, exc,
            )
            if delay > 0:
                time.sleep(delay)


def backend_call(method):
    """Decorator for repository methods: runs the method through ``call_backend``."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        operation = f"{getattr(self, 'resource', type(self).__name__)}.{method.__name__}"
        return call_backend(
            operation, method, self, *args,
            resource=getattr(self, "resource", "record"), **kwargs,
        )

    return wrapper


# ═════════════════════════════════════════════════════════════════════════════
# Request sequencing
# ═════════════════════════════════════════════════════════════════════════════

class RequestSequencer:
    """Monotonic per-key request tickets so a slow response never overwrites a newer one.

    Usage:
        ticket = sequencer.begin("tasks:7")
        rows = fetch()
        rows = sequencer.accept("tasks:7", ticket, rows)   # raises StaleResponseError
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._latest: dict[str, int] = {}

    def begin(self, key: str) -> int:
        with self._lock:
            ticket = self._latest.get(key, 0) + 1
            self._latest[key] = ticket
            return ticket

    def latest(self, key: str) -> int:
        with self._lock:
            return self._latest.get(key, 0)

    def is_current(self, key: str, ticket: int) -> bool:
        return self.latest(key) == ticket

    def accept(self, key: str, ticket: int, result):
        latest = self.latest(key)
        if latest != ticket:
            raise StaleResponseError(key, ticket, latest)
        return result
