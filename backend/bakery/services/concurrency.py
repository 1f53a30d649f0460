# Overview: Transaction boundaries, row locking and retry on lock contention.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import BakeryError, PersistenceFailure
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the whole write
    transaction is serialized by BEGIN IMMEDIATE (see create_app).
    """
    return query.with_for_update()


def _retry_policy(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    config = current_app.config
    if attempts is None:
        attempts = config.get("DB_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = config.get("DB_RETRY_BACKOFF", 0.1)
    return max(1, attempts), backoff_base


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    attempts, backoff_base = _retry_policy(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after lock contention (attempt %s/%s)", attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run `func` and commit, as one unit of work.

    - Domain errors (BakeryError) roll back and propagate unchanged.
    - Lock contention is retried; `func` must therefore be safe to re-run
      from scratch, which holds because nothing is committed before the end.
    - Any other storage failure rolls back and becomes PersistenceFailure.
    """
    def _op():
        result = func()
        db.session.commit()
        return result

    try:
        return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
    except BakeryError:
        db.session.rollback()
        raise
    except (OperationalError, StaleDataError) as exc:
        db.session.rollback()
        raise PersistenceFailure(
            "La base de données est occupée, veuillez réessayer",
            details={"reason": type(exc).__name__},
        ) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Storage failure during ledger operation")
        raise PersistenceFailure(
            "Erreur d'enregistrement, veuillez réessayer",
            details={"reason": type(exc).__name__},
        ) from exc
    except Exception:
        db.session.rollback()
        raise


def commit_with_retry(*, attempts: int | None = None, backoff_base: float | None = None):
    """Commit current session with retry handling."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
