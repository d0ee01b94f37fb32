# Overview: Transaction and retry helpers shared by the engine services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConflictError, EngineError, PersistenceError


def _retry_settings(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    config = current_app.config
    if attempts is None:
        attempts = int(config.get("ENGINE_RETRY_ATTEMPTS", 3))
    if backoff_base is None:
        backoff_base = float(config.get("ENGINE_RETRY_BACKOFF", 0.1))
    return max(attempts, 1), backoff_base


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute one unit of work as an all-or-nothing transaction.

    - Any exception rolls the session back before it propagates, so no
      partial writes survive a failed operation.
    - OperationalError (locks, deadlocks) and StaleDataError (optimistic
      version conflicts) are retried from scratch with exponential backoff.
    - Engine errors (business rule violations) are never retried.
    - Storage errors that escape are translated into ConflictError or
      PersistenceError.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except EngineError:
            db.session.rollback()
            raise
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                if isinstance(exc, StaleDataError):
                    raise ConflictError("Concurrent update detected; retry the operation") from exc
                raise PersistenceError("Database is busy; retry the operation") from exc
            current_app.logger.warning(
                "Retrying after %s (attempt %d of %d)", type(exc).__name__, attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError("Write rejected by a database constraint") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError("Storage failure") from exc
        except Exception:
            db.session.rollback()
            raise

