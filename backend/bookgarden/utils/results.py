from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm.exc import StaleDataError

from bookgarden.errors import INTERNAL, Conflict, OrderError
from bookgarden.extensions import db

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    ok: bool
    message: str = ""
    data: Any = None
    error: str | None = None
    status_code: int = 200

    @classmethod
    def success(cls, message: str, data: Any = None, *, status_code: int = 200) -> "OperationResult":
        return cls(ok=True, message=message, data=data, error=None, status_code=int(status_code))

    @classmethod
    def failure(cls, error: str, message: str, *, status_code: int = 400, data: Any = None) -> "OperationResult":
        return cls(ok=False, message=message, data=data, error=error, status_code=int(status_code))

    @classmethod
    def from_error(cls, exc: OrderError) -> "OperationResult":
        return cls.failure(exc.code, exc.message, status_code=exc.status_code, data=exc.data)

    def to_dict(self) -> dict:
        body = {
            "ok": bool(self.ok),
            "message": self.message or "",
            "data": self.data,
        }
        if self.error:
            body["error"] = self.error
        return body

    def to_response(self) -> tuple[dict, int]:
        return self.to_dict(), int(self.status_code or 200)


def _rollback() -> None:
    try:
        db.session.rollback()
    except Exception:
        logger.warning("session_rollback_failed", exc_info=True)


def operation(failure_message: str):
    """Recover every failure of a public operation into an OperationResult.

    Business errors keep their code and status. A concurrent write detected by the
    optimistic version check becomes CONFLICT. Anything else is logged and reported
    as a generic INTERNAL failure without leaking the exception to the caller.
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs) -> OperationResult:
            try:
                return fn(*args, **kwargs)
            except OrderError as exc:
                _rollback()
                return OperationResult.from_error(exc)
            except StaleDataError:
                _rollback()
                return OperationResult.from_error(
                    Conflict("Order was modified by another request, please retry")
                )
            except Exception:
                _rollback()
                logger.exception("operation_failed op=%s", fn.__name__)
                return OperationResult.failure(INTERNAL, failure_message, status_code=500)

        return wrapper

    return decorator
