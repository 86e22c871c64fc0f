# errors.py — API error taxonomy
# Every error renders as {"message": ..., **extra} with its own status code.
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("projecthub.errors")


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, **self.extra}


class Unauthorized(AppError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(AppError):
    status_code = 403
    default_message = "Forbidden"


class UpgradeRequired(Forbidden):
    """Plan-tier failure. Actionable: the client can offer an upgrade."""

    default_message = "Upgrade required"

    def __init__(self, required_plan: str, message: Optional[str] = None):
        super().__init__(message, requiredPlan=required_plan)
        self.required_plan = required_plan


class ProjectLimitReached(Forbidden):
    default_message = "Project limit reached for your subscription plan"

    def __init__(self, current_plan: str, limit: int):
        super().__init__(None, currentPlan=current_plan, limit=limit)
        self.current_plan = current_plan
        self.limit = limit


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Resource already exists"


class ValidationFailed(AppError):
    status_code = 400
    default_message = "Invalid request data"

    def __init__(self, errors: List[Dict[str, str]], message: Optional[str] = None):
        super().__init__(message, errors=errors)


class InternalError(AppError):
    status_code = 500


@contextmanager
def storage_errors(message: str):
    """Turn a database failure into a 500 carrying a fixed, non-leaking message."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"{message}: {e}")
        raise InternalError(message) from e
