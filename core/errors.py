"""
core/errors.py -- Domain exception taxonomy for Taskboard.

Every failure the services can report is a TaskboardError subclass carrying
the HTTP status it maps to and a stable machine-readable code. Services raise
these; route handlers never catch them. The exception handler registered in
api/main.py turns any TaskboardError into the uniform error envelope.

  ValidationError      422  malformed input the request models could not catch
  AuthInvalidError     401  bad credentials, unknown/consumed refresh token
  AuthExpiredError     401  expired refresh token or access token
  AccountDisabledError 403  inactive user attempting an authenticated action
  ForbiddenError       403  missing permission, owner-removal guard
  NotFoundError        404  referenced entity does not exist
  ConflictError        409  duplicate email/role/membership, built-in role mutation

Nothing here retries. All of the above are terminal outcomes reported to the
caller synchronously.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
rbac/, projects/, tasks/, or activity/.
"""

from __future__ import annotations

from typing import Any


class TaskboardError(Exception):
    """Base class for all expected, user-facing failures."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, errors: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors


class ValidationError(TaskboardError):
    status_code = 422
    code = "validation_error"


class AuthInvalidError(TaskboardError):
    status_code = 401
    code = "auth_invalid"


class AuthExpiredError(TaskboardError):
    status_code = 401
    code = "auth_expired"


class AccountDisabledError(TaskboardError):
    status_code = 403
    code = "account_disabled"


class ForbiddenError(TaskboardError):
    status_code = 403
    code = "forbidden"


class NotFoundError(TaskboardError):
    status_code = 404
    code = "not_found"


class ConflictError(TaskboardError):
    status_code = 409
    code = "conflict"
