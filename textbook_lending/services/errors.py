"""Failures raised by the lending services.

Each error carries a human-readable ``detail`` and the HTTP status the API
answers with. ``main.py`` renders them as ``{"detail": ...}``, the same body
``HTTPException`` produces.
"""
from typing import Optional


class LendingError(Exception):
    status_code = 400
    default_detail = "Request failed"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotAuthenticated(LendingError):
    status_code = 401
    default_detail = "Not authenticated"


class NotFound(LendingError):
    status_code = 404
    default_detail = "Not found"


class InvalidState(LendingError):
    status_code = 400
    default_detail = "Invalid state"


class NotAdmin(LendingError):
    status_code = 403
    default_detail = "Admin privileges required"
