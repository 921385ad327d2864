from __future__ import annotations


class ProviderClientError(Exception):
    """Base error for bank-data provider client failures."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UnknownUserError(Exception):
    """Raised when an operation is invoked without a usable user id."""


def require_user_id(user_id: str | None) -> str:
    """Return ``user_id`` or raise UnknownUserError when it is blank."""
    if user_id is None or not str(user_id).strip():
        raise UnknownUserError("A user id is required")
    return str(user_id)
