# Overview: Base exception types shared by services and routes.

from __future__ import annotations


class CashdeskError(Exception):
    """
    Domain error carrying an HTTP status and structured detail.

    Routes render these as {"error": message, **payload}.
    """
    status_code = 400

    def __init__(self, message: str, **payload):
        super().__init__(message)
        self.message = message
        self.payload = payload

    def to_dict(self) -> dict:
        return {"error": self.message, **self.payload}


class ValidationError(CashdeskError):
    """400-level input problem."""
    status_code = 400


class NotFoundError(CashdeskError):
    status_code = 404


class ConflictError(CashdeskError):
    """409-level business rule conflict."""
    status_code = 409


class AuthorizationError(CashdeskError):
    status_code = 403


class ShiftNotFoundError(NotFoundError):
    pass


class LedgerImmutableError(CashdeskError):
    """Raised on any attempt to update or delete a till movement."""
    status_code = 409
