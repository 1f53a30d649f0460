# Overview: Domain error hierarchy shared by services and routes.

"""
Every failure a ledger operation can report is a BakeryError. Routes turn
them into JSON bodies of the form {"error", "code", "details"} using the
status_code carried by the class, so services never import Flask.

Messages are French because they are shown as-is to bakery staff.
"""

from __future__ import annotations


class BakeryError(Exception):
    """Base class for expected, user-facing failures."""

    code = "error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(BakeryError):
    code = "validation_error"
    status_code = 400


class InsufficientStock(BakeryError):
    code = "insufficient_stock"
    status_code = 409


class InsufficientIngredient(BakeryError):
    """Raised with details["shortfalls"] listing every missing ingredient."""

    code = "insufficient_ingredient"
    status_code = 409

    def __init__(self, shortfalls: list[dict]):
        names = ", ".join(s["name"] for s in shortfalls)
        super().__init__(
            f"Ingrédients insuffisants: {names}",
            details={"shortfalls": shortfalls},
        )
        self.shortfalls = shortfalls


class InvalidPayment(BakeryError):
    code = "invalid_payment"
    status_code = 400


class NotEligibleForCancellation(BakeryError):
    code = "not_eligible_for_cancellation"
    status_code = 409


class PermissionDenied(BakeryError):
    code = "permission_denied"
    status_code = 403


class NotFound(BakeryError):
    code = "not_found"
    status_code = 404


class ImmutableRecordError(BakeryError):
    code = "immutable_record"
    status_code = 409


class PersistenceFailure(BakeryError):
    """Storage failed after retries; the caller may try again."""

    code = "persistence_failure"
    status_code = 503
