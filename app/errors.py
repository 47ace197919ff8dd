"""Error kinds raised by the availability and ledger services.

Each error carries the machine readable ``error`` code and the HTTP status the
routes answer with, so handlers never need to know which service raised it.
"""
from __future__ import annotations


class PetShopError(Exception):
    """Base class for every business or persistence error."""

    error = "error"
    status_code = 400
    default_message = "request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.error, "message": self.message}


class Unauthenticated(PetShopError):
    error = "unauthorized"
    status_code = 401
    default_message = "authentication required"


class InvalidPayload(PetShopError):
    error = "invalid_payload"
    status_code = 400
    default_message = "invalid request payload"


class InvalidAmount(PetShopError):
    error = "invalid_amount"
    status_code = 400
    default_message = "amount must be greater than zero"


class InvalidDuration(PetShopError):
    error = "invalid_duration"
    status_code = 400
    default_message = "duration must be a positive number of minutes"


class SameAccount(PetShopError):
    error = "same_account"
    status_code = 400
    default_message = "source and destination accounts must differ"


class NotFound(PetShopError):
    error = "not_found"
    status_code = 404
    default_message = "resource not found"


class AccountNotFound(NotFound):
    default_message = "account not found"


class CategoryNotFound(NotFound):
    default_message = "category not found"


class ServiceNotFound(NotFound):
    default_message = "service not found"


class AppointmentNotFound(NotFound):
    default_message = "appointment not found"


class TransferNotFound(NotFound):
    default_message = "transfer not found"


class TransactionNotFound(NotFound):
    default_message = "transaction not found"


class InsufficientFunds(PetShopError):
    error = "insufficient_funds"
    status_code = 409
    default_message = "insufficient balance in source account"


class ProtectedTransaction(PetShopError):
    error = "protected_transaction"
    status_code = 409
    default_message = (
        "transaction was generated by a transfer or appointment and cannot be "
        "changed directly"
    )


class ConflictingSlot(PetShopError):
    error = "conflict"
    status_code = 409
    default_message = "selected time is no longer available"


class InvalidStatusTransition(PetShopError):
    error = "invalid_status_transition"
    status_code = 409
    default_message = "appointment status cannot be changed that way"


class PersistenceFailure(PetShopError):
    error = "database_error"
    status_code = 500
    default_message = "the operation could not be saved"


def require_tenant(company_id: int | None) -> int:
    """Every service call must name the company it acts for."""
    if not company_id:
        raise Unauthenticated()
    return company_id
