# Overview: Exception taxonomy shared by the billing and payment services.

"""
Billing Engine Errors

Every error aborts the unit of work it is raised in; nothing partial is
committed. Callers (HTTP layer, CLI) map the classes below to responses:

- ValidationError: bad input, rejected before any write
- NotFoundError: referenced entity absent in this business
- BusinessRuleError: input is well-formed but the ledger state forbids it
- ConcurrencyError: lock/serialization conflict survived all retries;
  retry the whole operation
"""


class BillingError(Exception):
    """Base class for billing engine errors."""
    code = "BILLING_ERROR"

    def __init__(self, message: str, code: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(BillingError):
    """Raised when input fails validation."""
    code = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Raised when a monetary amount is zero, negative, or not whole cents."""
    code = "INVALID_AMOUNT"


class NotFoundError(BillingError):
    """Raised when a bill, customer, product or business is not in scope."""
    code = "NOT_FOUND"


class BusinessRuleError(BillingError):
    """Raised when the current ledger state forbids the operation."""
    code = "BUSINESS_RULE"


class AlreadySettledError(BusinessRuleError):
    """Raised when paying a bill that has no remaining balance."""
    code = "ALREADY_SETTLED"


class InvariantViolationError(BusinessRuleError):
    """Raised when a bill or payment would break a ledger invariant."""
    code = "INVARIANT_VIOLATION"


class ConcurrencyError(BillingError):
    """Raised when a DB operation keeps conflicting after all retries."""
    code = "CONCURRENCY_CONFLICT"
