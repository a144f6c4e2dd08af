# Overview: Error taxonomy shared by the finance services and translated to JSON by the routes.

"""
Finance Error Taxonomy

WHY: Callers need a specific reason, not a generic failure. Every error
carries a machine-readable code and the HTTP status the API layer answers
with. Services raise; routes translate into
{"success": false, "error": <code>, "message": <text>}.

CATEGORIES:
- Validation (400): bad input, rejected before any write
- Not found / cross-tenant (404): never reveals rows owned by another tenant
- Business outcomes (409/422): overpayment, insufficient credit or funds
- Signature (403): operator PIN did not verify
"""


class FinanceError(Exception):
    """Base class for all finance operation failures."""
    code = "FINANCE_ERROR"
    status = 400

    def __init__(self, message: str | None = None, **details):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.details = details

    def to_dict(self) -> dict:
        payload = {"success": False, "error": self.code, "message": str(self)}
        payload.update(self.details)
        return payload


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationError(FinanceError):
    """Invalid request."""
    code = "VALIDATION_ERROR"
    status = 400


class InvalidAmountError(ValidationError):
    """Amount must be a positive integer number of cents."""
    code = "INVALID_AMOUNT"


class SplitMismatchError(ValidationError):
    """Split transfer legs do not add up to the declared total."""
    code = "SPLIT_MISMATCH"


# =============================================================================
# NOT FOUND / TENANCY
# =============================================================================

class NotFoundError(FinanceError):
    """Resource not found."""
    code = "NOT_FOUND"
    status = 404


class InvoiceNotFoundError(NotFoundError):
    """Invoice not found."""
    code = "INVOICE_NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """Account not found."""
    code = "ACCOUNT_NOT_FOUND"


class CustomerNotFoundError(NotFoundError):
    """Customer not found."""
    code = "CUSTOMER_NOT_FOUND"


class PaymentNotFoundError(NotFoundError):
    """Payment not found."""
    code = "PAYMENT_NOT_FOUND"


class CrossTenantError(NotFoundError):
    """Resource belongs to another organization."""
    code = "CROSS_TENANT_VIOLATION"


# =============================================================================
# BUSINESS OUTCOMES
# =============================================================================

class OverpaymentNotAllowedError(FinanceError):
    """Payment exceeds the pending balance and surplus banking was not allowed."""
    code = "OVERPAYMENT_NOT_ALLOWED"
    status = 409

    def __init__(self, leftover_cents: int, message: str | None = None):
        super().__init__(
            message or f"Payment exceeds pending balance by {leftover_cents} cents",
            leftover_cents=leftover_cents,
            requires_confirmation=True,
        )
        self.leftover_cents = leftover_cents


class InsufficientCreditError(FinanceError):
    """Customer credit balance is insufficient."""
    code = "INSUFFICIENT_CREDIT"
    status = 422


class InsufficientFundsError(FinanceError):
    """Account balance is insufficient."""
    code = "INSUFFICIENT_FUNDS"
    status = 422


class AccountArchivedError(FinanceError):
    """Account is archived and cannot receive postings."""
    code = "ACCOUNT_ARCHIVED"
    status = 409


class AccountInUseError(FinanceError):
    """Account has a balance or transaction history."""
    code = "ACCOUNT_IN_USE"
    status = 409


class InvariantViolationError(FinanceError):
    """A money invariant would be broken; the operation was rolled back."""
    code = "INVARIANT_VIOLATION"
    status = 500


# =============================================================================
# SIGNATURE
# =============================================================================

class SignatureError(FinanceError):
    """Operator PIN is invalid or no operator matches it."""
    code = "INVALID_SIGNATURE"
    status = 403
