"""Exceptions for billing."""

from orthodesk.core.exceptions import OrthodeskError


class BillingError(OrthodeskError):
    """Base exception for billing errors."""

    code = "BILLING_ERROR"


class AccountExistsError(BillingError):
    """Patient already has an open account."""

    code = "ACCOUNT_EXISTS"


class AccountStateError(BillingError):
    """Account does not accept new charges or payments."""

    code = "INVALID_ACCOUNT_STATUS"


class InvoiceStateError(BillingError):
    """Invoice cannot be changed in its current status."""

    code = "INVALID_INVOICE_STATUS"


class PaymentsAppliedError(InvoiceStateError):
    """Invoice has payments applied and cannot be voided."""

    code = "PAYMENTS_APPLIED"


class PaymentPlanStateError(BillingError):
    """Payment plan does not accept payments in its current status."""

    code = "INVALID_PAYMENT_PLAN_STATUS"
