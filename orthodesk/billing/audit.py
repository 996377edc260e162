"""Audit adapter for billing.

All billing code must call this adapter, not core.audit directly, so
action strings stay stable.
"""

from orthodesk.core.audit import log


class Actions:
    """Stable audit action constants for billing operations."""

    ACCOUNT_OPENED = "patient_account_opened"

    INVOICE_CREATED = "invoice_created"
    INVOICE_VOIDED = "invoice_voided"
    INVOICES_OVERDUE = "invoices_marked_overdue"

    PAYMENT_RECORDED = "payment_recorded"

    PAYMENT_PLAN_CREATED = "payment_plan_created"
    PAYMENT_PLAN_PAYMENT = "payment_plan_payment_recorded"
    PAYMENT_PLAN_STATUS_CHANGED = "payment_plan_status_changed"

    PAYMENT_LINK_CREATED = "payment_link_created"


def log_billing_event(action: str, target=None, actor=None, clinic=None, changes=None, data=None):
    """Record a billing audit event. Financial records are high sensitivity."""
    return log(
        action=action,
        obj=target,
        actor=actor,
        clinic=clinic or getattr(target, "clinic", None),
        changes=changes,
        metadata=data,
        sensitivity="high",
    )
