"""Pure billing arithmetic. No model access.

All amounts are Decimal and rounded half-up to cents.
"""

import calendar
import secrets
from datetime import date

from orthodesk.core.money import ZERO, round_money, to_decimal

PAYMENT_LINK_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789"
PAYMENT_LINK_LENGTH = 12

CURRENT = "CURRENT"
AGING_BUCKETS = (CURRENT, "1_30", "31_60", "61_90", "91_120", "120_PLUS")
_BUCKET_LABELS = {
    CURRENT: "Current",
    "1_30": "1-30 Days",
    "31_60": "31-60 Days",
    "61_90": "61-90 Days",
    "91_120": "91-120 Days",
    "120_PLUS": "120+ Days",
}


def _get(item, name, default=None):
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def line_patient_amount(item):
    """Explicit patient_amount, else qty x unit_price - discount - insurance."""
    explicit = _get(item, "patient_amount")
    if explicit is not None and explicit != "":
        return to_decimal(explicit)
    quantity = to_decimal(_get(item, "quantity", 1))
    return (
        quantity * to_decimal(_get(item, "unit_price"))
        - to_decimal(_get(item, "discount"))
        - to_decimal(_get(item, "insurance_amount"))
    )


def calculate_invoice_totals(items) -> dict:
    """Totals for invoice lines (dicts or InvoiceItem-like objects).

    Returns:
        {"subtotal", "adjustments", "insurance", "patient_amount", "balance"}
        where balance starts equal to patient_amount.
    """
    subtotal = adjustments = insurance = patient = ZERO
    for item in items:
        subtotal += to_decimal(_get(item, "quantity", 1)) * to_decimal(_get(item, "unit_price"))
        adjustments += to_decimal(_get(item, "discount"))
        insurance += to_decimal(_get(item, "insurance_amount"))
        patient += line_patient_amount(item)

    patient = round_money(patient)
    return {
        "subtotal": round_money(subtotal),
        "adjustments": round_money(adjustments),
        "insurance": round_money(insurance),
        "patient_amount": patient,
        "balance": patient,
    }


def calculate_payment_plan_amounts(total, down_payment, number_of_payments: int) -> dict:
    """Financed amount and monthly installment.

    Raises:
        ValueError: If number_of_payments < 1 or down_payment is negative
            or exceeds total
    """
    total = to_decimal(total)
    down_payment = to_decimal(down_payment)
    if number_of_payments < 1:
        raise ValueError("number_of_payments must be at least 1")
    if down_payment < 0:
        raise ValueError("down_payment cannot be negative")
    if down_payment > total:
        raise ValueError("down_payment cannot exceed total")

    financed = total - down_payment
    return {
        "financed_amount": round_money(financed),
        "monthly_payment": round_money(financed / number_of_payments),
        "remaining_balance": round_money(financed),
    }


def calculate_days_overdue(due_date: date | None, today: date) -> int:
    if due_date is None:
        return 0
    return max(0, (today - due_date).days)


def get_aging_bucket(days_overdue: int) -> str:
    if days_overdue <= 0:
        return CURRENT
    if days_overdue <= 30:
        return "1_30"
    if days_overdue <= 60:
        return "31_60"
    if days_overdue <= 90:
        return "61_90"
    if days_overdue <= 120:
        return "91_120"
    return "120_PLUS"


def aging_bucket_label(bucket: str) -> str:
    return _BUCKET_LABELS.get(bucket, bucket)


def generate_payment_link_code() -> str:
    return "".join(secrets.choice(PAYMENT_LINK_ALPHABET) for _ in range(PAYMENT_LINK_LENGTH))


def add_months(start: date, months: int) -> date:
    """Same day ``months`` later, clamped to the last day of a shorter month."""
    month_index = start.month - 1 + months
    year, month = start.year + month_index // 12, month_index % 12 + 1
    return date(year, month, min(start.day, calendar.monthrange(year, month)[1]))
