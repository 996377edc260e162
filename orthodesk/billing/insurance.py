"""Orthodontic insurance estimates. Pure functions."""

from datetime import date

from orthodesk.core.money import ZERO, round_money, to_decimal

from .calculations import add_months

CLAIM_AGING_BUCKETS = ("0-30", "31-60", "61-90", "91-120", "120+")


def calculate_estimated_insurance_payment(
    amount,
    coverage_percent=0,
    deductible=0,
    deductible_met=0,
    remaining_benefit=None,
) -> dict:
    """Estimate what insurance pays on a procedure.

    The unmet deductible comes off first, then the coverage percentage
    applies; the result is capped at the remaining benefit (None means
    no cap).

    Returns:
        {"estimated_payment", "deductible_applied", "coverage_percent"}
    """
    amount = to_decimal(amount)
    coverage = to_decimal(coverage_percent)
    remaining_deductible = max(ZERO, to_decimal(deductible) - to_decimal(deductible_met))

    after_deductible = max(ZERO, amount - remaining_deductible)
    estimate = after_deductible * coverage / 100
    if remaining_benefit is not None:
        estimate = min(estimate, to_decimal(remaining_benefit))

    return {
        "estimated_payment": round_money(estimate),
        "deductible_applied": round_money(min(remaining_deductible, amount)),
        "coverage_percent": coverage,
    }


def check_ortho_benefit(
    *,
    has_ortho_benefit: bool,
    effective_date: date,
    lifetime_max=0,
    used_amount=0,
    termination_date: date | None = None,
    waiting_period_months: int | None = None,
    today: date,
) -> dict:
    """Whether an orthodontic benefit can be used today.

    Returns:
        {"is_available": bool, "remaining_benefit": Decimal, "reason": str}
    """
    if not has_ortho_benefit:
        return {"is_available": False, "remaining_benefit": ZERO, "reason": "No orthodontic benefit on this plan"}

    if termination_date is not None and termination_date < today:
        return {"is_available": False, "remaining_benefit": ZERO, "reason": "Coverage has terminated"}

    if waiting_period_months:
        waiting_ends = add_months(effective_date, waiting_period_months)
        if today < waiting_ends:
            return {
                "is_available": False,
                "remaining_benefit": ZERO,
                "reason": f"Waiting period until {waiting_ends.isoformat()}",
            }

    remaining = max(ZERO, to_decimal(lifetime_max) - to_decimal(used_amount))
    if remaining <= 0:
        return {"is_available": False, "remaining_benefit": ZERO, "reason": "Lifetime maximum has been met"}

    return {"is_available": True, "remaining_benefit": round_money(remaining), "reason": ""}


def claim_aging_bucket(filing_date: date | None, today: date) -> str:
    """Days since a claim was filed, bucketed 0-30 through 120+."""
    days = max(0, (today - filing_date).days) if filing_date else 0
    for limit, bucket in zip((30, 60, 90, 120), CLAIM_AGING_BUCKETS):
        if days <= limit:
            return bucket
    return CLAIM_AGING_BUCKETS[-1]
