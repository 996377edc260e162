"""Audit adapter for treatment planning.

All treatment code must call this adapter, not core.audit directly, so
action strings stay stable.
"""

from orthodesk.core.audit import log


class Actions:
    """Stable audit action constants for treatment operations."""

    PLAN_CREATED = "treatment_plan_created"
    PLAN_UPDATED = "treatment_plan_updated"
    PLAN_STATUS_CHANGED = "treatment_plan_status_changed"

    PHASE_ADDED = "treatment_phase_added"
    PHASE_PROGRESS_UPDATED = "treatment_phase_progress_updated"

    MILESTONE_ADDED = "treatment_milestone_added"
    MILESTONE_ACHIEVED = "treatment_milestone_achieved"

    OPTION_ADDED = "treatment_option_added"
    OPTION_SELECTED = "treatment_option_selected"

    ACCEPTANCE_CREATED = "case_acceptance_created"
    ACCEPTANCE_UPDATED = "case_acceptance_updated"


def log_treatment_event(action: str, target, actor=None, changes=None, data=None):
    """Record a treatment audit event. Plans carry PHI, so sensitivity is high."""
    plan = getattr(target, "plan", None)
    return log(
        action=action,
        obj=target,
        actor=actor,
        clinic=getattr(target, "clinic", None) or getattr(plan, "clinic", None),
        changes=changes,
        metadata=data,
        sensitivity="high",
    )
