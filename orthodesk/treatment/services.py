"""Treatment planning services.

Every status change of a plan goes through transition_plan(), which
enforces PLAN_LIFECYCLE and stamps the lifecycle dates.
"""

import logging

from django.db import transaction
from django.db.models import CharField, Max, TextField
from django.utils import timezone

from orthodesk.core.exceptions import NotFound, ValidationFailed
from orthodesk.core.forms import clean_form, clean_partial
from orthodesk.core.sequence import next_number

from .audit import Actions, log_treatment_event
from .exceptions import (
    AcceptanceFinalizedError,
    AcceptanceStateError,
    OptionStateError,
    PlanLockedError,
)
from .forms import (
    CaseAcceptanceForm,
    MilestoneForm,
    OptionForm,
    PhaseForm,
    PhaseProgressForm,
    TreatmentPlanForm,
)
from .models import (
    CaseAcceptance,
    PlanStatus,
    TreatmentMilestone,
    TreatmentOption,
    TreatmentPhase,
    TreatmentPlan,
)
from .workflow import PLAN_LIFECYCLE

logger = logging.getLogger(__name__)

# Statuses that record why the plan left the normal path
REASON_STATUSES = frozenset({PlanStatus.ON_HOLD, PlanStatus.DISCONTINUED, PlanStatus.TRANSFERRED})

OPEN_ACCEPTANCE_STATUSES = (
    CaseAcceptance.Status.PENDING,
    CaseAcceptance.Status.PARTIALLY_SIGNED,
    CaseAcceptance.Status.FULLY_SIGNED,
)


def generate_plan_number(clinic) -> str:
    """Format: TP-YYYY-NNNNN."""
    return next_number(clinic, "TP", pad_width=5)


def _ensure_editable(plan: TreatmentPlan):
    if PLAN_LIFECYCLE.is_terminal(plan.status):
        raise PlanLockedError(f"Treatment plan is {plan.status} and cannot be modified")


def _normalize(model, field: str, value):
    """Text columns store "" rather than NULL."""
    if value is None and isinstance(model._meta.get_field(field), (CharField, TextField)):
        return ""
    return value


def _jsonable(value):
    if value is None or isinstance(value, (str, int, float, bool, list)):
        return value
    if hasattr(value, "pk"):
        return str(value.pk)
    return str(value)


# =============================================================================
# Plans
# =============================================================================


@transaction.atomic
def create_plan(clinic, patient, *, actor, data: dict) -> TreatmentPlan:
    """Create a DRAFT plan for a patient of this clinic.

    Raises:
        NotFound: If the patient belongs to another clinic
        ValidationFailed: If data is invalid
    """
    if patient.clinic_id != clinic.pk:
        raise NotFound("Patient not found", code="PATIENT_NOT_FOUND")

    cleaned = clean_form(TreatmentPlanForm, data)
    plan = TreatmentPlan.objects.create(
        clinic=clinic,
        patient=patient,
        plan_number=generate_plan_number(clinic),
        status=PlanStatus.DRAFT,
        created_by=actor if getattr(actor, "is_authenticated", False) else None,
        **{k: _normalize(TreatmentPlan, k, v) for k, v in cleaned.items()},
    )
    log_treatment_event(Actions.PLAN_CREATED, plan, actor=actor, data={"patient_id": str(patient.pk)})
    logger.info("Created treatment plan %s for patient %s", plan.plan_number, patient.pk)
    return plan


@transaction.atomic
def update_plan(plan: TreatmentPlan, *, actor, data: dict) -> TreatmentPlan:
    """Apply a partial update to plan content.

    Status is not updatable here; use transition_plan().

    Raises:
        PlanLockedError: If the plan is COMPLETED, DISCONTINUED or TRANSFERRED
        ValidationFailed: If data is invalid
    """
    _ensure_editable(plan)
    cleaned = clean_partial(TreatmentPlanForm, data)

    start = cleaned.get("start_date", plan.start_date)
    end = cleaned.get("estimated_end_date", plan.estimated_end_date)
    if start and end and end < start:
        raise ValidationFailed(
            "Invalid input",
            details={"estimated_end_date": ["Estimated end date cannot be before start date."]},
        )

    changes = {}
    for field, new in cleaned.items():
        new = _normalize(TreatmentPlan, field, new)
        old = getattr(plan, field)
        if old != new:
            changes[field] = {"old": _jsonable(old), "new": _jsonable(new)}
            setattr(plan, field, new)

    if changes:
        plan.save()
        log_treatment_event(Actions.PLAN_UPDATED, plan, actor=actor, changes=changes)
    return plan


@transaction.atomic
def transition_plan(plan: TreatmentPlan, to_status: str, *, actor, reason: str = "") -> TreatmentPlan:
    """Move a plan to a new lifecycle status.

    Side effects by target status:
        PRESENTED: presented_date
        DRAFT (revise): clears presented_date
        ACCEPTED: accepted_date (kept if already set)
        ACTIVE: start_date if empty
        COMPLETED: actual_end_date; unfinished phases closed at 100%
        ON_HOLD / DISCONTINUED / TRANSFERRED: status_reason

    Raises:
        InvalidTransition: If the lifecycle graph has no such edge
    """
    plan = TreatmentPlan.objects.select_for_update().get(pk=plan.pk)
    from_status = plan.status
    PLAN_LIFECYCLE.check(from_status, to_status)

    now = timezone.now()
    today = timezone.localdate()

    if to_status == PlanStatus.PRESENTED:
        plan.presented_date = now
    elif to_status == PlanStatus.DRAFT:
        plan.presented_date = None
    elif to_status == PlanStatus.ACCEPTED:
        plan.accepted_date = plan.accepted_date or now
    elif to_status == PlanStatus.ACTIVE:
        plan.start_date = plan.start_date or today
    elif to_status == PlanStatus.COMPLETED:
        plan.actual_end_date = today
        plan.phases.filter(
            status__in=[TreatmentPhase.Status.NOT_STARTED, TreatmentPhase.Status.IN_PROGRESS]
        ).update(
            status=TreatmentPhase.Status.COMPLETED,
            progress_percent=100,
            actual_end_date=today,
        )

    if to_status in REASON_STATUSES or (from_status == PlanStatus.ON_HOLD and to_status == PlanStatus.ACTIVE):
        plan.status_reason = reason

    plan.status = to_status
    plan.save()

    log_treatment_event(
        Actions.PLAN_STATUS_CHANGED,
        plan,
        actor=actor,
        changes={"status": {"old": from_status, "new": to_status}},
        data={"reason": reason} if reason else None,
    )
    logger.info("Treatment plan %s: %s -> %s", plan.plan_number, from_status, to_status)
    return plan


def present_plan(plan, *, actor):
    return transition_plan(plan, PlanStatus.PRESENTED, actor=actor)


def accept_plan(plan, *, actor):
    return transition_plan(plan, PlanStatus.ACCEPTED, actor=actor)


def activate_plan(plan, *, actor):
    return transition_plan(plan, PlanStatus.ACTIVE, actor=actor)


def complete_plan(plan, *, actor):
    return transition_plan(plan, PlanStatus.COMPLETED, actor=actor)


def hold_plan(plan, *, actor, reason=""):
    return transition_plan(plan, PlanStatus.ON_HOLD, actor=actor, reason=reason)


def resume_plan(plan, *, actor):
    return transition_plan(plan, PlanStatus.ACTIVE, actor=actor)


def discontinue_plan(plan, *, actor, reason=""):
    return transition_plan(plan, PlanStatus.DISCONTINUED, actor=actor, reason=reason)


def transfer_plan(plan, *, actor, reason=""):
    return transition_plan(plan, PlanStatus.TRANSFERRED, actor=actor, reason=reason)


# =============================================================================
# Phases and milestones
# =============================================================================


@transaction.atomic
def add_phase(plan: TreatmentPlan, *, actor, data: dict) -> TreatmentPhase:
    """Append a phase. phase_number defaults to the next free number."""
    _ensure_editable(plan)
    cleaned = clean_form(PhaseForm, data)
    number = cleaned.pop("phase_number") or (
        (plan.phases.aggregate(n=Max("phase_number"))["n"] or 0) + 1
    )
    phase = TreatmentPhase.objects.create(
        plan=plan,
        phase_number=number,
        phase_name=cleaned["phase_name"],
        phase_type=cleaned.get("phase_type") or TreatmentPhase.PhaseType.CUSTOM,
        description=cleaned.get("description") or "",
        planned_start_date=cleaned.get("planned_start_date"),
        planned_end_date=cleaned.get("planned_end_date"),
    )
    log_treatment_event(Actions.PHASE_ADDED, phase, actor=actor, data={"plan_id": str(plan.pk)})
    return phase


@transaction.atomic
def update_phase_progress(phase: TreatmentPhase, percent, *, actor) -> TreatmentPhase:
    """Set phase progress (0-100).

    100 completes the phase; anything above 0 marks it in progress;
    0 resets it to not started. Skipped phases keep their status.

    Raises:
        ValidationFailed: If percent is not a whole number in 0..100
    """
    _ensure_editable(phase.plan)
    percent = clean_form(PhaseProgressForm, {"progress_percent": percent})["progress_percent"]

    old = phase.progress_percent
    today = timezone.localdate()
    phase.progress_percent = percent
    if phase.status != TreatmentPhase.Status.SKIPPED:
        if percent == 100:
            phase.status = TreatmentPhase.Status.COMPLETED
            phase.actual_start_date = phase.actual_start_date or today
            phase.actual_end_date = today
        elif percent > 0:
            phase.status = TreatmentPhase.Status.IN_PROGRESS
            phase.actual_start_date = phase.actual_start_date or today
            phase.actual_end_date = None
        else:
            phase.status = TreatmentPhase.Status.NOT_STARTED
            phase.actual_end_date = None
    phase.save()

    log_treatment_event(
        Actions.PHASE_PROGRESS_UPDATED,
        phase,
        actor=actor,
        changes={"progress_percent": {"old": old, "new": percent}},
    )
    return phase


@transaction.atomic
def add_milestone(plan: TreatmentPlan, *, actor, data: dict) -> TreatmentMilestone:
    """Add a milestone, optionally tied to one of the plan's phases."""
    _ensure_editable(plan)
    cleaned = clean_form(MilestoneForm, data)
    phase = None
    if cleaned.get("phase"):
        phase = plan.phases.filter(pk=cleaned["phase"]).first()
        if phase is None:
            raise ValidationFailed("Invalid input", details={"phase": ["Phase does not belong to this plan."]})

    milestone = TreatmentMilestone.objects.create(
        plan=plan,
        phase=phase,
        name=cleaned["name"],
        description=cleaned.get("description") or "",
        target_date=cleaned.get("target_date"),
        visible_to_patient=data.get("visible_to_patient", True) is not False,
    )
    log_treatment_event(Actions.MILESTONE_ADDED, milestone, actor=actor)
    return milestone


@transaction.atomic
def achieve_milestone(milestone: TreatmentMilestone, *, actor, achieved_date=None) -> TreatmentMilestone:
    """Mark a milestone ACHIEVED."""
    _ensure_editable(milestone.plan)
    if milestone.status == TreatmentMilestone.Status.ACHIEVED:
        return milestone
    old = milestone.status
    milestone.status = TreatmentMilestone.Status.ACHIEVED
    milestone.achieved_date = achieved_date or timezone.localdate()
    milestone.save()
    log_treatment_event(
        Actions.MILESTONE_ACHIEVED,
        milestone,
        actor=actor,
        changes={"status": {"old": old, "new": milestone.status}},
    )
    return milestone


# =============================================================================
# Options
# =============================================================================


@transaction.atomic
def add_option(plan: TreatmentPlan, *, actor, data: dict) -> TreatmentOption:
    """Add an alternative treatment option."""
    _ensure_editable(plan)
    cleaned = clean_form(OptionForm, data)
    number = cleaned.pop("option_number") or (
        (plan.options.aggregate(n=Max("option_number"))["n"] or 0) + 1
    )
    option = TreatmentOption.objects.create(
        plan=plan,
        option_number=number,
        option_name=cleaned["option_name"],
        appliance_system=cleaned["appliance_system"],
        description=cleaned.get("description") or "",
        estimated_duration=cleaned.get("estimated_duration"),
        estimated_visits=cleaned.get("estimated_visits"),
        estimated_cost=cleaned.get("estimated_cost"),
        is_recommended=bool(cleaned.get("is_recommended")),
        advantages=cleaned.get("advantages") or [],
        disadvantages=cleaned.get("disadvantages") or [],
    )
    log_treatment_event(Actions.OPTION_ADDED, option, actor=actor)
    return option


@transaction.atomic
def select_option(option: TreatmentOption, *, actor) -> TreatmentOption:
    """Select one option; every other non-archived option is declined.

    Raises:
        OptionStateError: If the option is archived
    """
    _ensure_editable(option.plan)
    if option.status == TreatmentOption.Status.ARCHIVED:
        raise OptionStateError("Archived options cannot be selected")

    option.plan.options.exclude(pk=option.pk).exclude(
        status=TreatmentOption.Status.ARCHIVED
    ).update(status=TreatmentOption.Status.DECLINED)

    if option.status != TreatmentOption.Status.SELECTED:
        option.status = TreatmentOption.Status.SELECTED
        option.selected_date = timezone.now()
        option.save()
        log_treatment_event(Actions.OPTION_SELECTED, option, actor=actor)
    return option


# =============================================================================
# Case acceptance
# =============================================================================

_SIGNATURE_DATES = {
    "informed_consent_signed": "informed_consent_date",
    "financial_agreement_signed": "financial_agreement_date",
    "hipaa_acknowledged": "hipaa_acknowledged_date",
}


def derive_acceptance_status(acceptance: CaseAcceptance) -> str:
    """FULLY_SIGNED when signature, consent and financial agreement are all present;
    PARTIALLY_SIGNED when any is; otherwise unchanged."""
    parts = (
        bool(acceptance.patient_signature),
        acceptance.informed_consent_signed,
        acceptance.financial_agreement_signed,
    )
    if all(parts):
        return CaseAcceptance.Status.FULLY_SIGNED
    if any(parts):
        return CaseAcceptance.Status.PARTIALLY_SIGNED
    return acceptance.status


@transaction.atomic
def create_acceptance(plan: TreatmentPlan, *, actor, data: dict | None = None) -> CaseAcceptance:
    """Open a case acceptance for a PRESENTED plan.

    Raises:
        AcceptanceStateError: If the plan is not PRESENTED or already has an open acceptance
    """
    if plan.status != PlanStatus.PRESENTED:
        raise AcceptanceStateError(
            f"Treatment plan must be PRESENTED to create an acceptance (is {plan.status})"
        )
    if plan.acceptances.filter(status__in=OPEN_ACCEPTANCE_STATUSES).exists():
        raise AcceptanceStateError(
            "Treatment plan already has an open case acceptance",
            code="ACCEPTANCE_EXISTS",
        )

    acceptance = CaseAcceptance.objects.create(
        clinic=plan.clinic,
        plan=plan,
        patient=plan.patient,
        total_treatment_cost=plan.total_fee,
    )
    if data:
        _apply_acceptance_fields(acceptance, clean_partial(CaseAcceptanceForm, data))
        acceptance.save()

    log_treatment_event(Actions.ACCEPTANCE_CREATED, acceptance, actor=actor)
    return acceptance


def _apply_acceptance_fields(acceptance: CaseAcceptance, cleaned: dict) -> None:
    now = timezone.now()
    for field, value in cleaned.items():
        if field == "status":
            continue
        if field == "selected_option":
            option = None
            if value:
                option = acceptance.plan.options.filter(pk=value).first()
                if option is None:
                    raise ValidationFailed(
                        "Invalid input",
                        details={"selected_option": ["Option does not belong to this plan."]},
                    )
            acceptance.selected_option = option
            continue
        if field in _SIGNATURE_DATES:
            value = bool(value)
            date_field = _SIGNATURE_DATES[field]
            setattr(acceptance, date_field, (getattr(acceptance, date_field) or now) if value else None)
        elif field == "photo_release_consent":
            value = bool(value)
        else:
            value = _normalize(CaseAcceptance, field, value)
        setattr(acceptance, field, value)

    if "patient_signature" in cleaned:
        acceptance.patient_signed_date = (acceptance.patient_signed_date or now) if acceptance.patient_signature else None
    if "guardian_signature" in cleaned:
        acceptance.guardian_signed_date = (acceptance.guardian_signed_date or now) if acceptance.guardian_signature else None


@transaction.atomic
def update_acceptance(acceptance: CaseAcceptance, *, actor, data: dict) -> CaseAcceptance:
    """Record signatures and terms on a case acceptance.

    The status is derived from the signatures unless ``status`` is given
    explicitly. The first time an acceptance becomes FULLY_SIGNED the
    plan moves to ACCEPTED.

    Raises:
        AcceptanceFinalizedError: If already FULLY_SIGNED and not being withdrawn
        InvalidTransition: If the plan cannot move to ACCEPTED
    """
    cleaned = clean_partial(CaseAcceptanceForm, data)
    old_status = acceptance.status
    requested = cleaned.get("status") or ""

    if acceptance.is_finalized:
        if requested != CaseAcceptance.Status.WITHDRAWN:
            raise AcceptanceFinalizedError("Cannot modify a fully signed case acceptance")
        acceptance.status = CaseAcceptance.Status.WITHDRAWN
        acceptance.save()
        log_treatment_event(
            Actions.ACCEPTANCE_UPDATED,
            acceptance,
            actor=actor,
            changes={"status": {"old": old_status, "new": acceptance.status}},
        )
        return acceptance

    _apply_acceptance_fields(acceptance, cleaned)
    acceptance.status = requested or derive_acceptance_status(acceptance)

    became_signed = (
        acceptance.status == CaseAcceptance.Status.FULLY_SIGNED
        and old_status != CaseAcceptance.Status.FULLY_SIGNED
    )
    if became_signed and not acceptance.accepted_date:
        acceptance.accepted_date = timezone.now()
    acceptance.save()

    if became_signed:
        if acceptance.selected_option_id:
            select_option(acceptance.selected_option, actor=actor)
        plan = acceptance.plan
        if plan.status != PlanStatus.ACCEPTED:
            acceptance.plan = transition_plan(plan, PlanStatus.ACCEPTED, actor=actor)

    log_treatment_event(
        Actions.ACCEPTANCE_UPDATED,
        acceptance,
        actor=actor,
        changes={"status": {"old": old_status, "new": acceptance.status}} if old_status != acceptance.status else None,
        data={"updated_fields": sorted(cleaned)},
    )
    return acceptance
