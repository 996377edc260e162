"""Read-side queries and serializers for treatment planning."""

from django.db.models import Q

from orthodesk.core.api import paginate
from orthodesk.core.forms import clean_form
from orthodesk.patients.phi import serialize_patient

from .forms import PlanQueryForm
from .models import TreatmentMilestone, TreatmentPhase, TreatmentPlan
from .workflow import PLAN_LIFECYCLE


def list_plans(clinic, params) -> dict:
    """Filtered, sorted, paginated plans for a clinic.

    ``params`` is a QueryDict or dict with any of: search, patient, status
    ('' and 'all' mean any), provider, start_from, start_to, page,
    page_size, sort_by, sort_order.
    """
    raw = {k: params.get(k) for k in PlanQueryForm.base_fields if params.get(k) not in (None, "")}
    q = clean_form(PlanQueryForm, raw)

    qs = TreatmentPlan.objects.for_clinic(clinic).select_related("patient", "primary_provider")
    if q.get("search"):
        term = q["search"]
        qs = qs.filter(
            Q(plan_number__icontains=term)
            | Q(plan_name__icontains=term)
            | Q(patient__first_name__icontains=term)
            | Q(patient__last_name__icontains=term)
        )
    if q.get("patient"):
        qs = qs.filter(patient_id=q["patient"])
    if q.get("status"):
        qs = qs.filter(status=q["status"])
    if q.get("provider"):
        qs = qs.filter(primary_provider_id=q["provider"])
    if q.get("start_from"):
        qs = qs.filter(start_date__gte=q["start_from"])
    if q.get("start_to"):
        qs = qs.filter(start_date__lte=q["start_to"])

    sort_by = q.get("sort_by") or "created_at"
    prefix = "" if q.get("sort_order") == "asc" else "-"
    qs = qs.order_by(f"{prefix}{sort_by}", "-created_at" if sort_by != "created_at" else "pk")

    return paginate(qs, q.get("page") or 1, q.get("page_size"))


def calculate_progress(plan: TreatmentPlan) -> dict:
    """Overall progress is the rounded mean of phase progress (0 with no phases)."""
    phases = list(plan.phases.all())
    milestones = list(plan.milestones.all())

    if phases:
        overall = round(sum(p.progress_percent for p in phases) / len(phases))
    else:
        overall = 0

    return {
        "overall_progress": overall,
        "phases_completed": sum(1 for p in phases if p.status == TreatmentPhase.Status.COMPLETED),
        "total_phases": len(phases),
        "milestones_achieved": sum(1 for m in milestones if m.status == TreatmentMilestone.Status.ACHIEVED),
        "total_milestones": len(milestones),
    }


# =============================================================================
# Serializers
# =============================================================================


def _user(user):
    if user is None:
        return None
    return {"id": user.pk, "name": user.get_full_name() or user.get_username()}


def serialize_plan(plan: TreatmentPlan, fog: bool = False, detail: bool = False) -> dict:
    data = {
        "id": str(plan.pk),
        "plan_number": plan.plan_number,
        "plan_name": plan.plan_name,
        "plan_type": plan.plan_type,
        "status": plan.status,
        "status_reason": plan.status_reason,
        "allowed_transitions": [str(s) for s in PLAN_LIFECYCLE.allowed(plan.status)],
        "patient": serialize_patient(plan.patient, fog),
        "primary_provider": _user(plan.primary_provider),
        "total_fee": plan.total_fee,
        "start_date": plan.start_date,
        "estimated_end_date": plan.estimated_end_date,
        "actual_end_date": plan.actual_end_date,
        "presented_date": plan.presented_date,
        "accepted_date": plan.accepted_date,
        "created_at": plan.created_at,
    }
    if detail:
        data.update({
            "chief_complaint": plan.chief_complaint,
            "diagnosis": plan.diagnosis,
            "treatment_goals": plan.treatment_goals,
            "treatment_description": plan.treatment_description,
            "supervising_provider": _user(plan.supervising_provider),
            "estimated_duration": plan.estimated_duration,
            "estimated_visits": plan.estimated_visits,
            "phases": [serialize_phase(p) for p in plan.phases.all()],
            "milestones": [serialize_milestone(m) for m in plan.milestones.all()],
            "options": [serialize_option(o) for o in plan.options.all()],
            "progress": calculate_progress(plan),
        })
    return data


def serialize_phase(phase) -> dict:
    return {
        "id": str(phase.pk),
        "phase_number": phase.phase_number,
        "phase_name": phase.phase_name,
        "phase_type": phase.phase_type,
        "status": phase.status,
        "progress_percent": phase.progress_percent,
        "planned_start_date": phase.planned_start_date,
        "planned_end_date": phase.planned_end_date,
        "actual_start_date": phase.actual_start_date,
        "actual_end_date": phase.actual_end_date,
    }


def serialize_milestone(milestone) -> dict:
    return {
        "id": str(milestone.pk),
        "name": milestone.name,
        "phase_id": str(milestone.phase_id) if milestone.phase_id else None,
        "status": milestone.status,
        "target_date": milestone.target_date,
        "achieved_date": milestone.achieved_date,
        "visible_to_patient": milestone.visible_to_patient,
    }


def serialize_option(option) -> dict:
    return {
        "id": str(option.pk),
        "option_number": option.option_number,
        "option_name": option.option_name,
        "appliance_system": option.appliance_system,
        "estimated_duration": option.estimated_duration,
        "estimated_cost": option.estimated_cost,
        "is_recommended": option.is_recommended,
        "advantages": option.advantages,
        "disadvantages": option.disadvantages,
        "status": option.status,
    }


def serialize_acceptance(acceptance, fog: bool = False) -> dict:
    return {
        "id": str(acceptance.pk),
        "plan_id": str(acceptance.plan_id),
        "patient": serialize_patient(acceptance.patient, fog),
        "status": acceptance.status,
        "selected_option_id": str(acceptance.selected_option_id) if acceptance.selected_option_id else None,
        "informed_consent_signed": acceptance.informed_consent_signed,
        "financial_agreement_signed": acceptance.financial_agreement_signed,
        "hipaa_acknowledged": acceptance.hipaa_acknowledged,
        "photo_release_consent": acceptance.photo_release_consent,
        "patient_signed": bool(acceptance.patient_signature),
        "patient_signed_date": acceptance.patient_signed_date,
        "total_treatment_cost": acceptance.total_treatment_cost,
        "down_payment": acceptance.down_payment,
        "monthly_payment": acceptance.monthly_payment,
        "payment_plan_months": acceptance.payment_plan_months,
        "accepted_date": acceptance.accepted_date,
    }
