"""REST API views for treatment planning."""

from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from orthodesk.core.api import api_success, api_view, get_for_clinic, parse_json_body
from orthodesk.core.forms import clean_form
from orthodesk.core.permissions import require_clinic_permission
from orthodesk.patients.models import Patient
from orthodesk.patients.phi import fog_enabled

from . import selectors, services
from .forms import TransitionForm
from .models import CaseAcceptance, TreatmentMilestone, TreatmentOption, TreatmentPhase, TreatmentPlan


def _get_plan(request, plan_id) -> TreatmentPlan:
    return get_for_clinic(TreatmentPlan, request.clinic, plan_id, "TREATMENT_PLAN")


def _get_child(model, request, pk, label):
    """Fetch a plan child (phase/milestone/option) within the request clinic."""
    return get_for_clinic(model, request.clinic, pk, label, clinic_field="plan__clinic")


# =============================================================================
# Plans
# =============================================================================


@csrf_exempt
@api_view
@require_http_methods(["GET", "POST"])
def api_plans(request):
    """API: List plans or create one."""
    if request.method == "POST":
        return _create_plan(request)
    return _list_plans(request)


@require_clinic_permission("treatment:view")
def _list_plans(request):
    fog = fog_enabled(request)
    result = selectors.list_plans(request.clinic, request.GET)
    result["items"] = [selectors.serialize_plan(p, fog) for p in result["items"]]
    return api_success(result)


@require_clinic_permission("treatment:create")
def _create_plan(request):
    body = parse_json_body(request)
    patient = get_for_clinic(Patient, request.clinic, body.pop("patient", None), "PATIENT")
    plan = services.create_plan(request.clinic, patient, actor=request.user, data=body)
    return api_success(selectors.serialize_plan(plan, fog_enabled(request), detail=True), status=201)


@csrf_exempt
@api_view
@require_http_methods(["GET", "PATCH"])
def api_plan_detail(request, plan_id):
    """API: Get or update a plan."""
    if request.method == "PATCH":
        return _update_plan(request, plan_id)
    return _get_plan_detail(request, plan_id)


@require_clinic_permission("treatment:view")
def _get_plan_detail(request, plan_id):
    plan = _get_plan(request, plan_id)
    return api_success(selectors.serialize_plan(plan, fog_enabled(request), detail=True))


@require_clinic_permission("treatment:update")
def _update_plan(request, plan_id):
    plan = _get_plan(request, plan_id)
    plan = services.update_plan(plan, actor=request.user, data=parse_json_body(request))
    return api_success(selectors.serialize_plan(plan, fog_enabled(request), detail=True))


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("treatment:update")
def api_plan_transition(request, plan_id):
    """API: Move a plan to another lifecycle status.

    POST {"status": "PRESENTED", "reason": "..."}
    """
    plan = _get_plan(request, plan_id)
    cleaned = clean_form(TransitionForm, parse_json_body(request))
    plan = services.transition_plan(
        plan, cleaned["status"], actor=request.user, reason=cleaned.get("reason") or ""
    )
    return api_success(selectors.serialize_plan(plan, fog_enabled(request)))


@api_view
@require_GET
@require_clinic_permission("treatment:view")
def api_plan_progress(request, plan_id):
    """API: Progress summary for a plan."""
    plan = _get_plan(request, plan_id)
    return api_success(selectors.calculate_progress(plan))


# =============================================================================
# Phases, milestones, options
# =============================================================================


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("treatment:update")
def api_plan_phases(request, plan_id):
    """API: Add a phase to a plan."""
    plan = _get_plan(request, plan_id)
    phase = services.add_phase(plan, actor=request.user, data=parse_json_body(request))
    return api_success(selectors.serialize_phase(phase), status=201)


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("treatment:update")
def api_phase_progress(request, phase_id):
    """API: Set phase progress. POST {"progress_percent": 40}"""
    phase = _get_child(TreatmentPhase, request, phase_id, "PHASE")
    body = parse_json_body(request)
    phase = services.update_phase_progress(phase, body.get("progress_percent"), actor=request.user)
    return api_success(selectors.serialize_phase(phase))


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("treatment:update")
def api_plan_milestones(request, plan_id):
    """API: Add a milestone to a plan."""
    plan = _get_plan(request, plan_id)
    milestone = services.add_milestone(plan, actor=request.user, data=parse_json_body(request))
    return api_success(selectors.serialize_milestone(milestone), status=201)


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("treatment:update")
def api_milestone_achieve(request, milestone_id):
    """API: Mark a milestone achieved."""
    milestone = _get_child(TreatmentMilestone, request, milestone_id, "MILESTONE")
    milestone = services.achieve_milestone(milestone, actor=request.user)
    return api_success(selectors.serialize_milestone(milestone))


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("treatment:update")
def api_plan_options(request, plan_id):
    """API: Add a treatment option to a plan."""
    plan = _get_plan(request, plan_id)
    option = services.add_option(plan, actor=request.user, data=parse_json_body(request))
    return api_success(selectors.serialize_option(option), status=201)


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("treatment:update")
def api_option_select(request, option_id):
    """API: Select a treatment option."""
    option = _get_child(TreatmentOption, request, option_id, "OPTION")
    option = services.select_option(option, actor=request.user)
    return api_success(selectors.serialize_option(option))


# =============================================================================
# Case acceptance
# =============================================================================


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("treatment:update")
def api_plan_acceptance(request, plan_id):
    """API: Open a case acceptance for a presented plan."""
    plan = _get_plan(request, plan_id)
    acceptance = services.create_acceptance(plan, actor=request.user, data=parse_json_body(request))
    return api_success(selectors.serialize_acceptance(acceptance, fog_enabled(request)), status=201)


@csrf_exempt
@api_view
@require_http_methods(["GET", "PATCH"])
def api_acceptance_detail(request, acceptance_id):
    """API: Get or update a case acceptance."""
    if request.method == "PATCH":
        return _update_acceptance(request, acceptance_id)
    return _get_acceptance(request, acceptance_id)


@require_clinic_permission("treatment:view")
def _get_acceptance(request, acceptance_id):
    acceptance = get_for_clinic(CaseAcceptance, request.clinic, acceptance_id, "CASE_ACCEPTANCE")
    return api_success(selectors.serialize_acceptance(acceptance, fog_enabled(request)))


@require_clinic_permission("treatment:update")
def _update_acceptance(request, acceptance_id):
    acceptance = get_for_clinic(CaseAcceptance, request.clinic, acceptance_id, "CASE_ACCEPTANCE")
    acceptance = services.update_acceptance(acceptance, actor=request.user, data=parse_json_body(request))
    return api_success(selectors.serialize_acceptance(acceptance, fog_enabled(request)))
