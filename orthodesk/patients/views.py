"""REST API views for patients and PHI fog."""

from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from orthodesk.core.audit import log
from orthodesk.core.api import api_success, api_view, get_for_clinic, parse_json_body
from orthodesk.core.permissions import require_clinic_permission

from . import services
from .audit import Actions
from .models import Patient
from .phi import fog_enabled, serialize_patient, set_fog


@csrf_exempt
@api_view
@require_http_methods(["GET", "POST"])
def api_patients(request):
    """API: Search patients or create one."""
    if request.method == "POST":
        return _create_patient(request)
    return _list_patients(request)


@require_clinic_permission("patients:view")
def _list_patients(request):
    fog = fog_enabled(request)
    result = services.search_patients(
        request.clinic,
        search=request.GET.get("search", ""),
        status=request.GET.get("status", ""),
        page=request.GET.get("page", 1),
        page_size=request.GET.get("page_size"),
    )
    result["items"] = [serialize_patient(p, fog) for p in result["items"]]
    return api_success(result)


@require_clinic_permission("patients:create")
def _create_patient(request):
    patient = services.create_patient(
        request.clinic, actor=request.user, data=parse_json_body(request)
    )
    return api_success(serialize_patient(patient, fog_enabled(request)), status=201)


@csrf_exempt
@api_view
@require_http_methods(["GET", "PATCH"])
def api_patient_detail(request, patient_id):
    """API: Get or update a patient."""
    if request.method == "PATCH":
        return _update_patient(request, patient_id)
    return _get_patient(request, patient_id)


@require_clinic_permission("patients:view")
def _get_patient(request, patient_id):
    patient = get_for_clinic(Patient, request.clinic, patient_id, "PATIENT")
    return api_success(serialize_patient(patient, fog_enabled(request)))


@require_clinic_permission("patients:update")
def _update_patient(request, patient_id):
    patient = get_for_clinic(Patient, request.clinic, patient_id, "PATIENT")
    patient = services.update_patient(patient, actor=request.user, data=parse_json_body(request))
    return api_success(serialize_patient(patient, fog_enabled(request)))


@csrf_exempt
@api_view
@require_http_methods(["GET", "POST"])
def api_phi_fog(request):
    """API: Read or set the PHI fog flag for this session.

    POST {"enabled": true|false}; omitting ``enabled`` toggles.
    """
    if request.method == "POST":
        body = parse_json_body(request)
        enabled = body.get("enabled", not fog_enabled(request))
        set_fog(request, bool(enabled))
        if request.user.is_authenticated:
            log(
                action=Actions.PHI_FOG_TOGGLED,
                actor=request.user,
                metadata={"enabled": bool(enabled)},
            )
    return api_success({"enabled": fog_enabled(request)})
