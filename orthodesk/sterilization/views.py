"""REST API views for sterilization tracking."""

from django.http import HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from orthodesk.core.api import api_success, api_view, get_for_clinic, parse_json_body
from orthodesk.core.exceptions import NotFound, ValidationFailed
from orthodesk.core.forms import clean_form
from orthodesk.core.permissions import require_clinic_permission
from orthodesk.patients.models import Patient
from orthodesk.patients.phi import fog_enabled

from . import reports, selectors, services
from .forms import (
    BIResultForm,
    CompleteCycleForm,
    ImportForm,
    LabelForm,
    LookupForm,
    PackageCreateForm,
    ReasonForm,
    ReleaseForm,
    ReportPeriodForm,
    UsageForm,
)
from .models import (
    AutoclaveIntegration,
    BiologicalIndicator,
    InstrumentPackage,
    SterilizationCycle,
    Sterilizer,
    SterilizerValidation,
)
from .printing import ComplianceReportService, LabelPrintService
from .qr import render_qr_png


def _get_cycle(request, cycle_id) -> SterilizationCycle:
    return get_for_clinic(SterilizationCycle, request.clinic, cycle_id, "CYCLE")


def _get_package(request, package_id) -> InstrumentPackage:
    return get_for_clinic(InstrumentPackage, request.clinic, package_id, "PACKAGE")


def _get_sterilizer(request, sterilizer_id) -> Sterilizer:
    return get_for_clinic(Sterilizer, request.clinic, sterilizer_id, "STERILIZER")


def _period(request):
    raw = {k: request.GET.get(k) for k in ("start", "end") if request.GET.get(k)}
    cleaned = clean_form(ReportPeriodForm, raw)
    return reports.resolve_period(cleaned.get("start"), cleaned.get("end"))


# =============================================================================
# Sterilizers
# =============================================================================


@csrf_exempt
@api_view
@require_http_methods(["GET", "POST"])
def api_sterilizers(request):
    """API: List sterilizers or register one."""
    if request.method == "POST":
        return _create_sterilizer(request)
    return _list_sterilizers(request)


@require_clinic_permission("sterilization:view")
def _list_sterilizers(request):
    sterilizers = Sterilizer.objects.for_clinic(request.clinic).order_by("name")
    return api_success([selectors.serialize_sterilizer(s) for s in sterilizers])


@require_clinic_permission("sterilization:create")
def _create_sterilizer(request):
    sterilizer = services.create_sterilizer(request.clinic, actor=request.user, data=parse_json_body(request))
    return api_success(selectors.serialize_sterilizer(sterilizer), status=201)


# =============================================================================
# Cycles
# =============================================================================


@csrf_exempt
@api_view
@require_http_methods(["GET", "POST"])
def api_cycles(request):
    """API: List cycles or start one."""
    if request.method == "POST":
        return _start_cycle(request)
    return _list_cycles(request)


@require_clinic_permission("sterilization:view")
def _list_cycles(request):
    result = selectors.list_cycles(request.clinic, request.GET)
    result["items"] = [selectors.serialize_cycle(c) for c in result["items"]]
    return api_success(result)


@require_clinic_permission("sterilization:create")
def _start_cycle(request):
    cycle = services.start_cycle(request.clinic, actor=request.user, data=parse_json_body(request))
    return api_success(selectors.serialize_cycle(cycle, detail=True), status=201)


@api_view
@require_GET
@require_clinic_permission("sterilization:view")
def api_cycle_detail(request, cycle_id):
    """API: Cycle with its indicators and packages."""
    return api_success(selectors.serialize_cycle(_get_cycle(request, cycle_id), detail=True))


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("sterilization:update")
def api_cycle_complete(request, cycle_id):
    """API: Close an in-progress cycle.

    POST {"status": "COMPLETED|FAILED|ABORTED", "failure_reason": "...",
          "mechanical_pass": true, "chemical_pass": true, "biological_pass": null}
    """
    cycle = _get_cycle(request, cycle_id)
    cleaned = clean_form(CompleteCycleForm, parse_json_body(request))
    cycle = services.complete_cycle(
        cycle,
        actor=request.user,
        status=cleaned["status"],
        end_time=cleaned.get("end_time"),
        mechanical_pass=cleaned.get("mechanical_pass"),
        chemical_pass=cleaned.get("chemical_pass"),
        biological_pass=cleaned.get("biological_pass"),
        failure_reason=cleaned.get("failure_reason") or "",
    )
    return api_success(selectors.serialize_cycle(cycle, detail=True))


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("sterilization:delete")
def api_cycle_void(request, cycle_id):
    """API: Void a cycle recorded in error. POST {"reason": "..."}"""
    cycle = _get_cycle(request, cycle_id)
    cleaned = clean_form(ReasonForm, parse_json_body(request))
    cycle = services.void_cycle(cycle, actor=request.user, reason=cleaned["reason"])
    return api_success(selectors.serialize_cycle(cycle, detail=True))


# =============================================================================
# Indicators
# =============================================================================


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("sterilization:create")
def api_cycle_biological_indicators(request, cycle_id):
    """API: Place a biological indicator in a cycle."""
    cycle = _get_cycle(request, cycle_id)
    indicator = services.add_biological_indicator(cycle, actor=request.user, data=parse_json_body(request))
    return api_success(selectors.serialize_bi(indicator), status=201)


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("sterilization:update")
def api_bi_result(request, indicator_id):
    """API: Record a biological indicator reading.

    POST {"result": "PASSED|FAILED|INCONCLUSIVE", "control_result": "PASSED", "notes": "..."}
    """
    indicator = get_for_clinic(BiologicalIndicator, request.clinic, indicator_id, "INDICATOR")
    cleaned = clean_form(BIResultForm, parse_json_body(request))
    outcome = services.record_bi_result(
        indicator,
        cleaned["result"],
        actor=request.user,
        notes=cleaned.get("notes") or "",
        control_result=cleaned.get("control_result") or "",
        read_at=cleaned.get("read_at"),
    )
    fog = fog_enabled(request)
    return api_success({
        "indicator": selectors.serialize_bi(outcome["indicator"]),
        "released": outcome["released"],
        "recalled": outcome["recalled"],
        "exposed_usages": [selectors.serialize_usage(u, fog) for u in outcome["exposed_usages"]],
    })


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("sterilization:create")
def api_cycle_chemical_indicators(request, cycle_id):
    """API: Record a chemical indicator result for a cycle."""
    cycle = _get_cycle(request, cycle_id)
    indicator = services.add_chemical_indicator(cycle, actor=request.user, data=parse_json_body(request))
    return api_success(selectors.serialize_ci(indicator), status=201)


# =============================================================================
# Packages
# =============================================================================


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("sterilization:create")
def api_cycle_packages(request, cycle_id):
    """API: Create packages from a completed cycle.

    POST {"package_type": "CASSETTE_FULL", "instrument_names": [...],
          "count": 2, "expiration_days": 30}
    """
    cycle = _get_cycle(request, cycle_id)
    cleaned = clean_form(PackageCreateForm, parse_json_body(request))
    packages = services.create_packages(
        cycle,
        actor=request.user,
        package_type=cleaned["package_type"],
        instrument_names=cleaned["instrument_names"],
        count=cleaned.get("count") or 1,
        expiration_days=cleaned.get("expiration_days"),
        notes=cleaned.get("notes") or "",
    )
    return api_success([selectors.serialize_package(p) for p in packages], status=201)


@api_view
@require_GET
@require_clinic_permission("sterilization:view")
def api_packages(request):
    """API: List packages."""
    result = selectors.list_packages(request.clinic, request.GET)
    result["items"] = [selectors.serialize_package(p) for p in result["items"]]
    return api_success(result)


@api_view
@require_GET
@require_clinic_permission("sterilization:view")
def api_package_detail(request, package_id):
    """API: Package with its usage history."""
    return api_success(selectors.serialize_package(_get_package(request, package_id), detail=True))


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("sterilization:create")
def api_package_usage(request, package_id):
    """API: Record that a package was opened for a patient.

    POST {"patient": "<uuid>", "procedure_type": "...", "verified": true}
    """
    package = _get_package(request, package_id)
    cleaned = clean_form(UsageForm, parse_json_body(request))
    patient = get_for_clinic(Patient, request.clinic, cleaned["patient"], "PATIENT")
    usage = services.record_usage(
        package,
        patient,
        actor=request.user,
        procedure_type=cleaned.get("procedure_type") or "",
        appointment_ref=cleaned.get("appointment_ref") or "",
        verified=cleaned.get("verified") or False,
        notes=cleaned.get("notes") or "",
    )
    return api_success(selectors.serialize_usage(usage, fog_enabled(request)), status=201)


_PACKAGE_ACTIONS = {
    "quarantine": services.quarantine_package,
    "recall": services.recall_package,
    "compromise": services.mark_compromised,
}


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("sterilization:update")
def api_package_action(request, package_id, action):
    """API: Quarantine, recall or mark a package compromised. POST {"reason": "..."}"""
    handler = _PACKAGE_ACTIONS.get(action)
    if handler is None:
        raise NotFound(f"Unknown package action '{action}'", code="ACTION_NOT_FOUND")
    package = _get_package(request, package_id)
    cleaned = clean_form(ReasonForm, parse_json_body(request))
    package = handler(package, actor=request.user, reason=cleaned["reason"])
    return api_success(selectors.serialize_package(package, detail=True))


@api_view
@require_GET
@require_clinic_permission("sterilization:view")
def api_package_qr(request, package_id):
    """API: QR code PNG for a package. ?size=200"""
    package = _get_package(request, package_id)
    try:
        size = min(max(int(request.GET.get("size", 200)), 50), 1000)
    except ValueError:
        raise ValidationFailed("Invalid input", details={"size": ["Size must be an integer."]})
    return HttpResponse(render_qr_png(package.qr_code, size), content_type="image/png")


@api_view
@require_GET
@require_clinic_permission("sterilization:view")
def api_package_lookup(request):
    """API: Resolve scanned QR content. ?content=..."""
    cleaned = clean_form(LookupForm, {"content": request.GET.get("content", "")})
    result = services.lookup_by_qr(request.clinic, cleaned["content"])
    return api_success({
        "parsed": result["parsed"].to_dict() if result["parsed"] else None,
        "package": selectors.serialize_package(result["package"], detail=True) if result["package"] else None,
        "cycle": selectors.serialize_cycle(result["cycle"]) if result["cycle"] else None,
        "packages": [selectors.serialize_package(p) for p in result["packages"]],
        "is_still_sterile": result["is_still_sterile"],
        "days_until_expiration": result["days_until_expiration"],
    })


# =============================================================================
# Quarantine
# =============================================================================


@api_view
@require_GET
@require_clinic_permission("sterilization:view")
def api_quarantine(request):
    """API: Quarantined packages and cycles awaiting a BI reading."""
    result = services.list_quarantine(request.clinic)
    return api_success({
        "packages": [selectors.serialize_package(p) for p in result["packages"]],
        "pending_cycles": [selectors.serialize_cycle(c) for c in result["pending_cycles"]],
    })


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("sterilization:update")
def api_quarantine_release(request):
    """API: Release quarantined packages. POST {"package_ids": [...], "notes": "..."}"""
    cleaned = clean_form(ReleaseForm, parse_json_body(request))
    packages = services.release_packages(
        request.clinic, cleaned["package_ids"], actor=request.user, notes=cleaned["notes"]
    )
    return api_success([selectors.serialize_package(p) for p in packages])


# =============================================================================
# Labels
# =============================================================================


@api_view
@require_GET
@require_clinic_permission("sterilization:view")
def api_labels(request):
    """API: Label sheet PDF. ?package_ids=a,b,c&format=4x2&start_position=0"""
    raw = {k: request.GET.get(k) for k in ("package_ids", "format", "start_position") if request.GET.get(k)}
    cleaned = clean_form(LabelForm, raw)
    ids = cleaned["package_ids"]
    by_id = {
        p.pk: p
        for p in InstrumentPackage.objects.for_clinic(request.clinic).filter(pk__in=ids).select_related("cycle")
    }
    missing = [str(pk) for pk in ids if pk not in by_id]
    if missing:
        raise NotFound("Package not found", code="PACKAGE_NOT_FOUND", details={"package_ids": missing})

    service = LabelPrintService(request.clinic)
    try:
        pdf = service.render_pdf(
            [by_id[pk] for pk in ids],
            cleaned.get("format") or "4x2",
            cleaned.get("start_position") or 0,
        )
    except ValueError as e:
        raise ValidationFailed("Invalid input", details={"start_position": [str(e)]})

    response = HttpResponse(pdf, content_type="application/pdf")
    response["Content-Disposition"] = f'inline; filename="{service.get_filename()}"'
    return response


# =============================================================================
# Autoclaves
# =============================================================================


@csrf_exempt
@api_view
@require_http_methods(["GET", "POST"])
def api_autoclaves(request):
    """API: List autoclave integrations or add one."""
    if request.method == "POST":
        return _create_autoclave(request)
    return _list_autoclaves(request)


@require_clinic_permission("sterilization:view")
def _list_autoclaves(request):
    autoclaves = AutoclaveIntegration.objects.for_clinic(request.clinic).order_by("name")
    return api_success([selectors.serialize_autoclave(a) for a in autoclaves])


@require_clinic_permission("sterilization:create")
def _create_autoclave(request):
    autoclave = services.create_autoclave(request.clinic, actor=request.user, data=parse_json_body(request))
    return api_success(selectors.serialize_autoclave(autoclave), status=201)


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("sterilization:update")
def api_autoclave_test(request, autoclave_id):
    """API: Probe an autoclave."""
    autoclave = get_for_clinic(AutoclaveIntegration, request.clinic, autoclave_id, "AUTOCLAVE")
    result = services.check_autoclave_connection(autoclave)
    return api_success({**result, "autoclave": selectors.serialize_autoclave(autoclave)})


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("sterilization:create")
def api_autoclave_import(request, autoclave_id):
    """API: Import cycles from an autoclave.

    POST {"year": 2025, "month": 12, "cycle_numbers": [391, 392]}
    """
    autoclave = get_for_clinic(AutoclaveIntegration, request.clinic, autoclave_id, "AUTOCLAVE")
    cleaned = clean_form(ImportForm, parse_json_body(request))
    result = services.sync_autoclave(
        autoclave,
        actor=request.user,
        year=cleaned.get("year"),
        month=cleaned.get("month"),
        cycle_numbers=cleaned.get("cycle_numbers"),
    )
    return api_success({
        "imported": result["imported"],
        "skipped": result["skipped"],
        "errors": result["errors"],
        "cycles": [selectors.serialize_cycle(c) for c in result["cycles"]],
    })


# =============================================================================
# Validations
# =============================================================================


@csrf_exempt
@api_view
@require_http_methods(["GET", "POST"])
def api_validations(request):
    """API: List validations or record one. POST {"sterilizer": "<uuid>", ...}"""
    if request.method == "POST":
        return _record_validation(request)
    return _list_validations(request)


@require_clinic_permission("sterilization:view")
def _list_validations(request):
    qs = SterilizerValidation.objects.for_clinic(request.clinic).order_by("-validation_date")
    if request.GET.get("sterilizer"):
        qs = qs.filter(sterilizer=_get_sterilizer(request, request.GET["sterilizer"]))
    return api_success([selectors.serialize_validation(v) for v in qs])


@require_clinic_permission("sterilization:create")
def _record_validation(request):
    body = parse_json_body(request)
    sterilizer = _get_sterilizer(request, body.pop("sterilizer", None))
    validation = services.record_validation(sterilizer, actor=request.user, data=body)
    return api_success(selectors.serialize_validation(validation), status=201)


@api_view
@require_GET
@require_clinic_permission("sterilization:view")
def api_validations_due(request):
    """API: Overdue and due-soon validation schedules."""
    due = services.due_validations(request.clinic)
    return api_success([
        selectors.serialize_schedule(d["schedule"], d["status"], d["days_until_due"]) for d in due
    ])


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("sterilization:create")
def api_validation_schedules(request):
    """API: Create a validation schedule. POST {"sterilizer": "<uuid>", "validation_type": ..., ...}"""
    body = parse_json_body(request)
    sterilizer = _get_sterilizer(request, body.pop("sterilizer", None))
    schedule = services.create_schedule(sterilizer, actor=request.user, data=body)
    status = services.schedule_status(schedule)
    return api_success(selectors.serialize_schedule(schedule, status, None), status=201)


# =============================================================================
# Reports
# =============================================================================


@api_view
@require_GET
@require_clinic_permission("sterilization:view")
def api_report(request, kind):
    """API: summary, cycles, packages or usage report. ?start=&end="""
    report = reports.REPORTS.get(kind)
    if report is None:
        raise NotFound(f"Unknown report '{kind}'", code="REPORT_NOT_FOUND")
    start, end = _period(request)
    return api_success(report(request.clinic, start, end))


@api_view
@require_GET
@require_clinic_permission("sterilization:export")
def api_compliance_pdf(request):
    """API: Compliance report PDF. ?start=&end="""
    start, end = _period(request)
    service = ComplianceReportService(request.clinic)
    response = HttpResponse(service.render_pdf(start, end), content_type="application/pdf")
    response["Content-Disposition"] = f'attachment; filename="{service.get_filename(start, end)}"'
    return response
