"""Read-side queries and serializers for sterilization."""

from django.db.models import Q

from orthodesk.core.api import paginate
from orthodesk.core.forms import clean_form
from orthodesk.patients.phi import serialize_patient

from .forms import CycleQueryForm, PackageQueryForm
from .labels import cycle_type_display, format_cycle_params
from .models import InstrumentPackage, SterilizationCycle
from .qr import days_until_expiration, is_still_sterile


def _query(form_class, params) -> dict:
    raw = {k: params.get(k) for k in form_class.base_fields if params.get(k) not in (None, "")}
    return clean_form(form_class, raw)


def list_cycles(clinic, params) -> dict:
    """Cycles newest first, filtered by status, cycle_type and start/end date."""
    q = _query(CycleQueryForm, params)
    qs = SterilizationCycle.objects.for_clinic(clinic).select_related("sterilizer", "operator")
    if q.get("status"):
        qs = qs.filter(status=q["status"])
    if q.get("cycle_type"):
        qs = qs.filter(cycle_type=q["cycle_type"])
    if q.get("start"):
        qs = qs.filter(start_time__date__gte=q["start"])
    if q.get("end"):
        qs = qs.filter(start_time__date__lte=q["end"])
    return paginate(qs.order_by("-start_time"), q.get("page") or 1, q.get("page_size"))


def list_packages(clinic, params) -> dict:
    """Packages newest first, filtered by status, type, cycle or number search."""
    q = _query(PackageQueryForm, params)
    qs = InstrumentPackage.objects.for_clinic(clinic).select_related("cycle")
    if q.get("status"):
        qs = qs.filter(status=q["status"])
    if q.get("package_type"):
        qs = qs.filter(package_type=q["package_type"])
    if q.get("cycle"):
        qs = qs.filter(cycle_id=q["cycle"])
    if q.get("search"):
        term = q["search"]
        qs = qs.filter(Q(package_number__icontains=term) | Q(cycle__cycle_number__icontains=term))
    return paginate(qs.order_by("-sterilized_date", "-package_number"), q.get("page") or 1, q.get("page_size"))


# =============================================================================
# Serializers
# =============================================================================


def _user(user):
    if user is None:
        return None
    return {"id": user.pk, "name": user.get_full_name() or user.get_username()}


def serialize_sterilizer(sterilizer) -> dict:
    return {
        "id": str(sterilizer.pk),
        "name": sterilizer.name,
        "model": sterilizer.model,
        "serial_number": sterilizer.serial_number,
        "is_active": sterilizer.is_active,
    }


def serialize_cycle(cycle: SterilizationCycle, detail: bool = False) -> dict:
    data = {
        "id": str(cycle.pk),
        "cycle_number": cycle.cycle_number,
        "cycle_type": cycle.cycle_type,
        "cycle_type_display": cycle_type_display(cycle.cycle_type),
        "parameters": format_cycle_params(cycle.temperature, cycle.exposure_time),
        "sterilizer": serialize_sterilizer(cycle.sterilizer) if cycle.sterilizer else None,
        "status": cycle.status,
        "start_time": cycle.start_time,
        "end_time": cycle.end_time,
        "temperature": cycle.temperature,
        "pressure": cycle.pressure,
        "exposure_time": cycle.exposure_time,
        "drying_time": cycle.drying_time,
        "mechanical_pass": cycle.mechanical_pass,
        "chemical_pass": cycle.chemical_pass,
        "biological_pass": cycle.biological_pass,
        "failure_reason": cycle.failure_reason,
        "operator": _user(cycle.operator),
        "external_cycle_number": cycle.external_cycle_number,
    }
    if detail:
        data.update({
            "notes": cycle.notes,
            "autoclave_id": str(cycle.autoclave_id) if cycle.autoclave_id else None,
            "digital_signature": cycle.digital_signature,
            "temp_profile": cycle.temp_profile,
            "pressure_profile": cycle.pressure_profile,
            "biological_indicators": [serialize_bi(bi) for bi in cycle.biological_indicators.order_by("placed_at")],
            "chemical_indicators": [serialize_ci(ci) for ci in cycle.chemical_indicators.order_by("created_at")],
            "packages": [serialize_package(p) for p in cycle.packages.order_by("package_number")],
            "compliance_logs": [serialize_compliance_log(e) for e in cycle.compliance_logs.order_by("created_at")],
        })
    return data


def serialize_bi(indicator) -> dict:
    return {
        "id": str(indicator.pk),
        "cycle_id": str(indicator.cycle_id),
        "lot_number": indicator.lot_number,
        "brand": indicator.brand,
        "placed_at": indicator.placed_at,
        "read_at": indicator.read_at,
        "incubation_hours": indicator.incubation_hours,
        "result": indicator.result,
        "control_result": indicator.control_result,
        "read_by": _user(indicator.read_by),
        "notes": indicator.notes,
    }


def serialize_ci(indicator) -> dict:
    return {
        "id": str(indicator.pk),
        "cycle_id": str(indicator.cycle_id),
        "indicator_class": indicator.indicator_class,
        "result": indicator.result,
        "location": indicator.location,
        "notes": indicator.notes,
    }


def serialize_package(package: InstrumentPackage, detail: bool = False) -> dict:
    data = {
        "id": str(package.pk),
        "package_number": package.package_number,
        "package_type": package.package_type,
        "status": package.status,
        "cycle_id": str(package.cycle_id),
        "cycle_number": package.cycle.cycle_number,
        "instrument_names": package.instrument_names,
        "sterilized_date": package.sterilized_date,
        "expiration_date": package.expiration_date,
        "is_still_sterile": is_still_sterile(package.expiration_date),
        "days_until_expiration": days_until_expiration(package.expiration_date),
        "qr_code": package.qr_code,
        "quarantine_reason": package.quarantine_reason,
    }
    if detail:
        data.update({
            "released_at": package.released_at,
            "released_by": _user(package.released_by),
            "release_notes": package.release_notes,
            "notes": package.notes,
            "usages": [serialize_usage(u) for u in package.usages.select_related("patient").order_by("used_at")],
        })
    return data


def serialize_usage(usage, fog: bool = False) -> dict:
    return {
        "id": str(usage.pk),
        "package_id": str(usage.package_id),
        "patient": serialize_patient(usage.patient, fog),
        "procedure_type": usage.procedure_type,
        "appointment_ref": usage.appointment_ref,
        "used_at": usage.used_at,
        "used_by": _user(usage.used_by),
        "verified": usage.verified,
    }


def serialize_autoclave(autoclave) -> dict:
    return {
        "id": str(autoclave.pk),
        "name": autoclave.name,
        "ip_address": autoclave.ip_address,
        "port": autoclave.port,
        "sterilizer_id": str(autoclave.sterilizer_id) if autoclave.sterilizer_id else None,
        "enabled": autoclave.enabled,
        "status": autoclave.status,
        "last_sync_at": autoclave.last_sync_at,
        "last_cycle_num": autoclave.last_cycle_num,
        "error_message": autoclave.error_message,
    }


def serialize_validation(validation) -> dict:
    return {
        "id": str(validation.pk),
        "sterilizer_id": str(validation.sterilizer_id),
        "validation_type": validation.validation_type,
        "validation_date": validation.validation_date,
        "result": validation.result,
        "next_due_date": validation.next_due_date,
        "performed_by": validation.performed_by,
        "notes": validation.notes,
    }


def serialize_schedule(schedule, status: str | None = None, days_until_due: int | None = None) -> dict:
    data = {
        "id": str(schedule.pk),
        "sterilizer": serialize_sterilizer(schedule.sterilizer),
        "validation_type": schedule.validation_type,
        "frequency_days": schedule.frequency_days,
        "reminder_days": schedule.reminder_days,
        "last_performed": schedule.last_performed,
        "next_due": schedule.next_due,
        "is_active": schedule.is_active,
    }
    if status is not None:
        data["status"] = status
        data["days_until_due"] = days_until_due
    return data


def serialize_compliance_log(entry) -> dict:
    return {
        "id": str(entry.pk),
        "log_type": entry.log_type,
        "title": entry.title,
        "description": entry.description,
        "cycle_id": str(entry.cycle_id) if entry.cycle_id else None,
        "action_taken": entry.action_taken,
        "is_resolved": entry.is_resolved,
        "created_at": entry.created_at,
    }
