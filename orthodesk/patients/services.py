"""Patient services."""

import logging

from django.db import transaction
from django.db.models import Q

from orthodesk.core.api import paginate
from orthodesk.core.exceptions import ValidationFailed
from orthodesk.core.sequence import next_number

from .audit import Actions, log_patient_event
from .forms import PatientForm
from .models import Patient

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("first_name", "last_name", "date_of_birth", "email", "phone", "status", "notes")


def generate_patient_number(clinic) -> str:
    """Format: PT-YYYY-NNNNN."""
    return next_number(clinic, "PT", pad_width=5)


@transaction.atomic
def create_patient(clinic, *, actor, data: dict) -> Patient:
    """Validate and create a patient.

    Raises:
        ValidationFailed: If data fails PatientForm validation
    """
    form = PatientForm(data)
    if not form.is_valid():
        raise ValidationFailed.from_form(form)

    fields = {k: v for k, v in form.cleaned_data.items() if v not in (None, "")}
    patient = Patient.objects.create(
        clinic=clinic,
        patient_number=generate_patient_number(clinic),
        **fields,
    )
    log_patient_event(Actions.PATIENT_CREATED, patient, actor=actor)
    logger.info("Created patient %s in clinic %s", patient.patient_number, clinic.slug)
    return patient


@transaction.atomic
def update_patient(patient: Patient, *, actor, data: dict) -> Patient:
    """Apply a partial update. Unknown keys are ignored."""
    merged = {field: getattr(patient, field) for field in UPDATABLE_FIELDS}
    merged.update({k: v for k, v in data.items() if k in UPDATABLE_FIELDS})
    form = PatientForm(merged)
    if not form.is_valid():
        raise ValidationFailed.from_form(form)

    changes = {}
    for field in UPDATABLE_FIELDS:
        if field not in data:
            continue
        new = form.cleaned_data[field]
        if new is None and field != "date_of_birth":
            new = ""
        old = getattr(patient, field)
        if old != new:
            changes[field] = {"old": str(old) if old is not None else None, "new": str(new) if new is not None else None}
            setattr(patient, field, new)

    if changes:
        patient.save()
        log_patient_event(Actions.PATIENT_UPDATED, patient, actor=actor, changes=changes)
    return patient


def search_patients(clinic, *, search: str = "", status: str = "", page=1, page_size=None) -> dict:
    """Paginated patient search by name, number, email or phone."""
    qs = Patient.objects.for_clinic(clinic)
    if search:
        qs = qs.filter(
            Q(first_name__icontains=search)
            | Q(last_name__icontains=search)
            | Q(patient_number__icontains=search)
            | Q(email__icontains=search)
            | Q(phone__icontains=search)
        )
    if status and status.lower() != "all":
        qs = qs.filter(status=status)
    return paginate(qs.order_by("last_name", "first_name"), page, page_size)
