"""Sterilization services.

Cycle and package status changes happen only here. Each public function
locks the rows it changes, writes a compliance log where inspectors
expect one, and records an audit event.

Package lifecycle::

    QUARANTINED --BI passed / manual release--> STERILE --use--> USED
         |                                        |
         +--BI failed--> RECALLED <--BI failed----+--past expiry--> EXPIRED
         +--cycle failed / void--> COMPROMISED <--+
"""

import logging
from datetime import timedelta
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.utils import timezone

from orthodesk.core.conf import get_setting
from orthodesk.core.exceptions import NotFound, ValidationFailed
from orthodesk.core.forms import clean_form
from orthodesk.core.sequence import next_number

from .audit import Actions, log_sterilization_event
from .autoclave import (
    AutoclaveClient,
    calculate_cycle_duration,
    kpa_to_psi,
    map_runmode_to_type,
    parse_cycle_log,
    parse_profile,
)
from .exceptions import (
    AutoclaveDisabledError,
    AutoclaveError,
    CycleInUseError,
    CycleStateError,
    IndicatorStateError,
    PackageExpiredError,
    PackageStateError,
    QRParseError,
    ReleaseBlockedError,
)
from .forms import (
    AutoclaveForm,
    BiologicalIndicatorForm,
    ChemicalIndicatorForm,
    CycleForm,
    ScheduleForm,
    SterilizerForm,
    ValidationForm,
)
from .models import (
    AutoclaveIntegration,
    BiologicalIndicator,
    ChemicalIndicator,
    ComplianceLog,
    CycleStatus,
    InstrumentPackage,
    PackageStatus,
    PackageType,
    PackageUsage,
    SterilizationCycle,
    Sterilizer,
    SterilizerValidation,
    ValidationSchedule,
)
from .qr import (
    LEGACY_VERSION,
    calculate_expiration_date,
    days_until_expiration,
    generate_scanner_content,
    is_still_sterile,
    parse_qr_content,
)

logger = logging.getLogger(__name__)

# Packages that have not been opened and may still reach a patient
UNUSED_STATUSES = (PackageStatus.STERILE, PackageStatus.QUARANTINED)

RELEASE_NOTES_BI_PASSED = "Released: biological indicator passed"
QUARANTINE_REASON_BI_PENDING = "Awaiting biological indicator result"


def generate_cycle_number(clinic) -> str:
    """Format: CYC-YYYY-NNNN."""
    return next_number(clinic, "CYC", pad_width=4)


def generate_package_number(clinic) -> str:
    """Format: PKG-YYYY-NNNNN."""
    return next_number(clinic, "PKG", pad_width=5)


def _user(actor):
    return actor if getattr(actor, "is_authenticated", False) else None


def _compliance_log(clinic, log_type, title, *, description="", cycle=None, action_taken="", actor=None):
    entry = ComplianceLog.objects.create(
        clinic=clinic,
        log_type=log_type,
        title=title[:200],
        description=description,
        cycle=cycle,
        action_taken=action_taken,
        created_by=_user(actor),
    )
    logger.warning("Compliance log %s: %s", log_type, title)
    return entry


def _set_package_status(packages, status, **fields) -> list[str]:
    """Bulk-update packages and return their numbers."""
    numbers = [p.package_number for p in packages]
    if numbers:
        InstrumentPackage.objects.filter(pk__in=[p.pk for p in packages]).update(
            status=status,
            updated_at=timezone.now(),
            **fields,
        )
    return numbers


def _to_decimal(value, places="0.1"):
    if value is None:
        return None
    return Decimal(str(value)).quantize(Decimal(places))


# =============================================================================
# Sterilizers
# =============================================================================


def create_sterilizer(clinic, *, actor, data: dict) -> Sterilizer:
    cleaned = clean_form(SterilizerForm, data)
    sterilizer = Sterilizer.objects.create(clinic=clinic, **cleaned)
    logger.info("Registered sterilizer %s for clinic %s", sterilizer.name, clinic.pk)
    return sterilizer


# =============================================================================
# Cycles
# =============================================================================


@transaction.atomic
def start_cycle(clinic, *, actor, data: dict) -> SterilizationCycle:
    """Open an IN_PROGRESS cycle.

    Raises:
        ValidationFailed: If cycle parameters are out of range
    """
    cleaned = clean_form(CycleForm, data, clinic=clinic)
    cycle = SterilizationCycle.objects.create(
        clinic=clinic,
        cycle_number=generate_cycle_number(clinic),
        cycle_type=cleaned["cycle_type"],
        sterilizer=cleaned.get("sterilizer"),
        start_time=cleaned.get("start_time") or timezone.now(),
        temperature=cleaned.get("temperature"),
        pressure=cleaned.get("pressure"),
        exposure_time=cleaned.get("exposure_time"),
        drying_time=cleaned.get("drying_time"),
        notes=cleaned.get("notes") or "",
        status=CycleStatus.IN_PROGRESS,
        operator=_user(actor),
    )
    log_sterilization_event(Actions.CYCLE_STARTED, cycle, actor=actor)
    logger.info("Started sterilization cycle %s", cycle.cycle_number)
    return cycle


@transaction.atomic
def complete_cycle(
    cycle: SterilizationCycle,
    *,
    actor,
    status: str,
    end_time=None,
    mechanical_pass=None,
    chemical_pass=None,
    biological_pass=None,
    failure_reason: str = "",
) -> SterilizationCycle:
    """Close an IN_PROGRESS cycle as COMPLETED, FAILED or ABORTED.

    A FAILED cycle writes a CYCLE_FAILURE compliance log and compromises
    every unused package already linked to it.

    Raises:
        CycleStateError: If the cycle is not IN_PROGRESS
        ValidationFailed: On an unknown status, a missing failure reason or
            an end time before the start time
    """
    if status not in (CycleStatus.COMPLETED, CycleStatus.FAILED, CycleStatus.ABORTED):
        raise ValidationFailed(
            "Invalid input",
            details={"status": ["Status must be COMPLETED, FAILED or ABORTED."]},
        )
    if status == CycleStatus.FAILED and not failure_reason:
        raise ValidationFailed(
            "Invalid input",
            details={"failure_reason": ["A failure reason is required for failed cycles."]},
        )

    cycle = SterilizationCycle.objects.select_for_update().get(pk=cycle.pk)
    if cycle.status != CycleStatus.IN_PROGRESS:
        raise CycleStateError(f"Cycle {cycle.cycle_number} is {cycle.status}, not IN_PROGRESS")

    end_time = end_time or timezone.now()
    if end_time < cycle.start_time:
        raise ValidationFailed(
            "Invalid input",
            details={"end_time": ["End time cannot be before start time."]},
        )

    cycle.status = status
    cycle.end_time = end_time
    cycle.failure_reason = failure_reason or ""
    for field, value in (
        ("mechanical_pass", mechanical_pass),
        ("chemical_pass", chemical_pass),
        ("biological_pass", biological_pass),
    ):
        if value is not None:
            setattr(cycle, field, value)
    cycle.save()

    compromised = []
    if status == CycleStatus.FAILED:
        compromised = _set_package_status(
            list(cycle.packages.filter(status__in=UNUSED_STATUSES)),
            PackageStatus.COMPROMISED,
        )
        _compliance_log(
            cycle.clinic,
            ComplianceLog.LogType.CYCLE_FAILURE,
            f"Cycle {cycle.cycle_number} failed",
            description=failure_reason,
            cycle=cycle,
            action_taken=f"{len(compromised)} package(s) marked compromised",
            actor=actor,
        )

    action = Actions.CYCLE_FAILED if status == CycleStatus.FAILED else Actions.CYCLE_COMPLETED
    log_sterilization_event(
        action,
        cycle,
        actor=actor,
        changes={"status": {"old": CycleStatus.IN_PROGRESS, "new": status}},
        data={"compromised_packages": compromised} if compromised else None,
    )
    logger.info("Cycle %s closed as %s", cycle.cycle_number, status)
    return cycle


@transaction.atomic
def void_cycle(cycle: SterilizationCycle, *, actor, reason: str) -> SterilizationCycle:
    """Void a cycle recorded in error.

    Unused packages of the cycle become COMPROMISED.

    Raises:
        CycleStateError: If the cycle is already void
        CycleInUseError: If any package from the cycle was used on a patient
    """
    if not reason:
        raise ValidationFailed("Invalid input", details={"reason": ["A reason is required."]})

    cycle = SterilizationCycle.objects.select_for_update().get(pk=cycle.pk)
    if cycle.status == CycleStatus.VOID:
        raise CycleStateError(f"Cycle {cycle.cycle_number} is already void")
    if PackageUsage.objects.filter(package__cycle=cycle).exists():
        raise CycleInUseError(f"Packages from cycle {cycle.cycle_number} have been used on patients")

    old_status = cycle.status
    cycle.status = CycleStatus.VOID
    cycle.notes = f"{cycle.notes}\nVoided: {reason}".strip()
    cycle.save()
    compromised = _set_package_status(
        list(cycle.packages.filter(status__in=UNUSED_STATUSES)),
        PackageStatus.COMPROMISED,
    )

    log_sterilization_event(
        Actions.CYCLE_VOIDED,
        cycle,
        actor=actor,
        changes={"status": {"old": old_status, "new": CycleStatus.VOID}},
        data={"reason": reason, "compromised_packages": compromised},
    )
    logger.info("Voided cycle %s", cycle.cycle_number)
    return cycle


# =============================================================================
# Indicators
# =============================================================================


@transaction.atomic
def add_biological_indicator(cycle: SterilizationCycle, *, actor, data: dict) -> BiologicalIndicator:
    """Attach a PENDING spore test to a cycle."""
    if cycle.status == CycleStatus.VOID:
        raise CycleStateError(f"Cycle {cycle.cycle_number} is void")
    cleaned = clean_form(BiologicalIndicatorForm, data)
    indicator = BiologicalIndicator.objects.create(
        clinic=cycle.clinic,
        cycle=cycle,
        lot_number=cleaned["lot_number"],
        brand=cleaned.get("brand") or "",
        placed_at=cleaned.get("placed_at") or timezone.now(),
        incubation_hours=cleaned.get("incubation_hours"),
        notes=cleaned.get("notes") or "",
        result=BiologicalIndicator.Result.PENDING,
    )
    log_sterilization_event(Actions.BI_ADDED, indicator, actor=actor, data={"cycle": cycle.cycle_number})
    return indicator


@transaction.atomic
def record_bi_result(
    indicator: BiologicalIndicator,
    result: str,
    *,
    actor,
    notes: str = "",
    control_result: str = "",
    read_at=None,
) -> dict:
    """Read a biological indicator and apply the outcome to the cycle's packages.

    PASSED releases quarantined packages once no other indicator of the
    cycle is pending. FAILED recalls every unused package and reports
    the packages already used on patients. INCONCLUSIVE changes nothing.

    Returns:
        {"indicator", "released", "recalled", "exposed_usages"}

    Raises:
        ValidationFailed: If result is not PASSED, FAILED or INCONCLUSIVE
        IndicatorStateError: If the indicator was already read as PASSED or FAILED
    """
    Result = BiologicalIndicator.Result
    if result not in (Result.PASSED, Result.FAILED, Result.INCONCLUSIVE):
        raise ValidationFailed(
            "Invalid input",
            details={"result": ["Result must be PASSED, FAILED or INCONCLUSIVE."]},
        )

    indicator = BiologicalIndicator.objects.select_for_update().select_related("cycle").get(pk=indicator.pk)
    if indicator.result not in (Result.PENDING, Result.INCONCLUSIVE):
        raise IndicatorStateError(f"Indicator {indicator.lot_number} was already read as {indicator.result}")

    old_result = indicator.result
    indicator.result = result
    indicator.read_at = read_at or timezone.now()
    indicator.read_by = _user(actor)
    indicator.control_result = control_result or ""
    if notes:
        indicator.notes = notes
    if indicator.incubation_hours is None and indicator.read_at > indicator.placed_at:
        indicator.incubation_hours = int((indicator.read_at - indicator.placed_at).total_seconds() // 3600)
    indicator.save()

    cycle = SterilizationCycle.objects.select_for_update().get(pk=indicator.cycle_id)
    other_indicators = cycle.biological_indicators.exclude(pk=indicator.pk)
    released, recalled, exposed = [], [], []

    if result == Result.PASSED:
        if not other_indicators.filter(result=Result.FAILED).exists():
            cycle.biological_pass = True
            cycle.save(update_fields=["biological_pass", "updated_at"])
            if not other_indicators.filter(result=Result.PENDING).exists():
                released = _set_package_status(
                    list(cycle.packages.filter(status=PackageStatus.QUARANTINED)),
                    PackageStatus.STERILE,
                    released_at=timezone.now(),
                    released_by=_user(actor),
                    release_notes=RELEASE_NOTES_BI_PASSED,
                    quarantine_reason="",
                )

    elif result == Result.FAILED:
        cycle.biological_pass = False
        cycle.save(update_fields=["biological_pass", "updated_at"])
        recalled = _set_package_status(
            list(cycle.packages.filter(status__in=UNUSED_STATUSES)),
            PackageStatus.RECALLED,
        )
        exposed = list(
            PackageUsage.objects.filter(package__cycle=cycle)
            .select_related("package", "patient")
            .order_by("used_at")
        )
        _compliance_log(
            cycle.clinic,
            ComplianceLog.LogType.BI_FAILURE,
            f"Biological indicator failed for cycle {cycle.cycle_number}",
            description=(
                f"Lot {indicator.lot_number} failed. {len(recalled)} package(s) recalled; "
                f"{len(exposed)} usage(s) need patient follow-up."
            ),
            cycle=cycle,
            action_taken="Unused packages recalled",
            actor=actor,
        )

    log_sterilization_event(
        Actions.BI_RESULT_RECORDED,
        indicator,
        actor=actor,
        changes={"result": {"old": old_result, "new": result}},
        data={"released": released, "recalled": recalled, "exposed_usages": len(exposed)},
    )
    logger.info("BI %s on cycle %s read as %s", indicator.lot_number, cycle.cycle_number, result)
    return {
        "indicator": indicator,
        "released": released,
        "recalled": recalled,
        "exposed_usages": exposed,
    }


@transaction.atomic
def add_chemical_indicator(cycle: SterilizationCycle, *, actor, data: dict) -> ChemicalIndicator:
    """Record a chemical indicator. A failed one marks the cycle's chemical check failed."""
    cleaned = clean_form(ChemicalIndicatorForm, data)
    indicator = ChemicalIndicator.objects.create(clinic=cycle.clinic, cycle=cycle, **cleaned)
    if indicator.result == ChemicalIndicator.Result.FAILED:
        cycle.chemical_pass = False
        cycle.save(update_fields=["chemical_pass", "updated_at"])
    log_sterilization_event(
        Actions.CI_ADDED,
        indicator,
        actor=actor,
        data={"cycle": cycle.cycle_number, "result": indicator.result},
    )
    return indicator


# =============================================================================
# Packages
# =============================================================================


@transaction.atomic
def create_packages(
    cycle: SterilizationCycle,
    *,
    actor,
    package_type: str,
    instrument_names: list[str],
    count: int = 1,
    expiration_days: int | None = None,
    notes: str = "",
) -> list[InstrumentPackage]:
    """Create packages from a completed cycle.

    Packages start QUARANTINED while a biological indicator of the cycle
    is pending, STERILE otherwise.

    Raises:
        CycleStateError: If the cycle is not COMPLETED or its BI failed
        ValidationFailed: On empty instruments or an expiration outside 1..MAX_EXPIRATION_DAYS
    """
    if expiration_days is None:
        expiration_days = get_setting("STERILE_EXPIRATION_DAYS")
    max_days = get_setting("MAX_EXPIRATION_DAYS")
    errors = {}
    if not 1 <= expiration_days <= max_days:
        errors["expiration_days"] = [f"Expiration must be between 1 and {max_days} days."]
    if not [name for name in instrument_names or [] if name and name.strip()]:
        errors["instrument_names"] = ["At least one instrument is required."]
    if count < 1:
        errors["count"] = ["Count must be at least 1."]
    if errors:
        raise ValidationFailed("Invalid input", details=errors)

    cycle = SterilizationCycle.objects.select_for_update().select_related("sterilizer").get(pk=cycle.pk)
    if cycle.status != CycleStatus.COMPLETED:
        raise CycleStateError(f"Cycle {cycle.cycle_number} is {cycle.status}; packages need a COMPLETED cycle")
    if cycle.biological_pass is False:
        raise CycleStateError(f"Cycle {cycle.cycle_number} failed its biological indicator")

    pending_bi = cycle.biological_indicators.filter(result=BiologicalIndicator.Result.PENDING).exists()
    status = PackageStatus.QUARANTINED if pending_bi else PackageStatus.STERILE
    sterilized_date = cycle.sterilized_date
    expiration_date = calculate_expiration_date(sterilized_date, expiration_days)
    qr_content = generate_scanner_content(
        cycle.cycle_number,
        cycle.end_time or cycle.start_time,
        equipment_name=cycle.sterilizer.name if cycle.sterilizer else None,
        package_type=PackageType(package_type).label if package_type in PackageType.values else None,
    )

    packages = [
        InstrumentPackage.objects.create(
            clinic=cycle.clinic,
            package_number=generate_package_number(cycle.clinic),
            cycle=cycle,
            package_type=package_type,
            instrument_names=[name.strip() for name in instrument_names if name and name.strip()],
            sterilized_date=sterilized_date,
            expiration_date=expiration_date,
            status=status,
            qr_code=qr_content,
            quarantine_reason=QUARANTINE_REASON_BI_PENDING if pending_bi else "",
            notes=notes or "",
        )
        for _ in range(count)
    ]

    log_sterilization_event(
        Actions.PACKAGES_CREATED,
        cycle,
        actor=actor,
        data={"packages": [p.package_number for p in packages], "status": status},
    )
    logger.info("Created %d %s package(s) from cycle %s", len(packages), status, cycle.cycle_number)
    return packages


def list_quarantine(clinic) -> dict:
    """Quarantined packages and the cycles still waiting on a BI."""
    packages = (
        InstrumentPackage.objects.for_clinic(clinic)
        .filter(status=PackageStatus.QUARANTINED)
        .select_related("cycle")
        .order_by("sterilized_date", "package_number")
    )
    pending_cycles = (
        SterilizationCycle.objects.for_clinic(clinic)
        .filter(biological_indicators__result=BiologicalIndicator.Result.PENDING)
        .distinct()
        .order_by("start_time")
    )
    return {"packages": list(packages), "pending_cycles": list(pending_cycles)}


@transaction.atomic
def release_packages(clinic, package_ids, *, actor, notes: str) -> list[InstrumentPackage]:
    """Manually release quarantined packages to STERILE.

    Raises:
        ValidationFailed: If notes are missing
        NotFound: If any package is not in this clinic
        PackageStateError: If any package is not QUARANTINED
        ReleaseBlockedError: If any package's cycle has a failed BI
    """
    if not notes or not notes.strip():
        raise ValidationFailed("Invalid input", details={"notes": ["Release notes are required."]})

    ids = list(dict.fromkeys(package_ids))
    packages = list(
        InstrumentPackage.objects.for_clinic(clinic)
        .select_for_update()
        .filter(pk__in=ids)
        .order_by("package_number")
    )
    if len(packages) != len(ids):
        raise NotFound("Package not found", code="PACKAGE_NOT_FOUND")

    not_quarantined = [p.package_number for p in packages if p.status != PackageStatus.QUARANTINED]
    if not_quarantined:
        raise PackageStateError(
            "Only quarantined packages can be released",
            details={"packages": not_quarantined},
        )

    cycle_ids = {p.cycle_id for p in packages}
    blocked = list(
        SterilizationCycle.objects.filter(
            pk__in=cycle_ids,
            biological_indicators__result=BiologicalIndicator.Result.FAILED,
        ).values_list("cycle_number", flat=True).distinct()
    )
    if blocked:
        raise ReleaseBlockedError(
            "Cycle has a failed biological indicator",
            details={"cycles": blocked},
        )

    now = timezone.now()
    numbers = _set_package_status(
        packages,
        PackageStatus.STERILE,
        released_at=now,
        released_by=_user(actor),
        release_notes=notes,
        quarantine_reason="",
    )
    cycle = packages[0].cycle if len(cycle_ids) == 1 else None
    _compliance_log(
        clinic,
        ComplianceLog.LogType.QUARANTINE_RELEASE,
        f"Released {len(numbers)} package(s) from quarantine",
        description=", ".join(numbers),
        cycle=cycle,
        action_taken=notes,
        actor=actor,
    )
    log_sterilization_event(
        Actions.PACKAGES_RELEASED,
        clinic=clinic,
        actor=actor,
        data={"packages": numbers, "notes": notes},
    )
    for package in packages:
        package.refresh_from_db()
    return packages


def _change_package(package, *, allowed, new_status, action, actor, reason, **fields):
    package = InstrumentPackage.objects.select_for_update().get(pk=package.pk)
    if package.status not in allowed:
        raise PackageStateError(f"Package {package.package_number} is {package.status}")
    old_status = package.status
    package.status = new_status
    for field, value in fields.items():
        setattr(package, field, value)
    package.save()
    log_sterilization_event(
        action,
        package,
        actor=actor,
        changes={"status": {"old": old_status, "new": new_status}},
        data={"reason": reason} if reason else None,
    )
    logger.info("Package %s %s -> %s", package.package_number, old_status, new_status)
    return package


@transaction.atomic
def quarantine_package(package: InstrumentPackage, *, actor, reason: str) -> InstrumentPackage:
    """Hold a STERILE package back from use."""
    if not reason:
        raise ValidationFailed("Invalid input", details={"reason": ["A reason is required."]})
    return _change_package(
        package,
        allowed=(PackageStatus.STERILE,),
        new_status=PackageStatus.QUARANTINED,
        action=Actions.PACKAGE_QUARANTINED,
        actor=actor,
        reason=reason,
        quarantine_reason=reason,
    )


@transaction.atomic
def recall_package(package: InstrumentPackage, *, actor, reason: str) -> InstrumentPackage:
    """Pull an unused package out of circulation and log the recall."""
    if not reason:
        raise ValidationFailed("Invalid input", details={"reason": ["A reason is required."]})
    package = _change_package(
        package,
        allowed=UNUSED_STATUSES,
        new_status=PackageStatus.RECALLED,
        action=Actions.PACKAGE_RECALLED,
        actor=actor,
        reason=reason,
    )
    _compliance_log(
        package.clinic,
        ComplianceLog.LogType.PACKAGE_RECALL,
        f"Package {package.package_number} recalled",
        description=reason,
        cycle=package.cycle,
        actor=actor,
    )
    return package


@transaction.atomic
def mark_compromised(package: InstrumentPackage, *, actor, reason: str) -> InstrumentPackage:
    """Record a torn wrap, wet pack or similar breach."""
    if not reason:
        raise ValidationFailed("Invalid input", details={"reason": ["A reason is required."]})
    return _change_package(
        package,
        allowed=UNUSED_STATUSES,
        new_status=PackageStatus.COMPROMISED,
        action=Actions.PACKAGE_COMPROMISED,
        actor=actor,
        reason=reason,
        notes=f"{package.notes}\nCompromised: {reason}".strip(),
    )


@transaction.atomic
def expire_packages(clinic=None, today=None) -> int:
    """Move STERILE packages whose expiration date has arrived to EXPIRED.

    Returns:
        Number of packages expired
    """
    today = today or timezone.localdate()
    qs = InstrumentPackage.objects.filter(status=PackageStatus.STERILE, expiration_date__lte=today)
    if clinic is not None:
        qs = qs.for_clinic(clinic)

    expired = list(qs.select_related("clinic"))
    by_clinic = {}
    for package in expired:
        by_clinic.setdefault(package.clinic, []).append(package)

    for package_clinic, packages in by_clinic.items():
        numbers = _set_package_status(packages, PackageStatus.EXPIRED)
        log_sterilization_event(
            Actions.PACKAGES_EXPIRED,
            clinic=package_clinic,
            data={"packages": numbers, "as_of": today.isoformat()},
        )
        logger.info("Expired %d package(s) in clinic %s", len(numbers), package_clinic.pk)
    return len(expired)


@transaction.atomic
def record_usage(
    package: InstrumentPackage,
    patient,
    *,
    actor,
    procedure_type: str = "",
    appointment_ref: str = "",
    verified: bool = False,
    notes: str = "",
) -> PackageUsage:
    """Open a package for a patient.

    Raises:
        NotFound: If the patient belongs to another clinic
        PackageStateError: If the package is not STERILE
        PackageExpiredError: If the package is past its expiration date
    """
    package = InstrumentPackage.objects.select_for_update().get(pk=package.pk)
    if patient.clinic_id != package.clinic_id:
        raise NotFound("Patient not found", code="PATIENT_NOT_FOUND")
    if package.status != PackageStatus.STERILE:
        raise PackageStateError(f"Package {package.package_number} is {package.status}, not STERILE")
    if not is_still_sterile(package.expiration_date):
        raise PackageExpiredError(f"Package {package.package_number} expired on {package.expiration_date}")

    usage = PackageUsage.objects.create(
        clinic=package.clinic,
        package=package,
        patient=patient,
        procedure_type=procedure_type or "",
        appointment_ref=appointment_ref or "",
        used_at=timezone.now(),
        used_by=_user(actor),
        verified=verified,
        notes=notes or "",
    )
    package.status = PackageStatus.USED
    package.save(update_fields=["status", "updated_at"])

    log_sterilization_event(
        Actions.PACKAGE_USED,
        package,
        actor=actor,
        data={"patient_id": str(patient.pk), "verified": verified},
    )
    return usage


def _find_cycle(clinic, parsed):
    cycles = SterilizationCycle.objects.for_clinic(clinic)
    cycle = cycles.filter(cycle_number=parsed.cycle_number).first()
    if cycle is None and parsed.cycle_number.lstrip("#").isdigit():
        cycle = cycles.filter(external_cycle_number=int(parsed.cycle_number.lstrip("#"))).first()
    if cycle is None and parsed.cycle_id_suffix:
        # Legacy labels carry the first 8 hex digits of the id, JSON labels the last 8
        if parsed.version == LEGACY_VERSION:
            cycle = cycles.filter(id__startswith=parsed.cycle_id_suffix).first()
        else:
            cycle = cycles.filter(id__endswith=parsed.cycle_id_suffix).first()
    return cycle


def lookup_by_qr(clinic, content: str) -> dict:
    """Resolve scanned label content to its package and cycle.

    Accepts any QR format or a bare package number. Scanner content that
    matches several packages reports no single package, and sterility
    follows the earliest expiration among them.

    Raises:
        QRParseError: If the content is not recognised
    """
    content = (content or "").strip()
    packages = InstrumentPackage.objects.for_clinic(clinic).select_related("cycle")
    package = packages.filter(package_number=content).first()
    if package is not None:
        content = package.qr_code or content

    parsed = parse_qr_content(content)
    if parsed is None and package is None:
        raise QRParseError("Unrecognised sterilization QR content")

    cycle = package.cycle if package is not None else _find_cycle(clinic, parsed)
    expiration = package.expiration_date if package is not None else parsed.expiration_date
    if package is None and parsed is not None:
        # Scanner labels are shared by every package of a cycle and type
        shared = list(packages.filter(qr_code=content).order_by("expiration_date"))
        if len(shared) == 1:
            package = shared[0]
        if shared:
            expiration = shared[0].expiration_date

    matching = list(cycle.packages.order_by("package_number")) if cycle is not None else []

    return {
        "parsed": parsed,
        "package": package,
        "cycle": cycle,
        "packages": matching,
        "is_still_sterile": is_still_sterile(expiration),
        "days_until_expiration": days_until_expiration(expiration),
    }


# =============================================================================
# Autoclaves
# =============================================================================


def create_autoclave(clinic, *, actor, data: dict) -> AutoclaveIntegration:
    cleaned = clean_form(AutoclaveForm, data, clinic=clinic)
    autoclave = AutoclaveIntegration.objects.create(
        clinic=clinic,
        name=cleaned["name"],
        ip_address=cleaned["ip_address"],
        port=cleaned.get("port") or 80,
        sterilizer=cleaned.get("sterilizer"),
        enabled=data.get("enabled", True) is not False,
    )
    log_sterilization_event(Actions.AUTOCLAVE_CREATED, autoclave, actor=actor)
    return autoclave


def check_autoclave_connection(autoclave: AutoclaveIntegration, client: AutoclaveClient | None = None) -> dict:
    """Probe the unit and record CONNECTED or DISCONNECTED."""
    owns_client = client is None
    client = client or AutoclaveClient.for_autoclave(autoclave)
    try:
        result = client.test_connection()
    finally:
        if owns_client:
            client.close()

    if result["success"]:
        autoclave.status = AutoclaveIntegration.Status.CONNECTED
        autoclave.error_message = ""
    else:
        autoclave.status = AutoclaveIntegration.Status.DISCONNECTED
        autoclave.error_message = result.get("error", "")
    autoclave.save(update_fields=["status", "error_message", "updated_at"])
    return result


def _build_imported_cycle(autoclave, actor, info, data):
    parsed = parse_cycle_log(data.log)
    temps = parse_profile(data.temp)
    pressures = parse_profile(data.pressure)

    started = info.started_at
    if timezone.is_naive(started):
        started = timezone.make_aware(started)
    duration = calculate_cycle_duration(parsed, temps)

    max_temp = max(temps) if temps else (parsed.max_temp if parsed else None)
    max_kpa = max(pressures) if pressures else (parsed.max_pressure if parsed else None)
    drying = None
    if parsed and parsed.drying_end:
        drying = parsed.drying_end - (parsed.drying_start or 0)

    succeeded = data.succeeded
    return SterilizationCycle(
        clinic=autoclave.clinic,
        cycle_number=generate_cycle_number(autoclave.clinic),
        cycle_type=map_runmode_to_type(data.status, info.cycle_id),
        sterilizer=autoclave.sterilizer,
        start_time=started,
        end_time=started + timedelta(minutes=duration),
        temperature=_to_decimal(max_temp),
        pressure=_to_decimal(kpa_to_psi(max_kpa)) if max_kpa is not None else None,
        exposure_time=parsed.target_time if parsed else None,
        drying_time=drying,
        mechanical_pass=succeeded,
        status=CycleStatus.COMPLETED if succeeded else CycleStatus.FAILED,
        failure_reason="" if succeeded else "Autoclave reported cycle failure",
        notes=f"Imported from {autoclave.name}. Program: {info.program_description()}",
        operator=_user(actor),
        autoclave=autoclave,
        external_cycle_number=info.external_number,
        raw_log=data.log,
        temp_profile=temps,
        pressure_profile=pressures,
        digital_signature=parsed.digital_signature if parsed else "",
    )


def import_cycles(autoclave: AutoclaveIntegration, *, actor, cycles, client: AutoclaveClient | None = None) -> dict:
    """Import cycles listed by the unit. Already imported cycles are skipped.

    Args:
        cycles: AutoclaveCycleInfo records, e.g. from AutoclaveClient.fetch_cycles()

    Returns:
        {"imported": int, "skipped": int, "errors": [...], "cycles": [SterilizationCycle]}

    Raises:
        AutoclaveDisabledError: If the integration is disabled
    """
    if not autoclave.enabled:
        raise AutoclaveDisabledError(f"Autoclave {autoclave.name} is disabled")

    existing = set(
        SterilizationCycle.all_objects.filter(
            autoclave=autoclave,
            external_cycle_number__in=[info.external_number for info in cycles],
        ).values_list("external_cycle_number", flat=True)
    )

    owns_client = client is None
    client = client or AutoclaveClient.for_autoclave(autoclave)
    imported, errors, skipped = [], [], 0
    try:
        for info in cycles:
            number = info.external_number
            if number in existing:
                skipped += 1
                continue
            try:
                data = client.fetch_cycle_data(info)
            except AutoclaveError as e:
                logger.warning("Could not fetch cycle %s from %s: %s", number, autoclave.name, e)
                errors.append({"cycle_number": number, "error": e.message})
                continue
            try:
                with transaction.atomic():
                    cycle = _build_imported_cycle(autoclave, actor, info, data)
                    cycle.save()
                    if cycle.status == CycleStatus.FAILED:
                        _compliance_log(
                            cycle.clinic,
                            ComplianceLog.LogType.CYCLE_FAILURE,
                            f"Imported cycle {cycle.cycle_number} failed",
                            description=f"{autoclave.name} cycle #{number} did not succeed",
                            cycle=cycle,
                            actor=actor,
                        )
            except IntegrityError:
                skipped += 1
                continue
            except Exception as e:
                logger.exception("Could not import cycle %s from %s", number, autoclave.name)
                errors.append({"cycle_number": number, "error": str(e)})
                continue
            existing.add(number)
            imported.append(cycle)
    finally:
        if owns_client:
            client.close()

    numbers = [c.external_cycle_number for c in imported]
    if numbers:
        autoclave.last_cycle_num = max([autoclave.last_cycle_num or 0, *numbers])
    autoclave.last_sync_at = timezone.now()
    autoclave.status = AutoclaveIntegration.Status.CONNECTED
    autoclave.error_message = ""
    autoclave.save(update_fields=["last_sync_at", "last_cycle_num", "status", "error_message", "updated_at"])

    log_sterilization_event(
        Actions.BULK_IMPORT,
        autoclave,
        actor=actor,
        data={"imported": len(imported), "skipped": skipped, "errors": len(errors)},
    )
    logger.info(
        "Imported %d cycle(s) from %s (%d skipped, %d errors)",
        len(imported), autoclave.name, skipped, len(errors),
    )
    return {"imported": len(imported), "skipped": skipped, "errors": errors, "cycles": imported}


def sync_autoclave(
    autoclave: AutoclaveIntegration,
    *,
    actor=None,
    year: int | None = None,
    month: int | None = None,
    cycle_numbers=None,
    client: AutoclaveClient | None = None,
) -> dict:
    """Fetch the unit's cycle list and import what is new.

    Raises:
        AutoclaveDisabledError: If the integration is disabled
        AutoclaveError: If the unit is unreachable; the integration is left in ERROR
    """
    if not autoclave.enabled:
        raise AutoclaveDisabledError(f"Autoclave {autoclave.name} is disabled")

    owns_client = client is None
    client = client or AutoclaveClient.for_autoclave(autoclave)
    try:
        try:
            cycles = client.fetch_cycles(year, month)
        except AutoclaveError as e:
            autoclave.status = AutoclaveIntegration.Status.ERROR
            autoclave.error_message = e.message
            autoclave.save(update_fields=["status", "error_message", "updated_at"])
            log_sterilization_event(Actions.SYNC_FAILED, autoclave, actor=actor, data={"error": e.message})
            logger.warning("Sync of autoclave %s failed: %s", autoclave.name, e.message)
            raise
        if cycle_numbers:
            wanted = set(cycle_numbers)
            cycles = [c for c in cycles if c.external_number in wanted]
        return import_cycles(autoclave, actor=actor, cycles=cycles, client=client)
    finally:
        if owns_client:
            client.close()


# =============================================================================
# Validations
# =============================================================================


@transaction.atomic
def create_schedule(sterilizer: Sterilizer, *, actor, data: dict) -> ValidationSchedule:
    cleaned = clean_form(ScheduleForm, data)
    schedule = ValidationSchedule.objects.create(
        clinic=sterilizer.clinic,
        sterilizer=sterilizer,
        validation_type=cleaned["validation_type"],
        frequency_days=cleaned["frequency_days"],
        reminder_days=cleaned["reminder_days"] if cleaned.get("reminder_days") is not None else 30,
        next_due=cleaned["next_due"],
    )
    logger.info("Scheduled %s every %d days for %s", schedule.validation_type, schedule.frequency_days, sterilizer)
    return schedule


@transaction.atomic
def record_validation(sterilizer: Sterilizer, *, actor, data: dict) -> SterilizerValidation:
    """Record a validation and roll the matching active schedule forward.

    A FAIL result writes a VALIDATION compliance log.
    """
    cleaned = clean_form(ValidationForm, data)
    validation_date = cleaned["validation_date"]

    schedule = (
        ValidationSchedule.objects.select_for_update()
        .filter(sterilizer=sterilizer, validation_type=cleaned["validation_type"], is_active=True)
        .first()
    )
    next_due = cleaned.get("next_due_date")
    if schedule is not None:
        schedule.last_performed = validation_date
        schedule.next_due = validation_date + timedelta(days=schedule.frequency_days)
        schedule.save(update_fields=["last_performed", "next_due", "updated_at"])
        next_due = next_due or schedule.next_due

    validation = SterilizerValidation.objects.create(
        clinic=sterilizer.clinic,
        sterilizer=sterilizer,
        validation_type=cleaned["validation_type"],
        validation_date=validation_date,
        result=cleaned["result"],
        next_due_date=next_due,
        performed_by=cleaned.get("performed_by") or "",
        notes=cleaned.get("notes") or "",
    )

    if validation.result == SterilizerValidation.Result.FAIL:
        _compliance_log(
            sterilizer.clinic,
            ComplianceLog.LogType.VALIDATION,
            f"{validation.get_validation_type_display()} failed for {sterilizer.name}",
            description=validation.notes,
            actor=actor,
        )

    log_sterilization_event(
        Actions.VALIDATION_RECORDED,
        validation,
        actor=actor,
        data={"result": validation.result},
    )
    return validation


OVERDUE = "OVERDUE"
DUE_SOON = "DUE_SOON"
CURRENT = "CURRENT"


def schedule_status(schedule: ValidationSchedule, today=None) -> str:
    """OVERDUE past next_due, DUE_SOON within reminder_days, else CURRENT."""
    today = today or timezone.localdate()
    if schedule.next_due < today:
        return OVERDUE
    if schedule.next_due <= today + timedelta(days=schedule.reminder_days):
        return DUE_SOON
    return CURRENT


def due_validations(clinic, today=None) -> list[dict]:
    """Active schedules that are overdue or due soon, soonest first."""
    today = today or timezone.localdate()
    schedules = (
        ValidationSchedule.objects.for_clinic(clinic)
        .filter(is_active=True)
        .select_related("sterilizer")
        .order_by("next_due")
    )
    due = []
    for schedule in schedules:
        status = schedule_status(schedule, today)
        if status != CURRENT:
            due.append({
                "schedule": schedule,
                "status": status,
                "days_until_due": (schedule.next_due - today).days,
            })
    return due
