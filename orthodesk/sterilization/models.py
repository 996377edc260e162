"""Sterilization tracking models.

Infection-control records for the instrument reprocessing workflow:
sterilizers and their validations, sterilization cycles with biological
and chemical indicators, instrument packages produced by a cycle and the
patients those packages were used on.

A package produced while a biological indicator is still incubating is
QUARANTINED until the indicator is read; see services.record_bi_result().
"""

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from orthodesk.core.models import Clinic, ClinicScopedModel
from orthodesk.patients.models import Patient


class CycleType(models.TextChoices):
    STEAM_GRAVITY = "STEAM_GRAVITY", "Steam Gravity"
    STEAM_PREVACUUM = "STEAM_PREVACUUM", "Steam Pre-Vacuum"
    STEAM_FLASH = "STEAM_FLASH", "Steam Flash"
    CHEMICAL = "CHEMICAL", "Chemical"
    DRY_HEAT = "DRY_HEAT", "Dry Heat"
    VALIDATION = "VALIDATION", "Validation"


class CycleStatus(models.TextChoices):
    IN_PROGRESS = "IN_PROGRESS", "In Progress"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"
    ABORTED = "ABORTED", "Aborted"
    VOID = "VOID", "Void"


class PackageStatus(models.TextChoices):
    STERILE = "STERILE", "Sterile"
    QUARANTINED = "QUARANTINED", "Quarantined"
    USED = "USED", "Used"
    EXPIRED = "EXPIRED", "Expired"
    COMPROMISED = "COMPROMISED", "Compromised"
    RECALLED = "RECALLED", "Recalled"


class PackageType(models.TextChoices):
    CASSETTE_FULL = "CASSETTE_FULL", "Full Cassette"
    CASSETTE_EXAM = "CASSETTE_EXAM", "Exam Cassette"
    POUCH = "POUCH", "Pouch"
    WRAPPED = "WRAPPED", "Wrapped"
    INDIVIDUAL = "INDIVIDUAL", "Individual"


# =============================================================================
# Equipment
# =============================================================================


class Sterilizer(ClinicScopedModel):
    """An autoclave or other sterilizing unit."""

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="sterilizers")
    name = models.CharField(max_length=100)
    model = models.CharField(max_length=100, blank=True)
    serial_number = models.CharField(max_length=100, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class AutoclaveIntegration(ClinicScopedModel):
    """Network connection to an autoclave that publishes its cycle logs."""

    class Status(models.TextChoices):
        NOT_CONFIGURED = "NOT_CONFIGURED", "Not Configured"
        CONNECTED = "CONNECTED", "Connected"
        DISCONNECTED = "DISCONNECTED", "Disconnected"
        ERROR = "ERROR", "Error"

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="autoclaves")
    name = models.CharField(max_length=100)
    ip_address = models.GenericIPAddressField()
    port = models.PositiveIntegerField(default=80, validators=[MinValueValidator(1), MaxValueValidator(65535)])
    sterilizer = models.ForeignKey(
        Sterilizer,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="autoclaves",
    )
    enabled = models.BooleanField(default=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.NOT_CONFIGURED)
    last_sync_at = models.DateTimeField(null=True, blank=True)
    last_cycle_num = models.PositiveIntegerField(null=True, blank=True)
    error_message = models.TextField(blank=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.ip_address}:{self.port})"


# =============================================================================
# Cycles and indicators
# =============================================================================


class SterilizationCycle(ClinicScopedModel):
    """One run of a sterilizer."""

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="sterilization_cycles")
    cycle_number = models.CharField(max_length=30, help_text="CYC-YYYY-NNNN")
    cycle_type = models.CharField(max_length=20, choices=CycleType.choices, default=CycleType.STEAM_GRAVITY)
    sterilizer = models.ForeignKey(
        Sterilizer,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cycles",
    )
    start_time = models.DateTimeField()
    end_time = models.DateTimeField(null=True, blank=True)

    temperature = models.DecimalField(max_digits=5, decimal_places=1, null=True, blank=True, help_text="Celsius")
    pressure = models.DecimalField(max_digits=5, decimal_places=1, null=True, blank=True, help_text="PSI")
    exposure_time = models.PositiveSmallIntegerField(null=True, blank=True, help_text="Minutes")
    drying_time = models.PositiveSmallIntegerField(null=True, blank=True, help_text="Minutes")

    mechanical_pass = models.BooleanField(null=True, blank=True)
    chemical_pass = models.BooleanField(null=True, blank=True)
    biological_pass = models.BooleanField(null=True, blank=True)

    status = models.CharField(max_length=20, choices=CycleStatus.choices, default=CycleStatus.IN_PROGRESS)
    failure_reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    operator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    # Autoclave import
    autoclave = models.ForeignKey(
        AutoclaveIntegration,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cycles",
    )
    external_cycle_number = models.PositiveIntegerField(null=True, blank=True)
    raw_log = models.TextField(blank=True)
    temp_profile = models.JSONField(default=list, blank=True)
    pressure_profile = models.JSONField(default=list, blank=True)
    digital_signature = models.CharField(max_length=200, blank=True)

    class Meta:
        ordering = ["-start_time"]
        constraints = [
            models.UniqueConstraint(
                fields=["clinic", "cycle_number"],
                name="unique_cycle_number_per_clinic",
            ),
            models.UniqueConstraint(
                fields=["autoclave", "external_cycle_number"],
                condition=Q(external_cycle_number__isnull=False),
                name="unique_external_cycle_per_autoclave",
            ),
        ]
        indexes = [
            models.Index(fields=["clinic", "status"]),
            models.Index(fields=["clinic", "start_time"]),
        ]

    def __str__(self):
        return self.cycle_number

    @property
    def sterilized_date(self):
        """Date the load came out of the sterilizer."""
        return timezone.localtime(self.end_time or self.start_time).date()


class BiologicalIndicator(ClinicScopedModel):
    """Spore test run with a cycle. Incubates before it can be read."""

    class Result(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PASSED = "PASSED", "Passed"
        FAILED = "FAILED", "Failed"
        INCONCLUSIVE = "INCONCLUSIVE", "Inconclusive"

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="biological_indicators")
    cycle = models.ForeignKey(SterilizationCycle, on_delete=models.CASCADE, related_name="biological_indicators")
    lot_number = models.CharField(max_length=50)
    brand = models.CharField(max_length=100, blank=True)
    placed_at = models.DateTimeField()
    read_at = models.DateTimeField(null=True, blank=True)
    incubation_hours = models.PositiveSmallIntegerField(null=True, blank=True)
    result = models.CharField(max_length=20, choices=Result.choices, default=Result.PENDING)
    control_result = models.CharField(max_length=20, choices=Result.choices, blank=True)
    notes = models.TextField(blank=True)
    read_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-placed_at"]

    def __str__(self):
        return f"BI {self.lot_number} ({self.result})"


class ChemicalIndicator(ClinicScopedModel):
    """Color-change indicator placed inside or outside a package."""

    class IndicatorClass(models.TextChoices):
        CLASS_1 = "CLASS_1", "Class 1 (Process)"
        CLASS_2 = "CLASS_2", "Class 2 (Bowie-Dick)"
        CLASS_3 = "CLASS_3", "Class 3 (Single Variable)"
        CLASS_4 = "CLASS_4", "Class 4 (Multi-Variable)"
        CLASS_5 = "CLASS_5", "Class 5 (Integrating)"
        CLASS_6 = "CLASS_6", "Class 6 (Emulating)"

    class Result(models.TextChoices):
        PASSED = "PASSED", "Passed"
        FAILED = "FAILED", "Failed"
        INCONCLUSIVE = "INCONCLUSIVE", "Inconclusive"

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="chemical_indicators")
    cycle = models.ForeignKey(SterilizationCycle, on_delete=models.CASCADE, related_name="chemical_indicators")
    indicator_class = models.CharField(max_length=10, choices=IndicatorClass.choices)
    result = models.CharField(max_length=20, choices=Result.choices)
    location = models.CharField(max_length=200, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["created_at"]

    def __str__(self):
        return f"{self.get_indicator_class_display()} ({self.result})"


# =============================================================================
# Packages
# =============================================================================


class InstrumentPackage(ClinicScopedModel):
    """A cassette, pouch or wrap of instruments sterilized in one cycle."""

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="instrument_packages")
    package_number = models.CharField(max_length=30, help_text="PKG-YYYY-NNNNN")
    cycle = models.ForeignKey(SterilizationCycle, on_delete=models.PROTECT, related_name="packages")
    package_type = models.CharField(max_length=20, choices=PackageType.choices)
    instrument_names = models.JSONField(default=list)
    sterilized_date = models.DateField()
    expiration_date = models.DateField()
    status = models.CharField(max_length=20, choices=PackageStatus.choices, default=PackageStatus.STERILE)
    qr_code = models.CharField(max_length=500, blank=True)

    quarantine_reason = models.TextField(blank=True)
    released_at = models.DateTimeField(null=True, blank=True)
    released_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    release_notes = models.TextField(blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["-sterilized_date", "package_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["clinic", "package_number"],
                name="unique_package_number_per_clinic",
            ),
            models.CheckConstraint(
                condition=Q(expiration_date__gte=models.F("sterilized_date")),
                name="package_expiration_after_sterilization",
            ),
        ]
        indexes = [
            models.Index(fields=["clinic", "status"]),
            models.Index(fields=["clinic", "expiration_date"]),
        ]

    def __str__(self):
        return self.package_number


class PackageUsage(ClinicScopedModel):
    """Links a package to the patient it was opened for."""

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="package_usages")
    package = models.ForeignKey(InstrumentPackage, on_delete=models.PROTECT, related_name="usages")
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="package_usages")
    procedure_type = models.CharField(max_length=100, blank=True)
    appointment_ref = models.CharField(max_length=100, blank=True)
    used_at = models.DateTimeField()
    used_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    verified = models.BooleanField(default=False, help_text="Package was scanned before use")
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["-used_at"]

    def __str__(self):
        return f"{self.package.package_number} -> {self.patient_id}"


# =============================================================================
# Validation and compliance
# =============================================================================


class ValidationType(models.TextChoices):
    IQ = "IQ", "Installation Qualification"
    OQ = "OQ", "Operational Qualification"
    PQ = "PQ", "Performance Qualification"
    BOWIE_DICK_TEST = "BOWIE_DICK_TEST", "Bowie-Dick Test"
    LEAK_RATE_TEST = "LEAK_RATE_TEST", "Leak Rate Test"
    CALIBRATION = "CALIBRATION", "Calibration"
    PREVENTIVE_MAINTENANCE = "PREVENTIVE_MAINTENANCE", "Preventive Maintenance"
    REPAIR_VERIFICATION = "REPAIR_VERIFICATION", "Repair Verification"
    ANNUAL_VALIDATION = "ANNUAL_VALIDATION", "Annual Validation"


class SterilizerValidation(ClinicScopedModel):
    """A performed qualification, test or maintenance of a sterilizer."""

    class Result(models.TextChoices):
        PASS = "PASS", "Pass"
        FAIL = "FAIL", "Fail"
        CONDITIONAL = "CONDITIONAL", "Conditional"

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="sterilizer_validations")
    sterilizer = models.ForeignKey(Sterilizer, on_delete=models.PROTECT, related_name="validations")
    validation_type = models.CharField(max_length=30, choices=ValidationType.choices)
    validation_date = models.DateField()
    result = models.CharField(max_length=20, choices=Result.choices)
    next_due_date = models.DateField(null=True, blank=True)
    performed_by = models.CharField(max_length=200, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["-validation_date"]

    def __str__(self):
        return f"{self.sterilizer} {self.validation_type} {self.validation_date}"


class ValidationSchedule(ClinicScopedModel):
    """Recurring validation requirement for a sterilizer."""

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="validation_schedules")
    sterilizer = models.ForeignKey(Sterilizer, on_delete=models.CASCADE, related_name="validation_schedules")
    validation_type = models.CharField(max_length=30, choices=ValidationType.choices)
    frequency_days = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(730)])
    reminder_days = models.PositiveSmallIntegerField(default=30, validators=[MaxValueValidator(90)])
    last_performed = models.DateField(null=True, blank=True)
    next_due = models.DateField()
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["next_due"]

    def __str__(self):
        return f"{self.sterilizer} {self.validation_type} every {self.frequency_days}d"


class ComplianceLog(ClinicScopedModel):
    """Infection-control event that inspectors expect to see documented."""

    class LogType(models.TextChoices):
        CYCLE_FAILURE = "CYCLE_FAILURE", "Cycle Failure"
        BI_FAILURE = "BI_FAILURE", "Biological Indicator Failure"
        PACKAGE_RECALL = "PACKAGE_RECALL", "Package Recall"
        QUARANTINE_RELEASE = "QUARANTINE_RELEASE", "Quarantine Release"
        VALIDATION = "VALIDATION", "Validation"
        INCIDENT = "INCIDENT", "Incident"

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="compliance_logs")
    log_type = models.CharField(max_length=30, choices=LogType.choices)
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    cycle = models.ForeignKey(
        SterilizationCycle,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="compliance_logs",
    )
    action_taken = models.TextField(blank=True)
    is_resolved = models.BooleanField(default=False)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.log_type}: {self.title}"
