"""Treatment planning models.

A TreatmentPlan moves through a linear lifecycle (see workflow.py). It owns
ordered phases, milestones, alternative treatment options and at most one
active case acceptance.
"""

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q

from orthodesk.core.models import BaseModel, Clinic, ClinicScopedModel
from orthodesk.patients.models import Patient


class PlanStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    PRESENTED = "PRESENTED", "Presented"
    ACCEPTED = "ACCEPTED", "Accepted"
    ACTIVE = "ACTIVE", "Active"
    ON_HOLD = "ON_HOLD", "On Hold"
    COMPLETED = "COMPLETED", "Completed"
    DISCONTINUED = "DISCONTINUED", "Discontinued"
    TRANSFERRED = "TRANSFERRED", "Transferred"


class TreatmentPlan(ClinicScopedModel):
    """A patient's orthodontic care plan."""

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="treatment_plans")
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="treatment_plans")
    plan_number = models.CharField(max_length=30, help_text="TP-YYYY-NNNNN")
    plan_name = models.CharField(max_length=200)
    plan_type = models.CharField(max_length=100, blank=True)
    chief_complaint = models.TextField(blank=True)
    diagnosis = models.JSONField(default=list, blank=True)
    treatment_goals = models.JSONField(default=list, blank=True)
    treatment_description = models.TextField(blank=True)

    primary_provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="primary_treatment_plans",
    )
    supervising_provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="supervised_treatment_plans",
    )

    estimated_duration = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(60)],
        help_text="Months",
    )
    estimated_visits = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(200)],
    )
    total_fee = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    start_date = models.DateField(null=True, blank=True)
    estimated_end_date = models.DateField(null=True, blank=True)
    actual_end_date = models.DateField(null=True, blank=True)
    presented_date = models.DateTimeField(null=True, blank=True)
    accepted_date = models.DateTimeField(null=True, blank=True)

    status = models.CharField(max_length=20, choices=PlanStatus.choices, default=PlanStatus.DRAFT)
    status_reason = models.TextField(blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["clinic", "plan_number"],
                name="unique_plan_number_per_clinic",
            ),
            models.CheckConstraint(
                condition=Q(total_fee__isnull=True) | Q(total_fee__gte=0),
                name="treatment_plan_fee_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["clinic", "status"]),
            models.Index(fields=["patient", "status"]),
        ]

    def __str__(self):
        return f"{self.plan_number} {self.plan_name}"


class TreatmentPhase(BaseModel):
    """An ordered stage within a plan."""

    class PhaseType(models.TextChoices):
        INITIAL_ALIGNMENT = "INITIAL_ALIGNMENT", "Initial Alignment"
        LEVELING = "LEVELING", "Leveling"
        SPACE_CLOSURE = "SPACE_CLOSURE", "Space Closure"
        FINISHING = "FINISHING", "Finishing"
        DETAILING = "DETAILING", "Detailing"
        RETENTION = "RETENTION", "Retention"
        OBSERVATION = "OBSERVATION", "Observation"
        CUSTOM = "CUSTOM", "Custom"

    class Status(models.TextChoices):
        NOT_STARTED = "NOT_STARTED", "Not Started"
        IN_PROGRESS = "IN_PROGRESS", "In Progress"
        COMPLETED = "COMPLETED", "Completed"
        SKIPPED = "SKIPPED", "Skipped"

    plan = models.ForeignKey(TreatmentPlan, on_delete=models.CASCADE, related_name="phases")
    phase_number = models.PositiveSmallIntegerField()
    phase_name = models.CharField(max_length=200)
    phase_type = models.CharField(max_length=30, choices=PhaseType.choices, default=PhaseType.CUSTOM)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.NOT_STARTED)
    progress_percent = models.PositiveSmallIntegerField(
        default=0,
        validators=[MaxValueValidator(100)],
    )
    planned_start_date = models.DateField(null=True, blank=True)
    planned_end_date = models.DateField(null=True, blank=True)
    actual_start_date = models.DateField(null=True, blank=True)
    actual_end_date = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ["plan", "phase_number"]
        constraints = [
            models.CheckConstraint(
                condition=Q(progress_percent__lte=100),
                name="phase_progress_max_100",
            ),
        ]

    def __str__(self):
        return f"Phase {self.phase_number}: {self.phase_name}"


class TreatmentMilestone(BaseModel):
    """A checkpoint the practice (and optionally the patient) tracks."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        IN_PROGRESS = "IN_PROGRESS", "In Progress"
        ACHIEVED = "ACHIEVED", "Achieved"
        MISSED = "MISSED", "Missed"
        DEFERRED = "DEFERRED", "Deferred"

    plan = models.ForeignKey(TreatmentPlan, on_delete=models.CASCADE, related_name="milestones")
    phase = models.ForeignKey(
        TreatmentPhase,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="milestones",
    )
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    target_date = models.DateField(null=True, blank=True)
    achieved_date = models.DateField(null=True, blank=True)
    visible_to_patient = models.BooleanField(default=True)

    class Meta:
        ordering = ["plan", "target_date", "created_at"]

    def __str__(self):
        return self.name


class TreatmentOption(BaseModel):
    """An alternative way to deliver a plan, presented to the patient."""

    class ApplianceSystem(models.TextChoices):
        METAL_BRACKETS = "METAL_BRACKETS", "Metal Brackets"
        CERAMIC_BRACKETS = "CERAMIC_BRACKETS", "Ceramic Brackets"
        SELF_LIGATING = "SELF_LIGATING", "Self-Ligating"
        LINGUAL = "LINGUAL", "Lingual"
        CLEAR_ALIGNERS = "CLEAR_ALIGNERS", "Clear Aligners"
        COMBINATION = "COMBINATION", "Combination"
        FUNCTIONAL = "FUNCTIONAL", "Functional"
        SURGICAL = "SURGICAL", "Surgical"
        RETENTION_ONLY = "RETENTION_ONLY", "Retention Only"

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        PRESENTED = "PRESENTED", "Presented"
        SELECTED = "SELECTED", "Selected"
        DECLINED = "DECLINED", "Declined"
        ARCHIVED = "ARCHIVED", "Archived"

    plan = models.ForeignKey(TreatmentPlan, on_delete=models.CASCADE, related_name="options")
    option_number = models.PositiveSmallIntegerField()
    option_name = models.CharField(max_length=200)
    appliance_system = models.CharField(max_length=30, choices=ApplianceSystem.choices)
    description = models.TextField(blank=True)
    estimated_duration = models.PositiveSmallIntegerField(null=True, blank=True, help_text="Months")
    estimated_visits = models.PositiveSmallIntegerField(null=True, blank=True)
    estimated_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    is_recommended = models.BooleanField(default=False)
    advantages = models.JSONField(default=list, blank=True)
    disadvantages = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    selected_date = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["plan", "option_number"]

    def __str__(self):
        return f"Option {self.option_number}: {self.option_name}"


class CaseAcceptance(ClinicScopedModel):
    """Signed consent and financial agreement for a presented plan."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PARTIALLY_SIGNED = "PARTIALLY_SIGNED", "Partially Signed"
        FULLY_SIGNED = "FULLY_SIGNED", "Fully Signed"
        EXPIRED = "EXPIRED", "Expired"
        WITHDRAWN = "WITHDRAWN", "Withdrawn"

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="case_acceptances")
    plan = models.ForeignKey(TreatmentPlan, on_delete=models.CASCADE, related_name="acceptances")
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="case_acceptances")
    selected_option = models.ForeignKey(
        TreatmentOption,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="acceptances",
    )

    informed_consent_signed = models.BooleanField(default=False)
    informed_consent_date = models.DateTimeField(null=True, blank=True)
    financial_agreement_signed = models.BooleanField(default=False)
    financial_agreement_date = models.DateTimeField(null=True, blank=True)
    hipaa_acknowledged = models.BooleanField(default=False)
    hipaa_acknowledged_date = models.DateTimeField(null=True, blank=True)
    photo_release_consent = models.BooleanField(default=False)

    total_treatment_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    down_payment = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    monthly_payment = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    payment_plan_months = models.PositiveSmallIntegerField(null=True, blank=True)
    insurance_estimate = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    patient_responsibility = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    patient_signature = models.TextField(blank=True, help_text="Signature image data or typed name")
    patient_signed_date = models.DateTimeField(null=True, blank=True)
    guardian_signature = models.TextField(blank=True)
    guardian_signed_date = models.DateTimeField(null=True, blank=True)
    guardian_name = models.CharField(max_length=200, blank=True)
    guardian_relation = models.CharField(max_length=100, blank=True)
    witnessed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    special_conditions = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    accepted_date = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Acceptance for {self.plan.plan_number} ({self.status})"

    @property
    def is_finalized(self) -> bool:
        return self.status == self.Status.FULLY_SIGNED

