"""Core models shared by every orthodesk module.

- BaseModel: UUID pk, timestamps and soft delete
- ClinicScopedModel: BaseModel owned by a single Clinic (tenant)
- Clinic / ClinicMembership: tenancy and staff roles
- Sequence: per-clinic, per-year human-readable numbers
- AuditLog: append-only record of state-changing operations

Usage:
    from orthodesk.core.models import ClinicScopedModel

    class Patient(ClinicScopedModel):
        first_name = models.CharField(max_length=100)

    Patient.objects.for_clinic(request.clinic).filter(...)
"""
import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone


class LiveManager(models.Manager):
    """Manager that hides soft-deleted rows."""

    def get_queryset(self):
        return super().get_queryset().filter(deleted_at__isnull=True)


class BaseModel(models.Model):
    """UUID primary key, created/updated timestamps and soft delete.

    ``objects`` hides soft-deleted rows. ``all_objects`` sees every row and
    is meant for checks that must also cover deleted records, such as
    keeping generated codes unique.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = LiveManager()
    all_objects = models.Manager()

    class Meta:
        abstract = True

    def delete(self, using=None, keep_parents=False):
        """Soft delete: stamp deleted_at and keep the row."""
        self.deleted_at = timezone.now()
        self.save(update_fields=["deleted_at", "updated_at"])


# =============================================================================
# Tenancy
# =============================================================================


class Clinic(BaseModel):
    """A practice location. Every clinical and financial row belongs to one."""

    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=100, unique=True)
    timezone = models.CharField(max_length=64, default="UTC")
    phone = models.CharField(max_length=30, blank=True)
    address = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class ClinicScopedQuerySet(models.QuerySet):
    """QuerySet with tenant filtering."""

    def for_clinic(self, clinic):
        """Rows owned by clinic (instance or pk). No clinic matches nothing."""
        if clinic is None:
            return self.none()
        return self.filter(clinic=clinic)


class ClinicScopedManager(LiveManager.from_queryset(ClinicScopedQuerySet)):
    """Live rows of a tenant-owned model. Reads start from for_clinic()."""


class ClinicScopedModel(BaseModel):
    """BaseModel owned by a clinic."""

    clinic = models.ForeignKey(
        Clinic,
        on_delete=models.PROTECT,
        related_name="+",
    )

    objects = ClinicScopedManager()
    all_objects = models.Manager()

    class Meta:
        abstract = True


class ClinicMembership(BaseModel):
    """A user's role within a clinic."""

    class Role(models.TextChoices):
        SUPER_ADMIN = "super_admin", "Super Admin"
        CLINIC_ADMIN = "clinic_admin", "Clinic Admin"
        DOCTOR = "doctor", "Doctor"
        CLINICAL_STAFF = "clinical_staff", "Clinical Staff"
        FRONT_DESK = "front_desk", "Front Desk"
        BILLING = "billing", "Billing"
        READ_ONLY = "read_only", "Read Only"

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="memberships")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="clinic_memberships",
    )
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.READ_ONLY)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["clinic", "user"]
        constraints = [
            models.UniqueConstraint(
                fields=["clinic", "user"],
                condition=models.Q(deleted_at__isnull=True),
                name="unique_active_membership",
            ),
        ]

    def __str__(self):
        return f"{self.user} @ {self.clinic} ({self.role})"


# =============================================================================
# Sequences
# =============================================================================


class Sequence(BaseModel):
    """
    Human-readable number generator.

    Generates values like "INV-2026-00001". One row per (clinic, prefix, year)
    so numbering restarts every year and never collides across tenants.

    Usage:
        from orthodesk.core.sequence import next_number

        number = next_number(clinic, "INV", pad_width=5)
    """

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="sequences")
    prefix = models.CharField(max_length=20, help_text="Prefix, e.g. 'INV', 'CYC'")
    year = models.PositiveSmallIntegerField()
    current_value = models.PositiveBigIntegerField(default=0)
    pad_width = models.PositiveSmallIntegerField(default=5)

    class Meta:
        unique_together = ["clinic", "prefix", "year"]

    def __str__(self):
        return f"{self.prefix}-{self.year} ({self.clinic_id}): {self.current_value}"

    @property
    def formatted_value(self) -> str:
        """Current value formatted as PREFIX-YYYY-NNNN."""
        return f"{self.prefix}-{self.year}-{str(self.current_value).zfill(self.pad_width)}"


# =============================================================================
# Audit
# =============================================================================


class AuditLog(models.Model):
    """Immutable audit log entry.

    Records who did what, when and where for HIPAA accountability.
    Audit logs are never deleted.
    """

    SENSITIVITY_CHOICES = [
        ("normal", "Normal"),
        ("high", "High"),
        ("critical", "Critical"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    clinic = models.ForeignKey(
        Clinic,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    actor_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orthodesk_audit_logs",
        help_text="User who performed the action (null for system actions)",
    )
    actor_display = models.CharField(
        max_length=200,
        blank=True,
        help_text="Snapshot of actor identity for safety",
    )
    action = models.CharField(max_length=50, db_index=True)
    model_label = models.CharField(max_length=100, blank=True, db_index=True)
    object_id = models.CharField(max_length=50, blank=True)
    object_repr = models.CharField(max_length=200, blank=True)
    changes = models.JSONField(
        default=dict,
        blank=True,
        help_text='Before/after field changes: {"field": {"old": x, "new": y}}',
    )
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=500, blank=True)
    request_id = models.CharField(max_length=100, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    sensitivity = models.CharField(
        max_length=20,
        choices=SENSITIVITY_CHOICES,
        default="normal",
    )
    is_system = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["clinic", "created_at"]),
            models.Index(fields=["model_label", "created_at"]),
            models.Index(fields=["action", "created_at"]),
            models.Index(fields=["object_id", "model_label"]),
        ]

    def __str__(self):
        actor = self.actor_display or "System"
        return f"{actor} {self.action} {self.model_label}"

    def save(self, *args, **kwargs):
        # Append-only
        if not self._state.adding:
            raise ValueError("Audit logs are immutable and cannot be updated")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Audit logs are immutable and cannot be deleted")
