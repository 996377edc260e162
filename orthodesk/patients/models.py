"""Patient records."""

from django.db import models

from orthodesk.core.models import Clinic, ClinicScopedModel


class Patient(ClinicScopedModel):
    """A patient of one clinic."""

    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        INACTIVE = "INACTIVE", "Inactive"
        ARCHIVED = "ARCHIVED", "Archived"

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="patients")
    patient_number = models.CharField(max_length=30, help_text="PT-YYYY-NNNNN")
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    date_of_birth = models.DateField(null=True, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["last_name", "first_name"]
        constraints = [
            models.UniqueConstraint(
                fields=["clinic", "patient_number"],
                name="unique_patient_number_per_clinic",
            ),
        ]
        indexes = [
            models.Index(fields=["clinic", "last_name", "first_name"]),
        ]

    def __str__(self):
        return f"{self.patient_number} {self.full_name}"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
