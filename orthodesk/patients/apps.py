"""Django app configuration for patients module."""

from django.apps import AppConfig


class PatientsConfig(AppConfig):
    """Patients module app configuration."""

    name = "orthodesk.patients"
    label = "patients"
    verbose_name = "Patients"
    default_auto_field = "django.db.models.BigAutoField"
