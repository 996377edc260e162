"""Django app configuration for treatment planning module."""

from django.apps import AppConfig


class TreatmentConfig(AppConfig):
    """Treatment planning module app configuration."""

    name = "orthodesk.treatment"
    label = "treatment"
    verbose_name = "Treatment Planning"
    default_auto_field = "django.db.models.BigAutoField"
