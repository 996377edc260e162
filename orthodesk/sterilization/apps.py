"""Django app configuration for sterilization tracking module."""

from django.apps import AppConfig


class SterilizationConfig(AppConfig):
    """Sterilization tracking module app configuration."""

    name = "orthodesk.sterilization"
    label = "sterilization"
    verbose_name = "Sterilization Tracking"
    default_auto_field = "django.db.models.BigAutoField"
