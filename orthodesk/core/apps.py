"""Django app configuration for the shared core module."""

from django.apps import AppConfig


class CoreConfig(AppConfig):
    """Core module app configuration: tenancy, audit, sequences."""

    name = "orthodesk.core"
    label = "core"
    verbose_name = "Core"
    default_auto_field = "django.db.models.BigAutoField"
