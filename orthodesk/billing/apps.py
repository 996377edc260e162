"""Django app configuration for billing module."""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Billing module app configuration."""

    name = "orthodesk.billing"
    label = "billing"
    verbose_name = "Billing"
    default_auto_field = "django.db.models.BigAutoField"
