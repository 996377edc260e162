"""Django admin configuration for patients module."""

from django.contrib import admin

from .models import Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ["patient_number", "last_name", "first_name", "clinic", "status", "created_at"]
    list_filter = ["status", "clinic"]
    search_fields = ["patient_number", "first_name", "last_name", "email"]
    readonly_fields = ["id", "patient_number", "created_at", "updated_at"]
