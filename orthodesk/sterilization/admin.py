"""Django admin configuration for sterilization tracking."""

from django.contrib import admin

from .models import (
    AutoclaveIntegration,
    BiologicalIndicator,
    ChemicalIndicator,
    ComplianceLog,
    InstrumentPackage,
    PackageUsage,
    SterilizationCycle,
    Sterilizer,
    SterilizerValidation,
    ValidationSchedule,
)


class BiologicalIndicatorInline(admin.TabularInline):
    model = BiologicalIndicator
    extra = 0
    fields = ["lot_number", "brand", "placed_at", "read_at", "result"]
    readonly_fields = ["result"]


class ChemicalIndicatorInline(admin.TabularInline):
    model = ChemicalIndicator
    extra = 0
    fields = ["indicator_class", "result", "location"]


@admin.register(Sterilizer)
class SterilizerAdmin(admin.ModelAdmin):
    list_display = ["name", "model", "serial_number", "clinic", "is_active"]
    list_filter = ["is_active", "clinic"]


@admin.register(SterilizationCycle)
class SterilizationCycleAdmin(admin.ModelAdmin):
    """Admin for cycles. Status is changed through the API only."""

    list_display = ["cycle_number", "cycle_type", "sterilizer", "start_time", "status", "biological_pass"]
    list_filter = ["status", "cycle_type", "clinic"]
    search_fields = ["cycle_number"]
    readonly_fields = ["id", "cycle_number", "status", "raw_log", "digital_signature", "created_at", "updated_at"]
    inlines = [BiologicalIndicatorInline, ChemicalIndicatorInline]


@admin.register(InstrumentPackage)
class InstrumentPackageAdmin(admin.ModelAdmin):
    list_display = ["package_number", "package_type", "cycle", "sterilized_date", "expiration_date", "status"]
    list_filter = ["status", "package_type", "clinic"]
    search_fields = ["package_number", "cycle__cycle_number"]
    readonly_fields = ["id", "package_number", "status", "qr_code", "released_at", "released_by"]


@admin.register(PackageUsage)
class PackageUsageAdmin(admin.ModelAdmin):
    list_display = ["package", "patient", "procedure_type", "used_at", "verified"]
    readonly_fields = ["id", "package", "patient", "used_at", "used_by"]


@admin.register(AutoclaveIntegration)
class AutoclaveIntegrationAdmin(admin.ModelAdmin):
    list_display = ["name", "ip_address", "port", "status", "enabled", "last_sync_at"]
    list_filter = ["status", "enabled"]
    readonly_fields = ["status", "last_sync_at", "last_cycle_num", "error_message"]


@admin.register(SterilizerValidation)
class SterilizerValidationAdmin(admin.ModelAdmin):
    list_display = ["sterilizer", "validation_type", "validation_date", "result", "next_due_date"]
    list_filter = ["validation_type", "result"]


@admin.register(ValidationSchedule)
class ValidationScheduleAdmin(admin.ModelAdmin):
    list_display = ["sterilizer", "validation_type", "frequency_days", "next_due", "is_active"]
    list_filter = ["is_active", "validation_type"]


@admin.register(ComplianceLog)
class ComplianceLogAdmin(admin.ModelAdmin):
    list_display = ["title", "log_type", "cycle", "is_resolved", "created_at"]
    list_filter = ["log_type", "is_resolved"]
    search_fields = ["title", "description"]
