"""Django admin configuration for treatment planning module."""

from django.contrib import admin

from .models import CaseAcceptance, TreatmentMilestone, TreatmentOption, TreatmentPhase, TreatmentPlan


class TreatmentPhaseInline(admin.TabularInline):
    model = TreatmentPhase
    extra = 0
    fields = ["phase_number", "phase_name", "phase_type", "status", "progress_percent"]


class TreatmentMilestoneInline(admin.TabularInline):
    model = TreatmentMilestone
    extra = 0
    fields = ["name", "phase", "status", "target_date", "achieved_date", "visible_to_patient"]


class TreatmentOptionInline(admin.TabularInline):
    model = TreatmentOption
    extra = 0
    fields = ["option_number", "option_name", "appliance_system", "estimated_cost", "is_recommended", "status"]


@admin.register(TreatmentPlan)
class TreatmentPlanAdmin(admin.ModelAdmin):
    """Admin for treatment plans. Status is changed through the API only."""

    list_display = ["plan_number", "plan_name", "patient", "status", "primary_provider", "start_date"]
    list_filter = ["status", "clinic"]
    search_fields = ["plan_number", "plan_name", "patient__last_name"]
    readonly_fields = ["id", "plan_number", "status", "presented_date", "accepted_date", "created_at", "updated_at"]
    inlines = [TreatmentPhaseInline, TreatmentMilestoneInline, TreatmentOptionInline]


@admin.register(CaseAcceptance)
class CaseAcceptanceAdmin(admin.ModelAdmin):
    list_display = ["plan", "patient", "status", "accepted_date", "created_at"]
    list_filter = ["status"]
    readonly_fields = ["id", "status", "accepted_date", "patient_signed_date", "created_at"]
