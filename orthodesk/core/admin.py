"""Django admin configuration for core module."""

from django.contrib import admin

from .models import AuditLog, Clinic, ClinicMembership, Sequence


class ClinicMembershipInline(admin.TabularInline):
    """Inline for staff memberships."""

    model = ClinicMembership
    extra = 0
    fields = ["user", "role", "is_active"]


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "timezone", "is_active", "created_at"]
    list_filter = ["is_active"]
    search_fields = ["name", "slug"]
    prepopulated_fields = {"slug": ("name",)}
    inlines = [ClinicMembershipInline]


@admin.register(Sequence)
class SequenceAdmin(admin.ModelAdmin):
    list_display = ["prefix", "year", "clinic", "current_value", "pad_width"]
    list_filter = ["prefix", "year"]
    readonly_fields = ["current_value"]


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    """Read-only admin for audit entries."""

    list_display = ["created_at", "clinic", "actor_display", "action", "model_label", "object_repr"]
    list_filter = ["action", "sensitivity", "is_system", "clinic"]
    search_fields = ["object_id", "object_repr", "actor_display"]
    readonly_fields = [f.name for f in AuditLog._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
