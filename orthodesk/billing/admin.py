"""Django admin configuration for billing."""

from django.contrib import admin

from .models import Invoice, InvoiceItem, PatientAccount, Payment, PaymentLink, PaymentPlan


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    fields = ["description", "procedure_code", "quantity", "unit_price", "discount", "insurance_amount", "line_total"]
    readonly_fields = ["line_total"]


@admin.register(PatientAccount)
class PatientAccountAdmin(admin.ModelAdmin):
    """Balances are recomputed by the refresh service, never edited by hand."""

    list_display = ["account_number", "patient", "account_type", "status", "current_balance", "credit_balance"]
    list_filter = ["status", "account_type", "clinic"]
    search_fields = ["account_number", "patient__last_name"]
    readonly_fields = [
        "id", "account_number", "current_balance", "insurance_balance", "patient_balance", "credit_balance",
        "aging_current", "aging_30", "aging_60", "aging_90", "aging_120", "balance_updated_at",
    ]


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ["invoice_number", "patient", "invoice_date", "due_date", "patient_amount", "balance", "status"]
    list_filter = ["status", "clinic"]
    search_fields = ["invoice_number", "patient__last_name"]
    readonly_fields = ["id", "invoice_number", "status", "paid_amount", "balance", "created_at"]
    inlines = [InvoiceItemInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ["payment_number", "account", "invoice", "amount", "method", "status", "paid_at"]
    list_filter = ["status", "method", "payment_type"]
    search_fields = ["payment_number", "reference"]
    readonly_fields = ["id", "payment_number", "applied_amount", "credit_amount", "paid_at"]


@admin.register(PaymentPlan)
class PaymentPlanAdmin(admin.ModelAdmin):
    list_display = ["plan_number", "account", "total_amount", "monthly_payment", "remaining_balance", "status"]
    list_filter = ["status"]
    readonly_fields = ["id", "plan_number", "financed_amount", "monthly_payment", "remaining_balance", "status"]


@admin.register(PaymentLink)
class PaymentLinkAdmin(admin.ModelAdmin):
    list_display = ["code", "invoice", "amount", "expires_at", "status"]
    list_filter = ["status"]
