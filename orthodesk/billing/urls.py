"""URL routes for billing API."""

from django.urls import path

from . import views

app_name = "billing"

urlpatterns = [
    # Accounts
    path("accounts/", views.api_accounts, name="api-accounts"),
    path("accounts/<uuid:account_id>/", views.api_account_detail, name="api-account-detail"),
    path("accounts/<uuid:account_id>/refresh/", views.api_account_refresh, name="api-account-refresh"),

    # Invoices
    path("invoices/", views.api_invoices, name="api-invoices"),
    path("invoices/<uuid:invoice_id>/", views.api_invoice_detail, name="api-invoice-detail"),
    path("invoices/<uuid:invoice_id>/void/", views.api_invoice_void, name="api-invoice-void"),
    path(
        "invoices/<uuid:invoice_id>/payment-link/",
        views.api_invoice_payment_link,
        name="api-invoice-payment-link",
    ),

    # Payments
    path("payments/", views.api_payments, name="api-payments"),
    path("payment-plans/", views.api_payment_plans, name="api-payment-plans"),
    path(
        "payment-plans/<uuid:plan_id>/payments/",
        views.api_payment_plan_payments,
        name="api-payment-plan-payments",
    ),
    path(
        "payment-plans/<uuid:plan_id>/transition/",
        views.api_payment_plan_transition,
        name="api-payment-plan-transition",
    ),

    # Reports
    path("reports/aging/", views.api_aging_report, name="api-aging-report"),
]
