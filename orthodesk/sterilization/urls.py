"""URL routes for sterilization API."""

from django.urls import path

from . import views

app_name = "sterilization"

urlpatterns = [
    path("sterilizers/", views.api_sterilizers, name="api-sterilizers"),

    # Cycles and indicators
    path("cycles/", views.api_cycles, name="api-cycles"),
    path("cycles/<uuid:cycle_id>/", views.api_cycle_detail, name="api-cycle-detail"),
    path("cycles/<uuid:cycle_id>/complete/", views.api_cycle_complete, name="api-cycle-complete"),
    path("cycles/<uuid:cycle_id>/void/", views.api_cycle_void, name="api-cycle-void"),
    path(
        "cycles/<uuid:cycle_id>/biological-indicators/",
        views.api_cycle_biological_indicators,
        name="api-cycle-biological-indicators",
    ),
    path(
        "cycles/<uuid:cycle_id>/chemical-indicators/",
        views.api_cycle_chemical_indicators,
        name="api-cycle-chemical-indicators",
    ),
    path("cycles/<uuid:cycle_id>/packages/", views.api_cycle_packages, name="api-cycle-packages"),
    path("biological-indicators/<uuid:indicator_id>/result/", views.api_bi_result, name="api-bi-result"),

    # Packages
    path("packages/", views.api_packages, name="api-packages"),
    path("packages/lookup/", views.api_package_lookup, name="api-package-lookup"),
    path("packages/<uuid:package_id>/", views.api_package_detail, name="api-package-detail"),
    path("packages/<uuid:package_id>/usage/", views.api_package_usage, name="api-package-usage"),
    path("packages/<uuid:package_id>/qr.png", views.api_package_qr, name="api-package-qr"),
    path(
        "packages/<uuid:package_id>/<slug:action>/",
        views.api_package_action,
        name="api-package-action",
    ),
    path("quarantine/", views.api_quarantine, name="api-quarantine"),
    path("quarantine/release/", views.api_quarantine_release, name="api-quarantine-release"),
    path("labels/", views.api_labels, name="api-labels"),

    # Autoclaves
    path("autoclaves/", views.api_autoclaves, name="api-autoclaves"),
    path("autoclaves/<uuid:autoclave_id>/test/", views.api_autoclave_test, name="api-autoclave-test"),
    path("autoclaves/<uuid:autoclave_id>/import/", views.api_autoclave_import, name="api-autoclave-import"),

    # Validations
    path("validations/", views.api_validations, name="api-validations"),
    path("validations/due/", views.api_validations_due, name="api-validations-due"),
    path("validation-schedules/", views.api_validation_schedules, name="api-validation-schedules"),

    # Reports
    path("reports/compliance.pdf", views.api_compliance_pdf, name="api-compliance-pdf"),
    path("reports/<slug:kind>/", views.api_report, name="api-report"),
]
