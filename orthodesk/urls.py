"""URL configuration for orthodesk project."""

from django.contrib import admin
from django.urls import include, path

from . import views

urlpatterns = [
    # Admin
    path("admin/", admin.site.urls),

    # Health check
    path("health/", views.health_check, name="health_check"),

    # Domain APIs
    path("api/", include("orthodesk.patients.urls")),
    path("api/", include("orthodesk.treatment.urls")),
    path("api/sterilization/", include("orthodesk.sterilization.urls")),
    path("api/billing/", include("orthodesk.billing.urls")),
]
