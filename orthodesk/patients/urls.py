"""URL routes for patients API."""

from django.urls import path

from . import views

app_name = "patients"

urlpatterns = [
    path("patients/", views.api_patients, name="api-patients"),
    path("patients/<uuid:patient_id>/", views.api_patient_detail, name="api-patient-detail"),
    path("phi-fog/", views.api_phi_fog, name="api-phi-fog"),
]
