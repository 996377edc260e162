"""URL routes for treatment planning API."""

from django.urls import path

from . import views

app_name = "treatment"

urlpatterns = [
    path("treatment-plans/", views.api_plans, name="api-plans"),
    path("treatment-plans/<uuid:plan_id>/", views.api_plan_detail, name="api-plan-detail"),
    path("treatment-plans/<uuid:plan_id>/transition/", views.api_plan_transition, name="api-plan-transition"),
    path("treatment-plans/<uuid:plan_id>/progress/", views.api_plan_progress, name="api-plan-progress"),
    path("treatment-plans/<uuid:plan_id>/phases/", views.api_plan_phases, name="api-plan-phases"),
    path("treatment-plans/<uuid:plan_id>/milestones/", views.api_plan_milestones, name="api-plan-milestones"),
    path("treatment-plans/<uuid:plan_id>/options/", views.api_plan_options, name="api-plan-options"),
    path("treatment-plans/<uuid:plan_id>/acceptance/", views.api_plan_acceptance, name="api-plan-acceptance"),
    path("treatment-phases/<uuid:phase_id>/progress/", views.api_phase_progress, name="api-phase-progress"),
    path("treatment-milestones/<uuid:milestone_id>/achieve/", views.api_milestone_achieve, name="api-milestone-achieve"),
    path("treatment-options/<uuid:option_id>/select/", views.api_option_select, name="api-option-select"),
    path("case-acceptances/<uuid:acceptance_id>/", views.api_acceptance_detail, name="api-acceptance-detail"),
]
