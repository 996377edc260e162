"""Input validation for treatment planning APIs."""

from django import forms
from django.contrib.auth import get_user_model

from orthodesk.core.forms import StringListField

from .models import CaseAcceptance, PlanStatus, TreatmentOption, TreatmentPhase

User = get_user_model()

SORT_FIELDS = ("created_at", "updated_at", "plan_name", "status", "start_date")


class TreatmentPlanForm(forms.Form):
    plan_name = forms.CharField(max_length=200)
    plan_type = forms.CharField(max_length=100, required=False)
    chief_complaint = forms.CharField(max_length=2000, required=False)
    diagnosis = StringListField()
    treatment_goals = StringListField()
    treatment_description = forms.CharField(max_length=5000, required=False)
    primary_provider = forms.ModelChoiceField(queryset=User.objects.all(), required=False)
    supervising_provider = forms.ModelChoiceField(queryset=User.objects.all(), required=False)
    estimated_duration = forms.IntegerField(min_value=1, max_value=60, required=False)
    estimated_visits = forms.IntegerField(min_value=1, max_value=200, required=False)
    total_fee = forms.DecimalField(min_value=0, max_digits=12, decimal_places=2, required=False)
    start_date = forms.DateField(required=False)
    estimated_end_date = forms.DateField(required=False)

    def clean(self):
        cleaned = super().clean()
        start = cleaned.get("start_date")
        end = cleaned.get("estimated_end_date")
        if start and end and end < start:
            self.add_error("estimated_end_date", "Estimated end date cannot be before start date.")
        return cleaned


class PlanQueryForm(forms.Form):
    search = forms.CharField(required=False)
    patient = forms.UUIDField(required=False)
    status = forms.CharField(required=False)
    provider = forms.IntegerField(required=False)
    start_from = forms.DateField(required=False)
    start_to = forms.DateField(required=False)
    page = forms.IntegerField(min_value=1, required=False)
    page_size = forms.IntegerField(min_value=1, max_value=100, required=False)
    sort_by = forms.ChoiceField(choices=[(f, f) for f in SORT_FIELDS], required=False)
    sort_order = forms.ChoiceField(choices=[("asc", "asc"), ("desc", "desc")], required=False)

    def clean_status(self):
        status = self.cleaned_data.get("status") or ""
        if status.lower() in ("", "all"):
            return ""
        if status not in PlanStatus.values:
            raise forms.ValidationError(f"Unknown status '{status}'.")
        return status


class TransitionForm(forms.Form):
    status = forms.ChoiceField(choices=PlanStatus.choices)
    reason = forms.CharField(max_length=2000, required=False)


class PhaseForm(forms.Form):
    phase_name = forms.CharField(max_length=200)
    phase_type = forms.ChoiceField(choices=TreatmentPhase.PhaseType.choices, required=False)
    description = forms.CharField(required=False)
    phase_number = forms.IntegerField(min_value=1, required=False)
    planned_start_date = forms.DateField(required=False)
    planned_end_date = forms.DateField(required=False)


class PhaseProgressForm(forms.Form):
    progress_percent = forms.IntegerField(min_value=0, max_value=100)


class MilestoneForm(forms.Form):
    name = forms.CharField(max_length=200)
    description = forms.CharField(required=False)
    phase = forms.UUIDField(required=False)
    target_date = forms.DateField(required=False)
    visible_to_patient = forms.BooleanField(required=False, initial=True)


class OptionForm(forms.Form):
    option_name = forms.CharField(max_length=200)
    appliance_system = forms.ChoiceField(choices=TreatmentOption.ApplianceSystem.choices)
    description = forms.CharField(max_length=5000, required=False)
    option_number = forms.IntegerField(min_value=1, required=False)
    estimated_duration = forms.IntegerField(min_value=1, max_value=60, required=False)
    estimated_visits = forms.IntegerField(min_value=1, max_value=200, required=False)
    estimated_cost = forms.DecimalField(min_value=0, max_digits=12, decimal_places=2, required=False)
    is_recommended = forms.BooleanField(required=False)
    advantages = StringListField()
    disadvantages = StringListField()


class CaseAcceptanceForm(forms.Form):
    """Fields a PATCH may carry. Validated with clean_partial."""

    informed_consent_signed = forms.NullBooleanField(required=False)
    financial_agreement_signed = forms.NullBooleanField(required=False)
    hipaa_acknowledged = forms.NullBooleanField(required=False)
    photo_release_consent = forms.NullBooleanField(required=False)
    total_treatment_cost = forms.DecimalField(min_value=0, max_digits=12, decimal_places=2, required=False)
    down_payment = forms.DecimalField(min_value=0, max_digits=12, decimal_places=2, required=False)
    monthly_payment = forms.DecimalField(min_value=0, max_digits=12, decimal_places=2, required=False)
    payment_plan_months = forms.IntegerField(min_value=1, max_value=60, required=False)
    insurance_estimate = forms.DecimalField(min_value=0, max_digits=12, decimal_places=2, required=False)
    patient_responsibility = forms.DecimalField(min_value=0, max_digits=12, decimal_places=2, required=False)
    patient_signature = forms.CharField(required=False)
    guardian_signature = forms.CharField(required=False)
    guardian_name = forms.CharField(max_length=200, required=False)
    guardian_relation = forms.CharField(max_length=100, required=False)
    selected_option = forms.UUIDField(required=False)
    special_conditions = forms.CharField(max_length=2000, required=False)
    notes = forms.CharField(max_length=2000, required=False)
    status = forms.ChoiceField(choices=CaseAcceptance.Status.choices, required=False)
