"""Input validation for sterilization APIs."""

from django import forms

from orthodesk.core.conf import get_setting
from orthodesk.core.forms import StringListField

from .labels import SHEET_FORMATS
from .models import (
    BiologicalIndicator,
    ChemicalIndicator,
    CycleStatus,
    CycleType,
    PackageStatus,
    PackageType,
    Sterilizer,
    SterilizerValidation,
    ValidationType,
)


class ClinicScopedForm(forms.Form):
    """Form whose sterilizer choices are limited to one clinic."""

    def __init__(self, *args, clinic=None, **kwargs):
        super().__init__(*args, **kwargs)
        if "sterilizer" in self.fields:
            self.fields["sterilizer"].queryset = Sterilizer.objects.for_clinic(clinic)


class CycleForm(ClinicScopedForm):
    cycle_type = forms.ChoiceField(choices=CycleType.choices)
    sterilizer = forms.ModelChoiceField(queryset=Sterilizer.objects.none(), required=False)
    start_time = forms.DateTimeField(required=False)
    temperature = forms.DecimalField(min_value=0, max_value=300, decimal_places=1, required=False)
    pressure = forms.DecimalField(min_value=0, max_value=100, decimal_places=1, required=False)
    exposure_time = forms.IntegerField(min_value=0, max_value=300, required=False)
    drying_time = forms.IntegerField(min_value=0, max_value=300, required=False)
    notes = forms.CharField(required=False)


class CompleteCycleForm(forms.Form):
    status = forms.ChoiceField(choices=[
        (CycleStatus.COMPLETED, "Completed"),
        (CycleStatus.FAILED, "Failed"),
        (CycleStatus.ABORTED, "Aborted"),
    ])
    end_time = forms.DateTimeField(required=False)
    mechanical_pass = forms.NullBooleanField(required=False)
    chemical_pass = forms.NullBooleanField(required=False)
    biological_pass = forms.NullBooleanField(required=False)
    failure_reason = forms.CharField(max_length=2000, required=False)

    def clean(self):
        cleaned = super().clean()
        if cleaned.get("status") == CycleStatus.FAILED and not cleaned.get("failure_reason"):
            self.add_error("failure_reason", "A failure reason is required for failed cycles.")
        return cleaned


class ReasonForm(forms.Form):
    reason = forms.CharField(max_length=2000)


class BiologicalIndicatorForm(forms.Form):
    lot_number = forms.CharField(max_length=50)
    brand = forms.CharField(max_length=100, required=False)
    placed_at = forms.DateTimeField(required=False)
    incubation_hours = forms.IntegerField(min_value=1, max_value=168, required=False)
    notes = forms.CharField(required=False)


class BIResultForm(forms.Form):
    result = forms.ChoiceField(choices=[
        (BiologicalIndicator.Result.PASSED, "Passed"),
        (BiologicalIndicator.Result.FAILED, "Failed"),
        (BiologicalIndicator.Result.INCONCLUSIVE, "Inconclusive"),
    ])
    control_result = forms.ChoiceField(choices=BiologicalIndicator.Result.choices, required=False)
    read_at = forms.DateTimeField(required=False)
    notes = forms.CharField(required=False)


class ChemicalIndicatorForm(forms.Form):
    indicator_class = forms.ChoiceField(choices=ChemicalIndicator.IndicatorClass.choices)
    result = forms.ChoiceField(choices=ChemicalIndicator.Result.choices)
    location = forms.CharField(max_length=200, required=False)
    notes = forms.CharField(required=False)


class PackageCreateForm(forms.Form):
    package_type = forms.ChoiceField(choices=PackageType.choices)
    instrument_names = StringListField(item_max_length=200, required=True)
    count = forms.IntegerField(min_value=1, max_value=100, required=False)
    expiration_days = forms.IntegerField(min_value=1, required=False)
    notes = forms.CharField(required=False)

    def clean_expiration_days(self):
        days = self.cleaned_data.get("expiration_days")
        max_days = get_setting("MAX_EXPIRATION_DAYS")
        if days is not None and days > max_days:
            raise forms.ValidationError(f"Expiration must be at most {max_days} days.")
        return days


class ReleaseForm(forms.Form):
    package_ids = forms.JSONField()
    notes = forms.CharField(max_length=2000)

    def clean_package_ids(self):
        ids = self.cleaned_data.get("package_ids")
        if not isinstance(ids, list) or not ids:
            raise forms.ValidationError("Provide a non-empty list of package ids.")
        field = forms.UUIDField()
        return [field.clean(value) for value in ids]


class UsageForm(forms.Form):
    patient = forms.UUIDField()
    procedure_type = forms.CharField(max_length=100, required=False)
    appointment_ref = forms.CharField(max_length=100, required=False)
    verified = forms.BooleanField(required=False)
    notes = forms.CharField(required=False)


class LookupForm(forms.Form):
    content = forms.CharField(max_length=500)


class PackageQueryForm(forms.Form):
    status = forms.ChoiceField(choices=PackageStatus.choices, required=False)
    package_type = forms.ChoiceField(choices=PackageType.choices, required=False)
    cycle = forms.UUIDField(required=False)
    search = forms.CharField(required=False)
    page = forms.IntegerField(min_value=1, required=False)
    page_size = forms.IntegerField(min_value=1, required=False)


class CycleQueryForm(forms.Form):
    status = forms.ChoiceField(choices=CycleStatus.choices, required=False)
    cycle_type = forms.ChoiceField(choices=CycleType.choices, required=False)
    start = forms.DateField(required=False)
    end = forms.DateField(required=False)
    page = forms.IntegerField(min_value=1, required=False)
    page_size = forms.IntegerField(min_value=1, required=False)


class LabelForm(forms.Form):
    package_ids = forms.CharField()
    format = forms.ChoiceField(choices=[(name, name) for name in SHEET_FORMATS], required=False)
    start_position = forms.IntegerField(min_value=0, required=False)

    def clean_package_ids(self):
        field = forms.UUIDField()
        ids = [value.strip() for value in self.cleaned_data["package_ids"].split(",") if value.strip()]
        if not ids:
            raise forms.ValidationError("Provide at least one package id.")
        return [field.clean(value) for value in ids]


class AutoclaveForm(ClinicScopedForm):
    name = forms.CharField(max_length=100)
    ip_address = forms.GenericIPAddressField()
    port = forms.IntegerField(min_value=1, max_value=65535, required=False)
    sterilizer = forms.ModelChoiceField(queryset=Sterilizer.objects.none(), required=False)
    enabled = forms.BooleanField(required=False, initial=True)


class ImportForm(forms.Form):
    year = forms.IntegerField(min_value=2000, max_value=2100, required=False)
    month = forms.IntegerField(min_value=1, max_value=12, required=False)
    cycle_numbers = forms.JSONField(required=False)

    def clean_cycle_numbers(self):
        numbers = self.cleaned_data.get("cycle_numbers")
        if numbers in (None, ""):
            return []
        if not isinstance(numbers, list):
            raise forms.ValidationError("Expected a list of cycle numbers.")
        try:
            return [int(n) for n in numbers]
        except (TypeError, ValueError):
            raise forms.ValidationError("Cycle numbers must be integers.")


class ValidationForm(forms.Form):
    validation_type = forms.ChoiceField(choices=ValidationType.choices)
    validation_date = forms.DateField()
    result = forms.ChoiceField(choices=SterilizerValidation.Result.choices)
    next_due_date = forms.DateField(required=False)
    performed_by = forms.CharField(max_length=200, required=False)
    notes = forms.CharField(required=False)


class ScheduleForm(forms.Form):
    validation_type = forms.ChoiceField(choices=ValidationType.choices)
    frequency_days = forms.IntegerField(min_value=1, max_value=730)
    reminder_days = forms.IntegerField(min_value=0, max_value=90, required=False)
    next_due = forms.DateField()


class ReportPeriodForm(forms.Form):
    start = forms.DateField(required=False)
    end = forms.DateField(required=False)

    def clean(self):
        cleaned = super().clean()
        start, end = cleaned.get("start"), cleaned.get("end")
        if start and end and end < start:
            self.add_error("end", "End date cannot be before start date.")
        return cleaned


class SterilizerForm(forms.Form):
    name = forms.CharField(max_length=100)
    model = forms.CharField(max_length=100, required=False)
    serial_number = forms.CharField(max_length=100, required=False)
