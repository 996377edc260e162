"""Input validation for patient APIs."""

from django import forms

from .models import Patient


class PatientForm(forms.Form):
    first_name = forms.CharField(max_length=100)
    last_name = forms.CharField(max_length=100)
    date_of_birth = forms.DateField(required=False)
    email = forms.EmailField(required=False)
    phone = forms.CharField(max_length=30, required=False)
    status = forms.ChoiceField(choices=Patient.Status.choices, required=False)
    notes = forms.CharField(required=False)
