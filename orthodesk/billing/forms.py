"""Input validation for billing APIs."""

from decimal import Decimal

from django import forms

from .models import (
    AccountStatus,
    AccountType,
    InvoiceStatus,
    PaymentMethod,
    PaymentPlanStatus,
    PaymentType,
)

MONEY = {"max_digits": 12, "decimal_places": 2}


class AccountForm(forms.Form):
    patient = forms.UUIDField()
    account_type = forms.ChoiceField(choices=AccountType.choices, required=False)


class AccountQueryForm(forms.Form):
    status = forms.ChoiceField(choices=AccountStatus.choices, required=False)
    search = forms.CharField(required=False)
    page = forms.IntegerField(min_value=1, required=False)
    page_size = forms.IntegerField(min_value=1, required=False)


class InvoiceItemForm(forms.Form):
    description = forms.CharField(max_length=500)
    procedure_code = forms.CharField(max_length=20, required=False)
    quantity = forms.IntegerField(min_value=1, max_value=1000, required=False)
    unit_price = forms.DecimalField(min_value=0, **MONEY)
    discount = forms.DecimalField(min_value=0, required=False, **MONEY)
    insurance_amount = forms.DecimalField(min_value=0, required=False, **MONEY)
    patient_amount = forms.DecimalField(min_value=0, required=False, **MONEY)

    def clean(self):
        cleaned = super().clean()
        cleaned["quantity"] = cleaned.get("quantity") or 1
        unit_price = cleaned.get("unit_price")
        if unit_price is None:
            return cleaned
        line_subtotal = cleaned["quantity"] * unit_price
        reductions = (cleaned.get("discount") or 0) + (cleaned.get("insurance_amount") or 0)
        if reductions > line_subtotal:
            self.add_error("discount", "Discount and insurance cannot exceed the line subtotal.")
        patient_amount = cleaned.get("patient_amount")
        if patient_amount is not None and patient_amount > line_subtotal:
            self.add_error("patient_amount", "Patient amount cannot exceed the line subtotal.")
        return cleaned


class InvoiceForm(forms.Form):
    account = forms.UUIDField()
    invoice_date = forms.DateField(required=False)
    due_date = forms.DateField()
    notes = forms.CharField(max_length=5000, required=False)
    items = forms.JSONField()

    def clean_items(self):
        items = self.cleaned_data.get("items")
        if not isinstance(items, list) or not items:
            raise forms.ValidationError("An invoice needs at least one item.")
        cleaned, errors = [], []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                errors.append(f"Item {index + 1}: expected an object.")
                continue
            form = InvoiceItemForm(item)
            if form.is_valid():
                cleaned.append(form.cleaned_data)
            else:
                for field, messages in form.errors.items():
                    errors.extend(f"Item {index + 1} {field}: {m}" for m in messages)
        if errors:
            raise forms.ValidationError(errors)
        return cleaned

    def clean(self):
        cleaned = super().clean()
        invoice_date, due_date = cleaned.get("invoice_date"), cleaned.get("due_date")
        if invoice_date and due_date and due_date < invoice_date:
            self.add_error("due_date", "Due date cannot be before invoice date.")
        return cleaned


class InvoiceQueryForm(forms.Form):
    status = forms.ChoiceField(choices=InvoiceStatus.choices, required=False)
    account = forms.UUIDField(required=False)
    patient = forms.UUIDField(required=False)
    overdue = forms.NullBooleanField(required=False)
    page = forms.IntegerField(min_value=1, required=False)
    page_size = forms.IntegerField(min_value=1, required=False)


class VoidForm(forms.Form):
    reason = forms.CharField(max_length=2000)


class PaymentForm(forms.Form):
    account = forms.UUIDField()
    invoice = forms.UUIDField(required=False)
    amount = forms.DecimalField(min_value=Decimal("0.01"), **MONEY)
    method = forms.ChoiceField(choices=PaymentMethod.choices)
    payment_type = forms.ChoiceField(choices=PaymentType.choices, required=False)
    reference = forms.CharField(max_length=100, required=False)
    notes = forms.CharField(max_length=2000, required=False)


class PaymentPlanForm(forms.Form):
    account = forms.UUIDField()
    treatment_plan = forms.UUIDField(required=False)
    total_amount = forms.DecimalField(min_value=Decimal("0.01"), **MONEY)
    down_payment = forms.DecimalField(min_value=0, required=False, **MONEY)
    number_of_payments = forms.IntegerField(min_value=1, max_value=120)
    start_date = forms.DateField(required=False)

    def clean(self):
        cleaned = super().clean()
        total, down = cleaned.get("total_amount"), cleaned.get("down_payment")
        if total is not None and down is not None and down > total:
            self.add_error("down_payment", "Down payment cannot exceed the total amount.")
        return cleaned


class PlanPaymentForm(forms.Form):
    amount = forms.DecimalField(min_value=Decimal("0.01"), **MONEY)


class PlanTransitionForm(forms.Form):
    status = forms.ChoiceField(choices=PaymentPlanStatus.choices)
    reason = forms.CharField(max_length=2000, required=False)


class PaymentLinkForm(forms.Form):
    expires_in_days = forms.IntegerField(min_value=1, max_value=90, required=False)


class AgingQueryForm(forms.Form):
    as_of = forms.DateField(required=False)
