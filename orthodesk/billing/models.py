"""Billing models.

A PatientAccount collects a patient's invoices, payments and payment
plans. Balances and aging buckets on the account are denormalized and
recomputed by services.refresh_account_balance().
"""

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q

from orthodesk.core.models import BaseModel, Clinic, ClinicScopedModel
from orthodesk.patients.models import Patient
from orthodesk.treatment.models import TreatmentPlan


def _money(**kwargs):
    kwargs.setdefault("default", 0)
    return models.DecimalField(max_digits=12, decimal_places=2, **kwargs)


class AccountType(models.TextChoices):
    INDIVIDUAL = "INDIVIDUAL", "Individual"
    FAMILY = "FAMILY", "Family"
    GUARANTOR = "GUARANTOR", "Guarantor"


class AccountStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    SUSPENDED = "SUSPENDED", "Suspended"
    COLLECTIONS = "COLLECTIONS", "Collections"
    CLOSED = "CLOSED", "Closed"
    SETTLED = "SETTLED", "Settled"


class InvoiceStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    PENDING = "PENDING", "Pending"
    SENT = "SENT", "Sent"
    PARTIAL = "PARTIAL", "Partially Paid"
    PAID = "PAID", "Paid"
    OVERDUE = "OVERDUE", "Overdue"
    CANCELLED = "CANCELLED", "Cancelled"
    VOID = "VOID", "Void"


class PaymentType(models.TextChoices):
    PATIENT = "PATIENT", "Patient"
    INSURANCE = "INSURANCE", "Insurance"
    THIRD_PARTY = "THIRD_PARTY", "Third Party"


class PaymentMethod(models.TextChoices):
    CREDIT_CARD = "CREDIT_CARD", "Credit Card"
    DEBIT_CARD = "DEBIT_CARD", "Debit Card"
    ACH = "ACH", "ACH"
    CASH = "CASH", "Cash"
    CHECK = "CHECK", "Check"
    E_TRANSFER = "E_TRANSFER", "E-Transfer"
    WIRE = "WIRE", "Wire"
    OTHER = "OTHER", "Other"


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PROCESSING = "PROCESSING", "Processing"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"
    REFUNDED = "REFUNDED", "Refunded"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED", "Partially Refunded"
    CANCELLED = "CANCELLED", "Cancelled"


class PaymentPlanStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    ACTIVE = "ACTIVE", "Active"
    PAUSED = "PAUSED", "Paused"
    COMPLETED = "COMPLETED", "Completed"
    DEFAULTED = "DEFAULTED", "Defaulted"
    CANCELLED = "CANCELLED", "Cancelled"


class PaymentLinkStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    PAID = "PAID", "Paid"
    EXPIRED = "EXPIRED", "Expired"
    CANCELLED = "CANCELLED", "Cancelled"


# =============================================================================
# Accounts
# =============================================================================


class PatientAccount(ClinicScopedModel):
    """Financial account of a patient (or the family/guarantor paying for them)."""

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="patient_accounts")
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="accounts")
    account_number = models.CharField(max_length=30, help_text="ACC-YYYY-NNNNN")
    account_type = models.CharField(max_length=20, choices=AccountType.choices, default=AccountType.INDIVIDUAL)
    status = models.CharField(max_length=20, choices=AccountStatus.choices, default=AccountStatus.ACTIVE)

    current_balance = _money()
    insurance_balance = _money()
    patient_balance = _money()
    credit_balance = _money()

    aging_current = _money()
    aging_30 = _money()
    aging_60 = _money()
    aging_90 = _money()
    aging_120 = _money()

    balance_updated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["account_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["clinic", "account_number"],
                name="unique_account_number_per_clinic",
            ),
            models.CheckConstraint(
                condition=Q(credit_balance__gte=0),
                name="patient_account_credit_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["clinic", "status"]),
        ]

    def __str__(self):
        return self.account_number


# =============================================================================
# Invoices
# =============================================================================


class Invoice(ClinicScopedModel):
    """A bill for services. Totals are snapshotted from its items at creation."""

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="invoices")
    account = models.ForeignKey(PatientAccount, on_delete=models.PROTECT, related_name="invoices")
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="invoices")
    invoice_number = models.CharField(max_length=30, help_text="INV-YYYY-NNNNN")
    invoice_date = models.DateField()
    due_date = models.DateField()

    subtotal = _money()
    adjustments = _money()
    insurance_amount = _money()
    patient_amount = _money()
    paid_amount = _money()
    balance = _money()

    status = models.CharField(max_length=20, choices=InvoiceStatus.choices, default=InvoiceStatus.DRAFT)
    notes = models.TextField(blank=True)
    void_reason = models.TextField(blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-invoice_date", "-invoice_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["clinic", "invoice_number"],
                name="unique_invoice_number_per_clinic",
            ),
            models.CheckConstraint(
                condition=Q(due_date__gte=models.F("invoice_date")),
                name="invoice_due_after_invoice_date",
            ),
            models.CheckConstraint(
                condition=Q(paid_amount__gte=0),
                name="invoice_paid_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["clinic", "status"]),
            models.Index(fields=["account", "status"]),
            models.Index(fields=["due_date"]),
        ]

    def __str__(self):
        return self.invoice_number


class InvoiceItem(BaseModel):
    """One line of an invoice."""

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="items")
    description = models.CharField(max_length=500)
    procedure_code = models.CharField(max_length=20, blank=True, help_text="CDT code, e.g. D8080")
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    unit_price = _money()
    discount = _money()
    insurance_amount = _money()
    patient_amount = _money(null=True, blank=True, default=None, help_text="Overrides the computed amount")
    line_total = _money()

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(condition=Q(unit_price__gte=0), name="invoice_item_price_non_negative"),
            models.CheckConstraint(condition=Q(discount__gte=0), name="invoice_item_discount_non_negative"),
        ]

    def __str__(self):
        return f"{self.description} x{self.quantity}"


# =============================================================================
# Payments
# =============================================================================


class Payment(ClinicScopedModel):
    """Money received against an account, optionally applied to one invoice.

    ``applied_amount`` went to the invoice; ``credit_amount`` is the
    overpayment moved to the account's credit balance.
    """

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="payments")
    account = models.ForeignKey(PatientAccount, on_delete=models.PROTECT, related_name="payments")
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments",
    )
    payment_number = models.CharField(max_length=30, help_text="PAY-YYYY-NNNNN")
    amount = _money()
    applied_amount = _money()
    credit_amount = _money()
    payment_type = models.CharField(max_length=20, choices=PaymentType.choices, default=PaymentType.PATIENT)
    method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.COMPLETED)
    reference = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    paid_at = models.DateTimeField()

    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-paid_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["clinic", "payment_number"],
                name="unique_payment_number_per_clinic",
            ),
            models.CheckConstraint(condition=Q(amount__gt=0), name="payment_amount_positive"),
        ]

    def __str__(self):
        return f"{self.payment_number} {self.amount}"


class PaymentPlan(ClinicScopedModel):
    """Installment plan for a treatment fee."""

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="payment_plans")
    account = models.ForeignKey(PatientAccount, on_delete=models.PROTECT, related_name="payment_plans")
    treatment_plan = models.ForeignKey(
        TreatmentPlan,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payment_plans",
    )
    plan_number = models.CharField(max_length=30, help_text="PLN-YYYY-NNNNN")
    total_amount = _money()
    down_payment = _money()
    financed_amount = _money()
    monthly_payment = _money()
    number_of_payments = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(120)])
    payments_completed = models.PositiveSmallIntegerField(default=0)
    remaining_balance = _money()
    start_date = models.DateField()
    next_payment_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=PaymentPlanStatus.choices, default=PaymentPlanStatus.PENDING)
    status_reason = models.TextField(blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["clinic", "plan_number"],
                name="unique_payment_plan_number_per_clinic",
            ),
            models.CheckConstraint(
                condition=Q(down_payment__lte=models.F("total_amount")),
                name="payment_plan_down_payment_within_total",
            ),
            models.CheckConstraint(
                condition=Q(remaining_balance__gte=0),
                name="payment_plan_remaining_non_negative",
            ),
        ]

    def __str__(self):
        return self.plan_number


class PaymentLink(ClinicScopedModel):
    """Shareable code a patient can use to pay an invoice online."""

    clinic = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="payment_links")
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="payment_links")
    code = models.CharField(max_length=12, unique=True)
    amount = _money()
    expires_at = models.DateTimeField()
    status = models.CharField(max_length=20, choices=PaymentLinkStatus.choices, default=PaymentLinkStatus.ACTIVE)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.code
