"""Billing services.

Every balance change goes through this module. Invoice and payment plan
status changes are checked against the graphs in workflow.py, and each
state-changing call is audited.
"""

import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from orthodesk.core.exceptions import ValidationFailed
from orthodesk.core.money import ZERO, round_money, to_decimal
from orthodesk.core.sequence import next_number

from .audit import Actions, log_billing_event
from .calculations import (
    AGING_BUCKETS,
    add_months,
    aging_bucket_label,
    calculate_days_overdue,
    calculate_invoice_totals,
    calculate_payment_plan_amounts,
    generate_payment_link_code,
    get_aging_bucket,
    line_patient_amount,
)
from .exceptions import (
    AccountExistsError,
    AccountStateError,
    InvoiceStateError,
    PaymentPlanStateError,
    PaymentsAppliedError,
)
from .models import (
    AccountStatus,
    AccountType,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    PatientAccount,
    Payment,
    PaymentLink,
    PaymentLinkStatus,
    PaymentPlan,
    PaymentPlanStatus,
    PaymentStatus,
    PaymentType,
)
from .workflow import INVOICE_LIFECYCLE, OPEN_INVOICE_STATUSES, PAYMENT_PLAN_LIFECYCLE

logger = logging.getLogger(__name__)

# Accounts that no longer take charges or payments
CLOSED_ACCOUNT_STATUSES = (AccountStatus.CLOSED, AccountStatus.SETTLED)
PAYMENT_LINK_ATTEMPTS = 5


def _user(actor):
    return actor if getattr(actor, "is_authenticated", False) else None


def _require_open_account(account: PatientAccount):
    if account.status in CLOSED_ACCOUNT_STATUSES:
        raise AccountStateError(f"Account {account.account_number} is {account.status}")


def _invalid(field: str, message: str) -> ValidationFailed:
    return ValidationFailed("Invalid input", details={field: [message]})


# =============================================================================
# Accounts
# =============================================================================


@transaction.atomic
def open_account(clinic, patient, *, actor, account_type: str = AccountType.INDIVIDUAL) -> PatientAccount:
    """Open a financial account for a patient.

    Raises:
        AccountExistsError: If the patient already has an account that is not closed
    """
    existing = (
        PatientAccount.objects.for_clinic(clinic)
        .filter(patient=patient)
        .exclude(status__in=CLOSED_ACCOUNT_STATUSES)
        .first()
    )
    if existing is not None:
        raise AccountExistsError(
            f"Patient already has account {existing.account_number}",
            details={"account_id": str(existing.pk)},
        )

    account = PatientAccount.objects.create(
        clinic=clinic,
        patient=patient,
        account_number=next_number(clinic, "ACC", pad_width=5),
        account_type=account_type or AccountType.INDIVIDUAL,
    )
    log_billing_event(Actions.ACCOUNT_OPENED, account, actor=actor)
    logger.info("Opened account %s for patient %s", account.account_number, patient.pk)
    return account


def mark_overdue_invoices(account: PatientAccount, today=None) -> list[str]:
    """Move past-due PENDING/SENT invoices with a balance to OVERDUE."""
    today = today or timezone.localdate()
    overdue = list(
        account.invoices.filter(
            status__in=(InvoiceStatus.PENDING, InvoiceStatus.SENT),
            due_date__lt=today,
            balance__gt=0,
        )
    )
    numbers = [invoice.invoice_number for invoice in overdue]
    if numbers:
        Invoice.objects.filter(pk__in=[i.pk for i in overdue]).update(
            status=InvoiceStatus.OVERDUE,
            updated_at=timezone.now(),
        )
        log_billing_event(Actions.INVOICES_OVERDUE, account, data={"invoices": numbers})
        logger.info("Marked %d invoice(s) overdue on account %s", len(numbers), account.account_number)
    return numbers


@transaction.atomic
def refresh_account_balance(account: PatientAccount, today=None) -> PatientAccount:
    """Recompute balances and aging from the account's open invoices.

    Each open balance is bucketed by days past due: up to 30 days counts
    as current, then 31-60, 61-90, 91-120 and over 120.
    """
    today = today or timezone.localdate()
    account = PatientAccount.objects.select_for_update().get(pk=account.pk)
    mark_overdue_invoices(account, today)

    totals = {
        "current_balance": ZERO,
        "insurance_balance": ZERO,
        "aging_current": ZERO,
        "aging_30": ZERO,
        "aging_60": ZERO,
        "aging_90": ZERO,
        "aging_120": ZERO,
    }
    for invoice in account.invoices.filter(status__in=OPEN_INVOICE_STATUSES):
        totals["current_balance"] += invoice.balance
        totals["insurance_balance"] += invoice.insurance_amount
        if invoice.balance <= 0:
            continue
        days = calculate_days_overdue(invoice.due_date, today)
        if days <= 30:
            field = "aging_current"
        elif days <= 60:
            field = "aging_30"
        elif days <= 90:
            field = "aging_60"
        elif days <= 120:
            field = "aging_90"
        else:
            field = "aging_120"
        totals[field] += invoice.balance

    for field, value in totals.items():
        setattr(account, field, round_money(value))
    account.patient_balance = round_money(max(ZERO, account.current_balance - account.credit_balance))
    account.balance_updated_at = timezone.now()
    account.save()
    return account


# =============================================================================
# Invoices
# =============================================================================


@transaction.atomic
def create_invoice(
    account: PatientAccount,
    *,
    actor,
    items: list[dict],
    due_date,
    invoice_date=None,
    notes: str = "",
) -> Invoice:
    """Create a PENDING invoice with totals calculated from its items.

    Raises:
        AccountStateError: If the account is closed
        ValidationFailed: If there are no items, a line total is negative or the due date precedes the invoice date
    """
    _require_open_account(account)
    if not items:
        raise _invalid("items", "An invoice needs at least one item.")
    invoice_date = invoice_date or timezone.localdate()
    if due_date < invoice_date:
        raise _invalid("due_date", "Due date cannot be before invoice date.")

    if any(line_patient_amount(item) < 0 for item in items):
        raise _invalid("items", "Discount and insurance cannot exceed the line subtotal.")
    totals = calculate_invoice_totals(items)
    if totals["patient_amount"] < 0:
        raise _invalid("items", "Invoice total cannot be negative.")
    invoice = Invoice.objects.create(
        clinic=account.clinic,
        account=account,
        patient=account.patient,
        invoice_number=next_number(account.clinic, "INV", pad_width=5),
        invoice_date=invoice_date,
        due_date=due_date,
        subtotal=totals["subtotal"],
        adjustments=totals["adjustments"],
        insurance_amount=totals["insurance"],
        patient_amount=totals["patient_amount"],
        balance=totals["balance"],
        status=InvoiceStatus.PENDING,
        notes=notes or "",
        created_by=_user(actor),
    )
    InvoiceItem.objects.bulk_create([
        InvoiceItem(
            invoice=invoice,
            description=item["description"],
            procedure_code=item.get("procedure_code") or "",
            quantity=item.get("quantity") or 1,
            unit_price=round_money(item.get("unit_price")),
            discount=round_money(item.get("discount")),
            insurance_amount=round_money(item.get("insurance_amount")),
            patient_amount=(
                round_money(item["patient_amount"]) if item.get("patient_amount") is not None else None
            ),
            line_total=round_money(line_patient_amount(item)),
        )
        for item in items
    ])

    log_billing_event(
        Actions.INVOICE_CREATED,
        invoice,
        actor=actor,
        data={"total": str(invoice.patient_amount), "items": len(items)},
    )
    logger.info("Created invoice %s for %s", invoice.invoice_number, invoice.patient_amount)
    refresh_account_balance(account)
    invoice.refresh_from_db()
    return invoice


@transaction.atomic
def void_invoice(invoice: Invoice, *, actor, reason: str) -> Invoice:
    """Void an invoice that has no payments applied.

    Raises:
        ValidationFailed: If reason is empty
        PaymentsAppliedError: If any amount has been paid
        InvalidTransition: If the invoice is already final
    """
    if not reason:
        raise _invalid("reason", "A reason is required.")

    invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
    if invoice.paid_amount > 0 or invoice.payments.filter(status=PaymentStatus.COMPLETED).exists():
        raise PaymentsAppliedError(f"Invoice {invoice.invoice_number} has payments applied")
    INVOICE_LIFECYCLE.check(invoice.status, InvoiceStatus.VOID)

    old_status = invoice.status
    invoice.status = InvoiceStatus.VOID
    invoice.void_reason = reason
    invoice.save(update_fields=["status", "void_reason", "updated_at"])
    invoice.payment_links.filter(status=PaymentLinkStatus.ACTIVE).update(status=PaymentLinkStatus.CANCELLED)

    log_billing_event(
        Actions.INVOICE_VOIDED,
        invoice,
        actor=actor,
        changes={"status": {"old": old_status, "new": InvoiceStatus.VOID}},
        data={"reason": reason},
    )
    refresh_account_balance(invoice.account)
    return invoice


# =============================================================================
# Payments
# =============================================================================


def _apply_to_invoice(invoice: Invoice, amount):
    """Apply up to the invoice balance. Returns (applied, overpayment)."""
    if invoice.status not in OPEN_INVOICE_STATUSES:
        raise InvoiceStateError(f"Invoice {invoice.invoice_number} is {invoice.status}")

    applied = max(ZERO, min(amount, invoice.balance))
    invoice.paid_amount = round_money(invoice.paid_amount + applied)
    invoice.balance = round_money(invoice.balance - applied)
    new_status = InvoiceStatus.PAID if invoice.balance <= 0 else InvoiceStatus.PARTIAL
    if new_status != invoice.status:
        INVOICE_LIFECYCLE.check(invoice.status, new_status)
        invoice.status = new_status
    invoice.save(update_fields=["paid_amount", "balance", "status", "updated_at"])

    if invoice.status == InvoiceStatus.PAID:
        invoice.payment_links.filter(status=PaymentLinkStatus.ACTIVE).update(status=PaymentLinkStatus.PAID)
    return applied, round_money(amount - applied)


@transaction.atomic
def record_payment(
    account: PatientAccount,
    *,
    actor,
    amount,
    method: str,
    invoice: Invoice | None = None,
    payment_type: str = PaymentType.PATIENT,
    reference: str = "",
    notes: str = "",
) -> Payment:
    """Record a completed payment.

    Applied to ``invoice`` when given; anything beyond the invoice
    balance (or the whole amount without an invoice) becomes account credit.

    Raises:
        ValidationFailed: If amount is not positive or the invoice belongs to another account
        AccountStateError: If the account is closed
        InvoiceStateError: If the invoice is not open
    """
    amount = round_money(to_decimal(amount))
    if amount <= 0:
        raise _invalid("amount", "Amount must be greater than zero.")

    account = PatientAccount.objects.select_for_update().get(pk=account.pk)
    _require_open_account(account)

    applied, credit = ZERO, amount
    if invoice is not None:
        invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
        if invoice.account_id != account.pk:
            raise _invalid("invoice", "Invoice does not belong to this account.")
        applied, credit = _apply_to_invoice(invoice, amount)

    payment = Payment.objects.create(
        clinic=account.clinic,
        account=account,
        invoice=invoice,
        payment_number=next_number(account.clinic, "PAY", pad_width=5),
        amount=amount,
        applied_amount=applied,
        credit_amount=credit,
        payment_type=payment_type or PaymentType.PATIENT,
        method=method,
        status=PaymentStatus.COMPLETED,
        reference=reference or "",
        notes=notes or "",
        paid_at=timezone.now(),
        received_by=_user(actor),
    )

    if credit > 0:
        account.credit_balance = round_money(account.credit_balance + credit)
        account.save(update_fields=["credit_balance", "updated_at"])

    log_billing_event(
        Actions.PAYMENT_RECORDED,
        payment,
        actor=actor,
        data={
            "amount": str(amount),
            "applied": str(applied),
            "credit": str(credit),
            "invoice": invoice.invoice_number if invoice else None,
        },
    )
    logger.info("Recorded payment %s of %s on %s", payment.payment_number, amount, account.account_number)
    refresh_account_balance(account)
    return payment


# =============================================================================
# Payment plans
# =============================================================================


@transaction.atomic
def create_payment_plan(
    account: PatientAccount,
    *,
    actor,
    total,
    down_payment=0,
    number_of_payments: int,
    treatment_plan=None,
    start_date=None,
) -> PaymentPlan:
    """Create a PENDING installment plan.

    Raises:
        AccountStateError: If the account is closed
        ValidationFailed: On a bad down payment or installment count, or a
            treatment plan for another patient
    """
    _require_open_account(account)
    if treatment_plan is not None and treatment_plan.patient_id != account.patient_id:
        raise _invalid("treatment_plan", "Treatment plan belongs to another patient.")
    try:
        amounts = calculate_payment_plan_amounts(total, down_payment or 0, number_of_payments)
    except ValueError as e:
        raise ValidationFailed("Invalid input", details={"payment_plan": [str(e)]})

    start_date = start_date or timezone.localdate()
    plan = PaymentPlan.objects.create(
        clinic=account.clinic,
        account=account,
        treatment_plan=treatment_plan,
        plan_number=next_number(account.clinic, "PLN", pad_width=5),
        total_amount=round_money(total),
        down_payment=round_money(down_payment or 0),
        financed_amount=amounts["financed_amount"],
        monthly_payment=amounts["monthly_payment"],
        number_of_payments=number_of_payments,
        remaining_balance=amounts["remaining_balance"],
        start_date=start_date,
        next_payment_date=start_date,
        created_by=_user(actor),
    )
    log_billing_event(
        Actions.PAYMENT_PLAN_CREATED,
        plan,
        actor=actor,
        data={"financed": str(plan.financed_amount), "monthly": str(plan.monthly_payment)},
    )
    return plan


@transaction.atomic
def transition_payment_plan(plan: PaymentPlan, to_status: str, *, actor, reason: str = "") -> PaymentPlan:
    """Move a plan along PAYMENT_PLAN_LIFECYCLE.

    Raises:
        InvalidTransition: If the move is not allowed
    """
    plan = PaymentPlan.objects.select_for_update().get(pk=plan.pk)
    from_status = plan.status
    PAYMENT_PLAN_LIFECYCLE.check(from_status, to_status)
    plan.status = to_status
    plan.status_reason = reason or ""
    if to_status == PaymentPlanStatus.COMPLETED:
        plan.next_payment_date = None
    plan.save(update_fields=["status", "status_reason", "next_payment_date", "updated_at"])
    log_billing_event(
        Actions.PAYMENT_PLAN_STATUS_CHANGED,
        plan,
        actor=actor,
        changes={"status": {"old": from_status, "new": to_status}},
        data={"reason": reason} if reason else None,
    )
    logger.info("Payment plan %s %s -> %s", plan.plan_number, from_status, to_status)
    return plan


@transaction.atomic
def record_plan_payment(plan: PaymentPlan, *, actor, amount) -> PaymentPlan:
    """Record an installment. A PENDING plan becomes ACTIVE; zero remaining completes it.

    Raises:
        ValidationFailed: If amount is not positive or exceeds the remaining balance
        PaymentPlanStateError: If the plan is not PENDING or ACTIVE
    """
    amount = round_money(to_decimal(amount))
    if amount <= 0:
        raise _invalid("amount", "Amount must be greater than zero.")

    plan = PaymentPlan.objects.select_for_update().get(pk=plan.pk)
    if plan.status not in (PaymentPlanStatus.PENDING, PaymentPlanStatus.ACTIVE):
        raise PaymentPlanStateError(f"Payment plan {plan.plan_number} is {plan.status}")
    if amount > plan.remaining_balance:
        raise _invalid("amount", f"Amount exceeds the remaining balance of {plan.remaining_balance}.")

    if plan.status == PaymentPlanStatus.PENDING:
        plan = transition_payment_plan(plan, PaymentPlanStatus.ACTIVE, actor=actor)

    plan.payments_completed += 1
    plan.remaining_balance = round_money(plan.remaining_balance - amount)
    plan.next_payment_date = add_months(plan.next_payment_date or plan.start_date, 1)
    plan.save(update_fields=["payments_completed", "remaining_balance", "next_payment_date", "updated_at"])

    log_billing_event(
        Actions.PAYMENT_PLAN_PAYMENT,
        plan,
        actor=actor,
        data={"amount": str(amount), "remaining": str(plan.remaining_balance)},
    )
    if plan.remaining_balance == 0:
        plan = transition_payment_plan(plan, PaymentPlanStatus.COMPLETED, actor=actor)
    return plan


# =============================================================================
# Payment links
# =============================================================================


@transaction.atomic
def create_payment_link(invoice: Invoice, *, actor, expires_in_days: int = 7) -> PaymentLink:
    """Issue a payment link for the invoice's outstanding balance.

    Raises:
        InvoiceStateError: If the invoice is not open or has nothing to pay
    """
    if invoice.status not in OPEN_INVOICE_STATUSES or invoice.balance <= 0:
        raise InvoiceStateError(f"Invoice {invoice.invoice_number} has no open balance")

    code = generate_payment_link_code()
    for _ in range(PAYMENT_LINK_ATTEMPTS - 1):
        if not PaymentLink.all_objects.filter(code=code).exists():
            break
        code = generate_payment_link_code()

    link = PaymentLink.objects.create(
        clinic=invoice.clinic,
        invoice=invoice,
        code=code,
        amount=invoice.balance,
        expires_at=timezone.now() + timedelta(days=expires_in_days),
        created_by=_user(actor),
    )
    log_billing_event(Actions.PAYMENT_LINK_CREATED, link, actor=actor, data={"invoice": invoice.invoice_number})
    return link


# =============================================================================
# Reports
# =============================================================================


def aging_report(clinic, today=None) -> dict:
    """Open invoice balances bucketed by days past due, across all accounts."""
    today = today or timezone.localdate()
    buckets = {bucket: {"label": aging_bucket_label(bucket), "amount": ZERO, "count": 0} for bucket in AGING_BUCKETS}

    invoices = Invoice.objects.for_clinic(clinic).filter(status__in=OPEN_INVOICE_STATUSES, balance__gt=0)
    total = ZERO
    accounts = set()
    for invoice in invoices.only("balance", "due_date", "account_id"):
        bucket = buckets[get_aging_bucket(calculate_days_overdue(invoice.due_date, today))]
        bucket["amount"] += invoice.balance
        bucket["count"] += 1
        total += invoice.balance
        accounts.add(invoice.account_id)

    for bucket in buckets.values():
        bucket["amount"] = round_money(bucket["amount"])
    return {
        "as_of": today,
        "buckets": buckets,
        "total": round_money(total),
        "accounts": len(accounts),
    }
