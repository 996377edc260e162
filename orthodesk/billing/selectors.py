"""Read-side queries and serializers for billing."""

from django.db.models import Q
from django.utils import timezone

from orthodesk.core.api import paginate
from orthodesk.core.forms import clean_form
from orthodesk.patients.phi import serialize_patient

from .calculations import calculate_days_overdue
from .forms import AccountQueryForm, InvoiceQueryForm
from .models import Invoice, PatientAccount
from .workflow import OPEN_INVOICE_STATUSES


def _query(form_class, params) -> dict:
    raw = {k: params.get(k) for k in form_class.base_fields if params.get(k) not in (None, "")}
    return clean_form(form_class, raw)


def list_accounts(clinic, params) -> dict:
    """Accounts by number, filtered by status or a number/patient name search."""
    q = _query(AccountQueryForm, params)
    qs = PatientAccount.objects.for_clinic(clinic).select_related("patient")
    if q.get("status"):
        qs = qs.filter(status=q["status"])
    if q.get("search"):
        term = q["search"]
        qs = qs.filter(
            Q(account_number__icontains=term)
            | Q(patient__last_name__icontains=term)
            | Q(patient__first_name__icontains=term)
        )
    return paginate(qs.order_by("account_number"), q.get("page") or 1, q.get("page_size"))


def list_invoices(clinic, params) -> dict:
    """Invoices newest first. ``overdue=true`` keeps open invoices past due."""
    q = _query(InvoiceQueryForm, params)
    qs = Invoice.objects.for_clinic(clinic).select_related("account", "patient")
    if q.get("status"):
        qs = qs.filter(status=q["status"])
    if q.get("account"):
        qs = qs.filter(account_id=q["account"])
    if q.get("patient"):
        qs = qs.filter(patient_id=q["patient"])
    if q.get("overdue"):
        qs = qs.filter(
            status__in=OPEN_INVOICE_STATUSES,
            due_date__lt=timezone.localdate(),
            balance__gt=0,
        )
    return paginate(qs.order_by("-invoice_date", "-invoice_number"), q.get("page") or 1, q.get("page_size"))


# =============================================================================
# Serializers
# =============================================================================


def _money(value) -> str:
    return str(value)


def serialize_account(account: PatientAccount, fog: bool = False, detail: bool = False) -> dict:
    data = {
        "id": str(account.pk),
        "account_number": account.account_number,
        "patient": serialize_patient(account.patient, fog),
        "account_type": account.account_type,
        "status": account.status,
        "current_balance": _money(account.current_balance),
        "insurance_balance": _money(account.insurance_balance),
        "patient_balance": _money(account.patient_balance),
        "credit_balance": _money(account.credit_balance),
        "aging": {
            "current": _money(account.aging_current),
            "30": _money(account.aging_30),
            "60": _money(account.aging_60),
            "90": _money(account.aging_90),
            "120": _money(account.aging_120),
        },
        "balance_updated_at": account.balance_updated_at.isoformat() if account.balance_updated_at else None,
    }
    if detail:
        data["open_invoices"] = [
            serialize_invoice(i) for i in account.invoices.filter(status__in=OPEN_INVOICE_STATUSES)
        ]
        data["payment_plans"] = [serialize_payment_plan(p) for p in account.payment_plans.all()]
        data["recent_payments"] = [serialize_payment(p) for p in account.payments.all()[:10]]
    return data


def serialize_item(item) -> dict:
    return {
        "id": str(item.pk),
        "description": item.description,
        "procedure_code": item.procedure_code,
        "quantity": item.quantity,
        "unit_price": _money(item.unit_price),
        "discount": _money(item.discount),
        "insurance_amount": _money(item.insurance_amount),
        "patient_amount": _money(item.patient_amount) if item.patient_amount is not None else None,
        "line_total": _money(item.line_total),
    }


def serialize_invoice(invoice: Invoice, detail: bool = False, fog: bool = False) -> dict:
    data = {
        "id": str(invoice.pk),
        "invoice_number": invoice.invoice_number,
        "account_id": str(invoice.account_id),
        "patient_id": str(invoice.patient_id),
        "invoice_date": invoice.invoice_date.isoformat(),
        "due_date": invoice.due_date.isoformat(),
        "subtotal": _money(invoice.subtotal),
        "adjustments": _money(invoice.adjustments),
        "insurance_amount": _money(invoice.insurance_amount),
        "patient_amount": _money(invoice.patient_amount),
        "paid_amount": _money(invoice.paid_amount),
        "balance": _money(invoice.balance),
        "status": invoice.status,
        "days_overdue": (
            calculate_days_overdue(invoice.due_date, timezone.localdate())
            if invoice.status in OPEN_INVOICE_STATUSES else 0
        ),
    }
    if detail:
        data.update({
            "patient": serialize_patient(invoice.patient, fog),
            "notes": invoice.notes,
            "void_reason": invoice.void_reason,
            "items": [serialize_item(i) for i in invoice.items.all()],
            "payments": [serialize_payment(p) for p in invoice.payments.all()],
            "payment_links": [serialize_payment_link(link) for link in invoice.payment_links.all()],
        })
    return data


def serialize_payment(payment) -> dict:
    return {
        "id": str(payment.pk),
        "payment_number": payment.payment_number,
        "account_id": str(payment.account_id),
        "invoice_id": str(payment.invoice_id) if payment.invoice_id else None,
        "amount": _money(payment.amount),
        "applied_amount": _money(payment.applied_amount),
        "credit_amount": _money(payment.credit_amount),
        "payment_type": payment.payment_type,
        "method": payment.method,
        "status": payment.status,
        "reference": payment.reference,
        "paid_at": payment.paid_at.isoformat(),
    }


def serialize_payment_plan(plan) -> dict:
    return {
        "id": str(plan.pk),
        "plan_number": plan.plan_number,
        "account_id": str(plan.account_id),
        "treatment_plan_id": str(plan.treatment_plan_id) if plan.treatment_plan_id else None,
        "total_amount": _money(plan.total_amount),
        "down_payment": _money(plan.down_payment),
        "financed_amount": _money(plan.financed_amount),
        "monthly_payment": _money(plan.monthly_payment),
        "number_of_payments": plan.number_of_payments,
        "payments_completed": plan.payments_completed,
        "remaining_balance": _money(plan.remaining_balance),
        "start_date": plan.start_date.isoformat(),
        "next_payment_date": plan.next_payment_date.isoformat() if plan.next_payment_date else None,
        "status": plan.status,
        "status_reason": plan.status_reason,
    }


def serialize_payment_link(link) -> dict:
    return {
        "id": str(link.pk),
        "code": link.code,
        "invoice_id": str(link.invoice_id),
        "amount": _money(link.amount),
        "expires_at": link.expires_at.isoformat(),
        "status": link.status,
    }


def serialize_aging_report(report: dict) -> dict:
    return {
        "as_of": report["as_of"].isoformat(),
        "total": _money(report["total"]),
        "accounts": report["accounts"],
        "buckets": {
            key: {"label": b["label"], "amount": _money(b["amount"]), "count": b["count"]}
            for key, b in report["buckets"].items()
        },
    }
