"""REST API views for patient billing."""

from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from orthodesk.core.api import api_success, api_view, get_for_clinic, parse_json_body
from orthodesk.core.forms import clean_form
from orthodesk.core.permissions import require_clinic_permission
from orthodesk.patients.models import Patient
from orthodesk.patients.phi import fog_enabled
from orthodesk.treatment.models import TreatmentPlan

from . import selectors, services
from .forms import (
    AccountForm,
    AgingQueryForm,
    InvoiceForm,
    PaymentForm,
    PaymentLinkForm,
    PaymentPlanForm,
    PlanPaymentForm,
    PlanTransitionForm,
    VoidForm,
)
from .models import Invoice, PatientAccount, PaymentPlan


def _get_account(request, account_id) -> PatientAccount:
    return get_for_clinic(PatientAccount, request.clinic, account_id, "ACCOUNT")


def _get_invoice(request, invoice_id) -> Invoice:
    return get_for_clinic(Invoice, request.clinic, invoice_id, "INVOICE")


def _get_plan(request, plan_id) -> PaymentPlan:
    return get_for_clinic(PaymentPlan, request.clinic, plan_id, "PAYMENT_PLAN")


# =============================================================================
# Accounts
# =============================================================================


@csrf_exempt
@api_view
@require_http_methods(["GET", "POST"])
def api_accounts(request):
    """API: List accounts or open one for a patient."""
    if request.method == "POST":
        return _open_account(request)
    return _list_accounts(request)


@require_clinic_permission("billing:view")
def _list_accounts(request):
    result = selectors.list_accounts(request.clinic, request.GET)
    fog = fog_enabled(request)
    result["items"] = [selectors.serialize_account(a, fog) for a in result["items"]]
    return api_success(result)


@require_clinic_permission("billing:create")
def _open_account(request):
    cleaned = clean_form(AccountForm, parse_json_body(request))
    patient = get_for_clinic(Patient, request.clinic, cleaned["patient"], "PATIENT")
    account = services.open_account(
        request.clinic,
        patient,
        actor=request.user,
        account_type=cleaned.get("account_type") or None,
    )
    return api_success(selectors.serialize_account(account, fog_enabled(request)), status=201)


@api_view
@require_GET
@require_clinic_permission("billing:view")
def api_account_detail(request, account_id):
    """API: Account with open invoices, payment plans and recent payments."""
    account = _get_account(request, account_id)
    return api_success(selectors.serialize_account(account, fog_enabled(request), detail=True))


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("billing:update")
def api_account_refresh(request, account_id):
    """API: Recompute balances and aging."""
    account = services.refresh_account_balance(_get_account(request, account_id))
    return api_success(selectors.serialize_account(account, fog_enabled(request)))


# =============================================================================
# Invoices
# =============================================================================


@csrf_exempt
@api_view
@require_http_methods(["GET", "POST"])
def api_invoices(request):
    """API: List invoices or create one.

    POST {"account": "<uuid>", "due_date": "2026-11-01",
          "items": [{"description": "...", "procedure_code": "D8080",
                     "quantity": 1, "unit_price": "5500.00",
                     "insurance_amount": "1500.00"}]}
    """
    if request.method == "POST":
        return _create_invoice(request)
    return _list_invoices(request)


@require_clinic_permission("billing:view")
def _list_invoices(request):
    result = selectors.list_invoices(request.clinic, request.GET)
    result["items"] = [selectors.serialize_invoice(i) for i in result["items"]]
    return api_success(result)


@require_clinic_permission("billing:create")
def _create_invoice(request):
    cleaned = clean_form(InvoiceForm, parse_json_body(request))
    account = _get_account(request, cleaned["account"])
    invoice = services.create_invoice(
        account,
        actor=request.user,
        items=cleaned["items"],
        due_date=cleaned["due_date"],
        invoice_date=cleaned.get("invoice_date"),
        notes=cleaned.get("notes") or "",
    )
    return api_success(selectors.serialize_invoice(invoice, detail=True, fog=fog_enabled(request)), status=201)


@api_view
@require_GET
@require_clinic_permission("billing:view")
def api_invoice_detail(request, invoice_id):
    """API: Invoice with items, payments and payment links."""
    invoice = _get_invoice(request, invoice_id)
    return api_success(selectors.serialize_invoice(invoice, detail=True, fog=fog_enabled(request)))


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("billing:delete")
def api_invoice_void(request, invoice_id):
    """API: Void an unpaid invoice. POST {"reason": "..."}"""
    invoice = _get_invoice(request, invoice_id)
    cleaned = clean_form(VoidForm, parse_json_body(request))
    invoice = services.void_invoice(invoice, actor=request.user, reason=cleaned["reason"])
    return api_success(selectors.serialize_invoice(invoice))


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("billing:create")
def api_invoice_payment_link(request, invoice_id):
    """API: Issue a payment link for the invoice balance. POST {"expires_in_days": 7}"""
    invoice = _get_invoice(request, invoice_id)
    cleaned = clean_form(PaymentLinkForm, parse_json_body(request))
    link = services.create_payment_link(
        invoice,
        actor=request.user,
        expires_in_days=cleaned.get("expires_in_days") or 7,
    )
    return api_success(selectors.serialize_payment_link(link), status=201)


# =============================================================================
# Payments
# =============================================================================


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("billing:create")
def api_payments(request):
    """API: Record a payment, optionally applied to an invoice.

    POST {"account": "<uuid>", "invoice": "<uuid>", "amount": "250.00",
          "method": "CREDIT_CARD", "reference": "..."}
    """
    cleaned = clean_form(PaymentForm, parse_json_body(request))
    account = _get_account(request, cleaned["account"])
    invoice = _get_invoice(request, cleaned["invoice"]) if cleaned.get("invoice") else None
    payment = services.record_payment(
        account,
        actor=request.user,
        amount=cleaned["amount"],
        method=cleaned["method"],
        invoice=invoice,
        payment_type=cleaned.get("payment_type") or None,
        reference=cleaned.get("reference") or "",
        notes=cleaned.get("notes") or "",
    )
    return api_success(selectors.serialize_payment(payment), status=201)


# =============================================================================
# Payment plans
# =============================================================================


@csrf_exempt
@api_view
@require_http_methods(["GET", "POST"])
def api_payment_plans(request):
    """API: List payment plans (``?account=``) or create one."""
    if request.method == "POST":
        return _create_payment_plan(request)
    return _list_payment_plans(request)


@require_clinic_permission("billing:view")
def _list_payment_plans(request):
    qs = PaymentPlan.objects.for_clinic(request.clinic)
    if request.GET.get("account"):
        qs = qs.filter(account=_get_account(request, request.GET["account"]))
    if request.GET.get("status"):
        qs = qs.filter(status=request.GET["status"])
    return api_success([selectors.serialize_payment_plan(p) for p in qs])


@require_clinic_permission("billing:create")
def _create_payment_plan(request):
    cleaned = clean_form(PaymentPlanForm, parse_json_body(request))
    account = _get_account(request, cleaned["account"])
    treatment_plan = None
    if cleaned.get("treatment_plan"):
        treatment_plan = get_for_clinic(TreatmentPlan, request.clinic, cleaned["treatment_plan"], "TREATMENT_PLAN")
    plan = services.create_payment_plan(
        account,
        actor=request.user,
        total=cleaned["total_amount"],
        down_payment=cleaned.get("down_payment") or 0,
        number_of_payments=cleaned["number_of_payments"],
        treatment_plan=treatment_plan,
        start_date=cleaned.get("start_date"),
    )
    return api_success(selectors.serialize_payment_plan(plan), status=201)


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("billing:update")
def api_payment_plan_payments(request, plan_id):
    """API: Record an installment. POST {"amount": "250.00"}"""
    plan = _get_plan(request, plan_id)
    cleaned = clean_form(PlanPaymentForm, parse_json_body(request))
    plan = services.record_plan_payment(plan, actor=request.user, amount=cleaned["amount"])
    return api_success(selectors.serialize_payment_plan(plan))


@csrf_exempt
@api_view
@require_POST
@require_clinic_permission("billing:update")
def api_payment_plan_transition(request, plan_id):
    """API: Pause, resume, default or cancel a plan. POST {"status": "PAUSED", "reason": "..."}"""
    plan = _get_plan(request, plan_id)
    cleaned = clean_form(PlanTransitionForm, parse_json_body(request))
    plan = services.transition_payment_plan(
        plan,
        cleaned["status"],
        actor=request.user,
        reason=cleaned.get("reason") or "",
    )
    return api_success(selectors.serialize_payment_plan(plan))


# =============================================================================
# Reports
# =============================================================================


@api_view
@require_GET
@require_clinic_permission("billing:view")
def api_aging_report(request):
    """API: Open balances by aging bucket. ``?as_of=YYYY-MM-DD``"""
    raw = {"as_of": request.GET["as_of"]} if request.GET.get("as_of") else {}
    cleaned = clean_form(AgingQueryForm, raw)
    report = services.aging_report(request.clinic, today=cleaned.get("as_of"))
    return api_success(selectors.serialize_aging_report(report))
