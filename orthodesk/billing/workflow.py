"""Invoice and payment plan lifecycles.

Invoice::

    DRAFT -> PENDING -> SENT -> PARTIAL -> PAID
               |         |        ^
               +---------+--> OVERDUE

VOID is reachable from any unpaid status without payments applied;
PAID, CANCELLED and VOID are final.

Payment plan::

    PENDING -> ACTIVE <-> PAUSED
                 |
                 +--> COMPLETED / DEFAULTED / CANCELLED
"""

from orthodesk.core.workflow import StatusGraph

from .models import InvoiceStatus as I
from .models import PaymentPlanStatus as P

INVOICE_LIFECYCLE = StatusGraph(
    name="invoice",
    states=tuple(I.values),
    transitions={
        I.DRAFT: [I.PENDING, I.CANCELLED, I.VOID],
        I.PENDING: [I.SENT, I.PARTIAL, I.PAID, I.OVERDUE, I.CANCELLED, I.VOID],
        I.SENT: [I.PARTIAL, I.PAID, I.OVERDUE, I.VOID],
        I.OVERDUE: [I.PARTIAL, I.PAID, I.VOID],
        I.PARTIAL: [I.PAID, I.VOID],
    },
    initial=I.DRAFT,
    terminal=(I.PAID, I.CANCELLED, I.VOID),
)

# Invoices whose balance counts toward the account
OPEN_INVOICE_STATUSES = frozenset({I.PENDING, I.SENT, I.PARTIAL, I.OVERDUE})

PAYMENT_PLAN_LIFECYCLE = StatusGraph(
    name="payment_plan",
    states=tuple(P.values),
    transitions={
        P.PENDING: [P.ACTIVE, P.CANCELLED],
        P.ACTIVE: [P.PAUSED, P.COMPLETED, P.DEFAULTED, P.CANCELLED],
        P.PAUSED: [P.ACTIVE, P.DEFAULTED, P.CANCELLED],
    },
    initial=P.PENDING,
    terminal=(P.COMPLETED, P.DEFAULTED, P.CANCELLED),
)
