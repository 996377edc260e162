"""Sterilization reports.

Every report covers a period that defaults to the last
REPORT_PERIOD_DAYS days ending today.
"""

from datetime import timedelta

from django.db.models import Count
from django.db.models.functions import TruncDate
from django.utils import timezone

from orthodesk.core.conf import get_setting

from .models import (
    BiologicalIndicator,
    ComplianceLog,
    CycleStatus,
    InstrumentPackage,
    PackageStatus,
    PackageUsage,
    SterilizationCycle,
)
from .qr import days_until_expiration
from .selectors import serialize_cycle, serialize_usage

RECENT_LIMIT = 5


def resolve_period(start=None, end=None, today=None) -> tuple:
    today = today or timezone.localdate()
    end = end or today
    start = start or end - timedelta(days=get_setting("REPORT_PERIOD_DAYS"))
    return start, end


def _period(start, end):
    return {"start": start, "end": end}


def _cycles(clinic, start, end):
    return SterilizationCycle.objects.for_clinic(clinic).filter(
        start_time__date__gte=start,
        start_time__date__lte=end,
    )


def _packages(clinic, start, end):
    return InstrumentPackage.objects.for_clinic(clinic).filter(
        sterilized_date__gte=start,
        sterilized_date__lte=end,
    )


def _usages(clinic, start, end):
    return PackageUsage.objects.for_clinic(clinic).filter(
        used_at__date__gte=start,
        used_at__date__lte=end,
    )


def _counts(qs, field) -> dict:
    return {row[field]: row["count"] for row in qs.values(field).annotate(count=Count("pk")).order_by(field)}


def _rate(part: int, total: int):
    return round(part / total * 100, 1) if total else 0.0


def summary_report(clinic, start=None, end=None, today=None) -> dict:
    today = today or timezone.localdate()
    start, end = resolve_period(start, end, today)
    cycles = _cycles(clinic, start, end)
    packages = _packages(clinic, start, end)
    usages = _usages(clinic, start, end)

    total_cycles = cycles.count()
    completed = cycles.filter(status=CycleStatus.COMPLETED).count()
    failed = cycles.filter(status=CycleStatus.FAILED).count()
    soon = today + timedelta(days=get_setting("EXPIRING_SOON_DAYS"))

    return {
        "period": _period(start, end),
        "cycles": {
            "total": total_cycles,
            "completed": completed,
            "failed": failed,
            "success_rate": _rate(completed, total_cycles),
        },
        "packages": {
            "total": packages.count(),
            "sterile": packages.filter(status=PackageStatus.STERILE, expiration_date__gt=today).count(),
            "used": packages.filter(status=PackageStatus.USED).count(),
            "expired": (
                packages.filter(status=PackageStatus.EXPIRED).count()
                + packages.filter(status=PackageStatus.STERILE, expiration_date__lte=today).count()
            ),
            "expiring_within_7_days": packages.filter(
                status=PackageStatus.STERILE,
                expiration_date__gt=today,
                expiration_date__lte=soon,
            ).count(),
        },
        "usage": {"total": usages.count()},
        "recent_cycles": [
            serialize_cycle(c) for c in cycles.select_related("sterilizer", "operator").order_by("-start_time")[:RECENT_LIMIT]
        ],
        "recent_usage": [
            serialize_usage(u) for u in usages.select_related("patient", "used_by").order_by("-used_at")[:RECENT_LIMIT]
        ],
    }


def cycles_report(clinic, start=None, end=None, today=None) -> dict:
    start, end = resolve_period(start, end, today)
    cycles = _cycles(clinic, start, end)
    with_bi = cycles.filter(biological_pass__isnull=False)
    bi_total = with_bi.count()

    return {
        "period": _period(start, end),
        "total": cycles.count(),
        "by_status": _counts(cycles, "status"),
        "by_type": _counts(cycles, "cycle_type"),
        "biological_pass_rate": _rate(with_bi.filter(biological_pass=True).count(), bi_total),
        "biological_tested": bi_total,
    }


def packages_report(clinic, start=None, end=None, today=None) -> dict:
    """Package counts. A STERILE package past its expiration date counts as EXPIRED."""
    today = today or timezone.localdate()
    start, end = resolve_period(start, end, today)
    packages = _packages(clinic, start, end)

    by_status = {}
    for package in packages.only("status", "expiration_date"):
        status = package.status
        if status == PackageStatus.STERILE and package.expiration_date <= today:
            status = PackageStatus.EXPIRED
        by_status[status] = by_status.get(status, 0) + 1

    soon = today + timedelta(days=get_setting("EXPIRING_SOON_DAYS"))
    expiring = (
        InstrumentPackage.objects.for_clinic(clinic)
        .filter(status=PackageStatus.STERILE, expiration_date__gt=today, expiration_date__lte=soon)
        .select_related("cycle")
        .order_by("expiration_date", "package_number")
    )

    return {
        "period": _period(start, end),
        "total": packages.count(),
        "by_status": dict(sorted(by_status.items())),
        "by_type": _counts(packages, "package_type"),
        "expiring_soon": [
            {
                "id": str(p.pk),
                "package_number": p.package_number,
                "cycle_number": p.cycle.cycle_number,
                "expiration_date": p.expiration_date,
                "days_until_expiration": days_until_expiration(p.expiration_date),
            }
            for p in expiring
        ],
    }


def usage_report(clinic, start=None, end=None, today=None) -> dict:
    start, end = resolve_period(start, end, today)
    usages = _usages(clinic, start, end)

    by_date = {
        row["day"].isoformat(): row["count"]
        for row in usages.annotate(day=TruncDate("used_at")).values("day").annotate(count=Count("pk")).order_by("day")
    }
    by_procedure = {
        (key or "Unspecified"): count
        for key, count in _counts(usages, "procedure_type").items()
    }

    return {
        "period": _period(start, end),
        "total": usages.count(),
        "by_date": by_date,
        "by_procedure_type": by_procedure,
    }


REPORTS = {
    "summary": summary_report,
    "cycles": cycles_report,
    "packages": packages_report,
    "usage": usage_report,
}


def compliance_context(clinic, start=None, end=None) -> dict:
    """Everything the compliance PDF prints for a period."""
    start, end = resolve_period(start, end)
    cycles = _cycles(clinic, start, end).select_related("sterilizer", "operator").order_by("start_time")
    indicators = (
        BiologicalIndicator.objects.for_clinic(clinic)
        .filter(placed_at__date__gte=start, placed_at__date__lte=end)
        .select_related("cycle")
        .order_by("placed_at")
    )
    logs = (
        ComplianceLog.objects.for_clinic(clinic)
        .filter(created_at__date__gte=start, created_at__date__lte=end)
        .select_related("cycle")
        .order_by("created_at")
    )
    return {
        "period": _period(start, end),
        "cycles": list(cycles),
        "biological_indicators": list(indicators),
        "recalls": [entry for entry in logs if entry.log_type == ComplianceLog.LogType.PACKAGE_RECALL],
        "compliance_logs": list(logs),
        "summary": cycles_report(clinic, start, end),
    }
