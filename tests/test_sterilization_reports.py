"""Tests for sterilization reports."""

from datetime import date, timedelta

import pytest
from django.utils import timezone

from orthodesk.sterilization import reports, services
from orthodesk.sterilization.models import CycleStatus, InstrumentPackage, PackageStatus


def run_cycle(clinic, user, status=CycleStatus.COMPLETED, **kwargs):
    cycle = services.start_cycle(clinic, actor=user, data={"cycle_type": kwargs.pop("cycle_type", "STEAM_GRAVITY")})
    if status == CycleStatus.FAILED:
        kwargs.setdefault("failure_reason", "Door seal")
    return services.complete_cycle(cycle, actor=user, status=status, **kwargs)


@pytest.fixture
def today():
    return timezone.localdate()


@pytest.fixture
def activity(clinic, admin_user, patient):
    """Two completed cycles, one failed, and packages in several states."""
    good = run_cycle(clinic, admin_user, biological_pass=True, cycle_type="STEAM_PREVACUUM")
    run_cycle(clinic, admin_user)
    run_cycle(clinic, admin_user, status=CycleStatus.FAILED)

    used, expiring, plain = services.create_packages(
        good, actor=admin_user, package_type="POUCH", instrument_names=["Mirror"], count=3
    )
    services.record_usage(used, patient, actor=admin_user, procedure_type="Bonding")
    InstrumentPackage.objects.filter(pk=expiring.pk).update(
        expiration_date=timezone.localdate() + timedelta(days=3)
    )
    return {"good": good, "used": used, "expiring": expiring, "plain": plain}


class TestResolvePeriod:
    def test_defaults_to_last_thirty_days(self):
        assert reports.resolve_period(today=date(2026, 3, 31)) == (date(2026, 3, 1), date(2026, 3, 31))

    def test_start_is_relative_to_end(self):
        start, end = reports.resolve_period(end=date(2026, 2, 28))
        assert (start, end) == (date(2026, 1, 29), date(2026, 2, 28))

    def test_explicit_period(self):
        assert reports.resolve_period(date(2026, 1, 1), date(2026, 1, 31)) == (date(2026, 1, 1), date(2026, 1, 31))


@pytest.mark.django_db
class TestReports:
    def test_summary(self, clinic, activity, today):
        report = reports.summary_report(clinic, today=today)
        assert report["period"]["end"] == today
        assert report["cycles"] == {"total": 3, "completed": 2, "failed": 1, "success_rate": 66.7}
        assert report["packages"]["total"] == 3
        assert report["packages"]["used"] == 1
        assert report["packages"]["sterile"] == 2
        assert report["packages"]["expiring_within_7_days"] == 1
        assert report["usage"] == {"total": 1}
        assert len(report["recent_cycles"]) == 3
        assert report["recent_usage"][0]["procedure_type"] == "Bonding"

    def test_summary_counts_lapsed_sterile_packages_as_expired(self, clinic, activity, today):
        report = reports.summary_report(clinic, today=today + timedelta(days=3))
        assert report["packages"]["expired"] == 1
        assert report["packages"]["sterile"] == 1

    def test_cycles_report(self, clinic, activity, today):
        report = reports.cycles_report(clinic, today=today)
        assert report["total"] == 3
        assert report["by_status"] == {"COMPLETED": 2, "FAILED": 1}
        assert report["by_type"] == {"STEAM_GRAVITY": 2, "STEAM_PREVACUUM": 1}
        assert report["biological_tested"] == 1
        assert report["biological_pass_rate"] == 100.0

    def test_packages_report(self, clinic, activity, today):
        report = reports.packages_report(clinic, today=today)
        assert report["by_status"] == {PackageStatus.STERILE: 2, PackageStatus.USED: 1}
        assert report["by_type"] == {"POUCH": 3}
        assert [p["package_number"] for p in report["expiring_soon"]] == [activity["expiring"].package_number]
        assert report["expiring_soon"][0]["days_until_expiration"] >= 2

    def test_usage_report(self, clinic, activity, today):
        report = reports.usage_report(clinic, today=today)
        assert report["total"] == 1
        assert report["by_procedure_type"] == {"Bonding": 1}
        assert sum(report["by_date"].values()) == 1

    def test_reports_are_clinic_scoped(self, other_clinic, activity, today):
        assert reports.cycles_report(other_clinic, today=today)["total"] == 0
        assert reports.summary_report(other_clinic, today=today)["cycles"]["success_rate"] == 0.0

    def test_empty_period(self, clinic, activity):
        report = reports.cycles_report(clinic, date(2020, 1, 1), date(2020, 1, 31))
        assert report["total"] == 0
        assert report["by_status"] == {}

    def test_compliance_context_lists_recalls(self, clinic, admin_user, activity):
        services.recall_package(activity["plain"], actor=admin_user, reason="Wet pack")
        context = reports.compliance_context(clinic)
        assert len(context["cycles"]) == 3
        assert len(context["recalls"]) == 1
        assert {entry.log_type for entry in context["compliance_logs"]} == {"CYCLE_FAILURE", "PACKAGE_RECALL"}
        assert context["summary"]["total"] == 3
