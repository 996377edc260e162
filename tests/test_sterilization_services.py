"""Tests for sterilization services: cycles, indicators, packages, quarantine and usage."""

from datetime import date, timedelta

import httpx
import pytest

from orthodesk.core.exceptions import NotFound, ValidationFailed
from orthodesk.patients.services import create_patient
from orthodesk.sterilization import services
from orthodesk.sterilization.autoclave import AutoclaveClient, AutoclaveCycleInfo
from orthodesk.sterilization.exceptions import (
    AutoclaveDisabledError,
    AutoclaveError,
    CycleInUseError,
    CycleStateError,
    IndicatorStateError,
    PackageExpiredError,
    PackageStateError,
    QRParseError,
    ReleaseBlockedError,
)
from orthodesk.sterilization.models import (
    AutoclaveIntegration,
    BiologicalIndicator,
    ComplianceLog,
    CycleStatus,
    CycleType,
    InstrumentPackage,
    PackageStatus,
    SterilizationCycle,
    SterilizerValidation,
)
from orthodesk.sterilization.qr import generate_json_content, generate_legacy_content

from .test_autoclave import CYCLE_DATA, CYCLE_RECORD, OLDER_RECORD, healthy_unit, mock_unit


@pytest.fixture
def completed_cycle(started_cycle, admin_user):
    return services.complete_cycle(
        started_cycle, actor=admin_user, status=CycleStatus.COMPLETED, mechanical_pass=True
    )


def make_packages(cycle, user, count=2, **kwargs):
    kwargs.setdefault("package_type", "CASSETTE_FULL")
    kwargs.setdefault("instrument_names", ["Bracket tweezers", "Ligature cutter"])
    return services.create_packages(cycle, actor=user, count=count, **kwargs)


def statuses(packages):
    return {InstrumentPackage.objects.get(pk=p.pk).status for p in packages}


@pytest.mark.django_db
class TestCycles:
    """Cycle start, completion and voiding."""

    def test_start_cycle(self, started_cycle, sterilizer, admin_user):
        assert started_cycle.status == CycleStatus.IN_PROGRESS
        assert started_cycle.cycle_number.startswith("CYC-")
        assert started_cycle.sterilizer == sterilizer
        assert started_cycle.operator == admin_user

    def test_start_cycle_validates_type(self, clinic, admin_user):
        with pytest.raises(ValidationFailed) as exc_info:
            services.start_cycle(clinic, actor=admin_user, data={"cycle_type": "MICROWAVE"})
        assert "cycle_type" in exc_info.value.details

    def test_start_cycle_rejects_other_clinic_sterilizer(self, other_clinic, sterilizer, admin_user):
        with pytest.raises(ValidationFailed) as exc_info:
            services.start_cycle(
                other_clinic,
                actor=admin_user,
                data={"cycle_type": "STEAM_GRAVITY", "sterilizer": str(sterilizer.pk)},
            )
        assert "sterilizer" in exc_info.value.details

    def test_complete_twice(self, completed_cycle, admin_user):
        with pytest.raises(CycleStateError):
            services.complete_cycle(completed_cycle, actor=admin_user, status=CycleStatus.COMPLETED)

    def test_failed_cycle_needs_reason(self, started_cycle, admin_user):
        with pytest.raises(ValidationFailed):
            services.complete_cycle(started_cycle, actor=admin_user, status=CycleStatus.FAILED)

    def test_end_before_start(self, started_cycle, admin_user):
        with pytest.raises(ValidationFailed):
            services.complete_cycle(
                started_cycle,
                actor=admin_user,
                status=CycleStatus.COMPLETED,
                end_time=started_cycle.start_time - timedelta(minutes=1),
            )

    def test_failed_cycle_writes_compliance_log(self, started_cycle, admin_user):
        cycle = services.complete_cycle(
            started_cycle, actor=admin_user, status=CycleStatus.FAILED, failure_reason="Low temperature"
        )
        assert cycle.status == CycleStatus.FAILED
        entry = ComplianceLog.objects.get(cycle=cycle)
        assert entry.log_type == ComplianceLog.LogType.CYCLE_FAILURE
        assert entry.description == "Low temperature"

    def test_void_compromises_unused_packages(self, completed_cycle, admin_user):
        packages = make_packages(completed_cycle, admin_user)
        cycle = services.void_cycle(completed_cycle, actor=admin_user, reason="Logged against wrong unit")
        assert cycle.status == CycleStatus.VOID
        assert statuses(packages) == {PackageStatus.COMPROMISED}

        with pytest.raises(CycleStateError):
            services.void_cycle(cycle, actor=admin_user, reason="again")

    def test_void_requires_reason(self, completed_cycle, admin_user):
        with pytest.raises(ValidationFailed):
            services.void_cycle(completed_cycle, actor=admin_user, reason="")

    def test_void_refused_after_usage(self, completed_cycle, admin_user, patient):
        package = make_packages(completed_cycle, admin_user, count=1)[0]
        services.record_usage(package, patient, actor=admin_user)
        with pytest.raises(CycleInUseError):
            services.void_cycle(completed_cycle, actor=admin_user, reason="Wrong unit")


@pytest.mark.django_db
class TestPackages:
    """Package creation and status changes."""

    def test_packages_from_completed_cycle_are_sterile(self, completed_cycle, admin_user):
        packages = make_packages(completed_cycle, admin_user, count=3)
        assert len(packages) == 3
        assert len({p.package_number for p in packages}) == 3
        package = packages[0]
        assert package.status == PackageStatus.STERILE
        assert package.expiration_date == package.sterilized_date + timedelta(days=30)
        assert package.qr_code.startswith("Date STE ")
        assert completed_cycle.cycle_number in package.qr_code
        assert package.qr_code.endswith(" Full_Cassette")

    def test_custom_expiration(self, completed_cycle, admin_user):
        package = make_packages(completed_cycle, admin_user, count=1, expiration_days=90)[0]
        assert (package.expiration_date - package.sterilized_date).days == 90

    @pytest.mark.parametrize("kwargs, field", [
        ({"expiration_days": 0}, "expiration_days"),
        ({"expiration_days": 366}, "expiration_days"),
        ({"instrument_names": ["  "]}, "instrument_names"),
    ])
    def test_create_validation(self, completed_cycle, admin_user, kwargs, field):
        with pytest.raises(ValidationFailed) as exc_info:
            make_packages(completed_cycle, admin_user, **kwargs)
        assert field in exc_info.value.details

    def test_packages_need_completed_cycle(self, started_cycle, admin_user):
        with pytest.raises(CycleStateError):
            make_packages(started_cycle, admin_user)

    def test_recall_and_compromise(self, completed_cycle, admin_user):
        first, second = make_packages(completed_cycle, admin_user)
        recalled = services.recall_package(first, actor=admin_user, reason="Wet pack")
        assert recalled.status == PackageStatus.RECALLED
        assert ComplianceLog.objects.filter(log_type=ComplianceLog.LogType.PACKAGE_RECALL).count() == 1

        compromised = services.mark_compromised(second, actor=admin_user, reason="Torn wrap")
        assert compromised.status == PackageStatus.COMPROMISED
        assert "Torn wrap" in compromised.notes

        with pytest.raises(PackageStateError):
            services.recall_package(compromised, actor=admin_user, reason="again")

    def test_manual_quarantine_and_release(self, completed_cycle, admin_user, clinic):
        package = make_packages(completed_cycle, admin_user, count=1)[0]
        package = services.quarantine_package(package, actor=admin_user, reason="Indicator smudged")
        assert package.status == PackageStatus.QUARANTINED
        assert package.quarantine_reason == "Indicator smudged"

        released = services.release_packages(clinic, [package.pk], actor=admin_user, notes="Re-checked")
        assert released[0].status == PackageStatus.STERILE
        assert released[0].quarantine_reason == ""
        assert released[0].released_by == admin_user

    def test_expire_packages(self, completed_cycle, admin_user, clinic):
        packages = make_packages(completed_cycle, admin_user)
        expiration = packages[0].expiration_date
        assert services.expire_packages(clinic, today=expiration - timedelta(days=1)) == 0
        assert services.expire_packages(clinic, today=expiration) == 2
        assert statuses(packages) == {PackageStatus.EXPIRED}
        assert services.expire_packages(today=expiration) == 0


@pytest.mark.django_db
class TestBiologicalIndicators:
    """Spore tests, quarantine and recall."""

    def test_pending_bi_quarantines_new_packages(self, completed_cycle, admin_user, clinic):
        services.add_biological_indicator(completed_cycle, actor=admin_user, data={"lot_number": "BI-1"})
        packages = make_packages(completed_cycle, admin_user)
        assert statuses(packages) == {PackageStatus.QUARANTINED}

        quarantine = services.list_quarantine(clinic)
        assert {p.pk for p in quarantine["packages"]} == {p.pk for p in packages}
        assert quarantine["pending_cycles"] == [completed_cycle]

    def test_pass_releases_packages(self, completed_cycle, admin_user):
        bi = services.add_biological_indicator(completed_cycle, actor=admin_user, data={"lot_number": "BI-1"})
        packages = make_packages(completed_cycle, admin_user)

        result = services.record_bi_result(bi, BiologicalIndicator.Result.PASSED, actor=admin_user)
        assert sorted(result["released"]) == sorted(p.package_number for p in packages)
        assert statuses(packages) == {PackageStatus.STERILE}
        completed_cycle.refresh_from_db()
        assert completed_cycle.biological_pass is True

    def test_pass_waits_for_other_pending_indicators(self, completed_cycle, admin_user):
        first = services.add_biological_indicator(completed_cycle, actor=admin_user, data={"lot_number": "BI-1"})
        second = services.add_biological_indicator(completed_cycle, actor=admin_user, data={"lot_number": "BI-2"})
        packages = make_packages(completed_cycle, admin_user)

        result = services.record_bi_result(first, BiologicalIndicator.Result.PASSED, actor=admin_user)
        assert result["released"] == []
        assert statuses(packages) == {PackageStatus.QUARANTINED}

        result = services.record_bi_result(second, BiologicalIndicator.Result.PASSED, actor=admin_user)
        assert len(result["released"]) == 2

    def test_fail_recalls_and_reports_exposure(self, completed_cycle, admin_user, patient):
        used, unused = make_packages(completed_cycle, admin_user)
        services.record_usage(used, patient, actor=admin_user)
        bi = services.add_biological_indicator(completed_cycle, actor=admin_user, data={"lot_number": "BI-1"})

        result = services.record_bi_result(bi, BiologicalIndicator.Result.FAILED, actor=admin_user)
        assert result["recalled"] == [unused.package_number]
        assert [u.patient for u in result["exposed_usages"]] == [patient]
        assert statuses([unused]) == {PackageStatus.RECALLED}
        assert statuses([used]) == {PackageStatus.USED}
        assert ComplianceLog.objects.filter(log_type=ComplianceLog.LogType.BI_FAILURE).exists()

        with pytest.raises(CycleStateError):
            make_packages(completed_cycle, admin_user)

    def test_failed_bi_blocks_manual_release(self, completed_cycle, admin_user, clinic):
        bi = services.add_biological_indicator(completed_cycle, actor=admin_user, data={"lot_number": "BI-1"})
        services.record_bi_result(bi, BiologicalIndicator.Result.FAILED, actor=admin_user)

        # A package moved onto the failed cycle after the recall
        package = make_packages_from_new_cycle(clinic, admin_user)
        services.quarantine_package(package, actor=admin_user, reason="Check")
        InstrumentPackage.objects.filter(pk=package.pk).update(cycle=completed_cycle)
        with pytest.raises(ReleaseBlockedError) as exc_info:
            services.release_packages(clinic, [package.pk], actor=admin_user, notes="Override")
        assert exc_info.value.details == {"cycles": [completed_cycle.cycle_number]}

    def test_result_cannot_be_read_twice(self, completed_cycle, admin_user):
        bi = services.add_biological_indicator(completed_cycle, actor=admin_user, data={"lot_number": "BI-1"})
        services.record_bi_result(bi, BiologicalIndicator.Result.PASSED, actor=admin_user)
        with pytest.raises(IndicatorStateError):
            services.record_bi_result(bi, BiologicalIndicator.Result.FAILED, actor=admin_user)

    def test_inconclusive_changes_nothing(self, completed_cycle, admin_user):
        bi = services.add_biological_indicator(completed_cycle, actor=admin_user, data={"lot_number": "BI-1"})
        packages = make_packages(completed_cycle, admin_user)
        result = services.record_bi_result(bi, BiologicalIndicator.Result.INCONCLUSIVE, actor=admin_user)
        assert result["released"] == result["recalled"] == []
        assert statuses(packages) == {PackageStatus.QUARANTINED}
        # An inconclusive read may be repeated
        services.record_bi_result(bi, BiologicalIndicator.Result.PASSED, actor=admin_user)

    def test_failed_chemical_indicator_marks_cycle(self, completed_cycle, admin_user):
        services.add_chemical_indicator(
            completed_cycle, actor=admin_user, data={"indicator_class": "CLASS_5", "result": "FAILED"}
        )
        completed_cycle.refresh_from_db()
        assert completed_cycle.chemical_pass is False


def make_packages_from_new_cycle(clinic, user):
    cycle = services.start_cycle(clinic, actor=user, data={"cycle_type": "STEAM_GRAVITY"})
    cycle = services.complete_cycle(cycle, actor=user, status=CycleStatus.COMPLETED)
    return make_packages(cycle, user, count=1)[0]


@pytest.mark.django_db
class TestReleaseValidation:
    def test_release_requires_notes(self, clinic, admin_user):
        with pytest.raises(ValidationFailed):
            services.release_packages(clinic, [], actor=admin_user, notes=" ")

    def test_release_unknown_package(self, clinic, admin_user):
        with pytest.raises(NotFound):
            services.release_packages(
                clinic, ["00000000-0000-0000-0000-000000000000"], actor=admin_user, notes="x"
            )

    def test_release_sterile_package(self, clinic, admin_user):
        package = make_packages_from_new_cycle(clinic, admin_user)
        with pytest.raises(PackageStateError) as exc_info:
            services.release_packages(clinic, [package.pk], actor=admin_user, notes="x")
        assert exc_info.value.details == {"packages": [package.package_number]}


@pytest.mark.django_db
class TestUsage:
    """Recording package use on a patient."""

    def test_record_usage(self, completed_cycle, admin_user, patient):
        package = make_packages(completed_cycle, admin_user, count=1)[0]
        usage = services.record_usage(package, patient, actor=admin_user, procedure_type="Bonding")
        assert usage.used_by == admin_user
        package.refresh_from_db()
        assert package.status == PackageStatus.USED

        with pytest.raises(PackageStateError):
            services.record_usage(package, patient, actor=admin_user)

    def test_quarantined_package_cannot_be_used(self, completed_cycle, admin_user, patient):
        services.add_biological_indicator(completed_cycle, actor=admin_user, data={"lot_number": "BI-1"})
        package = make_packages(completed_cycle, admin_user, count=1)[0]
        with pytest.raises(PackageStateError):
            services.record_usage(package, patient, actor=admin_user)

    def test_expired_package_cannot_be_used(self, completed_cycle, admin_user, patient):
        package = make_packages(completed_cycle, admin_user, count=1)[0]
        InstrumentPackage.objects.filter(pk=package.pk).update(
            sterilized_date=date(2020, 1, 1), expiration_date=date(2020, 1, 31)
        )
        with pytest.raises(PackageExpiredError):
            services.record_usage(package, patient, actor=admin_user)

    def test_patient_from_other_clinic(self, completed_cycle, admin_user, other_clinic):
        stranger = create_patient(other_clinic, actor=admin_user, data={"first_name": "A", "last_name": "B"})
        package = make_packages(completed_cycle, admin_user, count=1)[0]
        with pytest.raises(NotFound):
            services.record_usage(package, stranger, actor=admin_user)


@pytest.mark.django_db
class TestLookup:
    """QR and package-number lookup."""

    def test_lookup_by_package_number(self, completed_cycle, admin_user, clinic):
        package = make_packages(completed_cycle, admin_user, count=2)[0]
        result = services.lookup_by_qr(clinic, package.package_number)
        assert result["package"] == package
        assert result["cycle"] == completed_cycle
        assert len(result["packages"]) == 2
        assert result["is_still_sterile"] is True

    def test_lookup_by_scanner_label(self, completed_cycle, admin_user, clinic):
        package = make_packages(completed_cycle, admin_user, count=1)[0]
        result = services.lookup_by_qr(clinic, package.qr_code)
        assert result["cycle"] == completed_cycle
        assert result["package"] == package

    def test_shared_scanner_label_uses_earliest_expiration(self, completed_cycle, admin_user, clinic):
        short = make_packages(completed_cycle, admin_user, count=1, expiration_days=1)[0]
        long = make_packages(completed_cycle, admin_user, count=1, expiration_days=60)[0]
        assert short.qr_code == long.qr_code

        result = services.lookup_by_qr(clinic, long.qr_code)
        assert result["package"] is None
        assert result["cycle"] == completed_cycle
        assert len(result["packages"]) == 2
        assert result["days_until_expiration"] == services.days_until_expiration(short.expiration_date)
        assert result["days_until_expiration"] < services.days_until_expiration(long.expiration_date)

    def test_lookup_by_json_label_suffix(self, completed_cycle, clinic):
        content = generate_json_content(completed_cycle.pk, "UNKNOWN-NUMBER", completed_cycle.sterilized_date)
        assert services.lookup_by_qr(clinic, content)["cycle"] == completed_cycle

    def test_lookup_by_legacy_label(self, completed_cycle, clinic):
        content = generate_legacy_content(
            "OLD-NUMBER", completed_cycle.sterilized_date, cycle_id=completed_cycle.pk
        )
        result = services.lookup_by_qr(clinic, content)
        assert result["cycle"] == completed_cycle
        assert result["package"] is None

    def test_lookup_other_clinic_finds_nothing(self, completed_cycle, admin_user, other_clinic):
        package = make_packages(completed_cycle, admin_user, count=1)[0]
        result = services.lookup_by_qr(other_clinic, package.qr_code)
        assert result["cycle"] is None
        assert result["package"] is None

    def test_unrecognised_content(self, clinic):
        with pytest.raises(QRParseError):
            services.lookup_by_qr(clinic, "not a label")


@pytest.fixture
def autoclave(clinic, sterilizer, admin_user):
    return services.create_autoclave(
        clinic,
        actor=admin_user,
        data={"name": "Statclave", "ip_address": "10.0.0.5", "sterilizer": str(sterilizer.pk)},
    )


@pytest.mark.django_db
class TestAutoclaveImport:
    """Importing cycles published by a networked autoclave."""

    def test_import_builds_completed_cycle(self, autoclave, admin_user):
        client = AutoclaveClient("10.0.0.5", transport=healthy_unit())
        result = services.import_cycles(
            autoclave, actor=admin_user, cycles=[AutoclaveCycleInfo.from_dict(CYCLE_RECORD)], client=client
        )
        assert result["imported"] == 1
        cycle = result["cycles"][0]
        assert cycle.status == CycleStatus.COMPLETED
        assert cycle.cycle_type == CycleType.STEAM_PREVACUUM
        assert cycle.external_cycle_number == 391
        assert cycle.sterilizer == autoclave.sterilizer
        assert str(cycle.temperature) == "134.1"
        assert cycle.exposure_time == 4
        assert cycle.drying_time == 20
        assert cycle.end_time - cycle.start_time == timedelta(minutes=35)
        assert cycle.digital_signature == "A1B2C3D4E5"
        assert cycle.temp_profile == [20.0, 95.0, 132.5, 134.1]

        autoclave.refresh_from_db()
        assert autoclave.last_cycle_num == 391
        assert autoclave.status == AutoclaveIntegration.Status.CONNECTED

    def test_import_skips_existing(self, autoclave, admin_user):
        info = AutoclaveCycleInfo.from_dict(CYCLE_RECORD)
        client = AutoclaveClient("10.0.0.5", transport=healthy_unit())
        services.import_cycles(autoclave, actor=admin_user, cycles=[info], client=client)
        result = services.import_cycles(autoclave, actor=admin_user, cycles=[info], client=client)
        assert (result["imported"], result["skipped"]) == (0, 1)
        assert SterilizationCycle.objects.filter(autoclave=autoclave).count() == 1

    def test_failed_import_is_logged(self, autoclave, admin_user):
        transport = mock_unit({
            "/data/cycleData.php": httpx.Response(200, json={**CYCLE_DATA, "succeeded": False}),
        })
        client = AutoclaveClient("10.0.0.5", transport=transport)
        result = services.import_cycles(
            autoclave, actor=admin_user, cycles=[AutoclaveCycleInfo.from_dict(CYCLE_RECORD)], client=client
        )
        assert result["cycles"][0].status == CycleStatus.FAILED
        assert ComplianceLog.objects.filter(log_type=ComplianceLog.LogType.CYCLE_FAILURE).exists()

    def test_fetch_errors_are_collected(self, autoclave, admin_user):
        client = AutoclaveClient("10.0.0.5", transport=mock_unit({}))
        result = services.import_cycles(
            autoclave, actor=admin_user, cycles=[AutoclaveCycleInfo.from_dict(CYCLE_RECORD)], client=client
        )
        assert result["imported"] == 0
        assert result["errors"][0]["cycle_number"] == 391

    def test_malformed_cycle_does_not_abort_batch(self, autoclave, admin_user, monkeypatch):
        build = services._build_imported_cycle

        def build_or_fail(autoclave, actor, info, data):
            if info.external_number == CYCLE_RECORD["cycle_number"]:
                raise KeyError("program")
            return build(autoclave, actor, info, data)

        monkeypatch.setattr(services, "_build_imported_cycle", build_or_fail)
        client = AutoclaveClient("10.0.0.5", transport=healthy_unit())
        result = services.import_cycles(
            autoclave,
            actor=admin_user,
            cycles=[AutoclaveCycleInfo.from_dict(CYCLE_RECORD), AutoclaveCycleInfo.from_dict(OLDER_RECORD)],
            client=client,
        )
        assert result["imported"] == 1
        assert result["cycles"][0].external_cycle_number == OLDER_RECORD["cycle_number"]
        assert result["errors"] == [{"cycle_number": CYCLE_RECORD["cycle_number"], "error": "'program'"}]
        assert SterilizationCycle.objects.filter(autoclave=autoclave).count() == 1

    def test_sync_filters_by_month(self, autoclave, admin_user):
        client = AutoclaveClient("10.0.0.5", transport=healthy_unit())
        result = services.sync_autoclave(autoclave, actor=admin_user, year=2025, month=11, client=client)
        assert result["imported"] == 1
        assert result["cycles"][0].external_cycle_number == OLDER_RECORD["cycle_number"]

    def test_sync_failure_marks_error(self, autoclave, admin_user):
        client = AutoclaveClient("10.0.0.5", transport=mock_unit({}))
        with pytest.raises(AutoclaveError):
            services.sync_autoclave(autoclave, actor=admin_user, client=client)
        autoclave.refresh_from_db()
        assert autoclave.status == AutoclaveIntegration.Status.ERROR
        assert "404" in autoclave.error_message

    def test_disabled_autoclave(self, autoclave, admin_user):
        autoclave.enabled = False
        autoclave.save()
        with pytest.raises(AutoclaveDisabledError):
            services.sync_autoclave(autoclave, actor=admin_user)

    def test_check_connection(self, autoclave):
        client = AutoclaveClient("10.0.0.5", transport=healthy_unit())
        assert services.check_autoclave_connection(autoclave, client=client)["success"] is True
        autoclave.refresh_from_db()
        assert autoclave.status == AutoclaveIntegration.Status.CONNECTED


@pytest.mark.django_db
class TestValidations:
    """Sterilizer validations and schedules."""

    def test_validation_rolls_schedule_forward(self, sterilizer, admin_user, clinic):
        schedule = services.create_schedule(
            sterilizer,
            actor=admin_user,
            data={"validation_type": "BOWIE_DICK_TEST", "frequency_days": 7, "next_due": "2026-01-05"},
        )
        validation = services.record_validation(
            sterilizer,
            actor=admin_user,
            data={"validation_type": "BOWIE_DICK_TEST", "validation_date": "2026-01-06", "result": "PASS"},
        )
        schedule.refresh_from_db()
        assert schedule.last_performed == date(2026, 1, 6)
        assert schedule.next_due == date(2026, 1, 13)
        assert validation.next_due_date == date(2026, 1, 13)

    def test_failed_validation_is_logged(self, sterilizer, admin_user):
        services.record_validation(
            sterilizer,
            actor=admin_user,
            data={"validation_type": "LEAK_RATE_TEST", "validation_date": "2026-01-06", "result": "FAIL"},
        )
        assert ComplianceLog.objects.filter(log_type=ComplianceLog.LogType.VALIDATION).exists()
        assert SterilizerValidation.objects.get().result == "FAIL"

    def test_due_validations(self, sterilizer, admin_user, clinic):
        today = date(2026, 3, 1)
        overdue = services.create_schedule(
            sterilizer,
            actor=admin_user,
            data={"validation_type": "CALIBRATION", "frequency_days": 365, "next_due": "2026-02-20"},
        )
        soon = services.create_schedule(
            sterilizer,
            actor=admin_user,
            data={"validation_type": "BOWIE_DICK_TEST", "frequency_days": 7, "reminder_days": 3,
                  "next_due": "2026-03-03"},
        )
        services.create_schedule(
            sterilizer,
            actor=admin_user,
            data={"validation_type": "ANNUAL_VALIDATION", "frequency_days": 365, "reminder_days": 10,
                  "next_due": "2026-06-01"},
        )

        due = services.due_validations(clinic, today=today)
        assert [(row["schedule"], row["status"], row["days_until_due"]) for row in due] == [
            (overdue, services.OVERDUE, -9),
            (soon, services.DUE_SOON, 2),
        ]
