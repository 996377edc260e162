"""Tests for the sterilization API."""

import pytest

from orthodesk.core.models import ClinicMembership
from orthodesk.sterilization import printing, services
from orthodesk.sterilization.autoclave import AutoclaveClient
from orthodesk.sterilization.models import PackageStatus

from .test_autoclave import healthy_unit

Role = ClinicMembership.Role
BASE = "/api/sterilization"


@pytest.fixture
def completed_cycle(started_cycle, admin_user):
    return services.complete_cycle(started_cycle, actor=admin_user, status="COMPLETED")


@pytest.fixture
def package(completed_cycle, admin_user):
    return services.create_packages(
        completed_cycle, actor=admin_user, package_type="CASSETTE_EXAM", instrument_names=["Mirror", "Explorer"]
    )[0]


@pytest.fixture
def fake_pdf(monkeypatch):
    rendered = []

    def write_pdf(html):
        rendered.append(html)
        return b"%PDF-1.7 test"

    monkeypatch.setattr(printing, "_write_pdf", write_pdf)
    return rendered


@pytest.mark.django_db
class TestCycleApi:
    """Cycle and indicator endpoints."""

    def test_cycle_workflow(self, api_client, sterilizer):
        response = api_client.post_json(f"{BASE}/cycles/", {
            "cycle_type": "STEAM_GRAVITY",
            "sterilizer": str(sterilizer.pk),
            "temperature": "121.0",
            "exposure_time": 30,
        })
        assert response.status_code == 201
        cycle = response.json()["data"]
        assert cycle["status"] == "IN_PROGRESS"
        assert cycle["sterilizer"]["name"] == "Statim 2000"
        assert cycle["parameters"] == "121°C / 30min"

        response = api_client.post_json(f"{BASE}/cycles/{cycle['id']}/complete/", {"status": "COMPLETED"})
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "COMPLETED"

        response = api_client.post_json(f"{BASE}/cycles/{cycle['id']}/packages/", {
            "package_type": "POUCH",
            "instrument_names": "Bracket tweezers",
            "count": 2,
        })
        assert response.status_code == 201
        packages = response.json()["data"]
        assert [p["status"] for p in packages] == ["STERILE", "STERILE"]
        assert packages[0]["instrument_names"] == ["Bracket tweezers"]

        detail = api_client.get(f"{BASE}/cycles/{cycle['id']}/").json()["data"]
        assert len(detail["packages"]) == 2

    def test_failed_cycle_needs_reason(self, api_client, started_cycle):
        response = api_client.post_json(f"{BASE}/cycles/{started_cycle.pk}/complete/", {"status": "FAILED"})
        assert response.status_code == 400
        assert "failure_reason" in response.json()["error"]["details"]

    def test_completing_twice_is_rejected(self, api_client, completed_cycle):
        response = api_client.post_json(f"{BASE}/cycles/{completed_cycle.pk}/complete/", {"status": "COMPLETED"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_CYCLE_STATUS"

    def test_list_cycles_filters(self, api_client, completed_cycle, clinic, admin_user):
        services.start_cycle(clinic, actor=admin_user, data={"cycle_type": "DRY_HEAT"})
        data = api_client.get(f"{BASE}/cycles/", {"status": "COMPLETED"}).json()["data"]
        assert [c["id"] for c in data["items"]] == [str(completed_cycle.pk)]
        assert api_client.get(f"{BASE}/cycles/").json()["data"]["total"] == 2

    def test_bad_filter_is_rejected(self, api_client):
        response = api_client.get(f"{BASE}/cycles/", {"status": "SOMETIMES"})
        assert response.status_code == 400

    def test_bi_result_releases_quarantine(self, api_client, completed_cycle):
        response = api_client.post_json(
            f"{BASE}/cycles/{completed_cycle.pk}/biological-indicators/", {"lot_number": "LOT-9"}
        )
        assert response.status_code == 201
        indicator_id = response.json()["data"]["id"]

        packages = api_client.post_json(f"{BASE}/cycles/{completed_cycle.pk}/packages/", {
            "package_type": "POUCH", "instrument_names": ["Mirror"],
        }).json()["data"]
        assert packages[0]["status"] == "QUARANTINED"

        quarantine = api_client.get(f"{BASE}/quarantine/").json()["data"]
        assert [c["id"] for c in quarantine["pending_cycles"]] == [str(completed_cycle.pk)]

        response = api_client.post_json(
            f"{BASE}/biological-indicators/{indicator_id}/result/", {"result": "PASSED"}
        )
        data = response.json()["data"]
        assert data["indicator"]["result"] == "PASSED"
        assert data["released"] == [packages[0]["package_number"]]

    def test_bi_failure_reports_exposed_patients_fogged(self, api_client, completed_cycle, package, patient):
        services.record_usage(package, patient, actor=None)
        response = api_client.post_json(
            f"{BASE}/cycles/{completed_cycle.pk}/biological-indicators/", {"lot_number": "LOT-9"}
        )
        indicator_id = response.json()["data"]["id"]

        response = api_client.post_json(
            f"{BASE}/biological-indicators/{indicator_id}/result/",
            {"result": "FAILED"},
            HTTP_X_PHI_FOG="1",
        )
        exposed = response.json()["data"]["exposed_usages"]
        assert len(exposed) == 1
        assert exposed[0]["patient"]["fogged"] is True
        assert exposed[0]["patient"]["first_name"] != "Maria"

        detail = api_client.get(f"{BASE}/cycles/{completed_cycle.pk}/").json()["data"]
        assert [e["log_type"] for e in detail["compliance_logs"]] == ["BI_FAILURE"]

    def test_chemical_indicator(self, api_client, completed_cycle):
        response = api_client.post_json(
            f"{BASE}/cycles/{completed_cycle.pk}/chemical-indicators/",
            {"indicator_class": "CLASS_4", "result": "PASSED", "location": "Inside cassette"},
        )
        assert response.status_code == 201
        assert response.json()["data"]["indicator_class"] == "CLASS_4"

    def test_void_needs_delete_permission(self, api_client_for, make_user, completed_cycle):
        client = api_client_for(make_user(Role.CLINICAL_STAFF))
        response = client.post_json(f"{BASE}/cycles/{completed_cycle.pk}/void/", {"reason": "Wrong unit"})
        assert response.status_code == 403

    def test_void(self, api_client, completed_cycle, package):
        response = api_client.post_json(f"{BASE}/cycles/{completed_cycle.pk}/void/", {"reason": "Wrong unit"})
        assert response.json()["data"]["status"] == "VOID"
        package.refresh_from_db()
        assert package.status == PackageStatus.COMPROMISED

    def test_front_desk_has_no_access(self, api_client_for, make_user):
        client = api_client_for(make_user(Role.FRONT_DESK))
        assert client.get(f"{BASE}/cycles/").status_code == 403

    def test_other_clinic_cycle_not_found(self, api_client_for, make_user, other_clinic, completed_cycle):
        client = api_client_for(make_user(Role.DOCTOR, in_clinic=other_clinic), clinic_slug=other_clinic.slug)
        response = client.get(f"{BASE}/cycles/{completed_cycle.pk}/")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CYCLE_NOT_FOUND"


@pytest.mark.django_db
class TestPackageApi:
    """Package endpoints."""

    def test_usage(self, api_client, package, patient):
        response = api_client.post_json(
            f"{BASE}/packages/{package.pk}/usage/",
            {"patient": str(patient.pk), "procedure_type": "Adjustment", "verified": True},
        )
        assert response.status_code == 201
        assert response.json()["data"]["patient"]["full_name"] == "Maria Garcia"

        detail = api_client.get(f"{BASE}/packages/{package.pk}/").json()["data"]
        assert detail["status"] == "USED"
        assert detail["usages"][0]["procedure_type"] == "Adjustment"

        response = api_client.post_json(f"{BASE}/packages/{package.pk}/usage/", {"patient": str(patient.pk)})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_PACKAGE_STATUS"

    def test_usage_unknown_patient(self, api_client, package):
        response = api_client.post_json(
            f"{BASE}/packages/{package.pk}/usage/", {"patient": "00000000-0000-0000-0000-000000000001"}
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PATIENT_NOT_FOUND"

    @pytest.mark.parametrize("action, status", [
        ("quarantine", "QUARANTINED"),
        ("recall", "RECALLED"),
        ("compromise", "COMPROMISED"),
    ])
    def test_actions(self, api_client, package, action, status):
        response = api_client.post_json(f"{BASE}/packages/{package.pk}/{action}/", {"reason": "Inspection"})
        assert response.status_code == 200
        assert response.json()["data"]["status"] == status

    def test_unknown_action(self, api_client, package):
        response = api_client.post_json(f"{BASE}/packages/{package.pk}/polish/", {"reason": "x"})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ACTION_NOT_FOUND"

    def test_release(self, api_client, package, admin_user):
        services.quarantine_package(package, actor=admin_user, reason="Check")
        response = api_client.post_json(
            f"{BASE}/quarantine/release/", {"package_ids": [str(package.pk)], "notes": "Indicator verified"}
        )
        assert response.status_code == 200
        assert response.json()["data"][0]["status"] == "STERILE"

    def test_release_needs_ids(self, api_client):
        response = api_client.post_json(f"{BASE}/quarantine/release/", {"package_ids": [], "notes": "x"})
        assert response.status_code == 400
        assert "package_ids" in response.json()["error"]["details"]

    def test_list_search(self, api_client, package):
        data = api_client.get(f"{BASE}/packages/", {"search": package.package_number}).json()["data"]
        assert [p["id"] for p in data["items"]] == [str(package.pk)]

    def test_lookup(self, api_client, package, completed_cycle):
        data = api_client.get(f"{BASE}/packages/lookup/", {"content": package.qr_code}).json()["data"]
        assert data["parsed"]["version"] == 2
        assert data["cycle"]["cycle_number"] == completed_cycle.cycle_number
        assert data["package"]["package_number"] == package.package_number
        assert data["is_still_sterile"] is True

    def test_lookup_invalid(self, api_client):
        response = api_client.get(f"{BASE}/packages/lookup/", {"content": "hello"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_QR"

    def test_qr_png(self, api_client, package):
        response = api_client.get(f"{BASE}/packages/{package.pk}/qr.png", {"size": "120"})
        assert response.status_code == 200
        assert response["Content-Type"] == "image/png"
        assert response.content.startswith(b"\x89PNG")

    def test_labels(self, api_client, package, fake_pdf):
        response = api_client.get(
            f"{BASE}/labels/", {"package_ids": str(package.pk), "format": "2.625x1", "start_position": "3"}
        )
        assert response.status_code == 200
        assert response["Content-Type"] == "application/pdf"
        assert response.content == b"%PDF-1.7 test"
        assert package.package_number in fake_pdf[0]

    def test_labels_start_position_out_of_range(self, api_client, package, fake_pdf):
        response = api_client.get(
            f"{BASE}/labels/", {"package_ids": str(package.pk), "format": "4x2", "start_position": "10"}
        )
        assert response.status_code == 400
        assert "start_position" in response.json()["error"]["details"]

    def test_labels_unknown_package(self, api_client, fake_pdf):
        response = api_client.get(f"{BASE}/labels/", {"package_ids": "00000000-0000-0000-0000-000000000001"})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PACKAGE_NOT_FOUND"


@pytest.mark.django_db
class TestAutoclaveApi:
    def test_create_and_import(self, api_client, sterilizer, monkeypatch):
        monkeypatch.setattr(
            AutoclaveClient,
            "for_autoclave",
            classmethod(lambda cls, autoclave, **kwargs: cls(autoclave.ip_address, transport=healthy_unit())),
        )
        response = api_client.post_json(f"{BASE}/autoclaves/", {
            "name": "Statclave", "ip_address": "10.0.0.5", "sterilizer": str(sterilizer.pk),
        })
        assert response.status_code == 201
        autoclave_id = response.json()["data"]["id"]

        response = api_client.post_json(f"{BASE}/autoclaves/{autoclave_id}/test/")
        assert response.json()["data"]["success"] is True
        assert response.json()["data"]["model"] == "STATCLAVE G4"

        response = api_client.post_json(f"{BASE}/autoclaves/{autoclave_id}/import/", {"cycle_numbers": [391]})
        data = response.json()["data"]
        assert data["imported"] == 1
        assert data["cycles"][0]["external_cycle_number"] == 391

        response = api_client.post_json(f"{BASE}/autoclaves/{autoclave_id}/import/", {})
        assert response.json()["data"]["skipped"] == 1

    def test_invalid_ip(self, api_client):
        response = api_client.post_json(f"{BASE}/autoclaves/", {"name": "Unit", "ip_address": "not-an-ip"})
        assert response.status_code == 400
        assert "ip_address" in response.json()["error"]["details"]


@pytest.mark.django_db
class TestValidationApi:
    def test_schedule_and_record(self, api_client, sterilizer):
        response = api_client.post_json(f"{BASE}/validation-schedules/", {
            "sterilizer": str(sterilizer.pk),
            "validation_type": "BOWIE_DICK_TEST",
            "frequency_days": 7,
            "next_due": "2020-01-01",
        })
        assert response.status_code == 201
        assert response.json()["data"]["status"] == "OVERDUE"

        due = api_client.get(f"{BASE}/validations/due/").json()["data"]
        assert [d["validation_type"] for d in due] == ["BOWIE_DICK_TEST"]

        response = api_client.post_json(f"{BASE}/validations/", {
            "sterilizer": str(sterilizer.pk),
            "validation_type": "BOWIE_DICK_TEST",
            "validation_date": "2020-01-02",
            "result": "PASS",
        })
        assert response.status_code == 201
        assert response.json()["data"]["next_due_date"] == "2020-01-09"

        listed = api_client.get(f"{BASE}/validations/", {"sterilizer": str(sterilizer.pk)}).json()["data"]
        assert len(listed) == 1

    def test_unknown_sterilizer(self, api_client):
        response = api_client.post_json(f"{BASE}/validations/", {"validation_type": "IQ"})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "STERILIZER_NOT_FOUND"


@pytest.mark.django_db
class TestReportApi:
    def test_summary(self, api_client, completed_cycle):
        data = api_client.get(f"{BASE}/reports/summary/").json()["data"]
        assert data["cycles"]["total"] == 1

    def test_period_is_validated(self, api_client):
        response = api_client.get(f"{BASE}/reports/cycles/", {"start": "2026-02-01", "end": "2026-01-01"})
        assert response.status_code == 400

    def test_unknown_report(self, api_client):
        response = api_client.get(f"{BASE}/reports/inventory/")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "REPORT_NOT_FOUND"

    def test_compliance_pdf(self, api_client, completed_cycle, fake_pdf):
        response = api_client.get(f"{BASE}/reports/compliance.pdf", {"start": "2026-01-01", "end": "2026-01-31"})
        assert response.status_code == 200
        assert response["Content-Disposition"] == (
            'attachment; filename="sterilization-compliance-20260101-20260131.pdf"'
        )
        assert "Main Street Orthodontics" in fake_pdf[0]

    def test_compliance_pdf_needs_export(self, api_client_for, make_user):
        client = api_client_for(make_user(Role.CLINICAL_STAFF))
        assert client.get(f"{BASE}/reports/compliance.pdf").status_code == 403


@pytest.mark.django_db
def test_sterilizers(api_client):
    response = api_client.post_json(f"{BASE}/sterilizers/", {"name": "Midmark M11", "serial_number": "M11-1"})
    assert response.status_code == 201
    assert [s["name"] for s in api_client.get(f"{BASE}/sterilizers/").json()["data"]] == ["Midmark M11"]


