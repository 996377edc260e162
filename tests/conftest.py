"""Shared fixtures for orthodesk tests."""

import json
from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from django.test import Client
from django.utils import timezone

from orthodesk.core.models import Clinic, ClinicMembership

User = get_user_model()


@pytest.fixture
def clinic(db):
    return Clinic.objects.create(name="Main Street Orthodontics", slug="main")


@pytest.fixture
def other_clinic(db):
    return Clinic.objects.create(name="Uptown Orthodontics", slug="uptown")


@pytest.fixture
def make_user(db, clinic):
    """Factory: user with a membership in ``clinic`` (or the given one)."""
    def _make(role=ClinicMembership.Role.CLINIC_ADMIN, username=None, in_clinic=None):
        username = username or f"user_{role}"
        user = User.objects.create_user(
            username=username, email=f"{username}@example.com", password="testpass"
        )
        ClinicMembership.objects.create(clinic=in_clinic or clinic, user=user, role=role)
        return user
    return _make


@pytest.fixture
def admin_user(make_user):
    return make_user(ClinicMembership.Role.CLINIC_ADMIN, username="admin")


class ApiClient(Client):
    """Test client that sends X-Clinic and JSON bodies."""

    def __init__(self, clinic_slug=None, **defaults):
        if clinic_slug:
            defaults["HTTP_X_CLINIC"] = clinic_slug
        super().__init__(**defaults)

    def post_json(self, path, data=None, **extra):
        return self.post(path, json.dumps(data or {}), content_type="application/json", **extra)

    def patch_json(self, path, data=None, **extra):
        return self.patch(path, json.dumps(data or {}), content_type="application/json", **extra)


@pytest.fixture
def api_client_for(clinic):
    """Factory: logged-in ApiClient for a user, scoped to ``clinic``."""
    def _client(user, clinic_slug=None):
        client = ApiClient(clinic_slug or clinic.slug)
        client.force_login(user)
        return client
    return _client


@pytest.fixture
def api_client(api_client_for, admin_user):
    return api_client_for(admin_user)


@pytest.fixture
def patient(clinic, admin_user):
    from orthodesk.patients.services import create_patient

    return create_patient(
        clinic,
        actor=admin_user,
        data={"first_name": "Maria", "last_name": "Garcia", "date_of_birth": "2010-04-12"},
    )


@pytest.fixture
def sterilizer(clinic):
    from orthodesk.sterilization.models import Sterilizer

    return Sterilizer.objects.create(
        clinic=clinic,
        name="Statim 2000",
        model="STATIM 2000 G4",
        serial_number="SN-12345",
    )


@pytest.fixture
def started_cycle(clinic, sterilizer, admin_user):
    from orthodesk.sterilization.services import start_cycle

    return start_cycle(
        clinic,
        actor=admin_user,
        data={
            "sterilizer": str(sterilizer.pk),
            "cycle_type": "STEAM_PREVACUUM",
            "temperature": "134.0",
            "exposure_time": 4,
        },
    )


@pytest.fixture
def yesterday():
    return timezone.localdate() - timedelta(days=1)
