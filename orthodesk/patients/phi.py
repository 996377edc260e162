"""PHI fog: deterministic fake patient identities for screen privacy.

When fog is on for a request, every serialized patient has its name,
contact details and date of birth replaced by a pseudonym derived from
a hash of the patient id. The same patient always maps to the same
pseudonym, and nothing in the output is derived from the real values.
"""

import hashlib
from datetime import date

SESSION_KEY = "phi_fog"
HEADER = "HTTP_X_PHI_FOG"

FAKE_FIRST_NAMES = [
    "Avery", "Jordan", "Riley", "Casey", "Morgan", "Quinn", "Rowan", "Skyler",
    "Emerson", "Finley", "Harper", "Hayden", "Jamie", "Kendall", "Logan", "Parker",
    "Reese", "Sage", "Taylor", "Blake", "Drew", "Elliot", "Peyton", "Cameron",
]

FAKE_LAST_NAMES = [
    "Alder", "Birch", "Cedar", "Dune", "Ember", "Fjord", "Grove", "Harbor",
    "Inlet", "Juniper", "Kestrel", "Linden", "Meadow", "North", "Oakley", "Pine",
    "Quarry", "Ridge", "Stone", "Thorne", "Upton", "Vale", "Willow", "Yarrow",
]

FOGGED_FIELDS = ("first_name", "last_name", "full_name", "email", "phone", "date_of_birth")


def fog_enabled(request) -> bool:
    """True when the session flag is set or the request sends X-PHI-Fog: 1."""
    if request is None:
        return False
    if request.META.get(HEADER, "").strip().lower() in ("1", "true", "on", "yes"):
        return True
    session = getattr(request, "session", None)
    return bool(session and session.get(SESSION_KEY))


def set_fog(request, enabled: bool) -> bool:
    request.session[SESSION_KEY] = bool(enabled)
    return bool(enabled)


def _digest(patient_id) -> bytes:
    return hashlib.sha256(f"orthodesk-phi-fog:{patient_id}".encode()).digest()


def pseudonym(patient_id) -> dict:
    """Fake identity for a patient id."""
    d = _digest(patient_id)
    first = FAKE_FIRST_NAMES[d[0] % len(FAKE_FIRST_NAMES)]
    last = FAKE_LAST_NAMES[d[1] % len(FAKE_LAST_NAMES)]
    suffix = int.from_bytes(d[2:4], "big") % 1000
    year = 1950 + d[4] % 65
    month = 1 + d[5] % 12
    day = 1 + d[6] % 28
    return {
        "first_name": first,
        "last_name": f"{last}-{suffix:03d}",
        "full_name": f"{first} {last}-{suffix:03d}",
        "email": f"{first.lower()}.{last.lower()}{suffix:03d}@example.invalid",
        "phone": f"555-01{d[7] % 100:02d}",
        "date_of_birth": date(year, month, day).isoformat(),
    }


def fog_patient_dict(data: dict) -> dict:
    """Return a copy of a serialized patient with PHI fields replaced.

    Only fields already present are replaced; ``id`` must be present.
    """
    fake = pseudonym(data["id"])
    fogged = dict(data)
    for key in FOGGED_FIELDS:
        if key in fogged:
            fogged[key] = fake[key]
    fogged["fogged"] = True
    return fogged


def serialize_patient(patient, fog: bool = False) -> dict:
    """Patient summary used by every module's API output."""
    if patient is None:
        return None
    data = {
        "id": str(patient.pk),
        "patient_number": patient.patient_number,
        "first_name": patient.first_name,
        "last_name": patient.last_name,
        "full_name": patient.full_name,
        "date_of_birth": patient.date_of_birth.isoformat() if patient.date_of_birth else None,
        "email": patient.email,
        "phone": patient.phone,
        "status": patient.status,
    }
    return fog_patient_dict(data) if fog else data
