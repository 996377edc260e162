"""Audit adapter for patient records.

All patient code calls this adapter so action strings stay stable.
Patient rows are PHI, so events are logged with high sensitivity.
"""

from orthodesk.core.audit import log


class Actions:
    """Stable audit action constants for patient operations."""

    PATIENT_CREATED = "patient_created"
    PATIENT_UPDATED = "patient_updated"
    PATIENT_ARCHIVED = "patient_archived"
    PHI_FOG_TOGGLED = "phi_fog_toggled"


def log_patient_event(action: str, patient, actor=None, changes=None, data=None):
    return log(
        action=action,
        obj=patient,
        actor=actor,
        changes=changes,
        metadata=data,
        sensitivity="high",
    )
