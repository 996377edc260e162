"""Audit adapter for sterilization tracking.

All sterilization code must call this adapter, not core.audit directly, so
action strings stay stable.
"""

from orthodesk.core.audit import log


class Actions:
    """Stable audit action constants for sterilization operations."""

    CYCLE_STARTED = "sterilization_cycle_started"
    CYCLE_COMPLETED = "sterilization_cycle_completed"
    CYCLE_FAILED = "sterilization_cycle_failed"
    CYCLE_VOIDED = "sterilization_cycle_voided"

    BI_ADDED = "biological_indicator_added"
    BI_RESULT_RECORDED = "biological_indicator_result_recorded"
    CI_ADDED = "chemical_indicator_added"

    PACKAGES_CREATED = "instrument_packages_created"
    PACKAGE_QUARANTINED = "instrument_package_quarantined"
    PACKAGES_RELEASED = "instrument_packages_released"
    PACKAGE_RECALLED = "instrument_package_recalled"
    PACKAGE_COMPROMISED = "instrument_package_compromised"
    PACKAGES_EXPIRED = "instrument_packages_expired"
    PACKAGE_USED = "instrument_package_used"

    AUTOCLAVE_CREATED = "autoclave_created"
    BULK_IMPORT = "autoclave_bulk_import"
    SYNC_FAILED = "autoclave_sync_failed"

    VALIDATION_RECORDED = "sterilizer_validation_recorded"


def log_sterilization_event(action: str, target=None, actor=None, clinic=None, changes=None, data=None):
    """Record a sterilization audit event.

    Package usage ties instruments to a patient, so it is logged as high
    sensitivity. Everything else is normal.
    """
    return log(
        action=action,
        obj=target,
        actor=actor,
        clinic=clinic,
        changes=changes,
        metadata=data,
        sensitivity="high" if action == Actions.PACKAGE_USED else "normal",
    )
