"""Exceptions for treatment planning."""

from orthodesk.core.exceptions import OrthodeskError


class TreatmentError(OrthodeskError):
    """Base exception for treatment planning errors."""

    code = "TREATMENT_ERROR"


class PlanLockedError(TreatmentError):
    """Plan is in a final status and can no longer be modified."""

    code = "PLAN_LOCKED"


class AcceptanceFinalizedError(TreatmentError):
    """A fully signed case acceptance can only be withdrawn."""

    code = "ACCEPTANCE_FINALIZED"


class AcceptanceStateError(TreatmentError):
    """Plan is not in a state that allows a case acceptance."""

    code = "INVALID_PLAN_STATUS"


class OptionStateError(TreatmentError):
    """Treatment option cannot be changed in its current status."""

    code = "INVALID_OPTION_STATUS"
