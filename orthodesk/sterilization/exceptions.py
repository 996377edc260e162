"""Exceptions for sterilization tracking."""

from orthodesk.core.exceptions import OrthodeskError


class SterilizationError(OrthodeskError):
    """Base exception for sterilization errors."""

    code = "STERILIZATION_ERROR"


class CycleStateError(SterilizationError):
    """Cycle is not in a state that allows this operation."""

    code = "INVALID_CYCLE_STATUS"


class CycleInUseError(SterilizationError):
    """Packages from this cycle were already used on patients."""

    code = "CYCLE_IN_USE"


class IndicatorStateError(SterilizationError):
    """Biological indicator has already been read."""

    code = "INVALID_INDICATOR_STATUS"


class PackageStateError(SterilizationError):
    """Package is not in a state that allows this operation."""

    code = "INVALID_PACKAGE_STATUS"


class PackageExpiredError(PackageStateError):
    """Package is past its expiration date."""

    code = "PACKAGE_EXPIRED"


class ReleaseBlockedError(SterilizationError):
    """Quarantined packages cannot be released while their cycle has a failed BI."""

    code = "RELEASE_BLOCKED"


class QRParseError(SterilizationError):
    """QR content is not in a recognised sterilization format."""

    code = "INVALID_QR"


class AutoclaveError(SterilizationError):
    """Autoclave could not be reached or returned unusable data."""

    code = "AUTOCLAVE_ERROR"


class AutoclaveDisabledError(AutoclaveError):
    """Autoclave integration is disabled."""

    code = "AUTOCLAVE_DISABLED"
