# ================================================================================
# Exception hierarchy for snapback primer design
#
# Input validation failures, numerical failures of the melting temperature
# solver, convergence failure of the stem search and gateway failures are kept
# apart so callers can react to each differently.
# ================================================================================

from __future__ import annotations


class SnapbackError(Exception):
    """Base exception for all snapback design errors."""

    pass


class InputValidationError(SnapbackError, ValueError):
    """Raised when a caller-supplied value is malformed or out of range.

    Attributes:
        field: Name of the offending input.
        value: The rejected value, when useful for reporting.
    """

    def __init__(self, message: str, field: str | None = None, value: object = None):
        self.field = field
        self.value = value
        super().__init__(message)


class InvalidSequenceError(InputValidationError):
    """Raised when a sequence is not uppercase A/C/G/T DNA."""

    def __init__(self, sequence: object, field: str = "sequence"):
        preview = repr(sequence)
        if len(preview) > 60:
            preview = preview[:57] + "..."
        super().__init__(f"Invalid DNA sequence for {field}: {preview}", field, sequence)


class AmpliconTooLongError(InputValidationError):
    """Raised when the amplicon is longer than the supported maximum."""

    pass


class SNVTooCloseError(InputValidationError):
    """Raised when the SNV sits too close to a primer or a sequence edge."""

    pass


class MalformedTableKeyError(InputValidationError):
    """Raised when a thermodynamic table key cannot be parsed."""

    pass


class MissingTableEntryError(SnapbackError, LookupError):
    """Raised when a well-formed table key has no tabulated entry."""

    pass


class ThermodynamicsError(SnapbackError):
    """Base exception for melting temperature calculation failures."""

    pass


class InfiniteTmError(ThermodynamicsError):
    """Raised when the van't Hoff denominator is effectively zero."""

    pass


class NonPhysicalTmError(ThermodynamicsError):
    """Raised when a computed temperature is at or below absolute zero."""

    pass


class SnapbackTmNotReachedError(SnapbackError):
    """Raised when the stem search exhausts the allowed region.

    Attributes:
        target_tm: Requested wild-type melting temperature.
        best_tm: Highest wild-type melting temperature reached.
        start: Stem start when the search stopped.
        end: Stem end when the search stopped.
    """

    def __init__(self, target_tm: float, best_tm: float, start: int, end: int):
        self.target_tm = target_tm
        self.best_tm = best_tm
        self.start = start
        self.end = end
        super().__init__(
            f"Could not meet minimum snapback melting temperature of {target_tm} °C: "
            f"stem [{start}, {end}] fills the region between the primers and reaches "
            f"only {best_tm} °C"
        )


class GatewayError(SnapbackError):
    """Raised when the thermodynamics service cannot be reached or errors out."""

    pass


class ResponseParseError(GatewayError):
    """Raised when a thermodynamics service response lacks an expected field."""

    pass
