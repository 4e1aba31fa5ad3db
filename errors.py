class PlannerError(ValueError):
    """Base class for errors reported back to API callers."""

    kind = "error"


class ValidationError(PlannerError):
    """Malformed input: amount, date, month key or enumeration value."""

    kind = "validation_error"


class NotFoundError(PlannerError):
    kind = "not_found"


class InvalidStateError(PlannerError):
    """Input that is well-typed but contradicts the record's invariants."""

    kind = "invalid_state"
