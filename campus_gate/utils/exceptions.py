# =======================================================================================
# campus_gate/utils/exceptions.py - Custom Exceptions
# =======================================================================================
class GatePassError(Exception):
    """Base exception for the gate-pass engine."""
    status_code = 500
    code = "error"

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

class ValidationError(GatePassError):
    """Invalid request data."""
    status_code = 400
    code = "validation_error"

class Unauthorized(GatePassError):
    """Authentication required."""
    status_code = 401
    code = "unauthorized"

class Forbidden(GatePassError):
    """Caller is banned or not allowed to act."""
    status_code = 403
    code = "forbidden"

class InvalidState(GatePassError):
    """Requested direction does not match current presence."""
    status_code = 400
    code = "invalid_state"

class NotEligible(GatePassError):
    """Gate pass cannot be used for this request."""
    status_code = 400
    code = "not_eligible"

class NotFound(GatePassError):
    """Record not found."""
    status_code = 404
    code = "not_found"

class Expired(GatePassError):
    """Token expired, please reapply."""
    status_code = 410
    code = "expired"

class AlreadyUsed(GatePassError):
    """Token already used."""
    status_code = 410
    code = "already_used"

class Conflict(GatePassError):
    """Lost a concurrent update, please retry the flow."""
    status_code = 409
    code = "conflict"

class InvariantViolation(GatePassError):
    """Stored state violates an engine invariant."""
    status_code = 500
    code = "invariant_violation"


# Outcomes the caller is expected to handle by restarting the flow.
EXPECTED_ERRORS = (Conflict, Expired, AlreadyUsed)
