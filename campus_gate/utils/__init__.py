# =======================================================================================
# campus_gate/utils/__init__.py - Utils Package
# =======================================================================================
from .exceptions import *
from .validators import *

__all__ = [
    "GatePassError", "ValidationError", "Unauthorized", "Forbidden", "InvalidState",
    "NotEligible", "NotFound", "Expired", "AlreadyUsed", "Conflict",
    "InvariantViolation", "EXPECTED_ERRORS", "FormValidator",
]
