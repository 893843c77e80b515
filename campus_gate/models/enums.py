# =======================================================================================
# campus_gate/models/enums.py - Enums and Constants
# =======================================================================================
from enum import Enum
from typing import Literal

# Type aliases for better type hints
Presence = Literal["inside", "outside"]
Direction = Literal["exit", "entry"]
Outcome = Literal["approve", "reject"]
PassKind = Literal["local", "outstation"]
FinalStatus = Literal["pending", "approved", "rejected"]
LocalStatus = Literal["pending", "approved", "denied"]
StageStatus = Literal["pending", "approved", "rejected"]
UtilizationStatus = Literal["pending", "in_use", "completed"]
TokenStatus = Literal[
    "pending", "approved", "rejected", "superseded", "dismissed", "expired", "conflict"
]
LogOutcome = Literal["approved", "denied", "conflict"]
EventKind = Literal["decision", "activity"]


class Role(str, Enum):
    """Account roles."""
    STUDENT = "student"
    GUARD = "guard"
    HOSTEL_OFFICE = "hostelOffice"
    OFFICE_SECRETARY = "officeSecretary"
    DUGC = "dugc"
    HOD = "hod"
    ADMIN = "admin"


# Outstation approval order; each stage is decided by the role of the same name.
OUTSTATION_STAGES = ("officeSecretary", "dugc", "hod")
STAGE_COMPLETED = "completed"

# Column prefix for each outstation stage.
STAGE_COLUMNS = {
    "officeSecretary": "office_secretary",
    "dugc": "dugc",
    "hod": "hod",
}

REVIEWER_ROLES = (Role.HOSTEL_OFFICE, Role.OFFICE_SECRETARY, Role.DUGC, Role.HOD)

LOCAL_PREFIX = "L-"
OUTSTATION_PREFIX = "OS-"
