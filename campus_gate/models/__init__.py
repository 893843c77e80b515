# =======================================================================================
# campus_gate/models/__init__.py - Models Package
# =======================================================================================
from .schemas import *
from .enums import *

__all__ = [
    "Actor", "StatusResponse", "GatePassView", "IssuedToken", "TokenContext",
    "Receipt", "GateLogItem", "Notification", "Presence", "Direction", "Outcome",
    "PassKind", "FinalStatus", "Role", "OUTSTATION_STAGES", "STAGE_COLUMNS",
]
