# =======================================================================================
# campus_gate/models/schemas.py - Pydantic Models
# =======================================================================================
from datetime import datetime
from typing import Dict, Optional, List
from pydantic import BaseModel, Field
from .enums import (
    Presence, Direction, Outcome, PassKind, FinalStatus, StageStatus,
    UtilizationStatus, LogOutcome, EventKind,
)

# ========== Identity ==========

class Actor(BaseModel):
    """Authenticated caller resolved from a session token."""
    account_id: int
    username: str
    role: str
    department: Optional[str] = None
    student_id: Optional[int] = None


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    token: str
    role: str
    account_id: int
    student_id: Optional[int] = None
    expires_at: datetime


class BanRequest(BaseModel):
    banned: bool = True
    reason: Optional[str] = Field(None, max_length=500)


class BanResponse(BaseModel):
    student_id: int
    is_banned: bool
    ban_reason: Optional[str] = None
    banned_at: Optional[datetime] = None


class StudentProfile(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    roll_number: str = Field(..., min_length=1, max_length=40)
    room_number: Optional[str] = None
    contact_number: Optional[str] = None
    photo_url: Optional[str] = None


class CreateAccountRequest(BaseModel):
    """Admin-created account; students also get their student record."""
    username: str = Field(..., min_length=3, max_length=80)
    password: str = Field(..., min_length=6)
    role: str
    display_name: Optional[str] = None
    department: Optional[str] = None
    student: Optional[StudentProfile] = None


class CreateAccountResponse(BaseModel):
    account_id: int
    username: str
    role: str
    student_id: Optional[int] = None

# ========== Presence ==========

class PendingToken(BaseModel):
    token_id: str
    direction: Direction
    expires_at: datetime
    redeemed: bool = False


class StatusResponse(BaseModel):
    presence: Presence
    next_action: Direction
    active_gate_pass_no: Optional[str] = None
    out_place: Optional[str] = None
    out_purpose: Optional[str] = None
    out_time: Optional[datetime] = None
    is_banned: bool = False
    pending_token: Optional[PendingToken] = None

# ========== Gate passes ==========

class LocalGatePassRequest(BaseModel):
    """Local gate-pass application form."""
    place: str = Field(..., min_length=1, max_length=200)
    purpose: str = Field(..., min_length=1, max_length=200)
    semester: Optional[str] = Field(None, max_length=20)
    contact: str
    date_out: str = Field(..., description="YYYY-MM-DD")
    time_out: str = Field(..., description="HH:MM")
    date_in: str = Field(..., description="YYYY-MM-DD")
    time_in: str = Field(..., description="HH:MM")
    consent: bool = False


class OutstationGatePassRequest(BaseModel):
    """Outstation gate-pass application form."""
    contact: str
    leave_days: int
    address: str = Field(..., min_length=1, max_length=500)
    nature_of_leave: str = Field(..., min_length=1, max_length=100)
    reason_of_leave: str = Field(..., min_length=1)
    classes_missed: str = Field("no", description="yes | no")
    missed_days: int = 0
    date_out: str
    time_out: str
    date_in: str
    time_in: str
    consent: bool = False


class StageView(BaseModel):
    status: StageStatus
    decided_at: Optional[datetime] = None
    decided_by: Optional[int] = None
    note: Optional[str] = None


class GatePassView(BaseModel):
    id: int
    gate_pass_no: str
    kind: PassKind
    student_id: int
    final_status: FinalStatus
    status: str                         # variant's own status field
    current_stage: Optional[str] = None
    stages: Optional[Dict[str, StageView]] = None
    place: str
    purpose: str
    planned_out: datetime
    planned_in: datetime
    utilized: bool
    utilization_status: UtilizationStatus
    expired: bool = False
    rejection_reason: Optional[str] = None
    created_at: datetime


class GatePassListResponse(BaseModel):
    gatepasses: List[GatePassView]


class ReviewerDecisionRequest(BaseModel):
    outcome: Outcome
    stage: Optional[str] = Field(None, description="Outstation stage being decided")
    note: Optional[str] = None
    rejection_reason: Optional[str] = None

# ========== Tokens ==========

class TokenRequest(BaseModel):
    direction: Direction
    gate_pass_no: Optional[str] = None
    purpose: Optional[str] = Field(None, max_length=200)
    place: Optional[str] = Field(None, max_length=200)


class IssuedToken(BaseModel):
    token_id: str
    qr_payload: str
    qr_data_url: str
    expires_at: datetime
    direction: Direction
    gate_pass_no: Optional[str] = None


class ScanRequest(BaseModel):
    token: str = Field(..., min_length=1, description="Payload read from the QR")


class StudentContext(BaseModel):
    id: int
    name: str
    roll_number: str
    photo_url: Optional[str] = None
    presence: Presence


class GatePassSummary(BaseModel):
    gate_pass_no: str
    kind: PassKind
    place: str
    purpose: str
    planned_out: datetime
    planned_in: datetime


class TokenContext(BaseModel):
    token_id: str
    direction: Direction
    purpose: Optional[str] = None
    place: Optional[str] = None
    expires_at: datetime
    gate_pass_no: Optional[str] = None
    student: StudentContext
    gatepass: Optional[GatePassSummary] = None

# ========== Decisions ==========

class GuardDecisionRequest(BaseModel):
    token_id: str
    outcome: Outcome


class Receipt(BaseModel):
    token_id: Optional[str] = None
    student_id: int
    direction: Direction
    outcome: LogOutcome
    new_presence: Presence
    decided_at: datetime
    message: str


class ManualExitRequest(BaseModel):
    student_id: int
    purpose: str = Field(..., min_length=1, max_length=200)
    place: str = Field(..., min_length=1, max_length=200)


class ManualEntryRequest(BaseModel):
    student_id: int

# ========== Logs ==========

class GateLogItem(BaseModel):
    id: int
    student_id: int
    guard_id: Optional[int] = None
    token_id: Optional[str] = None
    direction: Direction
    outcome: LogOutcome
    purpose: Optional[str] = None
    place: Optional[str] = None
    gate_pass_no: Optional[str] = None
    manual: bool = False
    message: Optional[str] = None
    decided_at: datetime


class GateLogsResponse(BaseModel):
    logs: List[GateLogItem]

# ========== Notifications ==========

class Notification(BaseModel):
    type: EventKind
    payload: dict
    timestamp: datetime

# ========== Misc ==========

class ErrorResponse(BaseModel):
    message: str
    code: str


class HealthResponse(BaseModel):
    status: str                 # "ok" | "error"
    dataAvailable: bool
    message: Optional[str] = None
