# =======================================================================================
# campus_gate/services/gatepass_service.py - Gate-Pass Records & Approval Pipeline
# =======================================================================================
"""
Local and outstation applications share one shape at the edges (a gate-pass
number, planned out/in times, a final status, a utilization flag) and differ
only in how they get approved. Rows carry a ``kind`` tag and
:func:`final_status` projects both onto pending/approved/rejected.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import Connection

from ..config import config
from ..database import DatabaseManager
from ..models.enums import (
    LOCAL_PREFIX, OUTSTATION_PREFIX, OUTSTATION_STAGES, STAGE_COLUMNS, STAGE_COMPLETED, Role,
)
from ..models.schemas import (
    Actor, GatePassSummary, GatePassView, LocalGatePassRequest, OutstationGatePassRequest,
    StageView,
)
from ..utils.exceptions import (
    Conflict, Forbidden, InvariantViolation, NotEligible, NotFound, ValidationError,
)
from ..utils.timeutil import Clock, planned_datetime, utcnow
from ..utils.validators import FormValidator
from .identity_service import IdentityService
from .notification_service import NotificationHub

logger = logger.bind(module="gatepass")

TABLES = {"local": "local_gatepasses", "outstation": "outstation_gatepasses"}


# ----------------------------------------------------------------------
# Variant helpers
# ----------------------------------------------------------------------
def kind_of(gate_pass_no: str) -> str:
    if gate_pass_no.startswith(OUTSTATION_PREFIX):
        return "outstation"
    if gate_pass_no.startswith(LOCAL_PREFIX):
        return "local"
    raise NotFound("Unknown gate pass number")


def final_status(gp: Dict[str, Any]) -> str:
    """Common pending/approved/rejected projection of both variants."""
    if gp["kind"] == "local":
        return {"approved": "approved", "denied": "rejected"}.get(gp["status"], "pending")

    stage_statuses = [gp[f"{STAGE_COLUMNS[s]}_status"] for s in OUTSTATION_STAGES]
    if "rejected" in stage_statuses:
        return "rejected"
    if gp["hod_status"] == "approved":
        return "approved"
    return "pending"


def pass_place(gp: Dict[str, Any]) -> str:
    return gp["place"] if gp["kind"] == "local" else gp["address"]


def pass_purpose(gp: Dict[str, Any]) -> str:
    return gp["purpose"] if gp["kind"] == "local" else gp["reason_of_leave"]


def planned_out(gp: Dict[str, Any]) -> datetime:
    return planned_datetime(gp["date_out"], gp["time_out"])


def planned_in(gp: Dict[str, Any]) -> datetime:
    return planned_datetime(gp["date_in"], gp["time_in"])


def is_expired(gp: Dict[str, Any], now: datetime) -> bool:
    """Exit leg closes once the planned return time has passed."""
    return now >= planned_in(gp)


def fetch_gatepass(conn: Connection, gate_pass_no: str) -> Dict[str, Any]:
    kind = kind_of(gate_pass_no)
    row = conn.execute(
        text(f"SELECT * FROM {TABLES[kind]} WHERE gate_pass_no = :no"),
        {"no": gate_pass_no},
    ).mappings().first()
    if not row:
        raise NotFound("Gate pass not found")
    return {**row, "kind": kind}


def summarize(gp: Dict[str, Any]) -> GatePassSummary:
    return GatePassSummary(
        gate_pass_no=gp["gate_pass_no"],
        kind=gp["kind"],
        place=pass_place(gp),
        purpose=pass_purpose(gp),
        planned_out=planned_out(gp),
        planned_in=planned_in(gp),
    )


def to_view(gp: Dict[str, Any], now: datetime) -> GatePassView:
    stages = None
    if gp["kind"] == "outstation":
        stages = {
            stage: StageView(
                status=gp[f"{col}_status"],
                decided_at=gp[f"{col}_decided_at"],
                decided_by=gp[f"{col}_decided_by"],
                note=gp[f"{col}_note"],
            )
            for stage, col in STAGE_COLUMNS.items()
        }
    status = final_status(gp)
    return GatePassView(
        id=gp["id"],
        gate_pass_no=gp["gate_pass_no"],
        kind=gp["kind"],
        student_id=gp["student_id"],
        final_status=status,
        status=gp["status"] if gp["kind"] == "local" else gp["final_status"],
        current_stage=gp.get("current_stage"),
        stages=stages,
        place=pass_place(gp),
        purpose=pass_purpose(gp),
        planned_out=planned_out(gp),
        planned_in=planned_in(gp),
        utilized=bool(gp["utilized"]),
        utilization_status=gp["utilization_status"],
        expired=status == "approved" and not gp["utilized"] and is_expired(gp, now),
        rejection_reason=gp.get("rejection_reason"),
        created_at=gp["created_at"],
    )


# ----------------------------------------------------------------------
# Eligibility and utilization (used by token issuance and decisions)
# ----------------------------------------------------------------------
def check_exit_eligible(gp: Dict[str, Any], student_id: int, now: datetime) -> None:
    if gp["student_id"] != student_id:
        raise NotFound("Gate pass not found")
    if final_status(gp) != "approved":
        raise NotEligible("Gate pass is not approved")
    if gp["utilized"]:
        raise NotEligible("Gate pass has already been utilized")
    if gp["utilization_status"] != "pending":
        raise NotEligible("Gate pass is already in use")
    if is_expired(gp, now):
        raise NotEligible("Gate pass has expired")
    if config.EXIT_LEAD_MINUTES is not None:
        opens_at = planned_out(gp) - timedelta(minutes=config.EXIT_LEAD_MINUTES)
        if now < opens_at:
            raise NotEligible(
                f"Exit QR can only be generated {config.EXIT_LEAD_MINUTES} minutes "
                f"before the scheduled exit time"
            )


def mark_exit(conn: Connection, gate_pass_no: str, now: datetime) -> None:
    """Gate pass leaves campus with the student: pending -> in_use."""
    result = conn.execute(
        text(f"""
            UPDATE {TABLES[kind_of(gate_pass_no)]}
            SET utilization_status = 'in_use', actual_exit_at = :now, version = version + 1
            WHERE gate_pass_no = :no AND utilization_status = 'pending' AND utilized = :false
        """),
        {"no": gate_pass_no, "now": now, "false": False},
    )
    if result.rowcount != 1:
        raise Conflict("Gate pass was used concurrently")


def mark_utilized(conn: Connection, gate_pass_no: str, now: datetime) -> None:
    """Return leg: flips ``utilized`` exactly once."""
    result = conn.execute(
        text(f"""
            UPDATE {TABLES[kind_of(gate_pass_no)]}
            SET utilized = :true, utilization_status = 'completed',
                actual_entry_at = :now, version = version + 1
            WHERE gate_pass_no = :no AND utilized = :false
        """),
        {"no": gate_pass_no, "now": now, "true": True, "false": False},
    )
    if result.rowcount != 1:
        logger.error(f"Gate pass {gate_pass_no} already utilized while student was out on it")
        raise InvariantViolation(f"Gate pass {gate_pass_no} already utilized")


class GatePassService:
    """Applications and their approval pipelines."""

    def __init__(self, db: DatabaseManager, identity: IdentityService,
                 hub: NotificationHub, clock: Clock = utcnow):
        self.db = db
        self.identity = identity
        self.hub = hub
        self.clock = clock

    # ----------------- applying -----------------
    def _assign_number(self, conn: Connection, kind: str, row_id: int) -> str:
        prefix = LOCAL_PREFIX if kind == "local" else OUTSTATION_PREFIX
        gate_pass_no = f"{prefix}{row_id:05d}"
        conn.execute(
            text(f"UPDATE {TABLES[kind]} SET gate_pass_no = :no WHERE id = :id"),
            {"no": gate_pass_no, "id": row_id},
        )
        return gate_pass_no

    def apply_local(self, actor: Actor, form: LocalGatePassRequest) -> GatePassView:
        FormValidator.validate_consent(form.consent)
        contact = FormValidator.validate_contact(form.contact)
        FormValidator.validate_schedule(form.date_out, form.time_out, form.date_in, form.time_in)
        place = FormValidator.require_text(form.place, "place")
        purpose = FormValidator.require_text(form.purpose, "purpose")

        now = self.clock()
        with self.db.get_connection() as conn:
            student = self.identity.resolve(conn, actor)
            result = conn.execute(
                text("""
                    INSERT INTO local_gatepasses (student_id, place, purpose, semester, contact,
                        date_out, time_out, date_in, time_in, status, utilized,
                        utilization_status, version, created_at)
                    VALUES (:sid, :place, :purpose, :semester, :contact, :date_out, :time_out,
                        :date_in, :time_in, 'pending', :false, 'pending', 0, :now)
                """),
                {
                    "sid": student["id"], "place": place, "purpose": purpose,
                    "semester": form.semester, "contact": contact,
                    "date_out": form.date_out, "time_out": form.time_out,
                    "date_in": form.date_in, "time_in": form.time_in,
                    "false": False, "now": now,
                },
            )
            gate_pass_no = self._assign_number(conn, "local", result.lastrowid)
            gp = fetch_gatepass(conn, gate_pass_no)

        logger.info(f"Student {student['id']} applied for local gate pass {gate_pass_no}")
        self.hub.notify(student["id"], "activity",
                        {"event": "gatepass_applied", "gate_pass_no": gate_pass_no})
        return to_view(gp, now)

    def apply_outstation(self, actor: Actor, form: OutstationGatePassRequest) -> GatePassView:
        FormValidator.validate_consent(form.consent)
        contact = FormValidator.validate_contact(form.contact)
        FormValidator.validate_schedule(form.date_out, form.time_out, form.date_in, form.time_in)
        FormValidator.validate_leave(form.leave_days, form.missed_days, form.classes_missed)
        address = FormValidator.require_text(form.address, "address")
        nature = FormValidator.require_text(form.nature_of_leave, "nature_of_leave")
        reason = FormValidator.require_text(form.reason_of_leave, "reason_of_leave")

        now = self.clock()
        with self.db.get_connection() as conn:
            student = self.identity.resolve(conn, actor)
            if not student["department"]:
                raise ValidationError("Student department is required for outstation leave")
            result = conn.execute(
                text("""
                    INSERT INTO outstation_gatepasses (student_id, department, contact, leave_days,
                        address, nature_of_leave, reason_of_leave, classes_missed, missed_days,
                        date_out, time_out, date_in, time_in, current_stage, final_status,
                        office_secretary_status, dugc_status, hod_status, utilized,
                        utilization_status, version, created_at)
                    VALUES (:sid, :dept, :contact, :leave_days, :address, :nature, :reason,
                        :classes_missed, :missed_days, :date_out, :time_out, :date_in, :time_in,
                        :first_stage, 'pending', 'pending', 'pending', 'pending', :false,
                        'pending', 0, :now)
                """),
                {
                    "sid": student["id"], "dept": student["department"], "contact": contact,
                    "leave_days": form.leave_days, "address": address, "nature": nature,
                    "reason": reason, "classes_missed": form.classes_missed,
                    "missed_days": form.missed_days,
                    "date_out": form.date_out, "time_out": form.time_out,
                    "date_in": form.date_in, "time_in": form.time_in,
                    "first_stage": OUTSTATION_STAGES[0], "false": False, "now": now,
                },
            )
            gate_pass_no = self._assign_number(conn, "outstation", result.lastrowid)
            gp = fetch_gatepass(conn, gate_pass_no)

        logger.info(f"Student {student['id']} applied for outstation gate pass {gate_pass_no}")
        self.hub.notify(student["id"], "activity",
                        {"event": "gatepass_applied", "gate_pass_no": gate_pass_no})
        return to_view(gp, now)

    # ----------------- reading -----------------
    def list_for_student(self, actor: Actor) -> List[GatePassView]:
        student_id = self.identity.require_student(actor)
        now = self.clock()
        views: List[GatePassView] = []
        with self.db.get_connection() as conn:
            for kind, table in TABLES.items():
                rows = conn.execute(
                    text(f"SELECT * FROM {table} WHERE student_id = :sid"),
                    {"sid": student_id},
                ).mappings().all()
                views.extend(to_view({**row, "kind": kind}, now) for row in rows)
        return sorted(views, key=lambda v: v.created_at, reverse=True)

    def pending_for_reviewer(self, actor: Actor) -> List[GatePassView]:
        """Applications waiting at the caller's stage."""
        now = self.clock()
        with self.db.get_connection() as conn:
            if actor.role == Role.HOSTEL_OFFICE.value:
                rows = conn.execute(
                    text("SELECT * FROM local_gatepasses WHERE status = 'pending' ORDER BY created_at"),
                ).mappings().all()
                return [to_view({**row, "kind": "local"}, now) for row in rows]

            if actor.role not in OUTSTATION_STAGES:
                raise Forbidden("Only reviewers have a pending queue")

            query = """
                SELECT * FROM outstation_gatepasses
                WHERE current_stage = :stage AND final_status = 'pending'
            """
            params: Dict[str, Any] = {"stage": actor.role}
            if actor.department:
                query += " AND department = :dept"
                params["dept"] = actor.department
            rows = conn.execute(text(query + " ORDER BY created_at"), params).mappings().all()
            return [to_view({**row, "kind": "outstation"}, now) for row in rows]

    # ----------------- deciding -----------------
    def decide(self, actor: Actor, gate_pass_no: str, outcome: str, stage: Optional[str] = None,
               note: Optional[str] = None, rejection_reason: Optional[str] = None) -> GatePassView:
        if outcome not in ("approve", "reject"):
            raise ValidationError("outcome must be approve or reject")
        if kind_of(gate_pass_no) == "local":
            return self._decide_local(actor, gate_pass_no, outcome)
        if stage is None and actor.role not in OUTSTATION_STAGES:
            raise Forbidden("Outstation gate passes are decided by the approval stages")
        return self._decide_outstation(actor, gate_pass_no, stage or actor.role, outcome,
                                       note, rejection_reason)

    def _decide_local(self, actor: Actor, gate_pass_no: str, outcome: str) -> GatePassView:
        if actor.role != Role.HOSTEL_OFFICE.value:
            raise Forbidden("Local gate passes are decided by the hostel office")

        now = self.clock()
        new_status = "approved" if outcome == "approve" else "denied"
        with self.db.get_connection() as conn:
            gp = fetch_gatepass(conn, gate_pass_no)
            if gp["status"] != "pending":
                raise Conflict("This gatepass has already been decided")
            result = conn.execute(
                text("""
                    UPDATE local_gatepasses
                    SET status = :status, decided_by = :by, decided_at = :now,
                        version = version + 1
                    WHERE id = :id AND status = 'pending'
                """),
                {"status": new_status, "by": actor.account_id, "now": now, "id": gp["id"]},
            )
            if result.rowcount != 1:
                raise Conflict("This gatepass has already been decided")
            gp = fetch_gatepass(conn, gate_pass_no)

        logger.info(f"Local gate pass {gate_pass_no} {new_status} by {actor.account_id}")
        self.hub.notify(gp["student_id"], "activity",
                        {"event": "gatepass_decided", "gate_pass_no": gate_pass_no,
                         "stage": Role.HOSTEL_OFFICE.value, "final_status": final_status(gp)})
        return to_view(gp, now)

    def _decide_outstation(self, actor: Actor, gate_pass_no: str, stage: str, outcome: str,
                           note: Optional[str], rejection_reason: Optional[str]) -> GatePassView:
        if stage not in OUTSTATION_STAGES:
            raise ValidationError(f"Unknown stage {stage}")
        if actor.role != stage:
            raise Forbidden(f"Only the {stage} reviewer can decide this stage")

        col = STAGE_COLUMNS[stage]
        now = self.clock()
        with self.db.get_connection() as conn:
            gp = fetch_gatepass(conn, gate_pass_no)
            if actor.department and gp["department"] != actor.department:
                raise Forbidden("You can only manage gatepasses from your department")
            if gp[f"{col}_status"] != "pending":
                raise Conflict(f"The {stage} stage has already been decided")
            if gp["final_status"] != "pending" or gp["current_stage"] != stage:
                raise Forbidden(f"This gatepass is not at the {stage} stage")

            reason = None
            if outcome == "reject":
                stage_status, next_stage, new_final = "rejected", STAGE_COMPLETED, "rejected"
                reason = (rejection_reason or "").strip() or None
            else:
                idx = OUTSTATION_STAGES.index(stage)
                is_last = idx == len(OUTSTATION_STAGES) - 1
                stage_status = "approved"
                next_stage = STAGE_COMPLETED if is_last else OUTSTATION_STAGES[idx + 1]
                new_final = "approved" if is_last else "pending"

            result = conn.execute(
                text(f"""
                    UPDATE outstation_gatepasses
                    SET {col}_status = :stage_status, {col}_decided_at = :now,
                        {col}_decided_by = :by, {col}_note = :note,
                        current_stage = :next_stage, final_status = :final,
                        rejection_reason = :reason, version = version + 1
                    WHERE id = :id AND version = :version
                """),
                {
                    "stage_status": stage_status, "now": now, "by": actor.account_id,
                    "note": (note or "").strip() or None, "next_stage": next_stage,
                    "final": new_final,
                    "reason": reason,
                    "id": gp["id"], "version": gp["version"],
                },
            )
            if result.rowcount != 1:
                raise Conflict("Gatepass was decided concurrently")
            gp = fetch_gatepass(conn, gate_pass_no)

        logger.info(f"Outstation gate pass {gate_pass_no}: {stage} {stage_status}, final={new_final}")
        self.hub.notify(gp["student_id"], "activity",
                        {"event": "gatepass_decided", "gate_pass_no": gate_pass_no,
                         "stage": stage, "final_status": new_final})
        return to_view(gp, now)
