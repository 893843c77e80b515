# =======================================================================================
# campus_gate/services/presence_service.py - Presence Ledger
# =======================================================================================
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import Connection

from ..database import DatabaseManager
from ..models.enums import Direction, Presence
from ..models.schemas import PendingToken, StatusResponse
from ..utils.exceptions import Conflict, InvalidState, InvariantViolation
from ..utils.timeutil import Clock, utcnow
from .gatepass_service import mark_exit, mark_utilized
from .identity_service import fetch_student

logger = logger.bind(module="presence")


class PresenceChanged(Conflict):
    """Student row changed between read and write; nothing was written."""


class TransitionContext:
    """What the student is leaving for: a gate pass, or a place and purpose."""

    def __init__(self, gate_pass_no: Optional[str] = None,
                 place: Optional[str] = None, purpose: Optional[str] = None):
        self.gate_pass_no = gate_pass_no
        self.place = place
        self.purpose = purpose


class PresenceService:
    """Per-student inside/outside state."""

    def __init__(self, db: DatabaseManager, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    @staticmethod
    def next_action(presence: Presence) -> Direction:
        return "exit" if presence == "inside" else "entry"

    @staticmethod
    def determine_transition(current: Presence, direction: Direction) -> Tuple[Presence, Presence]:
        """Return (expected_current, new_presence) or raise InvalidState."""
        if direction != PresenceService.next_action(current):
            raise InvalidState(
                "You are already outside campus" if current == "outside"
                else "You are already inside campus"
            )
        return current, ("outside" if direction == "exit" else "inside")

    @staticmethod
    def check_outside_fields(student: Dict[str, Any]) -> None:
        """Outside means exactly one of: a gate pass, or a normal-exit place/purpose."""
        if student["presence"] != "outside":
            return
        has_pass = bool(student["active_gate_pass_no"])
        has_normal = bool(student["out_place"] or student["out_purpose"])
        if has_pass == has_normal:
            logger.error(f"Student {student['id']} is outside with inconsistent exit fields")
            raise InvariantViolation("Student outside state is inconsistent")

    # ----------------- reading -----------------
    def get_status(self, student_id: int) -> StatusResponse:
        """Pure read; safe to poll."""
        now = self.clock()
        with self.db.get_connection() as conn:
            student = fetch_student(conn, student_id)
            pending = conn.execute(
                text("""
                    SELECT token_id, direction, expires_at, redeemed_at
                    FROM qr_tokens
                    WHERE student_id = :sid AND consumed = :false AND expires_at >= :now
                    ORDER BY issued_at DESC
                """),
                {"sid": student_id, "false": False, "now": now},
            ).mappings().first()

        return StatusResponse(
            presence=student["presence"],
            next_action=self.next_action(student["presence"]),
            active_gate_pass_no=student["active_gate_pass_no"],
            out_place=student["out_place"],
            out_purpose=student["out_purpose"],
            out_time=student["out_time"],
            is_banned=bool(student["is_banned"]),
            pending_token=PendingToken(
                token_id=pending["token_id"],
                direction=pending["direction"],
                expires_at=pending["expires_at"],
                redeemed=pending["redeemed_at"] is not None,
            ) if pending else None,
        )

    # ----------------- writing (Decision Engine only) -----------------
    def apply_transition(self, conn: Connection, student: Dict[str, Any], direction: Direction,
                         context: TransitionContext, now: datetime) -> Presence:
        """
        Move a student across the gate. ``student`` is the row as read by the
        caller; the write only lands if nobody changed the row since then.
        """
        expected, new_presence = self.determine_transition(student["presence"], direction)

        if direction == "exit":
            if bool(context.gate_pass_no) == bool(context.place or context.purpose):
                raise InvariantViolation("Exit needs either a gate pass or a place and purpose")
            params = {
                "presence": new_presence,
                "gp": context.gate_pass_no,
                "place": None if context.gate_pass_no else context.place,
                "purpose": None if context.gate_pass_no else context.purpose,
                "out_time": now,
            }
        else:
            self.check_outside_fields(student)
            params = {"presence": new_presence, "gp": None, "place": None,
                      "purpose": None, "out_time": None}

        result = conn.execute(
            text("""
                UPDATE students
                SET presence = :presence, active_gate_pass_no = :gp,
                    out_place = :place, out_purpose = :purpose, out_time = :out_time,
                    version = version + 1
                WHERE id = :sid AND version = :version AND presence = :expected
            """),
            {**params, "sid": student["id"], "version": student["version"], "expected": expected},
        )
        if result.rowcount != 1:
            raise PresenceChanged("Student presence changed concurrently")

        if direction == "exit" and context.gate_pass_no:
            mark_exit(conn, context.gate_pass_no, now)
        elif direction == "entry" and student["active_gate_pass_no"]:
            mark_utilized(conn, student["active_gate_pass_no"], now)

        logger.debug(f"Student {student['id']}: {expected} -> {new_presence}")
        return new_presence
