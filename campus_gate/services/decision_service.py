# =======================================================================================
# campus_gate/services/decision_service.py - Decision Engine
# =======================================================================================
from typing import Optional

from loguru import logger

from ..database import DatabaseManager
from ..models.enums import Outcome
from ..models.schemas import Receipt
from ..utils.exceptions import (
    AlreadyUsed, Conflict, Expired, GatePassError, InvalidState, ValidationError,
)
from ..utils.timeutil import Clock, utcnow
from .audit_service import AuditService
from .identity_service import fetch_student
from .notification_service import NotificationHub
from .presence_service import PresenceChanged, PresenceService, TransitionContext
from .token_service import fetch_token, relabel_token, retire_token

logger = logger.bind(module="decisions")


class DecisionService:
    """Applies guard decisions to redeemed tokens and records manual crossings."""

    def __init__(self, db: DatabaseManager, presence: PresenceService,
                 audit: AuditService, hub: NotificationHub, clock: Clock = utcnow):
        self.db = db
        self.presence = presence
        self.audit = audit
        self.hub = hub
        self.clock = clock

    def decide(self, token_id: str, guard_id: int, outcome: Outcome) -> Receipt:
        """
        Commit a guard's approve/reject. The token is consumed in the same
        transaction as the outcome, so of two guards deciding the same token
        exactly one gets past the consume step; the other sees AlreadyUsed.

        Failures found after the token is claimed (expiry, the student having
        crossed by another path) still retire the token and are raised only
        after the retirement commits. Nothing is retried.
        """
        if outcome not in ("approve", "reject"):
            raise ValidationError("decision must be approve or reject")

        now = self.clock()
        failure: Optional[GatePassError] = None
        with self.db.get_connection() as conn:
            token = fetch_token(conn, token_id)
            if token["consumed"]:
                raise AlreadyUsed("Token already used")
            student = fetch_student(conn, token["student_id"])
            direction = token["direction"]
            new_presence = student["presence"]

            if token["expires_at"] < now:
                status = "expired"
                failure = Expired("Token expired")
            elif outcome == "reject":
                status = "rejected"
            else:
                status = "approved"

            if not retire_token(conn, token_id, status, now, guard_id):
                raise AlreadyUsed("Token already used")

            if status == "approved":
                # place/purpose on a gate-pass token are copied from the pass
                if token["gate_pass_no"]:
                    context = TransitionContext(gate_pass_no=token["gate_pass_no"])
                else:
                    context = TransitionContext(place=token["place"], purpose=token["purpose"])
                try:
                    new_presence = self.presence.apply_transition(
                        conn, student, direction, context, now
                    )
                except (InvalidState, PresenceChanged) as e:
                    relabel_token(conn, token_id, "conflict")
                    status = "conflict"
                    failure = Conflict(f"Student state changed, please reapply ({e.message})")

            if status != "expired":
                log_outcome = {"approved": "approved", "rejected": "denied"}.get(status, "conflict")
                self.audit.record(
                    conn,
                    student_id=student["id"], direction=direction, outcome=log_outcome,
                    decided_at=now, guard_id=guard_id, token_id=token_id,
                    purpose=token["purpose"], place=token["place"],
                    gate_pass_no=token["gate_pass_no"],
                )

        payload = {
            "token_id": token_id,
            "direction": direction,
            "outcome": status,
            "presence": new_presence,
        }
        self.hub.notify(student["id"], "decision", payload)

        if failure is not None:
            logger.info(f"Token {token_id} not applied: {failure.code}")
            raise failure

        logger.info(f"Guard {guard_id} {status} {direction} for student {student['id']}")
        return Receipt(
            token_id=token_id,
            student_id=student["id"],
            direction=direction,
            outcome="approved" if status == "approved" else "denied",
            new_presence=new_presence,
            decided_at=now,
            message="Approved" if status == "approved" else "Rejected",
        )

    # ----------------- manual crossings -----------------
    def _manual(self, student_id: int, guard_id: int, direction: str,
                purpose: Optional[str] = None, place: Optional[str] = None) -> Receipt:
        now = self.clock()
        with self.db.get_connection() as conn:
            student = fetch_student(conn, student_id)
            if direction == "entry":
                purpose, place = student["out_purpose"], student["out_place"]
                gate_pass_no = student["active_gate_pass_no"]
                context = TransitionContext()
            else:
                gate_pass_no = None
                context = TransitionContext(place=place, purpose=purpose)

            new_presence = self.presence.apply_transition(conn, student, direction, context, now)
            self.audit.record(
                conn,
                student_id=student_id, direction=direction, outcome="approved",
                decided_at=now, guard_id=guard_id, purpose=purpose, place=place,
                gate_pass_no=gate_pass_no, manual=True,
            )

        logger.info(f"Guard {guard_id} recorded manual {direction} for student {student_id}")
        self.hub.notify(student_id, "decision",
                        {"direction": direction, "outcome": "approved",
                         "presence": new_presence, "manual": True})
        return Receipt(
            student_id=student_id,
            direction=direction,
            outcome="approved",
            new_presence=new_presence,
            decided_at=now,
            message=f"Manual {direction} recorded successfully",
        )

    def manual_exit(self, student_id: int, guard_id: int, purpose: str, place: str) -> Receipt:
        purpose, place = (purpose or "").strip(), (place or "").strip()
        if not purpose or not place:
            raise ValidationError("studentId, purpose and place are required")
        return self._manual(student_id, guard_id, "exit", purpose=purpose, place=place)

    def manual_entry(self, student_id: int, guard_id: int) -> Receipt:
        return self._manual(student_id, guard_id, "entry")
