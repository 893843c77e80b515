# =======================================================================================
# campus_gate/services/token_service.py - Token Issuance & Redemption
# =======================================================================================
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import Connection

from ..config import config
from ..database import DatabaseManager
from ..models.enums import Direction
from ..models.schemas import Actor, IssuedToken, StudentContext, TokenContext
from ..utils.exceptions import (
    AlreadyUsed, Conflict, Expired, InvalidState, NotEligible, NotFound, ValidationError,
)
from ..utils.security import (
    build_qr_payload, generate_raw_token, hash_token, parse_qr_payload, qr_data_uri,
)
from ..utils.timeutil import Clock, utcnow
from .gatepass_service import (
    check_exit_eligible, fetch_gatepass, pass_place, pass_purpose, summarize,
)
from .identity_service import IdentityService, fetch_student
from .presence_service import PresenceService

logger = logger.bind(module="tokens")

TOKEN_COLUMNS = """
    token_id, token_hash, student_id, direction, gate_pass_no, purpose, place,
    issued_at, expires_at, consumed, status, redeemed_at, decided_at, guard_id
"""


def fetch_token(conn: Connection, token_id: str) -> Dict[str, Any]:
    row = conn.execute(
        text(f"SELECT {TOKEN_COLUMNS} FROM qr_tokens WHERE token_id = :tid"),
        {"tid": token_id},
    ).mappings().first()
    if not row:
        raise NotFound("Invalid token")
    return dict(row)


def retire_token(conn: Connection, token_id: str, status: str, now,
                 guard_id: Optional[int] = None) -> bool:
    """Consume a token without effect. False if someone else consumed it first."""
    result = conn.execute(
        text("""
            UPDATE qr_tokens
            SET consumed = :true, status = :status, decided_at = :now,
                guard_id = COALESCE(:gid, guard_id)
            WHERE token_id = :tid AND consumed = :false
        """),
        {"true": True, "false": False, "status": status, "now": now,
         "gid": guard_id, "tid": token_id},
    )
    return result.rowcount == 1


def relabel_token(conn: Connection, token_id: str, status: str) -> None:
    """Change the final status of a token consumed in this transaction."""
    conn.execute(
        text("UPDATE qr_tokens SET status = :status WHERE token_id = :tid"),
        {"status": status, "tid": token_id},
    )


class TokenService:
    """Mints, supersedes and redeems single-use QR tokens."""

    def __init__(self, db: DatabaseManager, identity: IdentityService,
                 presence: PresenceService, clock: Clock = utcnow):
        self.db = db
        self.identity = identity
        self.presence = presence
        self.clock = clock

    # ----------------- issuance -----------------
    def _resolve_exit(self, conn: Connection, student: Dict[str, Any],
                      gate_pass_no: Optional[str], purpose: Optional[str],
                      place: Optional[str], now):
        if gate_pass_no:
            try:
                gp = fetch_gatepass(conn, gate_pass_no)
            except NotFound:
                raise NotEligible("Approved gatepass not found")
            check_exit_eligible(gp, student["id"], now)
            return gate_pass_no, pass_purpose(gp), pass_place(gp)

        purpose = (purpose or "").strip()
        place = (place or "").strip()
        if not purpose or not place:
            raise ValidationError("Purpose and place are required")
        return None, purpose, place

    def _resolve_entry(self, conn: Connection, student: Dict[str, Any],
                       gate_pass_no: Optional[str]):
        active = student["active_gate_pass_no"]
        if gate_pass_no and gate_pass_no != active:
            raise NotEligible("You did not leave campus on this gate pass")
        if active:
            gp = fetch_gatepass(conn, active)
            return active, pass_purpose(gp), pass_place(gp)

        self.presence.check_outside_fields(student)
        return None, student["out_purpose"], student["out_place"]

    def issue(self, actor: Actor, direction: Direction, gate_pass_no: Optional[str] = None,
              purpose: Optional[str] = None, place: Optional[str] = None) -> IssuedToken:
        """
        Mint a token for the caller's next gate crossing. Any earlier unused
        token is superseded, so the student never holds two live tokens.
        """
        now = self.clock()
        with self.db.get_connection() as conn:
            student = self.identity.resolve(conn, actor)

            expected = self.presence.next_action(student["presence"])
            if direction != expected:
                raise InvalidState(
                    f"Cannot request {direction} while {student['presence']}; next action is {expected}"
                )

            if direction == "exit":
                gp_no, purpose, place = self._resolve_exit(conn, student, gate_pass_no,
                                                           purpose, place, now)
            else:
                gp_no, purpose, place = self._resolve_entry(conn, student, gate_pass_no)

            # issuance order for this student; a concurrent issue loses here
            claimed = conn.execute(
                text("""
                    UPDATE students SET token_seq = token_seq + 1
                    WHERE id = :sid AND token_seq = :seq
                """),
                {"sid": student["id"], "seq": student["token_seq"]},
            )
            if claimed.rowcount != 1:
                raise Conflict("Another token request is in progress")

            under_review = conn.execute(
                text("""
                    SELECT token_id FROM qr_tokens
                    WHERE student_id = :sid AND consumed = :false
                      AND expires_at >= :now AND redeemed_at IS NOT NULL
                """),
                {"sid": student["id"], "false": False, "now": now},
            ).first()
            if under_review:
                raise Conflict("Your current QR is being reviewed at the gate")

            conn.execute(
                text("""
                    UPDATE qr_tokens
                    SET consumed = :true, decided_at = :now,
                        status = CASE WHEN expires_at < :now THEN 'expired' ELSE 'superseded' END
                    WHERE student_id = :sid AND consumed = :false
                """),
                {"true": True, "false": False, "now": now, "sid": student["id"]},
            )

            raw = generate_raw_token()
            token_id = uuid.uuid4().hex
            expires_at = now + timedelta(seconds=config.TOKEN_TTL_SECONDS)
            conn.execute(
                text("""
                    INSERT INTO qr_tokens (token_id, token_hash, student_id, direction, gate_pass_no,
                                           purpose, place, issued_at, expires_at, consumed, status)
                    VALUES (:tid, :hash, :sid, :dir, :gp, :purpose, :place, :now, :exp, :false, 'pending')
                """),
                {
                    "tid": token_id, "hash": hash_token(raw), "sid": student["id"],
                    "dir": direction, "gp": gp_no, "purpose": purpose, "place": place,
                    "now": now, "exp": expires_at, "false": False,
                },
            )

        logger.info(f"Issued {direction} token {token_id} for student {student['id']}"
                    + (f" on {gp_no}" if gp_no else ""))
        payload = build_qr_payload(raw, gp_no)
        return IssuedToken(
            token_id=token_id,
            qr_payload=payload,
            qr_data_url=qr_data_uri(payload),
            expires_at=expires_at,
            direction=direction,
            gate_pass_no=gp_no,
        )

    def cancel(self, actor: Actor) -> str:
        """Student dismisses their live QR."""
        student_id = self.identity.require_student(actor)
        now = self.clock()
        with self.db.get_connection() as conn:
            result = conn.execute(
                text("""
                    UPDATE qr_tokens
                    SET consumed = :true, status = 'dismissed', decided_at = :now
                    WHERE student_id = :sid AND consumed = :false AND expires_at >= :now
                """),
                {"true": True, "false": False, "now": now, "sid": student_id},
            )
            if result.rowcount == 0:
                raise NotFound("No active request to cancel")
        logger.debug(f"Student {student_id} dismissed their token")
        return "Request dismissed successfully"

    # ----------------- redemption -----------------
    def redeem(self, payload: str) -> TokenContext:
        """
        Guard scan. Returns what the guard needs to decide; the token stays
        unconsumed until the decision commits.
        """
        raw, _ = parse_qr_payload(payload)
        if not raw:
            raise ValidationError("Token is required")

        now = self.clock()
        with self.db.get_connection() as conn:
            row = conn.execute(
                text(f"SELECT {TOKEN_COLUMNS} FROM qr_tokens WHERE token_hash = :h"),
                {"h": hash_token(raw)},
            ).mappings().first()
            if not row:
                raise NotFound("Invalid token")
            if row["consumed"]:
                raise AlreadyUsed("Token already used")
            if row["expires_at"] < now:
                raise Expired("Token expired")

            conn.execute(
                text("""
                    UPDATE qr_tokens SET redeemed_at = :now
                    WHERE token_id = :tid AND consumed = :false
                """),
                {"now": now, "tid": row["token_id"], "false": False},
            )
            student = fetch_student(conn, row["student_id"])
            gatepass = summarize(fetch_gatepass(conn, row["gate_pass_no"])) if row["gate_pass_no"] else None

        return TokenContext(
            token_id=row["token_id"],
            direction=row["direction"],
            purpose=row["purpose"],
            place=row["place"],
            expires_at=row["expires_at"],
            gate_pass_no=row["gate_pass_no"],
            student=StudentContext(
                id=student["id"],
                name=student["name"],
                roll_number=student["roll_number"],
                photo_url=student["photo_url"],
                presence=student["presence"],
            ),
            gatepass=gatepass,
        )
