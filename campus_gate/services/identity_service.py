# =======================================================================================
# campus_gate/services/identity_service.py - Identity & Ban Gate
# =======================================================================================
from typing import Any, Dict, Optional
from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import Connection

from ..database import DatabaseManager
from ..models.enums import Role
from ..models.schemas import Actor, BanResponse
from ..utils.exceptions import Forbidden, NotFound, ValidationError
from ..utils.timeutil import Clock, utcnow
from .notification_service import NotificationHub

logger = logger.bind(module="identity")

STUDENT_COLUMNS = """
    id, account_id, name, roll_number, department, room_number, contact_number,
    photo_url, presence, active_gate_pass_no, out_place, out_purpose, out_time,
    is_banned, ban_reason, banned_at, version, token_seq
"""


def fetch_student(conn: Connection, student_id: int) -> Dict[str, Any]:
    """Load a student row or raise NotFound."""
    row = conn.execute(
        text(f"SELECT {STUDENT_COLUMNS} FROM students WHERE id = :sid"),
        {"sid": student_id},
    ).mappings().first()
    if not row:
        raise NotFound("Student not found")
    return dict(row)


class IdentityService:
    """Resolves the calling student and enforces the ban flag."""

    def __init__(self, db: DatabaseManager, hub: NotificationHub, clock: Clock = utcnow):
        self.db = db
        self.hub = hub
        self.clock = clock

    # ----------------- gate -----------------
    @staticmethod
    def require_student(actor: Actor) -> int:
        if actor.role != Role.STUDENT.value or actor.student_id is None:
            raise Forbidden("Only students can do this")
        return actor.student_id

    @staticmethod
    def check_not_banned(student: Dict[str, Any]) -> None:
        if student["is_banned"]:
            logger.warning(f"Banned student {student['id']} attempted a restricted action")
            raise Forbidden(
                "Your account has been suspended. You cannot apply for gatepasses or exit requests."
            )

    def resolve(self, conn: Connection, actor: Actor, check_ban: bool = True) -> Dict[str, Any]:
        """Resolve the caller's student record; banned students are refused."""
        student = fetch_student(conn, self.require_student(actor))
        if check_ban:
            self.check_not_banned(student)
        return student

    # ----------------- records -----------------
    def create_student(self, conn: Connection, name: str, roll_number: str,
                       account_id: Optional[int] = None, department: Optional[str] = None,
                       room_number: Optional[str] = None, contact_number: Optional[str] = None,
                       photo_url: Optional[str] = None) -> int:
        """Insert a student in the default state: inside, not banned."""
        result = conn.execute(
            text("""
                INSERT INTO students (account_id, name, roll_number, department, room_number,
                                      contact_number, photo_url, presence, is_banned,
                                      version, token_seq, created_at)
                VALUES (:aid, :name, :roll, :dept, :room, :contact, :photo, 'inside', :banned,
                        0, 0, :now)
            """),
            {
                "aid": account_id, "name": name, "roll": roll_number, "dept": department,
                "room": room_number, "contact": contact_number, "photo": photo_url,
                "banned": False, "now": self.clock(),
            },
        )
        return result.lastrowid

    # ----------------- ban toggle -----------------
    def set_ban(self, actor: Actor, student_id: int, banned: bool,
                reason: Optional[str] = None) -> BanResponse:
        """
        Ban or unban a student. Checked at call time by the gate above;
        tokens already issued are left to expire.
        """
        if actor.role != Role.ADMIN.value:
            raise Forbidden("Only administrators can change bans")
        reason = (reason or "").strip() or None
        if banned and not reason:
            raise ValidationError("A reason is required to ban a student")

        now = self.clock()
        with self.db.get_connection() as conn:
            fetch_student(conn, student_id)
            conn.execute(
                text("""
                    UPDATE students
                    SET is_banned = :banned, ban_reason = :reason,
                        banned_at = :at, banned_by = :by
                    WHERE id = :sid
                """),
                {
                    "banned": banned,
                    "reason": reason if banned else None,
                    "at": now if banned else None,
                    "by": actor.account_id if banned else None,
                    "sid": student_id,
                },
            )

        logger.info(f"Admin {actor.account_id} set ban={banned} for student {student_id}")
        response = BanResponse(
            student_id=student_id,
            is_banned=banned,
            ban_reason=reason if banned else None,
            banned_at=now if banned else None,
        )
        self.hub.notify(student_id, "activity",
                        {"event": "ban", "is_banned": banned, "reason": response.ban_reason})
        return response
