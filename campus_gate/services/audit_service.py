# =======================================================================================
# campus_gate/services/audit_service.py - Gate Log (audit trail)
# =======================================================================================
from datetime import datetime
from typing import List, Optional
from sqlalchemy import text
from sqlalchemy.engine import Connection

from ..models.schemas import GateLogItem


class AuditService:
    """Append-only gate log; one row per guard decision or manual transition."""

    @staticmethod
    def record(conn: Connection, *, student_id: int, direction: str, outcome: str,
               decided_at: datetime, guard_id: Optional[int] = None,
               token_id: Optional[str] = None, purpose: Optional[str] = None,
               place: Optional[str] = None, gate_pass_no: Optional[str] = None,
               manual: bool = False, message: Optional[str] = None) -> int:
        result = conn.execute(
            text("""
                INSERT INTO gate_logs (student_id, guard_id, token_id, direction, outcome,
                                       purpose, place, gate_pass_no, manual, message, decided_at)
                VALUES (:sid, :gid, :tid, :dir, :outcome, :purpose, :place, :gp, :manual, :msg, :at)
            """),
            {
                "sid": student_id, "gid": guard_id, "tid": token_id, "dir": direction,
                "outcome": outcome, "purpose": purpose, "place": place, "gp": gate_pass_no,
                "manual": manual, "msg": message, "at": decided_at,
            },
        )
        return result.lastrowid

    def list_for_student(self, conn: Connection, student_id: int, limit: int = 100) -> List[GateLogItem]:
        rows = conn.execute(
            text("""
                SELECT id, student_id, guard_id, token_id, direction, outcome, purpose,
                       place, gate_pass_no, manual, message, decided_at
                FROM gate_logs
                WHERE student_id = :sid
                ORDER BY decided_at DESC, id DESC
                LIMIT :limit
            """),
            {"sid": student_id, "limit": limit},
        ).mappings().all()
        return [GateLogItem(**{**row, "manual": bool(row["manual"])}) for row in rows]
