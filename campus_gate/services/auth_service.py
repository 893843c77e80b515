# =======================================================================================
# campus_gate/services/auth_service.py - Account Authentication
# =======================================================================================

from datetime import timedelta
from typing import Optional, Dict, Any, Tuple
from sqlalchemy import text
from sqlalchemy.engine import Connection
from passlib.context import CryptContext

from ..config import config
from ..models.enums import Role
from ..models.schemas import Actor
from ..utils.exceptions import Unauthorized, ValidationError
from ..utils.security import generate_raw_token, hash_token
from ..utils.timeutil import Clock, utcnow

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_ROLES = {r.value for r in Role}


class AuthService:
    """Handles account credentials and opaque session tokens."""

    def __init__(self, clock: Clock = utcnow):
        self.clock = clock

    def hash_password(self, password: str) -> str:
        return pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return pwd_context.verify(plain_password, hashed_password)

    def create_account(self, conn: Connection, username: str, password: str, role: str,
                       display_name: Optional[str] = None,
                       department: Optional[str] = None) -> int:
        if role not in _ROLES:
            raise ValidationError(f"Unknown role {role}")
        result = conn.execute(
            text(
                """
                INSERT INTO accounts (username, password_hash, role, display_name, department, created_at)
                VALUES (:username, :password_hash, :role, :display_name, :department, :now)
                """
            ),
            {
                "username": username,
                "password_hash": self.hash_password(password),
                "role": role,
                "display_name": display_name,
                "department": department,
                "now": self.clock(),
            },
        )
        return result.lastrowid

    def authenticate(
        self, conn: Connection, username: str, password: str
    ) -> Optional[Dict[str, Any]]:
        row = conn.execute(
            text(
                """
                SELECT id, username, password_hash, role
                FROM accounts
                WHERE username = :username
                """
            ),
            {"username": username},
        ).mappings().first()

        if not row:
            return None

        if not self.verify_password(password, row["password_hash"]):
            return None

        return {"id": row["id"], "username": row["username"], "role": row["role"]}

    def create_session(self, conn: Connection, account_id: int) -> Tuple[str, Any]:
        """Issue a bearer token; only its hash is stored."""
        raw = generate_raw_token()
        now = self.clock()
        expires_at = now + timedelta(hours=config.SESSION_TTL_HOURS)
        conn.execute(
            text(
                """
                INSERT INTO sessions (token_hash, account_id, created_at, expires_at)
                VALUES (:h, :aid, :now, :exp)
                """
            ),
            {"h": hash_token(raw), "aid": account_id, "now": now, "exp": expires_at},
        )
        return raw, expires_at

    def resolve_session(self, conn: Connection, raw_token: str) -> Actor:
        row = conn.execute(
            text(
                """
                SELECT a.id, a.username, a.role, a.department, s.expires_at, st.id AS student_id
                FROM sessions s
                JOIN accounts a ON a.id = s.account_id
                LEFT JOIN students st ON st.account_id = a.id
                WHERE s.token_hash = :h
                """
            ),
            {"h": hash_token(raw_token)},
        ).mappings().first()

        if not row or row["expires_at"] <= self.clock():
            raise Unauthorized("Session expired or invalid")

        return Actor(
            account_id=row["id"],
            username=row["username"],
            role=row["role"],
            department=row["department"],
            student_id=row["student_id"],
        )

    def revoke_session(self, conn: Connection, raw_token: str) -> None:
        conn.execute(
            text("DELETE FROM sessions WHERE token_hash = :h"),
            {"h": hash_token(raw_token)},
        )

    def ensure_admin(self, conn: Connection, username: str, password: str) -> Optional[int]:
        """Create the first admin account; no-op once any admin exists."""
        existing = conn.execute(
            text("SELECT id FROM accounts WHERE role = :role"),
            {"role": Role.ADMIN.value},
        ).first()
        if existing:
            return None
        return self.create_account(conn, username, password, Role.ADMIN.value,
                                   display_name="Administrator")
