# =======================================================================================
# campus_gate/api/routes/auth.py - Authentication Endpoints
# =======================================================================================
from fastapi import APIRouter, Depends
from sqlalchemy.engine import Connection
from ...models.schemas import LoginRequest, LoginResponse
from ...services import Services
from ...utils.exceptions import Unauthorized
from ..dependencies import get_bearer_token, get_db_connection, get_services

router = APIRouter()


@router.post("/auth/login", response_model=LoginResponse)
def login(
    request: LoginRequest,
    conn: Connection = Depends(get_db_connection),
    services: Services = Depends(get_services),
):
    account = services.auth.authenticate(conn, request.username, request.password)
    if not account:
        raise Unauthorized("Invalid username or password")

    token, expires_at = services.auth.create_session(conn, account["id"])
    actor = services.auth.resolve_session(conn, token)
    return LoginResponse(
        token=token,
        role=actor.role,
        account_id=actor.account_id,
        student_id=actor.student_id,
        expires_at=expires_at,
    )


@router.post("/auth/logout")
def logout(
    token: str = Depends(get_bearer_token),
    conn: Connection = Depends(get_db_connection),
    services: Services = Depends(get_services),
):
    services.auth.revoke_session(conn, token)
    return {"message": "Logged out"}
