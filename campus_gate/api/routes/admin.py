# =======================================================================================
# campus_gate/api/routes/admin.py - Administration Endpoints
# =======================================================================================
from fastapi import APIRouter, Depends
from sqlalchemy import text
from ...models.enums import Role
from ...models.schemas import (
    Actor,
    BanRequest,
    BanResponse,
    CreateAccountRequest,
    CreateAccountResponse,
)
from ...services import Services
from ...utils.exceptions import ValidationError
from ..dependencies import get_services, require_roles

router = APIRouter()
admin_only = require_roles(Role.ADMIN)


@router.post("/admin/accounts", response_model=CreateAccountResponse, status_code=201)
def create_account(
    request: CreateAccountRequest,
    actor: Actor = Depends(admin_only),
    services: Services = Depends(get_services),
):
    is_student = request.role == Role.STUDENT.value
    if is_student and request.student is None:
        raise ValidationError("Student accounts need a student profile")

    with services.db.get_connection() as conn:
        existing = conn.execute(
            text("SELECT id FROM accounts WHERE username = :u"), {"u": request.username}
        ).first()
        if existing:
            raise ValidationError("Username already exists")

        account_id = services.auth.create_account(
            conn, request.username, request.password, request.role,
            display_name=request.display_name, department=request.department,
        )
        student_id = None
        if is_student:
            profile = request.student
            student_id = services.identity.create_student(
                conn, profile.name, profile.roll_number,
                account_id=account_id,
                department=request.department,
                room_number=profile.room_number,
                contact_number=profile.contact_number,
                photo_url=profile.photo_url,
            )

    return CreateAccountResponse(
        account_id=account_id,
        username=request.username,
        role=request.role,
        student_id=student_id,
    )


@router.post("/admin/students/{student_id}/ban", response_model=BanResponse)
def set_ban(
    student_id: int,
    request: BanRequest,
    actor: Actor = Depends(admin_only),
    services: Services = Depends(get_services),
):
    return services.identity.set_ban(actor, student_id, request.banned, request.reason)
