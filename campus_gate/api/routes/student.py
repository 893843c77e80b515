# =======================================================================================
# campus_gate/api/routes/student.py - Student Endpoints
# =======================================================================================
from fastapi import APIRouter, Depends
from ...models.enums import Role
from ...models.schemas import (
    Actor,
    GateLogsResponse,
    GatePassListResponse,
    GatePassView,
    IssuedToken,
    LocalGatePassRequest,
    OutstationGatePassRequest,
    StatusResponse,
    TokenRequest,
)
from ...services import Services
from ..dependencies import get_services, require_roles

router = APIRouter()
student_only = require_roles(Role.STUDENT)


# ---- applications ----

@router.post("/student/gatepasses/local", response_model=GatePassView, status_code=201)
def apply_local(
    request: LocalGatePassRequest,
    actor: Actor = Depends(student_only),
    services: Services = Depends(get_services),
):
    return services.gatepasses.apply_local(actor, request)


@router.post("/student/gatepasses/outstation", response_model=GatePassView, status_code=201)
def apply_outstation(
    request: OutstationGatePassRequest,
    actor: Actor = Depends(student_only),
    services: Services = Depends(get_services),
):
    return services.gatepasses.apply_outstation(actor, request)


@router.get("/student/gatepasses", response_model=GatePassListResponse)
def list_gatepasses(
    actor: Actor = Depends(student_only),
    services: Services = Depends(get_services),
):
    return GatePassListResponse(gatepasses=services.gatepasses.list_for_student(actor))


# ---- presence and tokens ----

@router.get("/student/status", response_model=StatusResponse)
def get_status(
    actor: Actor = Depends(student_only),
    services: Services = Depends(get_services),
):
    return services.presence.get_status(services.identity.require_student(actor))


@router.post("/student/token", response_model=IssuedToken)
def request_token(
    request: TokenRequest,
    actor: Actor = Depends(student_only),
    services: Services = Depends(get_services),
):
    return services.tokens.issue(
        actor, request.direction, request.gate_pass_no, request.purpose, request.place
    )


@router.post("/student/token/cancel")
def cancel_token(
    actor: Actor = Depends(student_only),
    services: Services = Depends(get_services),
):
    return {"message": services.tokens.cancel(actor)}


@router.get("/student/logs", response_model=GateLogsResponse)
def list_logs(
    actor: Actor = Depends(student_only),
    services: Services = Depends(get_services),
):
    student_id = services.identity.require_student(actor)
    with services.db.get_connection() as conn:
        logs = services.audit.list_for_student(conn, student_id)
    return GateLogsResponse(logs=logs)
