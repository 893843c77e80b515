# =======================================================================================
# campus_gate/api/routes/reviewer.py - Approval Pipeline Endpoints
# =======================================================================================
from fastapi import APIRouter, Depends
from ...models.enums import REVIEWER_ROLES
from ...models.schemas import Actor, GatePassListResponse, GatePassView, ReviewerDecisionRequest
from ...services import Services
from ..dependencies import get_services, require_roles

router = APIRouter()
reviewer_only = require_roles(*REVIEWER_ROLES)


@router.get("/reviewer/gatepasses/pending", response_model=GatePassListResponse)
def pending_gatepasses(
    actor: Actor = Depends(reviewer_only),
    services: Services = Depends(get_services),
):
    return GatePassListResponse(gatepasses=services.gatepasses.pending_for_reviewer(actor))


@router.post("/reviewer/gatepasses/{gate_pass_no}/decide", response_model=GatePassView)
def decide_gatepass(
    gate_pass_no: str,
    request: ReviewerDecisionRequest,
    actor: Actor = Depends(reviewer_only),
    services: Services = Depends(get_services),
):
    return services.gatepasses.decide(
        actor,
        gate_pass_no,
        request.outcome,
        stage=request.stage,
        note=request.note,
        rejection_reason=request.rejection_reason,
    )
