# =======================================================================================
# campus_gate/api/routes/guard.py - Gate Endpoints
# =======================================================================================
from fastapi import APIRouter, Depends
from ...models.enums import Role
from ...models.schemas import (
    Actor,
    GuardDecisionRequest,
    ManualEntryRequest,
    ManualExitRequest,
    Receipt,
    ScanRequest,
    TokenContext,
)
from ...services import Services
from ..dependencies import get_services, require_roles

router = APIRouter()
guard_only = require_roles(Role.GUARD)


@router.post("/guard/scan", response_model=TokenContext)
def scan_token(
    request: ScanRequest,
    actor: Actor = Depends(guard_only),
    services: Services = Depends(get_services),
):
    """Look up a scanned QR; nothing is consumed until the guard decides."""
    return services.tokens.redeem(request.token)


@router.post("/guard/decide", response_model=Receipt)
def decide_token(
    request: GuardDecisionRequest,
    actor: Actor = Depends(guard_only),
    services: Services = Depends(get_services),
):
    return services.decisions.decide(request.token_id, actor.account_id, request.outcome)


@router.post("/guard/manual-exit", response_model=Receipt)
def manual_exit(
    request: ManualExitRequest,
    actor: Actor = Depends(guard_only),
    services: Services = Depends(get_services),
):
    return services.decisions.manual_exit(
        request.student_id, actor.account_id, request.purpose, request.place
    )


@router.post("/guard/manual-entry", response_model=Receipt)
def manual_entry(
    request: ManualEntryRequest,
    actor: Actor = Depends(guard_only),
    services: Services = Depends(get_services),
):
    return services.decisions.manual_entry(request.student_id, actor.account_id)
