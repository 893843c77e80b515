# =======================================================================================
# campus_gate/main.py - FastAPI Application Entry Point
# =======================================================================================
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from .config import config
from .api.routes.admin import router as admin_router
from .api.routes.auth import router as auth_router
from .api.routes.guard import router as guard_router
from .api.routes.notifications import router as notifications_router
from .api.routes.reviewer import router as reviewer_router
from .api.routes.student import router as student_router
from .database import DatabaseManager
from .models.schemas import ErrorResponse, HealthResponse
from .services import Services
from .utils.exceptions import EXPECTED_ERRORS, GatePassError, InvariantViolation
from .utils.log import setup_logging
from .utils.timeutil import Clock, utcnow

logger = logger.bind(module="api")


def create_app(db: Optional[DatabaseManager] = None, clock: Clock = utcnow) -> FastAPI:
    setup_logging()
    db = db or DatabaseManager()
    db.create_schema()

    services = Services(db, clock)
    if config.ADMIN_USERNAME and config.ADMIN_PASSWORD:
        with db.get_connection() as conn:
            if services.auth.ensure_admin(conn, config.ADMIN_USERNAME, config.ADMIN_PASSWORD):
                logger.info(f"Created administrator account {config.ADMIN_USERNAME}")

    app = FastAPI(
        title="Campus Gate-Pass API",
        version="1.0.0",
        description="Gate-pass approvals and single-use QR tokens for campus exit and entry",
        debug=config.API_DEBUG,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GatePassError)
    async def gatepass_error_handler(request: Request, exc: GatePassError):
        if isinstance(exc, InvariantViolation):
            logger.error(f"{request.method} {request.url.path}: {exc.message}")
        elif isinstance(exc, EXPECTED_ERRORS):
            logger.info(f"{request.method} {request.url.path}: {exc.code} ({exc.message})")
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(message=exc.message, code=exc.code).model_dump(),
        )

    # Routers
    app.include_router(auth_router, prefix="/api", tags=["auth"])
    app.include_router(student_router, prefix="/api", tags=["student"])
    app.include_router(reviewer_router, prefix="/api", tags=["reviewer"])
    app.include_router(guard_router, prefix="/api", tags=["guard"])
    app.include_router(admin_router, prefix="/api", tags=["admin"])
    app.include_router(notifications_router, tags=["notifications"])

    @app.get("/api/health", response_model=HealthResponse, tags=["health"])
    def api_health():
        try:
            db.fetch_one("SELECT 1")
            return HealthResponse(status="ok", dataAvailable=True, message=None)
        except Exception as e:
            return HealthResponse(
                status="error", dataAvailable=False, message=str(e)
            )

    logger.info("Campus gate-pass API ready")
    return app
