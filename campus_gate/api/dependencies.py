# =======================================================================================
# campus_gate/api/dependencies.py - FastAPI Dependencies
# =======================================================================================
from typing import Callable, Optional
from fastapi import Depends, Header, Request
from sqlalchemy.engine import Connection
from ..models.enums import Role
from ..models.schemas import Actor
from ..services import Services
from ..utils.exceptions import Forbidden, Unauthorized


def get_services(request: Request) -> Services:
    """Services wired by create_app."""
    return request.app.state.services


def get_db_connection(services: Services = Depends(get_services)) -> Connection:
    """Dependency to get a transactional database connection."""
    with services.db.get_connection() as conn:
        yield conn


def get_bearer_token(authorization: Optional[str] = Header(None)) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Missing bearer token")
    return token.strip()


def get_current_actor(
    token: str = Depends(get_bearer_token),
    services: Services = Depends(get_services),
) -> Actor:
    with services.db.get_connection() as conn:
        return services.auth.resolve_session(conn, token)


def require_roles(*roles: Role) -> Callable[..., Actor]:
    """Dependency factory: the caller must hold one of ``roles``."""
    allowed = {r.value for r in roles}

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise Forbidden("You are not allowed to perform this action")
        return actor

    return dependency
