# =======================================================================================
# campus_gate/services/__init__.py - Services Package
# =======================================================================================
from .audit_service import AuditService
from .auth_service import AuthService
from .decision_service import DecisionService
from .gatepass_service import GatePassService
from .identity_service import IdentityService
from .notification_service import NotificationHub
from .presence_service import PresenceService
from .token_service import TokenService
from .container import Services

__all__ = [
    "AuditService", "AuthService", "DecisionService", "GatePassService",
    "IdentityService", "NotificationHub", "PresenceService", "TokenService", "Services",
]
