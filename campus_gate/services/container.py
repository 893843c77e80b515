# =======================================================================================
# campus_gate/services/container.py - Service Wiring
# =======================================================================================
from ..database import DatabaseManager
from ..utils.timeutil import Clock, utcnow
from .audit_service import AuditService
from .auth_service import AuthService
from .decision_service import DecisionService
from .gatepass_service import GatePassService
from .identity_service import IdentityService
from .notification_service import NotificationHub
from .presence_service import PresenceService
from .token_service import TokenService


class Services:
    """One set of services sharing a database, a notification hub and a clock."""

    def __init__(self, db: DatabaseManager, clock: Clock = utcnow,
                 hub: NotificationHub = None):
        self.db = db
        self.clock = clock
        self.hub = hub or NotificationHub()
        self.auth = AuthService(clock)
        self.audit = AuditService()
        self.identity = IdentityService(db, self.hub, clock)
        self.presence = PresenceService(db, clock)
        self.gatepasses = GatePassService(db, self.identity, self.hub, clock)
        self.tokens = TokenService(db, self.identity, self.presence, clock)
        self.decisions = DecisionService(db, self.presence, self.audit, self.hub, clock)
