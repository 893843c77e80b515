from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from campus_gate.config import config
from campus_gate.database import DatabaseManager
from campus_gate.main import create_app
from campus_gate.models.schemas import Actor, LocalGatePassRequest, OutstationGatePassRequest
from campus_gate.services import Services

PASSWORD = "secret123"

# 10:00 in Asia/Kolkata
START = datetime(2026, 3, 10, 4, 30)

LOCAL_FORM = {
    "place": "City Mall",
    "purpose": "Shopping",
    "semester": "5",
    "contact": "9876543210",
    "date_out": "2026-03-10",
    "time_out": "11:00",
    "date_in": "2026-03-10",
    "time_in": "20:00",
    "consent": True,
}

OUTSTATION_FORM = {
    "contact": "9876543210",
    "leave_days": 3,
    "address": "12 Lake Road, Pune",
    "nature_of_leave": "Personal",
    "reason_of_leave": "Family function",
    "classes_missed": "yes",
    "missed_days": 2,
    "date_out": "2026-03-10",
    "time_out": "11:00",
    "date_in": "2026-03-13",
    "time_in": "18:00",
    "consent": True,
}


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _config(monkeypatch):
    monkeypatch.setattr(config, "EXIT_LEAD_MINUTES", None)
    monkeypatch.setattr(config, "TOKEN_TTL_SECONDS", 300)
    monkeypatch.setattr(config, "CAMPUS_TIMEZONE", "Asia/Kolkata")
    monkeypatch.setattr(config, "ADMIN_USERNAME", None)


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'gate.db'}")
    manager.create_schema()
    yield manager
    manager.dispose()


@pytest.fixture
def services(db, clock):
    return Services(db, clock)


def _account(services, conn, username, role, department=None, roll_number=None):
    account_id = services.auth.create_account(
        conn, username, PASSWORD, role, display_name=username.title(), department=department
    )
    student_id = None
    if roll_number:
        student_id = services.identity.create_student(
            conn, username.title(), roll_number,
            account_id=account_id, department=department,
            photo_url=f"/photos/{roll_number}.jpg",
        )
    return Actor(account_id=account_id, username=username, role=role,
                 department=department, student_id=student_id)


@pytest.fixture
def people(services):
    with services.db.get_connection() as conn:
        return SimpleNamespace(
            alice=_account(services, conn, "alice", "student", "CSE", "CS21001"),
            bob=_account(services, conn, "bob", "student", "CSE", "CS21002"),
            guard=_account(services, conn, "gate1", "guard"),
            guard2=_account(services, conn, "gate2", "guard"),
            hostel=_account(services, conn, "warden", "hostelOffice"),
            secretary=_account(services, conn, "secretary", "officeSecretary", "CSE"),
            dugc=_account(services, conn, "dugc", "dugc", "CSE"),
            hod=_account(services, conn, "hod", "hod", "CSE"),
            hod_ece=_account(services, conn, "hod_ece", "hod", "ECE"),
            admin=_account(services, conn, "admin", "admin"),
        )


@pytest.fixture
def approved_local(services, people):
    view = services.gatepasses.apply_local(people.alice, LocalGatePassRequest(**LOCAL_FORM))
    services.gatepasses.decide(people.hostel, view.gate_pass_no, "approve")
    return view.gate_pass_no


def apply_outstation(services, student, **overrides):
    form = OutstationGatePassRequest(**{**OUTSTATION_FORM, **overrides})
    return services.gatepasses.apply_outstation(student, form).gate_pass_no


def scan_and_decide(services, issued, guard, outcome="approve"):
    context = services.tokens.redeem(issued.qr_payload)
    return services.decisions.decide(context.token_id, guard.account_id, outcome)


def student_row(services, student):
    return services.db.fetch_one("SELECT * FROM students WHERE id = :sid",
                                 {"sid": student.student_id})


def token_row(services, token_id):
    return services.db.fetch_one("SELECT * FROM qr_tokens WHERE token_id = :tid",
                                 {"tid": token_id})


@pytest.fixture
def client(db, clock, people):
    app = create_app(db=db, clock=clock)
    with TestClient(app) as test_client:
        yield test_client


def login(client, username, password=PASSWORD):
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}
