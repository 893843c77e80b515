from concurrent.futures import ThreadPoolExecutor

import pytest

from campus_gate.services.notification_service import OBSERVERS_ROOM, Subscription, student_room
from campus_gate.utils.exceptions import (
    AlreadyUsed, Conflict, Expired, InvalidState, NotEligible, ValidationError,
)

from conftest import OUTSTATION_FORM, apply_outstation, scan_and_decide, student_row, token_row


def gate_logs(services, student):
    with services.db.get_connection() as conn:
        return services.audit.list_for_student(conn, student.student_id)


def test_approve_exit(services, people, clock):
    issued = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")

    receipt = scan_and_decide(services, issued, people.guard)

    assert receipt.outcome == "approved"
    assert receipt.new_presence == "outside"
    assert receipt.decided_at == clock.now
    row = token_row(services, issued.token_id)
    assert row["consumed"]
    assert row["status"] == "approved"
    assert row["guard_id"] == people.guard.account_id
    logs = gate_logs(services, people.alice)
    assert [(log.direction, log.outcome, log.manual) for log in logs] == [("exit", "approved", False)]


def test_decide_twice_applies_once(services, people):
    issued = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")
    receipt = scan_and_decide(services, issued, people.guard)

    with pytest.raises(AlreadyUsed):
        services.decisions.decide(receipt.token_id, people.guard2.account_id, "approve")

    assert student_row(services, people.alice)["version"] == 1
    assert len(gate_logs(services, people.alice)) == 1


def test_concurrent_decide_has_one_winner(services, people):
    issued = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")
    token_id = services.tokens.redeem(issued.qr_payload).token_id

    def decide(guard):
        try:
            return services.decisions.decide(token_id, guard.account_id, "approve")
        except AlreadyUsed as e:
            return e

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(decide, [people.guard, people.guard2]))

    assert sum(isinstance(r, AlreadyUsed) for r in results) == 1
    assert student_row(services, people.alice)["version"] == 1
    assert student_row(services, people.alice)["presence"] == "outside"


def test_reject_leaves_presence_and_allows_new_token(services, people):
    issued = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")

    receipt = scan_and_decide(services, issued, people.guard, outcome="reject")

    assert receipt.outcome == "denied"
    assert receipt.new_presence == "inside"
    assert token_row(services, issued.token_id)["status"] == "rejected"
    row = student_row(services, people.alice)
    assert row["presence"] == "inside"
    assert row["version"] == 0
    assert gate_logs(services, people.alice)[0].outcome == "denied"

    again = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")
    assert again.token_id != issued.token_id


def test_decide_validates_outcome(services, people):
    issued = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")

    with pytest.raises(ValidationError):
        services.decisions.decide(issued.token_id, people.guard.account_id, "maybe")


def test_decide_expired_token(services, people, clock):
    issued = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")
    token_id = services.tokens.redeem(issued.qr_payload).token_id

    clock.advance(minutes=6)

    with pytest.raises(Expired):
        services.decisions.decide(token_id, people.guard.account_id, "approve")
    assert token_row(services, token_id)["status"] == "expired"
    assert student_row(services, people.alice)["presence"] == "inside"
    with pytest.raises(AlreadyUsed):
        services.decisions.decide(token_id, people.guard.account_id, "approve")


def test_decide_after_student_crossed_another_way(services, people):
    issued = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")
    token_id = services.tokens.redeem(issued.qr_payload).token_id
    services.decisions.manual_exit(people.alice.student_id, people.guard2.account_id,
                                   "Hospital visit", "City Hospital")

    with pytest.raises(Conflict):
        services.decisions.decide(token_id, people.guard.account_id, "approve")

    assert token_row(services, token_id)["status"] == "conflict"
    assert token_row(services, token_id)["consumed"]
    row = student_row(services, people.alice)
    assert row["out_place"] == "City Hospital"
    assert row["version"] == 1
    outcomes = sorted(log.outcome for log in gate_logs(services, people.alice))
    assert outcomes == ["approved", "conflict"]


def test_gatepass_round_trip_marks_utilized_once(services, people, approved_local):
    exit_receipt = scan_and_decide(
        services, services.tokens.issue(people.alice, "exit", gate_pass_no=approved_local),
        people.guard,
    )
    assert exit_receipt.new_presence == "outside"
    view = services.gatepasses.list_for_student(people.alice)[0]
    assert view.utilization_status == "in_use"
    assert view.utilized is False

    entry_receipt = scan_and_decide(services, services.tokens.issue(people.alice, "entry"),
                                    people.guard)
    assert entry_receipt.new_presence == "inside"
    view = services.gatepasses.list_for_student(people.alice)[0]
    assert view.utilized is True
    assert view.utilization_status == "completed"
    assert student_row(services, people.alice)["active_gate_pass_no"] is None

    with pytest.raises(NotEligible):
        services.tokens.issue(people.alice, "exit", gate_pass_no=approved_local)


def test_outstation_round_trip_marks_utilized_once(services, people):
    gp = apply_outstation(services, people.alice)
    for reviewer in (people.secretary, people.dugc, people.hod):
        services.gatepasses.decide(reviewer, gp, "approve")

    issued = services.tokens.issue(people.alice, "exit", gate_pass_no=gp)
    assert gp.startswith("OS-")
    row = token_row(services, issued.token_id)
    assert row["place"] == OUTSTATION_FORM["address"]
    assert row["purpose"] == OUTSTATION_FORM["reason_of_leave"]

    receipt = scan_and_decide(services, issued, people.guard)
    assert receipt.new_presence == "outside"
    student = student_row(services, people.alice)
    assert student["active_gate_pass_no"] == gp
    assert student["out_place"] is None

    scan_and_decide(services, services.tokens.issue(people.alice, "entry"), people.guard)

    view = services.gatepasses.list_for_student(people.alice)[0]
    assert view.utilized is True
    assert view.utilization_status == "completed"
    assert student_row(services, people.alice)["version"] == 2
    with pytest.raises(NotEligible):
        services.tokens.issue(people.alice, "exit", gate_pass_no=gp)


def test_manual_entry_closes_out_gatepass(services, people, approved_local):
    issued = services.tokens.issue(people.alice, "exit", gate_pass_no=approved_local)
    scan_and_decide(services, issued, people.guard)
    services.decisions.manual_entry(people.alice.student_id, people.guard.account_id)

    view = services.gatepasses.list_for_student(people.alice)[0]
    assert view.utilized is True
    with pytest.raises(NotEligible):
        services.tokens.issue(people.alice, "exit", gate_pass_no=approved_local)


def test_decision_notifies_student_and_observers(services, people):
    student_events, observer_events = [], []
    services.hub.subscribe(Subscription(student_room(people.alice.student_id), student_events.append))
    services.hub.subscribe(Subscription(OBSERVERS_ROOM, observer_events.append))

    scan_and_decide(services, services.tokens.issue(people.alice, "exit", purpose="Groceries",
                                                    place="Market"), people.guard)

    assert student_events[-1]["type"] == "decision"
    assert student_events[-1]["payload"]["outcome"] == "approved"
    assert student_events[-1]["payload"]["presence"] == "outside"
    assert observer_events[-1]["type"] == "activity"
    assert observer_events[-1]["payload"]["student_id"] == people.alice.student_id


# ---- manual ----

def test_manual_exit_and_entry(services, people):
    receipt = services.decisions.manual_exit(people.alice.student_id, people.guard.account_id,
                                             "Medical", "Clinic")
    assert receipt.new_presence == "outside"
    assert receipt.token_id is None
    assert student_row(services, people.alice)["out_place"] == "Clinic"

    receipt = services.decisions.manual_entry(people.alice.student_id, people.guard.account_id)
    assert receipt.new_presence == "inside"

    logs = gate_logs(services, people.alice)
    assert [(log.direction, log.manual) for log in logs] == [("entry", True), ("exit", True)]
    assert logs[0].place == "Clinic"


def test_manual_exit_requires_purpose_and_place(services, people):
    with pytest.raises(ValidationError):
        services.decisions.manual_exit(people.alice.student_id, people.guard.account_id, "", "Clinic")


def test_manual_entry_when_inside(services, people):
    with pytest.raises(InvalidState):
        services.decisions.manual_entry(people.alice.student_id, people.guard.account_id)
    assert gate_logs(services, people.alice) == []
