from datetime import timedelta
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import text

from campus_gate.config import config
from campus_gate.utils.exceptions import (
    AlreadyUsed, Conflict, Expired, InvalidState, InvariantViolation, NotEligible,
    NotFound, ValidationError,
)
from campus_gate.utils.security import hash_token, parse_qr_payload

from conftest import apply_outstation, scan_and_decide, token_row


def live_tokens(services, student):
    return services.db.fetch_all(
        "SELECT token_id, status FROM qr_tokens WHERE student_id = :sid AND consumed = :f",
        {"sid": student.student_id, "f": False},
    )


def test_issue_normal_exit(services, people, clock):
    issued = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")

    assert issued.direction == "exit"
    assert issued.gate_pass_no is None
    assert issued.expires_at == clock.now + timedelta(seconds=300)
    assert issued.qr_data_url.startswith("data:image/png;base64,")

    raw, gate_pass_no = parse_qr_payload(issued.qr_payload)
    assert gate_pass_no is None
    row = token_row(services, issued.token_id)
    assert row["token_hash"] == hash_token(raw)
    assert row["purpose"] == "Groceries"
    assert row["status"] == "pending"


def test_token_ttl_is_configurable(services, people, clock, monkeypatch):
    monkeypatch.setattr(config, "TOKEN_TTL_SECONDS", 60)

    issued = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")

    assert issued.expires_at == clock.now + timedelta(seconds=60)


def test_gatepass_token_carries_pass_number(services, people, approved_local):
    issued = services.tokens.issue(people.alice, "exit", gate_pass_no=approved_local)

    assert issued.qr_payload.endswith(f"|GP:{approved_local}")
    row = token_row(services, issued.token_id)
    assert row["place"] == "City Mall"
    assert row["purpose"] == "Shopping"


def test_new_token_supersedes_previous(services, people):
    first = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")
    second = services.tokens.issue(people.alice, "exit", purpose="Pharmacy", place="Main Road")

    live = live_tokens(services, people.alice)
    assert [row["token_id"] for row in live] == [second.token_id]
    assert token_row(services, first.token_id)["status"] == "superseded"
    with pytest.raises(AlreadyUsed):
        services.tokens.redeem(first.qr_payload)


def test_concurrent_issue_leaves_one_live_token(services, people):
    def issue(place):
        try:
            return services.tokens.issue(people.alice, "exit", purpose="Errand", place=place)
        except Conflict as e:
            return e

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(issue, ["A", "B", "C", "D"]))

    assert any(not isinstance(r, Conflict) for r in results)
    assert len(live_tokens(services, people.alice)) == 1


def test_tokens_of_other_students_untouched(services, people):
    services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")
    services.tokens.issue(people.bob, "exit", purpose="Groceries", place="Market")

    assert len(live_tokens(services, people.alice)) == 1
    assert len(live_tokens(services, people.bob)) == 1


def test_direction_must_match_presence(services, people):
    with pytest.raises(InvalidState):
        services.tokens.issue(people.alice, "entry")


def test_normal_exit_needs_purpose_and_place(services, people):
    with pytest.raises(ValidationError):
        services.tokens.issue(people.alice, "exit", purpose="Groceries", place=" ")


def test_unapproved_pass_not_eligible(services, people):
    gp = apply_outstation(services, people.alice)

    with pytest.raises(NotEligible):
        services.tokens.issue(people.alice, "exit", gate_pass_no=gp)


def test_unknown_pass_not_eligible(services, people):
    with pytest.raises(NotEligible):
        services.tokens.issue(people.alice, "exit", gate_pass_no="L-09999")


def test_pass_of_another_student(services, people, approved_local):
    with pytest.raises(NotFound):
        services.tokens.issue(people.bob, "exit", gate_pass_no=approved_local)


def test_exit_lead_window(services, people, clock, approved_local, monkeypatch):
    monkeypatch.setattr(config, "EXIT_LEAD_MINUTES", 15)

    with pytest.raises(NotEligible):
        services.tokens.issue(people.alice, "exit", gate_pass_no=approved_local)

    clock.advance(minutes=46)
    issued = services.tokens.issue(people.alice, "exit", gate_pass_no=approved_local)
    assert issued.gate_pass_no == approved_local


def test_entry_is_bound_to_active_pass(services, people, approved_local):
    scan_and_decide(services, services.tokens.issue(people.alice, "exit", gate_pass_no=approved_local),
                    people.guard)

    issued = services.tokens.issue(people.alice, "entry")

    assert issued.gate_pass_no == approved_local
    with pytest.raises(NotEligible):
        services.tokens.issue(people.alice, "entry", gate_pass_no="L-00002")


def test_entry_after_normal_exit_rejects_pass(services, people):
    scan_and_decide(services, services.tokens.issue(people.alice, "exit", purpose="Groceries",
                                                    place="Market"), people.guard)

    with pytest.raises(NotEligible):
        services.tokens.issue(people.alice, "entry", gate_pass_no="L-00001")
    issued = services.tokens.issue(people.alice, "entry")
    assert token_row(services, issued.token_id)["place"] == "Market"


def test_entry_refused_when_outside_state_is_inconsistent(services, people):
    with services.db.get_connection() as conn:
        conn.execute(
            text("UPDATE students SET presence = 'outside' WHERE id = :sid"),
            {"sid": people.alice.student_id},
        )

    with pytest.raises(InvariantViolation):
        services.tokens.issue(people.alice, "entry")


# ---- cancel ----

def test_cancel_dismisses_live_token(services, people):
    issued = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")

    services.tokens.cancel(people.alice)

    assert token_row(services, issued.token_id)["status"] == "dismissed"
    assert services.presence.get_status(people.alice.student_id).pending_token is None
    with pytest.raises(NotFound):
        services.tokens.cancel(people.alice)
    with pytest.raises(AlreadyUsed):
        services.tokens.redeem(issued.qr_payload)


# ---- redeem ----

def test_redeem_returns_context_without_consuming(services, people, approved_local):
    issued = services.tokens.issue(people.alice, "exit", gate_pass_no=approved_local)

    context = services.tokens.redeem(issued.qr_payload)

    assert context.token_id == issued.token_id
    assert context.student.name == "Alice"
    assert context.student.roll_number == "CS21001"
    assert context.student.photo_url == "/photos/CS21001.jpg"
    assert context.student.presence == "inside"
    assert context.gatepass.gate_pass_no == approved_local
    assert context.gatepass.kind == "local"
    row = token_row(services, issued.token_id)
    assert not row["consumed"]
    assert row["redeemed_at"] is not None
    assert services.presence.get_status(people.alice.student_id).pending_token.redeemed is True


def test_redeem_unknown_token(services, people):
    with pytest.raises(NotFound):
        services.tokens.redeem("not-a-real-token")


def test_redeem_empty_payload(services, people):
    with pytest.raises(ValidationError):
        services.tokens.redeem("   ")


def test_redeem_expired_token(services, people, clock):
    issued = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")

    clock.advance(seconds=301)

    with pytest.raises(Expired):
        services.tokens.redeem(issued.qr_payload)


def test_token_still_valid_at_expiry_instant(services, people, clock):
    issued = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")

    clock.advance(seconds=300)

    assert clock.now == issued.expires_at
    context = services.tokens.redeem(issued.qr_payload)
    receipt = services.decisions.decide(context.token_id, people.guard.account_id, "approve")
    assert receipt.new_presence == "outside"


def test_scanned_token_blocks_reissue_until_expiry(services, people, clock):
    first = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")
    services.tokens.redeem(first.qr_payload)

    with pytest.raises(Conflict):
        services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")

    clock.advance(seconds=301)
    second = services.tokens.issue(people.alice, "exit", purpose="Groceries", place="Market")

    assert token_row(services, first.token_id)["status"] == "expired"
    assert [row["token_id"] for row in live_tokens(services, people.alice)] == [second.token_id]
