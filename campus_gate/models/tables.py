# =======================================================================================
# campus_gate/models/tables.py - Table Definitions
# =======================================================================================
# Services talk to these tables with plain SQL; the metadata exists so the
# schema can be created on MySQL and SQLite alike.
from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, MetaData, String, Table, Text,
)

metadata = MetaData()

accounts = Table(
    "accounts", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(100), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("role", String(32), nullable=False),
    Column("display_name", String(200)),
    Column("department", String(100)),
    Column("created_at", DateTime, nullable=False),
)

sessions = Table(
    "sessions", metadata,
    Column("token_hash", String(64), primary_key=True),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False, index=True),
    Column("created_at", DateTime, nullable=False),
    Column("expires_at", DateTime, nullable=False),
)

students = Table(
    "students", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id"), unique=True),
    Column("name", String(200), nullable=False),
    Column("roll_number", String(50), nullable=False, unique=True),
    Column("department", String(100)),
    Column("room_number", String(50)),
    Column("contact_number", String(20)),
    Column("photo_url", String(500)),
    Column("presence", String(16), nullable=False, default="inside"),
    Column("active_gate_pass_no", String(20)),
    Column("out_place", String(200)),
    Column("out_purpose", String(200)),
    Column("out_time", DateTime),
    Column("is_banned", Boolean, nullable=False, default=False),
    Column("ban_reason", String(500)),
    Column("banned_at", DateTime),
    Column("banned_by", Integer),
    Column("version", Integer, nullable=False, default=0),
    Column("token_seq", Integer, nullable=False, default=0),
    Column("created_at", DateTime, nullable=False),
)

local_gatepasses = Table(
    "local_gatepasses", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("gate_pass_no", String(20), unique=True),
    Column("student_id", Integer, ForeignKey("students.id"), nullable=False, index=True),
    Column("place", String(200), nullable=False),
    Column("purpose", String(200), nullable=False),
    Column("semester", String(20)),
    Column("contact", String(20), nullable=False),
    Column("date_out", String(10), nullable=False),
    Column("time_out", String(5), nullable=False),
    Column("date_in", String(10), nullable=False),
    Column("time_in", String(5), nullable=False),
    Column("status", String(16), nullable=False, default="pending"),
    Column("decided_by", Integer),
    Column("decided_at", DateTime),
    Column("utilized", Boolean, nullable=False, default=False),
    Column("utilization_status", String(16), nullable=False, default="pending"),
    Column("actual_exit_at", DateTime),
    Column("actual_entry_at", DateTime),
    Column("version", Integer, nullable=False, default=0),
    Column("created_at", DateTime, nullable=False),
)

outstation_gatepasses = Table(
    "outstation_gatepasses", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("gate_pass_no", String(20), unique=True),
    Column("student_id", Integer, ForeignKey("students.id"), nullable=False, index=True),
    Column("department", String(100), nullable=False),
    Column("contact", String(20), nullable=False),
    Column("leave_days", Integer, nullable=False),
    Column("address", String(500), nullable=False),
    Column("nature_of_leave", String(100), nullable=False),
    Column("reason_of_leave", Text, nullable=False),
    Column("classes_missed", String(3)),
    Column("missed_days", Integer, nullable=False, default=0),
    Column("date_out", String(10), nullable=False),
    Column("time_out", String(5), nullable=False),
    Column("date_in", String(10), nullable=False),
    Column("time_in", String(5), nullable=False),
    Column("current_stage", String(20), nullable=False, default="officeSecretary"),
    Column("final_status", String(16), nullable=False, default="pending"),
    Column("office_secretary_status", String(16), nullable=False, default="pending"),
    Column("office_secretary_decided_at", DateTime),
    Column("office_secretary_decided_by", Integer),
    Column("office_secretary_note", Text),
    Column("dugc_status", String(16), nullable=False, default="pending"),
    Column("dugc_decided_at", DateTime),
    Column("dugc_decided_by", Integer),
    Column("dugc_note", Text),
    Column("hod_status", String(16), nullable=False, default="pending"),
    Column("hod_decided_at", DateTime),
    Column("hod_decided_by", Integer),
    Column("hod_note", Text),
    Column("rejection_reason", Text),
    Column("utilized", Boolean, nullable=False, default=False),
    Column("utilization_status", String(16), nullable=False, default="pending"),
    Column("actual_exit_at", DateTime),
    Column("actual_entry_at", DateTime),
    Column("version", Integer, nullable=False, default=0),
    Column("created_at", DateTime, nullable=False),
)

qr_tokens = Table(
    "qr_tokens", metadata,
    Column("token_id", String(32), primary_key=True),
    Column("token_hash", String(64), nullable=False, unique=True),
    Column("student_id", Integer, ForeignKey("students.id"), nullable=False, index=True),
    Column("direction", String(8), nullable=False),
    Column("gate_pass_no", String(20)),
    Column("purpose", String(200)),
    Column("place", String(200)),
    Column("issued_at", DateTime, nullable=False),
    Column("expires_at", DateTime, nullable=False),
    Column("consumed", Boolean, nullable=False, default=False),
    Column("status", String(16), nullable=False, default="pending"),
    Column("redeemed_at", DateTime),
    Column("decided_at", DateTime),
    Column("guard_id", Integer),
)

gate_logs = Table(
    "gate_logs", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("student_id", Integer, ForeignKey("students.id"), nullable=False, index=True),
    Column("guard_id", Integer),
    Column("token_id", String(32)),
    Column("direction", String(8), nullable=False),
    Column("outcome", String(16), nullable=False),
    Column("purpose", String(200)),
    Column("place", String(200)),
    Column("gate_pass_no", String(20)),
    Column("manual", Boolean, nullable=False, default=False),
    Column("message", String(255)),
    Column("decided_at", DateTime, nullable=False, index=True),
)
