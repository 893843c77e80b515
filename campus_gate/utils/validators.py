# =======================================================================================
# campus_gate/utils/validators.py - Validation Helpers
# =======================================================================================
import re
from datetime import datetime

from .exceptions import ValidationError
from .timeutil import planned_datetime

_CONTACT_RE = re.compile(r"^\d{10}$")


class FormValidator:
    """Validates gate-pass application forms."""

    @staticmethod
    def validate_contact(contact: str) -> str:
        contact = (contact or "").strip()
        if not _CONTACT_RE.match(contact):
            raise ValidationError("Contact number must be 10 digits.")
        return contact

    @staticmethod
    def validate_consent(consent: bool) -> None:
        if not consent:
            raise ValidationError("You must confirm that the information is correct.")

    @staticmethod
    def validate_schedule(date_out: str, time_out: str, date_in: str, time_in: str) -> tuple[datetime, datetime]:
        """Parse planned out/in times and require the return after the departure."""
        try:
            out_at = planned_datetime(date_out, time_out)
            in_at = planned_datetime(date_in, time_in)
        except ValueError:
            raise ValidationError("Dates must be YYYY-MM-DD and times HH:MM")

        if in_at <= out_at:
            raise ValidationError("Return time must be after the out time")

        return out_at, in_at

    @staticmethod
    def validate_leave(leave_days: int, missed_days: int, classes_missed: str) -> None:
        if leave_days < 1:
            raise ValidationError("No. of leave days must be at least 1.")
        if missed_days < 0:
            raise ValidationError("No. of days classes missed cannot be negative.")
        if classes_missed not in ("yes", "no"):
            raise ValidationError("classesMissed must be yes or no.")

    @staticmethod
    def require_text(value: str, field: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValidationError(f"{field} is required")
        return value
