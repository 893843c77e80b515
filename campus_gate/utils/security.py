# =======================================================================================
# campus_gate/utils/security.py - Token Secrets and QR Payloads
# =======================================================================================
import base64
import hashlib
import io
import secrets
from typing import Optional, Tuple

import qrcode

GATE_PASS_MARKER = "|GP:"


def generate_raw_token() -> str:
    """32 random bytes, base64url encoded for a compact QR payload."""
    return secrets.token_urlsafe(32)


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def build_qr_payload(raw_token: str, gate_pass_no: Optional[str] = None) -> str:
    """QR carries the raw token plus the gate-pass number when bound to one."""
    if gate_pass_no:
        return f"{raw_token}{GATE_PASS_MARKER}{gate_pass_no}"
    return raw_token


def parse_qr_payload(payload: str) -> Tuple[str, Optional[str]]:
    """Split a scanned payload into (raw_token, gate_pass_no)."""
    payload = (payload or "").strip()
    if GATE_PASS_MARKER in payload:
        raw, gate_pass_no = payload.split(GATE_PASS_MARKER, 1)
        return raw, gate_pass_no or None
    return payload, None


def qr_data_uri(data: str) -> str:
    """Return a PNG data URI for the given QR data."""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=1,
    )
    qr.add_data(data)
    qr.make(fit=True)
    buf = io.BytesIO()
    qr.make_image().save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode()
