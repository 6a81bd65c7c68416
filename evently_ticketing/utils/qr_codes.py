"""
QR payload encryption and QR image rendering for tickets.

A ticket's QR code carries a Fernet token (AES-128-CBC with an HMAC-SHA256
tag and an embedded issue timestamp). Tokens are URL-safe base64 with the
``=`` padding stripped so they can travel in a query string.
"""

import base64
import hashlib
import io
import json
import logging
import time
from typing import Optional
from urllib.parse import parse_qs, urlparse

import qrcode
from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, ValidationError
from qrcode.constants import ERROR_CORRECT_H

from ..config import get_settings

logger = logging.getLogger(__name__)

QR_BOX_SIZE = 16
QR_BORDER = 1


class QRCodeData(BaseModel):
    """Claims embedded in a ticket QR code."""

    ticket_id: str
    event_id: str
    booking_id: str
    ticket_number: str
    timestamp: int
    ticket_type: str = "general"


def _fernet() -> Fernet:
    secret = get_settings().qr_secret.encode("utf-8")
    key = base64.urlsafe_b64encode(hashlib.sha256(secret).digest())
    return Fernet(key)


def encrypt_qr_data(data: QRCodeData) -> str:
    """Encrypt ticket claims into a URL-safe token without padding."""
    token = _fernet().encrypt(data.model_dump_json().encode("utf-8"))
    return token.decode("ascii").rstrip("=")


def decrypt_qr_data(token: str, max_age_hours: Optional[int] = None) -> Optional[QRCodeData]:
    """
    Decrypt a token produced by :func:`encrypt_qr_data`.

    Args:
        token: Token as scanned, with or without padding
        max_age_hours: Reject tokens older than this; defaults to settings

    Returns:
        The claims, or None when the token is malformed, tampered with,
        signed with another key or too old
    """
    if not token:
        return None

    if max_age_hours is None:
        max_age_hours = get_settings().qr_token_max_age_hours

    token = token.strip()
    padded = token + "=" * (-len(token) % 4)

    try:
        raw = _fernet().decrypt(padded.encode("ascii"), ttl=max_age_hours * 3600)
        return QRCodeData.model_validate(json.loads(raw))
    except (InvalidToken, UnicodeEncodeError, ValueError, ValidationError):
        logger.info("Rejected undecryptable QR token")
        return None


def build_qr_data(ticket_id, event_id, booking_id, ticket_number: str, ticket_type: str = "general") -> QRCodeData:
    """Claims for a ticket QR code; printed tickets carry an empty ``booking_id``."""
    return QRCodeData(
        ticket_id=str(ticket_id),
        event_id=str(event_id),
        booking_id=str(booking_id or ""),
        ticket_number=ticket_number,
        timestamp=int(time.time() * 1000),
        ticket_type=ticket_type,
    )


def generate_validation_url(token: str) -> str:
    """Public URL a generic phone scanner opens for this token."""
    return f"{get_settings().app_url.rstrip('/')}/api/v1/tickets/validate?data={token}"


def extract_qr_token(scanned: str) -> str:
    """Accept either a bare token or a validation URL carrying it in ``data``."""
    scanned = scanned.strip()
    if scanned.startswith(("http://", "https://")):
        values = parse_qs(urlparse(scanned).query).get("data")
        return values[0] if values else ""
    return scanned


def generate_qr_png(data: str) -> bytes:
    """Render ``data`` as a black-on-white PNG QR code with high error correction."""
    qr = qrcode.QRCode(
        error_correction=ERROR_CORRECT_H,
        box_size=QR_BOX_SIZE,
        border=QR_BORDER,
    )
    qr.add_data(data)
    qr.make(fit=True)

    image = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()
