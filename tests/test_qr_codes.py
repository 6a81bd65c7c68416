"""Tests for QR token encryption and scanner input handling."""

import time
from uuid import uuid4

from cryptography.fernet import Fernet

from evently_ticketing.utils import qr_codes
from evently_ticketing.utils.qr_codes import (
    build_qr_data,
    decrypt_qr_data,
    encrypt_qr_data,
    extract_qr_token,
    generate_qr_png,
    generate_validation_url,
)


def _claims():
    return build_qr_data(uuid4(), uuid4(), uuid4(), "MON-1700000000000-001")


def test_token_is_url_safe_without_padding():
    token = encrypt_qr_data(_claims())

    assert "=" not in token
    assert "+" not in token and "/" not in token


def test_decrypt_returns_original_claims():
    claims = _claims()

    decoded = decrypt_qr_data(encrypt_qr_data(claims))

    assert decoded == claims


def test_tampered_token_is_rejected():
    token = encrypt_qr_data(_claims())
    flipped = "A" if token[20] != "A" else "B"
    tampered = token[:20] + flipped + token[21:]

    assert decrypt_qr_data(tampered) is None


def test_garbage_and_empty_tokens_are_rejected():
    assert decrypt_qr_data("") is None
    assert decrypt_qr_data("not-a-token") is None
    assert decrypt_qr_data("ünïcödé") is None


def test_token_from_another_key_is_rejected(monkeypatch):
    token = encrypt_qr_data(_claims())
    monkeypatch.setattr(qr_codes, "_fernet", lambda: Fernet(Fernet.generate_key()))

    assert decrypt_qr_data(token) is None


def test_expired_token_is_rejected(monkeypatch):
    token = encrypt_qr_data(_claims())
    later = time.time() + 3 * 3600
    monkeypatch.setattr(time, "time", lambda: later)

    assert decrypt_qr_data(token, max_age_hours=1) is None


def test_validation_url_round_trips_through_extract():
    token = encrypt_qr_data(_claims())

    url = generate_validation_url(token)

    assert "/api/v1/tickets/validate?data=" in url
    assert extract_qr_token(url) == token
    assert extract_qr_token(f"  {token}\n") == token
    assert extract_qr_token("https://evently.example/validate") == ""


def test_qr_png_is_a_png():
    png = generate_qr_png("https://evently.example/validate?data=abc")

    assert png.startswith(b"\x89PNG\r\n\x1a\n")
