"""Tests for license token encoding and verification."""

from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta

import pytest

from licensehub.errors import InvalidLicenseParameters, SigningKeyUnavailable
from licensehub.licensing.codec import (
    LicenseCodec,
    format_timestamp,
    parse_timestamp,
)
from licensehub.licensing.keys import FileKeyProvider, StaticKeyProvider, generate_key_pair


def _payload_of(serial_key: str) -> dict:
    return json.loads(base64.b64decode(serial_key.split(".")[0]))


class TestEncode:
    def test_round_trip(self, codec):
        encoded = codec.encode("M1", "App", 5)
        decoded = codec.verify(encoded.serial_key)

        assert decoded.valid is True
        assert decoded.payload == encoded.payload
        assert decoded.payload["machineId"] == "M1"
        assert decoded.payload["appName"] == "App"
        assert decoded.payload["maxUsers"] == 5
        assert decoded.payload["issueDate"] == encoded.issue_date

    def test_payload_field_order_and_compact_json(self, codec):
        encoded = codec.encode("M1", "App", 5, days_valid=30)
        raw = base64.b64decode(encoded.serial_key.split(".")[0]).decode()

        assert list(json.loads(raw)) == ["machineId", "appName", "maxUsers", "issueDate", "daysValid"]
        assert " " not in raw

    def test_perpetual_license_has_no_days_valid(self, codec):
        encoded = codec.encode("M1", "App", 1)
        assert "daysValid" not in encoded.payload
        assert encoded.expires_date is None
        assert encoded.expires_at is None

    def test_expiry_derived_from_issue_date(self, key_provider):
        fixed = datetime(2024, 1, 15, 10, 30, 0, 123456)
        codec = LicenseCodec(key_provider, clock=lambda: fixed)

        encoded = codec.encode("M1", "App", 2, days_valid=30)

        assert encoded.issue_date == "2024-01-15T10:30:00.123456Z"
        assert encoded.expires_date == "2024-02-14T10:30:00.123456Z"
        assert encoded.expires_at == fixed + timedelta(days=30)

    def test_inputs_are_trimmed(self, codec):
        encoded = codec.encode("  M1 ", " App  ", 3)
        assert encoded.payload["machineId"] == "M1"
        assert encoded.payload["appName"] == "App"

    def test_signature_is_256_bytes_for_2048_bit_key(self, codec):
        encoded = codec.encode("M1", "App", 1)
        signature = base64.b64decode(encoded.serial_key.split(".")[1])
        assert len(signature) == 256

    @pytest.mark.parametrize(
        "machine_id,app_name,max_users,days_valid",
        [
            ("", "App", 1, None),
            ("   ", "App", 1, None),
            ("M1", "", 1, None),
            ("M1", "App", 0, None),
            ("M1", "App", -3, None),
            ("M1", "App", True, None),
            ("M1", "App", "5", None),
            ("M1", "App", 1, 0),
            (None, "App", 1, None),
        ],
    )
    def test_rejects_invalid_parameters(self, codec, machine_id, app_name, max_users, days_valid):
        with pytest.raises(InvalidLicenseParameters):
            codec.encode(machine_id, app_name, max_users, days_valid)

    def test_validation_happens_before_key_lookup(self, rsa_key):
        codec = LicenseCodec(StaticKeyProvider(public_key=rsa_key.public_key()))
        with pytest.raises(InvalidLicenseParameters):
            codec.encode("", "App", 1)

    def test_missing_private_key(self, rsa_key):
        codec = LicenseCodec(StaticKeyProvider(public_key=rsa_key.public_key()))
        with pytest.raises(SigningKeyUnavailable):
            codec.encode("M1", "App", 1)

    def test_missing_private_key_file(self, tmp_path):
        codec = LicenseCodec(FileKeyProvider(tmp_path / "absent.pem"))
        with pytest.raises(SigningKeyUnavailable):
            codec.encode("M1", "App", 1)

    def test_issue_dates_strictly_increase_with_frozen_clock(self, key_provider):
        fixed = datetime(2024, 6, 1, 12, 0, 0)
        codec = LicenseCodec(key_provider, clock=lambda: fixed)

        first = codec.encode("M1", "App", 1)
        second = codec.encode("M1", "App", 1)

        assert first.serial_key != second.serial_key
        assert parse_timestamp(second.issue_date) - parse_timestamp(first.issue_date) == timedelta(
            microseconds=1
        )

    def test_ten_thousand_keys_are_unique(self):
        # A small key keeps the signing cost of this test down.
        codec = LicenseCodec(StaticKeyProvider(generate_key_pair(1024)))
        keys = {codec.encode("M1", "App", 1).serial_key for _ in range(10_000)}
        assert len(keys) == 10_000


class TestVerify:
    def test_every_single_character_tamper_is_rejected(self, codec):
        serial = codec.encode("M1", "App", 5).serial_key

        for i, ch in enumerate(serial):
            replacement = "A" if ch != "A" else "B"
            tampered = serial[:i] + replacement + serial[i + 1:]
            assert codec.verify(tampered).valid is False, f"tamper at position {i} accepted"

    def test_modified_payload_with_original_signature(self, codec):
        serial = codec.encode("M1", "App", 5).serial_key
        payload_b64, signature_b64 = serial.split(".")
        payload = json.loads(base64.b64decode(payload_b64))
        payload["maxUsers"] = 500
        forged = base64.b64encode(json.dumps(payload, separators=(",", ":")).encode()).decode()

        result = codec.verify(f"{forged}.{signature_b64}")
        assert result.valid is False
        assert result.error == "Invalid signature"

    def test_wrong_public_key(self, codec):
        serial = codec.encode("M1", "App", 5).serial_key
        other = generate_key_pair(2048).public_key()

        result = codec.verify(serial, public_key=other)
        assert result.valid is False
        assert result.error == "Invalid signature"

    def test_explicit_public_key(self, codec, rsa_key):
        serial = codec.encode("M1", "App", 5).serial_key
        verifier = LicenseCodec(StaticKeyProvider(public_key=rsa_key.public_key()))
        assert verifier.verify(serial).valid is True

    @pytest.mark.parametrize("serial", ["", "no-separator", "a.b.c", ".", "abc.", ".abc"])
    def test_malformed_serial(self, codec, serial):
        result = codec.verify(serial)
        assert result.valid is False
        assert result.error

    def test_wrong_part_count_message(self, codec):
        assert codec.verify("a.b.c").error == "Invalid serial format"
        assert codec.verify("abc").error == "Invalid serial format"

    def test_non_string_serial(self, codec):
        assert codec.verify(12345).valid is False  # type: ignore[arg-type]

    def test_non_object_payload(self, codec, rsa_key):
        from cryptography.hazmat.primitives import hashes
        from cryptography.hazmat.primitives.asymmetric import padding

        body = b"[1,2,3]"
        signature = rsa_key.sign(body, padding.PKCS1v15(), hashes.SHA256())
        serial = base64.b64encode(body).decode() + "." + base64.b64encode(signature).decode()

        result = codec.verify(serial)
        assert result.valid is False

    def test_to_dict(self, codec):
        serial = codec.encode("M1", "App", 5).serial_key
        assert codec.verify(serial).to_dict()["payload"]["machineId"] == "M1"
        assert codec.verify("bad").to_dict() == {"valid": False, "error": "Invalid serial format"}


def test_timestamp_helpers():
    moment = datetime(2024, 3, 4, 5, 6, 7, 890000)
    text = format_timestamp(moment)
    assert text == "2024-03-04T05:06:07.890000Z"
    assert parse_timestamp(text) == moment
