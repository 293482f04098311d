"""Tests for HMAC-SHA256 payload signing."""

import hashlib
import hmac

from herald.webhooks import compute_signature, verify_signature

PAYLOAD = '{"id":"evt_1","event":"code_used","data":{"code":"SAVE10"}}'


class TestComputeSignature:
    """Tests for signature computation."""

    def test_format(self):
        """Signature should be sha256= followed by a hex digest."""
        signature = compute_signature(PAYLOAD, "s3cret")
        assert signature.startswith("sha256=")
        assert len(signature) == len("sha256=") + 64

    def test_matches_reference_hmac(self):
        expected = hmac.new(b"s3cret", PAYLOAD.encode(), hashlib.sha256).hexdigest()
        assert compute_signature(PAYLOAD, "s3cret") == f"sha256={expected}"

    def test_text_and_bytes_agree(self):
        assert compute_signature(PAYLOAD, "k") == compute_signature(PAYLOAD.encode(), "k")

    def test_depends_on_secret(self):
        assert compute_signature(PAYLOAD, "a") != compute_signature(PAYLOAD, "b")


class TestVerifySignature:
    """Tests for receiver-side verification."""

    def test_valid_signature(self):
        signature = compute_signature(PAYLOAD, "s3cret")
        assert verify_signature(PAYLOAD, "s3cret", signature)

    def test_single_byte_change_fails(self):
        """Altering one byte of the body should invalidate the signature."""
        signature = compute_signature(PAYLOAD, "s3cret")
        tampered = PAYLOAD.replace("SAVE10", "SAVE11")
        assert not verify_signature(tampered, "s3cret", signature)

    def test_wrong_secret_fails(self):
        signature = compute_signature(PAYLOAD, "s3cret")
        assert not verify_signature(PAYLOAD, "other", signature)

    def test_malformed_signature_fails(self):
        assert not verify_signature(PAYLOAD, "s3cret", "md5=abc")
