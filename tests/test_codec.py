"""
Tests for the envelope wire format.
"""
import base64

import pytest

from envelope_rotation import (
    CipherEnvelope,
    MalformedEnvelopeError,
    UnsupportedFormatVersionError,
    decode,
    encode,
)

NONCE = bytes(range(12))
TAG = bytes(range(16, 32))
CIPHERTEXT = b"\x00\xffciphertext"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class TestEncode:
    """Tests for encode()."""

    def test_five_colon_separated_fields(self):
        value = encode("v3", NONCE, TAG, CIPHERTEXT)
        assert value == f"1:v3:{_b64(NONCE)}:{_b64(TAG)}:{_b64(CIPHERTEXT)}"

    def test_deterministic(self):
        assert encode("v1", NONCE, TAG, CIPHERTEXT) == encode("v1", NONCE, TAG, CIPHERTEXT)

    def test_rejects_separator_in_key_version(self):
        with pytest.raises(MalformedEnvelopeError):
            encode("v:1", NONCE, TAG, CIPHERTEXT)

    def test_rejects_empty_key_version(self):
        with pytest.raises(MalformedEnvelopeError):
            encode("", NONCE, TAG, CIPHERTEXT)


class TestDecode:
    """Tests for decode()."""

    def test_parses_all_fields(self):
        envelope = decode(encode("v2", NONCE, TAG, CIPHERTEXT))
        assert envelope == CipherEnvelope(
            format_version="1",
            key_version="v2",
            nonce=NONCE,
            tag=TAG,
            ciphertext=CIPHERTEXT,
        )

    def test_envelope_is_immutable(self):
        envelope = decode(encode("v2", NONCE, TAG, CIPHERTEXT))
        with pytest.raises(AttributeError):
            envelope.key_version = "v9"

    def test_empty_ciphertext_allowed(self):
        envelope = decode(encode("v1", NONCE, TAG, b""))
        assert envelope.ciphertext == b""

    def test_three_fields_is_malformed(self):
        with pytest.raises(MalformedEnvelopeError):
            decode("1:v1:onlythreeparts")

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "1",
            "1:v1:a:b",
            f"1:v1:{_b64(NONCE)}:{_b64(TAG)}:{_b64(CIPHERTEXT)}:extra",
        ],
    )
    def test_wrong_field_count_is_malformed(self, value):
        with pytest.raises(MalformedEnvelopeError):
            decode(value)

    def test_non_string_is_malformed(self):
        with pytest.raises(MalformedEnvelopeError):
            decode(None)

    @pytest.mark.parametrize("version", ["2", "0", "", "v1"])
    def test_unknown_format_version(self, version):
        value = f"{version}:v1:{_b64(NONCE)}:{_b64(TAG)}:{_b64(CIPHERTEXT)}"
        with pytest.raises(UnsupportedFormatVersionError):
            decode(value)

    def test_bad_base64_is_malformed(self):
        with pytest.raises(MalformedEnvelopeError):
            decode(f"1:v1:not*base64:{_b64(TAG)}:{_b64(CIPHERTEXT)}")

    def test_wrong_nonce_length_is_malformed(self):
        with pytest.raises(MalformedEnvelopeError):
            decode(f"1:v1:{_b64(NONCE[:8])}:{_b64(TAG)}:{_b64(CIPHERTEXT)}")

    def test_wrong_tag_length_is_malformed(self):
        with pytest.raises(MalformedEnvelopeError):
            decode(f"1:v1:{_b64(NONCE)}:{_b64(TAG[:15])}:{_b64(CIPHERTEXT)}")

    def test_empty_key_version_is_malformed(self):
        with pytest.raises(MalformedEnvelopeError):
            decode(f"1::{_b64(NONCE)}:{_b64(TAG)}:{_b64(CIPHERTEXT)}")

    def test_error_message_does_not_echo_segments(self):
        value = f"1:v1:{_b64(NONCE[:8])}:{_b64(TAG)}:{_b64(CIPHERTEXT)}"
        with pytest.raises(MalformedEnvelopeError) as exc_info:
            decode(value)
        assert _b64(NONCE[:8]) not in str(exc_info.value)
