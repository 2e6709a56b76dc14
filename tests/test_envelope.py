"""
Tests for Encryptor and Decryptor.
"""
import pytest

from envelope_rotation import (
    AuthenticationFailureError,
    Decryptor,
    Encryptor,
    InMemoryKeyProvider,
    InvalidKeyMaterialError,
    KeyNotFoundError,
    KeyProviderUnavailableError,
    MalformedEnvelopeError,
    UnsupportedFormatVersionError,
    decode,
    encode,
)

from conftest import KEY_V2

PLAINTEXTS = [b"", b"hello", "pässwörd", b"\x00" * 1000, bytes(range(256))]


def _flip_bit(data: bytes, bit: int) -> bytes:
    buf = bytearray(data)
    buf[bit // 8] ^= 1 << (bit % 8)
    return bytes(buf)


class TestEncryptor:
    async def test_scenario_zero_key_hello(self, key_provider):
        """Key v1 = 32 zero bytes; encrypt("hello") names v1 and decrypts back."""
        result = await Encryptor(key_provider).encrypt("hello")
        assert result.key_version == "v1"
        assert decode(result.envelope).key_version == "v1"
        assert await Decryptor(key_provider).decrypt(result.envelope) == b"hello"

    async def test_uses_current_version(self, key_provider):
        key_provider.add_version("v2", KEY_V2, activate=True)
        result = await Encryptor(key_provider).encrypt(b"data")
        assert result.key_version == "v2"
        assert result.envelope.startswith("1:v2:")

    async def test_same_plaintext_different_envelopes(self, key_provider):
        encryptor = Encryptor(key_provider)
        first = await encryptor.encrypt(b"same")
        second = await encryptor.encrypt(b"same")
        assert first.envelope != second.envelope
        assert decode(first.envelope).nonce != decode(second.envelope).nonce

    async def test_provider_unavailable_propagates(self, key_provider):
        key_provider.available = False
        with pytest.raises(KeyProviderUnavailableError):
            await Encryptor(key_provider).encrypt(b"data")

    async def test_invalid_key_material(self):
        provider = InMemoryKeyProvider(secret={"current-version": "v1", "v1": "c2hvcnQ="})
        with pytest.raises(InvalidKeyMaterialError):
            await Encryptor(provider).encrypt(b"data")


class TestDecryptor:
    @pytest.mark.parametrize("plaintext", PLAINTEXTS)
    async def test_round_trip(self, key_provider, plaintext):
        result = await Encryptor(key_provider).encrypt(plaintext)
        expected = plaintext.encode("utf-8") if isinstance(plaintext, str) else plaintext
        assert await Decryptor(key_provider).decrypt(result.envelope) == expected

    async def test_decrypts_with_version_named_in_envelope(self, key_provider):
        old = await Encryptor(key_provider).encrypt(b"old data")
        key_provider.add_version("v2", KEY_V2, activate=True)
        assert await Decryptor(key_provider).decrypt(old.envelope) == b"old data"

    async def test_tampered_ciphertext_every_bit(self, key_provider):
        result = await Encryptor(key_provider).encrypt(b"hello")
        envelope = decode(result.envelope)
        decryptor = Decryptor(key_provider)
        for bit in range(len(envelope.ciphertext) * 8):
            tampered = encode(
                envelope.key_version,
                envelope.nonce,
                envelope.tag,
                _flip_bit(envelope.ciphertext, bit),
            )
            with pytest.raises(AuthenticationFailureError):
                await decryptor.decrypt(tampered)

    async def test_tampered_tag_every_bit(self, key_provider):
        result = await Encryptor(key_provider).encrypt(b"hello")
        envelope = decode(result.envelope)
        decryptor = Decryptor(key_provider)
        for bit in range(len(envelope.tag) * 8):
            tampered = encode(
                envelope.key_version,
                envelope.nonce,
                _flip_bit(envelope.tag, bit),
                envelope.ciphertext,
            )
            with pytest.raises(AuthenticationFailureError):
                await decryptor.decrypt(tampered)

    async def test_relabelled_key_version_fails_authentication(self, key_provider):
        key_provider.add_version("v2", KEY_V2)
        result = await Encryptor(key_provider).encrypt(b"hello")
        envelope = decode(result.envelope)
        relabelled = encode("v2", envelope.nonce, envelope.tag, envelope.ciphertext)
        with pytest.raises(AuthenticationFailureError):
            await Decryptor(key_provider).decrypt(relabelled)

    async def test_missing_key_version(self, key_provider):
        result = await Encryptor(key_provider).encrypt(b"hello")
        envelope = decode(result.envelope)
        orphan = encode("v404", envelope.nonce, envelope.tag, envelope.ciphertext)
        with pytest.raises(KeyNotFoundError):
            await Decryptor(key_provider).decrypt(orphan)

    async def test_malformed(self, key_provider):
        with pytest.raises(MalformedEnvelopeError):
            await Decryptor(key_provider).decrypt("1:v1:onlythreeparts")

    async def test_unsupported_format(self, key_provider):
        result = await Encryptor(key_provider).encrypt(b"hello")
        with pytest.raises(UnsupportedFormatVersionError):
            await Decryptor(key_provider).decrypt("2" + result.envelope[1:])
