"""AES-256-CBC envelope used by WeCom callbacks.

The 43-character ``encodingAESKey`` is Base64 (missing its ``=`` padding)
for a 32-byte AES key; the IV is the first 16 key bytes. Plaintext layout
before PKCS#7 padding to 32-byte blocks::

    random (16 bytes) || msg length (4 bytes, big-endian) || msg || receive_id

For intelligent bots the receive id is empty; for self-built apps it is
the corp id, and ``decrypt`` rejects envelopes addressed to anyone else.
"""

from __future__ import annotations

import base64
import binascii
import secrets
import struct

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from wecom_channel.helpers.errors import WecomCryptoError

AES_KEY_LENGTH = 43
PAD_BLOCK_BITS = 256


def decode_aes_key(encoding_aes_key: str) -> bytes:
    """Decode an ``encodingAESKey`` into the raw 32-byte AES key.

    Raises:
        WecomCryptoError: If the key is not 43 Base64 characters.
    """
    key_text = (encoding_aes_key or "").strip()
    if len(key_text) != AES_KEY_LENGTH:
        raise WecomCryptoError(
            f"encodingAESKey must be {AES_KEY_LENGTH} characters, got {len(key_text)}"
        )
    try:
        key = base64.b64decode(key_text + "=")
    except (binascii.Error, ValueError) as exc:
        raise WecomCryptoError("encodingAESKey is not valid Base64") from exc
    if len(key) != 32:
        raise WecomCryptoError("encodingAESKey does not decode to 32 bytes")
    return key


class WecomCrypto:
    """Encrypt and decrypt callback payloads for one account."""

    def __init__(self, encoding_aes_key: str, receive_id: str = "") -> None:
        self._key = decode_aes_key(encoding_aes_key)
        self._iv = self._key[:16]
        self.receive_id = receive_id or ""

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CBC(self._iv))

    def encrypt(self, message: str, nonce: bytes | None = None) -> str:
        """Encrypt *message*; returns Base64 text suitable for ``encrypt``."""
        body = message.encode()
        plain = (
            (nonce or secrets.token_bytes(16))
            + struct.pack(">I", len(body))
            + body
            + self.receive_id.encode()
        )
        padder = padding.PKCS7(PAD_BLOCK_BITS).padder()
        padded = padder.update(plain) + padder.finalize()
        encryptor = self._cipher().encryptor()
        return base64.b64encode(encryptor.update(padded) + encryptor.finalize()).decode(
            "ascii"
        )

    def decrypt(self, encrypted: str) -> str:
        """Decrypt a payload produced by WeCom (or :meth:`encrypt`).

        Raises:
            WecomCryptoError: If the data is not Base64, the padding or
                length prefix is corrupt, or the receive id does not match.
        """
        try:
            raw = base64.b64decode(encrypted)
        except (binascii.Error, ValueError) as exc:
            raise WecomCryptoError("Encrypted payload is not valid Base64") from exc
        if not raw or len(raw) % 16:
            raise WecomCryptoError("Encrypted payload has an invalid length")

        decryptor = self._cipher().decryptor()
        padded = decryptor.update(raw) + decryptor.finalize()
        unpadder = padding.PKCS7(PAD_BLOCK_BITS).unpadder()
        try:
            plain = unpadder.update(padded) + unpadder.finalize()
        except ValueError as exc:
            raise WecomCryptoError("Encrypted payload has invalid padding") from exc

        if len(plain) < 20:
            raise WecomCryptoError("Decrypted payload is too short")
        (length,) = struct.unpack(">I", plain[16:20])
        if 20 + length > len(plain):
            raise WecomCryptoError("Decrypted payload length prefix is corrupt")
        message = plain[20 : 20 + length]
        receive_id = plain[20 + length :].decode(errors="replace")
        if self.receive_id and receive_id != self.receive_id:
            raise WecomCryptoError("Decrypted payload is addressed to another receiver")
        try:
            return message.decode()
        except UnicodeDecodeError as exc:
            raise WecomCryptoError("Decrypted payload is not UTF-8") from exc
