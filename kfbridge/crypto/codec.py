"""
WeCom callback message crypto.

- Signature: SHA1 over the sorted concatenation of token, timestamp, nonce
  and the encrypted payload.
- Cipher: AES-256-CBC, key = base64decode(EncodingAESKey + "="), iv = key[:16].
- Plaintext layout: random(16) + msg_len(4, big-endian) + msg + receiver_id,
  PKCS#7-padded to 32-byte blocks.
"""

import base64
import binascii
import hashlib
import hmac
import os
import struct
from typing import NamedTuple

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from kfbridge.core.exceptions import ConfigError, CryptoError
from kfbridge.domain.models.credentials import CallbackCredential

ENCODING_AES_KEY_LENGTH = 43
AES_KEY_SIZE = 32
PKCS7_BLOCK_SIZE = 32
RANDOM_PREFIX_SIZE = 16
HEADER_SIZE = RANDOM_PREFIX_SIZE + 4


class DecryptedMessage(NamedTuple):
    """Plaintext message and the receiver id appended after it."""

    message: str
    receiver_id: str


def derive_key(encoding_aes_key: str) -> bytes:
    """
    Derive the 32-byte AES key from the configured EncodingAESKey.

    Args:
        encoding_aes_key: 43-character base64 string (without trailing "=")

    Returns:
        32-byte AES key; its first 16 bytes double as the CBC IV

    Raises:
        ConfigError: If the key is not 43 characters or does not decode to 32 bytes
    """
    if len(encoding_aes_key) != ENCODING_AES_KEY_LENGTH:
        raise ConfigError(
            f"EncodingAESKey must be {ENCODING_AES_KEY_LENGTH} characters, "
            f"got {len(encoding_aes_key)}"
        )
    try:
        key = base64.b64decode(encoding_aes_key + "=", validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigError("EncodingAESKey is not valid base64") from e
    if len(key) != AES_KEY_SIZE:
        raise ConfigError(f"Derived AES key must be {AES_KEY_SIZE} bytes, got {len(key)}")
    return key


def compute_signature(token: str, timestamp: str, nonce: str, payload: str) -> str:
    """SHA1 hex digest of the lexicographically sorted, concatenated inputs."""
    items = sorted([token, timestamp, nonce, payload])
    return hashlib.sha1("".join(items).encode("utf-8")).hexdigest()


def verify_signature(
    token: str, timestamp: str, nonce: str, payload: str, signature: str
) -> bool:
    """
    Check a callback signature in constant time.

    Never raises on mismatch; a length or value mismatch simply returns False.
    """
    actual = compute_signature(token, timestamp, nonce, payload).encode("utf-8")
    expected = signature.encode("utf-8")
    if len(actual) != len(expected):
        return False
    return hmac.compare_digest(actual, expected)


def _cipher(key: bytes) -> Cipher:
    return Cipher(algorithms.AES(key), modes.CBC(key[:16]))


def _strip_pkcs7(data: bytes) -> bytes:
    if not data:
        raise CryptoError("invalid PKCS#7 padding")
    pad = data[-1]
    if pad < 1 or pad > PKCS7_BLOCK_SIZE or pad > len(data):
        raise CryptoError("invalid PKCS#7 padding")
    if any(b != pad for b in data[-pad:]):
        raise CryptoError("invalid PKCS#7 padding")
    return data[:-pad]


def decrypt(key: bytes, ciphertext_b64: str) -> DecryptedMessage:
    """
    Decrypt a base64 callback payload.

    Args:
        key: 32-byte AES key from derive_key()
        ciphertext_b64: Base64 ciphertext from the callback

    Returns:
        DecryptedMessage with the UTF-8 message and trailing receiver id

    Raises:
        CryptoError: On bad base64, block misalignment, padding or length errors
    """
    try:
        raw = base64.b64decode(ciphertext_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoError("ciphertext is not valid base64") from e
    if not raw or len(raw) % 16 != 0:
        raise CryptoError("ciphertext length is not a multiple of the AES block size")

    decryptor = _cipher(key).decryptor()
    plaintext = decryptor.update(raw) + decryptor.finalize()

    content = _strip_pkcs7(plaintext)
    if len(content) < HEADER_SIZE:
        raise CryptoError("decrypted content too short")

    (msg_len,) = struct.unpack(">I", content[RANDOM_PREFIX_SIZE:HEADER_SIZE])
    if HEADER_SIZE + msg_len > len(content):
        raise CryptoError("invalid message length in decrypted content")

    try:
        message = content[HEADER_SIZE : HEADER_SIZE + msg_len].decode("utf-8")
        receiver_id = content[HEADER_SIZE + msg_len :].decode("utf-8")
    except UnicodeDecodeError as e:
        raise CryptoError("decrypted content is not valid UTF-8") from e
    return DecryptedMessage(message, receiver_id)


def encrypt(key: bytes, message: str, receiver_id: str) -> str:
    """
    Encrypt a message for a callback reply.

    Args:
        key: 32-byte AES key from derive_key()
        message: Plaintext message (usually XML)
        receiver_id: Receiver id appended after the message (corp id)

    Returns:
        Base64 ciphertext
    """
    msg_bytes = message.encode("utf-8")
    plaintext = (
        os.urandom(RANDOM_PREFIX_SIZE)
        + struct.pack(">I", len(msg_bytes))
        + msg_bytes
        + receiver_id.encode("utf-8")
    )
    pad = PKCS7_BLOCK_SIZE - (len(plaintext) % PKCS7_BLOCK_SIZE)
    padded = plaintext + bytes([pad]) * pad

    encryptor = _cipher(key).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(ciphertext).decode("ascii")


class CryptoCodec:
    """
    Callback crypto bound to one callback credential.

    The AES key is derived once at construction so a malformed key fails at
    startup rather than on the first callback.
    """

    def __init__(self, credential: CallbackCredential):
        self._token = credential.token
        self._key = derive_key(credential.encoding_aes_key)

    def sign(self, timestamp: str, nonce: str, payload: str) -> str:
        return compute_signature(self._token, timestamp, nonce, payload)

    def verify(self, timestamp: str, nonce: str, payload: str, signature: str) -> bool:
        return verify_signature(self._token, timestamp, nonce, payload, signature)

    def decrypt(self, ciphertext_b64: str) -> DecryptedMessage:
        return decrypt(self._key, ciphertext_b64)

    def encrypt(self, message: str, receiver_id: str) -> str:
        return encrypt(self._key, message, receiver_id)
