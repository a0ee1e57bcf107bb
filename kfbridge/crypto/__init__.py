"""Callback crypto for the WeChat KF webhook protocol."""

from .codec import (
    CryptoCodec,
    DecryptedMessage,
    compute_signature,
    decrypt,
    derive_key,
    encrypt,
    verify_signature,
)

__all__ = [
    "CryptoCodec",
    "DecryptedMessage",
    "compute_signature",
    "decrypt",
    "derive_key",
    "encrypt",
    "verify_signature",
]
