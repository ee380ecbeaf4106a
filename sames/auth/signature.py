from __future__ import annotations

import base58
from nacl.exceptions import CryptoError
from nacl.signing import SigningKey, VerifyKey

PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64


def _decode(value: str, length: int) -> bytes | None:
    try:
        raw = base58.b58decode(value)
    except ValueError:
        return None
    if len(raw) != length:
        return None
    return raw


def verify(wallet: str, message: str, signature: str) -> bool:
    """Check a detached Ed25519 signature of ``message`` by ``wallet``.

    Both ``wallet`` and ``signature`` are base58 strings. Malformed input of any
    kind yields False rather than an exception.
    """
    if not isinstance(wallet, str) or not isinstance(message, str) or not isinstance(signature, str):
        return False

    key = _decode(wallet, PUBLIC_KEY_LENGTH)
    sig = _decode(signature, SIGNATURE_LENGTH)
    if key is None or sig is None:
        return False

    try:
        VerifyKey(key).verify(message.encode("utf-8"), sig)
    except (CryptoError, ValueError):
        return False
    return True


def wallet_address(signing_key: SigningKey) -> str:
    """Base58 public key for a signing key, i.e. the wallet address."""
    return base58.b58encode(bytes(signing_key.verify_key)).decode("ascii")


def sign_message(signing_key: SigningKey, message: str) -> str:
    """Base58 detached signature of ``message``."""
    signed = signing_key.sign(message.encode("utf-8"))
    return base58.b58encode(signed.signature).decode("ascii")
