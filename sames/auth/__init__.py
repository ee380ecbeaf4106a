"""Wallet-signature verification and the write gate built on it."""

from .gate import AuthGate
from .signature import sign_message, verify

__all__ = ["AuthGate", "sign_message", "verify"]
