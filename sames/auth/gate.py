from __future__ import annotations

import logging
from typing import Callable

from sames.auth.signature import verify
from sames.errors import AuthError
from sames.models.schemas import SignedRequest

logger = logging.getLogger(__name__)

Verifier = Callable[[str, str, str], bool]


class AuthGate:
    """Per-request wallet-signature check guarding every write.

    When ``enabled`` is False every request is let through. That mode exists for
    local development only and gives no security guarantee.

    There is no session: each call is verified from scratch and nothing about
    the request is changed on success.
    """

    def __init__(self, enabled: bool, verifier: Verifier = verify) -> None:
        self.enabled = enabled
        self.verifier = verifier
        if not enabled:
            logger.warning("Wallet signature auth is DISABLED; all writes are accepted")

    def authorize(self, signed: SignedRequest) -> None:
        if not self.enabled:
            return

        if not signed.wallet or not signed.signature or not signed.message:
            logger.warning("Auth rejected: missing wallet, signature or message")
            raise AuthError("wallet, x-wallet-signature and x-wallet-message required")

        if signed.wallet not in signed.message:
            logger.warning("Auth rejected for %s: wallet not present in signed message", signed.wallet)
            raise AuthError("signed message does not reference wallet")

        if not self.verifier(signed.wallet, signed.message, signed.signature):
            logger.warning("Auth rejected for %s: invalid signature", signed.wallet)
            raise AuthError("invalid signature")
