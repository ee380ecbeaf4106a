from __future__ import annotations

import os
import time
from typing import Any, Dict, List, Optional

import requests
from nacl.signing import SigningKey

from sames.auth.signature import sign_message, wallet_address


class SamesHTTPError(Exception):
    """Raised when a SAMES API request cannot be satisfied."""


class SamesAuthError(SamesHTTPError):
    """Raised when the server rejects the wallet signature (401). Never retried."""


def _error_text(response: Any) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict) and "error" in payload:
        return str(payload["error"])
    return response.text


class SamesClient:
    """Client for chain watchers and bots feeding the ledger.

    Trade submissions are safe to retry: the server ignores a repeated ``tx_sig``.
    With a ``signing_key`` every write carries the wallet-signature headers.
    """

    RETRY_STATUS = {429, 500, 502, 503, 504}

    def __init__(
        self,
        base_url: Optional[str] = None,
        signing_key: Optional[SigningKey] = None,
        timeout: float = 10.0,
        retries: int = 3,
    ):
        self.base_url = base_url or os.getenv("SAMES_API_URL", "http://localhost:3001/api")
        self.signing_key = signing_key
        self.timeout = timeout
        self.retries = retries
        self.session = requests.Session()

    @property
    def wallet(self) -> Optional[str]:
        if self.signing_key is None:
            return None
        return wallet_address(self.signing_key)

    def _auth_headers(self, action: str) -> Dict[str, str]:
        if self.signing_key is None:
            return {}
        message = f"sames:{action}:{self.wallet}:{int(time.time())}"
        return {
            "x-wallet-message": message,
            "x-wallet-signature": sign_message(self.signing_key, message),
        }

    def _request(self, method: str, path: str, sign: Optional[str] = None, **kwargs: Any) -> Any:
        """Send a request, retrying transient failures.

        ``sign`` names the write action. Headers are signed afresh on every
        attempt so the timestamped message is never older than the backoff.
        """
        url = f"{self.base_url.rstrip('/')}{path}"
        backoff = 1.0

        for attempt in range(1, self.retries + 1):
            if sign is not None:
                kwargs["headers"] = self._auth_headers(sign)
            last_attempt = attempt == self.retries

            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except requests.RequestException as exc:  # pragma: no cover - network instability
                if last_attempt:
                    raise SamesHTTPError(f"Request failed after {self.retries} attempts: {exc}") from exc
                time.sleep(backoff)
                backoff *= 2
                continue

            if response.status_code in self.RETRY_STATUS and not last_attempt:
                time.sleep(backoff)
                backoff *= 2
                continue

            if response.status_code == 401:
                raise SamesAuthError(f"{method} {path} rejected: {_error_text(response)}")
            if 400 <= response.status_code:
                raise SamesHTTPError(f"{method} {path} failed ({response.status_code}): {_error_text(response)}")

            try:
                return response.json()
            except ValueError as exc:  # pragma: no cover - unexpected payloads
                raise SamesHTTPError("SAMES response was not valid JSON") from exc

        raise SamesHTTPError("SAMES request unexpectedly exhausted retries")

    def record_trade(
        self,
        token_address: str,
        tx_sig: str,
        trade_type: str,
        sol_amount: int = 0,
        token_amount: int = 0,
        price_lamports: int = 0,
        wallet: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Submit a trade. Defaults ``wallet`` to the signing key's address."""
        body = {
            "wallet": wallet or self.wallet,
            "tx_sig": tx_sig,
            "trade_type": trade_type,
            "sol_amount": sol_amount,
            "token_amount": token_amount,
            "price_lamports": price_lamports,
        }
        return self._request("POST", f"/trade/{token_address}", json=body, sign="trade")

    def record_snapshot(
        self,
        token_address: str,
        price_lamports: int,
        tokens_sold: int = 0,
        sol_collected: int = 0,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "price_lamports": price_lamports,
            "tokens_sold": tokens_sold,
            "sol_collected": sol_collected,
        }
        if self.wallet:
            body["wallet"] = self.wallet
        return self._request("POST", f"/snapshot/{token_address}", json=body, sign="snapshot")

    def list_trades(self, token_address: str, limit: int = 100) -> List[Dict[str, Any]]:
        return self._request("GET", f"/trades/{token_address}", params={"limit": limit})

    def list_prices(self, token_address: str, limit: int = 500) -> List[Dict[str, Any]]:
        return self._request("GET", f"/prices/{token_address}", params={"limit": limit})

    def get_profile(self, wallet: str) -> Dict[str, Any]:
        return self._request("GET", f"/profile/{wallet}")
