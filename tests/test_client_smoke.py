import time

import pytest
from nacl.signing import SigningKey

from sames.api.client import SamesAuthError, SamesClient, SamesHTTPError
from sames.auth.signature import verify


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        return self._payload


def install_fake(client, responses, calls):
    def fake_request(method, url, timeout=None, **kwargs):
        calls.append((method, url, kwargs))
        return responses.pop(0)

    client.session = type("S", (), {})()
    client.session.request = fake_request


def test_record_trade_retries_and_resubmits_same_tx(monkeypatch):
    calls = []
    client = SamesClient(base_url="https://example.com/api")
    install_fake(client, [FakeResponse(503, {}), FakeResponse(200, {"ok": True, "duplicate": True})], calls)
    monkeypatch.setattr(time, "sleep", lambda *_args, **_kwargs: None)

    result = client.record_trade("T1", "sigA", "buy", sol_amount=10, wallet="W1")
    assert result["ok"] is True
    assert len(calls) == 2
    assert calls[0][1] == "https://example.com/api/trade/T1"
    assert calls[0][2]["json"] == calls[1][2]["json"]
    assert calls[0][2]["json"]["tx_sig"] == "sigA"
    assert calls[0][2]["headers"] == {}


def test_signed_client_attaches_verifiable_headers():
    calls = []
    key = SigningKey.generate()
    client = SamesClient(base_url="https://example.com/api", signing_key=key)
    install_fake(client, [FakeResponse(200, {"ok": True}), FakeResponse(200, {"ok": True})], calls)

    client.record_trade("T1", "sigA", "sell")
    client.record_snapshot("T1", price_lamports=100)

    for _method, _url, kwargs in calls:
        headers = kwargs["headers"]
        wallet = kwargs["json"]["wallet"]
        assert wallet == client.wallet
        assert wallet in headers["x-wallet-message"]
        assert verify(wallet, headers["x-wallet-message"], headers["x-wallet-signature"])


def test_client_error_is_not_retried():
    calls = []
    client = SamesClient(base_url="https://example.com/api")
    install_fake(client, [FakeResponse(400, {"error": "wallet: Field required"})], calls)

    with pytest.raises(SamesHTTPError):
        client.record_trade("T1", "sigA", "buy")
    assert len(calls) == 1


def test_request_error_after_retries():
    calls = []
    client = SamesClient(base_url="https://example.com/api", retries=1)
    install_fake(client, [FakeResponse(500, {"error": "disk I/O error"})], calls)

    with pytest.raises(SamesHTTPError):
        client.list_prices("T1")


def test_retry_re_signs_with_fresh_message(monkeypatch):
    calls = []
    key = SigningKey.generate()
    client = SamesClient(base_url="https://example.com/api", signing_key=key)
    install_fake(client, [FakeResponse(429, {}), FakeResponse(200, {"ok": True})], calls)
    clock = iter([1_700_000_000, 1_700_000_060])
    monkeypatch.setattr(time, "time", lambda: next(clock))
    monkeypatch.setattr(time, "sleep", lambda *_args, **_kwargs: None)

    client.record_trade("T1", "sigA", "buy")

    first, second = (kwargs["headers"] for _method, _url, kwargs in calls)
    assert first["x-wallet-message"].endswith(":1700000000")
    assert second["x-wallet-message"].endswith(":1700000060")
    assert verify(client.wallet, second["x-wallet-message"], second["x-wallet-signature"])


def test_rejected_signature_is_not_retried():
    calls = []
    client = SamesClient(base_url="https://example.com/api", signing_key=SigningKey.generate())
    install_fake(client, [FakeResponse(401, {"error": "invalid signature"})], calls)

    with pytest.raises(SamesAuthError, match="invalid signature"):
        client.record_trade("T1", "sigA", "buy")
    assert len(calls) == 1
