import base58
import pytest
from nacl.signing import SigningKey

from sames.auth.signature import sign_message, verify, wallet_address


def make_signed(message_template: str = "Sign in to SAMES as {wallet}"):
    key = SigningKey.generate()
    wallet = wallet_address(key)
    message = message_template.format(wallet=wallet)
    return wallet, message, sign_message(key, message)


def test_valid_signature_verifies():
    wallet, message, signature = make_signed()
    assert verify(wallet, message, signature) is True


def test_unicode_message_verifies():
    wallet, message, signature = make_signed("gm ☀️ {wallet} ünïcode")
    assert verify(wallet, message, signature) is True


@pytest.mark.parametrize("index", [0, 31, 63])
def test_mutated_signature_byte_fails(index):
    wallet, message, signature = make_signed()
    raw = bytearray(base58.b58decode(signature))
    raw[index] ^= 0x01
    mutated = base58.b58encode(bytes(raw)).decode()
    assert verify(wallet, message, mutated) is False


def test_mutated_message_fails():
    wallet, message, signature = make_signed()
    tampered = message[:-1] + ("x" if message[-1] != "x" else "y")
    assert verify(wallet, tampered, signature) is False


def test_signature_from_other_wallet_fails():
    wallet, message, _ = make_signed()
    other = SigningKey.generate()
    assert verify(wallet, message, sign_message(other, message)) is False


@pytest.mark.parametrize(
    "bad_wallet",
    ["not-base58-0OIl", "", base58.b58encode(b"\x01" * 31).decode(), base58.b58encode(b"\x01" * 33).decode()],
)
def test_malformed_wallet_returns_false(bad_wallet):
    _, message, signature = make_signed()
    assert verify(bad_wallet, message, signature) is False


@pytest.mark.parametrize(
    "bad_signature",
    ["0OIl", "", base58.b58encode(b"\x02" * 63).decode(), base58.b58encode(b"\x02" * 65).decode()],
)
def test_malformed_signature_returns_false(bad_signature):
    wallet, message, _ = make_signed()
    assert verify(wallet, message, bad_signature) is False


def test_non_string_input_returns_false():
    wallet, message, signature = make_signed()
    assert verify(wallet, message.encode(), signature) is False
    assert verify(None, message, signature) is False
