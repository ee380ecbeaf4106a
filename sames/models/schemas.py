from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

MAX_CHAT_LENGTH = 500
# Largest value a SQLite INTEGER column holds.
MAX_SQLITE_INT = 2**63 - 1


def _ms_to_datetime(v: int | float | datetime | None):
    if isinstance(v, (int, float)):
        return datetime.fromtimestamp(v / 1000, tz=timezone.utc)
    return v


def _none_to_zero(v: Optional[int]):
    return 0 if v is None else v


class TradeType(str, Enum):
    BUY = "buy"
    SELL = "sell"


class TradeIn(BaseModel):
    """Body of POST /trade/{token_address}."""

    wallet: str = Field(min_length=1)
    tx_sig: str = Field(min_length=1)
    trade_type: TradeType
    sol_amount: int = Field(default=0, ge=0, le=MAX_SQLITE_INT)
    token_amount: int = Field(default=0, ge=0, le=MAX_SQLITE_INT)
    price_lamports: int = Field(default=0, ge=0, le=MAX_SQLITE_INT)

    @field_validator("trade_type", mode="before")
    @classmethod
    def _lower_trade_type(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("sol_amount", "token_amount", "price_lamports", mode="before")
    @classmethod
    def _default_amounts(cls, v):
        return _none_to_zero(v)


class Trade(BaseModel):
    id: int
    token_address: str
    tx_sig: str
    wallet: str
    trade_type: TradeType
    sol_amount: int
    token_amount: int
    price_lamports: int
    created_at: datetime
    username: Optional[str] = None
    pfp_url: Optional[str] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, v):
        return _ms_to_datetime(v)


class SnapshotIn(BaseModel):
    """Body of POST /snapshot/{token_address}. ``wallet`` is only read by the auth gate."""

    price_lamports: int = Field(default=0, ge=0, le=MAX_SQLITE_INT)
    tokens_sold: int = Field(default=0, ge=0, le=MAX_SQLITE_INT)
    sol_collected: int = Field(default=0, ge=0, le=MAX_SQLITE_INT)
    wallet: Optional[str] = None

    @field_validator("price_lamports", "tokens_sold", "sol_collected", mode="before")
    @classmethod
    def _default_amounts(cls, v):
        return _none_to_zero(v)


class PriceSnapshot(BaseModel):
    id: int
    token_address: str
    price_lamports: int
    tokens_sold: int
    sol_collected: int
    created_at: datetime

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, v):
        return _ms_to_datetime(v)


class Profile(BaseModel):
    wallet: str
    username: Optional[str] = None
    bio: str = ""
    website: str = ""
    twitter: str = ""
    telegram: str = ""
    pfp_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_ts(cls, v):
        return _ms_to_datetime(v)


class ProfileUpdate(BaseModel):
    username: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None
    twitter: Optional[str] = None
    telegram: Optional[str] = None


class ProfilesBatchIn(BaseModel):
    wallets: List[str] = Field(default_factory=list)


class ChatMessageIn(BaseModel):
    wallet: str = Field(min_length=1)
    message: str

    @field_validator("message")
    @classmethod
    def _check_message(cls, v: str):
        if not v.strip():
            raise ValueError("message required")
        if len(v) > MAX_CHAT_LENGTH:
            raise ValueError(f"Max {MAX_CHAT_LENGTH} chars")
        return v.strip()


class ChatMessage(BaseModel):
    id: int
    token_address: str
    wallet: str
    message: str
    created_at: datetime
    username: Optional[str] = None
    pfp_url: Optional[str] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, v):
        return _ms_to_datetime(v)


class SignedRequest(BaseModel):
    """Per-request signature claim. Never persisted."""

    wallet: Optional[str] = None
    message: Optional[str] = None
    signature: Optional[str] = None

    @classmethod
    def from_headers(cls, wallet: Optional[str], headers: Mapping[str, str]) -> "SignedRequest":
        return cls(
            wallet=wallet,
            message=headers.get("x-wallet-message"),
            signature=headers.get("x-wallet-signature"),
        )
