from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from pydantic import ValidationError

from sames.errors import InvalidRequestError, StorageError
from sames.models.schemas import (
    ChatMessage,
    PriceSnapshot,
    Profile,
    ProfileUpdate,
    SnapshotIn,
    Trade,
    TradeIn,
)

logger = logging.getLogger(__name__)

DEFAULT_TRADES_LIMIT = 100
MAX_TRADES_LIMIT = 500
DEFAULT_SNAPSHOTS_LIMIT = 500
MAX_SNAPSHOTS_LIMIT = 1000
DEFAULT_CHAT_LIMIT = 50
MAX_CHAT_LIMIT = 200

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS profiles (
        wallet TEXT PRIMARY KEY,
        username TEXT,
        bio TEXT NOT NULL DEFAULT '',
        website TEXT NOT NULL DEFAULT '',
        twitter TEXT NOT NULL DEFAULT '',
        telegram TEXT NOT NULL DEFAULT '',
        pfp_url TEXT,
        created_at INTEGER NOT NULL,
        updated_at INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chat_messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        token_address TEXT NOT NULL,
        wallet TEXT NOT NULL,
        message TEXT NOT NULL,
        created_at INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS trades (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        token_address TEXT NOT NULL,
        tx_sig TEXT NOT NULL UNIQUE,
        wallet TEXT NOT NULL,
        trade_type TEXT NOT NULL CHECK (trade_type IN ('buy', 'sell')),
        sol_amount INTEGER NOT NULL DEFAULT 0,
        token_amount INTEGER NOT NULL DEFAULT 0,
        price_lamports INTEGER NOT NULL DEFAULT 0,
        created_at INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS price_snapshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        token_address TEXT NOT NULL,
        price_lamports INTEGER NOT NULL DEFAULT 0,
        tokens_sold INTEGER NOT NULL DEFAULT 0,
        sol_collected INTEGER NOT NULL DEFAULT 0,
        created_at INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_chat_token_created ON chat_messages (token_address, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_trades_token_created ON trades (token_address, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_snapshots_token_created ON price_snapshots (token_address, created_at)",
)


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def _monotonic_created_at(table: str) -> str:
    """SQL expression for ``created_at`` that never falls below the token's latest row.

    Takes two parameters: the wall-clock ms and the token address. Evaluated
    inside the IMMEDIATE write transaction, so a clock stepping backwards
    cannot reorder a token's history.
    """
    return f"MAX(?, COALESCE((SELECT MAX(created_at) FROM {table} WHERE token_address = ?), 0))"


def clamp_limit(limit: Optional[int], default: int, maximum: int) -> int:
    """Non-positive or missing limits fall back to ``default``; the rest are capped."""
    if limit is None or limit <= 0:
        return default
    return min(limit, maximum)


class SQLiteStore:
    """SQLite persistence for profiles, chat, the trade ledger and price history.

    Every operation opens its own connection so concurrent request handlers
    never share one. Trades and snapshots are append-only: nothing here updates
    or deletes them.
    """

    def __init__(self, db_path: str = "data/sames.db", timeout: float = 30.0) -> None:
        self.db_path = db_path
        self.timeout = timeout
        Path(os.path.dirname(self.db_path) or ".").mkdir(parents=True, exist_ok=True)
        self._create_tables()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level="IMMEDIATE")
        except sqlite3.Error as exc:
            logger.exception("Could not open database %s", self.db_path)
            raise StorageError(str(exc)) from exc

        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logger.exception("Storage operation failed")
            raise StorageError(str(exc)) from exc
        finally:
            conn.close()

    def _create_tables(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            for statement in SCHEMA:
                conn.execute(statement)

    # ── Trade ledger ──

    def record_trade(self, token_address: str, trade: TradeIn | Mapping[str, Any]) -> bool:
        """Insert a trade keyed by ``tx_sig``.

        Returns True when a new row was written and False when the transaction
        was already recorded. A duplicate is not an error: the conflict is
        resolved inside the single INSERT statement, so concurrent submissions
        of the same ``tx_sig`` leave exactly one row.
        """
        try:
            trade = TradeIn.model_validate(trade)
        except ValidationError as err:
            raise InvalidRequestError(str(err)) from err

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO trades (
                    token_address, tx_sig, wallet, trade_type,
                    sol_amount, token_amount, price_lamports, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, {created_at})
                ON CONFLICT(tx_sig) DO NOTHING
                """.format(created_at=_monotonic_created_at("trades")),
                (
                    token_address,
                    trade.tx_sig,
                    trade.wallet,
                    trade.trade_type.value,
                    trade.sol_amount,
                    trade.token_amount,
                    trade.price_lamports,
                    now_ms(),
                    token_address,
                ),
            )
            inserted = cursor.rowcount == 1

        if inserted:
            logger.info("Recorded %s trade %s on %s", trade.trade_type.value, trade.tx_sig, token_address)
        else:
            logger.info("Trade %s already recorded; ignoring resubmission", trade.tx_sig)
        return inserted

    def list_trades(self, token_address: str, limit: Optional[int] = None) -> List[Trade]:
        """Most recent trades for a token, oldest first, joined with the trader's profile."""
        limit = clamp_limit(limit, DEFAULT_TRADES_LIMIT, MAX_TRADES_LIMIT)
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT t.*, p.username, p.pfp_url
                FROM trades t
                LEFT JOIN profiles p ON t.wallet = p.wallet
                WHERE t.token_address = ?
                ORDER BY t.created_at DESC, t.id DESC
                LIMIT ?
                """,
                (token_address, limit),
            ).fetchall()
        return [Trade.model_validate(dict(row)) for row in reversed(rows)]

    def count_trades(self, tx_sig: Optional[str] = None) -> int:
        with self._connect() as conn:
            if tx_sig is None:
                row = conn.execute("SELECT COUNT(*) FROM trades").fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) FROM trades WHERE tx_sig = ?", (tx_sig,)).fetchone()
        return int(row[0])

    # ── Price history ──

    def record_snapshot(self, token_address: str, snapshot: SnapshotIn | Mapping[str, Any]) -> None:
        """Append a price observation. There is no dedup key; every call adds a row."""
        try:
            snap = SnapshotIn.model_validate(snapshot)
        except ValidationError as err:
            raise InvalidRequestError(str(err)) from err

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO price_snapshots (token_address, price_lamports, tokens_sold, sol_collected, created_at)
                VALUES (?, ?, ?, ?, {created_at})
                """.format(created_at=_monotonic_created_at("price_snapshots")),
                (token_address, snap.price_lamports, snap.tokens_sold, snap.sol_collected, now_ms(), token_address),
            )

    def list_snapshots(self, token_address: str, limit: Optional[int] = None) -> List[PriceSnapshot]:
        limit = clamp_limit(limit, DEFAULT_SNAPSHOTS_LIMIT, MAX_SNAPSHOTS_LIMIT)
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, token_address, price_lamports, tokens_sold, sol_collected, created_at
                FROM price_snapshots
                WHERE token_address = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (token_address, limit),
            ).fetchall()
        return [PriceSnapshot.model_validate(dict(row)) for row in reversed(rows)]

    # ── Profiles ──

    def get_profile(self, wallet: str) -> Optional[Profile]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM profiles WHERE wallet = ?", (wallet,)).fetchone()
        if row is None:
            return None
        return Profile.model_validate(dict(row))

    def get_profiles_batch(self, wallets: Iterable[str]) -> List[Profile]:
        wallets = list(dict.fromkeys(wallets))
        if not wallets:
            return []
        placeholders = ",".join("?" for _ in wallets)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM profiles WHERE wallet IN ({placeholders})",
                wallets,
            ).fetchall()
        return [Profile.model_validate(dict(row)) for row in rows]

    def upsert_profile(self, wallet: str, update: ProfileUpdate | Mapping[str, Any]) -> None:
        """Create or patch a profile. Fields left as None keep their stored value."""
        update = ProfileUpdate.model_validate(update)
        ts = now_ms()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO profiles (wallet, username, bio, website, twitter, telegram, created_at, updated_at)
                VALUES (
                    :wallet, :username, COALESCE(:bio, ''), COALESCE(:website, ''),
                    COALESCE(:twitter, ''), COALESCE(:telegram, ''), :ts, :ts
                )
                ON CONFLICT(wallet) DO UPDATE SET
                    username = COALESCE(:username, profiles.username),
                    bio = COALESCE(:bio, profiles.bio),
                    website = COALESCE(:website, profiles.website),
                    twitter = COALESCE(:twitter, profiles.twitter),
                    telegram = COALESCE(:telegram, profiles.telegram),
                    updated_at = :ts
                """,
                {"wallet": wallet, "ts": ts, **update.model_dump()},
            )

    def set_pfp_url(self, wallet: str, pfp_url: str) -> None:
        ts = now_ms()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO profiles (wallet, pfp_url, created_at, updated_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(wallet) DO UPDATE SET pfp_url = excluded.pfp_url, updated_at = excluded.updated_at
                """,
                (wallet, pfp_url, ts, ts),
            )

    # ── Chat ──

    def list_chat(
        self,
        token_address: str,
        limit: Optional[int] = None,
        before: Optional[int] = None,
    ) -> List[ChatMessage]:
        """Newest messages (optionally older than message id ``before``), oldest first."""
        limit = clamp_limit(limit, DEFAULT_CHAT_LIMIT, MAX_CHAT_LIMIT)
        query = """
            SELECT m.*, p.username, p.pfp_url FROM chat_messages m
            LEFT JOIN profiles p ON m.wallet = p.wallet
            WHERE m.token_address = ?
        """
        params: List[Any] = [token_address]
        if before:
            query += " AND m.id < ?"
            params.append(before)
        query += " ORDER BY m.created_at DESC, m.id DESC LIMIT ?"
        params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [ChatMessage.model_validate(dict(row)) for row in reversed(rows)]

    def post_chat(self, token_address: str, wallet: str, message: str) -> ChatMessage:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO chat_messages (token_address, wallet, message, created_at) VALUES (?, ?, ?, {})".format(
                    _monotonic_created_at("chat_messages")
                ),
                (token_address, wallet, message, now_ms(), token_address),
            )
            row = conn.execute(
                """
                SELECT m.*, p.username, p.pfp_url FROM chat_messages m
                LEFT JOIN profiles p ON m.wallet = p.wallet
                WHERE m.id = ?
                """,
                (cursor.lastrowid,),
            ).fetchone()
        return ChatMessage.model_validate(dict(row))

    # ── Health ──

    def counts(self) -> Dict[str, int]:
        with self._connect() as conn:
            return {
                table: int(conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])
                for table in ("profiles", "chat_messages", "trades", "price_snapshots")
            }
