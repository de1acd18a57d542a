"""SQLite-backed persistence for accounts and chat messages."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from .conversations import normalise_handle
from .errors import ConflictError, StoreError
from .models import Account, Message, Profile


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    # Fixed-width UTC text so that lexical order equals chronological order.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _serialize_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def normalise_address(address: str) -> str:
    return address.strip().lower()


class Database:
    """Simple wrapper around SQLite for persisting accounts and messages."""

    def __init__(self, path: Path, *, timeout: float = 10.0) -> None:
        _ensure_directory(path)
        self._path = path
        self._timeout = timeout

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, timeout=self._timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreError() from exc
        try:
            with conn:
                yield conn
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as exc:
            raise StoreError() from exc
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connection() as conn:
            conn.executescript(
                """
                PRAGMA journal_mode = WAL;

                CREATE TABLE IF NOT EXISTS accounts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    handle TEXT NOT NULL,
                    handle_key TEXT NOT NULL UNIQUE,
                    address TEXT NOT NULL UNIQUE,
                    first_name TEXT,
                    last_name TEXT,
                    gender TEXT,
                    date_of_birth TEXT,
                    country_of_origin TEXT,
                    password_hash TEXT NOT NULL,
                    verified INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    room TEXT NOT NULL,
                    sender TEXT NOT NULL,
                    recipient TEXT NOT NULL,
                    sender_key TEXT NOT NULL,
                    recipient_key TEXT NOT NULL,
                    content TEXT NOT NULL,
                    sent_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_messages_room ON messages(room, sent_at, id);
                CREATE INDEX IF NOT EXISTS idx_messages_sender ON messages(sender_key);
                CREATE INDEX IF NOT EXISTS idx_messages_recipient ON messages(recipient_key);
                """
            )

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------
    def create_account(
        self,
        handle: str,
        address: str,
        password_hash: str,
        profile: Optional[Profile] = None,
    ) -> Account:
        """Insert a new unverified account.

        Raises :class:`ConflictError` naming the offending field when the
        handle or address is already registered. The UNIQUE constraints make
        this safe against concurrent registrations of the same values.
        """

        if not password_hash:
            raise ValueError("Password hash must not be empty")

        profile = profile or Profile()
        created_at = _current_timestamp()
        normalized_handle = handle.strip()
        normalized_address = normalise_address(address)

        try:
            with self._connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO accounts (
                        handle,
                        handle_key,
                        address,
                        first_name,
                        last_name,
                        gender,
                        date_of_birth,
                        country_of_origin,
                        password_hash,
                        verified,
                        created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?)
                    """,
                    (
                        normalized_handle,
                        normalise_handle(normalized_handle),
                        normalized_address,
                        profile.first_name,
                        profile.last_name,
                        profile.gender,
                        _serialize_date(profile.date_of_birth),
                        profile.country_of_origin,
                        password_hash,
                        _serialize_datetime(created_at),
                    ),
                )
                account_id = cursor.lastrowid
        except sqlite3.IntegrityError as exc:
            detail = str(exc)
            if "accounts.address" in detail:
                raise ConflictError("Email is already registered.", field="address") from exc
            if "accounts.handle" in detail:
                raise ConflictError("Username is already taken.", field="handle") from exc
            raise StoreError() from exc

        return Account(
            id=int(account_id),
            handle=normalized_handle,
            address=normalized_address,
            password_hash=password_hash,
            verified=False,
            created_at=created_at,
            profile=profile,
        )

    def find_account_by_handle(self, handle: str) -> Optional[Account]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM accounts WHERE handle_key = ?",
                (normalise_handle(handle),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def find_account_by_address(self, address: str) -> Optional[Account]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM accounts WHERE address = ?",
                (normalise_address(address),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def account_exists_by_handle(self, handle: str) -> bool:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM accounts WHERE handle_key = ?",
                (normalise_handle(handle),),
            ).fetchone()
        return row is not None

    def account_exists_by_address(self, address: str) -> bool:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM accounts WHERE address = ?",
                (normalise_address(address),),
            ).fetchone()
        return row is not None

    def save_account(self, account: Account) -> Account:
        """Persist the mutable state (verification flag, password hash) of ``account``."""

        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE accounts SET verified = ?, password_hash = ? WHERE id = ?",
                (int(bool(account.verified)), account.password_hash, account.id),
            )
            if cursor.rowcount == 0:
                raise StoreError("Account could not be saved.")
        return account

    # ------------------------------------------------------------------
    # Message history
    # ------------------------------------------------------------------
    def append_message(
        self,
        *,
        room: str,
        sender: str,
        recipient: str,
        content: str,
        sent_at: datetime,
    ) -> Message:
        serialized = _serialize_datetime(sent_at)
        with self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO messages (
                    room, sender, recipient, sender_key, recipient_key, content, sent_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    room,
                    sender,
                    recipient,
                    normalise_handle(sender),
                    normalise_handle(recipient),
                    content,
                    serialized,
                ),
            )
            message_id = cursor.lastrowid

        return Message(
            id=int(message_id),
            room=room,
            sender=sender,
            recipient=recipient,
            content=content,
            sent_at=_parse_datetime(serialized),
        )

    def list_messages_for_participant(self, handle: str) -> List[Message]:
        key = normalise_handle(handle)
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                 WHERE sender_key = ? OR recipient_key = ?
                 ORDER BY sent_at ASC, id ASC
                """,
                (key, key),
            ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def list_messages_between(self, first: str, second: str) -> List[Message]:
        a = normalise_handle(first)
        b = normalise_handle(second)
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                 WHERE (sender_key = ? AND recipient_key = ?)
                    OR (sender_key = ? AND recipient_key = ?)
                 ORDER BY sent_at ASC, id ASC
                """,
                (a, b, b, a),
            ).fetchall()
        return [self._row_to_message(row) for row in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_account(self, row: sqlite3.Row) -> Account:
        return Account(
            id=int(row["id"]),
            handle=str(row["handle"]),
            address=str(row["address"]),
            password_hash=str(row["password_hash"]),
            verified=bool(row["verified"]),
            created_at=_parse_datetime(str(row["created_at"])),
            profile=Profile(
                first_name=row["first_name"],
                last_name=row["last_name"],
                gender=row["gender"],
                date_of_birth=_parse_date(row["date_of_birth"]),
                country_of_origin=row["country_of_origin"],
            ),
        )

    def _row_to_message(self, row: sqlite3.Row) -> Message:
        return Message(
            id=int(row["id"]),
            room=str(row["room"]),
            sender=str(row["sender"]),
            recipient=str(row["recipient"]),
            content=str(row["content"]),
            sent_at=_parse_datetime(str(row["sent_at"])),
        )


__all__ = ["Database", "normalise_address"]
