from __future__ import annotations

import logging
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, TypeVar

from .errors import AccountExists, InvalidOrder, StorageConflict
from .models import Account, Position, PositionView, Stock, Transaction, TransactionType, TransactionView

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _is_lock_error(exc: sqlite3.OperationalError) -> bool:
    text = str(exc).lower()
    return "locked" in text or "busy" in text


def _row_to_account(row: sqlite3.Row) -> Account:
    return Account(user_id=int(row["user_id"]), balance=Decimal(row["balance"]), created_at=str(row["created_at"]))


def _row_to_stock(row: sqlite3.Row) -> Stock:
    return Stock(
        id=int(row["id"]),
        symbol=str(row["symbol"]),
        name=row["name"],
        market_type=str(row["market_type"]),
    )


def _row_to_position(row: sqlite3.Row) -> Position:
    return Position(
        user_id=int(row["user_id"]),
        stock_id=int(row["stock_id"]),
        quantity=int(row["quantity"]),
        avg_price=Decimal(row["avg_price"]),
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
    )


def _row_to_transaction(row: sqlite3.Row) -> Transaction:
    return Transaction(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        stock_id=int(row["stock_id"]),
        type=row["type"],
        quantity=int(row["quantity"]),
        price=Decimal(row["price"]),
        total=Decimal(row["total"]),
        created_at=str(row["created_at"]),
    )


class LedgerTransaction:
    """Handle on one open write transaction, scoped to a user's account and one stock position."""

    def __init__(self, conn: sqlite3.Connection, user_id: int, stock_id: int) -> None:
        self._conn = conn
        self.user_id = user_id
        self.stock_id = stock_id

    def get_account(self) -> Account | None:
        row = self._conn.execute(
            "SELECT user_id, balance, created_at FROM accounts WHERE user_id = ?",
            (self.user_id,),
        ).fetchone()
        return _row_to_account(row) if row else None

    def set_balance(self, balance: Decimal) -> Account:
        self._conn.execute(
            "UPDATE accounts SET balance = ? WHERE user_id = ?",
            (str(balance), self.user_id),
        )
        account = self.get_account()
        if account is None:
            raise RuntimeError(f"account {self.user_id} vanished inside a transaction")
        return account

    def get_position(self) -> Position | None:
        row = self._conn.execute(
            """
            SELECT user_id, stock_id, quantity, avg_price, created_at, updated_at
            FROM positions WHERE user_id = ? AND stock_id = ?
            """,
            (self.user_id, self.stock_id),
        ).fetchone()
        return _row_to_position(row) if row else None

    def save_position(self, quantity: int, avg_price: Decimal) -> Position:
        if quantity <= 0:
            raise ValueError("position quantity must be positive; delete the position instead")
        now = _utc_now()
        self._conn.execute(
            """
            INSERT INTO positions (user_id, stock_id, quantity, avg_price, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id, stock_id) DO UPDATE SET
                quantity = excluded.quantity,
                avg_price = excluded.avg_price,
                updated_at = excluded.updated_at
            """,
            (self.user_id, self.stock_id, int(quantity), str(avg_price), now, now),
        )
        position = self.get_position()
        if position is None:
            raise RuntimeError("position upsert did not persist")
        return position

    def delete_position(self) -> None:
        self._conn.execute(
            "DELETE FROM positions WHERE user_id = ? AND stock_id = ?",
            (self.user_id, self.stock_id),
        )

    def append_transaction(self, kind: TransactionType, quantity: int, price: Decimal, total: Decimal) -> Transaction:
        cursor = self._conn.execute(
            """
            INSERT INTO transactions (user_id, stock_id, type, quantity, price, total, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (self.user_id, self.stock_id, kind, int(quantity), str(price), str(total), _utc_now()),
        )
        row = self._conn.execute(
            """
            SELECT id, user_id, stock_id, type, quantity, price, total, created_at
            FROM transactions WHERE id = ?
            """,
            (cursor.lastrowid,),
        ).fetchone()
        return _row_to_transaction(row)


class LedgerStore:
    def __init__(self, db_path: Path | str, *, busy_timeout_sec: float = 30.0) -> None:
        self._db_path = Path(db_path)
        self._busy_timeout_sec = float(busy_timeout_sec)
        self._init_db()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self._db_path),
            timeout=self._busy_timeout_sec,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    user_id INTEGER PRIMARY KEY,
                    balance TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS stocks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    symbol TEXT NOT NULL UNIQUE,
                    name TEXT,
                    market_type TEXT NOT NULL DEFAULT 'REG',
                    created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS positions (
                    user_id INTEGER NOT NULL REFERENCES accounts (user_id),
                    stock_id INTEGER NOT NULL REFERENCES stocks (id),
                    quantity INTEGER NOT NULL CHECK (quantity > 0),
                    avg_price TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, stock_id)
                );
                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES accounts (user_id),
                    stock_id INTEGER NOT NULL REFERENCES stocks (id),
                    type TEXT NOT NULL CHECK (type IN ('BUY', 'SELL')),
                    quantity INTEGER NOT NULL CHECK (quantity > 0),
                    price TEXT NOT NULL,
                    total TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_transactions_user_created
                ON transactions (user_id, created_at);
                """
            )

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        try:
            with closing(self._connect()) as conn:
                yield conn
        except sqlite3.OperationalError as exc:
            if _is_lock_error(exc):
                raise StorageConflict() from exc
            raise

    @contextmanager
    def write_transaction(self, user_id: int, stock_id: int) -> Iterator[LedgerTransaction]:
        """
        Open a write transaction scoped to one account and one position.

        Commits when the block exits normally and rolls back on any exception.
        Lock contention is reported as StorageConflict.
        """
        conn = self._connect()
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as exc:
                if _is_lock_error(exc):
                    raise StorageConflict() from exc
                raise
            try:
                yield LedgerTransaction(conn, user_id, stock_id)
                conn.execute("COMMIT")
            except BaseException as exc:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                if isinstance(exc, sqlite3.OperationalError) and _is_lock_error(exc):
                    raise StorageConflict() from exc
                raise
        finally:
            conn.close()

    def with_account_and_position(self, user_id: int, stock_id: int, fn: Callable[[LedgerTransaction], T]) -> T:
        with self.write_transaction(user_id, stock_id) as txn:
            return fn(txn)

    def open_account(self, user_id: int, initial_balance: Decimal) -> Account:
        if not isinstance(initial_balance, Decimal) or not initial_balance.is_finite() or initial_balance < 0:
            raise InvalidOrder("initial_balance must be a finite, non-negative decimal")
        with self._reading() as conn:
            try:
                conn.execute(
                    "INSERT INTO accounts (user_id, balance, created_at) VALUES (?, ?, ?)",
                    (int(user_id), str(initial_balance), _utc_now()),
                )
            except sqlite3.IntegrityError as exc:
                raise AccountExists(user_id) from exc
            row = conn.execute(
                "SELECT user_id, balance, created_at FROM accounts WHERE user_id = ?",
                (int(user_id),),
            ).fetchone()
        logger.info("Opened account user_id=%s balance=%s", user_id, initial_balance)
        return _row_to_account(row)

    def get_account(self, user_id: int) -> Account | None:
        with self._reading() as conn:
            row = conn.execute(
                "SELECT user_id, balance, created_at FROM accounts WHERE user_id = ?",
                (int(user_id),),
            ).fetchone()
        return _row_to_account(row) if row else None

    def find_or_create_stock(self, symbol: str, name: str | None = None, market_type: str = "REG") -> Stock:
        with self._reading() as conn:
            conn.execute(
                """
                INSERT INTO stocks (symbol, name, market_type, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (symbol) DO NOTHING
                """,
                (symbol, name, market_type, _utc_now()),
            )
            row = conn.execute(
                "SELECT id, symbol, name, market_type FROM stocks WHERE symbol = ?",
                (symbol,),
            ).fetchone()
        return _row_to_stock(row)

    def count_stocks(self, symbol: str | None = None) -> int:
        with self._reading() as conn:
            if symbol is None:
                row = conn.execute("SELECT COUNT(*) AS n FROM stocks").fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) AS n FROM stocks WHERE symbol = ?", (symbol,)).fetchone()
        return int(row["n"])

    def list_positions(self, user_id: int) -> list[PositionView]:
        with self._reading() as conn:
            rows = conn.execute(
                """
                SELECT p.user_id, p.stock_id, p.quantity, p.avg_price, p.created_at, p.updated_at,
                       s.symbol, s.name
                FROM positions p
                JOIN stocks s ON s.id = p.stock_id
                WHERE p.user_id = ?
                ORDER BY s.symbol
                """,
                (int(user_id),),
            ).fetchall()
        return [
            PositionView(**_row_to_position(row).model_dump(), symbol=str(row["symbol"]), name=row["name"])
            for row in rows
        ]

    def count_transactions(self, user_id: int) -> int:
        with self._reading() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM transactions WHERE user_id = ?",
                (int(user_id),),
            ).fetchone()
        return int(row["n"])

    def list_transactions(self, user_id: int, limit: int, offset: int) -> tuple[list[TransactionView], int]:
        with self._reading() as conn:
            # Count and page are read from one snapshot.
            conn.execute("BEGIN")
            total_row = conn.execute(
                "SELECT COUNT(*) AS n FROM transactions WHERE user_id = ?",
                (int(user_id),),
            ).fetchone()
            rows = conn.execute(
                """
                SELECT t.id, t.user_id, t.stock_id, t.type, t.quantity, t.price, t.total, t.created_at,
                       s.symbol, s.name
                FROM transactions t
                JOIN stocks s ON s.id = t.stock_id
                WHERE t.user_id = ?
                ORDER BY t.created_at DESC, t.id DESC
                LIMIT ? OFFSET ?
                """,
                (int(user_id), int(limit), int(offset)),
            ).fetchall()
            conn.execute("COMMIT")
        items = [
            TransactionView(**_row_to_transaction(row).model_dump(), symbol=str(row["symbol"]), name=row["name"])
            for row in rows
        ]
        return items, int(total_row["n"])
