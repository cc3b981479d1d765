# key-value persistence used by the engine, backed by a single sqlite table
import asyncio
import os.path
from contextlib import asynccontextmanager
from sqlite3 import Row
from typing import AsyncIterator, Callable, Dict, Optional, Protocol, Sequence

import aiosqlite

from core.errors import StorageError
from utils.logger import get_logger

_logger = get_logger(__name__)

DB_PATH = "data/pos.sqlite"
DEFAULT_TIMEOUT = 5.0

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key   TEXT PRIMARY KEY,
    value BLOB NOT NULL
);
"""

_UPSERT = """
INSERT INTO kv(key, value) VALUES (?, ?)
ON CONFLICT(key) DO UPDATE SET value = excluded.value;
"""


class Store(Protocol):
    """The persistence capability the engine is written against."""

    async def get(self, key: str) -> Optional[bytes]: ...

    async def set(self, key: str, value: bytes) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def compare_and_set(
        self, key: str, expected: Optional[bytes], value: bytes
    ) -> bool: ...

    async def update(
        self, key: str, func: Callable[[Optional[bytes]], bytes]
    ) -> bytes: ...

    async def increment(self, key: str, step: int = 1) -> int: ...

    async def update_many(
        self,
        keys: Sequence[str],
        func: Callable[[Dict[str, Optional[bytes]]], Dict[str, bytes]],
    ) -> Dict[str, bytes]: ...


class SqliteStore:
    """
    Store implementation on top of aiosqlite.

    Connections run in autocommit mode so read-modify-write operations can
    open their own `BEGIN IMMEDIATE` transaction; that takes the database
    write lock up front, which makes `update`, `update_many` and `increment` atomic across
    every process sharing the file.
    """

    def __init__(self, path: str = DB_PATH, timeout: float = DEFAULT_TIMEOUT):
        self.path = path
        self.timeout = timeout
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def _init_db(self, conn: aiosqlite.Connection) -> None:
        _logger.info(f"Initializing key-value store at {self.path}...")
        await conn.executescript(_SCHEMA)

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Async context manager yielding a connection; sqlite errors become StorageError."""
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        try:
            conn = await aiosqlite.connect(
                self.path, timeout=self.timeout, isolation_level=None
            )
        except aiosqlite.Error as exc:
            raise StorageError(f"Cannot open store {self.path}: {exc}") from exc
        conn.row_factory = Row

        try:
            if not self._initialized:
                async with self._init_lock:
                    if not self._initialized:
                        await self._init_db(conn)
                        self._initialized = True
            yield conn
        except aiosqlite.Error as exc:
            raise StorageError(f"Store operation failed: {exc}") from exc
        finally:
            await conn.close()

    async def get(self, key: str) -> Optional[bytes]:
        async with self.connect() as conn:
            return await self._read(conn, key)

    async def set(self, key: str, value: bytes) -> None:
        async with self.connect() as conn:
            await self._write(conn, key, value)

    async def delete(self, key: str) -> None:
        async with self.connect() as conn:
            await conn.execute("DELETE FROM kv WHERE key = ?;", (key,))

    async def compare_and_set(
        self, key: str, expected: Optional[bytes], value: bytes
    ) -> bool:
        """Write `value` only if the current value is `expected` (None = absent)."""
        async with self.connect() as conn:
            async with self._transaction(conn):
                current = await self._read(conn, key)
                if current != expected:
                    return False
                await self._write(conn, key, value)
                return True

    async def update(
        self, key: str, func: Callable[[Optional[bytes]], bytes]
    ) -> bytes:
        """
        Atomically replace the value at `key` with `func(current)`.

        Any exception raised by `func` rolls the transaction back and
        propagates unchanged.
        """
        async with self.connect() as conn:
            async with self._transaction(conn):
                current = await self._read(conn, key)
                new_value = func(current)
                await self._write(conn, key, new_value)
                return new_value

    async def update_many(
        self,
        keys: Sequence[str],
        func: Callable[[Dict[str, Optional[bytes]]], Dict[str, bytes]],
    ) -> Dict[str, bytes]:
        """
        `update` over several keys in one transaction. `func` receives the
        current value of every key and returns the values to write, which
        must be a subset of `keys`; either all of them land or none does.
        """
        async with self.connect() as conn:
            async with self._transaction(conn):
                current = {key: await self._read(conn, key) for key in keys}
                new_values = func(current)
                unknown = set(new_values) - set(keys)
                if unknown:
                    raise ValueError(f"update_many cannot write unread keys: {sorted(unknown)}")
                for key, value in new_values.items():
                    await self._write(conn, key, value)
                return new_values

    async def increment(self, key: str, step: int = 1) -> int:
        def bump(raw: Optional[bytes]) -> bytes:
            current = int(raw.decode("ascii")) if raw else 0
            return str(current + step).encode("ascii")

        return int((await self.update(key, bump)).decode("ascii"))

    @staticmethod
    async def _read(conn: aiosqlite.Connection, key: str) -> Optional[bytes]:
        cur = await conn.execute("SELECT value FROM kv WHERE key = ?;", (key,))
        row = await cur.fetchone()
        await cur.close()
        return bytes(row[0]) if row else None

    async def _write(self, conn: aiosqlite.Connection, key: str, value: bytes) -> None:
        await conn.execute(_UPSERT, (key, value))

    @staticmethod
    @asynccontextmanager
    async def _transaction(conn: aiosqlite.Connection) -> AsyncIterator[None]:
        await conn.execute("BEGIN IMMEDIATE;")
        try:
            yield
        except BaseException:
            await conn.execute("ROLLBACK;")
            raise
        else:
            await conn.execute("COMMIT;")
