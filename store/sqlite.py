"""Record store backed by a local SQLite database.

Used for local development and integration tests. Mirrors the managed
backend's schema for the collections the search core touches.
"""

import logging
import time
import uuid
from pathlib import Path
from typing import Any

import aiosqlite

from core.exceptions import TransportError, ValidationError
from core.sentry import add_store_breadcrumb
from core.telemetry import record_store_call
from store.base import AnyOf, Condition, Embed, Filter, Order, Record, SelectQuery, check_identifier

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path(__file__).parent.parent / "music.db"

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        display_name TEXT,
        avatar_url TEXT,
        is_artist INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS albums (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        artist_id TEXT REFERENCES profiles(id),
        cover_url TEXT,
        release_date TEXT,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS songs (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        artist_id TEXT REFERENCES profiles(id),
        album_id TEXT REFERENCES albums(id),
        cover_url TEXT,
        audio_url TEXT,
        duration INTEGER,
        is_explicit INTEGER NOT NULL DEFAULT 0,
        play_count INTEGER NOT NULL DEFAULT 0,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS search_history (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        query TEXT NOT NULL,
        searched_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS playlists (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        cover_url TEXT,
        is_public INTEGER NOT NULL DEFAULT 0,
        created_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_search_history_user ON search_history (user_id, searched_at)",
)


def _casefold(value: Any) -> str | None:
    return str(value).casefold() if value is not None else None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _column_ref(condition: Condition, table_alias: str | None) -> str:
    if condition.relation:
        return f"{condition.relation}.{condition.field_name}"
    if table_alias:
        return f"{table_alias}.{condition.column}"
    return condition.column


def _condition_sql(condition: Condition, table_alias: str | None) -> tuple[str, list[Any]]:
    column = _column_ref(condition, table_alias)
    if condition.op == "icontains":
        pattern = f"%{_escape_like(str(condition.value).casefold())}%"
        return f"casefold({column}) LIKE ? ESCAPE '\\'", [pattern]
    return f"{column} = ?", [condition.value]


def build_where(filters: tuple[Filter, ...], table_alias: str | None = None) -> tuple[str, list]:
    """Build a WHERE clause (without the keyword) and its parameters."""
    clauses: list[str] = []
    params: list[Any] = []
    for f in filters:
        if isinstance(f, AnyOf):
            parts = []
            for condition in f.conditions:
                sql, p = _condition_sql(condition, table_alias)
                parts.append(sql)
                params.extend(p)
            clauses.append("(" + " OR ".join(parts) + ")")
        else:
            sql, p = _condition_sql(f, table_alias)
            clauses.append(sql)
            params.extend(p)
    return " AND ".join(clauses), params


class SqliteRecordStore:
    """Async SQLite client implementing the record store interface."""

    def __init__(self, db_path: Path | str | None = None):
        self.db_path = db_path or DEFAULT_DB_PATH
        self._conn: aiosqlite.Connection | None = None

    async def connect(self):
        """Open database connection and ensure the schema exists."""
        self._conn = await aiosqlite.connect(self.db_path)
        self._conn.row_factory = aiosqlite.Row
        # SQLite's LOWER() only folds ASCII
        await self._conn.create_function("casefold", 1, _casefold, deterministic=True)
        await self._conn.execute("PRAGMA foreign_keys = ON")
        await self.create_schema()
        logger.info(f"Connected to SQLite database: {self.db_path}")

    async def create_schema(self):
        """Create tables for every collection if they don't exist."""
        conn = self._require_conn()
        for statement in SCHEMA:
            await conn.execute(statement)
        await conn.commit()

    async def is_available(self) -> bool:
        """Check if the database connection is alive."""
        try:
            if self._conn is None:
                return False
            async with self._conn.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
                return row is not None
        except Exception:
            return False

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("Closed SQLite connection")

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise TransportError("Database not connected")
        return self._conn

    async def select(
        self,
        collection: str,
        filters: tuple[Filter, ...] = (),
        embed: tuple[Embed, ...] = (),
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        """Select rows, joining embedded relations for filtering and hydrating them."""
        query = SelectQuery(collection, filters, embed, order, limit)
        conn = self._require_conn()

        sql = f"SELECT t.* FROM {query.collection} AS t"
        for e in query.embed:
            sql += f" LEFT JOIN {e.collection} AS {e.alias} ON {e.alias}.id = t.{e.foreign_key}"

        where, params = build_where(query.filters, table_alias="t")
        if where:
            sql += f" WHERE {where}"
        if query.order:
            sql += f" ORDER BY t.{query.order.column} {'DESC' if query.order.descending else 'ASC'}"
        if query.limit is not None:
            sql += " LIMIT ?"
            params.append(query.limit)

        add_store_breadcrumb("select", collection, {"limit": limit})
        start = time.perf_counter()
        try:
            cursor = await conn.execute(sql, params)
            rows = [dict(row) for row in await cursor.fetchall()]
            for e in query.embed:
                await self._hydrate(conn, rows, e)
        except aiosqlite.Error as e:
            logger.error(f"Select on '{collection}' failed: {e}")
            raise TransportError(f"Select on '{collection}' failed: {e}") from e
        finally:
            record_store_call((time.perf_counter() - start) * 1000)

        return rows

    async def _hydrate(self, conn: aiosqlite.Connection, rows: list[Record], embed: Embed):
        """Attach the embedded to-one relation to each row under ``embed.alias``."""
        ids = sorted({row[embed.foreign_key] for row in rows if row.get(embed.foreign_key)})
        related: dict[Any, Record] = {}
        if ids:
            placeholders = ", ".join("?" for _ in ids)
            cursor = await conn.execute(
                f"SELECT * FROM {embed.collection} WHERE id IN ({placeholders})", ids
            )
            related = {r["id"]: dict(r) for r in await cursor.fetchall()}
        for row in rows:
            row[embed.alias] = related.get(row.get(embed.foreign_key))

    async def insert(self, collection: str, record: Record) -> str:
        """Insert a single row, generating an id when the record has none."""
        check_identifier(collection)
        conn = self._require_conn()

        row = dict(record)
        row.setdefault("id", str(uuid.uuid4()))
        columns = [check_identifier(c) for c in row]
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {collection} ({', '.join(columns)}) VALUES ({placeholders})"

        add_store_breadcrumb("insert", collection)
        start = time.perf_counter()
        try:
            await conn.execute(sql, [row[c] for c in columns])
            await conn.commit()
        except aiosqlite.IntegrityError as e:
            raise ValidationError(
                f"Insert into '{collection}' rejected: {e}", details={"collection": collection}
            ) from e
        except aiosqlite.OperationalError as e:
            # Unknown column or table: the record doesn't fit the schema
            if "has no column" in str(e) or "no such table" in str(e):
                raise ValidationError(
                    f"Insert into '{collection}' rejected: {e}", details={"collection": collection}
                ) from e
            raise TransportError(f"Insert into '{collection}' failed: {e}") from e
        except aiosqlite.Error as e:
            raise TransportError(f"Insert into '{collection}' failed: {e}") from e
        finally:
            record_store_call((time.perf_counter() - start) * 1000)

        return str(row["id"])

    async def delete_where(self, collection: str, filters: tuple[Filter, ...]) -> int:
        """Delete matching rows and return how many were removed."""
        check_identifier(collection)
        if not filters:
            raise ValueError("delete_where requires at least one filter")
        conn = self._require_conn()

        where, params = build_where(filters)
        add_store_breadcrumb("delete_where", collection)
        start = time.perf_counter()
        try:
            cursor = await conn.execute(f"DELETE FROM {collection} WHERE {where}", params)
            await conn.commit()
        except aiosqlite.Error as e:
            logger.error(f"Delete on '{collection}' failed: {e}")
            raise TransportError(f"Delete on '{collection}' failed: {e}") from e
        finally:
            record_store_call((time.perf_counter() - start) * 1000)

        return cursor.rowcount
