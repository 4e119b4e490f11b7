"""Fact storage backends.

``SQLiteFactStore`` is the durable backend, ``InMemoryFactStore`` the
process-local fallback, and ``ResilientFactStore`` puts the two behind one
interface so that a failing durable backend never surfaces to callers.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, TypeVar

from .models import SELF, DataType, Fact, FactMetadata

if TYPE_CHECKING:
    from ..logging import JSONLLogger

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


def _same_person(a: str | None, b: str | None) -> bool:
    if a is None or b is None:
        return a is b
    return a.casefold() == b.casefold()


def relevance(fact: Fact, query: str) -> int:
    """Token overlap between a query and a fact's keywords/content/type."""
    query_tokens = set(re.findall(r"[a-z0-9]+", query.lower()))
    if not query_tokens:
        return 0
    fact_tokens = set(fact.keywords)
    fact_tokens.update(re.findall(r"[a-z0-9]+", fact.content.lower()))
    fact_tokens.add(fact.data_type.value)
    return len(query_tokens & fact_tokens)


def matches_query(fact: Fact, query: str) -> bool:
    """Substring match of a query against content or data type."""
    needle = query.lower()
    return needle in fact.content.lower() or needle in fact.data_type.value


class FactStore(ABC):
    """Key-value store of facts keyed by (sender, type, subject)."""

    @abstractmethod
    def put(self, fact: Fact) -> str:
        """Store a new fact, assigning a fresh id and timestamp.

        Returns:
            The assigned id.
        """
        ...

    @abstractmethod
    def series(
        self, sender_id: str, data_type: DataType, person: str | None = None
    ) -> list[Fact]:
        """All facts of one series, newest first.

        A self series (``person`` None) excludes facts carrying a person;
        a third-party series requires the person to match.
        """
        ...

    def most_recent(
        self, sender_id: str, data_type: DataType, person: str | None = None
    ) -> Fact | None:
        """The current fact of a series, or None."""
        facts = self.series(sender_id, data_type, person)
        return facts[0] if facts else None

    @abstractmethod
    def overwrite(self, fact_id: str, content: str, metadata: FactMetadata) -> bool:
        """Replace content, metadata and timestamp in place, keeping the id.

        Returns:
            True if the fact existed and was updated.
        """
        ...

    @abstractmethod
    def delete_all(self, sender_id: str) -> int:
        """Remove every fact of a sender. Idempotent.

        Returns:
            Number of facts removed.
        """
        ...

    @abstractmethod
    def list_facts(
        self, sender_id: str, query: str | None = None, limit: int | None = None
    ) -> list[Fact]:
        """Facts of a sender, newest first, optionally filtered by substring."""
        ...

    @abstractmethod
    def search(self, query: str, limit: int = 5) -> list[Fact]:
        """Best-effort textual relevance lookup across all senders."""
        ...

    def close(self) -> None:
        """Release backend resources."""


class InMemoryFactStore(FactStore):
    """Process-local store: sender id mapped to an ordered list of facts."""

    def __init__(self) -> None:
        self._facts: dict[str, list[Fact]] = {}

    def put(self, fact: Fact) -> str:
        fact_id = fact.id or _new_id()
        stored = Fact(
            sender_id=fact.sender_id,
            data_type=fact.data_type,
            content=fact.content,
            metadata=fact.metadata,
            id=fact_id,
            created_at=_now(),
        )
        self._facts.setdefault(fact.sender_id, []).append(stored)
        return fact_id

    def series(
        self, sender_id: str, data_type: DataType, person: str | None = None
    ) -> list[Fact]:
        matching = [
            fact
            for fact in self._facts.get(sender_id, [])
            if fact.data_type == data_type and _same_person(fact.person, person)
        ]
        # Later insertion wins ties on created_at
        indexed = list(enumerate(matching))
        indexed.sort(key=lambda pair: (pair[1].created_at or "", pair[0]), reverse=True)
        return [fact for _, fact in indexed]

    def overwrite(self, fact_id: str, content: str, metadata: FactMetadata) -> bool:
        for facts in self._facts.values():
            for i, fact in enumerate(facts):
                if fact.id == fact_id:
                    facts[i] = fact.with_content(content, metadata, _now())
                    return True
        return False

    def delete_all(self, sender_id: str) -> int:
        return len(self._facts.pop(sender_id, []))

    def list_facts(
        self, sender_id: str, query: str | None = None, limit: int | None = None
    ) -> list[Fact]:
        facts = list(reversed(self._facts.get(sender_id, [])))
        facts.sort(key=lambda f: f.created_at or "", reverse=True)
        if query:
            facts = [f for f in facts if matches_query(f, query)]
        return facts[:limit] if limit is not None else facts

    def search(self, query: str, limit: int = 5) -> list[Fact]:
        everything = [f for facts in self._facts.values() for f in facts]
        return _rank(everything, query, limit)


def _rank(facts: Iterable[Fact], query: str, limit: int) -> list[Fact]:
    scored = [(relevance(f, query), f) for f in facts]
    scored = [pair for pair in scored if pair[0] > 0]
    scored.sort(key=lambda pair: (pair[0], pair[1].created_at or ""), reverse=True)
    return [f for _, f in scored[:limit]]


class SQLiteFactStore(FactStore):
    """Persistent storage for facts using SQLite."""

    COLUMNS = (
        "id, sender_id, data_type, subject, person, content, keywords, "
        "source_date, source, context, confirmed, created_at"
    )

    def __init__(self, db_path: Path, timeout: float = 5.0) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file.
            timeout: Seconds to wait on a locked database.
        """
        self.db_path = db_path
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, timeout=self.timeout)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the facts table if it doesn't exist."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS facts (
                id           TEXT PRIMARY KEY,
                sender_id    TEXT NOT NULL,
                data_type    TEXT NOT NULL,
                subject      TEXT NOT NULL DEFAULT 'self',
                person       TEXT,
                content      TEXT NOT NULL,
                keywords     TEXT NOT NULL DEFAULT '[]',
                source_date  TEXT,
                source       TEXT NOT NULL DEFAULT 'user_input',
                context      TEXT,
                confirmed    INTEGER NOT NULL DEFAULT 0,
                created_at   TEXT NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_facts_series "
            "ON facts(sender_id, data_type, person)"
        )
        conn.commit()

    def put(self, fact: Fact) -> str:
        fact_id = fact.id or _new_id()
        meta = fact.metadata
        conn = self._get_connection()
        conn.execute(
            f"INSERT INTO facts ({self.COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                fact_id,
                fact.sender_id,
                fact.data_type.value,
                meta.subject,
                meta.person,
                fact.content,
                json.dumps(sorted(meta.keywords)),
                meta.date,
                meta.source,
                meta.context,
                int(meta.confirmed),
                _now(),
            ),
        )
        conn.commit()
        return fact_id

    def series(
        self, sender_id: str, data_type: DataType, person: str | None = None
    ) -> list[Fact]:
        conn = self._get_connection()
        if person is None:
            cursor = conn.execute(
                f"SELECT {self.COLUMNS} FROM facts "
                "WHERE sender_id = ? AND data_type = ? AND person IS NULL "
                "ORDER BY created_at DESC, rowid DESC",
                (sender_id, data_type.value),
            )
        else:
            cursor = conn.execute(
                f"SELECT {self.COLUMNS} FROM facts "
                "WHERE sender_id = ? AND data_type = ? AND lower(person) = lower(?) "
                "ORDER BY created_at DESC, rowid DESC",
                (sender_id, data_type.value, person),
            )
        return [self._row_to_fact(row) for row in cursor.fetchall()]

    def overwrite(self, fact_id: str, content: str, metadata: FactMetadata) -> bool:
        conn = self._get_connection()
        cursor = conn.execute(
            """
            UPDATE facts SET
                content = ?, subject = ?, person = ?, keywords = ?,
                source_date = ?, source = ?, context = ?, confirmed = ?,
                created_at = ?
            WHERE id = ?
            """,
            (
                content,
                metadata.subject,
                metadata.person,
                json.dumps(sorted(metadata.keywords)),
                metadata.date,
                metadata.source,
                metadata.context,
                int(metadata.confirmed),
                _now(),
                fact_id,
            ),
        )
        conn.commit()
        return cursor.rowcount > 0

    def delete_all(self, sender_id: str) -> int:
        conn = self._get_connection()
        cursor = conn.execute("DELETE FROM facts WHERE sender_id = ?", (sender_id,))
        conn.commit()
        return cursor.rowcount

    def list_facts(
        self, sender_id: str, query: str | None = None, limit: int | None = None
    ) -> list[Fact]:
        conn = self._get_connection()
        sql = f"SELECT {self.COLUMNS} FROM facts WHERE sender_id = ?"
        params: list[object] = [sender_id]
        if query:
            sql += " AND (instr(lower(content), lower(?)) > 0 OR instr(data_type, lower(?)) > 0)"
            params.extend([query, query])
        sql += " ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        cursor = conn.execute(sql, params)
        return [self._row_to_fact(row) for row in cursor.fetchall()]

    def search(self, query: str, limit: int = 5) -> list[Fact]:
        conn = self._get_connection()
        cursor = conn.execute(f"SELECT {self.COLUMNS} FROM facts")
        return _rank((self._row_to_fact(row) for row in cursor.fetchall()), query, limit)

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _row_to_fact(self, row: sqlite3.Row) -> Fact:
        """Convert a database row to a Fact."""
        return Fact(
            id=row["id"],
            sender_id=row["sender_id"],
            data_type=DataType.parse(row["data_type"]),
            content=row["content"],
            metadata=FactMetadata(
                source=row["source"],
                context=row["context"],
                confirmed=bool(row["confirmed"]),
                subject=row["subject"] if row["person"] else SELF,
                person=row["person"],
                keywords=frozenset(json.loads(row["keywords"] or "[]")),
                date=row["source_date"],
            ),
            created_at=row["created_at"],
        )


class ResilientFactStore(FactStore):
    """Durable store with a transparent in-memory fallback.

    Any exception from the primary backend is logged and the operation is
    re-run against the fallback. Reads merge both backends so facts written
    during an outage stay visible.
    """

    def __init__(
        self,
        primary: FactStore,
        fallback: FactStore | None = None,
        json_logger: JSONLLogger | None = None,
    ) -> None:
        self.primary = primary
        self.fallback = fallback or InMemoryFactStore()
        self.json_logger = json_logger

    def init_db(self) -> None:
        """Initialize the primary backend, if it needs it."""
        init = getattr(self.primary, "init_db", None)
        if init is not None:
            self._try_primary("init_db", init)

    def _try_primary(self, operation: str, call: Callable[[], T]) -> tuple[bool, T | None]:
        try:
            return True, call()
        except Exception as e:
            logger.warning(f"Fact store {operation} failed, using local fallback: {e!r}")
            if self.json_logger is not None:
                self.json_logger.log("store_fallback", error=str(e), operation=operation)
            return False, None

    def put(self, fact: Fact) -> str:
        ok, fact_id = self._try_primary("put", lambda: self.primary.put(fact))
        if ok and fact_id is not None:
            return fact_id
        return self.fallback.put(fact)

    def series(
        self, sender_id: str, data_type: DataType, person: str | None = None
    ) -> list[Fact]:
        _, primary = self._try_primary(
            "series", lambda: self.primary.series(sender_id, data_type, person)
        )
        merged = list(primary or []) + self.fallback.series(sender_id, data_type, person)
        merged.sort(key=lambda f: f.created_at or "", reverse=True)
        return merged

    def overwrite(self, fact_id: str, content: str, metadata: FactMetadata) -> bool:
        ok, updated = self._try_primary(
            "overwrite", lambda: self.primary.overwrite(fact_id, content, metadata)
        )
        if ok and updated:
            return True
        return self.fallback.overwrite(fact_id, content, metadata)

    def delete_all(self, sender_id: str) -> int:
        _, count = self._try_primary("delete_all", lambda: self.primary.delete_all(sender_id))
        return (count or 0) + self.fallback.delete_all(sender_id)

    def list_facts(
        self, sender_id: str, query: str | None = None, limit: int | None = None
    ) -> list[Fact]:
        _, primary = self._try_primary(
            "list_facts", lambda: self.primary.list_facts(sender_id, query, limit)
        )
        merged = list(primary or []) + self.fallback.list_facts(sender_id, query, limit)
        merged.sort(key=lambda f: f.created_at or "", reverse=True)
        return merged[:limit] if limit is not None else merged

    def search(self, query: str, limit: int = 5) -> list[Fact]:
        _, primary = self._try_primary("search", lambda: self.primary.search(query, limit))
        return _rank(list(primary or []) + self.fallback.search(query, limit), query, limit)

    def close(self) -> None:
        self._try_primary("close", self.primary.close)
        self.fallback.close()
