"""Relational storage for conversation records and memory facts.

The store is pure data access: every public method runs in its own short
transaction and maps each row to an immutable record type from
:mod:`memory_store.models`. Any database failure is re-raised as
:class:`StoreError` so callers decide whether to degrade or surface it;
empty results always mean "nothing stored", never "the query failed".
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import create_engine, delete, func, or_, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base, ConversationRecord, ConversationRow, MemoryFact, MemoryRow, isoformat, utcnow

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Raised when the backing database rejects or fails an operation."""


class MemoryStore:
    """Data-access layer over the ``conversations`` and ``memories`` tables."""

    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        """Create the engine for ``database_url``.

        Parameters
        ----------
        database_url:
            Any SQLAlchemy URL. Hosted deployments point this at Postgres;
            local runs and tests use SQLite.
        echo:
            Log every emitted SQL statement.
        """
        self.database_url = database_url
        engine_kwargs: Dict[str, Any] = {"echo": echo, "future": True}
        if database_url.startswith("sqlite"):
            # request handlers run in a thread pool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **engine_kwargs)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.debug("MemoryStore initialised for %s", self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        session = self._sessions()
        try:
            with session.begin():
                yield session
        except SQLAlchemyError as exc:
            logger.error("Store operation '%s' failed: %s", action, exc)
            raise StoreError(f"Failed to {action}: {exc}") from exc
        finally:
            session.close()

    # ---------- Schema ----------
    def init_db(self) -> None:
        """Create both tables and their indexes if they do not exist."""
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            logger.error("Database initialisation failed: %s", exc)
            raise StoreError(f"Failed to initialise database: {exc}") from exc
        logger.info("Database schema ready")

    def ping(self) -> bool:
        """Return True when a trivial query succeeds."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.warning("Store ping failed: %s", exc)
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()

    # ---------- Conversations ----------
    def append_conversation(
        self,
        user_id: str,
        message: str,
        response: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ConversationRecord:
        with self._session("log conversation") as session:
            row = ConversationRow(
                user_id=user_id,
                message=message,
                response=response,
                created_at=utcnow(),
                extra=dict(metadata or {}),
            )
            session.add(row)
            session.flush()
            record = ConversationRecord.from_row(row)
        logger.debug("Stored conversation %s for user %s", record.id, user_id)
        return record

    def recent_conversations(self, user_id: str, limit: int = 10) -> List[ConversationRecord]:
        """Return up to ``limit`` records for ``user_id``, most recent first."""
        stmt = (
            select(ConversationRow)
            .where(ConversationRow.user_id == user_id)
            .order_by(ConversationRow.created_at.desc())
            .limit(limit)
        )
        with self._session("recall conversations") as session:
            return [ConversationRecord.from_row(row) for row in session.scalars(stmt)]

    def search_conversations(self, user_id: str, query: str, limit: int = 5) -> List[ConversationRecord]:
        """Case-insensitive substring search over messages and responses."""
        pattern = "%" + _escape_like(query) + "%"
        stmt = (
            select(ConversationRow)
            .where(ConversationRow.user_id == user_id)
            .where(
                or_(
                    ConversationRow.message.ilike(pattern, escape="\\"),
                    ConversationRow.response.ilike(pattern, escape="\\"),
                )
            )
            .order_by(ConversationRow.created_at.desc())
            .limit(limit)
        )
        with self._session("search conversations") as session:
            return [ConversationRecord.from_row(row) for row in session.scalars(stmt)]

    def conversation_stats(self, user_id: str) -> Dict[str, Any]:
        stmt = select(
            func.count(ConversationRow.id),
            func.min(ConversationRow.created_at),
            func.max(ConversationRow.created_at),
        ).where(ConversationRow.user_id == user_id)
        with self._session("get conversation stats") as session:
            total, first, last = session.execute(stmt).one()
        return {
            "totalConversations": int(total or 0),
            "firstConversation": isoformat(first),
            "lastConversation": isoformat(last),
        }

    # ---------- Facts ----------
    def all_facts(self, user_id: str) -> List[MemoryFact]:
        stmt = select(MemoryRow).where(MemoryRow.user_id == user_id).order_by(MemoryRow.updated_at.desc())
        with self._session("recall memories") as session:
            return [MemoryFact.from_row(row) for row in session.scalars(stmt)]

    def upsert_fact(self, user_id: str, key: str, value: str) -> MemoryFact:
        """Insert or replace the fact stored under ``(user_id, key)``."""
        try:
            return self._upsert_once(user_id, key, value)
        except StoreError as exc:
            # a concurrent insert of the same key won the race
            if not isinstance(exc.__cause__, IntegrityError):
                raise
            logger.info("Concurrent insert for %s/%s, retrying as update", user_id, key)
        return self._upsert_once(user_id, key, value)

    def _upsert_once(self, user_id: str, key: str, value: str) -> MemoryFact:
        stmt = select(MemoryRow).where(MemoryRow.user_id == user_id, MemoryRow.key == key)
        with self._session("store memory") as session:
            row = session.scalars(stmt).first()
            now = utcnow()
            if row is None:
                row = MemoryRow(user_id=user_id, key=key, value=value, created_at=now, updated_at=now)
                session.add(row)
            else:
                row.value = value
                row.updated_at = now
            session.flush()
            return MemoryFact.from_row(row)

    def get_fact(self, user_id: str, key: str) -> Optional[str]:
        stmt = select(MemoryRow.value).where(MemoryRow.user_id == user_id, MemoryRow.key == key)
        with self._session("recall memory") as session:
            return session.scalars(stmt).first()

    def delete_fact(self, user_id: str, key: str) -> bool:
        """Delete a fact. Deleting a key that does not exist still succeeds."""
        stmt = delete(MemoryRow).where(MemoryRow.user_id == user_id, MemoryRow.key == key)
        with self._session("delete memory") as session:
            result = session.execute(stmt)
        logger.debug("Deleted %d memory row(s) for %s/%s", result.rowcount or 0, user_id, key)
        return True


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
