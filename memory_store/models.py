"""ORM tables and plain record types for conversation memory."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class ConversationRow(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(Text, nullable=False, index=True)
    message = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    # ``metadata`` is reserved on declarative classes
    extra = Column("metadata", JSON, nullable=False, default=dict)


class MemoryRow(Base):
    __tablename__ = "memories"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(Text, nullable=False, index=True)
    key = Column(String(255), nullable=False)
    value = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "key", name="uq_memories_user_key"),
        Index("idx_memories_key", "key"),
    )


@dataclass(frozen=True)
class ConversationRecord:
    """One completed user/assistant exchange. Never updated after creation."""

    id: str
    user_id: str
    message: str
    response: str
    created_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: ConversationRow) -> "ConversationRecord":
        return cls(
            id=row.id,
            user_id=row.user_id,
            message=row.message,
            response=row.response,
            created_at=row.created_at,
            metadata=dict(row.extra or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "message": self.message,
            "response": self.response,
            "created_at": isoformat(self.created_at),
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class MemoryFact:
    """A user-scoped key/value preference, unique per (user_id, key)."""

    id: str
    user_id: str
    key: str
    value: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: MemoryRow) -> "MemoryFact":
        return cls(
            id=row.id,
            user_id=row.user_id,
            key=row.key,
            value=row.value,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "key": self.key,
            "value": self.value,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
