"""Durable memory for the chat relay: conversation records and user facts."""

from .models import ConversationRecord, MemoryFact
from .store import MemoryStore, StoreError

__all__ = ["ConversationRecord", "MemoryFact", "MemoryStore", "StoreError"]
