"""High level orchestration for chat with memory, streaming, and persistence."""

from __future__ import annotations

import logging
from contextlib import closing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from memory_store import ConversationRecord, MemoryFact, MemoryStore, StoreError

from .config import ChatConfig
from .context import build_memory_context, build_prompt
from .errors import BackendError, BackendUnavailable, InvalidRequest, ModelUnavailable
from .ollama_client import OllamaClient
from .persona import format_response

logger = logging.getLogger(__name__)


@dataclass
class MemorySnapshot:
    """Memory read for one request. ``errors`` is non-empty when the store failed."""

    conversations: List[ConversationRecord] = field(default_factory=list)
    facts: List[MemoryFact] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.errors)


@dataclass
class PreparedChat:
    user_id: str
    message: str
    prompt: str
    memory: MemorySnapshot


@dataclass
class ChatReply:
    response: str
    conversation_id: Optional[str]
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {"response": self.response, "conversationId": self.conversation_id, "timestamp": self.timestamp}


class ChatService:
    """Core chat engine used by both the API and direct Python consumers."""

    def __init__(
        self,
        config: Optional[ChatConfig] = None,
        *,
        client: Optional[OllamaClient] = None,
        store: Optional[MemoryStore] = None,
    ) -> None:
        self.config = config or ChatConfig()
        self.client = client or OllamaClient(self.config.ollama)
        self.store = store or MemoryStore(self.config.database_url)

    def complete_chat(
        self,
        user_id: Optional[str],
        message: Optional[str],
        *,
        options: Optional[Dict[str, Any]] = None,
    ) -> ChatReply:
        """Run one exchange and return the whole reply once it is stored."""
        prepared = self.prepare(user_id, message)
        logger.info("Dispatching non-streaming completion for user %s", prepared.user_id)
        response = format_response(self.client.complete(prepared.prompt, options))
        record = self._persist(prepared, response, streamed=False)
        return ChatReply(
            response=response,
            conversation_id=record.id if record else None,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def stream_chat(
        self,
        user_id: Optional[str],
        message: Optional[str],
        *,
        options: Optional[Dict[str, Any]] = None,
    ) -> Iterator[str]:
        """Validate and prepare eagerly, then return a generator of reply fragments.

        Validation and backend errors raise here, before any byte is sent.
        Once streaming has begun a backend failure ends the stream with the
        fallback notice and nothing is stored; a consumer that stops early
        also leaves nothing stored.
        """
        prepared = self.prepare(user_id, message)
        logger.info("Dispatching streaming completion for user %s", prepared.user_id)

        def generator() -> Iterator[str]:
            chunks: List[str] = []
            try:
                with closing(self.client.stream_complete(prepared.prompt, options)) as fragments:
                    for chunk in fragments:
                        chunks.append(chunk)
                        yield chunk
            except (BackendError, BackendUnavailable) as exc:
                logger.warning(
                    "Stream for user %s failed after %d chunk(s): %s", prepared.user_id, len(chunks), exc
                )
                yield f"\n\n{self.config.fallback_message}"
                return
            self._persist(prepared, "".join(chunks), streamed=True)

        return generator()

    def prepare(self, user_id: Optional[str], message: Optional[str]) -> PreparedChat:
        """Validate the request, check the backend, and assemble the prompt."""
        user_id, message = self._validate(user_id, message)

        status = self.client.check_status()
        if not status.reachable:
            logger.warning("Backend unreachable: %s", status.detail)
            raise BackendUnavailable(status.detail or "Ollama is not running")
        if not status.model_available:
            logger.warning("Model unavailable: %s", status.detail)
            raise ModelUnavailable(status.detail or "Model not available")

        memory = self.fetch_memory(user_id)
        context = build_memory_context(memory.conversations, memory.facts, window=self.config.recent_window)
        prompt = build_prompt(
            self.config.system_prompt, context, message, assistant_label=self.config.assistant_label
        )
        return PreparedChat(user_id=user_id, message=message, prompt=prompt, memory=memory)

    def fetch_memory(self, user_id: str) -> MemorySnapshot:
        """Read recent history and facts, substituting empty results on store failure."""
        snapshot = MemorySnapshot()
        try:
            snapshot.conversations = self.store.recent_conversations(user_id, self.config.recent_window)
        except StoreError as exc:
            logger.warning("Continuing without conversation history for %s: %s", user_id, exc)
            snapshot.errors.append(str(exc))
        try:
            snapshot.facts = self.store.all_facts(user_id)
        except StoreError as exc:
            logger.warning("Continuing without stored facts for %s: %s", user_id, exc)
            snapshot.errors.append(str(exc))

        logger.info(
            "Loaded %d conversation(s) and %d fact(s) for user %s%s",
            len(snapshot.conversations),
            len(snapshot.facts),
            user_id,
            " (degraded)" if snapshot.degraded else "",
        )
        return snapshot

    def _persist(self, prepared: PreparedChat, response: str, *, streamed: bool) -> Optional[ConversationRecord]:
        metadata = {
            "model": self.client.model,
            "stream": streamed,
            "memory_degraded": prepared.memory.degraded,
        }
        try:
            record = self.store.append_conversation(prepared.user_id, prepared.message, response, metadata)
        except StoreError:
            logger.exception("Failed to log conversation for user %s", prepared.user_id)
            return None
        logger.info("Logged conversation %s for user %s", record.id, prepared.user_id)
        return record

    @staticmethod
    def _validate(user_id: Optional[str], message: Optional[str]) -> tuple[str, str]:
        if not isinstance(message, str) or not message.strip():
            raise InvalidRequest("Missing required fields: message and userId")
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidRequest("Missing required fields: message and userId")
        return user_id, message
