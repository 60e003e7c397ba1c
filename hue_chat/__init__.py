"""Chat relay between HTTP callers and a local Ollama model, with memory.

The package assembles prompts from a user's stored conversation history and
key/value facts, dispatches them to Ollama (whole or streamed), and records
each completed exchange. ``server.create_app`` exposes it over HTTP and
``hue_chat.service.ChatService`` can be embedded directly into Python code.
"""

from .config import ChatConfig, OllamaConfig
from .service import ChatService

__all__ = ["ChatConfig", "ChatService", "OllamaConfig"]
