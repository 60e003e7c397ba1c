"""Configuration objects for the chat relay."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .persona import HUE_PERSONA

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_MODEL = "hue"
DEFAULT_DATABASE_URL = "sqlite:///hue_memory.db"


@dataclass
class OllamaConfig:
    """Inference backend connection details."""

    base_url: str = DEFAULT_OLLAMA_URL
    model: str = DEFAULT_MODEL
    request_timeout: int = 120
    status_timeout: float = 5.0
    temperature: float = 0.7
    top_p: float = 0.9

    def default_options(self) -> Dict[str, Any]:
        return {"temperature": self.temperature, "top_p": self.top_p}


@dataclass
class ChatConfig:
    """Runtime controls for chat behaviour."""

    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    database_url: str = DEFAULT_DATABASE_URL
    recent_window: int = 5
    system_prompt: str = HUE_PERSONA.system_prompt
    assistant_label: str = HUE_PERSONA.name
    fallback_message: str = HUE_PERSONA.errors["model"]

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "ChatConfig":
        """Build a config from environment variables, reading ``.env`` first."""
        load_dotenv(env_file)
        ollama = OllamaConfig(
            base_url=os.getenv("OLLAMA_BASE_URL", DEFAULT_OLLAMA_URL),
            model=os.getenv("OLLAMA_MODEL", DEFAULT_MODEL),
            request_timeout=int(os.getenv("OLLAMA_TIMEOUT", "120")),
            status_timeout=float(os.getenv("OLLAMA_STATUS_TIMEOUT", "5")),
            temperature=float(os.getenv("MODEL_TEMPERATURE", "0.7")),
            top_p=float(os.getenv("MODEL_TOP_P", "0.9")),
        )
        return cls(ollama=ollama, database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL))
