"""Client for a local Ollama generate endpoint with streaming support."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import requests

from .config import OllamaConfig
from .errors import BackendError, BackendUnavailable, MalformedResponse, StreamInterrupted

logger = logging.getLogger(__name__)


@dataclass
class BackendStatus:
    """Reachability of the backend and presence of the configured model."""

    reachable: bool
    model_available: bool
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"isRunning": self.reachable, "modelAvailable": self.model_available}
        if self.detail:
            payload["error"] = self.detail
        return payload


class OllamaClient:
    """Thin wrapper around the Ollama HTTP API."""

    def __init__(self, config: Optional[OllamaConfig] = None) -> None:
        self.config = config or OllamaConfig()

    @property
    def model(self) -> str:
        return self.config.model

    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}{path}"

    def _payload(self, prompt: str, *, stream: bool, options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        merged = self.config.default_options()
        if options:
            merged.update(options)
        return {"model": self.config.model, "prompt": prompt, "stream": stream, "options": merged}

    def _post(self, path: str, payload: Dict[str, Any], *, stream: bool = False) -> requests.Response:
        url = self._url(path)
        try:
            response = requests.post(url, json=payload, stream=stream, timeout=self.config.request_timeout)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise BackendUnavailable(f"Failed to connect to Ollama at {url}: {exc}") from exc
        except requests.RequestException as exc:
            raise BackendError(f"Ollama request to {url} failed: {exc}") from exc

        if not response.ok:
            status, reason = response.status_code, response.reason
            response.close()
            raise BackendError(f"Ollama request failed: {status} {reason}")
        return response

    def complete(self, prompt: str, options: Optional[Dict[str, Any]] = None) -> str:
        """Return a full completion (no streaming)."""
        logger.info("Requesting completion from %s using model %s", self.config.base_url, self.config.model)
        response = self._post("/api/generate", self._payload(prompt, stream=False, options=options))
        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponse("Ollama returned a non-JSON completion body") from exc

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise MalformedResponse("Ollama completion body has no 'response' field")
        return text

    def stream_complete(self, prompt: str, options: Optional[Dict[str, Any]] = None) -> Iterator[str]:
        """Yield response fragments as the backend produces them.

        The request is only sent once iteration starts. The underlying
        connection is released when the stream finishes, fails, or the
        generator is closed early.
        """
        logger.info("Streaming completion from %s using model %s", self.config.base_url, self.config.model)
        response = self._post("/api/generate", self._payload(prompt, stream=True, options=options), stream=True)
        with response:
            try:
                for raw_line in response.iter_lines():
                    if not raw_line:
                        continue
                    record = self._parse_line(raw_line)
                    if record is None:
                        continue
                    fragment = record.get("response") or ""
                    if fragment:
                        yield str(fragment)
                    if record.get("done"):
                        return
            except requests.RequestException as exc:
                raise StreamInterrupted(f"Ollama stream interrupted: {exc}") from exc

    @staticmethod
    def _parse_line(raw_line: bytes) -> Optional[Dict[str, Any]]:
        line = raw_line.decode("utf-8", errors="replace").strip()
        if not line:
            return None
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed stream line: %s", line)
            return None
        if not isinstance(record, dict):
            logger.warning("Skipping non-object stream line: %s", line)
            return None
        return record

    def check_status(self) -> BackendStatus:
        """Report reachability and model availability. Never raises."""
        url = self._url("/api/tags")
        try:
            response = requests.get(url, timeout=self.config.status_timeout)
        except requests.RequestException as exc:
            return BackendStatus(False, False, f"Failed to connect to Ollama: {exc}")

        if not response.ok:
            return BackendStatus(
                False, False, f"Ollama is not responding: {response.status_code} {response.reason}"
            )

        try:
            data = response.json()
        except ValueError:
            return BackendStatus(False, False, "Ollama returned an unreadable model listing")

        names = self._model_names(data)
        if self._has_model(names, self.config.model):
            return BackendStatus(True, True)
        return BackendStatus(
            True,
            False,
            f"Model '{self.config.model}' not found. Available models: {', '.join(names)}",
        )

    @staticmethod
    def _model_names(data: Any) -> List[str]:
        models = data.get("models") if isinstance(data, dict) else None
        if not isinstance(models, list):
            return []
        return [str(m.get("name")) for m in models if isinstance(m, dict) and m.get("name")]

    @staticmethod
    def _has_model(names: List[str], model: str) -> bool:
        if model in names:
            return True
        # an untagged name refers to the ``latest`` tag
        return ":" not in model and f"{model}:latest" in names

    def pull_model(self, model: Optional[str] = None) -> bool:
        """Ask the backend to download ``model``; False on any failure."""
        name = model or self.config.model
        logger.info("Pulling model %s", name)
        try:
            response = self._post("/api/pull", {"name": name}, stream=True)
            with response:
                for raw_line in response.iter_lines():
                    if not raw_line:
                        continue
                    record = self._parse_line(raw_line)
                    if record is None:
                        continue
                    if record.get("error"):
                        logger.error("Model pull for %s failed: %s", name, record["error"])
                        return False
                    if record.get("status") == "success":
                        logger.info("Model %s pulled", name)
                        return True
        except (BackendError, BackendUnavailable, requests.RequestException) as exc:
            logger.error("Error pulling model %s: %s", name, exc)
            return False
        return True
