"""Tests for OllamaClient."""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from hue_chat.config import OllamaConfig
from hue_chat.errors import BackendError, BackendUnavailable, MalformedResponse, StreamInterrupted
from hue_chat.ollama_client import BackendStatus, OllamaClient


def _response(*, status: int = 200, lines=None, body=None) -> MagicMock:
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.reason = "OK" if response.ok else "Server Error"
    if lines is not None:
        response.iter_lines.return_value = iter(lines)
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


def _line(response: str, done: bool = False) -> bytes:
    return json.dumps({"model": "hue", "response": response, "done": done}).encode()


@pytest.fixture
def client() -> OllamaClient:
    return OllamaClient(OllamaConfig(base_url="http://ollama:11434/", model="hue"))


class TestComplete:
    def test_returns_response_text(self, client: OllamaClient):
        with patch("hue_chat.ollama_client.requests.post") as post:
            post.return_value = _response(body={"response": "Hi!", "done": True})
            assert client.complete("hello") == "Hi!"

        url = post.call_args[0][0]
        payload = post.call_args[1]["json"]
        assert url == "http://ollama:11434/api/generate"
        assert payload["model"] == "hue"
        assert payload["stream"] is False
        assert payload["options"] == {"temperature": 0.7, "top_p": 0.9}

    def test_options_override_defaults(self, client: OllamaClient):
        with patch("hue_chat.ollama_client.requests.post") as post:
            post.return_value = _response(body={"response": "ok"})
            client.complete("hello", {"temperature": 0.1, "num_predict": 64})

        options = post.call_args[1]["json"]["options"]
        assert options == {"temperature": 0.1, "top_p": 0.9, "num_predict": 64}

    def test_connection_failure(self, client: OllamaClient):
        with patch("hue_chat.ollama_client.requests.post", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(BackendUnavailable):
                client.complete("hello")

    def test_error_status(self, client: OllamaClient):
        with patch("hue_chat.ollama_client.requests.post", return_value=_response(status=500)):
            with pytest.raises(BackendError, match="500"):
                client.complete("hello")

    def test_non_json_body(self, client: OllamaClient):
        with patch("hue_chat.ollama_client.requests.post") as post:
            post.return_value = _response(body=ValueError("not json"))
            with pytest.raises(MalformedResponse):
                client.complete("hello")

    def test_missing_response_field(self, client: OllamaClient):
        with patch("hue_chat.ollama_client.requests.post", return_value=_response(body={"done": True})):
            with pytest.raises(MalformedResponse):
                client.complete("hello")


class TestStreamComplete:
    def test_yields_fragments_until_done(self, client: OllamaClient):
        lines = [_line("Hel"), b"", _line("lo"), _line("", done=True), _line("ignored")]
        with patch("hue_chat.ollama_client.requests.post", return_value=_response(lines=lines)) as post:
            assert list(client.stream_complete("hi")) == ["Hel", "lo"]

        assert post.call_args[1]["stream"] is True
        assert post.call_args[1]["json"]["stream"] is True

    def test_ends_when_connection_closes(self, client: OllamaClient):
        lines = [_line("a"), _line("b")]
        with patch("hue_chat.ollama_client.requests.post", return_value=_response(lines=lines)):
            assert list(client.stream_complete("hi")) == ["a", "b"]

    def test_skips_malformed_lines(self, client: OllamaClient):
        lines = [_line("one"), b"{not json", b"[1, 2]", _line(" two", done=True)]
        with patch("hue_chat.ollama_client.requests.post", return_value=_response(lines=lines)):
            assert list(client.stream_complete("hi")) == ["one", " two"]

    def test_request_is_lazy(self, client: OllamaClient):
        with patch("hue_chat.ollama_client.requests.post") as post:
            client.stream_complete("hi")
        post.assert_not_called()

    def test_mid_stream_failure(self, client: OllamaClient):
        def lines():
            yield _line("partial")
            raise requests.exceptions.ChunkedEncodingError("connection reset")

        response = _response()
        response.iter_lines.return_value = lines()
        with patch("hue_chat.ollama_client.requests.post", return_value=response):
            stream = client.stream_complete("hi")
            assert next(stream) == "partial"
            with pytest.raises(StreamInterrupted):
                next(stream)
        response.__exit__.assert_called_once()

    def test_closing_early_releases_connection(self, client: OllamaClient):
        response = _response(lines=[_line("a"), _line("b")])
        with patch("hue_chat.ollama_client.requests.post", return_value=response):
            stream = client.stream_complete("hi")
            next(stream)
            stream.close()
        response.__exit__.assert_called_once()

    def test_stream_error_status(self, client: OllamaClient):
        response = _response(status=404)
        with patch("hue_chat.ollama_client.requests.post", return_value=response):
            with pytest.raises(BackendError):
                list(client.stream_complete("hi"))
        response.close.assert_called_once()


class TestCheckStatus:
    def test_model_available(self, client: OllamaClient):
        body = {"models": [{"name": "llama3:8b"}, {"name": "hue"}]}
        with patch("hue_chat.ollama_client.requests.get", return_value=_response(body=body)) as get:
            status = client.check_status()
        assert get.call_args[0][0] == "http://ollama:11434/api/tags"
        assert status == BackendStatus(reachable=True, model_available=True)

    def test_untagged_model_matches_latest(self, client: OllamaClient):
        body = {"models": [{"name": "hue:latest"}]}
        with patch("hue_chat.ollama_client.requests.get", return_value=_response(body=body)):
            assert client.check_status().model_available is True

    def test_model_missing(self, client: OllamaClient):
        body = {"models": [{"name": "llama3:8b"}]}
        with patch("hue_chat.ollama_client.requests.get", return_value=_response(body=body)):
            status = client.check_status()
        assert status.reachable is True
        assert status.model_available is False
        assert "llama3:8b" in status.detail

    def test_backend_down_never_raises(self, client: OllamaClient):
        with patch("hue_chat.ollama_client.requests.get", side_effect=requests.ConnectionError("refused")):
            status = client.check_status()
        assert status.to_dict() == {
            "isRunning": False,
            "modelAvailable": False,
            "error": status.detail,
        }
        assert "refused" in status.detail

    @pytest.mark.parametrize("body", [{"models": 5}, {"models": "hue"}, ["hue"], {"models": None}])
    def test_odd_listing_is_model_unavailable(self, client: OllamaClient, body):
        """A listing without a models array reports the model missing instead of raising."""
        with patch("hue_chat.ollama_client.requests.get", return_value=_response(body=body)):
            status = client.check_status()
        assert status.reachable is True
        assert status.model_available is False

    def test_uses_short_status_timeout(self):
        client = OllamaClient(OllamaConfig(request_timeout=120, status_timeout=3))
        with patch("hue_chat.ollama_client.requests.get", return_value=_response(body={"models": []})) as get:
            client.check_status()
        assert get.call_args[1]["timeout"] == 3

    def test_error_status_is_unreachable(self, client: OllamaClient):
        with patch("hue_chat.ollama_client.requests.get", return_value=_response(status=502)):
            status = client.check_status()
        assert status.reachable is False
        assert "502" in status.detail


class TestPullModel:
    def test_success_status(self, client: OllamaClient):
        lines = [b'{"status": "pulling manifest"}', b'{"status": "success"}']
        with patch("hue_chat.ollama_client.requests.post", return_value=_response(lines=lines)) as post:
            assert client.pull_model("llama3") is True
        assert post.call_args[1]["json"] == {"name": "llama3"}

    def test_defaults_to_configured_model(self, client: OllamaClient):
        with patch("hue_chat.ollama_client.requests.post", return_value=_response(lines=[])) as post:
            assert client.pull_model() is True
        assert post.call_args[1]["json"] == {"name": "hue"}

    def test_error_record(self, client: OllamaClient):
        lines = [b'{"error": "pull model manifest: file does not exist"}']
        with patch("hue_chat.ollama_client.requests.post", return_value=_response(lines=lines)):
            assert client.pull_model("nope") is False

    def test_connection_failure(self, client: OllamaClient):
        with patch("hue_chat.ollama_client.requests.post", side_effect=requests.ConnectionError("refused")):
            assert client.pull_model() is False
