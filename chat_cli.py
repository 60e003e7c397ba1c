"""Interactive terminal chat with Hue.

Server mode talks to a running relay (conversations are remembered);
offline mode calls Ollama directly and stores nothing.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from typing import Iterable, Optional

import requests

from hue_chat import ChatConfig
from hue_chat.errors import ChatError
from hue_chat.ollama_client import OllamaClient
from hue_chat.persona import HUE_PERSONA
from hue_chat.utils import setup_logging

logger = logging.getLogger(__name__)


def chat_with_server(server_url: str, user_id: str, message: str, *, stream: bool = False) -> Iterable[str]:
    """Yield the reply from the relay, fragment by fragment when streaming."""
    payload = {"message": message, "userId": user_id, "stream": stream}
    try:
        response = requests.post(f"{server_url.rstrip('/')}/chat", json=payload, stream=stream, timeout=300)
        response.raise_for_status()
        if stream:
            with response:
                for chunk in response.iter_content(chunk_size=None, decode_unicode=True):
                    if chunk:
                        yield chunk
        else:
            yield response.json()["response"]
    except requests.RequestException as exc:
        logger.debug("Server request failed", exc_info=True)
        yield f"{HUE_PERSONA.errors['network']} ({exc})"


def chat_direct(client: OllamaClient, message: str) -> Iterable[str]:
    try:
        yield client.complete(message).strip()
    except ChatError as exc:
        logger.debug("Direct Ollama request failed", exc_info=True)
        yield f"{HUE_PERSONA.errors['network']} ({exc})"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat with Hue from the terminal.")
    parser.add_argument("--server_url", default="http://localhost:3000", help="Base URL of the relay server.")
    parser.add_argument("--user_id", default="cli-user", help="User identifier sent with every message.")
    parser.add_argument("--stream", action="store_true", help="Print replies as they are generated.")
    parser.add_argument("--offline", action="store_true", help="Talk to Ollama directly without memory.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging(None, logging.DEBUG if args.verbose else logging.WARNING)

    client = OllamaClient(ChatConfig.from_env().ollama) if args.offline else None
    print(random.choice(HUE_PERSONA.starters))
    if client:
        print("Offline mode: direct connection to Ollama, conversations are NOT stored.")
    else:
        print(f"Server mode: {args.server_url} as user '{args.user_id}'.")
    print('Type "exit" to quit.')

    while True:
        try:
            message = input("You: ")
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if message.strip().lower() == "exit":
            break
        if not message.strip():
            continue

        if client:
            reply = chat_direct(client, message)
        else:
            reply = chat_with_server(args.server_url, args.user_id, message, stream=args.stream)

        sys.stdout.write("Hue: ")
        for fragment in reply:
            sys.stdout.write(fragment)
            sys.stdout.flush()
        sys.stdout.write("\n")


if __name__ == "__main__":
    main()
