"""
Ollama sender adapter.

This module implements the ModelMessageSender interface using Ollama's chat
API with native tool calling. Ollama runs local LLMs and provides a simple
HTTP API.

Requirements:
    - Ollama must be installed and running (`ollama serve`)
    - A tool-capable model must be pulled (`ollama pull qwen2.5:0.5b`)

Usage:
    from toolloop.sender.ollama import OllamaConfig, OllamaMessageSender

    sender = OllamaMessageSender(OllamaConfig(model="qwen2.5:0.5b"))
    response = sender.send(transcript, capabilities)
"""

import json
import logging
import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from toolloop.capabilities.base import Capability
from toolloop.errors import (
    SenderConnectionError,
    SenderModelNotFoundError,
    SenderParseError,
    SenderTimeoutError,
)
from toolloop.json_repair import parse_lenient, read_text_tool_call
from toolloop.schema import CapabilityCall, Message, MessageRole, ModelResponse
from toolloop.sender.base import ModelMessageSender

logger = logging.getLogger(__name__)

SENDER_NAME = "ollama"


@dataclass
class OllamaConfig:
    """Configuration for the Ollama adapter."""

    base_url: str = "http://localhost:11434"
    model: str = "qwen2.5:0.5b"
    timeout_seconds: float = 60.0
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    temperature: float = 0.1
    max_tokens: int = 1024


class OllamaMessageSender(ModelMessageSender):
    """
    Sender implementation using Ollama.

    Features:
        - Native tool calling via the "tools" field of /api/chat
        - Automatic retry on connection failures and timeouts
        - Recovery of tool calls that small models write as JSON text

    Example:
        with OllamaMessageSender(OllamaConfig(model="llama3.2")) as sender:
            engine = LoopEngine(sender)
            result = engine.execute(transcript, capabilities)
    """

    def __init__(self, config: OllamaConfig | None = None):
        self.config = config or OllamaConfig()
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.config.base_url,
                timeout=self.config.timeout_seconds,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "OllamaMessageSender":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def send(
        self,
        transcript: Sequence[Message],
        capabilities: Sequence[Capability],
    ) -> ModelResponse:
        """
        Send one chat round-trip to Ollama.

        Raises:
            SenderConnectionError: Cannot connect to Ollama
            SenderTimeoutError: Request timed out
            SenderModelNotFoundError: Model not available
            SenderParseError: Cannot parse response
        """
        payload = {
            "model": self.config.model,
            "messages": [self._encode_message(m) for m in transcript],
            "tools": self.capability_schemas(capabilities),
            "stream": False,
            "options": {
                "temperature": self.config.temperature,
                "num_predict": self.config.max_tokens,
            },
        }
        data = self._chat_with_retries(payload)
        return self._parse_response(data, {c.name for c in capabilities})

    # =========================================================================
    # Encoding
    # =========================================================================

    def _encode_message(self, message: Message) -> dict[str, Any]:
        encoded: dict[str, Any] = {"role": message.role.value, "content": message.content}
        if message.role is MessageRole.ASSISTANT and message.calls:
            encoded["tool_calls"] = [
                {"function": {"name": call.name, "arguments": _arguments_object(call.arguments)}}
                for call in message.calls
            ]
        elif message.role is MessageRole.TOOL and message.name:
            encoded["tool_name"] = message.name
        return encoded

    # =========================================================================
    # Transport
    # =========================================================================

    def _chat_with_retries(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Call Ollama API with retry logic."""
        last_error: SenderConnectionError | SenderTimeoutError | None = None

        for attempt in range(self.config.max_retries + 1):
            try:
                return self._chat(payload)
            except (SenderConnectionError, SenderTimeoutError) as e:
                last_error = e
                if attempt < self.config.max_retries:
                    logger.warning(
                        "Ollama request failed (attempt %d/%d): %s",
                        attempt + 1,
                        self.config.max_retries + 1,
                        e.message,
                    )
                    time.sleep(self.config.retry_delay_seconds)

        if last_error:
            raise last_error
        raise SenderConnectionError(
            sender=SENDER_NAME,
            model=self.config.model,
            url=self.config.base_url,
        )

    def _chat(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Make a single call to the chat endpoint."""
        client = self._get_client()

        try:
            response = client.post("/api/chat", json=payload)
        except httpx.ConnectError as e:
            raise SenderConnectionError(
                sender=SENDER_NAME,
                model=self.config.model,
                url=self.config.base_url,
                underlying_error=str(e),
            ) from e
        except httpx.TimeoutException as e:
            raise SenderTimeoutError(
                sender=SENDER_NAME,
                model=self.config.model,
                timeout_seconds=self.config.timeout_seconds,
            ) from e

        if response.status_code == 404:
            raise SenderModelNotFoundError(
                sender=SENDER_NAME,
                model=self.config.model,
                available_models=self._list_models(),
            )

        if response.status_code != 200:
            raise SenderConnectionError(
                sender=SENDER_NAME,
                model=self.config.model,
                url=self.config.base_url,
                underlying_error=f"HTTP {response.status_code}: {response.text}",
            )

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise SenderParseError(
                sender=SENDER_NAME,
                model=self.config.model,
                raw_response=response.text[:500],
                parse_error=f"Invalid JSON from Ollama: {e}",
            ) from e

        if not isinstance(data, dict):
            raise SenderParseError(
                sender=SENDER_NAME,
                model=self.config.model,
                raw_response=str(data)[:500],
                parse_error="Expected a JSON object",
            )
        return data

    def _list_models(self) -> list[str]:
        """List available models from Ollama."""
        try:
            response = self._get_client().get("/api/tags")
        except httpx.HTTPError as e:
            logger.debug("Could not list Ollama models: %s", e)
            return []
        if response.status_code != 200:
            return []
        try:
            return [m["name"] for m in response.json().get("models", [])]
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError):
            return []

    # =========================================================================
    # Decoding
    # =========================================================================

    def _parse_response(self, data: dict[str, Any], active_names: set[str]) -> ModelResponse:
        """Turn an /api/chat reply into a ModelResponse."""
        message = data.get("message") or {}
        content: str = message.get("content") or ""

        calls = []
        for raw_call in message.get("tool_calls") or []:
            function = raw_call.get("function") or {}
            name = function.get("name")
            if not name:
                continue
            arguments = function.get("arguments", {})
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments)
            calls.append(
                CapabilityCall(id=raw_call.get("id") or _call_id(), name=name, arguments=arguments)
            )

        if calls:
            return ModelResponse(text=content or None, calls=calls)

        text_call = self._text_encoded_call(content, active_names)
        if text_call is not None:
            logger.debug("Recovered text-encoded call to '%s'", text_call.name)
            return ModelResponse(calls=[text_call])

        if not content.strip():
            raise SenderParseError(
                sender=SENDER_NAME,
                model=self.config.model,
                raw_response=str(data)[:500],
                parse_error="Empty response from model",
            )
        return ModelResponse(text=content)

    def _text_encoded_call(self, content: str, active_names: set[str]) -> CapabilityCall | None:
        """Recover {"tool": ..., "args": ...} written as plain text."""
        if "tool" not in content:
            return None
        parsed, error = parse_lenient(content)
        if error:
            return None
        call = read_text_tool_call(parsed)
        if call is None or call[0] not in active_names:
            return None
        name, args = call
        return CapabilityCall(id=_call_id(), name=name, arguments=json.dumps(args))

    def get_name(self) -> str:
        """Return sender name."""
        return f"OllamaMessageSender({self.config.model})"

    def get_config(self) -> dict[str, Any]:
        """Return sender configuration."""
        return {
            "backend": SENDER_NAME,
            "base_url": self.config.base_url,
            "model": self.config.model,
            "timeout_seconds": self.config.timeout_seconds,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }

    def check_connection(self) -> tuple[bool, str]:
        """
        Check if Ollama is accessible and the model is available.

        Returns:
            Tuple of (is_ok, message)
        """
        try:
            response = self._get_client().get("/api/tags")
        except httpx.ConnectError:
            return False, f"Cannot connect to Ollama at {self.config.base_url}. Is it running?"
        except httpx.HTTPError as e:
            return False, f"Error checking Ollama: {e}"

        if response.status_code != 200:
            return False, f"Ollama returned HTTP {response.status_code}"

        models = [m["name"] for m in response.json().get("models", [])]
        if not models:
            return False, f"No models available. Run: ollama pull {self.config.model}"

        model_base = self.config.model.split(":")[0]
        available = any(
            m == self.config.model or m.startswith(f"{model_base}:") for m in models
        )
        if not available:
            return (
                False,
                f"Model '{self.config.model}' not found. Available: {', '.join(models[:3])}",
            )

        return True, f"Connected to Ollama, model '{self.config.model}' available"


def _call_id() -> str:
    return f"call_{uuid.uuid4().hex[:8]}"


def _arguments_object(arguments: str) -> Any:
    """Ollama expects tool-call arguments as an object, not a string."""
    if not arguments.strip():
        return {}
    parsed, error = parse_lenient(arguments)
    return {} if error else parsed
