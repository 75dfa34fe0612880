"""
Scripted sender that replays a fixed list of responses.

Used for deterministic runs: tests, demos and the CLI's --script option.

Script file format (YAML):
    responses:
      - calls:
          - name: math
      - calls:
          - name: add
            arguments: '{"a": 2, "b": 3}'
      - text: "2 + 3 = 5"
"""

import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from toolloop.capabilities.base import Capability
from toolloop.errors import ConfigError, SenderParseError
from toolloop.schema import CapabilityCall, Message, ModelResponse
from toolloop.sender.base import ModelMessageSender


class ScriptedMessageSender(ModelMessageSender):
    """
    Returns the scripted responses in order.

    When the script runs out, the last response is repeated if
    repeat_last is set; otherwise a SenderParseError is raised.

    Attributes:
        sent: What each round-trip received (transcript, capability names)
    """

    def __init__(self, responses: Sequence[ModelResponse], repeat_last: bool = False) -> None:
        self.responses = list(responses)
        self.repeat_last = repeat_last
        self._index = 0
        self.sent: list[tuple[list[Message], list[str]]] = []

    @property
    def call_count(self) -> int:
        return len(self.sent)

    def send(
        self,
        transcript: Sequence[Message],
        capabilities: Sequence[Capability],
    ) -> ModelResponse:
        self.sent.append((list(transcript), [c.name for c in capabilities]))

        if self._index < len(self.responses):
            response = self.responses[self._index]
            self._index += 1
            return response

        if self.repeat_last and self.responses:
            return self.responses[-1]

        raise SenderParseError(
            sender="scripted",
            parse_error=f"script exhausted after {len(self.responses)} responses",
        )

    def get_name(self) -> str:
        return f"ScriptedMessageSender({len(self.responses)} responses)"

    def get_config(self) -> dict[str, Any]:
        return {"backend": "scripted", "responses": len(self.responses)}

    @classmethod
    def from_yaml(cls, path: Path | str) -> "ScriptedMessageSender":
        """
        Load a script from a YAML file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ConfigError: If the script is malformed
        """
        path = Path(path)
        with path.open() as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(path=str(path), validation_error=str(e)) from e
        return cls.from_data(data, str(path))

    @classmethod
    def from_data(cls, data: Any, path: str | None = None) -> "ScriptedMessageSender":
        """Build a sender from already-parsed script data."""
        if not isinstance(data, dict) or not isinstance(data.get("responses"), list):
            raise ConfigError(path=path, validation_error="script must contain a 'responses' list")

        responses = []
        counter = 0
        try:
            for entry in data["responses"]:
                if not isinstance(entry, dict):
                    raise ConfigError(path=path, validation_error="each response must be a mapping")
                calls = []
                for call in entry.get("calls") or []:
                    counter += 1
                    if not isinstance(call, dict):
                        raise ConfigError(path=path, validation_error="each call must be a mapping")
                    if not isinstance(call.get("arguments", ""), str):
                        call = {**call, "arguments": json.dumps(call["arguments"])}
                    calls.append(CapabilityCall.model_validate({"id": f"call_{counter}", **call}))
                responses.append(ModelResponse(text=entry.get("text"), calls=calls))
        except ValidationError as e:
            raise ConfigError(path=path, validation_error=str(e)) from e

        return cls(responses, repeat_last=bool(data.get("repeat_last", False)))
