"""
Base class for model-message senders.

A sender performs one blocking round-trip: it takes the transcript and the
active capabilities and returns the model's ModelResponse (final text, or
one or more capability calls). The loop engine never talks to a model
backend directly.

Implementations:
    - ScriptedMessageSender: Replays canned responses (tests, demos)
    - OllamaMessageSender: Local models through Ollama's chat API
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from toolloop.capabilities.base import Capability
from toolloop.schema import Message, ModelResponse


class ModelMessageSender(ABC):
    """
    Abstract base class for model backends.

    Example Implementation:
        class EchoSender(ModelMessageSender):
            def send(self, transcript, capabilities):
                return ModelResponse(text=transcript[-1].content)

            def get_name(self):
                return "echo"
    """

    @abstractmethod
    def send(
        self,
        transcript: Sequence[Message],
        capabilities: Sequence[Capability],
    ) -> ModelResponse:
        """
        Send the transcript and the active capabilities to the model.

        Raises:
            SenderError: If the round-trip fails
        """
        ...

    @abstractmethod
    def get_name(self) -> str:
        """Return a human-readable name for this sender."""
        ...

    def get_config(self) -> dict[str, Any]:
        """Return sender configuration for recording."""
        return {}

    @staticmethod
    def capability_schemas(capabilities: Sequence[Capability]) -> list[dict[str, Any]]:
        """Render capabilities as function-tool descriptors."""
        return [
            {
                "type": "function",
                "function": {
                    "name": capability.name,
                    "description": capability.description,
                    "parameters": capability.input_schema,
                },
            }
            for capability in capabilities
        ]
