"""
Model-message sender module for toolloop.

Senders perform the model round-trip for the loop engine.

Available senders:
    - ScriptedMessageSender: Replays canned responses
    - OllamaMessageSender: Local models through Ollama
"""

from toolloop.sender.base import ModelMessageSender
from toolloop.sender.ollama import OllamaConfig, OllamaMessageSender
from toolloop.sender.scripted import ScriptedMessageSender

__all__ = [
    "ModelMessageSender",
    "OllamaConfig",
    "OllamaMessageSender",
    "ScriptedMessageSender",
]
