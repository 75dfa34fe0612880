"""
Lenient JSON handling for capability arguments and model text.

Models, small ones in particular, write arguments that are almost JSON:
fenced in markdown, surrounded by prose, with trailing commas, bare keys,
single quotes or Python literals. The loop engine dispatches such arguments
after a best-effort repair instead of failing the turn, and the Ollama
sender uses the same helpers to recover tool calls written as plain text.

Nothing here guesses: when a repair does not produce valid JSON the caller
gets None (or an error string) back.
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

EMPTY_ARGUMENTS = "{}"

_REPAIR_ROUNDS = 3

_FENCE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)

# Applied in order, once per round.
_REPAIRS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"/\*.*?\*/", re.DOTALL), ""),
    (re.compile(r"^\s*//.*$", re.MULTILINE), ""),
    (re.compile(r",(\s*[}\]])"), r"\1"),
    (re.compile(r"([{,]\s*)([A-Za-z_]\w*)(\s*:)"), r'\1"\2"\3'),
    (re.compile(r"(?<![\w\"])True(?![\w\"])"), "true"),
    (re.compile(r"(?<![\w\"])False(?![\w\"])"), "false"),
    (re.compile(r"(?<![\w\"])None(?![\w\"])"), "null"),
)

_decoder = json.JSONDecoder()


def _is_valid(text: str) -> bool:
    try:
        json.loads(text)
    except json.JSONDecodeError:
        return False
    return True


def find_json(text: str) -> str | None:
    """
    Locate the JSON object or array inside mixed model text.

    A fenced block wins when it holds something bracketed. Otherwise the
    first position that decodes cleanly is used, and failing that the span
    from the first opening bracket to the last matching closer, so the
    result can still be handed to repair_json().
    """
    if not text or not text.strip():
        return None

    for block in _FENCE.findall(text):
        block = block.strip()
        if block[:1] in ("{", "["):
            return block

    openers = [i for i, ch in enumerate(text) if ch in "{["]
    for index in openers:
        try:
            _, end = _decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            continue
        return text[index:end]

    if not openers:
        return None
    start = openers[0]
    closer = "}" if text[start] == "{" else "]"
    end = text.rfind(closer)
    return text[start : end + 1] if end > start else None


def repair_json(text: str) -> str | None:
    """
    Rewrite almost-JSON into JSON.

    Fixes trailing commas, bare keys, comments, Python literals, and single
    quotes when the text has no double quotes at all. Returns None when the
    result still does not parse.
    """
    if not text:
        return None

    candidate = text
    if '"' not in candidate:
        candidate = candidate.replace("'", '"')

    for _ in range(_REPAIR_ROUNDS):
        if _is_valid(candidate):
            return candidate
        repaired = candidate
        for pattern, replacement in _REPAIRS:
            repaired = pattern.sub(replacement, repaired)
        if repaired == candidate:
            break
        candidate = repaired

    return candidate if _is_valid(candidate) else None


def parse_lenient(text: str) -> tuple[Any, str | None]:
    """
    Decode JSON that may be fenced, wrapped in prose, or slightly malformed.

    Returns:
        (value, None) on success, (None, reason) otherwise
    """
    if not text or not text.strip():
        return None, "Empty input"

    candidates = [text.strip()]
    fragment = find_json(text)
    if fragment and fragment != candidates[0]:
        candidates.insert(0, fragment)

    for candidate in candidates:
        if _is_valid(candidate):
            return json.loads(candidate), None
        repaired = repair_json(candidate)
        if repaired is not None:
            return json.loads(repaired), None

    return None, "No valid JSON found"


def normalize_arguments(raw: str | None) -> tuple[str, bool]:
    """
    Turn raw model arguments into a JSON string a capability can decode.

    Blank input becomes "{}". Valid JSON passes through untouched. Anything
    else is repaired if possible, and replaced by "{}" if not.

    Args:
        raw: Arguments exactly as the model produced them

    Returns:
        Tuple of (arguments_to_dispatch, was_modified)
    """
    if raw is None or not raw.strip():
        return EMPTY_ARGUMENTS, True

    if _is_valid(raw):
        return raw, False

    parsed, error = parse_lenient(raw)
    if error is None:
        logger.warning("Repaired malformed capability arguments: %.200s", raw)
        return json.dumps(parsed), True

    logger.warning("Dispatching empty arguments; could not repair: %.200s", raw)
    return EMPTY_ARGUMENTS, True


def decode_output(text: str) -> Any:
    """
    Decode a capability's text output if it looks like JSON.

    Only attempts parsing when the text starts with "{" or "[".

    Returns:
        The decoded value, or None
    """
    trimmed = text.lstrip()
    if not trimmed.startswith(("{", "[")):
        return None
    try:
        return json.loads(trimmed)
    except json.JSONDecodeError as e:
        logger.debug("Capability output is not JSON: %s", e)
        return None


def read_text_tool_call(data: Any) -> tuple[str, dict[str, Any]] | None:
    """Return (name, args) when data has the shape {"tool": name, "args": {...}}."""
    if not isinstance(data, dict):
        return None
    name = data.get("tool")
    if not isinstance(name, str) or not name:
        return None
    args = data.get("args", {})
    if not isinstance(args, dict):
        return None
    return name, args
