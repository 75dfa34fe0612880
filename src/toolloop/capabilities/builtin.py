"""
Built-in demo catalog.

A small, dependency-free set of capabilities used by the CLI and the
integration tests. It exercises a nested disclosure node (math, which
contains advanced_math), a category node (text_tools) and one plain
capability that is always visible.
"""

import math
from datetime import UTC, datetime
from typing import Any

from toolloop.capabilities.base import Capability, FunctionCapability, Result
from toolloop.capabilities.disclosure import DisclosureNode


def _number_schema(*names: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {name: {"type": "number"} for name in names},
        "required": list(names),
    }


_TEXT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"text": {"type": "string"}},
    "required": ["text"],
}


def _numbers(args: dict[str, Any], *names: str) -> list[float] | Result:
    values = []
    for name in names:
        value = args.get(name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return Result.error(f"'{name}' must be a number")
        values.append(value)
    return values


def _format(value: float) -> str:
    return f"{value:g}"


def _add(args: dict[str, Any]) -> Result:
    values = _numbers(args, "a", "b")
    if isinstance(values, Result):
        return values
    return Result.text(_format(values[0] + values[1]))


def _multiply(args: dict[str, Any]) -> Result:
    values = _numbers(args, "a", "b")
    if isinstance(values, Result):
        return values
    return Result.text(_format(values[0] * values[1]))


def _power(args: dict[str, Any]) -> Result:
    values = _numbers(args, "base", "exponent")
    if isinstance(values, Result):
        return values
    try:
        return Result.text(_format(math.pow(values[0], values[1])))
    except (OverflowError, ValueError) as e:
        return Result.error(f"power failed: {e}", e)


def _sqrt(args: dict[str, Any]) -> Result:
    values = _numbers(args, "x")
    if isinstance(values, Result):
        return values
    if values[0] < 0:
        return Result.error("sqrt of a negative number")
    return Result.text(_format(math.sqrt(values[0])))


def _text(args: dict[str, Any]) -> str | Result:
    text = args.get("text")
    if not isinstance(text, str):
        return Result.error("'text' must be a string")
    return text


def _upper(args: dict[str, Any]) -> Result:
    text = _text(args)
    return text if isinstance(text, Result) else Result.text(text.upper())


def _lower(args: dict[str, Any]) -> Result:
    text = _text(args)
    return text if isinstance(text, Result) else Result.text(text.lower())


def _word_count(args: dict[str, Any]) -> Result:
    text = _text(args)
    if isinstance(text, Result):
        return text
    count = len(text.split())
    return Result.with_artifact(str(count), {"words": count})


def _char_count(args: dict[str, Any]) -> Result:
    text = _text(args)
    if isinstance(text, Result):
        return text
    return Result.with_artifact(str(len(text)), {"characters": len(text)})


def _current_time(args: dict[str, Any]) -> Result:
    return Result.text(datetime.now(UTC).isoformat())


def math_node() -> DisclosureNode:
    """Nested node: math -> add, multiply, advanced_math -> power, sqrt."""
    advanced = DisclosureNode(
        "advanced_math",
        "Advanced math operations (power, square root). Invoke to enable them.",
        [
            FunctionCapability("power", "Raise base to exponent", _power, _number_schema("base", "exponent")),
            FunctionCapability("sqrt", "Square root of x", _sqrt, _number_schema("x")),
        ],
    )
    return DisclosureNode(
        "math",
        "Arithmetic operations. Invoke to enable add, multiply and advanced math.",
        [
            FunctionCapability("add", "Add a and b", _add, _number_schema("a", "b")),
            FunctionCapability("multiply", "Multiply a by b", _multiply, _number_schema("a", "b")),
            advanced,
        ],
        usage_notes="Results are plain numbers. Chain calls for compound expressions.",
    )


def text_node() -> DisclosureNode:
    """Category node: text_tools -> case (upper, lower) / stats (word_count, char_count)."""
    return DisclosureNode.by_category(
        "text_tools",
        "Text utilities. Pass category 'case' or 'stats' to narrow the selection.",
        {
            "case": [
                FunctionCapability("upper", "Upper-case text", _upper, _TEXT_SCHEMA),
                FunctionCapability("lower", "Lower-case text", _lower, _TEXT_SCHEMA),
            ],
            "stats": [
                FunctionCapability("word_count", "Count words in text", _word_count, _TEXT_SCHEMA),
                FunctionCapability("char_count", "Count characters in text", _char_count, _TEXT_SCHEMA),
            ],
        },
    )


def demo_catalog() -> list[Capability]:
    """Initial active set for demo runs."""
    return [
        math_node(),
        text_node(),
        FunctionCapability("current_time", "Current UTC time in ISO 8601", _current_time),
    ]
