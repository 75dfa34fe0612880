"""
Disclosure nodes: collapsible groups of capabilities.

A large catalog listed flat would overwhelm the model's context. Instead the
catalog is folded into DisclosureNodes. A node is itself a capability; when
the model invokes it, the DisclosurePolicy (toolloop.policy.disclosure)
replaces it with the children its selector picks. Children may be nodes
again, so unfolding proceeds one level per invocation.

Example:
    database = DisclosureNode(
        "database",
        "Database operations. Invoke to see the specific operations.",
        [query, insert, delete],
        usage_notes="Always query before deleting.",
    )

    # Model calls "database" -> query, insert, delete and database_context
    # become active, "database" is removed.
"""

import json
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from toolloop.capabilities.base import CallContext, Capability, Result
from toolloop.errors import DuplicateCapabilityError
from toolloop.json_repair import parse_lenient

logger = logging.getLogger(__name__)

Selector = Callable[[str], list[Capability]]

CONTEXT_SUFFIX = "_context"

# Maximum characters of the parent description repeated in a context capability
CONTEXT_SUMMARY_LENGTH = 200


class DisclosureNode(Capability):
    """
    A capability wrapping a folded collection of inner capabilities.

    Attributes:
        inner_capabilities: The folded children (possibly nodes themselves)
        remove_on_invoke: Whether the node leaves the active set once it fires
        usage_notes: Optional guidance returned by the context capability
    """

    def __init__(
        self,
        name: str,
        description: str,
        inner_capabilities: Sequence[Capability],
        selector: Selector | None = None,
        remove_on_invoke: bool = True,
        usage_notes: str | None = None,
        input_schema: dict[str, Any] | None = None,
    ) -> None:
        if not name:
            raise ValueError("Capability must have a non-empty name")

        seen: set[str] = set()
        for capability in inner_capabilities:
            if capability.name in seen:
                raise DuplicateCapabilityError(capability=capability.name)
            seen.add(capability.name)

        self._name = name
        self._description = description
        self.inner_capabilities: tuple[Capability, ...] = tuple(inner_capabilities)
        self._selector = selector
        self.remove_on_invoke = remove_on_invoke
        self.usage_notes = usage_notes
        self._input_schema = input_schema

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def input_schema(self) -> dict[str, Any]:
        if self._input_schema is not None:
            return self._input_schema
        return super().input_schema

    def select(self, raw_input: str) -> list[Capability]:
        """
        Choose which inner capabilities to reveal for an invocation.

        Without a selector every inner capability is returned.
        """
        if self._selector is None:
            return list(self.inner_capabilities)
        return list(self._selector(raw_input))

    def call(self, arguments: str, context: CallContext) -> Result:
        selected = self.select(arguments)
        if not selected:
            return Result.text(
                f"No capabilities matched the input for {self.name}; nothing was enabled."
            )
        names = ", ".join(c.name for c in selected)
        return Result.text(f"Enabled {len(selected)} capabilities: {names}")

    def context_capability(self, selected: Sequence[Capability]) -> "DisclosureContextCapability":
        """Build the companion capability describing an unfold of this node."""
        return DisclosureContextCapability(self, selected)

    @classmethod
    def by_category(
        cls,
        name: str,
        description: str,
        capabilities_by_category: Mapping[str, Sequence[Capability]],
        category_parameter: str = "category",
        remove_on_invoke: bool = True,
        usage_notes: str | None = None,
    ) -> "DisclosureNode":
        """
        Create a node whose selector is keyed by a category argument.

        The argument is optional. When it is missing, malformed, or names an
        unknown category, every inner capability is revealed.

        Example:
            files = DisclosureNode.by_category(
                "file_operations",
                "File operations. Pass category to narrow the selection.",
                {"read": [read_file, list_dir], "write": [write_file, delete_file]},
            )
        """
        categories = {key: list(caps) for key, caps in capabilities_by_category.items()}

        all_capabilities: list[Capability] = []
        seen: set[str] = set()
        for caps in categories.values():
            for capability in caps:
                if capability.name not in seen:
                    seen.add(capability.name)
                    all_capabilities.append(capability)

        def select_category(raw_input: str) -> list[Capability]:
            data, error = parse_lenient(raw_input)
            if error is not None or not isinstance(data, dict):
                return list(all_capabilities)
            category = data.get(category_parameter)
            if not isinstance(category, str) or category not in categories:
                if category is not None:
                    logger.debug(
                        "Unknown category %r for %s; revealing all capabilities",
                        category,
                        name,
                    )
                return list(all_capabilities)
            return list(categories[category])

        schema = {
            "type": "object",
            "properties": {
                category_parameter: {
                    "type": "string",
                    "enum": list(categories),
                    "description": "Optional category to narrow the capabilities revealed",
                },
            },
        }

        return cls(
            name,
            description,
            all_capabilities,
            selector=select_category,
            remove_on_invoke=remove_on_invoke,
            usage_notes=usage_notes,
            input_schema=schema,
        )

    def __repr__(self) -> str:
        inner = ", ".join(c.name for c in self.inner_capabilities)
        return f"<DisclosureNode: {self.name} [{inner}]>"


class DisclosureContextCapability(Capability):
    """
    Companion capability added alongside an unfolded node's children.

    Its description is short; calling it returns the full detail of every
    unfolded child plus the parent's usage notes.
    """

    def __init__(self, node: DisclosureNode, selected: Sequence[Capability]) -> None:
        self.node = node
        self.selected: tuple[Capability, ...] = tuple(selected)

    @property
    def name(self) -> str:
        return f"{self.node.name}{CONTEXT_SUFFIX}"

    @property
    def description(self) -> str:
        summary = self.node.description
        if len(summary) > CONTEXT_SUMMARY_LENGTH:
            summary = summary[: CONTEXT_SUMMARY_LENGTH - 3] + "..."
        listing = "; ".join(f"{c.name}: {_first_line(c.description)}" for c in self.selected)
        return (
            f"Context for {self.node.name} ({summary}). "
            f"Unfolded capabilities: {listing}. "
            "Call this for detailed descriptions and usage guidance."
        )

    def call(self, arguments: str, context: CallContext) -> Result:
        lines = [f"# {self.node.name}", "", self.node.description, ""]
        for capability in self.selected:
            lines.append(f"## {capability.name}")
            lines.append(capability.description)
            lines.append(f"Input schema: {json.dumps(capability.input_schema, sort_keys=True)}")
            lines.append("")
        if self.node.usage_notes:
            lines.append("## Usage notes")
            lines.append(self.node.usage_notes)
        return Result.text("\n".join(lines).rstrip())


def _first_line(text: str) -> str:
    return text.strip().splitlines()[0] if text.strip() else ""
