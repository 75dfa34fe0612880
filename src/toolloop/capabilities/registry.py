"""
Active capability set.

The active set is the mapping of capability names to capabilities the model
can see on the next round-trip. It is owned by a single loop run and only
changed between turns, through apply().

Design:
    - Names are unique; construction rejects duplicates
    - Insertion order is preserved so the model sees a stable listing
    - apply() is atomic: the new mapping is built on a copy and swapped in
    - Only effective changes are reported back to the caller
"""

from collections.abc import Iterable, Iterator

from toolloop.capabilities.base import Capability
from toolloop.errors import CapabilityNotFoundError, DuplicateCapabilityError


class ActiveSet:
    """
    Ordered, name-unique set of capabilities.

    Attributes:
        _capabilities: Internal mapping of capability names to capabilities
    """

    def __init__(self, capabilities: Iterable[Capability] = ()) -> None:
        """
        Initialize the set.

        Raises:
            DuplicateCapabilityError: If two capabilities share a name
            ValueError: If a capability has an empty name
        """
        self._capabilities: dict[str, Capability] = {}
        for capability in capabilities:
            name = capability.name
            if not name:
                raise ValueError("Capability must have a non-empty name")
            if name in self._capabilities:
                raise DuplicateCapabilityError(capability=name)
            self._capabilities[name] = capability

    def get(self, name: str) -> Capability:
        """
        Look up an active capability by name.

        Raises:
            CapabilityNotFoundError: If no active capability has that name
        """
        capability = self._capabilities.get(name)
        if capability is None:
            raise CapabilityNotFoundError(capability=name, available=self.names())
        return capability

    def get_optional(self, name: str) -> Capability | None:
        """Look up an active capability by name, returning None if absent."""
        return self._capabilities.get(name)

    def names(self) -> list[str]:
        """Active capability names in insertion order."""
        return list(self._capabilities)

    def snapshot(self) -> tuple[Capability, ...]:
        """Immutable view of the current capabilities."""
        return tuple(self._capabilities.values())

    def as_dict(self) -> dict[str, Capability]:
        """Copy of the name to capability mapping."""
        return dict(self._capabilities)

    def apply(
        self,
        to_add: Iterable[Capability],
        to_remove: Iterable[Capability],
    ) -> tuple[list[Capability], list[Capability]]:
        """
        Apply one merged mutation.

        Removals are applied first, then additions. An addition whose name is
        still active after the removals is skipped, so names stay unique and
        repeated unfolds are idempotent.

        Args:
            to_add: Capabilities to add
            to_remove: Capabilities to remove (matched by name)

        Returns:
            Tuple of (actually_added, actually_removed)
        """
        updated = dict(self._capabilities)

        removed: list[Capability] = []
        for capability in to_remove:
            existing = updated.pop(capability.name, None)
            if existing is not None:
                removed.append(existing)

        added: list[Capability] = []
        for capability in to_add:
            if capability.name in updated:
                continue
            updated[capability.name] = capability
            added.append(capability)

        self._capabilities = updated
        return added, removed

    def __len__(self) -> int:
        return len(self._capabilities)

    def __iter__(self) -> Iterator[Capability]:
        return iter(self._capabilities.values())

    def __contains__(self, name: object) -> bool:
        return name in self._capabilities

    def __repr__(self) -> str:
        return f"<ActiveSet: [{', '.join(self._capabilities)}]>"
