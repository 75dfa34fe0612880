"""
Disclosure policy: turns DisclosureNode invocations into active-set changes.

When the last invocation was a DisclosureNode that ran successfully, the
node's selected children (plus a context capability) are added and, if the
node is configured with remove_on_invoke, the node itself is removed in the
same change. A node that stays active can be invoked again; its context
capability is then replaced by one covering every child unfolded so far.

Selection runs on the arguments the node was actually called with, so the
children injected always match the "Enabled ..." text the model was shown.
"""

import logging

from toolloop.capabilities.base import unwrap
from toolloop.capabilities.disclosure import DisclosureContextCapability, DisclosureNode
from toolloop.json_repair import normalize_arguments
from toolloop.policy.base import InjectionContext, InjectionPolicy, InjectionResult
from toolloop.schema import TurnStatus

logger = logging.getLogger(__name__)


class DisclosurePolicy(InjectionPolicy):
    """
    Unfolds DisclosureNodes one level per invocation.

    Attributes:
        include_context: Whether a <node>_context capability accompanies
            every non-empty unfold
    """

    def __init__(self, include_context: bool = True) -> None:
        self.include_context = include_context

    def evaluate(self, context: InjectionContext) -> InjectionResult:
        last_turn = context.last_turn
        invoked = context.find_capability(last_turn.capability_name)
        if invoked is None:
            return InjectionResult.no_change()

        node = unwrap(invoked)
        if not isinstance(node, DisclosureNode):
            return InjectionResult.no_change()

        if last_turn.status is not TurnStatus.SUCCESS:
            logger.debug("Not unfolding %s: invocation ended with %s", node.name, last_turn.status.value)
            return InjectionResult.no_change()

        arguments = last_turn.dispatched_input
        if arguments is None:
            arguments, _ = normalize_arguments(last_turn.raw_input)
        selected = node.select(arguments)
        removal = (invoked,) if node.remove_on_invoke else ()

        if not selected:
            logger.warning(
                "Disclosure node '%s' selected no capabilities for input: %.200s",
                node.name,
                last_turn.raw_input,
            )
            return InjectionResult(to_remove=removal)

        additions = list(selected)
        if self.include_context:
            previous = self._active_context(context, node)
            if previous is None:
                additions.append(node.context_capability(selected))
            else:
                known = {c.name for c in previous.selected}
                covered = [*previous.selected, *(c for c in selected if c.name not in known)]
                additions.append(node.context_capability(covered))
                removal = (*removal, previous)

        logger.debug(
            "Disclosure node '%s' unfolding %d capabilities: %s",
            node.name,
            len(selected),
            [c.name for c in selected],
        )
        return InjectionResult(to_add=tuple(additions), to_remove=removal)

    @staticmethod
    def _active_context(
        context: InjectionContext, node: DisclosureNode
    ) -> DisclosureContextCapability | None:
        for capability in context.current_capabilities:
            if isinstance(capability, DisclosureContextCapability) and capability.node.name == node.name:
                return capability
        return None
