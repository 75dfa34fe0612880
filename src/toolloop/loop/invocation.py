"""
Dispatch of a single capability call.

Both the sequential path of the engine and the parallel batch executor run
calls through invoke_call(), so rejection, argument repair and failure
handling behave the same in both modes.
"""

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass

from toolloop.capabilities.base import ArtifactResult, CallContext, Capability, Result
from toolloop.capabilities.replan import ReplanRequested
from toolloop.errors import CapabilityExecutionError, CapabilityNotFoundError
from toolloop.json_repair import decode_output, normalize_arguments
from toolloop.schema import CapabilityCall, TurnRecord, TurnStatus

logger = logging.getLogger(__name__)


@dataclass
class Invocation:
    """
    Outcome of one capability call before it becomes a TurnRecord.

    Attributes:
        call: The call as the model requested it
        result: What the capability (or the engine on its behalf) returned
        status: Classification of the outcome
        arguments: Arguments actually dispatched after normalisation
        duration_seconds: Wall-clock time spent in the call
    """

    call: CapabilityCall
    result: Result
    status: TurnStatus
    arguments: str = ""
    duration_seconds: float = 0.0

    def to_turn_record(self, iteration: int) -> TurnRecord:
        """Freeze this invocation into the run's turn log."""
        if isinstance(self.result, ArtifactResult):
            decoded = self.result.artifact
        elif self.result.is_error:
            decoded = None
        else:
            decoded = decode_output(self.result.content)
        return TurnRecord(
            capability_name=self.call.name,
            raw_input=self.call.arguments,
            dispatched_input=self.arguments,
            raw_output=self.result.content,
            decoded_result=decoded,
            call_id=self.call.id,
            iteration=iteration,
            status=self.status,
            duration_seconds=self.duration_seconds,
        )


def reject_call(call: CapabilityCall, available: list[str]) -> Invocation:
    """Build the invocation for a call whose capability is not active."""
    error = CapabilityNotFoundError(capability=call.name, available=available)
    logger.info("Rejected call to inactive capability '%s'", call.name)
    return Invocation(
        call=call,
        result=Result.error(error.message, error),
        status=TurnStatus.REJECTED,
        arguments=call.arguments,
    )


def invoke_call(
    call: CapabilityCall,
    capabilities: Mapping[str, Capability],
    context: CallContext,
) -> Invocation:
    """
    Execute one call against the active capabilities.

    Unknown names are rejected, arguments are normalised, and any exception
    other than ReplanRequested becomes an ErrorResult.

    Raises:
        ReplanRequested: If the capability asks for a re-plan
    """
    capability = capabilities.get(call.name)
    if capability is None:
        return reject_call(call, list(capabilities))

    arguments, modified = normalize_arguments(call.arguments)
    if modified:
        logger.debug("Arguments for '%s' normalised to %s", call.name, arguments)

    start = time.monotonic()
    try:
        result = capability.call(arguments, context)
    except ReplanRequested as replan:
        if replan.capability_name is None:
            replan.capability_name = call.name
        raise
    except Exception as e:
        logger.warning("Capability '%s' raised: %s", call.name, e, exc_info=True)
        error = CapabilityExecutionError(capability=call.name, underlying_error=str(e))
        result = Result.error(error.message, e)
    duration = time.monotonic() - start

    if not isinstance(result, Result):
        error = CapabilityExecutionError(
            capability=call.name,
            underlying_error=f"returned {type(result).__name__} instead of a Result",
        )
        result = Result.error(error.message)

    status = TurnStatus.ERROR if result.is_error else TurnStatus.SUCCESS
    return Invocation(
        call=call,
        result=result,
        status=status,
        arguments=arguments,
        duration_seconds=duration,
    )
