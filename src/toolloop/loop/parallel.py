"""
Parallel batch executor.

Runs the capability calls of one model turn concurrently (fork-join) with a
per-call and a per-batch timeout. The executor always returns one Invocation
per call, in call order: real results for calls that finished in time and
timeout errors for the rest. A timed-out call may still finish later on its
worker thread; that late result is never read.
"""

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from toolloop.capabilities.base import CallContext, Capability, Result
from toolloop.capabilities.replan import ReplanRequested
from toolloop.errors import CapabilityTimeoutError
from toolloop.loop.invocation import Invocation, invoke_call, reject_call
from toolloop.schema import CapabilityCall, ParallelConfig, TurnStatus

logger = logging.getLogger(__name__)

ContextFactory = Callable[[CapabilityCall], CallContext]


class ParallelBatchExecutor:
    """
    Executes a batch of calls on a thread pool.

    Usage:
        executor = ParallelBatchExecutor(ParallelConfig(per_call_timeout_seconds=5))
        invocations = executor.execute(calls, active.as_dict(), make_context)
    """

    def __init__(self, config: ParallelConfig | None = None) -> None:
        self.config = config or ParallelConfig()

    def execute(
        self,
        calls: Sequence[CapabilityCall],
        capabilities: Mapping[str, Capability],
        context_factory: ContextFactory,
    ) -> list[Invocation]:
        """
        Run all calls and wait for each up to its deadline.

        Returns:
            One Invocation per call, in call order

        Raises:
            ReplanRequested: The first replan (in call order) among the calls
                that completed in time, raised after the whole batch is joined
        """
        if not calls:
            return []

        per_call = self.config.per_call_timeout_seconds
        batch = self.config.batch_timeout_seconds
        workers = self.config.max_workers or len(calls)

        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="toolloop-call")
        start = time.monotonic()
        batch_deadline = start + batch
        call_deadline = min(start + per_call, batch_deadline)

        futures: list[Future[Invocation] | None] = []
        for call in calls:
            if call.name not in capabilities:
                futures.append(None)
                continue
            futures.append(pool.submit(invoke_call, call, capabilities, context_factory(call)))

        invocations: list[Invocation] = []
        replan: ReplanRequested | None = None
        try:
            for call, future in zip(calls, futures):
                if future is None:
                    invocations.append(reject_call(call, list(capabilities)))
                    continue

                remaining = call_deadline - time.monotonic()
                try:
                    invocations.append(future.result(timeout=max(remaining, 0)))
                except FutureTimeoutError:
                    future.cancel()
                    limit = batch if per_call > batch else per_call
                    invocations.append(self._timeout(call, limit, time.monotonic() - start))
                except ReplanRequested as e:
                    if replan is None:
                        replan = e
                    invocations.append(
                        Invocation(call=call, result=Result.text(e.reason), status=TurnStatus.REPLAN)
                    )
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        if replan is not None:
            raise replan
        return invocations

    def _timeout(self, call: CapabilityCall, limit: float, elapsed: float) -> Invocation:
        error = CapabilityTimeoutError(capability=call.name, timeout_seconds=limit)
        logger.warning("Capability '%s' timed out after %gs", call.name, limit)
        return Invocation(
            call=call,
            result=Result.error(error.message, error),
            status=TurnStatus.TIMEOUT,
            arguments=call.arguments,
            duration_seconds=elapsed,
        )
