"""
Loop engine for toolloop.

The engine drives a tool-calling conversation with a model. Each iteration
follows a send -> execute -> inject cycle:

1. Send the transcript and the active capabilities to the model
2. A plain text answer is decoded and ends the run
3. Otherwise every requested call is executed (sequentially, or as a
   parallel batch) and its result appended to the transcript
4. The injection policy runs once per TurnRecord against the same snapshot
5. The merged additions/removals are applied to the active set atomically

The run ends in one of three sibling outcomes: completed (the model
answered), max_iterations (the budget ran out) or replan_requested (a
capability raised ReplanRequested).

Design Principles:
    - Loop state lives only inside one execute() call
    - The active set changes between turns, never during one
    - Capability failures are shown to the model; policy, sender and
      storage failures end the run
"""

import logging
import time
import uuid
from collections.abc import Callable, Iterable, MutableMapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from toolloop.capabilities.artifacts import ArtifactCollector
from toolloop.capabilities.base import ArtifactResult, CallContext, Capability, Result
from toolloop.capabilities.registry import ActiveSet
from toolloop.capabilities.replan import ReplanRequested
from toolloop.errors import PolicyEvaluationError
from toolloop.loop.callbacks import (
    AfterIterationContext,
    AfterModelCallContext,
    AfterTurnContext,
    BeforeModelCallContext,
    LoopInspector,
    LoopTransformer,
)
from toolloop.loop.invocation import Invocation, invoke_call
from toolloop.loop.parallel import ParallelBatchExecutor
from toolloop.policy.base import InjectionContext, InjectionPolicy, InjectionResult
from toolloop.policy.chained import ChainedPolicy
from toolloop.schema import (
    CapabilityCall,
    LoopConfig,
    LoopMode,
    LoopStatus,
    Message,
    ModelResponse,
    ParallelConfig,
    TurnRecord,
    TurnStatus,
)
from toolloop.sender.base import ModelMessageSender
from toolloop.store.db import LoopStore

logger = logging.getLogger(__name__)


@dataclass
class LoopResult:
    """
    Outcome of one execute() call.

    Attributes:
        status: completed, max_iterations or replan_requested
        final_result: Decoded final answer (completed runs only)
        final_text: The model's final text before decoding
        replan_request: The replan signal (replan_requested runs only)
        injected_capabilities: Capabilities added during the run, in order
        removed_capabilities: Capabilities removed during the run, in order
        turn_log: One TurnRecord per capability invocation
        artifacts: Artifacts collected from ArtifactResults, in order
        transcript: Transcript at the end of the run
        active_capabilities: Active set at the end of the run
        iterations: Model round-trips performed
        run_id: Identifier of the run
        duration_seconds: Wall-clock duration of the run
    """

    status: LoopStatus
    run_id: str
    final_result: Any = None
    final_text: str | None = None
    replan_request: ReplanRequested | None = None
    injected_capabilities: list[Capability] = field(default_factory=list)
    removed_capabilities: list[Capability] = field(default_factory=list)
    turn_log: list[TurnRecord] = field(default_factory=list)
    artifacts: list[Any] = field(default_factory=list)
    transcript: list[Message] = field(default_factory=list)
    active_capabilities: list[Capability] = field(default_factory=list)
    iterations: int = 0
    duration_seconds: float = 0.0

    @property
    def completed(self) -> bool:
        return self.status is LoopStatus.COMPLETED

    @property
    def exhausted(self) -> bool:
        return self.status is LoopStatus.MAX_ITERATIONS

    @property
    def replanned(self) -> bool:
        return self.status is LoopStatus.REPLAN_REQUESTED

    @property
    def injected_names(self) -> list[str]:
        return [c.name for c in self.injected_capabilities]

    @property
    def removed_names(self) -> list[str]:
        return [c.name for c in self.removed_capabilities]

    @property
    def error_count(self) -> int:
        return sum(1 for t in self.turn_log if t.is_error)


@dataclass
class _RunState:
    """Mutable state owned by a single execute() call."""

    run_id: str
    active: ActiveSet
    transcript: list[Message]
    state: MutableMapping[str, Any] | None
    iteration_count: int = 0
    injected: list[Capability] = field(default_factory=list)
    removed: list[Capability] = field(default_factory=list)
    turn_log: list[TurnRecord] = field(default_factory=list)
    artifacts: ArtifactCollector = field(default_factory=ArtifactCollector)


class LoopEngine:
    """
    Orchestrates model round-trips, capability calls and active-set changes.

    Usage:
        engine = LoopEngine(OllamaMessageSender(model="qwen2.5:0.5b"))
        result = engine.execute(
            [Message.system("You are helpful."), Message.user("Find the rows")],
            [database_node],
        )
        if result.completed:
            print(result.final_result)

    Attributes:
        sender: Sends the transcript to the model
        policy: Default injection policy (disclosure unless overridden)
        config: Default loop configuration
        inspectors: Read-only lifecycle observers
        transformers: Lifecycle transformers, applied in order
        store: Optional run recorder
        executor: Optional parallel executor (built from config if omitted)
    """

    def __init__(
        self,
        sender: ModelMessageSender,
        policy: InjectionPolicy | None = None,
        config: LoopConfig | None = None,
        inspectors: Sequence[LoopInspector] = (),
        transformers: Sequence[LoopTransformer] = (),
        store: LoopStore | None = None,
        executor: ParallelBatchExecutor | None = None,
    ) -> None:
        self.sender = sender
        self.config = config or LoopConfig()
        self.policy = policy or ChainedPolicy.with_disclosure(
            include_context=self.config.disclosure_context
        )
        self.inspectors = tuple(inspectors)
        self.transformers = tuple(transformers)
        self.store = store
        self.executor = executor

    def execute(
        self,
        transcript: Sequence[Message],
        capabilities: Iterable[Capability],
        output_decoder: Callable[[str], Any] = str,
        *,
        policy: InjectionPolicy | None = None,
        max_iterations: int | None = None,
        parallel: ParallelConfig | bool | None = None,
        state: MutableMapping[str, Any] | None = None,
    ) -> LoopResult:
        """
        Run the loop until the model answers, the budget runs out, or a
        capability requests a re-plan.

        Args:
            transcript: Initial messages
            capabilities: Initial active set (names must be unique)
            output_decoder: Turns the model's final text into the result
            policy: Injection policy for this run (overrides the engine's)
            max_iterations: Round-trip budget for this run
            parallel: ParallelConfig or True for parallel mode, False for sequential
            state: External state made available to capabilities via CallContext

        Returns:
            LoopResult describing the outcome

        Raises:
            DuplicateCapabilityError: If the initial capabilities share a name
            PolicyEvaluationError: If the injection policy raises
            SenderError: If the model round-trip fails
        """
        config = self._effective_config(max_iterations, parallel)
        policy = policy or self.policy
        active = ActiveSet(capabilities)

        run_id = self.store.create_run(config) if self.store else str(uuid.uuid4())[:8]
        run = _RunState(run_id=run_id, active=active, transcript=list(transcript), state=state)

        logger.info(
            "Starting loop run %s (%s, max_iterations=%d) with capabilities %s",
            run_id,
            config.mode.value,
            config.max_iterations,
            active.names(),
        )

        start = time.monotonic()
        try:
            result = self._run(run, config, policy, output_decoder)
        except ReplanRequested:
            raise
        except Exception as e:
            if self.store:
                self.store.finish_run(
                    run_id,
                    status=LoopStatus.FAILED,
                    iterations=run.iteration_count,
                    turn_count=len(run.turn_log),
                    error_count=sum(1 for t in run.turn_log if t.is_error),
                    error=str(e),
                )
            raise

        result.duration_seconds = time.monotonic() - start
        if self.store:
            self.store.finish_run(
                run_id,
                status=result.status,
                iterations=result.iterations,
                turn_count=len(result.turn_log),
                error_count=result.error_count,
                final_text=result.final_text,
                error=result.replan_request.reason if result.replan_request else None,
            )
        logger.info(
            "Loop run %s finished: %s after %d iterations",
            run_id,
            result.status.value,
            result.iterations,
        )
        return result

    def _effective_config(
        self,
        max_iterations: int | None,
        parallel: ParallelConfig | bool | None,
    ) -> LoopConfig:
        changes: dict[str, Any] = {}
        if max_iterations is not None:
            changes["max_iterations"] = max_iterations
        if isinstance(parallel, ParallelConfig):
            changes["mode"] = LoopMode.PARALLEL
            changes["parallel"] = parallel.model_dump()
        elif parallel is True:
            changes["mode"] = LoopMode.PARALLEL
        elif parallel is False:
            changes["mode"] = LoopMode.SEQUENTIAL
        return self.config.with_overrides(**changes) if changes else self.config

    def _run(
        self,
        run: _RunState,
        config: LoopConfig,
        policy: InjectionPolicy,
        output_decoder: Callable[[str], Any],
    ) -> LoopResult:
        while run.iteration_count < config.max_iterations:
            iteration = run.iteration_count + 1

            response = self._send(run, iteration)
            run.iteration_count = iteration
            run.transcript.append(response.to_message())

            if not response.has_calls:
                text = response.text or ""
                return self._result(
                    run,
                    LoopStatus.COMPLETED,
                    final_result=output_decoder(text),
                    final_text=text,
                )

            invocations, replan = self._execute_calls(response.calls, run, config, iteration)
            turns = [self._record(run, invocation, iteration) for invocation in invocations]

            if replan is not None:
                logger.info(
                    "Capability '%s' requested a re-plan: %s",
                    replan.capability_name,
                    replan.reason,
                )
                return self._result(run, LoopStatus.REPLAN_REQUESTED, replan_request=replan)

            self._inject(run, policy, turns)
            self._after_iteration(run, response.calls, iteration)

        logger.warning(
            "Loop run %s exhausted its budget of %d iterations",
            run.run_id,
            config.max_iterations,
        )
        return self._result(run, LoopStatus.MAX_ITERATIONS)

    def _send(self, run: _RunState, iteration: int) -> ModelResponse:
        capabilities = run.active.snapshot()
        before = BeforeModelCallContext(tuple(run.transcript), iteration, capabilities)
        for inspector in self.inspectors:
            inspector.before_model_call(before)

        messages = list(run.transcript)
        for transformer in self.transformers:
            messages = transformer.transform_before_model_call(
                BeforeModelCallContext(tuple(messages), iteration, capabilities)
            )

        logger.debug(
            "Iteration %d: sending %d messages with capabilities %s",
            iteration,
            len(messages),
            [c.name for c in capabilities],
        )
        response = self.sender.send(messages, list(capabilities))

        after = AfterModelCallContext(tuple(run.transcript), iteration, response)
        for inspector in self.inspectors:
            inspector.after_model_call(after)
        return response

    def _execute_calls(
        self,
        calls: Sequence[CapabilityCall],
        run: _RunState,
        config: LoopConfig,
        iteration: int,
    ) -> tuple[list[Invocation], ReplanRequested | None]:
        capabilities = run.active.as_dict()

        def context_for(call: CapabilityCall) -> CallContext:
            return CallContext(
                run_id=run.run_id,
                iteration=iteration,
                call_id=call.id,
                state=run.state,
            )

        if config.is_parallel and len(calls) > 1:
            executor = self.executor or ParallelBatchExecutor(config.parallel)
            try:
                return executor.execute(calls, capabilities, context_for), None
            except ReplanRequested as replan:
                call = next((c for c in calls if c.name == replan.capability_name), calls[0])
                return [self._replan_invocation(call, replan)], replan

        invocations: list[Invocation] = []
        for call in calls:
            try:
                invocations.append(invoke_call(call, capabilities, context_for(call)))
            except ReplanRequested as replan:
                invocations.append(self._replan_invocation(call, replan))
                return invocations, replan
        return invocations, None

    @staticmethod
    def _replan_invocation(call: CapabilityCall, replan: ReplanRequested) -> Invocation:
        return Invocation(
            call=call,
            result=Result.text(f"Replan requested: {replan.reason}"),
            status=TurnStatus.REPLAN,
            arguments=call.arguments,
        )

    def _record(self, run: _RunState, invocation: Invocation, iteration: int) -> TurnRecord:
        turn = invocation.to_turn_record(iteration)
        run.turn_log.append(turn)
        if isinstance(invocation.result, ArtifactResult):
            run.artifacts.add(invocation.result.artifact)
        if self.store:
            self.store.record_turn(run.run_id, turn)

        if turn.status is TurnStatus.REPLAN:
            return turn

        context = AfterTurnContext(
            tuple(run.transcript),
            iteration,
            invocation.call,
            invocation.result,
            invocation.result.content,
            turn,
        )
        text = context.result_text
        for transformer in self.transformers:
            text = transformer.transform_tool_result(replace(context, result_text=text))
        run.transcript.append(Message.tool_result(invocation.call, text))

        for inspector in self.inspectors:
            inspector.after_turn(context)
        return turn

    def _inject(self, run: _RunState, policy: InjectionPolicy, turns: list[TurnRecord]) -> None:
        snapshot = run.active.snapshot()
        conversation = tuple(run.transcript)
        history = tuple(run.turn_log)

        base = len(history) - len(turns)
        results: list[InjectionResult] = []
        for offset, turn in enumerate(turns):
            context = InjectionContext(
                conversation_history=conversation,
                current_capabilities=snapshot,
                last_turn=turn,
                iteration_count=run.iteration_count,
                turn_history=history[: base + offset + 1],
            )
            try:
                results.append(policy.evaluate(context))
            except ReplanRequested:
                raise
            except Exception as e:
                raise PolicyEvaluationError(policy=policy.name, underlying_error=str(e)) from e

        merged = InjectionResult.merge_all(results)
        if not merged.has_changes:
            return

        added, removed = run.active.apply(merged.to_add, merged.to_remove)
        run.injected.extend(added)
        run.removed.extend(removed)
        if added or removed:
            logger.info(
                "Active set changed: +%s -%s",
                [c.name for c in added],
                [c.name for c in removed],
            )
            if self.store:
                self.store.record_changes(run.run_id, run.iteration_count, added, removed)

    def _after_iteration(
        self,
        run: _RunState,
        calls: Sequence[CapabilityCall],
        iteration: int,
    ) -> None:
        names = tuple(run.active.names())
        context = AfterIterationContext(tuple(run.transcript), iteration, tuple(calls), names)
        for inspector in self.inspectors:
            inspector.after_iteration(context)

        transcript = list(run.transcript)
        for transformer in self.transformers:
            transcript = transformer.transform_after_iteration(
                AfterIterationContext(tuple(transcript), iteration, tuple(calls), names)
            )
        run.transcript = transcript

    def _result(self, run: _RunState, status: LoopStatus, **kwargs: Any) -> LoopResult:
        return LoopResult(
            status=status,
            run_id=run.run_id,
            injected_capabilities=list(run.injected),
            removed_capabilities=list(run.removed),
            turn_log=list(run.turn_log),
            artifacts=run.artifacts.snapshot(),
            transcript=list(run.transcript),
            active_capabilities=list(run.active.snapshot()),
            iterations=run.iteration_count,
            **kwargs,
        )
