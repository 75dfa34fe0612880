"""
Loop module for toolloop.

The loop engine drives model round-trips, executes the capability calls the
model requests, and applies injection policies to the active set between
turns.

Architecture:
    - LoopEngine: The orchestrator; execute() returns a LoopResult
    - ParallelBatchExecutor: Runs a multi-call turn concurrently with timeouts
    - LoopInspector / LoopTransformer: Lifecycle callbacks
"""

from toolloop.loop.callbacks import (
    AfterIterationContext,
    AfterModelCallContext,
    AfterTurnContext,
    BeforeModelCallContext,
    LoggingInspector,
    LoopInspector,
    LoopTransformer,
    SlidingWindowTransformer,
    ToolResultTruncatingTransformer,
)
from toolloop.loop.engine import LoopEngine, LoopResult
from toolloop.loop.invocation import Invocation, invoke_call
from toolloop.loop.parallel import ParallelBatchExecutor

__all__ = [
    "AfterIterationContext",
    "AfterModelCallContext",
    "AfterTurnContext",
    "BeforeModelCallContext",
    "Invocation",
    "LoggingInspector",
    "LoopEngine",
    "LoopInspector",
    "LoopResult",
    "LoopTransformer",
    "ParallelBatchExecutor",
    "SlidingWindowTransformer",
    "ToolResultTruncatingTransformer",
    "invoke_call",
]
