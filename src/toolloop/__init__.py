"""
toolloop - Execution engine for tool-calling conversations with language models.

toolloop drives the loop between a model and the capabilities it can call:
- A dynamic active set, changed between turns by pluggable injection policies
- Disclosure nodes that fold large catalogs and unfold one level per call
- A replan signal that aborts a run so the caller can re-plan
- Optional parallel execution of multi-call turns with timeouts

Example usage:
    $ toolloop run "What is 2 + 3?" --model qwen2.5:0.5b
    $ toolloop runs
    $ toolloop report <run_id>
"""

__version__ = "0.1.0"
__author__ = "toolloop Contributors"

__all__ = [
    "__version__",
    "__author__",
]
