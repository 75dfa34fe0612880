"""
Reporting module for toolloop.

Renders recorded runs for humans: a timeline of capability invocations with
status icons, the active-set changes between iterations, and summary
statistics.

Example:
    from toolloop.report import generate_console_report

    generate_console_report("abc123", "toolloop.db")
"""

from toolloop.report.console import generate_console_report

__all__ = [
    "generate_console_report",
]
