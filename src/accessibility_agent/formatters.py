"""CLI output formatting for check results.

Text output is one line per check plus an optional summary; JSON output is an
array of check objects.
"""

import json
from typing import Any

from rich.console import Console
from rich.markup import escape

from .checks.models import CheckResult

console = Console(highlight=False, soft_wrap=True)


def check_result_to_json(result: CheckResult) -> dict[str, Any]:
    """Convert a check result for JSON output.

    durationMs is rounded to 3 decimals; absent duration and empty data are omitted.
    """
    data: dict[str, Any] = {
        "check": result.check,
        "success": result.success,
        "message": result.message,
    }
    if result.duration_ms is not None:
        data["durationMs"] = round(result.duration_ms, 3)
    if result.data:
        data["data"] = dict(result.data)
    return data


def format_results_json(results: list[CheckResult]) -> str:
    return json.dumps([check_result_to_json(r) for r in results], indent=2)


def format_result_line(result: CheckResult) -> str:
    """Plain text line: status padded to 4, check, message, duration."""
    status = "OK" if result.success else "FAIL"
    suffix = f" ({result.duration_ms:.1f} ms)" if result.duration_ms is not None else ""
    return f"{status:<4} {result.check}: {result.message}{suffix}"


def format_summary(results: list[CheckResult]) -> str:
    succeeded = sum(1 for r in results if r.success)
    return f"Total checks: {len(results)}, success: {succeeded}, failed: {len(results) - succeeded}"


def print_results(
    results: list[CheckResult],
    json_output: bool = False,
    include_summary: bool = False,
    out: Console | None = None,
) -> None:
    """Print check results.

    Args:
        results: Check results in execution order
        json_output: Print JSON instead of text
        include_summary: Add a totals line when more than one check ran
        out: Console to print to (defaults to stdout)
    """
    out = out or console

    if json_output:
        out.print(format_results_json(results), markup=False)
        return

    for result in results:
        color = "green" if result.success else "red"
        line = escape(format_result_line(result))
        status, _, rest = line.partition(" ")
        out.print(f"[{color}]{status}[/{color}] {rest}")

    if include_summary and len(results) > 1:
        out.print(format_summary(results))
