"""Output renderer for ``lbmon check``: rich tables or JSON."""

import json
import logging
import sys
from io import StringIO

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from lbmon.models import PollOutcome, ProbeResult

logger = logging.getLogger(__name__)

# A hostname paired with its outcome, or None when resolution failed.
CheckResult = tuple[str, PollOutcome | None]


def render(
    checks: list[CheckResult],
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Dispatch output to the appropriate formatter.

    Args:
        checks: ``(hostname, outcome)`` pairs; outcome is None when the
            hostname could not be resolved.
        fmt: Output format, ``"table"`` or ``"json"``.
        file: Writable file object for output (default: ``sys.stdout``).
        width: Explicit console width (default: auto-detect).

    Raises:
        ValueError: If *fmt* is not ``"table"`` or ``"json"``.
    """
    if fmt == "table":
        render_table(checks, file=file, width=width)
    elif fmt == "json":
        render_json(checks, file=file)
    else:
        raise ValueError(f"Unknown output format: {fmt!r}")


# ---------------------------------------------------------------------------
# Table (rich) formatter
# ---------------------------------------------------------------------------


def render_table(
    checks: list[CheckResult],
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render one table per hostname, failures first, plus a summary line."""
    out = file or sys.stdout
    console = Console(file=out, highlight=False, width=width)

    for hostname, outcome in checks:
        if outcome is None:
            console.print(f"[bold red]{escape(hostname)}[/bold red]: resolution failed")
            continue

        table = Table(title=f"{escape(hostname)} — {outcome.total} address(es)")
        table.add_column("IP")
        table.add_column("Sources")
        table.add_column("Status")
        table.add_column("Upstream")
        table.add_column("Error")

        for result in sorted(outcome.results, key=lambda r: (r.ok, r.ip)):
            table.add_row(
                result.ip,
                ", ".join(result.sources) or "—",
                "ok" if result.ok else "[red]borked[/red]",
                _fmt_upstream(result.contained_upstream),
                _fmt(result.error),
            )

        console.print(table)
        console.print(
            f"  {outcome.borked} borked of {outcome.total}, "
            f"took {outcome.duration_seconds:.2f}s"
        )


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------


def render_json(checks: list[CheckResult], *, file: object | None = None) -> None:
    """Render *checks* as a JSON list with one object per hostname."""
    out = file or sys.stdout
    payload = [_check_to_dict(hostname, outcome) for hostname, outcome in checks]
    json.dump(payload, out, indent=2, default=str)
    out.write("\n")  # type: ignore[union-attr]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_to_dict(hostname: str, outcome: PollOutcome | None) -> dict:
    if outcome is None:
        return {"hostname": hostname, "error": "resolution failed"}
    return {
        "hostname": hostname,
        "timestamp": outcome.timestamp.isoformat(),
        "duration_seconds": outcome.duration_seconds,
        "total": outcome.total,
        "borked": outcome.borked,
        "results": [_result_to_dict(r) for r in outcome.results],
    }


def _result_to_dict(result: ProbeResult) -> dict:
    return {
        "ip": result.ip,
        "sources": result.sources,
        "ok": result.ok,
        "error": None if result.error is None else str(result.error),
        "contained_upstream": result.contained_upstream,
    }


def _fmt_upstream(contained: bool | None) -> str:
    if contained is None:
        return "—"
    return "contained" if contained else "not contained"


def _fmt(value: object) -> str:
    """Format a field value for table display.

    ``None`` becomes ``"—"``, everything else is stringified with rich
    markup escaped (socket errors look like ``[Errno 111] ...``).
    """
    if value is None:
        return "—"
    return escape(str(value))


def render_to_string(checks: list[CheckResult], fmt: str, *, width: int = 200) -> str:
    """Render to a string instead of stdout, for tests."""
    buf = StringIO()
    render(checks, fmt, file=buf, width=width)
    return buf.getvalue()
