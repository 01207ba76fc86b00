import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .config import DEADLOCK_FILL_COLOR, DEADLOCK_FONT_COLOR
from .graph import RenderAttribute, SparseGraph
from .model import Report
from .parser import ParseFailure, parse_thread_dump

logger = logging.getLogger(__name__)


@dataclass
class Result:
    ok: bool
    text: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @staticmethod
    def ok_text(text: str) -> "Result":
        return Result(ok=True, text=text)

    @staticmethod
    def ok_json(payload: Dict) -> "Result":
        return Result(ok=True, text=json.dumps(payload))

    @staticmethod
    def err(code: str, message: str) -> "Result":
        return Result(ok=False, error_code=code, error_message=message)


def deadlock_highlighter(report: Report) -> Callable[[str], List[RenderAttribute]]:
    """Attribute function marking every thread that takes part in a deadlock."""
    deadlocked = set(report.deadlocked_threads)
    highlight = [
        RenderAttribute("style", "filled"),
        RenderAttribute("fillcolor", DEADLOCK_FILL_COLOR),
        RenderAttribute("fontcolor", DEADLOCK_FONT_COLOR),
    ]

    def attributes(thread_name: str) -> List[RenderAttribute]:
        return list(highlight) if thread_name in deadlocked else []

    return attributes


def process_report(text: str, include_isolated: bool = False) -> Result:
    """Turn ``jstack [-l]`` output into the DOT text of its lock graph.

    On success ``result.text`` holds the DOT graph; on a rejected dump
    ``error_code`` is ``PARSE_ERROR`` and ``error_message`` tells where the
    parser stopped and what it expected there. Never raises.
    """
    if not isinstance(text, str):
        return Result.err("INVALID_PARAMS", "'text' must be a string")
    try:
        report = parse_thread_dump(text)
    except ParseFailure as e:
        logger.debug("Rejected thread dump: %s", e)
        return Result.err("PARSE_ERROR", str(e))

    graph = SparseGraph.from_report(
        report,
        include_isolated=bool(include_isolated),
        attribute_fn=deadlock_highlighter(report),
    )
    return Result.ok_text(graph.render())


def summarize(report: Report) -> Dict[str, Any]:
    counts = report.state_counts()
    deadlocked = report.deadlocked_threads
    summary = f"Analyzed {len(report.threads)} threads. " + (
        ("States: " + ", ".join(f"{k}={v}" for k, v in counts.items() if v))
        if report.threads
        else "No threads parsed."
    )
    if deadlocked:
        summary += f" Deadlocked threads: {', '.join(deadlocked)}."
    return {
        "summary": summary,
        "thread_count": len(report.threads),
        "counts": counts,
        "deadlocked_threads": deadlocked,
        "deadlocks": [
            {
                "blocked": e.blocked_thread,
                "lock": str(e.awaited_lock),
                "owner": e.owner_thread,
            }
            for e in report.deadlock_elements
        ],
    }
