import os
from typing import Optional, Tuple

from .config import DEFAULT_RENDER_ENGINE, MAX_DUMP_BYTES, RENDER_ENGINES
from .parser import ParseFailure, parse_thread_dump
from .report import Result, process_report, summarize


# Tool logic served by __main__.py, kept free of MCP types


def _read_dump(path: str) -> Tuple[Optional[str], Optional[Result]]:
    if not isinstance(path, str) or not path:
        return None, Result.err("INVALID_PARAMS", "'path' must be a non-empty string")
    if not os.path.exists(path):
        return None, Result.err("INVALID_PARAMS", f"File not found: {path}")
    if os.path.isdir(path):
        return None, Result.err("INVALID_PARAMS", f"Path is a directory: {path}")
    if os.path.getsize(path) > MAX_DUMP_BYTES:
        return None, Result.err("INTERNAL_ERROR", f"File too large (>{MAX_DUMP_BYTES // (1024 * 1024)}MB)")

    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read(), None


def render_tool_call(
    path: str,
    include_isolated: bool = False,
    engine: str = DEFAULT_RENDER_ENGINE,
) -> Result:
    if not isinstance(include_isolated, bool):
        return Result.err("INVALID_PARAMS", "'include_isolated' must be a boolean")
    if engine not in RENDER_ENGINES:
        return Result.err("INVALID_PARAMS", "'engine' must be one of: " + "|".join(RENDER_ENGINES))

    try:
        text, error = _read_dump(path)
        if error is not None:
            return error
        result = process_report(text, include_isolated=include_isolated)
    except OSError as e:
        return Result.err("INTERNAL_ERROR", f"Cannot read {path}: {e}")

    if result.ok:
        result.text = f"// layout: {engine}\n{result.text}"
    return result


def deadlocks_tool_call(path: str) -> Result:
    try:
        text, error = _read_dump(path)
        if error is not None:
            return error
        report = parse_thread_dump(text)
    except OSError as e:
        return Result.err("INTERNAL_ERROR", f"Cannot read {path}: {e}")
    except ParseFailure as e:
        return Result.err("PARSE_ERROR", str(e))

    return Result.ok_json(summarize(report))


def engines_tool_call() -> Result:
    return Result.ok_json({"engines": list(RENDER_ENGINES), "default": DEFAULT_RENDER_ENGINE})
