"""Trace-file logging for stream coordination.

Chunk handling is too chatty for the regular log, so the controller writes
one line per chunk transition to a dedicated trace file instead.

Environment:
    AGENT_STREAM_TRACE_LOG:
    - Not set: writes to {tempdir}/agent_stream_trace.log
    - Empty string: tracing disabled
    - Path: writes to the given file

Usage:
    from agent_stream.trace import trace

    trace("StreamController", "tool_use id=read-1 buffered")
    trace("TurnRunner", "source raised", include_traceback=True)
"""

import os
import tempfile
import traceback as _traceback_module
from datetime import datetime
from typing import Optional, Set

TRACE_ENV_VAR = "AGENT_STREAM_TRACE_LOG"
DEFAULT_TRACE_FILENAME = "agent_stream_trace.log"

# Directories already created during this process.
_ensured_dirs: Set[str] = set()


def _ensure_parent_dirs(file_path: str) -> None:
    """Create parent directories for a file path if they don't exist."""
    parent = os.path.dirname(os.path.abspath(file_path))
    if parent not in _ensured_dirs:
        os.makedirs(parent, exist_ok=True)
        _ensured_dirs.add(parent)


def resolve_trace_path(
    env_var: str = TRACE_ENV_VAR,
    default_filename: str = DEFAULT_TRACE_FILENAME,
) -> Optional[str]:
    """Resolve the trace file path from the environment.

    Args:
        env_var: Environment variable holding the path.
        default_filename: Fallback filename in the temp directory.

    Returns:
        Resolved file path, or None if tracing is explicitly disabled.
    """
    value = os.environ.get(env_var)
    if value == "":
        return None
    if value:
        return value
    return os.path.join(tempfile.gettempdir(), default_filename)


def trace_write(
    component: str,
    msg: str,
    trace_path: Optional[str],
    *,
    include_traceback: bool = False,
) -> None:
    """Append a trace line to ``trace_path``.

    Never raises; a broken trace file must not interrupt a turn.

    Args:
        component: Component name for the line prefix.
        msg: Message to write.
        trace_path: File to append to. None disables the write.
        include_traceback: Append the traceback of the exception being handled.
    """
    if not trace_path:
        return
    try:
        _ensure_parent_dirs(trace_path)
        with open(trace_path, "a", encoding="utf-8") as f:
            ts = datetime.now().strftime("%H:%M:%S.%f")[:-3]
            f.write(f"[{ts}] [{component}] {msg}\n")
            if include_traceback:
                tb = _traceback_module.format_exc()
                if tb and tb.strip() != "NoneType: None":
                    f.write(f"[{ts}] [{component}] Traceback:\n{tb}\n")
    except OSError:
        pass


def trace(component: str, msg: str, *, include_traceback: bool = False) -> None:
    """Write a trace line to the path resolved from ``AGENT_STREAM_TRACE_LOG``."""
    trace_write(component, msg, resolve_trace_path(), include_traceback=include_traceback)


__all__ = [
    "DEFAULT_TRACE_FILENAME",
    "TRACE_ENV_VAR",
    "resolve_trace_path",
    "trace",
    "trace_write",
]
