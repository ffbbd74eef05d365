"""Protocol trace logging.

Verbose traces of model and tool traffic go to a separate file instead of
the application log, so they can be switched on for debugging without
flooding normal logs.

Path resolution:
- THUMBCRAFT_TRACE_LOG set to a path: traces go there.
- THUMBCRAFT_TRACE_LOG set to an empty string: tracing disabled.
- Unset: thumbcraft_trace.log in the system temp directory.

Usage:
    from thumbcraft.trace import trace

    trace("session", "SEND parts=3")
    trace("mcp", "attempt failed", include_traceback=True)
"""

import os
import tempfile
import traceback
from datetime import datetime
from pathlib import Path
from typing import List, Optional

TRACE_ENV_VAR = "THUMBCRAFT_TRACE_LOG"
DEFAULT_TRACE_FILENAME = "thumbcraft_trace.log"


def resolve_trace_path() -> Optional[Path]:
    """Trace file path, or None if tracing is disabled."""
    value = os.environ.get(TRACE_ENV_VAR)
    if value is None:
        return Path(tempfile.gettempdir()) / DEFAULT_TRACE_FILENAME
    return Path(value) if value else None


def _format_lines(component: str, msg: str, include_traceback: bool) -> List[str]:
    stamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    prefix = f"[{stamp}] [{component}]"
    lines = [f"{prefix} {msg}\n"]
    if include_traceback:
        tb = traceback.format_exc()
        if tb.strip() != "NoneType: None":
            lines.append(f"{prefix} Traceback:\n{tb}\n")
    return lines


def trace_write(
    component: str,
    msg: str,
    trace_path: Optional[Path],
    *,
    include_traceback: bool = False,
) -> None:
    """Append a trace entry to ``trace_path``; a None path is a no-op.

    I/O errors are ignored so tracing never breaks a run.
    """
    if trace_path is None:
        return
    lines = _format_lines(component, msg, include_traceback)
    try:
        trace_path.parent.mkdir(parents=True, exist_ok=True)
        with trace_path.open("a", encoding="utf-8") as f:
            f.writelines(lines)
    except OSError:
        pass


def trace(component: str, msg: str, *, include_traceback: bool = False) -> None:
    """Write a trace entry to the configured trace file."""
    trace_write(component, msg, resolve_trace_path(), include_traceback=include_traceback)
