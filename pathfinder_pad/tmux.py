# tmux.py
"""
Capture of the last-used tmux pane.

The captured rows keep tmux's hard wrapping, so every row as wide as the pane
is a continuation of the next one. The viewer opens the capture as a terminal
document and resolves names against the pane's working directory.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .errors import PathfinderError
from .utils import get_process_cwd, safe_run, strip_ansi

logger = logging.getLogger("pathfinder.tmux")


@dataclass
class TerminalCapture:
    lines: List[str]
    width: int
    cwd: Optional[str]
    pane_id: str

    @property
    def title(self) -> str:
        return f"tmux:{self.pane_id}"


def is_available() -> bool:
    """True inside a tmux session."""
    return bool(os.environ.get("TMUX"))


def tmux_display(target: str, fmt: str) -> Optional[str]:
    """``tmux display-message -p -t target fmt``; ``None`` on failure."""
    result = safe_run(["tmux", "display-message", "-p", "-t", target, fmt], timeout=5)
    if result.returncode != 0:
        logger.debug("tmux display-message %s %s failed: %s", target, fmt, result.stderr.strip())
        return None
    lines = result.stdout.splitlines()
    return lines[0].strip() if lines else None


def get_last_pane() -> Tuple[Optional[str], Optional[str]]:
    """
    The last active pane other than our own, and its working directory.

    The directory comes from ``#{pane_current_path}``, else from the pane
    process's cwd.
    """
    target = tmux_display("!", "#{pane_id}")
    if not target or target == os.environ.get("TMUX_PANE"):
        return None, None
    cwd = tmux_display(target, "#{pane_current_path}") or None
    if cwd is None:
        pid = tmux_display(target, "#{pane_pid}")
        cwd = get_process_cwd(int(pid)) if pid and pid.isdigit() else None
    return target, cwd


def _int_or(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def capture_pane(pane_id: str, min_rows: int = 0) -> TerminalCapture:
    """
    Captures the visible rows of ``pane_id``.

    When the pane is shorter than ``min_rows``, enough history above it is
    captured to fill ``min_rows``. ANSI sequences are removed.

    Raises:
        PathfinderError: When tmux fails or the pane is empty.
    """
    scroll_pos = _int_or(tmux_display(pane_id, "#{scroll_position}"), 0)
    height = _int_or(tmux_display(pane_id, "#{pane_height}"), 0)
    width = _int_or(tmux_display(pane_id, "#{pane_width}"), 0)
    if height <= 0 or width <= 0:
        raise PathfinderError("Unable to capture tmux pane")

    extra = max(0, min_rows - height)
    start = -(scroll_pos + extra)
    end = -(scroll_pos - height + 1)
    result = safe_run(
        ["tmux", "capture-pane", "-p", "-S", str(start), "-E", str(end), "-t", pane_id],
        timeout=5,
    )
    if result.returncode != 0:
        logger.warning("tmux capture-pane failed: %s", result.stderr.strip())
        raise PathfinderError("Unable to capture tmux pane")

    lines = [strip_ansi(line) for line in result.stdout.split("\n")]
    if lines and lines[-1] == "":
        lines.pop()
    if not any(lines):
        raise PathfinderError("tmux pane is empty")
    logger.debug("Captured %d rows (width %d) from pane %s", len(lines), width, pane_id)
    return TerminalCapture(lines=lines, width=width, cwd=None, pane_id=pane_id)


def capture_last_pane(min_rows: int = 0) -> TerminalCapture:
    """Captures the last-used pane together with its working directory."""
    if not is_available():
        raise PathfinderError("Not running inside tmux")
    pane_id, cwd = get_last_pane()
    if not pane_id:
        raise PathfinderError("No other tmux pane found")
    capture = capture_pane(pane_id, min_rows)
    capture.cwd = cwd
    return capture
