# core.py
"""
Host interface and file commands.

``HostView`` is everything the commands need from the program that displays
text: visible lines, the cursor, a file-open action, prompts and overlay
drawing. The commands (``gf``, ``gF``, ``next_file``, ``prev_file``,
``select_file``, ``select_file_line``) raise ``PathfinderError`` subclasses on
failure; ``run_command`` is the one place that turns those into a message.
"""

import abc
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .candidates import (
    Candidate,
    collect_candidates_in_range,
    iter_logical_lines,
    scan_line,
)
from .config import ScanConfig
from .errors import (
    InsufficientCountError,
    NoCandidateError,
    PathfinderError,
    UnresolvedError,
    UserCancelled,
)
from .validation import Resolver, collect_all, collect_nth
from .visual_select import OverlayItem, run_selection_loop

logger = logging.getLogger("pathfinder.core")

FORWARD = 1
BACKWARD = -1
# Upper bound on physical rows merged into the cursor's logical line.
MAX_WRAPPED_ROWS = 100


class HostView(abc.ABC):
    """
    The view a command operates on.

    Line numbers are 1-based; columns are 0-based character offsets.
    """

    @property
    @abc.abstractmethod
    def config(self) -> Dict[str, Any]:
        """Effective configuration for the current document."""

    @abc.abstractmethod
    def line_count(self) -> int:
        ...

    @abc.abstractmethod
    def get_lines(self, first: int, last: int) -> List[Tuple[int, str]]:
        """``(lnum, text)`` pairs for lines ``first..last`` inclusive."""

    @abc.abstractmethod
    def visible_range(self) -> Tuple[int, int]:
        """First and last line currently on screen."""

    @abc.abstractmethod
    def get_cursor_position(self) -> Tuple[int, int]:
        ...

    @abc.abstractmethod
    def set_cursor(self, lnum: int, col: int) -> None:
        ...

    @abc.abstractmethod
    def open_target(self, path: str, line: Optional[int] = None, col: Optional[int] = None) -> None:
        """Opens ``path``; ``line``/``col`` are 1-based when given."""

    @abc.abstractmethod
    def notify(self, message: str, level: str = "info") -> None:
        ...

    def get_visible_text_range(self) -> List[Tuple[int, str]]:
        first, last = self.visible_range()
        return self.get_lines(first, last)

    def wrap_width(self) -> Optional[int]:
        """Terminal width when the document is hard-wrapped terminal output."""
        return None

    def context_dir(self) -> Optional[str]:
        """Directory relative names are resolved against."""
        return None

    def prompt_choice(self, options: List[str], title: str) -> Optional[str]:
        return options[0] if options else None

    def render_overlay(self, items: List[OverlayItem]) -> None:
        pass

    def clear_overlays(self) -> None:
        pass

    def read_key(self) -> Optional[str]:
        return None

    def redispatch_key(self, key: str) -> None:
        pass

    def open_url(self, url: str) -> None:
        raise PathfinderError("Opening URLs is not supported")

    def show_text(self, title: str, text: str) -> None:
        """Shows a block of text, such as a page description."""
        self.notify(f"{title}: {text}")

    def run_async(self, coro) -> Any:
        """Runs a coroutine to completion and returns its result."""
        return asyncio.run(coro)


# ──────────────────────────── Command plumbing ────────────────────────────

def run_command(host: HostView, command: Callable[..., Any], *args, **kwargs) -> Any:
    """
    Runs a command and reports its failure, if any, exactly once.

    ``UserCancelled`` ends the command silently; every other
    ``PathfinderError`` becomes one ``host.notify`` call.
    """
    name = getattr(command, "__name__", repr(command))
    try:
        return command(host, *args, **kwargs)
    except UserCancelled:
        logger.debug("Command %s cancelled by user", name)
    except PathfinderError as exc:
        logger.info("Command %s: %s", name, exc.message)
        host.notify(exc.message)
    return None


def make_resolver(host: HostView) -> Resolver:
    return Resolver(host.config, context_dir=host.context_dir(), prompt_choice=host.prompt_choice)


def scan_range(host: HostView, direction: int, limit: int) -> Tuple[int, int]:
    """
    Lines to scan from the cursor in ``direction``.

    ``limit`` 0 scans to the end (or start) of the document, -1 to the edge
    of the visible window, and N scans N lines including the cursor line.
    """
    row, _col = host.get_cursor_position()
    total = host.line_count()
    if direction == FORWARD:
        if limit == 0:
            return row, total
        if limit == -1:
            return row, max(row, host.visible_range()[1])
        return row, min(total, row + limit - 1)
    if limit == 0:
        return 1, row
    if limit == -1:
        return min(row, host.visible_range()[0]), row
    return max(1, row - limit + 1), row


def _contains_cursor(cand: Candidate, cursor: Tuple[int, int]) -> bool:
    return cand.anchor <= cursor <= cand.last_position


def order_around_cursor(candidates: Sequence[Candidate], cursor: Tuple[int, int],
                        direction: int, include_current: bool = False) -> List[Candidate]:
    """Candidates strictly after (or before) the cursor, nearest first."""
    picked = []
    for cand in candidates:
        if _contains_cursor(cand, cursor):
            if include_current:
                picked.append(cand)
            continue
        if direction == FORWARD and cand.anchor > cursor:
            picked.append(cand)
        elif direction == BACKWARD and cand.last_position < cursor:
            picked.append(cand)
    picked.sort(key=lambda c: c.anchor, reverse=direction == BACKWARD)
    return picked


def choose_candidate(host: HostView, candidates: List[Candidate]) -> Optional[Candidate]:
    try:
        return run_selection_loop(
            candidates,
            host.config.get("selection_keys") or [],
            read_key=host.read_key,
            render=host.render_overlay,
            clear=host.clear_overlays,
            redispatch=host.redispatch_key,
        )
    except ValueError as exc:
        raise PathfinderError(str(exc)) from exc


# ──────────────────────────── Cursor candidate ────────────────────────────

def candidate_under_cursor(host: HostView) -> Optional[Candidate]:
    """
    The candidate the cursor is on.

    The cursor's logical line is scanned with word scanning forced on. A
    candidate whose file-name span holds the cursor wins, the innermost
    (latest starting) one when several do; failing that, the last candidate
    whose whole match, suffix included, holds the cursor.
    """
    row, col = host.get_cursor_position()
    wrap_width = host.wrap_width()
    last = min(host.line_count(), row + MAX_WRAPPED_ROWS) if wrap_width else row
    lines = host.get_lines(row, last)
    if not lines or not lines[0][1]:
        return None
    logical_line, text, physical = next(iter_logical_lines(lines, wrap_width))
    config = ScanConfig.from_config(host.config, force_words=True)
    on_line = scan_line(text, logical_line, config, physical_lines=physical)

    best: Optional[Candidate] = None
    best_start = -1
    for cand in on_line:
        for span in cand.target_span:
            if span.lnum == row and span.start_col <= col < span.end_col and span.start_col > best_start:
                best, best_start = cand, span.start_col
    if best is not None:
        return best

    for cand in on_line:
        if _contains_cursor(cand, (row, col)):
            best = cand
    return best


def _open_candidate(host: HostView, cand: Candidate, with_line: bool,
                    line_override: Optional[int] = None) -> None:
    line = col = None
    if with_line:
        line = line_override or cand.line_number or 1
        if host.config.get("use_column_numbers", True) and not line_override:
            col = cand.column_number
    logger.info("Opening %s (line=%s, col=%s)", cand.resolved_path, line, col)
    host.open_target(cand.resolved_path, line, col)


# ──────────────────────────── gf / gF ────────────────────────────

def _goto_file(host: HostView, with_line: bool, count: int) -> None:
    nextfile = host.config.get("gF_count_behaviour", "nextfile") == "nextfile"
    line_override = count if (with_line and nextfile and count > 0) else None
    index = 1 if (with_line and nextfile) else max(count, 1)
    resolver = make_resolver(host)

    if with_line or count <= 1:
        current = candidate_under_cursor(host)
        if current is not None:
            resolution = resolver.resolve(current.raw_text)
            if resolution.cancelled:
                raise UserCancelled()
            if resolution.found:
                current.resolved_path = resolution.path
                _open_candidate(host, current, with_line, line_override)
                return

    row, col = host.get_cursor_position()
    first, last = scan_range(host, FORWARD, host.config.get("forward_limit", 0))
    candidates = collect_candidates_in_range(
        host.get_lines(first, last),
        ScanConfig.from_config(host.config),
        wrap_width=host.wrap_width(),
        min_position=(row, col),
    )
    current_index = next((i for i, c in enumerate(candidates) if _contains_cursor(c, (row, col))), None)
    if current_index:
        candidates.insert(0, candidates.pop(current_index))

    result = collect_nth(candidates, index, resolver)
    if result.cancelled:
        raise UserCancelled()
    if len(result.valid) >= index:
        _open_candidate(host, result.valid[index - 1], with_line, line_override)
    elif not result.valid:
        raise NoCandidateError()
    else:
        raise InsufficientCountError(len(result.valid))


def gf(host: HostView, count: int = 0) -> None:
    """Open the file under (or after) the cursor; ``count`` picks the Nth file."""
    _goto_file(host, with_line=False, count=count)


def gF(host: HostView, count: int = 0) -> None:
    """
    Like ``gf`` but jumps to the line (and column) written after the name.

    With ``gF_count_behaviour = "nextfile"`` a count is the line to jump to;
    otherwise it picks the Nth file.
    """
    _goto_file(host, with_line=True, count=count)


# ──────────────────────────── next / prev ────────────────────────────

def _jump_file(host: HostView, direction: int, count: int) -> None:
    count = max(count, 1)
    cursor = host.get_cursor_position()
    first, last = scan_range(host, direction, host.config.get("forward_limit", 0))
    candidates = collect_candidates_in_range(
        host.get_lines(first, last),
        ScanConfig.from_config(host.config),
        wrap_width=host.wrap_width(),
    )
    ordered = order_around_cursor(candidates, cursor, direction)
    result = collect_nth(ordered, count, make_resolver(host), force_auto=True)
    if len(result.valid) < count:
        name = "Forward" if direction == FORWARD else "Backward"
        raise InsufficientCountError(
            len(result.valid),
            "%s file target not found (%d available)" % (name, len(result.valid)),
        )
    target = result.valid[count - 1]
    host.set_cursor(*target.anchor)


def next_file(host: HostView, count: int = 1) -> None:
    _jump_file(host, FORWARD, count)


def prev_file(host: HostView, count: int = 1) -> None:
    _jump_file(host, BACKWARD, count)


# ──────────────────────────── select ────────────────────────────

def _select_file(host: HostView, with_line: bool) -> None:
    candidates = collect_candidates_in_range(
        host.get_visible_text_range(),
        ScanConfig.from_config(host.config),
        wrap_width=host.wrap_width(),
    )
    valid = collect_all(candidates, make_resolver(host))
    if not valid:
        raise NoCandidateError()

    for cand in valid:
        if not with_line:
            cand.line_number_span = []
        if not (with_line and host.config.get("use_column_numbers", True)):
            cand.column_number_span = []

    chosen = choose_candidate(host, valid)
    if chosen is None:
        raise UserCancelled()

    resolution = make_resolver(host).resolve(chosen.raw_text)
    if resolution.cancelled:
        raise UserCancelled()
    if not resolution.found:
        raise UnresolvedError()
    chosen.resolved_path = resolution.path
    _open_candidate(host, chosen, with_line)


def select_file(host: HostView) -> None:
    """Label every resolvable file on screen and open the one picked."""
    _select_file(host, with_line=False)


def select_file_line(host: HostView) -> None:
    _select_file(host, with_line=True)


COMMANDS: Dict[str, Callable[..., Any]] = {
    "gf": gf,
    "gF": gF,
    "next_file": next_file,
    "prev_file": prev_file,
    "select_file": select_file,
    "select_file_line": select_file_line,
}
