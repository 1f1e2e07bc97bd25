# visual_select.py
"""
Label Assigner and Selection Loop.

Every live candidate receives a short label made of the configured
selection keys. The user types labels one key at a time; the live set is
narrowed to the candidates whose label starts with what has been typed,
until exactly one fully typed label remains (selected) or nothing matches
(cancelled).

All overlay state belongs to one ``run_selection_loop`` call: it is built
from the candidates and the typed prefix on every keystroke, handed to the
host's ``render`` primitive and cleared when the loop ends, however it ends.
"""

import curses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .candidates import Candidate, Span

logger = logging.getLogger("pathfinder.visual_select")
KEY_LOGGER = logging.getLogger("pathfinder.keyevents")

BACKSPACE_KEYS = frozenset({"backspace", "\b", "\x7f"})


# ==================== Label Assigner ====================

def label_capacity(key_count: int, length: int) -> int:
    """Number of ``length``-long strings over ``key_count`` keys with no two
    adjacent equal characters."""
    if length <= 0:
        return 0
    return key_count * (key_count - 1) ** (length - 1)


def assign_labels(candidates: Sequence[Candidate], keys: Sequence[str]) -> int:
    """
    Assigns a unique, fixed-length label to every candidate.

    The label length is the smallest ``L`` for which
    ``k * (k - 1) ** (L - 1)`` labels exist, ``k`` being the number of keys.
    Labels are enumerated depth first in key order, skipping any string in
    which a key directly follows itself, and handed out in candidate order.

    Args:
        candidates (Sequence[Candidate]): Candidates to label (mutated).
        keys (Sequence[str]): Selection keys, in preference order.

    Returns:
        int: The label length used (0 when there are no candidates).

    Raises:
        ValueError: If fewer than two keys are given, or only two keys are
            given for more than two candidates (two keys can only spell
            ``abab...`` and ``baba...``).

    Example:
        >>> cands = [c1, c2, c3, c4]
        >>> assign_labels(cands, ["a", "s", "d"])
        2
        >>> [c.label for c in cands]
        ['as', 'ad', 'sa', 'sd']
    """
    n = len(candidates)
    if n == 0:
        return 0
    keys = list(dict.fromkeys(keys))
    if len(keys) < 2:
        raise ValueError("At least two selection_keys must be specified")
    if len(keys) == 2 and n > 2:
        raise ValueError("Two selection_keys can label at most two targets")

    length = 1
    while label_capacity(len(keys), length) < n:
        length += 1

    labels: List[str] = []

    def dfs(prefix: str) -> None:
        if len(labels) == n:
            return
        if len(prefix) == length:
            labels.append(prefix)
            return
        for key in keys:
            if prefix and prefix[-1] == key:
                continue
            dfs(prefix + key)
            if len(labels) == n:
                return

    dfs("")
    for cand, label in zip(candidates, labels):
        cand.label = label
    return length


def get_matching_candidates(candidates: Sequence[Candidate], prefix: str) -> List[Candidate]:
    return [c for c in candidates if c.label is not None and c.label.startswith(prefix)]


# ==================== Overlay ====================

@dataclass(frozen=True, slots=True)
class OverlayItem:
    """One highlighted span, optionally carrying label text drawn over it."""

    span: Span
    style: str
    virtual_text: Tuple[Tuple[str, str], ...] = ()


def build_overlay(candidates: Sequence[Candidate], prefix: str) -> List[OverlayItem]:
    """
    Overlay items for the current prefix.

    Matching candidates get the ``candidate`` style, their line and column
    numbers the ``line_number``/``column_number`` styles, and the untyped
    rest of their label is drawn over the first target span (next key in
    ``next_key``, the remainder in ``future_keys``). Non-matching candidates
    are drawn in ``dim``.
    """
    items: List[OverlayItem] = []
    for cand in candidates:
        label = cand.label or ""
        is_match = label.startswith(prefix)
        leftover = label[len(prefix):] if is_match else ""
        virtual: List[Tuple[str, str]] = []
        if leftover:
            virtual.append((leftover[0], "next_key"))
            if len(leftover) > 1:
                virtual.append((leftover[1:], "future_keys"))
        style = "candidate" if is_match else "dim"
        for index, span in enumerate(cand.target_span):
            items.append(OverlayItem(span, style, tuple(virtual) if index == 0 else ()))
        if is_match:
            items.extend(OverlayItem(span, "line_number") for span in cand.line_number_span)
            items.extend(OverlayItem(span, "column_number") for span in cand.column_number_span)
    return items


# ==================== Selection Loop ====================

class SelectionState(Enum):
    RUNNING = "running"
    SELECTED = "selected"
    CANCELLED = "cancelled"


class SelectionLoop:
    """Keystroke-driven narrowing over labelled candidates."""

    def __init__(self, candidates: Sequence[Candidate]):
        self.candidates = list(candidates)
        self.prefix = ""
        self.state = SelectionState.RUNNING
        self.selected: Optional[Candidate] = None

    @property
    def live(self) -> List[Candidate]:
        return get_matching_candidates(self.candidates, self.prefix)

    def feed(self, key: str) -> SelectionState:
        """
        Advances the state machine by one keystroke.

        Backspace removes the last typed key, or cancels when nothing has been
        typed. Any other key is appended to the prefix; no match cancels, and a
        single match whose full label has been typed is selected.
        """
        if self.state is not SelectionState.RUNNING:
            return self.state
        if key in BACKSPACE_KEYS:
            if self.prefix:
                self.prefix = self.prefix[:-1]
            else:
                self.state = SelectionState.CANCELLED
            return self.state

        self.prefix += key
        matches = self.live
        if not matches:
            self.state = SelectionState.CANCELLED
        elif len(matches) == 1 and len(self.prefix) == len(matches[0].label or ""):
            self.selected = matches[0]
            self.state = SelectionState.SELECTED
        return self.state


def run_selection_loop(
        candidates: Sequence[Candidate],
        keys: Sequence[str],
        read_key: Callable[[], Optional[str]],
        render: Callable[[List[OverlayItem]], None],
        clear: Callable[[], None],
        redispatch: Optional[Callable[[str], None]] = None,
) -> Optional[Candidate]:
    """
    Labels ``candidates`` and lets the user pick one.

    Blocks on ``read_key`` between keystrokes. The overlay is cleared before
    returning in every case, including when ``render`` or ``read_key``
    raises.

    Args:
        candidates: Candidates to choose from.
        keys: Selection keys used for labels.
        read_key: Blocking key source; ``None`` means the input ended.
        render: Draws the overlay items (the host dims everything else).
        clear: Removes every overlay item.
        redispatch: Receives a key that ended the loop without matching any
            label, so a command key still reaches the host.

    Returns:
        Optional[Candidate]: The chosen candidate, or ``None`` when cancelled.
    """
    if not candidates:
        return None
    assign_labels(candidates, keys)
    loop = SelectionLoop(candidates)
    try:
        render(build_overlay(loop.candidates, loop.prefix))
        while loop.state is SelectionState.RUNNING:
            key = read_key()
            KEY_LOGGER.debug("selection key=%r prefix=%r", key, loop.prefix)
            if key is None:
                loop.state = SelectionState.CANCELLED
                break
            state = loop.feed(key)
            if state is SelectionState.RUNNING:
                render(build_overlay(loop.candidates, loop.prefix))
            elif state is SelectionState.CANCELLED and key not in BACKSPACE_KEYS and redispatch:
                redispatch(key)
    finally:
        clear()
        for cand in candidates:
            cand.label = None
    if loop.selected is not None:
        logger.debug("Selected %r", loop.selected.raw_text)
    return loop.selected


# ==================== Curses renderer ====================

class OverlayRenderer:
    """
    Draws overlay items onto a curses window.

    Args:
        stdscr: The curses window.
        colors (Dict[str, int]): Curses attributes by style name
            (``candidate``, ``dim``, ``line_number``, ``column_number``,
            ``next_key``, ``future_keys``).
        to_screen (Callable): Maps a physical ``(lnum, col)`` to a screen
            ``(row, x)``, or ``None`` when it is not visible.
    """

    def __init__(self, stdscr: Any, colors: Dict[str, int],
                 to_screen: Callable[[int, int], Optional[Tuple[int, int]]]):
        self.stdscr = stdscr
        self.colors = colors
        self.to_screen = to_screen

    def dim_rows(self, rows: range, x_start: int) -> None:
        attr = self.colors.get("dim", curses.A_DIM)
        _h, width = self.stdscr.getmaxyx()
        for row in rows:
            try:
                self.stdscr.chgat(row, x_start, max(0, width - x_start - 1), attr)
            except curses.error as e:
                logger.debug(f"OverlayRenderer: chgat failed on row {row}: {e}")

    def draw(self, items: Sequence[OverlayItem]) -> None:
        _h, width = self.stdscr.getmaxyx()
        for item in items:
            start = self.to_screen(item.span.lnum, item.span.start_col)
            end = self.to_screen(item.span.lnum, item.span.end_col)
            if start is None:
                continue
            row, x = start
            cells = (end[1] - x) if end is not None and end[0] == row else width - x
            attr = self.colors.get(item.style, curses.A_NORMAL)
            try:
                if cells > 0:
                    self.stdscr.chgat(row, x, min(cells, width - x - 1), attr)
                for text, style in item.virtual_text:
                    if x >= width - 1:
                        break
                    text = text[:width - x - 1]
                    self.stdscr.addstr(row, x, text, self.colors.get(style, curses.A_BOLD))
                    x += len(text)
            except curses.error as e:
                logger.debug(f"OverlayRenderer: failed drawing {item}: {e}")
