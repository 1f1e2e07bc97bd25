#!/usr/bin/env python3
# pathfinder.py
"""
Pathfinder-Pad viewer.

A read-only curses viewer that hosts the file and URL commands: it opens a
file (or a capture of the last-used tmux pane), draws it with a line-number
gutter and a status bar, and binds keys to ``gf``, ``gF``, the jump commands
and the labelled selections. Opened targets are pushed onto a back-stack that
``ctrl+o`` / backspace walks back through.
"""

import argparse
import asyncio
import collections
import concurrent.futures
import curses
import locale
import logging
import logging.handlers
import os
import queue
import signal
import sys
import tempfile
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, Union

import chardet
from wcwidth import wcswidth

from . import core, tmux, url
from .config import detect_filetype, get_config_for_filetype, load_config
from .errors import PathfinderError
from .ui_panels import prompt_choice, show_text
from .utils import char_width, display_width
from .visual_select import OverlayItem, OverlayRenderer

LOG_DIR = os.path.join(os.path.expanduser("~"), ".cache", "pathfinder-pad")


# ──────────────────────────── Logging ────────────────────────────

def _rotating_handler(filename: str, max_bytes: int, backups: int) -> logging.Handler:
    log_dir = os.path.dirname(filename)
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir)
    return logging.handlers.RotatingFileHandler(
        filename, maxBytes=max_bytes, backupCount=backups, encoding="utf-8"
    )


def setup_logging(config: Optional[Dict[str, Any]] = None, log_dir: Optional[str] = None) -> None:
    """
    Configures application-wide logging handlers and log levels.

    Up to four independent handlers are installed:

    1. **File handler** – rotating *pathfinder.log* (2 MB × 5) from the
       configured ``file_level`` (default **DEBUG**) upward.
    2. **Console handler** – optional ``stderr`` output at ``console_level``
       (default **WARNING**). Off by default since curses owns the terminal.
    3. **Error-file handler** – optional rotating *error.log* holding only
       **ERROR** and **CRITICAL** records.
    4. **Key-event handler** – rotating *keytrace.log* attached to the
       ``pathfinder.keyevents`` logger when ``PATHFINDER_KEYTRACE`` is set to
       ``1/true/yes``.

    Existing handlers on the root logger are replaced, so calling this twice
    (e.g. from tests) does not duplicate records.

    Args:
        config (dict | None): Application configuration; only the
            ``["logging"]`` section is read (``file_level``,
            ``console_level``, ``log_to_console``, ``separate_error_log``).
        log_dir (str | None): Directory for the log files; defaults to
            ``~/.cache/pathfinder-pad``.

    Notes:
        The function never raises. When a log file cannot be created the
        error is printed to *stderr* and the system temp directory is used.

    Example:
        >>> setup_logging({"logging": {"file_level": "INFO", "separate_error_log": True}})
    """
    if config is None:
        config = {}
    logging_config = config.get("logging", {})
    log_dir = log_dir or LOG_DIR
    log_file_level = getattr(logging, str(logging_config.get("file_level", "DEBUG")).upper(), logging.DEBUG)

    file_formatter = logging.Formatter(
        "%(asctime)s - %(levelname)-8s - %(name)-15s - %(message)s (%(filename)s:%(lineno)d)"
    )

    log_filename = os.path.join(log_dir, "pathfinder.log")
    file_handler = None
    try:
        file_handler = _rotating_handler(log_filename, 2 * 1024 * 1024, 5)
    except OSError as e_fh:
        print(f"Error setting up file logger for '{log_filename}': {e_fh}.", file=sys.stderr)
        log_dir = tempfile.gettempdir()
        log_filename = os.path.join(log_dir, "pathfinder.log")
        print(f"Logging to temporary file: '{log_filename}'", file=sys.stderr)
        try:
            file_handler = _rotating_handler(log_filename, 2 * 1024 * 1024, 5)
        except OSError as e_tmp:
            print(f"File logging disabled: {e_tmp}", file=sys.stderr)
    if file_handler:
        file_handler.setFormatter(file_formatter)
        file_handler.setLevel(log_file_level)

    # --- Console Handler ---
    console_handler = None
    if logging_config.get("log_to_console", False):
        console_level = getattr(logging, str(logging_config.get("console_level", "WARNING")).upper(),
                                logging.WARNING)
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter("%(levelname)-8s - %(name)-12s - %(message)s"))
        console_handler.setLevel(console_level)

    # --- Optional Separate Error Log File ---
    error_file_handler = None
    if logging_config.get("separate_error_log", False):
        error_log_filename = os.path.join(log_dir, "error.log")
        try:
            error_file_handler = _rotating_handler(error_log_filename, 1 * 1024 * 1024, 3)
            error_file_handler.setFormatter(file_formatter)
            error_file_handler.setLevel(logging.ERROR)
        except OSError as e_efh:
            print(f"Error setting up separate error log '{error_log_filename}': {e_efh}.", file=sys.stderr)

    root_logger = logging.getLogger()
    root_logger.handlers = []
    for handler in (file_handler, console_handler, error_file_handler):
        if handler:
            root_logger.addHandler(handler)
    root_logger.setLevel(log_file_level)

    # --- Key Event Logger ---
    key_event_logger = logging.getLogger("pathfinder.keyevents")
    key_event_logger.propagate = False
    key_event_logger.setLevel(logging.DEBUG)
    key_event_logger.handlers = []
    key_event_logger.disabled = False

    if os.environ.get("PATHFINDER_KEYTRACE", "").lower() in {"1", "true", "yes"}:
        key_trace_filename = os.path.join(log_dir, "keytrace.log")
        try:
            key_trace_handler = _rotating_handler(key_trace_filename, 1 * 1024 * 1024, 3)
            key_trace_handler.setFormatter(logging.Formatter("%(asctime)s - %(message)s"))
            key_event_logger.addHandler(key_trace_handler)
            logging.info("Key event tracing enabled, logging to '%s'.", key_trace_filename)
        except OSError as e_keytrace:
            logging.error(f"Failed to set up key trace logging: {e_keytrace}", exc_info=True)
            key_event_logger.disabled = True
    else:
        key_event_logger.addHandler(logging.NullHandler())
        key_event_logger.disabled = True

    logging.info("Logging setup complete. Root logger level: %s.", logging.getLevelName(root_logger.level))
    if file_handler:
        logging.info(f"File logging to '{log_filename}' at level: {logging.getLevelName(file_handler.level)}.")


# ──────────────────────────── Global loggers ────────────────────────────
logger = logging.getLogger("pathfinder")
KEY_LOGGER = logging.getLogger("pathfinder.keyevents")


# ──────────────────────────── Colors ────────────────────────────

def hex_to_xterm(hex_color: str) -> int:
    """Converts a ``#RRGGBB`` string to the nearest xterm-256 color index."""
    hex_color = hex_color.lstrip("#")
    if len(hex_color) != 6:
        return 255
    try:
        r, g, b = int(hex_color[0:2], 16), int(hex_color[2:4], 16), int(hex_color[4:6], 16)
    except ValueError:
        return 255

    if r == g == b:
        if r < 8:
            return 16
        if r > 248:
            return 231
        return round(((r - 8) / 247) * 24) + 232

    return 16 + 36 * round(r / 255 * 5) + 6 * round(g / 255 * 5) + round(b / 255 * 5)


# Attribute added on top of each style's color.
STYLE_ATTRIBUTES = {
    "candidate": curses.A_BOLD,
    "line_number": curses.A_BOLD,
    "column_number": curses.A_BOLD,
    "dim": curses.A_DIM,
    "next_key": curses.A_BOLD | curses.A_UNDERLINE,
    "future_keys": curses.A_NORMAL,
    "status": curses.A_REVERSE,
    "gutter": curses.A_NORMAL,
    "default": curses.A_NORMAL,
}


def fallback_colors() -> Dict[str, int]:
    """Monochrome attributes for terminals without 256 colors."""
    colors = dict(STYLE_ATTRIBUTES)
    colors["candidate"] = curses.A_BOLD | curses.A_UNDERLINE
    colors["next_key"] = curses.A_REVERSE | curses.A_BOLD
    colors["future_keys"] = curses.A_REVERSE
    return colors


# ──────────────────────────── Text helpers ────────────────────────────

def cells_before(text: str, col: int, tab_size: int = 4) -> int:
    """Screen cells taken by ``text[:col]`` with tabs expanded."""
    x = 0
    for ch in text[:col]:
        x += tab_size - (x % tab_size) if ch == "\t" else char_width(ch)
    return x


def expand_tabs(text: str, tab_size: int = 4) -> str:
    out: List[str] = []
    x = 0
    for ch in text:
        if ch == "\t":
            pad = tab_size - (x % tab_size)
            out.append(" " * pad)
            x += pad
        else:
            out.append(ch if ch.isprintable() else "?")
            x += char_width(ch)
    return "".join(out)


def safe_cut_left(s: str, cells_to_skip: int) -> str:
    """
    Drops ``cells_to_skip`` screen cells from the left of ``s``.

    A double-width character straddling the boundary is dropped whole.
    """
    skipped = 0
    for index, ch in enumerate(s):
        if skipped >= cells_to_skip:
            return s[index:]
        skipped += char_width(ch)
    return ""


def fit_cells(s: str, cells: int) -> str:
    """Longest prefix of ``s`` that fits in ``cells`` screen cells."""
    if cells <= 0:
        return ""
    if 0 <= wcswidth(s) <= cells:
        return s
    used = 0
    for index, ch in enumerate(s):
        used += char_width(ch)
        if used > cells:
            return s[:index]
    return s


def read_text_file(path: str) -> Tuple[List[str], str]:
    """
    Reads a text file, guessing its encoding with chardet.

    The chardet guess is used when its confidence is at least 0.75, then
    UTF-8 is tried, and latin-1 (which always decodes) is the last resort.

    Returns:
        ``(lines, encoding)``; an empty file gives ``[""]``.

    Raises:
        PathfinderError: When the path is a directory or cannot be read.
    """
    if os.path.isdir(path):
        raise PathfinderError(f"'{os.path.basename(path)}' is a directory")
    try:
        with open(path, "rb") as f_binary:
            raw = f_binary.read()
    except OSError as e:
        logger.warning("Cannot read %s: %s", path, e)
        raise PathfinderError(f"Cannot open '{os.path.basename(path)}': {e.strerror or e}") from e

    if not raw:
        return [""], "utf-8"

    detected = chardet.detect(raw[:20 * 1024])
    guess, confidence = detected.get("encoding"), detected.get("confidence") or 0.0
    logger.debug(f"Chardet detected encoding '{guess}' with confidence {confidence:.2f} for '{path}'.")

    encodings = ([guess] if guess and confidence >= 0.75 else []) + ["utf-8", "latin-1"]
    for encoding in encodings:
        try:
            text = raw.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue
        return text.splitlines() or [""], encoding
    return raw.decode("utf-8", errors="replace").splitlines() or [""], "utf-8"


# ==================== Document ====================

@dataclass
class Document:
    """One open buffer: a file, or a captured terminal pane."""

    lines: List[str]
    config: Dict[str, Any]
    title: str
    filename: Optional[str] = None
    filetype: str = "text"
    encoding: str = "utf-8"
    wrap_width: Optional[int] = None
    context_dir: Optional[str] = None
    row: int = 1
    col: int = 0
    scroll_top: int = 0
    scroll_left: int = 0

    @classmethod
    def from_file(cls, path: str, base_config: Dict[str, Any]) -> "Document":
        path = os.path.abspath(path)
        lines, encoding = read_text_file(path)
        filetype = detect_filetype(path)
        logger.info("Opened %s (%d lines, %s, filetype %s)", path, len(lines), encoding, filetype)
        return cls(
            lines=lines,
            config=get_config_for_filetype(base_config, filetype),
            title=os.path.basename(path),
            filename=path,
            filetype=filetype,
            encoding=encoding,
            context_dir=os.path.dirname(path),
        )

    @classmethod
    def from_capture(cls, capture: tmux.TerminalCapture, base_config: Dict[str, Any]) -> "Document":
        lines = capture.lines or [""]
        return cls(
            lines=lines,
            config=get_config_for_filetype(base_config, "terminal"),
            title=capture.title,
            filetype="terminal",
            wrap_width=capture.width,
            context_dir=capture.cwd,
            row=len(lines),
        )

    def is_same_file(self, path: str) -> bool:
        if not self.filename:
            return False
        return os.path.normcase(os.path.abspath(path)) == os.path.normcase(self.filename)


# ==================== AsyncEngine Class ====================

class AsyncEngine:
    """
    Runs an asyncio event loop in a background thread.

    Coroutines from the UI thread either run to completion with ``run_sync``
    (URL reachability checks the command waits for) or are submitted with
    ``submit``, in which case their outcome is posted to ``to_ui_queue`` and
    handled by the main loop.
    """

    def __init__(self, to_ui_queue: "queue.Queue[Dict[str, Any]]"):
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.thread: Optional[threading.Thread] = None
        self.to_ui_queue = to_ui_queue
        self._ready = threading.Event()

    def _run_loop(self) -> None:
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        self._ready.set()
        try:
            self.loop.run_forever()
        finally:
            self.loop.close()
            logger.info("AsyncEngine event loop has shut down.")

    def start(self) -> None:
        """Starts the event loop thread."""
        if self.thread is not None:
            logger.warning("AsyncEngine already started.")
            return
        logger.info("Starting AsyncEngine background thread...")
        self.thread = threading.Thread(target=self._run_loop, daemon=True, name="AsyncEngineThread")
        self.thread.start()
        self._ready.wait(timeout=5)

    @property
    def running(self) -> bool:
        return self.loop is not None and self.thread is not None and self.thread.is_alive()

    def run_sync(self, coro, timeout: Optional[float] = None) -> Any:
        """
        Runs ``coro`` on the engine loop and blocks until it finishes.

        Raises:
            PathfinderError: When the coroutine does not finish in ``timeout``.
        """
        if not self.running:
            return asyncio.run(coro)
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError as e:
            future.cancel()
            logger.warning("AsyncEngine task timed out after %ss", timeout)
            raise PathfinderError("Timed out waiting for the network") from e

    def submit(self, task_type: str, coro) -> None:
        """Schedules ``coro``; its result or error is posted to ``to_ui_queue``."""
        if not self.running:
            coro.close()
            raise PathfinderError("Background engine is not running")

        async def wrapper():
            try:
                result = await coro
                self.to_ui_queue.put({"type": task_type, "result": result})
            except Exception as e:
                logger.error(f"Error executing async task '{task_type}': {e}", exc_info=True)
                self.to_ui_queue.put({"type": "task_error", "task_type": task_type, "error": str(e)})

        asyncio.run_coroutine_threadsafe(wrapper(), self.loop)

    def stop(self) -> None:
        """Stops the loop and joins the thread."""
        if not self.running:
            return
        logger.info("Stopping AsyncEngine...")
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=5)
        if self.thread.is_alive():
            logger.error("AsyncEngine thread did not stop gracefully.")


# ==================== KeyBinder Class ====================

# Named keys accepted in [keybindings] and produced by key_name().
NAMED_KEYS = frozenset({
    "up", "down", "left", "right", "home", "end", "pageup", "pagedown",
    "backspace", "delete", "insert", "enter", "tab", "esc", "resize",
} | {f"f{n}" for n in range(1, 13)})

KEY_ALIASES = {
    "escape": "esc",
    "return": "enter",
    "bs": "backspace",
    "del": "delete",
    "pgup": "pageup",
    "pgdn": "pagedown",
    "space": " ",
}

_CURSES_KEY_NAMES = {
    curses.KEY_UP: "up",
    curses.KEY_DOWN: "down",
    curses.KEY_LEFT: "left",
    curses.KEY_RIGHT: "right",
    curses.KEY_HOME: "home",
    curses.KEY_END: "end",
    curses.KEY_PPAGE: "pageup",
    curses.KEY_NPAGE: "pagedown",
    curses.KEY_DC: "delete",
    curses.KEY_IC: "insert",
    curses.KEY_RESIZE: "resize",
}
_CURSES_KEY_NAMES.update({getattr(curses, f"KEY_F{n}"): f"f{n}" for n in range(1, 13)})


def key_name(raw: Union[str, int, None]) -> Optional[str]:
    """
    Converts a ``get_wch()`` result into the key name used by bindings.

    Printable characters are returned as they are (case kept); control
    characters become ``ctrl+x``; curses key codes become names such as
    ``"up"`` or ``"backspace"``. Unknown codes give ``None``.

    Example:
        >>> key_name("\\x0f")
        'ctrl+o'
        >>> key_name(curses.KEY_BACKSPACE)
        'backspace'
    """
    if raw is None:
        return None
    if isinstance(raw, int):
        if raw in (curses.KEY_BACKSPACE, 8, 127):
            return "backspace"
        if raw in (curses.KEY_ENTER, 10, 13):
            return "enter"
        if raw in _CURSES_KEY_NAMES:
            return _CURSES_KEY_NAMES[raw]
        if 0 < raw < 32:
            return key_name(chr(raw))
        return None
    if raw in ("\n", "\r"):
        return "enter"
    if raw == "\t":
        return "tab"
    if raw == "\x1b":
        return "esc"
    if raw in ("\x7f", "\b"):
        return "backspace"
    if len(raw) == 1 and 0 < ord(raw) < 32:
        return "ctrl+" + chr(ord(raw) + 96)
    return raw


def decode_keystring(spec: str) -> str:
    """
    Normalises a key specification from the config.

    Single characters are kept verbatim (``"G"`` differs from ``"g"``);
    longer names are case-insensitive, ``-`` and ``+`` both separate a
    ``ctrl`` modifier from its key.

    Raises:
        ValueError: For empty, unknown or unsupported specifications.

    Example:
        >>> decode_keystring("Ctrl-O")
        'ctrl+o'
        >>> decode_keystring("PgDn")
        'pagedown'
    """
    if not isinstance(spec, str) or not spec.strip():
        raise ValueError(f"Invalid key specification: {spec!r}")
    s = spec.strip()
    if len(s) == 1:
        return s
    s = s.lower().replace("-", "+")
    modifier, _, base = s.rpartition("+")
    base = KEY_ALIASES.get(base, base)
    if modifier:
        if modifier in ("ctrl", "control", "c") and len(base) == 1 and base.isalpha():
            return "ctrl+" + base
        raise ValueError(f"Unsupported modifier in key specification: {spec!r}")
    if len(base) == 1 or base in NAMED_KEYS:
        return base
    raise ValueError(f"Unknown key name: {spec!r}")


class KeyBinder:
    """
    Translates key presses into viewer actions.

    Keys typed before an action as digits form a vim-style count, handed to
    the action (``0`` when none was typed).
    """

    # Navigation that is always available unless a binding takes the key.
    BUILTIN_BINDINGS = {
        "move_up": ["up", "k"],
        "move_down": ["down", "j"],
        "move_left": ["left", "h"],
        "move_right": ["right", "l"],
        "page_up": ["pageup"],
        "page_down": ["pagedown", " "],
        "line_start": ["home"],
        "line_end": ["end"],
        "redraw": ["resize", "ctrl+l"],
        "cancel": ["esc"],
    }

    def __init__(self, viewer: "PathfinderViewer"):
        self.viewer = viewer
        self.stdscr = viewer.stdscr
        self.count = ""
        self.action_map: Dict[str, Callable[[int], Any]] = self._setup_action_map()

    def _load_keybindings(self) -> Dict[str, str]:
        """Key name → action name, config bindings overriding built-ins."""
        bindings: Dict[str, str] = {}
        sources = [self.BUILTIN_BINDINGS, self.viewer.base_config.get("keybindings", {})]
        for source in sources:
            for action, specs in source.items():
                if isinstance(specs, str):
                    specs = [specs]
                for spec in specs or []:
                    try:
                        bindings[decode_keystring(spec)] = action
                    except ValueError as e:
                        logger.warning(f"Ignoring keybinding for '{action}': {e}")
        return bindings

    def _setup_action_map(self) -> Dict[str, Callable[[int], Any]]:
        actions = self.viewer.actions()
        action_map = {}
        for key, action in self._load_keybindings().items():
            if action in actions:
                action_map[key] = actions[action]
            else:
                logger.warning("Unknown action '%s' bound to %r", action, key)
        return action_map

    def get_key_input(self) -> Optional[str]:
        """Reads one key; ``None`` when the read timed out."""
        try:
            raw = self.stdscr.get_wch()
        except curses.error:
            return None
        name = key_name(raw)
        KEY_LOGGER.debug("raw=%r name=%r", raw, name)
        return name

    def handle_input(self, key: str) -> bool:
        """
        Processes one key name.

        Returns:
            bool: True when the screen needs a redraw.
        """
        if len(key) == 1 and key in "0123456789" and (key != "0" or self.count):
            self.count += key
            return True

        count = int(self.count) if self.count else 0
        self.count = ""
        action = self.action_map.get(key)
        if action is None:
            logger.debug("Unbound key %r", key)
            return count > 0
        KEY_LOGGER.debug("key=%r count=%d action=%s", key, count, getattr(action, "__name__", action))
        action(count)
        return True


# ==================== DrawScreen Class ====================

class DrawScreen:
    """Draws the current document, its gutter and the status bar."""

    MIN_WINDOW_WIDTH = 20
    MIN_WINDOW_HEIGHT = 3

    def __init__(self, viewer: "PathfinderViewer"):
        self.viewer = viewer
        self.stdscr = viewer.stdscr
        self._text_start_x = 0

    @property
    def tab_size(self) -> int:
        return int(self.viewer.base_config.get("editor", {}).get("tab_size", 4))

    def text_rows(self) -> int:
        height, _width = self.stdscr.getmaxyx()
        return max(1, height - 1)

    def gutter_width(self) -> int:
        return len(str(len(self.viewer.document.lines))) + 1

    def text_width(self) -> int:
        _height, width = self.stdscr.getmaxyx()
        return max(1, width - self.gutter_width() - 1)

    def to_screen(self, lnum: int, col: int) -> Optional[Tuple[int, int]]:
        """Screen ``(row, x)`` of a physical position, ``None`` when off screen."""
        doc = self.viewer.document
        row = lnum - 1 - doc.scroll_top
        if not 0 <= row < self.text_rows() or not 1 <= lnum <= len(doc.lines):
            return None
        x = cells_before(doc.lines[lnum - 1], col, self.tab_size) - doc.scroll_left
        if x < 0 or x > self.text_width():
            return None
        return row, self.gutter_width() + x

    def scroll_to_cursor(self) -> None:
        doc = self.viewer.document
        rows = self.text_rows()
        if doc.row - 1 < doc.scroll_top:
            doc.scroll_top = doc.row - 1
        elif doc.row - 1 >= doc.scroll_top + rows:
            doc.scroll_top = doc.row - rows
        cursor_x = cells_before(doc.lines[doc.row - 1], doc.col, self.tab_size)
        if cursor_x < doc.scroll_left:
            doc.scroll_left = cursor_x
        elif cursor_x >= doc.scroll_left + self.text_width():
            doc.scroll_left = cursor_x - self.text_width() + 1

    def draw(self, overlay: Optional[List[OverlayItem]] = None) -> None:
        height, width = self.stdscr.getmaxyx()
        self.stdscr.erase()
        if height < self.MIN_WINDOW_HEIGHT or width < self.MIN_WINDOW_WIDTH:
            try:
                self.stdscr.addstr(0, 0, "Window too small"[:max(0, width - 1)])
                self.stdscr.refresh()
            except curses.error as e:
                logger.debug(f"DrawScreen: cannot draw size warning: {e}")
            return

        self.scroll_to_cursor()
        self._draw_text()
        if overlay is not None:
            renderer = OverlayRenderer(self.stdscr, self.viewer.colors, self.to_screen)
            renderer.dim_rows(range(self.text_rows()), self.gutter_width())
            renderer.draw(overlay)
        self._draw_status_bar()
        self._position_cursor()
        self.stdscr.refresh()

    def _draw_text(self) -> None:
        doc = self.viewer.document
        gutter = self.gutter_width()
        gutter_attr = self.viewer.colors.get("gutter", curses.A_NORMAL)
        text_attr = self.viewer.colors.get("default", curses.A_NORMAL)
        for row in range(self.text_rows()):
            index = doc.scroll_top + row
            if index >= len(doc.lines):
                break
            visible = fit_cells(
                safe_cut_left(expand_tabs(doc.lines[index], self.tab_size), doc.scroll_left),
                self.text_width(),
            )
            try:
                self.stdscr.addstr(row, 0, str(index + 1).rjust(gutter - 1) + " ", gutter_attr)
                if visible:
                    self.stdscr.addstr(row, gutter, visible, text_attr)
            except curses.error as e:
                logger.debug(f"DrawScreen: curses error on row {row}: {e}")

    def _draw_status_bar(self) -> None:
        doc = self.viewer.document
        height, width = self.stdscr.getmaxyx()
        left = f" {doc.title} | {doc.filetype} | {doc.encoding} | Ln {doc.row}/{len(doc.lines)}, Col {doc.col + 1}"
        pending = self.viewer.keybinder.count if self.viewer.keybinder else ""
        right = f"{self.viewer.status_message} {pending} ".rstrip() + " "
        gap = max(1, width - 1 - display_width(left) - display_width(right))
        text = fit_cells(left + " " * gap + right, width - 1)
        try:
            self.stdscr.addstr(height - 1, 0, text + " " * (width - 1 - display_width(text)),
                               self.viewer.colors.get("status", curses.A_REVERSE))
        except curses.error as e:
            logger.debug(f"DrawScreen: status bar: {e}")

    def _position_cursor(self) -> None:
        doc = self.viewer.document
        pos = self.to_screen(doc.row, doc.col)
        if pos is None:
            return
        try:
            self.stdscr.move(*pos)
        except curses.error as e:
            logger.debug(f"DrawScreen: cursor move {pos}: {e}")


# ==================== PathfinderViewer Class ====================

class PathfinderViewer(core.HostView):
    """
    Curses host for the pathfinder commands.

    Args:
        stdscr: The curses screen from ``curses.wrapper``.
        config (dict): Configuration from ``load_config``.
        document (Document | None): Initial document; an empty scratch
            document is used when omitted.
    """

    def __init__(self, stdscr, config: Dict[str, Any], document: Optional[Document] = None):
        self.stdscr = stdscr
        self.base_config = config
        self.document = document or Document(lines=[""], config=config, title="[scratch]")
        self.back_stack: List[Document] = []
        self.status_message = ""
        self.running = True
        self.pending_keys: Deque[str] = collections.deque()
        self.to_ui_queue: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self.async_engine = AsyncEngine(self.to_ui_queue)
        self.colors: Dict[str, int] = {}
        self.init_colors()
        self.keybinder: Optional[KeyBinder] = None
        self.keybinder = KeyBinder(self)
        self.drawer = DrawScreen(self)

    # --- setup ---

    def init_colors(self) -> None:
        """Builds curses attributes for every style in ``[colors]``."""
        self.colors = fallback_colors()
        try:
            if not curses.has_colors():
                return
            curses.start_color()
            curses.use_default_colors()
        except curses.error as e:
            logger.debug(f"Colors unavailable: {e}")
            return
        if curses.COLORS < 256:
            logger.warning("Terminal does not support 256 colors. Using default attributes.")
            return

        user_colors = self.base_config.get("colors", {})
        pair_id = 1
        for name, hex_code in user_colors.items():
            if pair_id >= curses.COLOR_PAIRS:
                logger.warning("Ran out of available color pairs.")
                break
            try:
                curses.init_pair(pair_id, hex_to_xterm(str(hex_code)), -1)
            except curses.error as e:
                logger.error(f"Failed to initialize color for '{name}' with hex '{hex_code}': {e}")
                continue
            self.colors[name] = curses.color_pair(pair_id) | STYLE_ATTRIBUTES.get(name, curses.A_NORMAL)
            pair_id += 1

    def actions(self) -> Dict[str, Callable[[int], Any]]:
        """Action name → callable taking the count prefix."""
        return {
            "gf": lambda count: core.run_command(self, core.gf, count),
            "gF": lambda count: core.run_command(self, core.gF, count),
            "next_file": lambda count: core.run_command(self, core.next_file, max(count, 1)),
            "prev_file": lambda count: core.run_command(self, core.prev_file, max(count, 1)),
            "select_file": lambda count: core.run_command(self, core.select_file),
            "select_file_line": lambda count: core.run_command(self, core.select_file_line),
            "gx": lambda count: core.run_command(self, url.gx, max(count, 1)),
            "select_url": lambda count: core.run_command(self, url.select_url),
            "next_url": lambda count: core.run_command(self, url.next_url, max(count, 1)),
            "prev_url": lambda count: core.run_command(self, url.prev_url, max(count, 1)),
            "hover_description": lambda count: core.run_command(self, url.hover_description),
            "tmux_capture": lambda count: core.run_command(self, open_tmux_capture),
            "go_back": lambda count: self.go_back(),
            "quit": lambda count: self.quit(),
            "move_up": lambda count: self.move_cursor(-max(count, 1), 0),
            "move_down": lambda count: self.move_cursor(max(count, 1), 0),
            "move_left": lambda count: self.move_cursor(0, -max(count, 1)),
            "move_right": lambda count: self.move_cursor(0, max(count, 1)),
            "page_up": lambda count: self.move_cursor(-self.drawer.text_rows() * max(count, 1), 0),
            "page_down": lambda count: self.move_cursor(self.drawer.text_rows() * max(count, 1), 0),
            "line_start": lambda count: self.set_cursor(self.document.row, 0),
            "line_end": lambda count: self.set_cursor(self.document.row, len(self._line(self.document.row))),
            "redraw": lambda count: None,
            "cancel": lambda count: self._set_status_message(""),
        }

    # --- HostView ---

    @property
    def config(self) -> Dict[str, Any]:
        return self.document.config

    def line_count(self) -> int:
        return len(self.document.lines)

    def get_lines(self, first: int, last: int) -> List[Tuple[int, str]]:
        first = max(1, first)
        last = min(self.line_count(), last)
        return [(lnum, self.document.lines[lnum - 1]) for lnum in range(first, last + 1)]

    def visible_range(self) -> Tuple[int, int]:
        top = self.document.scroll_top + 1
        return top, min(self.line_count(), top + self.drawer.text_rows() - 1)

    def get_cursor_position(self) -> Tuple[int, int]:
        return self.document.row, self.document.col

    def set_cursor(self, lnum: int, col: int) -> None:
        doc = self.document
        doc.row = min(max(1, lnum), len(doc.lines))
        doc.col = min(max(0, col), len(doc.lines[doc.row - 1]))
        self.drawer.scroll_to_cursor()

    def open_target(self, path: str, line: Optional[int] = None, col: Optional[int] = None) -> None:
        if not self.document.is_same_file(path):
            new_doc = Document.from_file(path, self.base_config)
            self.back_stack.append(self.document)
            self.document = new_doc
        self.set_cursor(line or 1, (col - 1) if col else 0)
        self._set_status_message(f"{self.document.title}:{self.document.row}")

    def notify(self, message: str, level: str = "info") -> None:
        logger.log(logging.WARNING if level in ("warning", "error") else logging.INFO, "notify: %s", message)
        self._set_status_message(message)

    def wrap_width(self) -> Optional[int]:
        return self.document.wrap_width

    def context_dir(self) -> Optional[str]:
        return self.document.context_dir

    def prompt_choice(self, options: List[str], title: str) -> Optional[str]:
        self.stdscr.timeout(-1)
        try:
            return prompt_choice(self.stdscr, self.colors, options, title)
        finally:
            self.stdscr.timeout(100)
            self.drawer.draw()

    def show_text(self, title: str, text: str) -> None:
        self.stdscr.timeout(-1)
        try:
            show_text(self.stdscr, self.colors, title, text)
        finally:
            self.stdscr.timeout(100)
            self.drawer.draw()

    def render_overlay(self, items: List[OverlayItem]) -> None:
        self.drawer.draw(overlay=items)

    def clear_overlays(self) -> None:
        self.drawer.draw()

    def read_key(self) -> Optional[str]:
        """Blocks for the next key; ``None`` once the viewer is shutting down."""
        while self.running:
            key = self.keybinder.get_key_input()
            if key is None or key == "resize":
                continue
            return key
        return None

    def redispatch_key(self, key: str) -> None:
        self.pending_keys.append(key)

    def open_url(self, target: str) -> None:
        if self.async_engine.running:
            self.async_engine.submit("url_opened", _open_in_browser_async(target))
        elif not url.open_in_browser(target):
            raise PathfinderError(f"No browser available for {target}")

    def run_async(self, coro) -> Any:
        timeout = float(self.config.get("url_timeout", 5)) * 2 + 5
        return self.async_engine.run_sync(coro, timeout=timeout)

    # --- viewer actions ---

    def _line(self, lnum: int) -> str:
        return self.document.lines[lnum - 1]

    def _set_status_message(self, message: str) -> None:
        self.status_message = message

    def move_cursor(self, d_row: int, d_col: int) -> None:
        self.set_cursor(self.document.row + d_row, self.document.col + d_col)

    def open_document(self, document: Document) -> None:
        """Shows ``document``, keeping the current one on the back-stack."""
        self.back_stack.append(self.document)
        self.document = document

    def go_back(self) -> None:
        if not self.back_stack:
            self._set_status_message("No previous document")
            return
        self.document = self.back_stack.pop()
        self._set_status_message(self.document.title)

    def quit(self) -> None:
        self.running = False

    def process_async_queue(self) -> bool:
        """Applies results posted by the AsyncEngine; True when any were handled."""
        handled = False
        while True:
            try:
                message = self.to_ui_queue.get_nowait()
            except queue.Empty:
                return handled
            handled = True
            if message.get("type") == "url_opened" and not message.get("result"):
                self._set_status_message("No browser available")
            elif message.get("type") == "task_error":
                self._set_status_message(f"Error: {message.get('error')}")

    # --- main loop ---

    def run(self) -> None:
        """Main event loop: read keys, run actions, redraw."""
        self.async_engine.start()
        self.stdscr.keypad(True)
        self.stdscr.timeout(100)
        target_fps = max(1, int(self.base_config.get("editor", {}).get("target_fps", 30)))
        min_frame_time = 1.0 / target_fps
        last_draw_time = 0.0
        needs_redraw = True
        try:
            while self.running:
                try:
                    if self.process_async_queue():
                        needs_redraw = True
                    key = self.pending_keys.popleft() if self.pending_keys else self.keybinder.get_key_input()
                    if key is not None and self.keybinder.handle_input(key):
                        needs_redraw = True

                    current_time = time.monotonic()
                    if needs_redraw and self.running and current_time - last_draw_time >= min_frame_time:
                        self.drawer.draw()
                        last_draw_time = current_time
                        needs_redraw = False
                except KeyboardInterrupt:
                    logger.info("KeyboardInterrupt received in main loop, exiting.")
                    self.running = False
                except curses.error as e:
                    logger.error("A Curses error occurred in the main loop: %s", e, exc_info=True)
                    self._set_status_message(f"UI Error: {e}")
                    needs_redraw = True
                except Exception as e:
                    logger.critical("An unhandled exception occurred in the main loop: %s", e, exc_info=True)
                    self._set_status_message("Critical loop error! Check logs.")
                    needs_redraw = True
        finally:
            self.async_engine.stop()


async def _open_in_browser_async(target: str) -> bool:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, url.open_in_browser, target)


def open_tmux_capture(viewer: PathfinderViewer) -> None:
    """Opens the last-used tmux pane as a terminal document."""
    capture = tmux.capture_last_pane(min_rows=viewer.drawer.text_rows())
    viewer.open_document(Document.from_capture(capture, viewer.base_config))
    viewer.notify(f"Captured {capture.title} ({len(capture.lines)} rows)")


# ──────────────────────────── Entry point ────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pathfinder-pad",
        description="Terminal viewer for jumping to the files and URLs mentioned in text.",
    )
    parser.add_argument("file", nargs="?", help="file to open")
    parser.add_argument("--tmux", action="store_true", help="open a capture of the last-used tmux pane")
    parser.add_argument("--config", help="path to a TOML configuration file")
    parser.add_argument("--line", type=int, default=1, help="line to place the cursor on")
    return parser


def initial_document(args: argparse.Namespace, config: Dict[str, Any]) -> Document:
    if args.tmux:
        return Document.from_capture(tmux.capture_last_pane(), config)
    doc = Document.from_file(args.file, config)
    doc.row = min(max(1, args.line), len(doc.lines))
    return doc


def main_curses_function(stdscr, config: Dict[str, Any], document: Document) -> None:
    """Runs the viewer inside ``curses.wrapper``."""
    try:
        locale.setlocale(locale.LC_ALL, "")
    except locale.Error as e_locale:
        logger.error(f"Failed to set system locale: {e_locale}")
    try:
        curses.curs_set(1)
    except curses.error as e_cursor:
        logger.debug(f"Cursor visibility not supported: {e_cursor}")
    viewer = PathfinderViewer(stdscr, config, document)
    viewer.run()


def main(argv: Optional[List[str]] = None) -> int:
    """Console entry point; returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.file and not args.tmux:
        parser.error("a file or --tmux is required")

    config = load_config(args.config)
    setup_logging(config)
    logger.info("Pathfinder-Pad starting up...")

    try:
        document = initial_document(args, config)
    except PathfinderError as e:
        print(f"pathfinder-pad: {e.message}", file=sys.stderr)
        return 1

    if hasattr(signal, "SIGTSTP"):
        signal.signal(signal.SIGTSTP, signal.SIG_IGN)

    try:
        curses.wrapper(main_curses_function, config, document)
    except Exception as e_wrapper:
        logger.critical("Unhandled exception at the outermost level (after curses.wrapper).", exc_info=True)
        print(f"\nCRITICAL ERROR: {e_wrapper}", file=sys.stderr)
        print(f"See the log files in '{LOG_DIR}' for the traceback.", file=sys.stderr)
        return 1
    logger.info("Pathfinder-Pad shut down gracefully.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
