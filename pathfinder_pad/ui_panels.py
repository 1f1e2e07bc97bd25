# ui_panels.py
import curses
import logging
import textwrap
from typing import List, Optional

from .utils import display_width

logger = logging.getLogger("pathfinder.ui_panels")


class ChoicePanel:
    """
    Popup list drawn over the viewer, used when a name matches several files.

    j/k or the arrow keys move the selection, Enter or a digit picks an item,
    q/Esc cancels. Drawing and input are both done on ``stdscr``.
    """

    def __init__(self, stdscr, title: str, options: List[str], colors: dict):
        self.stdscr = stdscr
        self.title = title
        self.options = list(options)
        self.colors = colors
        self.selected = 0
        self.scroll_top = 0
        self.is_active = False
        self.result: Optional[str] = None

    def show(self) -> Optional[str]:
        """Displays the panel until the user picks or cancels; returns the pick."""
        self.is_active = True
        self.result = None
        try:
            original_cursor_visibility = curses.curs_set(0)
        except curses.error:
            original_cursor_visibility = None

        try:
            while self.is_active:
                self.draw()
                key = self.stdscr.getch()
                self.handle_input(key)
        finally:
            if original_cursor_visibility is not None:
                curses.curs_set(original_cursor_visibility)
        return self.result

    def _geometry(self):
        term_h, term_w = self.stdscr.getmaxyx()
        panel_h = max(3, min(term_h - 2, len(self.options) + 2))
        widest = max([display_width(o) for o in self.options] + [display_width(self.title)])
        panel_w = max(10, min(term_w - 2, widest + 8))
        y = max(0, (term_h - panel_h) // 2)
        x = max(0, (term_w - panel_w) // 2)
        return y, x, panel_h, panel_w

    def draw(self):
        """Draws the frame, the title and the visible part of the option list."""
        y, x, panel_h, panel_w = self._geometry()
        body_h = panel_h - 2
        if self.selected < self.scroll_top:
            self.scroll_top = self.selected
        elif self.selected >= self.scroll_top + body_h:
            self.scroll_top = self.selected - body_h + 1

        bg_attr = self.colors.get("status", curses.A_NORMAL)
        border_attr = self.colors.get("candidate", curses.A_BOLD)
        select_attr = self.colors.get("next_key", curses.A_REVERSE) | curses.A_REVERSE
        try:
            for i in range(panel_h):
                self.stdscr.addstr(y + i, x, " " * panel_w, bg_attr)
            title_str = f" {self.title} "[:panel_w]
            self.stdscr.addstr(y, x + max(0, (panel_w - len(title_str)) // 2), title_str, border_attr)

            for row in range(body_h):
                idx = self.scroll_top + row
                if idx >= len(self.options):
                    break
                text = f" {idx + 1}. {self.options[idx]}"[:panel_w - 2]
                attr = select_attr if idx == self.selected else bg_attr
                self.stdscr.addstr(y + 1 + row, x + 1, text.ljust(panel_w - 2), attr)

            if self.scroll_top > 0:
                self.stdscr.addstr(y + 1, x + panel_w - 2, "↑", border_attr)
            if self.scroll_top + body_h < len(self.options):
                self.stdscr.addstr(y + panel_h - 2, x + panel_w - 2, "↓", border_attr)
            self.stdscr.refresh()
        except curses.error as e:
            logger.debug(f"ChoicePanel.draw: curses error {e}")

    def handle_input(self, key):
        """Handles one key code read from curses."""
        if key in (ord('q'), ord('Q'), 27):
            self.result = None
            self.is_active = False
        elif key in (curses.KEY_UP, ord('k')):
            self.selected = max(0, self.selected - 1)
        elif key in (curses.KEY_DOWN, ord('j')):
            self.selected = min(len(self.options) - 1, self.selected + 1)
        elif key in (curses.KEY_ENTER, 10, 13):
            self.result = self.options[self.selected]
            self.is_active = False
        elif ord('1') <= key <= ord('9') and key - ord('1') < len(self.options):
            self.result = self.options[key - ord('1')]
            self.is_active = False


def prompt_choice(stdscr, colors: dict, options: List[str], title: str) -> Optional[str]:
    """Blocking choice prompt; ``None`` when the user cancels."""
    if not options:
        return None
    logger.debug("prompt_choice: %d options for %r", len(options), title)
    return ChoicePanel(stdscr, title, options, colors).show()


class TextPanel:
    """
    Scrollable popup with a title and wrapped text, closed with q, Esc or Enter.
    """

    def __init__(self, stdscr, title: str, content: str, colors: dict):
        self.stdscr = stdscr
        self.title = title
        self.content_lines = content.split('\n')
        self.colors = colors
        self.scroll_top = 0
        self.is_active = False

    def show(self):
        """Displays the panel until it is closed."""
        self.is_active = True
        try:
            original_cursor_visibility = curses.curs_set(0)
        except curses.error:
            original_cursor_visibility = None

        try:
            while self.is_active:
                self.draw()
                key = self.stdscr.getch()
                self.handle_input(key)
        finally:
            if original_cursor_visibility is not None:
                curses.curs_set(original_cursor_visibility)

    def _geometry(self):
        term_h, term_w = self.stdscr.getmaxyx()
        panel_w = max(10, min(term_w - 4, 80))
        wrapped = self.wrapped_lines(panel_w - 2)
        panel_h = max(3, min(term_h - 4, len(wrapped) + 2))
        y = max(0, (term_h - panel_h) // 2)
        x = max(0, (term_w - panel_w) // 2)
        return y, x, panel_h, panel_w, wrapped

    def wrapped_lines(self, width: int) -> List[str]:
        wrapped: List[str] = []
        for line in self.content_lines:
            wrapped.extend(textwrap.wrap(line, width=width, replace_whitespace=False) or [''])
        return wrapped

    def max_scroll(self) -> int:
        _y, _x, panel_h, _w, wrapped = self._geometry()
        return max(0, len(wrapped) - (panel_h - 2))

    def draw(self):
        """Draws the frame, the title and the visible part of the text."""
        y, x, panel_h, panel_w, wrapped = self._geometry()
        content_h = panel_h - 2
        content_w = panel_w - 2
        self.scroll_top = min(self.scroll_top, self.max_scroll())

        bg_attr = self.colors.get("status", curses.A_NORMAL)
        border_attr = self.colors.get("candidate", curses.A_BOLD)
        try:
            for i in range(panel_h):
                self.stdscr.addstr(y + i, x, " " * panel_w, bg_attr)
            title_str = f" {self.title} "[:panel_w]
            self.stdscr.addstr(y, x + max(0, (panel_w - len(title_str)) // 2), title_str, border_attr)

            for i in range(content_h):
                line_idx = self.scroll_top + i
                if line_idx < len(wrapped):
                    self.stdscr.addstr(y + 1 + i, x + 1, wrapped[line_idx].ljust(content_w), bg_attr)

            if self.scroll_top > 0:
                self.stdscr.addstr(y + 1, x + panel_w - 2, "↑", border_attr)
            if self.scroll_top < self.max_scroll():
                self.stdscr.addstr(y + panel_h - 2, x + panel_w - 2, "↓", border_attr)
            self.stdscr.refresh()
        except curses.error as e:
            logger.debug(f"TextPanel.draw: curses error {e}")

    def handle_input(self, key):
        if key in (ord('q'), ord('Q'), 27, curses.KEY_ENTER, 10, 13):
            self.is_active = False
        elif key in (curses.KEY_UP, ord('k')):
            self.scroll_top = max(0, self.scroll_top - 1)
        elif key in (curses.KEY_DOWN, ord('j')):
            self.scroll_top = min(self.max_scroll(), self.scroll_top + 1)


def show_text(stdscr, colors: dict, title: str, text: str) -> None:
    """Blocking text popup."""
    logger.debug("show_text: %r", title)
    TextPanel(stdscr, title, text, colors).show()
