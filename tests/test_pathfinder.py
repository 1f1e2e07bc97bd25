import asyncio
import copy
import curses
import logging
import os
import queue
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from pathfinder_pad import pathfinder
from pathfinder_pad.config import DEFAULT_CONFIG
from pathfinder_pad.errors import PathfinderError
from pathfinder_pad.pathfinder import (
    AsyncEngine,
    Document,
    PathfinderViewer,
    decode_keystring,
    hex_to_xterm,
    key_name,
    read_text_file,
)
from pathfinder_pad.tmux import TerminalCapture
from pathfinder_pad.utils import display_width


def make_stdscr():
    stdscr = MagicMock()
    stdscr.getmaxyx.return_value = (24, 80)
    return stdscr


class TestKeys(unittest.TestCase):

    def test_key_name(self):
        self.assertEqual(key_name("\x0f"), "ctrl+o")
        self.assertEqual(key_name(curses.KEY_BACKSPACE), "backspace")
        self.assertEqual(key_name(127), "backspace")
        self.assertEqual(key_name(10), "enter")
        self.assertEqual(key_name(curses.KEY_UP), "up")
        self.assertEqual(key_name(1), "ctrl+a")
        self.assertEqual(key_name("\x1b"), "esc")
        self.assertEqual(key_name("G"), "G")
        self.assertIsNone(key_name(None))

    def test_decode_keystring(self):
        self.assertEqual(decode_keystring("Ctrl-O"), "ctrl+o")
        self.assertEqual(decode_keystring("PgDn"), "pagedown")
        self.assertEqual(decode_keystring("G"), "G")
        self.assertEqual(decode_keystring("space"), " ")
        self.assertEqual(decode_keystring("F5"), "f5")

    def test_invalid_keystrings(self):
        for spec in ("", "alt+x", "ctrl+up", "nonsense", None):
            with self.assertRaises(ValueError):
                decode_keystring(spec)


class TestHelpers(unittest.TestCase):

    def test_hex_to_xterm(self):
        self.assertEqual(hex_to_xterm("#FFFFFF"), 231)
        self.assertEqual(hex_to_xterm("#000000"), 16)
        self.assertEqual(hex_to_xterm("#FF0000"), 196)
        self.assertEqual(hex_to_xterm("nope"), 255)

    def test_text_helpers(self):
        self.assertEqual(pathfinder.cells_before("\tab", 1), 4)
        self.assertEqual(pathfinder.cells_before("漢字x", 2), 4)
        self.assertEqual(pathfinder.expand_tabs("a\tb\x01"), "a   b?")
        self.assertEqual(pathfinder.safe_cut_left("漢字x", 1), "字x")
        self.assertEqual(pathfinder.fit_cells("漢字x", 3), "漢")


class TestReadTextFile(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, name, data):
        path = os.path.join(self.tmp.name, name)
        with open(path, "wb") as fh:
            fh.write(data)
        return path

    def test_latin1_fallback(self):
        path = self.write("old.txt", "café crème\nfin\n".encode("latin-1"))
        with patch.object(pathfinder.chardet, "detect", return_value={"encoding": None, "confidence": 0.0}):
            lines, encoding = read_text_file(path)
        self.assertEqual(lines, ["café crème", "fin"])
        self.assertEqual(encoding, "latin-1")

    def test_utf8(self):
        path = self.write("new.txt", "naïve\n".encode("utf-8"))
        with patch.object(pathfinder.chardet, "detect", return_value={"encoding": "utf-8", "confidence": 0.99}):
            self.assertEqual(read_text_file(path), (["naïve"], "utf-8"))

    def test_empty_file(self):
        self.assertEqual(read_text_file(self.write("empty.txt", b"")), ([""], "utf-8"))

    def test_directory(self):
        with self.assertRaises(PathfinderError) as ctx:
            read_text_file(self.tmp.name)
        self.assertIn("is a directory", ctx.exception.message)

    def test_missing(self):
        with self.assertRaises(PathfinderError):
            read_text_file(os.path.join(self.tmp.name, "missing.txt"))


class TestDocument(unittest.TestCase):

    def test_from_capture(self):
        config = copy.deepcopy(DEFAULT_CONFIG)
        config["ft_overrides"] = {"terminal": {"scan_unenclosed_words": False}}
        capture = TerminalCapture(lines=["$ make", "foo.c:3: error"], width=80, cwd="/src", pane_id="%2")
        doc = Document.from_capture(capture, config)
        self.assertEqual(doc.filetype, "terminal")
        self.assertEqual(doc.wrap_width, 80)
        self.assertEqual(doc.context_dir, "/src")
        self.assertEqual(doc.row, 2)
        self.assertFalse(doc.config["scan_unenclosed_words"])
        self.assertTrue(config["scan_unenclosed_words"])


class ViewerTestCase(unittest.TestCase):

    def setUp(self):
        patcher = patch.object(pathfinder.curses, "has_colors", return_value=False)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.config = copy.deepcopy(DEFAULT_CONFIG)

    def write(self, name, lines):
        path = os.path.join(self.tmp.name, name)
        with open(path, "w", encoding="utf-8") as fh:
            fh.write("\n".join(lines) + "\n")
        return path

    def viewer(self, lines):
        path = self.write("main.txt", lines)
        return PathfinderViewer(make_stdscr(), self.config, Document.from_file(path, self.config))


class TestViewer(ViewerTestCase):

    def test_monochrome_fallback(self):
        viewer = self.viewer(["x"])
        self.assertEqual(viewer.colors["next_key"], curses.A_REVERSE | curses.A_BOLD)

    def test_count_prefix(self):
        viewer = self.viewer([f"line {n}" for n in range(10)])
        self.assertTrue(viewer.keybinder.handle_input("3"))
        viewer.keybinder.handle_input("j")
        self.assertEqual(viewer.get_cursor_position(), (4, 0))
        viewer.keybinder.handle_input("k")
        self.assertEqual(viewer.get_cursor_position(), (3, 0))

    def test_zero_is_not_a_count_on_its_own(self):
        viewer = self.viewer(["x"])
        self.assertFalse(viewer.keybinder.handle_input("0"))
        self.assertEqual(viewer.keybinder.count, "")

    def test_quit_binding(self):
        viewer = self.viewer(["x"])
        viewer.keybinder.handle_input("q")
        self.assertFalse(viewer.running)

    def test_config_binding_overrides(self):
        self.config["keybindings"] = dict(self.config["keybindings"], quit="Z")
        viewer = self.viewer(["x"])
        viewer.keybinder.handle_input("Z")
        self.assertFalse(viewer.running)

    def test_cursor_is_clamped(self):
        viewer = self.viewer(["abc", "de"])
        viewer.set_cursor(9, 9)
        self.assertEqual(viewer.get_cursor_position(), (2, 2))
        viewer.set_cursor(0, -3)
        self.assertEqual(viewer.get_cursor_position(), (1, 0))

    def test_open_target_and_go_back(self):
        viewer = self.viewer(["other.txt"])
        other = self.write("other.txt", ["a", "b", "c"])
        viewer.open_target(other, 3, 2)
        self.assertEqual(viewer.document.title, "other.txt")
        self.assertEqual(viewer.get_cursor_position(), (3, 1))
        self.assertEqual(len(viewer.back_stack), 1)

        viewer.open_target(other, 1)
        self.assertEqual(len(viewer.back_stack), 1)
        self.assertEqual(viewer.get_cursor_position(), (1, 0))

        viewer.go_back()
        self.assertEqual(viewer.document.title, "main.txt")
        viewer.go_back()
        self.assertEqual(viewer.status_message, "No previous document")

    def test_gf_through_the_viewer(self):
        self.write("other.txt", ["x"])
        viewer = self.viewer(["see other.txt:1"])
        viewer.keybinder.handle_input("g")
        self.assertEqual(viewer.document.title, "other.txt")

    def test_to_screen_expands_tabs(self):
        viewer = self.viewer(["\tab"])
        self.assertEqual(viewer.drawer.to_screen(1, 1), (0, 6))
        self.assertIsNone(viewer.drawer.to_screen(5, 0))

    def test_draw_writes_status_bar(self):
        viewer = self.viewer(["hello"])
        viewer.notify("ready")
        viewer.drawer.draw()
        texts = [c[0][2] for c in viewer.stdscr.addstr.call_args_list if len(c[0]) >= 3]
        self.assertTrue(any("main.txt" in t and "ready" in t for t in texts))
        viewer.stdscr.refresh.assert_called()

    def test_status_bar_with_wide_title(self):
        viewer = self.viewer(["hello"])
        viewer.document.title = "漢字漢字.txt"
        viewer.notify("ready")
        viewer.drawer.draw()
        rows = [c[0][2] for c in viewer.stdscr.addstr.call_args_list if len(c[0]) >= 3 and c[0][0] == 23]
        status = rows[-1].rstrip()
        self.assertTrue(status.endswith("ready"))
        self.assertEqual(display_width(status), 78)

    def test_gx_count_is_passed_through(self):
        viewer = self.viewer(["x"])
        with patch.object(pathfinder.url, "gx") as gx:
            viewer.keybinder.handle_input("3")
            viewer.keybinder.handle_input("x")
        gx.assert_called_once_with(viewer, 3)

    def test_hover_description_shows_popup(self):
        viewer = self.viewer(["https://example.com"])
        with patch.object(pathfinder.url, "find_description", new=MagicMock()) as find, \
                patch.object(viewer, "run_async", return_value=("https://example.com", "An example")), \
                patch.object(pathfinder, "show_text") as popup:
            viewer.keybinder.handle_input("K")
        find.assert_called_once()
        popup.assert_called_once_with(viewer.stdscr, viewer.colors, "https://example.com", "An example")
        viewer.stdscr.timeout.assert_called_with(100)

    def test_open_url_without_browser(self):
        viewer = self.viewer(["x"])
        with patch.object(pathfinder.url, "open_in_browser", return_value=False):
            with self.assertRaises(PathfinderError):
                viewer.open_url("https://example.com")

    def test_async_queue_messages(self):
        viewer = self.viewer(["x"])
        viewer.to_ui_queue.put({"type": "url_opened", "result": False})
        self.assertTrue(viewer.process_async_queue())
        self.assertEqual(viewer.status_message, "No browser available")
        viewer.to_ui_queue.put({"type": "task_error", "task_type": "url_opened", "error": "boom"})
        viewer.process_async_queue()
        self.assertEqual(viewer.status_message, "Error: boom")
        self.assertFalse(viewer.process_async_queue())

    def test_tmux_capture_action(self):
        viewer = self.viewer(["x"])
        capture = TerminalCapture(lines=["foo.c:3"], width=80, cwd=self.tmp.name, pane_id="%4")
        with patch.object(pathfinder.tmux, "capture_last_pane", return_value=capture):
            viewer.keybinder.handle_input("t")
        self.assertEqual(viewer.document.title, "tmux:%4")
        self.assertEqual(len(viewer.back_stack), 1)

    def test_tmux_capture_failure_is_reported(self):
        viewer = self.viewer(["x"])
        with patch.object(pathfinder.tmux, "capture_last_pane",
                          side_effect=PathfinderError("Not running inside tmux")):
            viewer.keybinder.handle_input("t")
        self.assertEqual(viewer.status_message, "Not running inside tmux")
        self.assertEqual(viewer.document.title, "main.txt")


class TestAsyncEngine(unittest.TestCase):

    def test_run_sync_without_thread(self):
        engine = AsyncEngine(queue.Queue())

        async def answer():
            return 42

        self.assertEqual(engine.run_sync(answer()), 42)

    def test_submit_posts_results(self):
        results = queue.Queue()
        engine = AsyncEngine(results)
        engine.start()
        try:
            async def ok():
                return "done"

            async def broken():
                raise RuntimeError("nope")

            self.assertTrue(engine.running)
            self.assertEqual(engine.run_sync(ok(), timeout=5), "done")
            engine.submit("job", ok())
            self.assertEqual(results.get(timeout=5), {"type": "job", "result": "done"})
            engine.submit("job", broken())
            message = results.get(timeout=5)
            self.assertEqual(message["type"], "task_error")
            self.assertEqual(message["error"], "nope")
        finally:
            engine.stop()
        self.assertFalse(engine.thread.is_alive())

    def test_run_sync_timeout(self):
        engine = AsyncEngine(queue.Queue())
        engine.start()
        try:
            with self.assertRaises(PathfinderError):
                engine.run_sync(asyncio.sleep(5), timeout=0.05)
        finally:
            engine.stop()


class TestSetupLogging(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        root = logging.getLogger()
        self.saved = (list(root.handlers), root.level)

    def tearDown(self):
        root = logging.getLogger()
        for handler in root.handlers:
            handler.close()
        root.handlers, level = self.saved
        root.setLevel(level)
        key_logger = logging.getLogger("pathfinder.keyevents")
        for handler in key_logger.handlers:
            handler.close()
        key_logger.handlers = []
        key_logger.disabled = True
        self.tmp.cleanup()

    def test_file_handler(self):
        with patch.dict(os.environ, {"PATHFINDER_KEYTRACE": ""}):
            pathfinder.setup_logging({"logging": {"file_level": "INFO", "separate_error_log": True}},
                                     log_dir=self.tmp.name)
        root = logging.getLogger()
        self.assertEqual(root.level, logging.INFO)
        self.assertEqual(len(root.handlers), 2)
        self.assertTrue(os.path.exists(os.path.join(self.tmp.name, "pathfinder.log")))
        self.assertTrue(logging.getLogger("pathfinder.keyevents").disabled)

    def test_key_trace(self):
        with patch.dict(os.environ, {"PATHFINDER_KEYTRACE": "1"}):
            pathfinder.setup_logging({}, log_dir=self.tmp.name)
        self.assertFalse(logging.getLogger("pathfinder.keyevents").disabled)
        self.assertTrue(os.path.exists(os.path.join(self.tmp.name, "keytrace.log")))


class TestMain(unittest.TestCase):

    def test_requires_file_or_tmux(self):
        with patch("sys.stderr"):
            with self.assertRaises(SystemExit):
                pathfinder.main([])

    @patch.object(pathfinder, "setup_logging")
    def test_missing_file(self, _setup_logging):
        with patch("sys.stderr"):
            self.assertEqual(pathfinder.main([os.path.join(tempfile.gettempdir(), "pf-missing-file.txt")]), 1)

    @patch.object(pathfinder.signal, "signal")
    @patch.object(pathfinder.curses, "wrapper")
    @patch.object(pathfinder, "setup_logging")
    def test_runs_viewer(self, _setup_logging, wrapper, _signal):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "notes.txt")
            with open(path, "w", encoding="utf-8") as fh:
                fh.write("a\nb\nc\n")
            self.assertEqual(pathfinder.main([path, "--line", "2"]), 0)
        func, config, document = wrapper.call_args[0]
        self.assertIs(func, pathfinder.main_curses_function)
        self.assertEqual(document.row, 2)


if __name__ == '__main__':
    unittest.main()
