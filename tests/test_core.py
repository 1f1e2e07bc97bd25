import copy
import os
import tempfile
import unittest
from unittest.mock import MagicMock

from pathfinder_pad import core
from pathfinder_pad.candidates import Candidate, CandidateKind, Span
from pathfinder_pad.config import DEFAULT_CONFIG
from pathfinder_pad.errors import NoCandidateError, UserCancelled


class FakeHost(core.HostView):
    """In-memory host: a list of lines, a cursor and recorded side effects."""

    def __init__(self, lines, context_dir, cursor=(1, 0), keys=(), **overrides):
        self.lines = list(lines)
        self.cursor = cursor
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        self._config["search_path"] = []
        self._config.update(overrides)
        self._context_dir = context_dir
        self.keys = list(keys)
        self.opened = []
        self.notifications = []
        self.redispatched = []
        self.overlays = []
        self.cleared = 0

    @property
    def config(self):
        return self._config

    def line_count(self):
        return len(self.lines)

    def get_lines(self, first, last):
        return [(n, self.lines[n - 1]) for n in range(max(first, 1), min(last, len(self.lines)) + 1)]

    def visible_range(self):
        return 1, len(self.lines)

    def get_cursor_position(self):
        return self.cursor

    def set_cursor(self, lnum, col):
        self.cursor = (lnum, col)

    def open_target(self, path, line=None, col=None):
        self.opened.append((path, line, col))

    def notify(self, message, level="info"):
        self.notifications.append(message)

    def context_dir(self):
        return self._context_dir

    def render_overlay(self, items):
        self.overlays.append(items)

    def clear_overlays(self):
        self.cleared += 1

    def read_key(self):
        return self.keys.pop(0) if self.keys else None

    def redispatch_key(self, key):
        self.redispatched.append(key)


class HostTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = self.tmp.name

    def tearDown(self):
        self.tmp.cleanup()

    def touch(self, *names):
        for name in names:
            with open(os.path.join(self.root, name), "w", encoding="utf-8") as fh:
                fh.write("x\n")

    def path(self, name):
        return os.path.normpath(os.path.join(self.root, name))

    def host(self, lines, **kwargs):
        return FakeHost(lines, self.root, **kwargs)


class TestGotoFile(HostTestCase):

    def test_gf_opens_file_after_cursor(self):
        self.touch("foo.c")
        host = self.host(["see foo.c:42:7 here"])
        core.run_command(host, core.gf)
        self.assertEqual(host.opened, [(self.path("foo.c"), None, None)])
        self.assertEqual(host.notifications, [])

    def test_gF_opens_at_line_and_column(self):
        self.touch("foo.c")
        host = self.host(["see foo.c:42:7 here"])
        core.run_command(host, core.gF)
        self.assertEqual(host.opened, [(self.path("foo.c"), 42, 7)])

    def test_gF_count_is_the_line(self):
        self.touch("foo.c")
        host = self.host(["see foo.c:42:7 here"])
        core.run_command(host, core.gF, 10)
        self.assertEqual(host.opened, [(self.path("foo.c"), 10, None)])

    def test_gf_count_skips_unresolvable(self):
        self.touch("a.txt", "c.txt")
        host = self.host(["a.txt b.txt c.txt"])
        core.run_command(host, core.gf, 2)
        self.assertEqual(host.opened, [(self.path("c.txt"), None, None)])

    def test_gf_prefers_file_under_cursor(self):
        self.touch("a.txt", "b.txt")
        host = self.host(["a.txt b.txt"], cursor=(1, 7))
        core.run_command(host, core.gf)
        self.assertEqual(host.opened, [(self.path("b.txt"), None, None)])

    def test_gF_without_line_opens_line_one(self):
        self.touch("a.txt")
        host = self.host(["a.txt"])
        core.run_command(host, core.gF)
        self.assertEqual(host.opened, [(self.path("a.txt"), 1, None)])

    def test_nothing_found_notifies_once(self):
        host = self.host(["nothing here"])
        core.run_command(host, core.gf)
        self.assertEqual(host.opened, [])
        self.assertEqual(host.notifications, ["Valid file target not found"])

    def test_too_few_files(self):
        self.touch("a.txt")
        host = self.host(["a.txt b.txt"])
        core.run_command(host, core.gf, 3)
        self.assertEqual(host.notifications, ["Valid file target not found (1 available)"])


class TestJumpFile(HostTestCase):

    def test_next_and_prev(self):
        self.touch("a.txt", "b.txt")
        host = self.host(["a.txt", "", "b.txt"])
        core.run_command(host, core.next_file)
        self.assertEqual(host.cursor, (3, 0))
        core.run_command(host, core.prev_file)
        self.assertEqual(host.cursor, (1, 0))
        self.assertEqual(host.opened, [])

    def test_next_with_too_large_count(self):
        self.touch("a.txt", "b.txt")
        host = self.host(["a.txt", "b.txt"])
        core.run_command(host, core.next_file, 3)
        self.assertEqual(host.cursor, (1, 0))
        self.assertEqual(host.notifications, ["Forward file target not found (1 available)"])


class TestSelectFile(HostTestCase):

    def test_select_opens_labelled_file(self):
        self.touch("a.txt", "b.txt")
        host = self.host(["a.txt b.txt:3"], keys=["s"])
        core.run_command(host, core.select_file)
        self.assertEqual(host.opened, [(self.path("b.txt"), None, None)])
        self.assertEqual(host.cleared, 1)
        first_overlay = host.overlays[0]
        self.assertEqual([item.style for item in first_overlay], ["candidate", "candidate"])

    def test_select_file_line(self):
        self.touch("a.txt", "b.txt")
        host = self.host(["a.txt b.txt:3"], keys=["s"])
        core.run_command(host, core.select_file_line)
        self.assertEqual(host.opened, [(self.path("b.txt"), 3, None)])

    def test_unmatched_key_cancels_and_redispatches(self):
        self.touch("a.txt", "b.txt")
        host = self.host(["a.txt b.txt"], keys=["x"])
        core.run_command(host, core.select_file)
        self.assertEqual(host.opened, [])
        self.assertEqual(host.redispatched, ["x"])
        self.assertEqual(host.notifications, [])

    def test_nothing_to_select(self):
        host = self.host(["no files"])
        core.run_command(host, core.select_file)
        self.assertEqual(host.notifications, ["Valid file target not found"])


class TestAmbiguousTargets(HostTestCase):

    def setUp(self):
        super().setUp()
        for folder in ("a", "b"):
            os.makedirs(os.path.join(self.root, folder))
            self.touch(os.path.join(folder, "x.txt"))
        self.touch("y.txt")

    def test_cancelled_prompt_opens_nothing(self):
        host = self.host(["y.txt x.txt"], search_path=["a", "b"])
        host.prompt_choice = MagicMock(return_value=None)
        with self.assertRaises(UserCancelled):
            core.gf(host, 2)
        core.run_command(host, core.gf, 2)
        self.assertEqual(host.opened, [])
        self.assertEqual(host.notifications, [])
        self.assertEqual(host.prompt_choice.call_count, 2)
        self.assertIn("x.txt", host.prompt_choice.call_args[0][1])

    def test_prompt_under_cursor_cancelled(self):
        host = self.host(["x.txt"], search_path=["a", "b"])
        host.prompt_choice = MagicMock(return_value=None)
        with self.assertRaises(UserCancelled):
            core.gf(host)
        self.assertEqual(host.opened, [])

    def test_prompt_choice_is_opened(self):
        host = self.host(["y.txt x.txt"], search_path=["a", "b"])
        host.prompt_choice = MagicMock(side_effect=lambda options, title: options[1])
        core.run_command(host, core.gf, 2)
        self.assertEqual(host.opened, [(self.path(os.path.join("b", "x.txt")), None, None)])


class TestPlumbing(HostTestCase):

    def test_open_url_is_reported_when_unsupported(self):
        host = self.host([""])

        def open_example(view):
            view.open_url("https://example.com")

        core.run_command(host, open_example)
        self.assertEqual(host.notifications, ["Opening URLs is not supported"])

    def test_show_text_defaults_to_a_notification(self):
        host = self.host([""])
        host.show_text("https://example.com", "An example")
        self.assertEqual(host.notifications, ["https://example.com: An example"])

    def test_cancel_is_silent(self):
        host = self.host([""])
        command = MagicMock(side_effect=UserCancelled())
        self.assertIsNone(core.run_command(host, command))
        self.assertEqual(host.notifications, [])

    def test_error_message_reported(self):
        host = self.host([""])
        command = MagicMock(side_effect=NoCandidateError("No URL candidates found"))
        core.run_command(host, command)
        self.assertEqual(host.notifications, ["No URL candidates found"])

    def test_scan_range(self):
        host = self.host(["x"] * 20, cursor=(5, 0))
        self.assertEqual(core.scan_range(host, core.FORWARD, 0), (5, 20))
        self.assertEqual(core.scan_range(host, core.FORWARD, 3), (5, 7))
        self.assertEqual(core.scan_range(host, core.BACKWARD, 3), (3, 5))
        self.assertEqual(core.scan_range(host, core.BACKWARD, 0), (1, 5))
        self.assertEqual(core.scan_range(host, core.FORWARD, -1), (5, 20))

    def test_order_around_cursor(self):
        def cand(lnum, start):
            return Candidate(raw_text="x.c", logical_line=lnum, start_col=start + 1, end_col=start + 3,
                             kind=CandidateKind.WORD, target_span=[Span(lnum, start, start + 3)])

        before, current, after, later = cand(1, 0), cand(2, 4), cand(2, 10), cand(3, 0)
        cursor = (2, 5)
        cands = [later, before, after, current]
        self.assertEqual(core.order_around_cursor(cands, cursor, core.FORWARD), [after, later])
        self.assertEqual(core.order_around_cursor(cands, cursor, core.BACKWARD), [before])
        self.assertEqual(core.order_around_cursor(cands, cursor, core.FORWARD, include_current=True),
                         [current, after, later])

    def test_candidate_under_cursor(self):
        host = self.host(["open (src/a.c) now"], cursor=(1, 7))
        self.assertEqual(core.candidate_under_cursor(host).raw_text, "src/a.c")

    def test_candidate_under_cursor_on_empty_line(self):
        self.assertIsNone(core.candidate_under_cursor(self.host([""])))


if __name__ == '__main__':
    unittest.main()
