import unittest
from unittest.mock import MagicMock

from pathfinder_pad.candidates import Candidate, CandidateKind, Span
from pathfinder_pad.visual_select import (
    OverlayItem,
    OverlayRenderer,
    SelectionLoop,
    SelectionState,
    assign_labels,
    build_overlay,
    label_capacity,
    run_selection_loop,
)


def make_candidates(count):
    return [
        Candidate(raw_text=f"f{i}.txt", logical_line=i + 1, start_col=1, end_col=6,
                  kind=CandidateKind.WORD, target_span=[Span(i + 1, 0, 6)])
        for i in range(count)
    ]


class TestLabels(unittest.TestCase):

    def test_capacity(self):
        self.assertEqual(label_capacity(7, 1), 7)
        self.assertEqual(label_capacity(7, 2), 42)
        self.assertEqual(label_capacity(3, 3), 12)

    def test_labels_unique_fixed_length_without_repeats(self):
        cands = make_candidates(50)
        length = assign_labels(cands, list("asdfjkl"))
        self.assertEqual(length, 3)
        labels = [c.label for c in cands]
        self.assertEqual(len(set(labels)), 50)
        for label in labels:
            self.assertEqual(len(label), 3)
            self.assertNotEqual(label[0], label[1])
            self.assertNotEqual(label[1], label[2])

    def test_depth_first_order(self):
        cands = make_candidates(4)
        self.assertEqual(assign_labels(cands, ["a", "s", "d"]), 2)
        self.assertEqual([c.label for c in cands], ["as", "ad", "sa", "sd"])

    def test_single_letter_labels_when_they_suffice(self):
        cands = make_candidates(3)
        self.assertEqual(assign_labels(cands, list("asdfjkl")), 1)
        self.assertEqual([c.label for c in cands], ["a", "s", "d"])

    def test_too_few_keys(self):
        with self.assertRaises(ValueError):
            assign_labels(make_candidates(2), ["a"])
        with self.assertRaises(ValueError):
            assign_labels(make_candidates(3), ["a", "b"])

    def test_empty(self):
        self.assertEqual(assign_labels([], ["a", "b"]), 0)


class TestSelectionLoop(unittest.TestCase):

    def test_prefix_narrowing(self):
        first, second = make_candidates(2)
        first.label, second.label = "ab", "ba"
        loop = SelectionLoop([first, second])
        self.assertIs(loop.feed("a"), SelectionState.RUNNING)
        self.assertEqual(loop.live, [first])
        self.assertIs(loop.feed("b"), SelectionState.SELECTED)
        self.assertIs(loop.selected, first)

    def test_backspace(self):
        first, second = make_candidates(2)
        first.label, second.label = "ab", "ba"
        loop = SelectionLoop([first, second])
        loop.feed("a")
        loop.feed("backspace")
        self.assertEqual(loop.prefix, "")
        self.assertIs(loop.feed("backspace"), SelectionState.CANCELLED)

    def test_unmatched_key_cancels(self):
        cands = make_candidates(2)
        assign_labels(cands, ["a", "s"])
        loop = SelectionLoop(cands)
        self.assertIs(loop.feed("z"), SelectionState.CANCELLED)
        self.assertIsNone(loop.selected)


class TestRunSelectionLoop(unittest.TestCase):

    def setUp(self):
        self.cands = make_candidates(4)
        self.render = MagicMock()
        self.clear = MagicMock()
        self.redispatch = MagicMock()

    def run_keys(self, keys):
        feed = iter(keys)
        return run_selection_loop(
            self.cands, ["a", "s", "d"],
            read_key=lambda: next(feed, None),
            render=self.render,
            clear=self.clear,
            redispatch=self.redispatch,
        )

    def test_select(self):
        chosen = self.run_keys(["s", "d"])
        self.assertIs(chosen, self.cands[3])
        self.assertEqual(self.render.call_count, 2)
        self.clear.assert_called_once()
        self.redispatch.assert_not_called()
        self.assertTrue(all(c.label is None for c in self.cands))

    def test_backspace_then_select(self):
        chosen = self.run_keys(["a", "backspace", "s", "a"])
        self.assertIs(chosen, self.cands[2])

    def test_invalid_key_is_redispatched(self):
        self.assertIsNone(self.run_keys(["q"]))
        self.redispatch.assert_called_once_with("q")
        self.clear.assert_called_once()

    def test_backspace_on_empty_prefix_cancels_quietly(self):
        self.assertIsNone(self.run_keys(["backspace"]))
        self.redispatch.assert_not_called()

    def test_end_of_input_cancels(self):
        self.assertIsNone(self.run_keys([]))
        self.clear.assert_called_once()

    def test_overlay_cleared_when_render_fails(self):
        self.render.side_effect = RuntimeError("boom")
        with self.assertRaises(RuntimeError):
            self.run_keys(["a"])
        self.clear.assert_called_once()
        self.assertTrue(all(c.label is None for c in self.cands))


class TestOverlay(unittest.TestCase):

    def test_build_overlay_styles(self):
        cand, other = make_candidates(2)
        cand.label, other.label = "as", "sa"
        cand.line_number_span = [Span(1, 7, 9)]
        items = build_overlay([cand, other], "a")
        self.assertEqual(items[0], OverlayItem(Span(1, 0, 6), "candidate", (("s", "next_key"),)))
        self.assertEqual(items[1], OverlayItem(Span(1, 7, 9), "line_number"))
        self.assertEqual(items[2].style, "dim")

    def test_future_keys(self):
        (cand,) = make_candidates(1)
        cand.label = "asd"
        items = build_overlay([cand], "")
        self.assertEqual(items[0].virtual_text, (("a", "next_key"), ("sd", "future_keys")))

    def test_renderer_draws_label_text(self):
        stdscr = MagicMock()
        stdscr.getmaxyx.return_value = (24, 80)
        renderer = OverlayRenderer(stdscr, {"candidate": 1, "next_key": 2}, lambda lnum, col: (lnum - 1, col + 4))
        renderer.draw([OverlayItem(Span(1, 0, 6), "candidate", (("a", "next_key"),))])
        stdscr.chgat.assert_called_once_with(0, 4, 6, 1)
        stdscr.addstr.assert_called_once_with(0, 4, "a", 2)


if __name__ == '__main__':
    unittest.main()
