import unittest

from pathfinder_pad.candidates import (
    Candidate,
    CandidateKind,
    PhysicalLine,
    Span,
    collect_candidates_in_range,
    deduplicate_candidates,
    range_to_spans,
    scan_line,
    slice_spans,
    span_text,
)
from pathfinder_pad.config import ScanConfig


def raw_texts(candidates, kind=None):
    return [c.raw_text for c in candidates if kind is None or c.kind is kind]


class TestStructuredScanning(unittest.TestCase):

    def setUp(self):
        self.words_only = ScanConfig.from_pairs({}, scan_unenclosed_words=True)

    def test_colon_line_number(self):
        cands = scan_line("see foo.c:42 for details", 1, self.words_only)
        structured = [c for c in cands if c.kind is CandidateKind.STRUCTURED]
        self.assertEqual(len(structured), 1)
        self.assertEqual(structured[0].raw_text, "foo.c")
        self.assertEqual(structured[0].line_number, 42)
        self.assertIsNone(structured[0].column_number)

    def test_line_and_column(self):
        cands = scan_line("src/main.c:42:7: error", 3, self.words_only)
        first = cands[0]
        self.assertEqual(first.raw_text, "src/main.c")
        self.assertEqual((first.line_number, first.column_number), (42, 7))
        self.assertEqual(first.target_span, [Span(3, 0, 10)])
        self.assertEqual(first.line_number_span, [Span(3, 11, 13)])
        self.assertEqual(first.column_number_span, [Span(3, 14, 15)])

    def test_parenthesised_line(self):
        cands = scan_line("Program.cs(12,3): warning", 1, self.words_only)
        self.assertEqual(cands[0].raw_text, "Program.cs")
        self.assertEqual((cands[0].line_number, cands[0].column_number), (12, 3))

    def test_at_line(self):
        cands = scan_line("at init.lua@12", 1, self.words_only)
        structured = [c for c in cands if c.kind is CandidateKind.STRUCTURED]
        self.assertEqual(raw_texts(structured), ["init.lua"])
        self.assertEqual(structured[0].line_number, 12)
        self.assertEqual(structured[0].column_number_span, [])

    def test_python_traceback_line(self):
        line = '"foo.py", line 12'
        cands = scan_line(line, 1, self.words_only)
        self.assertEqual(len(cands), 1)
        self.assertEqual(cands[0].raw_text, "foo.py")
        self.assertEqual(cands[0].line_number, 12)
        self.assertEqual(cands[0].target_span, [Span(1, 1, 7)])
        self.assertEqual(cands[0].line_number_span, [Span(1, 15, 17)])

    def test_suffix_followed_by_filename_text_is_not_structured(self):
        config = ScanConfig.from_pairs({"(": ")"})
        cands = scan_line("main.c(5).o", 1, config)
        self.assertEqual(raw_texts(cands), ["main.c(5).o"])
        self.assertIsNone(cands[0].line_number)


class TestEnclosureScanning(unittest.TestCase):

    def test_enclosed_list(self):
        config = ScanConfig.from_pairs({"(": ")"})
        cands = scan_line("(a.txt, b.txt)", 5, config)
        self.assertEqual(raw_texts(cands), ["a.txt", "b.txt"])
        for cand in cands:
            self.assertIs(cand.kind, CandidateKind.ENCLOSED)
            self.assertEqual(cand.logical_line, 5)
        self.assertEqual([c.start_col for c in cands], [2, 9])

    def test_escaped_space(self):
        config = ScanConfig.from_pairs({"'": "'"})
        cands = scan_line("'esc\\ aped.txt'", 1, config)
        self.assertEqual(len(cands), 1)
        cand = cands[0]
        self.assertEqual(cand.raw_text, "esc aped.txt")
        self.assertEqual(cand.start_col, 2)
        self.assertEqual(cand.end_col, cand.start_col + len(cand.raw_text))
        line = "'esc\\ aped.txt'"
        self.assertEqual(span_text(cand.target_span, lambda _lnum: line), "esc aped.txt")

    def test_nested_delimiters_are_stripped(self):
        config = ScanConfig.from_pairs({"(": ")"})
        cands = scan_line("((foo.txt))", 1, config)
        self.assertEqual(raw_texts(cands), ["foo.txt"])
        self.assertEqual(cands[0].target_span, [Span(1, 2, 9)])

    def test_multi_character_delimiters(self):
        config = ScanConfig.from_pairs({"<": ">", "<<": ">>"}, scan_unenclosed_words=False)
        cands = scan_line("see <<dir/a.txt>> now", 1, config)
        self.assertEqual(raw_texts(cands), ["dir/a.txt"])

    def test_glued_parenthesis_is_not_an_enclosure(self):
        glued = ScanConfig.from_pairs({"(": ")"})
        cands = scan_line("call foo(bar.txt)", 1, glued)
        self.assertEqual(raw_texts(cands, CandidateKind.ENCLOSED), [])

        unglued = ScanConfig.from_pairs({"(": ")"}, glued_openings=[])
        cands = scan_line("call foo(bar.txt)", 1, unglued)
        self.assertEqual(raw_texts(cands, CandidateKind.ENCLOSED), ["bar.txt"])

    def test_unbalanced_opener_is_plain_text(self):
        config = ScanConfig.from_pairs({"(": ")"})
        cands = scan_line("( lonely.txt", 1, config)
        self.assertEqual(raw_texts(cands), ["lonely.txt"])

    def test_malformed_pair_is_skipped(self):
        config = ScanConfig.from_pairs({"": ")", "[": "]"})
        self.assertEqual(config.enclosure_pairs, (("[", "]"),))


class TestScanInvariants(unittest.TestCase):

    def setUp(self):
        self.config = ScanConfig.from_pairs({"(": ")", '"': '"'})
        self.line = 'foo.c:42:7 (bar.h) baz/qux.py "x y.txt"'

    def test_target_spans_cover_raw_text(self):
        for cand in scan_line(self.line, 1, self.config):
            self.assertLessEqual(cand.start_col, cand.end_col)
            self.assertEqual(span_text(cand.target_span, lambda _lnum: self.line), cand.raw_text)

    def test_sorted_by_start_column(self):
        cands = scan_line(self.line, 1, self.config)
        self.assertEqual(raw_texts(cands), ["foo.c", "bar.h", "baz/qux.py", "x y.txt"])
        starts = [c.start_col for c in cands]
        self.assertEqual(starts, sorted(starts))

    def test_min_col_drops_earlier_candidates(self):
        config = ScanConfig.from_pairs({})
        cands = scan_line("a.txt b.txt", 1, config, min_col=7)
        self.assertEqual(raw_texts(cands), ["b.txt"])

    def test_overlong_candidate_is_rejected(self):
        config = ScanConfig.from_pairs({}, max_length=8)
        cands = scan_line("short.c very/long/name.c", 1, config)
        self.assertEqual(raw_texts(cands), ["short.c"])

    def test_no_identifier_character_is_rejected(self):
        cands = scan_line("--- ... ///", 1, ScanConfig.from_pairs({}))
        self.assertEqual(cands, [])


class TestSpanGeometry(unittest.TestCase):

    def test_range_across_wrapped_lines(self):
        physical = [PhysicalLine(7, 1, 4), PhysicalLine(8, 5, 4)]
        self.assertEqual(range_to_spans(3, 6, 7, physical), [Span(7, 2, 4), Span(8, 0, 2)])

    def test_empty_range(self):
        self.assertEqual(range_to_spans(5, 4, 1), [])

    def test_slice_spans(self):
        spans = [Span(1, 4, 8), Span(2, 0, 3)]
        self.assertEqual(slice_spans(spans, 2, 6), [Span(1, 6, 8), Span(2, 0, 2)])

    def test_hard_wrapped_candidate(self):
        lines = [(1, "abcde/fgh"), (2, "ij.txt")]
        cands = collect_candidates_in_range(lines, ScanConfig.from_pairs({}), wrap_width=9)
        self.assertEqual(raw_texts(cands), ["abcde/fghij.txt"])
        self.assertEqual(cands[0].target_span, [Span(1, 0, 9), Span(2, 0, 6)])
        self.assertEqual(cands[0].anchor, (1, 0))
        self.assertEqual(cands[0].last_position, (2, 5))


class TestDeduplication(unittest.TestCase):

    def make(self, start, line_number=None, order=0):
        return Candidate(
            raw_text="foo.c",
            logical_line=1,
            start_col=start,
            end_col=start + 4,
            kind=CandidateKind.WORD,
            line_number=line_number,
            target_span=[Span(1, start - 1, start + 4)],
            order=order,
        )

    def test_near_duplicates_are_merged(self):
        first = self.make(1, order=0)
        second = self.make(3, line_number=9, order=1)
        merged = deduplicate_candidates([second, first])
        self.assertEqual(len(merged), 1)
        self.assertEqual(merged[0].start_col, 1)
        self.assertEqual(merged[0].end_col, 7)
        self.assertEqual(merged[0].line_number, 9)
        self.assertIsNone(first.line_number)

    def test_distant_candidates_are_kept(self):
        merged = deduplicate_candidates([self.make(1), self.make(10, order=1)])
        self.assertEqual([c.start_col for c in merged], [1, 10])

    def test_idempotent(self):
        config = ScanConfig.from_pairs({"(": ")", "[": "]"})
        lines = [(1, "[(a.txt)] a.txt:3 b.c"), (2, "(b.c) b.c")]
        once = collect_candidates_in_range(lines, config)
        twice = deduplicate_candidates(once)
        self.assertEqual(
            [(c.logical_line, c.raw_text, c.start_col, c.end_col) for c in once],
            [(c.logical_line, c.raw_text, c.start_col, c.end_col) for c in twice],
        )


if __name__ == '__main__':
    unittest.main()
