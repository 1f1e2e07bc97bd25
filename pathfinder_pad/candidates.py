"""candidates.py – candidate model, span geometry, scanner and de-duplication

A *candidate* is a substring of the visible text that looks like a file path
(optionally followed by a line/column suffix) or a URL. This module turns one
logical line of text into an ordered list of ``Candidate`` records:

    • **Structured pass** – fixed ``name SEP number [SEP number]`` idioms such as
      ``foo.c:42:7``, ``main.c(5)``, ``x.py@12`` or ``"x.py", line 3``.
    • **Enclosure pass** – text between configured (possibly multi-character,
      possibly nested) delimiters, split on unescaped ``,`` ``;`` ``|``.
    • **Word pass** – whitespace-delimited tokens in the remaining gaps.

Every character of a candidate is tracked back to its column in the logical
line, so highlight spans stay exact even after escapes are removed and even
when the logical line is made of several hard-wrapped physical lines.

Scanning never raises: malformed input simply yields fewer candidates.
"""

from __future__ import annotations

import itertools
import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .config import ScanConfig
from .utils import get_merged_line

logger = logging.getLogger("pathfinder.candidates")

SEPARATORS = ",;|"
ESCAPABLE = " " + SEPARATORS
TRAILING_PUNCTUATION = ".,:;!"
DUPLICATE_TOLERANCE = 2


# ──────────────────────────── Data model ────────────────────────────

class CandidateKind(Enum):
    STRUCTURED = "structured"
    ENCLOSED = "enclosed"
    WORD = "free-word"


@dataclass(frozen=True, slots=True)
class Span:
    """A highlighted range on one physical line (0-based, end exclusive)."""

    lnum: int
    start_col: int
    end_col: int

    @property
    def width(self) -> int:
        return self.end_col - self.start_col


@dataclass(frozen=True, slots=True)
class PhysicalLine:
    """Maps ``length`` characters starting at 1-based ``start_pos`` of a
    logical line back to physical line ``lnum``."""

    lnum: int
    start_pos: int
    length: int


@dataclass
class Candidate:
    raw_text: str
    logical_line: int
    start_col: int
    end_col: int
    kind: CandidateKind
    line_number: Optional[int] = None
    column_number: Optional[int] = None
    target_span: List[Span] = field(default_factory=list)
    line_number_span: List[Span] = field(default_factory=list)
    column_number_span: List[Span] = field(default_factory=list)
    order: int = 0
    resolved_path: Optional[str] = None
    label: Optional[str] = None
    url: Optional[str] = None

    @property
    def anchor(self) -> Tuple[int, int]:
        """Physical ``(lnum, col)`` of the first highlighted character."""
        if self.target_span:
            first = self.target_span[0]
            return first.lnum, first.start_col
        return self.logical_line, self.start_col - 1

    @property
    def last_position(self) -> Tuple[int, int]:
        """Physical ``(lnum, col)`` of the last character of the whole match."""
        spans = self.target_span + self.line_number_span + self.column_number_span
        if not spans:
            return self.logical_line, self.end_col - 1
        last = max(spans, key=lambda s: (s.lnum, s.end_col))
        return last.lnum, last.end_col - 1


# ──────────────────────────── Span geometry ────────────────────────────

def range_to_spans(
        start_col: int,
        end_col: int,
        logical_line: int,
        physical_lines: Optional[Sequence[PhysicalLine]] = None,
) -> List[Span]:
    """
    Converts an inclusive, 1-based column range of a logical line into spans.

    Without ``physical_lines`` the logical line is a single physical line
    numbered ``logical_line``. With them, the range is cut at every physical
    line boundary it crosses, in physical-line order.

    Args:
        start_col (int): First column (1-based, inclusive).
        end_col (int): Last column (1-based, inclusive).
        logical_line (int): Line number used when there is no wrapping.
        physical_lines (Optional[Sequence[PhysicalLine]]): Wrap bookkeeping.

    Returns:
        List[Span]: Zero or more spans; empty when ``start_col > end_col``.

    Example:
        >>> range_to_spans(3, 5, 10)
        [Span(lnum=10, start_col=2, end_col=5)]
    """
    if start_col > end_col:
        return []
    if not physical_lines:
        return [Span(logical_line, start_col - 1, end_col)]
    spans: List[Span] = []
    for pl in physical_lines:
        lo = max(start_col, pl.start_pos)
        hi = min(end_col, pl.start_pos + pl.length - 1)
        if lo <= hi:
            spans.append(Span(pl.lnum, lo - pl.start_pos, hi - pl.start_pos + 1))
    return spans


def _runs(positions: Sequence[int]) -> Iterator[Tuple[int, int]]:
    """Groups ascending positions into inclusive ``(first, last)`` runs."""
    run_start = prev = None
    for pos in positions:
        if run_start is None:
            run_start = prev = pos
        elif pos == prev + 1:
            prev = pos
        else:
            yield run_start, prev
            run_start = prev = pos
    if run_start is not None:
        yield run_start, prev


def spans_for_positions(
        positions: Sequence[int],
        logical_line: int,
        physical_lines: Optional[Sequence[PhysicalLine]] = None,
) -> List[Span]:
    """Spans covering exactly the given 1-based logical columns."""
    spans: List[Span] = []
    for first, last in _runs(positions):
        spans.extend(range_to_spans(first, last, logical_line, physical_lines))
    return spans


def slice_spans(spans: Sequence[Span], start: int, stop: int) -> List[Span]:
    """Spans for characters ``start:stop`` of the text the spans cover."""
    result: List[Span] = []
    offset = 0
    for span in spans:
        lo = max(start, offset)
        hi = min(stop, offset + span.width)
        if lo < hi:
            result.append(Span(span.lnum, span.start_col + lo - offset, span.start_col + hi - offset))
        offset += span.width
    return result


def span_text(spans: Iterable[Span], get_line: Callable[[int], str]) -> str:
    """Concatenates the text the spans cover, reading lines via ``get_line``."""
    return "".join(get_line(span.lnum)[span.start_col:span.end_col] for span in spans)


# ──────────────────────────── Position-tracked text ────────────────────────────

class _Tracked:
    """A string whose characters remember their 1-based logical column."""

    __slots__ = ("text", "positions")

    def __init__(self, text: str, positions: List[int]):
        self.text = text
        self.positions = positions

    @classmethod
    def from_line(cls, line: str, start: int, end: int) -> "_Tracked":
        return cls(line[start:end], list(range(start + 1, end + 1)))

    def __len__(self) -> int:
        return len(self.text)

    def __getitem__(self, item: slice) -> "_Tracked":
        return _Tracked(self.text[item], self.positions[item])

    def strip(self, chars: Optional[str] = None) -> "_Tracked":
        left = len(self.text) - len(self.text.lstrip(chars))
        right = len(self.text.rstrip(chars))
        if right <= left:
            return _Tracked("", [])
        return self[left:right]

    def rstrip(self, chars: Optional[str] = None) -> "_Tracked":
        return self[:len(self.text.rstrip(chars))]

    def lstrip(self, chars: Optional[str] = None) -> "_Tracked":
        return self[len(self.text) - len(self.text.lstrip(chars)):]


# ──────────────────────────── Structured idioms ────────────────────────────

_NAME_CHAR = r"[^\s:@()\[\]{}<>\"'`,;|]"
_NAME = r"(?:[A-Za-z]:)?" + _NAME_CHAR + r"+"
_BOUNDARY = r"(?<!" + _NAME_CHAR + r")"

# Tried in priority order; later patterns skip columns claimed by earlier ones.
STRUCTURED_PATTERNS: Tuple[re.Pattern, ...] = (
    # main.c(5)  /  file.cs(12,3)
    re.compile(_BOUNDARY + r"(?P<name>" + _NAME + r")\((?P<line>\d+)(?:,\s*(?P<col>\d+))?\)"),
    # foo.c:42  /  foo.c:42:7
    re.compile(_BOUNDARY + r"(?P<name>" + _NAME + r"):(?P<line>\d+)(?::(?P<col>\d+))?"),
    # foo.lua@12
    re.compile(_BOUNDARY + r"(?P<name>" + _NAME + r")@(?P<line>\d+)"),
    # "foo.py", line 12  /  foo.py on line 12, column 3
    re.compile(
        _BOUNDARY + r"(?P<q>[\"']?)(?P<name>" + _NAME + r")(?P=q),?\s+(?:on\s+)?line\s+(?P<line>\d+)"
        r"(?:,?\s+col(?:umn)?\s+(?P<col>\d+))?"
    ),
    # foo.c 42
    re.compile(_BOUNDARY + r"(?P<name>" + _NAME + r") (?P<line>\d+)(?::(?P<col>\d+))?"),
)

# Position suffixes recognised at the end of enclosed and free-word pieces.
_PIECE_SUFFIXES: Tuple[re.Pattern, ...] = (
    re.compile(r"\((?P<line>\d+)(?:,\s*(?P<col>\d+))?\)$"),
    re.compile(r":(?P<line>\d+)(?::(?P<col>\d+))?$"),
    re.compile(r"@(?P<line>\d+)$"),
    re.compile(r",?\s+line\s+(?P<line>\d+)(?:,?\s+col(?:umn)?\s+(?P<col>\d+))?$"),
    re.compile(r"\s+(?P<line>\d+)$"),
)

# Suffix allowed right after a closing delimiter: ``"x", line 3`` or ``(x):3``.
_CLOSING_SUFFIXES: Tuple[re.Pattern, ...] = (
    re.compile(r",?\s*line\s+(?P<line>\d+)(?:,\s*col(?:umn)?\s+(?P<col>\d+))?"),
    re.compile(r":(?P<line>\d+)(?::(?P<col>\d+))?"),
)

_IDENTIFIER_RE = re.compile(r"\w")


def _looks_like_path(name: str) -> bool:
    if name.startswith("//"):
        return False
    if not _IDENTIFIER_RE.search(name):
        return False
    return (
        "/" in name
        or "\\" in name
        or name.startswith("~")
        or re.search(r"\.\w+$", name) is not None
    )


def _continues_filename(line: str, end: int) -> bool:
    """True when the text at ``end`` still reads as part of a file name."""
    if end >= len(line):
        return False
    ch = line[end]
    if ch.isalnum() or ch in "_/\\":
        return True
    if ch == "." and end + 1 < len(line):
        nxt = line[end + 1]
        return nxt.isalnum() or nxt == "_"
    return False


def _overlaps(start: int, end: int, claimed: Sequence[Tuple[int, int]]) -> bool:
    return any(start < c_end and c_start < end for c_start, c_end in claimed)


def _group_text(match: re.Match, group: str) -> Optional[str]:
    if group not in match.re.groupindex:
        return None
    return match.group(group)


def _group_positions(match: re.Match, group: str) -> List[int]:
    if _group_text(match, group) is None:
        return []
    return list(range(match.start(group) + 1, match.end(group) + 1))


# ──────────────────────────── Scanner ────────────────────────────

class _LineScanner:
    """Single-use scanner for one logical line; see ``scan_line``."""

    def __init__(self, line: str, logical_line: int, config: ScanConfig,
                 physical_lines: Optional[Sequence[PhysicalLine]], counter: Iterator[int]):
        self.line = line
        self.logical_line = logical_line
        self.config = config
        self.physical_lines = physical_lines
        self.counter = counter
        self.claimed: List[Tuple[int, int]] = []
        self.candidates: List[Candidate] = []

    # --- helpers ---
    def _spans(self, positions: Sequence[int]) -> List[Span]:
        return spans_for_positions(positions, self.logical_line, self.physical_lines)

    def _acceptable(self, name: str) -> bool:
        if not name or len(name) > self.config.max_length:
            return False
        return _IDENTIFIER_RE.search(name) is not None

    def _emit(self, name: _Tracked, kind: CandidateKind, start_col: int, end_col: int,
              line: Optional[_Tracked] = None, col: Optional[_Tracked] = None) -> None:
        self.candidates.append(Candidate(
            raw_text=name.text,
            logical_line=self.logical_line,
            start_col=start_col,
            end_col=end_col,
            kind=kind,
            line_number=int(line.text) if line else None,
            column_number=int(col.text) if col else None,
            target_span=self._spans(name.positions),
            line_number_span=self._spans(line.positions) if line else [],
            column_number_span=self._spans(col.positions) if col else [],
            order=next(self.counter),
        ))

    # --- pass 1 ---
    def scan_structured(self) -> None:
        line = self.line
        for pattern in STRUCTURED_PATTERNS:
            pos = 0
            while pos <= len(line):
                match = pattern.search(line, pos)
                if match is None:
                    break
                start, end = match.span()
                name = match.group("name")
                if (
                        _overlaps(start, end, self.claimed)
                        or _continues_filename(line, end)
                        or not _looks_like_path(name)
                        or not self._acceptable(name)
                ):
                    pos = start + 1
                    continue
                self.claimed.append((start, end))
                name_positions = _group_positions(match, "name")
                line_positions = _group_positions(match, "line")
                col_positions = _group_positions(match, "col")
                self._emit(
                    _Tracked(name, name_positions),
                    CandidateKind.STRUCTURED,
                    start_col=name_positions[0],
                    end_col=end,
                    line=_Tracked(match.group("line"), line_positions),
                    col=_Tracked(_group_text(match, "col"), col_positions) if col_positions else None,
                )
                pos = end
        self.claimed.sort()

    # --- pass 2 ---
    def _opening_at(self, pos: int) -> Optional[str]:
        for opening in self.config.openings:
            if self.line.startswith(opening, pos):
                return opening
        return None

    def _find_closing(self, opening: str, closing: str, pos: int) -> Optional[int]:
        """Index of the matching closing delimiter for an opener ending at ``pos``."""
        line = self.line
        if opening == closing:
            idx = pos
            while True:
                idx = line.find(closing, idx)
                if idx < 0:
                    return None
                if idx > 0 and line[idx - 1] == "\\":
                    idx += 1
                    continue
                return idx
        depth = 1
        idx = pos
        while idx < len(line):
            if line.startswith(closing, idx):
                depth -= 1
                if depth == 0:
                    return idx
                idx += len(closing)
            elif line.startswith(opening, idx):
                depth += 1
                idx += len(opening)
            else:
                idx += 1
        return None

    def _closing_suffix(self, pos: int) -> Optional[re.Match]:
        for pattern in _CLOSING_SUFFIXES:
            match = pattern.match(self.line, pos)
            if match and not _continues_filename(self.line, match.end()) \
                    and not _overlaps(match.start(), match.end(), self.claimed):
                return match
        return None

    def find_enclosures(self) -> List[Tuple[int, int, int, int, Optional[re.Match]]]:
        """
        Finds enclosure regions left to right.

        Returns ``(open_start, content_start, content_end, region_end, suffix)``
        tuples, 0-based with exclusive ends; ``region_end`` includes any
        position suffix consumed after the closing delimiter.
        """
        line = self.line
        regions = []
        pos = 0
        while pos < len(line):
            claim = next((c for c in self.claimed if c[0] <= pos < c[1]), None)
            if claim is not None:
                pos = claim[1]
                continue
            opening = self._opening_at(pos)
            if opening is None:
                pos += 1
                continue
            escaped = pos > 0 and line[pos - 1] == "\\"
            glued = (
                    opening in self.config.glued_openings
                    and pos > 0
                    and (line[pos - 1].isalnum() or line[pos - 1] == "_")
            )
            if escaped or glued:
                pos += len(opening)
                continue
            closing = self.config.closing_for(opening)
            content_start = pos + len(opening)
            close_idx = self._find_closing(opening, closing, content_start)
            if close_idx is None:
                # An opener without a partner is ordinary text.
                pos = content_start
                continue
            region_end = close_idx + len(closing)
            suffix = self._closing_suffix(region_end)
            if suffix is not None:
                region_end = suffix.end()
            regions.append((pos, content_start, close_idx, region_end, suffix))
            pos = region_end
        return regions

    def _unclaimed(self, start: int, end: int) -> List[Tuple[int, int]]:
        segments = []
        pos = start
        for c_start, c_end in self.claimed:
            if c_end <= pos or c_start >= end:
                continue
            if c_start > pos:
                segments.append((pos, c_start))
            pos = max(pos, c_end)
        if pos < end:
            segments.append((pos, end))
        return segments

    def _strip_nested(self, text: _Tracked) -> _Tracked:
        changed = True
        while changed and text.text:
            changed = False
            for opening, closing in self.config.enclosure_pairs:
                if (
                        len(text) >= len(opening) + len(closing)
                        and text.text.startswith(opening)
                        and text.text.endswith(closing)
                ):
                    text = text[len(opening):len(text) - len(closing)].strip()
                    changed = True
                    break
        return text

    def _emit_pieces(self, text: _Tracked, kind: CandidateKind, separators: str,
                     suffix: Optional[re.Match] = None) -> None:
        for piece in split_pieces(text, separators):
            if kind is CandidateKind.WORD:
                piece = self._strip_stray_delimiters(piece)
            parsed = parse_piece(piece)
            if parsed is None:
                continue
            name, line, col = parsed
            if not self._acceptable(name.text):
                continue
            start_col = piece.positions[0]
            end_col = (col or line or name).positions[-1]
            if suffix is not None:
                end_col = suffix.end()
                if line is None:
                    line = _Tracked(suffix.group("line"), _group_positions(suffix, "line"))
                    if _group_text(suffix, "col") is not None:
                        col = _Tracked(suffix.group("col"), _group_positions(suffix, "col"))
            self._emit(name, kind, start_col, end_col, line=line, col=col)

    def _strip_stray_delimiters(self, piece: _Tracked) -> _Tracked:
        openers = "".join(o for o in self.config.openings if len(o) == 1)
        closers = "".join(c for _, c in self.config.enclosure_pairs if len(c) == 1)
        return piece.lstrip(openers).rstrip(closers) if openers or closers else piece

    def _scan_words(self, start: int, end: int) -> None:
        for seg_start, seg_end in self._unclaimed(start, end):
            text = _Tracked.from_line(self.line, seg_start, seg_end)
            self._emit_pieces(text, CandidateKind.WORD, SEPARATORS + " \t")

    def scan_enclosures_and_words(self) -> None:
        pos = 0
        for open_start, content_start, content_end, region_end, suffix in self.find_enclosures():
            if self.config.scan_unenclosed_words and open_start > pos:
                self._scan_words(pos, open_start)
            for seg_start, seg_end in self._unclaimed(content_start, content_end):
                content = self._strip_nested(_Tracked.from_line(self.line, seg_start, seg_end).strip())
                self._emit_pieces(content, CandidateKind.ENCLOSED, SEPARATORS, suffix)
            pos = region_end
        if self.config.scan_unenclosed_words and pos < len(self.line):
            self._scan_words(pos, len(self.line))


def split_pieces(text: _Tracked, separators: str = SEPARATORS) -> List[_Tracked]:
    """
    Splits tracked text on unescaped separators, removing escapes.

    A backslash before a space or one of ``,;|`` makes that character literal;
    the backslash itself is dropped but every kept character keeps its
    original column, so spans stay exact.
    """
    pieces: List[_Tracked] = []
    chars: List[str] = []
    positions: List[int] = []
    i = 0
    n = len(text.text)
    while i < n:
        ch = text.text[i]
        if ch == "\\" and i + 1 < n and text.text[i + 1] in ESCAPABLE:
            chars.append(text.text[i + 1])
            positions.append(text.positions[i + 1])
            i += 2
            continue
        if ch in separators:
            pieces.append(_Tracked("".join(chars), positions))
            chars, positions = [], []
        else:
            chars.append(ch)
            positions.append(text.positions[i])
        i += 1
    pieces.append(_Tracked("".join(chars), positions))
    return [piece.strip() for piece in pieces if piece.text.strip()]


def parse_piece(piece: _Tracked) -> Optional[Tuple[_Tracked, Optional[_Tracked], Optional[_Tracked]]]:
    """Splits a piece into ``(name, line, col)``; ``None`` when nothing is left."""
    piece = piece.rstrip(TRAILING_PUNCTUATION)
    if not piece.text:
        return None
    for pattern in _PIECE_SUFFIXES:
        match = pattern.search(piece.text)
        if match is None:
            continue
        name = piece[:match.start()].rstrip(TRAILING_PUNCTUATION + " \t")
        if not name.text:
            continue
        line = piece[match.start("line"):match.end("line")]
        col = None
        if _group_text(match, "col") is not None:
            col = piece[match.start("col"):match.end("col")]
        return name, line, col
    return piece, None, None


def scan_line(
        line: str,
        logical_line: int,
        config: ScanConfig,
        min_col: Optional[int] = None,
        physical_lines: Optional[Sequence[PhysicalLine]] = None,
        counter: Optional[Iterator[int]] = None,
) -> List[Candidate]:
    """
    Scans one logical line for path candidates.

    The structured pass runs first over the whole line and claims the columns
    it matches. The enclosure/word pass then walks the line left to right,
    skipping claimed columns: enclosed text is unwrapped, unescaped and split
    on separators, and the gaps between enclosures are split into words when
    ``config.scan_unenclosed_words`` is set.

    Args:
        line (str): The logical line text.
        logical_line (int): Its line number (first physical line when wrapped).
        config (ScanConfig): Immutable scan settings.
        min_col (Optional[int]): When given, candidates ending before this
            1-based column are dropped.
        physical_lines (Optional[Sequence[PhysicalLine]]): Hard-wrap
            bookkeeping; ``None`` for an unwrapped line.
        counter (Optional[Iterator[int]]): Shared source of ``order`` values.

    Returns:
        List[Candidate]: Sorted by ``(logical_line, start_col, order)``.
    """
    scanner = _LineScanner(line, logical_line, config, physical_lines, counter or itertools.count())
    scanner.scan_structured()
    scanner.scan_enclosures_and_words()
    candidates = scanner.candidates
    if min_col is not None:
        candidates = [c for c in candidates if c.end_col >= min_col]
    candidates.sort(key=lambda c: (c.logical_line, c.start_col, c.order))
    return candidates


# ──────────────────────────── Deduplication ────────────────────────────

def _merge_into(kept: Candidate, other: Candidate) -> None:
    if other.end_col > kept.end_col:
        kept.end_col = other.end_col
    if sum(s.width for s in other.target_span) > sum(s.width for s in kept.target_span):
        kept.target_span = list(other.target_span)
    if kept.line_number is None and other.line_number is not None:
        kept.line_number = other.line_number
        kept.line_number_span = list(other.line_number_span)
    if kept.column_number is None and other.column_number is not None:
        kept.column_number = other.column_number
        kept.column_number_span = list(other.column_number_span)


def deduplicate_candidates(candidates: Iterable[Candidate]) -> List[Candidate]:
    """
    Merges near-duplicate candidates.

    Two candidates are duplicates when they share the logical line and the
    file name and their start columns differ by at most two. Duplicates are
    merged into the earliest one: it keeps the larger end column and target
    span and gains any line/column number it was missing. Input candidates
    are not modified.
    """
    ordered = sorted(candidates, key=lambda c: (c.logical_line, c.start_col, c.order))
    last_in_group: Dict[Tuple[int, str], Candidate] = {}
    result: List[Candidate] = []
    for cand in ordered:
        key = (cand.logical_line, cand.raw_text)
        kept = last_in_group.get(key)
        if kept is not None and abs(kept.start_col - cand.start_col) <= DUPLICATE_TOLERANCE:
            _merge_into(kept, cand)
            continue
        copy = replace(
            cand,
            target_span=list(cand.target_span),
            line_number_span=list(cand.line_number_span),
            column_number_span=list(cand.column_number_span),
        )
        last_in_group[key] = copy
        result.append(copy)
    result.sort(key=lambda c: (c.logical_line, c.start_col, c.order))
    return result


# ──────────────────────────── Range collection ────────────────────────────

def iter_logical_lines(
        lines: Sequence[Tuple[int, str]],
        wrap_width: Optional[int] = None,
) -> Iterator[Tuple[int, str, Optional[List[PhysicalLine]]]]:
    """
    Yields ``(logical_line, text, physical_lines)`` for numbered lines.

    With ``wrap_width`` (a hard-wrapping terminal), consecutive physical lines
    that fill the whole width are joined into one logical line.
    """
    index = 0
    while index < len(lines):
        if not wrap_width:
            lnum, text = lines[index]
            yield lnum, text, None
            index += 1
            continue
        text, segments, index = get_merged_line(lines, index, wrap_width)
        physical = [PhysicalLine(lnum, start_pos, length) for lnum, start_pos, length in segments]
        yield physical[0].lnum, text, physical


def collect_candidates_in_range(
        lines: Sequence[Tuple[int, str]],
        config: ScanConfig,
        wrap_width: Optional[int] = None,
        min_position: Optional[Tuple[int, int]] = None,
) -> List[Candidate]:
    """
    Scans a range of numbered physical lines and de-duplicates the result.

    Args:
        lines: ``(physical_line_no, text)`` pairs in display order.
        config: Scan settings.
        wrap_width: Terminal width when the lines are hard-wrapped.
        min_position: Optional physical ``(lnum, col)``; candidates whose
            match ends before it are dropped.

    Returns:
        De-duplicated candidates in scan order.
    """
    counter = itertools.count()
    found: List[Candidate] = []
    for logical_line, text, physical in iter_logical_lines(lines, wrap_width):
        found.extend(scan_line(text, logical_line, config, physical_lines=physical, counter=counter))
    if min_position is not None:
        found = [c for c in found if c.last_position >= min_position]
    result = deduplicate_candidates(found)
    logger.debug("Collected %d candidates from %d lines", len(result), len(lines))
    return result
