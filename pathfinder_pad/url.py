# url.py
"""
URL candidates and commands.

Three kinds of text are treated as URLs:

    • http(s) URLs, also when embedded in a larger token (``git+https://...``);
      the highlight is narrowed to the URL itself,
    • ``owner/repo`` shorthands, expanded through ``url_providers``,
    • ``provider:path`` flakes whose provider is listed in ``flake_providers``.

Reachability checks run on asyncio with aiohttp. Several provider guesses for
one shorthand are raced: the first reachable one wins and the remaining
requests are cancelled. ``hover_description`` races page fetches the same way
and shows the first meta description found.
"""

import asyncio
import functools
import html
import itertools
import logging
import re
import webbrowser
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import aiohttp

from .candidates import (
    Candidate,
    PhysicalLine,
    Span,
    deduplicate_candidates,
    iter_logical_lines,
    scan_line,
    slice_spans,
)
from .config import ScanConfig
from .core import BACKWARD, FORWARD, HostView, choose_candidate, order_around_cursor, scan_range
from .errors import NoCandidateError, PathfinderError, UserCancelled
from .utils import strip_ansi

logger = logging.getLogger("pathfinder.url")

URL_RE = re.compile(r"[Hh][Tt][Tt][Pp][Ss]?://[\w\-.?/%:=&~+#@]+")
REPO_RE = re.compile(r"^[\w.\-]+/[\w.\-]+$")
FLAKE_RE = re.compile(r"^([\w.\-]+):(.+)$")

MSG_NONE = "No URL candidates found"
MSG_NONE_VALID = "No valid URL candidates found"
MSG_NO_DESCRIPTION = "Couldn't retrieve a description"

# Only the start of a page is read when looking for its description.
DESCRIPTION_BYTES = 100 * 1024
HEAD_RE = re.compile(r"<head(?:\s[^>]*)?>(.*?)</head>", re.IGNORECASE | re.DOTALL)
META_RE = re.compile(r"<meta\s[^>]*>", re.IGNORECASE)
META_ATTR_RE = re.compile(r"([\w:-]+)\s*=\s*['\"]([^'\"]*)['\"]")
MARKDOWN_SPECIAL_RE = re.compile(r"([\\`\[\]])")
URL_WORD_RE = re.compile(r"[\w\-.~/:@%?=&+#]+")


# ──────────────────────────── Classification ────────────────────────────

def is_url(text: str) -> bool:
    return URL_RE.search(text or "") is not None


def is_repo(text: str) -> bool:
    return REPO_RE.match(text or "") is not None


def is_flake(text: str, flake_providers: Dict[str, str]) -> bool:
    match = FLAKE_RE.match(text or "")
    return bool(match) and match.group(1) in (flake_providers or {})


def flake_to_url(text: str, flake_providers: Dict[str, str]) -> Optional[str]:
    match = FLAKE_RE.match(text or "")
    if not match:
        return None
    fmt = (flake_providers or {}).get(match.group(1))
    return fmt % match.group(2) if fmt else None


def expand_url(text: str, config: Dict[str, Any]) -> List[str]:
    """
    The concrete URLs a candidate may stand for, in provider order.

    Raises:
        PathfinderError: When ``text`` is no URL, repo or known flake, or no
            provider is configured for it.
    """
    match = URL_RE.search(text)
    if match:
        return [match.group(0)]
    if is_repo(text):
        providers = config.get("url_providers") or []
        if not providers:
            raise PathfinderError("No URL providers configured.")
        return [fmt % text for fmt in providers]
    flake = FLAKE_RE.match(text)
    if flake:
        url = flake_to_url(text, config.get("flake_providers") or {})
        if url is None:
            raise PathfinderError("Flake not found: " + flake.group(1))
        return [url]
    raise PathfinderError("Not a valid URL, repo, or flake: " + text)


# ──────────────────────────── Scanning ────────────────────────────

def scan_line_for_urls(
        line: str,
        logical_line: int,
        config: Dict[str, Any],
        physical_lines: Optional[Sequence[PhysicalLine]] = None,
        counter: Optional[Iterator[int]] = None,
) -> List[Candidate]:
    """
    Scans one logical line and keeps the URL-like candidates.

    ``url_enclosure_pairs`` replaces ``enclosure_pairs`` when configured.
    Each kept candidate gets ``url`` set; an http(s) URL inside a larger
    token has its target span narrowed to the URL.
    """
    line = strip_ansi(line)
    scan_config = ScanConfig.from_config(config, for_urls=True)
    flake_providers = config.get("flake_providers") or {}
    found: List[Candidate] = []
    seen = set()
    for cand in scan_line(line, logical_line, scan_config, physical_lines=physical_lines, counter=counter):
        text = cand.raw_text
        match = URL_RE.search(text)
        if match:
            cand.url = match.group(0)
            if match.span() != (0, len(text)):
                cand.target_span = slice_spans(cand.target_span, match.start(), match.end())
        elif is_repo(text) or is_flake(text, flake_providers):
            cand.url = text
        else:
            continue
        key = (cand.logical_line, cand.start_col, cand.end_col)
        if key not in seen:
            seen.add(key)
            found.append(cand)
    return found


def collect_url_candidates(lines: Sequence[Tuple[int, str]], config: Dict[str, Any],
                           wrap_width: Optional[int] = None) -> List[Candidate]:
    counter = itertools.count()
    found: List[Candidate] = []
    for logical_line, text, physical in iter_logical_lines(lines, wrap_width):
        found.extend(scan_line_for_urls(text, logical_line, config, physical, counter))
    return deduplicate_candidates(found)


# ──────────────────────────── Reachability ────────────────────────────

class UrlChecker:
    """Checks URLs over one shared aiohttp session."""

    def __init__(self, timeout: float = 5):
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            logger.debug("Creating new aiohttp.ClientSession")
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self.session

    async def close(self):
        if self.session and not self.session.closed:
            logger.debug("Closing aiohttp.ClientSession")
            await self.session.close()

    async def exists(self, url: str) -> bool:
        """True when ``url`` answers a GET (redirects followed) with a 2xx status."""
        if not url:
            return False
        try:
            session = await self._get_session()
            async with session.get(url, allow_redirects=True) as response:
                logger.debug(f"URL check {url}: HTTP {response.status}")
                return 200 <= response.status < 300
        except asyncio.TimeoutError:
            logger.info(f"URL check timed out: {url}")
            return False
        except aiohttp.ClientError as e:
            logger.info(f"URL check failed for {url}: {e}")
            return False

    async def fetch_description(self, url: str) -> Optional[str]:
        """The page's meta description, read from its first ``DESCRIPTION_BYTES``."""
        try:
            session = await self._get_session()
            headers = {"Range": f"bytes=0-{DESCRIPTION_BYTES - 1}"}
            async with session.get(url, allow_redirects=True, headers=headers) as response:
                if response.status >= 400:
                    logger.info(f"Description fetch {url}: HTTP {response.status}")
                    return None
                body = b""
                while len(body) < DESCRIPTION_BYTES:
                    chunk = await response.content.read(DESCRIPTION_BYTES - len(body))
                    if not chunk:
                        break
                    body += chunk
                charset = response.charset or "utf-8"
        except asyncio.TimeoutError:
            logger.info(f"Description fetch timed out: {url}")
            return None
        except aiohttp.ClientError as e:
            logger.info(f"Description fetch failed for {url}: {e}")
            return None
        try:
            text = body.decode(charset, errors="replace")
        except LookupError:
            text = body.decode("utf-8", errors="replace")
        return extract_meta_description(text)

    async def _first_success(self, urls: Sequence[str],
                             probe: Callable[[str], Awaitable[Any]]) -> Optional[Tuple[str, Any]]:
        """
        Runs ``probe`` on every URL at once; the first truthy result wins.

        The winner cancels the requests still in flight and ``None`` means
        every probe failed. A done-flag is tested in every completion callback
        so a late success cannot overwrite the winner.
        """
        if not urls:
            return None
        loop = asyncio.get_running_loop()
        winner: asyncio.Future = loop.create_future()
        state = {"done": False, "pending": len(urls)}

        def on_done(task: asyncio.Task, url: str) -> None:
            state["pending"] -= 1
            if state["done"]:
                return
            value = None
            if not task.cancelled() and task.exception() is None:
                value = task.result()
            if value:
                state["done"] = True
                winner.set_result((url, value))
            elif state["pending"] == 0:
                state["done"] = True
                winner.set_result(None)

        tasks = []
        for url in urls:
            task = asyncio.ensure_future(probe(url))
            task.add_done_callback(functools.partial(on_done, url=url))
            tasks.append(task)
        try:
            return await winner
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def first_reachable(self, urls: Sequence[str]) -> Optional[str]:
        """Races existence checks for ``urls``; the first reachable URL, or ``None``."""
        hit = await self._first_success(urls, self.exists)
        return hit[0] if hit else None

    async def first_description(self, urls: Sequence[str]) -> Optional[Tuple[str, str]]:
        """``(url, description)`` from whichever page yields a description first."""
        return await self._first_success(urls, self.fetch_description)

    async def filter_reachable(self, candidates: Sequence[Candidate],
                               config: Dict[str, Any]) -> List[Candidate]:
        """Candidates with at least one reachable URL, in input order."""

        async def check(cand: Candidate) -> bool:
            try:
                urls = expand_url(cand.url, config)
            except PathfinderError:
                return False
            return await self.first_reachable(urls) is not None

        results = await asyncio.gather(*(check(c) for c in candidates))
        return [cand for cand, ok in zip(candidates, results) if ok]


async def find_reachable(urls: Sequence[str], timeout: float = 5) -> Optional[str]:
    checker = UrlChecker(timeout)
    try:
        return await checker.first_reachable(urls)
    finally:
        await checker.close()


async def filter_reachable(candidates: Sequence[Candidate], config: Dict[str, Any]) -> List[Candidate]:
    checker = UrlChecker(config.get("url_timeout", 5))
    try:
        return await checker.filter_reachable(candidates, config)
    finally:
        await checker.close()


async def find_description(urls: Sequence[str], timeout: float = 5) -> Optional[Tuple[str, str]]:
    checker = UrlChecker(timeout)
    try:
        return await checker.first_description(urls)
    finally:
        await checker.close()


# ──────────────────────────── Descriptions ────────────────────────────

def markdown_escape(text: str) -> str:
    return MARKDOWN_SPECIAL_RE.sub(r"\\\1", text)


def extract_meta_description(page: str) -> Optional[str]:
    """
    The first ``og:description`` or ``description`` meta tag of an HTML page.

    The ``<head>`` is searched when present. ``og:description`` is preferred,
    whether named by ``property=`` or ``name=`` and whichever attribute comes
    first. The text is HTML-unescaped and Markdown-escaped.
    """
    head = HEAD_RE.search(page)
    if head:
        page = head.group(1)
    for key in ("og:description", "description"):
        for match in META_RE.finditer(page):
            attrs = {name.lower(): value for name, value in META_ATTR_RE.findall(match.group(0))}
            name = (attrs.get("property") or attrs.get("name") or "").lower()
            content = attrs.get("content", "").strip()
            if name == key and content:
                return markdown_escape(html.unescape(content))
    return None


def word_at(line: str, col: int) -> str:
    """The run of URL characters around ``col``, or ``""``."""
    for match in URL_WORD_RE.finditer(line):
        if match.start() <= col < match.end():
            return match.group(0)
    return ""


def _span_holds_cursor(span: Span, line: str, col: int, pairs: Dict[str, str]) -> bool:
    if span.start_col <= col < span.end_col:
        return True
    for opening, closing in pairs.items():
        start = span.start_col - len(opening)
        if start >= 0 and start <= col < span.start_col and line[start:span.start_col] == opening:
            return True
        end = span.end_col + len(closing)
        if span.end_col <= col < end and line[span.end_col:end] == closing:
            return True
    return False


def target_at_cursor(host: HostView) -> str:
    """
    The URL, repo or flake the cursor is on.

    A URL candidate counts when the cursor is on it or on its enclosing
    delimiters; failing that, the word under the cursor is used.
    """
    row, col = host.get_cursor_position()
    lines = host.get_lines(row, row)
    if not lines:
        return ""
    line = strip_ansi(lines[0][1])
    config = host.config
    pairs = config.get("url_enclosure_pairs") or config.get("enclosure_pairs") or {}
    for cand in scan_line_for_urls(line, row, config):
        for span in cand.target_span:
            if span.lnum == row and _span_holds_cursor(span, line, col, pairs):
                return cand.url
    return word_at(line, col)


def description_urls(target: str, config: Dict[str, Any]) -> List[str]:
    """Every URL worth fetching for ``target``, without duplicates."""
    urls: List[str] = []

    def add(candidate: Optional[str]) -> None:
        if candidate and candidate not in urls:
            urls.append(candidate)

    if not target:
        return urls
    flake_providers = config.get("flake_providers") or {}
    if is_repo(target):
        for fmt in config.get("url_providers") or []:
            add(fmt % target)
    if is_flake(target, flake_providers):
        add(flake_to_url(target, flake_providers))
    if is_url(target):
        add(target)
    if not re.match(r"^https?://", target):
        for prefix in ("https://", "http://"):
            if is_url(prefix + target):
                add(prefix + target)
    return urls


# ──────────────────────────── Commands ────────────────────────────

def open_candidate_url(host: HostView, text: str) -> str:
    """Opens the first reachable URL ``text`` stands for and returns it."""
    config = host.config
    urls = expand_url(text, config)
    url = host.run_async(find_reachable(urls, config.get("url_timeout", 5)))
    if url is None:
        if is_url(text):
            raise PathfinderError("URL not accessible: " + text)
        if is_repo(text):
            raise PathfinderError("No provider found for " + text)
        raise PathfinderError("Flake not accessible: " + urls[0])
    host.notify(f'Opening "{url}"')
    host.open_url(url)
    return url


def _jump_url(host: HostView, direction: int, count: int, use_limit: bool, validate: bool) -> Candidate:
    count = max(count, 1)
    limit = host.config.get("url_forward_limit", 0) if use_limit else 0
    first, last = scan_range(host, direction, limit)
    candidates = collect_url_candidates(host.get_lines(first, last), host.config, host.wrap_width())
    if not candidates:
        raise NoCandidateError(MSG_NONE)

    ordered = order_around_cursor(candidates, host.get_cursor_position(), direction,
                                   include_current=use_limit)
    if not ordered:
        raise NoCandidateError("No next URL found" if direction == FORWARD else "No previous URL found")

    if validate:
        ordered = host.run_async(filter_reachable(ordered, host.config))
        if not ordered:
            raise NoCandidateError(MSG_NONE)
        if len(ordered) < count:
            plural = "s" if len(ordered) != 1 else ""
            raise PathfinderError("Only %d valid URL candidate%s found" % (len(ordered), plural))
    elif len(ordered) < count:
        raise PathfinderError("Only %d URL candidates found" % len(ordered))
    return ordered[count - 1]


def gx(host: HostView, count: int = 1) -> None:
    """Open the URL under or after the cursor; ``count`` picks the Nth one."""
    cand = _jump_url(host, FORWARD, count, use_limit=True, validate=False)
    open_candidate_url(host, cand.url)


def next_url(host: HostView, count: int = 1) -> None:
    cand = _jump_url(host, FORWARD, count, use_limit=False, validate=host.config.get("validate_urls", False))
    host.set_cursor(*cand.anchor)


def prev_url(host: HostView, count: int = 1) -> None:
    cand = _jump_url(host, BACKWARD, count, use_limit=False, validate=host.config.get("validate_urls", False))
    host.set_cursor(*cand.anchor)


def select_url(host: HostView) -> None:
    """Label the URLs on screen and open the one picked."""
    candidates = collect_url_candidates(host.get_visible_text_range(), host.config, host.wrap_width())
    if not candidates:
        raise NoCandidateError(MSG_NONE)
    if host.config.get("validate_urls", False):
        candidates = host.run_async(filter_reachable(candidates, host.config))
        if not candidates:
            raise NoCandidateError(MSG_NONE_VALID)
    for cand in candidates:
        cand.line_number_span = []
        cand.column_number_span = []
    chosen = choose_candidate(host, candidates)
    if chosen is None:
        raise UserCancelled()
    open_candidate_url(host, chosen.url)


def hover_description(host: HostView) -> None:
    """Show the meta description of the page the cursor's URL points to."""
    target = target_at_cursor(host)
    urls = description_urls(target, host.config)
    if not urls:
        logger.debug("hover_description: nothing to look up at the cursor")
        return
    hit = host.run_async(find_description(urls, host.config.get("url_timeout", 5)))
    if hit is None:
        raise PathfinderError(MSG_NO_DESCRIPTION)
    link, description = hit
    host.show_text(link, description)


def open_in_browser(url: str) -> bool:
    """Opens ``url`` with the platform's default browser."""
    logger.info("Opening %s in browser", url)
    return webbrowser.open(url)


COMMANDS = {
    "gx": gx,
    "select_url": select_url,
    "next_url": next_url,
    "prev_url": prev_url,
    "hover_description": hover_description,
}
