# validation.py
"""
Resolver/Validator and Sequential Collector.

``Resolver.resolve`` turns the raw text of a candidate into an existing,
absolute file path. It tries, in order:

1. the literal path (every absolute interpretation of it),
2. the literal path plus each configured extension,
3. every ``search_path`` entry, with and without each extension,
4. the same three steps for the name produced by the ``name_rewrite`` hook.

``collect_nth`` walks an ordered candidate list and resolves candidates one
after another until the Nth resolvable one is found.
"""

import glob
import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .candidates import Candidate
from .utils import get_absolute_path_candidates, is_valid_file

logger = logging.getLogger("pathfinder.validation")

PromptChoice = Callable[[List[str], str], Optional[str]]


class ResolveStatus(Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    CANCELLED = "cancelled"


class ResolveStep(Enum):
    LITERAL = 1
    EXTENSION = 2
    SEARCH_PATH = 3
    REWRITE = 4


@dataclass
class Resolution:
    status: ResolveStatus
    path: Optional[str] = None
    step: Optional[ResolveStep] = None

    @property
    def found(self) -> bool:
        return self.status is ResolveStatus.FOUND

    @property
    def cancelled(self) -> bool:
        return self.status is ResolveStatus.CANCELLED


@dataclass
class CollectResult:
    valid: List[Candidate] = field(default_factory=list)
    cancelled: bool = False


def build_name_rewrite(rules: Any) -> Optional[Callable[[str], str]]:
    """
    Builds the name-rewrite hook from configuration.

    ``rules`` is either a callable taking and returning a name, or a list of
    ``{"pattern": ..., "replacement": ...}`` tables applied in order with
    ``re.sub``. Invalid regular expressions are logged and ignored.
    """
    if callable(rules):
        return rules
    compiled: List[Tuple[re.Pattern, str]] = []
    for rule in rules or []:
        if not isinstance(rule, dict) or "pattern" not in rule:
            logger.warning("Ignoring malformed name_rewrite rule: %r", rule)
            continue
        try:
            compiled.append((re.compile(rule["pattern"]), str(rule.get("replacement", ""))))
        except re.error as exc:
            logger.warning("Ignoring name_rewrite rule %r: %s", rule.get("pattern"), exc)
    if not compiled:
        return None

    def rewrite(name: str) -> str:
        for pattern, replacement in compiled:
            name = pattern.sub(replacement, name)
        return name

    return rewrite


class Resolver:
    """
    Resolves raw candidate text to an existing file.

    Args:
        config (Dict[str, Any]): Effective (per-filetype) configuration. Uses
            ``extensions``, ``search_path``, ``name_rewrite``,
            ``offer_multiple_options`` and ``tilde_as_project_root``.
        context_dir (Optional[str]): Directory relative names are resolved
            against: the document's directory, or a terminal's working
            directory.
        is_file (Callable[[str], bool]): Filesystem probe; injectable for tests.
        prompt_choice (Optional[PromptChoice]): Blocking UI primitive used when
            several distinct files match. Returns the chosen item, or ``None``
            when the user cancels. Without it the first match wins.
    """

    def __init__(
            self,
            config: Dict[str, Any],
            context_dir: Optional[str] = None,
            is_file: Callable[[str], bool] = is_valid_file,
            prompt_choice: Optional[PromptChoice] = None,
    ):
        self.context_dir = context_dir or os.getcwd()
        self.extensions: List[str] = [ext for ext in config.get("extensions") or [] if ext]
        self.search_path: List[str] = list(config.get("search_path") or [])
        self.offer_multiple = bool(config.get("offer_multiple_options", True))
        self.tilde_as_project_root = bool(config.get("tilde_as_project_root", False))
        self.rewrite = build_name_rewrite(config.get("name_rewrite"))
        self.is_file = is_file
        self.prompt_choice = prompt_choice

    # --- probe generation ---
    def _literal_paths(self, name: str) -> List[str]:
        return get_absolute_path_candidates(
            name, self.context_dir, tilde_as_project_root=self.tilde_as_project_root
        )

    def _search_path_paths(self, name: str) -> Iterator[str]:
        escaped = glob.escape(name)
        for entry in self.search_path:
            base = os.path.expanduser(entry)
            if not os.path.isabs(base):
                base = os.path.join(self.context_dir, base)
            for suffix in [""] + self.extensions:
                pattern = os.path.join(base, escaped + glob.escape(suffix))
                yield from sorted(glob.glob(pattern, recursive=True))

    def _probes(self, name: str, rewritten: bool = False) -> Iterator[Tuple[str, ResolveStep]]:
        literal = self._literal_paths(name)
        for path in literal:
            yield path, ResolveStep.REWRITE if rewritten else ResolveStep.LITERAL
        for ext in self.extensions:
            for path in literal:
                yield path + ext, ResolveStep.REWRITE if rewritten else ResolveStep.EXTENSION
        for path in self._search_path_paths(name):
            yield path, ResolveStep.REWRITE if rewritten else ResolveStep.SEARCH_PATH

    def _all_probes(self, name: str) -> Iterator[Tuple[str, ResolveStep]]:
        yield from self._probes(name)
        if self.rewrite is not None:
            transformed = self.rewrite(name)
            if transformed and transformed != name:
                logger.debug("name_rewrite: %r -> %r", name, transformed)
                yield from self._probes(transformed, rewritten=True)

    # --- resolution ---
    def resolve(self, raw_text: str, auto_select: bool = False) -> Resolution:
        """
        Resolves ``raw_text`` to an existing, absolute file path.

        Every accepted path is normalised and de-duplicated. When
        ``auto_select`` is set, or ``offer_multiple_options`` is off, the first
        accepted path is returned at once. Otherwise all steps are exhausted
        and, if several distinct files were accepted, ``prompt_choice`` lets
        the user pick one.

        Args:
            raw_text (str): Candidate text (no line/column suffix).
            auto_select (bool): Never prompt; take the first match.

        Returns:
            Resolution: ``FOUND`` with the path and the step that found it,
            ``NOT_FOUND``, or ``CANCELLED`` when the prompt was dismissed.
        """
        take_first = auto_select or not self.offer_multiple
        found: List[Tuple[str, ResolveStep]] = []
        seen = set()
        for probe, step in self._all_probes(raw_text):
            if not self.is_file(probe):
                continue
            normalized = os.path.normpath(os.path.abspath(probe))
            if normalized in seen:
                continue
            seen.add(normalized)
            found.append((normalized, step))
            logger.debug("resolve(%r): accepted %s at step %s", raw_text, normalized, step.name)
            if take_first:
                break

        if not found:
            logger.debug("resolve(%r): no existing file", raw_text)
            return Resolution(ResolveStatus.NOT_FOUND)
        if len(found) == 1 or take_first or self.prompt_choice is None:
            path, step = found[0]
            return Resolution(ResolveStatus.FOUND, path, step)

        options = [path for path, _ in found]
        choice = self.prompt_choice(options, f"Multiple targets for {raw_text} (q/Esc=cancel):")
        if choice is None:
            logger.debug("resolve(%r): prompt cancelled", raw_text)
            return Resolution(ResolveStatus.CANCELLED)
        step = dict(found).get(choice)
        return Resolution(ResolveStatus.FOUND, choice, step)


def collect_nth(
        candidates: Sequence[Candidate],
        n: int,
        resolver: Resolver,
        force_auto: bool = False,
) -> CollectResult:
    """
    Resolves candidates in order until ``n`` of them resolve.

    Every candidate before the Nth valid one is resolved without prompting;
    the Nth honours the ambiguity prompt unless ``force_auto`` is set.
    Candidate ``i + 1`` is never resolved before candidate ``i``. A cancelled
    prompt stops the walk and reports ``cancelled`` with no partial result
    to act on.

    Args:
        candidates: Ordered candidates.
        n: How many valid candidates are wanted (``n >= 1``).
        resolver: The resolver to use.
        force_auto: Never prompt.

    Returns:
        CollectResult: The valid candidates found (each with
        ``resolved_path`` set) and whether the user cancelled.
    """
    result = CollectResult()
    for cand in candidates:
        auto = force_auto or len(result.valid) < n - 1
        resolution = resolver.resolve(cand.raw_text, auto_select=auto)
        if resolution.cancelled:
            result.cancelled = True
            break
        if resolution.found:
            cand.resolved_path = resolution.path
            result.valid.append(cand)
            if len(result.valid) >= n:
                break
    return result


def collect_all(candidates: Sequence[Candidate], resolver: Resolver) -> List[Candidate]:
    """Every resolvable candidate, resolved without prompting, in order."""
    return collect_nth(candidates, len(candidates) or 1, resolver, force_auto=True).valid
