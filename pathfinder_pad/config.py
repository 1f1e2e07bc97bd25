# config.py
"""
Configuration loading and per-filetype layering for pathfinder-pad.

The configuration is a plain nested dictionary built in three tiers:
hard-coded defaults, a user TOML file merged on top, and a sanity pass that
restores anything the merge lost. Per-document settings are derived from it
by applying built-in filetype defaults and then the user's ``ft_overrides``.
The scanner never reads this dictionary directly: it receives an immutable
``ScanConfig`` built once per scan.
"""

import copy
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import toml
from pygments.lexers import get_lexer_for_filename
from pygments.util import ClassNotFound

from .errors import MalformedDelimiterConfig

logger = logging.getLogger("pathfinder.config")


DEFAULT_CONFIG: Dict[str, Any] = {
    # Search behaviour
    "forward_limit": 0,
    "url_forward_limit": 0,
    "scan_unenclosed_words": True,
    "use_column_numbers": True,
    "offer_multiple_options": True,
    "gF_count_behaviour": "nextfile",
    "validate_urls": False,
    # File resolution
    "max_path_length": 4096,
    "extensions": [],
    "search_path": ["."],
    "name_rewrite": [],
    "tilde_as_project_root": False,
    "enclosure_pairs": {
        "(": ")",
        "{": "}",
        "[": "]",
        "<": ">",
        '"': '"',
        "'": "'",
        "`": "`",
    },
    "glued_openings": ["("],
    # URLs
    "url_providers": ["https://github.com/%s.git"],
    "flake_providers": {
        "github": "https://github.com/%s",
        "gitlab": "https://gitlab.com/%s",
        "sourcehut": "https://git.sr.ht/%s",
    },
    "url_timeout": 5,
    # Interaction
    "selection_keys": ["a", "s", "d", "f", "j", "k", "l"],
    "ft_overrides": {},
    # Viewer
    "colors": {
        "candidate": "#FFFFFF",
        "line_number": "#7EE787",
        "column_number": "#F2CC60",
        "dim": "#6E7681",
        "next_key": "#FF7BFF",
        "future_keys": "#B48EAD",
        "status": "#C9D1D9",
        "gutter": "#817248",
        "default": "#C9D1D9",
    },
    "keybindings": {
        "gf": "g",
        "gF": "G",
        "next_file": "n",
        "prev_file": "N",
        "select_file": "f",
        "select_file_line": "F",
        "gx": "x",
        "select_url": "u",
        "next_url": "]",
        "prev_url": "[",
        "hover_description": "K",
        "tmux_capture": "t",
        "go_back": ["ctrl+o", "backspace"],
        "quit": ["q", "ctrl+q"],
    },
    "editor": {
        "tab_size": 4,
        "target_fps": 30,
    },
    "logging": {
        "file_level": "DEBUG",
        "console_level": "WARNING",
        "log_to_console": False,
        "separate_error_log": False,
    },
}

# Built-in per-filetype defaults, applied before the user's ft_overrides.
FILETYPE_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "tex": {
        "enclosure_pairs": {"{": "}"},
        "extensions": [".tex", ".sty", ".cls", ".bib"],
    },
    "python": {
        "extensions": [".py", "/__init__.py"],
        "name_rewrite": [{"pattern": r"\.", "replacement": "/"}],
    },
}

CONFIG_SEARCH_LOCATIONS = (
    "pathfinder.toml",
    os.path.join("~", ".config", "pathfinder-pad", "config.toml"),
)


# --- Dictionary Deep Merge Utility ---
def deep_merge(base: Dict[Any, Any], override: Dict[Any, Any]) -> Dict[Any, Any]:
    """
    Recursively merges the `override` dictionary into the `base` dictionary.

    If a key exists in both dictionaries and both values are dictionaries,
    the merge is performed recursively. Otherwise, the value from `override`
    replaces the value from `base`. Neither input is modified.

    Args:
        base (Dict[Any, Any]): The base dictionary.
        override (Dict[Any, Any]): The dictionary whose values win.

    Returns:
        Dict[Any, Any]: A new dictionary containing the merged result.

    Example:
        >>> deep_merge({'a': 1, 'b': {'x': 10}}, {'b': {'y': 2}})
        {'a': 1, 'b': {'x': 10, 'y': 2}}
    """
    result = dict(base)
    for key, override_value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(override_value, dict):
            result[key] = deep_merge(base_value, override_value)
        else:
            result[key] = override_value
    return result


def _find_config_file(explicit_path: Optional[str]) -> Optional[str]:
    if explicit_path:
        return os.path.expanduser(explicit_path)
    for candidate in CONFIG_SEARCH_LOCATIONS:
        expanded = os.path.expanduser(candidate)
        if os.path.exists(expanded):
            return expanded
    return None


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads and merges the application configuration, applying safe defaults.

    1. Starts from a deep copy of ``DEFAULT_CONFIG`` so the application can run
       with no configuration file at all.
    2. Merges the user's TOML file on top: ``path`` when given, otherwise the
       first existing file of ``CONFIG_SEARCH_LOCATIONS``.
    3. Restores any default section or key the user file removed or replaced
       with a non-table value.

    Every problem (missing file, TOML syntax error, I/O error) is logged and
    answered with the defaults, so the function never raises.

    Args:
        path (Optional[str]): Explicit configuration file to read.

    Returns:
        dict: The fully merged configuration.
    """
    defaults = copy.deepcopy(DEFAULT_CONFIG)
    user_config: Dict[str, Any] = {}
    config_path = _find_config_file(path)

    if config_path is None:
        logger.debug("No configuration file found; using defaults.")
    else:
        try:
            with open(config_path, "r", encoding="utf-8") as fh:
                user_config = toml.loads(fh.read())
            logger.debug("Loaded user config from %s", config_path)
        except FileNotFoundError:
            logger.warning("Config file %s not found – using defaults.", config_path)
        except toml.TomlDecodeError as exc:
            logger.error("TOML parse error in %s: %s – using defaults.", config_path, exc)
        except OSError as exc:
            logger.error("Could not read %s: %s – using defaults.", config_path, exc)

    final_config = deep_merge(defaults, user_config)
    # Delimiter tables replace the defaults instead of merging into them.
    for section in ("enclosure_pairs", "url_enclosure_pairs"):
        if isinstance(user_config.get(section), dict):
            final_config[section] = user_config[section]

    for section, default_val in defaults.items():
        if section not in final_config:
            final_config[section] = default_val
        elif isinstance(default_val, dict) and section not in ("enclosure_pairs", "flake_providers", "ft_overrides"):
            if not isinstance(final_config[section], dict):
                logger.warning("Config section '%s' must be a table; using defaults.", section)
                final_config[section] = default_val
                continue
            for sub_key, sub_val in default_val.items():
                final_config[section].setdefault(sub_key, sub_val)

    keys = final_config.get("selection_keys") or []
    if len(keys) < 2:
        logger.warning("At least two selection_keys must be configured; using defaults.")
        final_config["selection_keys"] = list(DEFAULT_CONFIG["selection_keys"])

    logger.debug("Final configuration loaded successfully.")
    return final_config


def detect_filetype(filename: Optional[str]) -> str:
    """
    Returns a short filetype name for ``filename`` using Pygments.

    The first alias of the lexer Pygments picks for the file name is used
    (``"python"``, ``"tex"``, ``"c"`` ...). Unknown or missing names give
    ``"text"``.
    """
    if not filename:
        return "text"
    try:
        lexer = get_lexer_for_filename(filename)
    except ClassNotFound:
        logger.debug("Pygments: no lexer for '%s'; treating as text.", filename)
        return "text"
    return lexer.aliases[0] if lexer.aliases else lexer.name.lower()


def get_config_for_filetype(config: Dict[str, Any], filetype: Optional[str]) -> Dict[str, Any]:
    """
    Builds the effective configuration for one document.

    Precedence, lowest first: the loaded configuration, the built-in
    ``FILETYPE_DEFAULTS`` entry for ``filetype``, the user's
    ``ft_overrides[filetype]``. Overrides replace whole keys, they are not
    merged, so an override of ``enclosure_pairs`` fully defines the pairs.

    Args:
        config: The configuration returned by ``load_config``.
        filetype: Filetype name as returned by ``detect_filetype``.

    Returns:
        A new dictionary; ``config`` is left untouched.
    """
    effective = copy.deepcopy(config)
    if not filetype:
        return effective

    builtin = FILETYPE_DEFAULTS.get(filetype)
    if builtin:
        for key, value in builtin.items():
            effective[key] = copy.deepcopy(value)
        logger.debug("Applied built-in defaults for filetype '%s'.", filetype)

    user_override = (config.get("ft_overrides") or {}).get(filetype)
    if isinstance(user_override, dict):
        for key, value in user_override.items():
            effective[key] = copy.deepcopy(value)
        logger.debug("Applied user ft_overrides for filetype '%s'.", filetype)

    return effective


def _checked_pair(opening: Any, closing: Any) -> Tuple[str, str]:
    if not isinstance(opening, str) or not isinstance(closing, str) or not opening or not closing:
        raise MalformedDelimiterConfig(str(opening or ""), str(closing or ""))
    return opening, closing


@dataclass(frozen=True, slots=True)
class ScanConfig:
    """Immutable, per-scan view of the settings the scanner needs."""

    enclosure_pairs: Tuple[Tuple[str, str], ...] = ()
    scan_unenclosed_words: bool = True
    max_length: int = 4096
    glued_openings: FrozenSet[str] = frozenset({"("})

    @property
    def openings(self) -> Tuple[str, ...]:
        """Opening delimiters, longest first."""
        return tuple(opening for opening, _ in self.enclosure_pairs)

    def closing_for(self, opening: str) -> Optional[str]:
        for candidate_opening, closing in self.enclosure_pairs:
            if candidate_opening == opening:
                return closing
        return None

    @classmethod
    def from_pairs(
            cls,
            pairs: Dict[str, str],
            scan_unenclosed_words: bool = True,
            max_length: int = 4096,
            glued_openings: Optional[List[str]] = None,
    ) -> "ScanConfig":
        """
        Builds a ScanConfig from an opening -> closing mapping.

        Malformed pairs (empty opening or closing) are logged and skipped
        instead of aborting the scan. The remaining pairs are sorted longest
        opening first so that ``((`` is tried before ``(``.
        """
        valid_pairs: List[Tuple[str, str]] = []
        for opening, closing in (pairs or {}).items():
            try:
                valid_pairs.append(_checked_pair(opening, closing))
            except MalformedDelimiterConfig as exc:
                logger.warning("Skipping enclosure pair: %s", exc)
        valid_pairs.sort(key=lambda pair: len(pair[0]), reverse=True)
        return cls(
            enclosure_pairs=tuple(valid_pairs),
            scan_unenclosed_words=bool(scan_unenclosed_words),
            max_length=int(max_length),
            glued_openings=frozenset(glued_openings if glued_openings is not None else ("(",)),
        )

    @classmethod
    def from_config(cls, config: Dict[str, Any], for_urls: bool = False,
                    force_words: bool = False) -> "ScanConfig":
        """
        Derives the scan settings from an effective (per-filetype) configuration.

        Args:
            config: Effective configuration dictionary.
            for_urls: Use ``url_enclosure_pairs`` when configured.
            force_words: Scan free words even if disabled in the configuration.
        """
        pairs = config.get("enclosure_pairs") or {}
        if for_urls and config.get("url_enclosure_pairs"):
            pairs = config["url_enclosure_pairs"]
        return cls.from_pairs(
            pairs,
            scan_unenclosed_words=force_words or config.get("scan_unenclosed_words", True),
            max_length=config.get("max_path_length", 4096),
            glued_openings=config.get("glued_openings"),
        )
