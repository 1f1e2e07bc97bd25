# utils.py
"""
Small platform helpers shared by the scanner, the resolver and the viewer.
"""

import logging
import os
import re
import subprocess
import sys
from typing import Any, List, Optional, Sequence, Tuple

from wcwidth import wcswidth, wcwidth

logger = logging.getLogger("pathfinder.utils")

_UNIX_ENV_RE = re.compile(r"^\$(?:\{\w+\}|\w+)")
_WINDOWS_ENV_RE = re.compile(r"^%(\w+)%[\\/]*(.*)$")
_DRIVE_RE = re.compile(r"^[A-Za-z]:[\\/]")
_ANSI_CSI_RE = re.compile(r"\x1b\[[\d;?]*[ -/]*[@-~]")


# --- Safe Subprocess Execution Utility ---
def safe_run(
        cmd: List[str],
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        **kwargs: Any
) -> subprocess.CompletedProcess:
    """
    Safely executes an external command and captures its output.

    This function wraps `subprocess.run()` with safe defaults:
    - Ensures text output with UTF-8 decoding and error replacement.
    - Captures both stdout and stderr.
    - Never raises for a missing binary, a timeout or an OS error; a
      CompletedProcess with a non-zero return code is returned instead.

    Args:
        cmd (List[str]): Command to execute, passed as a list of arguments.
        cwd (Optional[str], optional): Working directory for the subprocess.
        timeout (Optional[float], optional): Timeout in seconds.
        **kwargs (Any): Additional keyword arguments forwarded to `subprocess.run`.

    Returns:
        subprocess.CompletedProcess: Result with `returncode`, `stdout` and `stderr`.

    Example:
        >>> result = safe_run(["tmux", "display-message", "-p", "#{pane_id}"])
        >>> result.returncode
        0
    """
    effective_kwargs = {
        "capture_output": True,
        "text": True,
        "check": False,
        "encoding": "utf-8",
        "errors": "replace",
        **kwargs,
    }
    if cwd is not None:
        effective_kwargs["cwd"] = cwd
    if timeout is not None:
        effective_kwargs["timeout"] = timeout

    try:
        return subprocess.run(cmd, **effective_kwargs)
    except FileNotFoundError as e:
        logger.warning(f"safe_run: Command not found: {cmd[0]!r}")
        return subprocess.CompletedProcess(cmd, returncode=127, stdout="", stderr=str(e))
    except subprocess.TimeoutExpired as e:
        logger.warning(f"safe_run: Command timed out after {timeout}s: {' '.join(cmd)}")
        stdout = e.stdout.decode("utf-8", "replace") if isinstance(e.stdout, bytes) else (e.stdout or "")
        return subprocess.CompletedProcess(cmd, returncode=-9, stdout=stdout, stderr="Process timed out.")
    except OSError as e:
        logger.error(f"safe_run: OS error while running {cmd}: {e}", exc_info=True)
        return subprocess.CompletedProcess(cmd, returncode=-1, stdout="", stderr=str(e))


# ──────────────────────────── Platform checks ────────────────────────────

def is_windows() -> bool:
    return sys.platform == "win32"


def is_wsl() -> bool:
    """True when running inside the Windows Subsystem for Linux."""
    if sys.platform != "linux":
        return False
    try:
        with open("/proc/version", "r", encoding="utf-8", errors="replace") as fh:
            return "microsoft" in fh.read().lower()
    except OSError:
        return False


def is_absolute(path: str) -> bool:
    """Unix absolute, UNC (``\\\\server``) or drive-letter (``C:\\``) path."""
    if path.startswith("/") or path.startswith("\\\\"):
        return True
    return bool(is_windows() and _DRIVE_RE.match(path))


def is_valid_file(path: Optional[str]) -> bool:
    """True when ``path`` exists and is a regular file."""
    if not path:
        return False
    return os.path.isfile(path)


# ──────────────────────────── Working directories ────────────────────────────

def _cwd_from_proc(pid: int) -> Optional[str]:
    proc = f"/proc/{pid}/cwd"
    try:
        cwd = os.path.realpath(proc)
    except OSError:
        return None
    if cwd != proc and os.path.isdir(cwd):
        return cwd
    return None


def _cwd_from_lsof(pid: int) -> Optional[str]:
    result = safe_run(["lsof", "-a", "-d", "cwd", "-p", str(pid), "-Fn"], timeout=2)
    if result.returncode != 0:
        return None
    for line in result.stdout.splitlines():
        if line.startswith("n") and os.path.isdir(line[1:]):
            return line[1:]
    return None


def get_process_cwd(pid: Optional[int]) -> Optional[str]:
    """
    Returns the working directory of process ``pid``.

    Tries ``/proc/<pid>/cwd`` first (Linux, WSL) and falls back to
    ``lsof`` (macOS, BSD). Returns ``None`` when neither works.
    """
    if not pid:
        return None
    cwd = _cwd_from_proc(pid) or _cwd_from_lsof(pid)
    if cwd is None:
        logger.debug("Could not determine the working directory of pid %s", pid)
    return cwd


# ──────────────────────────── Absolute path candidates ────────────────────────────

def _windows_to_wsl(path: str) -> Optional[str]:
    result = safe_run(["wslpath", "-u", path], timeout=2)
    out = result.stdout.strip() if result.returncode == 0 else ""
    return out or None


def _expand_windows_env(path: str) -> Optional[str]:
    match = _WINDOWS_ENV_RE.match(path)
    if not match:
        return None
    value = os.environ.get(match.group(1))
    if not value:
        return None
    rest = match.group(2)
    return value + ("\\" + rest if rest else "")


def get_absolute_path_candidates(
        name: str,
        context_dir: Optional[str] = None,
        tilde_as_project_root: bool = False,
        project_root: Optional[str] = None,
) -> List[str]:
    """
    Lists the absolute interpretations of a raw path, most likely first.

    Handled forms:
        - ``~`` / ``~/x``: home expansion; with ``tilde_as_project_root`` also
          ``project_root/x``; plus the literal ``context_dir/~x`` reading.
        - ``$VAR/x`` and ``${VAR}/x``: environment expansion.
        - ``%VAR%\\x``: Windows environment expansion (and its WSL translation).
        - absolute Unix, UNC and drive-letter paths: used as they are.
        - anything else: joined to ``context_dir`` (the document's directory
          or a terminal's working directory).

    Results are de-duplicated by normalised absolute form.

    Args:
        name (str): Raw path text from a candidate.
        context_dir (Optional[str]): Base directory for relative names;
            defaults to the process working directory.
        tilde_as_project_root (bool): Also read ``~/`` as project relative.
        project_root (Optional[str]): Project root; defaults to the cwd.

    Returns:
        List[str]: Ordered, de-duplicated path strings.
    """
    context_dir = context_dir or os.getcwd()
    candidates: List[str] = []
    seen = set()

    def add(path: Optional[str]) -> None:
        if not path:
            return
        key = os.path.normcase(os.path.abspath(path))
        if key not in seen:
            seen.add(key)
            candidates.append(path)

    def add_relative(base: Optional[str], rest: str) -> None:
        if not base:
            return
        add(os.path.join(base, rest) if rest else base)

    handled = False
    if name.startswith("~"):
        handled = True
        expanded = os.path.expanduser(name)
        if expanded != name:
            add(expanded)
        if tilde_as_project_root:
            root = project_root or os.getcwd()
            if name == "~":
                add(root)
            elif re.match(r"^~[\\/]", name):
                add_relative(root, re.sub(r"^~[\\/]+", "", name))
        add_relative(context_dir, name)

    if _UNIX_ENV_RE.match(name):
        handled = True
        expanded = os.path.expandvars(name)
        if expanded != name:
            add(expanded)

    if _WINDOWS_ENV_RE.match(name):
        handled = True
        expanded = _expand_windows_env(name) or name
        if is_wsl():
            add(_windows_to_wsl(expanded))
        add(expanded)

    if not handled and is_wsl() and _DRIVE_RE.match(name):
        translated = _windows_to_wsl(name)
        if translated:
            handled = True
            add(translated)

    if not handled:
        if is_absolute(name):
            add(name)
        else:
            add_relative(context_dir, name)

    if not candidates:
        add(name)
    return candidates


# ──────────────────────────── Display width ────────────────────────────

def strip_ansi(text: str) -> str:
    """Removes ANSI CSI escape sequences (colours, cursor movement)."""
    return _ANSI_CSI_RE.sub("", text)


def char_width(ch: str) -> int:
    """Terminal cell width of one character; control characters count as 1."""
    width = wcwidth(ch)
    return width if width > 0 else (0 if width == 0 else 1)


def display_width(text: str) -> int:
    """Terminal cell width of ``text`` as measured by wcwidth."""
    width = wcswidth(text)
    if width >= 0:
        return width
    return sum(char_width(ch) for ch in text)


def get_merged_line(
        lines: Sequence[Tuple[int, str]],
        index: int,
        width: int,
) -> Tuple[str, List[Tuple[int, int, int]], int]:
    """
    Joins hard-wrapped physical lines into one logical line.

    A terminal that hard-wraps output fills a row completely before it
    continues on the next one, so a row whose display width reaches ``width``
    is followed by its continuation.

    Args:
        lines: ``(physical_line_no, text)`` pairs.
        index: Index of the first physical line to merge.
        width: Terminal width in cells.

    Returns:
        ``(text, segments, next_index)`` where ``segments`` holds one
        ``(physical_line_no, start_pos, length)`` triple per merged line,
        ``start_pos`` being 1-based within ``text``.
    """
    parts: List[str] = []
    segments: List[Tuple[int, int, int]] = []
    pos = 1
    while index < len(lines):
        lnum, text = lines[index]
        parts.append(text)
        segments.append((lnum, pos, len(text)))
        pos += len(text)
        index += 1
        if display_width(text) < width:
            break
    return "".join(parts), segments, index
