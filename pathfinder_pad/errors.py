# errors.py
"""
Error taxonomy for the pathfinder commands.

Scanning and de-duplication never raise: they degrade to "no candidates".
Resolution and selection failures are raised as the exceptions below and are
turned into exactly one user-visible message by ``core.run_command``.
"""

from typing import Optional


class PathfinderError(Exception):
    """Base class for every failure a pathfinder command can report."""

    message = "Pathfinder error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class NoCandidateError(PathfinderError):
    """The scan produced no candidates at all."""

    message = "Valid file target not found"


class UnresolvedError(PathfinderError):
    """A candidate resolved to zero existing targets."""

    message = "Unable to locate file; check it still exists"


class InsufficientCountError(PathfinderError):
    """Fewer than N valid candidates existed for an ordinal request."""

    def __init__(self, found: int, message: Optional[str] = None):
        self.found = found
        super().__init__(message or f"Valid file target not found ({found} available)")


class UserCancelled(PathfinderError):
    """
    The user dismissed an ambiguity prompt or the selection overlay.

    This is an intentional outcome rather than a failure: the pending command
    stops without side effects and without a message.
    """

    message = "Cancelled"


class MalformedDelimiterConfig(PathfinderError):
    """An enclosure pair has an empty opening or closing string."""

    def __init__(self, opening: str, closing: str):
        self.opening = opening
        self.closing = closing
        super().__init__(f"Malformed enclosure pair {opening!r} -> {closing!r}")
