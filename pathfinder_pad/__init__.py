# pathfinder_pad/__init__.py

__version__ = "0.1.0"

from .candidates import (
    Candidate,
    CandidateKind,
    Span,
    collect_candidates_in_range,
    deduplicate_candidates,
    scan_line,
)
from .config import ScanConfig, deep_merge, load_config
from .core import HostView, run_command
from .errors import PathfinderError
from .validation import Resolver, collect_all, collect_nth
from .visual_select import assign_labels, run_selection_loop

__all__ = [
    'Candidate',
    'CandidateKind',
    'Span',
    'ScanConfig',
    'HostView',
    'PathfinderError',
    'Resolver',
    'scan_line',
    'collect_candidates_in_range',
    'deduplicate_candidates',
    'collect_nth',
    'collect_all',
    'assign_labels',
    'run_selection_loop',
    'run_command',
    'deep_merge',
    'load_config',
]
