"""Per-page pipeline stages: job building, diffing and editing."""

from .differ import diff, locate_region, normalize
from .editor import Editor
from .page_parser import build_job, find_template, marker_pattern

__all__ = [
    "Editor",
    "build_job",
    "diff",
    "find_template",
    "locate_region",
    "marker_pattern",
    "normalize",
]
