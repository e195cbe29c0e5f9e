"""Comparison of a freshly rendered table with the managed region of a page."""

from __future__ import annotations

from typing import Tuple

from core import EditDecision
from utils.exceptions import MarkersNotFound
from .page_parser import find_template, marker_pattern


def locate_region(text: str, start_marker: str, end_marker: str) -> Tuple[int, int]:
    """
    Span of the managed region: after the first start template (including
    its parameters) up to the first end marker that follows it.

    Raises:
        MarkersNotFound: either marker is missing
    """
    start = find_template(text, start_marker)
    if start is None:
        raise MarkersNotFound(f"Start marker {start_marker} not found")
    region_start = start[2]

    end = marker_pattern(end_marker).search(text, region_start)
    if end is None:
        raise MarkersNotFound(f"End marker {end_marker} not found")
    return region_start, end.start()


def normalize(text: str) -> str:
    """Line endings to LF, trailing whitespace dropped, outer blank lines dropped."""
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return "\n".join(line.rstrip() for line in lines).strip("\n")


def diff(current_text: str, rendered: str, start_marker: str, end_marker: str) -> EditDecision:
    """NO_CHANGE when the managed region already equals ``rendered``;
    otherwise UPDATE with the full page text, unmanaged text kept verbatim."""
    region_start, region_end = locate_region(current_text, start_marker, end_marker)
    if normalize(current_text[region_start:region_end]) == normalize(rendered):
        return EditDecision.no_change()
    new_text = current_text[:region_start] + "\n" + rendered + "\n" + current_text[region_end:]
    return EditDecision.update(new_text)
