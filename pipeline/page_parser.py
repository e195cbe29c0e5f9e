"""Locating list templates in page text and building Jobs from them."""

from __future__ import annotations

import re
from typing import Optional, Pattern, Tuple

from core import Job, PageSnapshot, TemplateMarkers
from render.columns import parse_columns
from render.template import parse_list_options, split_template_params
from utils.exceptions import MarkersNotFound, TemplateParseError


def marker_pattern(name: str) -> Pattern[str]:
    """Regex for ``{{Name`` followed by ``|`` or ``}}``.

    The first letter is case-insensitive and spaces match underscores, as
    in MediaWiki titles; an optional ``Template:`` prefix is accepted.
    """
    name = name.strip().replace("_", " ")
    if not name:
        raise ValueError("marker name is empty")
    first = re.escape(name[0])
    if name[0].isalpha():
        first = f"[{name[0].upper()}{name[0].lower()}]"
    rest = "[ _]+".join(re.escape(word) for word in name[1:].split(" "))
    return re.compile(r"\{\{\s*(?:[Tt]emplate:)?" + first + rest + r"\s*(?=\||\}\})")


def find_template(text: str, name: str, start: int = 0) -> Optional[Tuple[int, int, int]]:
    """First ``{{name ...}}`` at or after ``start``.

    Returns (open index, end of name, index after the balanced ``}}``), or
    None when the name does not occur.

    Raises:
        MarkersNotFound: the template is never closed
    """
    match = marker_pattern(name).search(text, start)
    if not match:
        return None

    # single braces count too, so SPARQL group graph patterns ending in "}}" stay inside
    depth = 0
    for i in range(match.start(), len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return match.start(), match.end(), i + 1
    raise MarkersNotFound(f"Template {name} is not closed", position=match.start())


def build_job(snapshot: PageSnapshot, markers: TemplateMarkers, *, default_language: str = "en") -> Job:
    """
    Build the Job for a page from its start template.

    Raises:
        MarkersNotFound: no start template on the page
        TemplateParseError: the template has no usable ``sparql`` parameter
    """
    found = find_template(snapshot.text, markers.start)
    if found is None:
        raise MarkersNotFound(f"No {{{{{markers.start}}}}} on page", page=snapshot.title)

    _, name_end, close = found
    body = snapshot.text[name_end:close - 2].strip()
    if body.startswith("|"):
        body = body[1:]
    params = split_template_params(body)

    query = params.get("sparql", "").strip()
    if not query:
        raise TemplateParseError(f"No 'sparql' parameter in {{{{{markers.start}}}}}", {"page": snapshot.title})

    return Job(
        page=snapshot.title,
        namespace=snapshot.namespace,
        query=query,
        columns=tuple(parse_columns(params.get("columns"))),
        options=parse_list_options(params, default_language=default_language),
        markers=markers,
        base_revision=snapshot.revision,
    )
