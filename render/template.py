"""Start-template parameter parsing."""

from __future__ import annotations

import re
from typing import Dict, Optional

from core import ListOptions
from utils.exceptions import TemplateParseError


_RE_PROP = re.compile(r"^[Pp]\d+$")
_RE_NUM = re.compile(r"^\d+$")


def split_template_params(text: str) -> Dict[str, str]:
    """
    Split ``key=value|key=value`` at top-level pipes.

    Pipes inside ``{{...}}`` or inside single/double quotes do not split.
    Keys are lower-cased and values trimmed; ``{{!}}`` becomes ``|``.
    Parts without ``=`` are ignored.

    Raises:
        TemplateParseError: a quote is left open
    """
    parts = []
    current = []
    depth = 0
    quote: Optional[str] = None

    for ch in text:
        if ch in {"'", '"'}:
            if quote is None:
                quote = ch
            elif quote == ch:
                quote = None
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        elif ch == "|" and depth == 0 and quote is None:
            parts.append("".join(current))
            current = []
            continue
        current.append(ch)
    parts.append("".join(current))

    if quote is not None:
        raise TemplateParseError(f"Unclosed quote: {quote}")

    params: Dict[str, str] = {}
    for part in parts:
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        params[key.strip().lower()] = value.strip().replace("{{!}}", "|")
    return params


def parse_sort(value: Optional[str]) -> Optional[str]:
    """Normalize ``sort=``: label, family_name, Pnnn, ?var; None otherwise."""
    if not value:
        return None
    text = value.strip()
    upper = text.upper()
    if upper == "LABEL":
        return "label"
    if upper == "FAMILY_NAME":
        return "family_name"
    if _RE_PROP.match(text):
        return upper
    if text.startswith("?") and len(text) > 1 and not any(ch.isspace() for ch in text):
        return text
    return None


def parse_section(value: Optional[str]) -> Optional[str]:
    """Normalize ``section=``: a property id (``P31`` or bare ``31``) or ``@var``."""
    if not value:
        return None
    text = value.strip()
    if _RE_PROP.match(text):
        return text.upper()
    if _RE_NUM.match(text):
        return f"P{text}"
    if text.startswith("@") and len(text) > 1:
        return text
    return None


def _int_or(value: Optional[str], default: Optional[int]) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def parse_list_options(params: Dict[str, str], *, default_language: str = "en") -> ListOptions:
    """Build ListOptions from lower-cased template parameters."""
    return ListOptions(
        language=(params.get("language") or "").strip().lower() or default_language,
        sort=parse_sort(params.get("sort")),
        sort_descending=(params.get("sort_order") or "").strip().upper() == "DESC",
        section=parse_section(params.get("section")),
        min_section=_int_or(params.get("min_section"), 2),
        row_template=(params.get("row_template") or "").strip() or None,
        header_template=(params.get("header_template") or "").strip() or None,
        skip_table="skip_table" in params,
        summary_itemnumber=(params.get("summary") or "").strip().upper() == "ITEMNUMBER",
        links=params.get("links") or "all",
        thumb=_int_or(params.get("thumb"), None),
        one_row_per_item=(params.get("one_row_per_item") or "").strip().upper() != "NO",
        wdedit=(params.get("wdedit") or "").strip().upper() == "YES",
        references=(params.get("references") or "").strip().upper() == "ALL",
    )
