"""Parsing of the ``columns=`` template parameter."""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from core import Column, ColumnKind


_RE_COLUMN_LABEL = re.compile(r"^\s*(.+?)\s*:\s*(.+?)\s*$")

DEFAULT_COLUMNS = "item"


def _entity_id(text: str, prefix: str) -> Optional[str]:
    text = text.strip()
    if len(text) < 2 or text[0].upper() != prefix or not text[1:].isdigit():
        return None
    return text.upper()


def parse_column_kind(spec: str) -> Tuple[ColumnKind, Tuple[str, ...]]:
    """Classify one column spec (case-insensitive keywords, ids upper-cased)."""
    lowered = spec.strip().lower()

    keywords = {
        "number": ColumnKind.NUMBER,
        "label": ColumnKind.LABEL,
        "description": ColumnKind.DESCRIPTION,
        "item": ColumnKind.ITEM,
        "qid": ColumnKind.QID,
    }
    if lowered in keywords:
        return keywords[lowered], ()

    if lowered.startswith("description/"):
        langs = tuple(lang.strip() for lang in lowered[len("description/"):].split("/") if lang.strip())
        return ColumnKind.DESCRIPTION, langs
    if lowered.startswith("label/"):
        return ColumnKind.LABEL_LANG, (lowered[len("label/"):].strip(),)
    if lowered.startswith("alias/"):
        return ColumnKind.ALIAS_LANG, (lowered[len("alias/"):].strip(),)

    trimmed = spec.strip()
    prop = _entity_id(trimmed, "P")
    if prop:
        return ColumnKind.PROPERTY, (prop,)

    if "/" in trimmed:
        parts = [part.strip() for part in trimmed.split("/")]
        if len(parts) == 2:
            p1, p2 = _entity_id(parts[0], "P"), _entity_id(parts[1], "P")
            if p1 and p2:
                return ColumnKind.PROPERTY_QUALIFIER, (p1, p2)
        if len(parts) == 3:
            p1, q1, p2 = _entity_id(parts[0], "P"), _entity_id(parts[1], "Q"), _entity_id(parts[2], "P")
            if p1 and q1 and p2:
                return ColumnKind.PROPERTY_QUALIFIER_VALUE, (p1, q1, p2)

    if trimmed.startswith("?") and len(trimmed) > 1:
        return ColumnKind.FIELD, (trimmed[1:],)

    return ColumnKind.UNKNOWN, (trimmed,)


def parse_column(text: str) -> Column:
    """Parse ``spec`` or ``spec:Header label``."""
    match = _RE_COLUMN_LABEL.match(text)
    if match:
        kind, args = parse_column_kind(match.group(1))
        label = match.group(2)
        return Column(kind=kind, label=label, has_label=bool(label), args=args)
    kind, args = parse_column_kind(text.strip())
    return Column(kind=kind, label=text.strip(), has_label=False, args=args)


def parse_columns(value: Optional[str]) -> List[Column]:
    text = (value or "").strip() or DEFAULT_COLUMNS
    return [parse_column(part) for part in text.split(",") if part.strip()]


def column_key(column: Column) -> str:
    """Parameter name used for a column inside ``row_template`` calls."""
    kind = column.kind
    if kind == ColumnKind.DESCRIPTION:
        return "desc"
    if kind == ColumnKind.LABEL_LANG:
        return f"language:{column.args[0]}"
    if kind == ColumnKind.ALIAS_LANG:
        return f"alias:{column.args[0]}"
    if kind in {ColumnKind.PROPERTY, ColumnKind.PROPERTY_QUALIFIER, ColumnKind.PROPERTY_QUALIFIER_VALUE}:
        return "_".join(arg.lower() for arg in column.args)
    if kind == ColumnKind.FIELD:
        return column.args[0].lower()
    return kind.value


def column_property_ids(column: Column) -> List[str]:
    """Property ids a column needs labels (and datatypes) for."""
    if column.kind in {ColumnKind.PROPERTY, ColumnKind.PROPERTY_QUALIFIER}:
        return list(column.args)
    if column.kind == ColumnKind.PROPERTY_QUALIFIER_VALUE:
        return [column.args[0], column.args[2]]
    return []
