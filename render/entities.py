"""Entity helpers: label fallback, statement filtering and id collection."""

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional

from core import ColumnKind, Entity, Job, QueryResult, Rank, Statement, ValueKind
from .columns import column_property_ids


FALLBACK_LANGUAGES = ["mul", "en", "de", "fr", "es", "it", "el", "nl"]

FORMATTER_URL_PROPERTY = "P1630"

ENTITY_COLUMN_KINDS = frozenset({
    ColumnKind.LABEL,
    ColumnKind.LABEL_LANG,
    ColumnKind.ALIAS_LANG,
    ColumnKind.DESCRIPTION,
    ColumnKind.ITEM,
    ColumnKind.QID,
    ColumnKind.PROPERTY,
    ColumnKind.PROPERTY_QUALIFIER,
    ColumnKind.PROPERTY_QUALIFIER_VALUE,
})


def label_in(entity: Entity, language: str) -> Optional[str]:
    return entity.labels.get(language) or None


def label_with_fallback(entity: Entity, language: str, default_language: str = "en") -> str:
    """Label in ``language``, then the default and fallback languages,
    then the alphabetically-first available language, then the id."""
    for lang in [language, default_language, *FALLBACK_LANGUAGES]:
        label = entity.labels.get(lang)
        if label:
            return label
    for lang in sorted(entity.labels):
        if entity.labels[lang]:
            return entity.labels[lang]
    return entity.id


def filtered_statements(entity: Entity, prop: str, prefer_preferred: bool = True) -> List[Statement]:
    """Statements for ``prop`` in entity order; preferred-only when any is preferred."""
    statements = entity.statements_for(prop)
    if prefer_preferred and any(s.rank == Rank.PREFERRED for s in statements):
        return [s for s in statements if s.rank == Rank.PREFERRED]
    return statements


def formatter_url(prop_entity: Optional[Entity]) -> Optional[str]:
    if prop_entity is None:
        return None
    for statement in prop_entity.statements_for(FORMATTER_URL_PROPERTY):
        value = statement.main.value
        if value is not None and value.kind == "string" and value.text:
            return value.text
    return None


def needs_row_entities(job: Job) -> bool:
    if any(column.kind in ENTITY_COLUMN_KINDS for column in job.columns):
        return True
    options = job.options
    return bool(options.section) or (options.sort is not None and not options.sort.startswith("?"))


def _ordered(ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(i for i in ids if i))


def row_entity_ids(job: Job, result: QueryResult) -> List[str]:
    """First resolution wave: row items, item values of field columns, and
    the properties named by columns, sort and section."""
    ids: List[str] = []
    main = result.main_variable
    field_vars = {c.args[0].lower() for c in job.columns if c.kind == ColumnKind.FIELD}
    sort = job.options.sort
    if sort and sort.startswith("?"):
        field_vars.add(sort[1:].lower())
    section = job.options.section
    if section and section.startswith("@"):
        field_vars.add(section[1:].lower())

    for row in result.rows:
        for name, value in row.items():
            if value.kind != ValueKind.ENTITY:
                continue
            if name == main or name.lower() in field_vars:
                ids.append(value.value)

    for column in job.columns:
        ids.extend(column_property_ids(column))
    if sort and sort.startswith("P"):
        ids.append(sort)
    if section and section.startswith("P"):
        ids.append(section)
    return _ordered(ids)


def referenced_entity_ids(job: Job, row_ids: Iterable[str], entities: Mapping[str, Entity]) -> List[str]:
    """Second resolution wave: items referenced by the statements the
    columns, sort and section display."""
    props = []
    qualifiers = []
    for column in job.columns:
        if column.kind == ColumnKind.PROPERTY:
            props.append(column.args[0])
        elif column.kind == ColumnKind.PROPERTY_QUALIFIER:
            props.append(column.args[0])
            qualifiers.append(column.args[1])
        elif column.kind == ColumnKind.PROPERTY_QUALIFIER_VALUE:
            props.append(column.args[0])
            qualifiers.append(column.args[2])
    for extra in (job.options.sort, job.options.section):
        if extra and extra.startswith("P"):
            props.append(extra)
    if not props:
        return []

    ids: List[str] = []
    for entity_id in row_ids:
        entity = entities.get(entity_id)
        if entity is None:
            continue
        for prop in props:
            for statement in entity.statements_for(prop):
                snaks = [statement.main]
                for qualifier in qualifiers:
                    snaks.extend(statement.qualifiers.get(qualifier, []))
                if job.options.references:
                    for reference in statement.references:
                        snaks.extend(s for s in reference if s.property == "P248")
                for snak in snaks:
                    if snak.value is not None and snak.value.kind == "entity":
                        ids.append(snak.value.text)
    return [i for i in _ordered(ids) if i not in entities]
