"""Deterministic wikitext table rendering.

``Renderer.render`` is a pure function of (job, query result, entity
snapshot): rows follow the query order unless a sort is requested, columns
follow the job's column list, and nothing depends on clocks or randomness.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from config.settings import RenderSettings
from core import Column, ColumnKind, Entity, Job, QueryResult, RenderedTable, SparqlValue, ValueKind
from .cells import (
    RenderContext,
    entity_link,
    escape_text,
    reference_tags,
    snak_part,
    sparql_part,
)
from .columns import column_key
from .entities import filtered_statements, label_in, label_with_fallback, needs_row_entities


logger = logging.getLogger(__name__)

TABLE_HEADER = "{| class='wikitable sortable' style='width:100%'\n"
MISC_SECTION = "Misc"

_RE_SR_JR = re.compile(r", [JS]r\.$")
_RE_BRACES = re.compile(r"\s+\(.+\)$")
_RE_LAST_FIRST = re.compile(r"^(?P<f>.+) (?P<l>\S+)$")


@dataclass
class Row:
    """One table row: an item (or a bare query row) and its bindings."""

    entity_id: Optional[str]
    bindings: List[Dict[str, SparqlValue]]
    position: int
    sortkey: str = ""
    section: int = 0

    @property
    def numeric_id(self) -> int:
        if not self.entity_id:
            return self.position
        digits = "".join(ch for ch in self.entity_id if ch.isdigit())
        return int(digits) if digits else self.position


@dataclass
class Cell:
    parts: List[str] = field(default_factory=list)
    css_class: Optional[str] = None
    separator: str = "<br/>"

    def add(self, part: Optional[str]) -> None:
        if part is not None and part != "" and part not in self.parts:
            self.parts.append(part)

    def text(self) -> str:
        return self.separator.join(self.parts)


class Renderer:
    """Renders a Job's query result into a wikitext table."""

    def __init__(self, settings: RenderSettings, *, wiki_id: str):
        self.settings = settings
        self.wiki_id = wiki_id
        self._handlers: Dict[ColumnKind, Callable[[RenderContext, Column, Row, Optional[Entity], int], Cell]] = {
            ColumnKind.NUMBER: self._cell_number,
            ColumnKind.LABEL: self._cell_label,
            ColumnKind.LABEL_LANG: self._cell_label_lang,
            ColumnKind.ALIAS_LANG: self._cell_alias_lang,
            ColumnKind.DESCRIPTION: self._cell_description,
            ColumnKind.ITEM: self._cell_item,
            ColumnKind.QID: self._cell_qid,
            ColumnKind.PROPERTY: self._cell_property,
            ColumnKind.PROPERTY_QUALIFIER: self._cell_property_qualifier,
            ColumnKind.PROPERTY_QUALIFIER_VALUE: self._cell_property_qualifier_value,
            ColumnKind.FIELD: self._cell_field,
            ColumnKind.UNKNOWN: self._cell_unknown,
        }

    def render(self, job: Job, result: QueryResult, entities: Mapping[str, Entity]) -> RenderedTable:
        ctx = RenderContext(job=job, entities=entities, settings=self.settings, wiki_id=self.wiki_id)
        rows = self._build_rows(ctx, result)
        self._check_fields(ctx, result)
        if job.options.sort:
            rows = self._sort_rows(ctx, rows)
        section_names = self._assign_sections(ctx, rows)
        headers = [self._header_label(ctx, column) for column in job.columns]

        blocks = []
        for section_id, name in enumerate(section_names):
            section_rows = [row for row in rows if row.section == section_id]
            if not section_rows and section_names != [""]:
                continue
            block = self._render_section(ctx, headers, section_rows)
            if name:
                block = f"== {name} ==\n{block}"
            blocks.append(block)

        logger.debug(f"[Renderer] {job.page}: {len(rows)} rows in {len(section_names)} block(s)")
        text = "\n".join(blocks)
        if job.options.summary_itemnumber:
            text += f"\n----\n&sum; {len(rows)} items."
        return RenderedTable(text=text, row_count=len(rows), warnings=list(ctx.warnings))

    # rows

    def _build_rows(self, ctx: RenderContext, result: QueryResult) -> List[Row]:
        main = result.main_variable
        entity_rows = needs_row_entities(ctx.job)
        rows: List[Row] = []
        by_entity: Dict[str, Row] = {}

        for index, binding in enumerate(result.rows):
            value = binding.get(main) if main else None
            entity_id = value.value if value is not None and value.kind == ValueKind.ENTITY else None
            if entity_id is None and entity_rows:
                ctx.warn(f"MalformedRow: row {index + 1} has no item bound to ?{main}")
                continue
            if entity_id and ctx.options.one_row_per_item:
                existing = by_entity.get(entity_id)
                if existing is not None:
                    existing.bindings.append(binding)
                    continue
            row = Row(entity_id=entity_id, bindings=[binding], position=len(rows))
            if entity_id:
                by_entity.setdefault(entity_id, row)
            rows.append(row)
        return rows

    def _check_fields(self, ctx: RenderContext, result: QueryResult) -> None:
        declared = {name.lower() for name in result.variables}
        for column in ctx.job.columns:
            if column.kind == ColumnKind.FIELD and column.args[0].lower() not in declared:
                ctx.warn(f"column ?{column.args[0]} is not a query variable")

    # sorting

    def _sort_rows(self, ctx: RenderContext, rows: List[Row]) -> List[Row]:
        sort = ctx.options.sort
        numeric = False
        if sort.startswith("P"):
            prop_entity = ctx.entities.get(sort)
            numeric = prop_entity is not None and prop_entity.datatype == "quantity"
        for row in rows:
            row.sortkey = self._sortkey(ctx, row, sort)

        if numeric:
            def _key(row: Row) -> Tuple:
                try:
                    return (float(row.sortkey or 0), row.numeric_id)
                except ValueError:
                    return (0.0, row.numeric_id)
        else:
            def _key(row: Row) -> Tuple:
                return (row.sortkey, row.numeric_id)

        ordered = sorted(rows, key=_key)
        if ctx.options.sort_descending:
            ordered.reverse()
        return ordered

    def _sortkey(self, ctx: RenderContext, row: Row, sort: str) -> str:
        entity = ctx.entities.get(row.entity_id) if row.entity_id else None
        if sort == "label":
            return ctx.label(row.entity_id) if entity is not None else ""
        if sort == "family_name":
            if entity is None:
                return ""
            label = label_in(entity, ctx.language)
            if label is None:
                return entity.id
            label = _RE_SR_JR.sub("", label)
            label = _RE_BRACES.sub("", label)
            return _RE_LAST_FIRST.sub(r"\g<l>, \g<f>", label)
        if sort.startswith("?"):
            return self._binding_key(ctx, row, sort[1:])
        if entity is None:
            return ""
        for statement in filtered_statements(entity, sort, self.settings.prefer_preferred):
            return self._value_key(ctx, statement.main)
        return ""

    def _binding_key(self, ctx: RenderContext, row: Row, variable: str) -> str:
        for binding in row.bindings:
            for name, value in binding.items():
                if name.lower() != variable.lower():
                    continue
                if value.kind == ValueKind.ENTITY:
                    return ctx.label(value.value)
                return value.value
        return ""

    @staticmethod
    def _value_key(ctx: RenderContext, snak) -> str:
        value = snak.value
        if value is None:
            return ""
        if value.kind == "entity":
            return ctx.label(value.text)
        if value.kind == "coordinate":
            return f"{value.latitude},{value.longitude}"
        return value.text

    # sections

    def _assign_sections(self, ctx: RenderContext, rows: List[Row]) -> List[str]:
        section = ctx.options.section
        if not section:
            return [""]

        names = [self._section_name(ctx, row, section) for row in rows]
        counts: Dict[str, int] = {}
        for name in names:
            if name:
                counts[name] = counts.get(name, 0) + 1
        valid = sorted(name for name, count in counts.items() if count >= ctx.options.min_section)
        index = {name: i for i, name in enumerate(valid)}
        misc = len(valid)
        for row, name in zip(rows, names):
            row.section = index.get(name, misc)
        return valid + [MISC_SECTION]

    def _section_name(self, ctx: RenderContext, row: Row, section: str) -> str:
        if section.startswith("@"):
            return self._binding_key(ctx, row, section[1:])
        entity = ctx.entities.get(row.entity_id) if row.entity_id else None
        if entity is None:
            return ""
        for statement in filtered_statements(entity, section, self.settings.prefer_preferred):
            return self._value_key(ctx, statement.main)
        return ""

    # table

    def _header_label(self, ctx: RenderContext, column: Column) -> str:
        if column.has_label:
            return column.label
        if column.kind == ColumnKind.PROPERTY:
            return self._property_label(ctx, column.args[0])
        if column.kind == ColumnKind.PROPERTY_QUALIFIER:
            return f"{self._property_label(ctx, column.args[0])}/{self._property_label(ctx, column.args[1])}"
        if column.kind == ColumnKind.PROPERTY_QUALIFIER_VALUE:
            return f"{self._property_label(ctx, column.args[0])}/{self._property_label(ctx, column.args[2])}"
        return column.label

    @staticmethod
    def _property_label(ctx: RenderContext, prop: str) -> str:
        entity = ctx.entities.get(prop)
        if entity is None:
            return prop
        return label_with_fallback(entity, ctx.language, ctx.settings.default_language)

    def _render_section(self, ctx: RenderContext, headers: List[str], rows: List[Row]) -> str:
        options = ctx.options
        text = ""
        if options.header_template:
            text += "{{" + options.header_template + "}}\n"
        elif not options.skip_table:
            text += TABLE_HEADER
            for header in headers:
                text += f"! {header}\n"

        if not options.row_template and not options.skip_table and rows:
            text += "|-\n"

        rendered = [self._render_row(ctx, row, rownum) for rownum, row in enumerate(rows)]
        if options.skip_table:
            text += "\n".join(rendered)
        else:
            text += "\n|-\n".join(rendered)
            text += "\n|}"
        return text

    def _render_row(self, ctx: RenderContext, row: Row, rownum: int) -> str:
        entity = ctx.entities.get(row.entity_id) if row.entity_id else None
        cells = []
        for column in ctx.job.columns:
            cell = self._handlers[column.kind](ctx, column, row, entity, rownum)
            cells.append(cell)

        if ctx.options.row_template:
            params = []
            for column, cell in zip(ctx.job.columns, cells):
                value = cell.text().strip()
                if value:
                    params.append(f"{column_key(column)} = {value}")
            return "{{" + ctx.options.row_template + "\n| " + "\n| ".join(params) + "\n}}"

        return "|" + "\n|".join(self._cell_prefix(ctx, cell) + cell.text() for cell in cells)

    @staticmethod
    def _cell_prefix(ctx: RenderContext, cell: Cell) -> str:
        if ctx.options.wdedit and not ctx.options.header_template and cell.css_class:
            return f"class='{cell.css_class}'| "
        return " "

    # column handlers

    def _cell_number(self, ctx, column, row, entity, rownum) -> Cell:
        return Cell(parts=[f"style='text-align:right'| {rownum + 1}"])

    def _cell_label(self, ctx, column, row, entity, rownum) -> Cell:
        cell = Cell(css_class="wd_label")
        if entity is None:
            return cell
        cell.add(entity_link(ctx, row.entity_id))
        return cell

    def _cell_label_lang(self, ctx, column, row, entity, rownum) -> Cell:
        cell = Cell()
        if entity is not None:
            cell.add(label_in(entity, column.args[0]) or label_in(entity, ctx.language))
        return cell

    def _cell_alias_lang(self, ctx, column, row, entity, rownum) -> Cell:
        cell = Cell()
        if entity is not None:
            for alias in sorted(entity.aliases.get(column.args[0], [])):
                cell.add(alias)
        return cell

    def _cell_description(self, ctx, column, row, entity, rownum) -> Cell:
        cell = Cell(css_class="wd_desc")
        if entity is None:
            return cell
        for lang in list(column.args) or [ctx.language]:
            description = entity.descriptions.get(lang)
            if description:
                cell.add(escape_text(description))
                break
        return cell

    def _cell_item(self, ctx, column, row, entity, rownum) -> Cell:
        cell = Cell()
        if row.entity_id:
            cell.add(ctx.item_link(row.entity_id, row.entity_id, italic=False))
        return cell

    def _cell_qid(self, ctx, column, row, entity, rownum) -> Cell:
        cell = Cell()
        if row.entity_id:
            cell.add(row.entity_id)
        return cell

    def _cell_property(self, ctx, column, row, entity, rownum) -> Cell:
        prop = column.args[0]
        cell = Cell(css_class=f"wd_{prop.lower()}")
        if entity is None:
            return cell
        for statement in filtered_statements(entity, prop, self.settings.prefer_preferred):
            part = snak_part(ctx, statement.main, column, row.entity_id)
            if part:
                part += reference_tags(ctx, statement)
            cell.add(part)
        return cell

    def _cell_property_qualifier(self, ctx, column, row, entity, rownum) -> Cell:
        prop, qualifier = column.args
        cell = Cell()
        if entity is None:
            return cell
        for statement in filtered_statements(entity, prop, self.settings.prefer_preferred):
            main = snak_part(ctx, statement.main, column, row.entity_id)
            for snak in statement.qualifiers.get(qualifier, []):
                parts = [p for p in (main, snak_part(ctx, snak, column, row.entity_id)) if p]
                cell.add(" — ".join(parts))
        return cell

    def _cell_property_qualifier_value(self, ctx, column, row, entity, rownum) -> Cell:
        prop, target, qualifier = column.args
        cell = Cell()
        if entity is None:
            return cell
        for statement in filtered_statements(entity, prop, self.settings.prefer_preferred):
            value = statement.main.value
            if value is None or value.kind != "entity" or value.text != target:
                continue
            for snak in statement.qualifiers.get(qualifier, []):
                cell.add(snak_part(ctx, snak, column, row.entity_id))
        return cell

    def _cell_field(self, ctx, column, row, entity, rownum) -> Cell:
        variable = column.args[0].lower()
        cell = Cell()
        for binding in row.bindings:
            for name, value in binding.items():
                if name.lower() == variable:
                    cell.add(sparql_part(ctx, value, row.entity_id))
        return cell

    def _cell_unknown(self, ctx, column, row, entity, rownum) -> Cell:
        ctx.warn(f"unknown column type: {column.label}")
        return Cell()


def render_table(
    job: Job,
    result: QueryResult,
    entities: Mapping[str, Entity],
    *,
    settings: Optional[RenderSettings] = None,
    wiki_id: str = "enwiki",
) -> RenderedTable:
    """Functional shortcut around ``Renderer``."""
    return Renderer(settings or RenderSettings(), wiki_id=wiki_id).render(job, result, entities)
