"""Wikitext rendering: column/template parsing, cell formatting, tables."""

from .cells import RenderContext, format_time, location_part
from .columns import parse_column, parse_columns
from .entities import (
    filtered_statements,
    label_with_fallback,
    needs_row_entities,
    referenced_entity_ids,
    row_entity_ids,
)
from .template import parse_list_options, split_template_params
from .wikitext import Renderer, render_table

__all__ = [
    "RenderContext",
    "Renderer",
    "filtered_statements",
    "format_time",
    "label_with_fallback",
    "location_part",
    "needs_row_entities",
    "parse_column",
    "parse_columns",
    "parse_list_options",
    "referenced_entity_ids",
    "render_table",
    "row_entity_ids",
    "split_template_params",
]
