"""Formatting of individual cell parts into wikitext."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Set

from config.settings import RenderSettings
from core import Column, ColumnKind, Entity, Job, Snak, SparqlValue, Statement, ValueKind
from .entities import formatter_url, label_with_fallback


_RE_TIME = re.compile(r"^\+?(-?\d+)-(\d{1,2})-(\d{1,2})T")

WIKIDATA_SITE = "wikidatawiki"
COMMONS_CATEGORY_PROPERTY = "P373"
REFERENCE_URL_PROPERTY = "P854"
REFERENCE_TITLE_PROPERTY = "P1476"
REFERENCE_RETRIEVED_PROPERTY = "P813"
REFERENCE_STATED_IN_PROPERTY = "P248"
NO_VALUE = "No/unknown value"


def _ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def format_time(time: str, precision: int) -> Optional[str]:
    """Reduce a Wikibase time value to its precision.

    11 day, 10 month, 9 year, 8 decade, 7 century, 6 millennium; coarser
    precisions render the year.
    """
    match = _RE_TIME.match(time)
    if not match:
        return None
    year, month, day = int(match.group(1)), int(match.group(2)), int(match.group(3))
    sign = "-" if year < 0 else ""
    magnitude = abs(year)

    if precision >= 11:
        return f"{year}-{month:02d}-{day:02d}"
    if precision == 10:
        return f"{year}-{month:02d}"
    if precision == 9:
        return str(year)
    if precision == 8:
        return f"{sign}{magnitude // 10 * 10}s"
    if precision == 7:
        return f"{sign}{_ordinal((magnitude - 1) // 100 + 1)} century"
    if precision == 6:
        return f"{sign}{_ordinal((magnitude - 1) // 1000 + 1)} millennium"
    return str(year)


def escape_text(text: str) -> str:
    return text.replace("'", "&#39;").replace("<", "&lt;")


def normalize_title(title: str) -> str:
    text = title.replace("_", " ").strip()
    return text[:1].upper() + text[1:] if text else text


@dataclass
class RenderContext:
    """Everything a cell formatter may look at; no I/O."""

    job: Job
    entities: Mapping[str, Entity]
    settings: RenderSettings
    wiki_id: str
    warnings: List[str] = field(default_factory=list)
    reference_names: Set[str] = field(default_factory=set)

    @property
    def options(self):
        return self.job.options

    @property
    def language(self) -> str:
        return self.job.options.language

    @property
    def on_wikidata(self) -> bool:
        return self.wiki_id == WIKIDATA_SITE

    @property
    def thumbnail_size(self) -> int:
        return self.job.options.thumb or self.settings.default_thumbnail_size

    def warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    def label(self, entity_id: str) -> str:
        entity = self.entities.get(entity_id)
        if entity is None:
            return entity_id
        return label_with_fallback(entity, self.language, self.settings.default_language)

    def item_target(self, entity_id: str) -> str:
        if self.on_wikidata:
            return entity_id
        return f"{self.settings.item_link_prefix}{entity_id}"

    def item_link(self, entity_id: str, label: str, *, italic: bool = True) -> str:
        link = f"[[{self.item_target(entity_id)}|{label}]]"
        if italic and not self.on_wikidata:
            return f"''{link}''"
        return link


def local_link(ctx: RenderContext, title: str, label: str) -> str:
    start = "[[:" if normalize_title(title).startswith("Category:") else "[["
    if normalize_title(title) == normalize_title(ctx.job.page):
        return label
    if normalize_title(title) == normalize_title(label):
        return f"{start}{label}]]"
    return f"{start}{title}|{label}]]"


def entity_link(ctx: RenderContext, entity_id: str) -> str:
    """Localized link to an item: local sitelink if any, else the item."""
    entity = ctx.entities.get(entity_id)
    if entity is None:
        return ctx.item_link(entity_id, entity_id)

    label = ctx.label(entity_id)
    links = ctx.options.links
    if links == "text":
        return label
    if links == "reasonator":
        return f"[https://reasonator.toolforge.org/?q={entity_id} {label}]"

    local_page = entity.sitelinks.get(ctx.wiki_id)
    if local_page and not ctx.on_wikidata:
        return local_link(ctx, local_page, label)
    if links == "local":
        return label
    return ctx.item_link(entity_id, label)


def file_part(ctx: RenderContext, name: str) -> Optional[str]:
    """Thumbnail wikitext, or None for shadowed files."""
    if normalize_title(name) in {normalize_title(s) for s in ctx.settings.shadow_images}:
        ctx.warn(f"shadowed image not shown: {name}")
        return None
    return f"[[{ctx.settings.file_namespace}:{name}|center|{ctx.thumbnail_size}px]]"


def _format_coordinate(value: float) -> str:
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def location_part(ctx: RenderContext, lat: float, lon: float, entity_id: Optional[str]) -> str:
    """Coordinate template for the first region containing the point."""
    region_name = ""
    template = ctx.settings.location_templates["default"]
    for region in ctx.settings.regions:
        if region.contains(lat, lon) and region.name in ctx.settings.location_templates:
            region_name = region.name
            template = ctx.settings.location_templates[region.name]
            break
    return (
        template.replace("$LAT$", _format_coordinate(lat))
        .replace("$LON$", _format_coordinate(lon))
        .replace("$ITEM$", entity_id or "")
        .replace("$REGION$", region_name)
    )


def external_id_part(ctx: RenderContext, prop: str, value: str) -> str:
    url = formatter_url(ctx.entities.get(prop))
    if not url:
        return value
    return f"[{url.replace('$1', value)} {value}]"


def text_part(column: Column, text: str) -> str:
    if column.kind == ColumnKind.PROPERTY and column.args and column.args[0] == COMMONS_CATEGORY_PROPERTY:
        return f"[[:commons:Category:{text}|{text}]]"
    return text


def snak_part(ctx: RenderContext, snak: Snak, column: Column, entity_id: Optional[str]) -> Optional[str]:
    """Render a statement or qualifier value by its data type."""
    value = snak.value
    if snak.snaktype != "value" or value is None:
        return NO_VALUE

    if value.kind == "entity":
        return entity_link(ctx, value.text)
    if value.kind == "string":
        if snak.datatype == "commonsMedia":
            return file_part(ctx, value.text)
        if snak.datatype == "external-id":
            return external_id_part(ctx, snak.property, value.text)
        if snak.datatype == "url":
            return value.text
        return text_part(column, value.text)
    if value.kind == "time":
        return format_time(value.text, value.precision) or NO_VALUE
    if value.kind == "quantity":
        return value.text
    if value.kind == "monolingual":
        return value.text
    if value.kind == "coordinate":
        return location_part(ctx, value.latitude or 0.0, value.longitude or 0.0, entity_id)
    return None


def sparql_part(ctx: RenderContext, value: SparqlValue, entity_id: Optional[str]) -> Optional[str]:
    """Render a query binding for a field column."""
    if value.kind == ValueKind.ENTITY:
        return entity_link(ctx, value.value)
    if value.kind == ValueKind.FILE:
        return file_part(ctx, value.value)
    if value.kind == ValueKind.LOCATION:
        return location_part(ctx, value.lat or 0.0, value.lon or 0.0, entity_id)
    return value.value


@dataclass
class Reference:
    """The parts of a statement reference that render into a footnote."""

    url: Optional[str] = None
    title: Optional[str] = None
    date: Optional[str] = None
    stated_in: Optional[str] = None

    @classmethod
    def from_snaks(cls, snaks: List[Snak], language: str) -> Optional["Reference"]:
        ref = cls()
        for snak in snaks:
            value = snak.value
            if snak.snaktype != "value" or value is None:
                continue
            if snak.property == REFERENCE_URL_PROPERTY and value.kind == "string":
                ref.url = value.text
            elif snak.property == REFERENCE_TITLE_PROPERTY and value.kind == "monolingual" and value.language == language:
                ref.title = value.text
            elif snak.property == REFERENCE_RETRIEVED_PROPERTY and value.kind == "time":
                ref.date = format_time(value.text, value.precision)
            elif snak.property == REFERENCE_STATED_IN_PROPERTY and value.kind == "entity":
                ref.stated_in = value.text
        # a title or date alone does not identify a source
        if ref.url is None and ref.stated_in is None:
            return None
        return ref

    def wikitext(self, ctx: RenderContext) -> str:
        if self.url and self.title:
            text = f"{{{{cite web|url={self.url}|title={self.title}"
            if self.stated_in:
                text += f"|website={ctx.item_link(self.stated_in, ctx.label(self.stated_in))}"
            if self.date:
                text += f"|access-date={self.date}"
            return text + "}}"
        if self.url:
            return self.url
        return ctx.item_link(self.stated_in, ctx.label(self.stated_in))


def reference_tags(ctx: RenderContext, statement: Statement) -> str:
    """``<ref>`` footnotes for a statement; repeated sources reuse a named ref."""
    if not ctx.options.references:
        return ""
    tags = []
    for snaks in statement.references:
        ref = Reference.from_snaks(snaks, ctx.language)
        if ref is None:
            continue
        text = ref.wikitext(ctx)
        name = "ref_" + hashlib.md5(text.encode("utf-8")).hexdigest()
        if name in ctx.reference_names:
            tags.append(f'<ref name="{name}" />')
        else:
            ctx.reference_names.add(name)
            tags.append(f'<ref name="{name}">{text}</ref>')
    return "".join(tags)
