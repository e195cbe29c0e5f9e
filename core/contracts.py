"""Canonical data contracts for the list synchronization pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


MAIN_VARIABLE = "item"


class RunMode(str, Enum):
    """How the orchestrator schedules cycles."""

    ONCE = "once"
    CONTINUOUS = "continuous"


class JobState(str, Enum):
    """Lifecycle of one page synchronization."""

    QUEUED = "queued"
    LOADING = "loading"
    QUERYING = "querying"
    RESOLVING_ENTITIES = "resolving_entities"
    RENDERING = "rendering"
    DIFFING = "diffing"
    EDITING = "editing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({JobState.DONE, JobState.FAILED, JobState.CANCELLED})


class ColumnKind(str, Enum):
    """Closed set of column kinds; each has exactly one render handler."""

    NUMBER = "number"
    LABEL = "label"
    LABEL_LANG = "label_lang"
    ALIAS_LANG = "alias_lang"
    DESCRIPTION = "description"
    ITEM = "item"
    QID = "qid"
    PROPERTY = "property"
    PROPERTY_QUALIFIER = "property_qualifier"
    PROPERTY_QUALIFIER_VALUE = "property_qualifier_value"
    FIELD = "field"
    UNKNOWN = "unknown"


class Column(BaseModel):
    """One table column: kind, header label and kind-specific arguments.

    ``args`` holds language codes for LABEL_LANG / ALIAS_LANG / DESCRIPTION,
    property and item ids for the statement kinds, and the variable name for
    FIELD.
    """

    model_config = ConfigDict(frozen=True)

    kind: ColumnKind
    label: str = ""
    has_label: bool = False
    args: Tuple[str, ...] = ()


class ValueKind(str, Enum):
    ENTITY = "entity"
    FILE = "file"
    URI = "uri"
    TIME = "time"
    LOCATION = "location"
    LITERAL = "literal"


class SparqlValue(BaseModel):
    """Typed value of one query binding."""

    model_config = ConfigDict(frozen=True)

    kind: ValueKind
    value: str = ""
    lat: Optional[float] = None
    lon: Optional[float] = None


class QueryResult(BaseModel):
    """Ordered rows returned by the query service."""

    variables: List[str] = Field(default_factory=list)
    rows: List[Dict[str, SparqlValue]] = Field(default_factory=list)
    attempts: int = 1

    @property
    def main_variable(self) -> Optional[str]:
        if MAIN_VARIABLE in self.variables:
            return MAIN_VARIABLE
        return self.variables[0] if self.variables else None


class Rank(str, Enum):
    PREFERRED = "preferred"
    NORMAL = "normal"
    DEPRECATED = "deprecated"


class DataValue(BaseModel):
    """Main or qualifier value of a statement.

    ``kind`` is one of entity, string, time, quantity, monolingual,
    coordinate. ``text`` carries the entity id, string, time string or
    amount depending on the kind.
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    text: str = ""
    language: str = ""
    precision: int = 11
    unit: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class Snak(BaseModel):
    model_config = ConfigDict(frozen=True)

    property: str
    datatype: str = ""
    snaktype: str = "value"
    value: Optional[DataValue] = None


class Statement(BaseModel):
    model_config = ConfigDict(frozen=True)

    property: str
    rank: Rank = Rank.NORMAL
    main: Snak
    qualifiers: Dict[str, List[Snak]] = Field(default_factory=dict)
    references: List[List[Snak]] = Field(default_factory=list)


class Entity(BaseModel):
    """Immutable snapshot of a Wikibase entity."""

    model_config = ConfigDict(frozen=True)

    id: str
    labels: Dict[str, str] = Field(default_factory=dict)
    descriptions: Dict[str, str] = Field(default_factory=dict)
    aliases: Dict[str, List[str]] = Field(default_factory=dict)
    sitelinks: Dict[str, str] = Field(default_factory=dict)
    statements: Dict[str, List[Statement]] = Field(default_factory=dict)
    datatype: Optional[str] = None

    def statements_for(self, prop: str) -> List[Statement]:
        return list(self.statements.get(prop, []))

    @property
    def numeric_id(self) -> int:
        digits = "".join(ch for ch in self.id if ch.isdigit())
        return int(digits) if digits else 0


class TemplateMarkers(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: str
    end: str


class ListOptions(BaseModel):
    """Rendering options taken from the start template (plus defaults)."""

    model_config = ConfigDict(frozen=True)

    language: str = "en"
    sort: Optional[str] = None
    sort_descending: bool = False
    section: Optional[str] = None
    min_section: int = 2
    row_template: Optional[str] = None
    header_template: Optional[str] = None
    skip_table: bool = False
    summary_itemnumber: bool = False
    links: str = "all"
    thumb: Optional[int] = None
    one_row_per_item: bool = True
    wdedit: bool = False
    references: bool = False

    @field_validator("links")
    @classmethod
    def _normalize_links(cls, value: str) -> str:
        text = str(value or "all").strip().lower()
        # red link checks need page existence lookups; they render like "all"
        if text in {"red", "red_only"}:
            return "all"
        if text not in {"all", "local", "text", "reasonator"}:
            return "all"
        return text


class Job(BaseModel):
    """One page to synchronize during a cycle."""

    model_config = ConfigDict(frozen=True)

    page: str
    namespace: int = 0
    query: str
    columns: Tuple[Column, ...]
    options: ListOptions = Field(default_factory=ListOptions)
    markers: TemplateMarkers
    base_revision: Optional[int] = None

    @field_validator("page", "query")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("value is required")
        return text


class PageSnapshot(BaseModel):
    """Page text as read from the wiki."""

    title: str
    namespace: int = 0
    text: str = ""
    revision: Optional[int] = None


class RenderedTable(BaseModel):
    text: str
    row_count: int = 0
    warnings: List[str] = Field(default_factory=list)


class EditDecisionKind(str, Enum):
    NO_CHANGE = "no_change"
    UPDATE = "update"


class EditDecision(BaseModel):
    kind: EditDecisionKind
    new_text: Optional[str] = None

    @classmethod
    def no_change(cls) -> "EditDecision":
        return cls(kind=EditDecisionKind.NO_CHANGE)

    @classmethod
    def update(cls, new_text: str) -> "EditDecision":
        return cls(kind=EditDecisionKind.UPDATE, new_text=new_text)

    @property
    def changed(self) -> bool:
        return self.kind == EditDecisionKind.UPDATE


class EditOutcomeKind(str, Enum):
    APPLIED = "applied"
    CONFLICT = "conflict"
    AUTH_FAILURE = "auth_failure"
    TRANSPORT = "transport"


class EditOutcome(BaseModel):
    kind: EditOutcomeKind
    attempts: int = 1
    revision: Optional[int] = None
    message: str = ""

    @property
    def applied(self) -> bool:
        return self.kind == EditOutcomeKind.APPLIED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobReport(BaseModel):
    """Final (or latest) status of one job."""

    page: str
    state: JobState = JobState.QUEUED
    error: Optional[str] = None
    error_type: Optional[str] = None
    edited: bool = False
    row_count: int = 0
    query_attempts: int = 0
    warnings: List[str] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=_utcnow)


class RunSummary(BaseModel):
    """Aggregate result of one orchestration cycle."""

    mode: RunMode
    cycle: int = 1
    skipped: List[str] = Field(default_factory=list)
    reports: List[JobReport] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    def count(self, state: JobState) -> int:
        return sum(1 for report in self.reports if report.state == state)

    @property
    def edited(self) -> int:
        return sum(1 for report in self.reports if report.edited)

    @property
    def failed(self) -> int:
        return self.count(JobState.FAILED)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def brief(self) -> Dict[str, int]:
        return {
            "total": len(self.reports),
            "done": self.count(JobState.DONE),
            "failed": self.failed,
            "cancelled": self.count(JobState.CANCELLED),
            "skipped": len(self.skipped),
            "edited": self.edited,
        }
