"""Core contracts and shared types for the list synchronization engine."""

from .contracts import (
    MAIN_VARIABLE,
    TERMINAL_STATES,
    Column,
    ColumnKind,
    DataValue,
    EditDecision,
    EditDecisionKind,
    EditOutcome,
    EditOutcomeKind,
    Entity,
    Job,
    JobReport,
    JobState,
    ListOptions,
    PageSnapshot,
    QueryResult,
    Rank,
    RenderedTable,
    RunMode,
    RunSummary,
    Snak,
    SparqlValue,
    Statement,
    TemplateMarkers,
    ValueKind,
)
from .limits import PacingGate, ResourceLimits
from .retry import AttemptOutcome, AttemptStatus, RetryPolicy

__all__ = [
    "MAIN_VARIABLE",
    "TERMINAL_STATES",
    "AttemptOutcome",
    "AttemptStatus",
    "Column",
    "ColumnKind",
    "DataValue",
    "EditDecision",
    "EditDecisionKind",
    "EditOutcome",
    "EditOutcomeKind",
    "Entity",
    "Job",
    "JobReport",
    "JobState",
    "ListOptions",
    "PacingGate",
    "PageSnapshot",
    "QueryResult",
    "Rank",
    "RenderedTable",
    "ResourceLimits",
    "RetryPolicy",
    "RunMode",
    "RunSummary",
    "Snak",
    "SparqlValue",
    "Statement",
    "TemplateMarkers",
    "ValueKind",
]
