"""
Utils Module
"""
from .logger import setup_logger, get_logger, configure_from_settings
from .exceptions import (
    ListSyncError,
    ConfigurationError,
    MarkersNotFound,
    TemplateParseError,
    TransportError,
    QueryError,
    QueryErrorKind,
    ResolutionError,
    ResolutionErrorKind,
    EditError,
    ConflictError,
    AuthFailure,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "configure_from_settings",
    "ListSyncError",
    "ConfigurationError",
    "MarkersNotFound",
    "TemplateParseError",
    "TransportError",
    "QueryError",
    "QueryErrorKind",
    "ResolutionError",
    "ResolutionErrorKind",
    "EditError",
    "ConflictError",
    "AuthFailure",
]
