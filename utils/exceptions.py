"""
Custom Exceptions
"""
from enum import Enum


class ListSyncError(Exception):
    """Base error for the list synchronization engine"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(ListSyncError):
    """Bad configuration or page setup; fatal for the job, never retried"""
    pass


class MarkersNotFound(ConfigurationError):
    """Start or end marker missing from the page"""

    def __init__(self, message: str, page: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.page = page


class TemplateParseError(ConfigurationError):
    """Start template parameters could not be parsed"""
    pass


class TransportError(ListSyncError):
    """Network failure after retries were exhausted"""

    def __init__(self, message: str, source: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.source = source


class QueryErrorKind(str, Enum):
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    MALFORMED_RESPONSE = "malformed_response"


class QueryError(TransportError):
    """SPARQL query failed"""

    def __init__(self, message: str, kind: QueryErrorKind = QueryErrorKind.TRANSPORT, attempts: int = 0, **kwargs):
        super().__init__(message, source="sparql", kind=kind.value, attempts=attempts, **kwargs)
        self.kind = kind
        self.attempts = attempts

    @property
    def retryable(self) -> bool:
        return self.kind != QueryErrorKind.MALFORMED_RESPONSE


class ResolutionErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    TRANSPORT = "transport"


class ResolutionError(ListSyncError):
    """Entity could not be resolved"""

    def __init__(self, message: str, entity_id: str = None, kind: ResolutionErrorKind = ResolutionErrorKind.TRANSPORT, **kwargs):
        super().__init__(message, dict(kwargs, entity_id=entity_id, kind=kind.value))
        self.entity_id = entity_id
        self.kind = kind


class EditError(ListSyncError):
    """Page write was not applied"""

    def __init__(self, message: str, page: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.page = page


class ConflictError(EditError):
    """The page changed since it was read"""
    pass


class AuthFailure(EditError):
    """Credentials rejected or edit not permitted"""
    pass
