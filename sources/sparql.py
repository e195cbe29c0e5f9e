"""SPARQL query execution: JSON codec, HTTP transport and the bounded executor."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import unquote

import httpx

from core import AttemptOutcome, QueryResult, RetryPolicy, SparqlValue, ValueKind
from utils.exceptions import QueryError, QueryErrorKind, TransportError


logger = logging.getLogger(__name__)

_RE_ENTITY = re.compile(r"^https?://[^/]+/entity/([A-Z]\d+)$")
_RE_FILE = re.compile(r"^https?://[^/]+/wiki/Special:FilePath/(.+?)$")
_RE_POINT = re.compile(r"^Point\((-?\d+[.0-9]*) (-?\d+[.0-9]*)\)$")
_RE_DATE = re.compile(r"^([+-]?\d+-\d{2}-\d{2})T00:00:00Z$")

_WKT_LITERAL = "http://www.opengis.net/ont/geosparql#wktLiteral"
_XSD_DATETIME = "http://www.w3.org/2001/XMLSchema#dateTime"


def parse_binding(binding: Dict[str, Any]) -> Optional[SparqlValue]:
    """Map one SPARQL JSON binding to a typed value, or None when unusable."""
    value = binding.get("value")
    if not isinstance(value, str):
        return None
    kind = binding.get("type")

    if kind == "uri":
        match = _RE_ENTITY.match(value)
        if match:
            return SparqlValue(kind=ValueKind.ENTITY, value=match.group(1))
        match = _RE_FILE.match(value)
        if match:
            name = unquote(match.group(1)).replace("_", " ")
            return SparqlValue(kind=ValueKind.FILE, value=name)
        return SparqlValue(kind=ValueKind.URI, value=value)

    if kind in {"literal", "typed-literal"}:
        datatype = binding.get("datatype")
        if datatype == _WKT_LITERAL:
            match = _RE_POINT.match(value)
            if not match:
                return None
            lon, lat = float(match.group(1)), float(match.group(2))
            return SparqlValue(kind=ValueKind.LOCATION, value=value, lat=lat, lon=lon)
        if datatype == _XSD_DATETIME:
            match = _RE_DATE.match(value)
            return SparqlValue(kind=ValueKind.TIME, value=match.group(1) if match else value)
        return SparqlValue(kind=ValueKind.LITERAL, value=value)

    if kind == "bnode":
        return SparqlValue(kind=ValueKind.LITERAL, value=value)

    return None


def parse_sparql_json(payload: Any) -> QueryResult:
    """Decode a SPARQL 1.1 JSON results document.

    Raises:
        QueryError(MALFORMED_RESPONSE): payload is not a results document
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise QueryError(f"Response is not JSON: {e}", kind=QueryErrorKind.MALFORMED_RESPONSE)

    if not isinstance(payload, dict):
        raise QueryError("Response is not a JSON object", kind=QueryErrorKind.MALFORMED_RESPONSE)

    head = payload.get("head")
    results = payload.get("results")
    if not isinstance(head, dict) or not isinstance(results, dict):
        raise QueryError("Response lacks head/results", kind=QueryErrorKind.MALFORMED_RESPONSE)

    variables = [str(v) for v in head.get("vars") or []]
    bindings = results.get("bindings")
    if not isinstance(bindings, list):
        raise QueryError("Response lacks results.bindings", kind=QueryErrorKind.MALFORMED_RESPONSE)

    rows: List[Dict[str, SparqlValue]] = []
    for binding in bindings:
        if not isinstance(binding, dict):
            raise QueryError("Binding is not an object", kind=QueryErrorKind.MALFORMED_RESPONSE)
        row: Dict[str, SparqlValue] = {}
        for name, raw in binding.items():
            if not isinstance(raw, dict):
                continue
            parsed = parse_binding(raw)
            if parsed is not None:
                row[name] = parsed
        rows.append(row)

    return QueryResult(variables=variables, rows=rows)


class SparqlTransport(Protocol):
    async def fetch(self, query: str) -> Any:
        """Run the query once; raise TransportError / QueryError on failure."""
        ...


class HttpSparqlTransport:
    """POSTs queries to a SPARQL endpoint over httpx."""

    def __init__(
        self,
        endpoint: str,
        *,
        user_agent: str = "ListSync/1.0",
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.endpoint = endpoint
        self._headers = {
            "Accept": "application/sparql-results+json",
            "User-Agent": user_agent,
        }
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            # per-attempt timeouts are enforced by the executor
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(None),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                follow_redirects=True,
            )
        return self._client

    async def fetch(self, query: str) -> Any:
        client = self._get_client()
        try:
            response = await client.post(self.endpoint, data={"query": query}, headers=self._headers)
        except httpx.TimeoutException:
            raise
        except httpx.HTTPError as e:
            raise TransportError(f"SPARQL request failed: {e}", source="sparql")

        if response.status_code == 400:
            raise QueryError(
                f"Query rejected by endpoint: {response.text[:200]}",
                kind=QueryErrorKind.MALFORMED_RESPONSE,
            )
        if response.status_code >= 400:
            raise TransportError(f"SPARQL endpoint returned HTTP {response.status_code}", source="sparql")
        return response.text

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class QueryExecutor:
    """Runs queries under the process-wide query limiter with bounded retries."""

    def __init__(
        self,
        transport: SparqlTransport,
        *,
        slots: asyncio.Semaphore,
        policy: RetryPolicy,
        timeout_sec: float = 60.0,
        prefix: str = "",
    ) -> None:
        self._transport = transport
        self._slots = slots
        self._policy = policy
        self._timeout = timeout_sec
        self._prefix = prefix

    @property
    def transport(self) -> SparqlTransport:
        return self._transport

    async def _attempt(self, query: str, attempt: int) -> AttemptOutcome[QueryResult]:
        async with self._slots:
            try:
                payload = await asyncio.wait_for(self._transport.fetch(query), timeout=self._timeout)
            except (asyncio.TimeoutError, httpx.TimeoutException):
                logger.warning(f"[SPARQL] attempt {attempt} timed out after {self._timeout}s")
                return AttemptOutcome.retryable(QueryError("Query timed out", kind=QueryErrorKind.TIMEOUT))
            except QueryError as e:
                return AttemptOutcome.fatal(e) if not e.retryable else AttemptOutcome.retryable(e)
            except TransportError as e:
                logger.warning(f"[SPARQL] attempt {attempt} failed: {e}")
                return AttemptOutcome.retryable(QueryError(e.message, kind=QueryErrorKind.TRANSPORT))

        try:
            return AttemptOutcome.ok(parse_sparql_json(payload))
        except QueryError as e:
            return AttemptOutcome.fatal(e)

    async def execute(self, query: str) -> QueryResult:
        """Run ``query`` and return its rows.

        Raises:
            QueryError: after the final failed attempt, or at once for a
                malformed response
        """
        full_query = f"{self._prefix}{query}" if self._prefix else query
        outcome, attempts = await self._policy.run(lambda n: self._attempt(full_query, n))

        if outcome.succeeded:
            logger.debug(f"[SPARQL] {len(outcome.value.rows)} rows after {attempts} attempt(s)")
            return outcome.value.model_copy(update={"attempts": attempts})

        error = outcome.error
        if isinstance(error, QueryError):
            error.attempts = attempts
            error.details["attempts"] = attempts
            raise error
        raise QueryError(str(error), attempts=attempts)
