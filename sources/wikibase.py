"""Wikibase entity fetching (wbgetentities) and entity JSON decoding."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

import httpx

from core import DataValue, Entity, Rank, Snak, Statement
from utils.exceptions import TransportError


logger = logging.getLogger(__name__)


def _parse_datavalue(raw: Any) -> Optional[DataValue]:
    if not isinstance(raw, dict):
        return None
    kind = raw.get("type")
    value = raw.get("value")

    if kind == "wikibase-entityid" and isinstance(value, dict):
        entity_id = value.get("id")
        if not entity_id and value.get("numeric-id") is not None:
            prefix = "P" if value.get("entity-type") == "property" else "Q"
            entity_id = f"{prefix}{value['numeric-id']}"
        return DataValue(kind="entity", text=str(entity_id or ""))
    if kind == "string":
        return DataValue(kind="string", text=str(value))
    if kind == "time" and isinstance(value, dict):
        return DataValue(kind="time", text=str(value.get("time", "")), precision=int(value.get("precision", 11)))
    if kind == "quantity" and isinstance(value, dict):
        amount = str(value.get("amount", "")).lstrip("+")
        unit = str(value.get("unit", "1"))
        unit = "" if unit == "1" else unit.rsplit("/", 1)[-1]
        return DataValue(kind="quantity", text=amount, unit=unit)
    if kind == "monolingualtext" and isinstance(value, dict):
        return DataValue(kind="monolingual", text=str(value.get("text", "")), language=str(value.get("language", "")))
    if kind == "globecoordinate" and isinstance(value, dict):
        return DataValue(
            kind="coordinate",
            latitude=float(value.get("latitude", 0.0)),
            longitude=float(value.get("longitude", 0.0)),
        )
    return None


def _parse_snak(raw: Dict[str, Any]) -> Snak:
    return Snak(
        property=str(raw.get("property", "")),
        datatype=str(raw.get("datatype", "")),
        snaktype=str(raw.get("snaktype", "value")),
        value=_parse_datavalue(raw.get("datavalue")),
    )


def _parse_statement(raw: Dict[str, Any]) -> Statement:
    main = _parse_snak(raw.get("mainsnak") or {})
    qualifiers_raw = raw.get("qualifiers") or {}
    order = list(raw.get("qualifiers-order") or qualifiers_raw.keys())
    qualifiers = {prop: [_parse_snak(snak) for snak in qualifiers_raw.get(prop, [])] for prop in order}
    references = []
    for reference in raw.get("references") or []:
        snaks_raw = reference.get("snaks") or {}
        snaks_order = list(reference.get("snaks-order") or snaks_raw.keys())
        references.append([_parse_snak(snak) for prop in snaks_order for snak in snaks_raw.get(prop, [])])
    try:
        rank = Rank(str(raw.get("rank", "normal")))
    except ValueError:
        rank = Rank.NORMAL
    return Statement(property=main.property, rank=rank, main=main, qualifiers=qualifiers, references=references)


def parse_entity(raw: Dict[str, Any]) -> Entity:
    """Build an Entity from one wbgetentities entry."""
    labels = {lang: item.get("value", "") for lang, item in (raw.get("labels") or {}).items()}
    descriptions = {lang: item.get("value", "") for lang, item in (raw.get("descriptions") or {}).items()}
    aliases = {
        lang: [item.get("value", "") for item in items]
        for lang, items in (raw.get("aliases") or {}).items()
    }
    sitelinks = {site: item.get("title", "") for site, item in (raw.get("sitelinks") or {}).items()}
    statements = {
        prop: [_parse_statement(item) for item in items]
        for prop, items in (raw.get("claims") or raw.get("statements") or {}).items()
    }
    return Entity(
        id=str(raw.get("id", "")),
        labels=labels,
        descriptions=descriptions,
        aliases=aliases,
        sitelinks=sitelinks,
        statements=statements,
        datatype=raw.get("datatype"),
    )


class _NoSuchEntity(Exception):
    def __init__(self, entity_id: str):
        super().__init__(entity_id)
        self.entity_id = entity_id


class EntityFetcher(Protocol):
    async def fetch(self, ids: List[str]) -> Dict[str, Entity]:
        """Fetch a batch; ids that do not exist are left out of the result."""
        ...


class WikibaseEntityFetcher:
    """Loads entities through the ``wbgetentities`` API over httpx."""

    def __init__(
        self,
        api_url: str,
        *,
        timeout_sec: float = 30.0,
        user_agent: str = "ListSync/1.0",
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_url = api_url
        self._timeout = timeout_sec
        self._headers = {"User-Agent": user_agent}
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                follow_redirects=True,
            )
        return self._client

    async def fetch(self, ids: List[str]) -> Dict[str, Entity]:
        """
        Fetch a batch of ids.

        wbgetentities rejects the whole request when one id does not exist;
        that id is dropped and the rest fetched again. When the API does not
        name the offending id the batch is split in halves.
        """
        if not ids:
            return {}
        try:
            return await self._fetch_once(ids)
        except _NoSuchEntity as e:
            if e.entity_id in ids:
                logger.info(f"[Wikibase] no such entity: {e.entity_id}")
                return await self.fetch([i for i in ids if i != e.entity_id])
            if len(ids) == 1:
                logger.info(f"[Wikibase] no such entity: {ids[0]}")
                return {}
            middle = len(ids) // 2
            found = await self.fetch(ids[:middle])
            found.update(await self.fetch(ids[middle:]))
            return found

    async def _fetch_once(self, ids: List[str]) -> Dict[str, Entity]:
        params = {
            "action": "wbgetentities",
            "ids": "|".join(ids),
            "format": "json",
        }
        client = self._get_client()
        try:
            response = await client.get(self.api_url, params=params, headers=self._headers)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"wbgetentities failed: {e}", source="wikibase", ids=len(ids))
        except ValueError as e:
            raise TransportError(f"wbgetentities returned invalid JSON: {e}", source="wikibase")

        if "error" in payload:
            error = payload["error"]
            if error.get("code") == "no-such-entity":
                raise _NoSuchEntity(str(error.get("id") or ""))
            raise TransportError(f"wbgetentities error: {error.get('info', error)}", source="wikibase")

        found: Dict[str, Entity] = {}
        for entity_id, raw in (payload.get("entities") or {}).items():
            if "missing" in raw or "invalid" in raw:
                continue
            redirect = raw.get("redirects") or {}
            found[redirect.get("from") or entity_id] = parse_entity(raw)
        return found

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def chunked(ids: Iterable[str], size: int) -> List[List[str]]:
    items = list(ids)
    return [items[i:i + size] for i in range(0, len(items), max(1, size))]
