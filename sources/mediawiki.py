"""
MediaWiki Client
Reads page text, discovers list pages and saves edits through api.php.
"""
from typing import Any, Dict, List, Optional, Tuple
import asyncio
import logging

import aiohttp

from core import EditOutcome, EditOutcomeKind, PageSnapshot
from utils.exceptions import TransportError


logger = logging.getLogger(__name__)

CONFLICT_CODES = {"editconflict"}
AUTH_CODES = {
    "permissiondenied",
    "protectedpage",
    "cascadeprotected",
    "blocked",
    "autoblocked",
    "notloggedin",
    "assertuserfailed",
    "assertbotfailed",
    "mwoauth-invalid-authorization",
    "mwoauth-invalid-authorization-invalid-user",
}


class MediaWikiClient:
    """
    Thin async api.php client.

    One aiohttp session per client; the OAuth2 token (if any) is sent as a
    bearer header on every request.
    """

    name = "MediaWiki"

    def __init__(
        self,
        api_url: str,
        *,
        oauth2_token: Optional[str] = None,
        user_agent: str = "ListSync/1.0",
        timeout_sec: float = 30.0,
    ):
        self.api_url = api_url
        self._token = oauth2_token
        self._user_agent = user_agent
        self._timeout = timeout_sec
        self._session: Optional[aiohttp.ClientSession] = None
        self._csrf_token: Optional[str] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        if self._session:
            await self._session.close()
            self._session = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session"""
        if self._session is None or self._session.closed:
            headers = {"User-Agent": self._user_agent}
            if self._token:
                headers["Authorization"] = f"Bearer {self._token}"
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=headers,
            )
        return self._session

    async def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        session = await self._get_session()
        query = dict(params, format="json", formatversion="2")
        try:
            async with session.get(self.api_url, params=query) as response:
                response.raise_for_status()
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"GET {params.get('action')} failed: {e}", source="mediawiki")
        except ValueError as e:
            raise TransportError(f"GET {params.get('action')} returned invalid JSON: {e}", source="mediawiki")

    async def _post(self, data: Dict[str, Any]) -> Dict[str, Any]:
        session = await self._get_session()
        form = dict(data, format="json", formatversion="2")
        try:
            async with session.post(self.api_url, data=form) as response:
                response.raise_for_status()
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"POST {data.get('action')} failed: {e}", source="mediawiki")
        except ValueError as e:
            raise TransportError(f"POST {data.get('action')} returned invalid JSON: {e}", source="mediawiki")

    async def load_page(self, title: str) -> PageSnapshot:
        """Current wikitext, namespace and revision id of a page."""
        payload = await self._get({
            "action": "query",
            "prop": "revisions",
            "rvprop": "content|ids",
            "rvslots": "main",
            "titles": title,
        })
        pages = (payload.get("query") or {}).get("pages") or []
        if not pages:
            raise TransportError(f"No page data returned for {title}", source="mediawiki")
        page = pages[0]
        snapshot = PageSnapshot(title=page.get("title", title), namespace=int(page.get("ns", 0)))
        if page.get("missing"):
            return snapshot
        revisions = page.get("revisions") or []
        if revisions:
            revision = revisions[0]
            slot = (revision.get("slots") or {}).get("main") or {}
            snapshot.text = slot.get("content", revision.get("content", ""))
            snapshot.revision = revision.get("revid")
        return snapshot

    async def page_namespaces(self, titles: List[str]) -> Dict[str, int]:
        """Namespace id per title, without loading page text."""
        found: Dict[str, int] = {}
        for start in range(0, len(titles), 50):
            batch = titles[start:start + 50]
            payload = await self._get({"action": "query", "titles": "|".join(batch)})
            query = payload.get("query") or {}
            normalized = {item["to"]: item["from"] for item in query.get("normalized") or []}
            for page in query.get("pages") or []:
                title = page.get("title", "")
                found[normalized.get(title, title)] = int(page.get("ns", 0))
        return found

    async def list_transcluding_pages(self, template: str) -> List[Tuple[str, int]]:
        """All (title, namespace) pairs embedding ``Template:<template>``."""
        pages: List[Tuple[str, int]] = []
        params: Dict[str, Any] = {
            "action": "query",
            "list": "embeddedin",
            "eititle": f"Template:{template}",
            "eilimit": "500",
        }
        while True:
            payload = await self._get(params)
            for item in (payload.get("query") or {}).get("embeddedin") or []:
                pages.append((item["title"], int(item.get("ns", 0))))
            cont = payload.get("continue")
            if not cont:
                break
            params = dict(params, **cont)
        logger.info(f"[{self.name}] {len(pages)} pages embed Template:{template}")
        return pages

    async def _get_csrf_token(self, refresh: bool = False) -> str:
        if self._csrf_token and not refresh:
            return self._csrf_token
        payload = await self._get({"action": "query", "meta": "tokens", "type": "csrf"})
        token = ((payload.get("query") or {}).get("tokens") or {}).get("csrftoken")
        if not token:
            raise TransportError("No CSRF token returned", source="mediawiki")
        self._csrf_token = token
        return token

    async def edit(
        self,
        title: str,
        text: str,
        *,
        summary: str,
        base_revision: Optional[int] = None,
    ) -> EditOutcome:
        """Single edit attempt, classified into an EditOutcome."""
        try:
            token = await self._get_csrf_token()
            data: Dict[str, Any] = {
                "action": "edit",
                "title": title,
                "text": text,
                "summary": summary,
                "bot": "1",
                "nocreate": "1",
                "token": token,
            }
            if base_revision is not None:
                data["baserevid"] = str(base_revision)
            payload = await self._post(data)
        except TransportError as e:
            return EditOutcome(kind=EditOutcomeKind.TRANSPORT, message=e.message)

        error = payload.get("error")
        if error:
            code = str(error.get("code", ""))
            info = str(error.get("info", code))
            if code == "badtoken":
                self._csrf_token = None
            if code in CONFLICT_CODES:
                return EditOutcome(kind=EditOutcomeKind.CONFLICT, message=info)
            if code in AUTH_CODES or code.startswith("mwoauth"):
                return EditOutcome(kind=EditOutcomeKind.AUTH_FAILURE, message=info)
            return EditOutcome(kind=EditOutcomeKind.TRANSPORT, message=info)

        result = payload.get("edit") or {}
        if result.get("result") != "Success":
            return EditOutcome(kind=EditOutcomeKind.TRANSPORT, message=str(result))
        return EditOutcome(kind=EditOutcomeKind.APPLIED, revision=result.get("newrevid"))
