"""
Async client for the KiotViet public API.

Every collection endpoint pages with ``pageSize``/``currentItem`` and
returns ``{"total": n, "pageSize": k, "data": [...]}``. ``fetch_entities``
walks pages until a short page, pausing between requests to stay under the
rate limit, and drops records whose ``id`` was already seen on an earlier
page (pages shift while the upstream data changes underneath us).

Authentication: ``Retailer`` header plus a bearer token from
``TokenProvider``. A 401 invalidates the token and the request is replayed
once with a fresh one.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import httpx

from retailsync.config import Settings, get_settings
from retailsync.exceptions import AuthenticationError, RateLimitedError, UpstreamError
from retailsync.upstream.auth import TokenProvider

logger = logging.getLogger(__name__)

MODIFIED_TODAY_PAGE_SIZE = 200


def format_timestamp(value: datetime) -> str:
    """Render a naive-UTC or aware datetime as explicit UTC (``...Z``).

    Without the suffix the API reads the value as store-local time.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def local_midnight_utc(now: Optional[datetime] = None) -> datetime:
    """Start of the current local day, as naive UTC."""
    local = (now or datetime.now()).astimezone()
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass
class FetchFilters:
    """Query filters for one collection fetch."""

    last_modified_from: Optional[datetime] = None
    to_date: Optional[datetime] = None
    branch_ids: List[int] = field(default_factory=list)
    order_by: Optional[str] = None
    order_direction: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = dict(self.extra)
        if self.last_modified_from is not None:
            params["lastModifiedFrom"] = format_timestamp(self.last_modified_from)
        if self.to_date is not None:
            params["toDate"] = format_timestamp(self.to_date)
        if self.branch_ids:
            params["branchIds"] = ",".join(str(b) for b in self.branch_ids)
        if self.order_by:
            params["orderBy"] = self.order_by
        if self.order_direction:
            params["orderDirection"] = self.order_direction
        # httpx renders bools as "true"/"false", which the API accepts
        return params


class KiotVietClient:
    """
    Thin async wrapper over the KiotViet REST API.

    Pass an ``httpx.AsyncClient`` to share a connection pool (or to inject a
    mock transport in tests); otherwise one is created and owned here.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http: Optional[httpx.AsyncClient] = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=self.settings.http_timeout_seconds)
        self._sleep = sleep
        self.auth = TokenProvider(
            client_id=self.settings.kiot_client_id,
            client_secret=self.settings.kiot_client_secret,
            token_url=self.settings.kiot_token_url,
            http=self._http,
        )

    async def __aenter__(self) -> "KiotVietClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ─── Requests ─────────────────────────────────────────────────────────────

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        GET ``path`` with auth headers; returns the decoded JSON body.

        Raises:
            AuthenticationError: token could not be obtained, or 401 twice.
            RateLimitedError: on HTTP 429.
            UpstreamError: on any other non-2xx status or transport error.
        """
        url = self.settings.kiot_base_url.rstrip("/") + path
        response = await self._send(url, params)
        if response.status_code == 401:
            logger.info("Access token rejected, re-authenticating")
            self.auth.invalidate()
            response = await self._send(url, params)
            if response.status_code == 401:
                raise AuthenticationError("Unauthorized after token refresh", status_code=401)

        if response.status_code == 429:
            raise RateLimitedError(f"Rate limited on {path}", status_code=429)
        if response.status_code >= 400:
            raise UpstreamError(
                f"GET {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response.json()

    async def _send(self, url: str, params: Optional[Dict[str, Any]]) -> httpx.Response:
        token = await self.auth.get_token()
        headers = {
            "Retailer": self.settings.kiot_retailer,
            "Authorization": f"Bearer {token}",
        }
        try:
            return await self._http.get(url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Request to {url} failed: {exc}") from exc

    # ─── Collections ──────────────────────────────────────────────────────────

    async def fetch_entities(
        self,
        endpoint: str,
        filters: Optional[FetchFilters] = None,
        *,
        page_size: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch every page of ``endpoint`` matching ``filters``."""
        filters = filters or FetchFilters()
        page_size = page_size or self.settings.page_size
        base_params = filters.to_params()

        records: List[Dict[str, Any]] = []
        current_item = 0
        while True:
            params = dict(base_params, pageSize=page_size, currentItem=current_item)
            body = await self.get(endpoint, params)
            page = body.get("data") or []
            records.extend(page)
            logger.debug("%s: got %d records at offset %d", endpoint, len(page), current_item)

            if len(page) < page_size:
                break
            current_item += page_size
            await self._sleep(self.settings.page_pause_seconds)

        unique = dedupe_by_id(records)
        if len(unique) != len(records):
            logger.info("%s: dropped %d duplicate records", endpoint, len(records) - len(unique))
        logger.info("Fetched %d %s records", len(unique), endpoint.strip("/"))
        return unique

    async def fetch_orders_modified_today(
        self,
        branch_ids: Iterable[int],
        *,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Orders of the given branches modified since local midnight, newest first."""
        filters = FetchFilters(
            last_modified_from=local_midnight_utc(now),
            branch_ids=list(branch_ids),
            order_by="modifiedDate",
            order_direction="DESC",
        )
        return await self.fetch_entities(
            "/orders", filters, page_size=MODIFIED_TODAY_PAGE_SIZE
        )


def dedupe_by_id(records: Iterable[Dict[str, Any]], key: str = "id") -> List[Dict[str, Any]]:
    """Keep the first occurrence of each id; records without one are kept."""
    seen = set()
    unique = []
    for record in records:
        value = record.get(key) if isinstance(record, dict) else None
        if value is not None:
            if value in seen:
                continue
            seen.add(value)
        unique.append(record)
    return unique
