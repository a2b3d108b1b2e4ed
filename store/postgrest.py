"""Record store backed by a managed PostgREST-style REST API."""

import asyncio
import logging
import time
from typing import Any

import httpx

from config.settings import get_settings
from core.exceptions import TransportError, ValidationError
from core.sentry import add_store_breadcrumb
from core.telemetry import record_store_call
from store.base import AnyOf, Condition, Embed, Filter, Order, Record, SelectQuery, check_identifier
from store.ratelimit import get_request_limits

logger = logging.getLogger(__name__)

# Characters with meaning inside PostgREST logic trees; values containing them must be quoted
_RESERVED = set(',.:()" \\')

# Statuses that mean the backend understood and rejected the write
_REJECTED_WRITE_STATUSES = {400, 409, 422}


def quote_value(value: Any) -> str:
    """Render a filter value for a PostgREST query string."""
    if isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value)
    if any(c in _RESERVED for c in text):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def escape_ilike(text: str) -> str:
    """Make ``%`` and ``_`` match literally inside an ilike pattern."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _operator(condition: Condition) -> str:
    if condition.op == "icontains":
        return f"ilike.*{escape_ilike(str(condition.value))}*"
    return f"eq.{condition.value}"


def _logic_term(condition: Condition) -> str:
    """Render a condition inside an ``or=(...)`` tree."""
    if condition.op == "icontains":
        pattern = f"*{escape_ilike(str(condition.value))}*"
        return f"{condition.column}.ilike.{quote_value(pattern)}"
    return f"{condition.column}.eq.{quote_value(condition.value)}"


def build_select_clause(embed: tuple[Embed, ...]) -> str:
    """Build the ``select`` parameter, e.g. ``*,artist:profiles(*)``."""
    parts = ["*"]
    for e in embed:
        parts.append(f"{e.alias}:{e.collection}!{e.foreign_key}(*)")
    return ",".join(parts)


def build_filter_params(filters: tuple[Filter, ...]) -> list[tuple[str, str]]:
    """Translate filters into PostgREST query parameters."""
    params: list[tuple[str, str]] = []
    disjunctions: list[str] = []

    for f in filters:
        if isinstance(f, AnyOf):
            disjunctions.append(",".join(_logic_term(c) for c in f.conditions))
        else:
            params.append((f.column, _operator(f)))

    if len(disjunctions) == 1:
        params.append(("or", f"({disjunctions[0]})"))
    elif disjunctions:
        params.append(("and", "(" + ",".join(f"or({d})" for d in disjunctions) + ")"))

    return params


def parse_content_range_total(header: str | None) -> int:
    """Read the total from a ``Content-Range: 0-4/5`` or ``*/5`` header."""
    if not header or "/" not in header:
        return 0
    total = header.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else 0


class PostgrestRecordStore:
    """Async client for the managed relational backend's REST interface."""

    def __init__(self, base_url: str, api_key: str | None = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {"User-Agent": "MusicSearchService/1.0"}
            if self.api_key:
                headers["apikey"] = self.api_key
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def is_available(self) -> bool:
        """Check backend connectivity."""
        try:
            client = await self._get_client()
            resp = await client.get("/")
            return resp.status_code < 500
        except Exception:
            return False

    @staticmethod
    def _retry_delay(response: httpx.Response, attempt: int) -> float:
        """Seconds to wait before retrying a 429: Retry-After if sent, else 1, 2, 4..."""
        retry_after = response.headers.get("Retry-After", "")
        if retry_after.isdigit():
            return float(retry_after)
        return float(2**attempt)

    async def _send(
        self,
        method: str,
        collection: str,
        params: list[tuple[str, str]] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
        max_retries: int | None = None,
    ) -> httpx.Response:
        """Send one request for ``collection``, throttled and retried while the backend returns 429.

        Responses below 500 are returned for the caller to interpret.

        Raises:
            TransportError: Backend unreachable, 5xx, or still throttling after the retries
        """
        if max_retries is None:
            max_retries = get_settings().record_store_max_retries

        client = await self._get_client()
        limits = get_request_limits()
        attempt = 0

        async with limits.concurrency:
            while True:
                await limits.rate.acquire()
                start = time.perf_counter()
                try:
                    response = await client.request(
                        method, f"/{collection}", params=params, json=json, headers=headers
                    )
                except httpx.RequestError as e:
                    logger.error(f"Record store request failed: {method} {collection}: {e}")
                    add_store_breadcrumb(
                        "request_error", collection, {"method": method}, level="error"
                    )
                    raise TransportError(
                        f"Record store unreachable: {e}", details={"collection": collection}
                    ) from e
                finally:
                    record_store_call((time.perf_counter() - start) * 1000)

                if response.status_code != 429:
                    break
                if attempt >= max_retries:
                    logger.error(f"Record store still throttling {method} {collection}, giving up")
                    raise TransportError(
                        "Record store rate limit exceeded", details={"collection": collection}
                    )

                delay = self._retry_delay(response, attempt)
                attempt += 1
                logger.warning(
                    f"Record store throttled {method} {collection}, "
                    f"retry {attempt}/{max_retries} in {delay:g}s"
                )
                await asyncio.sleep(delay)

        if response.status_code >= 500:
            raise TransportError(
                f"Record store error {response.status_code}",
                details={"collection": collection, "status": response.status_code},
            )
        return response

    async def select(
        self,
        collection: str,
        filters: tuple[Filter, ...] = (),
        embed: tuple[Embed, ...] = (),
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        """Select rows from a collection."""
        query = SelectQuery(collection, filters, embed, order, limit)

        params = [("select", build_select_clause(query.embed))]
        params.extend(build_filter_params(query.filters))
        if query.order:
            direction = "desc" if query.order.descending else "asc"
            params.append(("order", f"{query.order.column}.{direction}"))
        if query.limit is not None:
            params.append(("limit", str(query.limit)))

        add_store_breadcrumb("select", collection, {"limit": limit})
        response = await self._send("GET", collection, params=params)
        if response.status_code >= 400:
            raise TransportError(
                f"Select on '{collection}' failed with {response.status_code}",
                details={"collection": collection, "body": response.text},
            )
        rows = response.json()
        logger.debug(f"Selected {len(rows)} rows from '{collection}'")
        return rows

    async def insert(self, collection: str, record: Record) -> str:
        """Insert a single row and return its id."""
        check_identifier(collection)
        add_store_breadcrumb("insert", collection)

        response = await self._send(
            "POST",
            collection,
            json=record,
            headers={"Prefer": "return=representation"},
        )
        if response.status_code in _REJECTED_WRITE_STATUSES:
            raise ValidationError(
                f"Insert into '{collection}' rejected",
                details={"collection": collection, "body": response.text},
            )
        if response.status_code >= 400:
            raise TransportError(
                f"Insert into '{collection}' failed with {response.status_code}",
                details={"collection": collection, "status": response.status_code},
            )

        rows = response.json()
        row = rows[0] if isinstance(rows, list) else rows
        return str(row["id"])

    async def delete_where(self, collection: str, filters: tuple[Filter, ...]) -> int:
        """Delete matching rows and return how many were removed."""
        check_identifier(collection)
        if not filters:
            # PostgREST refuses unfiltered deletes; so do we
            raise ValueError("delete_where requires at least one filter")

        add_store_breadcrumb("delete_where", collection)
        response = await self._send(
            "DELETE",
            collection,
            params=build_filter_params(filters),
            headers={"Prefer": "count=exact,return=minimal"},
        )
        if response.status_code >= 400:
            raise TransportError(
                f"Delete on '{collection}' failed with {response.status_code}",
                details={"collection": collection, "status": response.status_code},
            )
        return parse_content_range_total(response.headers.get("Content-Range"))
