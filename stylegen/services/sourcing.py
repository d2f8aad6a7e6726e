from __future__ import annotations

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from operator import attrgetter
from typing import Any, Callable, Sequence

import httpx

from stylegen.core.config import settings
from stylegen.core.errors import SourcingTransportError
from stylegen.schemas.style import PlannedItem
from stylegen.services.retailers import (
    ADAPTERS,
    DEFAULT_HEADERS,
    RetailerAdapter,
    ScrapedProduct,
    SourceRequest,
)

logger = logging.getLogger(__name__)

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


class FetchStrategy:
    name = "base"

    def enabled(self) -> bool:
        return True

    def fetch_json(self, url: str, headers: dict[str, str]) -> Any:
        raise NotImplementedError


class DirectFetch(FetchStrategy):
    name = "direct"

    def fetch_json(self, url: str, headers: dict[str, str]) -> Any:
        try:
            response = httpx.get(
                url,
                headers={**DEFAULT_HEADERS, **headers},
                timeout=settings.retailer_timeout_sec,
                follow_redirects=True,
            )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SourcingTransportError(f"Fetch failed for {url}: {exc}") from exc


class ProxyFetch(FetchStrategy):
    """Renders the same URL through the Oxylabs realtime scraping API."""

    name = "proxy"

    def enabled(self) -> bool:
        return settings.has_proxy_credentials

    def fetch_json(self, url: str, headers: dict[str, str]) -> Any:
        try:
            response = httpx.post(
                settings.oxylabs_realtime_url,
                json={"source": "universal_ecommerce", "url": url},
                auth=(settings.oxylabs_username, settings.oxylabs_password),
                timeout=settings.oxylabs_timeout_sec,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SourcingTransportError(f"Proxy fetch failed for {url}: {exc}") from exc

        results = data.get("results") if isinstance(data, dict) else None
        content = results[0].get("content") if isinstance(results, list) and results and isinstance(results[0], dict) else None
        if isinstance(content, (dict, list)):
            return content
        try:
            return json.loads(content or "")
        except ValueError as exc:
            raise SourcingTransportError(f"Proxy returned non-JSON content for {url}") from exc


URL_TIERS: tuple[tuple[str, Callable[[SourceRequest], str | None]], ...] = (
    ("primary", attrgetter("url")),
    ("backup", attrgetter("backup_url")),
)
FETCH_STRATEGIES: tuple[FetchStrategy, ...] = (DirectFetch(), ProxyFetch())


def parse_leading_int(value: Any) -> int | None:
    if value is None:
        return None
    m = _LEADING_INT_RE.match(str(value))
    return int(m.group(1)) if m else None


class SourcingService:
    """Finds one purchasable product per planned item across the retailer adapters.

    URL tiers are tried in order (primary, then backup). Within a tier every
    adapter is queried concurrently and the first non-null hit in request order
    wins. Each adapter attempt walks the fetch strategies (direct, then proxy)
    and only moves on when the previous strategy failed at the transport level.
    """

    def __init__(
        self,
        adapters: Sequence[RetailerAdapter] = ADAPTERS,
        strategies: Sequence[FetchStrategy] = FETCH_STRATEGIES,
        url_tiers: Sequence[tuple[str, Callable[[SourceRequest], str | None]]] = URL_TIERS,
    ) -> None:
        self.adapters = tuple(adapters)
        self.strategies = tuple(strategies)
        self.url_tiers = tuple(url_tiers)
        self._by_source = {a.source: a for a in self.adapters}

    def build_requests(
        self,
        item: PlannedItem,
        gender: str,
        locale: str,
        brands: Sequence[str] = (),
        budget: str | None = None,
    ) -> list[SourceRequest]:
        min_price = parse_leading_int(item.min) or 0
        max_price = parse_leading_int(item.max) or parse_leading_int(budget) or settings.default_max_price
        allow_list = tuple(b.strip().lower() for b in brands if b and b.strip())

        selected = [a for a in self.adapters if any(a.matches_brand(b) for b in allow_list)]
        if not selected:
            # No allow-listed brand is a supported retailer; search all of them.
            selected = list(self.adapters)

        return [
            adapter.build_request(
                query=item.query,
                key=item.key,
                min_price=min_price,
                max_price=max_price,
                gender=gender,
                locale=locale,
                brands=allow_list,
            )
            for adapter in selected
        ]

    def find_one(self, requests: Sequence[SourceRequest]) -> ScrapedProduct | None:
        for tier, url_of in self.url_tiers:
            pending = [(r, url_of(r)) for r in requests if url_of(r)]
            if not pending:
                continue
            for hit in self._fan_out(pending):
                if hit is not None:
                    logger.info("sourcing_hit tier=%s source=%s external_id=%s", tier, hit.source, hit.external_id)
                    return hit
            logger.info("sourcing_tier_miss tier=%s sources=%s", tier, ",".join(r.source for r, _ in pending))
        return None

    def _fan_out(self, pending: list[tuple[SourceRequest, str]]) -> list[ScrapedProduct | None]:
        if len(pending) == 1:
            request, url = pending[0]
            return [self._attempt(request, url)]
        with ThreadPoolExecutor(max_workers=len(pending)) as executor:
            futures = [executor.submit(self._attempt, request, url) for request, url in pending]
            return [f.result() for f in futures]

    def _attempt(self, request: SourceRequest, url: str) -> ScrapedProduct | None:
        adapter = self._by_source.get(request.source)
        if adapter is None:
            return None

        for strategy in self.strategies:
            if not strategy.enabled():
                continue
            try:
                payload = strategy.fetch_json(url, adapter.headers)
            except SourcingTransportError as exc:
                logger.warning("sourcing_fetch_failed source=%s strategy=%s error=%s", request.source, strategy.name, exc)
                continue

            try:
                hits = adapter.extract_hits(payload)
                return adapter.map_product(hits[0], request) if hits else None
            except (TypeError, ValueError, AttributeError, KeyError, IndexError) as exc:
                # A malformed record is a miss for this adapter only.
                logger.warning("sourcing_map_failed source=%s error=%r", request.source, exc)
                return None
        return None


_service: SourcingService | None = None


def get_sourcing_service() -> SourcingService:
    global _service
    if _service is None:
        _service = SourcingService()
    return _service
