from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

_CURRENCY_PREFIX_RE = re.compile(r"^[A-Za-z$€£¥₺₩₱]+")
_WHITESPACE_RE = re.compile(r"\s+")

_MALE_GENDERS = {"male", "men", "man"}
_HM_DEPARTMENTS = {
    "male": "men_all",
    "men": "men_all",
    "man": "men_all",
    "female": "ladies_all",
    "woman": "ladies_all",
    "women": "ladies_all",
}

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
    "Referer": "https://www.zara.com/",
}


@dataclass(frozen=True, slots=True)
class ColorVariant:
    name: str
    code: str | None = None
    image_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "code": self.code, "image_url": self.image_url}


@dataclass(frozen=True, slots=True)
class LocaleDetail:
    locale: str
    currency: str | None = None
    price: float | None = None
    product_url: str | None = None
    availability: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "locale": self.locale,
            "currency": self.currency,
            "price": self.price,
            "product_url": self.product_url,
            "availability": self.availability,
        }


@dataclass(frozen=True, slots=True)
class PlanMeta:
    key: str | None = None
    query: str | None = None
    min: str | None = None
    max: str | None = None
    type: str | None = None
    brand: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "query": self.query,
            "min": self.min,
            "max": self.max,
            "type": self.type,
            "brand": self.brand,
        }


@dataclass(frozen=True, slots=True)
class ScrapedProduct:
    brand: str
    source: str
    external_id: str
    name: str
    detail: LocaleDetail
    description: str | None = None
    main_image_url: str | None = None
    product_url: str | None = None
    colors: tuple[ColorVariant, ...] = ()
    raw: Any = None
    plan_meta: PlanMeta = field(default_factory=PlanMeta)


@dataclass(frozen=True, slots=True)
class SourceRequest:
    source: str
    url: str
    backup_url: str | None
    locale: str
    gender: str
    key: str
    query: str
    min_price: int
    max_price: int
    brands: tuple[str, ...] = ()


def normalize_locale(locale: str) -> str:
    """Upper-case the region segment: ``en-us`` -> ``en-US``, ``en_us`` -> ``en_US``."""
    sep = "-" if "-" in locale else "_"
    parts = locale.split(sep)
    parts[-1] = parts[-1].upper()
    return sep.join(parts)


def _encode(value: str) -> str:
    return quote(value, safe="-_.!~*'()")


def _first(values: Any) -> dict[str, Any]:
    if isinstance(values, list) and values and isinstance(values[0], dict):
        return values[0]
    return {}


def _as_list(v: Any) -> list[Any]:
    return v if isinstance(v, list) else []


def _clean(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _price(v: Any) -> float | None:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return None
    return float(v)


class RetailerAdapter:
    """Builds search URLs for one retailer and maps its hits to :class:`ScrapedProduct`."""

    source: str = "other"
    brand: str = "Other"
    aliases: frozenset[str] = frozenset()
    headers: dict[str, str] = {}

    def matches_brand(self, brand: str) -> bool:
        b = brand.strip().lower()
        return b == self.source or b in self.aliases

    def build_request(
        self,
        query: str,
        key: str,
        min_price: int,
        max_price: int,
        gender: str,
        locale: str,
        brands: tuple[str, ...] = (),
    ) -> SourceRequest:
        return SourceRequest(
            source=self.source,
            url=self.primary_url(query=query, max_price=max_price, gender=gender, locale=locale),
            backup_url=self.backup_url(key=key, gender=gender, locale=locale),
            locale=normalize_locale(locale),
            gender=gender,
            key=key,
            query=query,
            min_price=min_price,
            max_price=max_price,
            brands=brands,
        )

    def primary_url(self, query: str, max_price: int, gender: str, locale: str) -> str:
        raise NotImplementedError

    def backup_url(self, key: str, gender: str, locale: str) -> str | None:
        raise NotImplementedError

    def extract_hits(self, payload: Any) -> list[dict[str, Any]]:
        raise NotImplementedError

    def map_product(self, hit: dict[str, Any], request: SourceRequest) -> ScrapedProduct | None:
        raise NotImplementedError

    def _plan_meta(self, request: SourceRequest) -> PlanMeta:
        return PlanMeta(
            key=request.key,
            query=request.query,
            min=str(request.min_price),
            max=str(request.max_price),
            type=self.source,
            brand=self.source,
        )


class ZaraAdapter(RetailerAdapter):
    source = "zara"
    brand = "Zara"
    base_url = "https://www.zara.com/itxrest/1/search/store/22701/query"

    @staticmethod
    def _section(gender: str) -> str:
        return "MAN" if gender.lower() in _MALE_GENDERS else "WOMAN"

    def _search_url(self, text: str, gender: str) -> str:
        return (
            f"{self.base_url}?query={_encode(text)}&locale=en_US&deviceType=desktop"
            f"&catalogue=79051&warehouse=33551&section={self._section(gender)}"
            "&offset=0&limit=1&scope=default&origin=default&ajax=true"
        )

    def primary_url(self, query: str, max_price: int, gender: str, locale: str) -> str:
        # Zara filters in cents and returns nothing below a 200.00 ceiling.
        ceiling = max(math.floor(max_price) * 100, 20000)
        return f"{self._search_url(query, gender)}&filter=priceFilter:0-{ceiling}"

    def backup_url(self, key: str, gender: str, locale: str) -> str | None:
        return self._search_url(key, gender)

    def extract_hits(self, payload: Any) -> list[dict[str, Any]]:
        if not isinstance(payload, dict):
            return []
        results = _as_list(payload.get("results"))
        return [r for r in results if isinstance(r, dict)]

    def map_product(self, hit: dict[str, Any], request: SourceRequest) -> ScrapedProduct | None:
        content = hit.get("content") if isinstance(hit.get("content"), dict) else {}
        product_id = _clean(hit.get("id"))
        name = _clean(content.get("name"))
        if not product_id or not name:
            return None

        seo = content.get("seo") if isinstance(content.get("seo"), dict) else {}
        seo_keyword = _clean(seo.get("keyword")) or _WHITESPACE_RE.sub("-", name.lower())
        seo_id = _clean(seo.get("seoProductId")) or product_id
        product_url = f"https://www.zara.com/us/en/{seo_keyword}-p{seo_id}.html"

        detail_block = content.get("detail") if isinstance(content.get("detail"), dict) else {}
        colors = tuple(
            ColorVariant(
                name=_clean(c.get("name")) or "Default",
                code=_clean(c.get("id")),
                image_url=_clean(_first(c.get("xmedia")).get("url")),
            )
            for c in _as_list(detail_block.get("colors"))
            if isinstance(c, dict)
        )
        description = f"{content.get('sectionName') or ''} {content.get('familyName') or ''}".strip()

        return ScrapedProduct(
            brand=self.brand,
            source=self.source,
            external_id=product_id,
            name=name,
            description=description,
            main_image_url=_clean(_first(content.get("xmedia")).get("url")),
            product_url=product_url,
            colors=colors,
            detail=LocaleDetail(
                locale=request.locale.lower(),
                currency="USD",
                price=_price(content.get("price")),
                product_url=product_url,
                availability=_clean(content.get("availability")),
            ),
            raw=hit,
            plan_meta=self._plan_meta(request),
        )


class HMAdapter(RetailerAdapter):
    source = "hm"
    brand = "H&M"
    aliases = frozenset({"h&m", "h & m", "h and m"})
    headers = {"x-client-id": "style-up-generator"}
    base_url = "https://api.hm.com/search-services/v1"

    @staticmethod
    def _department(gender: str) -> str:
        return _HM_DEPARTMENTS.get(gender.lower(), "all")

    def primary_url(self, query: str, max_price: int, gender: str, locale: str) -> str:
        return (
            f"{self.base_url}/en_us/search/resultpage?query={_encode(query)}"
            f"&rFacets=price:0.000|{max_price}&touchPoint=desktop&page=1&pageSize=1"
            f"&sort=RELEVANCE&department={self._department(gender)}"
        )

    def backup_url(self, key: str, gender: str, locale: str) -> str | None:
        market = locale.replace("-", "_").lower()
        return (
            f"{self.base_url}/{market}/search/resultpage?query={_encode(key)}"
            f"&touchPoint=desktop&page=1&pageSize=1&sort=RELEVANCE"
            f"&department={self._department(gender)}"
        )

    def extract_hits(self, payload: Any) -> list[dict[str, Any]]:
        if not isinstance(payload, dict):
            return []
        search_hits = payload.get("searchHits") if isinstance(payload.get("searchHits"), dict) else {}
        return [p for p in _as_list(search_hits.get("productList")) if isinstance(p, dict)]

    def map_product(self, hit: dict[str, Any], request: SourceRequest) -> ScrapedProduct | None:
        product_id = _clean(hit.get("id"))
        name = _clean(hit.get("productName"))
        if not product_id or not name:
            return None

        primary_price = _first(hit.get("prices"))
        product_url = f"https://www2.hm.com{hit['url']}" if _clean(hit.get("url")) else None
        availability = hit.get("availability") if isinstance(hit.get("availability"), dict) else {}
        colors = tuple(
            ColorVariant(
                name=_clean(s.get("colorName")) or "Default",
                code=_clean(s.get("colorCode")),
                image_url=_clean(s.get("productImage")),
            )
            for s in _as_list(hit.get("swatches"))
            if isinstance(s, dict)
        )

        return ScrapedProduct(
            brand=self.brand,
            source=self.source,
            external_id=product_id,
            name=name,
            description="",
            main_image_url=_clean(_first(hit.get("images")).get("url")),
            product_url=product_url,
            colors=colors,
            detail=LocaleDetail(
                locale=request.locale.lower(),
                currency=_currency_from_formatted(primary_price.get("formattedPrice")),
                price=_price(primary_price.get("price")),
                product_url=product_url,
                availability=_clean(availability.get("stockState")),
            ),
            raw=hit,
            plan_meta=self._plan_meta(request),
        )


def _currency_from_formatted(formatted: Any) -> str:
    text = str(formatted or "")
    m = _CURRENCY_PREFIX_RE.match(text)
    if m:
        return m.group(0)
    head = _WHITESPACE_RE.split(text)[0] if text else ""
    return head or "USD"


ADAPTERS: tuple[RetailerAdapter, ...] = (ZaraAdapter(), HMAdapter())
