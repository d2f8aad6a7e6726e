from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Iterator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stylegen.models import Product
from stylegen.services.image_store import ImageStore, rehost_image
from stylegen.services.retailers import ADAPTERS, ScrapedProduct

logger = logging.getLogger(__name__)

KNOWN_SOURCES = frozenset(a.source for a in ADAPTERS)

_key_locks: dict[str, "_KeyLock"] = {}
_key_locks_guard = threading.Lock()


@dataclass(frozen=True, slots=True)
class StoredProduct:
    product_id: str
    brand: str
    source: str
    main_image_url: str | None = None


@dataclass(frozen=True, slots=True)
class _ProductValues:
    item: ScrapedProduct
    source: str
    main_image_url: str | None
    colors: list[dict[str, Any]]
    detail: dict[str, Any]
    metadata: dict[str, Any]


@dataclass(slots=True)
class _KeyLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


@contextmanager
def _external_id_lock(external_id: str) -> Iterator[None]:
    # Entries are reference counted and dropped once the last holder releases.
    with _key_locks_guard:
        entry = _key_locks.get(external_id)
        if entry is None:
            entry = _key_locks[external_id] = _KeyLock()
        entry.holders += 1
    try:
        with entry.lock:
            yield
    finally:
        with _key_locks_guard:
            entry.holders -= 1
            if entry.holders == 0:
                del _key_locks[external_id]


def merge_details(existing: list[dict[str, Any]] | None, detail: dict[str, Any]) -> list[dict[str, Any]]:
    """Keep one detail per locale; the incoming detail replaces any entry for its locale."""
    current = list(existing or [])
    if not detail.get("locale"):
        return current
    kept = [d for d in current if d.get("locale") != detail["locale"]]
    kept.append(detail)
    return kept


class CatalogStore:
    def __init__(
        self,
        image_store: ImageStore | None = None,
        rehost: Callable[..., str | None] = rehost_image,
    ) -> None:
        self._image_store = image_store
        self._rehost = rehost

    def persist(self, db: Session, products: Iterable[ScrapedProduct | None]) -> list[StoredProduct]:
        stored: list[StoredProduct] = []
        for item in products:
            if item is None:
                continue
            stored.append(self._persist_one(db, item))
        return stored

    def _rehost_url(self, url: str | None, folder: str) -> str | None:
        if self._image_store is None:
            return self._rehost(url, folder)
        return self._rehost(url, folder, store=self._image_store)

    def _persist_one(self, db: Session, item: ScrapedProduct) -> StoredProduct:
        folder = f"style/products/{item.external_id}"
        values = _ProductValues(
            item=item,
            source=item.source if item.source in KNOWN_SOURCES else "other",
            main_image_url=self._rehost_url(item.main_image_url, folder),
            colors=[
                replace(c, image_url=self._rehost_url(c.image_url, f"{folder}/colors")).to_dict()
                for c in item.colors
            ],
            detail=item.detail.to_dict(),
            metadata={"query_meta": item.plan_meta.to_dict(), "raw": item.raw},
        )

        with _external_id_lock(item.external_id):
            product = self._find(db, item.external_id)
            if product is None:
                try:
                    product = self._insert(db, values)
                except IntegrityError:
                    # Another writer inserted the same external_id first.
                    db.rollback()
                    product = self._find(db, item.external_id)
                    if product is None:
                        raise
                    self._merge(db, product, values)
            else:
                self._merge(db, product, values)

        return StoredProduct(
            product_id=product.id,
            brand=product.brand,
            source=product.source,
            main_image_url=product.main_image_url,
        )

    @staticmethod
    def _find(db: Session, external_id: str) -> Product | None:
        return db.query(Product).filter(Product.external_id == external_id).first()

    @staticmethod
    def _insert(db: Session, values: _ProductValues) -> Product:
        item = values.item
        product = Product(
            external_id=item.external_id,
            brand=item.brand,
            source=values.source,
            name=item.name,
            description=item.description,
            main_image_url=values.main_image_url,
            product_url=item.product_url,
            colors=values.colors,
            details=[values.detail] if values.detail.get("locale") else [],
            metadata_json=values.metadata,
        )
        db.add(product)
        db.commit()
        logger.info("catalog_product_created external_id=%s source=%s", item.external_id, values.source)
        return product

    @staticmethod
    def _merge(db: Session, product: Product, values: _ProductValues) -> None:
        item = values.item
        product.brand = item.brand
        product.source = values.source
        product.name = item.name
        product.description = item.description or product.description
        product.main_image_url = values.main_image_url or product.main_image_url
        product.product_url = item.product_url or product.product_url
        product.colors = values.colors if values.colors else product.colors
        product.details = merge_details(product.details, values.detail)
        product.metadata_json = {**(product.metadata_json or {}), **values.metadata}
        db.commit()
        logger.info("catalog_product_merged external_id=%s source=%s", item.external_id, values.source)


_store: CatalogStore | None = None


def get_catalog_store() -> CatalogStore:
    global _store
    if _store is None:
        _store = CatalogStore()
    return _store
