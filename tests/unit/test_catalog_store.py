from __future__ import annotations

from dataclasses import replace

import pytest

import stylegen.services.catalog_store as catalog_store
from stylegen.models import Product
from stylegen.services.catalog_store import KNOWN_SOURCES, CatalogStore, merge_details
from stylegen.services.retailers import ADAPTERS, ColorVariant, LocaleDetail, PlanMeta, ScrapedProduct


def _scraped(**overrides) -> ScrapedProduct:
    base = ScrapedProduct(
        brand="Zara",
        source="zara",
        external_id="z-100",
        name="Satin Midi Dress",
        description="WOMAN DRESS",
        main_image_url="https://static.zara.net/dress.jpg",
        product_url="https://www.zara.com/us/en/satin-midi-dress-p100.html",
        colors=(ColorVariant(name="Black", code="800", image_url="https://static.zara.net/black.jpg"),),
        detail=LocaleDetail(locale="en-us", currency="USD", price=89.9),
        raw={"id": "z-100"},
        plan_meta=PlanMeta(key="dress", query="satin dress", min="0", max="300", type="dress", brand="zara"),
    )
    return replace(base, **overrides)


def _passthrough(url, folder, store=None):
    return url


def test_merge_details_keeps_one_entry_per_locale():
    existing = [{"locale": "en-us", "price": 10}, {"locale": "en-gb", "price": 8}]
    merged = merge_details(existing, {"locale": "en-us", "price": 12})
    assert sorted(d["locale"] for d in merged) == ["en-gb", "en-us"]
    assert [d["price"] for d in merged if d["locale"] == "en-us"] == [12]

    assert merge_details(existing, {"locale": None}) == existing


def test_persist_creates_product_and_skips_none(db_session):
    store = CatalogStore(rehost=_passthrough)
    stored = store.persist(db_session, [None, _scraped(), None])

    assert len(stored) == 1
    row = db_session.get(Product, stored[0].product_id)
    assert row.external_id == "z-100"
    assert row.details == [{"locale": "en-us", "currency": "USD", "price": 89.9, "product_url": None, "availability": None}]
    assert row.colors[0]["name"] == "Black"
    assert row.metadata_json["query_meta"]["key"] == "dress"
    assert stored[0].main_image_url == "https://static.zara.net/dress.jpg"


def test_persist_is_idempotent_per_external_id(db_session):
    store = CatalogStore(rehost=_passthrough)
    first = store.persist(db_session, [_scraped()])
    second = store.persist(db_session, [_scraped(detail=LocaleDetail(locale="en-us", currency="USD", price=79.9))])

    assert first[0].product_id == second[0].product_id
    assert db_session.query(Product).count() == 1
    row = db_session.get(Product, first[0].product_id)
    assert len(row.details) == 1
    assert row.details[0]["price"] == 79.9


def test_merge_preserves_existing_values_when_incoming_is_empty(db_session):
    store = CatalogStore(rehost=_passthrough)
    store.persist(db_session, [_scraped()])
    store.persist(
        db_session,
        [
            _scraped(
                name="Satin Midi Dress - Black",
                description="",
                main_image_url=None,
                product_url=None,
                colors=(),
                detail=LocaleDetail(locale="en-gb", currency="GBP", price=69.0),
                raw={"id": "z-100", "v": 2},
                plan_meta=PlanMeta(key="evening dress"),
            )
        ],
    )

    row = db_session.query(Product).filter(Product.external_id == "z-100").one()
    assert row.name == "Satin Midi Dress - Black"
    assert row.description == "WOMAN DRESS"
    assert row.main_image_url == "https://static.zara.net/dress.jpg"
    assert row.product_url == "https://www.zara.com/us/en/satin-midi-dress-p100.html"
    assert row.colors[0]["name"] == "Black"
    assert sorted(d["locale"] for d in row.details) == ["en-gb", "en-us"]
    assert row.metadata_json["raw"] == {"id": "z-100", "v": 2}
    assert row.metadata_json["query_meta"]["key"] == "evening dress"


def test_unknown_source_is_stored_as_other(db_session):
    stored = CatalogStore(rehost=_passthrough).persist(db_session, [_scraped(source="mango", external_id="m-1")])
    assert stored[0].source == "other"


def test_images_are_rehosted_under_product_folders(db_session):
    seen: list[tuple[str, str]] = []

    def fake_rehost(url, folder, store=None):
        seen.append((url, folder))
        return f"https://cdn.example/{folder}/img.jpg"

    stored = CatalogStore(rehost=fake_rehost).persist(db_session, [_scraped()])

    assert seen == [
        ("https://static.zara.net/dress.jpg", "style/products/z-100"),
        ("https://static.zara.net/black.jpg", "style/products/z-100/colors"),
    ]
    assert stored[0].main_image_url == "https://cdn.example/style/products/z-100/img.jpg"
    row = db_session.get(Product, stored[0].product_id)
    assert row.colors[0]["image_url"] == "https://cdn.example/style/products/z-100/colors/img.jpg"


def test_lost_insert_race_is_retried_as_merge(db_session, monkeypatch):
    store = CatalogStore(rehost=_passthrough)
    existing = store.persist(db_session, [_scraped()])[0]

    real_find = CatalogStore._find
    lookups = {"n": 0}

    def stale_find(db, external_id):
        lookups["n"] += 1
        # First lookup misses, as if a concurrent writer had not committed yet.
        return None if lookups["n"] == 1 else real_find(db, external_id)

    monkeypatch.setattr(CatalogStore, "_find", staticmethod(stale_find))
    again = store.persist(db_session, [_scraped(detail=LocaleDetail(locale="fr-fr", currency="EUR", price=79.0))])

    assert again[0].product_id == existing.product_id
    assert db_session.query(Product).count() == 1
    row = db_session.get(Product, existing.product_id)
    assert sorted(d["locale"] for d in row.details) == ["en-us", "fr-fr"]


def test_known_sources_follow_registered_adapters(db_session):
    assert KNOWN_SOURCES == {a.source for a in ADAPTERS}
    stored = CatalogStore(rehost=_passthrough).persist(db_session, [_scraped(brand="H&M", source="hm", external_id="h-1")])
    assert stored[0].source == "hm"


def test_per_key_locks_are_released_after_persist(db_session):
    store = CatalogStore(rehost=_passthrough)
    store.persist(db_session, [_scraped(external_id=f"z-{i}") for i in range(50)])
    assert catalog_store._key_locks == {}


def test_per_key_locks_are_released_when_persist_fails(db_session, monkeypatch):
    def broken_find(db, external_id):
        raise RuntimeError("db unavailable")

    monkeypatch.setattr(CatalogStore, "_find", staticmethod(broken_find))
    with pytest.raises(RuntimeError):
        CatalogStore(rehost=_passthrough).persist(db_session, [_scraped()])
    assert catalog_store._key_locks == {}
