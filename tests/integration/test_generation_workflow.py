from __future__ import annotations

import pytest

from stylegen.core.context import generation_id_ctx
from stylegen.core.errors import PipelineAborted, PlanningFailed
from stylegen.models import Outfit, OutfitItem, Product, StyleGeneration
from stylegen.schemas.style import PlannedItem, PlannedOutfit, StylePlan
from stylegen.services.catalog_store import CatalogStore
from stylegen.services.generation_workflow import GenerationOrchestrator
from stylegen.services.planning import OpenAIPlanner, Planner
from stylegen.services.retailers import LocaleDetail, ScrapedProduct
from stylegen.services.sourcing import SourcingService


def _wedding_plan(extra_outfits: int = 0) -> StylePlan:
    items = [
        PlannedItem(query="black satin slip dress", key="slip dress", type="dress", min="40", max="120", brand="zara"),
        PlannedItem(query="strappy heeled sandals", key="heels", type="shoes", min="30", max="80", brand="zara"),
        PlannedItem(query="gold hoop earrings", key="earrings", type="accessory", min="10", max="30", brand="zara"),
        PlannedItem(query="sequin clutch bag", key="clutch", type="bag", min="20", max="60", brand="zara"),
    ]
    outfits = [PlannedOutfit(looks="Garden wedding guest", description="Satin and gold", items=items)]
    outfits += [
        PlannedOutfit(looks=f"Alt {i}", description="alt", items=items[:1]) for i in range(extra_outfits)
    ]
    return StylePlan(outfits=outfits)


class FakePlanner(Planner):
    def __init__(self, plan: StylePlan | None = None, error: Exception | None = None) -> None:
        self._plan = plan
        self._error = error
        self.calls = 0

    def plan(self, form, profile, options=None):
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._plan


class FakeSourcing(SourcingService):
    """Resolves by search query; queries absent from ``catalog`` are misses."""

    def __init__(self, catalog: dict[str, ScrapedProduct]) -> None:
        super().__init__(strategies=())
        self.catalog = catalog
        self.queries: list[str] = []

    def find_one(self, requests):
        query = requests[0].query
        self.queries.append(query)
        return self.catalog.get(query)


def _product(external_id: str, name: str) -> ScrapedProduct:
    return ScrapedProduct(
        brand="Zara",
        source="zara",
        external_id=external_id,
        name=name,
        description="WOMAN",
        main_image_url=f"https://static.zara.net/{external_id}.jpg",
        product_url=f"https://www.zara.com/us/en/{external_id}.html",
        detail=LocaleDetail(locale="en-us", currency="USD", price=49.0),
    )


def _passthrough(url, folder, store=None):
    return url


def _orchestrator(planner: Planner, catalog: dict[str, ScrapedProduct]) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        planner=planner,
        sourcing=FakeSourcing(catalog),
        catalog=CatalogStore(rehost=_passthrough),
    )


def _only_generation(db_session) -> StyleGeneration:
    rows = db_session.query(StyleGeneration).all()
    assert len(rows) == 1
    return rows[0]


def test_wedding_generation_builds_outfit_from_matched_items(db_session, wedding_form, complete_profile):
    catalog = {
        "black satin slip dress": _product("z-1", "Satin Slip Dress"),
        "strappy heeled sandals": _product("z-2", "Strappy Sandals"),
        "sequin clutch bag": _product("z-3", "Sequin Clutch"),
    }
    orchestrator = _orchestrator(FakePlanner(_wedding_plan()), catalog)

    result = orchestrator.run(db_session, "user-1", wedding_form, complete_profile)

    generation = _only_generation(db_session)
    assert generation.status == "completed"
    assert generation.failure_reason is None
    assert generation.outfit_id == result.outfit_id
    assert len(generation.scraped_product_ids) == 3
    assert generation.form_input["preparing_for"] == "wedding"
    assert generation.ai_response["outfits"][0]["looks"] == "Garden wedding guest"
    assert set(generation.cost_summary) == {"planning_ms", "sourcing_ms"}

    outfit = db_session.get(Outfit, result.outfit_id)
    assert outfit.generation_id == generation.id
    assert outfit.is_public is False
    assert outfit.banner_image_url == "https://static.zara.net/z-1.jpg"
    assert [i.plan_key for i in outfit.items] == ["slip dress", "heels", "clutch"]
    assert db_session.query(OutfitItem).count() == 3

    dress = db_session.query(Product).filter(Product.external_id == "z-1").one()
    assert dress.metadata_json["query_meta"] == {
        "key": "slip dress",
        "query": "black satin slip dress",
        "min": "40",
        "max": "120",
        "type": "dress",
        "brand": "zara",
    }
    assert generation_id_ctx.get() is None


def test_only_first_outfit_is_sourced_and_plan_is_clamped(db_session, wedding_form, complete_profile):
    catalog = {"black satin slip dress": _product("z-1", "Satin Slip Dress")}
    sourcing = FakeSourcing(catalog)
    orchestrator = GenerationOrchestrator(
        planner=FakePlanner(_wedding_plan(extra_outfits=7)),
        sourcing=sourcing,
        catalog=CatalogStore(rehost=_passthrough),
    )

    result = orchestrator.run(db_session, "user-1", wedding_form, complete_profile)

    assert len(result.plan.outfits) == 5
    assert sourcing.queries == [
        "black satin slip dress",
        "strappy heeled sandals",
        "gold hoop earrings",
        "sequin clutch bag",
    ]
    assert len(_only_generation(db_session).ai_response["outfits"]) == 5


def test_zero_outfits_fails_without_creating_an_outfit(db_session, wedding_form, complete_profile):
    planner = FakePlanner(StylePlan.model_construct(outfits=[]))
    orchestrator = _orchestrator(planner, {})

    with pytest.raises(PipelineAborted):
        orchestrator.run(db_session, "user-1", wedding_form, complete_profile)

    generation = _only_generation(db_session)
    assert generation.status == "failed"
    assert "did not return any outfits" in generation.failure_reason
    assert db_session.query(Outfit).count() == 0


def test_all_items_missing_fails_without_creating_an_outfit(db_session, wedding_form, complete_profile):
    orchestrator = _orchestrator(FakePlanner(_wedding_plan()), {})

    with pytest.raises(PipelineAborted, match="Could not find any products"):
        orchestrator.run(db_session, "user-1", wedding_form, complete_profile)

    generation = _only_generation(db_session)
    assert generation.status == "failed"
    assert generation.failure_reason.startswith("Could not find any products")
    assert generation.outfit_id is None
    assert db_session.query(Outfit).count() == 0
    assert db_session.query(Product).count() == 0


def test_missing_api_key_marks_generation_failed(db_session, wedding_form, complete_profile):
    orchestrator = _orchestrator(OpenAIPlanner(api_key=""), {})

    with pytest.raises(PlanningFailed):
        orchestrator.run(db_session, "user-1", wedding_form, complete_profile)

    generation = _only_generation(db_session)
    assert generation.status == "failed"
    assert "OPENAI_API_KEY" in generation.failure_reason
    assert db_session.query(Outfit).count() == 0


def test_unexpected_error_uses_fallback_reason(db_session, wedding_form, complete_profile):
    orchestrator = _orchestrator(FakePlanner(error=RuntimeError()), {})

    with pytest.raises(RuntimeError):
        orchestrator.run(db_session, "user-1", wedding_form, complete_profile)

    assert _only_generation(db_session).failure_reason == "Unknown error"


def test_assembly_failure_rolls_back_outfit_but_keeps_products(db_session, wedding_form, complete_profile):
    class BrokenAssembler:
        def assemble(self, db, **kwargs):
            raise ValueError("assembly exploded")

    orchestrator = GenerationOrchestrator(
        planner=FakePlanner(_wedding_plan()),
        sourcing=FakeSourcing({"black satin slip dress": _product("z-1", "Satin Slip Dress")}),
        catalog=CatalogStore(rehost=_passthrough),
        assembler=BrokenAssembler(),
    )

    with pytest.raises(ValueError):
        orchestrator.run(db_session, "user-1", wedding_form, complete_profile)

    generation = _only_generation(db_session)
    assert generation.status == "failed"
    assert generation.failure_reason == "assembly exploded"
    assert db_session.query(Outfit).count() == 0
    assert db_session.query(Product).count() == 1


def test_each_run_creates_its_own_record(db_session, wedding_form, complete_profile):
    catalog = {"black satin slip dress": _product("z-1", "Satin Slip Dress")}
    orchestrator = _orchestrator(FakePlanner(_wedding_plan()), catalog)

    first = orchestrator.run(db_session, "user-1", wedding_form, complete_profile)
    second = orchestrator.run(db_session, "user-1", wedding_form, complete_profile)

    assert first.generation_id != second.generation_id
    assert first.stored_product_ids == second.stored_product_ids
    assert db_session.query(StyleGeneration).filter(StyleGeneration.status == "completed").count() == 2
    assert db_session.query(Product).count() == 1
