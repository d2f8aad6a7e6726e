from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace

from sqlalchemy.orm import Session

from stylegen.core.config import settings
from stylegen.core.context import generation_id_ctx
from stylegen.core.errors import GenerationStateError, PipelineAborted
from stylegen.models import StyleGeneration
from stylegen.schemas.style import GenerationForm, PlannedItem, PlannedOutfit, StylePlan, StyleProfile
from stylegen.services.catalog_store import CatalogStore, get_catalog_store
from stylegen.services.outfit_assembler import OutfitAssembler
from stylegen.services.planning import Planner, get_planner
from stylegen.services.retailers import PlanMeta, ScrapedProduct
from stylegen.services.sourcing import SourcingService, get_sourcing_service

logger = logging.getLogger(__name__)

NO_OUTFITS_REASON = "AI did not return any outfits."
NO_PRODUCTS_REASON = "Could not find any products for the generated outfit"


@dataclass(frozen=True, slots=True)
class GenerationResult:
    generation_id: str
    outfit_id: str
    plan: StylePlan
    stored_product_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class SourcedItem:
    item: PlannedItem
    product: ScrapedProduct


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class GenerationOrchestrator:
    """Runs plan -> source -> persist -> assemble for one request and keeps its audit record."""

    def __init__(
        self,
        planner: Planner | None = None,
        sourcing: SourcingService | None = None,
        catalog: CatalogStore | None = None,
        assembler: OutfitAssembler | None = None,
    ) -> None:
        self.planner = planner or get_planner()
        self.sourcing = sourcing or get_sourcing_service()
        self.catalog = catalog or get_catalog_store()
        self.assembler = assembler or OutfitAssembler()

    def run(self, db: Session, user_id: str, form: GenerationForm, profile: StyleProfile) -> GenerationResult:
        generation = StyleGeneration(
            user_id=user_id,
            form_input=form.model_dump(),
            status="pending",
            scraped_product_ids=[],
        )
        db.add(generation)
        db.commit()
        generation_id = generation.id

        token = generation_id_ctx.set(generation_id)
        try:
            logger.info("generation_started user_id=%s", user_id)
            try:
                result = self._execute(db, generation_id, user_id, form, profile)
            except Exception as exc:
                logger.exception("generation_failed")
                db.rollback()
                self._mark_failed(db, generation_id, exc)
                raise
            logger.info("generation_completed outfit_id=%s products=%d", result.outfit_id, len(result.stored_product_ids))
            return result
        finally:
            generation_id_ctx.reset(token)

    def _execute(
        self,
        db: Session,
        generation_id: str,
        user_id: str,
        form: GenerationForm,
        profile: StyleProfile,
    ) -> GenerationResult:
        started = time.perf_counter()
        plan = self.planner.plan(form, profile)
        planning_ms = _elapsed_ms(started)

        outfits = list(plan.outfits)[: settings.max_outfits_per_plan]
        if not outfits:
            raise PipelineAborted(NO_OUTFITS_REASON)
        plan = plan.model_copy(update={"outfits": outfits})
        primary = outfits[0]

        started = time.perf_counter()
        sourced = self._source_items(primary, form, profile)
        sourcing_ms = _elapsed_ms(started)
        if not sourced:
            raise PipelineAborted(NO_PRODUCTS_REASON)

        stored = self.catalog.persist(db, [s.product for s in sourced])
        outfit = self.assembler.assemble(
            db,
            user_id=user_id,
            generation_id=generation_id,
            planned_outfit=primary,
            stored=stored,
            matched_items=[s.item for s in sourced],
        )

        product_ids = tuple(s.product_id for s in stored)
        generation = self._pending_record(db, generation_id)
        generation.status = "completed"
        generation.failure_reason = None
        generation.ai_response = plan.model_dump()
        generation.outfit_id = outfit.id
        generation.scraped_product_ids = list(product_ids)
        generation.cost_summary = {"planning_ms": planning_ms, "sourcing_ms": sourcing_ms}
        db.commit()

        return GenerationResult(
            generation_id=generation_id,
            outfit_id=outfit.id,
            plan=plan,
            stored_product_ids=product_ids,
        )

    def _source_items(
        self,
        outfit: PlannedOutfit,
        form: GenerationForm,
        profile: StyleProfile,
    ) -> list[SourcedItem]:
        gender = profile.gender or "all"
        locale = profile.locale or settings.default_locale
        brands = form.brand_list()

        sourced: list[SourcedItem] = []
        for item in outfit.items:
            if not item.query:
                continue
            requests = self.sourcing.build_requests(item, gender=gender, locale=locale, brands=brands, budget=form.budget)
            if not requests:
                continue
            hit = self.sourcing.find_one(requests)
            if hit is None:
                logger.info("generation_item_unmatched key=%s", item.key)
                continue
            meta = PlanMeta(key=item.key, query=item.query, min=item.min, max=item.max, type=item.type, brand=item.brand)
            sourced.append(SourcedItem(item=item, product=replace(hit, plan_meta=meta)))
        return sourced

    @staticmethod
    def _pending_record(db: Session, generation_id: str) -> StyleGeneration:
        generation = db.get(StyleGeneration, generation_id)
        if generation is None:
            raise GenerationStateError(f"Generation {generation_id} disappeared")
        if generation.status != "pending":
            raise GenerationStateError(f"Generation {generation_id} is already {generation.status}")
        return generation

    def _mark_failed(self, db: Session, generation_id: str, exc: Exception) -> None:
        try:
            generation = self._pending_record(db, generation_id)
        except GenerationStateError:
            logger.warning("generation_mark_failed_skipped")
            return
        generation.status = "failed"
        generation.failure_reason = str(exc) or "Unknown error"
        try:
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("generation_mark_failed_commit_error")


def run_style_generation(db: Session, user_id: str, form: GenerationForm, profile: StyleProfile) -> GenerationResult:
    return GenerationOrchestrator().run(db, user_id, form, profile)
