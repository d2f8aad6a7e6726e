from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from stylegen.api.deps import get_db, get_orchestrator, get_user_id
from stylegen.core.errors import GenerationError, QuotaExceeded
from stylegen.models import Outfit, StyleGeneration
from stylegen.schemas.generation import (
    GenerateRequest,
    GenerateResponse,
    GenerationOut,
    OutfitItemOut,
    OutfitOut,
)
from stylegen.services.generation_workflow import GenerationOrchestrator
from stylegen.services.usage import ensure_quota_available, record_successful_generation

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/generate", response_model=GenerateResponse)
def generate_outfit(
    payload: GenerateRequest,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerateResponse:
    if not payload.profile.is_complete():
        raise HTTPException(status_code=400, detail="Complete your style profile before generating outfits.")

    try:
        remaining = ensure_quota_available(db, user_id)
    except QuotaExceeded as exc:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc))

    try:
        result = orchestrator.run(db, user_id, payload.form, payload.profile)
    except GenerationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    # Only successful generations count against the monthly allowance.
    record_successful_generation(db, user_id)
    return GenerateResponse(
        generation_id=result.generation_id,
        outfit_id=result.outfit_id,
        remaining_this_month=max(0, remaining - 1),
    )


@router.get("/generations/{generation_id}", response_model=GenerationOut)
def get_generation(
    generation_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> GenerationOut:
    row = db.get(StyleGeneration, generation_id)
    if row is None or row.user_id != user_id:
        raise HTTPException(status_code=404, detail="Generation not found")
    return GenerationOut(
        id=row.id,
        user_id=row.user_id,
        status=row.status,
        form_input=row.form_input,
        failure_reason=row.failure_reason,
        outfit_id=row.outfit_id,
        scraped_product_ids=list(row.scraped_product_ids or []),
        cost_summary=row.cost_summary,
        created_at=row.created_at,
    )


@router.get("/outfits/{outfit_id}", response_model=OutfitOut)
def get_outfit(
    outfit_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> OutfitOut:
    outfit = db.get(Outfit, outfit_id)
    if outfit is None:
        raise HTTPException(status_code=404, detail="Outfit not found")
    if outfit.user_id != user_id and not outfit.is_public:
        raise HTTPException(status_code=403, detail="Not authorized to view outfit")

    return OutfitOut(
        id=outfit.id,
        user_id=outfit.user_id,
        generation_id=outfit.generation_id,
        name=outfit.name,
        description=outfit.description,
        banner_image_url=outfit.banner_image_url,
        is_public=outfit.is_public,
        created_at=outfit.created_at,
        items=[
            OutfitItemOut(
                product_id=item.product_id,
                position=item.position,
                plan_key=item.plan_key,
                search_query=item.search_query,
                min_price=item.min_price,
                max_price=item.max_price,
                name=item.product.name,
                brand=item.product.brand,
                main_image_url=item.product.main_image_url,
                product_url=item.product.product_url,
            )
            for item in outfit.items
        ],
    )
