from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from stylegen.schemas.style import GenerationForm, StyleProfile


class GenerateRequest(BaseModel):
    form: GenerationForm
    profile: StyleProfile


class GenerateResponse(BaseModel):
    generation_id: str
    outfit_id: str
    remaining_this_month: int


class GenerationOut(BaseModel):
    id: str
    user_id: str
    status: str
    form_input: dict
    failure_reason: str | None = None
    outfit_id: str | None = None
    scraped_product_ids: list[str]
    cost_summary: dict | None = None
    created_at: datetime


class OutfitItemOut(BaseModel):
    product_id: str
    position: int
    plan_key: str | None = None
    search_query: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    name: str
    brand: str
    main_image_url: str | None = None
    product_url: str | None = None


class OutfitOut(BaseModel):
    id: str
    user_id: str
    generation_id: str | None = None
    name: str
    description: str | None = None
    banner_image_url: str | None = None
    is_public: bool
    created_at: datetime
    items: list[OutfitItemOut]
