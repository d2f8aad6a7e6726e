from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StyleProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    gender: str | None = None
    age: int | None = Field(default=None, ge=10, le=100)
    height_cm: float | None = Field(default=None, ge=50, le=250)
    weight_kg: float | None = Field(default=None, ge=20, le=250)
    locale: str | None = None
    preferred_units: Literal["metric", "imperial"] | None = None
    profile_image_url: str | None = None

    def is_complete(self) -> bool:
        return bool(self.gender and self.age and self.height_cm and self.weight_kg and self.locale)


class GenerationForm(BaseModel):
    model_config = ConfigDict(frozen=True)

    preparing_for: str = Field(min_length=3, max_length=200)
    preferred_brand: str = Field(default="", max_length=200)
    budget: str = Field(default="", max_length=50)
    description: str = Field(min_length=3, max_length=1000)

    def brand_list(self) -> list[str]:
        return [b.strip() for b in self.preferred_brand.split(",") if b.strip()]


class PlannedItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    query: str
    key: str
    type: str
    min: str
    max: str
    brand: str

    @field_validator("min", "max", mode="before")
    @classmethod
    def _price_bound_to_str(cls, value: object) -> object:
        # Models sometimes emit bare numbers for price bounds.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class PlannedOutfit(BaseModel):
    model_config = ConfigDict(frozen=True)

    looks: str
    description: str
    items: list[PlannedItem]


class StylePlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    outfits: list[PlannedOutfit] = Field(min_length=1)
