from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import requests
from pydantic import ValidationError

from stylegen.core.config import settings
from stylegen.core.errors import PlanningFailed
from stylegen.schemas.style import GenerationForm, StylePlan, StyleProfile

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a world-class AI stylist. Respond strictly in JSON matching the schema: "
    "{ outfits: [{ looks, description, items: [{ query, key, type, min, max, brand }] }] }. "
    "Every item field is a string. Include realistic price min/max fields that respect the stated budget."
)


@dataclass(slots=True)
class PlanOptions:
    temperature: float | None = None


def profile_summary(profile: StyleProfile) -> str:
    fields = [
        ("gender", profile.gender),
        ("age", profile.age),
        ("height_cm", profile.height_cm),
        ("weight_kg", profile.weight_kg),
        ("locale", profile.locale),
        ("preferred_units", profile.preferred_units),
    ]
    return ", ".join(f"{name}: {value}" for name, value in fields if value)


def build_prompt(form: GenerationForm, profile: StyleProfile) -> str:
    summary = profile_summary(profile)
    lines = [
        f"The user is preparing for: {form.preparing_for}.",
        f"Preferred brands: {form.preferred_brand or 'any'}.",
        f"Budget (currency or range as entered): {form.budget}.",
        f"Extra guidance: {form.description}." if form.description else "",
        f"Profile: {summary}." if summary else "",
        "Return between 1 and 5 outfits, each with 3-6 items. Each item must translate to a product search query.",
    ]
    return "\n".join(line for line in lines if line)


def validate_plan(payload: Any, source: str) -> StylePlan:
    try:
        return StylePlan.model_validate(payload)
    except ValidationError as exc:
        logger.error("style_plan_validation_failed source=%s errors=%s", source, exc.errors(include_url=False))
        raise PlanningFailed(f"{source} response did not match the expected schema.") from exc


def _reply_content(data: Any) -> str | None:
    choices = data.get("choices") if isinstance(data, dict) else None
    first = choices[0] if isinstance(choices, list) and choices else None
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else None


class Planner:
    def plan(self, form: GenerationForm, profile: StyleProfile, options: PlanOptions | None = None) -> StylePlan:
        raise NotImplementedError


class OpenAIPlanner(Planner):
    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.model = model or settings.openai_model

    def plan(self, form: GenerationForm, profile: StyleProfile, options: PlanOptions | None = None) -> StylePlan:
        if not self.api_key:
            raise PlanningFailed("OPENAI_API_KEY is not set. Cannot generate outfits without it.")

        temperature = settings.openai_temperature
        if options is not None and options.temperature is not None:
            temperature = options.temperature

        body = {
            "model": self.model,
            "temperature": temperature,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_prompt(form, profile)},
                        {
                            "type": "image_url",
                            "image_url": {"url": profile.profile_image_url or settings.style_fallback_image_url},
                        },
                    ],
                },
            ],
        }
        try:
            resp = requests.post(
                settings.openai_chat_url,
                headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
                json=body,
                timeout=settings.openai_timeout_sec,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise PlanningFailed(f"OpenAI request failed: {exc}") from exc

        content = _reply_content(data)
        if not content:
            raise PlanningFailed("OpenAI returned an empty response.")

        try:
            parsed = json.loads(content)
        except ValueError as exc:
            logger.error("style_plan_not_json content=%s", content[:500])
            raise PlanningFailed("OpenAI response was not valid JSON.") from exc

        return validate_plan(parsed, "OpenAI")


class LocalModelPlanner(Planner):
    """Posts ``{form, profile}`` to a self-hosted style model."""

    def __init__(self, url: str) -> None:
        self.url = url

    def plan(self, form: GenerationForm, profile: StyleProfile, options: PlanOptions | None = None) -> StylePlan:
        try:
            resp = requests.post(
                self.url,
                json={"form": form.model_dump(), "profile": profile.model_dump(exclude_none=True)},
                timeout=settings.style_model_timeout_sec,
            )
        except requests.RequestException as exc:
            raise PlanningFailed(f"Local style model unreachable: {exc}") from exc

        if resp.status_code >= 400:
            raise PlanningFailed(f"Local style model error ({resp.status_code}): {resp.text[:300]}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise PlanningFailed("Local style model returned invalid JSON.") from exc

        if isinstance(payload, dict) and payload.get("data") is not None:
            payload = payload["data"]
        return validate_plan(payload, "Local style model")


_planner: Planner | None = None


def get_planner() -> Planner:
    global _planner
    if _planner is not None:
        return _planner

    if settings.style_model_url:
        _planner = LocalModelPlanner(settings.style_model_url)
    else:
        _planner = OpenAIPlanner()
    return _planner
