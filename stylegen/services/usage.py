from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.orm import Session

from stylegen.core.config import settings
from stylegen.core.errors import QuotaExceeded
from stylegen.models import AiUsage

logger = logging.getLogger(__name__)


def current_period_start(today: date | None = None) -> date:
    today = today or date.today()
    return today.replace(day=1)


def _usage_row(db: Session, user_id: str, period_start: date) -> AiUsage:
    usage = (
        db.query(AiUsage)
        .filter(AiUsage.user_id == user_id, AiUsage.period_start == period_start)
        .first()
    )
    if usage is None:
        usage = AiUsage(user_id=user_id, period_start=period_start, outfit_generations_used=0)
        db.add(usage)
        db.flush()
    return usage


def ensure_quota_available(db: Session, user_id: str, today: date | None = None) -> int:
    """Raise QuotaExceeded when the user has no generations left this month; returns the remaining count."""
    usage = _usage_row(db, user_id, current_period_start(today))
    limit = settings.free_monthly_outfits
    db.commit()
    if usage.outfit_generations_used >= limit:
        logger.info("ai_quota_exhausted user_id=%s used=%d", user_id, usage.outfit_generations_used)
        raise QuotaExceeded(limit)
    return limit - usage.outfit_generations_used


def record_successful_generation(db: Session, user_id: str, today: date | None = None) -> None:
    usage = _usage_row(db, user_id, current_period_start(today))
    usage.outfit_generations_used = (usage.outfit_generations_used or 0) + 1
    db.commit()
