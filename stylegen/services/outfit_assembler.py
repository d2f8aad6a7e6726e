from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy.orm import Session

from stylegen.models import Outfit, OutfitItem
from stylegen.schemas.style import PlannedItem, PlannedOutfit
from stylegen.services.catalog_store import StoredProduct

logger = logging.getLogger(__name__)


def _price_bound(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        return float(str(raw).strip())
    except ValueError:
        return None


class OutfitAssembler:
    def assemble(
        self,
        db: Session,
        user_id: str,
        generation_id: str,
        planned_outfit: PlannedOutfit,
        stored: Sequence[StoredProduct],
        matched_items: Sequence[PlannedItem] | None = None,
    ) -> Outfit:
        """
        Bind stored products back to the planned items that produced them.

        ``matched_items[i]`` is the planned item that sourced ``stored[i]``; when
        omitted every planned item is assumed to have matched.
        """
        planned = list(matched_items) if matched_items is not None else list(planned_outfit.items)
        if len(planned) < len(stored):
            raise ValueError("Every stored product needs the planned item it was sourced for")

        outfit = Outfit(
            user_id=user_id,
            generation_id=generation_id,
            name=planned_outfit.looks,
            description=planned_outfit.description,
            banner_image_url=stored[0].main_image_url if stored else None,
            is_public=False,
            items=[
                OutfitItem(
                    product_id=product.product_id,
                    position=idx,
                    plan_key=item.key,
                    search_query=item.query,
                    min_price=_price_bound(item.min),
                    max_price=_price_bound(item.max),
                )
                for idx, (product, item) in enumerate(zip(stored, planned))
            ],
        )
        db.add(outfit)
        db.flush()
        logger.info("outfit_assembled outfit_id=%s items=%d", outfit.id, len(outfit.items))
        return outfit
