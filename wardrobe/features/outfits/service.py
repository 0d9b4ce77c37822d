"""
Outfit generation over the user's analyzed wardrobe, gated by the
outfit-generation quota.
"""
from datetime import datetime
from typing import List, Optional
import logging

from wardrobe.core.errors import ValidationError
from wardrobe.features.items.service import ItemService, to_wardrobe_item
from wardrobe.features.outfits.recommender import Recommender
from wardrobe.features.quota.service import QuotaService
from wardrobe.models.wardrobe import OutfitResponse, StylePreferences


logger = logging.getLogger("wardrobe.outfits")


class OutfitService:
    def __init__(self, quota: QuotaService, items: ItemService, recommender: Recommender):
        self.quota = quota
        self.items = items
        self.recommender = recommender

    def generate_outfits(
        self,
        user_id: str,
        preferences: Optional[StylePreferences] = None,
        item_ids: Optional[List[str]] = None,
        now: Optional[datetime] = None,
    ) -> OutfitResponse:
        """
        Raises:
            ValidationError: no analyzed items to build outfits from
            QuotaExceededError: inactive paid subscription or weekly limit reached
            UpstreamServiceError: recommender failed (no quota charged)
        """
        stored = self.items.list_items(user_id)
        if item_ids:
            wanted = set(item_ids)
            stored = [item for item in stored if item["item_id"] in wanted]
        wardrobe = [w for w in (to_wardrobe_item(item) for item in stored) if w is not None]
        if not wardrobe:
            raise ValidationError("Valid wardrobe items are required")

        with self.quota.check_and_consume_outfit_generation_quota(user_id, now):
            response = self.recommender.suggest(wardrobe, preferences or StylePreferences())

        logger.info(
            "[outfits] generated",
            extra={"user_id": user_id, "items": len(wardrobe), "outfits": len(response.outfits)},
        )
        return response
