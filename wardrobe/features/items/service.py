"""
Wardrobe items: registration, quota-gated analysis and listing.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
import uuid

from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from wardrobe.core.database import get_db_session, wardrobe_items
from wardrobe.core.errors import NotFoundError, StorageUnavailableError
from wardrobe.features.items.labeler import Labeler
from wardrobe.features.quota.service import QuotaService
from wardrobe.models.wardrobe import ItemAnalysis, WardrobeItem


logger = logging.getLogger("wardrobe.items")


def _row_to_dict(row) -> Dict[str, Any]:
    data = dict(row._mapping)
    for key in ("created_at", "updated_at"):
        if data.get(key) is not None:
            data[key] = data[key].isoformat()
    return data


def to_wardrobe_item(item: Dict[str, Any]) -> Optional[WardrobeItem]:
    """Recommender view of a stored item; None until it has been analyzed."""
    analysis = item.get("analysis")
    if item.get("status") != "complete" or not analysis:
        return None
    return WardrobeItem(
        id=item["item_id"],
        category=analysis.get("category", "Unknown"),
        sub_category=analysis.get("sub_category"),
        vibe=analysis.get("vibe"),
        season=analysis.get("season", "Seasonless"),
        dominant_color=analysis.get("dominant_color", "Unknown"),
        image_url=item["image_url"],
    )


class ItemService:
    def __init__(self, quota: QuotaService, labeler: Labeler):
        self.quota = quota
        self.labeler = labeler

    def register_item(self, user_id: str, image_url: str) -> Dict[str, Any]:
        item_id = str(uuid.uuid4())
        try:
            with get_db_session() as session:
                session.execute(
                    insert(wardrobe_items).values(
                        item_id=item_id,
                        user_id=user_id,
                        image_url=image_url,
                        status="pending",
                    )
                )
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Item write failed: {e.__class__.__name__}") from e
        return self.get_item(user_id, item_id)

    def get_item(self, user_id: str, item_id: str) -> Dict[str, Any]:
        try:
            with get_db_session() as session:
                row = session.execute(
                    select(wardrobe_items)
                    .where(wardrobe_items.c.item_id == item_id)
                    .where(wardrobe_items.c.user_id == user_id)
                ).fetchone()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Item read failed: {e.__class__.__name__}") from e
        if not row:
            raise NotFoundError(f"Item {item_id} not found")
        return _row_to_dict(row)

    def list_items(self, user_id: str) -> List[Dict[str, Any]]:
        try:
            with get_db_session() as session:
                rows = session.execute(
                    select(wardrobe_items)
                    .where(wardrobe_items.c.user_id == user_id)
                    .order_by(wardrobe_items.c.created_at, wardrobe_items.c.item_id)
                ).fetchall()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Item read failed: {e.__class__.__name__}") from e
        return [_row_to_dict(row) for row in rows]

    def analyze_item(self, user_id: str, item_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Classify a registered item, charging one image upload on success.

        Raises:
            NotFoundError: item does not belong to the user
            QuotaExceededError: inactive paid subscription or weekly limit reached
            UpstreamServiceError: labeler failed (no quota charged)
        """
        item = self.get_item(user_id, item_id)

        with self.quota.check_and_consume_image_upload_quota(user_id, now):
            analysis: ItemAnalysis = self.labeler.classify(item["image_url"])
            try:
                with get_db_session() as session:
                    session.execute(
                        update(wardrobe_items)
                        .where(wardrobe_items.c.item_id == item_id)
                        .values(analysis=analysis.model_dump(), status="complete")
                    )
            except SQLAlchemyError as e:
                raise StorageUnavailableError(f"Item write failed: {e.__class__.__name__}") from e

        logger.info(
            "[items] analyzed",
            extra={"user_id": user_id, "item_id": item_id, "category": analysis.category},
        )
        return {"item_id": item_id, "status": "complete", **analysis.model_dump()}
