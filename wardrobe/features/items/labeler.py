"""Clothing classification collaborator.

The labeler turns an image URL into an ItemAnalysis. `HttpLabeler` calls a
hosted classification API and folds its predictions into labels; the
category / vibe / season / color are then derived from those labels with
fixed keyword tables.
"""

from typing import Any, Dict, List, Optional, Protocol
import logging

import httpx

from wardrobe.core.errors import UpstreamServiceError
from wardrobe.models.wardrobe import ItemAnalysis


logger = logging.getLogger("wardrobe.labeler")

CATEGORY_KEYWORDS = {
    "shirt": "Top",
    "t-shirt": "Top",
    "top": "Top",
    "blouse": "Top",
    "sweater": "Top",
    "hoodie": "Top",
    "jacket": "Top",
    "coat": "Top",
    "suit": "Top",
    "pants": "Bottom",
    "jeans": "Bottom",
    "trousers": "Bottom",
    "shorts": "Bottom",
    "skirt": "Bottom",
    "shoes": "Shoes",
    "footwear": "Shoes",
    "sneakers": "Shoes",
    "boots": "Shoes",
    "dress": "Dress",
}

COLORS = [
    "red", "blue", "green", "yellow", "black",
    "white", "purple", "orange", "pink", "brown",
    "gray", "grey", "beige", "navy", "teal",
    "maroon", "olive", "gold", "silver", "tan",
]

SEASON_KEYWORDS = {
    "Winter": ["winter", "coat", "warm", "sweater", "wool"],
    "Summer": ["summer", "light", "thin", "shorts", "beach"],
    "Spring": ["spring", "light jacket", "rain", "windbreaker"],
    "Fall": ["fall", "autumn", "jacket", "light coat"],
}

SUB_CATEGORY_HINTS = ("shirt", "pants", "shoes")


def map_category(labels: List[str]) -> str:
    label_set = {label.lower() for label in labels}
    for keyword, category in CATEGORY_KEYWORDS.items():
        if keyword in label_set:
            return category
    return "Unknown"


def determine_vibe(labels: List[str]) -> str:
    label_set = {label.lower() for label in labels}
    if label_set & {"formal", "suit", "dress"}:
        return "Formal"
    if label_set & {"sports", "athletic", "gym"}:
        return "Sports"
    if "casual" in label_set:
        return "Casual"
    return "Unknown"


def determine_color(labels: List[str]) -> str:
    for label in labels:
        lowered = label.lower()
        for color in COLORS:
            if color in lowered:
                return color.capitalize()
    return "Unknown"


def determine_season(labels: List[str]) -> str:
    lowered = [label.lower() for label in labels]
    for season, keywords in SEASON_KEYWORDS.items():
        if any(keyword in label for keyword in keywords for label in lowered):
            return season
    return "Seasonless"


def analyze_labels(labels: List[str]) -> ItemAnalysis:
    sub_category = next(
        (label for label in labels if any(hint in label.lower() for hint in SUB_CATEGORY_HINTS)),
        None,
    )
    return ItemAnalysis(
        category=map_category(labels),
        sub_category=sub_category,
        vibe=determine_vibe(labels),
        season=determine_season(labels),
        dominant_color=determine_color(labels),
        labels=labels,
    )


class Labeler(Protocol):
    def classify(self, image_url: str) -> ItemAnalysis:
        """Raises UpstreamServiceError when the provider fails."""
        ...


def _prediction_labels(payload: Dict[str, Any]) -> List[str]:
    labels: List[str] = []
    for prediction in payload.get("predictions") or []:
        category = prediction.get("category") or {}
        for key in ("displayName", "name"):
            if category.get(key):
                labels.append(str(category[key]))
                break
        for trait in prediction.get("traits") or []:
            for taxon in trait.get("taxons") or []:
                name = taxon.get("displayName") or taxon.get("name")
                if name:
                    labels.append(str(name))
    return labels


class HttpLabeler:
    """Labeler backed by a hosted classification endpoint."""

    def __init__(self, api_url: str, api_key: Optional[str], model_name: str, client: Optional[httpx.Client] = None):
        self.api_url = api_url
        self.api_key = api_key
        self.model_name = model_name
        self._client = client or httpx.Client(timeout=None)

    def classify(self, image_url: str) -> ItemAnalysis:
        if not self.api_key:
            raise UpstreamServiceError("Labeler is not configured")
        try:
            response = self._client.post(
                self.api_url,
                data={"image_url": image_url, "model_name": self.model_name},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            logger.warning("[labeler] request failed", extra={"error": str(e)})
            raise UpstreamServiceError(f"Image classification failed: {e.__class__.__name__}") from e
        except ValueError as e:
            raise UpstreamServiceError("Image classification returned invalid JSON") from e

        if not isinstance(payload, dict) or "predictions" not in payload:
            raise UpstreamServiceError("Image classification returned an unexpected payload")

        labels = _prediction_labels(payload)
        if not labels:
            raise UpstreamServiceError("Image classification returned no predictions")
        return analyze_labels(labels)
