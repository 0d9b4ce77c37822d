"""Outfit recommendation collaborator.

`GroqRecommender` asks a groq chat model for three ranked outfits built
from the user's wardrobe and validates the JSON it returns.
"""

from typing import List, Optional, Protocol
import json
import logging

import groq
from pydantic import ValidationError as PydanticValidationError

from wardrobe.core.errors import UpstreamServiceError
from wardrobe.models.wardrobe import OutfitResponse, StylePreferences, WardrobeItem


logger = logging.getLogger("wardrobe.recommender")

SYSTEM_PROMPT = "You are a helpful wardrobe assistant. Reply with JSON only."

OUTFIT_PIECES = ("Top", "Bottom", "Shoes")


class Recommender(Protocol):
    def suggest(self, wardrobe: List[WardrobeItem], preferences: StylePreferences) -> OutfitResponse:
        """Raises UpstreamServiceError when the provider fails or answers malformed JSON."""
        ...


def build_prompt(wardrobe: List[WardrobeItem], preferences: StylePreferences) -> str:
    lines = ["Generate outfits from the wardrobe items below based on the user's preferences.", ""]

    lines.append("User preferences:")
    if preferences.color:
        lines.append(f"- Color preference: {preferences.color}")
    if preferences.occasion:
        lines.append(f"- Occasion: {preferences.occasion}")
    if not (preferences.color or preferences.occasion):
        lines.append("- none")

    lines.append("")
    lines.append("Wardrobe items:")
    for item in wardrobe:
        parts = [f"Category: {item.category}"]
        if item.sub_category:
            parts.append(f"Subcategory: {item.sub_category}")
        if item.vibe:
            parts.append(f"Vibe: {item.vibe}")
        parts.append(f"Season: {item.season}")
        parts.append(f"Color: {item.dominant_color}")
        lines.append(f"- Item {item.id}: {{ {', '.join(parts)} }}")

    lines += [
        "",
        "Recommend the top 3 outfits. Each outfit must contain exactly one \"Top\", one \"Bottom\" and one \"Shoes\",",
        "referenced by item id. Rank them by match percentage against the color preference and occasion.",
        "Respond with this JSON shape only:",
        '{"outfits": [{"outfit_id": "Outfit 1", "outfit_pieces": {"Top": "<id>", "Bottom": "<id>", "Shoes": "<id>"}, "match": 100}]}',
    ]
    return "\n".join(lines)


def parse_outfits(content: Optional[str], wardrobe: List[WardrobeItem]) -> OutfitResponse:
    if not content:
        raise UpstreamServiceError("Recommender returned an empty response")
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.startswith("json"):
            text = text[4:]
    try:
        response = OutfitResponse.model_validate(json.loads(text))
    except (ValueError, PydanticValidationError) as e:
        raise UpstreamServiceError("Recommender returned malformed outfit JSON") from e

    known_ids = {item.id for item in wardrobe}
    for outfit in response.outfits:
        if set(outfit.outfit_pieces) != set(OUTFIT_PIECES):
            raise UpstreamServiceError(f"Outfit {outfit.outfit_id} does not have a top, bottom and shoes")
        unknown = set(outfit.outfit_pieces.values()) - known_ids
        if unknown:
            raise UpstreamServiceError(f"Outfit {outfit.outfit_id} references unknown items")
    response.outfits.sort(key=lambda o: o.match, reverse=True)
    return response


class GroqRecommender:
    def __init__(self, api_key: Optional[str], model: str, client: Optional[groq.Groq] = None):
        self.model = model
        self._client = client or (groq.Groq(api_key=api_key) if api_key else None)

    def suggest(self, wardrobe: List[WardrobeItem], preferences: StylePreferences) -> OutfitResponse:
        if self._client is None:
            raise UpstreamServiceError("Recommender is not configured")
        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(wardrobe, preferences)},
                ],
                response_format={"type": "json_object"},
                temperature=0.5,
                max_tokens=800,
            )
        except groq.GroqError as e:
            logger.warning("[recommender] groq call failed", extra={"error": str(e)})
            raise UpstreamServiceError(f"Outfit generation failed: {e.__class__.__name__}") from e

        choices = getattr(completion, "choices", None) or []
        content = choices[0].message.content if choices else None
        return parse_outfits(content, wardrobe)
