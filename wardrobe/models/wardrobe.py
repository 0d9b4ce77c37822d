"""
wardrobe/models/wardrobe.py

Wardrobe item and outfit suggestion shapes exchanged with the labeler and the
recommender.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ItemAnalysis(BaseModel):
    """
    Classification of a single clothing photo.

    Category values:
    - Top, Bottom, Shoes, Dress, Unknown
    """
    model_config = ConfigDict(frozen=True)

    category: str
    sub_category: Optional[str] = None
    vibe: str = "Unknown"
    season: str = "Seasonless"
    dominant_color: str = "Unknown"
    labels: List[str] = Field(default_factory=list)


class WardrobeItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    category: str
    sub_category: Optional[str] = None
    vibe: Optional[str] = None
    season: str
    dominant_color: str
    image_url: str


class StylePreferences(BaseModel):
    color: Optional[str] = None
    occasion: Optional[str] = None


class OutfitSuggestion(BaseModel):
    outfit_id: str
    # Keys are Top / Bottom / Shoes, values are wardrobe item ids
    outfit_pieces: Dict[str, str]
    match: int = Field(ge=0, le=100)


class OutfitResponse(BaseModel):
    outfits: List[OutfitSuggestion]
