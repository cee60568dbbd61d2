"""
Fixed category set for articles, and the default Wikipedia topic list.

Every record carries exactly one of these categories. Sources that supply a
label we do not recognise fall back to a per-source default.
"""

from enum import Enum
from typing import Optional


class ArticleCategory(str, Enum):
    """Display categories shown as filter chips in the app."""
    GEMSTONES = "Gemstones"
    JEWELRY_HISTORY = "Jewelry History"
    MATERIALS = "Materials"
    TECHNIQUES = "Techniques"
    STYLES = "Styles"
    CARE = "Care"


DEFAULT_CATEGORY = ArticleCategory.GEMSTONES

# Wikipedia page titles fetched as the encyclopedic baseline
DEFAULT_WIKIPEDIA_TOPICS: list[str] = [
    "Diamond",
    "Ruby",
    "Sapphire",
    "Emerald",
    "Pearl",
    "History_of_jewelry",
    "Gold",
    "Sterling_silver",
    "Lost-wax_casting",
    "Art_Deco",
]

DEFAULT_CATEGORY_MAPPING: dict[str, str] = {
    "Diamond": ArticleCategory.GEMSTONES.value,
    "Ruby": ArticleCategory.GEMSTONES.value,
    "Sapphire": ArticleCategory.GEMSTONES.value,
    "Emerald": ArticleCategory.GEMSTONES.value,
    "Pearl": ArticleCategory.GEMSTONES.value,
    "History_of_jewelry": ArticleCategory.JEWELRY_HISTORY.value,
    "Gold": ArticleCategory.MATERIALS.value,
    "Sterling_silver": ArticleCategory.MATERIALS.value,
    "Lost-wax_casting": ArticleCategory.TECHNIQUES.value,
    "Art_Deco": ArticleCategory.STYLES.value,
}


def coerce_category(
    value: Optional[str],
    default: ArticleCategory = DEFAULT_CATEGORY,
) -> ArticleCategory:
    """
    Map a free-form label onto the fixed category set.

    Matching is case-insensitive on the enum value or member name; anything
    else yields `default`.
    """
    if isinstance(value, ArticleCategory):
        return value
    if not value:
        return default

    needle = value.strip().lower()
    for category in ArticleCategory:
        if needle in (category.value.lower(), category.name.lower()):
            return category
    return default


def category_for_topic(
    title: str,
    mapping: dict[str, str],
    default: ArticleCategory = DEFAULT_CATEGORY,
) -> ArticleCategory:
    """Look up a Wikipedia title in the mapping (underscored or spaced form)."""
    key = title.replace(" ", "_")
    return coerce_category(mapping.get(key) or mapping.get(title), default)
