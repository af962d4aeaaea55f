"""Keyword-based niche classification for trend content."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple, Union


GENERAL_NICHE = "general"

NICHE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "fitness": ("workout", "gym", "fitness", "exercise", "health", "training"),
    "beauty": ("makeup", "skincare", "beauty", "cosmetics", "hair", "style"),
    "food": ("recipe", "cooking", "food", "kitchen", "chef", "meal"),
    "travel": ("travel", "vacation", "trip", "destination", "adventure"),
    "tech": ("technology", "tech", "gadget", "app", "software", "ai"),
    "lifestyle": ("lifestyle", "daily", "routine", "life", "vlog"),
    "entertainment": ("funny", "comedy", "entertainment", "meme", "viral"),
    "education": ("learn", "tutorial", "education", "how to", "tips", "guide"),
}

POPULAR_NICHES: Tuple[str, ...] = tuple(NICHE_KEYWORDS.keys())

HASHTAG_PATTERN = re.compile(r"#(\w+)")


class NicheClassifier(Protocol):
    """Anything that maps free text to a non-empty set of niche tags."""

    def classify(self, text: str) -> Set[str]:
        ...


class KeywordNicheClassifier:
    """Substring keyword matcher; several niches may match the same text."""

    def __init__(self, keywords: Optional[Dict[str, Sequence[str]]] = None) -> None:
        table = keywords if keywords is not None else NICHE_KEYWORDS
        self.keywords: Dict[str, Tuple[str, ...]] = {
            niche: tuple(word.lower() for word in words) for niche, words in table.items()
        }

    def classify(self, text: str) -> Set[str]:
        lowered = str(text or "").lower()
        matched = {
            niche
            for niche, words in self.keywords.items()
            if any(word in lowered for word in words)
        }
        return matched or {GENERAL_NICHE}


def classify_item(classifier: NicheClassifier, title: Optional[str], description: Optional[str]) -> List[str]:
    """Classify title + description and return niches in table order."""
    niches = classifier.classify(f"{title or ''} {description or ''}")
    ordered = [niche for niche in POPULAR_NICHES if niche in niches]
    ordered.extend(sorted(niche for niche in niches if niche not in POPULAR_NICHES))
    return ordered or [GENERAL_NICHE]


def matches_niche(niches: Iterable[str], niche_filter: Union[None, str, Sequence[str]]) -> bool:
    """True when any niche contains any requested filter (case-insensitive)."""
    if not niche_filter:
        return True
    filters = [niche_filter] if isinstance(niche_filter, str) else list(niche_filter)
    lowered_filters = [str(value).strip().lower() for value in filters if str(value).strip()]
    if not lowered_filters:
        return True
    return any(
        wanted in str(niche).lower()
        for niche in niches or []
        for wanted in lowered_filters
    )


def extract_hashtags(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return HASHTAG_PATTERN.findall(text)
