"""
Lenient parsing of a variant's reaction to a concept.

The reply is free narrative text, then SCORES_SEPARATOR, then a JSON score
block. A missing or broken score block never fails the variant: the neutral
defaults are used instead and scores_parsed is set to False.
"""
import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from voicepanel.core.rounding import clamp, round_half_up

logger = logging.getLogger(__name__)

SCORES_SEPARATOR = "---SCORES---"

REACTION_TAGS = (
    "excited", "intrigued", "confused", "skeptical", "amused", "bored",
    "annoyed", "inspired", "would_share", "would_ignore", "needs_more_info",
    "feels_authentic", "feels_forced", "seen_before", "fresh_take",
)

DEFAULT_SCORE = 5
DEFAULT_TAGS = ("needs_more_info",)
MAX_TAGS = 4

SCORE_FIELDS = (
    "sentiment_score",
    "engagement_likelihood",
    "share_likelihood",
    "comprehension_score",
)


@dataclass
class ConceptReaction:
    response_text: str
    sentiment_score: int = DEFAULT_SCORE
    engagement_likelihood: int = DEFAULT_SCORE
    share_likelihood: int = DEFAULT_SCORE
    comprehension_score: int = DEFAULT_SCORE
    reaction_tags: List[str] = field(default_factory=lambda: list(DEFAULT_TAGS))
    scores_parsed: bool = False


def _extract_json_object(block: str) -> Optional[Dict[str, Any]]:
    cleaned = block.strip().replace("```json", "").replace("```", "")
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def coerce_score(value: Any) -> int:
    """Any value to an int in [1, 10]; non-numeric values become the default."""
    if isinstance(value, bool) or value is None:
        return DEFAULT_SCORE
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return DEFAULT_SCORE
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return DEFAULT_SCORE
    return int(clamp(round_half_up(value), 1, 10))


def normalize_tags(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return list(DEFAULT_TAGS)
    tags: List[str] = []
    for item in raw:
        if not isinstance(item, str):
            continue
        tag = item.strip().lower().replace("-", "_").replace(" ", "_")
        if tag in REACTION_TAGS and tag not in tags:
            tags.append(tag)
        if len(tags) >= MAX_TAGS:
            break
    return tags or list(DEFAULT_TAGS)


def parse_reaction(content: Optional[str]) -> ConceptReaction:
    text, separator, tail = (content or "").partition(SCORES_SEPARATOR)
    reaction = ConceptReaction(response_text=text.strip())
    if not separator:
        logger.warning("Reaction reply has no score block; using neutral defaults")
        return reaction

    scores = _extract_json_object(tail)
    if scores is None:
        logger.warning("Failed to parse scores from reaction reply; using neutral defaults")
        return reaction

    for name in SCORE_FIELDS:
        setattr(reaction, name, coerce_score(scores.get(name)))
    reaction.reaction_tags = normalize_tags(scores.get("reaction_tags"))
    reaction.scores_parsed = True
    return reaction
