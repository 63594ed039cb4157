# voicepanel/services/aggregation.py
"""
Aggregation of variant responses into summary, segments, themes and the
benchmark score.

Everything except extract_themes is a pure function of its inputs, so the
same code serves the stored aggregate of a completed run and the live view of
a run that is still collecting responses.
"""
from __future__ import annotations

import logging
import random
from collections import Counter
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from voicepanel.core.config import settings
from voicepanel.core.rounding import clamp, round_half_up

logger = logging.getLogger(__name__)

Summarizer = Callable[[str, List[Dict[str, Any]]], Awaitable[Dict[str, Any]]]

SENTIMENT_BUCKETS = ("positive", "neutral", "negative")

# Tag vocabulary buckets for the local theme path
POSITIVE_KEYWORDS = (
    "excited", "love", "great", "amazing", "interested", "intrigued", "impressed",
    "engaging", "innovative", "creative", "appealing", "fun", "cool", "authentic",
    "relatable", "inspired", "would_share", "fresh", "amused",
)
CONCERN_KEYWORDS = (
    "skeptical", "confused", "concerned", "unclear", "expensive", "doubt", "suspicious",
    "boring", "bored", "generic", "annoying", "annoyed", "intrusive", "privacy", "trust",
    "overwhelmed", "forced", "ignore", "seen_before", "needs_more_info",
)

LOCAL_THEME_LIMITS = {"positive_themes": 8, "concerns": 8, "unexpected": 5}
QUOTE_CHAR_LIMIT = 300
MAX_QUOTES = 5


@dataclass(frozen=True)
class ScoredResponse:
    """The fields of a response (and its variant) that aggregation reads."""
    response_text: str
    sentiment_score: int
    engagement_likelihood: int
    share_likelihood: int
    comprehension_score: int
    reaction_tags: Tuple[str, ...] = ()
    age: Optional[int] = None
    platform: Optional[str] = None
    attitude_score: Optional[int] = None

    @classmethod
    def from_row(cls, response: Any, variant: Any = None) -> "ScoredResponse":
        variant = variant if variant is not None else getattr(response, "variant", None)
        return cls(
            response_text=response.response_text or "",
            sentiment_score=response.sentiment_score,
            engagement_likelihood=response.engagement_likelihood,
            share_likelihood=response.share_likelihood,
            comprehension_score=response.comprehension_score,
            reaction_tags=tuple(response.reaction_tags or ()),
            age=getattr(variant, "age_actual", None),
            platform=getattr(variant, "primary_platform", None),
            attitude_score=getattr(variant, "attitude_score", None),
        )


# ---------- Buckets ----------

def sentiment_bucket(score: int) -> str:
    if score >= 7:
        return "positive"
    if score >= 4:
        return "neutral"
    return "negative"


def age_band(age: Optional[int]) -> str:
    if age is not None and age < 25:
        return "18-24"
    if age is not None and age < 35:
        return "25-34"
    return "35+"


def attitude_tier(attitude_score: Optional[int]) -> str:
    score = attitude_score if attitude_score is not None else 5
    if score >= 7:
        return "enthusiasts"
    if score <= 3:
        return "skeptics"
    return "neutral"


def _average(total: float, count: int) -> float:
    if count == 0:
        return 0.0
    return round_half_up(total / count, 1)


# ---------- Summary ----------

def summarize(responses: Sequence[ScoredResponse]) -> Dict[str, Any]:
    sentiment = {bucket: 0 for bucket in SENTIMENT_BUCKETS}
    engagement = share = comprehension = 0
    for r in responses:
        sentiment[sentiment_bucket(r.sentiment_score)] += 1
        engagement += r.engagement_likelihood
        share += r.share_likelihood
        comprehension += r.comprehension_score

    count = len(responses)
    return {
        "total_responses": count,
        "sentiment": sentiment,
        "avg_engagement": _average(engagement, count),
        "avg_share_likelihood": _average(share, count),
        "avg_comprehension": _average(comprehension, count),
    }


def segment(responses: Sequence[ScoredResponse]) -> Dict[str, Dict[str, Dict[str, Any]]]:
    """by_age / by_platform / by_attitude, each bucket with count and two averages."""
    partitions: Dict[str, Dict[str, Dict[str, Any]]] = {"by_age": {}, "by_platform": {}, "by_attitude": {}}

    for r in responses:
        keys = {
            "by_age": age_band(r.age),
            "by_platform": r.platform or "Other",
            "by_attitude": attitude_tier(r.attitude_score),
        }
        for partition, key in keys.items():
            bucket = partitions[partition].setdefault(key, {"count": 0, "sentiment_sum": 0, "engagement_sum": 0})
            bucket["count"] += 1
            bucket["sentiment_sum"] += r.sentiment_score
            bucket["engagement_sum"] += r.engagement_likelihood

    return {
        partition: {
            key: {
                "count": bucket["count"],
                "avg_sentiment": _average(bucket["sentiment_sum"], bucket["count"]),
                "avg_engagement": _average(bucket["engagement_sum"], bucket["count"]),
            }
            for key, bucket in buckets.items()
        }
        for partition, buckets in partitions.items()
    }


# ---------- Benchmark score ----------

def benchmark_score(summary: Dict[str, Any]) -> int:
    """
    Composite 0-100 score computed from a summary dict alone.

    sentiment = (10*positive + 5*neutral + 1*negative) / total
    base      = 0.30*sentiment + 0.30*engagement + 0.25*share + 0.15*comprehension
    score     = base * 10 * (1 + 0.10*positive_ratio - 0.15*negative_ratio)
    """
    sentiment = summary.get("sentiment") or {}
    positive = sentiment.get("positive", 0)
    neutral = sentiment.get("neutral", 0)
    negative = sentiment.get("negative", 0)
    total = positive + neutral + negative
    if total == 0:
        return 0

    sentiment_score = (positive * 10 + neutral * 5 + negative * 1) / total
    base = (
        sentiment_score * 0.30
        + summary.get("avg_engagement", 0) * 0.30
        + summary.get("avg_share_likelihood", 0) * 0.25
        + summary.get("avg_comprehension", 0) * 0.15
    )
    modifier = 1 + (positive / total) * 0.10 - (negative / total) * 0.15
    return int(clamp(round_half_up(base * 10 * modifier), 0, 100))


def benchmark_label(score: int) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 65:
        return "Strong"
    if score >= 50:
        return "Promising"
    if score >= 35:
        return "Needs Work"
    return "Weak"


# ---------- Sampling ----------

def stratified_sample(
    responses: Sequence[ScoredResponse],
    threshold: int,
    rng: Optional[random.Random] = None,
) -> List[ScoredResponse]:
    """
    Sample at most `threshold` responses, balanced across sentiment buckets.

    Each bucket contributes up to threshold // 3 + 2; buckets are interleaved
    so every non-empty bucket survives the cap, and any room left by small
    buckets is filled from the unsampled remainder.
    """
    if len(responses) <= threshold:
        return list(responses)

    rng = rng or random.Random()
    per_bucket = threshold // 3 + 2

    buckets: Dict[str, List[ScoredResponse]] = {bucket: [] for bucket in SENTIMENT_BUCKETS}
    for r in responses:
        buckets[sentiment_bucket(r.sentiment_score)].append(r)

    picked: List[List[ScoredResponse]] = []
    leftovers: List[ScoredResponse] = []
    for bucket in SENTIMENT_BUCKETS:
        members = buckets[bucket]
        chosen = rng.sample(members, min(per_bucket, len(members)))
        chosen_ids = {id(r) for r in chosen}
        picked.append(chosen)
        leftovers.extend(r for r in members if id(r) not in chosen_ids)

    sample: List[ScoredResponse] = []
    for i in range(max((len(p) for p in picked), default=0)):
        for chosen in picked:
            if i < len(chosen):
                sample.append(chosen[i])

    sample = sample[:threshold]
    if len(sample) < threshold and leftovers:
        rng.shuffle(leftovers)
        sample.extend(leftovers[:threshold - len(sample)])
    return sample


# ---------- Themes ----------

def empty_themes(source: str) -> Dict[str, Any]:
    return {"positive_themes": [], "concerns": [], "unexpected": [], "key_quotes": [], "source": source}


def _matches(tag: str, keywords: Iterable[str]) -> bool:
    lowered = tag.lower()
    return any(keyword in lowered for keyword in keywords)


def representative_quotes(responses: Sequence[ScoredResponse]) -> List[str]:
    """Highest, median and lowest sentiment response texts."""
    ordered = sorted(responses, key=lambda r: r.sentiment_score, reverse=True)
    if not ordered:
        return []
    quotes: List[str] = []
    for r in (ordered[0], ordered[len(ordered) // 2], ordered[-1]):
        text = r.response_text[:QUOTE_CHAR_LIMIT].strip()
        if text and text not in quotes:
            quotes.append(text)
    return quotes


def local_themes(responses: Sequence[ScoredResponse]) -> Dict[str, Any]:
    """Themes from reaction-tag frequencies; needs no external call."""
    counts = Counter(tag for r in responses for tag in r.reaction_tags)
    ranked = [
        {"theme": tag, "frequency": count}
        for tag, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    ]

    positive = [t for t in ranked if _matches(t["theme"], POSITIVE_KEYWORDS)]
    concerns = [t for t in ranked if not _matches(t["theme"], POSITIVE_KEYWORDS) and _matches(t["theme"], CONCERN_KEYWORDS)]
    unexpected = [t for t in ranked if t not in positive and t not in concerns]

    themes = empty_themes("tags")
    themes["positive_themes"] = positive[:LOCAL_THEME_LIMITS["positive_themes"]]
    themes["concerns"] = concerns[:LOCAL_THEME_LIMITS["concerns"]]
    themes["unexpected"] = unexpected[:LOCAL_THEME_LIMITS["unexpected"]]
    themes["key_quotes"] = representative_quotes(responses)
    return themes


def _clean_theme_items(raw: Any) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    if not isinstance(raw, list):
        return items
    for entry in raw:
        if not isinstance(entry, dict) or not isinstance(entry.get("theme"), str):
            continue
        try:
            frequency = int(entry.get("frequency", 0))
        except (TypeError, ValueError):
            frequency = 0
        items.append({"theme": entry["theme"].strip(), "frequency": max(0, frequency)})
    return sorted(items, key=lambda item: -item["frequency"])


def parse_theme_analysis(parsed: Dict[str, Any]) -> Dict[str, Any]:
    themes = empty_themes("llm")
    themes["positive_themes"] = _clean_theme_items(parsed.get("positive_themes"))
    themes["concerns"] = _clean_theme_items(parsed.get("concerns"))
    themes["unexpected"] = _clean_theme_items(parsed.get("unexpected"))
    quotes = parsed.get("key_quotes")
    if isinstance(quotes, list):
        themes["key_quotes"] = [q.strip() for q in quotes if isinstance(q, str) and q.strip()][:MAX_QUOTES]
    return themes


def theme_payload(response: ScoredResponse, text_limit: int) -> Dict[str, Any]:
    """Anonymised view of one response for the summarizer."""
    return {
        "age": response.age,
        "platform": response.platform,
        "attitude": response.attitude_score,
        "response": response.response_text[:text_limit],
        "sentiment": response.sentiment_score,
        "tags": list(response.reaction_tags),
    }


async def extract_themes(
    responses: Sequence[ScoredResponse],
    concept_text: str,
    summarizer: Optional[Summarizer] = None,
    *,
    mode: Optional[str] = None,
    threshold: Optional[int] = None,
    text_limit: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """
    Best-effort theme extraction.

    Uses the local tag path when mode is "local" or no summarizer is given.
    A failing or unparsable summarizer call yields empty theme lists with
    source "unavailable"; it never raises.
    """
    mode = mode or settings.THEME_EXTRACTION_MODE
    threshold = threshold or settings.THEME_SAMPLE_THRESHOLD
    text_limit = text_limit or settings.THEME_TEXT_LIMIT

    if not responses:
        return empty_themes("none")
    if mode == "local" or summarizer is None:
        return local_themes(responses)

    sample = stratified_sample(responses, threshold, rng)
    try:
        parsed = await summarizer(concept_text or "", [theme_payload(r, text_limit) for r in sample])
        themes = parse_theme_analysis(parsed)
    except Exception as e:
        logger.warning(f"Theme summarizer failed, storing empty themes: {e}")
        themes = empty_themes("unavailable")
        themes["error"] = str(e)
    themes["sampled_responses"] = len(sample)
    return themes


async def build_aggregate(
    responses: Sequence[ScoredResponse],
    concept_text: str,
    summarizer: Optional[Summarizer] = None,
    **theme_options: Any,
) -> Dict[str, Any]:
    return {
        "summary": summarize(responses),
        "segments": segment(responses),
        "themes": await extract_themes(responses, concept_text, summarizer, **theme_options),
    }
