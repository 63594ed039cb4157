"""
Turns the raw text of a variant generation call into canonical variant records.

The generator is asked for a JSON array but replies in several shapes: a bare
list, a list under "variants" or "data", a list under some other key, or JSON
wrapped in a markdown code fence. The accepted shapes are listed in
VARIANT_LIST_SHAPES and tried in order.
"""
import json
import logging
import math
import re
from typing import Any, Callable, List, Optional, Tuple

from voicepanel.core.errors import VariantGenerationError
from voicepanel.core.rounding import clamp, round_half_up
from voicepanel.models.persona_model import ENGAGEMENT_LEVELS
from voicepanel.schemas.persona_schema import VariantCandidate

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\n?(.*?)```", re.DOTALL)

MIN_AGE = 13
MAX_AGE = 100
DEFAULT_ATTITUDE = 5
DEFAULT_ENGAGEMENT = "moderate"


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text minus stray fence markers."""
    cleaned = (text or "").strip()
    match = _FENCED_BLOCK.search(cleaned)
    if match:
        return match.group(1).strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def _bare_list(parsed: Any) -> Optional[List[Any]]:
    return parsed if isinstance(parsed, list) else None


def _under_key(key: str) -> Callable[[Any], Optional[List[Any]]]:
    def pick(parsed: Any) -> Optional[List[Any]]:
        if isinstance(parsed, dict) and isinstance(parsed.get(key), list):
            return parsed[key]
        return None
    return pick


def _first_list_value(parsed: Any) -> Optional[List[Any]]:
    if isinstance(parsed, dict):
        for value in parsed.values():
            if isinstance(value, list):
                return value
    return None


# Ordered decision table: first shape that yields a list wins.
VARIANT_LIST_SHAPES: Tuple[Tuple[str, Callable[[Any], Optional[List[Any]]]], ...] = (
    ("bare_list", _bare_list),
    ("variants_key", _under_key("variants")),
    ("data_key", _under_key("data")),
    ("first_list_value", _first_list_value),
)


def parse_generation_payload(raw_text: str) -> Any:
    body = strip_code_fences(raw_text)
    try:
        return json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise VariantGenerationError(
            "unparsable",
            f"Variant generator returned unparsable JSON: {e}",
            {"response_preview": (raw_text or "")[:500]},
        )


def extract_variant_list(raw_text: str) -> List[Any]:
    """
    Locate the list of variant objects in a generator reply.

    Raises VariantGenerationError(kind="unparsable") when the reply is not JSON.
    A reply that parses but contains no list yields an empty list.
    """
    parsed = parse_generation_payload(raw_text)
    for shape, pick in VARIANT_LIST_SHAPES:
        found = pick(parsed)
        if found is not None:
            logger.debug(f"Variant list found via shape '{shape}' ({len(found)} items)")
            return found
    keys = list(parsed.keys()) if isinstance(parsed, dict) else []
    logger.warning(f"No list found in variant generator reply; top-level keys: {keys}")
    return []


def _coerce_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return int(round_half_up(value))
    return None


def _clean_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_variant(item: Any) -> Optional[VariantCandidate]:
    """Coerce one raw element; None when a required field is missing."""
    if not isinstance(item, dict):
        return None

    name = _clean_str(item.get("variant_name") or item.get("name"))
    age = _coerce_int(item.get("age_actual", item.get("age")))
    platform = _clean_str(item.get("primary_platform") or item.get("platform"))
    if not name or age is None or not platform:
        return None

    attitude = _coerce_int(item.get("attitude_score"))
    engagement = _clean_str(item.get("engagement_level")).lower()

    return VariantCandidate(
        variant_name=name,
        age_actual=clamp(age, MIN_AGE, MAX_AGE),
        location_variant=_clean_str(item.get("location_variant")) or None,
        attitude_score=clamp(attitude if attitude is not None else DEFAULT_ATTITUDE, 1, 10),
        primary_platform=platform,
        engagement_level=engagement if engagement in ENGAGEMENT_LEVELS else DEFAULT_ENGAGEMENT,
        distinguishing_trait=_clean_str(item.get("distinguishing_trait")),
        voice_modifier=_clean_str(item.get("voice_modifier")),
    )


def normalize_variants(items: List[Any], count: int) -> List[VariantCandidate]:
    """Validated candidates, at most `count`, never padded."""
    candidates: List[VariantCandidate] = []
    dropped = 0
    for item in items:
        candidate = normalize_variant(item)
        if candidate is None:
            dropped += 1
            continue
        candidates.append(candidate)
        if len(candidates) >= count:
            break
    if dropped:
        logger.warning(f"Dropped {dropped} variant(s) missing name/age/platform")
    return candidates
