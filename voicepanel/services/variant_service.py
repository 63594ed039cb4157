# voicepanel/services/variant_service.py
import logging
from typing import Any, Dict, List
from uuid import UUID

from openai import OpenAIError

from voicepanel.core.errors import GenerationUnavailableError, NotFoundError, VariantGenerationError
from voicepanel.models.persona_model import Persona, PersonaVariant
from voicepanel.schemas.persona_schema import VariantConfig
from voicepanel.services.record_store import RecordStore
from voicepanel.synthetic.variant_normalizer import extract_variant_list, normalize_variants, parse_generation_payload

logger = logging.getLogger(__name__)


def _diagnostics(respondent: Any, persona: Persona, count: int, **extra: Any) -> Dict[str, Any]:
    info = {
        "model": getattr(respondent, "model", None),
        "api_key_set": bool(getattr(respondent, "api_key_set", False)),
        "persona_id": str(persona.id),
        "persona_name": persona.name,
        "requested_count": count,
    }
    info.update(extra)
    return info


def _top_level_keys(raw_text: str) -> List[str]:
    parsed = parse_generation_payload(raw_text)
    return [str(k) for k in parsed.keys()] if isinstance(parsed, dict) else []


async def generate_persona_variants(
    store: RecordStore,
    respondent: Any,
    persona_id: UUID,
    config: VariantConfig,
) -> List[PersonaVariant]:
    """
    Generate `config.count` variants for a persona and replace its existing ones.

    Fewer than requested may come back; the shortfall is not padded. Nothing
    is written unless at least one usable variant was produced.
    """
    persona = store.get_persona(persona_id)
    if not persona:
        raise NotFoundError("Persona", persona_id)

    if not getattr(respondent, "available", False):
        raise VariantGenerationError(
            "unavailable",
            "Variant generation is not configured (missing OpenAI API key)",
            _diagnostics(respondent, persona, config.count),
        )

    try:
        raw = await respondent.generate_variants_raw(persona, config.count, config)
    except (OpenAIError, GenerationUnavailableError) as e:
        logger.error(f"Variant generation failed for persona {persona_id}: {e}")
        raise VariantGenerationError(
            "provider_error",
            f"Variant generator call failed: {e}",
            _diagnostics(respondent, persona, config.count, error_type=type(e).__name__),
        ) from e

    try:
        items = extract_variant_list(raw)
    except VariantGenerationError as e:
        e.diagnostics = {**_diagnostics(respondent, persona, config.count), **e.diagnostics}
        raise

    candidates = normalize_variants(items, config.count)
    if not candidates:
        raise VariantGenerationError(
            "empty",
            "Variant generator returned no usable variants",
            _diagnostics(
                respondent, persona, config.count,
                raw_items=len(items),
                top_level_keys=_top_level_keys(raw),
                response_preview=(raw or "")[:500],
            ),
        )

    if len(candidates) < config.count:
        logger.warning(f"Persona {persona_id}: requested {config.count} variants, got {len(candidates)}")

    variants = store.replace_variants(persona_id, candidates)
    logger.info(f"Stored {len(variants)} variants for persona {persona_id}")
    return variants


def list_persona_variants(store: RecordStore, persona_id: UUID) -> List[PersonaVariant]:
    if not store.get_persona(persona_id):
        raise NotFoundError("Persona", persona_id)
    return store.list_variants(persona_id)
