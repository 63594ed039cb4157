from __future__ import annotations

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status

from voicepanel.api.v1.errors import to_http_exception
from voicepanel.core.dependencies import get_record_store, get_respondent
from voicepanel.core.errors import VoicePanelError
from voicepanel.schemas.persona_schema import VariantConfig, VariantGenerationResult, PersonaVariantOut
from voicepanel.services import variant_service
from voicepanel.services.record_store import RecordStore
from voicepanel.synthetic.ai_respondent import AIRespondent

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{persona_id}/variants", response_model=VariantGenerationResult, status_code=status.HTTP_201_CREATED)
async def generate_variants_endpoint(
    persona_id: UUID,
    config: VariantConfig,
    store: RecordStore = Depends(get_record_store),
    respondent: AIRespondent = Depends(get_respondent),
):
    """
    Generate variants for a persona. Replaces every existing variant of the
    persona; a generation that yields nothing usable leaves them untouched.
    """
    try:
        variants = await variant_service.generate_persona_variants(store, respondent, persona_id, config)
    except VoicePanelError as e:
        raise to_http_exception(e)

    return VariantGenerationResult(
        persona_id=persona_id,
        variants_generated=len(variants),
        variants=[PersonaVariantOut.model_validate(v) for v in variants],
    )


@router.get("/{persona_id}/variants", response_model=List[PersonaVariantOut])
def list_variants_endpoint(
    persona_id: UUID,
    store: RecordStore = Depends(get_record_store),
):
    try:
        return variant_service.list_persona_variants(store, persona_id)
    except VoicePanelError as e:
        raise to_http_exception(e)
