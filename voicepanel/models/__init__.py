from voicepanel.models.persona_model import Persona, PersonaVariant, ENGAGEMENT_LEVELS
from voicepanel.models.run_model import TestRun, VariantResponse, AggregateResult, RunStatus, FailureKind

__all__ = [
    "Persona",
    "PersonaVariant",
    "ENGAGEMENT_LEVELS",
    "TestRun",
    "VariantResponse",
    "AggregateResult",
    "RunStatus",
    "FailureKind",
]
