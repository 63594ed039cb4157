"""
Domain exceptions for the panel engine.

Routes translate these into HTTP errors; the run orchestrator maps them onto
the failure_kind stored on a failed run.
"""
from typing import Any, Dict, Optional


class VoicePanelError(Exception):
    """Base class for all engine errors."""


class NotFoundError(VoicePanelError):
    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidRunStateError(VoicePanelError):
    """Raised when a run is asked to do something its status does not allow."""

    def __init__(self, run_id: Any, status: str, message: Optional[str] = None):
        self.run_id = run_id
        self.status = status
        super().__init__(message or f"Run {run_id} is {status}")


class GenerationUnavailableError(VoicePanelError):
    """No generative client is configured (missing API key or SDK)."""


class VariantGenerationError(VoicePanelError):
    """
    Structured failure of a variant generation batch.

    kind is one of:
        unavailable     - no client / API key configured
        provider_error  - the provider call itself failed
        unparsable      - the reply could not be parsed as JSON
        empty           - the reply parsed but held no usable variants
    """

    def __init__(self, kind: str, message: str, diagnostics: Optional[Dict[str, Any]] = None):
        self.kind = kind
        self.message = message
        self.diagnostics = diagnostics or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "error": self.message, "debug": self.diagnostics}
