from fastapi import HTTPException, status

from voicepanel.core.errors import (
    VoicePanelError, NotFoundError, InvalidRunStateError, VariantGenerationError, GenerationUnavailableError,
)

_GENERATION_STATUS = {
    "unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    "provider_error": status.HTTP_502_BAD_GATEWAY,
    "unparsable": status.HTTP_502_BAD_GATEWAY,
    "empty": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def to_http_exception(err: VoicePanelError) -> HTTPException:
    """Map a domain error onto the HTTP error the routes return"""
    if isinstance(err, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(err))
    if isinstance(err, InvalidRunStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(err))
    if isinstance(err, VariantGenerationError):
        return HTTPException(
            status_code=_GENERATION_STATUS.get(err.kind, status.HTTP_502_BAD_GATEWAY),
            detail=err.to_dict(),
        )
    if isinstance(err, GenerationUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(err))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(err))
