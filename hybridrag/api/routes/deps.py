"""Shared route dependencies and error mapping."""

from fastapi import HTTPException, Request, status

from hybridrag.core.errors import to_user_error
from hybridrag.core.exceptions import CircuitOpenError, ValidationError
from hybridrag.pipeline.service import RAGService


def get_service(request: Request) -> RAGService:
    """The service bound to the app by create_app()."""
    return request.app.state.service


def to_http_exception(error: Exception, service: RAGService, context: str) -> HTTPException:
    """
    Map a pipeline exception to an HTTP error with a user-facing message.

    ValidationError is 400, CircuitOpenError is 503 with Retry-After,
    everything else is 500.
    """
    info = to_user_error(error, context=context, language=service.config.synthesis.language)
    detail = {"message": info.user_message, "error_type": info.error_type.value}

    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    if isinstance(error, CircuitOpenError):
        headers = None
        if info.retry_after_seconds is not None:
            detail["retry_after_seconds"] = round(info.retry_after_seconds, 1)
            headers = {"Retry-After": str(max(1, int(info.retry_after_seconds + 0.999)))}
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail, headers=headers
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
