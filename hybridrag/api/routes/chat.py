"""
Chat API Router.

Endpoints:
- POST /v1/chat - Answer a question
- POST /v1/chat/stream - Answer a question as server-sent events
"""

from typing import Any, Dict, Iterator, List, Optional, Union

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, field_validator

from hybridrag.api.routes.deps import get_service, to_http_exception
from hybridrag.pipeline.service import MAX_QUESTION_CHARS, RAGService

router = APIRouter(prefix="/v1", tags=["chat"])

MAX_HISTORY_MESSAGES = 50
ROLE_LABELS = {"user": "User", "assistant": "Assistant", "ai": "Assistant", "system": "System"}

# =============================================================================
# MODELS
# =============================================================================


class Message(BaseModel):
    """One message of a prior conversation."""

    role: str = Field(..., pattern="^(user|assistant|ai|system)$")
    content: str = Field(..., min_length=1)


class ChatRequest(BaseModel):
    """Question plus optional conversation context."""

    question: str = Field(..., min_length=1, max_length=MAX_QUESTION_CHARS)
    chat_history: Union[str, List[Message]] = Field(
        default="", description="Transcript string or list of messages"
    )
    session_id: str = Field(default="default", min_length=1, max_length=128)
    namespace: Optional[str] = Field(default=None, max_length=128)

    @field_validator("chat_history")
    @classmethod
    def _bound_history(cls, value: Union[str, List[Message]]) -> Union[str, List[Message]]:
        if isinstance(value, list) and len(value) > MAX_HISTORY_MESSAGES:
            raise ValueError(f"chat_history exceeds {MAX_HISTORY_MESSAGES} messages")
        return value

    @property
    def transcript(self) -> str:
        """History as a "User: ...\\nAssistant: ..." transcript."""
        if isinstance(self.chat_history, str):
            return self.chat_history
        return "\n".join(
            f"{ROLE_LABELS[m.role]}: {m.content}" for m in self.chat_history
        )


class ChatResponse(BaseModel):
    answer: str
    sources: List[Dict[str, Any]]
    analysis: Dict[str, Any]
    quality: Dict[str, Any]
    reasoning: List[str]
    search_metadata: Dict[str, Any]
    response_style: str
    completeness: str
    confidence: float
    processing_time: float
    cached: bool


# =============================================================================
# ENDPOINTS
# =============================================================================


@router.post("/chat", response_model=ChatResponse, summary="Answer a question")
def chat(request: ChatRequest, service: RAGService = Depends(get_service)) -> ChatResponse:
    try:
        result = service.call_chain(
            request.question,
            chat_history=request.transcript,
            session_id=request.session_id,
            namespace=request.namespace,
        )
    except Exception as e:
        raise to_http_exception(e, service, "chat") from e

    return ChatResponse(
        answer=result.text,
        sources=[s.to_dict() for s in result.sources],
        analysis=result.analysis.to_dict(),
        quality=result.quality.to_dict(),
        reasoning=list(result.reasoning),
        search_metadata=dict(result.search_metadata),
        response_style=result.response_style,
        completeness=result.completeness,
        confidence=round(result.confidence, 3),
        processing_time=round(result.processing_time, 4),
        cached=result.cached,
    )


@router.post("/chat/stream", summary="Answer a question as server-sent events")
def chat_stream(
    request: ChatRequest, service: RAGService = Depends(get_service)
) -> StreamingResponse:
    """
    Stream the answer.

    Events: search_start, search_complete, content (repeated), then one
    done or error event. A blank question is rejected with 400 before the
    stream opens.
    """
    try:
        question = service.validate_question(request.question)
    except Exception as e:
        raise to_http_exception(e, service, "stream") from e

    def event_source() -> Iterator[str]:
        for event in service.stream_chain(
            question,
            chat_history=request.transcript,
            session_id=request.session_id,
            namespace=request.namespace,
        ):
            yield event.to_sse()

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
