"""Agentic RAG chat endpoint."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..auth import get_current_user
from ..models import RAGChatRequest, RAGChatResponse, ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["rag_chat"])


def get_pipeline(request: Request):
    """The pipeline built at startup."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Agentic pipeline not initialized"
        )
    return pipeline


@router.post(
    "/rag-chat",
    response_model=RAGChatResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def rag_chat(
    body: RAGChatRequest,
    current_user=Depends(get_current_user),
    pipeline=Depends(get_pipeline),
):
    """Answer one chat turn with the agentic RAG pipeline."""
    logger.info(f"Authenticated user: {current_user.id}")
    result = await pipeline.run(body, user_id=str(current_user.id))
    return result.to_response()
