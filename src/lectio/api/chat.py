"""Chat, conversation and search routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from lectio.api.deps import get_chat_service, get_embedder, get_index, get_repo, get_user_id
from lectio.api.schemas import ChatRequest, RegenerateRequest, SearchRequest
from lectio.db.repository import Repository
from lectio.db.vectors import VectorIndex
from lectio.rag.llm_client import Embedder
from lectio.study.chat import ChatService
from lectio.study.search import unified_search

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_MEDIA_TYPE = "text/event-stream"


def wants_stream(request: Request) -> bool:
    return SSE_MEDIA_TYPE in request.headers.get("accept", "")


@router.post("/chat")
def chat(
    req: ChatRequest,
    request: Request,
    service: ChatService = Depends(get_chat_service),
    user_id: str = Depends(get_user_id),
):
    """Answer a message, streamed as SSE when the client accepts text/event-stream."""
    context = req.context.to_model() if req.context else None
    if wants_stream(request):
        conv_id, relay = service.stream(
            user_id, req.message, req.conversation_id, context, req.mode
        )
        return StreamingResponse(
            iter(relay),
            media_type=SSE_MEDIA_TYPE,
            background=BackgroundTask(relay.close),
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Conversation-Id": conv_id,
            },
        )
    reply = service.send(user_id, req.message, req.conversation_id, context, req.mode)
    return reply.to_dict()


@router.get("/conversations")
def list_conversations(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    service: ChatService = Depends(get_chat_service),
    user_id: str = Depends(get_user_id),
):
    conversations, has_more = service.conversations.list(user_id, limit=limit, offset=offset)
    return {"conversations": [c.to_dict() for c in conversations], "has_more": has_more}


@router.get("/conversations/{conversation_id}")
def get_conversation(
    conversation_id: str,
    service: ChatService = Depends(get_chat_service),
    user_id: str = Depends(get_user_id),
):
    conv = service.conversations.get(conversation_id, user_id)
    messages = service.conversations.transcript(conv.id, with_sources=True)
    return {"conversation": conv.to_dict(), "messages": [m.to_dict() for m in messages]}


@router.delete("/conversations/{conversation_id}")
def delete_conversation(
    conversation_id: str,
    service: ChatService = Depends(get_chat_service),
    user_id: str = Depends(get_user_id),
):
    service.conversations.delete(conversation_id, user_id)
    return {"success": True}


@router.post("/regenerate")
def regenerate(
    req: RegenerateRequest,
    service: ChatService = Depends(get_chat_service),
    user_id: str = Depends(get_user_id),
):
    reply = service.regenerate(req.conversation_id, user_id, mode=req.mode)
    return {
        "conversation_id": reply.conversation_id,
        "message_id": reply.message_id,
        "content": reply.content,
        "sources": [s.to_dict() for s in reply.sources],
    }


@router.post("/search")
def search(
    req: SearchRequest,
    repo: Repository = Depends(get_repo),
    index: VectorIndex = Depends(get_index),
    embedder: Embedder = Depends(get_embedder),
    user_id: str = Depends(get_user_id),
):
    results = unified_search(req.query, req.mode, req.limit, user_id, repo, index, embedder)
    return {"results": [r.to_dict() for r in results]}
