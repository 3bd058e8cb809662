"""
Conversational Quoting API Routes

POST /api/pricing-chat/sessions                — open a session
POST /api/pricing-chat/sessions/{id}/messages  — send a user turn

The response carries two channels: ``reply`` (screened text) and ``quote``
(structured payload, present once a quote has been generated).
"""
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.agents.quote_conversation import QuotingConversation
from app.api.deps import get_chat_sessions, get_llm, get_pipeline
from app.models.quote_models import new_id
from app.services.llm_client import LLMClient
from app.services.quote_pipeline import QuotePipeline

router = APIRouter(prefix="/api/pricing-chat", tags=["Pricing Chat"])
logger = logging.getLogger("s2p-api")


class OpenSessionRequest(BaseModel):
    scoping_record_id: Optional[str] = None


class ChatMessageRequest(BaseModel):
    message: str = Field(..., min_length=1)


@router.post("/sessions", status_code=201)
async def open_session(
    body: Optional[OpenSessionRequest] = None,
    pipeline: QuotePipeline = Depends(get_pipeline),
    llm: LLMClient = Depends(get_llm),
    sessions: Dict[str, QuotingConversation] = Depends(get_chat_sessions),
):
    session_id = new_id("chat")
    conversation = QuotingConversation(
        pipeline,
        scoping_record_id=body.scoping_record_id if body else None,
        llm=llm,
    )
    sessions[session_id] = conversation
    return {
        "session_id": session_id,
        "scoping_record_id": conversation.scoping_record_id,
        "state": conversation.state.value,
    }


@router.post("/sessions/{session_id}/messages")
async def send_message(
    session_id: str,
    body: ChatMessageRequest,
    sessions: Dict[str, QuotingConversation] = Depends(get_chat_sessions),
):
    conversation = sessions.get(session_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Chat session {session_id} not found")
    try:
        reply = await conversation.send(body.message)
    except RuntimeError as e:
        logger.error(f"LLM unavailable for session {session_id}: {e}")
        raise HTTPException(status_code=502, detail="Pricing assistant is unavailable, please retry")
    return {
        "reply": reply.text,
        "state": reply.state.value,
        "quote": reply.payload.model_dump() if reply.payload else None,
    }
