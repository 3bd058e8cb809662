"""FastAPI dependency injection — engine singletons held on app.state."""
from typing import Dict

from fastapi import Request

from app.agents.quote_conversation import QuotingConversation
from app.services.llm_client import LLMClient
from app.services.quote_pipeline import QuotePipeline
from app.services.quote_store import QuoteStore


def get_pipeline(request: Request) -> QuotePipeline:
    return request.app.state.pipeline


def get_store(request: Request) -> QuoteStore:
    return request.app.state.pipeline.store


def get_llm(request: Request) -> LLMClient:
    return request.app.state.llm_client


def get_chat_sessions(request: Request) -> Dict[str, QuotingConversation]:
    return request.app.state.chat_sessions
