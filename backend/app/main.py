"""
S2P Quote Engine API
FastAPI backend for quote pricing, margin-integrity gating and conversational
quoting. LLM access through litellm (primary + fallback model).
"""
import os
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from app.agents.config import LLM_PRIMARY_MODEL
from app.services.errors import ConfigurationError, PricingError, StaleVersionError
from app.services.llm_client import LLMClient
from app.services.logging_config import setup_logging
from app.services.middleware import RequestTimingMiddleware
from app.services.pricing_config import load_pricing_config
from app.services.quote_pipeline import QuotePipeline
from app.services.quote_store import InMemoryQuoteStore, SqlQuoteStore

load_dotenv()

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("s2p-api")

_PROCESS_START = time.monotonic()

for var in ["GROQ_API_KEY", "GEMINI_API_KEY"]:
    if not os.getenv(var):
        logger.info(f"Optional env var not set: {var}")


def _default_store():
    """QUOTE_STORE=sql persists versions to DATABASE_URL; anything else keeps them in memory."""
    if os.getenv("QUOTE_STORE", "memory").lower() == "sql":
        from app.db import AsyncSessionLocal
        return SqlQuoteStore(AsyncSessionLocal)
    return InMemoryQuoteStore()


def configure_state(
    app: FastAPI,
    pipeline: Optional[QuotePipeline] = None,
    llm_client: Optional[LLMClient] = None,
) -> None:
    """(Re)build the engine singletons held on app.state."""
    if pipeline is None:
        cost_basis, rules = load_pricing_config(os.getenv("PRICING_CONFIG_FILE"))
        pipeline = QuotePipeline(cost_basis, rules, _default_store())
    app.state.pipeline = pipeline
    app.state.llm_client = llm_client or LLMClient()
    app.state.chat_sessions = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    if isinstance(app.state.pipeline.store, SqlQuoteStore):
        from app.db import init_db
        await init_db(bind=app.state.pipeline.store.engine)
    logger.info(f"Quote engine started ({type(app.state.pipeline.store).__name__})")
    yield
    app.state.chat_sessions.clear()


app = FastAPI(
    title="S2P Quote Engine API",
    version="1.0.0",
    description="Quote pricing and margin-integrity engine for scan-to-BIM services",
    lifespan=lifespan,
)
configure_state(app)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Configuration error: {exc}")
    return JSONResponse(status_code=422, content={"error": "ConfigurationError", "detail": str(exc)})


@app.exception_handler(PricingError)
async def pricing_error_handler(request: Request, exc: PricingError):
    logger.warning(f"Pricing failed: {exc}")
    return JSONResponse(
        status_code=422,
        content={
            "error": "PricingError",
            "reason": exc.reason,
            "shell_id": exc.shell_id,
            "detail": str(exc),
        },
    )


@app.exception_handler(StaleVersionError)
async def stale_version_handler(request: Request, exc: StaleVersionError):
    return JSONResponse(
        status_code=409,
        content={
            "error": "StaleVersionError",
            "expected_version": exc.expected_version,
            "actual_version": exc.actual_version,
            "detail": str(exc),
        },
    )


# ---------------------------------------------------------------------------
# CORS: allowed origins from env
# ---------------------------------------------------------------------------
_cors_default = "http://localhost:3000,http://localhost:8000"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With", "X-Request-ID"],
)
# Added last: outermost
app.add_middleware(RequestTimingMiddleware)

# Routers
from app.api.quote_routes import router as quote_router
from app.api.pricing_chat_routes import router as pricing_chat_router

app.include_router(quote_router)
app.include_router(pricing_chat_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": "1.0.0",
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
        "llm_primary": LLM_PRIMARY_MODEL,
        "chat_sessions": len(app.state.chat_sessions),
    }
