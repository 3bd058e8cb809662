"""
Quote & Proposal API Routes

POST   /api/quotes/{scoping_record_id}/generate — price the record and append a version
GET    /api/quotes/{scoping_record_id}/latest   — current version
GET    /api/quotes/{scoping_record_id}/history  — all versions, oldest first
DELETE /api/quotes/{scoping_record_id}          — cascade delete for a removed record
POST   /api/proposals/{scoping_record_id}/check — proposal gate on the current version
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.api.deps import get_pipeline, get_store
from app.models.quote_models import ScopingRecord
from app.services.pricing_config import PricingRules
from app.services.proposal_gate import check_proposal_gate
from app.services.quote_pipeline import QuotePipeline
from app.services.quote_store import QuoteStore, resolve

router = APIRouter(prefix="/api", tags=["Quotes"])
logger = logging.getLogger("s2p-api")


# ── Pydantic Models ─────────────────────────────────────────────────────────

class DisciplineFlagIn(BaseModel):
    enabled: bool = False
    sqft: Optional[int] = Field(None, gt=0)


class CustomLineItemIn(BaseModel):
    description: str
    amount: float
    vendor_cost: float = 0.0


class ScopeAreaIn(BaseModel):
    id: str
    area_type: str
    square_footage: int = Field(..., gt=0)
    project_scope: str = "full"
    lod: str = "300"
    area_name: Optional[str] = None
    discipline_lods: Dict[str, str] = Field(default_factory=dict)
    structural: Optional[DisciplineFlagIn] = None
    mepf: Optional[DisciplineFlagIn] = None
    cad_deliverable: Optional[str] = None
    custom_line_items: List[CustomLineItemIn] = Field(default_factory=list)
    mixed_interior_lod: Optional[str] = None
    mixed_exterior_lod: Optional[str] = None


class ScopingRecordIn(BaseModel):
    id: Optional[str] = None
    company_name: str = ""
    project_name: str = ""
    floor_count: Optional[int] = Field(None, ge=1)
    dispatch_location: str = ""
    one_way_miles: float = Field(0.0, ge=0)
    travel_mode: str = "local"
    custom_travel_cost: Optional[float] = None
    risk_factors: List[str] = Field(default_factory=list)
    expedited: bool = False
    georeferencing: bool = False
    areas: List[ScopeAreaIn] = Field(default_factory=list)


class GenerateQuoteRequest(BaseModel):
    record: ScopingRecordIn
    base_version: int = Field(0, ge=0)
    rules_overrides: Optional[Dict[str, Any]] = None
    created_by: Optional[str] = Field(None, max_length=255)


# ── Helpers ─────────────────────────────────────────────────────────────────

def _to_record(scoping_record_id: str, body: ScopingRecordIn) -> ScopingRecord:
    if body.id and body.id != scoping_record_id:
        raise HTTPException(
            status_code=422,
            detail=f"Record id {body.id} does not match path id {scoping_record_id}",
        )
    data = body.model_dump()
    data["id"] = scoping_record_id
    try:
        return ScopingRecord.from_dict(data)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _pipeline_for(pipeline: QuotePipeline, overrides: Optional[Dict[str, Any]]) -> QuotePipeline:
    if not overrides:
        return pipeline
    rules = PricingRules.from_dict({**pipeline.rules.to_dict(), **overrides})
    return QuotePipeline(pipeline.cost_basis, rules, pipeline.store, pipeline.catalog)


# ── Quotes ──────────────────────────────────────────────────────────────────

@router.post("/quotes/{scoping_record_id}/generate", status_code=201)
async def generate_quote(
    scoping_record_id: str,
    body: GenerateQuoteRequest,
    pipeline: QuotePipeline = Depends(get_pipeline),
):
    record = _to_record(scoping_record_id, body.record)
    quote = await _pipeline_for(pipeline, body.rules_overrides).agenerate(
        record, base_version=body.base_version, created_by=body.created_by
    )
    logger.info(
        f"Quote v{quote.version} generated ({quote.integrity_status.value})",
        extra={"scoping_record_id": scoping_record_id, "quote_version": quote.version},
    )
    return quote.to_dict()


@router.get("/quotes/{scoping_record_id}/latest")
async def latest_quote(scoping_record_id: str, store: QuoteStore = Depends(get_store)):
    quote = await resolve(store.latest(scoping_record_id))
    if quote is None:
        raise HTTPException(status_code=404, detail=f"No quote for scoping record {scoping_record_id}")
    return quote.to_dict()


@router.get("/quotes/{scoping_record_id}/history")
async def quote_history(scoping_record_id: str, store: QuoteStore = Depends(get_store)):
    history = await resolve(store.history(scoping_record_id))
    if not history:
        raise HTTPException(status_code=404, detail=f"No quote for scoping record {scoping_record_id}")
    return {"scoping_record_id": scoping_record_id, "versions": [q.to_dict() for q in history]}


@router.delete("/quotes/{scoping_record_id}")
async def delete_quotes(scoping_record_id: str, store: QuoteStore = Depends(get_store)):
    removed = await resolve(store.delete_record(scoping_record_id))
    return {"scoping_record_id": scoping_record_id, "deleted_versions": removed}


# ── Proposals ───────────────────────────────────────────────────────────────

@router.post("/proposals/{scoping_record_id}/check")
async def check_proposal(scoping_record_id: str, store: QuoteStore = Depends(get_store)):
    quote = await resolve(store.latest(scoping_record_id))
    if quote is None:
        raise HTTPException(status_code=404, detail=check_proposal_gate(None).to_dict())
    gate = check_proposal_gate(quote)
    if not gate.allowed:
        raise HTTPException(status_code=409, detail=gate.to_dict())
    return {**gate.to_dict(), "quote_version": quote.version}
