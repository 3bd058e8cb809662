"""
Structured Tool Schemas for the conversational quoting pipeline.

These Pydantic models define the two channels of a conversational quote:
  1. GenerateQuoteTool.Input — the litellm/OpenAI function-calling schema the
     model fills in (via .model_json_schema())
  2. QuotePayload — the typed data channel consumed by the quote UI. Vendor
     costs and margins live here and only here.

Usage:
    from app.agents.tool_schemas import get_litellm_tools, parse_tool_input

    tools = get_litellm_tools()
    response = await litellm.acompletion(model=..., messages=messages, tools=tools)

    # Validate the model's arguments
    args = parse_tool_input("generate_quote", tool_call.function.arguments)
"""

from __future__ import annotations

import json
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

from app.agents.config import COST_BASIS_DEFAULTS
from app.models.quote_models import (
    DisciplineFlag,
    Quote,
    ScopeArea,
    ScopingRecord,
)
from app.services.pricing_engine import project_sqft

SUPPORTED_LODS = tuple(sorted(COST_BASIS_DEFAULTS["modeling_rates"]["architecture"]))


# ── Tool: Generate Quote ──────────────────────────────────────────────────────

class GenerateQuoteTool(BaseModel):
    """
    Generate a priced Scan-to-Plan quote from the project scope gathered in the
    conversation. Call this once building type, square footage, deliverable
    level of detail and timeline are known, and again whenever the user changes
    the scope. Prices are computed by the pricing engine; do not estimate them.
    """

    class Input(BaseModel):
        project_name: Optional[str] = Field(None, description="Project or building name")
        client_name: Optional[str] = Field(None, description="Client company name")
        building_type: Optional[str] = Field(
            None, description="Building type, e.g. 'Office', 'Warehouse', 'Healthcare', 'Retail'"
        )
        square_footage: Optional[int] = Field(
            None, ge=1, description="Gross square footage to be scanned and modeled"
        )
        deliverable: Optional[str] = Field(
            None,
            description="BIM level of detail for the architectural model, one of: " + ", ".join(SUPPORTED_LODS),
        )
        timeline: Optional[Literal["standard", "expedited", "rush"]] = Field(
            None,
            description="standard delivery, expedited modeling turnaround, or rush (under one week)",
        )
        scope: Literal["full", "interior_only", "exterior_only", "mixed"] = Field(
            "full", description="Portion of the building to capture"
        )
        structural: bool = Field(False, description="Include structural modeling")
        mepf: bool = Field(False, description="Include mechanical/electrical/plumbing/fire modeling")
        cad_deliverable: Optional[str] = Field(
            None, description="CAD sheet set requested alongside the model, e.g. 'Floor Plans'"
        )
        georeferencing: bool = Field(False, description="Tie the point cloud to survey control")
        one_way_miles: float = Field(0.0, ge=0, description="One-way distance from the dispatch office to site")
        travel_mode: Literal["local", "drive", "fly"] = Field("local", description="How the crew reaches site")
        risk_factors: List[
            Literal["occupied", "hazardous", "no_power", "complex_geometry", "multi_building"]
        ] = Field(default_factory=list, description="Site conditions that affect pricing")

        @field_validator("deliverable", mode="before")
        @classmethod
        def normalise_lod(cls, v):
            if v is None:
                return v
            text = str(v).strip().upper()
            if text.startswith("LOD"):
                text = text[3:].strip(" -")
            if not text:
                return None
            if text not in SUPPORTED_LODS:
                raise ValueError(f"unsupported level of detail {text}; expected one of {', '.join(SUPPORTED_LODS)}")
            return text

        @field_validator("timeline", "travel_mode", "scope", mode="before")
        @classmethod
        def lowercase_choices(cls, v):
            return v.strip().lower() if isinstance(v, str) else v

        def missing_fields(self, required: List[str]) -> List[str]:
            return [name for name in required if getattr(self, name) in (None, "")]

        def scope_key(self) -> Dict:
            """Pricing-relevant fields; names alone do not change a quote."""
            return self.model_dump(exclude={"project_name", "client_name"})

        def to_scoping_record(self, scoping_record_id: str) -> ScopingRecord:
            area = ScopeArea(
                id=f"{scoping_record_id}-area-1",
                area_type=self.building_type or "",
                square_footage=self.square_footage or 0,
                project_scope=self.scope,
                lod=self.deliverable or "300",
                area_name=self.building_type,
                structural=DisciplineFlag(enabled=self.structural),
                mepf=DisciplineFlag(enabled=self.mepf),
                cad_deliverable=self.cad_deliverable,
            )
            return ScopingRecord(
                id=scoping_record_id,
                company_name=self.client_name or "",
                project_name=self.project_name or "",
                one_way_miles=self.one_way_miles,
                travel_mode=self.travel_mode,
                risk_factors=list(self.risk_factors),
                expedited=self.timeline == "expedited",
                georeferencing=self.georeferencing,
                areas=[area],
            )


# ── Structured payload (data channel) ─────────────────────────────────────────

class QuoteLineItem(BaseModel):
    id: str
    description: str
    category: str
    discipline: Optional[str] = None
    square_feet: Optional[int] = None
    lod: Optional[str] = None
    is_primary: bool = False
    vendor_cost: float
    client_price: float
    markup: Optional[float] = None
    margin_pct: Optional[float] = None
    cost_breakdown: Optional[Dict[str, float]] = None


class AppliedMultiplier(BaseModel):
    name: str
    factor: float


class QuoteTotalsPayload(BaseModel):
    total_client_price: float
    total_vendor_cost: float
    gross_margin: float
    gross_margin_percent: float
    integrity_status: Literal["passed", "warning", "blocked"]
    integrity_flags: List[str] = Field(default_factory=list)


class QuotePayload(BaseModel):
    """Everything the quote UI renders; never copied into conversational text."""
    quote_id: str
    scoping_record_id: str
    version: int
    project_name: str = ""
    total_sqft: int = 0
    client_rate_per_sqft: Optional[float] = None
    line_items: List[QuoteLineItem]
    applied_multipliers: List[AppliedMultiplier] = Field(default_factory=list)
    totals: QuoteTotalsPayload

    @classmethod
    def from_quote(cls, quote: Quote, project_name: str = "") -> "QuotePayload":
        sqft = project_sqft(list(quote.line_items))
        primary = quote.primary
        rate = round(primary.client_price / sqft, 2) if primary is not None and sqft else None
        return cls(
            quote_id=quote.id,
            scoping_record_id=quote.scoping_record_id,
            version=quote.version,
            project_name=project_name,
            total_sqft=sqft,
            client_rate_per_sqft=rate,
            line_items=[
                QuoteLineItem(
                    id=s.id,
                    description=s.description,
                    category=s.category.value,
                    discipline=s.discipline.value if s.discipline else None,
                    square_feet=s.square_feet,
                    lod=s.lod,
                    is_primary=s.is_primary,
                    vendor_cost=s.vendor_cost,
                    client_price=s.client_price,
                    markup=s.markup,
                    margin_pct=s.margin_pct,
                    cost_breakdown=s.cost_breakdown,
                )
                for s in quote.line_items
            ],
            applied_multipliers=[
                AppliedMultiplier(name=m.name, factor=m.factor) for m in quote.applied_multipliers
            ],
            totals=QuoteTotalsPayload(**quote.totals.to_dict()),
        )


# ── Tool registry: tool name -> schema class ──────────────────────────────────

TOOL_REGISTRY: dict[str, type] = {
    "generate_quote": GenerateQuoteTool,
}


def get_litellm_tools(tool_names: list[str] | None = None) -> list[dict]:
    """
    Build a list of tool dicts in OpenAI function-calling format.
    Pass to litellm.acompletion(tools=...) alongside messages.
    """
    names = tool_names if tool_names is not None else list(TOOL_REGISTRY.keys())
    result = []
    for name in names:
        schema_class = TOOL_REGISTRY.get(name)
        if schema_class is None:
            continue
        description = (schema_class.__doc__ or "").strip()
        input_cls = getattr(schema_class, "Input", None)
        if input_cls is None:
            continue
        result.append({
            "type": "function",
            "function": {
                "name": name,
                "description": description,
                "parameters": input_cls.model_json_schema(),
            },
        })
    return result


def parse_tool_input(tool_name: str, raw_json: str | dict) -> BaseModel:
    """
    Parse and validate model-produced tool arguments against the Input schema.

    Raises:
        KeyError: If tool_name not in registry
        ValueError: If the arguments are not valid JSON (json.JSONDecodeError)
                    or do not match the Input schema (pydantic.ValidationError)
    """
    schema_class = TOOL_REGISTRY[tool_name]
    data = json.loads(raw_json) if isinstance(raw_json, str) else raw_json
    if not isinstance(data, dict):
        raise ValueError(f"Tool '{tool_name}' arguments must be a JSON object")
    return schema_class.Input.model_validate(data)
