"""
Domain models for scoping records, line-item shells and versioned quotes.

Plain dataclasses shared by the shell generator, pricing calculator, integrity
classifier and revision store. API-facing pydantic schemas convert into these
through ``from_dict``.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ── Enumerations ──────────────────────────────────────────────────────────────

class ShellCategory(str, Enum):
    MODELING = "modeling"
    ADD_ON = "add_on"
    TRAVEL = "travel"
    DISCOUNT = "discount"
    SUMMARY = "summary"


class Discipline(str, Enum):
    ARCHITECTURE = "architecture"
    STRUCTURE = "structure"
    MEPF = "mepf"


class ScopeMode(str, Enum):
    FULL = "full"
    INTERIOR_ONLY = "interior_only"
    EXTERIOR_ONLY = "exterior_only"
    MIXED = "mixed"


class IntegrityStatus(str, Enum):
    PASSED = "passed"
    WARNING = "warning"
    BLOCKED = "blocked"


SCOPE_LABELS: Dict[ScopeMode, str] = {
    ScopeMode.FULL: "Full Scope",
    ScopeMode.INTERIOR_ONLY: "Interior Only",
    ScopeMode.EXTERIOR_ONLY: "Exterior Only",
    ScopeMode.MIXED: "Mixed Scope",
}


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


# ── Scoping input ─────────────────────────────────────────────────────────────

@dataclass
class DisciplineFlag:
    """Optional discipline on a scope area; ``sqft`` falls back to the area size."""
    enabled: bool = False
    sqft: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["DisciplineFlag"]:
        if data is None:
            return None
        if isinstance(data, DisciplineFlag):
            return data
        sqft = data.get("sqft")
        return cls(enabled=bool(data.get("enabled", False)), sqft=int(sqft) if sqft else None)


@dataclass
class CustomLineItem:
    description: str
    amount: float
    vendor_cost: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomLineItem":
        if isinstance(data, CustomLineItem):
            return data
        return cls(
            description=str(data.get("description", "")),
            amount=float(data.get("amount", 0) or 0),
            vendor_cost=float(data.get("vendor_cost", 0) or 0),
        )


@dataclass
class ScopeArea:
    id: str
    area_type: str
    square_footage: int
    project_scope: ScopeMode = ScopeMode.FULL
    lod: str = "300"
    area_name: Optional[str] = None
    discipline_lods: Dict[str, str] = field(default_factory=dict)
    structural: Optional[DisciplineFlag] = None
    mepf: Optional[DisciplineFlag] = None
    cad_deliverable: Optional[str] = None
    custom_line_items: List[CustomLineItem] = field(default_factory=list)
    mixed_interior_lod: Optional[str] = None
    mixed_exterior_lod: Optional[str] = None

    def __post_init__(self) -> None:
        if int(self.square_footage) <= 0:
            raise ValueError(f"Scope area {self.id}: square_footage must be a positive integer")
        self.square_footage = int(self.square_footage)
        self.project_scope = ScopeMode(self.project_scope)

    def lod_for(self, discipline: Discipline) -> str:
        return self.discipline_lods.get(discipline.value, self.lod)

    @property
    def display_name(self) -> str:
        return self.area_name or self.area_type

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScopeArea":
        return cls(
            id=str(data["id"]),
            area_type=str(data.get("area_type", "")),
            square_footage=int(data.get("square_footage", 0) or 0),
            project_scope=ScopeMode(data.get("project_scope", ScopeMode.FULL.value)),
            lod=str(data.get("lod", "300")),
            area_name=data.get("area_name"),
            discipline_lods={str(k): str(v) for k, v in (data.get("discipline_lods") or {}).items()},
            structural=DisciplineFlag.from_dict(data.get("structural")),
            mepf=DisciplineFlag.from_dict(data.get("mepf")),
            cad_deliverable=data.get("cad_deliverable"),
            custom_line_items=[CustomLineItem.from_dict(i) for i in data.get("custom_line_items") or []],
            mixed_interior_lod=_optional_str(data.get("mixed_interior_lod")),
            mixed_exterior_lod=_optional_str(data.get("mixed_exterior_lod")),
        )


@dataclass
class ScopingRecord:
    id: str
    company_name: str = ""
    project_name: str = ""
    floor_count: Optional[int] = None
    dispatch_location: str = ""
    one_way_miles: float = 0.0
    travel_mode: str = "local"
    custom_travel_cost: Optional[float] = None
    risk_factors: List[str] = field(default_factory=list)
    expedited: bool = False
    georeferencing: bool = False
    areas: List[ScopeArea] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.floor_count is not None and int(self.floor_count) <= 0:
            raise ValueError(f"Scoping record {self.id}: floor_count must be a positive integer")

    @property
    def total_sqft(self) -> int:
        return sum(a.square_footage for a in self.areas)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScopingRecord":
        custom_travel = data.get("custom_travel_cost")
        return cls(
            id=str(data["id"]),
            company_name=str(data.get("company_name", "") or ""),
            project_name=str(data.get("project_name", "") or ""),
            floor_count=int(data["floor_count"]) if data.get("floor_count") is not None else None,
            dispatch_location=str(data.get("dispatch_location", "") or ""),
            one_way_miles=float(data.get("one_way_miles", 0) or 0),
            travel_mode=str(data.get("travel_mode", "local") or "local"),
            custom_travel_cost=float(custom_travel) if custom_travel is not None else None,
            risk_factors=[str(r) for r in data.get("risk_factors") or []],
            expedited=bool(data.get("expedited", False)),
            georeferencing=bool(data.get("georeferencing", False)),
            areas=[ScopeArea.from_dict(a) for a in data.get("areas") or []],
        )


# ── Line items ────────────────────────────────────────────────────────────────

@dataclass
class LineItemShell:
    """
    One billable unit. ``vendor_cost`` and ``client_price`` are None until priced.

    ``cost_key`` selects the cost-basis entry and add-on markup for the shell
    (a discipline for modeling shells, the add-on kind otherwise). Custom line
    items carry their amount in ``preset_amount`` and are never re-derived.
    """
    id: str
    area_id: Optional[str]
    category: ShellCategory
    description: str
    cost_key: str
    discipline: Optional[Discipline] = None
    area_name: Optional[str] = None
    building_type: Optional[str] = None
    square_feet: Optional[int] = None
    lod: Optional[str] = None
    scope: Optional[ScopeMode] = None
    is_primary: bool = False
    preset_amount: Optional[float] = None
    preset_vendor_cost: Optional[float] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    vendor_cost: Optional[float] = None
    client_price: Optional[float] = None
    markup: Optional[float] = None
    cost_breakdown: Optional[Dict[str, float]] = None

    @property
    def is_priced(self) -> bool:
        return self.vendor_cost is not None and self.client_price is not None

    @property
    def margin(self) -> Optional[float]:
        if not self.is_priced:
            return None
        return round(self.client_price - self.vendor_cost, 2)

    @property
    def margin_pct(self) -> Optional[float]:
        if not self.is_priced or not self.client_price or self.client_price <= 0:
            return None
        return round((self.client_price - self.vendor_cost) / self.client_price * 100.0, 2)

    def signature(self) -> Tuple[Any, ...]:
        """Structural identity used to compare two generator runs."""
        return (
            self.area_id,
            self.discipline.value if self.discipline else None,
            self.category.value,
            self.cost_key,
            self.square_feet,
            self.lod,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value
        data["discipline"] = self.discipline.value if self.discipline else None
        data["scope"] = self.scope.value if self.scope else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItemShell":
        return cls(
            id=str(data["id"]),
            area_id=data.get("area_id"),
            category=ShellCategory(data["category"]),
            description=str(data.get("description", "")),
            cost_key=str(data.get("cost_key", "")),
            discipline=Discipline(data["discipline"]) if data.get("discipline") else None,
            area_name=data.get("area_name"),
            building_type=data.get("building_type"),
            square_feet=data.get("square_feet"),
            lod=data.get("lod"),
            scope=ScopeMode(data["scope"]) if data.get("scope") else None,
            is_primary=bool(data.get("is_primary", False)),
            preset_amount=data.get("preset_amount"),
            preset_vendor_cost=data.get("preset_vendor_cost"),
            attributes=dict(data.get("attributes") or {}),
            vendor_cost=data.get("vendor_cost"),
            client_price=data.get("client_price"),
            markup=data.get("markup"),
            cost_breakdown=data.get("cost_breakdown"),
        )


# ── Quote output ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Multiplier:
    """Named situational factor applied once to the quote's client total."""
    name: str
    factor: float
    trigger: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "factor": self.factor, "trigger": self.trigger}


@dataclass
class QuoteTotals:
    total_client_price: float
    total_vendor_cost: float
    gross_margin: float
    gross_margin_percent: float
    integrity_status: IntegrityStatus
    integrity_flags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["integrity_status"] = self.integrity_status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuoteTotals":
        return cls(
            total_client_price=float(data["total_client_price"]),
            total_vendor_cost=float(data["total_vendor_cost"]),
            gross_margin=float(data["gross_margin"]),
            gross_margin_percent=float(data["gross_margin_percent"]),
            integrity_status=IntegrityStatus(data["integrity_status"]),
            integrity_flags=list(data.get("integrity_flags") or []),
        )


@dataclass(frozen=True)
class Quote:
    id: str
    scoping_record_id: str
    version: int
    line_items: Tuple[LineItemShell, ...]
    totals: QuoteTotals
    applied_multipliers: Tuple[Multiplier, ...] = ()
    created_at: datetime = field(default_factory=_utcnow)
    created_by: Optional[str] = None

    @property
    def integrity_status(self) -> IntegrityStatus:
        return self.totals.integrity_status

    @property
    def primary(self) -> Optional[LineItemShell]:
        return next((s for s in self.line_items if s.is_primary), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "scoping_record_id": self.scoping_record_id,
            "version": self.version,
            "line_items": [s.to_dict() for s in self.line_items],
            "totals": self.totals.to_dict(),
            "applied_multipliers": [m.to_dict() for m in self.applied_multipliers],
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
        }
