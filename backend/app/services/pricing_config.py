"""
Immutable pricing configuration objects.

CostBasis     — vendor-side unit costs (day rates, per-sqft modeling, travel)
PricingRules  — COGS multiplier, add-on markups, situational multipliers,
                minimum project value and margin thresholds

Both are frozen and validated at construction; a bad value raises
ConfigurationError before any quote is priced.
"""
from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from app.agents.config import (
    COST_BASIS_DEFAULTS,
    MULTIPLIER_CATALOG,
    PRICING_RULE_DEFAULTS,
    RISK_FACTOR_MULTIPLIERS,
    TIMELINE_MULTIPLIERS,
)
from app.models.quote_models import Multiplier, ScopingRecord
from app.services.errors import ConfigurationError

logger = logging.getLogger("s2p-pricing-config")


def _frozen(mapping: Mapping) -> Mapping:
    return MappingProxyType({
        k: _frozen(v) if isinstance(v, Mapping) else v for k, v in mapping.items()
    })


def _merged(defaults: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    merged = copy.deepcopy(defaults)
    for key, value in (overrides or {}).items():
        if key not in merged or value is None:
            continue
        merged[key] = value
    return merged


# ── Cost basis ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CostBasis:
    scan_tech_day_rate: float
    equipment_day_rate: float
    scan_day_throughput: Mapping[str, float]
    sqft_per_scan_position: float
    processing_per_scan_position: float
    mobilization_per_trip: float
    site_visits: int
    modeling_rates: Mapping[str, Mapping[str, float]]
    scope_portions: Mapping[str, float]
    cad_rate_per_sqft: float
    georeferencing_cost: float
    expedite_pct: float
    mileage_rate: float
    minimum_trip_cost: float
    flight_cost: float
    building_complexity: Mapping[str, str] = field(default_factory=dict)
    mixed_interior_weight: float = 0.65
    mixed_exterior_weight: float = 0.35

    def __post_init__(self) -> None:
        for name in (
            "scan_tech_day_rate", "equipment_day_rate", "processing_per_scan_position",
            "mobilization_per_trip", "cad_rate_per_sqft", "georeferencing_cost",
            "expedite_pct", "mileage_rate", "minimum_trip_cost", "flight_cost",
            "mixed_interior_weight", "mixed_exterior_weight",
        ):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"Cost basis '{name}' must be non-negative")
        if self.sqft_per_scan_position <= 0:
            raise ConfigurationError("Cost basis 'sqft_per_scan_position' must be positive")
        if self.site_visits < 0:
            raise ConfigurationError("Cost basis 'site_visits' must be non-negative")
        if not self.scan_day_throughput:
            raise ConfigurationError("Cost basis 'scan_day_throughput' must define at least one tier")
        for tier, rate in self.scan_day_throughput.items():
            if rate <= 0:
                raise ConfigurationError(f"Scan-day throughput for tier '{tier}' must be positive")
        for discipline, by_lod in self.modeling_rates.items():
            for lod, rate in by_lod.items():
                if rate < 0:
                    raise ConfigurationError(
                        f"Modeling rate for {discipline} LOD {lod} must be non-negative"
                    )
        for mode, portion in self.scope_portions.items():
            if portion < 0:
                raise ConfigurationError(f"Scope portion for '{mode}' must be non-negative")

    @property
    def scan_day_rate(self) -> float:
        return self.scan_tech_day_rate + self.equipment_day_rate

    def modeling_rate(self, discipline: str, lod: Optional[str]) -> Optional[float]:
        by_lod = self.modeling_rates.get(discipline)
        if by_lod is None:
            return None
        return by_lod.get(str(lod)) if lod is not None else None

    def complexity_tier(self, building_type: Optional[str]) -> str:
        key = (building_type or "").strip().lower()
        tier = self.building_complexity.get(key, "standard")
        if tier not in self.scan_day_throughput:
            tier = "standard" if "standard" in self.scan_day_throughput else next(iter(self.scan_day_throughput))
        return tier

    def throughput_for(self, building_type: Optional[str]) -> float:
        return float(self.scan_day_throughput[self.complexity_tier(building_type)])

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]] = None) -> "CostBasis":
        cfg = _merged(COST_BASIS_DEFAULTS, data)
        try:
            return cls(
                scan_tech_day_rate=float(cfg["scan_tech_day_rate"]),
                equipment_day_rate=float(cfg["equipment_day_rate"]),
                scan_day_throughput=_frozen({str(k): float(v) for k, v in cfg["scan_day_throughput"].items()}),
                sqft_per_scan_position=float(cfg["sqft_per_scan_position"]),
                processing_per_scan_position=float(cfg["processing_per_scan_position"]),
                mobilization_per_trip=float(cfg["mobilization_per_trip"]),
                site_visits=int(cfg["site_visits"]),
                modeling_rates=_frozen({
                    str(d): {str(lod): float(r) for lod, r in by_lod.items()}
                    for d, by_lod in cfg["modeling_rates"].items()
                }),
                scope_portions=_frozen({str(k): float(v) for k, v in cfg["scope_portions"].items()}),
                cad_rate_per_sqft=float(cfg["cad_rate_per_sqft"]),
                georeferencing_cost=float(cfg["georeferencing_cost"]),
                expedite_pct=float(cfg["expedite_pct"]),
                mileage_rate=float(cfg["mileage_rate"]),
                minimum_trip_cost=float(cfg["minimum_trip_cost"]),
                flight_cost=float(cfg["flight_cost"]),
                building_complexity=_frozen({
                    str(k).lower(): str(v) for k, v in cfg["building_complexity"].items()
                }),
                mixed_interior_weight=float(cfg["mixed_interior_weight"]),
                mixed_exterior_weight=float(cfg["mixed_exterior_weight"]),
            )
        except (TypeError, ValueError, AttributeError) as exc:
            raise ConfigurationError(f"Malformed cost basis: {exc}") from exc


# ── Pricing rules ─────────────────────────────────────────────────────────────

def _validate_multipliers(multipliers: Iterable[Multiplier]) -> None:
    seen = set()
    for m in multipliers:
        if m.factor <= 0:
            raise ConfigurationError(f"Multiplier '{m.name}' must have a positive factor, got {m.factor}")
        key = m.name.strip().lower()
        if key in seen:
            raise ConfigurationError(f"Duplicate multiplier name '{m.name}'")
        seen.add(key)


@dataclass(frozen=True)
class PricingRules:
    cogs_multiplier: float
    default_addon_markup: float
    addon_markups: Mapping[str, float]
    minimum_project_value: float
    blocked_below: float
    warn_below: float
    multipliers: Tuple[Multiplier, ...] = ()

    def __post_init__(self) -> None:
        if self.cogs_multiplier <= 0:
            raise ConfigurationError("cogs_multiplier must be positive")
        if self.default_addon_markup <= 0:
            raise ConfigurationError("default_addon_markup must be positive")
        for key, markup in self.addon_markups.items():
            if markup <= 0:
                raise ConfigurationError(f"Add-on markup for '{key}' must be positive")
        if self.minimum_project_value < 0:
            raise ConfigurationError("minimum_project_value must be non-negative")
        if not (0 <= self.blocked_below < self.warn_below <= 100):
            raise ConfigurationError(
                f"Margin thresholds must satisfy 0 <= blocked_below < warn_below <= 100 "
                f"(got blocked_below={self.blocked_below}, warn_below={self.warn_below})"
            )
        _validate_multipliers(self.multipliers)

    def markup_for(self, cost_key: str) -> float:
        return float(self.addon_markups.get(cost_key, self.default_addon_markup))

    def with_multipliers(self, extra: Iterable[Multiplier]) -> "PricingRules":
        """Return a new rules object with ``extra`` appended (duplicates rejected)."""
        return replace(self, multipliers=tuple(self.multipliers) + tuple(extra))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cogs_multiplier": self.cogs_multiplier,
            "default_addon_markup": self.default_addon_markup,
            "addon_markups": dict(self.addon_markups),
            "minimum_project_value": self.minimum_project_value,
            "blocked_below": self.blocked_below,
            "warn_below": self.warn_below,
            "multipliers": [m.to_dict() for m in self.multipliers],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]] = None) -> "PricingRules":
        cfg = _merged(PRICING_RULE_DEFAULTS, data)
        raw_multipliers = (data or {}).get("multipliers") or []
        try:
            multipliers = tuple(
                m if isinstance(m, Multiplier)
                else Multiplier(name=str(m["name"]), factor=float(m["factor"]), trigger=str(m.get("trigger", "")))
                for m in raw_multipliers
            )
            return cls(
                cogs_multiplier=float(cfg["cogs_multiplier"]),
                default_addon_markup=float(cfg["default_addon_markup"]),
                addon_markups=_frozen({str(k): float(v) for k, v in cfg["addon_markups"].items()}),
                minimum_project_value=float(cfg["minimum_project_value"]),
                blocked_below=float(cfg["blocked_below"]),
                warn_below=float(cfg["warn_below"]),
                multipliers=multipliers,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ConfigurationError(f"Malformed pricing rules: {exc}") from exc


# ── Multiplier selection ──────────────────────────────────────────────────────

def load_multiplier_catalog(entries: Optional[List[dict]] = None) -> Dict[str, Multiplier]:
    catalog = [
        Multiplier(name=e["name"], factor=float(e["factor"]), trigger=e.get("trigger", ""))
        for e in (entries if entries is not None else MULTIPLIER_CATALOG)
    ]
    _validate_multipliers(catalog)
    return {m.name: m for m in catalog}


def multipliers_for(
    record: ScopingRecord,
    catalog: Optional[Dict[str, Multiplier]] = None,
    timeline: Optional[str] = None,
) -> List[Multiplier]:
    """
    Select catalogue multipliers triggered by a scoping record's risk factors
    (and, for conversational quotes, the requested timeline). Unknown risk
    factors are logged and skipped.
    """
    catalog = catalog if catalog is not None else load_multiplier_catalog()
    selected: List[Multiplier] = []
    names = []
    for risk in record.risk_factors:
        name = RISK_FACTOR_MULTIPLIERS.get(risk.strip().lower())
        if name is None:
            logger.info(f"Risk factor '{risk}' has no situational multiplier")
            continue
        names.append(name)
    if timeline:
        name = TIMELINE_MULTIPLIERS.get(timeline.strip().lower())
        if name:
            names.append(name)

    for name in names:
        multiplier = catalog.get(name)
        if multiplier is None:
            raise ConfigurationError(f"Multiplier '{name}' is not in the multiplier catalogue")
        if multiplier not in selected:
            selected.append(multiplier)
    return selected


def load_pricing_config(path: Optional[str] = None) -> Tuple[CostBasis, PricingRules]:
    """
    Load cost basis and rules from a JSON document shaped
    ``{"cost_basis": {...}, "rules": {...}}``; defaults when ``path`` is empty.
    """
    if not path:
        return CostBasis.from_dict(), PricingRules.from_dict()
    try:
        with open(path, "r") as f:
            doc = json.load(f)
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Cannot read pricing configuration {path}: {exc}") from exc
    logger.info(f"Loaded pricing configuration from {path}")
    return CostBasis.from_dict(doc.get("cost_basis")), PricingRules.from_dict(doc.get("rules"))
