"""
Pricing engine configuration — single source of truth for cost-basis defaults,
pricing-rule defaults, the situational multiplier catalogue and conversational
settings.

Import from here in all services rather than hardcoding values. These dicts are
defaults only: the pricing-configuration store supplies the live values per call
through CostBasis.from_dict() / PricingRules.from_dict().
"""
from __future__ import annotations

import os


# ── Cost basis defaults (vendor side, USD) ────────────────────────────────────

COST_BASIS_DEFAULTS: dict[str, object] = {
    # Scan crew: one tech on site plus scanner wear, targets, batteries
    "scan_tech_day_rate": 600.0,
    "equipment_day_rate": 75.0,

    # Square feet a tech covers per scan day, by site complexity tier.
    # Standard commercial spaces run ~10,000-15,000 sqft/day.
    "scan_day_throughput": {
        "low": 20_000,
        "standard": 15_000,
        "high": 10_000,
    },

    # Point cloud registration / cleanup
    "sqft_per_scan_position": 1_500,
    "processing_per_scan_position": 75.0,

    # Site visit mobilization carried by the primary deliverable
    "mobilization_per_trip": 500.0,
    "site_visits": 1,

    # Modeling vendor cost per sqft: discipline -> LOD -> rate
    "modeling_rates": {
        "architecture": {"200": 0.10, "300": 0.16, "350": 0.20},
        "structure": {"200": 0.015, "300": 0.02, "350": 0.025},
        "mepf": {"200": 0.015, "300": 0.02, "350": 0.03},
    },

    # Fraction of the modeled area billed per scope mode
    "scope_portions": {
        "full": 1.0,
        "interior_only": 0.65,
        "exterior_only": 0.35,
        "mixed": 1.0,
    },

    # Mixed scope blends an interior and an exterior modeling rate
    "mixed_interior_weight": 0.65,
    "mixed_exterior_weight": 0.35,

    # Add-ons
    "cad_rate_per_sqft": 0.03,
    "georeferencing_cost": 855.0,          # per structure: survey control tie-in
    "expedite_pct": 0.20,                  # +20% on BIM modeling vendor cost

    # Travel
    "mileage_rate": 3.0,                   # per round-trip mile
    "minimum_trip_cost": 100.0,
    "flight_cost": 650.0,                  # per trip, added for travel_mode="fly"

    # Building type -> complexity tier (unknown types are "standard")
    "building_complexity": {
        "warehouse": "low",
        "industrial": "low",
        "parking structure": "low",
        "office": "standard",
        "retail": "standard",
        "educational": "standard",
        "residential": "standard",
        "hospitality": "standard",
        "mixed-use": "standard",
        "healthcare": "high",
        "laboratory": "high",
        "religious": "high",
        "historic": "high",
    },
}


# ── Pricing rule defaults ─────────────────────────────────────────────────────

PRICING_RULE_DEFAULTS: dict[str, object] = {
    # Primary (Scan-to-Plan architecture) price = COGS x this multiplier
    "cogs_multiplier": 2.0,

    # Add-ons are priced lean: vendor cost x markup, keyed by cost_key
    "default_addon_markup": 2.0,
    "addon_markups": {
        "architecture": 2.0,
        "structure": 2.2,
        "mepf": 2.2,
        "cad": 2.0,
        "georeferencing": 2.0,
        "expedited": 2.0,
        "travel": 1.8,
    },

    "minimum_project_value": 2_500.0,

    # Integrity classification on gross margin percent
    "blocked_below": 35.0,
    "warn_below": 45.0,
}


# ── Situational multipliers ───────────────────────────────────────────────────
# Applied once to the client total, never to vendor cost.

MULTIPLIER_CATALOG: list[dict] = [
    {"name": "Rush (< 1 week)", "factor": 1.5, "trigger": "Delivery within 5 business days"},
    {"name": "Complex Geometry", "factor": 1.3, "trigger": "Curved surfaces, multi-level MEP, industrial piping"},
    {"name": "Hazardous / Restricted", "factor": 1.4, "trigger": "Special PPE, clearances, off-hours"},
    {"name": "Occupied Building", "factor": 1.15, "trigger": "Scanning around tenants in operation"},
    {"name": "No Power On Site", "factor": 1.2, "trigger": "Generator / battery-only operation"},
    {"name": "Multi-Building Discount", "factor": 0.9, "trigger": "3+ buildings in same engagement"},
]

# Scoping risk factor -> catalogue multiplier name
RISK_FACTOR_MULTIPLIERS: dict[str, str] = {
    "occupied": "Occupied Building",
    "hazardous": "Hazardous / Restricted",
    "no_power": "No Power On Site",
    "complex_geometry": "Complex Geometry",
    "multi_building": "Multi-Building Discount",
}

# Conversational timeline -> catalogue multiplier name
TIMELINE_MULTIPLIERS: dict[str, str] = {
    "rush": "Rush (< 1 week)",
}


# ── Conversational quoting ────────────────────────────────────────────────────

CONVERSATION_CONFIG: dict[str, object] = {
    # Scope fields that must be known before the pricing pipeline is invoked
    "required_fields": ["square_footage", "building_type", "deliverable", "timeline"],

    # Oldest turns are dropped from the prompt beyond this many
    "max_history_turns": 40,

    "temperature": 0.2,
    "max_tokens": 2048,
}


# ── LLM routing ───────────────────────────────────────────────────────────────

LLM_PRIMARY_MODEL: str = os.getenv("LLM_PRIMARY_MODEL", "groq/llama-3.1-70b-versatile")
LLM_FALLBACK_MODEL: str = os.getenv("LLM_FALLBACK_MODEL", "gemini/gemini-1.5-flash")
