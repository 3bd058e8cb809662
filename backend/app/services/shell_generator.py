"""
ShellGenerator — decomposes a scoping record into unpriced line-item shells.

Order per scope area:
  1. Architecture modeling
  2. Structure modeling      (structural.enabled)
  3. MEPF modeling           (mepf.enabled)
  4. CAD deliverable add-on  (cad_deliverable set)
  5. Custom line items, verbatim

Then project-level shells: georeferencing, travel, expedited.

The first architecture shell is the primary deliverable; a structure/MEP-only
project promotes its first shell instead.
"""
import logging
from typing import List, Optional

from app.models.quote_models import (
    Discipline,
    LineItemShell,
    SCOPE_LABELS,
    ScopeArea,
    ScopeMode,
    ScopingRecord,
    ShellCategory,
    new_id,
)

logger = logging.getLogger("s2p-shells")

_DISCIPLINE_LABELS = {
    Discipline.ARCHITECTURE: "Architecture",
    Discipline.STRUCTURE: "Structure",
    Discipline.MEPF: "MEPF",
}

# Values meaning "no CAD deliverable"
_NO_CAD = {"", "no", "none", "false"}

_TRAVEL_LABELS = {
    "local": "Local",
    "drive": "Drive",
    "fly": "Flight",
}


def _modeling_shell(area: ScopeArea, discipline: Discipline, sqft: int) -> LineItemShell:
    lod = area.lod_for(discipline)
    scope_label = SCOPE_LABELS[area.project_scope]
    attributes = {}
    if area.project_scope == ScopeMode.MIXED and discipline == Discipline.ARCHITECTURE:
        attributes = {
            "mixed_interior_lod": area.mixed_interior_lod or lod,
            "mixed_exterior_lod": area.mixed_exterior_lod or lod,
        }
        scope_label += (
            f" (Interior LoD {attributes['mixed_interior_lod']},"
            f" Exterior LoD {attributes['mixed_exterior_lod']})"
        )
    description = " — ".join([
        _DISCIPLINE_LABELS[discipline],
        area.display_name,
        f"{sqft:,} SF",
        f"LoD {lod}",
        scope_label,
    ])
    return LineItemShell(
        id=new_id("li"),
        area_id=area.id,
        category=ShellCategory.MODELING,
        description=description,
        cost_key=discipline.value,
        discipline=discipline,
        area_name=area.display_name,
        building_type=area.area_type,
        square_feet=sqft,
        lod=lod,
        scope=area.project_scope,
        attributes=attributes,
    )


def _cad_shell(area: ScopeArea) -> LineItemShell:
    return LineItemShell(
        id=new_id("li"),
        area_id=area.id,
        category=ShellCategory.ADD_ON,
        description=f"CAD Deliverable ({area.cad_deliverable}) — {area.display_name} — {area.square_footage:,} SF",
        cost_key="cad",
        area_name=area.display_name,
        building_type=area.area_type,
        square_feet=area.square_footage,
        scope=area.project_scope,
        attributes={"cad_deliverable": area.cad_deliverable},
    )


def _area_shells(area: ScopeArea) -> List[LineItemShell]:
    shells = [_modeling_shell(area, Discipline.ARCHITECTURE, area.square_footage)]

    if area.structural and area.structural.enabled:
        shells.append(_modeling_shell(area, Discipline.STRUCTURE, area.structural.sqft or area.square_footage))
    if area.mepf and area.mepf.enabled:
        shells.append(_modeling_shell(area, Discipline.MEPF, area.mepf.sqft or area.square_footage))

    if (area.cad_deliverable or "").strip().lower() not in _NO_CAD:
        shells.append(_cad_shell(area))

    for item in area.custom_line_items:
        category = ShellCategory.DISCOUNT if item.amount < 0 else ShellCategory.ADD_ON
        shells.append(LineItemShell(
            id=new_id("li"),
            area_id=area.id,
            category=category,
            description=item.description or ("Discount" if item.amount < 0 else "Custom item"),
            cost_key="custom",
            area_name=area.display_name,
            preset_amount=item.amount,
            preset_vendor_cost=item.vendor_cost,
        ))
    return shells


def _travel_description(record: ScopingRecord) -> str:
    mode = _TRAVEL_LABELS.get(record.travel_mode.lower(), record.travel_mode.title())
    miles = f"{record.one_way_miles:,.0f}" if float(record.one_way_miles).is_integer() else f"{record.one_way_miles:,.1f}"
    origin = f" from {record.dispatch_location}" if record.dispatch_location else ""
    return f"Travel — {mode} — {miles} mi one-way{origin}"


def _project_shells(record: ScopingRecord) -> List[LineItemShell]:
    shells = []
    if record.georeferencing:
        shells.append(LineItemShell(
            id=new_id("li"),
            area_id=None,
            category=ShellCategory.ADD_ON,
            description="Georeferencing — survey control tie-in",
            cost_key="georeferencing",
        ))
    if record.one_way_miles > 0:
        shells.append(LineItemShell(
            id=new_id("li"),
            area_id=None,
            category=ShellCategory.TRAVEL,
            description=_travel_description(record),
            cost_key="travel",
            attributes={
                "travel_mode": record.travel_mode.lower(),
                "one_way_miles": record.one_way_miles,
                "custom_travel_cost": record.custom_travel_cost,
            },
        ))
    if record.expedited:
        shells.append(LineItemShell(
            id=new_id("li"),
            area_id=None,
            category=ShellCategory.ADD_ON,
            description="Expedited Service — priority BIM modeling turnaround",
            cost_key="expedited",
        ))
    return shells


def _designate_primary(shells: List[LineItemShell]) -> Optional[LineItemShell]:
    primary = next(
        (s for s in shells
         if s.category == ShellCategory.MODELING and s.discipline == Discipline.ARCHITECTURE),
        shells[0] if shells else None,
    )
    for shell in shells:
        shell.is_primary = shell is primary
    return primary


def generate_shells(record: ScopingRecord) -> List[LineItemShell]:
    """
    Build the ordered, unpriced shell list for a scoping record.

    Returns an empty list when the record has no areas and no project-level
    add-ons apply.
    """
    shells: List[LineItemShell] = []
    for area in record.areas:
        shells.extend(_area_shells(area))
    shells.extend(_project_shells(record))

    primary = _designate_primary(shells)
    if primary is not None and record.floor_count:
        primary.attributes["floor_count"] = record.floor_count
    logger.info(
        f"Generated {len(shells)} shells for scoping record {record.id} "
        f"({len(record.areas)} areas, primary={primary.description if primary else None})",
        extra={"scoping_record_id": record.id},
    )
    return shells
