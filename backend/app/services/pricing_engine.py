"""
PricingCalculator — two-tier quote pricing.

Primary shell (Scan-to-Plan architecture):
    vendor = scan labor + modeling + point-cloud processing + mobilization
    client = vendor x cogs_multiplier

Add-ons (other disciplines, CAD, georeferencing, travel, expedited):
    client = vendor x lean markup for the shell's cost_key

Custom line items keep their preset amounts. Discounts carry vendor 0 and a
negative client price and stay outside the multiplied base.

Situational multipliers scale the client total only and are materialised as a
single summary line so that the line items always sum to the quote total. The
minimum project value is enforced last, by raising the primary client price.
"""
import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from app.models.quote_models import (
    Discipline,
    LineItemShell,
    Multiplier,
    ShellCategory,
    new_id,
)
from app.services.errors import PricingError
from app.services.pricing_config import CostBasis, PricingRules

logger = logging.getLogger("s2p-pricing")

FLAG_MINIMUM_FLOOR = "minimum_value_floor_applied"

_DRIVING_MODES = {"local", "drive"}


@dataclass
class PricingOutcome:
    shells: List[LineItemShell]
    applied_multipliers: Tuple[Multiplier, ...] = ()
    raw_client_total: float = 0.0
    adjusted_client_total: float = 0.0
    total_project_sqft: int = 0
    client_rate_per_sqft: Optional[float] = None
    flags: List[str] = field(default_factory=list)

    @property
    def primary(self) -> Optional[LineItemShell]:
        return next((s for s in self.shells if s.is_primary), None)


def project_sqft(shells: List[LineItemShell]) -> int:
    """Largest modeled area per scope area, summed across areas."""
    by_area: Dict[str, int] = {}
    for s in shells:
        if s.category != ShellCategory.MODELING or not s.area_id or not s.square_feet:
            continue
        by_area[s.area_id] = max(by_area.get(s.area_id, 0), int(s.square_feet))
    return sum(by_area.values())


class PricingCalculator:
    """
    Prices shells against an immutable cost basis and rule set.

    Inputs are never mutated; ``price()`` returns priced copies.
    """

    def __init__(self, cost_basis: CostBasis, rules: PricingRules):
        self.cost_basis = cost_basis
        self.rules = rules

    # ── Public API ────────────────────────────────────────────────────────────

    def price(self, shells: List[LineItemShell]) -> PricingOutcome:
        # Previous summary lines are re-derived, not carried forward
        priced = [copy.deepcopy(s) for s in shells if s.category != ShellCategory.SUMMARY]
        for shell in priced:
            shell.attributes.pop("minimum_floor_uplift", None)
        total_sqft = project_sqft(priced)
        if not priced:
            return PricingOutcome(shells=[], total_project_sqft=0)

        expedited: List[LineItemShell] = []
        modeling_vendor_total = 0.0

        for shell in priced:
            if shell.is_primary:
                self._price_primary(shell, total_sqft)
                modeling_vendor_total += (shell.cost_breakdown or {}).get("modeling", 0.0)
            elif shell.cost_key == "expedited":
                expedited.append(shell)
                continue
            else:
                self._price_add_on(shell)
                if shell.category == ShellCategory.MODELING:
                    modeling_vendor_total += shell.vendor_cost

        for shell in expedited:
            vendor = round(modeling_vendor_total * self.cost_basis.expedite_pct, 2)
            self._set_price(shell, vendor, self.rules.markup_for(shell.cost_key))
            shell.cost_breakdown = {"modeling_base": round(modeling_vendor_total, 2)}

        outcome = PricingOutcome(shells=priced, total_project_sqft=total_sqft)
        self._apply_multipliers(outcome)
        self._apply_minimum(outcome)

        primary = outcome.primary
        if primary is not None and total_sqft > 0:
            outcome.client_rate_per_sqft = round(primary.client_price / total_sqft, 2)

        logger.info(
            f"Priced {len(priced)} shells: raw client {outcome.raw_client_total:,.2f}, "
            f"adjusted {outcome.adjusted_client_total:,.2f}, "
            f"multipliers={[m.name for m in outcome.applied_multipliers]}"
        )
        return outcome

    # ── Primary ───────────────────────────────────────────────────────────────

    def _scope_portion(self, shell: LineItemShell) -> float:
        scope = shell.scope.value if shell.scope else "full"
        portion = self.cost_basis.scope_portions.get(scope)
        if portion is None:
            raise PricingError(
                PricingError.MISSING_COST_BASIS,
                f"no scope portion configured for '{scope}'",
                shell.id,
            )
        return portion

    def _rate(self, shell: LineItemShell, discipline: str, lod: Optional[str]) -> float:
        rate = self.cost_basis.modeling_rate(discipline, lod)
        if rate is None:
            raise PricingError(
                PricingError.MISSING_COST_BASIS,
                f"no modeling rate for {discipline} LOD {lod}",
                shell.id,
            )
        return rate

    def _modeling_cost(self, shell: LineItemShell) -> float:
        discipline = shell.discipline.value if shell.discipline else shell.cost_key
        attrs = shell.attributes
        if "mixed_interior_lod" in attrs or "mixed_exterior_lod" in attrs:
            # Mixed scope: weighted interior + exterior rate over the whole area
            cb = self.cost_basis
            interior = self._rate(shell, discipline, attrs.get("mixed_interior_lod") or shell.lod)
            exterior = self._rate(shell, discipline, attrs.get("mixed_exterior_lod") or shell.lod)
            rate = cb.mixed_interior_weight * interior + cb.mixed_exterior_weight * exterior
            return (shell.square_feet or 0) * rate
        rate = self._rate(shell, discipline, shell.lod)
        return (shell.square_feet or 0) * rate * self._scope_portion(shell)

    def _price_primary(self, shell: LineItemShell, total_sqft: int) -> None:
        if shell.category != ShellCategory.MODELING:
            # Project with no modeled area: the flagship item carries the COGS
            # multiplier on its own base cost
            if shell.cost_key == "expedited":
                # Nothing is modeled, so the surcharge base is zero
                self._set_price(shell, 0.0 * self.cost_basis.expedite_pct, self.rules.cogs_multiplier)
                shell.cost_breakdown = {"modeling_base": 0.0}
                return
            vendor = self._base_vendor_cost(shell)
            if shell.preset_amount is not None:
                self._check_vendor(shell, vendor)
                shell.vendor_cost = round(vendor, 2)
                shell.client_price = round(shell.preset_amount, 2)
                return
            self._set_price(shell, vendor, self.rules.cogs_multiplier)
            return

        cb = self.cost_basis
        sqft = total_sqft or shell.square_feet or 0
        throughput = cb.throughput_for(shell.building_type)
        scan_days = math.ceil(sqft / throughput) if sqft else 0
        scan_positions = math.ceil(sqft / cb.sqft_per_scan_position) if sqft else 0

        scan_labor = scan_days * cb.scan_day_rate
        modeling = self._modeling_cost(shell)
        processing = scan_positions * cb.processing_per_scan_position
        mobilization = cb.mobilization_per_trip * cb.site_visits

        vendor = round(scan_labor + modeling + processing + mobilization, 2)
        self._set_price(shell, vendor, self.rules.cogs_multiplier)
        shell.cost_breakdown = {
            "scan_labor": round(scan_labor, 2),
            "modeling": round(modeling, 2),
            "processing": round(processing, 2),
            "mobilization": round(mobilization, 2),
            "scan_days": scan_days,
            "scan_positions": scan_positions,
        }

    # ── Add-ons ───────────────────────────────────────────────────────────────

    def _travel_cost(self, shell: LineItemShell) -> float:
        cb = self.cost_basis
        attrs = shell.attributes
        if attrs.get("custom_travel_cost") is not None:
            return float(attrs["custom_travel_cost"])
        miles = float(attrs.get("one_way_miles", 0) or 0)
        mode = str(attrs.get("travel_mode", "local")).lower()
        cost = max(cb.minimum_trip_cost, 2 * miles * cb.mileage_rate)
        if mode == "fly":
            cost += cb.flight_cost
        elif mode not in _DRIVING_MODES:
            raise PricingError(PricingError.MISSING_COST_BASIS, f"no travel rate for mode '{mode}'", shell.id)
        return cost * max(cb.site_visits, 1)

    def _base_vendor_cost(self, shell: LineItemShell) -> float:
        if shell.preset_amount is not None:
            return float(shell.preset_vendor_cost or 0.0)
        if shell.category == ShellCategory.MODELING:
            return self._modeling_cost(shell)
        if shell.category == ShellCategory.TRAVEL:
            return self._travel_cost(shell)
        if shell.cost_key == "cad":
            return (shell.square_feet or 0) * self.cost_basis.cad_rate_per_sqft
        if shell.cost_key == "georeferencing":
            return self.cost_basis.georeferencing_cost
        raise PricingError(
            PricingError.MISSING_COST_BASIS,
            f"no cost basis entry for add-on '{shell.cost_key}'",
            shell.id,
        )

    def _price_add_on(self, shell: LineItemShell) -> None:
        if shell.category == ShellCategory.DISCOUNT:
            shell.vendor_cost = 0.0
            shell.client_price = round(-abs(shell.preset_amount or 0.0), 2)
            shell.markup = None
            return
        vendor = self._base_vendor_cost(shell)
        if shell.preset_amount is not None:
            self._check_vendor(shell, vendor)
            shell.vendor_cost = round(vendor, 2)
            shell.client_price = round(shell.preset_amount, 2)
            shell.markup = None
            return
        self._set_price(shell, vendor, self.rules.markup_for(shell.cost_key))

    # ── Total adjustments ─────────────────────────────────────────────────────

    def _apply_multipliers(self, outcome: PricingOutcome) -> None:
        base = sum(s.client_price for s in outcome.shells if s.category != ShellCategory.DISCOUNT)
        discounts = sum(s.client_price for s in outcome.shells if s.category == ShellCategory.DISCOUNT)
        outcome.raw_client_total = round(base + discounts, 2)

        multipliers = tuple(self.rules.multipliers)
        if not multipliers:
            outcome.adjusted_client_total = outcome.raw_client_total
            return

        factor = math.prod(m.factor for m in multipliers)
        uplift = round(base * factor - base, 2)
        label = ", ".join(f"{m.name} × {m.factor:g}" for m in multipliers)
        outcome.shells.append(LineItemShell(
            id=new_id("li"),
            area_id=None,
            category=ShellCategory.SUMMARY,
            description=f"Situational adjustments ({label})",
            cost_key="multipliers",
            vendor_cost=0.0,
            client_price=uplift,
            attributes={"multipliers": [m.to_dict() for m in multipliers], "combined_factor": factor},
        ))
        outcome.applied_multipliers = multipliers
        outcome.adjusted_client_total = round(outcome.raw_client_total + uplift, 2)

    def _apply_minimum(self, outcome: PricingOutcome) -> None:
        minimum = self.rules.minimum_project_value
        primary = outcome.primary
        if primary is None or outcome.adjusted_client_total >= minimum:
            return
        shortfall = round(minimum - outcome.adjusted_client_total, 2)
        primary.client_price = round(primary.client_price + shortfall, 2)
        primary.attributes["minimum_floor_uplift"] = shortfall
        outcome.adjusted_client_total = round(minimum, 2)
        outcome.flags.append(FLAG_MINIMUM_FLOOR)
        logger.info(f"Minimum project value {minimum:,.2f} applied: primary raised by {shortfall:,.2f}")

    # ── Helpers ───────────────────────────────────────────────────────────────

    @staticmethod
    def _check_vendor(shell: LineItemShell, vendor: float) -> None:
        if vendor < 0:
            raise PricingError(
                PricingError.INVALID_COST,
                f"computed vendor cost {vendor:.2f} is negative",
                shell.id,
            )

    def _set_price(self, shell: LineItemShell, vendor: float, markup: float) -> None:
        self._check_vendor(shell, vendor)
        shell.vendor_cost = round(vendor, 2)
        shell.client_price = round(shell.vendor_cost * markup, 2)
        shell.markup = markup


def price_shells(
    shells: List[LineItemShell],
    cost_basis: CostBasis,
    rules: PricingRules,
) -> List[LineItemShell]:
    """Functional wrapper returning only the priced shell list."""
    return PricingCalculator(cost_basis, rules).price(shells).shells
