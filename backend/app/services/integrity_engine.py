"""
Totals aggregation and margin-integrity classification.

    blocked   margin% <  blocked_below
    warning   blocked_below <= margin% < warn_below
    passed    margin% >= warn_below

Classification runs on the rounded (2 dp) margin percent so that the reported
number and the status always agree. Flags never change the status.
"""
import logging
from typing import Iterable, List, Optional

from app.models.quote_models import (
    IntegrityStatus,
    LineItemShell,
    QuoteTotals,
    ShellCategory,
)
from app.services.errors import PricingError
from app.services.pricing_config import PricingRules
from app.services.pricing_engine import FLAG_MINIMUM_FLOOR

logger = logging.getLogger("s2p-integrity")

FLAG_NON_POSITIVE_TOTAL = "non_positive_total"
FLAG_MARGIN_BLOCKED = "margin_below_blocked_threshold"
FLAG_MARGIN_WARNING = "margin_below_warning_threshold"
FLAG_NEGATIVE_MARGIN_SHELL = "negative_margin_shell"
FLAG_PRIMARY_INVARIANT = "primary_shell_invariant_violated"


def classify_margin(margin_pct: float, blocked_below: float, warn_below: float) -> IntegrityStatus:
    if margin_pct < blocked_below:
        return IntegrityStatus.BLOCKED
    if margin_pct < warn_below:
        return IntegrityStatus.WARNING
    return IntegrityStatus.PASSED


def aggregate(
    shells: List[LineItemShell],
    rules: Optional[PricingRules] = None,
    extra_flags: Iterable[str] = (),
) -> QuoteTotals:
    """
    Sum priced shells into QuoteTotals and classify profitability.

    Raises PricingError(UnpricedShell) if any shell lacks a vendor cost or
    client price.
    """
    rules = rules or PricingRules.from_dict()

    for s in shells:
        if not s.is_priced:
            raise PricingError(PricingError.UNPRICED_SHELL, "shell must be priced before aggregation", s.id)

    total_client = round(sum(s.client_price for s in shells), 2)
    total_vendor = round(sum(s.vendor_cost for s in shells), 2)
    gross_margin = round(total_client - total_vendor, 2)

    flags: List[str] = []

    if total_client <= 0:
        margin_pct = 0.0
        status = IntegrityStatus.BLOCKED
        flags.append(FLAG_NON_POSITIVE_TOTAL)
    else:
        margin_pct = round(gross_margin / total_client * 100.0, 2)
        status = classify_margin(margin_pct, rules.blocked_below, rules.warn_below)
        if status == IntegrityStatus.BLOCKED:
            flags.append(f"{FLAG_MARGIN_BLOCKED}: {margin_pct:.2f}% < {rules.blocked_below:g}%")
        elif status == IntegrityStatus.WARNING:
            flags.append(f"{FLAG_MARGIN_WARNING}: {margin_pct:.2f}% < {rules.warn_below:g}%")

    if any(s.is_primary and "minimum_floor_uplift" in s.attributes for s in shells):
        flags.append(FLAG_MINIMUM_FLOOR)

    for s in shells:
        if s.category in (ShellCategory.DISCOUNT, ShellCategory.SUMMARY):
            continue
        if s.client_price - s.vendor_cost < 0:
            flags.append(f"{FLAG_NEGATIVE_MARGIN_SHELL}: {s.description}")

    primaries = sum(1 for s in shells if s.is_primary)
    if shells and primaries != 1:
        flags.append(f"{FLAG_PRIMARY_INVARIANT}: {primaries} primary shells")
        logger.warning(f"Primary-shell invariant violated: {primaries} primary shells in {len(shells)}")

    for flag in extra_flags:
        if flag not in flags:
            flags.append(flag)

    totals = QuoteTotals(
        total_client_price=total_client,
        total_vendor_cost=total_vendor,
        gross_margin=gross_margin,
        gross_margin_percent=margin_pct,
        integrity_status=status,
        integrity_flags=flags,
    )
    logger.info(
        f"Aggregated {len(shells)} shells: client {total_client:,.2f}, vendor {total_vendor:,.2f}, "
        f"margin {margin_pct:.2f}% -> {status.value}"
    )
    return totals
