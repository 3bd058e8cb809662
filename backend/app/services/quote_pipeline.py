"""
QuotePipeline — scoping record -> shells -> priced shells -> totals -> saved quote.

Each step is pure except the final save; nothing is persisted when any step
raises.
"""
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from app.models.quote_models import LineItemShell, Multiplier, Quote, QuoteTotals, ScopingRecord
from app.services.integrity_engine import aggregate
from app.services.pricing_config import CostBasis, PricingRules, multipliers_for
from app.services.pricing_engine import PricingCalculator, PricingOutcome
from app.services.quote_store import InMemoryQuoteStore, QuoteStore, resolve
from app.services.shell_generator import generate_shells

logger = logging.getLogger("s2p-pricing")


@dataclass
class PricedQuote:
    """An unsaved pricing result."""
    shells: List[LineItemShell]
    totals: QuoteTotals
    outcome: PricingOutcome

    @property
    def applied_multipliers(self) -> Tuple[Multiplier, ...]:
        return self.outcome.applied_multipliers


class QuotePipeline:
    def __init__(
        self,
        cost_basis: CostBasis,
        rules: PricingRules,
        store: Optional[QuoteStore] = None,
        catalog: Optional[Dict[str, Multiplier]] = None,
    ):
        self.cost_basis = cost_basis
        self.rules = rules
        self.store = store if store is not None else InMemoryQuoteStore()
        self.catalog = catalog

    def rules_for(self, record: ScopingRecord, timeline: Optional[str] = None) -> PricingRules:
        """Configured rules plus the record's situational multipliers."""
        configured = {m.name.strip().lower() for m in self.rules.multipliers}
        extra = [
            m for m in multipliers_for(record, self.catalog, timeline)
            if m.name.strip().lower() not in configured
        ]
        return self.rules.with_multipliers(extra) if extra else self.rules

    def preview(self, record: ScopingRecord, timeline: Optional[str] = None) -> PricedQuote:
        t0 = time.perf_counter()
        rules = self.rules_for(record, timeline)
        shells = generate_shells(record)
        outcome = PricingCalculator(self.cost_basis, rules).price(shells)
        totals = aggregate(outcome.shells, rules, outcome.flags)
        logger.info(
            f"Priced scoping record {record.id}: {totals.integrity_status.value}",
            extra={
                "scoping_record_id": record.id,
                "duration_ms": round((time.perf_counter() - t0) * 1000, 1),
            },
        )
        return PricedQuote(shells=outcome.shells, totals=totals, outcome=outcome)

    def generate(
        self,
        record: ScopingRecord,
        base_version: int = 0,
        timeline: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Quote:
        priced = self.preview(record, timeline)
        return self.store.save(
            record.id,
            priced.shells,
            priced.totals,
            base_version=base_version,
            applied_multipliers=priced.applied_multipliers,
            created_by=created_by,
        )

    async def agenerate(
        self,
        record: ScopingRecord,
        base_version: int = 0,
        timeline: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Quote:
        """generate() for callers that may hold either store."""
        priced = self.preview(record, timeline)
        return await resolve(self.store.save(
            record.id,
            priced.shells,
            priced.totals,
            base_version=base_version,
            applied_multipliers=priced.applied_multipliers,
            created_by=created_by,
        ))
