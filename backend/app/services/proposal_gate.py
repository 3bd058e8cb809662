"""
Proposal gate — decides whether a proposal may be created from a quote.

    passed   -> allowed
    warning  -> allowed after explicit confirmation
    blocked  -> refused
"""
from dataclasses import dataclass, field
from typing import List, Optional

from app.models.quote_models import IntegrityStatus, Quote


@dataclass
class ProposalGate:
    allowed: bool
    requires_confirmation: bool
    status: Optional[IntegrityStatus]
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "requires_confirmation": self.requires_confirmation,
            "status": self.status.value if self.status else None,
            "reasons": list(self.reasons),
        }


def check_proposal_gate(quote: Optional[Quote]) -> ProposalGate:
    if quote is None:
        return ProposalGate(allowed=False, requires_confirmation=False, status=None, reasons=["no_quote"])

    status = quote.integrity_status
    reasons = list(quote.totals.integrity_flags)
    if status == IntegrityStatus.BLOCKED:
        return ProposalGate(allowed=False, requires_confirmation=False, status=status, reasons=reasons)
    if status == IntegrityStatus.WARNING:
        return ProposalGate(allowed=True, requires_confirmation=True, status=status, reasons=reasons)
    return ProposalGate(allowed=True, requires_confirmation=False, status=status, reasons=reasons)
