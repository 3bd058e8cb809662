"""
Error taxonomy for the quote pricing engine.

ConfigurationError  — bad rules / cost basis, raised at construction time
PricingError        — a quote attempt cannot be priced; carries the offending shell
StaleVersionError   — optimistic-concurrency conflict in the quote revision store

A ``blocked`` integrity status is a classification result, not an exception.
"""
from typing import Optional


class QuoteEngineError(Exception):
    """Base class for every error raised by the pricing path."""


class ConfigurationError(QuoteEngineError):
    """Raised when pricing rules or the cost basis are invalid."""


class PricingError(QuoteEngineError):
    """
    Raised when a quote cannot be priced.

    The message is structured so API callers can surface it directly:
        PRICING_ERROR[MissingCostBasis] shell=li-3: no modeling rate for mepf LOD 400
    """

    MISSING_COST_BASIS = "MissingCostBasis"
    INVALID_COST = "InvalidCost"
    UNPRICED_SHELL = "UnpricedShell"

    def __init__(self, reason: str, detail: str, shell_id: Optional[str] = None):
        self.reason = reason
        self.detail = detail
        self.shell_id = shell_id
        where = f" shell={shell_id}" if shell_id else ""
        super().__init__(f"PRICING_ERROR[{reason}]{where}: {detail}")


class StaleVersionError(QuoteEngineError):
    """Raised when a save was computed against a version that is no longer the latest."""

    def __init__(self, scoping_record_id: str, expected_version: int, actual_version: int):
        self.scoping_record_id = scoping_record_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Quote for scoping record {scoping_record_id} was computed against version "
            f"{expected_version} but the latest saved version is {actual_version}. "
            f"Refetch the scope and recompute before saving."
        )
