"""
Conversational quoting session.

States:
    clarifying  — scope incomplete, the assistant asks questions
    ready       — scope complete, pricing pipeline about to run
    presented   — a quote has been generated and summarised

Each user turn goes to the model with a single tool, generate_quote. A tool
call with every required field runs the pricing pipeline and returns the
structured QuotePayload on the data channel. The text channel is screened by
find_leaks() and replaced with a neutral summary if it carries any internal
cost figure.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import ValidationError

from app.agents.config import CONVERSATION_CONFIG
from app.agents.tool_schemas import QuotePayload, get_litellm_tools, parse_tool_input
from app.models.quote_models import Quote, new_id
from app.services.errors import PricingError
from app.services.llm_client import LLMClient, get_system_prompt
from app.services.quote_pipeline import QuotePipeline
from app.services.quote_store import resolve

logger = logging.getLogger("s2p-conversation")

_NUMERAL = re.compile(r"\d[\d,]*(?:\.\d+)?")
# A numeral written as a factor: "2x", "2.0 ×", "1.8 times"
_FACTOR = re.compile(r"(\d+(?:\.\d+)?)\s*(?:x|×|times)(?![a-z])", re.IGNORECASE)

_FIELD_QUESTIONS = {
    "building_type": "what type of building it is (office, warehouse, healthcare, ...)",
    "square_footage": "roughly how many square feet we'd be scanning",
    "deliverable": "which level of detail you need for the model (LoD 200, 300 or 350)",
    "timeline": "your timeline (standard, expedited, or rush under a week)",
}

_REASK = (
    "Sorry, I couldn't read those project details. Could you restate the building type, "
    "square footage, level of detail and timeline?"
)

_SOURCE = "pricing-chat"


class ConversationState(str, Enum):
    CLARIFYING = "clarifying"
    READY = "ready"
    PRESENTED = "presented"


@dataclass
class ConversationReply:
    text: str
    state: ConversationState
    payload: Optional[QuotePayload] = None


# ── Information hiding ────────────────────────────────────────────────────────

def _numerals(text: str) -> List[Tuple[str, float]]:
    found = []
    for match in _NUMERAL.finditer(text):
        raw = match.group(0).rstrip(",")
        try:
            found.append((raw, float(raw.replace(",", ""))))
        except ValueError:
            continue
    return found


def _forbidden_amounts(payload: QuotePayload) -> List[float]:
    values = [payload.totals.total_vendor_cost, payload.totals.gross_margin]
    for item in payload.line_items:
        values.append(item.vendor_cost)
        for key, amount in (item.cost_breakdown or {}).items():
            if key not in ("scan_days", "scan_positions"):
                values.append(amount)
    return [v for v in values if v]


def _forbidden_percents(payload: QuotePayload) -> List[float]:
    values = [payload.totals.gross_margin_percent]
    values.extend(item.margin_pct for item in payload.line_items if item.margin_pct is not None)
    expanded = []
    for v in values:
        if v:
            expanded.extend({round(v, 2), round(v, 1), float(round(v))})
    return expanded


def _forbidden_factors(payload: QuotePayload, cogs_multiplier: Optional[float]) -> List[float]:
    factors = [item.markup for item in payload.line_items if item.markup]
    if cogs_multiplier:
        factors.append(cogs_multiplier)
    return factors


def find_leaks(text: str, payload: Optional[QuotePayload], cogs_multiplier: Optional[float] = None) -> List[str]:
    """
    Return every numeral in ``text`` that equals an internal value of
    ``payload``: a vendor cost, the gross margin, a margin percentage, a cost
    breakdown component, or a cost multiplier / markup written as a factor.
    """
    if not text or payload is None:
        return []

    amounts = _forbidden_amounts(payload)
    percents = _forbidden_percents(payload)
    leaks = []
    for raw, value in _numerals(text):
        if any(abs(value - a) < 0.005 or ("." not in raw and abs(value - round(a)) < 0.005) for a in amounts):
            leaks.append(raw)
        elif any(abs(value - p) < 0.005 for p in percents):
            leaks.append(raw)

    factors = _forbidden_factors(payload, cogs_multiplier)
    for match in _FACTOR.finditer(text):
        value = float(match.group(1))
        if any(abs(value - f) < 0.005 for f in factors) and match.group(1) not in leaks:
            leaks.append(match.group(1))
    return leaks


def neutral_summary(payload: QuotePayload, cogs_multiplier: Optional[float] = None) -> str:
    """Client-facing summary built only from the client total and per-sqft rate."""
    name = payload.project_name or "your project"
    text = f"Your quote for {name} is ready: ${payload.totals.total_client_price:,.2f} total"
    if payload.client_rate_per_sqft:
        text += f" (about ${payload.client_rate_per_sqft:,.2f} per square foot for the scan-to-BIM deliverable)"
    text += ". The itemized line items are in the quote panel."
    if find_leaks(text, payload, cogs_multiplier):
        text = f"Your quote for {name} is ready. The pricing and line items are in the quote panel."
        if find_leaks(text, payload, cogs_multiplier):
            text = "Your quote is ready. The pricing and line items are in the quote panel."
    return text


# ── Session ───────────────────────────────────────────────────────────────────

class QuotingConversation:
    def __init__(
        self,
        pipeline: QuotePipeline,
        scoping_record_id: Optional[str] = None,
        llm: Optional[LLMClient] = None,
        config: Optional[dict] = None,
    ):
        self.pipeline = pipeline
        self.scoping_record_id = scoping_record_id or new_id("sr")
        self.llm = llm or LLMClient()
        self.config = config or CONVERSATION_CONFIG
        self.state = ConversationState.CLARIFYING
        self.transcript: List[Tuple[str, str]] = []
        self.current_quote: Optional[Quote] = None
        self.current_payload: Optional[QuotePayload] = None
        self._scope_key: Optional[dict] = None

    @property
    def _cogs(self) -> float:
        return self.pipeline.rules.cogs_multiplier

    def _messages(self) -> list:
        turns = self.transcript[-int(self.config["max_history_turns"]):]
        return [{"role": "system", "content": get_system_prompt("pricing")}] + [
            {"role": role, "content": text} for role, text in turns
        ]

    def _screen(self, text: str) -> str:
        leaks = find_leaks(text, self.current_payload, self._cogs)
        if not leaks:
            return text
        logger.warning(
            f"Reply withheld: {len(leaks)} internal figures in model text",
            extra={"scoping_record_id": self.scoping_record_id},
        )
        return neutral_summary(self.current_payload, self._cogs)

    def _lod_reask(self) -> str:
        lods = sorted(self.pipeline.cost_basis.modeling_rates.get("architecture", {}))
        return (
            "Sorry, we can't price that level of detail. We model to LoD "
            + ", ".join(lods)
            + ". Which of those would you like?"
        )

    def _reply(self, text: str, payload: Optional[QuotePayload] = None) -> ConversationReply:
        self.transcript.append(("assistant", text))
        return ConversationReply(text=text, state=self.state, payload=payload)

    async def send(self, message: str) -> ConversationReply:
        previous = self.state
        self.transcript.append(("user", message))
        turn = await self.llm.chat_with_tools(
            self._messages(),
            get_litellm_tools(),
            temperature=float(self.config["temperature"]),
            max_tokens=int(self.config["max_tokens"]),
        )

        if not turn.tool_calls:
            # The last quote stays in current_quote for display
            self.state = ConversationState.CLARIFYING
            text = turn.content or _REASK
            return self._reply(self._screen(text))

        call = turn.tool_calls[0]
        try:
            args = parse_tool_input(call.name, call.arguments)
        except (KeyError, ValueError) as e:
            logger.info(
                f"Malformed tool call '{call.name}' ({type(e).__name__}); re-asking",
                extra={"scoping_record_id": self.scoping_record_id},
            )
            self.state = previous
            if isinstance(e, ValidationError) and any(err["loc"][:1] == ("deliverable",) for err in e.errors()):
                return self._reply(self._lod_reask())
            return self._reply(_REASK)

        missing = args.missing_fields(list(self.config["required_fields"]))
        if missing:
            self.state = ConversationState.CLARIFYING
            asks = [_FIELD_QUESTIONS.get(f, f.replace("_", " ")) for f in missing]
            text = turn.content or ("Before I can price this, could you tell me " + " and ".join(asks) + "?")
            return self._reply(self._screen(text))

        self.state = ConversationState.READY
        scope_key = args.scope_key()
        if self.current_quote is None or scope_key != self._scope_key:
            record = args.to_scoping_record(self.scoping_record_id)
            try:
                base = await resolve(self.pipeline.store.current_version(self.scoping_record_id))
                quote = await self.pipeline.agenerate(
                    record, base_version=base, timeline=args.timeline, created_by=_SOURCE
                )
            except PricingError as e:
                logger.warning(
                    f"Scope could not be priced ({e.reason}); re-asking",
                    extra={"scoping_record_id": self.scoping_record_id},
                )
                self.state = previous
                if e.reason == PricingError.MISSING_COST_BASIS:
                    return self._reply(self._lod_reask())
                return self._reply(_REASK)
            self.current_quote = quote
            self._scope_key = scope_key
            logger.info(
                f"Conversation priced quote v{self.current_quote.version}",
                extra={"scoping_record_id": self.scoping_record_id, "quote_version": self.current_quote.version},
            )
        self.current_payload = QuotePayload.from_quote(self.current_quote, project_name=args.project_name or "")
        self.state = ConversationState.PRESENTED

        text = turn.content or neutral_summary(self.current_payload, self._cogs)
        return self._reply(self._screen(text), payload=self.current_payload)
