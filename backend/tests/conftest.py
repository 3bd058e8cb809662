"""
conftest.py — Shared pytest fixtures for the S2P quote engine test suite.

Pricing, integrity and store tests are pure unit tests. The conversational
tests use a scripted stand-in for the LLM client; the SQL store tests use an
in-memory SQLite database through aiosqlite.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import json
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Pricing configuration fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def cost_basis():
    """
    CostBasis with all defaults.

    Scan day = 600 tech + 75 equipment, standard throughput 15,000 sqft/day,
    1 scan position per 1,500 sqft at 75 each, 500 mobilization,
    LOD 300 modeling: architecture 0.16 / structure 0.02 / mepf 0.02 per sqft.
    """
    from app.services.pricing_config import CostBasis
    return CostBasis.from_dict()


@pytest.fixture(scope="session")
def rules():
    """
    PricingRules with all defaults: COGS x2.0, structure/mepf x2.2,
    georeferencing x2.0, travel x1.8, minimum 2,500, thresholds 35 / 45.
    """
    from app.services.pricing_config import PricingRules
    return PricingRules.from_dict()


# ---------------------------------------------------------------------------
# Scoping record fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def acceptance_record():
    """
    One 45,000 sqft office area, LOD 300, structural + MEPF enabled,
    georeferencing, 12 miles local travel.

    Expected pricing:
      primary    vendor 11,975  (3 scan days 2,025 + modeling 7,200
                                 + 30 positions 2,250 + mobilization 500)
                 client 23,950
      structure  900 -> 1,980     mepf 900 -> 1,980
      georef     855 -> 1,710     travel 100 -> 180
      totals     client 29,800, vendor 14,730, margin 50.57%
    """
    from app.models.quote_models import ScopingRecord
    return ScopingRecord.from_dict({
        "id": "sr-acceptance",
        "company_name": "Harbor Point Holdings",
        "project_name": "Harbor Point Tower",
        "one_way_miles": 12,
        "travel_mode": "local",
        "georeferencing": True,
        "areas": [
            {
                "id": "area-1",
                "area_type": "Office",
                "area_name": "Floors 1-3 Office Space",
                "square_footage": 45_000,
                "project_scope": "full",
                "lod": "300",
                "structural": {"enabled": True},
                "mepf": {"enabled": True},
            }
        ],
    })


@pytest.fixture
def small_record():
    """
    A single 2,000 sqft office, no add-ons.

    Primary vendor 1,645 (1 scan day 675 + modeling 320 + 2 positions 150
    + mobilization 500), client 3,290.
    """
    from app.models.quote_models import ScopingRecord
    return ScopingRecord.from_dict({
        "id": "sr-small",
        "project_name": "Corner Office",
        "areas": [{"id": "area-s", "area_type": "Office", "square_footage": 2_000}],
    })


@pytest.fixture
def pipeline(cost_basis, rules):
    """QuotePipeline over a fresh in-memory store."""
    from app.services.quote_pipeline import QuotePipeline
    from app.services.quote_store import InMemoryQuoteStore
    return QuotePipeline(cost_basis, rules, InMemoryQuoteStore())


# ---------------------------------------------------------------------------
# Scripted LLM
# ---------------------------------------------------------------------------

class ScriptedLLM:
    """
    Stand-in for LLMClient that replays queued turns in order and records the
    messages it was sent.
    """

    def __init__(self, turns=None):
        self.turns = list(turns or [])
        self.calls = []

    def queue_text(self, text):
        from app.services.llm_client import LLMTurn
        self.turns.append(LLMTurn(content=text))

    def queue_tool(self, arguments, text=None, name="generate_quote"):
        from app.services.llm_client import LLMTurn, ToolCall
        raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
        self.turns.append(LLMTurn(content=text, tool_calls=[ToolCall(name=name, arguments=raw)]))

    async def chat_with_tools(self, messages, tools, temperature=0.2, max_tokens=2048):
        self.calls.append({"messages": messages, "tools": tools})
        return self.turns.pop(0)


@pytest.fixture
def scripted_llm():
    return ScriptedLLM()


@pytest.fixture
def full_scope_args():
    """generate_quote arguments equivalent to the acceptance record."""
    return {
        "project_name": "Harbor Point Tower",
        "client_name": "Harbor Point Holdings",
        "building_type": "Office",
        "square_footage": 45_000,
        "deliverable": "LOD 300",
        "timeline": "standard",
        "structural": True,
        "mepf": True,
        "georeferencing": True,
        "one_way_miles": 12,
        "travel_mode": "local",
    }
