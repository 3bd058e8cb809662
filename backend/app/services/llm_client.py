"""
LLM Client Abstraction
Single entry point for all AI calls in the quote engine.
Primary: LLM_PRIMARY_MODEL (default Groq LLaMA 3.1 70B)
Fallback: LLM_FALLBACK_MODEL (default Google Gemini 1.5 Flash)

The model only ever extracts scope parameters through function calling;
prices are computed by the pricing pipeline, never by the model.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional
import litellm

from app.agents.config import LLM_FALLBACK_MODEL, LLM_PRIMARY_MODEL

logger = logging.getLogger("s2p-llm")

# Suppress litellm verbose logging
litellm.set_verbose = False


@dataclass
class ToolCall:
    name: str
    arguments: str          # raw JSON string as produced by the model


@dataclass
class LLMTurn:
    content: Optional[str]
    tool_calls: List[ToolCall] = field(default_factory=list)


def _to_turn(response) -> LLMTurn:
    message = response.choices[0].message
    calls = []
    for tc in getattr(message, "tool_calls", None) or []:
        fn = tc.function
        calls.append(ToolCall(name=fn.name, arguments=fn.arguments or "{}"))
    return LLMTurn(content=message.content, tool_calls=calls)


async def complete_with_tools(
    messages: list,
    tools: list,
    temperature: float = 0.2,
    max_tokens: int = 2048,
) -> LLMTurn:
    """
    Function-calling completion. Falls back to the secondary model on rate
    limit or error; raises RuntimeError when both fail.
    """
    kwargs = {
        "messages": messages,
        "tools": tools,
        "tool_choice": "auto",
        "temperature": temperature,
        "max_tokens": max_tokens,
    }

    try:
        response = await litellm.acompletion(model=LLM_PRIMARY_MODEL, **kwargs)
        return _to_turn(response)
    except litellm.RateLimitError:
        logger.warning("Primary LLM rate limit hit — falling back")
    except litellm.AuthenticationError:
        logger.warning("Primary LLM auth error — falling back")
    except Exception as e:
        logger.warning(f"Primary LLM error ({type(e).__name__}: {e}) — falling back")

    try:
        response = await litellm.acompletion(model=LLM_FALLBACK_MODEL, **kwargs)
        return _to_turn(response)
    except Exception as e:
        logger.error(f"Both LLMs failed. Fallback error: {e}")
        raise RuntimeError(f"All LLM providers failed. Last error: {e}")


class LLMClient:
    """
    Class-based wrapper around complete_with_tools(), injected into the
    conversational quoting session so tests can substitute a scripted model.
    """

    async def chat_with_tools(
        self,
        messages: list,
        tools: list,
        temperature: float = 0.2,
        max_tokens: int = 2048,
    ) -> LLMTurn:
        return await complete_with_tools(messages, tools, temperature=temperature, max_tokens=max_tokens)


def get_system_prompt(role: str) -> str:
    """Standard system prompts for different AI roles."""
    prompts = {
        "pricing": (
            "You are a pricing assistant for a 3D laser scanning and BIM (Scan-to-Plan) services company. "
            "Gather the project scope from the user: building type, square footage, deliverable level of "
            "detail (LoD 200, 300 or 350), timeline (standard, expedited or rush), and optionally structural "
            "and MEPF modeling, CAD deliverables, georeferencing, travel distance and site risk factors. "
            "Ask one short clarifying question at a time. When the scope is known, call generate_quote. "
            "Never calculate prices yourself. Never mention vendor costs, cost multipliers, markups, margins "
            "or internal cost breakdowns; the quote panel shows the client price."
        ),
    }
    return prompts.get(role, prompts["pricing"])
