"""
CoachBot - Generation Client
=============================
Wraps the external chat model behind one call:
``generate(GenerationRequest) -> str``.

The full prompt is laid out as::

    SYSTEM INSTRUCTIONS:
    <system prompt>

    ---

    <conversation context>

    <user context>

    RELEVANT KNOWLEDGE:
    <knowledge context>

    User: <query>
    Assistant:

Empty sections are omitted.  Provider failures (rate limit, quota,
auth, network) and empty completions raise ``GenerationFailed`` with a
classified ``kind``; nothing is retried here.
"""

from __future__ import annotations

import time
from typing import Callable, Protocol, runtime_checkable

from coachbot.config.prompt_templates import FULL_PROMPT_KNOWLEDGE_BLOCK, FULL_PROMPT_QUERY_BLOCK, FULL_PROMPT_SYSTEM_BLOCK
from coachbot.config.settings import settings
from coachbot.src.core.errors import FailureKind, GenerationFailed, classify_provider_error
from coachbot.src.core.models import GenerationRequest
from coachbot.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Generator(Protocol):
    async def generate(self, request: GenerationRequest) -> str: ...


def build_full_prompt(request: GenerationRequest) -> str:
    prompt = ""
    if request.system_prompt:
        prompt += FULL_PROMPT_SYSTEM_BLOCK.format(system_prompt=request.system_prompt)
    if request.conversation_context:
        prompt += f"{request.conversation_context}\n\n"
    if request.user_context:
        prompt += f"{request.user_context}\n\n"
    if request.knowledge_context:
        prompt += FULL_PROMPT_KNOWLEDGE_BLOCK.format(knowledge_context=request.knowledge_context)
    prompt += FULL_PROMPT_QUERY_BLOCK.format(query=request.query)
    return prompt


def create_chat_model(temperature: float, max_tokens: int) -> object:
    """Initialise the Gemini chat model via LangChain."""
    from langchain_google_genai import ChatGoogleGenerativeAI

    llm = ChatGoogleGenerativeAI(model=settings.LLM_MODEL, temperature=temperature, max_output_tokens=max_tokens, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    logger.info("LLM initialised: %s (temperature=%.1f, max_tokens=%d)", settings.LLM_MODEL, temperature, max_tokens)
    return llm


class GenerationClient:
    """
    Parameters
    ----------
    llm
        A ready LangChain chat model used for every request.  When
        omitted, one model per (temperature, max_tokens) pair is built
        with *llm_factory* and cached.
    llm_factory
        ``(temperature, max_tokens) -> chat model``.
    """

    __slots__ = ("_llm", "_llm_factory", "_llms")

    def __init__(self, llm: object | None = None, llm_factory: Callable[[float, int], object] = create_chat_model) -> None:
        self._llm = llm
        self._llm_factory = llm_factory
        self._llms: dict[tuple[float, int], object] = {}


    def _model_for(self, request: GenerationRequest) -> object:
        if self._llm is not None:
            return self._llm
        key = (request.temperature, request.max_tokens)
        if key not in self._llms:
            self._llms[key] = self._llm_factory(request.temperature, request.max_tokens)
        return self._llms[key]


    async def generate(self, request: GenerationRequest) -> str:
        prompt = build_full_prompt(request)
        t_llm = time.perf_counter()
        try:
            from langchain_core.messages import HumanMessage

            response = await self._model_for(request).ainvoke([HumanMessage(content=prompt)])  # type: ignore[attr-defined]
        except Exception as exc:
            kind = classify_provider_error(exc)
            logger.error("[COACH] Generation failed (%s): %s", kind.value, exc)
            raise GenerationFailed(f"Generation provider failed: {type(exc).__name__}", kind) from exc

        answer = response.content if hasattr(response, "content") else str(response)
        if not isinstance(answer, str) or not answer.strip():
            raise GenerationFailed("Generation provider returned an empty response.", FailureKind.INVALID_RESPONSE)

        logger.info("[COACH] LLM response: %.1fms (%d chars, prompt=%d chars)", (time.perf_counter() - t_llm) * 1000, len(answer), len(prompt))
        return answer.strip()
