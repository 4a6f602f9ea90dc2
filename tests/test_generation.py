"""Generation client: prompt layout and provider failure mapping."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from coachbot.src.core.errors import FailureKind, GenerationFailed
from coachbot.src.core.generation import GenerationClient, build_full_prompt
from coachbot.src.core.models import GenerationRequest


def _llm(**kwargs):
    llm = MagicMock()
    llm.ainvoke = AsyncMock(**kwargs)
    return llm


class TestPromptLayout:
    def test_section_order(self):
        request = GenerationRequest(query="How do I start?", system_prompt="Be a coach.", user_context="User Profile:\n- Name: Sam", conversation_context="Recent Conversation:\nUser: hi\n", knowledge_context="Keto basics")

        prompt = build_full_prompt(request)

        assert prompt.startswith("SYSTEM INSTRUCTIONS:\nBe a coach.\n\n---\n\n")
        markers = ["SYSTEM INSTRUCTIONS", "Recent Conversation", "User Profile", "RELEVANT KNOWLEDGE:\nKeto basics", "User: How do I start?\nAssistant:"]
        positions = [prompt.index(m) for m in markers]
        assert positions == sorted(positions)
        assert prompt.endswith("Assistant:")

    def test_empty_sections_are_omitted(self):
        prompt = build_full_prompt(GenerationRequest(query="hi"))
        assert prompt == "User: hi\nAssistant:"


class TestGenerate:
    @pytest.mark.asyncio
    async def test_returns_stripped_text(self):
        llm = _llm(return_value=MagicMock(content="  Eat more fat.  "))
        answer = await GenerationClient(llm=llm).generate(GenerationRequest(query="tips?"))

        assert answer == "Eat more fat."
        sent = llm.ainvoke.await_args.args[0][0].content
        assert sent.endswith("User: tips?\nAssistant:")

    @pytest.mark.asyncio
    async def test_rate_limit_is_classified(self):
        llm = _llm(side_effect=RuntimeError("429 Too Many Requests"))
        with pytest.raises(GenerationFailed) as info:
            await GenerationClient(llm=llm).generate(GenerationRequest(query="tips?"))
        assert info.value.kind is FailureKind.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_empty_completion_is_invalid(self):
        llm = _llm(return_value=MagicMock(content="   "))
        with pytest.raises(GenerationFailed) as info:
            await GenerationClient(llm=llm).generate(GenerationRequest(query="tips?"))
        assert info.value.kind is FailureKind.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_models_cached_per_sampling_settings(self):
        built = []

        def factory(temperature, max_tokens):
            built.append((temperature, max_tokens))
            return _llm(return_value=MagicMock(content="ok"))

        client = GenerationClient(llm_factory=factory)
        await client.generate(GenerationRequest(query="a", temperature=0.7, max_tokens=256))
        await client.generate(GenerationRequest(query="b", temperature=0.7, max_tokens=256))
        await client.generate(GenerationRequest(query="c", temperature=0.2, max_tokens=128))

        assert built == [(0.7, 256), (0.2, 128)]
