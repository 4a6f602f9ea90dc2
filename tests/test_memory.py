"""Conversation memory: threshold summarization, context assembly and fact merging."""

import asyncio
import itertools
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from coachbot.src.core.memory import ConversationMemoryManager, LLMSummarizer, TemplateSummarizer
from coachbot.src.core.models import ChatMessage, ConversationContext, ConversationSummary, UserMemory

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _ticking_clock():
    ticks = itertools.count()
    return lambda: BASE_TIME + timedelta(seconds=next(ticks))


@pytest.fixture
def manager(message_store, summary_store, memory_store):
    return ConversationMemoryManager(message_store, summary_store, memory_store, threshold=20, context_window=10, clock=_ticking_clock())


def _yielding(method):
    async def wrapper(*args, **kwargs):
        await asyncio.sleep(0)
        return await method(*args, **kwargs)

    return wrapper


def _yield_on_every_call(*stores):
    """Make every store call suspend once, so concurrent updates interleave."""
    for store in stores:
        for name in ("add_message", "list_since", "recent", "append", "latest", "get", "upsert"):
            method = getattr(store, name, None)
            if method is not None:
                setattr(store, name, _yielding(method))


async def _record_turns(manager, count, user="u1", coach="keto", content="Tell me more about fasting"):
    for i in range(count):
        role = "user" if i % 2 == 0 else "coach"
        await manager.record_message(user, coach, role, f"{content} #{i}" if role == "user" else f"Answer #{i}")


class TestSummarization:
    @pytest.mark.asyncio
    async def test_below_threshold_no_summary(self, manager, summary_store):
        await _record_turns(manager, 19)
        assert await manager.maybe_summarize("u1", "keto") is None
        assert summary_store.summaries == []

    @pytest.mark.asyncio
    async def test_threshold_creates_exactly_one_summary(self, manager, summary_store):
        await _record_turns(manager, 20)

        summary = await manager.maybe_summarize("u1", "keto")

        assert summary is not None
        assert summary.message_count == 20
        assert summary.topics == ["fasting"]
        assert len(summary_store.summaries) == 1
        assert await manager.maybe_summarize("u1", "keto") is None
        assert len(summary_store.summaries) == 1

    @pytest.mark.asyncio
    async def test_count_resets_after_summary(self, manager):
        await _record_turns(manager, 20)
        summary = await manager.maybe_summarize("u1", "keto")
        assert await manager.messages_since_last_summary("u1", "keto") == []

        await manager.record_message("u1", "keto", "user", "one more")
        pending = await manager.messages_since_last_summary("u1", "keto")
        assert [m.content for m in pending] == ["one more"]
        assert summary.last_message_id != pending[0].message_id

    @pytest.mark.asyncio
    async def test_summary_facts_are_deduplicated(self, manager):
        for _ in range(10):
            await manager.record_message("u1", "keto", "user", "I am 35 years old")
            await manager.record_message("u1", "keto", "coach", "Noted.")

        summary = await manager.maybe_summarize("u1", "keto")

        assert summary.key_facts == ["I am 35 years old"]

    @pytest.mark.asyncio
    async def test_pairs_are_isolated(self, manager):
        await _record_turns(manager, 20, coach="keto")
        await _record_turns(manager, 5, coach="paleo")

        assert await manager.maybe_summarize("u1", "paleo") is None
        assert await manager.maybe_summarize("u1", "keto") is not None

    @pytest.mark.asyncio
    async def test_overlapping_updates_create_one_summary(self, manager, message_store, summary_store, memory_store):
        _yield_on_every_call(message_store, summary_store, memory_store)
        await _record_turns(manager, 18)

        async def turn(i):
            user_message = await manager.record_message("u1", "keto", "user", f"Question {i} about fasting")
            coach_message = await manager.record_message("u1", "keto", "coach", f"Answer {i}")
            await manager.update_conversation_memory("u1", "keto", [user_message, coach_message])

        await asyncio.gather(turn(1), turn(2))

        assert len(summary_store.summaries) == 1
        assert summary_store.summaries[0].message_count >= 20
        assert len(await manager.messages_since_last_summary("u1", "keto")) < 20

    @pytest.mark.asyncio
    async def test_concurrent_merges_keep_every_fact(self, manager, memory_store):
        _yield_on_every_call(memory_store)

        await asyncio.gather(
            manager.update_user_memory("u1", [ChatMessage(message_id="a", role="user", content="I am 35 years old")]),
            manager.update_user_memory("u1", [ChatMessage(message_id="b", role="user", content="I follow a keto diet")]),
        )

        assert memory_store.memories["u1"].facts == {"age": 35, "statements": ["I follow a keto diet"]}


class TestContext:
    @pytest.mark.asyncio
    async def test_facts_merge_and_window(self, manager, summary_store, memory_store):
        await _record_turns(manager, 15)
        await summary_store.append(ConversationSummary(user_id="u1", coach_id="keto", summary_text="Earlier chat.", key_facts=["I am 35 years old", "I follow a keto diet"], topics=["diet"], last_message_id="m0", message_count=20, created_at=BASE_TIME - timedelta(days=1)))
        await memory_store.upsert(UserMemory(user_id="u1", facts={"age": 35, "statements": ["I follow a keto diet"]}))

        context = await manager.get_context("u1", "keto")

        assert context.summary == "Earlier chat."
        assert context.key_facts == ["I am 35 years old", "I follow a keto diet", "User is 35 years old"]
        assert context.previous_topics == ["diet"]
        assert len(context.recent_messages) == 10
        assert context.recent_messages[-1].content == "Tell me more about fasting #14"

    @pytest.mark.asyncio
    async def test_store_failure_degrades_to_recent_window(self, manager, summary_store):
        summary_store.fail = True
        recent = [ChatMessage(message_id=str(i), role="user", content=f"m{i}") for i in range(3)]

        context = await manager.get_context("u1", "keto", recent_messages=recent)

        assert context.summary is None
        assert context.key_facts == []
        assert [m.content for m in context.recent_messages] == ["m0", "m1", "m2"]

    def test_prompt_order(self):
        context = ConversationContext(
            recent_messages=[ChatMessage(message_id="1", role="user", content="hi"), ChatMessage(message_id="2", role="coach", content="hello")],
            summary="We talked about keto.",
            key_facts=["User is 35 years old"],
            previous_topics=["diet", "fasting"],
        )

        text = ConversationMemoryManager.format_context_for_prompt(context)

        positions = [text.index(marker) for marker in ("Previous Conversation Summary", "Known Facts About User", "Previously Discussed Topics: diet, fasting", "Recent Conversation")]
        assert positions == sorted(positions)
        assert "- User is 35 years old" in text
        assert "User: hi\nCoach: hello\n" in text

    def test_empty_context_renders_nothing(self):
        assert ConversationMemoryManager.format_context_for_prompt(ConversationContext()) == ""


class TestUserMemory:
    @pytest.mark.asyncio
    async def test_merge_is_idempotent(self, manager, memory_store):
        messages = [ChatMessage(message_id="1", role="user", content="I am 35 years old. I follow a keto diet.")]

        first = await manager.update_user_memory("u1", messages)
        second = await manager.update_user_memory("u1", messages)

        assert first.facts == second.facts == {"age": 35, "statements": ["I follow a keto diet"]}
        assert memory_store.memories["u1"].facts == first.facts

    @pytest.mark.asyncio
    async def test_no_facts_no_write(self, manager, memory_store):
        assert await manager.update_user_memory("u1", [ChatMessage(message_id="1", role="user", content="hello")]) is None
        assert memory_store.upserts == 0

    @pytest.mark.asyncio
    async def test_best_effort_update_swallows_store_failure(self, manager, memory_store):
        memory_store.fail = True
        messages = [ChatMessage(message_id="1", role="user", content="I am 35 years old")]

        await manager.update_conversation_memory("u1", "keto", messages)

        assert memory_store.memories == {}


class TestSummarizers:
    @pytest.mark.asyncio
    async def test_template_summarizer(self):
        messages = [ChatMessage(message_id="1", role="user", content="how do I fast")]
        text = await TemplateSummarizer().summarize(messages, ["fasting"])
        assert text.startswith("User discussed fasting.")

    @pytest.mark.asyncio
    async def test_llm_summarizer_uses_model_text(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=MagicMock(content="  The user is starting keto.  "))

        text = await LLMSummarizer(llm=llm).summarize([ChatMessage(message_id="1", role="user", content="keto?")], ["diet"])

        assert text == "The user is starting keto."
        prompt = llm.ainvoke.await_args.args[0][0].content
        assert "USER: keto?" in prompt

    @pytest.mark.asyncio
    async def test_llm_summarizer_falls_back_to_template(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=RuntimeError("quota exceeded"))
        messages = [ChatMessage(message_id="1", role="user", content="keto?")]

        text = await LLMSummarizer(llm=llm).summarize(messages, ["diet"])

        assert text == await TemplateSummarizer().summarize(messages, ["diet"])
