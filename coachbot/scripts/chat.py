"""
CoachBot - Interactive Chat
============================
Terminal turn loop against one coach.

Tiers:
    basic   Pattern-matching ``BasicCoach`` over the coach's knowledge
            base (built-in defaults if it cannot be loaded).
    rag     ``RAGCoach``: retrieval + memory + Gemini generation, with
            deterministic answers when generation is unavailable.

Usage:
    python -m coachbot.scripts.chat --coach keto --type keto --user u1
    python -m coachbot.scripts.chat --coach basic-health --tier basic
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

_EXIT_WORDS = {"exit", "quit", ":q"}


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="chat", description="CoachBot — chat with a coach from the terminal.")
    parser.add_argument("--coach", required=True, metavar="COACH_ID", help="Coach identifier.")
    parser.add_argument("--name", default=None, help="Coach display name (defaults to the coach id).")
    parser.add_argument("--type", dest="coach_type", default="general", help="Diet / domain type, e.g. keto, carnivore.")
    parser.add_argument("--user", default="cli-user", metavar="USER_ID", help="User identifier for memory.")
    parser.add_argument("--tier", choices=("basic", "rag"), default="rag", help="Coach tier to run.")
    parser.add_argument("--access-tier", choices=("free", "basic", "pro"), default=None, help="Highest document tier to retrieve.")
    return parser.parse_args(argv)


async def _build_rag_coach(args: argparse.Namespace) -> object:
    from coachbot.src.core.assembler import RAGCoach
    from coachbot.src.core.embeddings import EmbeddingGateway
    from coachbot.src.core.errors import CoachError
    from coachbot.src.core.generation import GenerationClient
    from coachbot.src.core.memory import ConversationMemoryManager
    from coachbot.src.core.models import CoachContext
    from coachbot.src.core.retriever import VectorRetriever
    from coachbot.src.database.mongo_store import MongoKnowledgeStore, MongoMemoryStore, MongoMessageStore, MongoSummaryStore
    from coachbot.src.database.vector_store import CoachVectorStore
    from coachbot.src.utils.logger import get_logger

    logger = get_logger(__name__)

    try:
        system_prompt = await MongoKnowledgeStore().get_system_prompt(args.coach)
    except CoachError:
        logger.exception("Could not load the stored system prompt — using the default.")
        system_prompt = None

    coach = CoachContext(coach_id=args.coach, display_name=args.name or args.coach, coach_type=args.coach_type)
    retriever = VectorRetriever(CoachVectorStore(), EmbeddingGateway())
    memory = ConversationMemoryManager(MongoMessageStore(), MongoSummaryStore(), MongoMemoryStore())
    return RAGCoach(coach, retriever, memory, GenerationClient(), system_prompt_template=system_prompt, access_tier=args.access_tier)


async def _run(args: argparse.Namespace) -> None:
    from coachbot.src.core.errors import user_message_for
    from coachbot.src.core.knowledge_matcher import BasicCoach
    from coachbot.src.database.mongo_store import MongoKnowledgeStore

    if args.tier == "basic":
        coach = await BasicCoach.create(MongoKnowledgeStore(), args.coach)
    else:
        coach = await _build_rag_coach(args)

    print(f"\nChatting with '{args.coach}' ({args.tier} tier). Type 'exit' to quit.\n")
    while True:
        try:
            message = (await asyncio.to_thread(input, "You: ")).strip()
        except (EOFError, KeyboardInterrupt):
            break
        if not message:
            continue
        if message.lower() in _EXIT_WORDS:
            break

        try:
            if args.tier == "basic":
                answer = await coach.process_message(message)  # type: ignore[attr-defined]
            else:
                answer = await coach.process_message(message, user_id=args.user)  # type: ignore[attr-defined]
        except Exception as exc:
            answer = user_message_for(exc)
        print(f"Coach: {answer}\n")

    if args.tier == "rag":
        await coach.drain()  # type: ignore[attr-defined]
    print("Goodbye!")


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    try:
        from coachbot.config.settings import settings  # noqa: F401
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        sys.exit(1)

    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
