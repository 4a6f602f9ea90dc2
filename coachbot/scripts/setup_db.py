"""
CoachBot - Corpus Setup & Ingestion Script
===========================================
Builds (or refreshes) the coach corpus in LanceDB from
``DATA_RAW_DIR/<coach_id>/``:

    1. Load settings; missing secrets abort with a readable message.
    2. Open the ``CoachVectorStore`` and the ``EmbeddingGateway``.
    3. Optionally drop the table (and the hash cache).
    4. Run the ``IngestionPipeline`` for every coach folder, or one.
    5. Print the per-run summary with startup and processing times.

Flags:
    --coach ID     Only ingest the folder of coach ``ID``.
    --drop         Drop the table before ingesting (unchanged files stay cached).
    --purge        Drop the table and forget the hash cache (full re-ingest).
    --drop-only    Drop the table and exit.

Usage:
    python -m coachbot.scripts.setup_db
    python -m coachbot.scripts.setup_db --coach keto
    python -m coachbot.scripts.setup_db --purge
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import Any

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

_RULE = "=" * 60
_THIN_RULE = "-" * 60


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="setup_db", description="CoachBot: ingest coach documents and knowledge bases into the vector corpus.")
    parser.add_argument("--coach", default=None, metavar="COACH_ID", help="Only ingest this coach's folder.")
    drop = parser.add_mutually_exclusive_group()
    drop.add_argument("--drop", action="store_true", help="Drop the table before ingesting; the hash cache is kept.")
    drop.add_argument("--purge", action="store_true", help="Drop the table and clear the hash cache.")
    drop.add_argument("--drop-only", action="store_true", help="Drop the table and exit without ingesting.")
    return parser.parse_args(argv)


def _coach_folders(source_dir: Path, coach_id: str | None) -> dict[str, int]:
    """``coach_id -> number of ingestible files`` under *source_dir*."""
    if not source_dir.exists():
        return {}
    folders = sorted(d for d in source_dir.iterdir() if d.is_dir() and (coach_id is None or d.name == coach_id))
    return {d.name: sum(1 for f in d.iterdir() if f.suffix.lower() in {".txt", ".md", ".json"}) for d in folders}


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    try:
        from coachbot.config.settings import settings
    except Exception as exc:
        print(f"\n[FATAL] Configuration error, check your .env file:\n\n  {exc}\n")
        sys.exit(1)

    from coachbot.src.core.embeddings import EmbeddingGateway
    from coachbot.src.core.ingestor import IngestionPipeline
    from coachbot.src.database.vector_store import CoachVectorStore
    from coachbot.src.utils.logger import get_logger

    logger = get_logger(__name__)
    folders = _coach_folders(settings.DATA_RAW_DIR, args.coach)
    _print_header(settings, folders)

    if args.coach and args.coach not in folders:
        logger.error("No folder for coach '%s' under %s.", args.coach, settings.DATA_RAW_DIR)
        sys.exit(2)

    # ── Startup ────────────────────────────────────────────────────────
    try:
        gateway = EmbeddingGateway()
    except Exception:
        logger.exception("Failed to initialise the embedding model %s.", settings.EMBEDDING_MODEL)
        sys.exit(1)
    store = CoachVectorStore()
    pipeline = IngestionPipeline(vector_store=store, gateway=gateway)
    startup_s = time.perf_counter() - t_start
    logger.info("Startup finished in %.1fms; table '%s' holds %d row(s).", startup_s * 1000, settings.LANCEDB_TABLE_NAME, store.count())

    if args.drop or args.purge or args.drop_only:
        logger.warning("Dropping table '%s'.", settings.LANCEDB_TABLE_NAME)
        store.drop_table()
        if args.purge:
            pipeline.clear_hash_cache()
            logger.warning("Hash cache cleared; every file will be re-ingested.")
        if args.drop_only:
            return

    # ── Ingestion ──────────────────────────────────────────────────────
    summary = pipeline.run(coach_id=args.coach)
    _print_footer(summary, startup_s, time.perf_counter() - t_start, store.count())


def _print_header(settings: Any, folders: dict[str, int]) -> None:
    api_key = settings.GOOGLE_API_KEY.get_secret_value()
    masked = f"****{api_key[-4:]}" if len(api_key) > 4 else "****"

    print()
    print(_RULE)
    print("  COACHBOT Corpus Setup")
    print(_RULE)
    print(f"  Environment  : {settings.ENV}")
    print(f"  Embedding    : {settings.EMBEDDING_MODEL} (batch {settings.EMBED_BATCH_SIZE})")
    print(f"  LanceDB      : {settings.LANCEDB_PATH} / {settings.LANCEDB_TABLE_NAME}")
    print(f"  Chunking     : {settings.CHUNK_SIZE} chars, overlap {settings.CHUNK_OVERLAP}")
    print(f"  API key      : {masked}")
    print(_THIN_RULE)
    if not folders:
        print(f"  No coach folders found in {settings.DATA_RAW_DIR}")
    for coach_id, file_count in folders.items():
        print(f"  {coach_id:<24} {file_count:>4} file(s)")
    print(_RULE)
    print()


def _print_footer(summary: dict[str, Any], startup_s: float, elapsed_s: float, row_count: int) -> None:
    print()
    print(_RULE)
    print("  EXECUTION SUMMARY")
    print(_THIN_RULE)
    print(f"  Files scanned        : {summary['total_files']}")
    print(f"  Files ingested       : {summary['files_processed']}")
    print(f"  Files skipped (cache): {summary['files_skipped']}")
    print(f"  Chunks stored        : {summary['total_chunks']}")
    print(f"  Rows in corpus       : {row_count}")
    print(_THIN_RULE)
    print(f"  Startup              : {startup_s:>8.2f}s")
    print(f"  Ingestion            : {summary['elapsed_seconds']:>8.2f}s")
    print(f"  Total elapsed        : {elapsed_s:>8.2f}s")
    print(_RULE)
    print()


if __name__ == "__main__":
    main()
