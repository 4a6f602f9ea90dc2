"""
CoachBot - IngestionPipeline
=============================
Reads raw coach documents, cleans and chunks them, embeds the chunks
through the ``EmbeddingGateway`` and persists them into the
``CoachVectorStore``.

Key design decisions:
    • **Dependency Injection** – receives ``CoachVectorStore`` + gateway.
    • **Per-coach layout** – ``<source_dir>/<coach_id>/*.txt|*.md``;
      an optional ``knowledge.json`` in the same folder holds the
      coach's structured knowledge (``items`` + ``faqs``).
    • **Supersede, never mutate** – every source's previous chunks are
      deleted once its new chunks are embedded, then replaced by them.
    • **Concurrency** – files are processed in parallel via
      ``ThreadPoolExecutor`` (embedding calls are I/O-bound).
    • **Caching** – MD5-based file hashing skips unchanged files.

Usage:
    from coachbot.src.core.ingestor import IngestionPipeline
    pipeline = IngestionPipeline(vector_store, gateway)
    result   = pipeline.run()
"""

from __future__ import annotations

import hashlib
import json
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any

from coachbot.config.settings import settings
from coachbot.src.core.chunker import chunk_text
from coachbot.src.core.embeddings import EmbeddingGateway
from coachbot.src.core.models import DocumentChunk, DocumentMetadata, EmbeddedDocument
from coachbot.src.database.vector_store import CoachVectorStore
from coachbot.src.utils.logger import get_logger
from coachbot.src.utils.text_utils import clean_text, extract_metadata_from_filename

logger = get_logger(__name__)

# File extensions the pipeline knows how to read
_SUPPORTED_EXTENSIONS = {".txt", ".md"}

KNOWLEDGE_FILENAME = "knowledge.json"
KNOWLEDGE_SOURCE_TYPE = "knowledge_base"


class IngestionPipeline:
    """
    End-to-end document ingestion: read → clean → chunk → embed → store.

    Parameters
    ----------
    vector_store
        An initialised ``CoachVectorStore`` instance (injected).
    gateway
        ``EmbeddingGateway`` producing one vector per chunk.
    source_dir
        Override the source directory. Defaults to ``settings.DATA_RAW_DIR``.
    max_workers
        Number of parallel threads for file processing.
    hash_cache_path
        Where the MD5 cache lives.  Defaults to
        ``settings.DATA_PROCESSED_DIR / "ingestion_hashes.json"``.
    """

    def __init__(self, vector_store: CoachVectorStore, gateway: EmbeddingGateway, source_dir: Path | None = None, max_workers: int | None = None, hash_cache_path: Path | None = None) -> None:
        self._store = vector_store
        self._gateway = gateway
        self._source_dir = Path(source_dir or settings.DATA_RAW_DIR)
        self._max_workers = max_workers or settings.MAX_WORKERS

        self._hash_cache_path: Path = hash_cache_path or settings.DATA_PROCESSED_DIR / "ingestion_hashes.json"
        self._hash_cache: dict[str, str] = self._load_hash_cache()

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINTS
    # ══════════════════════════════════════════════════════════════════

    def run(self, coach_id: str | None = None) -> dict[str, Any]:
        """
        Ingest every coach folder (or only *coach_id*'s).

        Returns
        -------
        dict
            Execution summary with keys:
            ``total_files``, ``files_processed``, ``files_skipped``,
            ``total_chunks``, ``elapsed_seconds``.
        """
        t_start = time.perf_counter()

        if not self._source_dir.exists():
            logger.warning("Source directory does not exist: %s", self._source_dir)
            return self._summary(0, 0, 0, 0, time.perf_counter() - t_start)

        coach_dirs = sorted(d for d in self._source_dir.iterdir() if d.is_dir() and (coach_id is None or d.name == coach_id))
        jobs = [(d.name, f) for d in coach_dirs for f in sorted(d.iterdir()) if f.suffix.lower() in _SUPPORTED_EXTENSIONS]

        total_chunks = 0
        for coach_dir in coach_dirs:
            total_chunks += self._ingest_knowledge_file(coach_dir)

        if not jobs:
            logger.warning("[INGEST] No supported files found in %s", self._source_dir)
            self._save_hash_cache()
            return self._summary(0, 0, 0, total_chunks, time.perf_counter() - t_start)

        logger.info("[INGEST] Starting ingestion — %d file(s) across %d coach folder(s).", len(jobs), len(coach_dirs))

        files_processed = 0
        files_skipped = 0

        # ── Parallel file processing ───────────────────────────────────
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            future_to_path = {pool.submit(self._ingest_file, cid, fp): fp for cid, fp in jobs}

            for future in as_completed(future_to_path):
                filepath = future_to_path[future]
                try:
                    result = future.result()
                    if result == -1:
                        files_skipped += 1
                    else:
                        total_chunks += result
                        files_processed += 1
                except Exception:
                    logger.exception("[INGEST] Failed to ingest file: %s", filepath.name)

        # Persist updated hash cache
        self._save_hash_cache()

        elapsed = time.perf_counter() - t_start
        logger.info("[INGEST] Ingestion complete — %d file(s) processed, %d skipped, %d chunk(s) stored in %.2fs.", files_processed, files_skipped, total_chunks, elapsed)
        return self._summary(len(jobs), files_processed, files_skipped, total_chunks, elapsed)


    def ingest_text(self, text: str, source_id: str, metadata: DocumentMetadata) -> int:
        """
        Chunk, embed and store *text* as *source_id*, superseding any
        previous chunks of that source.  The old chunks are removed only
        after embedding succeeded, so a provider failure keeps them.

        Returns
        -------
        int
            Number of chunks stored.
        """
        chunks = [c for c in chunk_text(text, source_id) if c.content]
        documents = self._embed(chunks, metadata)
        self._store.delete_source(source_id)
        return self._add(documents)


    def ingest_coach_knowledge(self, coach_id: str, items: list[dict[str, str]], faqs: list[dict[str, str]]) -> int:
        """
        Replace *coach_id*'s knowledge-base rows.

        Each item becomes ``"<category>: <content>"`` and each FAQ
        ``"Question: …\\nAnswer: …"``.
        """
        documents: list[EmbeddedDocument] = []
        for index, item in enumerate(items):
            category = item.get("category", "General")
            metadata = DocumentMetadata(coach_id=coach_id, title=item.get("title") or category, category=category, source_type=KNOWLEDGE_SOURCE_TYPE)
            chunks = [c for c in chunk_text(f"{category}: {item['content']}", f"{coach_id}:knowledge:{index}") if c.content]
            documents.extend(self._embed(chunks, metadata))

        for index, faq in enumerate(faqs):
            metadata = DocumentMetadata(coach_id=coach_id, title=faq["question"], category="FAQ", source_type=KNOWLEDGE_SOURCE_TYPE)
            chunks = [c for c in chunk_text(f"Question: {faq['question']}\nAnswer: {faq['answer']}", f"{coach_id}:faq:{index}") if c.content]
            documents.extend(self._embed(chunks, metadata))

        self._store.delete_coach_source_type(coach_id, KNOWLEDGE_SOURCE_TYPE)
        stored = self._add(documents)
        logger.info("[INGEST] Coach '%s' knowledge base: %d item(s), %d FAQ(s) → %d chunk(s).", coach_id, len(items), len(faqs), stored)
        return stored

    # ══════════════════════════════════════════════════════════════════
    #  PER-FILE PROCESSING
    # ══════════════════════════════════════════════════════════════════

    def _ingest_file(self, coach_id: str, filepath: Path) -> int:
        """
        Read, clean, chunk, and store a single file.

        Returns
        -------
        int
            Number of chunks added, or ``-1`` if the file was skipped
            (cache hit).
        """
        source_id = f"{coach_id}/{filepath.name}"

        # ── Cache check ────────────────────────────────────────────────
        file_hash = self._compute_file_hash(filepath)
        if self._hash_cache.get(source_id) == file_hash:
            logger.info("[INGEST] CACHE_HIT — Skipping unchanged file: %s", source_id)
            return -1

        t_file = time.perf_counter()
        raw_text = self._read_file(filepath)
        if not raw_text.strip():
            logger.warning("[INGEST] Skipping empty file: %s", source_id)
            return 0

        metadata = DocumentMetadata(coach_id=coach_id, source_type="document", **extract_metadata_from_filename(filepath.name))
        added = self.ingest_text(clean_text(raw_text), source_id, metadata)

        logger.info("[INGEST] File '%s' → %d chunk(s) in %.1fms.", source_id, added, (time.perf_counter() - t_file) * 1000)

        # Update hash cache on success
        self._hash_cache[source_id] = file_hash
        return added


    def _ingest_knowledge_file(self, coach_dir: Path) -> int:
        path = coach_dir / KNOWLEDGE_FILENAME
        if not path.exists():
            return 0

        file_hash = self._compute_file_hash(path)
        cache_key = f"{coach_dir.name}/{KNOWLEDGE_FILENAME}"
        if self._hash_cache.get(cache_key) == file_hash:
            logger.info("[INGEST] CACHE_HIT — Skipping unchanged knowledge file: %s", cache_key)
            return 0

        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            logger.exception("[INGEST] Unreadable knowledge file: %s", path)
            return 0

        stored = self.ingest_coach_knowledge(coach_dir.name, payload.get("items", []), payload.get("faqs", []))
        self._hash_cache[cache_key] = file_hash
        return stored


    def _embed(self, chunks: list[DocumentChunk], metadata: DocumentMetadata) -> list[EmbeddedDocument]:
        if not chunks:
            return []

        t_embed = time.perf_counter()
        vectors = self._gateway.embed_batch([c.content for c in chunks])
        stamped = DocumentMetadata(**{**metadata.model_dump(), "embedding_model": self._gateway.model_name, "embedding_dimensions": len(vectors[0])})

        logger.debug("[INGEST] Embedded %d chunk(s) of '%s' in %.1fms.", len(chunks), chunks[0].source_id, (time.perf_counter() - t_embed) * 1000)
        return [EmbeddedDocument(document_id=f"{chunk.source_id}#{chunk.chunk_index}", chunk=chunk, vector=vector, metadata=stamped) for chunk, vector in zip(chunks, vectors)]


    def _add(self, documents: list[EmbeddedDocument]) -> int:
        if not documents:
            return 0
        return self._store.add_documents(documents)

    # ══════════════════════════════════════════════════════════════════
    #  FILE READING
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def _read_file(filepath: Path) -> str:
        """Read a ``.txt`` / ``.md`` file (UTF-8, latin-1 fallback)."""
        try:
            return filepath.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return filepath.read_text(encoding="latin-1")

    # ══════════════════════════════════════════════════════════════════
    #  MD5 CACHING
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def _compute_file_hash(filepath: Path) -> str:
        """Return the MD5 hex digest of a file's contents."""
        hasher = hashlib.md5()
        with open(filepath, "rb") as f:
            for block in iter(lambda: f.read(8192), b""):
                hasher.update(block)
        return hasher.hexdigest()


    def _load_hash_cache(self) -> dict[str, str]:
        """Load the hash cache from disk (or return empty dict)."""
        if self._hash_cache_path.exists():
            try:
                return json.loads(self._hash_cache_path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError):
                logger.warning("Corrupt hash cache — starting fresh.")
        return {}


    def _save_hash_cache(self) -> None:
        """Persist the hash cache to disk."""
        self._hash_cache_path.parent.mkdir(parents=True, exist_ok=True)
        self._hash_cache_path.write_text(json.dumps(self._hash_cache, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.debug("Hash cache saved to %s", self._hash_cache_path)


    def clear_hash_cache(self) -> None:
        """Forget every cached hash (forces a full re-ingest)."""
        self._hash_cache = {}
        if self._hash_cache_path.exists():
            self._hash_cache_path.unlink()

    # ── Summary helper ─────────────────────────────────────────────────

    @staticmethod
    def _summary(total: int, processed: int, skipped: int, chunks: int, elapsed: float) -> dict[str, Any]:
        return {"total_files": total, "files_processed": processed, "files_skipped": skipped, "total_chunks": chunks, "elapsed_seconds": round(elapsed, 2)}
