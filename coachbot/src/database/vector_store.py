"""
CoachBot - CoachVectorStore
============================
OOP wrapper around LanceDB providing a clean interface for:
  • Lazy table creation with a strict PyArrow schema (vector width is
    fixed by the first batch written)
  • Insertion of ``EmbeddedDocument`` rows and supersession by source
  • Cosine vector search with coach / user / access-tier filtering
  • A plain filtered scan used as the non-vector fallback

Design decisions:
  • **Singleton DB connection** — ``_get_connection()`` caches the
    ``lancedb.DBConnection`` per path to avoid file-lock issues.
  • **No embedding here** — vectors arrive pre-computed from the
    ``EmbeddingGateway``; this module only stores and queries.
  • **Typed failures** — read errors raise ``RetrievalFailed``, write
    errors raise ``PersistenceFailed``.

Usage:
    from coachbot.src.database.vector_store import CoachVectorStore
    store = CoachVectorStore()
    store.add_documents(embedded_docs)
    rows = store.vector_search(query_vector, where="coach_id = 'keto'", limit=10)
"""

from __future__ import annotations

import json
import threading
from typing import Any

import lancedb
import pyarrow as pa

from coachbot.config.settings import settings
from coachbot.src.core.errors import PersistenceFailed, RetrievalFailed
from coachbot.src.core.models import ACCESS_TIERS, EmbeddedDocument, RetrievalFilters
from coachbot.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
DocumentRecord = dict[str, str | int | list[float]]
SearchRow = dict[str, Any]

# ── Constants ──────────────────────────────────────────────────────────
_DB_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}

# Columns promoted out of ``DocumentMetadata``; everything else is
# serialised into ``metadata_json``.
_METADATA_COLUMNS = ("coach_id", "user_id", "title", "category", "access_tier", "source_type")


def build_schema(dimensions: int) -> pa.Schema:
    """Return the table schema for *dimensions*-wide vectors."""
    return pa.schema([
        pa.field("vector", pa.list_(pa.float32(), dimensions)),
        pa.field("document_id", pa.utf8()),
        pa.field("content", pa.utf8()),
        pa.field("source_id", pa.utf8()),
        pa.field("chunk_index", pa.int32()),
        pa.field("total_chunks", pa.int32()),
        pa.field("start_char", pa.int32()),
        pa.field("end_char", pa.int32()),
        pa.field("coach_id", pa.utf8()),
        pa.field("user_id", pa.utf8()),
        pa.field("title", pa.utf8()),
        pa.field("category", pa.utf8()),
        pa.field("access_tier", pa.utf8()),
        pa.field("source_type", pa.utf8()),
        pa.field("metadata_json", pa.utf8()),
    ])


def _get_connection(db_path: str) -> lancedb.DBConnection:
    """Return a thread-safe singleton ``lancedb.DBConnection`` for *db_path*."""
    if db_path not in _db_connection_cache:
        with _DB_LOCK:
            if db_path not in _db_connection_cache:
                logger.info("Opening new LanceDB connection: %s", db_path)
                _db_connection_cache[db_path] = lancedb.connect(db_path)
    return _db_connection_cache[db_path]


def _quote(value: str) -> str:
    """SQL string literal with single quotes escaped."""
    return "'" + value.replace("'", "''") + "'"


def build_where(filters: RetrievalFilters) -> str:
    """
    Translate ``RetrievalFilters`` into a LanceDB SQL predicate.

    - ``coach_id`` must match exactly.
    - Without ``user_id`` only coach-wide rows (``user_id = ''``) match;
      with it, the user's private rows match as well.
    - ``access_tier`` admits every tier ranked at or below it.
    """
    clauses = [f"coach_id = {_quote(filters.coach_id)}"]

    if filters.user_id:
        clauses.append(f"(user_id = '' OR user_id = {_quote(filters.user_id)})")
    else:
        clauses.append("user_id = ''")

    if filters.access_tier:
        allowed = ACCESS_TIERS[: ACCESS_TIERS.index(filters.access_tier) + 1]
        clauses.append("access_tier IN (" + ", ".join(_quote(t) for t in allowed) + ")")

    return " AND ".join(clauses)


class CoachVectorStore:
    """
    High-level abstraction over a LanceDB vector table.

    Parameters
    ----------
    db_path
        Override the database directory.  Defaults to ``settings.LANCEDB_PATH``.
    table_name
        Override the table name.  Defaults to ``settings.LANCEDB_TABLE_NAME``.
    """

    __slots__ = ("_db_path", "_table_name", "db", "table")

    def __init__(self, db_path: str | None = None, table_name: str | None = None) -> None:
        self._db_path: str = str(db_path or settings.LANCEDB_PATH)
        self._table_name: str = table_name or settings.LANCEDB_TABLE_NAME
        self.db: lancedb.DBConnection | None = None
        self.table: lancedb.table.Table | None = None
        self._connect()


    def _connect(self) -> None:
        """Open (or re-use) the LanceDB connection and the table if present."""
        try:
            self.db = _get_connection(self._db_path)
            if self._table_name in self.db.table_names():
                self.table = self.db.open_table(self._table_name)
                logger.info("Opened existing table '%s' (%d rows).", self._table_name, self.table.count_rows())
            else:
                logger.info("Table '%s' not created yet; it will be created on first write.", self._table_name)
        except OSError as exc:
            logger.error("LanceDB filesystem error at %s: %s", self._db_path, exc)
            raise


    def _ensure_table(self, dimensions: int) -> lancedb.table.Table:
        if self.table is None:
            self.table = self.db.create_table(self._table_name, schema=build_schema(dimensions))  # type: ignore[union-attr]
            logger.info("Created new table '%s' (%d-dim vectors).", self._table_name, dimensions)
        return self.table

    # ══════════════════════════════════════════════════════════════════
    #  WRITES
    # ══════════════════════════════════════════════════════════════════

    def add_documents(self, documents: list[EmbeddedDocument]) -> int:
        """
        Persist embedded chunks.

        Returns
        -------
        int
            Number of rows added.

        Raises
        ------
        PersistenceFailed
            If the write fails.
        """
        if not documents:
            return 0

        records = [self._to_record(doc) for doc in documents]
        try:
            table = self._ensure_table(len(documents[0].vector))
            table.add(records)
        except (OSError, ValueError, RuntimeError) as exc:
            logger.error("Failed to write %d record(s) to LanceDB: %s", len(records), exc)
            raise PersistenceFailed(f"Vector store write failed: {type(exc).__name__}") from exc

        logger.info("Added %d chunk(s). Table '%s' now has %d total rows.", len(records), self._table_name, self.count())
        return len(records)


    def delete_where(self, where: str) -> None:
        """Delete every row matching the SQL predicate *where*."""
        if self.table is None:
            return
        try:
            self.table.delete(where)
        except (OSError, ValueError, RuntimeError) as exc:
            logger.error("Failed to delete rows (%s): %s", where, exc)
            raise PersistenceFailed(f"Vector store delete failed: {type(exc).__name__}") from exc
        logger.info("Deleted rows where %s.", where)


    def delete_source(self, source_id: str) -> None:
        """Remove every chunk of *source_id* (first half of a supersede)."""
        self.delete_where(f"source_id = {_quote(source_id)}")


    def delete_coach_source_type(self, coach_id: str, source_type: str) -> None:
        self.delete_where(f"coach_id = {_quote(coach_id)} AND source_type = {_quote(source_type)}")

    # ══════════════════════════════════════════════════════════════════
    #  READS
    # ══════════════════════════════════════════════════════════════════

    def vector_search(self, query_vector: list[float], where: str, limit: int) -> list[SearchRow]:
        """
        Cosine nearest-neighbour search, pre-filtered by *where*.

        Rows carry LanceDB's ``_distance`` (cosine distance, 0 = identical).

        Raises
        ------
        RetrievalFailed
            On any store error.
        """
        if self.table is None:
            return []
        try:
            query = self.table.search(query_vector).distance_type("cosine").where(where, prefilter=True).limit(limit)
            rows: list[SearchRow] = query.to_list()
        except Exception as exc:
            logger.error("[STORE] Vector search failed: %s", exc)
            raise RetrievalFailed(f"Vector search failed: {type(exc).__name__}") from exc

        logger.debug("[STORE] Vector search returned %d row(s) for %s.", len(rows), where)
        return rows


    def scan(self, where: str, limit: int) -> list[SearchRow]:
        """Unranked filtered read (no vector involved)."""
        if self.table is None:
            return []
        try:
            rows: list[SearchRow] = self.table.search().where(where).limit(limit).to_list()
        except Exception as exc:
            logger.error("[STORE] Filtered scan failed: %s", exc)
            raise RetrievalFailed(f"Filtered scan failed: {type(exc).__name__}") from exc
        return rows


    def count(self) -> int:
        """Return the total number of rows in the table."""
        if self.table is None:
            return 0
        return self.table.count_rows()


    def drop_table(self) -> None:
        """Drop the vector table (useful for testing / re-ingestion)."""
        if self.db is None:
            logger.warning("No database connection; nothing to drop.")
            return
        try:
            self.db.drop_table(self._table_name)
            logger.info("Dropped table '%s'.", self._table_name)
        except (ValueError, FileNotFoundError):
            logger.warning("Table '%s' does not exist — nothing to drop.", self._table_name)
        except OSError as exc:
            logger.error("Filesystem error dropping table '%s': %s", self._table_name, exc)
            raise
        finally:
            self.table = None

    # ── Row mapping ────────────────────────────────────────────────────

    @staticmethod
    def _to_record(doc: EmbeddedDocument) -> DocumentRecord:
        meta = doc.metadata.model_dump()
        extra = {k: v for k, v in meta.items() if k not in _METADATA_COLUMNS}
        return {
            "vector": doc.vector,
            "document_id": doc.document_id,
            "content": doc.chunk.content,
            "source_id": doc.chunk.source_id,
            "chunk_index": doc.chunk.chunk_index,
            "total_chunks": doc.chunk.total_chunks,
            "start_char": doc.chunk.start_char,
            "end_char": doc.chunk.end_char,
            **{column: meta[column] for column in _METADATA_COLUMNS},
            "metadata_json": json.dumps(extra, ensure_ascii=False, default=str),
        }


    @staticmethod
    def row_metadata(row: SearchRow) -> dict[str, Any]:
        """Rebuild the flat metadata dict of a stored row."""
        try:
            metadata: dict[str, Any] = json.loads(row.get("metadata_json") or "{}")
        except json.JSONDecodeError:
            metadata = {}
        for column in (*_METADATA_COLUMNS, "source_id", "chunk_index", "total_chunks", "start_char", "end_char"):
            if column in row:
                metadata[column] = row[column]
        return metadata


    def __repr__(self) -> str:
        return f"CoachVectorStore(db='{self._db_path}', table='{self._table_name}', rows={self.count()})"
