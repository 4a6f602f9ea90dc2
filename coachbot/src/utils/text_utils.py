"""
CoachBot - Text Utilities
==========================
Helper functions for text cleaning, normalisation, and
filename-based metadata extraction.

These utilities are consumed primarily by the ``IngestionPipeline``
and should remain stateless and side-effect-free.
"""

from __future__ import annotations

import re
import unicodedata
from pathlib import Path

from coachbot.src.core.models import ACCESS_TIERS


# ── Non-printable character pattern ────────────────────────────────────
# Matches control characters (C0/C1), except \n, \r, \t which we handle
# separately. Also catches BOM, zero-width chars, soft hyphens, etc.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")


# ── Public API ─────────────────────────────────────────────────────────

def clean_text(text: str) -> str:
    """
    Sanitise raw document text for embedding.

    Steps:
        1. Unicode NFC normalisation.
        2. Strip non-printable / zero-width characters and formatting
           artifacts (BOM, soft hyphens, directional marks).
        3. Collapse runs of horizontal whitespace into a single space,
           *preserving* newlines (the chunker prefers line breaks).
        4. Strip leading / trailing whitespace from every line.
        5. Collapse 3+ consecutive blank lines to 2.

    Args:
        text: Raw text extracted from a source file.

    Returns:
        Cleaned, normalised text ready for chunking.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    text = re.sub(r"[^\S\n]+", " ", text)
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


# ── Filename keywords → document category ─────────────────────────────
# Case-insensitive keyword matching against the filename stem; first hit wins.
_CATEGORY_KEYWORDS: list[tuple[str, str]] = [
    ("recipe", "Recipes"),
    ("meal", "Meal Planning"),
    ("fast", "Fasting"),
    ("workout", "Exercise"),
    ("exercise", "Exercise"),
    ("supplement", "Supplements"),
    ("faq", "FAQ"),
    ("science", "Research"),
    ("study", "Research"),
    ("start", "Getting Started"),
    ("basic", "Getting Started"),
]

_DEFAULT_CATEGORY = "General"
_DEFAULT_TIER = "free"
_RE_SEPARATORS = re.compile(r"[_\-\s]+")


def extract_metadata_from_filename(filename: str) -> dict[str, str]:
    """
    Derive title, category and access tier from a document filename.

    A trailing ``__<tier>`` marks the access tier; the rest of the stem
    becomes the title and is scanned for category keywords.

    Examples::

        "keto_basics.md"            → title="Keto Basics", category="Getting Started", access_tier="free"
        "Fasting-Protocols__pro.txt" → title="Fasting Protocols", category="Fasting", access_tier="pro"
        "notes.txt"                 → title="Notes", category="General", access_tier="free"

    Args:
        filename: The file's name (stem + extension), **not** the full path.

    Returns:
        dict with keys ``title``, ``category`` and ``access_tier``.
    """
    stem = Path(filename).stem
    access_tier = _DEFAULT_TIER

    base, sep, suffix = stem.rpartition("__")
    if sep and suffix.lower() in ACCESS_TIERS:
        stem, access_tier = base, suffix.lower()

    lowered = stem.lower()
    category = next((name for keyword, name in _CATEGORY_KEYWORDS if keyword in lowered), _DEFAULT_CATEGORY)
    title = _RE_SEPARATORS.sub(" ", stem).strip().title() or "Untitled"

    return {"title": title, "category": category, "access_tier": access_tier}
