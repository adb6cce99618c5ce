"""Text normalization for artist, venue and song names.

Three concerns live here:

1. **Natural-key normalization** -- ``normalize_key`` lowercases, folds
   accents and strips every non-alphanumeric character so that
   "Guns N' Roses", "guns n roses" and "GUNS-N-ROSES" share one key.
   Keys built from it identify shows and songs across providers.

2. **Fuzzy similarity** -- rapidfuzz scoring on a 0--100 scale, the same
   scale MusicBrainz uses for its own ``ext:score``.

3. **Catalog title hygiene** -- cleaning "Remastered" suffixes and
   spotting live recordings and remixes so the song catalog stays
   studio-only.
"""

from __future__ import annotations

import re
import unicodedata

from rapidfuzz import fuzz, process

_NON_ALNUM = re.compile(r"[^0-9a-z]+")


def normalize_key(value: str | None) -> str:
    """Return the lowercase, accent-folded, alphanumeric-only form of *value*.

    >>> normalize_key("Beyoncé")
    'beyonce'
    >>> normalize_key("  The Black Keys! ")
    'theblackkeys'
    """
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value)
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM.sub("", ascii_only.lower())


def normalize_display_name(name: str) -> str:
    """Collapse whitespace in a display name without changing its case."""
    return re.sub(r"\s+", " ", name).strip()


def similarity(left: str, right: str) -> float:
    """Return a 0--100 similarity score between two names.

    ``token_sort_ratio`` ignores word order, so "Cox Carl" and
    "Carl Cox" score 100.
    """
    if not left or not right:
        return 0.0
    return float(fuzz.token_sort_ratio(left.lower(), right.lower()))


def fuzzy_match(
    query: str,
    candidates: list[str],
    threshold: float = 90.0,
) -> tuple[str, float] | None:
    """Find the best fuzzy match for *query* among *candidates*.

    Args:
        query: The string to match.
        candidates: Candidate strings.
        threshold: Minimum score on the 0--100 scale.

    Returns:
        A ``(best_match, score)`` tuple, or ``None`` if nothing reaches
        the threshold.
    """
    if not candidates:
        return None

    result = process.extractOne(
        query,
        candidates,
        scorer=fuzz.token_sort_ratio,
        processor=str.lower,
        score_cutoff=threshold,
    )
    if result is None:
        return None

    match_str, score, _ = result
    return (match_str, float(score))


# ------------------------------------------------------------------
# Catalog title hygiene
# ------------------------------------------------------------------

_REMASTER_SUFFIX = re.compile(
    r"\s*[-–]\s*(?:\d{4}\s+)?(?:digital(?:ly)?\s+)?remaster(?:ed)?(?:\s+\d{4})?(?:\s+version)?\s*$",
    re.IGNORECASE,
)
_REMASTER_PAREN = re.compile(
    r"\s*[(\[](?:\d{4}\s+)?(?:digital(?:ly)?\s+)?remaster(?:ed)?[^)\]]*[)\]]",
    re.IGNORECASE,
)
_VERSION_SUFFIX = re.compile(
    r"\s*[-–]\s*(?:mono|stereo|single|radio)\s+(?:version|edit|mix)\s*$",
    re.IGNORECASE,
)

_LIVE_TITLE = re.compile(
    r"\(live\b|\[live\b|[-–]\s*live\b|\blive\s+(?:at|from|in|on)\b"
    r"|\blive\s+version\b|\bunplugged\b|\bin\s+concert\b",
    re.IGNORECASE,
)
_LIVE_ALBUM = re.compile(
    r"\blive\b|\bunplugged\b|\bin\s+concert\b|\bon\s+stage\b",
    re.IGNORECASE,
)
_REMIX_TITLE = re.compile(r"\bremix(?:ed)?\b|\brmx\b|\bre-?edit\b", re.IGNORECASE)


def clean_song_title(title: str) -> str:
    """Strip remaster/version decorations from a track title.

    "Paint It Black - Remastered 2009" becomes "Paint It Black".
    """
    cleaned = _REMASTER_PAREN.sub("", title)
    cleaned = _REMASTER_SUFFIX.sub("", cleaned)
    cleaned = _VERSION_SUFFIX.sub("", cleaned)
    return normalize_display_name(cleaned)


def is_likely_live_title(title: str) -> bool:
    """Return ``True`` for titles such as "Song (Live at Wembley)"."""
    return bool(_LIVE_TITLE.search(title or ""))


def is_likely_live_album(name: str) -> bool:
    """Return ``True`` for album names that indicate a concert recording."""
    return bool(_LIVE_ALBUM.search(name or ""))


def is_remix_title(title: str) -> bool:
    return bool(_REMIX_TITLE.search(title or ""))
