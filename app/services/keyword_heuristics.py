"""Academic keyword heuristics for the document gates.

Two checks share one vocabulary:

1. ``quick_check`` - distinct keywords in a short prefix (soft gate at upload,
   the user can override a failure)
2. ``density_check`` - keyword density over a larger sample (hard gate before
   the model call, no override)

Both gates only screen out clearly unrelated uploads; neither classifies
documents.
"""

import re
from typing import FrozenSet, List

from app.models.analysis import KeywordAssessment, KeywordMatch


ACADEMIC_KEYWORDS: FrozenSet[str] = frozenset({
    "syllabus",
    "university",
    "semester",
    "unit",
    "marks",
    "question",
    "exam",
    "paper",
    "course",
    "module",
    "credit",
    "curriculum",
    "assessment",
    "topic",
    "chapter",
})

# Hard gate thresholds
MIN_DISTINCT_KEYWORDS = 2
MIN_DENSITY_SCORE = 0.3

_KEYWORD_PATTERNS = {
    keyword: re.compile(re.escape(keyword), re.IGNORECASE)
    for keyword in ACADEMIC_KEYWORDS
}


def count_distinct_keywords(text: str) -> KeywordMatch:
    """Count vocabulary terms occurring anywhere in ``text`` (substring match)."""
    if not text or not isinstance(text, str):
        return KeywordMatch(count=0, matched=[])

    lower = text.lower()
    matched: List[str] = sorted(kw for kw in ACADEMIC_KEYWORDS if kw in lower)
    return KeywordMatch(count=len(matched), matched=matched)


def quick_check(text: str, prefix_chars: int = 1000, min_distinct: int = 2) -> bool:
    """Return True if the first ``prefix_chars`` hold at least ``min_distinct`` keywords."""
    prefix = (text or "")[:prefix_chars]
    return count_distinct_keywords(prefix).count >= min_distinct


def density_check(text: str) -> KeywordAssessment:
    """Score ``text`` by keyword occurrences per hundred words.

    ``density_score = min(100, 100 * occurrences / word_count)``, where
    occurrences counts repeats and overlapping terms independently.

    Args:
        text: Extracted document text

    Returns:
        KeywordAssessment; passed iff at least ``MIN_DISTINCT_KEYWORDS``
        distinct terms and a density of ``MIN_DENSITY_SCORE`` or more.
    """
    if not text or not isinstance(text, str):
        return KeywordAssessment(
            distinct_keyword_count=0,
            total_occurrences=0,
            density_score=0.0,
            passed=False,
        )

    word_count = len(text.split())
    total_occurrences = sum(
        len(pattern.findall(text)) for pattern in _KEYWORD_PATTERNS.values()
    )

    if word_count > 0:
        density_score = min(100.0, 100.0 * total_occurrences / word_count)
    else:
        density_score = 0.0

    distinct_count = count_distinct_keywords(text).count
    passed = distinct_count >= MIN_DISTINCT_KEYWORDS and density_score >= MIN_DENSITY_SCORE

    return KeywordAssessment(
        distinct_keyword_count=distinct_count,
        total_occurrences=total_occurrences,
        density_score=density_score,
        passed=passed,
    )
