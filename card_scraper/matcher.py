"""Fuzzy name matching used to pick a search result for a card query."""

from typing import List, Optional, Tuple

from loguru import logger

from card_scraper.normalizer import TRADEMARK_PATTERN
from card_scraper.records import SearchResult

DEFAULT_MIN_CONFIDENCE = 0.5

IMPORTANT_KEYWORDS = [
    "chase",
    "amex",
    "american express",
    "citi",
    "capital one",
    "discover",
    "wells fargo",
    "bank of america",
    "freedom",
    "sapphire",
    "venture",
    "platinum",
    "gold",
    "preferred",
    "unlimited",
    "flex",
    "rewards",
]


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, strip trademark glyphs and collapse whitespace."""
    if not text:
        return ""
    return " ".join(TRADEMARK_PATTERN.sub("", text.lower()).split())


def calculate_match_score(query: str, result_name: str) -> float:
    """Score how well a result name matches a query, from 0.0 to 1.0."""
    normalized_query = normalize_text(query)
    normalized_name = normalize_text(result_name)

    if not normalized_query or not normalized_name:
        return 0.0

    if normalized_query == normalized_name:
        return 1.0
    if normalized_query in normalized_name:
        return 0.9
    if normalized_name in normalized_query:
        return 0.85

    query_words = [w for w in normalized_query.split() if len(w) > 2]
    name_words = [w for w in normalized_name.split() if len(w) > 2]
    if not query_words or not name_words:
        return 0.0

    matching_words = 0
    for query_word in query_words:
        if any(query_word in name_word or name_word in query_word for name_word in name_words):
            matching_words += 1

    word_score = matching_words / max(len(query_words), len(name_words))

    keyword_bonus = 0.0
    for keyword in IMPORTANT_KEYWORDS:
        if keyword in normalized_query and keyword in normalized_name:
            keyword_bonus += 0.1

    return min(0.8, word_score * 0.7 + keyword_bonus)


def rank_results(query: str, results: List[SearchResult]) -> List[Tuple[SearchResult, float]]:
    """Score results and sort by score descending; ties keep their original order."""
    scored = [(result, calculate_match_score(query, result.name)) for result in results]
    return sorted(scored, key=lambda item: item[1], reverse=True)


def find_best_match(
    query: str,
    results: List[SearchResult],
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
) -> Optional[SearchResult]:
    """Pick the best search result for a query.

    Below ``min_confidence`` the first result is still returned (with a warning)
    so callers always get a candidate when the search produced any.
    """
    if not results:
        return None

    ranked = rank_results(query, results)
    logger.debug(
        "Match scores for '{}': {}",
        query,
        [(result.name, round(score, 2)) for result, score in ranked],
    )

    best, best_score = ranked[0]
    if best_score >= min_confidence:
        return best

    logger.warning(
        "No confident match for '{}' (best score {:.2f}), returning first result '{}'",
        query,
        best_score,
        results[0].name,
    )
    return results[0]
