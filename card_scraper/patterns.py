"""Named regex patterns for financial text found on card pages.

Each field is parsed by an ordered list of ``FieldPattern`` entries; the first
pattern whose regex matches and whose handler returns a value wins. Keeping the
patterns as data makes every supported phrasing enumerable and testable on its
own.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from card_scraper.normalizer import clamp_rating, format_fee, normalize_credit_tier, parse_fee


@dataclass(frozen=True)
class FieldPattern:
    """A named regex paired with the handler that turns its match into a value."""

    name: str
    regex: "re.Pattern"
    handler: Callable[["re.Match"], Any]

    def apply(self, text: str) -> Optional[Any]:
        match = self.regex.search(text)
        if not match:
            return None
        return self.handler(match)


def first_match(patterns: List[FieldPattern], text: Optional[str]) -> Tuple[Optional[Any], Optional[str]]:
    """Return ``(value, pattern_name)`` for the first pattern that yields a value."""
    if not text:
        return None, None
    for pattern in patterns:
        value = pattern.apply(text)
        if value is not None:
            return value, pattern.name
    return None, None


def _fee_from_group(match) -> Tuple[int, str]:
    fee = parse_fee(match.group(1))
    return fee, format_fee(fee)


def _no_fee(_match) -> Tuple[int, str]:
    return 0, format_fee(0)


def _stripped_group(match) -> Optional[str]:
    value = match.group(1).strip()
    return value or None


def _whole_match(match) -> Optional[str]:
    value = match.group(0).strip()
    return value or None


def _rating_from_group(match) -> Optional[float]:
    return clamp_rating(match.group(1))


def _bonus_from_group(match) -> Optional[str]:
    value = match.group(1).strip()
    return value[:100] or None


def _credit_from_group(match) -> str:
    return normalize_credit_tier(match.group(1))


def _reward_range(match) -> str:
    return f"{match.group(1)} - {match.group(2)} per dollar"


def _points_bonus(match) -> str:
    return f"{match.group(1)} points"


ANNUAL_FEE_PATTERNS = [
    FieldPattern(
        "labelled_fee",
        re.compile(r"annual\s*fee[:\s]*\$?\s*([\d,]+)(?![\d,]*\s*%)", re.I),
        _fee_from_group,
    ),
    FieldPattern("fee_before_label", re.compile(r"\$([\d,]+)\s*annual", re.I), _fee_from_group),
    FieldPattern("no_annual_fee", re.compile(r"no\s+annual\s+fee", re.I), _no_fee),
]

REGULAR_APR_PATTERNS = [
    FieldPattern(
        "regular_apr",
        re.compile(r"regular\s*apr[:\s]*(\d[\d.]*%?\s*-?\s*[\d.]*%?)", re.I),
        _stripped_group,
    ),
    FieldPattern(
        "purchase_apr",
        re.compile(r"purchase\s*apr[:\s]*(\d[\d.]*%?\s*-?\s*[\d.]*%?)", re.I),
        _stripped_group,
    ),
]

INTRO_APR_PATTERNS = [
    FieldPattern("intro_apr", re.compile(r"intro\s*apr[:\s]*\d[\d.]*%?[^.\n]*", re.I), _whole_match),
    FieldPattern("zero_for_months", re.compile(r"0%\s*(?:apr\s*)?for\s*\d+\s*months", re.I), _whole_match),
]

REWARDS_RATE_PATTERNS = [
    FieldPattern(
        "rate_with_unit",
        re.compile(r"(\d+(?:\.\d+)?%?\s*(?:cash\s*back|cashback|points?|miles?))", re.I),
        _stripped_group,
    ),
]

BONUS_PATTERNS = [
    FieldPattern("bonus", re.compile(r"(?:sign[- ]?up\s*)?bonus[:\s]*([^\n.]+)", re.I), _bonus_from_group),
]

CREDIT_TIER_PATTERNS = [
    FieldPattern(
        "credit_label",
        re.compile(
            r"credit\s*(?:score|needed|required)[:\s]*(excellent|good|fair|poor|bad|no credit|\d{3})",
            re.I,
        ),
        _credit_from_group,
    ),
]

OVERALL_RATING_PATTERNS = [
    FieldPattern("wallethub_rating", re.compile(r"WalletHub Rating[:\s]*(\d+\.?\d*)", re.I), _rating_from_group),
]

FEES_RATING_PATTERNS = [
    FieldPattern("user_reviews", re.compile(r"user\s*reviews?[:\s]*(\d+\.?\d*)", re.I), _rating_from_group),
]

REWARDS_RATING_PATTERNS = [
    FieldPattern("editor_review", re.compile(r"editor'?s?\s*review[:\s]*(\d+\.?\d*)", re.I), _rating_from_group),
]

COST_RATING_PATTERNS = [
    FieldPattern("market_comparison", re.compile(r"market\s*comparison[:\s]*(\d+\.?\d*)", re.I), _rating_from_group),
]

RATEHUB_FEE_PATTERNS = [
    FieldPattern("labelled_fee", re.compile(r"Annual fee[\s\S]*?\$([\d,]+)", re.I), _fee_from_group),
    FieldPattern("after_fee", re.compile(r"after \$([\d,]+)\s*annual fee", re.I), _fee_from_group),
    FieldPattern("no_annual_fee", re.compile(r"no\s+annual\s+fee", re.I), _no_fee),
]

RATEHUB_FIRST_YEAR_WAIVED = re.compile(r"first year waived|\$0 first year", re.I)

RATEHUB_REWARDS_PATTERNS = [
    FieldPattern(
        "earn_rewards_range",
        re.compile(
            r"Earn rewards[\s\S]*?(\d+(?:\.\d+)?(?:pts|pt|x|%)?)\s*[-–]\s*(\d+(?:\.\d+)?(?:pts|pt|x|%)?)",
            re.I,
        ),
        _reward_range,
    ),
] + REWARDS_RATE_PATTERNS

RATEHUB_BONUS_PATTERNS = [
    FieldPattern(
        "welcome_bonus",
        re.compile(
            r"Welcome bonus[\s\S]*?Earn up to\s*([\d,]+\s*(?:points?|miles?)?(?:\s*\([^)]+\))?)",
            re.I,
        ),
        _stripped_group,
    ),
    FieldPattern("earn_up_to", re.compile(r"Earn up to\s*([\d,]+)\s*(?:points?|miles?)", re.I), _points_bonus),
]

RATEHUB_RATING_PATTERNS = [
    FieldPattern(
        "ratehub_rating",
        re.compile(r"(\d+(?:\.\d+)?)\s*(?:/\s*5|Ratehub rated|stars?)", re.I),
        _rating_from_group,
    ),
]

RATEHUB_INTEREST_PATTERNS = [
    FieldPattern("interest_rate", re.compile(r"(\d+\.?\d*%)\s*(?:interest|apr)", re.I), _stripped_group),
]
