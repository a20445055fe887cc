"""Normalization of scraped strings into typed, comparable card fields."""

import random
import re
import string
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from card_scraper.records import RATEHUB, WALLETHUB, ScrapedCardData

TRADEMARK_PATTERN = re.compile(r"[®™©]")
FEE_NUMBER_PATTERN = re.compile(r"\d[\d,]*(?:\.\d+)?")

PLACEHOLDER_VALUES = {"", "n/a", "not specified", "see details"}

US_ISSUER_KEYWORDS = [
    "chase",
    "amex",
    "citi",
    "capital one",
    "discover",
    "wells fargo",
    "bank of america",
]
CA_ISSUER_KEYWORDS = [
    "td",
    "bmo",
    "cibc",
    "rbc",
    "scotiabank",
    "tangerine",
    "simplii",
    "mbna",
    "american express",
]
ISSUER_KEYWORDS = US_ISSUER_KEYWORDS + [k for k in CA_ISSUER_KEYWORDS if k not in US_ISSUER_KEYWORDS]

# Search tokens kept even when shorter than the minimum token length
SHORT_TOKEN_WHITELIST = {"td", "rbc", "bmo", "pc"}
MIN_TOKEN_LENGTH = 3

PROVIDERS = {
    "TD": ["TD", "Toronto-Dominion"],
    "CIBC": ["CIBC"],
    "RBC": ["RBC", "Royal Bank"],
    "BMO": ["BMO", "Bank of Montreal"],
    "Scotiabank": ["Scotiabank", "Scotia"],
    "American Express": ["Amex", "American Express"],
    "MBNA": ["MBNA"],
    "Tangerine": ["Tangerine"],
    "Rogers": ["Rogers"],
    "PC Financial": ["PC Financial", "President's Choice"],
    "National Bank": ["National Bank"],
    "Desjardins": ["Desjardins"],
    "HSBC": ["HSBC"],
    "Capital One": ["Capital One"],
    "Neo": ["Neo Financial"],
    "Brim": ["Brim"],
    "Home Trust": ["Home Trust"],
    "KOHO": ["KOHO"],
    "Wealthsimple": ["Wealthsimple"],
    "Canadian Tire": ["Triangle", "Canadian Tire"],
    "Simplii": ["Simplii"],
    "Chase": ["Chase"],
    "Citi": ["Citi"],
    "Discover": ["Discover"],
    "Wells Fargo": ["Wells Fargo"],
    "Bank of America": ["Bank of America"],
}

LOCALES = {
    WALLETHUB: {
        "country": "United States",
        "countryCode": "US",
        "currency": "USD",
        "currencySymbol": "$",
    },
    RATEHUB: {
        "country": "Canada",
        "countryCode": "CA",
        "currency": "CAD",
        "currencySymbol": "$",
    },
}

CARD_FIELD_GETTERS = [
    ("name", lambda card: card.get("name"), lambda s: s.name),
    ("annualFee", lambda card: card.get("annualFee"), lambda s: s.annual_fee),
    ("annualFeeText", lambda card: card.get("annualFeeText"), lambda s: s.annual_fee_text),
    ("apr.introApr", lambda card: (card.get("apr") or {}).get("introApr"), lambda s: s.intro_apr),
    ("apr.regularApr", lambda card: (card.get("apr") or {}).get("regularApr"), lambda s: s.regular_apr),
    ("rewards.rate", lambda card: (card.get("rewards") or {}).get("rate"), lambda s: s.rewards_rate),
    ("rewards.bonus", lambda card: (card.get("rewards") or {}).get("bonus"), lambda s: s.rewards_bonus),
    ("rewards.type", lambda card: (card.get("rewards") or {}).get("type"), lambda s: s.rewards_type),
    ("ratings.overall", lambda card: (card.get("ratings") or {}).get("overall"), lambda s: s.overall_rating),
    ("ratings.fees", lambda card: (card.get("ratings") or {}).get("fees"), lambda s: s.fees_rating),
    ("ratings.rewards", lambda card: (card.get("ratings") or {}).get("rewards"), lambda s: s.rewards_rating),
    ("ratings.cost", lambda card: (card.get("ratings") or {}).get("cost"), lambda s: s.cost_rating),
    ("creditRequired", lambda card: card.get("creditRequired"), lambda s: s.credit_required),
    ("pros", lambda card: list(card.get("pros") or []), lambda s: list(s.pros)),
    ("cons", lambda card: list(card.get("cons") or []), lambda s: list(s.cons)),
]


def _utcnow_naive() -> datetime:
    """Return UTC datetime without tzinfo for DB compatibility."""
    return datetime.utcnow()


def clean_name(name: Optional[str]) -> str:
    """Strip trademark glyphs and collapse whitespace."""
    if not name:
        return ""
    return " ".join(TRADEMARK_PATTERN.sub("", name).split())


def slugify(name: Optional[str]) -> str:
    """Derive the URL-safe dedup key from a card name.

    Idempotent: ``slugify(slugify(x)) == slugify(x)``.
    """
    if not name:
        return ""
    lowered = TRADEMARK_PATTERN.sub("", name).replace("*", "").lower()
    slug = re.sub(r"[^a-z0-9]+", "-", lowered)
    return slug.strip("-")


def parse_fee(text: Optional[str]) -> int:
    """Parse an annual fee text ("$1,234", "CAD 120") into whole units; 0 when unparsable."""
    if not text:
        return 0
    cleaned = text.replace("$", " ").replace("\xa0", " ")
    match = FEE_NUMBER_PATTERN.search(cleaned)
    if not match:
        return 0
    try:
        return int(float(match.group().replace(",", "")))
    except ValueError:
        return 0


def format_fee(amount: int) -> str:
    return f"${amount}"


def infer_rewards_type(rewards_rate: Optional[str]) -> Optional[str]:
    """Classify a rewards-rate phrase as cashback, miles or points."""
    if not rewards_rate:
        return None
    lower = rewards_rate.lower()
    if "cash" in lower or "%" in lower:
        return "cashback"
    if "mile" in lower:
        return "miles"
    if "point" in lower or "pt" in lower:
        return "points"
    return None


def normalize_credit_tier(raw: Optional[str]) -> str:
    """Normalize an extracted credit tier token ("excellent" -> "Excellent")."""
    if not raw:
        return "N/A"
    value = " ".join(raw.split())
    if value.isdigit():
        return value
    return value.title()


def clamp_rating(value: Any) -> Optional[float]:
    """Return the rating as float when it falls on the 0-5 scale, else None."""
    if value is None:
        return None
    try:
        rating = float(value)
    except (TypeError, ValueError):
        return None
    if rating != rating or rating < 0 or rating > 5:
        return None
    return rating


def extract_provider(name: Optional[str]) -> Optional[str]:
    """Detect the card issuer from its name."""
    if not name:
        return None
    name_lower = name.lower()
    for provider, keywords in PROVIDERS.items():
        for keyword in keywords:
            if _contains_keyword(name_lower, keyword.lower()):
                return provider
    return None


def _contains_keyword(text: str, keyword: str) -> bool:
    # Short keywords like "td" must match whole words only
    if len(keyword) < 4:
        return re.search(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])", text) is not None
    return keyword in text


def to_base36(number: int) -> str:
    alphabet = string.digits + string.ascii_lowercase
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(alphabet[remainder])
    return "".join(reversed(digits))


def generate_card_id(slug: str) -> str:
    """Generate an opaque card id: slug plus a time-based and random suffix."""
    timestamp = to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"{slug}-{timestamp}{suffix}"


def _add_tokens(terms: set, text: str, pattern: str = r"\s+"):
    for word in re.split(pattern, text):
        if len(word) >= MIN_TOKEN_LENGTH or word in SHORT_TOKEN_WHITELIST:
            terms.add(word)


def generate_search_terms(card: ScrapedCardData) -> List[str]:
    """Build the denormalized token index used for term-membership search."""
    terms = set()
    lower_name = card.name.lower()

    _add_tokens(terms, lower_name)

    variation = re.sub(r"[^\w\s]", " ", lower_name.replace(".", "").replace("-", " "))
    _add_tokens(terms, variation)

    _add_tokens(terms, card.slug, pattern=r"-")

    if card.rewards_type:
        terms.add(card.rewards_type)

    credit = (card.credit_required or "").lower()
    if credit not in PLACEHOLDER_VALUES:
        _add_tokens(terms, credit, pattern=r"[,\s]+")

    if card.annual_fee == 0:
        terms.add("no annual fee")
        terms.add("free")

    for issuer in ISSUER_KEYWORDS:
        if _contains_keyword(lower_name, issuer):
            terms.add(issuer)

    if card.provider:
        terms.add(card.provider.lower())

    if card.source == RATEHUB:
        terms.update({"canada", "canadian", "cad"})

    terms.discard("")
    return sorted(terms)


def _image_filename(image_url: str, slug: str) -> str:
    if not image_url:
        return ""
    return image_url.rstrip("/").split("/")[-1] or f"{slug}.webp"


def build_card(
    scraped: ScrapedCardData,
    image_url: str,
    image_source_url: Optional[str] = None,
    existing_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Map a scraped record onto the persisted card document."""
    now = now or _utcnow_naive()
    locale = LOCALES.get(scraped.source, LOCALES[WALLETHUB])

    card = {
        "id": existing_id or generate_card_id(scraped.slug),
        "name": scraped.name,
        "slug": scraped.slug,
        "annualFee": scraped.annual_fee,
        "annualFeeText": scraped.annual_fee_text,
        "apr": {
            "introApr": scraped.intro_apr,
            "regularApr": scraped.regular_apr,
        },
        "rewards": {
            "rate": scraped.rewards_rate,
            "bonus": scraped.rewards_bonus,
            "type": scraped.rewards_type,
        },
        "ratings": {
            "overall": scraped.overall_rating,
            "fees": scraped.fees_rating,
            "rewards": scraped.rewards_rating,
            "cost": scraped.cost_rating,
        },
        "pros": list(scraped.pros),
        "cons": list(scraped.cons),
        "creditRequired": scraped.credit_required,
        "provider": scraped.provider,
        "imageUrl": image_url or "",
        "imageFilename": _image_filename(image_url, scraped.slug),
        "imageSourceUrl": image_source_url if image_url else None,
        "sourceUrl": scraped.source_url,
        "createdAt": now,
        "updatedAt": now,
        "searchTerms": generate_search_terms(scraped),
    }
    card.update(locale)
    return card


def compare_cards(existing: Dict[str, Any], scraped: ScrapedCardData) -> List[str]:
    """Return the names of comparable fields whose values changed."""
    changes = []
    for field_name, existing_getter, scraped_getter in CARD_FIELD_GETTERS:
        if existing_getter(existing) != scraped_getter(scraped):
            changes.append(field_name)
    return changes


def merge_card_update(
    existing: Dict[str, Any],
    scraped: ScrapedCardData,
    new_image_url: Optional[str] = None,
    image_source_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Merge freshly scraped values into a stored card, keeping id and createdAt."""
    merged = build_card(
        scraped,
        image_url=existing.get("imageUrl") or "",
        existing_id=existing["id"],
        now=now,
    )
    merged["createdAt"] = existing.get("createdAt")
    merged["imageFilename"] = existing.get("imageFilename") or ""
    merged["imageSourceUrl"] = existing.get("imageSourceUrl")
    if not scraped.source_url:
        merged["sourceUrl"] = existing.get("sourceUrl")
    if new_image_url:
        merged["imageUrl"] = new_image_url
        merged["imageFilename"] = _image_filename(new_image_url, scraped.slug) or existing.get("imageFilename", "")
        merged["imageSourceUrl"] = image_source_url
    return merged
