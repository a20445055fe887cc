"""In-memory records passed between fetchers, extractors and the gateway."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

WALLETHUB = "wallethub"
RATEHUB = "ratehub"


@dataclass
class ScrapedCardData:
    """Raw extraction result for one card.

    Produced fresh on every scrape and never persisted directly. Every field the
    page may not provide is optional; defaults mirror what the site shows when
    a value is absent.
    """

    name: str
    slug: str
    source: str = WALLETHUB
    annual_fee: int = 0
    annual_fee_text: str = "$0"
    intro_apr: Optional[str] = None
    regular_apr: str = "N/A"
    rewards_rate: Optional[str] = None
    rewards_bonus: Optional[str] = None
    rewards_type: Optional[str] = None
    overall_rating: Optional[float] = None
    fees_rating: Optional[float] = None
    rewards_rating: Optional[float] = None
    cost_rating: Optional[float] = None
    pros: List[str] = field(default_factory=list)
    cons: List[str] = field(default_factory=list)
    credit_required: str = "N/A"
    image_url: Optional[str] = None
    source_url: Optional[str] = None
    provider: Optional[str] = None


@dataclass
class SearchResult:
    """One candidate from a source-site search page."""

    name: str
    url: str
    image_url: Optional[str] = None
    annual_fee_text: str = "N/A"
    rating: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "imageUrl": self.image_url,
            "annualFeeText": self.annual_fee_text,
            "rating": self.rating,
        }


@dataclass
class ListingCandidate:
    """A card widget found on a category/listing page."""

    name: str
    url: Optional[str] = None
    image_url: Optional[str] = None
    container_text: str = ""
    scraped: Optional[ScrapedCardData] = None
