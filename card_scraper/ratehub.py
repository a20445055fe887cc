"""RateHub scraper: Canadian card detail pages and category widgets."""

import re
import time
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from card_scraper.browser import BrowserSession
from card_scraper.config_loader import get_ratehub_categories, get_source_config
from card_scraper.errors import NotFoundError
from card_scraper.normalizer import clean_name, extract_provider, infer_rewards_type, slugify
from card_scraper.patterns import (
    ANNUAL_FEE_PATTERNS,
    RATEHUB_BONUS_PATTERNS,
    RATEHUB_FEE_PATTERNS,
    RATEHUB_FIRST_YEAR_WAIVED,
    RATEHUB_INTEREST_PATTERNS,
    RATEHUB_RATING_PATTERNS,
    RATEHUB_REWARDS_PATTERNS,
    REWARDS_RATE_PATTERNS,
    first_match,
)
from card_scraper.records import RATEHUB, ListingCandidate, ScrapedCardData

WIDGET_ALT_MARKERS = ("Card", "Visa", "Mastercard", "American Express")
WIDGET_ALT_EXCLUDE = ("logo", "icon")
WIDGET_ALT_MIN_LENGTH = 10
WIDGET_ALT_MAX_LENGTH = 100
CONTAINER_MARKERS = ("Annual fee", "Earn rewards", "Welcome bonus")
MAX_ANCESTOR_LEVELS = 10

DETAIL_REGULAR_APR_DEFAULT = "See details"
CREDIT_REQUIRED_DEFAULT = "Not specified"

DETAIL_PAGE_JS = r"""
() => {
  const h1 = document.querySelector('h1');
  let imageUrl = null;
  for (const img of Array.from(document.querySelectorAll('img'))) {
    const alt = (img.alt || '').toLowerCase();
    const src = img.src || '';
    if (alt.includes('card') && src.startsWith('http') && !src.includes('logo') && !src.includes('icon')) {
      imageUrl = src;
      break;
    }
  }
  return {
    title: h1 && h1.textContent ? h1.textContent.trim() : '',
    documentTitle: document.title || '',
    imageUrl: imageUrl,
    pageText: document.body ? document.body.innerText : '',
  };
}
"""

CATEGORY_WIDGETS_JS = r"""
(opts) => {
  const selector = opts.altMarkers.map((m) => `img[alt*="${m}"]`).join(', ');
  const widgets = [];
  document.querySelectorAll(selector).forEach((img) => {
    let container = img;
    for (let i = 0; i < opts.maxLevels; i++) {
      if (!container.parentElement) break;
      container = container.parentElement;
      const text = container.textContent || '';
      if (opts.containerMarkers.some((m) => text.includes(m))) break;
    }
    widgets.push({
      alt: (img.alt || '').trim(),
      imageUrl: img.src || null,
      containerText: container && container.textContent ? container.textContent : '',
    });
  });
  return widgets;
}
"""


def is_card_image_alt(alt: Optional[str]) -> bool:
    """Heuristic for card artwork: names an issuer network, not a logo or icon."""
    if not alt:
        return False
    alt = alt.strip()
    if len(alt) < WIDGET_ALT_MIN_LENGTH or len(alt) > WIDGET_ALT_MAX_LENGTH:
        return False
    lower = alt.lower()
    if any(marker in lower for marker in WIDGET_ALT_EXCLUDE):
        return False
    return any(marker in alt for marker in WIDGET_ALT_MARKERS)


def parse_widget_fee(text: str):
    """Annual fee from a widget's text as ``(amount, display_text)``."""
    value, pattern_name = first_match(RATEHUB_FEE_PATTERNS, text)
    if value is None:
        return 0, "$0"
    fee, fee_text = value
    if pattern_name == "labelled_fee" and RATEHUB_FIRST_YEAR_WAIVED.search(text):
        fee_text += " ($0 first year)"
    return fee, fee_text


def parse_widget(widget: Dict[str, Any], category_url: str) -> Optional[ScrapedCardData]:
    """Build a card from one category widget; None when the alt text is not a card name."""
    alt = (widget.get("alt") or "").strip()
    if not is_card_image_alt(alt):
        return None

    name = clean_name(alt)
    text = widget.get("containerText") or ""
    fee, fee_text = parse_widget_fee(text)
    rewards_rate = first_match(RATEHUB_REWARDS_PATTERNS, text)[0]

    image_url = widget.get("imageUrl") or None
    if image_url and not image_url.startswith("http"):
        image_url = None

    return ScrapedCardData(
        name=name,
        slug=slugify(name),
        source=RATEHUB,
        annual_fee=fee,
        annual_fee_text=fee_text,
        regular_apr=DETAIL_REGULAR_APR_DEFAULT,
        rewards_rate=rewards_rate,
        rewards_bonus=first_match(RATEHUB_BONUS_PATTERNS, text)[0],
        rewards_type=infer_rewards_type(rewards_rate),
        overall_rating=first_match(RATEHUB_RATING_PATTERNS, text)[0],
        credit_required=CREDIT_REQUIRED_DEFAULT,
        image_url=image_url,
        source_url=category_url,
        provider=extract_provider(name),
    )


def parse_category_widgets(widgets: List[Dict[str, Any]], category_url: str) -> List[ScrapedCardData]:
    """Parse every widget on a category page, de-duplicated by card name."""
    cards: List[ScrapedCardData] = []
    seen = set()
    for widget in widgets:
        card = parse_widget(widget, category_url)
        if card is None or not card.slug:
            continue
        key = card.name.lower()
        if key in seen:
            continue
        seen.add(key)
        cards.append(card)
    return cards


def parse_detail_page(raw: Dict[str, Any], source_url: Optional[str] = None) -> Optional[ScrapedCardData]:
    """Build a card from a RateHub detail page; None when no name is found."""
    name = clean_name(raw.get("title"))
    if not name:
        name = clean_name(re.sub(r"\s*[-|].*$", "", raw.get("documentTitle") or ""))
    if not name:
        return None

    text = raw.get("pageText") or ""
    fee, fee_text = first_match(ANNUAL_FEE_PATTERNS, text)[0] or (0, "$0")
    rewards_rate = first_match(REWARDS_RATE_PATTERNS, text)[0]

    return ScrapedCardData(
        name=name,
        slug=slugify(name),
        source=RATEHUB,
        annual_fee=fee,
        annual_fee_text=fee_text,
        regular_apr=first_match(RATEHUB_INTEREST_PATTERNS, text)[0] or DETAIL_REGULAR_APR_DEFAULT,
        rewards_rate=rewards_rate,
        rewards_type=infer_rewards_type(rewards_rate),
        overall_rating=first_match(RATEHUB_RATING_PATTERNS, text)[0],
        credit_required=CREDIT_REQUIRED_DEFAULT,
        image_url=raw.get("imageUrl") or None,
        source_url=source_url,
        provider=extract_provider(name),
    )


class RateHubScraper:
    """Scraper for ratehub.ca (Canadian cards)."""

    source = RATEHUB

    def __init__(
        self,
        config: Dict[str, Any],
        headless: Optional[bool] = None,
        session_factory: Callable[..., Any] = BrowserSession,
    ):
        self.config = config
        self.source_config = get_source_config(config, RATEHUB)
        self.request_delay_ms = int(self.source_config.get("request_delay_ms", 2000))
        self.settle_delay_ms = int(self.source_config.get("settle_delay_ms", 3000))
        self.scroll_config = self.source_config.get("scroll", {})
        self.headless = headless
        self.session_factory = session_factory

    def _session(self):
        return self.session_factory(self.config, RATEHUB, headless=self.headless)

    def wait_between_requests(self):
        """Courtesy delay between consecutive page fetches."""
        if self.request_delay_ms > 0:
            time.sleep(self.request_delay_ms / 1000.0)

    def categories(self) -> List[Dict[str, str]]:
        """The fixed category table."""
        return get_ratehub_categories(self.config)

    def scrape_card(self, url: str) -> ScrapedCardData:
        """Load a RateHub card page and extract it."""
        logger.info(f"[RateHub] scrape started: {url}")
        with self._session() as session:
            session.open(url)
            session.settle(2000)
            raw = session.evaluate(DETAIL_PAGE_JS) or {}

        card = parse_detail_page(raw, source_url=url)
        if card is None:
            raise NotFoundError("Failed to extract card data from RateHub page")
        logger.info(f"[RateHub] scrape completed: {card.name}")
        return card

    def scrape_category(self, category_url: str, limit: int = 50) -> List[ScrapedCardData]:
        """Extract every card widget on a category page (no per-card fetch)."""
        logger.info(f"[RateHub] category scrape started: {category_url} (limit={limit})")
        with self._session() as session:
            session.open(category_url)
            session.auto_scroll(
                distance=int(self.scroll_config.get("distance", 300)),
                max_scrolls=int(self.scroll_config.get("max_scrolls", 50)),
                interval_ms=int(self.scroll_config.get("interval_ms", 100)),
            )
            session.settle(self.settle_delay_ms)
            widgets = session.evaluate(
                CATEGORY_WIDGETS_JS,
                {
                    "altMarkers": list(WIDGET_ALT_MARKERS),
                    "containerMarkers": list(CONTAINER_MARKERS),
                    "maxLevels": MAX_ANCESTOR_LEVELS,
                },
            ) or []

        cards = parse_category_widgets(widgets, category_url)
        logger.info(f"[RateHub] found {len(cards)} cards on {category_url}")
        return cards[:limit]

    def scrape_candidates(self, category_url: str, limit: int = 50) -> List[ListingCandidate]:
        """Category widgets as listing candidates carrying their parsed card."""
        return [
            ListingCandidate(name=card.name, url=card.source_url, image_url=card.image_url, scraped=card)
            for card in self.scrape_category(category_url, limit)
        ]
