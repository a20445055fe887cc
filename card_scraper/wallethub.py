"""WalletHub scraper: search results, card detail pages and category listings."""

import re
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote, urlsplit

from loguru import logger

from card_scraper.browser import BrowserSession
from card_scraper.config_loader import get_matching_config, get_source_config
from card_scraper.errors import NotFoundError
from card_scraper.matcher import DEFAULT_MIN_CONFIDENCE, find_best_match
from card_scraper.normalizer import clamp_rating, clean_name, extract_provider, infer_rewards_type, slugify
from card_scraper.patterns import (
    ANNUAL_FEE_PATTERNS,
    BONUS_PATTERNS,
    COST_RATING_PATTERNS,
    CREDIT_TIER_PATTERNS,
    FEES_RATING_PATTERNS,
    INTRO_APR_PATTERNS,
    OVERALL_RATING_PATTERNS,
    REGULAR_APR_PATTERNS,
    REWARDS_RATE_PATTERNS,
    REWARDS_RATING_PATTERNS,
    first_match,
)
from card_scraper.records import WALLETHUB, ListingCandidate, ScrapedCardData, SearchResult

CARD_LINK_PATTERN = re.compile(r"/d/[\w-]+-\d+c$", re.I)
GENERIC_LINK_TEXT = ("see more", "view all")

CONTAINER_SELECTORS = [
    'div.card-object[data-sel-id="cc-container"]',
    ".card-details",
    ".product-details",
    ".card-container",
    "main",
    "#content",
]
TITLE_SELECTORS = ["h1", ".card-name", '[data-sel-id="card-title"]']
IMAGE_SELECTORS = [
    ".card-image img",
    ".product-image img",
    'img[alt*="card"]',
    'main img[src*="credit"]',
    'img[src*="wallethub"]',
]
RATING_SELECTORS = [".wh-rating-num", ".rating-number", '[class*="rating"] .number', ".details-wh-rating-num"]
PROS_SELECTORS = ['[data-sel-id="pros-list"] [data-sel-id="pros-item"]', ".pros li", '[class*="pros"] li', ".advantages li"]
CONS_SELECTORS = ['[data-sel-id="cons-list"] [data-sel-id="cons-item"]', ".cons li", '[class*="cons"] li', ".disadvantages li"]
SEARCH_RESULT_SELECTORS = ['div.card-object[data-sel-id="cc-container"]', ".search-results", '[data-sel-id="cc-container"]']
CATEGORY_CONTAINER_SELECTOR = 'div.card-object[data-sel-id="cc-container"]'
CATEGORY_LINK_SELECTOR = '[data-sel-id="card-title"] a, .card-name a'
IMAGE_EXCLUDE_MARKERS = ("avatar", "logo", "icon")

DETAIL_PAGE_JS = r"""
(sel) => {
  const textOf = (el) => (el && el.textContent ? el.textContent.trim() : '');
  const firstText = (selectors) => {
    for (const s of selectors) {
      const t = textOf(document.querySelector(s));
      if (t) return t;
    }
    return '';
  };
  const listItems = (selectors) => {
    for (const s of selectors) {
      const els = document.querySelectorAll(s);
      if (els.length > 0) {
        const items = [];
        els.forEach((el) => {
          const t = textOf(el);
          if (t && !items.includes(t)) items.push(t);
        });
        return items;
      }
    }
    return [];
  };
  let imageUrl = null;
  for (const s of sel.image) {
    const img = document.querySelector(s);
    const src = img && img.src ? img.src : '';
    if (src && !sel.imageExclude.some((m) => src.toLowerCase().includes(m))) {
      imageUrl = src;
      break;
    }
  }
  return {
    hasContainer: sel.container.some((s) => document.querySelector(s) !== null),
    title: firstText(sel.title),
    documentTitle: document.title || '',
    imageUrl: imageUrl,
    ratingTexts: sel.rating.map((s) => textOf(document.querySelector(s))).filter((t) => t),
    pageText: document.body ? document.body.innerText : '',
    pros: listItems(sel.pros),
    cons: listItems(sel.cons),
  };
}
"""

LINKS_JS = r"""
() => {
  const links = [];
  document.querySelectorAll('a[href*="/d/"]').forEach((a) => {
    const parent = a.closest('li') || a.parentElement;
    const strong = parent ? parent.querySelector('strong') : null;
    const img = parent ? parent.querySelector('img') : null;
    links.push({
      href: a.href || '',
      text: a.textContent || '',
      strongText: strong && strong.textContent ? strong.textContent : '',
      parentText: parent && parent.textContent ? parent.textContent : '',
      imageUrl: img && img.src ? img.src : null,
    });
  });
  return links;
}
"""

CATEGORY_PAGE_JS = r"""
(sel) => {
  const items = [];
  document.querySelectorAll(sel.container).forEach((container) => {
    const link = container.querySelector(sel.link);
    if (!link || !link.href) return;
    const img = container.querySelector('img');
    items.push({
      href: link.href,
      text: link.textContent || '',
      imageUrl: img && img.src ? img.src : null,
    });
  });
  return items;
}
"""


def name_from_titles(title: Optional[str], document_title: Optional[str]) -> str:
    """Card name from the page heading, falling back to the document title."""
    name = clean_name(title)
    if not name and document_title:
        name = clean_name(document_title.split(" Reviews")[0].split(" |")[0])
    return name


def parse_detail_page(raw: Dict[str, Any], source_url: Optional[str] = None) -> Optional[ScrapedCardData]:
    """Turn the raw material collected from a detail page into a card record.

    Returns None when no card name can be found. Every other field is best
    effort and falls back to its default.
    """
    name = name_from_titles(raw.get("title"), raw.get("documentTitle"))
    if not name:
        return None

    text = raw.get("pageText") or ""

    fee = first_match(ANNUAL_FEE_PATTERNS, text)[0] or (0, "$0")
    regular_apr = first_match(REGULAR_APR_PATTERNS, text)[0] or "N/A"
    intro_apr = first_match(INTRO_APR_PATTERNS, text)[0]
    rewards_rate = first_match(REWARDS_RATE_PATTERNS, text)[0]
    rewards_bonus = first_match(BONUS_PATTERNS, text)[0]
    credit_required = first_match(CREDIT_TIER_PATTERNS, text)[0] or "N/A"

    overall = None
    for rating_text in raw.get("ratingTexts") or []:
        value = clamp_rating(_leading_number(rating_text))
        if value is not None and value >= 1:
            overall = value
            break
    if overall is None:
        overall = first_match(OVERALL_RATING_PATTERNS, text)[0]

    return ScrapedCardData(
        name=name,
        slug=slugify(name),
        source=WALLETHUB,
        annual_fee=fee[0],
        annual_fee_text=fee[1],
        intro_apr=intro_apr,
        regular_apr=regular_apr,
        rewards_rate=rewards_rate,
        rewards_bonus=rewards_bonus,
        rewards_type=infer_rewards_type(rewards_rate),
        overall_rating=overall,
        fees_rating=first_match(FEES_RATING_PATTERNS, text)[0],
        rewards_rating=first_match(REWARDS_RATING_PATTERNS, text)[0],
        cost_rating=first_match(COST_RATING_PATTERNS, text)[0],
        pros=list(raw.get("pros") or []),
        cons=list(raw.get("cons") or []),
        credit_required=credit_required,
        image_url=raw.get("imageUrl") or None,
        source_url=source_url,
        provider=extract_provider(name),
    )


def _leading_number(text: str) -> Optional[str]:
    match = re.search(r"\d+(?:\.\d+)?", text or "")
    return match.group() if match else None


def is_card_detail_url(url: Optional[str]) -> bool:
    """True for WalletHub card detail URLs (``/d/<slug>-<digits>c``)."""
    if not url:
        return False
    return CARD_LINK_PATTERN.search(urlsplit(url).path) is not None


def parse_search_links(links: List[Dict[str, Any]], base_url: str, limit: int = 10) -> List[SearchResult]:
    """Select card detail links from a search page and build search results."""
    results: List[SearchResult] = []
    seen = set()
    for link in links:
        if len(results) >= limit:
            break
        href = (link.get("href") or "").strip()
        if not is_card_detail_url(href) or href in seen:
            continue
        seen.add(href)

        name = " ".join((link.get("text") or "").split())
        if len(name) < 3:
            fallback = (link.get("strongText") or "").strip() or (link.get("parentText") or "").strip().split("\n")[0]
            name = " ".join(fallback.split())
        name = clean_name(name)

        lower = name.lower()
        if len(name) < 5 or any(marker in lower for marker in GENERIC_LINK_TEXT):
            continue

        url = href if href.startswith("http") else f"{base_url.rstrip('/')}/{href.lstrip('/')}"
        results.append(SearchResult(name=name, url=url, image_url=link.get("imageUrl") or None))
    return results


def parse_category_links(items: List[Dict[str, Any]], limit: int = 20) -> List[ListingCandidate]:
    """Build listing candidates from category widgets, de-duplicated by name."""
    candidates: List[ListingCandidate] = []
    seen_names = set()
    for item in items:
        if len(candidates) >= limit:
            break
        name = clean_name((item.get("text") or "").strip() or item.get("strongText"))
        if not name:
            continue
        key = slugify(name)
        if not key or key in seen_names:
            continue
        seen_names.add(key)
        candidates.append(
            ListingCandidate(name=name, url=item.get("href") or None, image_url=item.get("imageUrl") or None)
        )
    return candidates


class WalletHubScraper:
    """Scraper for wallethub.com (US cards)."""

    source = WALLETHUB

    def __init__(
        self,
        config: Dict[str, Any],
        headless: Optional[bool] = None,
        session_factory: Callable[..., Any] = BrowserSession,
    ):
        self.config = config
        self.source_config = get_source_config(config, WALLETHUB)
        self.base_url = self.source_config.get("base_url", "https://wallethub.com").rstrip("/")
        self.request_delay_ms = int(self.source_config.get("request_delay_ms", 2000))
        self.settle_delay_ms = int(self.source_config.get("settle_delay_ms", 2000))
        self.result_selector_timeout = int(self.source_config.get("result_selector_timeout", 15000))
        self.scroll_config = self.source_config.get("scroll", {})
        self.min_confidence = float(get_matching_config(config).get("min_confidence", DEFAULT_MIN_CONFIDENCE))
        self.headless = headless
        self.session_factory = session_factory

    def _session(self):
        return self.session_factory(self.config, WALLETHUB, headless=self.headless)

    def wait_between_requests(self):
        """Courtesy delay between consecutive page fetches."""
        if self.request_delay_ms > 0:
            time.sleep(self.request_delay_ms / 1000.0)

    def search_url(self, query: str) -> str:
        return f"{self.base_url}/search/?s={quote(query, safe='')}"

    def search(self, query: str, limit: int = 10) -> List[SearchResult]:
        """Search WalletHub and return card results in page order."""
        logger.info(f"[WalletHub] search started: {query}")
        with self._session() as session:
            session.open(self.search_url(query))
            session.wait_for_any(SEARCH_RESULT_SELECTORS, timeout=self.result_selector_timeout)
            session.settle(self.settle_delay_ms)
            links = session.evaluate(LINKS_JS) or []

        results = parse_search_links(links, self.base_url, limit)
        logger.info(f"[WalletHub] search completed: {query} ({len(results)} results)")
        return results

    def extract_card(self, session, url: str) -> ScrapedCardData:
        """Extract one card from a loaded detail page."""
        raw = session.evaluate(
            DETAIL_PAGE_JS,
            {
                "container": CONTAINER_SELECTORS,
                "title": TITLE_SELECTORS,
                "image": IMAGE_SELECTORS,
                "imageExclude": list(IMAGE_EXCLUDE_MARKERS),
                "rating": RATING_SELECTORS,
                "pros": PROS_SELECTORS,
                "cons": CONS_SELECTORS,
            },
        ) or {}
        if not raw.get("hasContainer"):
            raise NotFoundError(f"Card container not found on page: {url}")

        card = parse_detail_page(raw, source_url=url)
        if card is None:
            raise NotFoundError(f"Failed to extract card data from page: {url}")
        return card

    def scrape_card(self, url: str) -> ScrapedCardData:
        """Load a WalletHub card page and extract it."""
        logger.info(f"[WalletHub] scrape started: {url}")
        with self._session() as session:
            session.open(url)
            card = self.extract_card(session, url)
        logger.info(f"[WalletHub] scrape completed: {card.name}")
        return card

    def scrape_category(self, category_url: str, limit: int = 20) -> List[ListingCandidate]:
        """Collect card candidates (name + detail URL) from a category page."""
        logger.info(f"[WalletHub] category scan started: {category_url} (limit={limit})")
        with self._session() as session:
            session.open(category_url)
            session.auto_scroll(
                distance=int(self.scroll_config.get("distance", 500)),
                max_scrolls=int(self.scroll_config.get("max_scrolls", 10)),
                interval_ms=int(self.scroll_config.get("interval_ms", 200)),
            )
            session.settle(1000)
            items = session.evaluate(
                CATEGORY_PAGE_JS,
                {"container": CATEGORY_CONTAINER_SELECTOR, "link": CATEGORY_LINK_SELECTOR},
            ) or []
            if not items:
                links = session.evaluate(LINKS_JS) or []
                items = [link for link in links if is_card_detail_url(link.get("href"))]

        candidates = parse_category_links(items, limit)
        logger.info(f"[WalletHub] category scan completed: {category_url} ({len(candidates)} cards)")
        return candidates

    def search_and_scrape(self, card_name: str) -> Optional[ScrapedCardData]:
        """Search by name, pick the best match and scrape its detail page."""
        results = self.search(card_name, 10)
        if not results:
            logger.warning(f"No search results found for: {card_name}")
            return None

        best = find_best_match(card_name, results, self.min_confidence)
        if best is None or not best.url:
            logger.warning(f"No suitable match found for: {card_name}")
            return None

        logger.info(f"Selected match for '{card_name}': '{best.name}'")
        self.wait_between_requests()
        return self.scrape_card(best.url)
