"""Scrape operations shared by the HTTP API and the CLI."""

import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit

from loguru import logger

from card_scraper.browser import validate_source_url
from card_scraper.config_loader import get_source_config
from card_scraper.errors import NotFoundError
from card_scraper.gateway import CardGateway, UpsertResult
from card_scraper.images import ImageProcessor
from card_scraper.importer import BulkImporter, ImportAllSummary, ImportSummary
from card_scraper.ratehub import RateHubScraper
from card_scraper.records import RATEHUB, WALLETHUB, ListingCandidate, ScrapedCardData
from card_scraper.repositories.card_repository import CardRepository
from card_scraper.wallethub import WalletHubScraper

# Cards per category page when a stored RateHub card is refreshed
REFRESH_CATEGORY_LIMIT = 100


class ScraperService:
    """One request's worth of scraping against a card repository."""

    def __init__(
        self,
        config: Dict[str, Any],
        repository: CardRepository,
        wallethub: Optional[WalletHubScraper] = None,
        ratehub: Optional[RateHubScraper] = None,
        image_processor: Optional[ImageProcessor] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.repository = repository
        self.wallethub = wallethub or WalletHubScraper(config)
        self.ratehub = ratehub or RateHubScraper(config)
        self.gateway = CardGateway(repository, image_processor or ImageProcessor.from_config(config))
        self.sleep = sleep

    def _importer(self, source: str) -> BulkImporter:
        delay_ms = int(get_source_config(self.config, source).get("request_delay_ms", 2000))
        return BulkImporter(self.gateway, self.repository, delay_ms=delay_ms, sleep=self.sleep)

    def _domain(self, source: str) -> Optional[str]:
        return get_source_config(self.config, source).get("domain")

    # WalletHub

    def search(self, query: str, limit: int = 10) -> Dict[str, Any]:
        """Stored cards matching the query terms plus live WalletHub results."""
        existing = self.repository.search_by_terms(query, limit)
        results = self.wallethub.search(query, limit)
        return {
            "existingCards": existing,
            "wallethubResults": [r.as_dict() for r in results],
        }

    def scrape_card(self, url: str, force_update: bool = False) -> UpsertResult:
        url = validate_source_url(url, self._domain(WALLETHUB))
        scraped = self.wallethub.scrape_card(url)
        return self.gateway.save(scraped, force_update=force_update)

    def scrape_by_slug(self, slug: str, force_update: bool = False) -> UpsertResult:
        """Return the stored card, or find it on WalletHub by its slug words."""
        existing = self.repository.get_by_slug(slug)
        if existing and not force_update:
            return UpsertResult(card=existing, is_new=False)

        scraped = self.wallethub.search_and_scrape(slug.replace("-", " "))
        if scraped is None:
            raise NotFoundError("Card not found on WalletHub")
        return self.gateway.save(scraped, force_update=force_update)

    def bulk(self, category_url: str, limit: int = 20, skip_existing: bool = True) -> ImportSummary:
        """Import cards listed on a WalletHub category page, one detail page at a time."""
        category_url = validate_source_url(category_url, self._domain(WALLETHUB))
        candidates = self.wallethub.scrape_category(category_url, limit)
        logger.info(f"Found {len(candidates)} candidates on {category_url}")
        return self._importer(WALLETHUB).run(
            candidates,
            skip_existing=skip_existing,
            fetch_detail=self._fetch_wallethub_detail,
        )

    def _fetch_wallethub_detail(self, candidate: ListingCandidate) -> ScrapedCardData:
        if not candidate.url:
            raise NotFoundError("No detail page link")
        return self.wallethub.scrape_card(candidate.url)

    def update_card(self, card_id: str) -> UpsertResult:
        """Re-scrape a stored card from its source and report the changed fields."""
        existing = self.repository.get_by_id(card_id)
        if not existing:
            raise NotFoundError("Card not found")

        source_url = existing.get("sourceUrl")
        ratehub_domain = self._domain(RATEHUB)
        if source_url and ratehub_domain and (urlsplit(source_url).hostname or "").endswith(ratehub_domain):
            scraped = self._rescrape_ratehub(existing, source_url)
        elif source_url:
            scraped = self.wallethub.scrape_card(source_url)
        else:
            scraped = self.wallethub.search_and_scrape(existing["name"])
            if scraped is None:
                raise NotFoundError("Card not found on WalletHub")

        return self.gateway.refresh(card_id, scraped)

    def _rescrape_ratehub(self, existing: Dict[str, Any], source_url: str) -> ScrapedCardData:
        # Category imports store the listing page as sourceUrl
        for card in self.ratehub.scrape_category(source_url, REFRESH_CATEGORY_LIMIT):
            if card.slug == existing["slug"]:
                return card
        return self.ratehub.scrape_card(source_url)

    # RateHub

    def ratehub_card(self, url: str, force_update: bool = False) -> UpsertResult:
        url = validate_source_url(url, self._domain(RATEHUB))
        scraped = self.ratehub.scrape_card(url)
        return self.gateway.save(scraped, force_update=force_update)

    def ratehub_bulk(self, category_url: str, limit: int = 50, skip_existing: bool = True) -> ImportSummary:
        category_url = validate_source_url(category_url, self._domain(RATEHUB))
        candidates = self.ratehub.scrape_candidates(category_url, limit)
        logger.info(f"Found {len(candidates)} RateHub cards on {category_url}")
        return self._importer(RATEHUB).run(candidates, skip_existing=skip_existing)

    def ratehub_categories(self) -> Dict[str, Any]:
        categories = [
            {"key": c["key"], "name": c["name"], "url": c["url"]} for c in self.ratehub.categories()
        ]
        return {"categories": categories, "total": len(categories)}

    def import_all(self, limit_per_category: int = 30, skip_existing: bool = True) -> ImportAllSummary:
        return self._importer(RATEHUB).import_all(
            self.ratehub.categories(),
            self.ratehub.scrape_candidates,
            limit_per_category=limit_per_category,
            skip_existing=skip_existing,
        )
