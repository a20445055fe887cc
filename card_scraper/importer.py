"""Sequential bulk import of listing candidates into the catalog."""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from card_scraper.errors import NotFoundError, ScraperError
from card_scraper.normalizer import slugify
from card_scraper.records import ListingCandidate, ScrapedCardData

MAX_REPORTED_ERRORS = 50


def error_message(error: Exception) -> str:
    """Client-facing text for a failed item; unexpected errors are logged in full."""
    if isinstance(error, ScraperError):
        return error.message
    logger.opt(exception=error).error(f"Unexpected {error.__class__.__name__} during import")
    return "Internal error"


@dataclass
class ImportSummary:
    """Counters and saved cards of one bulk run."""

    scraped: int = 0
    skipped: int = 0
    failed: int = 0
    cards: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        data = {
            "scraped": self.scraped,
            "skipped": self.skipped,
            "failed": self.failed,
            "cards": self.cards,
        }
        if self.errors:
            data["errors"] = self.errors[:MAX_REPORTED_ERRORS]
        return data


@dataclass
class ImportAllSummary:
    """Aggregate of a multi-category import."""

    total_scraped: int = 0
    total_skipped: int = 0
    total_failed: int = 0
    category_stats: Dict[str, Dict[str, int]] = field(default_factory=dict)
    cards: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        data = {
            "totalScraped": self.total_scraped,
            "totalSkipped": self.total_skipped,
            "totalFailed": self.total_failed,
            "categoryStats": self.category_stats,
            "cards": self.cards,
        }
        if self.errors:
            data["errors"] = self.errors[:MAX_REPORTED_ERRORS]
        return data


class BulkImporter:
    """Runs candidates one at a time through skip check, optional detail fetch and upsert.

    A failing item is logged and recorded; it never stops the loop.
    """

    def __init__(self, gateway, repository, delay_ms: int = 2000, sleep: Callable[[float], None] = time.sleep):
        self.gateway = gateway
        self.repository = repository
        self.delay_ms = delay_ms
        self.sleep = sleep

    def _wait(self):
        if self.delay_ms > 0:
            self.sleep(self.delay_ms / 1000.0)

    def run(
        self,
        candidates: List[ListingCandidate],
        skip_existing: bool = True,
        fetch_detail: Optional[Callable[[ListingCandidate], ScrapedCardData]] = None,
        error_prefix: str = "",
    ) -> ImportSummary:
        summary = ImportSummary()
        for candidate in candidates:
            try:
                slug = candidate.scraped.slug if candidate.scraped else slugify(candidate.name)
                if skip_existing and slug and self.repository.exists_by_slug(slug):
                    logger.debug(f"Skipping existing card: {slug}")
                    summary.skipped += 1
                    continue

                if fetch_detail is not None:
                    self._wait()
                    scraped = fetch_detail(candidate)
                else:
                    scraped = candidate.scraped
                if scraped is None:
                    raise NotFoundError("No card data extracted")

                # an existing card overwritten by a forced upsert counts as scraped
                result = self.gateway.save(scraped, force_update=not skip_existing)
                if result.is_new or not skip_existing:
                    summary.scraped += 1
                    summary.cards.append(result.card)
                else:
                    summary.skipped += 1
            except Exception as e:
                message = error_message(e)
                logger.error(f"Import failed for {candidate.name}: {message}")
                summary.errors.append(f"{error_prefix}{candidate.name}: {message}")
                summary.failed += 1

        logger.info(
            f"Bulk import finished: scraped={summary.scraped} skipped={summary.skipped} failed={summary.failed}"
        )
        return summary

    def import_all(
        self,
        categories: List[Dict[str, str]],
        scrape_category: Callable[[str, int], List[ListingCandidate]],
        limit_per_category: int = 30,
        skip_existing: bool = True,
    ) -> ImportAllSummary:
        """Import every category in turn; a failing category counts as one failure."""
        total = ImportAllSummary()
        for index, category in enumerate(categories):
            key = category["key"]
            name = category.get("name", key)
            if index > 0:
                self._wait()
            try:
                logger.info(f"Processing category: {name} - {category['url']}")
                candidates = scrape_category(category["url"], limit_per_category)
                summary = self.run(candidates, skip_existing=skip_existing, error_prefix=f"[{name}] ")
            except Exception as e:
                message = error_message(e)
                logger.error(f"Category {name} failed: {message}")
                total.errors.append(f"[{name}] Category failed: {message}")
                total.total_failed += 1
                total.category_stats[key] = {"scraped": 0, "skipped": 0, "failed": 1}
                continue

            total.total_scraped += summary.scraped
            total.total_skipped += summary.skipped
            total.total_failed += summary.failed
            total.cards.extend(summary.cards)
            total.errors.extend(summary.errors)
            total.category_stats[key] = {
                "scraped": summary.scraped,
                "skipped": summary.skipped,
                "failed": summary.failed,
            }

        logger.info(
            f"Import-all finished: scraped={total.total_scraped} skipped={total.total_skipped} "
            f"failed={total.total_failed}"
        )
        return total
