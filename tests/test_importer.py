"""Tests for the sequential bulk and import-all loops."""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent))

from card_scraper.errors import ScrapeTimeoutError
from card_scraper.gateway import UpsertResult
from card_scraper.importer import MAX_REPORTED_ERRORS, BulkImporter, ImportAllSummary
from card_scraper.normalizer import slugify
from card_scraper.records import RATEHUB, ListingCandidate, ScrapedCardData


class FakeRepository:
    def __init__(self, slugs=()):
        self.slugs = set(slugs)

    def exists_by_slug(self, slug):
        return slug in self.slugs


class FakeGateway:
    def __init__(self, repository):
        self.repository = repository
        self.saved = []
        self.force_flags = []

    def save(self, scraped, force_update=False):
        self.force_flags.append(force_update)
        is_new = scraped.slug not in self.repository.slugs
        self.repository.slugs.add(scraped.slug)
        self.saved.append(scraped.slug)
        return UpsertResult(card={"slug": scraped.slug, "name": scraped.name}, is_new=is_new)


def scraped_card(name):
    return ScrapedCardData(name=name, slug=slugify(name), source=RATEHUB)


def wallethub_candidates(count):
    return [
        ListingCandidate(name=f"Example Card {i}", url=f"https://wallethub.com/d/example-card-{i}-{i}c")
        for i in range(count)
    ]


class TestBulkRun(unittest.TestCase):
    def setUp(self):
        self.repository = FakeRepository({"example-card-0", "example-card-4", "example-card-8"})
        self.gateway = FakeGateway(self.repository)
        self.sleep = MagicMock()
        self.importer = BulkImporter(self.gateway, self.repository, delay_ms=2000, sleep=self.sleep)

    def test_existing_cards_skipped_before_detail_fetch(self):
        fetch = MagicMock(side_effect=lambda c: scraped_card(c.name))

        summary = self.importer.run(wallethub_candidates(10), fetch_detail=fetch)

        self.assertEqual((summary.scraped, summary.skipped, summary.failed), (7, 3, 0))
        self.assertEqual(fetch.call_count, 7)
        self.assertEqual(self.sleep.call_count, 7)
        self.sleep.assert_called_with(2.0)
        self.assertEqual(len(summary.cards), 7)
        self.assertNotIn("errors", summary.as_dict())

    def test_skip_existing_disabled_upserts_existing_cards(self):
        fetch = MagicMock(side_effect=lambda c: scraped_card(c.name))

        summary = self.importer.run(wallethub_candidates(3), skip_existing=False, fetch_detail=fetch)

        self.assertEqual(fetch.call_count, 3)
        self.assertEqual((summary.scraped, summary.skipped, summary.failed), (3, 0, 0))
        self.assertEqual(self.gateway.force_flags, [True, True, True])
        self.assertEqual([c["slug"] for c in summary.cards], ["example-card-0", "example-card-1", "example-card-2"])

    def test_skip_existing_saves_without_force(self):
        self.importer.run(wallethub_candidates(2), fetch_detail=lambda c: scraped_card(c.name))
        self.assertEqual(self.gateway.force_flags, [False])

    def test_unexpected_errors_are_reported_generically(self):
        def fetch(candidate):
            raise RuntimeError("INSERT INTO credit_cards (id, slug) VALUES (?, ?)")

        summary = self.importer.run(wallethub_candidates(2)[1:], fetch_detail=fetch)

        self.assertEqual(summary.failed, 1)
        self.assertEqual(summary.errors, ["Example Card 1: Internal error"])

    def test_failures_are_isolated(self):
        def fetch(candidate):
            if candidate.name == "Example Card 2":
                raise ScrapeTimeoutError("Navigation timeout after 30000 ms")
            if candidate.name == "Example Card 3":
                return None
            return scraped_card(candidate.name)

        summary = self.importer.run(wallethub_candidates(4), fetch_detail=fetch)

        self.assertEqual((summary.scraped, summary.skipped, summary.failed), (1, 1, 2))
        self.assertEqual(
            summary.errors,
            [
                "Example Card 2: Navigation timeout after 30000 ms",
                "Example Card 3: No card data extracted",
            ],
        )

    def test_prebuilt_candidates_need_no_fetch(self):
        candidates = [
            ListingCandidate(name=c.name, scraped=c)
            for c in (scraped_card("Tangerine Money-Back Credit Card"), scraped_card("MBNA Rewards Mastercard"))
        ]

        summary = self.importer.run(candidates)

        self.assertEqual(summary.scraped, 2)
        self.sleep.assert_not_called()


class TestImportAll(unittest.TestCase):
    CATEGORIES = [
        {"key": "rewards", "name": "Rewards", "url": "https://www.ratehub.ca/credit-cards/rewards"},
        {"key": "travel", "name": "Travel", "url": "https://www.ratehub.ca/blog/travel"},
        {"key": "student", "name": "Student", "url": "https://www.ratehub.ca/blog/student"},
    ]

    def setUp(self):
        self.repository = FakeRepository({"rbc-ion-visa"})
        self.gateway = FakeGateway(self.repository)
        self.sleep = MagicMock()
        self.importer = BulkImporter(self.gateway, self.repository, delay_ms=1500, sleep=self.sleep)

    def test_category_failure_does_not_stop_run(self):
        pages = {
            "https://www.ratehub.ca/credit-cards/rewards": ["RBC ION Visa", "BMO eclipse Visa Infinite"],
            "https://www.ratehub.ca/blog/student": ["BMO eclipse Visa Infinite", "Tangerine Money-Back Credit Card"],
        }

        def scrape_category(url, limit):
            if url not in pages:
                raise ScrapeTimeoutError("Navigation timeout")
            return [ListingCandidate(name=n, scraped=scraped_card(n)) for n in pages[url]][:limit]

        total = self.importer.import_all(self.CATEGORIES, scrape_category, limit_per_category=30)

        self.assertEqual(total.total_scraped, 2)
        self.assertEqual(total.total_skipped, 2)
        self.assertEqual(total.total_failed, 1)
        self.assertEqual(total.category_stats["rewards"], {"scraped": 1, "skipped": 1, "failed": 0})
        self.assertEqual(total.category_stats["travel"], {"scraped": 0, "skipped": 0, "failed": 1})
        self.assertEqual(total.category_stats["student"], {"scraped": 1, "skipped": 1, "failed": 0})
        self.assertEqual(total.errors, ["[Travel] Category failed: Navigation timeout"])
        # one wait before every category except the first
        self.assertEqual(self.sleep.call_count, 2)

    def test_item_errors_carry_category_prefix(self):
        def scrape_category(url, limit):
            return [ListingCandidate(name="Broken Card")]

        total = self.importer.import_all(self.CATEGORIES[:1], scrape_category)

        self.assertEqual(total.errors, ["[Rewards] Broken Card: No card data extracted"])
        self.assertEqual(total.total_failed, 1)

    def test_unexpected_category_error_is_reported_generically(self):
        def scrape_category(url, limit):
            raise KeyError("widget")

        total = self.importer.import_all(self.CATEGORIES[:1], scrape_category)

        self.assertEqual(total.errors, ["[Rewards] Category failed: Internal error"])

    def test_reported_errors_are_truncated(self):
        summary = ImportAllSummary(errors=[f"error {i}" for i in range(80)], total_failed=80)
        data = summary.as_dict()
        self.assertEqual(len(data["errors"]), MAX_REPORTED_ERRORS)
        self.assertEqual(data["totalFailed"], 80)


if __name__ == "__main__":
    unittest.main()
