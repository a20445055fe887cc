"""Tests for the scrape operations shared by API and CLI."""

import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent))

from card_scraper.config_loader import load_config
from card_scraper.errors import NotFoundError, ValidationError
from card_scraper.models import get_engine, get_session_factory, init_db
from card_scraper.records import RATEHUB, ListingCandidate, ScrapedCardData, SearchResult
from card_scraper.repositories.card_repository import CardRepository
from card_scraper.service import ScraperService

WALLETHUB_URL = "https://wallethub.com/d/chase-freedom-unlimited-1234c"
RATEHUB_CATEGORY = "https://www.ratehub.ca/credit-cards/rewards"


def wallethub_card(**overrides):
    values = {
        "name": "Chase Freedom Unlimited",
        "slug": "chase-freedom-unlimited",
        "rewards_type": "cashback",
        "source_url": WALLETHUB_URL,
        "provider": "Chase",
    }
    values.update(overrides)
    return ScrapedCardData(**values)


def ratehub_card(**overrides):
    values = {
        "name": "Tangerine Money-Back Credit Card",
        "slug": "tangerine-money-back-credit-card",
        "source": RATEHUB,
        "regular_apr": "See details",
        "credit_required": "Not specified",
        "source_url": RATEHUB_CATEGORY,
        "provider": "Tangerine",
    }
    values.update(overrides)
    return ScrapedCardData(**values)


class ServiceTestCase(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config = load_config(str(Path(__file__).parent.parent / "config.yaml"))
        self.config["storage"]["sqlite"]["database_path"] = str(Path(self.temp_dir) / "cards.db")
        self.engine = get_engine(self.config)
        init_db(self.engine)
        self.session = get_session_factory(self.engine)()
        self.repository = CardRepository(self.session)

        self.wallethub = MagicMock()
        self.ratehub = MagicMock()
        self.images = MagicMock()
        self.images.process.return_value = ""
        self.sleep = MagicMock()
        self.service = ScraperService(
            self.config,
            self.repository,
            wallethub=self.wallethub,
            ratehub=self.ratehub,
            image_processor=self.images,
            sleep=self.sleep,
        )

    def tearDown(self):
        self.session.close()
        self.engine.dispose()
        shutil.rmtree(self.temp_dir, ignore_errors=True)


class TestWalletHubOperations(ServiceTestCase):
    def test_search_combines_stored_and_live_results(self):
        self.service.gateway.save(wallethub_card())
        self.wallethub.search.return_value = [SearchResult(name="Chase Freedom Flex", url="https://wallethub.com/d/x-1c")]

        data = self.service.search("chase freedom", 10)

        self.assertEqual([c["slug"] for c in data["existingCards"]], ["chase-freedom-unlimited"])
        self.assertEqual(data["wallethubResults"][0]["name"], "Chase Freedom Flex")
        self.wallethub.search.assert_called_once_with("chase freedom", 10)

    def test_scrape_card_rejects_other_domains(self):
        with self.assertRaises(ValidationError):
            self.service.scrape_card("https://www.ratehub.ca/credit-cards/x")
        self.wallethub.scrape_card.assert_not_called()

    def test_scrape_card_creates(self):
        self.wallethub.scrape_card.return_value = wallethub_card()
        result = self.service.scrape_card(WALLETHUB_URL)
        self.assertTrue(result.is_new)
        self.assertEqual(result.card["countryCode"], "US")

    def test_scrape_by_slug_returns_stored_card(self):
        self.service.gateway.save(wallethub_card())

        result = self.service.scrape_by_slug("chase-freedom-unlimited")

        self.assertFalse(result.is_new)
        self.wallethub.search_and_scrape.assert_not_called()

    def test_scrape_by_slug_searches_slug_words(self):
        self.wallethub.search_and_scrape.return_value = None
        with self.assertRaises(NotFoundError):
            self.service.scrape_by_slug("citi-double-cash")
        self.wallethub.search_and_scrape.assert_called_once_with("citi double cash")

    def test_bulk_fetches_details_for_new_cards(self):
        self.service.gateway.save(wallethub_card())
        self.wallethub.scrape_category.return_value = [
            ListingCandidate(name="Chase Freedom Unlimited", url=WALLETHUB_URL),
            ListingCandidate(name="Discover it Miles", url="https://wallethub.com/d/discover-it-miles-11c"),
        ]
        self.wallethub.scrape_card.return_value = wallethub_card(
            name="Discover it Miles", slug="discover-it-miles", provider="Discover"
        )

        summary = self.service.bulk("https://wallethub.com/credit-cards/travel/", limit=20)

        self.assertEqual((summary.scraped, summary.skipped, summary.failed), (1, 1, 0))
        self.wallethub.scrape_card.assert_called_once_with("https://wallethub.com/d/discover-it-miles-11c")
        self.sleep.assert_called_once_with(2.0)


class TestUpdateCard(ServiceTestCase):
    def test_unknown_card(self):
        with self.assertRaises(NotFoundError):
            self.service.update_card("nope")

    def test_wallethub_card_rescraped_from_source_url(self):
        card = self.service.gateway.save(wallethub_card()).card
        self.wallethub.scrape_card.return_value = wallethub_card(annual_fee=95, annual_fee_text="$95")

        result = self.service.update_card(card["id"])

        self.wallethub.scrape_card.assert_called_once_with(WALLETHUB_URL)
        self.assertEqual(result.changes, ["annualFee", "annualFeeText"])

    def test_card_without_source_url_is_searched_by_name(self):
        card = self.service.gateway.save(wallethub_card(source_url=None)).card
        self.wallethub.search_and_scrape.return_value = wallethub_card()

        self.service.update_card(card["id"])

        self.wallethub.search_and_scrape.assert_called_once_with("Chase Freedom Unlimited")

    def test_ratehub_card_matched_on_category_page(self):
        card = self.service.gateway.save(ratehub_card()).card
        self.ratehub.scrape_category.return_value = [
            ratehub_card(name="MBNA Rewards Mastercard", slug="mbna-rewards-mastercard"),
            ratehub_card(overall_rating=4.5),
        ]

        result = self.service.update_card(card["id"])

        self.assertEqual(result.changes, ["ratings.overall"])
        self.ratehub.scrape_card.assert_not_called()
        self.wallethub.scrape_card.assert_not_called()


class TestRateHubOperations(ServiceTestCase):
    def test_ratehub_bulk_uses_widget_data(self):
        self.ratehub.scrape_candidates.return_value = [
            ListingCandidate(name="Tangerine Money-Back Credit Card", scraped=ratehub_card())
        ]

        summary = self.service.ratehub_bulk(RATEHUB_CATEGORY, limit=50)

        self.assertEqual(summary.scraped, 1)
        self.assertEqual(summary.cards[0]["currency"], "CAD")
        self.ratehub.scrape_candidates.assert_called_once_with(RATEHUB_CATEGORY, 50)

    def test_ratehub_bulk_rejects_wallethub_url(self):
        with self.assertRaises(ValidationError):
            self.service.ratehub_bulk("https://wallethub.com/credit-cards/")

    def test_categories_listing(self):
        self.ratehub.categories.return_value = [
            {"key": "rewards", "name": "Rewards", "url": RATEHUB_CATEGORY, "type": "comparison"}
        ]
        self.assertEqual(
            self.service.ratehub_categories(),
            {"categories": [{"key": "rewards", "name": "Rewards", "url": RATEHUB_CATEGORY}], "total": 1},
        )


if __name__ == "__main__":
    unittest.main()
