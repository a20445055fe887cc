"""Tests for RateHub widget and detail page parsing."""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from card_scraper.config_loader import load_config
from card_scraper.errors import NotFoundError
from card_scraper.ratehub import (
    RateHubScraper,
    is_card_image_alt,
    parse_category_widgets,
    parse_detail_page,
    parse_widget,
    parse_widget_fee,
)
from card_scraper.records import RATEHUB

CATEGORY_URL = "https://www.ratehub.ca/credit-cards/rewards"

WIDGET = {
    "alt": "TD First Class Travel® Visa Infinite* Card",
    "imageUrl": "https://www.ratehub.ca/images/td-first-class.png",
    "containerText": (
        "Annual fee $139 First year waived Earn rewards 2pts - 8pts "
        "Welcome bonus Earn up to 100,000 points (value $500) 4.5 / 5"
    ),
}


class FakeSession:
    def __init__(self, evaluations):
        self.evaluations = list(evaluations)
        self.opened = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.closed = True

    def open(self, url, wait_until="networkidle"):
        self.opened.append(url)

    def settle(self, delay_ms):
        pass

    def auto_scroll(self, distance=500, max_scrolls=10, interval_ms=200):
        return 3

    def evaluate(self, script, arg=None):
        return self.evaluations.pop(0)


class TestWidgetParsing(unittest.TestCase):
    def test_card_image_alt_heuristics(self):
        self.assertTrue(is_card_image_alt("Tangerine Money-Back Credit Card"))
        self.assertTrue(is_card_image_alt("BMO CashBack World Elite Mastercard"))
        self.assertFalse(is_card_image_alt("Visa logo"))
        self.assertFalse(is_card_image_alt("Card icon for menu"))
        self.assertFalse(is_card_image_alt("Card"))
        self.assertFalse(is_card_image_alt("A" * 95 + " Card Visa"))
        self.assertFalse(is_card_image_alt("Ratehub homepage banner"))
        self.assertFalse(is_card_image_alt(None))

    def test_fee_with_first_year_waived(self):
        self.assertEqual(parse_widget_fee(WIDGET["containerText"]), (139, "$139 ($0 first year)"))

    def test_fee_defaults_to_zero(self):
        self.assertEqual(parse_widget_fee("Earn rewards 1% - 2%"), (0, "$0"))

    def test_parse_widget(self):
        card = parse_widget(WIDGET, CATEGORY_URL)

        self.assertEqual(card.name, "TD First Class Travel Visa Infinite* Card")
        self.assertEqual(card.slug, "td-first-class-travel-visa-infinite-card")
        self.assertEqual(card.source, RATEHUB)
        self.assertEqual(card.annual_fee, 139)
        self.assertEqual(card.annual_fee_text, "$139 ($0 first year)")
        self.assertEqual(card.rewards_rate, "2pts - 8pts per dollar")
        self.assertEqual(card.rewards_type, "points")
        self.assertEqual(card.rewards_bonus, "100,000 points (value $500)")
        self.assertEqual(card.overall_rating, 4.5)
        self.assertEqual(card.provider, "TD")
        self.assertEqual(card.source_url, CATEGORY_URL)
        self.assertEqual(card.regular_apr, "See details")
        self.assertEqual(card.credit_required, "Not specified")

    def test_relative_image_is_dropped(self):
        card = parse_widget(dict(WIDGET, imageUrl="/images/card.png"), CATEGORY_URL)
        self.assertIsNone(card.image_url)

    def test_parse_category_widgets_dedupes_and_skips_logos(self):
        widgets = [
            WIDGET,
            dict(WIDGET),
            {"alt": "American Express logo", "imageUrl": None, "containerText": ""},
            {
                "alt": "Tangerine Money-Back Credit Card",
                "imageUrl": "https://www.ratehub.ca/images/tangerine.png",
                "containerText": "Annual fee $0 Earn rewards 0.5% - 2%",
            },
        ]
        cards = parse_category_widgets(widgets, CATEGORY_URL)

        self.assertEqual(len(cards), 2)
        self.assertEqual(cards[1].provider, "Tangerine")
        self.assertEqual(cards[1].annual_fee, 0)
        self.assertEqual(cards[1].rewards_type, "cashback")


class TestDetailParsing(unittest.TestCase):
    def test_parse_detail_page(self):
        raw = {
            "title": "Tangerine Money-Back Credit Card",
            "documentTitle": "",
            "imageUrl": "https://www.ratehub.ca/images/tangerine.png",
            "pageText": "No annual fee\nEarn 2% cash back in up to 3 categories\n20.95% interest on purchases",
        }
        url = "https://www.ratehub.ca/credit-cards/tangerine-money-back"
        card = parse_detail_page(raw, source_url=url)

        self.assertEqual(card.slug, "tangerine-money-back-credit-card")
        self.assertEqual(card.annual_fee_text, "$0")
        self.assertEqual(card.rewards_rate, "2% cash back")
        self.assertEqual(card.regular_apr, "20.95%")
        self.assertEqual(card.provider, "Tangerine")
        self.assertEqual(card.source_url, url)

    def test_name_from_document_title(self):
        card = parse_detail_page({"title": "", "documentTitle": "BMO CashBack Mastercard | Ratehub.ca", "pageText": ""})
        self.assertEqual(card.name, "BMO CashBack Mastercard")
        self.assertEqual(card.regular_apr, "See details")

    def test_no_name(self):
        self.assertIsNone(parse_detail_page({"title": "", "documentTitle": "", "pageText": "x"}))


class TestRateHubScraper(unittest.TestCase):
    def setUp(self):
        config_path = Path(__file__).parent.parent / "config.yaml"
        self.config = load_config(str(config_path))

    def test_categories_table(self):
        categories = RateHubScraper(self.config).categories()
        self.assertEqual(len(categories), 10)
        keys = [c["key"] for c in categories]
        self.assertIn("rewards", keys)
        self.assertIn("balanceTransfer", keys)
        self.assertTrue(all(c["url"].startswith("https://www.ratehub.ca/") for c in categories))

    def test_scrape_category_applies_limit(self):
        widgets = [
            dict(WIDGET, alt=f"Example Bank Number {i} Visa Card") for i in range(5)
        ]
        session = FakeSession([widgets])
        scraper = RateHubScraper(self.config, session_factory=lambda config, source, headless=None: session)

        candidates = scraper.scrape_candidates(CATEGORY_URL, limit=3)

        self.assertEqual(len(candidates), 3)
        self.assertEqual(candidates[0].scraped.slug, "example-bank-number-0-visa-card")
        self.assertTrue(session.closed)

    def test_scrape_card_without_name_is_not_found(self):
        session = FakeSession([{"title": "", "documentTitle": "", "pageText": ""}])
        scraper = RateHubScraper(self.config, session_factory=lambda config, source, headless=None: session)
        with self.assertRaises(NotFoundError):
            scraper.scrape_card("https://www.ratehub.ca/credit-cards/unknown")


if __name__ == "__main__":
    unittest.main()
