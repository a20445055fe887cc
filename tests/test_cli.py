"""CLI tests with the scrape service mocked out."""

import shutil
import sys
import tempfile
import unittest
from contextlib import contextmanager
from pathlib import Path
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

sys.path.insert(0, str(Path(__file__).parent.parent))

from card_scraper.cli import cli
from card_scraper.config_loader import load_config
from card_scraper.gateway import CardGateway, UpsertResult
from card_scraper.importer import ImportAllSummary, ImportSummary
from card_scraper.models import get_engine, get_session_factory, init_db
from card_scraper.records import RATEHUB, ScrapedCardData
from card_scraper.repositories.card_repository import CardRepository

CONFIG = load_config(str(Path(__file__).parent.parent / "config.yaml"))

CARD = {
    "id": "tangerine-money-back-credit-card-lx2k9abc123",
    "slug": "tangerine-money-back-credit-card",
    "name": "Tangerine Money-Back Credit Card",
    "annualFeeText": "$0",
    "rewards": {"rate": "2% cash back"},
}


def fake_open_service(service):
    @contextmanager
    def _open(config, headless=True):
        yield service

    return _open


@patch("card_scraper.cli.setup_logging")
@patch("card_scraper.cli.ensure_directories")
@patch("card_scraper.cli.load_config", return_value=CONFIG)
class TestCliCommands(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self.service = MagicMock()

    def invoke(self, args):
        with patch("card_scraper.cli.open_service", fake_open_service(self.service)):
            return self.runner.invoke(cli, args)

    def test_bulk_prints_summary(self, *_mocks):
        self.service.bulk.return_value = ImportSummary(
            scraped=1, skipped=2, failed=1, cards=[CARD], errors=["Broken Card: timeout"]
        )

        result = self.invoke(["bulk", "https://wallethub.com/credit-cards/travel/", "--limit", "5"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.service.bulk.assert_called_once_with(
            "https://wallethub.com/credit-cards/travel/", limit=5, skip_existing=True
        )
        self.assertIn("Scraped: 1", result.output)
        self.assertIn("+ Tangerine Money-Back Credit Card", result.output)
        self.assertIn("Broken Card: timeout", result.output)

    def test_scrape_card_new(self, *_mocks):
        self.service.scrape_card.return_value = UpsertResult(card=CARD, is_new=True, image_uploaded=True)

        result = self.invoke(["scrape-card", "https://wallethub.com/d/x-1c", "--force-update"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("[NEW] Tangerine Money-Back Credit Card", result.output)
        self.service.scrape_card.assert_called_once_with("https://wallethub.com/d/x-1c", force_update=True)

    def test_update_without_changes(self, *_mocks):
        self.service.update_card.return_value = UpsertResult(card=CARD, is_new=False)

        result = self.invoke(["update", CARD["id"]])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("no changes", result.output)

    def test_service_error_exits_nonzero(self, *_mocks):
        self.service.ratehub_card.side_effect = RuntimeError("browser exploded")

        result = self.invoke(["ratehub-card", "https://www.ratehub.ca/credit-cards/x"])

        self.assertEqual(result.exit_code, 1)

    def test_short_search_query_rejected(self, *_mocks):
        result = self.invoke(["search", "x"])
        self.assertEqual(result.exit_code, 1)
        self.service.search.assert_not_called()

    def test_search_lists_both_sources(self, *_mocks):
        self.service.search.return_value = {
            "existingCards": [CARD],
            "wallethubResults": [{"name": "Chase Freedom Flex", "url": "https://wallethub.com/d/cff-1c"}],
        }

        result = self.invoke(["search", "cash back", "-n", "3"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.service.search.assert_called_once_with("cash back", 3)
        self.assertIn("Existing cards (1)", result.output)
        self.assertIn("Chase Freedom Flex", result.output)

    def test_import_all_prints_category_stats(self, *_mocks):
        self.service.import_all.return_value = ImportAllSummary(
            total_scraped=4,
            total_failed=1,
            category_stats={
                "rewards": {"scraped": 4, "skipped": 0, "failed": 0},
                "travel": {"scraped": 0, "skipped": 0, "failed": 1},
            },
            errors=["[Travel] Category failed: Navigation timeout"],
        )

        result = self.invoke(["import-all", "--limit-per-category", "10", "--no-skip-existing"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.service.import_all.assert_called_once_with(limit_per_category=10, skip_existing=False)
        self.assertIn("travel: scraped=0 | skipped=0 | failed=1", result.output)

    def test_ratehub_categories(self, *_mocks):
        result = self.invoke(["ratehub-categories"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("balanceTransfer", result.output)
        self.assertEqual(sum("ratehub.ca" in line for line in result.output.splitlines()), 10)


class TestCliExport(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config = load_config(str(Path(__file__).parent.parent / "config.yaml"))
        self.config["storage"]["sqlite"]["database_path"] = str(Path(self.temp_dir) / "cards.db")

        engine = get_engine(self.config)
        init_db(engine)
        session = get_session_factory(engine)()
        gateway = CardGateway(CardRepository(session), MagicMock())
        gateway.save(ScrapedCardData(name="Chase Freedom Unlimited", slug="chase-freedom-unlimited", pros=["No fee", "Cash back"]))
        gateway.save(ScrapedCardData(name="MBNA Rewards Mastercard", slug="mbna-rewards-mastercard", source=RATEHUB))
        session.close()
        engine.dispose()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_export_filtered_by_country(self):
        output_dir = str(Path(self.temp_dir) / "exports")
        with patch("card_scraper.cli.setup_logging"), patch("card_scraper.cli.ensure_directories"), patch(
            "card_scraper.cli.load_config", return_value=self.config
        ):
            result = CliRunner().invoke(cli, ["export", "--output", output_dir, "--country", "CA"])

        self.assertEqual(result.exit_code, 0, result.output)
        exported = sorted(p.name for p in Path(output_dir).iterdir())
        self.assertEqual(len(exported), 2)
        self.assertTrue(exported[0].startswith("cards_ca_"))
        self.assertTrue(exported[1].startswith("search_terms_ca_"))
        cards_csv = (Path(output_dir) / exported[0]).read_text(encoding="utf-8")
        self.assertIn("MBNA Rewards Mastercard", cards_csv)
        self.assertNotIn("Chase Freedom Unlimited", cards_csv)


if __name__ == "__main__":
    unittest.main()
