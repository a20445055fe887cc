"""Command-line interface for the credit card scraper."""

import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import click
from loguru import logger

from card_scraper.config_loader import ensure_directories, get_api_config, load_config
from card_scraper.exporter import export_to_csv
from card_scraper.gateway import UpsertResult
from card_scraper.importer import ImportSummary
from card_scraper.models import get_engine, get_session_factory, init_db
from card_scraper.ratehub import RateHubScraper
from card_scraper.repositories.card_repository import CardRepository
from card_scraper.service import ScraperService
from card_scraper.wallethub import WalletHubScraper


def setup_logging(config: dict):
    """Setup logging configuration."""
    log_config = config.get("logging", {})
    level = log_config.get("level", "INFO")
    log_file = log_config.get("file", "data/logs/scraper.log")

    # Ensure log directory exists
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        sys.stdout,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}",
    )
    logger.add(
        log_file,
        level=level,
        rotation=log_config.get("rotation", "1 week"),
        retention=log_config.get("retention", "1 month"),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name} | {message}",
    )


@contextmanager
def open_service(config: dict, headless: bool = True):
    """Service bound to a fresh database session, closed on exit."""
    engine = get_engine(config)
    init_db(engine)
    session = get_session_factory(engine)()
    try:
        yield ScraperService(
            config,
            CardRepository(session),
            wallethub=WalletHubScraper(config, headless=headless),
            ratehub=RateHubScraper(config, headless=headless),
        )
    finally:
        session.close()


def _echo_upsert(result: UpsertResult):
    card = result.card
    status = "NEW" if result.is_new else "EXISTING"
    click.echo(f"[{status}] {card['name']} ({card['slug']})")
    click.echo(f"  id: {card['id']}")
    click.echo(f"  annual fee: {card.get('annualFeeText')}")
    click.echo(f"  rewards: {(card.get('rewards') or {}).get('rate') or 'N/A'}")
    click.echo(f"  image uploaded: {result.image_uploaded}")
    if result.changes:
        click.echo(f"  changes: {', '.join(result.changes)}")


def _echo_summary(summary: ImportSummary):
    click.echo(f"\n{'='*70}")
    click.echo("BULK IMPORT RESULTS")
    click.echo(f"{'='*70}")
    click.echo(f"Scraped: {summary.scraped}")
    click.echo(f"Skipped: {summary.skipped}")
    click.echo(f"Failed: {summary.failed}")
    for card in summary.cards:
        click.echo(f"  + {card['name']}")
    if summary.errors:
        click.echo(f"\nErrors ({len(summary.errors)}):")
        for error in summary.errors[:5]:
            click.echo(f"  - {error}")
    click.echo(f"{'='*70}")


@click.group()
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """Credit card scraper - WalletHub (US) and RateHub (Canada) card catalog."""
    ctx.ensure_object(dict)

    try:
        cfg = load_config(config)
        if verbose:
            cfg.setdefault("logging", {})["level"] = "DEBUG"
        ctx.obj["config"] = cfg
        ctx.obj["config_path"] = config

        ensure_directories(cfg)
        setup_logging(cfg)

        logger.debug("Credit card scraper initialized")

    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("query")
@click.option("--limit", "-n", type=click.IntRange(1, 50), default=10, show_default=True, help="Max results")
@click.option("--headless/--no-headless", default=True, help="Run browser in headless mode")
@click.pass_context
def search(ctx, query: str, limit: int, headless: bool):
    """Search stored cards and WalletHub for QUERY."""
    config = ctx.obj["config"]
    if not 2 <= len(query.strip()) <= 100:
        click.echo("Error: query must be 2-100 characters", err=True)
        sys.exit(1)

    try:
        with open_service(config, headless) as service:
            result = service.search(query.strip(), limit)

        click.echo(f"Existing cards ({len(result['existingCards'])}):")
        for card in result["existingCards"]:
            click.echo(f"  - {card['name']} [{card['slug']}]")
        click.echo(f"WalletHub results ({len(result['wallethubResults'])}):")
        for item in result["wallethubResults"]:
            click.echo(f"  - {item['name']}: {item['url']}")

    except Exception as e:
        logger.exception("Search failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command("scrape-card")
@click.argument("url")
@click.option("--force-update", is_flag=True, help="Overwrite the stored card")
@click.option("--headless/--no-headless", default=True, help="Run browser in headless mode")
@click.pass_context
def scrape_card(ctx, url: str, force_update: bool, headless: bool):
    """Scrape one WalletHub card page and store it."""
    config = ctx.obj["config"]
    try:
        with open_service(config, headless) as service:
            _echo_upsert(service.scrape_card(url, force_update=force_update))
    except Exception as e:
        logger.exception("Scrape failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command("scrape-slug")
@click.argument("slug")
@click.option("--force-update", is_flag=True, help="Scrape even if the card is stored")
@click.option("--headless/--no-headless", default=True, help="Run browser in headless mode")
@click.pass_context
def scrape_slug(ctx, slug: str, force_update: bool, headless: bool):
    """Return the stored card for SLUG or find it on WalletHub."""
    config = ctx.obj["config"]
    try:
        with open_service(config, headless) as service:
            _echo_upsert(service.scrape_by_slug(slug, force_update=force_update))
    except Exception as e:
        logger.exception("Scrape by slug failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("category_url")
@click.option("--limit", "-n", type=click.IntRange(1, 100), default=20, show_default=True, help="Max cards")
@click.option("--skip-existing/--no-skip-existing", default=True, help="Skip cards already stored")
@click.option("--headless/--no-headless", default=True, help="Run browser in headless mode")
@click.pass_context
def bulk(ctx, category_url: str, limit: int, skip_existing: bool, headless: bool):
    """Import the cards of a WalletHub category page."""
    config = ctx.obj["config"]
    try:
        with open_service(config, headless) as service:
            _echo_summary(service.bulk(category_url, limit=limit, skip_existing=skip_existing))
    except Exception as e:
        logger.exception("Bulk import failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("card_id")
@click.option("--headless/--no-headless", default=True, help="Run browser in headless mode")
@click.pass_context
def update(ctx, card_id: str, headless: bool):
    """Refresh a stored card from its source page."""
    config = ctx.obj["config"]
    try:
        with open_service(config, headless) as service:
            result = service.update_card(card_id)
        _echo_upsert(result)
        if not result.changes:
            click.echo("  no changes")
    except Exception as e:
        logger.exception("Update failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command("ratehub-card")
@click.argument("url")
@click.option("--force-update", is_flag=True, help="Overwrite the stored card")
@click.option("--headless/--no-headless", default=True, help="Run browser in headless mode")
@click.pass_context
def ratehub_card(ctx, url: str, force_update: bool, headless: bool):
    """Scrape one RateHub card page and store it."""
    config = ctx.obj["config"]
    try:
        with open_service(config, headless) as service:
            _echo_upsert(service.ratehub_card(url, force_update=force_update))
    except Exception as e:
        logger.exception("RateHub scrape failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command("ratehub-bulk")
@click.argument("category_url")
@click.option("--limit", "-n", type=click.IntRange(1, 100), default=50, show_default=True, help="Max cards")
@click.option("--skip-existing/--no-skip-existing", default=True, help="Skip cards already stored")
@click.option("--headless/--no-headless", default=True, help="Run browser in headless mode")
@click.pass_context
def ratehub_bulk(ctx, category_url: str, limit: int, skip_existing: bool, headless: bool):
    """Import the cards of a RateHub category page."""
    config = ctx.obj["config"]
    try:
        with open_service(config, headless) as service:
            _echo_summary(service.ratehub_bulk(category_url, limit=limit, skip_existing=skip_existing))
    except Exception as e:
        logger.exception("RateHub bulk import failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command("ratehub-categories")
@click.pass_context
def ratehub_categories(ctx):
    """List the RateHub categories used by import-all."""
    config = ctx.obj["config"]
    for category in RateHubScraper(config).categories():
        click.echo(f"{category['key']:<16} {category['name']:<18} {category['url']}")


@cli.command("import-all")
@click.option("--limit-per-category", type=click.IntRange(1, 100), default=30, show_default=True)
@click.option("--skip-existing/--no-skip-existing", default=True, help="Skip cards already stored")
@click.option("--headless/--no-headless", default=True, help="Run browser in headless mode")
@click.pass_context
def import_all(ctx, limit_per_category: int, skip_existing: bool, headless: bool):
    """Import every RateHub category."""
    config = ctx.obj["config"]
    try:
        with open_service(config, headless) as service:
            result = service.import_all(limit_per_category=limit_per_category, skip_existing=skip_existing)

        click.echo(f"\n{'='*70}")
        click.echo("RATEHUB IMPORT-ALL RESULTS")
        click.echo(f"{'='*70}")
        click.echo(f"Scraped: {result.total_scraped}")
        click.echo(f"Skipped: {result.total_skipped}")
        click.echo(f"Failed: {result.total_failed}")
        click.echo("\nBy category:")
        for key, stats in result.category_stats.items():
            click.echo(
                f"  - {key}: scraped={stats['scraped']} | skipped={stats['skipped']} | failed={stats['failed']}"
            )
        if result.errors:
            click.echo(f"\nErrors ({len(result.errors)}):")
            for error in result.errors[:5]:
                click.echo(f"  - {error}")
        click.echo(f"{'='*70}")
    except Exception as e:
        logger.exception("Import-all failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--output", "-o", type=click.Path(), help="Output directory")
@click.option(
    "--country",
    type=click.Choice(["US", "CA", "all"], case_sensitive=False),
    default="all",
    help="Filter by country code",
)
@click.pass_context
def export(ctx, output: Optional[str], country: str):
    """Export the card catalog to CSV."""
    config = ctx.obj["config"]

    logger.info(f"Exporting cards: country={country}")

    try:
        country_code = None if country.lower() == "all" else country.upper()
        paths = export_to_csv(config, output_dir=output, country_code=country_code)
        if not paths:
            click.echo("No cards to export")
        else:
            click.echo("CSV exports:")
            for name, path in paths.items():
                click.echo(f"  - {name}: {path}")
    except Exception as e:
        logger.exception("Export failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to api.host)")
@click.option("--port", type=int, default=None, help="Port (defaults to api.port)")
@click.pass_context
def serve(ctx, host: Optional[str], port: Optional[int]):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    api_config = get_api_config(ctx.obj["config"])
    host = host or api_config.get("host", "0.0.0.0")
    port = port or int(api_config.get("port", 8002))
    logger.info(f"Starting API on {host}:{port}")
    if ctx.obj.get("config_path"):
        os.environ["CARD_SCRAPER_CONFIG"] = str(Path(ctx.obj["config_path"]).resolve())
    uvicorn.run("card_scraper.api:app", host=host, port=port)


if __name__ == "__main__":
    cli()
