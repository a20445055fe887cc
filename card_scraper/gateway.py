"""Upsert of scraped cards into the catalog, with image re-hosting."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from card_scraper.errors import NotFoundError
from card_scraper.normalizer import build_card, compare_cards, merge_card_update
from card_scraper.records import ScrapedCardData


@dataclass
class UpsertResult:
    """Outcome of persisting one scraped card."""

    card: Dict[str, Any]
    is_new: bool
    image_uploaded: bool = False
    changes: List[str] = field(default_factory=list)


class CardGateway:
    """Create-or-update of cards keyed by slug.

    Read, diff and write are not wrapped in a transaction; concurrent writers
    of the same slug resolve as last write wins.
    """

    def __init__(self, repository, image_processor):
        self.repository = repository
        self.image_processor = image_processor

    @staticmethod
    def _needs_image(existing: Optional[Dict[str, Any]], scraped: ScrapedCardData) -> bool:
        if not scraped.image_url:
            return False
        if existing is None or not existing.get("imageUrl"):
            return True
        return existing.get("imageSourceUrl") != scraped.image_url

    def _upload_image(self, scraped: ScrapedCardData) -> Tuple[str, bool]:
        image_url = self.image_processor.process(scraped.image_url, scraped.slug)
        if not image_url:
            logger.warning(f"Image upload failed for {scraped.slug}, continuing without image")
        return image_url, bool(image_url)

    def save(self, scraped: ScrapedCardData, force_update: bool = False) -> UpsertResult:
        """Persist a scraped card.

        Existing cards are returned untouched unless ``force_update`` is set.
        """
        existing = self.repository.get_by_slug(scraped.slug)
        if existing and not force_update:
            logger.info(f"Card already exists: {scraped.slug}")
            return UpsertResult(card=existing, is_new=False)

        if existing:
            return self._update(existing, scraped)

        image_url, uploaded = "", False
        if self._needs_image(None, scraped):
            image_url, uploaded = self._upload_image(scraped)

        card = build_card(scraped, image_url, image_source_url=scraped.image_url)
        saved = self.repository.create(card)
        logger.info(f"Card created: {saved['id']} ({saved['slug']})")
        return UpsertResult(card=saved, is_new=True, image_uploaded=uploaded)

    def refresh(self, card_id: str, scraped: ScrapedCardData) -> UpsertResult:
        """Apply a fresh scrape to the card with ``card_id``; its slug stays as stored."""
        existing = self.repository.get_by_id(card_id)
        if not existing:
            raise NotFoundError("Card not found")
        if scraped.slug != existing["slug"]:
            scraped = replace(scraped, slug=existing["slug"])
        return self._update(existing, scraped)

    def _update(self, existing: Dict[str, Any], scraped: ScrapedCardData) -> UpsertResult:
        changes = compare_cards(existing, scraped)

        new_image_url, uploaded = "", False
        if self._needs_image(existing, scraped):
            new_image_url, uploaded = self._upload_image(scraped)
            if uploaded:
                changes.append("imageUrl")

        merged = merge_card_update(
            existing,
            scraped,
            new_image_url=new_image_url or None,
            image_source_url=scraped.image_url,
        )
        saved = self.repository.update(merged)
        logger.info(f"Card updated: {saved['id']} ({len(changes)} changes)")
        return UpsertResult(card=saved, is_new=False, image_uploaded=uploaded, changes=changes)
