"""Repository layer for card catalog queries."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from card_scraper.errors import StorageError
from card_scraper.models import CardSearchTerm, CreditCard

# Term-membership queries accept at most this many tokens
MAX_SEARCH_TOKENS = 10


def search_tokens(query: str) -> List[str]:
    """Lowercase query words of two or more characters, capped for the term query."""
    tokens = []
    for word in (query or "").lower().split():
        if len(word) >= 2 and word not in tokens:
            tokens.append(word)
    return tokens[:MAX_SEARCH_TOKENS]


class CardRepository:
    """SQLAlchemy access to the card collection used by the gateway and API."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        row = self._row_by_slug(slug)
        return row.to_dict() if row else None

    def get_by_id(self, card_id: str) -> Optional[Dict[str, Any]]:
        row = self.session.get(CreditCard, card_id)
        return row.to_dict() if row else None

    def exists_by_slug(self, slug: str) -> bool:
        return self.session.query(CreditCard.id).filter(CreditCard.slug == slug).first() is not None

    def create(self, card: Dict[str, Any]) -> Dict[str, Any]:
        row = CreditCard()
        row.apply_dict(card)
        self.session.add(row)
        self._commit(card)
        return row.to_dict()

    def update(self, card: Dict[str, Any]) -> Dict[str, Any]:
        """Overwrite the stored card with the same id (last write wins)."""
        row = self.session.get(CreditCard, card["id"])
        if row is None:
            return self.create(card)
        row.apply_dict(card)
        self._commit(card)
        return row.to_dict()

    def search_by_terms(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Cards having any of the query tokens among their search terms."""
        tokens = search_tokens(query)
        if not tokens:
            return []
        matching_ids = (
            self.session.query(CardSearchTerm.card_id)
            .filter(CardSearchTerm.term.in_(tokens))
            .distinct()
        )
        rows = (
            self.session.query(CreditCard)
            .filter(CreditCard.id.in_(matching_ids))
            .order_by(CreditCard.name.asc())
            .limit(limit)
            .all()
        )
        return [row.to_dict() for row in rows]

    def _commit(self, card: Dict[str, Any]):
        # a failed flush leaves the session unusable until rolled back
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database write failed for {card.get('slug')}: {e}")
            raise StorageError("Failed to save card") from e

    def _row_by_slug(self, slug: str) -> Optional[CreditCard]:
        return self.session.query(CreditCard).filter(CreditCard.slug == slug).first()
