"""Database models for the credit card catalog."""

import os
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from card_scraper.normalizer import _utcnow_naive

Base = declarative_base()


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key support for SQLite (no-op for other backends)."""
    pool = getattr(connection_record, "pool", None)
    engine = getattr(pool, "engine", None) if pool else None
    if engine is not None and engine.dialect.name == "sqlite":
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class CreditCard(Base):
    """One catalog card, keyed by its slug."""

    __tablename__ = "credit_cards"

    id = Column(String(150), primary_key=True)
    slug = Column(String(200), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    annual_fee = Column(Integer, nullable=False, default=0)
    annual_fee_text = Column(String(100), nullable=False, default="$0")
    intro_apr = Column(Text, nullable=True)
    regular_apr = Column(String(100), nullable=True)

    rewards_rate = Column(Text, nullable=True)
    rewards_bonus = Column(Text, nullable=True)
    rewards_type = Column(String(20), nullable=True)

    rating_overall = Column(Float, nullable=True)
    rating_fees = Column(Float, nullable=True)
    rating_rewards = Column(Float, nullable=True)
    rating_cost = Column(Float, nullable=True)

    pros = Column(JSON, nullable=False, default=list)
    cons = Column(JSON, nullable=False, default=list)
    credit_required = Column(String(100), nullable=True)
    provider = Column(String(100), nullable=True, index=True)

    image_url = Column(Text, nullable=False, default="")
    image_filename = Column(String(255), nullable=False, default="")
    image_source_url = Column(Text, nullable=True)
    source_url = Column(Text, nullable=True)

    country = Column(String(50), nullable=False)
    country_code = Column(String(2), nullable=False, index=True)
    currency = Column(String(3), nullable=False)
    currency_symbol = Column(String(5), nullable=False, default="$")

    created_at = Column(DateTime, default=_utcnow_naive)
    updated_at = Column(DateTime, default=_utcnow_naive)

    search_terms = relationship(
        "CardSearchTerm",
        back_populates="card",
        cascade="all, delete-orphan",
        order_by="CardSearchTerm.term",
    )

    def __repr__(self):
        return f"<CreditCard(slug='{self.slug}', name='{self.name}')>"

    def to_dict(self) -> Dict[str, Any]:
        """Card document in the API's camelCase shape."""
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "annualFee": self.annual_fee,
            "annualFeeText": self.annual_fee_text,
            "apr": {"introApr": self.intro_apr, "regularApr": self.regular_apr},
            "rewards": {
                "rate": self.rewards_rate,
                "bonus": self.rewards_bonus,
                "type": self.rewards_type,
            },
            "ratings": {
                "overall": self.rating_overall,
                "fees": self.rating_fees,
                "rewards": self.rating_rewards,
                "cost": self.rating_cost,
            },
            "pros": list(self.pros or []),
            "cons": list(self.cons or []),
            "creditRequired": self.credit_required,
            "provider": self.provider,
            "imageUrl": self.image_url or "",
            "imageFilename": self.image_filename or "",
            "imageSourceUrl": self.image_source_url,
            "sourceUrl": self.source_url,
            "country": self.country,
            "countryCode": self.country_code,
            "currency": self.currency,
            "currencySymbol": self.currency_symbol,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "searchTerms": [t.term for t in self.search_terms],
        }

    def apply_dict(self, card: Dict[str, Any]):
        """Copy a camelCase card document onto this row."""
        apr = card.get("apr") or {}
        rewards = card.get("rewards") or {}
        ratings = card.get("ratings") or {}

        self.id = card["id"]
        self.slug = card["slug"]
        self.name = card["name"]
        self.annual_fee = card.get("annualFee", 0)
        self.annual_fee_text = card.get("annualFeeText", "$0")
        self.intro_apr = apr.get("introApr")
        self.regular_apr = apr.get("regularApr")
        self.rewards_rate = rewards.get("rate")
        self.rewards_bonus = rewards.get("bonus")
        self.rewards_type = rewards.get("type")
        self.rating_overall = ratings.get("overall")
        self.rating_fees = ratings.get("fees")
        self.rating_rewards = ratings.get("rewards")
        self.rating_cost = ratings.get("cost")
        self.pros = list(card.get("pros") or [])
        self.cons = list(card.get("cons") or [])
        self.credit_required = card.get("creditRequired")
        self.provider = card.get("provider")
        self.image_url = card.get("imageUrl") or ""
        self.image_filename = card.get("imageFilename") or ""
        self.image_source_url = card.get("imageSourceUrl")
        self.source_url = card.get("sourceUrl")
        self.country = card["country"]
        self.country_code = card["countryCode"]
        self.currency = card["currency"]
        self.currency_symbol = card.get("currencySymbol", "$")
        self.created_at = card.get("createdAt")
        self.updated_at = card.get("updatedAt")
        self.set_search_terms(card.get("searchTerms") or [])

    def set_search_terms(self, terms):
        """Replace the term index, keeping rows for terms that did not change."""
        wanted = set(terms)
        self.search_terms = [t for t in self.search_terms if t.term in wanted]
        present = {t.term for t in self.search_terms}
        for term in sorted(wanted - present):
            self.search_terms.append(CardSearchTerm(term=term))


class CardSearchTerm(Base):
    """Denormalized search token of a card, used for term-membership search."""

    __tablename__ = "card_search_terms"
    __table_args__ = (UniqueConstraint("card_id", "term", name="uq_card_search_term"),)

    id = Column(Integer, primary_key=True)
    card_id = Column(String(150), ForeignKey("credit_cards.id", ondelete="CASCADE"), nullable=False, index=True)
    term = Column(String(100), nullable=False, index=True)

    card = relationship("CreditCard", back_populates="search_terms")

    def __repr__(self):
        return f"<CardSearchTerm(card_id='{self.card_id}', term='{self.term}')>"


# Database initialization functions

def get_engine(config: dict, backend: Optional[str] = None):
    """Create database engine based on configuration."""
    backend = backend or config.get("storage", {}).get("default_backend", "sqlite")

    if backend == "sqlite":
        db_path = config.get("storage", {}).get("sqlite", {}).get("database_path", "data/cards.db")
        return create_engine(f"sqlite:///{db_path}")
    elif backend == "postgresql":
        pg_config = config.get("storage", {}).get("postgresql", {})
        db_url = str(pg_config.get("url") or os.getenv("DB_URL") or "").strip()
        if db_url:
            return create_engine(db_url)
        host = pg_config.get("host", "localhost")
        port = pg_config.get("port", "5432")
        database = pg_config.get("database", "credit_cards")
        user = pg_config.get("user", "scraper")
        password = pg_config.get("password", "")

        return create_engine(
            f"postgresql://{user}:{password}@{host}:{port}/{database}"
        )
    else:
        raise ValueError(f"Unsupported database backend: {backend}")


def init_db(engine):
    """Initialize database tables."""
    Base.metadata.create_all(engine)


def get_session_factory(engine):
    """Get session factory for database operations."""
    return sessionmaker(bind=engine)
