"""Export of the card catalog to CSV."""

from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import pandas as pd
from loguru import logger

from card_scraper.config_loader import get_storage_config
from card_scraper.models import CardSearchTerm, CreditCard, get_engine, get_session_factory


def export_to_csv(
    config: dict,
    output_dir: Optional[str] = None,
    country_code: Optional[str] = None,
) -> Dict[str, str]:
    """Export cards and their search terms to CSV files.

    Args:
        config: Configuration dictionary
        output_dir: Output directory (uses config default if None)
        country_code: Only export cards of this country ("US" or "CA")

    Returns:
        Dictionary with paths to exported files
    """
    if output_dir is None:
        storage = get_storage_config(config)
        output_dir = storage.get("exports", {}).get("csv_path", "data/exports")

    Path(output_dir).mkdir(parents=True, exist_ok=True)

    engine = get_engine(config)
    Session = get_session_factory(engine)
    session = Session()

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    suffix = country_code.lower() if country_code else "all"
    paths = {}

    try:
        cards_query = session.query(CreditCard)
        if country_code:
            cards_query = cards_query.filter(CreditCard.country_code == country_code.upper())

        df = pd.read_sql(cards_query.statement, session.bind)
        if not df.empty:
            for column in ("pros", "cons"):
                df[column] = df[column].apply(_join_list)
            path = f"{output_dir}/cards_{suffix}_{timestamp}.csv"
            df.to_csv(path, index=False)
            paths["cards"] = path
            logger.info(f"Exported {len(df)} cards to {path}")

        terms_query = session.query(CardSearchTerm.card_id, CardSearchTerm.term)
        if country_code:
            terms_query = terms_query.join(CreditCard, CardSearchTerm.card_id == CreditCard.id).filter(
                CreditCard.country_code == country_code.upper()
            )
        terms_df = pd.read_sql(terms_query.statement, session.bind)
        if not terms_df.empty:
            path = f"{output_dir}/search_terms_{suffix}_{timestamp}.csv"
            terms_df.to_csv(path, index=False)
            paths["search_terms"] = path
            logger.info(f"Exported {len(terms_df)} search terms to {path}")
    finally:
        session.close()

    return paths


def _join_list(value) -> str:
    if isinstance(value, list):
        return " | ".join(str(item) for item in value)
    return "" if value is None else str(value)
