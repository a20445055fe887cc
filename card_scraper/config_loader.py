"""Configuration loader for the credit card scraper."""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default locations.

    Returns:
        Dictionary with configuration values.
    """
    # Load environment variables first
    load_dotenv()

    if config_path is None:
        env_path = os.getenv("CARD_SCRAPER_CONFIG")
        locations = [
            env_path,
            "config.yaml",
            "config.yml",
            "../config.yaml",
            str(Path(__file__).resolve().parents[1] / "config.yaml"),
        ]
        for loc in locations:
            if loc and Path(loc).exists():
                config_path = loc
                break

    if config_path is None or not Path(config_path).exists():
        raise FileNotFoundError("Configuration file not found. Please provide config.yaml")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    return _substitute_env_vars(config)


def _substitute_env_vars(obj: Any) -> Any:
    """Recursively substitute environment variables in config.

    Supports syntax: ${VAR_NAME} or ${VAR_NAME:default_value}
    """
    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return _substitute_env_string(obj)
    else:
        return obj


def _substitute_env_string(value: str) -> str:
    """Substitute environment variables in a string."""
    pattern = r'\$\{([^}]+)\}'

    def replace(match):
        var_expr = match.group(1)
        if ':' in var_expr:
            var_name, default = var_expr.split(':', 1)
            return os.getenv(var_name, default)
        else:
            return os.getenv(var_expr, match.group(0))

    return re.sub(pattern, replace, value)


def get_api_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get HTTP API configuration."""
    return config.get("api", {})


def get_browser_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get headless browser configuration."""
    return config.get("browser", {})


def get_source_config(config: Dict[str, Any], source: str) -> Dict[str, Any]:
    """Get configuration for one source site ('wallethub' or 'ratehub')."""
    return config.get("sources", {}).get(source, {})


def get_matching_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get search matching configuration."""
    return config.get("matching", {})


def get_storage_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get storage configuration."""
    return config.get("storage", {})


def get_image_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get image store configuration."""
    return config.get("images", {})


def get_ratehub_categories(config: Dict[str, Any]) -> List[Dict[str, str]]:
    """Get the fixed RateHub category table as a list of dicts.

    Each entry has ``key``, ``name``, ``url`` and ``type`` ('comparison' or 'blog').
    """
    categories = get_source_config(config, "ratehub").get("categories", {}) or {}
    items = []
    for key, value in categories.items():
        value = value or {}
        items.append(
            {
                "key": key,
                "name": value.get("name", key),
                "url": value.get("url", ""),
                "type": value.get("type", "comparison"),
            }
        )
    return items


def ensure_directories(config: Dict[str, Any]):
    """Ensure all required directories exist."""
    storage = get_storage_config(config)

    sqlite_path = storage.get("sqlite", {}).get("database_path", "data/cards.db")
    Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    csv_path = storage.get("exports", {}).get("csv_path", "data/exports")
    Path(csv_path).mkdir(parents=True, exist_ok=True)

    image_root = get_image_config(config).get("root", "data/images")
    Path(image_root).mkdir(parents=True, exist_ok=True)

    log_path = config.get("logging", {}).get("file", "data/logs/scraper.log")
    Path(log_path).parent.mkdir(parents=True, exist_ok=True)
