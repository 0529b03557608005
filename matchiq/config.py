"""Configuration management for MatchIQ."""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

from matchiq.matching.dimensions import ScoringConfig
from matchiq.matching.rescan import RescanConfig
from matchiq.matching.scorer import MatchWeights

logger = logging.getLogger(__name__)

# Default paths
DATA_DIR = Path(__file__).parent.parent / "data"
DEFAULT_SETTINGS_PATH = DATA_DIR / "settings.yaml"
DEFAULT_DB_PATH = DATA_DIR / "matchiq.db"
LOG_PATH = DATA_DIR / "matchiq.log"
DEFAULT_EXPORT_PATH = DATA_DIR / "matches.csv"

# Environment variables that override settings
ENV_DATABASE_URL = "MATCHIQ_DATABASE_URL"
ENV_RATES_URL = "MATCHIQ_RATES_URL"
ENV_WEBHOOK_URL = "MATCHIQ_WEBHOOK_URL"


class EngineSettings(BaseModel):
    """Engine settings, loaded once at startup and passed to constructors."""

    weights: MatchWeights = Field(default_factory=MatchWeights)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    rescan: RescanConfig = Field(default_factory=RescanConfig)

    regions: Dict[str, List[str]] = Field(
        default_factory=dict, description="Region name -> member countries, merged over the defaults"
    )
    region_aliases: Dict[str, str] = Field(
        default_factory=dict, description="Alias -> canonical country or region name"
    )
    exchange_rates: Dict[str, float] = Field(
        default_factory=dict, description="Static rate overrides (USD per unit)"
    )

    list_min_score: int = Field(30, ge=0, le=100, description="Default minimum score for listings")
    page_size: int = Field(20, gt=0)

    database_url: Optional[str] = None
    rates_url: Optional[str] = None
    webhook_url: Optional[str] = None


def ensure_data_dir() -> None:
    """Ensure the data directory exists."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)


def apply_env_overrides(settings: EngineSettings) -> EngineSettings:
    """Return a copy of settings with MATCHIQ_* environment variables applied."""
    overrides = {}
    for env_name, field_name in (
        (ENV_DATABASE_URL, "database_url"),
        (ENV_RATES_URL, "rates_url"),
        (ENV_WEBHOOK_URL, "webhook_url"),
    ):
        value = os.environ.get(env_name)
        if value:
            overrides[field_name] = value
    if not overrides:
        return settings
    logger.debug(f"Settings overridden from environment: {', '.join(sorted(overrides))}")
    return settings.model_copy(update=overrides)


def load_settings(path: Optional[Path] = None) -> EngineSettings:
    """Load engine settings from YAML file.

    Args:
        path: Optional path to settings file. Defaults to data/settings.yaml.

    Returns:
        EngineSettings instance. Returns defaults if file doesn't exist.
        Environment overrides are applied in both cases.
    """
    if path is None:
        path = DEFAULT_SETTINGS_PATH

    if not path.exists():
        return apply_env_overrides(EngineSettings())

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return apply_env_overrides(EngineSettings())

    weights = data.get("weights")
    if isinstance(weights, dict):
        # Partial weight maps are allowed; unknown names are rejected
        data["weights"] = MatchWeights.from_mapping(weights)

    return apply_env_overrides(EngineSettings.model_validate(data))


def save_settings(settings: EngineSettings, path: Optional[Path] = None) -> Path:
    """Save engine settings to YAML file.

    Args:
        settings: EngineSettings instance to save.
        path: Optional path to save to. Defaults to data/settings.yaml.

    Returns:
        Path where settings were saved.
    """
    if path is None:
        path = DEFAULT_SETTINGS_PATH

    if path == DEFAULT_SETTINGS_PATH:
        ensure_data_dir()
    else:
        path.parent.mkdir(parents=True, exist_ok=True)

    # Convert to dict, excluding None values for cleaner YAML
    data = settings.model_dump(mode="json", exclude_none=True)

    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

    return path
