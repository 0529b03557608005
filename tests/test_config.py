"""
Tests for settings loading and saving.
"""

import pytest
import yaml

from matchiq.config import (
    ENV_DATABASE_URL,
    ENV_RATES_URL,
    ENV_WEBHOOK_URL,
    EngineSettings,
    load_settings,
    save_settings,
)
from matchiq.errors import InvalidWeights


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (ENV_DATABASE_URL, ENV_RATES_URL, ENV_WEBHOOK_URL):
        monkeypatch.delenv(name, raising=False)


class TestLoadSettings:

    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "nope.yaml")
        assert settings == EngineSettings()
        assert settings.list_min_score == 30

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(path) == EngineSettings()

    def test_partial_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.dump({
            "weights": {"industry": 0.5},
            "scoring": {"financial_tolerance": 1.0},
            "rescan": {"batch_size": 50},
            "regions": {"Mekong": ["Cambodia", "Laos"]},
        }), encoding="utf-8")

        settings = load_settings(path)
        assert settings.weights.industry == 0.5
        assert settings.weights.geography == 0.20
        assert settings.scoring.financial_tolerance == 1.0
        assert settings.scoring.region_match_score == 0.6
        assert settings.rescan.batch_size == 50
        assert settings.regions == {"Mekong": ["Cambodia", "Laos"]}

    def test_unknown_weight_rejected(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.dump({"weights": {"vibes": 1}}), encoding="utf-8")
        with pytest.raises(InvalidWeights):
            load_settings(path)

    def test_environment_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.dump({"database_url": "sqlite:///from-file.db"}), encoding="utf-8")
        monkeypatch.setenv(ENV_DATABASE_URL, "postgresql://db/matchiq")
        monkeypatch.setenv(ENV_WEBHOOK_URL, "https://hooks.example.com/matchiq")

        settings = load_settings(path)
        assert settings.database_url == "postgresql://db/matchiq"
        assert settings.webhook_url == "https://hooks.example.com/matchiq"
        assert settings.rates_url is None


class TestSaveSettings:

    def test_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "settings.yaml"
        settings = EngineSettings(list_min_score=40, exchange_rates={"THB": 0.03})
        settings.weights.timeline = 0.3

        assert save_settings(settings, path) == path
        assert load_settings(path) == settings

    def test_none_values_omitted(self, tmp_path):
        path = tmp_path / "settings.yaml"
        save_settings(EngineSettings(), path)
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert "webhook_url" not in data
        assert data["weights"]["industry"] == 0.25
