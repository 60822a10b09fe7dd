from dataclasses import fields

import pytest

from app.config import Config
from app.services.hybrid_field_pipeline import FusionSettings


def test_fusion_config_maps_onto_settings():
    names = {f.name for f in fields(FusionSettings)}

    assert set(Config.get_fusion_config()) <= names


def test_settings_from_config():
    settings = FusionSettings.from_config()

    assert settings.fuzzy_match_ratio == Config.FUZZY_MATCH_RATIO
    assert settings.page_workers == Config.PAGE_WORKERS


def test_config_exposes_only_served_api_settings():
    api_settings = {name for name in vars(Config) if name.startswith('API_')}

    assert api_settings == {'API_HOST', 'API_PORT'}


def test_validate_rejects_bad_ratio(monkeypatch):
    monkeypatch.setattr(Config, 'FUZZY_MATCH_RATIO', 1.5)

    with pytest.raises(ValueError):
        Config.validate()
