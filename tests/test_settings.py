from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from config import RenderSettings, RetrySettings, Settings, WikiSettings
from config.settings import LocationRegion


def test_defaults_match_documented_values() -> None:
    settings = Settings()

    assert settings.query.max_simultaneous == 4
    assert settings.entities.max_simultaneous == 2
    assert settings.entities.cache_capacity == 5000
    assert settings.retry.max_attempts == 3
    assert settings.wiki.edit_delay_ms == 1000
    assert settings.template.start_marker == "Wikidata list"
    assert settings.template.end_marker == "Wikidata list end"
    assert "default" in settings.render.location_templates


def test_excluded_namespaces_accepts_star_and_comma_list() -> None:
    assert WikiSettings(excluded_namespaces="*").excluded_namespaces == "*"
    assert WikiSettings(excluded_namespaces="2, 4").excluded_namespaces == [2, 4]
    assert WikiSettings(excluded_namespaces=[1, "3"]).excluded_namespaces == [1, 3]


def test_unknown_backoff_is_rejected() -> None:
    with pytest.raises(ValidationError):
        RetrySettings(backoff="linear")
    assert RetrySettings(backoff=" Fixed ").backoff == "fixed"


def test_location_templates_need_default_entry() -> None:
    with pytest.raises(ValidationError):
        RenderSettings(location_templates={"europe": "{{Coord|$LAT$|$LON$}}"})


def test_region_contains_is_inclusive() -> None:
    region = LocationRegion(name="eu", lat_min=35, lat_max=70, lon_min=-10, lon_max=40)
    assert region.contains(35, -10)
    assert region.contains(52.5, 13.4)
    assert not region.contains(10, 13.4)


def test_load_from_json_reads_sections(tmp_path) -> None:
    path = tmp_path / "listsync.json"
    path.write_text(
        json.dumps(
            {
                "query": {"max_simultaneous": 2},
                "wiki": {"wiki_id": "dewiki", "pages": ["Liste A"], "excluded_namespaces": "*"},
                "render": {"default_thumbnail_size": 96},
            }
        ),
        encoding="utf-8",
    )

    settings = Settings.load_from_json(path)

    assert settings.query.max_simultaneous == 2
    assert settings.wiki.wiki_id == "dewiki"
    assert settings.wiki.pages == ["Liste A"]
    assert settings.wiki.excluded_namespaces == "*"
    assert settings.render.default_thumbnail_size == 96
    assert settings.retry.max_attempts == 3


def test_env_prefix_applies_to_sub_settings(monkeypatch) -> None:
    monkeypatch.setenv("ORCHESTRATOR_MAX_WORKERS", "7")
    monkeypatch.setenv("WIKI_DRY_RUN", "true")

    settings = Settings.load_from_env_file(env_path=None)

    assert settings.orchestrator.max_workers == 7
    assert settings.wiki.dry_run is True
