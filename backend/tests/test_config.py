"""Tests for application settings."""

from __future__ import annotations

import pytest

from backend.api.config import Settings, _parse_name_list


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("WALKING, RUNNING", ["WALKING", "RUNNING"]),
        ("WALKING,,RUNNING,", ["WALKING", "RUNNING"]),
        ("  HIKING  ", ["HIKING"]),
        ("WALKING", ["WALKING"]),
        ("", []),
    ],
)
def test_parse_name_list(raw: str, expected: list[str]) -> None:
    assert _parse_name_list(raw) == expected


def test_defaults() -> None:
    settings = Settings(_env_file=None)  # type: ignore[call-arg]
    rules = settings.rule_settings()
    assert rules.photo_max_days_old == 14
    assert rules.proximity_max_distance_m == 100.0
    assert rules.loop_max_start_end_m == 3000.0
    assert rules.allowed_activity_types == ("WALKING",)
    assert settings.recalculation_concurrency == 1


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALLOWED_ACTIVITY_TYPES_RAW", "walking,running")
    monkeypatch.setenv("PHOTO_MAX_DAYS_OLD", "7")
    settings = Settings(_env_file=None)  # type: ignore[call-arg]
    assert settings.allowed_activity_types == ["walking", "running"]
    assert settings.rule_settings().photo_max_days_old == 7
