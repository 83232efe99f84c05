from __future__ import annotations

from pathlib import Path

import pytest

from config.settings import DEFAULT_SYSTEM_PROMPT, Settings, _env_int, _env_path, load_system_prompt
from fakes import build_test_settings


def test_env_helpers_fall_back_on_empty(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("MAX_MESSAGES", "")
    assert _env_int("MAX_MESSAGES", 30) == 30
    monkeypatch.setenv("MAX_MESSAGES", "12")
    assert _env_int("MAX_MESSAGES", 30) == 12

    monkeypatch.setenv("DB_PATH", "data/other.db")
    assert _env_path("DB_PATH", tmp_path / "default.db", tmp_path) == tmp_path / "data" / "other.db"
    monkeypatch.delenv("DB_PATH")
    assert _env_path("DB_PATH", tmp_path / "default.db", tmp_path) == tmp_path / "default.db"


def test_system_prompt_file_and_fallback(settings: Settings) -> None:
    assert load_system_prompt(settings) == DEFAULT_SYSTEM_PROMPT

    settings.system_prompt_path.write_text("  Be brief.\n", encoding="utf-8")
    assert load_system_prompt(settings) == "Be brief."


def test_ttl_in_milliseconds(tmp_path: Path) -> None:
    assert build_test_settings(tmp_path, session_ttl_seconds=90).session_ttl_ms == 90_000
