from __future__ import annotations

from pathlib import Path

import pytest

from config.settings import Settings
from fakes import build_test_settings


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return build_test_settings(tmp_path)
