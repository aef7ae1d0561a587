from __future__ import annotations

from pathlib import Path

import pytest

from mathsphere.config import Settings, prepare_settings
from mathsphere.db import init_db


@pytest.fixture
def config(tmp_path: Path) -> Settings:
    uploads = tmp_path / "public"
    uploads.mkdir()
    return prepare_settings(
        Settings(
            data_dir=tmp_path / "data",
            uploads_dir=uploads,
            llm_provider="mock",
            environment="test",
            runs_enabled=True,
            gemini_api_key=None,
            gemini_api_keys="",
        )
    )


@pytest.fixture
def engine(config: Settings):
    return init_db(config)
