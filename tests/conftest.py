from collections.abc import Generator
from pathlib import Path

import pytest
from sqlalchemy.orm import Session, sessionmaker

from recordflow.config import Settings
from recordflow.database import build_session_factory


@pytest.fixture()
def temp_workspace(tmp_path: Path) -> Path:
    (tmp_path / "data" / "input").mkdir(parents=True, exist_ok=True)
    (tmp_path / "outputs").mkdir(parents=True, exist_ok=True)
    return tmp_path


@pytest.fixture()
def test_settings(temp_workspace: Path) -> Settings:
    return Settings(
        app_name="recordflow",
        database_url=f"sqlite:///{temp_workspace / 'test.db'}",
        log_level="INFO",
        batch_size=2,
        error_mode="tolerant",
        error_threshold=None,
        listener_failure_policy="record",
        writer_max_retries=0,
        retry_backoff_seconds=0,
        max_consecutive_read_errors=100,
    )


@pytest.fixture()
def session_factory(test_settings: Settings) -> Generator[sessionmaker[Session], None, None]:
    factory = build_session_factory(test_settings.database_url)
    yield factory
    factory.kw["bind"].dispose()
