from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from job_runner.core.config_store import ConfigStore
from job_runner.main import create_app
from tests.utils.sqlite import create_metrics_db


@pytest.fixture
def metrics_db(tmp_path: Path) -> Path:
    return create_metrics_db(tmp_path / "metrics.db")


@pytest.fixture
def config_store() -> ConfigStore:
    return ConfigStore()


@pytest.fixture
def client(config_store: ConfigStore) -> Generator[TestClient, None, None]:
    with TestClient(create_app(config_store)) as c:
        yield c
