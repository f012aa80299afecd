import pathlib
import sys

import pytest
from fastapi.testclient import TestClient

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scanboard.main import analyses_repository, create_app

API_KEY = "test-api-key"


@pytest.fixture(autouse=True)
def reset_repository(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ANALYSIS_API_KEY", API_KEY)
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "http://localhost:3000")
    analyses_repository.reset()
    yield


@pytest.fixture
def repository():
    return analyses_repository


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app())
