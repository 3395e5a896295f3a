from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

# Must be set before importing modules that read settings or create the SQLAlchemy engine.
_RUNTIME_DIR = Path(tempfile.mkdtemp(prefix="relay-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{(_RUNTIME_DIR / 'relay_test.db').as_posix()}"
os.environ["DATA_DIR"] = str(_RUNTIME_DIR)
os.environ["AUTO_CREATE_DB_SCHEMA"] = "true"
os.environ["OPENAI_API_KEY"] = "test-key"
os.environ["LEAD_SINKS"] = '["csv"]'
os.environ["REALTIME_DRAIN_TIMEOUT_SECONDS"] = "0"
os.environ.pop("ADMIN_API_KEY", None)


@pytest.fixture()
def settings_factory(tmp_path):
    from config.settings import Settings

    def _make(**overrides):
        values = {
            "openai_api_key": "test-key",
            "data_dir": tmp_path,
            "pacer_mode": "count",
            "pacer_commit_frames": 5,
            "realtime_drain_timeout_seconds": 0.0,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture(scope="session")
def app():
    import importlib

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
