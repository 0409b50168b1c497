import pytest
from fastapi.testclient import TestClient

from db import Database
from dupecheck import FingerprintStore, PostStore, Settings


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        db_path=tmp_path / ".state" / "dupecheck.db",
        temp_dir=tmp_path / "temp",
        ffmpeg_timelimit=10.0,
    )


@pytest.fixture()
def database(settings):
    d = Database(settings.db_path)
    d.ensure_schema()
    return d


@pytest.fixture()
def posts(database):
    return PostStore(database)


@pytest.fixture()
def fingerprints(database):
    return FingerprintStore(database)


@pytest.fixture()
def app_module(tmp_path, monkeypatch):
    """Fresh service state per test, backed by a temp database."""
    monkeypatch.setenv("DUPECHECK_DB", str(tmp_path / ".state" / "dupecheck.db"))
    monkeypatch.setenv("DUPECHECK_TEMP_DIR", str(tmp_path / "temp"))
    import app as module
    module.STATE.clear()
    try:
        yield module
    finally:
        module.STATE.clear()


@pytest.fixture()
def client(app_module):
    with TestClient(app_module.app) as test_client:
        yield test_client
