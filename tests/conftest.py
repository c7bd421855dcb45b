import pytest

from glp_tracker.core import database


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setattr(database, "DB_PATH", tmp_path / "glp-test.db")
    database.close_connection()
    database.init_db()
    yield database
    database.close_connection()
