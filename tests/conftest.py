import io
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from db import get_session
from main import create_app
from tests.factories import ALL_FACTORIES


class FakeClock:
    """Injectable clock for staging TTL tests."""

    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "DB_URL": f"sqlite:///{tmp_path / 'test.sqlite'}",
        "SWEEP_SECONDS": 0,
        "COMMIT_TIMEOUT": None,
    })
    app.config["TESTING"] = True
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def coordinator(app):
    return app.extensions["import_coordinator"]


@pytest.fixture
def session(app):
    s = get_session()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def factories(session):
    """Bind every model factory to the test session."""
    for f in ALL_FACTORIES:
        f._meta.sqlalchemy_session = session
    yield
    for f in ALL_FACTORIES:
        f._meta.sqlalchemy_session = None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def count_rows(app):
    """Count committed rows using a fresh session each call."""
    def _count(model, **filters):
        with get_session() as s:
            stmt = select(func.count()).select_from(model)
            for attr, value in filters.items():
                stmt = stmt.where(getattr(model, attr) == value)
            return s.scalar(stmt)
    return _count


@pytest.fixture
def upload(client):
    """POST a CSV string to /api/<entity>/import/validate."""
    def _upload(entity, text, delimiter=",", **form):
        data = {"file": (io.BytesIO(text.encode("utf-8")), f"{entity}.csv"),
                "delimiter": delimiter}
        data.update({k: str(v).lower() for k, v in form.items()})
        return client.post(f"/api/{entity}/import/validate", data=data,
                           content_type="multipart/form-data")
    return _upload
