import os

# Keep tests away from real backends and set the write token before the app is imported
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ.pop("REDIS_URL", None)
os.environ.pop("BOX_OFFICE_URL", None)
os.environ.pop("CACHE_BACKEND", None)
os.environ["API_TOKEN"] = "test-token"

import pytest
import redis
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import catalog.models  # noqa: F401  (register tables)
from catalog.database import Base, get_db
from catalog.main import app
from catalog.services.movie_service import MovieService
from catalog.services.rating_service import RatingService
from catalog.services.ranking_service import MemoryRankingIndex
from catalog.utils.cache import MemoryCache
from catalog.utils.dependencies import get_box_office_client, get_cache, get_ranking_index

SQLALCHEMY_DATABASE_URL = "sqlite://"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class StubBoxOfficeClient:
    """Returns canned BoxOfficeData per title and records every lookup."""

    def __init__(self):
        self.data = {}
        self.calls = []

    def fetch(self, title):
        self.calls.append(title)
        return self.data.get(title)


class FakeRedis:
    """Just enough of redis.Redis for the cache and ranking backends."""

    def __init__(self):
        self.values = {}
        self.ttls = {}
        self.zsets = {}

    def get(self, key):
        return self.values.get(key)

    def setex(self, key, ttl, value):
        self.values[key] = value
        self.ttls[key] = ttl

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                removed += 1
        return removed

    def zadd(self, key, mapping):
        self.zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    def zrevrange(self, key, start, end, withscores=False):
        members = sorted(self.zsets.get(key, {}).items(), key=lambda item: (item[1], item[0]), reverse=True)
        members = members[start:end + 1]
        return members if withscores else [member for member, _ in members]


class BrokenRedis:
    """Every command fails as if the server went away."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise redis.ConnectionError("Connection refused")
        return fail


@pytest.fixture
def db_session():
    """Provide a clean database session for each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def cache():
    return MemoryCache(max_size=100)


@pytest.fixture
def rankings():
    return MemoryRankingIndex()


@pytest.fixture
def box_office():
    return StubBoxOfficeClient()


@pytest.fixture
def movie_service(db_session, cache, box_office):
    return MovieService(db_session, cache, box_office)


@pytest.fixture
def rating_service(db_session, cache, rankings, movie_service):
    return RatingService(db_session, cache, rankings, movie_service)


@pytest.fixture
def client(db_session, cache, rankings, box_office):
    """FastAPI test client with the database and backends overridden."""

    def override_get_db():
        test_db = TestingSessionLocal()
        try:
            yield test_db
        finally:
            test_db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_ranking_index] = lambda: rankings
    app.dependency_overrides[get_box_office_client] = lambda: box_office

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer test-token"}


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def broken_redis():
    return BrokenRedis()
