from datetime import date
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from catalog.database import store_operation
from catalog.models.movie import Movie
from catalog.schemas.movie import MovieCreate, MovieFilter, MovieUpdate
from catalog.services.box_office_client import BoxOfficeClient, BoxOfficeData, BoxOfficeRevenue
from catalog.services.movie_service import MAX_LIMIT, MovieService, new_movie_id
from catalog.utils.cache import movie_key
from catalog.utils.cursor import encode_cursor, filter_fingerprint
from catalog.utils.errors import (
    ConflictError,
    InvalidArgumentError,
    InvalidCursorError,
    NotFoundError,
    UnavailableError,
)


def movie_payload(title="Alpha", **overrides):
    payload = {"title": title, "genre": "Drama", "release_date": "2024-01-01"}
    payload.update(overrides)
    return payload


def create(service, title="Alpha", **overrides):
    return service.create_movie(MovieCreate(**movie_payload(title, **overrides)))


# ============================================
# Creation
# ============================================

def test_create_movie_returns_201(client, auth_headers):
    response = client.post("/api/movies", json=movie_payload(), headers=auth_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["title"] == "Alpha"
    assert body["release_date"] == "2024-01-01"
    assert body["box_office"] is None
    assert len(body["id"]) == 36


def test_create_movie_requires_token(client):
    response = client.post("/api/movies", json=movie_payload())
    assert response.status_code == 401

    response = client.post("/api/movies", json=movie_payload(), headers={"Authorization": "Bearer wrong"})
    assert response.status_code == 401


def test_duplicate_title_conflicts(client, auth_headers):
    assert client.post("/api/movies", json=movie_payload(), headers=auth_headers).status_code == 201

    response = client.post("/api/movies", json=movie_payload(genre="Comedy"), headers=auth_headers)

    assert response.status_code == 409
    assert response.json()["code"] == "conflict"


@pytest.mark.parametrize("overrides", [
    {"title": "   "},
    {"genre": ""},
    {"release_date": "2024-13-01"},
    {"release_date": "01/01/2024"},
    {"budget": -1},
])
def test_invalid_movie_is_rejected(client, auth_headers, box_office, overrides):
    response = client.post("/api/movies", json=movie_payload(**overrides), headers=auth_headers)

    assert response.status_code == 422
    assert response.json()["code"] == "invalid_argument"
    # Validation happens before enrichment
    assert box_office.calls == []


def test_create_merges_box_office_data(movie_service, box_office):
    box_office.data["Alpha"] = BoxOfficeData(
        title="Alpha",
        distributor="Provider Pictures",
        budget=900000,
        mpa_rating="R",
        revenue=BoxOfficeRevenue(worldwide=5000000, opening_weekend_usa=750000),
    )

    movie = create(movie_service, distributor="Studio A")

    # Caller-supplied fields win, missing ones come from the provider
    assert movie.distributor == "Studio A"
    assert movie.budget == 900000
    assert movie.mpa_rating == "R"
    assert movie.box_office.revenue.worldwide == 5000000
    assert movie.box_office.revenue.opening_weekend_usa == 750000
    assert movie.box_office.currency == "USD"
    assert movie.box_office.source == "BoxOfficeAPI"
    assert movie.box_office.last_updated is not None
    assert box_office.calls == ["Alpha"]

    stored = movie_service.get_movie_by_title("Alpha")
    assert stored.box_office.revenue.worldwide == 5000000


def test_provider_without_revenue_keeps_box_office_empty(movie_service, box_office):
    box_office.data["Alpha"] = BoxOfficeData(title="Alpha", distributor="Provider Pictures")

    movie = create(movie_service)

    assert movie.distributor == "Provider Pictures"
    assert movie.box_office is None


class NotFoundSession:
    def __init__(self):
        self.calls = 0

    def get(self, url, **kwargs):
        self.calls += 1
        response = MagicMock()
        response.status_code = 404
        return response


def test_provider_404_still_creates_movie(db_session, cache):
    session = NotFoundSession()
    sleeps = []
    client = BoxOfficeClient("http://boxoffice.test", session=session, sleep=sleeps.append)
    service = MovieService(db_session, cache, client)

    movie = create(service, "Unknown Title")

    assert movie.box_office is None
    assert service.get_movie_by_title("Unknown Title").id == movie.id
    assert session.calls == 1
    assert sleeps == []


def test_service_rejects_duplicates(movie_service):
    create(movie_service)
    with pytest.raises(ConflictError):
        create(movie_service, genre="Comedy")


def test_movie_ids_increase():
    ids = [new_movie_id() for _ in range(200)]
    assert ids == sorted(ids)
    assert len(set(ids)) == 200
    assert all(id_[14] == "7" for id_ in ids)


# ============================================
# Lookup
# ============================================

def test_get_movie_by_title(client, auth_headers):
    client.post("/api/movies", json=movie_payload(), headers=auth_headers)

    response = client.get("/api/movies/Alpha")

    assert response.status_code == 200
    assert response.json()["genre"] == "Drama"


def test_get_unknown_movie_returns_404(client):
    response = client.get("/api/movies/Nope")

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_lookup_is_served_from_cache(movie_service, db_session, cache):
    create(movie_service)
    movie_service.get_movie_by_title("Alpha")
    assert cache.get(movie_key("Alpha")) is not None

    # Change the row behind the cache's back
    row = db_session.query(Movie).filter(Movie.title == "Alpha").first()
    row.genre = "Western"
    db_session.commit()

    assert movie_service.get_movie_by_title("Alpha").genre == "Drama"


def test_unreadable_cache_entry_falls_through_to_store(movie_service, cache):
    create(movie_service)
    cache.set(movie_key("Alpha"), "{not json", ttl=60)

    movie = movie_service.get_movie_by_title("Alpha")

    assert movie.genre == "Drama"
    assert cache.get(movie_key("Alpha")) == movie.model_dump_json()


def test_get_unknown_movie_raises(movie_service):
    with pytest.raises(NotFoundError):
        movie_service.get_movie_by_title("Nope")


# ============================================
# Replacement
# ============================================

def test_update_replaces_fields_and_invalidates_cache(movie_service, cache):
    created = create(movie_service, distributor="Studio A", budget=100)
    movie_service.get_movie_by_title("Alpha")

    updated = movie_service.update_movie("Alpha", MovieUpdate(genre="Comedy", release_date="2023-03-03"))

    assert updated.id == created.id
    assert updated.title == "Alpha"
    assert updated.genre == "Comedy"
    assert updated.release_date == date(2023, 3, 3)
    # Full replace: omitted optionals are cleared
    assert updated.distributor is None
    assert updated.budget is None
    assert cache.get(movie_key("Alpha")) is None
    assert movie_service.get_movie_by_title("Alpha").genre == "Comedy"


def test_update_is_idempotent(client, auth_headers):
    client.post("/api/movies", json=movie_payload(), headers=auth_headers)
    body = {
        "genre": "Thriller",
        "release_date": "2024-02-02",
        "budget": 42,
        "box_office": {
            "revenue": {"worldwide": 10, "opening_weekend_usa": 5},
            "last_updated": "2024-03-01T00:00:00Z",
        },
    }

    first = client.put("/api/movies/Alpha", json=body, headers=auth_headers)
    second = client.put("/api/movies/Alpha", json=body, headers=auth_headers)

    assert first.status_code == 200
    assert first.json() == second.json()
    assert second.json()["box_office"]["revenue"]["worldwide"] == 10
    assert client.get("/api/movies/Alpha").json()["budget"] == 42


def test_update_unknown_movie_returns_404(client, auth_headers):
    response = client.put(
        "/api/movies/Nope",
        json={"genre": "Drama", "release_date": "2024-01-01"},
        headers=auth_headers,
    )
    assert response.status_code == 404


def test_update_requires_token(client):
    response = client.put("/api/movies/Alpha", json={"genre": "Drama", "release_date": "2024-01-01"})
    assert response.status_code == 401


def test_update_rejects_bad_date(movie_service):
    create(movie_service)
    with pytest.raises(InvalidArgumentError):
        movie_service.update_movie("Alpha", MovieUpdate(genre="Drama", release_date="yesterday"))


# ============================================
# Listing
# ============================================

def test_pagination_walks_every_movie_once(movie_service):
    titles = [f"Movie {i:02d}" for i in range(25)]
    for title in titles:
        create(movie_service, title)

    seen = []
    cursor = None
    pages = 0
    while True:
        page = movie_service.list_movies(MovieFilter(), limit=10, cursor=cursor)
        seen.extend(movie.title for movie in page.items)
        pages += 1
        if page.next_cursor is None:
            break
        cursor = page.next_cursor

    assert pages == 3
    assert seen == titles


def test_last_full_page_has_no_cursor(movie_service):
    for i in range(10):
        create(movie_service, f"Movie {i}")

    page = movie_service.list_movies(MovieFilter(), limit=10)

    assert len(page.items) == 10
    assert page.next_cursor is None


@pytest.mark.parametrize("limit", [None, 0, -3])
def test_non_positive_limit_uses_default(movie_service, limit):
    for i in range(12):
        create(movie_service, f"Movie {i}")

    page = movie_service.list_movies(MovieFilter(), limit=limit)

    assert len(page.items) == 10
    assert page.next_cursor is not None


@pytest.fixture
def catalog_movies(movie_service):
    create(movie_service, "Alpha", genre="Drama", release_date="2024-01-01",
           distributor="Studio A", budget=1000000, mpa_rating="PG-13")
    create(movie_service, "Alpha Beta", genre="Comedy", release_date="2023-05-05",
           distributor="Studio B", budget=5000000, mpa_rating="R")
    create(movie_service, "Gamma", genre="drama", release_date="2024-07-07",
           distributor="studio a", budget=20000000, mpa_rating="PG-13")
    create(movie_service, "100% Real", genre="Documentary", release_date="2022-02-02")


@pytest.mark.parametrize("params, expected", [
    ({"q": "alpha"}, ["Alpha", "Alpha Beta"]),
    ({"q": "%"}, ["100% Real"]),
    ({"year": 2024}, ["Alpha", "Gamma"]),
    ({"genre": "DRAMA"}, ["Alpha", "Gamma"]),
    ({"distributor": "Studio A"}, ["Alpha", "Gamma"]),
    ({"budget": 5000000}, ["Alpha", "Alpha Beta"]),
    ({"mpa_rating": "PG-13"}, ["Alpha", "Gamma"]),
    ({"genre": "drama", "budget": 1000000}, ["Alpha"]),
    ({"genre": ""}, ["Alpha", "Alpha Beta", "Gamma", "100% Real"]),
    ({"year": 1999}, []),
])
def test_filters(client, catalog_movies, params, expected):
    response = client.get("/api/movies", params=params)

    assert response.status_code == 200
    assert [movie["title"] for movie in response.json()["items"]] == expected


def test_cursor_from_other_filters_is_rejected(client, catalog_movies):
    first = client.get("/api/movies", params={"genre": "drama", "limit": 1}).json()
    assert first["next_cursor"]

    response = client.get("/api/movies", params={"genre": "comedy", "cursor": first["next_cursor"]})

    assert response.status_code == 422
    assert response.json()["code"] == "invalid_argument"

    following = client.get("/api/movies", params={"genre": "drama", "limit": 1, "cursor": first["next_cursor"]})
    assert [movie["title"] for movie in following.json()["items"]] == ["Gamma"]


def test_malformed_cursor_is_rejected(client):
    response = client.get("/api/movies", params={"cursor": "!!not-a-cursor"})

    assert response.status_code == 422
    assert response.json()["code"] == "invalid_argument"


def test_service_rejects_malformed_cursor(movie_service):
    with pytest.raises(InvalidCursorError):
        movie_service.list_movies(MovieFilter(), cursor="abc")


def test_oversized_cursor_offset_is_rejected(client, catalog_movies):
    cursor = encode_cursor(2**64, filter_fingerprint({}))

    response = client.get("/api/movies", params={"cursor": cursor})

    assert response.status_code == 422
    assert response.json()["code"] == "invalid_argument"


def test_cursor_keeps_case_of_rating_filter(client, catalog_movies):
    first = client.get("/api/movies", params={"mpa_rating": "PG-13", "limit": 1}).json()

    response = client.get("/api/movies", params={"mpa_rating": "pg-13", "cursor": first["next_cursor"]})

    assert response.status_code == 422


@pytest.mark.parametrize("params", [
    {"limit": 101},
    {"limit": 2**63},
    {"budget": 2**64},
    {"year": 10**12},
])
def test_out_of_range_list_params_are_rejected(client, params):
    assert client.get("/api/movies", params=params).status_code == 422


def test_service_caps_page_size(movie_service):
    for i in range(MAX_LIMIT + 1):
        create(movie_service, f"Movie {i:03d}")

    page = movie_service.list_movies(MovieFilter(), limit=2**63)

    assert len(page.items) == MAX_LIMIT
    assert page.next_cursor is not None


def test_oversized_budget_is_rejected(client, auth_headers):
    response = client.post("/api/movies", json=movie_payload(budget=2**64), headers=auth_headers)

    assert response.status_code == 422
    assert response.json()["code"] == "invalid_argument"


# ============================================
# Store failures
# ============================================

def test_store_errors_become_unavailable():
    db = MagicMock()

    with pytest.raises(UnavailableError):
        with store_operation(db, "list movies"):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    db.rollback.assert_called_once()


def test_unavailable_store_returns_503(client, monkeypatch):
    def down(self, *args, **kwargs):
        raise UnavailableError("failed to get movie: database unavailable")

    monkeypatch.setattr(MovieService, "get_movie_by_title", down)

    response = client.get("/api/movies/Alpha")

    assert response.status_code == 503
    assert response.json()["code"] == "unavailable"
