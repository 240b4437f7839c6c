"""
Movie Service - Movie creation, lookup, listing and replacement

Read path: cache first (entity:{title}), database on miss, then repopulate
the cache with a TTL.
Write path: commit to the database, then invalidate entity:{title}.
Creation additionally enriches the movie with box office data; enrichment
failures never prevent the movie from being stored.
"""
import logging
import os
import threading
import time
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import extract, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from catalog.database import store_operation
from catalog.models.movie import Movie
from catalog.schemas.movie import MovieCreate, MovieFilter, MoviePage, MovieResponse, MovieUpdate
from catalog.services.box_office_client import BoxOfficeData
from catalog.utils.cache import DEFAULT_TTL, CacheBackend, movie_key
from catalog.utils.cursor import decode_cursor, encode_cursor, filter_fingerprint
from catalog.utils.errors import ConflictError, InvalidArgumentError, NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
MAX_LIMIT = 100
MAX_BUDGET = 2**63 - 1  # BIGINT
BOX_OFFICE_CURRENCY = "USD"
BOX_OFFICE_SOURCE = "BoxOfficeAPI"

_id_lock = threading.Lock()
_last_id = 0


def new_movie_id() -> str:
    """
    Generate a UUIDv7: 48-bit millisecond timestamp, then random bits.
    Ids are strictly increasing within the process.
    """
    global _last_id

    timestamp_ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")

    value = (timestamp_ms & 0xFFFFFFFFFFFF) << 80
    value |= 0x7 << 76                       # version 7
    value |= ((rand >> 62) & 0xFFF) << 64    # rand_a
    value |= 0x2 << 62                       # RFC 4122 variant
    value |= rand & ((1 << 62) - 1)          # rand_b

    with _id_lock:
        if value <= _last_id:
            value = _last_id + 1
        _last_id = value

    return str(uuid.UUID(int=value))


def parse_release_date(raw: str) -> date:
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"invalid release_date '{raw}', expected YYYY-MM-DD")


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not value.strip():
        raise InvalidArgumentError(f"{field} is required")
    return value.strip()


def _validate_budget(budget: Optional[int]) -> Optional[int]:
    if budget is not None and budget < 0:
        raise InvalidArgumentError("budget must be non-negative")
    if budget is not None and budget > MAX_BUDGET:
        raise InvalidArgumentError("budget is out of range")
    return budget


class MovieService:
    """Service for movie operations"""

    def __init__(self, db: Session, cache: CacheBackend, box_office):
        self.db = db
        self.cache = cache
        self.box_office = box_office

    # ==================== WRITES ====================

    def create_movie(self, movie_data: MovieCreate) -> MovieResponse:
        """
        Create a movie, enriching it with box office data when available.

        Input is validated before any side effect (including the
        box office call).

        Raises:
            InvalidArgumentError: empty title/genre, bad date, negative budget
            ConflictError: a movie with this title already exists
            UnavailableError: database unreachable
        """
        title = _require_text(movie_data.title, "title")
        genre = _require_text(movie_data.genre, "genre")
        release_date = parse_release_date(movie_data.release_date)

        movie = Movie(
            id=new_movie_id(),
            title=title,
            release_date=release_date,
            genre=genre,
            distributor=movie_data.distributor,
            budget=_validate_budget(movie_data.budget),
            mpa_rating=movie_data.mpa_rating,
        )

        box_office_data = self.box_office.fetch(title)
        if box_office_data is not None:
            merge_box_office(movie, box_office_data)

        response = MovieResponse.from_model(movie)

        try:
            with store_operation(self.db, "create movie"):
                self.db.add(movie)
                self.db.commit()
        except IntegrityError as e:
            raise ConflictError(f"movie '{title}' already exists") from e

        self.cache.delete(movie_key(title))
        logger.info(f"Created movie '{title}' (id={response.id}, box_office={'yes' if response.box_office else 'no'})")
        return response

    def update_movie(self, title: str, movie_data: MovieUpdate) -> MovieResponse:
        """
        Replace every mutable field of a movie (idempotent).
        The id and title never change.
        """
        genre = _require_text(movie_data.genre, "genre")
        release_date = parse_release_date(movie_data.release_date)
        budget = _validate_budget(movie_data.budget)

        with store_operation(self.db, "update movie"):
            movie = self.db.query(Movie).filter(Movie.title == title).first()
            if not movie:
                raise NotFoundError(f"movie '{title}' not found")

            movie.genre = genre
            movie.release_date = release_date
            movie.distributor = movie_data.distributor
            movie.budget = budget
            movie.mpa_rating = movie_data.mpa_rating

            box_office = movie_data.box_office
            movie.box_office_worldwide = box_office.revenue.worldwide if box_office else None
            movie.box_office_opening_usa = box_office.revenue.opening_weekend_usa if box_office else None
            movie.box_office_currency = box_office.currency if box_office else None
            movie.box_office_source = box_office.source if box_office else None
            movie.box_office_last_updated = box_office.last_updated if box_office else None

            response = MovieResponse.from_model(movie)
            self.db.commit()

        self.cache.delete(movie_key(title))
        return response

    # ==================== READS ====================

    def get_movie_by_title(self, title: str) -> MovieResponse:
        """
        Get a movie by title, serving from the cache when possible.

        Raises:
            NotFoundError: no movie with this title
        """
        key = movie_key(title)
        cached = self.cache.get(key)
        if cached is not None:
            try:
                movie = MovieResponse.model_validate_json(cached)
                logger.debug(f"Cache hit for movie: {title}")
                return movie
            except ValidationError:
                logger.warning(f"Discarding unreadable cache entry {key}")

        with store_operation(self.db, "get movie"):
            movie = self.db.query(Movie).filter(Movie.title == title).first()

        if not movie:
            raise NotFoundError(f"movie '{title}' not found")

        response = MovieResponse.from_model(movie)
        self.cache.set(key, response.model_dump_json(), DEFAULT_TTL)
        return response

    def list_movies(
        self,
        filters: MovieFilter,
        limit: Optional[int] = None,
        cursor: Optional[str] = None
    ) -> MoviePage:
        """
        List movies matching all given filters, ordered by id.

        Args:
            filters: Conjunctive filters (unset fields are ignored)
            limit: Page size, defaults to 10 when unset or non-positive, capped at 100
            cursor: Cursor from a previous page produced with the same filters

        Returns:
            MoviePage with next_cursor set only when more rows exist

        Raises:
            InvalidCursorError: malformed cursor or cursor from other filters
        """
        if not limit or limit <= 0:
            limit = DEFAULT_LIMIT
        limit = min(limit, MAX_LIMIT)

        active = filters.active()
        fingerprint = filter_fingerprint(active)
        offset = decode_cursor(cursor, fingerprint) if cursor else 0

        query = self.db.query(Movie)

        if "q" in active:
            query = query.filter(Movie.title.icontains(active["q"], autoescape=True))
        if "year" in active:
            query = query.filter(extract("year", Movie.release_date) == active["year"])
        if "genre" in active:
            query = query.filter(func.lower(Movie.genre) == active["genre"].lower())
        if "distributor" in active:
            query = query.filter(func.lower(Movie.distributor) == active["distributor"].lower())
        if "budget" in active:
            query = query.filter(Movie.budget <= active["budget"])
        if "mpa_rating" in active:
            query = query.filter(Movie.mpa_rating == active["mpa_rating"])

        # Fetch one extra row to detect whether another page exists
        with store_operation(self.db, "list movies"):
            rows = query.order_by(Movie.id).offset(offset).limit(limit + 1).all()

        next_cursor = None
        if len(rows) > limit:
            rows = rows[:limit]
            next_cursor = encode_cursor(offset + limit, fingerprint)

        return MoviePage(
            items=[MovieResponse.from_model(movie) for movie in rows],
            next_cursor=next_cursor,
        )


def merge_box_office(movie: Movie, data: BoxOfficeData) -> None:
    """
    Fill a new movie from provider data.

    Caller-supplied distributor, budget and rating classification always
    win. Revenue replaces the whole box office snapshot; currency, source
    and timestamp are stamped here rather than taken from the provider.
    """
    if movie.distributor is None and data.distributor is not None:
        movie.distributor = data.distributor
    if movie.budget is None and data.budget is not None:
        movie.budget = data.budget
    if movie.mpa_rating is None and data.mpa_rating is not None:
        movie.mpa_rating = data.mpa_rating

    if data.revenue is not None:
        movie.box_office_worldwide = data.revenue.worldwide
        movie.box_office_opening_usa = data.revenue.opening_weekend_usa
        movie.box_office_currency = BOX_OFFICE_CURRENCY
        movie.box_office_source = BOX_OFFICE_SOURCE
        movie.box_office_last_updated = datetime.now(timezone.utc)
