"""
Rating Service - Rating submission, aggregates and rankings

Submitting a rating is an atomic upsert keyed by (movie_title, rater_id):
the database decides insert vs update in one statement and reports which
one happened. After the commit the cached aggregate is invalidated and the
ranking indexes are refreshed from a freshly recomputed aggregate.
"""
import logging
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from catalog.database import store_operation
from catalog.models.rating import Rating
from catalog.schemas.rating import RankingEntry, RatingAggregate, RatingSubmission
from catalog.services.movie_service import MovieService
from catalog.services.ranking_service import POPULAR_INDEX, TOP_RATED_INDEX, RankingIndex
from catalog.utils.cache import DEFAULT_TTL, CacheBackend, aggregate_key
from catalog.utils.errors import InvalidArgumentError, NotFoundError, UnavailableError

logger = logging.getLogger(__name__)

# 0.5, 1.0, ..., 5.0
VALID_RATINGS = frozenset(step / 2 for step in range(1, 11))

RANKINGS = {
    "popular": POPULAR_INDEX,
    "top-rated": TOP_RATED_INDEX,
}

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def validate_rating(value) -> float:
    """
    Ensure a rating is one of the ten half-point steps.

    Raises:
        InvalidArgumentError: anything else (including NaN, inf and booleans)
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgumentError("invalid rating value: must be a number")
    if math.isnan(value) or float(value) not in VALID_RATINGS:
        raise InvalidArgumentError("invalid rating value: must be between 0.5 and 5.0 with 0.5 step")
    return float(value)


def round_average(total: Optional[float], count: int) -> float:
    """Average rounded half-up to one decimal; 0 when there are no ratings."""
    if not count:
        return 0.0
    average = Decimal(str(total)) / Decimal(count)
    return float(average.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


class RatingService:
    """Service for movie rating operations"""

    def __init__(self, db: Session, cache: CacheBackend, rankings: RankingIndex, movies: MovieService):
        self.db = db
        self.cache = cache
        self.rankings = rankings
        self.movies = movies

    def submit_rating(self, movie_title: str, rater_id: str, value: float) -> RatingSubmission:
        """
        Add a new rating or replace the rater's previous one.

        Args:
            movie_title: Title of an existing movie
            rater_id: Caller identity (validated upstream)
            value: Half-point rating between 0.5 and 5.0

        Returns:
            RatingSubmission with created=True on first submission

        Raises:
            InvalidArgumentError: off-grid rating or empty rater id
            NotFoundError: movie does not exist
            UnavailableError: database unreachable
        """
        rating = validate_rating(value)
        if not rater_id or not rater_id.strip():
            raise InvalidArgumentError("rater id is required")

        # Prerequisite check so an unknown title is reported as NotFound
        self.movies.get_movie_by_title(movie_title)

        created = self._upsert_rating(movie_title, rater_id, rating)

        self.cache.delete(aggregate_key(movie_title))
        self._refresh_rankings(movie_title)

        logger.info(f"Rating {'created' if created else 'updated'} for '{movie_title}' by {rater_id}: {rating}")
        return RatingSubmission(
            movie_title=movie_title,
            rater_id=rater_id,
            rating=rating,
            created=created,
        )

    def get_rating_aggregate(self, movie_title: str) -> RatingAggregate:
        """
        Get average (one decimal) and count for a movie, cached for 15 minutes.

        Raises:
            NotFoundError: movie does not exist
        """
        self.movies.get_movie_by_title(movie_title)

        key = aggregate_key(movie_title)
        cached = self.cache.get(key)
        if cached is not None:
            try:
                aggregate = RatingAggregate.model_validate_json(cached)
                logger.debug(f"Cache hit for rating aggregate: {movie_title}")
                return aggregate
            except ValidationError:
                logger.warning(f"Discarding unreadable cache entry {key}")

        aggregate = self._aggregate_from_store(movie_title)
        self.cache.set(key, aggregate.model_dump_json(), DEFAULT_TTL)
        return aggregate

    def get_ranking(self, ranking: str, limit: int = 10) -> List[RankingEntry]:
        """
        Get the top movies of a ranking ("popular" or "top-rated").

        Raises:
            InvalidArgumentError: unknown ranking name
        """
        index = RANKINGS.get(ranking)
        if index is None:
            raise InvalidArgumentError(f"unknown ranking '{ranking}'")
        return [RankingEntry(title=title, score=score) for title, score in self.rankings.top(index, limit)]

    def _upsert_rating(self, movie_title: str, rater_id: str, rating: float) -> bool:
        """
        INSERT ... ON CONFLICT DO UPDATE in a single statement.

        updated_at stays NULL on insert and is set by the conflict branch,
        so the returned updated_at tells whether a new row was created.
        """
        dialect = self.db.get_bind().dialect.name
        insert = _INSERT_BY_DIALECT.get(dialect)
        if insert is None:
            raise NotImplementedError(f"rating upsert is not supported on {dialect}")

        stmt = insert(Rating).values(movie_title=movie_title, rater_id=rater_id, rating=rating)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Rating.movie_title, Rating.rater_id],
            set_={"rating": stmt.excluded.rating, "updated_at": func.now()},
        ).returning(Rating.updated_at)

        try:
            with store_operation(self.db, "upsert rating"):
                updated_at = self.db.execute(stmt).scalar_one()
                self.db.commit()
        except IntegrityError as e:
            # Foreign key: the movie vanished between the check and the upsert
            raise NotFoundError(f"movie '{movie_title}' not found") from e

        return updated_at is None

    def _aggregate_from_store(self, movie_title: str) -> RatingAggregate:
        with store_operation(self.db, "compute rating aggregate"):
            count, total = self.db.query(
                func.count(Rating.id),
                func.sum(Rating.rating)
            ).filter(Rating.movie_title == movie_title).one()

        return RatingAggregate(average=round_average(total, count), count=count)

    def _refresh_rankings(self, movie_title: str) -> None:
        """Push the recomputed aggregate into the ranking indexes (best effort)."""
        try:
            aggregate = self._aggregate_from_store(movie_title)
        except UnavailableError as e:
            logger.warning(f"Skipping ranking update for '{movie_title}': {e}")
            return
        self.rankings.record(movie_title, aggregate.count, aggregate.average)
