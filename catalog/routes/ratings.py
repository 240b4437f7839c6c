"""
Rating Routes - Submit ratings and read rating aggregates
"""

from fastapi import APIRouter, Depends, Path, Response, status

from catalog.schemas.rating import RatingAggregate, RatingSubmission, RatingSubmit
from catalog.services.rating_service import RatingService
from catalog.utils.dependencies import get_rater_id, get_rating_service

router = APIRouter(prefix="/api/movies", tags=["Ratings"])


@router.post("/{title}/ratings", response_model=RatingSubmission, status_code=status.HTTP_201_CREATED)
def submit_rating(
    rating_data: RatingSubmit,
    response: Response,
    title: str = Path(..., description="Movie title"),
    rater_id: str = Depends(get_rater_id),
    service: RatingService = Depends(get_rating_service)
):
    """
    Add a new rating or update the rater's existing one

    - **rating**: 0.5 to 5.0 in half-point steps
    - **X-Rater-Id** header: rater identity (required)

    Returns 201 when the rating was created, 200 when it replaced
    an earlier rating from the same rater.
    """
    submission = service.submit_rating(title, rater_id, rating_data.rating)
    if not submission.created:
        response.status_code = status.HTTP_200_OK
    return submission


@router.get("/{title}/rating", response_model=RatingAggregate)
def get_movie_rating(
    title: str = Path(..., description="Movie title"),
    service: RatingService = Depends(get_rating_service)
):
    """
    Get rating statistics for a movie

    Returns the average rating (one decimal, 0 when unrated) and the
    number of ratings.
    """
    return service.get_rating_aggregate(title)
