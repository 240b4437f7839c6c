"""
Ranking Routes - Top movies by rating count and by average rating
"""
from fastapi import APIRouter, Depends, Query

from catalog.schemas.rating import RankingResponse
from catalog.services.rating_service import RatingService
from catalog.utils.dependencies import get_rating_service

router = APIRouter(prefix="/api/rankings", tags=["Rankings"])


@router.get("/popular", response_model=RankingResponse)
def get_popular(
    limit: int = Query(10, ge=1, le=100, description="Number of movies"),
    service: RatingService = Depends(get_rating_service)
):
    """Movies with the most ratings"""
    return {"ranking": "popular", "items": service.get_ranking("popular", limit)}


@router.get("/top-rated", response_model=RankingResponse)
def get_top_rated(
    limit: int = Query(10, ge=1, le=100, description="Number of movies"),
    service: RatingService = Depends(get_rating_service)
):
    """Movies with the highest average rating (rated movies only)"""
    return {"ranking": "top-rated", "items": service.get_ranking("top-rated", limit)}
