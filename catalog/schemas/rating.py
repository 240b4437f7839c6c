"""
Rating Schemas - Pydantic models for rating request/response validation
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List


class RatingSubmit(BaseModel):
    """Schema for submitting a rating. The rater comes from the X-Rater-Id header."""
    rating: float = Field(..., description="Rating value: 0.5 to 5.0 in half-point steps")


class RatingSubmission(BaseModel):
    """Result of a rating upsert"""
    movie_title: str
    rater_id: str
    rating: float
    created: bool = Field(..., description="True when this was the rater's first rating for the movie")


class RatingAggregate(BaseModel):
    """Schema for movie-specific rating statistics"""
    average: float = Field(..., description="Average rating rounded to one decimal, 0 when unrated")
    count: int = Field(..., description="Number of ratings")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "average": 4.5,
                "count": 12
            }
        }
    )


class RankingEntry(BaseModel):
    title: str
    score: float


class RankingResponse(BaseModel):
    """Schema for a top-N ranking"""
    ranking: str = Field(..., description="popular (by rating count) or top-rated (by average)")
    items: List[RankingEntry]
