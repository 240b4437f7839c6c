"""
Movie Schemas - Pydantic models for movie requests, responses and cache payloads
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from catalog.models.movie import Movie


# ============================================
# Box Office
# ============================================

class Revenue(BaseModel):
    worldwide: int = Field(..., description="Worldwide gross revenue")
    opening_weekend_usa: Optional[int] = Field(None, description="US opening weekend revenue")


class BoxOffice(BaseModel):
    """Box office snapshot embedded in a movie"""
    revenue: Revenue
    currency: str = "USD"
    source: str = "BoxOfficeAPI"
    last_updated: datetime


# ============================================
# Requests
# ============================================

class MovieCreate(BaseModel):
    """Schema for creating a movie. Field contents are validated by MovieService."""
    title: str = Field(..., description="Unique movie title")
    genre: str = Field(..., description="Genre name")
    release_date: str = Field(..., description="Release date (YYYY-MM-DD)", json_schema_extra={"example": "2024-01-01"})
    distributor: Optional[str] = Field(None, description="Distributor (filled from box office data when omitted)")
    budget: Optional[int] = Field(None, description="Production budget")
    mpa_rating: Optional[str] = Field(None, description="Rating classification (e.g. PG-13)")


class MovieUpdate(BaseModel):
    """Schema for replacing a movie. Every field is written, omitted optionals become null."""
    genre: str
    release_date: str = Field(..., description="Release date (YYYY-MM-DD)")
    distributor: Optional[str] = None
    budget: Optional[int] = None
    mpa_rating: Optional[str] = None
    box_office: Optional[BoxOffice] = None


class MovieFilter(BaseModel):
    """
    Conjunctive list filters. Unset fields do not filter.

    - q: case-insensitive substring of the title
    - year: release year
    - genre / distributor: case-insensitive exact match
    - budget: budget ceiling (budget <= value)
    - mpa_rating: exact rating classification
    """
    q: Optional[str] = None
    year: Optional[int] = None
    genre: Optional[str] = None
    distributor: Optional[str] = None
    budget: Optional[int] = None
    mpa_rating: Optional[str] = None

    def active(self) -> Dict[str, Any]:
        """Filters that are actually set (None and empty strings are ignored)."""
        return {name: value for name, value in self.model_dump().items() if value not in (None, "")}


# ============================================
# Responses
# ============================================

class MovieResponse(BaseModel):
    """Movie as returned by the API and stored in the cache"""
    id: str
    title: str
    release_date: date
    genre: str
    distributor: Optional[str] = None
    budget: Optional[int] = None
    mpa_rating: Optional[str] = None
    box_office: Optional[BoxOffice] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, movie: Movie) -> "MovieResponse":
        """Fold the flattened box office columns back into a BoxOffice."""
        box_office = None
        if movie.box_office_worldwide is not None:
            box_office = BoxOffice(
                revenue=Revenue(
                    worldwide=movie.box_office_worldwide,
                    opening_weekend_usa=movie.box_office_opening_usa,
                ),
                currency=movie.box_office_currency or "USD",
                source=movie.box_office_source or "",
                last_updated=movie.box_office_last_updated,
            )

        return cls(
            id=movie.id,
            title=movie.title,
            release_date=movie.release_date,
            genre=movie.genre,
            distributor=movie.distributor,
            budget=movie.budget,
            mpa_rating=movie.mpa_rating,
            box_office=box_office,
        )


class MoviePage(BaseModel):
    """One page of a movie listing"""
    items: List[MovieResponse]
    next_cursor: Optional[str] = Field(None, description="Opaque cursor for the next page, null at the end")
