"""
Movie Routes - Create, look up, list and replace movies
"""
from fastapi import APIRouter, Depends, Query, Path, status
from typing import Optional

from catalog.schemas.movie import MovieCreate, MovieFilter, MoviePage, MovieResponse, MovieUpdate
from catalog.services.movie_service import MAX_BUDGET, MAX_LIMIT, MovieService
from catalog.utils.dependencies import get_movie_service, require_api_token

router = APIRouter(prefix="/api/movies", tags=["Movies"])


@router.post(
    "",
    response_model=MovieResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_api_token)],
)
def create_movie(
    movie_data: MovieCreate,
    service: MovieService = Depends(get_movie_service)
):
    """
    Create a movie

    - **title**: unique title (required)
    - **genre**: genre (required)
    - **release_date**: YYYY-MM-DD (required)
    - **distributor**, **budget**, **mpa_rating**: optional, filled from
      box office data when omitted

    `box_office` is null when the box office provider had no data.
    Requires `Authorization: Bearer <API_TOKEN>`.
    """
    return service.create_movie(movie_data)


@router.get("", response_model=MoviePage)
def list_movies(
    q: Optional[str] = Query(None, max_length=200, description="Title contains (case-insensitive)"),
    year: Optional[int] = Query(None, ge=1, le=9999, description="Release year"),
    genre: Optional[str] = Query(None, description="Genre (case-insensitive)"),
    distributor: Optional[str] = Query(None, description="Distributor (case-insensitive)"),
    budget: Optional[int] = Query(None, ge=0, le=MAX_BUDGET, description="Maximum budget"),
    mpa_rating: Optional[str] = Query(None, description="Rating classification"),
    limit: Optional[int] = Query(None, le=MAX_LIMIT, description="Page size (default 10, max 100)"),
    cursor: Optional[str] = Query(None, description="next_cursor from the previous page"),
    service: MovieService = Depends(get_movie_service)
):
    """
    List movies with optional filters (all filters are combined with AND)

    Pass `next_cursor` back as `cursor` with the same filters to get the
    next page. A cursor from a different filter set is rejected.
    """
    filters = MovieFilter(
        q=q,
        year=year,
        genre=genre,
        distributor=distributor,
        budget=budget,
        mpa_rating=mpa_rating
    )
    return service.list_movies(filters, limit, cursor)


@router.get("/{title}", response_model=MovieResponse)
def get_movie(
    title: str = Path(..., description="Movie title"),
    service: MovieService = Depends(get_movie_service)
):
    """Get a movie by title"""
    return service.get_movie_by_title(title)


@router.put(
    "/{title}",
    response_model=MovieResponse,
    dependencies=[Depends(require_api_token)],
)
def update_movie(
    movie_data: MovieUpdate,
    title: str = Path(..., description="Movie title"),
    service: MovieService = Depends(get_movie_service)
):
    """
    Replace a movie's fields (full replace, idempotent)

    Omitted optional fields are cleared. The id and title never change.
    """
    return service.update_movie(title, movie_data)
