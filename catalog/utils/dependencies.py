import os
import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from catalog.database import get_db
from catalog.services.movie_service import MovieService
from catalog.services.rating_service import RatingService
from catalog.services.ranking_service import RankingIndex
from catalog.utils.cache import CacheBackend

security = HTTPBearer(auto_error=False)


# Backends are created once in the application lifespan (see catalog.main)
def get_cache(request: Request) -> CacheBackend:
    return request.app.state.cache


def get_ranking_index(request: Request) -> RankingIndex:
    return request.app.state.rankings


def get_box_office_client(request: Request):
    return request.app.state.box_office


def get_movie_service(
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    box_office=Depends(get_box_office_client),
) -> MovieService:
    return MovieService(db, cache, box_office)


def get_rating_service(
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
    rankings: RankingIndex = Depends(get_ranking_index),
    movies: MovieService = Depends(get_movie_service),
) -> RatingService:
    return RatingService(db, cache, rankings, movies)


# Dependency guarding write endpoints with the shared API token
def require_api_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    expected = os.getenv("API_TOKEN")
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization header")
    if not expected or not secrets.compare_digest(credentials.credentials, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


# The rater identity is asserted by the caller through a header
def get_rater_id(x_rater_id: Optional[str] = Header(None)) -> str:
    if not x_rater_id or not x_rater_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Rater-Id header")
    return x_rater_id.strip()
