"""
Import all models to ensure they are registered with SQLAlchemy
"""
from catalog.models.movie import Movie
from catalog.models.rating import Rating

__all__ = [
    "Movie",
    "Rating"
]
