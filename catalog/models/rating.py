from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Index
from sqlalchemy.sql import func
from catalog.database import Base


class Rating(Base):
    __tablename__ = "ratings"

    id = Column(Integer, primary_key=True, index=True)
    movie_title = Column(String(255), ForeignKey("movies.title", ondelete="CASCADE"), nullable=False)
    rater_id = Column(String(100), nullable=False)
    rating = Column(Float, nullable=False)  # Half-point value from 0.5 to 5.0
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)  # NULL until first resubmission

    # Ensure one rating per rater per movie
    __table_args__ = (
        UniqueConstraint('movie_title', 'rater_id', name='uq_rating_movie_rater'),
        CheckConstraint('rating >= 0.5 AND rating <= 5.0', name='ck_rating_range'),
        Index('idx_ratings_movie_title', 'movie_title'),
    )
