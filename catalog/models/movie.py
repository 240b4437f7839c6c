from sqlalchemy import Column, String, Date, DateTime, BigInteger, Index
from sqlalchemy.sql import func
from catalog.database import Base


class Movie(Base):
    """
    Movie catalog entry.

    Box office data is embedded as nullable columns: the snapshot is either
    fully absent (box_office_worldwide is NULL) or present with currency,
    source and last-updated metadata.
    """
    __tablename__ = "movies"

    id = Column(String(36), primary_key=True)  # UUIDv7, time ordered
    title = Column(String(255), unique=True, nullable=False)
    release_date = Column(Date, nullable=False)
    genre = Column(String(100), nullable=False)
    distributor = Column(String(255), nullable=True)
    budget = Column(BigInteger, nullable=True)
    mpa_rating = Column(String(10), nullable=True)

    box_office_worldwide = Column(BigInteger, nullable=True)
    box_office_opening_usa = Column(BigInteger, nullable=True)
    box_office_currency = Column(String(10), nullable=True)
    box_office_source = Column(String(100), nullable=True)
    box_office_last_updated = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Indexes backing the list filters
    __table_args__ = (
        Index("idx_movies_genre", func.lower(genre)),
        Index("idx_movies_distributor", func.lower(distributor)),
        Index("idx_movies_budget", budget),
        Index("idx_movies_mpa_rating", mpa_rating),
    )

    def __repr__(self):
        return f"<Movie(id={self.id}, title={self.title!r})>"
