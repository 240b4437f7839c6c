"""
Box Office API Client
Fetches revenue data for new movies from the external box-office provider.

Enrichment is best-effort: fetch() returns None instead of raising when the
provider has no data or keeps failing, so movie creation never depends on it.

Retry policy:
- 404 is terminal (the provider does not know the title), no retry
- Any other non-2xx status, network error or unparseable body is retried
- Linear backoff: attempt * backoff seconds before retry number `attempt`
- An overall deadline stops new attempts once the time budget is spent
"""
import logging
import os
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional

import requests

from catalog.utils.errors import DegradedDependencyError

logger = logging.getLogger(__name__)


@dataclass
class BoxOfficeRevenue:
    worldwide: int
    opening_weekend_usa: Optional[int] = None


@dataclass
class BoxOfficeData:
    """Provider response, already parsed into Python types."""
    title: str
    distributor: Optional[str] = None
    release_date: Optional[date] = None
    budget: Optional[int] = None
    revenue: Optional[BoxOfficeRevenue] = None
    mpa_rating: Optional[str] = None


class BoxOfficeNotFound(DegradedDependencyError):
    """Provider answered 404. Terminal for the current fetch."""


class DisabledBoxOfficeClient:
    """Stand-in used when BOX_OFFICE_URL is not configured."""

    def fetch(self, title: str) -> Optional[BoxOfficeData]:
        return None


class BoxOfficeClient:
    """HTTP client for the box-office provider"""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 5.0,
        max_retries: int = 2,
        backoff: float = 0.1,
        deadline: Optional[float] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max(max_retries, 0)
        self.backoff = backoff
        self.deadline = deadline
        self.session = session or requests.Session()
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_env(cls):
        """Build the client from BOX_OFFICE_* environment variables."""
        base_url = os.getenv("BOX_OFFICE_URL")
        if not base_url:
            logger.info("BOX_OFFICE_URL not set, box office enrichment disabled")
            return DisabledBoxOfficeClient()

        deadline = os.getenv("BOX_OFFICE_DEADLINE", "3")
        return cls(
            base_url=base_url,
            api_key=os.getenv("BOX_OFFICE_API_KEY", ""),
            timeout=float(os.getenv("BOX_OFFICE_TIMEOUT", "5")),
            max_retries=int(os.getenv("BOX_OFFICE_MAX_RETRIES", "2")),
            backoff=float(os.getenv("BOX_OFFICE_BACKOFF", "0.1")),
            deadline=float(deadline) if deadline else None,
        )

    def fetch(self, title: str) -> Optional[BoxOfficeData]:
        """
        Get box office data for a title.

        Args:
            title: Movie title

        Returns:
            Parsed BoxOfficeData, or None when the provider has nothing
            usable (404, retries exhausted, or deadline reached)
        """
        started = self._clock()
        last_error: Optional[Exception] = None
        attempts = 0

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                delay = attempt * self.backoff
                remaining = self._remaining(started)
                if remaining is not None and remaining <= delay:
                    logger.warning(f"Box office deadline reached for '{title}' after {attempts} attempt(s)")
                    break
                self._sleep(delay)
                logger.info(f"Retrying box office request for '{title}', attempt {attempt}/{self.max_retries}")

            attempts += 1
            try:
                return self._request(title, self._request_timeout(started))
            except BoxOfficeNotFound as e:
                logger.info(f"Box office has no data for '{title}': {e}")
                return None
            except DegradedDependencyError as e:
                last_error = e

        logger.warning(f"Box office request for '{title}' failed after {attempts} attempt(s): {last_error}")
        return None

    def _remaining(self, started: float) -> Optional[float]:
        if self.deadline is None:
            return None
        return self.deadline - (self._clock() - started)

    def _request_timeout(self, started: float) -> float:
        remaining = self._remaining(started)
        if remaining is None:
            return self.timeout
        return max(min(self.timeout, remaining), 0.001)

    def _request(self, title: str, timeout: float) -> BoxOfficeData:
        """
        Perform one request. Raises BoxOfficeNotFound on 404 and
        DegradedDependencyError on any other failure.
        """
        url = f"{self.base_url}/boxoffice"
        try:
            response = self.session.get(
                url,
                params={"title": title},
                headers={"X-API-Key": self.api_key},
                timeout=timeout,
            )
        except requests.exceptions.RequestException as e:
            raise DegradedDependencyError(f"request failed: {e}") from e

        if response.status_code == 404:
            raise BoxOfficeNotFound("not found")
        if not 200 <= response.status_code < 300:
            raise DegradedDependencyError(f"unexpected status code: {response.status_code}")

        try:
            payload = response.json()
            return parse_box_office(payload, title)
        except (ValueError, TypeError, AttributeError) as e:
            raise DegradedDependencyError(f"failed to decode response: {e}") from e


def parse_box_office(payload: Dict[str, Any], title: str) -> BoxOfficeData:
    """Convert the provider JSON body into BoxOfficeData."""
    if not isinstance(payload, dict):
        raise ValueError("response body is not a JSON object")

    revenue = None
    raw_revenue = payload.get("revenue")
    if isinstance(raw_revenue, dict) and raw_revenue.get("worldwide") is not None:
        opening = raw_revenue.get("openingWeekendUSA")
        revenue = BoxOfficeRevenue(
            worldwide=int(raw_revenue["worldwide"]),
            opening_weekend_usa=int(opening) if opening is not None else None,
        )

    release_date = None
    if payload.get("releaseDate"):
        try:
            release_date = datetime.strptime(payload["releaseDate"], "%Y-%m-%d").date()
        except ValueError:
            logger.debug(f"Ignoring unparsable provider release date: {payload['releaseDate']}")

    budget = payload.get("budget")
    return BoxOfficeData(
        title=payload.get("title") or title,
        distributor=payload.get("distributor") or None,
        release_date=release_date,
        budget=int(budget) if budget is not None else None,
        revenue=revenue,
        mpa_rating=payload.get("mpaRating") or None,
    )
