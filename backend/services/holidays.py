"""Public holiday lookup used to skip days when generating slots."""

import logging
from datetime import date

import httpx

from backend.core import config

logger = logging.getLogger(__name__)


class HolidayCalendar:
    """Fetches public holidays per year from the Nager.Date API and caches them.

    An empty country code disables the lookup. Network or payload errors are
    logged and treated as "no holidays" so slot generation still proceeds.
    """

    def __init__(
        self,
        country_code: str = '',
        base_url: str = config.HOLIDAY_API_URL,
        timeout: float = config.HOLIDAY_API_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        self.country_code = country_code.strip().upper()
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._client = client
        self._cache: dict[tuple[str, int], frozenset[date]] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.country_code)

    def clear(self) -> None:
        self._cache.clear()

    def holidays_for_year(self, year: int) -> frozenset[date]:
        if not self.enabled:
            return frozenset()

        key = (self.country_code, year)
        if key not in self._cache:
            holidays = self._fetch(year)
            if holidays is None:
                return frozenset()
            self._cache[key] = holidays
        return self._cache[key]

    def holidays_between(self, start_date: date, end_date: date) -> set[date]:
        holidays: set[date] = set()
        for year in range(start_date.year, end_date.year + 1):
            holidays.update(day for day in self.holidays_for_year(year) if start_date <= day <= end_date)
        return holidays

    def _fetch(self, year: int) -> frozenset[date] | None:
        url = f'{self.base_url}/{year}/{self.country_code}'
        logger.info('Fetching public holidays for %s %s', self.country_code, year)
        try:
            if self._client is not None:
                response = self._client.get(url, timeout=self.timeout)
            else:
                response = httpx.get(url, timeout=self.timeout)
            response.raise_for_status()
            return frozenset(date.fromisoformat(entry['date']) for entry in response.json())
        except (httpx.HTTPError, ValueError, KeyError, TypeError):
            logger.warning('Public holiday lookup failed for %s %s', self.country_code, year, exc_info=True)
            return None


holiday_calendar = HolidayCalendar(config.HOLIDAY_COUNTRY_CODE)


def get_holiday_calendar() -> HolidayCalendar:
    return holiday_calendar
