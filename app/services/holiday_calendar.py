from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Iterable, Optional, Protocol

import httpx

from app.core.config import get_settings

logger = logging.getLogger(__name__)


class HolidayCalendarError(RuntimeError):
    """
    Raised when the holiday calendar cannot be fetched or decoded.
    """


class HolidayCalendar(Protocol):
    """
    External source of non-teaching days, consulted only for courses that
    exclude holidays.
    """

    async def is_holiday(self, day: date) -> bool: ...

    async def holidays_between(self, start: date, end: date) -> set[date]: ...


class StaticHolidayCalendar:
    """
    Holiday calendar backed by a fixed set of dates (e.g. from settings).
    """

    def __init__(self, dates: Iterable[date] = ()) -> None:
        self._dates = frozenset(dates)

    async def is_holiday(self, day: date) -> bool:
        return day in self._dates

    async def holidays_between(self, start: date, end: date) -> set[date]:
        return {day for day in self._dates if start <= day <= end}


class HttpHolidayCalendar:
    """
    Holiday calendar fetched over HTTP, one JSON document per year.

    Responsibilities
    ----------------
    - Fetch the yearly document from `url_template` (must contain `{year}`).
    - Accept either an object keyed by ISO date
      (`{"2024-01-01": "Jour de l'an", ...}`) or a list of ISO date strings
      or of objects with a `date` key.
    - Cache each year in memory for the lifetime of the instance.

    Notes
    -----
    - Failures raise HolidayCalendarError; callers decide how to surface them.
    """

    def __init__(
        self,
        url_template: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if "{year}" not in url_template:
            raise ValueError("url_template must contain a '{year}' placeholder")

        self._url_template = url_template
        self._timeout_seconds = timeout_seconds
        self._transport = transport
        self._years: Dict[int, frozenset[date]] = {}

    @staticmethod
    def _parse_payload(payload: Any) -> frozenset[date]:
        """
        Decode one yearly document into dates.
        """
        raw_dates: list[str] = []
        if isinstance(payload, dict):
            raw_dates = [str(key) for key in payload.keys()]
        elif isinstance(payload, list):
            for item in payload:
                if isinstance(item, dict) and "date" in item:
                    raw_dates.append(str(item["date"]))
                elif isinstance(item, str):
                    raw_dates.append(item)
        else:
            raise HolidayCalendarError(
                f"Unexpected holiday payload type: {type(payload).__name__}"
            )

        try:
            return frozenset(date.fromisoformat(raw[:10]) for raw in raw_dates)
        except ValueError as exc:
            raise HolidayCalendarError(f"Invalid date in holiday payload: {exc}") from exc

    async def _fetch_year(self, year: int) -> frozenset[date]:
        url = self._url_template.format(year=year)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._transport,
            ) as client:
                resp = await client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise HolidayCalendarError(f"Holiday calendar request failed: {exc}") from exc

        if resp.status_code // 100 != 2:
            raise HolidayCalendarError(
                f"Holiday calendar GET failed (status={resp.status_code}): {resp.text}"
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise HolidayCalendarError("Holiday calendar returned invalid JSON") from exc

        dates = self._parse_payload(payload)
        logger.info("Loaded %d holidays for %d from %s", len(dates), year, url)
        return dates

    async def _dates_for_year(self, year: int) -> frozenset[date]:
        if year not in self._years:
            self._years[year] = await self._fetch_year(year)
        return self._years[year]

    async def is_holiday(self, day: date) -> bool:
        return day in await self._dates_for_year(day.year)

    async def holidays_between(self, start: date, end: date) -> set[date]:
        found: set[date] = set()
        for year in range(start.year, end.year + 1):
            found.update(
                day for day in await self._dates_for_year(year) if start <= day <= end
            )
        return found


def get_holiday_calendar() -> HolidayCalendar:
    """
    Build the holiday calendar configured in settings.

    HOLIDAY_CALENDAR_URL wins over HOLIDAY_DATES; with neither configured no
    day is a holiday.
    """
    settings = get_settings()
    if settings.HOLIDAY_CALENDAR_URL:
        return HttpHolidayCalendar(
            url_template=settings.HOLIDAY_CALENDAR_URL,
            timeout_seconds=settings.HOLIDAY_CALENDAR_TIMEOUT_SECONDS,
        )
    return StaticHolidayCalendar(settings.holiday_dates())
