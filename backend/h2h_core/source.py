from __future__ import annotations

import datetime as dt
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List

import httpx

from .race import RaceRecord


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://racetime.gg"


@dataclass
class RacePage:
    records: List[RaceRecord] = field(default_factory=list)
    total_pages: int = 0


@dataclass
class CategoryInfo:
    slug: str
    name: str
    short_name: str = ""
    url: str = ""
    goals: List[str] = field(default_factory=list)


class RaceSource:
    """Reads race pages and category metadata from a racetime server."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None) -> None:
        """Initialize the RaceSource.

        Args:
            base_url: Server root, defaults to RACETIME_URL or racetime.gg
            timeout: Seconds per request, defaults to RACETIME_TIMEOUT; None waits forever
        """
        self.base_url = (base_url or os.getenv("RACETIME_URL") or DEFAULT_BASE_URL).rstrip("/")
        if timeout is None:
            raw_timeout = os.getenv("RACETIME_TIMEOUT", "").strip()
            timeout = float(raw_timeout) if raw_timeout else None
        self.timeout = timeout

    def category_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _get_json(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        endpoint = self.category_url(path)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(endpoint, params=params)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as exc:
            raise RuntimeError(f"Failed to fetch {endpoint}: {exc}") from exc

    async def fetch_page(self, slug: str, page: int = 1, with_entrants: bool = True) -> RacePage:
        payload = await self._get_json(
            f"{slug}/races/data",
            params={"show_entrants": str(with_entrants).lower(), "page": page},
        )
        if not isinstance(payload, dict):
            raise RuntimeError(f"Unexpected payload for {slug} page {page}: {type(payload)}")

        races = payload.get("races") or []
        records = [RaceRecord.from_payload(race) for race in races if isinstance(race, dict)]
        return RacePage(records=records, total_pages=int(payload.get("num_pages") or 0))

    async def page_count(self, slug: str) -> int:
        return (await self.fetch_page(slug, 1, with_entrants=False)).total_pages

    async def fetch_category_info(self, slug: str) -> CategoryInfo:
        payload = await self._get_json(f"{slug}/data")
        if not isinstance(payload, dict):
            raise RuntimeError(f"Unexpected category payload for {slug}: {type(payload)}")
        return CategoryInfo(
            slug=str(payload.get("slug") or slug),
            name=str(payload.get("name") or slug),
            short_name=str(payload.get("short_name") or ""),
            url=self.category_url(str(payload.get("url") or slug)),
            goals=[str(goal) for goal in payload.get("goals") or []],
        )

    async def is_valid_category(self, slug: str) -> bool:
        slug = slug.strip().strip("/")
        if not slug:
            return False
        endpoint = self.category_url(f"{slug}/data")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(endpoint)
        except httpx.HTTPError as exc:
            logger.info("Category %s could not be checked (%s)", slug, exc)
            return False
        return response.status_code != 404

    async def fetch_all_races(
        self,
        slug: str,
        since: dt.datetime | None = None,
        recorded_only: bool = False,
        goal: str | None = None,
    ) -> List[RaceRecord]:
        """Collect races from every page, newest first.

        Stops at the first race that ended before ``since``.
        """

        total_pages = await self.page_count(slug)
        races: List[RaceRecord] = []
        for page in range(1, total_pages + 1):
            for record in (await self.fetch_page(slug, page, with_entrants=True)).records:
                if since is not None and record.ended_at is not None and _before(record.ended_at, since):
                    return races
                if recorded_only and not record.recorded:
                    continue
                if goal is not None and record.goal != goal:
                    continue
                races.append(record)
        return races


def _before(value: dt.datetime, cutoff: dt.datetime) -> bool:
    # Naive timestamps are taken as UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    if cutoff.tzinfo is None:
        cutoff = cutoff.replace(tzinfo=dt.timezone.utc)
    return value < cutoff
