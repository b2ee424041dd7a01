from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import Callable, Optional, Protocol

from .source import RacePage
from .store import RecordStore


logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    FAILED = "failed"


class PageSource(Protocol):
    async def page_count(self, slug: str) -> int: ...

    async def fetch_page(self, slug: str, page: int = 1, with_entrants: bool = True) -> RacePage: ...


CommitCallback = Callable[["LoadSession", bool], None]


class CancelHandle:
    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class LoadSession:
    """One pass over every race page of a category.

    A session owns its store and its cancel handle. It only ever writes to its
    own store, and it checks that it is still the manager's live session after
    every await before touching anything.
    """

    def __init__(self, slug: str, manager: "SessionManager") -> None:
        self.token = uuid.uuid4().hex
        self.slug = slug
        self.store = RecordStore()
        self.handle = CancelHandle()
        self.state = SessionState.IDLE
        self.page = 0
        self.total_pages = 0
        self.progress = 0.0
        self.notice: Optional[str] = None
        self._manager = manager

    def __repr__(self) -> str:
        return f"<LoadSession {self.slug} {self.token[:8]} {self.state.value}>"

    @property
    def live(self) -> bool:
        return self._manager.is_live(self)

    def cancel(self) -> None:
        self.handle.cancel()

    def _cancelled(self) -> SessionState:
        logger.debug("Discarding stale page %d for %s", self.page + 1, self.slug)
        self.state = SessionState.CANCELLED
        return self.state

    async def run(self, source: PageSource, on_commit: CommitCallback | None = None) -> SessionState:
        """Fetch and ingest pages 1..N in order.

        ``on_commit`` is called after each page is ingested with the session
        and whether the page introduced new players. Returns the final state.
        """

        if self.state is not SessionState.LOADING:
            raise RuntimeError(f"Session for {self.slug} is {self.state.value}, not loading")

        try:
            total_pages = await source.page_count(self.slug)
            if not self.live:
                return self._cancelled()
            self.total_pages = total_pages

            for page in range(1, total_pages + 1):
                result = await source.fetch_page(self.slug, page, with_entrants=True)
                if not self.live:
                    return self._cancelled()
                new_players = self.store.ingest_recorded_batch(result.records)
                self.page = page
                self.progress = (page * 1000 // total_pages) / 10
                logger.info(
                    "Loaded %s page %d/%d (%d races)", self.slug, page, total_pages, len(self.store)
                )
                if on_commit is not None:
                    on_commit(self, new_players)
        except (RuntimeError, ValueError) as exc:
            if not self.live:
                return self._cancelled()
            self.state = SessionState.FAILED
            self.notice = f"Loading {self.slug} stopped at page {self.page + 1}: {exc}"
            logger.warning("Race load for %s failed (%s)", self.slug, exc)
            return self.state

        if total_pages == 0:
            self.progress = 100.0
        self.state = SessionState.COMPLETE
        logger.info("Finished loading %s: %d races", self.slug, len(self.store))
        return self.state


class SessionManager:
    """Keeps track of the single live LoadSession."""

    def __init__(self) -> None:
        self._current: Optional[LoadSession] = None

    @property
    def current(self) -> Optional[LoadSession]:
        return self._current

    def start(self, slug: str) -> LoadSession:
        previous = self._current
        if previous is not None:
            previous.cancel()
            previous.store.clear()

        session = LoadSession(slug, self)
        session.state = SessionState.LOADING
        self._current = session
        logger.info("Started loading %s (%s)", slug, session.token)
        return session

    def is_live(self, session: LoadSession) -> bool:
        return session is self._current and not session.handle.cancelled
