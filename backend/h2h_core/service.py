from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple

from .matchup import MatchupRecord, MatchupTable
from .race import UserProfile
from .ranking import rank
from .session import LoadSession, SessionManager, SessionState
from .source import CategoryInfo, RaceSource
from .store import RecordStore
from .table import build_table


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchupSnapshot:
    """Committed view of one category and goal, replaced wholesale on every change."""

    version: int = 0
    slug: str = ""
    goal: str = ""
    ranking: Tuple[str, ...] = ()
    table: Mapping[str, Mapping[str, MatchupRecord]] = field(default_factory=dict)
    profiles: Mapping[str, UserProfile] = field(default_factory=dict)
    progress: float = 0.0
    race_count: int = 0
    goal_counts: Mapping[str, int] = field(default_factory=dict)
    state: SessionState = SessionState.IDLE
    notice: Optional[str] = None


class Head2HeadService:
    """Loads a category's races and serves the matchup table for a goal.

    All readers return the last published snapshot. Snapshots are only
    published on behalf of the live session.
    """

    def __init__(self, source: RaceSource | None = None) -> None:
        self.source = source or RaceSource()
        self.sessions = SessionManager()
        self._store = RecordStore()
        self._category: Optional[CategoryInfo] = None
        self._snapshot = MatchupSnapshot()
        self._version = 0

    async def is_valid_category(self, slug: str) -> bool:
        return await self.source.is_valid_category(slug)

    async def load_category(self, slug: str) -> SessionState:
        session = self.sessions.start(slug)
        self._store = session.store
        self._category = None
        self._publish(session)

        info_task = asyncio.create_task(self._load_category_info(session))
        try:
            state = await session.run(self.source, self._on_commit)
        finally:
            await info_task
        if self.sessions.is_live(session):
            self._publish(session)
        return state

    async def _load_category_info(self, session: LoadSession) -> None:
        try:
            info = await self.source.fetch_category_info(session.slug)
        except (RuntimeError, ValueError) as exc:
            logger.warning("Category info for %s unavailable (%s)", session.slug, exc)
            return
        if self.sessions.is_live(session):
            self._category = info

    def _on_commit(self, session: LoadSession, new_players: bool) -> None:
        if not self.sessions.is_live(session):
            logger.debug("Ignoring commit from stale session %s", session.token)
            return
        if new_players:
            logger.debug("New players in %s, %d known", session.slug, len(session.store.players))
        self._publish(session)

    def set_active_goal(self, goal: str) -> None:
        self._store.goal = goal
        self._publish(self.sessions.current)

    def _publish(self, session: LoadSession | None) -> None:
        store = self._store
        goal = store.goal
        table: MatchupTable = {}
        ranking: List[str] = []
        if goal:
            table = build_table(store, goal)
            ranking = rank(goal, table, store.ordered_players_for_goal(goal))

        self._version += 1
        self._snapshot = MatchupSnapshot(
            version=self._version,
            slug=session.slug if session else "",
            goal=goal,
            ranking=tuple(ranking),
            table=MappingProxyType({name: MappingProxyType(row) for name, row in table.items()}),
            profiles=MappingProxyType({name: store.players[name].profile for name in ranking}),
            progress=session.progress if session else 0.0,
            race_count=store.race_count,
            goal_counts=MappingProxyType(store.goal_race_counts()),
            state=session.state if session else SessionState.IDLE,
            notice=session.notice if session else None,
        )

    @property
    def snapshot(self) -> MatchupSnapshot:
        return self._snapshot

    def current_ranking(self) -> List[str]:
        return list(self._snapshot.ranking)

    def current_table(self) -> Mapping[str, Mapping[str, MatchupRecord]]:
        return self._snapshot.table

    def load_progress(self) -> float:
        return self._snapshot.progress

    def participant_count(self) -> int:
        return len(self._snapshot.ranking)

    def race_count(self) -> int:
        return self._snapshot.race_count

    def goal_options(self) -> List[Tuple[str, int]]:
        return list(self._snapshot.goal_counts.items())

    def state(self) -> SessionState:
        return self._snapshot.state

    def notice(self) -> Optional[str]:
        return self._snapshot.notice

    def category(self) -> Optional[CategoryInfo]:
        return self._category

    def profile(self, name: str) -> Optional[UserProfile]:
        return self._snapshot.profiles.get(name)
