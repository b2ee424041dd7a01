from __future__ import annotations

import asyncio
from typing import Dict, List, Tuple

import pytest

from h2h_core import (
    CategoryInfo,
    Entrant,
    EntrantStatus,
    Head2HeadService,
    MatchupRecord,
    RacePage,
    RaceRecord,
    SessionManager,
    SessionState,
    UserProfile,
)
from h2h_core.race import UnorderedEntrantsError


def _race(goal: str, *names: str, recorded: bool = True) -> RaceRecord:
    entrants = tuple(Entrant(user=UserProfile(name=name), status=EntrantStatus.DONE) for name in names)
    return RaceRecord(name=goal, goal=goal, entrants=entrants, recorded=recorded)


class _PagedSource:
    """In-memory page source; pages of ``blocked`` slugs wait for ``gate``."""

    def __init__(
        self,
        pages: Dict[str, List[List[RaceRecord]]],
        fail_on: Tuple[str, int] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.pages = pages
        self.fail_on = fail_on
        self.error = error or RuntimeError("connection reset")
        self.info_gate: asyncio.Event | None = None
        self.requests: List[Tuple[str, int]] = []
        self.blocked: set[str] = set()
        self.gate = asyncio.Event()
        self.in_flight = asyncio.Event()

    async def page_count(self, slug: str) -> int:
        return len(self.pages[slug])

    async def fetch_page(self, slug: str, page: int = 1, with_entrants: bool = True) -> RacePage:
        self.requests.append((slug, page))
        if slug in self.blocked:
            self.in_flight.set()
            await self.gate.wait()
        if self.fail_on == (slug, page):
            raise self.error
        if self.info_gate is not None:
            self.info_gate.set()
        return RacePage(records=self.pages[slug][page - 1], total_pages=len(self.pages[slug]))

    async def fetch_category_info(self, slug: str) -> CategoryInfo:
        if self.info_gate is not None:
            await asyncio.wait_for(self.info_gate.wait(), timeout=1)
        return CategoryInfo(slug=slug, name=slug.upper(), url=f"https://racetime.gg/{slug}", goals=["any%"])

    async def is_valid_category(self, slug: str) -> bool:
        return slug in self.pages


def test_session_runs_pages_in_order_and_reports_progress() -> None:
    pages = {
        "lozssr": [
            [_race("any%", "alice", "bob")],
            [_race("any%", "bob", "carol"), _race("any%", "dave", recorded=False)],
            [_race("100%", "carol", "alice")],
        ]
    }
    source = _PagedSource(pages)
    manager = SessionManager()
    session = manager.start("lozssr")
    commits: List[Tuple[float, bool]] = []

    state = asyncio.run(session.run(source, lambda s, new: commits.append((s.progress, new))))

    assert state is SessionState.COMPLETE
    assert source.requests == [("lozssr", 1), ("lozssr", 2), ("lozssr", 3)]
    assert commits == [(33.3, True), (66.6, True), (100.0, False)]
    assert session.store.race_count == 3
    assert "dave" not in session.store.players


def test_new_session_cancels_and_clears_previous() -> None:
    manager = SessionManager()
    first = manager.start("a")
    first.store.ingest(_race("any%", "alice"))

    second = manager.start("b")

    assert first.token != second.token
    assert not first.live
    assert second.live
    assert first.store.race_count == 0
    assert manager.current is second


def test_run_requires_loading_state() -> None:
    manager = SessionManager()
    session = manager.start("a")
    session.state = SessionState.COMPLETE

    with pytest.raises(RuntimeError, match="not loading"):
        asyncio.run(session.run(_PagedSource({"a": []})))


def test_transport_failure_keeps_committed_pages() -> None:
    pages = {"a": [[_race("any%", "alice", "bob")], [_race("any%", "bob", "alice")], [_race("any%", "carol")]]}
    source = _PagedSource(pages, fail_on=("a", 2))
    svc = Head2HeadService(source)

    state = asyncio.run(svc.load_category("a"))
    svc.set_active_goal("any%")

    assert state is SessionState.FAILED
    assert svc.state() is SessionState.FAILED
    assert svc.load_progress() == 33.3
    assert svc.race_count() == 1
    assert "page 2" in (svc.notice() or "")
    assert svc.current_table()["alice"]["bob"] == MatchupRecord(wins=1)


def test_empty_category_completes_at_full_progress() -> None:
    svc = Head2HeadService(_PagedSource({"empty": []}))

    assert asyncio.run(svc.load_category("empty")) is SessionState.COMPLETE
    assert svc.load_progress() == 100.0
    assert svc.participant_count() == 0


def test_service_publishes_ranking_for_active_goal() -> None:
    pages = {"a": [[_race("any%", "p1", "p2"), _race("any%", "p2", "p3")], [_race("100%", "p3", "p1")]]}
    svc = Head2HeadService(_PagedSource(pages))

    asyncio.run(svc.load_category("a"))

    assert svc.current_ranking() == []
    assert svc.goal_options() == [("any%", 2), ("100%", 1)]
    assert svc.category().name == "A"

    svc.set_active_goal("any%")

    assert svc.current_ranking() == ["p1", "p2", "p3"]
    assert svc.participant_count() == 3
    assert svc.current_table()["p2"]["p1"] == MatchupRecord(losses=1)
    assert svc.snapshot.state is SessionState.COMPLETE

    previous = svc.snapshot
    svc.set_active_goal("100%")
    assert svc.snapshot.version > previous.version
    assert previous.ranking == ("p1", "p2", "p3")
    assert svc.current_ranking() == ["p3", "p1"]


def test_superseded_session_results_are_discarded() -> None:
    pages = {
        "a": [[_race("any%", "alice", "bob")]],
        "b": [[_race("any%", "xena", "yuri")], [_race("any%", "yuri", "zack")]],
    }
    source = _PagedSource(pages)
    source.blocked.add("a")

    async def scenario():
        svc = Head2HeadService(source)
        load_a = asyncio.create_task(svc.load_category("a"))
        await source.in_flight.wait()
        state_b = await svc.load_category("b")
        svc.set_active_goal("any%")
        source.gate.set()
        state_a = await load_a
        return svc, state_a, state_b

    svc, state_a, state_b = asyncio.run(scenario())

    assert state_a is SessionState.CANCELLED
    assert state_b is SessionState.COMPLETE
    assert svc.snapshot.slug == "b"
    assert svc.race_count() == 2
    assert set(svc.current_table()) == {"xena", "yuri", "zack"}
    assert "alice" not in svc.current_ranking()
    assert svc.load_progress() == 100.0


def test_goal_change_during_load_is_kept_until_next_category() -> None:
    pages = {"a": [[_race("any%", "p1", "p2")]], "b": [[_race("any%", "p3", "p4")]]}
    svc = Head2HeadService(_PagedSource(pages))

    asyncio.run(svc.load_category("a"))
    svc.set_active_goal("any%")
    assert svc.participant_count() == 2

    asyncio.run(svc.load_category("b"))
    assert svc.snapshot.goal == ""
    assert svc.current_ranking() == []


def test_unordered_page_fails_session_and_keeps_earlier_pages() -> None:
    pages = {"a": [[_race("any%", "alice", "bob")], [_race("any%", "bob", "alice")], [_race("any%", "carol")]]}
    error = UnorderedEntrantsError("entrants of race 'r2' are not in finish order")
    svc = Head2HeadService(_PagedSource(pages, fail_on=("a", 2), error=error))

    state = asyncio.run(svc.load_category("a"))
    svc.set_active_goal("any%")

    assert state is SessionState.FAILED
    assert svc.load_progress() == 33.3
    assert svc.race_count() == 1
    assert svc.current_ranking() == ["alice", "bob"]
    assert "page 2" in (svc.notice() or "")
    assert "not in finish order" in (svc.notice() or "")


def test_failure_after_being_superseded_is_a_cancellation() -> None:
    pages = {"a": [[_race("any%", "alice", "bob")]], "b": [[_race("any%", "xena")]]}
    source = _PagedSource(pages, fail_on=("a", 1))
    source.blocked.add("a")
    manager = SessionManager()

    async def scenario():
        session_a = manager.start("a")
        run_a = asyncio.create_task(session_a.run(source))
        await source.in_flight.wait()
        manager.start("b")
        source.gate.set()
        return session_a, await run_a

    session_a, state = asyncio.run(scenario())

    assert state is SessionState.CANCELLED
    assert session_a.state is SessionState.CANCELLED
    assert session_a.notice is None
    assert session_a.store.race_count == 0


def test_published_snapshot_cannot_be_modified() -> None:
    pages = {"a": [[_race("any%", "alice", "bob")]]}
    svc = Head2HeadService(_PagedSource(pages))
    asyncio.run(svc.load_category("a"))
    svc.set_active_goal("any%")

    table = svc.current_table()
    with pytest.raises(TypeError):
        table["alice"]["bob"] = MatchupRecord(losses=5)
    with pytest.raises(TypeError):
        table["carol"] = {}
    with pytest.raises(TypeError):
        svc.snapshot.profiles["alice"] = UserProfile(name="mallory")

    assert svc.current_table()["alice"]["bob"] == MatchupRecord(wins=1)


def test_category_info_does_not_hold_up_the_first_page() -> None:
    pages = {"a": [[_race("any%", "alice", "bob")]]}
    source = _PagedSource(pages)

    async def scenario():
        # Category info only resolves once a page has been fetched.
        source.info_gate = asyncio.Event()
        svc = Head2HeadService(source)
        return svc, await svc.load_category("a")

    svc, state = asyncio.run(scenario())

    assert state is SessionState.COMPLETE
    assert source.requests == [("a", 1)]
    assert svc.category() is not None and svc.category().name == "A"


def test_category_info_failure_does_not_stop_the_load() -> None:
    class _NoInfoSource(_PagedSource):
        async def fetch_category_info(self, slug: str) -> CategoryInfo:
            raise RuntimeError("category endpoint down")

    svc = Head2HeadService(_NoInfoSource({"a": [[_race("any%", "alice", "bob")]]}))

    assert asyncio.run(svc.load_category("a")) is SessionState.COMPLETE
    assert svc.category() is None
    assert svc.race_count() == 1
