from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from .race import RaceRecord, UserProfile


@dataclass
class PlayerEntry:
    """Everything the store knows about one player."""

    profile: UserProfile
    race_indices: Set[int] = field(default_factory=set)
    goals: Set[str] = field(default_factory=set)


class RecordStore:
    """Append-only race store with a per-player index of races and goals.

    Races are addressed by their position in the store. Every mutation bumps
    ``version`` so callers can tell a store they published apart from one that
    has since moved on.
    """

    def __init__(self) -> None:
        self.goal: str = ""
        self.version = 0
        self._races: List[RaceRecord] = []
        self._players: Dict[str, PlayerEntry] = {}
        self._indices_by_instance: Dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._races)

    @property
    def race_count(self) -> int:
        return len(self._races)

    @property
    def players(self) -> Dict[str, PlayerEntry]:
        return self._players

    def race(self, index: int) -> RaceRecord:
        return self._races[index]

    def player(self, name: str) -> Optional[PlayerEntry]:
        return self._players.get(name)

    def index_of(self, record: RaceRecord) -> Optional[int]:
        return self._indices_by_instance.get(id(record))

    def ingest(self, record: RaceRecord) -> bool:
        """Add ``record`` and index its entrants.

        The ``recorded`` flag is not checked here. A record instance that is
        already stored is ignored; an equal but distinct instance is stored
        again.

        Returns whether any entrant was seen for the first time.
        """

        if self.index_of(record) is not None:
            return False

        index = len(self._races)
        self._races.append(record)
        self._indices_by_instance[id(record)] = index
        self.version += 1

        new_players_added = False
        for entrant in record.entrants:
            entry = self._players.get(entrant.name)
            if entry is None:
                new_players_added = True
                entry = PlayerEntry(profile=entrant.user)
                self._players[entrant.name] = entry
            entry.race_indices.add(index)
            entry.goals.add(record.goal)
        return new_players_added

    def ingest_recorded_batch(self, records: Iterable[RaceRecord]) -> bool:
        """Ingest every recorded race in ``records``.

        Returns True if any of them introduced a new player.
        """

        # Build the full list first: any() over a generator would stop at the
        # first race with a new player and skip the rest of the batch.
        results = [self.ingest(record) for record in records if record.recorded]
        return any(results)

    def clear(self) -> None:
        self.goal = ""
        self._races = []
        self._players = {}
        self._indices_by_instance = {}
        self.version += 1

    def players_for_goal(self, goal: str) -> Set[str]:
        return {name for name, entry in self._players.items() if goal in entry.goals}

    def ordered_players_for_goal(self, goal: str) -> List[str]:
        """Players for ``goal`` in the order they were first seen."""

        return [name for name, entry in self._players.items() if goal in entry.goals]

    def goal_race_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for record in self._races:
            counts[record.goal] = counts.get(record.goal, 0) + 1
        return counts
