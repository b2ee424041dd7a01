from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Set

from .store import RecordStore


@dataclass(frozen=True)
class MatchupRecord:
    """Win/loss/draw tally of a row player against a column player."""

    wins: int = 0
    losses: int = 0
    draws: int = 0

    @property
    def total(self) -> int:
        return self.wins + self.losses + self.draws

    def inverse(self) -> "MatchupRecord":
        return MatchupRecord(wins=self.losses, losses=self.wins, draws=self.draws)


MatchupTable = Dict[str, Dict[str, MatchupRecord]]


def shared_races(store: RecordStore, goal: str, player_a: str, player_b: str) -> Set[int]:
    """Indices of races under ``goal`` that both players entered."""

    entry_a = store.player(player_a)
    entry_b = store.player(player_b)
    if entry_a is None or entry_b is None:
        return set()
    return {
        index
        for index in entry_a.race_indices & entry_b.race_indices
        if store.race(index).goal == goal
    }


def compute_matchup(
    store: RecordStore, goal: str, player_a: str, player_b: str
) -> Optional[MatchupRecord]:
    """Head-to-head record of ``player_a`` against ``player_b`` under ``goal``.

    In each shared race the first of the two players in finish order decides
    the result. If that player did not finish the race counts as a draw;
    any other status, a disqualification included, is a win for them. The
    other player's status is never looked at, so a finisher listed after a
    DNF still only gets a draw.

    Returns None for a player against themself or for an unknown player.
    """

    if player_a == player_b:
        return None
    if store.player(player_a) is None or store.player(player_b) is None:
        return None

    wins = losses = draws = 0
    for index in shared_races(store, goal, player_a, player_b):
        for entrant in store.race(index).entrants:
            if entrant.name == player_a:
                if entrant.did_not_finish:
                    draws += 1
                else:
                    wins += 1
                break
            if entrant.name == player_b:
                if entrant.did_not_finish:
                    draws += 1
                else:
                    losses += 1
                break
    return MatchupRecord(wins=wins, losses=losses, draws=draws)
