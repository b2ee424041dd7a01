from __future__ import annotations

import logging

from .matchup import MatchupTable, compute_matchup
from .store import RecordStore


logger = logging.getLogger(__name__)


def build_table(store: RecordStore, goal: str) -> MatchupTable:
    """Build the full player-by-player matchup table for ``goal``.

    Each unordered pair is computed once; the reverse cell is the inverse of
    the forward one. Every player with a race under ``goal`` gets a row, even
    when it has no opponents.
    """

    players = store.ordered_players_for_goal(goal)
    table: MatchupTable = {name: {} for name in players}

    computed = 0
    for player_a in players:
        row = table[player_a]
        for player_b in players:
            if player_a == player_b or player_b in row:
                continue
            matchup = compute_matchup(store, goal, player_a, player_b)
            if matchup is None:
                continue
            row[player_b] = matchup
            table[player_b][player_a] = matchup.inverse()
            computed += 1

    logger.debug("Built %s table: %d players, %d pairs", goal, len(players), computed)
    return table
