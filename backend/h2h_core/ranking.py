from __future__ import annotations

from typing import Iterable, List, Optional

from .matchup import MatchupRecord, MatchupTable

# Score for a pair with no shared races. Kept below an even 0.5 so that
# "never met" ranks under a real split record.
EMPTY_WIN_RATE = 0.25


def win_rate(record: Optional[MatchupRecord]) -> float:
    """Share of shared races won, counting a draw as half a win."""

    if record is None or record.total == 0:
        return EMPTY_WIN_RATE
    return (record.wins + record.draws / 2) / record.total


def strength(table: MatchupTable, player: str, players: Iterable[str]) -> float:
    row = table.get(player, {})
    return sum(win_rate(row.get(opponent)) for opponent in players if opponent != player)


def rank(goal: str, table: MatchupTable, players: Iterable[str]) -> List[str]:
    """Order ``players`` by the sum of their win rates against everyone else.

    The sort is stable, so tied players keep their input order. ``goal`` is
    the goal the table was built for.
    """

    ordered = list(players)
    scores = {player: strength(table, player, ordered) for player in ordered}
    return sorted(ordered, key=lambda player: scores[player], reverse=True)


def record_tone(record: Optional[MatchupRecord]) -> str:
    if record is None or record.total == 0:
        return "neutral"
    rate = win_rate(record)
    if rate > 0.5:
        return "positive"
    if rate < 0.5:
        return "negative"
    return "neutral"


def format_record(record: Optional[MatchupRecord]) -> str:
    if record is None:
        return "X"
    return f"{record.wins} - {record.losses}"
