"""Head-to-head matchup engine for racetime race histories."""

from .matchup import MatchupRecord, compute_matchup
from .race import Entrant, EntrantStatus, RaceRecord, UserProfile
from .ranking import rank, win_rate
from .service import Head2HeadService, MatchupSnapshot
from .session import LoadSession, SessionManager, SessionState
from .source import CategoryInfo, RacePage, RaceSource
from .store import PlayerEntry, RecordStore
from .table import build_table

__all__ = [
    "CategoryInfo",
    "Entrant",
    "EntrantStatus",
    "Head2HeadService",
    "LoadSession",
    "MatchupRecord",
    "MatchupSnapshot",
    "PlayerEntry",
    "RacePage",
    "RaceRecord",
    "RaceSource",
    "RecordStore",
    "SessionManager",
    "SessionState",
    "UserProfile",
    "build_table",
    "compute_matchup",
    "rank",
    "win_rate",
]
