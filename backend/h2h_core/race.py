from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class UnorderedEntrantsError(ValueError):
    """Raised when a race's entrants are not listed in finish order."""


class EntrantStatus(str, Enum):
    DONE = "done"
    DNF = "dnf"
    DQ = "dq"

    @classmethod
    def from_value(cls, value: Any) -> "EntrantStatus":
        # Unknown statuses are kept as finishes; only dnf draws a pairing.
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.DONE


@dataclass(frozen=True)
class UserProfile:
    name: str
    full_name: str = ""
    url: str = ""
    avatar: Optional[str] = None
    twitch_name: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "UserProfile":
        name = str(payload.get("name") or "").strip()
        return cls(
            name=name,
            full_name=str(payload.get("full_name") or name),
            url=str(payload.get("url") or ""),
            avatar=payload.get("avatar") or None,
            twitch_name=payload.get("twitch_name") or None,
        )


@dataclass(frozen=True)
class Entrant:
    """One participant of a race, as listed by the race source."""

    user: UserProfile
    status: EntrantStatus = EntrantStatus.DONE
    place: Optional[int] = None
    finish_time: Optional[str] = None

    @property
    def name(self) -> str:
        return self.user.name

    @property
    def did_not_finish(self) -> bool:
        return self.status is EntrantStatus.DNF


@dataclass(frozen=True)
class RaceRecord:
    """A completed race under a single goal.

    Entrants are kept in finish order: the first entrant listed beat every
    entrant after them. The race source already sorts them that way and
    ``from_payload`` refuses payloads that break the order.
    """

    name: str
    goal: str
    entrants: Tuple[Entrant, ...] = field(default_factory=tuple)
    recorded: bool = True
    ended_at: Optional[dt.datetime] = None

    def entrant_names(self) -> Tuple[str, ...]:
        return tuple(entrant.name for entrant in self.entrants)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "RaceRecord":
        """Factory for the racetime ``races/data`` JSON shape."""

        goal = payload.get("goal") or {}
        goal_name = goal.get("name", "") if isinstance(goal, dict) else str(goal)

        entrants = []
        for item in payload.get("entrants") or []:
            if not isinstance(item, dict):
                continue
            status = item.get("status") or {}
            status_value = status.get("value") if isinstance(status, dict) else status
            place = item.get("place")
            entrants.append(
                Entrant(
                    user=UserProfile.from_payload(item.get("user") or {}),
                    status=EntrantStatus.from_value(status_value),
                    place=int(place) if place is not None else None,
                    finish_time=item.get("finish_time") or None,
                )
            )

        record = cls(
            name=str(payload.get("name") or ""),
            goal=str(goal_name or ""),
            entrants=tuple(entrants),
            recorded=bool(payload.get("recorded", False)),
            ended_at=_parse_timestamp(payload.get("ended_at")),
        )
        record.check_finish_order()
        return record

    def check_finish_order(self) -> None:
        """Raise UnorderedEntrantsError unless placed entrants come first, in place order."""

        last_place = 0
        seen_unplaced = False
        for entrant in self.entrants:
            if entrant.place is None:
                seen_unplaced = True
                continue
            if seen_unplaced or entrant.place < last_place:
                raise UnorderedEntrantsError(
                    f"entrants of race '{self.name}' are not in finish order"
                )
            last_place = entrant.place


def _parse_timestamp(value: Any) -> Optional[dt.datetime]:
    if not value:
        return None
    if isinstance(value, dt.datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return dt.datetime.fromisoformat(text)
    except ValueError:
        return None
