from __future__ import annotations

import logging
from functools import lru_cache
from typing import List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from h2h_core import Head2HeadService
from h2h_core.ranking import format_record, record_tone

app = FastAPI(title="Head2Head Matchups API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger = logging.getLogger(__name__)


class CategoryValidityResponse(BaseModel):
    slug: str
    valid: bool


class LoadStartedResponse(BaseModel):
    slug: str
    state: str


class GoalRequest(BaseModel):
    goal: str


class GoalOptionModel(BaseModel):
    name: str
    race_count: int = Field(alias="raceCount")

    model_config = ConfigDict(populate_by_name=True)


class CategoryModel(BaseModel):
    slug: str
    name: str
    url: str
    goals: List[str] = Field(default_factory=list)


class PlayerModel(BaseModel):
    name: str
    full_name: str = Field(default="", alias="fullName")
    avatar: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class MatchupCellModel(BaseModel):
    opponent: str
    wins: Optional[int] = None
    losses: Optional[int] = None
    draws: Optional[int] = None
    label: str
    tone: str


class MatchupRowModel(BaseModel):
    player: str
    cells: List[MatchupCellModel]


class MatchupViewResponse(BaseModel):
    slug: str
    goal: str
    state: str
    progress: float
    race_count: int = Field(alias="raceCount")
    participant_count: int = Field(alias="participantCount")
    notice: Optional[str] = None
    category: Optional[CategoryModel] = None
    goals: List[GoalOptionModel]
    players: List[PlayerModel]
    rows: List[MatchupRowModel]

    model_config = ConfigDict(populate_by_name=True)


@lru_cache(maxsize=1)
def service() -> Head2HeadService:
    return Head2HeadService()


def matchup_view(svc: Head2HeadService) -> MatchupViewResponse:
    snapshot = svc.snapshot
    ranking = svc.current_ranking()
    table = svc.current_table()

    players = []
    for name in ranking:
        profile = svc.profile(name)
        players.append(
            PlayerModel(
                name=name,
                fullName=profile.full_name if profile else "",
                avatar=profile.avatar if profile else None,
            )
        )

    rows = []
    for name in ranking:
        cells = []
        for opponent in ranking:
            record = table.get(name, {}).get(opponent)
            cells.append(
                MatchupCellModel(
                    opponent=opponent,
                    wins=record.wins if record else None,
                    losses=record.losses if record else None,
                    draws=record.draws if record else None,
                    label=format_record(record),
                    tone=record_tone(record),
                )
            )
        rows.append(MatchupRowModel(player=name, cells=cells))

    category = None
    info = svc.category()
    if info is not None:
        category = CategoryModel(slug=info.slug, name=info.name, url=info.url, goals=info.goals)

    return MatchupViewResponse(
        slug=snapshot.slug,
        goal=snapshot.goal,
        state=snapshot.state.value,
        progress=svc.load_progress(),
        raceCount=svc.race_count(),
        participantCount=svc.participant_count(),
        notice=svc.notice(),
        category=category,
        goals=[GoalOptionModel(name=goal, raceCount=count) for goal, count in svc.goal_options()],
        players=players,
        rows=rows,
    )


async def _load_in_background(svc: Head2HeadService, slug: str) -> None:
    try:
        state = await svc.load_category(slug)
        logger.info("Load of %s ended: %s", slug, state.value)
    except Exception:
        logger.exception("Unexpected error while loading %s", slug)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/categories/{slug}/valid", response_model=CategoryValidityResponse)
async def category_valid(slug: str):
    valid = await service().is_valid_category(slug)
    return CategoryValidityResponse(slug=slug, valid=valid)


@app.post("/categories/{slug}/load", response_model=LoadStartedResponse, status_code=202)
async def load_category(slug: str, background_tasks: BackgroundTasks):
    svc = service()
    if not await svc.is_valid_category(slug):
        raise HTTPException(status_code=404, detail=f"Unknown category '{slug}'")
    background_tasks.add_task(_load_in_background, svc, slug)
    return LoadStartedResponse(slug=slug, state="loading")


@app.put("/goal", response_model=MatchupViewResponse)
async def set_goal(payload: GoalRequest):
    svc = service()
    svc.set_active_goal(payload.goal.strip())
    return matchup_view(svc)


@app.get("/matchups", response_model=MatchupViewResponse)
async def matchups():
    return matchup_view(service())
