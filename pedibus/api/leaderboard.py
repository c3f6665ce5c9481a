from typing import List
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from pedibus.src.db import sessionMaker
from pedibus.src import exceptions, schemas
from pedibus.src.enums import LeaderboardParameter, RankingTimeframe, RankingType
from pedibus.src.functions import enumStr
from pedibus.src.leaderboard import getLeaderboardTimeframes, getStats, rankStats
from pedibus.src.urls import URL_LEADERBOARD

route_public = APIRouter()


## Output Schema
class LeaderboardSchema(BaseModel):
    timeframe: schemas.Timeframe
    ranking_type: int
    parameter: int
    page: int
    entries: List[schemas.LeaderboardEntry]


## Query Params
class QueryParams(BaseModel):
    timeframe: RankingTimeframe = Field(
        Query(
            default=RankingTimeframe.MONTHLY, description=enumStr(RankingTimeframe)
        )
    )
    back: int = Field(Query(default=0, ge=0))
    ranking_type: RankingType = Field(
        Query(default=RankingType.CHILDREN, description=enumStr(RankingType))
    )
    parameter: LeaderboardParameter = Field(
        Query(
            default=LeaderboardParameter.POINTS,
            description=enumStr(LeaderboardParameter),
        )
    )
    # Pagination
    page: int = Field(Query(default=0, ge=0))


## API endpoints [Public]
@route_public.get(
    URL_LEADERBOARD,
    tags=["Leaderboard"],
    response_model=LeaderboardSchema,
    description="""
    Rank parents, children, schools or school classes over a month, a year or all time.
    Use `back` to look at earlier periods, 0 being the current one.
    Entries are sorted by the chosen parameter, highest first, one page at a time.
    """,
)
async def fetch_leaderboard(qParam: QueryParams = Depends()):
    try:
        session = sessionMaker()
        timeframe = getLeaderboardTimeframes(qParam.timeframe, qParam.back)[0]
        entries = getStats(
            session, qParam.ranking_type, timeframe.start, timeframe.end
        )
        return LeaderboardSchema(
            timeframe=timeframe,
            ranking_type=qParam.ranking_type,
            parameter=qParam.parameter,
            page=qParam.page,
            entries=rankStats(entries, qParam.parameter, qParam.page),
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
