"""
Leaderboard aggregation.

Totals of distance, points and participations over a timeframe, grouped by
parent, child, school or school class. Parent rows are filtered by the time
the parent was credited; every other grouping is filtered by the date of
the activity.
"""

from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.orm.session import Session

from pedibus.src import schemas
from pedibus.src.constants import LEADERBOARD_PAGE_SIZE, TMZ_SECONDARY
from pedibus.src.enums import LeaderboardParameter, RankingTimeframe, RankingType
from pedibus.src.db import Child, ChildStat, Parent, ParentStat


# ---------------------------------------------------------------------------
# Timeframes
# ---------------------------------------------------------------------------
def _shiftMonth(year: int, month: int, delta: int):
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def getLeaderboardTimeframes(
    timeframe: RankingTimeframe, back: int = 0, now: Optional[datetime] = None
) -> List[schemas.Timeframe]:
    """
    Resolve a ranking timeframe into concrete `[start, end)` bounds.

    Args:
        timeframe (RankingTimeframe): Month, year or all time.
        back (int): Number of periods back, 0 being the current one.
        now (Optional[datetime]): Reference time; a naive value is taken as
            local time and yields naive bounds. Defaults to the current
            time in `TMZ_SECONDARY`.

    Returns:
        List[schemas.Timeframe]: The labelled period. All time is unbounded.

    Example:
        >>> getLeaderboardTimeframes(RankingTimeframe.MONTHLY, 1, datetime(2024, 1, 15))
        [Timeframe(label='month_1_ago', start=datetime(2023, 12, 1, 0, 0), end=datetime(2024, 1, 1, 0, 0))]
    """
    if now is None:
        now = datetime.now(TMZ_SECONDARY)
    elif now.tzinfo is not None:
        now = now.astimezone(TMZ_SECONDARY)
    tzinfo = now.tzinfo

    if timeframe == RankingTimeframe.MONTHLY:
        year, month = _shiftMonth(now.year, now.month, -back)
        nextYear, nextMonth = _shiftMonth(year, month, 1)
        return [
            schemas.Timeframe(
                label="this_month" if back == 0 else f"month_{back}_ago",
                start=datetime(year, month, 1, tzinfo=tzinfo),
                end=datetime(nextYear, nextMonth, 1, tzinfo=tzinfo),
            )
        ]
    if timeframe == RankingTimeframe.ANNUALLY:
        year = now.year - back
        return [
            schemas.Timeframe(
                label="this_year" if back == 0 else f"year_{back}_ago",
                start=datetime(year, 1, 1, tzinfo=tzinfo),
                end=datetime(year + 1, 1, 1, tzinfo=tzinfo),
            )
        ]
    return [schemas.Timeframe(label="all_time")]


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------
def _addTo(
    totals: Dict, key, name: str, childStat: ChildStat, id: Optional[int] = None
) -> None:
    entry = totals.get(key)
    if entry is None:
        entry = schemas.LeaderboardEntry(id=id, name=name)
        totals[key] = entry
    entry.distance += childStat.distance_meters or 0
    entry.points += childStat.points_earned or 0
    entry.participations += 1


def getStats(
    session: Session,
    rankingType: RankingType,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[schemas.LeaderboardEntry]:
    """
    Aggregate statistics rows falling in `[start, end)` by ranking type.

    Missing bounds leave that side open. Parent credits whose child
    statistics no longer exist are ignored. Children without a school are
    grouped under "Unknown".

    Returns:
        List[schemas.LeaderboardEntry]: One entry per group, unordered.
    """
    totals: Dict = {}

    if rankingType == RankingType.PARENTS:
        query = (
            session.query(ParentStat, ChildStat, Parent)
            .join(ChildStat, ChildStat.id == ParentStat.child_stat_id)
            .join(Parent, Parent.id == ParentStat.parent_id)
        )
        if start is not None:
            query = query.filter(ParentStat.created_on >= start)
        if end is not None:
            query = query.filter(ParentStat.created_on < end)
        for parentStat, childStat, parent in query.order_by(ParentStat.id.asc()):
            _addTo(totals, parent.id, parent.name, childStat, parent.id)
        return list(totals.values())

    query = session.query(ChildStat, Child).join(Child, Child.id == ChildStat.child_id)
    if start is not None:
        query = query.filter(ChildStat.activity_date >= start)
    if end is not None:
        query = query.filter(ChildStat.activity_date < end)

    for childStat, child in query.order_by(ChildStat.id.asc()):
        school = child.school or "Unknown"
        if rankingType == RankingType.CHILDREN:
            _addTo(totals, child.id, child.name, childStat, child.id)
        elif rankingType == RankingType.SCHOOLS:
            _addTo(totals, school, school, childStat)
        elif rankingType == RankingType.SCHOOL_CLASSES:
            grade = child.school_grade if child.school_grade is not None else "Unknown"
            schoolClass = f"{school} - Grade {grade}"
            _addTo(totals, schoolClass, schoolClass, childStat)
    return list(totals.values())


def rankStats(
    entries: List[schemas.LeaderboardEntry],
    parameter: LeaderboardParameter,
    page: int = 0,
    pageSize: int = LEADERBOARD_PAGE_SIZE,
) -> List[schemas.LeaderboardEntry]:
    """Sort entries by the ranking parameter, highest first, and return one page."""
    attribute = LeaderboardParameter(parameter).name.lower()
    ranked = sorted(entries, key=lambda entry: (-getattr(entry, attribute), entry.name))
    return ranked[page * pageSize : (page + 1) * pageSize]
