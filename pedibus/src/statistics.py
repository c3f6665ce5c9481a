"""
Statistics and streaks of activity participants.

Once an activity session is finished its per-child statistics are recorded
(`recordSessionStats`) and the running totals and streaks of every child and
parent involved are aggregated (`aggregateSessionStats`) for the badge engine.

Streaks are computed in lock-step over the history of every configured
route. Round `i` holds the i-th most recent finished session of each route;
the number of rounds is the length of the shortest history. A participant's
streak counts the consecutive most recent rounds in which it took part in at
least one session, stopping at the first round without participation.
"""

from datetime import datetime
from logging import getLogger
from typing import Dict, List, Optional, Set, Tuple
from sqlalchemy import select
from sqlalchemy.orm.session import Session

from pedibus.src import exceptions, getters, schemas
from pedibus.src.activity import (
    calculateCaloriesBurned,
    calculateCO2Saved,
    calculatePoints,
)
from pedibus.src.constants import TMZ_PRIMARY
from pedibus.src.enums import ActivityStatus, ChildStationType
from pedibus.src.db import (
    ActivitySession,
    ChildStat,
    ChildStation,
    ParentChild,
    ParentStat,
    ParentStation,
    Route,
    RouteStation,
    StationActivitySession,
)

logger = getLogger("Statistics")


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------
def collectParticipants(
    session: Session, activitySessionId: int
) -> Tuple[List[int], List[int]]:
    """Return the IDs of the children and parents with a station record on the session."""
    childIds = session.scalars(
        select(ChildStation.child_id)
        .where(ChildStation.activity_session_id == activitySessionId)
        .distinct()
        .order_by(ChildStation.child_id)
    ).all()
    parentIds = session.scalars(
        select(ParentStation.parent_id)
        .where(ParentStation.activity_session_id == activitySessionId)
        .distinct()
        .order_by(ParentStation.parent_id)
    ).all()
    return list(childIds), list(parentIds)


# ---------------------------------------------------------------------------
# Running totals
# ---------------------------------------------------------------------------
def _statFromChildStats(
    clientId: int,
    childStats: List[ChildStat],
    weatherTypes: Dict[int, Optional[int]],
    streak: int,
) -> schemas.Stat:
    weatherSet = {
        weatherTypes[cs.activity_session_id]
        for cs in childStats
        if weatherTypes.get(cs.activity_session_id) is not None
    }
    return schemas.Stat(
        id=clientId,
        distance=sum(cs.distance_meters or 0 for cs in childStats),
        calories=sum(cs.calories_burned or 0 for cs in childStats),
        participations=len(childStats),
        weather=len(weatherSet),
        points=sum(cs.points_earned or 0 for cs in childStats),
        streak=streak,
    )


def _weatherTypes(session: Session, activitySessionIds: Set[int]) -> Dict[int, int]:
    if not activitySessionIds:
        return {}
    rows = session.execute(
        select(ActivitySession.id, ActivitySession.weather_type).where(
            ActivitySession.id.in_(activitySessionIds)
        )
    ).all()
    return {row.id: row.weather_type for row in rows}


def getChildStat(session: Session, childId: int, streak: int = 0) -> schemas.Stat:
    """
    Sum every historical statistics row of a child.

    Weather variety is the number of distinct weather types across the
    activity sessions referenced by those rows.
    """
    childStats = (
        session.query(ChildStat)
        .filter(ChildStat.child_id == childId)
        .order_by(ChildStat.id.asc())
        .all()
    )
    weatherTypes = _weatherTypes(
        session, {cs.activity_session_id for cs in childStats}
    )
    return _statFromChildStats(childId, childStats, weatherTypes, streak)


def getParentStat(session: Session, parentId: int, streak: int = 0) -> schemas.Stat:
    """
    Sum the statistics credited to a parent.

    A parent who accompanied several of its children on one activity session
    is credited with the best of them (highest points), not the sum.
    Rows whose child statistics no longer exist are skipped.
    """
    rows = (
        session.query(ParentStat, ChildStat)
        .outerjoin(ChildStat, ChildStat.id == ParentStat.child_stat_id)
        .filter(ParentStat.parent_id == parentId)
        .order_by(ParentStat.id.asc())
        .all()
    )

    bestPerSession: Dict[int, ChildStat] = {}
    for parentStat, childStat in rows:
        if childStat is None:
            logger.debug(f"Skipping unlinked parent stat {parentStat.id}")
            continue
        best = bestPerSession.get(childStat.activity_session_id)
        if best is None or (childStat.points_earned or 0) > (best.points_earned or 0):
            bestPerSession[childStat.activity_session_id] = childStat

    weatherTypes = _weatherTypes(session, set(bestPerSession))
    return _statFromChildStats(
        parentId, list(bestPerSession.values()), weatherTypes, streak
    )


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------
def getRouteHistories(session: Session) -> List[List[int]]:
    """
    Return, per configured route, its finished activity sessions most recent first.

    Routes are listed by ID; a route without finished sessions has an empty history.
    """
    histories = []
    for routeId in session.scalars(select(Route.id).order_by(Route.id)).all():
        history = session.scalars(
            select(ActivitySession.id)
            .where(ActivitySession.route_id == routeId)
            .where(ActivitySession.finished_at.is_not(None))
            .order_by(ActivitySession.scheduled_at.desc(), ActivitySession.id.desc())
        ).all()
        histories.append(list(history))
    return histories


def checkStreakForClient(
    session: Session,
    clientId: int,
    isParent: bool = False,
    histories: Optional[List[List[int]]] = None,
) -> int:
    """
    Count the consecutive most recent rounds a child or parent took part in.

    Args:
        session (Session): Active SQLAlchemy session.
        clientId (int): ID of the child, or of the parent when `isParent` is set.
        isParent (bool): Look up parent records instead of child records.
        histories (Optional[List[List[int]]]): Precomputed `getRouteHistories` result.

    Returns:
        int: The streak, zero when the most recent round has no participation.
    """
    if histories is None:
        histories = getRouteHistories(session)
    if not histories:
        return 0
    rounds = min(len(history) for history in histories)
    if rounds == 0:
        return 0

    consideredIds = {history[i] for history in histories for i in range(rounds)}
    if isParent:
        attended = session.scalars(
            select(ParentStation.activity_session_id)
            .where(ParentStation.parent_id == clientId)
            .where(ParentStation.activity_session_id.in_(consideredIds))
        ).all()
    else:
        attended = session.scalars(
            select(ChildStation.activity_session_id)
            .where(ChildStation.child_id == clientId)
            .where(ChildStation.activity_session_id.in_(consideredIds))
        ).all()
    attended = set(attended)

    streak = 0
    for i in range(rounds):
        if not any(history[i] in attended for history in histories):
            break
        streak += 1
    return streak


# ---------------------------------------------------------------------------
# Session aggregation
# ---------------------------------------------------------------------------
def aggregateSessionStats(
    session: Session, activitySessionId: int
) -> Tuple[List[schemas.Stat], List[schemas.Stat]]:
    """
    Build the running totals and streak of every participant of a session.

    Returns:
        Tuple[List[schemas.Stat], List[schemas.Stat]]: Child stats and parent stats.
    """
    childIds, parentIds = collectParticipants(session, activitySessionId)
    histories = getRouteHistories(session)

    childStats = [
        getChildStat(
            session,
            childId,
            checkStreakForClient(session, childId, histories=histories),
        )
        for childId in childIds
    ]
    parentStats = [
        getParentStat(
            session,
            parentId,
            checkStreakForClient(session, parentId, isParent=True, histories=histories),
        )
        for parentId in parentIds
    ]
    return childStats, parentStats


def recordSessionStats(session: Session, activitySessionId: int) -> List[ChildStat]:
    """
    Record the statistics of every child who completed a finished session.

    A child completed the session when it has both a pick-up (`IN`) and a
    drop-off (`OUT`) event. The distance is taken between the two stations
    along the route and the duration from leaving the pick-up station to
    arriving at the drop-off station. Every accompanying parent is credited
    with the statistics of its own children.

    Running it again for the same session records nothing new.

    Returns:
        List[ChildStat]: The newly created child statistics.

    Raises:
        exceptions.UnknownValue: If the activity session does not exist.
        exceptions.InactiveResource: If the activity session is not finished.
    """
    activity = getters.activitySession(session, activitySessionId)
    if activity.stats_processed_on is not None:
        logger.info(f"Activity session {activitySessionId} already processed")
        return []
    if getters.activityStatus(activity) != ActivityStatus.FINISHED:
        raise exceptions.InactiveResource(ActivitySession)

    stationInfo = {
        row.station_id: row
        for row in session.execute(
            select(
                StationActivitySession.station_id,
                StationActivitySession.arrived_at,
                StationActivitySession.left_at,
                RouteStation.distance_from_start_meters,
            )
            .join(
                RouteStation,
                (RouteStation.station_id == StationActivitySession.station_id)
                & (RouteStation.route_id == activity.route_id),
            )
            .where(StationActivitySession.activity_session_id == activitySessionId)
        ).all()
    }

    trips: Dict[int, Dict[int, int]] = {}
    childStations = (
        session.query(ChildStation)
        .filter(ChildStation.activity_session_id == activitySessionId)
        .order_by(ChildStation.id.asc())
        .all()
    )
    for childStation in childStations:
        trips.setdefault(childStation.child_id, {})[childStation.type] = (
            childStation.station_id
        )

    existing = {
        cs.child_id: cs
        for cs in session.query(ChildStat).filter(
            ChildStat.activity_session_id == activitySessionId
        )
    }

    created = []
    for childId, trip in trips.items():
        if childId in existing:
            continue
        pickUp = stationInfo.get(trip.get(ChildStationType.IN))
        dropOff = stationInfo.get(trip.get(ChildStationType.OUT))
        if pickUp is None or dropOff is None:
            continue

        distance = abs(
            (dropOff.distance_from_start_meters or 0)
            - (pickUp.distance_from_start_meters or 0)
        )
        duration = 0
        if dropOff.arrived_at is not None and pickUp.left_at is not None:
            duration = abs((dropOff.arrived_at - pickUp.left_at).total_seconds())

        childStat = ChildStat(
            child_id=childId,
            activity_session_id=activitySessionId,
            distance_meters=round(distance),
            co2_saved=calculateCO2Saved(distance),
            calories_burned=calculateCaloriesBurned(distance, duration, activity.mode),
            points_earned=calculatePoints(distance),
            activity_date=activity.scheduled_at,
        )
        session.add(childStat)
        created.append(childStat)
        existing[childId] = childStat
    session.flush()

    parentIds = session.scalars(
        select(ParentStation.parent_id).where(
            ParentStation.activity_session_id == activitySessionId
        )
    ).all()
    for parentId in parentIds:
        ownChildIds = session.scalars(
            select(ParentChild.child_id).where(ParentChild.parent_id == parentId)
        ).all()
        for childId in ownChildIds:
            childStat = existing.get(childId)
            if childStat is None:
                continue
            alreadyCredited = (
                session.query(ParentStat)
                .filter(ParentStat.parent_id == parentId)
                .filter(ParentStat.child_stat_id == childStat.id)
                .first()
            )
            if alreadyCredited is None:
                session.add(ParentStat(parent_id=parentId, child_stat_id=childStat.id))

    activity.stats_processed_on = datetime.now(TMZ_PRIMARY)
    session.flush()
    logger.info(
        f"Recorded {len(created)} child stats for activity session {activitySessionId}"
    )
    return created
