"""
Activity session lifecycle.

An activity session goes from pending to in progress to finished and never
back. Registrations are accepted until the session is closed, which happens
`REGISTRATION_CLOSE_HOURS` before its scheduled start.
"""

from datetime import datetime, timedelta
from logging import getLogger
from typing import List, Optional, Tuple
from sqlalchemy.orm.session import Session

from pedibus.src import exceptions, getters, validators
from pedibus.src.constants import (
    OVERDUE_SESSION_HOURS,
    REGISTRATION_CLOSE_HOURS,
    TMZ_PRIMARY,
)
from pedibus.src.enums import ActivityMode, ActivityStatus, ActivityType, WeatherType
from pedibus.src.functions import stationTime
from pedibus.src.transfer import validateRouteTransfer
from pedibus.src.db import (
    ActivitySession,
    Child,
    ChildActivitySession,
    Route,
    RouteStation,
    StationActivitySession,
)

logger = getLogger("Lifecycle")

ACTIVITY_TRANSITIONS = {
    ActivityStatus.PENDING: [ActivityStatus.IN_PROGRESS],
    ActivityStatus.IN_PROGRESS: [ActivityStatus.FINISHED],
    ActivityStatus.FINISHED: [],
}


def createActivitySession(
    session: Session,
    routeId: int,
    scheduledAt: datetime,
    activityType: Optional[ActivityType] = None,
) -> ActivitySession:
    """
    Schedule a run of a route together with its per-station records.

    The mode follows the activity type: walking for pedibus, biking for
    ciclo expresso. Each station is expected at the scheduled start plus
    its minutes from the route start.

    Raises:
        exceptions.UnknownValue: If the route does not exist.
        exceptions.InvalidAssociation: If the type differs from the route's type.
    """
    route = session.query(Route).filter(Route.id == routeId).first()
    if route is None:
        raise exceptions.UnknownValue(ActivitySession.route_id)
    if activityType is None:
        activityType = route.activity_type
    if activityType != route.activity_type:
        raise exceptions.InvalidAssociation(
            ActivitySession.type, ActivitySession.route_id
        )

    if activityType == ActivityType.PEDIBUS:
        mode = ActivityMode.WALK
    else:
        mode = ActivityMode.BIKE
    activity = ActivitySession(
        route_id=routeId,
        type=activityType,
        mode=mode,
        scheduled_at=scheduledAt,
        is_closed=False,
    )
    session.add(activity)
    session.flush()

    routeStations = (
        session.query(RouteStation)
        .filter(RouteStation.route_id == routeId)
        .order_by(RouteStation.stop_number.asc())
        .all()
    )
    for routeStation in routeStations:
        session.add(
            StationActivitySession(
                station_id=routeStation.station_id,
                activity_session_id=activity.id,
                stop_number=routeStation.stop_number,
                scheduled_at=stationTime(
                    scheduledAt, routeStation.time_from_start_minutes
                ),
            )
        )
    session.flush()
    return activity


def registerChild(
    session: Session, activitySessionId: int, childId: int, pickUpStationId: int
) -> ChildActivitySession:
    """
    Register a child on an activity session.

    The pick-up station must be on the route of the session and the child's
    drop-off station reachable from it, directly or through a transfer.
    Registering the same child twice returns the existing registration.

    Raises:
        exceptions.InactiveResource: If registrations are closed.
        exceptions.UnknownValue: If the child does not exist.
        exceptions.InvalidRouteTransfer: If the pick-up station is off the route
            or the drop-off station cannot be reached.
    """
    activity = getters.activitySession(session, activitySessionId)
    if activity.is_closed or getters.activityStatus(activity) != ActivityStatus.PENDING:
        raise exceptions.InactiveResource(ActivitySession)

    child = session.query(Child).filter(Child.id == childId).first()
    if child is None:
        raise exceptions.UnknownValue(ChildActivitySession.child_id)

    existing = (
        session.query(ChildActivitySession)
        .filter(ChildActivitySession.activity_session_id == activitySessionId)
        .filter(ChildActivitySession.child_id == childId)
        .first()
    )
    if existing is not None:
        return existing

    onRoute = (
        session.query(RouteStation)
        .filter(RouteStation.route_id == activity.route_id)
        .filter(RouteStation.station_id == pickUpStationId)
        .first()
    )
    if onRoute is None:
        raise exceptions.InvalidRouteTransfer(
            "Pick-up station is not on the activity route"
        )
    validation = validateRouteTransfer(
        session, activitySessionId, pickUpStationId, child.drop_off_station_id
    )
    if not validation.is_valid:
        raise exceptions.InvalidRouteTransfer(validation.message)

    registration = ChildActivitySession(
        child_id=childId,
        activity_session_id=activitySessionId,
        pick_up_station_id=pickUpStationId,
        registered_at=datetime.now(TMZ_PRIMARY),
    )
    session.add(registration)
    session.flush()
    return registration


def startActivitySession(
    session: Session,
    activitySessionId: int,
    at: Optional[datetime] = None,
    weather: Optional[Tuple[WeatherType, int]] = None,
) -> ActivitySession:
    """
    Move a pending activity session to in progress.

    Args:
        weather (Optional[Tuple[WeatherType, int]]): Observed weather type and
            temperature, stamped on the session when given.

    Raises:
        exceptions.InvalidStateTransition: If the session is not pending.
    """
    activity = getters.activitySession(session, activitySessionId)
    validators.stateTransition(
        ACTIVITY_TRANSITIONS,
        getters.activityStatus(activity),
        ActivityStatus.IN_PROGRESS,
        ActivitySession.started_at,
    )
    activity.started_at = at or datetime.now(TMZ_PRIMARY)
    activity.is_closed = True
    if weather is not None:
        activity.weather_type, activity.temperature = weather
    session.flush()
    return activity


def finishActivitySession(
    session: Session, activitySessionId: int, at: Optional[datetime] = None
) -> ActivitySession:
    """
    Move an in-progress activity session to finished.

    Raises:
        exceptions.InvalidStateTransition: If the session is not in progress.
    """
    activity = getters.activitySession(session, activitySessionId)
    validators.stateTransition(
        ACTIVITY_TRANSITIONS,
        getters.activityStatus(activity),
        ActivityStatus.FINISHED,
        ActivitySession.finished_at,
    )
    activity.finished_at = at or datetime.now(TMZ_PRIMARY)
    activity.is_closed = True
    session.flush()
    return activity


def closeRegistrations(session: Session, now: Optional[datetime] = None) -> int:
    """Close the sessions starting within `REGISTRATION_CLOSE_HOURS`. Returns how many."""
    now = now or datetime.now(TMZ_PRIMARY)
    cutoff = now + timedelta(hours=REGISTRATION_CLOSE_HOURS)
    activities = (
        session.query(ActivitySession)
        .filter(ActivitySession.scheduled_at < cutoff)
        .filter(ActivitySession.is_closed.is_(False))
        .all()
    )
    for activity in activities:
        activity.is_closed = True
    session.flush()
    return len(activities)


def finishOverdueSessions(
    session: Session, now: Optional[datetime] = None
) -> List[ActivitySession]:
    """
    Finish the running sessions scheduled more than `OVERDUE_SESSION_HOURS` ago.

    Returns:
        List[ActivitySession]: The sessions that were finished.
    """
    now = now or datetime.now(TMZ_PRIMARY)
    cutoff = now - timedelta(hours=OVERDUE_SESSION_HOURS)
    activities = (
        session.query(ActivitySession)
        .filter(ActivitySession.scheduled_at < cutoff)
        .filter(ActivitySession.started_at.is_not(None))
        .filter(ActivitySession.finished_at.is_(None))
        .order_by(ActivitySession.id.asc())
        .all()
    )
    for activity in activities:
        logger.info(f"Finishing overdue activity session {activity.id}")
        activity.finished_at = now
        activity.is_closed = True
    session.flush()
    return activities
