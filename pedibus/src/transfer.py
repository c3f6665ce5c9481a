"""
Route transfer resolution.

Decides whether a pick-up/drop-off pair can be served by one route or needs
a transfer onto a connected route, and finds the sessions of connected
routes that chain with a given session at their shared station.
"""

from datetime import datetime
from logging import getLogger
from typing import Dict, List, Optional
from sqlalchemy.orm.session import Session

from pedibus.src import schemas
from pedibus.src.constants import LINKAGE_WINDOW_MINUTES
from pedibus.src.functions import localDayBounds, stationTime
from pedibus.src.db import (
    ActivitySession,
    Route,
    RouteConnection,
    RouteStation,
)

logger = getLogger("Transfer")


def _routeStations(session: Session, routeId: int) -> List[RouteStation]:
    return (
        session.query(RouteStation)
        .filter(RouteStation.route_id == routeId)
        .order_by(RouteStation.stop_number.asc())
        .all()
    )


def findTransferStation(
    session: Session, pickupRouteId: int, dropoffRouteId: int
) -> Optional[int]:
    """
    Return the first station shared by two routes.

    Stations are scanned in the stop order of the pick-up route, so when the
    routes share several stations the earliest one on the pick-up route wins.

    Returns:
        Optional[int]: The shared station ID, or `None` if the routes share none.
    """
    dropoffStationIds = {
        rs.station_id for rs in _routeStations(session, dropoffRouteId)
    }
    for routeStation in _routeStations(session, pickupRouteId):
        if routeStation.station_id in dropoffStationIds:
            return routeStation.station_id
    return None


def validateRouteTransfer(
    session: Session, activitySessionId: int, pickupStationId: int, dropoffStationId: int
) -> schemas.TransferValidation:
    """
    Check that a child can travel from a pick-up to a drop-off station.

    Both stations on the route of the activity session need no transfer.
    Otherwise the route owning the drop-off station is looked up and must
    share a station with the route of the session. Failures are reported in
    the returned result and never raised.
    """
    activity = (
        session.query(ActivitySession)
        .filter(ActivitySession.id == activitySessionId)
        .first()
    )
    if activity is None:
        return schemas.TransferValidation(
            is_valid=False, message="Activity route not found"
        )

    routeStationIds = [rs.station_id for rs in _routeStations(session, activity.route_id)]
    if not routeStationIds:
        return schemas.TransferValidation(
            is_valid=False, message="Activity route not found"
        )
    if dropoffStationId in routeStationIds:
        return schemas.TransferValidation(is_valid=True, requires_transfer=False)

    dropoffRoute = (
        session.query(RouteStation)
        .filter(RouteStation.station_id == dropoffStationId)
        .filter(RouteStation.route_id != activity.route_id)
        .order_by(RouteStation.route_id.asc())
        .first()
    )
    if dropoffRoute is None:
        return schemas.TransferValidation(
            is_valid=False, message="Drop-off station route not found"
        )

    transferStationId = findTransferStation(
        session, activity.route_id, dropoffRoute.route_id
    )
    if transferStationId is None:
        return schemas.TransferValidation(
            is_valid=False,
            requires_transfer=True,
            message="No transfer station found between routes",
        )
    return schemas.TransferValidation(
        is_valid=True, requires_transfer=True, transfer_station_id=transferStationId
    )


def _pendingActivitiesOnDay(
    session: Session, routeId: int, day: datetime
) -> List[ActivitySession]:
    """Not started sessions of a route on the local day of `day`, in scheduled order."""
    dayStart, dayEnd = localDayBounds(day)
    return (
        session.query(ActivitySession)
        .filter(ActivitySession.route_id == routeId)
        .filter(ActivitySession.scheduled_at >= dayStart)
        .filter(ActivitySession.scheduled_at < dayEnd)
        .filter(ActivitySession.started_at.is_(None))
        .order_by(ActivitySession.scheduled_at.asc(), ActivitySession.id.asc())
        .all()
    )


def _findLinkedActivity(
    session: Session,
    connection: RouteConnection,
    linkedRouteId: int,
    ownStops: Dict[int, RouteStation],
    scheduledAt: datetime,
    isNext: bool,
) -> Optional[int]:
    ownStop = ownStops.get(connection.station_id)
    if ownStop is None:
        logger.info(
            f"Linkage station {connection.station_id} of connection "
            f"{connection.id} is not on the route"
        )
        return None
    ownTime = stationTime(scheduledAt, ownStop.time_from_start_minutes)

    linkedStop = (
        session.query(RouteStation)
        .filter(RouteStation.route_id == linkedRouteId)
        .filter(RouteStation.station_id == connection.station_id)
        .first()
    )
    if linkedStop is None:
        return None

    for candidate in _pendingActivitiesOnDay(session, linkedRouteId, scheduledAt):
        linkedTime = stationTime(
            candidate.scheduled_at, linkedStop.time_from_start_minutes
        )
        if isNext:
            gap = (linkedTime - ownTime).total_seconds() / 60
        else:
            gap = (ownTime - linkedTime).total_seconds() / 60
        if 0 <= gap <= LINKAGE_WINDOW_MINUTES:
            return candidate.id
    return None


def findLinkedActivities(
    session: Session, route: Route, scheduledAt: datetime
) -> schemas.LinkedActivities:
    """
    Find the sessions of connected routes that chain with a session of `route`.

    Only the first outgoing and the first incoming connection of the route
    are consulted. A candidate is a session of the connected route, on the
    same local day, that has not started. The first candidate reaching the
    shared station 0 to `LINKAGE_WINDOW_MINUTES` minutes after this route is
    the next activity; the first reaching it 0 to `LINKAGE_WINDOW_MINUTES`
    minutes before is the previous activity.

    Args:
        session (Session): Active SQLAlchemy session.
        route (Route): Route of the session being scheduled.
        scheduledAt (datetime): Planned start of the session being scheduled.

    Returns:
        schemas.LinkedActivities: IDs of the previous and next linked sessions, if any.
    """
    ownStops = {rs.station_id: rs for rs in _routeStations(session, route.id)}
    linked = schemas.LinkedActivities()

    outgoing = (
        session.query(RouteConnection)
        .filter(RouteConnection.from_route_id == route.id)
        .order_by(RouteConnection.id.asc())
        .first()
    )
    if outgoing is not None:
        linked.next_activity_id = _findLinkedActivity(
            session, outgoing, outgoing.to_route_id, ownStops, scheduledAt, True
        )

    incoming = (
        session.query(RouteConnection)
        .filter(RouteConnection.to_route_id == route.id)
        .order_by(RouteConnection.id.asc())
        .first()
    )
    if incoming is not None:
        linked.previous_activity_id = _findLinkedActivity(
            session, incoming, incoming.from_route_id, ownStops, scheduledAt, False
        )
    return linked
