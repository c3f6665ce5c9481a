"""
Station progress of running activity sessions.

Answers, for an in-progress activity session, which station is current,
which stations are still ahead and in which phase every registered child is,
and records the check-in/out events and station arrivals that move the
session forward.

The phase of a child is derived from its typed `ChildStation` rows:
    - no row           -> PENDING
    - an `IN` row only -> PICKED_UP
    - an `OUT` row     -> DROPPED_OFF

A child leaves a session at its own drop-off station, or at the transfer
station when that drop-off station is on a connected route.
"""

from datetime import datetime
from logging import getLogger
from typing import Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.session import Session

from pedibus.src import exceptions, getters, schemas, validators
from pedibus.src.constants import TMZ_PRIMARY
from pedibus.src.enums import ChildStationType, ParticipantPhase
from pedibus.src.transfer import validateRouteTransfer
from pedibus.src.db import (
    Child,
    ChildActivitySession,
    ChildStation,
    Parent,
    ParentStation,
    StationActivitySession,
)

logger = getLogger("Tracker")


# ---------------------------------------------------------------------------
# Station progress
# ---------------------------------------------------------------------------
def _pendingStations(session: Session, activitySessionId: int):
    return (
        session.query(StationActivitySession)
        .filter(StationActivitySession.activity_session_id == activitySessionId)
        .filter(StationActivitySession.arrived_at.is_(None))
        .order_by(StationActivitySession.stop_number.asc())
    )


def getCurrentStation(session: Session, activitySessionId: int) -> Optional[int]:
    """
    Return the station the activity session is heading to.

    The current station is the lowest stop number not arrived at yet.
    `None` is returned once every station has been arrived at.

    Raises:
        exceptions.UnknownValue: If the activity session does not exist.
    """
    getters.activitySession(session, activitySessionId)
    current = _pendingStations(session, activitySessionId).first()
    if current is None:
        return None
    return current.station_id


def getRemainingStations(session: Session, activitySessionId: int) -> List[int]:
    """
    Return every station not arrived at yet, in stop order.

    The first entry, when present, is the current station.

    Raises:
        exceptions.UnknownValue: If the activity session does not exist.
    """
    getters.activitySession(session, activitySessionId)
    return [row.station_id for row in _pendingStations(session, activitySessionId)]


# ---------------------------------------------------------------------------
# Participant phases
# ---------------------------------------------------------------------------
def getParticipantPhases(
    session: Session, activitySessionId: int
) -> Dict[int, ParticipantPhase]:
    """
    Derive the phase of every child involved in an activity session.

    Children registered on the session without any event are `PENDING`.
    Children with events but no registration are still reported.

    Returns:
        Dict[int, ParticipantPhase]: Phase keyed by child ID.
    """
    eventTypes: Dict[int, List[int]] = {}
    childStations = (
        session.query(ChildStation)
        .filter(ChildStation.activity_session_id == activitySessionId)
        .order_by(ChildStation.id.asc())
        .all()
    )
    for childStation in childStations:
        eventTypes.setdefault(childStation.child_id, []).append(childStation.type)

    phases: Dict[int, ParticipantPhase] = {}
    for childId, types in eventTypes.items():
        if len(types) > 2 or len(set(types)) != len(types):
            logger.warning(
                f"Child {childId} has inconsistent station events {types} "
                f"on activity session {activitySessionId}"
            )
        if ChildStationType.OUT in types:
            phases[childId] = ParticipantPhase.DROPPED_OFF
        else:
            phases[childId] = ParticipantPhase.PICKED_UP

    registeredIds = session.scalars(
        select(ChildActivitySession.child_id).where(
            ChildActivitySession.activity_session_id == activitySessionId
        )
    ).all()
    for childId in registeredIds:
        phases.setdefault(childId, ParticipantPhase.PENDING)
    return phases


def _childrenWithEvents(session: Session, activitySessionId: int):
    eventChildIds = select(ChildStation.child_id).where(
        ChildStation.activity_session_id == activitySessionId
    )
    return session.query(Child).filter(Child.id.in_(eventChildIds))


# ---------------------------------------------------------------------------
# Pick-up status
# ---------------------------------------------------------------------------
def getChildrenAtPickupStation(
    session: Session, activitySessionId: int, stationId: int
) -> List[Child]:
    """Children registered on the session with the given pick-up station."""
    return (
        session.query(Child)
        .join(ChildActivitySession, ChildActivitySession.child_id == Child.id)
        .filter(ChildActivitySession.activity_session_id == activitySessionId)
        .filter(ChildActivitySession.pick_up_station_id == stationId)
        .order_by(ChildActivitySession.id.asc())
        .all()
    )


def getChildrenLeftToPickUp(
    session: Session, activitySessionId: int, stationIds: List[int]
) -> schemas.PendingPickup:
    """
    Split the children whose pick-up station is still ahead.

    Args:
        stationIds (List[int]): Remaining stations in stop order, the first
            one being the current station.

    Returns:
        schemas.PendingPickup: Children boarding at the current station and
        children boarding at an upcoming station, the latter ordered by the
        position of their pick-up station in `stationIds`.
    """
    if not stationIds:
        return schemas.PendingPickup()

    currentStationId = stationIds[0]
    registrations = (
        session.query(ChildActivitySession)
        .filter(ChildActivitySession.activity_session_id == activitySessionId)
        .filter(ChildActivitySession.pick_up_station_id.in_(stationIds))
        .order_by(ChildActivitySession.id.asc())
        .all()
    )
    children = {
        child.id: child
        for child in session.query(Child).filter(
            Child.id.in_([r.child_id for r in registrations])
        )
    }

    current = [
        children[r.child_id]
        for r in registrations
        if r.pick_up_station_id == currentStationId
    ]
    upcoming = sorted(
        (r for r in registrations if r.pick_up_station_id != currentStationId),
        key=lambda r: stationIds.index(r.pick_up_station_id),
    )
    return schemas.PendingPickup(
        current_station_children=[
            schemas.ChildInfo.model_validate(child) for child in current
        ],
        upcoming_station_children=[
            schemas.ChildInfo.model_validate(children[r.child_id]) for r in upcoming
        ],
    )


def getChildrenByPickupStatus(
    session: Session,
    activitySessionId: int,
    stationId: int,
    candidates: List[Child],
    isAlreadyPickedUp: bool,
) -> List[Child]:
    """
    Filter candidates by whether they were processed at the given station.

    A candidate counts as picked up when a `ChildStation` row exists for
    (child, station, activity session).
    """
    if not candidates:
        return []
    processedIds = set(
        session.scalars(
            select(ChildStation.child_id)
            .where(ChildStation.activity_session_id == activitySessionId)
            .where(ChildStation.station_id == stationId)
            .where(ChildStation.child_id.in_([child.id for child in candidates]))
        ).all()
    )
    return [
        child for child in candidates if (child.id in processedIds) == isAlreadyPickedUp
    ]


# ---------------------------------------------------------------------------
# Drop-off status
# ---------------------------------------------------------------------------
def getSessionDropOffStations(
    session: Session, activitySessionId: int, children: List[Child]
) -> Dict[int, Optional[int]]:
    """
    Station where each child leaves the activity session.

    That is the child's own drop-off station when the route of the session
    serves it, and the transfer station when the drop-off station is on a
    connected route.

    Returns:
        Dict[int, Optional[int]]: Station ID keyed by child ID.
    """
    pickUps = dict(
        session.execute(
            select(
                ChildActivitySession.child_id, ChildActivitySession.pick_up_station_id
            ).where(ChildActivitySession.activity_session_id == activitySessionId)
        ).all()
    )
    stations = {}
    for child in children:
        validation = validateRouteTransfer(
            session, activitySessionId, pickUps.get(child.id), child.drop_off_station_id
        )
        if validation.is_valid and validation.requires_transfer:
            stations[child.id] = validation.transfer_station_id
        else:
            stations[child.id] = child.drop_off_station_id
    return stations


def getChildrenByDropOffStatus(
    session: Session, activitySessionId: int, stationId: int, isAlreadyDroppedOff: bool
) -> List[Child]:
    """
    Children leaving at the given station, split by whether they already left.

    Only children with at least one event on the session are considered.
    """
    wanted = (
        ParticipantPhase.DROPPED_OFF
        if isAlreadyDroppedOff
        else ParticipantPhase.PICKED_UP
    )
    phases = getParticipantPhases(session, activitySessionId)
    children = (
        _childrenWithEvents(session, activitySessionId).order_by(Child.id.asc()).all()
    )
    dropOffs = getSessionDropOffStations(session, activitySessionId, children)
    return [
        child
        for child in children
        if dropOffs[child.id] == stationId and phases.get(child.id) == wanted
    ]


def getChildrenYetToBeDroppedOff(
    session: Session, activitySessionId: int, stationIds: List[int]
) -> List[Child]:
    """
    Picked-up children leaving at a station other than the current one.

    Ordered by the position of the station where they leave in `stationIds`;
    children whose station is not in the list come first.
    """
    if not stationIds:
        return []

    currentStationId = stationIds[0]
    phases = getParticipantPhases(session, activitySessionId)
    children = (
        _childrenWithEvents(session, activitySessionId).order_by(Child.id.asc()).all()
    )
    dropOffs = getSessionDropOffStations(session, activitySessionId, children)

    def stationPosition(child: Child) -> int:
        if dropOffs[child.id] in stationIds:
            return stationIds.index(dropOffs[child.id])
        return -1

    pickedUp = [
        child
        for child in children
        if dropOffs[child.id] != currentStationId
        and phases.get(child.id) == ParticipantPhase.PICKED_UP
    ]
    return sorted(pickedUp, key=stationPosition)


def getChildrenAlreadyDroppedOff(
    session: Session, activitySessionId: int, currentStationId: Optional[int]
) -> List[Child]:
    """Dropped-off children who left at a station other than the current one."""
    phases = getParticipantPhases(session, activitySessionId)
    children = (
        _childrenWithEvents(session, activitySessionId).order_by(Child.id.asc()).all()
    )
    dropOffs = getSessionDropOffStations(session, activitySessionId, children)
    return [
        child
        for child in children
        if dropOffs[child.id] != currentStationId
        and phases.get(child.id) == ParticipantPhase.DROPPED_OFF
    ]


# ---------------------------------------------------------------------------
# Check-in / check-out events
# ---------------------------------------------------------------------------
def recordChildStation(
    session: Session,
    activitySessionId: int,
    childId: int,
    stationId: int,
    instructorId: Optional[int] = None,
) -> ChildStation:
    """
    Record that a child was processed at a station.

    The event type is `OUT` when the station is where the child leaves the
    session (its drop-off station, or the transfer station towards it) and
    `IN` otherwise. The registered pick-up station is always `IN`.
    Recording the same (child, station, activity session) twice returns the
    existing row.

    Raises:
        exceptions.UnknownValue: If the activity session or the child does not exist.
        exceptions.InactiveResource: If the activity session is not in progress.
        exceptions.InvalidAssociation: If the station is not part of the activity session.
    """
    activity = getters.activitySession(session, activitySessionId)
    validators.activityInProgress(activity)

    stationActivity = (
        session.query(StationActivitySession)
        .filter(StationActivitySession.activity_session_id == activitySessionId)
        .filter(StationActivitySession.station_id == stationId)
        .first()
    )
    if stationActivity is None:
        raise exceptions.InvalidAssociation(
            ChildStation.station_id, ChildStation.activity_session_id
        )
    child = session.query(Child).filter(Child.id == childId).first()
    if child is None:
        raise exceptions.UnknownValue(ChildStation.child_id)

    query = (
        session.query(ChildStation)
        .filter(ChildStation.activity_session_id == activitySessionId)
        .filter(ChildStation.child_id == childId)
        .filter(ChildStation.station_id == stationId)
    )
    existing = query.first()
    if existing is not None:
        return existing

    registration = (
        session.query(ChildActivitySession)
        .filter(ChildActivitySession.activity_session_id == activitySessionId)
        .filter(ChildActivitySession.child_id == childId)
        .first()
    )
    dropOffs = getSessionDropOffStations(session, activitySessionId, [child])
    if registration is not None and stationId == registration.pick_up_station_id:
        stationType = ChildStationType.IN
    elif stationId == dropOffs[childId]:
        stationType = ChildStationType.OUT
    else:
        stationType = ChildStationType.IN
    childStation = ChildStation(
        child_id=childId,
        station_id=stationId,
        activity_session_id=activitySessionId,
        instructor_id=instructorId,
        type=stationType,
        registered_at=datetime.now(TMZ_PRIMARY),
    )
    try:
        with session.begin_nested():
            session.add(childStation)
    except IntegrityError:
        logger.info(
            f"Child {childId} already recorded at station {stationId} "
            f"on activity session {activitySessionId}"
        )
        return query.first()
    return childStation


def recordParentStation(
    session: Session,
    activitySessionId: int,
    parentId: int,
    instructorId: Optional[int] = None,
) -> ParentStation:
    """
    Record that a parent accompanies an activity session.

    Recording the same parent twice returns the existing row.
    """
    activity = getters.activitySession(session, activitySessionId)
    validators.activityInProgress(activity)

    parent = session.query(Parent).filter(Parent.id == parentId).first()
    if parent is None:
        raise exceptions.UnknownValue(ParentStation.parent_id)

    query = (
        session.query(ParentStation)
        .filter(ParentStation.activity_session_id == activitySessionId)
        .filter(ParentStation.parent_id == parentId)
    )
    existing = query.first()
    if existing is not None:
        return existing

    parentStation = ParentStation(
        parent_id=parentId,
        activity_session_id=activitySessionId,
        instructor_id=instructorId,
        registered_at=datetime.now(TMZ_PRIMARY),
    )
    try:
        with session.begin_nested():
            session.add(parentStation)
    except IntegrityError:
        logger.info(
            f"Parent {parentId} already recorded on activity session {activitySessionId}"
        )
        return query.first()
    return parentStation


# ---------------------------------------------------------------------------
# Station arrival / departure
# ---------------------------------------------------------------------------
def recordStationArrival(
    session: Session, activitySessionId: int, at: Optional[datetime] = None
) -> int:
    """
    Mark the current station of the activity session as arrived at.

    Returns:
        int: ID of the station that was arrived at.

    Raises:
        exceptions.NoStationsLeft: If every station was already arrived at.
    """
    activity = getters.activitySession(session, activitySessionId)
    validators.activityInProgress(activity)

    current = _pendingStations(session, activitySessionId).first()
    if current is None:
        raise exceptions.NoStationsLeft()
    current.arrived_at = at or datetime.now(TMZ_PRIMARY)
    session.flush()
    return current.station_id


def recordStationDeparture(
    session: Session, activitySessionId: int, at: Optional[datetime] = None
) -> int:
    """
    Mark the most recently arrived station of the activity session as left.

    Leaving a station twice keeps the first departure time.

    Returns:
        int: ID of the station that was left.

    Raises:
        exceptions.InvalidStateTransition: If no station was arrived at yet.
    """
    activity = getters.activitySession(session, activitySessionId)
    validators.activityInProgress(activity)

    latest = (
        session.query(StationActivitySession)
        .filter(StationActivitySession.activity_session_id == activitySessionId)
        .filter(StationActivitySession.arrived_at.is_not(None))
        .order_by(StationActivitySession.stop_number.desc())
        .first()
    )
    if latest is None:
        raise exceptions.InvalidStateTransition(StationActivitySession.left_at)
    if latest.left_at is None:
        latest.left_at = at or datetime.now(TMZ_PRIMARY)
        session.flush()
    return latest.station_id
