from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from pedibus.src.db import (
    ActivitySession,
    ChildActivitySession,
    ChildStation,
    ParentStation,
    StationActivitySession,
    sessionMaker,
)
from pedibus.src import exceptions, getters, lifecycle, schemas, tracker
from pedibus.src.badges import awardBadgesAfterActivity
from pedibus.src.enums import ActivityType
from pedibus.src.functions import enumStr, makeExceptionResponses
from pedibus.src.loggers import logEvent
from pedibus.src.redis import mutex
from pedibus.src.transfer import validateRouteTransfer
from pedibus.src.weather import getWeatherFromCity
from pedibus.src.urls import (
    URL_ACTIVITY_SESSION,
    URL_ACTIVITY_SESSION_ARRIVAL,
    URL_ACTIVITY_SESSION_DEPARTURE,
    URL_ACTIVITY_SESSION_FINISH,
    URL_ACTIVITY_SESSION_PROGRESS,
    URL_ACTIVITY_SESSION_REGISTRATION,
    URL_ACTIVITY_SESSION_START,
    URL_CHILD_STATION,
    URL_PARENT_STATION,
    URL_ROUTE_TRANSFER,
)

route_instructor = APIRouter()
route_parent = APIRouter()
route_public = APIRouter()


## Output Schema
class ActivitySessionSchema(BaseModel):
    id: int
    route_id: int
    type: int
    mode: int
    scheduled_at: datetime
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    is_closed: bool
    weather_type: Optional[int]
    temperature: Optional[int]
    stats_processed_on: Optional[datetime]


class RegistrationSchema(BaseModel):
    id: int
    child_id: int
    activity_session_id: int
    pick_up_station_id: int
    registered_at: datetime


class ChildStationSchema(BaseModel):
    id: int
    child_id: int
    station_id: int
    activity_session_id: int
    instructor_id: Optional[int]
    type: int
    registered_at: datetime


class ParentStationSchema(BaseModel):
    id: int
    parent_id: int
    activity_session_id: int
    instructor_id: Optional[int]
    registered_at: datetime


class StationEventSchema(BaseModel):
    activity_session_id: int
    station_id: int
    current_station_id: Optional[int]


class ProgressSchema(BaseModel):
    activity_session_id: int
    current_station_id: Optional[int]
    remaining_station_ids: List[int]
    children_to_pick_up: List[schemas.ChildInfo]
    children_picked_up: List[schemas.ChildInfo]
    children_upcoming: List[schemas.ChildInfo]
    children_to_drop_off: List[schemas.ChildInfo]
    children_dropped_off: List[schemas.ChildInfo]
    children_still_in: List[schemas.ChildInfo]


## Input Forms
class CreateForm(BaseModel):
    route_id: int = Field(Form())
    scheduled_at: datetime = Field(Form())
    type: ActivityType | None = Field(
        Form(default=None, description=enumStr(ActivityType))
    )


class ActivityForm(BaseModel):
    id: int = Field(Form())
    instructor_id: int | None = Field(Form(default=None))


class RegistrationForm(BaseModel):
    activity_session_id: int = Field(Form())
    child_id: int = Field(Form())
    pick_up_station_id: int = Field(Form())
    parent_id: int | None = Field(Form(default=None))


class ChildStationForm(BaseModel):
    activity_session_id: int = Field(Form())
    child_id: int = Field(Form())
    station_id: int = Field(Form())
    instructor_id: int | None = Field(Form(default=None))


class ParentStationForm(BaseModel):
    activity_session_id: int = Field(Form())
    parent_id: int = Field(Form())
    instructor_id: int | None = Field(Form(default=None))


## Query Params
class ProgressQueryParams(BaseModel):
    id: int = Field(Query())


class TransferQueryParams(BaseModel):
    activity_session_id: int = Field(Query())
    pick_up_station_id: int = Field(Query())
    drop_off_station_id: int = Field(Query())


def toChildInfo(children) -> List[schemas.ChildInfo]:
    return [schemas.ChildInfo.model_validate(child) for child in children]


def buildProgress(session, activitySessionId: int) -> ProgressSchema:
    """
    Snapshot of an activity session for the instructor screen.

    Children boarding at the current station are split by whether they were
    already picked up, children leaving at the current station by whether
    they were already dropped off.
    """
    remaining = tracker.getRemainingStations(session, activitySessionId)
    currentStationId = remaining[0] if remaining else None

    atStation = []
    if currentStationId is not None:
        atStation = tracker.getChildrenAtPickupStation(
            session, activitySessionId, currentStationId
        )
    pending = tracker.getChildrenLeftToPickUp(session, activitySessionId, remaining)
    return ProgressSchema(
        activity_session_id=activitySessionId,
        current_station_id=currentStationId,
        remaining_station_ids=remaining,
        children_to_pick_up=toChildInfo(
            tracker.getChildrenByPickupStatus(
                session, activitySessionId, currentStationId, atStation, False
            )
        ),
        children_picked_up=toChildInfo(
            tracker.getChildrenByPickupStatus(
                session, activitySessionId, currentStationId, atStation, True
            )
        ),
        children_upcoming=pending.upcoming_station_children,
        children_to_drop_off=toChildInfo(
            tracker.getChildrenByDropOffStatus(
                session, activitySessionId, currentStationId, False
            )
        ),
        children_dropped_off=toChildInfo(
            tracker.getChildrenAlreadyDroppedOff(
                session, activitySessionId, currentStationId
            )
        ),
        children_still_in=toChildInfo(
            tracker.getChildrenYetToBeDroppedOff(session, activitySessionId, remaining)
        ),
    )


## API endpoints [Instructor]
@route_instructor.post(
    URL_ACTIVITY_SESSION,
    tags=["Activity Session"],
    response_model=ActivitySessionSchema,
    status_code=status.HTTP_201_CREATED,
    responses=makeExceptionResponses(
        [
            exceptions.UnknownValue(ActivitySession.route_id),
            exceptions.InvalidAssociation(
                ActivitySession.type, ActivitySession.route_id
            ),
        ]
    ),
    description="""
    Schedule a new activity session on a route.
    The type defaults to the activity type of the route, and the mode follows the type.
    A station record is created for every station of the route.
    """,
)
async def create_activity_session(
    fParam: CreateForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        activity = lifecycle.createActivitySession(
            session, fParam.route_id, fParam.scheduled_at, fParam.type
        )
        session.commit()
        session.refresh(activity)

        activityData = jsonable_encoder(activity)
        logEvent(request_info, activityData)
        return activityData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_instructor.post(
    URL_ACTIVITY_SESSION_START,
    tags=["Activity Session"],
    response_model=ActivitySessionSchema,
    responses=makeExceptionResponses(
        [
            exceptions.UnknownValue(StationActivitySession.activity_session_id),
            exceptions.InvalidStateTransition(ActivitySession.started_at),
        ]
    ),
    description="""
    Start a pending activity session.
    The current weather is recorded on the session when it can be fetched.
    """,
)
async def start_activity_session(
    fParam: ActivityForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        getters.activitySession(session, fParam.id)
        activity = lifecycle.startActivitySession(
            session, fParam.id, weather=getWeatherFromCity()
        )
        session.commit()
        session.refresh(activity)

        activityData = jsonable_encoder(activity)
        logEvent(request_info, activityData, fParam.instructor_id)
        return activityData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_instructor.post(
    URL_ACTIVITY_SESSION_FINISH,
    tags=["Activity Session"],
    response_model=ActivitySessionSchema,
    responses=makeExceptionResponses(
        [
            exceptions.UnknownValue(StationActivitySession.activity_session_id),
            exceptions.InvalidStateTransition(ActivitySession.finished_at),
        ]
    ),
    description="""
    Finish an in-progress activity session.
    Statistics are recorded and badges awarded right away when possible;
    otherwise the scheduler processes the session on its next pass.
    """,
)
async def finish_activity_session(
    fParam: ActivityForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        activity = lifecycle.finishActivitySession(session, fParam.id)
        session.commit()

        try:
            with mutex(ActivitySession.__tablename__, activity.id):
                awardBadgesAfterActivity(session, activity.id)
        except exceptions.APIException as e:
            exceptions.logException(e)
        session.refresh(activity)

        activityData = jsonable_encoder(activity)
        logEvent(request_info, activityData, fParam.instructor_id)
        return activityData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_instructor.get(
    URL_ACTIVITY_SESSION_PROGRESS,
    tags=["Activity Session"],
    response_model=ProgressSchema,
    responses=makeExceptionResponses(
        [exceptions.UnknownValue(StationActivitySession.activity_session_id)]
    ),
    description="""
    Fetch the progress of an activity session: current station, remaining stations,
    and the pick-up and drop-off status of its children.
    """,
)
async def fetch_progress(qParam: ProgressQueryParams = Depends()):
    try:
        session = sessionMaker()
        return buildProgress(session, qParam.id)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_instructor.post(
    URL_ACTIVITY_SESSION_ARRIVAL,
    tags=["Activity Session"],
    response_model=StationEventSchema,
    responses=makeExceptionResponses(
        [
            exceptions.UnknownValue(StationActivitySession.activity_session_id),
            exceptions.InactiveResource(ActivitySession),
            exceptions.NoStationsLeft,
        ]
    ),
    description="""
    Record the arrival of an activity session at its current station.
    The next station becomes the current one.
    """,
)
async def record_arrival(
    fParam: ActivityForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        stationId = tracker.recordStationArrival(session, fParam.id)
        session.commit()

        eventData = StationEventSchema(
            activity_session_id=fParam.id,
            station_id=stationId,
            current_station_id=tracker.getCurrentStation(session, fParam.id),
        )
        logEvent(request_info, eventData.model_dump(), fParam.instructor_id)
        return eventData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_instructor.post(
    URL_ACTIVITY_SESSION_DEPARTURE,
    tags=["Activity Session"],
    response_model=StationEventSchema,
    responses=makeExceptionResponses(
        [
            exceptions.UnknownValue(StationActivitySession.activity_session_id),
            exceptions.InactiveResource(ActivitySession),
            exceptions.InvalidStateTransition(StationActivitySession.left_at),
        ]
    ),
    description="""
    Record the departure of an activity session from the last station it arrived at.
    """,
)
async def record_departure(
    fParam: ActivityForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        stationId = tracker.recordStationDeparture(session, fParam.id)
        session.commit()

        eventData = StationEventSchema(
            activity_session_id=fParam.id,
            station_id=stationId,
            current_station_id=tracker.getCurrentStation(session, fParam.id),
        )
        logEvent(request_info, eventData.model_dump(), fParam.instructor_id)
        return eventData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_instructor.post(
    URL_CHILD_STATION,
    tags=["Activity Session"],
    response_model=ChildStationSchema,
    status_code=status.HTTP_201_CREATED,
    responses=makeExceptionResponses(
        [
            exceptions.UnknownValue(ChildStation.child_id),
            exceptions.InactiveResource(ActivitySession),
            exceptions.InvalidAssociation(
                ChildStation.station_id, ChildStation.activity_session_id
            ),
        ]
    ),
    description="""
    Check a child in or out at a station.
    The event is a check-out when the station is the drop-off station of the child.
    Repeating the same check-in or check-out returns the existing record.
    """,
)
async def record_child_station(
    fParam: ChildStationForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        childStation = tracker.recordChildStation(
            session,
            fParam.activity_session_id,
            fParam.child_id,
            fParam.station_id,
            fParam.instructor_id,
        )
        session.commit()
        session.refresh(childStation)

        childStationData = jsonable_encoder(childStation)
        logEvent(request_info, childStationData, fParam.instructor_id)
        return childStationData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_instructor.post(
    URL_PARENT_STATION,
    tags=["Activity Session"],
    response_model=ParentStationSchema,
    status_code=status.HTTP_201_CREATED,
    responses=makeExceptionResponses(
        [
            exceptions.UnknownValue(ParentStation.parent_id),
            exceptions.InactiveResource(ActivitySession),
        ]
    ),
    description="""
    Record a parent accompanying an activity session.
    """,
)
async def record_parent_station(
    fParam: ParentStationForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        parentStation = tracker.recordParentStation(
            session, fParam.activity_session_id, fParam.parent_id, fParam.instructor_id
        )
        session.commit()
        session.refresh(parentStation)

        parentStationData = jsonable_encoder(parentStation)
        logEvent(request_info, parentStationData, fParam.instructor_id)
        return parentStationData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Parent]
@route_parent.post(
    URL_ACTIVITY_SESSION_REGISTRATION,
    tags=["Activity Session"],
    response_model=RegistrationSchema,
    status_code=status.HTTP_201_CREATED,
    responses=makeExceptionResponses(
        [
            exceptions.UnknownValue(ChildActivitySession.child_id),
            exceptions.InactiveResource(ActivitySession),
            exceptions.InvalidRouteTransfer,
        ]
    ),
    description="""
    Register a child on an activity session with a pick-up station.
    The drop-off station of the child must be reachable from the pick-up station,
    directly or through a transfer onto a connected route.
    """,
)
async def register_child(
    fParam: RegistrationForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        registration = lifecycle.registerChild(
            session,
            fParam.activity_session_id,
            fParam.child_id,
            fParam.pick_up_station_id,
        )
        session.commit()
        session.refresh(registration)

        registrationData = jsonable_encoder(registration)
        logEvent(request_info, registrationData, fParam.parent_id)
        return registrationData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_parent.get(
    URL_ACTIVITY_SESSION_PROGRESS,
    tags=["Activity Session"],
    response_model=ProgressSchema,
    responses=makeExceptionResponses(
        [exceptions.UnknownValue(StationActivitySession.activity_session_id)]
    ),
    description="""
    Fetch the progress of an activity session.
    """,
)
async def fetch_progress_for_parent(qParam: ProgressQueryParams = Depends()):
    try:
        session = sessionMaker()
        return buildProgress(session, qParam.id)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Public]
@route_public.get(
    URL_ROUTE_TRANSFER,
    tags=["Activity Session"],
    response_model=schemas.TransferValidation,
    description="""
    Check whether a drop-off station can be reached from a pick-up station on an activity session.
    A failed check is reported in the response body, not as an error.
    """,
)
async def fetch_route_transfer(qParam: TransferQueryParams = Depends()):
    try:
        session = sessionMaker()
        return validateRouteTransfer(
            session,
            qParam.activity_session_id,
            qParam.pick_up_station_id,
            qParam.drop_off_station_id,
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
