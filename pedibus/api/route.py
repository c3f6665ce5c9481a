from datetime import datetime
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from pedibus.src.db import ActivitySession, Route, sessionMaker
from pedibus.src import exceptions, schemas
from pedibus.src.functions import makeExceptionResponses
from pedibus.src.transfer import findLinkedActivities
from pedibus.src.urls import URL_LINKED_ACTIVITIES

route_instructor = APIRouter()
route_public = APIRouter()


## Query Params
class LinkedQueryParams(BaseModel):
    route_id: int = Field(Query())
    scheduled_at: datetime = Field(Query())


## Function
def searchLinkedActivities(session, qParam: LinkedQueryParams):
    route = session.query(Route).filter(Route.id == qParam.route_id).first()
    if route is None:
        raise exceptions.UnknownValue(ActivitySession.route_id)
    return findLinkedActivities(session, route, qParam.scheduled_at)


## API endpoints [Instructor]
@route_instructor.get(
    URL_LINKED_ACTIVITIES,
    tags=["Route"],
    response_model=schemas.LinkedActivities,
    responses=makeExceptionResponses([exceptions.UnknownValue(ActivitySession.route_id)]),
    description="""
    Find the activity sessions of connected routes that chain with a session
    of the given route starting at `scheduled_at`.
    The previous activity reaches the shared station shortly before this route,
    the next activity shortly after it.
    """,
)
async def fetch_linked_activities(qParam: LinkedQueryParams = Depends()):
    try:
        session = sessionMaker()
        return searchLinkedActivities(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Public]
@route_public.get(
    URL_LINKED_ACTIVITIES,
    tags=["Route"],
    response_model=schemas.LinkedActivities,
    responses=makeExceptionResponses([exceptions.UnknownValue(ActivitySession.route_id)]),
    description="""
    Find the activity sessions of connected routes that chain with a session of the given route.
    """,
)
async def fetch_linked_activities_public(qParam: LinkedQueryParams = Depends()):
    try:
        session = sessionMaker()
        return searchLinkedActivities(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
