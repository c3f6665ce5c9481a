from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field

from pedibus.src.db import Badge, ClientBadge, sessionMaker
from pedibus.src import exceptions
from pedibus.src.enums import BadgeCriteria, OrderIn
from pedibus.src.functions import enumStr
from pedibus.src.urls import URL_BADGE, URL_BADGE_AWARDED

route_parent = APIRouter()
route_public = APIRouter()


## Output Schema
class BadgeSchema(BaseModel):
    id: int
    name: str
    description: Optional[str]
    image_url: Optional[str]
    criteria: int
    value_needed: Optional[int]
    created_on: datetime


class ClientBadgeSchema(BaseModel):
    id: int
    badge_id: int
    child_id: Optional[int]
    parent_id: Optional[int]
    assigned_at: datetime


## Query Params
class BadgeQueryParams(BaseModel):
    name: str | None = Field(Query(default=None))
    criteria: BadgeCriteria | None = Field(
        Query(default=None, description=enumStr(BadgeCriteria))
    )
    id_list: List[int] | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


class OrderBy(IntEnum):
    id = 1
    assigned_at = 2


class AwardedQueryParams(BaseModel):
    child_id: int | None = Field(Query(default=None))
    parent_id: int | None = Field(Query(default=None))
    badge_id: int | None = Field(Query(default=None))
    # assigned_at based
    assigned_at_ge: datetime | None = Field(Query(default=None))
    assigned_at_le: datetime | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def searchBadge(session: Session, qParam: BadgeQueryParams) -> List[Badge]:
    query = session.query(Badge)

    # Filters
    if qParam.name is not None:
        query = query.filter(Badge.name.ilike(f"%{qParam.name}%"))
    if qParam.criteria is not None:
        query = query.filter(Badge.criteria == qParam.criteria)
    if qParam.id_list is not None:
        query = query.filter(Badge.id.in_(qParam.id_list))

    # Pagination
    query = query.order_by(Badge.criteria.asc(), Badge.value_needed.asc(), Badge.id.asc())
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


def searchClientBadge(
    session: Session, qParam: AwardedQueryParams
) -> List[ClientBadge]:
    query = session.query(ClientBadge)

    # Filters
    if qParam.child_id is not None:
        query = query.filter(ClientBadge.child_id == qParam.child_id)
    if qParam.parent_id is not None:
        query = query.filter(ClientBadge.parent_id == qParam.parent_id)
    if qParam.badge_id is not None:
        query = query.filter(ClientBadge.badge_id == qParam.badge_id)
    # assigned_at based
    if qParam.assigned_at_ge is not None:
        query = query.filter(ClientBadge.assigned_at >= qParam.assigned_at_ge)
    if qParam.assigned_at_le is not None:
        query = query.filter(ClientBadge.assigned_at <= qParam.assigned_at_le)

    # Ordering
    orderingAttribute = getattr(ClientBadge, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Parent]
@route_parent.get(
    URL_BADGE_AWARDED,
    tags=["Badge"],
    response_model=List[ClientBadgeSchema],
    description="""
    Fetch the badges awarded to children and parents.
    Filter by `child_id` or `parent_id` to list the badges of one participant.
    Supports filtering, sorting, and pagination.
    """,
)
async def fetch_awarded_badge(qParam: AwardedQueryParams = Depends()):
    try:
        session = sessionMaker()
        return searchClientBadge(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Public]
@route_public.get(
    URL_BADGE,
    tags=["Badge"],
    response_model=List[BadgeSchema],
    description="""
    Fetch the badge catalogue, grouped by criteria and sorted by threshold.
    """,
)
async def fetch_badge(qParam: BadgeQueryParams = Depends()):
    try:
        session = sessionMaker()
        return searchBadge(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
