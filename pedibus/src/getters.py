from fastapi import Request
from sqlalchemy.orm.session import Session

from pedibus.src import schemas, exceptions
from pedibus.src.enums import ActivityStatus
from pedibus.src.db import ActivitySession, StationActivitySession


def requestInfo(request: Request) -> schemas.RequestInfo:
    """
    Extract metadata about the incoming request.

    Args:
        request (Request): FastAPI request object.

    Returns:
        schemas.RequestInfo: Pydantic model containing:
            - method (str): HTTP method (GET, POST, etc.).
            - path (str): Path portion of the request URL.
            - app_id (int): Application ID from app state.
    """
    return schemas.RequestInfo(
        method=request.method,
        path=request.url.path,
        app_id=request.scope["app"].state.id,
    )


def activitySession(session: Session, activitySessionId: int) -> ActivitySession:
    """
    Fetch an activity session by its ID.

    Raises:
        exceptions.UnknownValue: If no activity session has the given ID.
    """
    activity = (
        session.query(ActivitySession)
        .filter(ActivitySession.id == activitySessionId)
        .first()
    )
    if activity is None:
        raise exceptions.UnknownValue(StationActivitySession.activity_session_id)
    return activity


def activityStatus(activity: ActivitySession) -> ActivityStatus:
    """Lifecycle status of an activity session, derived from its timestamps."""
    if activity.finished_at is not None:
        return ActivityStatus.FINISHED
    if activity.started_at is not None:
        return ActivityStatus.IN_PROGRESS
    return ActivityStatus.PENDING
