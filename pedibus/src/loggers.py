from typing import Optional

from pedibus.src import openobserve
from pedibus.src.schemas import RequestInfo
from pedibus.src.enums import AppID


def logEvent(
    requestInfo: RequestInfo,
    data: dict,
    actorId: Optional[int] = None,
) -> None:
    """
    Log an event to OpenObserve with request and actor context.

    Args:
        requestInfo (RequestInfo): Metadata about the current request.
        data (dict): Additional event-specific details to include in the log.
        actorId (Optional[int]): ID of the user who triggered the event, if known.

    Notes:
        - Automatically attaches `_app_id`, `_method`, `_path`, and the actor ID.
        - Actor key depends on the app:
            - Instructor → `_instructor_id`
            - Parent     → `_parent_id`
    """
    logDetails = {
        "_method": requestInfo.method,
        "_path": requestInfo.path,
        "_app_id": requestInfo.app_id,
    }

    if actorId is not None:
        if requestInfo.app_id == AppID.INSTRUCTOR:
            logDetails["_instructor_id"] = actorId
        elif requestInfo.app_id == AppID.PARENT:
            logDetails["_parent_id"] = actorId

    logDetails.update(data)
    openobserve.logEvent(logDetails)


def logJobEvent(jobName: str, data: dict) -> None:
    """Log the outcome of a triggered job run to OpenObserve."""
    logDetails = {"_app_id": AppID.SCHEDULER, "_job": jobName}
    logDetails.update(data)
    openobserve.logEvent(logDetails)
