from typing import List, Dict, Any, Tuple, Union, Type
from datetime import datetime, timedelta

from pedibus.src import schemas
from pedibus.src.constants import TMZ_SECONDARY
from pedibus.src.exceptions import APIException


def makeExceptionResponses(
    exceptions: List[Union[APIException, Type[APIException]]],
) -> Dict[int, dict]:
    """
    Generate OpenAPI response documentation by fusing multiple APIException entries.

    Exceptions whose detail depends on a column are given as instances,
    the others may be given as classes.

    Args:
        exceptions (List[APIException | Type[APIException]]): Exceptions raised by the endpoint.

    Returns:
        Dict[int, dict]: A dictionary of OpenAPI response specs grouped by status code.
    """
    responses = {}

    for exception in exceptions:
        if isinstance(exception, type):
            example_key = exception.__name__
        else:
            example_key = type(exception).__name__
        status_code = exception.status_code
        example_value = {
            "summary": str(exception.headers),
            "value": {"detail": exception.detail},
        }

        if status_code not in responses:
            responses[status_code] = {
                "model": schemas.ErrorResponse,
                "content": {
                    "application/json": {"examples": {example_key: example_value}}
                },
            }
        else:
            responses[status_code]["content"]["application/json"]["examples"][
                example_key
            ] = example_value

    return responses


def enumStr(enumClass) -> str:
    """
    Convert an Enum class into a comma-separated string of its members.

    Each enum member is formatted as "<NAME>: <VALUE>".

    Example:
        >>> enumStr(ActivityMode)
        'WALK: 1, BIKE: 2'
    """
    return ", ".join(f"{x.name}: {x.value}" for x in enumClass)


def isValidTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any
) -> bool:
    """
    Check if a state transition is valid.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
            Example:
                {
                    ActivityStatus.PENDING: [ActivityStatus.IN_PROGRESS],
                    ActivityStatus.IN_PROGRESS: [ActivityStatus.FINISHED],
                }
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.

    Returns:
        bool: True if transition is valid, False otherwise.

    Notes:
        - If `old_state` is not in the transitions mapping, this will return False.
    """
    if not transitions:
        return False
    if old_state not in transitions:
        return False
    return new_state in transitions[old_state]


def localDayBounds(moment: datetime) -> Tuple[datetime, datetime]:
    """
    Return the `[start, end)` bounds of the local calendar day containing `moment`.

    The local day is taken in `TMZ_SECONDARY`. A naive `moment` is assumed
    to already be expressed in local time and naive bounds are returned,
    otherwise the bounds are timezone aware.

    Example:
        >>> localDayBounds(datetime(2024, 5, 2, 8, 30))
        (datetime(2024, 5, 2, 0, 0), datetime(2024, 5, 3, 0, 0))
    """
    if moment.tzinfo is None:
        start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
        return start, start + timedelta(days=1)

    local = moment.astimezone(TMZ_SECONDARY)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    end = (start + timedelta(days=1)).replace(tzinfo=TMZ_SECONDARY)
    return start, end


def stationTime(scheduledAt: datetime, minutesFromStart: int) -> datetime:
    """Absolute time at which a route station is reached for a session start."""
    return scheduledAt + timedelta(minutes=minutesFromStart)

