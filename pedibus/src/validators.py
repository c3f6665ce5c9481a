"""
Validation checks for the Pedibus API.

This module centralizes guard logic such as:
- State transition enforcement
- Activity session lifecycle checks

All functions raise appropriate exceptions from `pedibus.src.exceptions`
when validation fails, ensuring consistent error handling.
"""

from sqlalchemy import Column
from typing import Any

from pedibus.src import exceptions, getters
from pedibus.src.db import ActivitySession
from pedibus.src.enums import ActivityStatus
from pedibus.src.functions import isValidTransition


# ---------------------------------------------------------------------------
# State validation
# ---------------------------------------------------------------------------
def stateTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any, state: Column
) -> bool:
    """
    Validate whether a state transition is allowed.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.
        state (Column): SQLAlchemy column representing the state
            (used to format error messages).

    Returns:
        bool: True if the transition is valid.

    Raises:
        exceptions.InvalidStateTransition: If the transition is not permitted.
    """
    if not isValidTransition(transitions, old_state, new_state):
        raise exceptions.InvalidStateTransition(state)
    return True


def activityInProgress(activity: ActivitySession) -> bool:
    """
    Ensure check-ins and station progress are only recorded on a running session.

    Raises:
        exceptions.InactiveResource: If the session is pending or finished.
    """
    if getters.activityStatus(activity) != ActivityStatus.IN_PROGRESS:
        raise exceptions.InactiveResource(ActivitySession)
    return True
