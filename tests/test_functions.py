from datetime import datetime

import pytest
from fastapi import status
from redis.exceptions import ConnectionError as RedisConnectionError

from pedibus.src import exceptions, redis as redisModule
from pedibus.src.constants import TMZ_PRIMARY, TMZ_SECONDARY
from pedibus.src.db import ActivitySession
from pedibus.src.enums import ActivityMode, AppID
from pedibus.src.functions import (
    enumStr,
    localDayBounds,
    makeExceptionResponses,
    stationTime,
)
from pedibus.src.loggers import logEvent, logJobEvent
from pedibus.src.schemas import RequestInfo


def test_local_day_bounds_naive():
    start, end = localDayBounds(datetime(2024, 5, 2, 8, 30))
    assert (start, end) == (datetime(2024, 5, 2), datetime(2024, 5, 3))


def test_local_day_bounds_aware():
    # 23:30 UTC on May 1 is already May 2 in Lisbon
    start, end = localDayBounds(datetime(2024, 5, 1, 23, 30, tzinfo=TMZ_PRIMARY))
    assert start == datetime(2024, 5, 2, tzinfo=TMZ_SECONDARY)
    assert end == datetime(2024, 5, 3, tzinfo=TMZ_SECONDARY)


def test_station_time_and_enum_str():
    assert stationTime(datetime(2024, 5, 2, 8), 25) == datetime(2024, 5, 2, 8, 25)
    assert enumStr(ActivityMode) == "WALK: 1, BIKE: 2"


def test_exception_responses_are_grouped_by_status():
    responses = makeExceptionResponses(
        [
            exceptions.UnknownValue(ActivitySession.route_id),
            exceptions.NoStationsLeft,
            exceptions.InvalidStateTransition(ActivitySession.started_at),
        ]
    )
    assert set(responses) == {
        status.HTTP_404_NOT_FOUND,
        status.HTTP_406_NOT_ACCEPTABLE,
    }
    examples = responses[status.HTTP_406_NOT_ACCEPTABLE]["content"]["application/json"][
        "examples"
    ]
    assert set(examples) == {"NoStationsLeft", "InvalidStateTransition"}


def test_handle_converts_redis_errors():
    with pytest.raises(exceptions.RedisDBError):
        exceptions.handle(RedisConnectionError("down"))
    with pytest.raises(exceptions.NoStationsLeft):
        exceptions.handle(exceptions.NoStationsLeft())
    with pytest.raises(ValueError):
        exceptions.handle(ValueError("unexpected"))


def test_log_event_attaches_actor(events):
    info = RequestInfo(method="POST", path="/instructor/x", app_id=AppID.INSTRUCTOR)
    logEvent(info, {"id": 4}, 9)
    logJobEvent("close_registrations", {"closed": 2})
    assert events == [
        {
            "_method": "POST",
            "_path": "/instructor/x",
            "_app_id": AppID.INSTRUCTOR,
            "_instructor_id": 9,
            "id": 4,
        },
        {"_app_id": AppID.SCHEDULER, "_job": "close_registrations", "closed": 2},
    ]


def test_mutex_is_exclusive(fakeRedis):
    with redisModule.mutex("activity_session", 1):
        assert "lock:activity_session:1" in fakeRedis.locks
        with pytest.raises(exceptions.LockAcquireTimeout):
            redisModule.acquireLock("activity_session", 1)
    assert fakeRedis.locks == set()


def test_mark_once(fakeRedis):
    assert redisModule.markOnce("leaderboard:2024-05", 60) is True
    assert redisModule.markOnce("leaderboard:2024-05", 60) is False
