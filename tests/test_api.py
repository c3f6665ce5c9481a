import pytest
from fastapi import status
from fastapi.testclient import TestClient

from pedibus.main import app
from pedibus.api import activity_session, badge, leaderboard, route
from pedibus.src.enums import (
    AppID,
    BadgeCriteria,
    ChildStationType,
    RankingTimeframe,
    RankingType,
    WeatherType,
)

from conftest import makeBadge, makeChild, makeParent

INSTRUCTOR = "/instructor"
PARENT = "/parent"
PUBLIC = "/public"


@pytest.fixture
def client(sessionFactory, monkeypatch):
    for module in (activity_session, badge, leaderboard, route):
        monkeypatch.setattr(module, "sessionMaker", sessionFactory)
    monkeypatch.setattr(
        activity_session, "getWeatherFromCity", lambda: (WeatherType.CLEAR, 21)
    )
    return TestClient(app)


@pytest.fixture
def people(session, network):
    kim = makeChild(session, "Kim", network.s3)
    leo = makeChild(session, "Leo", network.s5)
    parent = makeParent(session, "Paula", [kim, leo])
    firstSteps = makeBadge(session, "First Steps", BadgeCriteria.PARTICIPATION, 1)
    makeBadge(session, "Marathoner", BadgeCriteria.DISTANCE, 42)
    session.commit()
    return kim, leo, parent, firstSteps


def test_health(client):
    response = client.get("/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "OK"


def test_activity_session_walkthrough(client, network, people, events):
    kim, leo, parent, firstSteps = people

    # Schedule
    response = client.post(
        INSTRUCTOR + "/activity-session",
        data={"route_id": network.blue.id, "scheduled_at": "2030-05-02T08:00:00"},
    )
    assert response.status_code == status.HTTP_201_CREATED
    activity = response.json()
    assert activity["type"] == 1
    assert activity["started_at"] is None
    activityId = activity["id"]

    # Register
    for child in (kim, leo):
        response = client.post(
            PARENT + "/activity-session/registration",
            data={
                "activity_session_id": activityId,
                "child_id": child.id,
                "pick_up_station_id": network.s1.id,
                "parent_id": parent.id,
            },
        )
        assert response.status_code == status.HTTP_201_CREATED
    assert events[-1]["_parent_id"] == parent.id
    assert events[-1]["_app_id"] == AppID.PARENT

    # Start
    response = client.post(
        INSTRUCTOR + "/activity-session/start",
        data={"id": activityId, "instructor_id": 3},
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["weather_type"] == WeatherType.CLEAR
    assert response.json()["temperature"] == 21
    assert events[-1]["_instructor_id"] == 3

    response = client.get(INSTRUCTOR + "/activity-session/progress", params={"id": activityId})
    progress = response.json()
    assert progress["current_station_id"] == network.s1.id
    assert progress["remaining_station_ids"] == [
        network.s1.id,
        network.s2.id,
        network.s3.id,
    ]
    assert [c["id"] for c in progress["children_to_pick_up"]] == [kim.id, leo.id]

    # Pick up at S1
    for child in (kim, leo):
        response = client.post(
            INSTRUCTOR + "/activity-session/child-station",
            data={
                "activity_session_id": activityId,
                "child_id": child.id,
                "station_id": network.s1.id,
                "instructor_id": 3,
            },
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["type"] == ChildStationType.IN
    response = client.post(
        INSTRUCTOR + "/activity-session/parent-station",
        data={"activity_session_id": activityId, "parent_id": parent.id},
    )
    assert response.status_code == status.HTTP_201_CREATED

    response = client.post(INSTRUCTOR + "/activity-session/arrival", data={"id": activityId})
    assert response.json()["station_id"] == network.s1.id
    assert response.json()["current_station_id"] == network.s2.id
    response = client.post(INSTRUCTOR + "/activity-session/departure", data={"id": activityId})
    assert response.json()["station_id"] == network.s1.id

    client.post(INSTRUCTOR + "/activity-session/arrival", data={"id": activityId})
    client.post(INSTRUCTOR + "/activity-session/departure", data={"id": activityId})

    progress = client.get(
        PARENT + "/activity-session/progress", params={"id": activityId}
    ).json()
    assert progress["current_station_id"] == network.s3.id
    # Leo heads to S5 and leaves here to change onto the Green route
    assert [c["id"] for c in progress["children_to_drop_off"]] == [kim.id, leo.id]
    assert [c["id"] for c in progress["children_dropped_off"]] == []

    # Drop off at S3
    client.post(INSTRUCTOR + "/activity-session/arrival", data={"id": activityId})
    response = client.post(
        INSTRUCTOR + "/activity-session/child-station",
        data={
            "activity_session_id": activityId,
            "child_id": kim.id,
            "station_id": network.s3.id,
        },
    )
    assert response.json()["type"] == ChildStationType.OUT
    response = client.post(INSTRUCTOR + "/activity-session/arrival", data={"id": activityId})
    assert response.status_code == status.HTTP_406_NOT_ACCEPTABLE
    assert response.headers["X-Error"] == "NoStationsLeft"

    # Finish and award
    response = client.post(INSTRUCTOR + "/activity-session/finish", data={"id": activityId})
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["finished_at"] is not None
    assert response.json()["stats_processed_on"] is not None

    awarded = client.get(PARENT + "/badge/awarded", params={"child_id": kim.id}).json()
    assert [(a["badge_id"], a["child_id"]) for a in awarded] == [(firstSteps.id, kim.id)]
    awarded = client.get(PARENT + "/badge/awarded", params={"parent_id": parent.id}).json()
    assert [(a["badge_id"], a["parent_id"]) for a in awarded] == [
        (firstSteps.id, parent.id)
    ]
    # Leo was never dropped off
    assert client.get(PARENT + "/badge/awarded", params={"child_id": leo.id}).json() == []

    board = client.get(
        PUBLIC + "/leaderboard",
        params={
            "timeframe": int(RankingTimeframe.ALL_TIME),
            "ranking_type": int(RankingType.CHILDREN),
        },
    ).json()
    assert board["timeframe"]["label"] == "all_time"
    assert [(e["id"], e["distance"], e["points"]) for e in board["entries"]] == [
        (kim.id, 900, 19)
    ]


def test_activity_session_errors(client, network, people):
    kim = people[0]

    response = client.post(INSTRUCTOR + "/activity-session/start", data={"id": 999})
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.headers["X-Error"] == "UnknownValue"

    response = client.post(
        INSTRUCTOR + "/activity-session",
        data={"route_id": 999, "scheduled_at": "2030-05-02T08:00:00"},
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND

    activityId = client.post(
        INSTRUCTOR + "/activity-session",
        data={"route_id": network.blue.id, "scheduled_at": "2030-05-02T08:00:00"},
    ).json()["id"]

    response = client.post(INSTRUCTOR + "/activity-session/finish", data={"id": activityId})
    assert response.status_code == status.HTTP_406_NOT_ACCEPTABLE
    assert response.headers["X-Error"] == "InvalidStateTransition"

    response = client.post(
        INSTRUCTOR + "/activity-session/child-station",
        data={
            "activity_session_id": activityId,
            "child_id": kim.id,
            "station_id": network.s1.id,
        },
    )
    assert response.status_code == status.HTTP_412_PRECONDITION_FAILED

    response = client.post(
        PARENT + "/activity-session/registration",
        data={
            "activity_session_id": activityId,
            "child_id": kim.id,
            "pick_up_station_id": network.s4.id,
        },
    )
    assert response.status_code == status.HTTP_406_NOT_ACCEPTABLE
    assert response.headers["X-Error"] == "InvalidRouteTransfer"
    assert response.json()["detail"] == "Pick-up station is not on the activity route"


def test_route_transfer_and_linked_activities(client, network, people):
    response = client.post(
        INSTRUCTOR + "/activity-session",
        data={"route_id": network.blue.id, "scheduled_at": "2030-05-02T08:00:00"},
    )
    blueId = response.json()["id"]
    greenId = client.post(
        INSTRUCTOR + "/activity-session",
        data={"route_id": network.green.id, "scheduled_at": "2030-05-02T08:15:00"},
    ).json()["id"]

    result = client.get(
        PUBLIC + "/activity-session/transfer",
        params={
            "activity_session_id": blueId,
            "pick_up_station_id": network.s1.id,
            "drop_off_station_id": network.s5.id,
        },
    ).json()
    assert result == {
        "is_valid": True,
        "requires_transfer": True,
        "transfer_station_id": network.s3.id,
        "message": None,
    }

    linked = client.get(
        PUBLIC + "/route/linked-activities",
        params={"route_id": network.blue.id, "scheduled_at": "2030-05-02T08:00:00"},
    ).json()
    assert linked == {"previous_activity_id": None, "next_activity_id": greenId}

    response = client.get(
        INSTRUCTOR + "/route/linked-activities",
        params={"route_id": 999, "scheduled_at": "2030-05-02T08:00:00"},
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_badge_catalogue(client, people):
    catalogue = client.get(PUBLIC + "/badge").json()
    assert [b["name"] for b in catalogue] == ["Marathoner", "First Steps"]
    filtered = client.get(
        PUBLIC + "/badge", params={"criteria": int(BadgeCriteria.PARTICIPATION)}
    ).json()
    assert [b["name"] for b in filtered] == ["First Steps"]
