import argparse
from http import HTTPStatus
from requests import get, post
from datetime import datetime, timedelta

from pedibus.src.enums import ActivityType, BadgeCriteria, StationType
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
)
from pedibus.src.db import (
    Badge,
    Child,
    Parent,
    ParentChild,
    Route,
    RouteConnection,
    RouteStation,
    Station,
    sessionMaker,
    engine,
    ORMbase,
)

# name, description, criteria, value needed
BADGE_CATALOGUE = [
    ("First Steps", "Join your first activity", BadgeCriteria.PARTICIPATION, 1),
    ("Regular", "Join 10 activities", BadgeCriteria.PARTICIPATION, 10),
    ("Veteran", "Join 50 activities", BadgeCriteria.PARTICIPATION, 50),
    ("Explorer", "Travel 5 km", BadgeCriteria.DISTANCE, 5),
    ("Traveller", "Travel 25 km", BadgeCriteria.DISTANCE, 25),
    ("Marathoner", "Travel 42 km", BadgeCriteria.DISTANCE, 42),
    ("Energetic", "Burn 500 calories", BadgeCriteria.CALORIES, 500),
    ("Powerhouse", "Burn 2000 calories", BadgeCriteria.CALORIES, 2000),
    ("Rain or Shine", "Join 5 activities in bad weather", BadgeCriteria.WEATHER, 5),
    ("Collector", "Earn 100 points", BadgeCriteria.POINTS, 100),
    ("Hoarder", "Earn 1000 points", BadgeCriteria.POINTS, 1000),
    ("On a Roll", "Join 3 rounds in a row", BadgeCriteria.STREAK, 3),
    ("Unstoppable", "Join 10 rounds in a row", BadgeCriteria.STREAK, 10),
    ("Monthly Star", "Top of the monthly leaderboard", BadgeCriteria.LEADERBOARD, 1),
    ("Monthly Legend", "Top of the monthly leaderboard twice", BadgeCriteria.LEADERBOARD, 2),
]


# ----------------------------------- Project Setup -------------------------------------------#
def removeTables():
    session = sessionMaker()
    ORMbase.metadata.drop_all(engine)
    session.commit()
    print("* All tables deleted")
    session.close()


def createTables():
    session = sessionMaker()
    ORMbase.metadata.create_all(engine)
    session.commit()
    print("* All tables created")
    session.close()


def initDB():
    session = sessionMaker()
    for name, description, criteria, valueNeeded in BADGE_CATALOGUE:
        session.add(
            Badge(
                name=name,
                description=description,
                criteria=criteria,
                value_needed=valueNeeded,
            )
        )
    session.commit()
    print("* Badge catalogue created")

    # Two pedibus routes meeting at the market square
    stations = [
        Station(name="Praça do Comércio", latitude=38.7075, longitude=-9.1364),
        Station(name="Rua Augusta", latitude=38.7100, longitude=-9.1380),
        Station(name="Largo do Carmo", latitude=38.7121, longitude=-9.1408),
        Station(name="Mercado", latitude=38.7139, longitude=-9.1394),
        Station(name="Rua da Prata", latitude=38.7130, longitude=-9.1370),
        Station(
            name="Escola Básica",
            type=StationType.SCHOOL,
            latitude=38.7158,
            longitude=-9.1372,
        ),
    ]
    session.add_all(stations)
    session.flush()

    north = Route(name="Linha Norte", activity_type=ActivityType.PEDIBUS, distance_meters=1200)
    south = Route(name="Linha Sul", activity_type=ActivityType.PEDIBUS, distance_meters=900)
    session.add_all([north, south])
    session.flush()

    def addStops(route, stops):
        previous = 0
        for stopNumber, (station, minutes, meters) in enumerate(stops, start=1):
            session.add(
                RouteStation(
                    route_id=route.id,
                    station_id=station.id,
                    stop_number=stopNumber,
                    time_from_start_minutes=minutes,
                    distance_from_start_meters=meters,
                    distance_from_previous_meters=meters - previous,
                )
            )
            previous = meters

    addStops(north, [(stations[0], 0, 0), (stations[1], 5, 400), (stations[3], 12, 1200)])
    addStops(
        south,
        [(stations[3], 0, 0), (stations[4], 6, 450), (stations[5], 12, 900)],
    )
    session.add(
        RouteConnection(
            from_route_id=north.id, to_route_id=south.id, station_id=stations[3].id
        )
    )

    parent = Parent(name="Ana Silva")
    session.add(parent)
    session.flush()
    children = [
        Child(name="Rita Silva", school="Escola Básica", school_grade=3, drop_off_station_id=stations[5].id),
        Child(name="Tiago Silva", school="Escola Básica", school_grade=1, drop_off_station_id=stations[3].id),
    ]
    session.add_all(children)
    session.flush()
    for child in children:
        session.add(ParentChild(parent_id=parent.id, child_id=child.id))
    session.commit()
    print("* Sample routes, stations and participants created")
    session.close()


def POST(URL: str, status_code: int = HTTPStatus.OK, **kwargs):
    response = post(URL, **kwargs)
    if response.status_code != status_code:
        assert response.status_code == status_code
    else:
        return response


def testDB():
    # Base URL
    BASE_URL = "http://127.0.0.1:8080"
    INSTRUCTOR_URL = BASE_URL + "/instructor"
    PARENT_URL = BASE_URL + "/parent"

    session = sessionMaker()
    north = session.query(Route).filter(Route.name == "Linha Norte").first()
    parent = session.query(Parent).first()
    children = session.query(Child).order_by(Child.id.asc()).all()
    firstStop = (
        session.query(RouteStation)
        .filter(RouteStation.route_id == north.id)
        .order_by(RouteStation.stop_number.asc())
        .first()
    )
    session.close()

    # Create Activity Session
    sessionData = {
        "route_id": north.id,
        "scheduled_at": (datetime.now() + timedelta(days=1)).isoformat(),
    }
    activity = POST(
        (INSTRUCTOR_URL + URL_ACTIVITY_SESSION),
        data=sessionData,
        status_code=HTTPStatus.CREATED,
    ).json()
    print("* Created activity session")

    # Register children
    for child in children:
        registrationData = {
            "activity_session_id": activity["id"],
            "child_id": child.id,
            "pick_up_station_id": firstStop.station_id,
            "parent_id": parent.id,
        }
        POST(
            (PARENT_URL + URL_ACTIVITY_SESSION_REGISTRATION),
            data=registrationData,
            status_code=HTTPStatus.CREATED,
        )
    print("* Registered children")

    # Run the activity
    POST((INSTRUCTOR_URL + URL_ACTIVITY_SESSION_START), data={"id": activity["id"]})
    POST(
        (INSTRUCTOR_URL + URL_PARENT_STATION),
        data={"activity_session_id": activity["id"], "parent_id": parent.id},
        status_code=HTTPStatus.CREATED,
    )
    while True:
        progress = get(
            INSTRUCTOR_URL + URL_ACTIVITY_SESSION_PROGRESS,
            params={"id": activity["id"]},
        ).json()
        stationId = progress["current_station_id"]
        if stationId is None:
            break
        POST((INSTRUCTOR_URL + URL_ACTIVITY_SESSION_ARRIVAL), data={"id": activity["id"]})
        waiting = (
            progress["children_to_pick_up"] + progress["children_to_drop_off"]
        )
        for child in waiting:
            childStationData = {
                "activity_session_id": activity["id"],
                "child_id": child["id"],
                "station_id": stationId,
            }
            POST(
                (INSTRUCTOR_URL + URL_CHILD_STATION),
                data=childStationData,
                status_code=HTTPStatus.CREATED,
            )
        POST((INSTRUCTOR_URL + URL_ACTIVITY_SESSION_DEPARTURE), data={"id": activity["id"]})
    POST((INSTRUCTOR_URL + URL_ACTIVITY_SESSION_FINISH), data={"id": activity["id"]})
    print("* Finished activity session")


# Setup database
if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    # remove tables
    parser.add_argument("-rm", action="store_true", help="remove tables")
    parser.add_argument("-cr", action="store_true", help="create tables")
    parser.add_argument("-init", action="store_true", help="initialize DB")
    parser.add_argument("-test", action="store_true", help="run a test activity")
    args = parser.parse_args()

    if args.cr:
        createTables()
    if args.init:
        initDB()
    if args.test:
        testDB()
    if args.rm:
        removeTables()
