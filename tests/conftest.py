from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pedibus.src import openobserve
from pedibus.src import redis as redisModule
from pedibus.src.enums import ActivityType, ChildStationType
from pedibus.src.db import (
    ActivitySession,
    Badge,
    Child,
    ChildActivitySession,
    ChildStation,
    ORMbase,
    Parent,
    ParentChild,
    ParentStation,
    Route,
    RouteConnection,
    RouteStation,
    Station,
    StationActivitySession,
)


# ---------------------------------------------------------------------------
# Infrastructure doubles
# ---------------------------------------------------------------------------
class FakeLock:
    def __init__(self, store, name):
        self.store = store
        self.name = name
        self.held = False

    def acquire(self, blocking=True, blocking_timeout=None):
        if self.name in self.store.locks:
            return False
        self.store.locks.add(self.name)
        self.held = True
        return True

    def locked(self):
        return self.name in self.store.locks

    def owned(self):
        return self.held

    def release(self):
        self.store.locks.discard(self.name)
        self.held = False


class FakeRedis:
    def __init__(self):
        self.locks = set()
        self.keys = {}

    def lock(self, name, timeout=None):
        return FakeLock(self, name)

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.keys:
            return None
        self.keys[key] = value
        return True

    def delete(self, key):
        return 1 if self.keys.pop(key, None) is not None else 0


@pytest.fixture(autouse=True)
def fakeRedis(monkeypatch):
    client = FakeRedis()
    monkeypatch.setattr(redisModule, "redisClient", client)
    return client


@pytest.fixture(autouse=True)
def events(monkeypatch):
    sent = []
    monkeypatch.setattr(openobserve, "logEvent", sent.append)
    return sent


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Let pysqlite emit BEGIN itself so SAVEPOINTs work
    @event.listens_for(engine, "connect")
    def doConnect(dbapiConnection, connectionRecord):
        dbapiConnection.isolation_level = None

    @event.listens_for(engine, "begin")
    def doBegin(connection):
        connection.exec_driver_sql("BEGIN")

    ORMbase.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sessionFactory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(sessionFactory):
    session = sessionFactory()
    yield session
    session.close()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
def makeStations(session, *names):
    stations = [Station(name=name) for name in names]
    session.add_all(stations)
    session.flush()
    return stations


def makeRoute(session, name, stops, activityType=ActivityType.PEDIBUS):
    """
    Create a route from `(station, minutes from start, meters from start)` stops.
    """
    route = Route(
        name=name,
        activity_type=activityType,
        distance_meters=int(stops[-1][2]) if stops else 0,
    )
    session.add(route)
    session.flush()
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
    session.flush()
    return route


def makeActivity(session, route, scheduledAt, started=False, finished=False):
    """Create an activity session of a route with one station record per stop."""
    activity = ActivitySession(
        route_id=route.id,
        type=route.activity_type,
        mode=1,
        scheduled_at=scheduledAt,
        is_closed=started,
        started_at=scheduledAt if started or finished else None,
        finished_at=scheduledAt + timedelta(hours=1) if finished else None,
    )
    session.add(activity)
    session.flush()
    routeStations = (
        session.query(RouteStation)
        .filter(RouteStation.route_id == route.id)
        .order_by(RouteStation.stop_number)
        .all()
    )
    for routeStation in routeStations:
        session.add(
            StationActivitySession(
                station_id=routeStation.station_id,
                activity_session_id=activity.id,
                stop_number=routeStation.stop_number,
                scheduled_at=scheduledAt
                + timedelta(minutes=routeStation.time_from_start_minutes),
            )
        )
    session.flush()
    return activity


def makeChild(session, name, dropOffStation, school="Escola Básica", grade=3):
    child = Child(
        name=name,
        school=school,
        school_grade=grade,
        drop_off_station_id=dropOffStation.id if dropOffStation else None,
    )
    session.add(child)
    session.flush()
    return child


def makeParent(session, name, children=()):
    parent = Parent(name=name)
    session.add(parent)
    session.flush()
    for child in children:
        session.add(ParentChild(parent_id=parent.id, child_id=child.id))
    session.flush()
    return parent


def register(session, activity, child, pickUpStation):
    registration = ChildActivitySession(
        child_id=child.id,
        activity_session_id=activity.id,
        pick_up_station_id=pickUpStation.id,
        registered_at=activity.scheduled_at - timedelta(days=1),
    )
    session.add(registration)
    session.flush()
    return registration


def checkIn(session, activity, child, station, stationType=ChildStationType.IN):
    childStation = ChildStation(
        child_id=child.id,
        station_id=station.id,
        activity_session_id=activity.id,
        type=stationType,
        registered_at=activity.scheduled_at,
    )
    session.add(childStation)
    session.flush()
    return childStation


def accompany(session, activity, parent):
    parentStation = ParentStation(
        parent_id=parent.id,
        activity_session_id=activity.id,
        registered_at=activity.scheduled_at,
    )
    session.add(parentStation)
    session.flush()
    return parentStation


def makeBadge(session, name, criteria, valueNeeded):
    badge = Badge(name=name, criteria=criteria, value_needed=valueNeeded)
    session.add(badge)
    session.flush()
    return badge


@pytest.fixture
def network(session):
    """
    Two connected pedibus routes.

    Blue:  S1 (0 min, 0 m) -> S2 (5 min, 400 m) -> S3 (10 min, 900 m)
    Green: S3 (0 min, 0 m) -> S4 (5 min, 500 m) -> S5 (12 min, 1100 m)

    Blue connects to Green at S3. S6 belongs to no route.
    """
    s1, s2, s3, s4, s5, s6 = makeStations(
        session, "S1", "S2", "S3", "S4", "S5", "S6"
    )
    blue = makeRoute(session, "Blue", [(s1, 0, 0), (s2, 5, 400), (s3, 10, 900)])
    green = makeRoute(session, "Green", [(s3, 0, 0), (s4, 5, 500), (s5, 12, 1100)])
    session.add(
        RouteConnection(from_route_id=blue.id, to_route_id=green.id, station_id=s3.id)
    )
    session.flush()
    return SimpleNamespace(
        s1=s1, s2=s2, s3=s3, s4=s4, s5=s5, s6=s6, blue=blue, green=green
    )


@pytest.fixture
def morning():
    return datetime(2024, 5, 2, 8, 0)
