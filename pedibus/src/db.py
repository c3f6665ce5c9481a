from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    func,
    text,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from pedibus.src.constants import (
    PSQL_DB_DRIVER,
    PSQL_DB_HOST,
    PSQL_DB_PASSWORD,
    PSQL_DB_NAME,
    PSQL_DB_PORT,
    PSQL_DB_USERNAME,
)
from pedibus.src.enums import (
    ActivityMode,
    ActivityType,
    StationType,
)


# Global DBMS variables
dbURL = f"{PSQL_DB_DRIVER}://{PSQL_DB_USERNAME}:{PSQL_DB_PASSWORD}@{PSQL_DB_HOST}:{PSQL_DB_PORT}/{PSQL_DB_NAME}"
engine = create_engine(url=dbURL, echo=False)
sessionMaker = sessionmaker(bind=engine, expire_on_commit=False)
ORMbase = declarative_base()


# ----------------------------------- Route DB Models -----------------------------------------#
class Station(ORMbase):
    """
    Represents a fixed geographic stop where children board or leave a route.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the station.

        name (String(128)):
            Human-readable name of the station.

        type (Integer):
            Kind of station, mapped from `StationType`.
            A `SCHOOL` station is normally the final drop-off of a route.

        latitude (Float), longitude (Float):
            WGS84 position of the station. Informational only, no routing
            is computed from it.

        updated_on (DateTime):
            Timestamp automatically updated whenever the station is modified.

        created_on (DateTime):
            Timestamp indicating when the station was created.
    """

    __tablename__ = "station"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    type = Column(Integer, nullable=False, default=StationType.REGULAR)
    latitude = Column(Float)
    longitude = Column(Float)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Route(ORMbase):
    """
    Represents a pedibus or ciclo expresso route, an ordered list of stations.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the route.

        name (String(128)):
            Descriptive name of the route. Must be unique.

        activity_type (Integer):
            Mapped from `ActivityType`.

        distance_meters (Integer):
            Total length of the route in meters, precomputed.

        updated_on (DateTime):
            Timestamp automatically updated when the route record is modified.

        created_on (DateTime):
            Timestamp indicating when the route was initially created.
    """

    __tablename__ = "route"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False, unique=True)
    activity_type = Column(Integer, nullable=False, default=ActivityType.PEDIBUS)
    distance_meters = Column(Integer, nullable=False, default=0)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class RouteStation(ORMbase):
    """
    Represents a station positioned within a specific route.

    Defines the stop order and the precomputed timing and distance metadata
    of each station along a route.

    Columns:
        id (Integer):
            Primary key.

        route_id (Integer):
            Foreign key referencing the route. Deletion of the route cascades.

        station_id (Integer):
            Foreign key referencing the station. A station appears at most
            once per route.

        stop_number (Integer):
            Position of the station in the route. Unique and strictly
            increasing per route.

        time_from_start_minutes (Integer):
            Minutes from the route start until the station is reached.
            Non-decreasing along the route.

        distance_from_start_meters (Float):
            Distance in meters from the first station of the route.

        distance_from_previous_meters (Float):
            Distance in meters from the previous station of the route.
    """

    __tablename__ = "route_station"
    __table_args__ = (
        UniqueConstraint("route_id", "station_id"),
        UniqueConstraint("route_id", "stop_number"),
    )

    id = Column(Integer, primary_key=True)
    route_id = Column(
        Integer, ForeignKey("route.id", ondelete="CASCADE"), nullable=False, index=True
    )
    station_id = Column(Integer, ForeignKey("station.id"), nullable=False)
    stop_number = Column(Integer, nullable=False)
    time_from_start_minutes = Column(Integer, nullable=False, default=0)
    distance_from_start_meters = Column(Float, nullable=False, default=0)
    distance_from_previous_meters = Column(Float, nullable=False, default=0)


class RouteConnection(ORMbase):
    """
    Directed link declaring that two routes can be chained at a shared station.

    Columns:
        from_route_id (Integer):
            Route the participant leaves at the shared station.

        to_route_id (Integer):
            Route the participant boards at the shared station.

        station_id (Integer):
            The shared (linkage) station.
    """

    __tablename__ = "route_connection"
    __table_args__ = (UniqueConstraint("from_route_id", "to_route_id", "station_id"),)

    id = Column(Integer, primary_key=True)
    from_route_id = Column(
        Integer, ForeignKey("route.id", ondelete="CASCADE"), nullable=False, index=True
    )
    to_route_id = Column(
        Integer, ForeignKey("route.id", ondelete="CASCADE"), nullable=False, index=True
    )
    station_id = Column(Integer, ForeignKey("station.id"), nullable=False)


# ----------------------------------- Participant DB Models -----------------------------------#
class Parent(ORMbase):
    __tablename__ = "parent"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Child(ORMbase):
    """
    Represents a child enrolled in the program.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the child.

        name (String(128)):
            Display name of the child.

        school (String(128)):
            School attended by the child. Used for school rankings.

        school_grade (Integer):
            Grade of the child. Used together with `school` for class rankings.

        drop_off_station_id (Integer):
            Station where the child always leaves the route.
            The pickup station is chosen per activity session.
    """

    __tablename__ = "child"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    school = Column(String(128))
    school_grade = Column(Integer)
    drop_off_station_id = Column(Integer, ForeignKey("station.id"))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class ParentChild(ORMbase):
    __tablename__ = "parent_child"
    __table_args__ = (UniqueConstraint("parent_id", "child_id"),)

    id = Column(Integer, primary_key=True)
    parent_id = Column(
        Integer, ForeignKey("parent.id", ondelete="CASCADE"), nullable=False
    )
    child_id = Column(
        Integer, ForeignKey("child.id", ondelete="CASCADE"), nullable=False, index=True
    )


# ----------------------------------- Activity DB Models --------------------------------------#
class ActivitySession(ORMbase):
    """
    Represents one scheduled run of a route.

    Lifecycle is one-way: pending (neither `started_at` nor `finished_at`)
    -> in-progress (`started_at` set) -> finished (`finished_at` set).

    Columns:
        id (Integer):
            Primary key. Unique identifier for the activity session.

        route_id (Integer):
            Foreign key referencing the route being run.

        type (Integer):
            Mapped from `ActivityType`.

        mode (Integer):
            Mapped from `ActivityMode`. Drives speed and calorie estimates.

        scheduled_at (DateTime):
            Planned start time of the session.

        started_at (DateTime):
            Time at which an instructor started the session.

        finished_at (DateTime):
            Time at which the session was finished, manually or by the scheduler.

        is_closed (Boolean):
            Registrations are no longer accepted when set.

        weather_type (Integer):
            Weather observed when the session started, mapped from `WeatherType`.

        temperature (Integer):
            Temperature in Celsius observed when the session started.

        stats_processed_on (DateTime):
            Time at which the statistics of this session were recorded.
            A set value means the statistics run must not be repeated.
    """

    __tablename__ = "activity_session"

    id = Column(Integer, primary_key=True)
    route_id = Column(Integer, ForeignKey("route.id"), nullable=False, index=True)
    type = Column(Integer, nullable=False, default=ActivityType.PEDIBUS)
    mode = Column(Integer, nullable=False, default=ActivityMode.WALK)
    scheduled_at = Column(DateTime(timezone=True), nullable=False, index=True)
    started_at = Column(DateTime(timezone=True))
    finished_at = Column(DateTime(timezone=True))
    is_closed = Column(Boolean, nullable=False, default=False)
    weather_type = Column(Integer)
    temperature = Column(Integer)
    stats_processed_on = Column(DateTime(timezone=True))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class StationActivitySession(ORMbase):
    """
    Temporal representation of every station of an activity session.

    Exactly one record exists per (station, session). Stations are arrived at
    in stop order: `arrived_at` is set for every station before the current
    one and null for the current one and every station after it.

    Columns:
        station_id (Integer):
            Foreign key referencing the station.

        activity_session_id (Integer):
            Foreign key referencing the activity session.

        stop_number (Integer):
            Copy of the route stop number of the station.

        scheduled_at (DateTime):
            Expected arrival time at the station.

        arrived_at (DateTime):
            Actual arrival time at the station.

        left_at (DateTime):
            Actual departure time from the station.
    """

    __tablename__ = "station_activity_session"
    __table_args__ = (UniqueConstraint("station_id", "activity_session_id"),)

    id = Column(Integer, primary_key=True)
    station_id = Column(Integer, ForeignKey("station.id"), nullable=False)
    activity_session_id = Column(
        Integer,
        ForeignKey("activity_session.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stop_number = Column(Integer, nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    arrived_at = Column(DateTime(timezone=True))
    left_at = Column(DateTime(timezone=True))


class ChildActivitySession(ORMbase):
    """
    Registration of a child onto an activity session.

    Columns:
        child_id (Integer):
            Foreign key referencing the registered child.

        activity_session_id (Integer):
            Foreign key referencing the activity session.

        pick_up_station_id (Integer):
            Station where the child boards. The drop-off is the child's
            persistent `drop_off_station_id`.

        registered_at (DateTime):
            Time of registration.
    """

    __tablename__ = "child_activity_session"
    __table_args__ = (UniqueConstraint("child_id", "activity_session_id"),)

    id = Column(Integer, primary_key=True)
    child_id = Column(
        Integer, ForeignKey("child.id", ondelete="CASCADE"), nullable=False
    )
    activity_session_id = Column(
        Integer,
        ForeignKey("activity_session.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    pick_up_station_id = Column(Integer, ForeignKey("station.id"), nullable=False)
    registered_at = Column(DateTime(timezone=True), nullable=False, default=func.now())


class ChildStation(ORMbase):
    """
    Check-in or check-out of a child at a station during an activity session.

    At most one record exists per (child, station, session), so a child has
    at most two records per session: the pick-up (`IN`) and the drop-off (`OUT`).

    Columns:
        child_id (Integer):
            Foreign key referencing the child.

        station_id (Integer):
            Foreign key referencing the station where the event happened.

        activity_session_id (Integer):
            Foreign key referencing the activity session.

        instructor_id (Integer):
            Identifier of the instructor who recorded the event.

        type (Integer):
            Mapped from `ChildStationType`. Fixed at insertion from whether the
            station is the child's drop-off station.

        registered_at (DateTime):
            Time at which the event was recorded.
    """

    __tablename__ = "child_station"
    __table_args__ = (UniqueConstraint("child_id", "station_id", "activity_session_id"),)

    id = Column(Integer, primary_key=True)
    child_id = Column(
        Integer, ForeignKey("child.id", ondelete="CASCADE"), nullable=False
    )
    station_id = Column(Integer, ForeignKey("station.id"), nullable=False)
    activity_session_id = Column(
        Integer,
        ForeignKey("activity_session.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    instructor_id = Column(Integer)
    type = Column(Integer, nullable=False)
    registered_at = Column(DateTime(timezone=True), nullable=False, default=func.now())


class ParentStation(ORMbase):
    """
    Records that a parent accompanied an activity session.

    Columns:
        parent_id (Integer):
            Foreign key referencing the accompanying parent.

        activity_session_id (Integer):
            Foreign key referencing the activity session.

        instructor_id (Integer):
            Identifier of the instructor who recorded the parent.

        registered_at (DateTime):
            Time at which the parent was recorded.
    """

    __tablename__ = "parent_station"
    __table_args__ = (UniqueConstraint("parent_id", "activity_session_id"),)

    id = Column(Integer, primary_key=True)
    parent_id = Column(
        Integer, ForeignKey("parent.id", ondelete="CASCADE"), nullable=False
    )
    activity_session_id = Column(
        Integer,
        ForeignKey("activity_session.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    instructor_id = Column(Integer)
    registered_at = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ----------------------------------- Achievement DB Models -----------------------------------#
class ChildStat(ORMbase):
    """
    Statistics of one child for one finished activity session.

    Rows are append-only; they are created once by the statistics run of the
    session and never modified afterwards.

    Columns:
        id (Integer):
            Primary key. Referenced by `ParentStat.child_stat_id`.

        child_id (Integer):
            Foreign key referencing the child.

        activity_session_id (Integer):
            Foreign key referencing the finished activity session.

        distance_meters (Integer):
            Distance between the pick-up and the drop-off station.

        co2_saved (Integer):
            Grams of CO2 saved compared to a car trip.

        calories_burned (Integer):
            Estimated calories burned during the trip.

        points_earned (Integer):
            Points granted for the trip.

        activity_date (DateTime):
            Scheduled time of the activity session. Used for rankings.
    """

    __tablename__ = "child_stat"
    __table_args__ = (UniqueConstraint("child_id", "activity_session_id"),)

    id = Column(Integer, primary_key=True)
    child_id = Column(
        Integer, ForeignKey("child.id", ondelete="CASCADE"), nullable=False, index=True
    )
    activity_session_id = Column(
        Integer, ForeignKey("activity_session.id"), nullable=False, index=True
    )
    distance_meters = Column(Integer, nullable=False, default=0)
    co2_saved = Column(Integer, nullable=False, default=0)
    calories_burned = Column(Integer, nullable=False, default=0)
    points_earned = Column(Integer, nullable=False, default=0)
    activity_date = Column(DateTime(timezone=True), nullable=False)
    # Metadata
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class ParentStat(ORMbase):
    """
    Credits a parent with the statistics of a child it accompanied.

    Columns:
        parent_id (Integer):
            Foreign key referencing the parent.

        child_stat_id (Integer):
            Foreign key referencing the child statistics the parent inherits.
            Set to NULL if the child statistics are removed.

        created_on (DateTime):
            Time at which the row was created. Used for rankings.
    """

    __tablename__ = "parent_stat"
    __table_args__ = (UniqueConstraint("parent_id", "child_stat_id"),)

    id = Column(Integer, primary_key=True)
    parent_id = Column(
        Integer, ForeignKey("parent.id", ondelete="CASCADE"), nullable=False, index=True
    )
    child_stat_id = Column(Integer, ForeignKey("child_stat.id", ondelete="SET NULL"))
    # Metadata
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Badge(ORMbase):
    """
    Achievement rule of the badge catalogue.

    Columns:
        id (Integer):
            Primary key.

        name (String(64)):
            Unique badge name.

        description (String(512)):
            Text shown to the participant.

        image_url (String(512)):
            Location of the badge artwork.

        criteria (Integer):
            Metric the badge is awarded on, mapped from `BadgeCriteria`.

        value_needed (Integer):
            Threshold the metric must reach. Distance thresholds are in km.
    """

    __tablename__ = "badge"

    id = Column(Integer, primary_key=True)
    name = Column(String(64), nullable=False, unique=True)
    description = Column(String(512))
    image_url = Column(String(512))
    criteria = Column(Integer, nullable=False)
    value_needed = Column(Integer)
    # Metadata
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class ClientBadge(ORMbase):
    """
    Award of a badge to a child or a parent.

    Unique per (badge, child) and per (badge, parent); the partial unique
    indexes are the backstop against concurrent award runs.

    Columns:
        badge_id (Integer):
            Foreign key referencing the awarded badge.

        child_id (Integer):
            Awarded child. NULL for parent awards.

        parent_id (Integer):
            Awarded parent. NULL for child awards.

        assigned_at (DateTime):
            Time of the award.
    """

    __tablename__ = "client_badge"
    __table_args__ = (
        Index(
            "uq_client_badge_child",
            "badge_id",
            "child_id",
            unique=True,
            postgresql_where=text("child_id IS NOT NULL"),
            sqlite_where=text("child_id IS NOT NULL"),
        ),
        Index(
            "uq_client_badge_parent",
            "badge_id",
            "parent_id",
            unique=True,
            postgresql_where=text("parent_id IS NOT NULL"),
            sqlite_where=text("parent_id IS NOT NULL"),
        ),
    )

    id = Column(Integer, primary_key=True)
    badge_id = Column(
        Integer, ForeignKey("badge.id", ondelete="CASCADE"), nullable=False
    )
    child_id = Column(Integer, ForeignKey("child.id", ondelete="CASCADE"))
    parent_id = Column(Integer, ForeignKey("parent.id", ondelete="CASCADE"))
    assigned_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
