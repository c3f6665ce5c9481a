from enum import IntEnum


class AppID(IntEnum):
    INSTRUCTOR = 1
    PARENT = 2
    PUBLIC = 3
    SCHEDULER = 4


class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class ActivityType(IntEnum):
    PEDIBUS = 1
    CICLO_EXPRESSO = 2


class ActivityMode(IntEnum):
    WALK = 1
    BIKE = 2


class StationType(IntEnum):
    REGULAR = 1
    SCHOOL = 2


class ChildStationType(IntEnum):
    IN = 1
    OUT = 2


class ParticipantPhase(IntEnum):
    PENDING = 1
    PICKED_UP = 2
    DROPPED_OFF = 3


class ActivityStatus(IntEnum):
    PENDING = 1
    IN_PROGRESS = 2
    FINISHED = 3


class WeatherType(IntEnum):
    THUNDERSTORM = 1
    DRIZZLE = 2
    RAIN = 3
    SNOW = 4
    ATMOSPHERE = 5
    CLEAR = 6
    CLOUDS = 7


class BadgeCriteria(IntEnum):
    STREAK = 1
    DISTANCE = 2
    CALORIES = 3
    WEATHER = 4
    POINTS = 5
    PARTICIPATION = 6
    SPECIAL = 7
    LEADERBOARD = 8


class RankingType(IntEnum):
    PARENTS = 1
    CHILDREN = 2
    SCHOOLS = 3
    SCHOOL_CLASSES = 4


class RankingTimeframe(IntEnum):
    MONTHLY = 1
    ANNUALLY = 2
    ALL_TIME = 3


class LeaderboardParameter(IntEnum):
    DISTANCE = 1
    POINTS = 2
    PARTICIPATIONS = 3
