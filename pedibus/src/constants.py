"""
Application configuration and constants for the Pedibus Core Server.

This module centralizes environment-based configuration, engine tunables,
scoring constants, timezones, and other constants.

Configuration values can be overridden via environment variables.
"""

from os import environ
from zoneinfo import ZoneInfo


# ---------------------------------------------------------------------------
# Application metadata
# ---------------------------------------------------------------------------
API_TITLE = "Pedibus Core Server"
API_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# PostgreSQL configuration
# ---------------------------------------------------------------------------
PSQL_DB_DRIVER = environ.get("PSQL_DB_DRIVER", "postgresql+psycopg2")
PSQL_DB_USERNAME = environ.get("PSQL_DB_USERNAME", "postgres")
PSQL_DB_PORT = environ.get("PSQL_DB_PORT", "5432")
PSQL_DB_PASSWORD = environ.get("PSQL_DB_PASSWORD", "password")
PSQL_DB_HOST = environ.get("PSQL_DB_HOST", "localhost")
PSQL_DB_NAME = environ.get("PSQL_DB_NAME", "postgres")


# ---------------------------------------------------------------------------
# OpenObserve configuration
# ---------------------------------------------------------------------------
OPENOBSERVE_PROTOCOL = environ.get("OPENOBSERVE_PROTOCOL", "http")
OPENOBSERVE_HOST = environ.get("OPENOBSERVE_HOST", "localhost")
OPENOBSERVE_PORT = environ.get("OPENOBSERVE_PORT", "5080")
OPENOBSERVE_USERNAME = environ.get("OPENOBSERVE_USERNAME", "admin@pedibus.pt")
OPENOBSERVE_PASSWORD = environ.get("OPENOBSERVE_PASSWORD", "password")
OPENOBSERVE_ORG = environ.get("OPENOBSERVE_ORG", "pedibus")
OPENOBSERVE_STREAM = environ.get("OPENOBSERVE_STREAM", "pedibus-core-server")
OPENOBSERVE_TIMEOUT = 5  # Request timeout (in seconds)


# ---------------------------------------------------------------------------
# Redis configuration
# ---------------------------------------------------------------------------
REDIS_HOST = environ.get("REDIS_HOST", "localhost")
REDIS_PORT = environ.get("REDIS_PORT", "6379")
REDIS_PASSWORD = environ.get("REDIS_PASSWORD", "password")


# ---------------------------------------------------------------------------
# OpenWeatherMap configuration
# ---------------------------------------------------------------------------
OPEN_WEATHER_URL = environ.get(
    "OPEN_WEATHER_URL", "https://api.openweathermap.org/data/2.5/weather"
)
OPEN_WEATHER_API_KEY = environ.get("OPEN_WEATHER_API_KEY", "")
OPEN_WEATHER_CITY = environ.get("OPEN_WEATHER_CITY", "Aveiro")
OPEN_WEATHER_TIMEOUT = 5  # Request timeout (in seconds)


# ---------------------------------------------------------------------------
# Timezone constants
# ---------------------------------------------------------------------------
TMZ_PRIMARY = ZoneInfo("UTC")
TMZ_SECONDARY = ZoneInfo(environ.get("TMZ_SECONDARY", "Europe/Lisbon"))


# ---------------------------------------------------------------------------
# Activity progression constants
# ---------------------------------------------------------------------------
LINKAGE_WINDOW_MINUTES = 20  # Max gap between linked sessions at the shared station
REGISTRATION_CLOSE_HOURS = 12  # Registrations close this long before the scheduled start
OVERDUE_SESSION_HOURS = 12  # Running sessions older than this are finished by the scheduler


# ---------------------------------------------------------------------------
# Physical activity constants
# ---------------------------------------------------------------------------
WALKING_SPEED = 0.8  # m/s
BIKING_SPEED = 2.2  # m/s
DEFAULT_CHILD_WEIGHT_KG = 35
WALKING_MET = 2.5
BIKING_MET = 4.0
CO2_PER_KM_GRAMS = 120


# ---------------------------------------------------------------------------
# Scoring constants
# ---------------------------------------------------------------------------
POINTS_PER_PARTICIPATION = 10  # Flat points for completing a trip
POINTS_PER_KM = 10  # Points per kilometre travelled


# ---------------------------------------------------------------------------
# Leaderboard constants
# ---------------------------------------------------------------------------
LEADERBOARD_PAGE_SIZE = 50


# ---------------------------------------------------------------------------
# Redis mutex lock constants
# ---------------------------------------------------------------------------
MUTEX_LOCK_TIMEOUT = 60  # Lock timeout (in seconds)
MUTEX_LOCK_MAX_WAIT_TIME = 60  # Max blocking wait time (in seconds)


# ---------------------------------------------------------------------------
# Scheduler constants
# ---------------------------------------------------------------------------
SCHEDULER_INTERVAL = 60 * 60  # Time between scheduler passes (in seconds)
