"""
Current weather lookup through the OpenWeatherMap API.

Used to stamp the weather of an activity session when it starts. A failed
lookup is logged and yields `None`; it never blocks the session.
"""

from logging import getLogger
from typing import Optional, Tuple
import requests

from pedibus.src.enums import WeatherType
from pedibus.src.constants import (
    OPEN_WEATHER_API_KEY,
    OPEN_WEATHER_CITY,
    OPEN_WEATHER_TIMEOUT,
    OPEN_WEATHER_URL,
)

logger = getLogger("Weather")


def getWeatherType(conditionId: int) -> WeatherType:
    """
    Map an OpenWeatherMap condition code to a `WeatherType`.

    Codes are grouped by hundreds (2xx thunderstorm, 3xx drizzle, 5xx rain,
    6xx snow, 7xx atmosphere); 800 is clear sky and 801-899 are clouds.
    Unknown codes fall back to `ATMOSPHERE`.
    """
    if 200 <= conditionId < 300:
        return WeatherType.THUNDERSTORM
    if 300 <= conditionId < 400:
        return WeatherType.DRIZZLE
    if 500 <= conditionId < 600:
        return WeatherType.RAIN
    if 600 <= conditionId < 700:
        return WeatherType.SNOW
    if 700 <= conditionId < 800:
        return WeatherType.ATMOSPHERE
    if conditionId == 800:
        return WeatherType.CLEAR
    if 800 < conditionId < 900:
        return WeatherType.CLOUDS
    return WeatherType.ATMOSPHERE


def getWeatherFromCity(city: str = OPEN_WEATHER_CITY) -> Optional[Tuple[WeatherType, int]]:
    """
    Fetch the current weather of a city.

    Returns:
        Optional[Tuple[WeatherType, int]]: The weather type and the temperature
        in Celsius, or `None` if the lookup failed.
    """
    try:
        response = requests.get(
            OPEN_WEATHER_URL,
            params={"q": city, "appid": OPEN_WEATHER_API_KEY, "units": "metric"},
            timeout=OPEN_WEATHER_TIMEOUT,
        )
        response.raise_for_status()
        data = response.json()
        temperature = round(data["main"]["temp"])
        weatherType = getWeatherType(data["weather"][0]["id"])
        return weatherType, temperature
    except (requests.RequestException, KeyError, IndexError, ValueError) as e:
        logger.error(f"Weather lookup for {city} failed: {e}")
        return None
