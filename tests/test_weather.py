import pytest
import requests

from pedibus.src import weather
from pedibus.src.enums import WeatherType


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


@pytest.mark.parametrize(
    "code, expected",
    [
        (211, WeatherType.THUNDERSTORM),
        (301, WeatherType.DRIZZLE),
        (502, WeatherType.RAIN),
        (601, WeatherType.SNOW),
        (741, WeatherType.ATMOSPHERE),
        (800, WeatherType.CLEAR),
        (804, WeatherType.CLOUDS),
        (999, WeatherType.ATMOSPHERE),
    ],
)
def test_weather_type(code, expected):
    assert weather.getWeatherType(code) == expected


def test_weather_from_city(monkeypatch):
    calls = []

    def fakeGet(url, params=None, timeout=None):
        calls.append(params)
        return FakeResponse({"main": {"temp": 17.6}, "weather": [{"id": 500}]})

    monkeypatch.setattr(weather.requests, "get", fakeGet)
    assert weather.getWeatherFromCity("Aveiro") == (WeatherType.RAIN, 18)
    assert calls[0]["q"] == "Aveiro"
    assert calls[0]["units"] == "metric"


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse({}, status=401),
        FakeResponse({"main": {"temp": 10}, "weather": []}),
        FakeResponse({"weather": [{"id": 800}]}),
    ],
)
def test_weather_lookup_failure_yields_none(monkeypatch, response):
    monkeypatch.setattr(weather.requests, "get", lambda *args, **kwargs: response)
    assert weather.getWeatherFromCity() is None


def test_weather_lookup_connection_error(monkeypatch):
    def fakeGet(*args, **kwargs):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(weather.requests, "get", fakeGet)
    assert weather.getWeatherFromCity() is None
