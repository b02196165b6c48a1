"""Weather feed: Open-Meteo adapter and reading model."""

from .fetcher import WeatherFetcher
from .models import PLACEHOLDER_WEATHER, WEATHER_ADAPTER, WeatherReading, describe_weather_code

__all__ = [
    "PLACEHOLDER_WEATHER",
    "WEATHER_ADAPTER",
    "WeatherFetcher",
    "WeatherReading",
    "describe_weather_code",
]
