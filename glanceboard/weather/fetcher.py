"""Weather feed adapter backed by the Open-Meteo forecast API."""

from __future__ import annotations

import datetime
import logging
import math
from typing import TYPE_CHECKING, Any, Optional

import httpx

from glanceboard.core.exceptions import FeedParseError
from glanceboard.core.http_client import get_shared_client, get_with_retry
from glanceboard.weather.models import WeatherReading, describe_weather_code

if TYPE_CHECKING:
    from glanceboard.core.config_loader import Config

logger = logging.getLogger(__name__)

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
CLIENT_ID = "weather"


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def parse_forecast(payload: Any) -> WeatherReading:
    """Build a ``WeatherReading`` from an Open-Meteo forecast response.

    Raises:
        FeedParseError: required fields are missing or not numeric
    """
    try:
        current = payload["current"]
        daily = payload["daily"]
        code = int(current["weather_code"])
        return WeatherReading(
            temperature=round_half_up(float(current["temperature_2m"])),
            description=describe_weather_code(code),
            weather_code=code,
            high=round_half_up(float(daily["temperature_2m_max"][0])),
            low=round_half_up(float(daily["temperature_2m_min"][0])),
        )
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise FeedParseError(f"Malformed weather response: {e!r}") from e


class WeatherFetcher:
    """Fetches current conditions for a fixed location."""

    def __init__(
        self,
        latitude: float,
        longitude: float,
        *,
        request_timeout: float = 30,
        max_retries: int = 2,
        backoff_factor: float = 1.5,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.latitude = latitude
        self.longitude = longitude
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._client = client

    @classmethod
    def from_config(cls, config: "Config") -> "WeatherFetcher":
        return cls(
            config.latitude,
            config.longitude,
            request_timeout=config.request_timeout,
            max_retries=config.max_retries,
            backoff_factor=config.retry_backoff_factor,
        )

    def request_params(self) -> dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "current": "temperature_2m,weather_code",
            "daily": "temperature_2m_max,temperature_2m_min",
            "temperature_unit": "fahrenheit",
            "timezone": "auto",
        }

    async def fetch_reading(self) -> WeatherReading:
        """Fetch the current reading.

        Raises:
            FeedFetchError: transport failure or non-success status
            FeedParseError: response body is not the expected forecast shape
        """
        client = self._client if self._client is not None else await get_shared_client(CLIENT_ID)
        response = await get_with_retry(
            client,
            OPEN_METEO_URL,
            params=self.request_params(),
            timeout=self.request_timeout,
            max_retries=self.max_retries,
            backoff_factor=self.backoff_factor,
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise FeedParseError(f"Weather response is not JSON: {e}") from e

        reading = parse_forecast(payload)
        logger.info("Weather at %.4f,%.4f: %d° %s", self.latitude, self.longitude, reading.temperature, reading.description)
        return reading

    async def __call__(self, now: datetime.datetime) -> WeatherReading:
        return await self.fetch_reading()
