"""Weather reading model and WMO weather-code descriptions."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

DEFAULT_DESCRIPTION = "Partly cloudy"

# WMO weather interpretation codes as reported by Open-Meteo
WEATHER_CODES: dict[int, str] = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Foggy",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Slight snow",
    73: "Moderate snow",
    75: "Heavy snow",
    95: "Thunderstorm",
}


def describe_weather_code(code: int) -> str:
    """Return the display description for a WMO code; unknown codes read as partly cloudy."""
    return WEATHER_CODES.get(code, DEFAULT_DESCRIPTION)


class WeatherReading(BaseModel):
    """Current conditions plus today's forecast range, in whole degrees Fahrenheit."""

    temperature: int = Field(..., description="Current temperature")
    description: str = Field(..., description="Human-readable conditions")
    weather_code: int = Field(..., description="WMO weather interpretation code")
    high: int = Field(..., description="Today's forecast high")
    low: int = Field(..., description="Today's forecast low")

    model_config = ConfigDict(frozen=True)

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "temp": self.temperature,
            "description": self.description,
            "weatherCode": self.weather_code,
            "high": self.high,
            "low": self.low,
        }


PLACEHOLDER_WEATHER = WeatherReading(
    temperature=28,
    description=DEFAULT_DESCRIPTION,
    weather_code=2,
    high=33,
    low=21,
)

WEATHER_ADAPTER: TypeAdapter[WeatherReading] = TypeAdapter(WeatherReading)
