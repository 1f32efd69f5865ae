# The module defines a tool that fetches current weather from the OpenWeather API.
# Version: 0.1.0

import httpx
from pydantic import BaseModel, Field
from typing import Any, Dict, Literal, Optional, Type
from .base_tool import BaseTool
from ai_agent.utils.logger import console
from ai_agent.core.config import get_settings

OPENWEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"

UNIT_SYMBOLS = {"metric": "°C", "imperial": "°F", "kelvin": "K"}
WIND_SPEED_UNITS = {"metric": "m/s", "imperial": "mph", "kelvin": "m/s"}


class WeatherInput(BaseModel):
    """
    Input model for the WeatherTool.
    Attributes:
        city (str): The city to look up.
        units (str): metric, imperial or kelvin.
    """
    city: str = Field(..., description="Name of the city to get weather for")
    units: Literal["metric", "imperial", "kelvin"] = Field(
        default="metric", description="Temperature units (metric, imperial, or kelvin)"
    )


class WeatherTool(BaseTool):
    """
    Gets the current conditions of a city from OpenWeather.
    The API key is read at call time, so a missing key is reported to the
    model instead of preventing registration.
    """
    name: str = "weather"
    description: str = "Gets current weather information for a specified city"
    args_schema: Type[BaseModel] = WeatherInput
    examples = [
        "What's the weather in Madrid?",
        "What's the temperature in Tokyo?",
    ]

    def __init__(self, api_key: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__()
        self._api_key = api_key
        self._transport = transport

    def _resolve_api_key(self) -> Optional[str]:
        return self._api_key or get_settings().OPENWEATHER_API_KEY

    async def execute(self, user_id: str, city: str, units: str = "metric") -> Dict[str, Any]:
        api_key = self._resolve_api_key()
        if not api_key:
            return {
                "success": False,
                "error": "OpenWeather API key not configured. Set OPENWEATHER_API_KEY environment variable.",
            }
        if units not in UNIT_SYMBOLS:
            units = "metric"

        console.info(f"Executing tool '{self.name}' for city: '{city}'")
        params = {"q": city, "appid": api_key}
        # OpenWeather returns Kelvin when no units parameter is sent.
        if units != "kelvin":
            params["units"] = units

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
                response = await client.get(OPENWEATHER_URL, params=params)
                response.raise_for_status()
                weather = response.json()
        except httpx.HTTPStatusError as e:
            message = e.response.text
            try:
                message = e.response.json().get("message", message)
            except ValueError:
                pass
            console.error(f"OpenWeather returned {e.response.status_code}: {message}")
            return {"success": False, "error": message}
        except httpx.RequestError as e:
            console.exception(f"An HTTP error occurred while calling OpenWeather: {e}")
            return {"success": False, "error": f"Weather service unavailable: {e}"}

        try:
            data = {
                "city": weather["name"],
                "country": weather.get("sys", {}).get("country", ""),
                "temperature": f"{weather['main']['temp']}{UNIT_SYMBOLS[units]}",
                "description": weather["weather"][0]["description"],
                "humidity": f"{weather['main']['humidity']}%",
                "wind_speed": f"{weather['wind']['speed']} {WIND_SPEED_UNITS[units]}",
                "pressure": f"{weather['main']['pressure']} hPa",
            }
        except (KeyError, IndexError, TypeError) as e:
            console.error(f"Unexpected OpenWeather payload: {e}")
            return {"success": False, "error": "Unexpected response from the weather service"}

        console.success(f"Tool '{self.name}' executed successfully.")
        return {"success": True, "data": data}
