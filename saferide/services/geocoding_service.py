"""Geocoding Service - Reverse geocoding of meeting and drop-off points."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from saferide.config import settings
from saferide.utils.geo_utils import format_coordinates

logger = logging.getLogger(__name__)


class Geocoder(ABC):
    """Reverse geocoder interface. Implementations may raise or time out."""

    @abstractmethod
    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        """Human-readable address for a coordinate."""


class NominatimGeocoder(Geocoder):
    """OpenStreetMap Nominatim over httpx."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.nominatim_url).rstrip("/")
        self.user_agent = user_agent or settings.geocoder_user_agent
        self.timeout = timeout or settings.geocoder_timeout_seconds

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                f"{self.base_url}/reverse",
                params={
                    "lat": latitude,
                    "lon": longitude,
                    "format": "jsonv2",
                    "zoom": 18,
                },
                headers={"User-Agent": self.user_agent},
            )
            response.raise_for_status()
            data = response.json()

        address = data.get("display_name")
        if not address:
            raise ValueError(f"No address found for {latitude}, {longitude}")
        return address


class GeocodingService:
    """Best-effort address resolution; never fails the caller."""

    def __init__(self, geocoder: Optional[Geocoder] = None):
        self.geocoder = geocoder

    async def resolve_address(self, latitude: float, longitude: float) -> str:
        """Reverse geocode, falling back to a formatted coordinate string."""
        if self.geocoder is None:
            return format_coordinates(latitude, longitude)
        try:
            return await self.geocoder.reverse_geocode(latitude, longitude)
        except Exception as e:
            logger.warning(f"Reverse geocoding failed for {latitude}, {longitude}: {e}")
            return format_coordinates(latitude, longitude)
