"""Campus geofence: haversine distance, admit/deny verdicts, location retries."""
from __future__ import annotations

import asyncio
import logging
import math
from enum import Enum
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel

from app.config import settings
from app.models.attendance import LocationReport

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6371000


class LocationFailure(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"
    INVALID_READING = "invalid_reading"


TRANSIENT_FAILURES = {LocationFailure.TIMEOUT, LocationFailure.UNAVAILABLE}

FAILURE_MESSAGES: dict[LocationFailure, str] = {
    LocationFailure.PERMISSION_DENIED: "Location permission denied. Please enable location access in your browser settings.",
    LocationFailure.UNAVAILABLE: "Location information is unavailable. Please check your internet connection.",
    LocationFailure.TIMEOUT: "The request to get your location timed out.",
    LocationFailure.UNSUPPORTED: "Geolocation is not supported by your device.",
    LocationFailure.INVALID_READING: "Could not process your location.",
}


class LocationError(Exception):
    def __init__(self, failure: LocationFailure, message: str | None = None):
        self.failure = failure
        self.message = message or FAILURE_MESSAGES[failure]
        super().__init__(self.message)

    @property
    def transient(self) -> bool:
        return self.failure in TRANSIENT_FAILURES


class LocationVerdict(BaseModel):
    accepted: bool
    distance: Optional[float] = None
    failure: Optional[LocationFailure] = None
    reason: Optional[str] = None


LocationProvider = Callable[[], Awaitable[tuple[float, float]]]


def distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters (haversine)."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) * math.sin(d_lat / 2)
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2))
        * math.sin(d_lng / 2) * math.sin(d_lng / 2)
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def _valid_coordinate(lat: float, lng: float) -> bool:
    return -90 <= lat <= 90 and -180 <= lng <= 180


def failure_verdict(failure: LocationFailure, message: str | None = None) -> LocationVerdict:
    return LocationVerdict(accepted=False, failure=failure, reason=message or FAILURE_MESSAGES[failure])


def verify_location(
    lat: float,
    lng: float,
    ref_lat: float,
    ref_lng: float,
    radius_meters: float,
) -> LocationVerdict:
    if not all(math.isfinite(v) for v in (lat, lng, ref_lat, ref_lng)):
        return failure_verdict(LocationFailure.INVALID_READING)
    # haversine wraps every 360 degrees, so out-of-range readings could land on campus
    if not (_valid_coordinate(lat, lng) and _valid_coordinate(ref_lat, ref_lng)):
        return failure_verdict(LocationFailure.INVALID_READING)
    try:
        distance = distance_meters(lat, lng, ref_lat, ref_lng)
    except ValueError:
        # math domain error from floating point drift near antipodes
        return failure_verdict(LocationFailure.INVALID_READING)
    if not math.isfinite(distance):
        return failure_verdict(LocationFailure.INVALID_READING)
    if distance <= radius_meters:
        return LocationVerdict(accepted=True, distance=distance)
    return LocationVerdict(
        accepted=False,
        distance=distance,
        reason=f"You're {round(distance)}m from campus (must be within {round(radius_meters)}m)",
    )


def verify_campus_location(lat: float, lng: float) -> LocationVerdict:
    return verify_location(
        lat,
        lng,
        settings.university_lat,
        settings.university_lng,
        settings.allowed_radius_meters,
    )


def verdict_from_report(report: LocationReport | None) -> LocationVerdict:
    """Turn what a device reported into a verdict. Coordinates are re-checked here."""
    if report is None:
        return LocationVerdict(accepted=False, reason="Location verification required")
    if report.error:
        try:
            failure = LocationFailure(report.error.strip().lower())
        except ValueError:
            failure = LocationFailure.UNAVAILABLE
        return failure_verdict(failure)
    if report.latitude is None or report.longitude is None:
        return failure_verdict(LocationFailure.UNSUPPORTED)
    return verify_campus_location(report.latitude, report.longitude)


async def acquire_location(
    provider: LocationProvider,
    max_retries: int | None = None,
    retry_delay: float | None = None,
    timeout: float | None = None,
) -> tuple[float, float]:
    """Read a position, retrying transient failures with a fixed delay.

    Permission denial and unsupported devices fail on the first attempt.
    Raises LocationError once attempts are exhausted.
    """
    max_retries = settings.location_max_retries if max_retries is None else max_retries
    retry_delay = settings.location_retry_delay_seconds if retry_delay is None else retry_delay
    timeout = settings.location_timeout_seconds if timeout is None else timeout

    attempt = 0
    while True:
        try:
            return await asyncio.wait_for(provider(), timeout=timeout)
        except asyncio.TimeoutError:
            error = LocationError(LocationFailure.TIMEOUT)
        except LocationError as e:
            error = e
        if not error.transient or attempt >= max_retries:
            logger.info(f"Location acquisition failed after {attempt + 1} attempt(s): {error.failure.value}")
            raise error
        attempt += 1
        await asyncio.sleep(retry_delay)


async def locate_and_verify(provider: LocationProvider) -> LocationVerdict:
    try:
        lat, lng = await acquire_location(provider)
    except LocationError as e:
        return failure_verdict(e.failure, e.message)
    return verify_campus_location(lat, lng)
