"""
SkySync — Location Resolver
Turns whatever the browser reported about the user's position into a
coordinate pair, falling back to a fixed default when the position is
unavailable. Location is best-effort: failures are logged, never raised.
"""
import math

# Options handed to navigator.geolocation.getCurrentPosition by the page
GEOLOCATION_OPTIONS = {
    "timeout": 10000,
    "enableHighAccuracy": True,
    "maximumAge": 0,
}

# Default: San Francisco
DEFAULT_COORDINATES = {"latitude": 37.7749, "longitude": -122.4194}


class LocationUnavailable(Exception):
    """Raised by a position provider when no position could be obtained."""


def _validate(lat, lng):
    lat = float(lat)
    lng = float(lng)
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise LocationUnavailable(f"Non-finite coordinates: {lat}, {lng}")
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        raise LocationUnavailable(f"Coordinates out of range: {lat}, {lng}")
    return lat, lng


def resolve_location(position_provider=None):
    """
    Resolve the user's coordinates.

    Args:
        position_provider: Callable taking GEOLOCATION_OPTIONS and returning
            (latitude, longitude), or raising on failure. None means the
            platform has no geolocation capability.

    Returns:
        {"latitude": float, "longitude": float}, the default pair on any failure
    """
    if position_provider is None:
        print("[location] Geolocation unavailable. Using default coordinates.")
        return dict(DEFAULT_COORDINATES)

    try:
        lat, lng = position_provider(GEOLOCATION_OPTIONS)
        lat, lng = _validate(lat, lng)
    except Exception as e:
        print(f"[location] Geolocation failed or timed out ({e}). Using default coordinates.")
        return dict(DEFAULT_COORDINATES)

    return {"latitude": lat, "longitude": lng}


def browser_position_provider(payload):
    """
    Build a position provider from the JSON the page posts after calling
    the browser geolocation API.

    Expected payloads:
        {"latitude": 48.85, "longitude": 2.35}
        {"geolocation_error": "PERMISSION_DENIED"}
        {"geolocation_error": "UNSUPPORTED"}
    """
    payload = payload or {}

    if payload.get("geolocation_error") == "UNSUPPORTED":
        return None

    def provider(options):
        error = payload.get("geolocation_error")
        if error:
            raise LocationUnavailable(error)
        if "latitude" not in payload or "longitude" not in payload:
            raise LocationUnavailable("No position reported")
        return payload["latitude"], payload["longitude"]

    return provider
