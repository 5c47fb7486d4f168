"""Core services: wire codec and geospatial helpers."""

from psk_alert.core.services.decoder import DecoderStats, MessageDecoder
from psk_alert.core.services.encoder import MessageEncoder
from psk_alert.core.services.geo import distance_between, haversine_km, locator_to_latlon

__all__ = [
    "DecoderStats",
    "MessageDecoder",
    "MessageEncoder",
    "distance_between",
    "haversine_km",
    "locator_to_latlon",
]
