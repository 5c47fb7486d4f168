"""Domain models for PSKAlert system."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

VARIABLE_LENGTH = 65535


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_callsign(callsign: str) -> str:
    """Normalize a callsign the same way watch-list entries are stored."""
    return callsign.strip().upper()


class ListenerState(str, Enum):
    """Lifecycle states of the UDP listener."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class NotifierKind(str, Enum):
    """Supported notification transports."""
    LOG = "log"
    EMAIL = "email"
    MQTT = "mqtt"


class WatchEntry(BaseModel):
    """A monitored transmitter callsign with optional threshold overrides."""

    model_config = ConfigDict(frozen=True)

    callsign: str = Field(..., min_length=1, max_length=20, description="Normalized callsign")
    active: bool = Field(True, description="Whether the callsign is monitored")
    snr_threshold: Optional[int] = Field(None, description="Per-entry SNR threshold in dB")
    distance_threshold: Optional[int] = Field(None, ge=0, description="Per-entry distance threshold in km")
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator('callsign')
    @classmethod
    def validate_callsign(cls, v):
        v = normalize_callsign(v)
        if not v:
            raise ValueError("Callsign cannot be empty")
        return v

    @property
    def has_overrides(self) -> bool:
        return self.snr_threshold is not None or self.distance_threshold is not None


class WatchListSnapshot(BaseModel):
    """Point-in-time, read-only view of the active watch-list."""

    model_config = ConfigDict(frozen=True)

    entries: Dict[str, WatchEntry] = Field(default_factory=dict)
    taken_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_entries(cls, entries: List[WatchEntry]) -> "WatchListSnapshot":
        return cls(entries={entry.callsign: entry for entry in entries if entry.active})

    def get(self, callsign: Optional[str]) -> Optional[WatchEntry]:
        if not callsign:
            return None
        return self.entries.get(normalize_callsign(callsign))

    def contains(self, callsign: Optional[str]) -> bool:
        return self.get(callsign) is not None

    @property
    def callsigns(self) -> List[str]:
        return sorted(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


class FieldSpec(BaseModel):
    """One field specifier of a template record."""

    model_config = ConfigDict(frozen=True)

    element_id: int = Field(..., ge=0, le=0x7FFF)
    length: int = Field(..., ge=0, le=VARIABLE_LENGTH)
    enterprise_number: Optional[int] = Field(None, ge=0)

    @property
    def is_variable_length(self) -> bool:
        return self.length == VARIABLE_LENGTH

    @property
    def key(self) -> Tuple[Optional[int], int]:
        return (self.enterprise_number, self.element_id)


class TemplateDefinition(BaseModel):
    """Field layout learned from a template record on the wire."""

    model_config = ConfigDict(frozen=True)

    template_id: int = Field(..., ge=256, le=65535)
    fields: Tuple[FieldSpec, ...] = Field(default_factory=tuple)

    @property
    def min_record_length(self) -> int:
        """Smallest number of bytes a record of this template can occupy."""
        return sum(1 if spec.is_variable_length else spec.length for spec in self.fields)


class _ReceptionFields(BaseModel):
    transmitter_callsign: str = Field(..., min_length=1)
    receiver_callsign: str = Field(..., min_length=1)
    frequency_hz: int = Field(..., ge=0, description="Frequency in Hz")
    snr_db: Optional[int] = Field(None, description="Signal-to-noise ratio in dB")
    mode: Optional[str] = Field(None, description="Operating mode (FT8, CW, ...)")
    transmitter_locator: Optional[str] = None
    receiver_locator: Optional[str] = None
    transmitter_latitude: Optional[float] = Field(None, ge=-90, le=90)
    transmitter_longitude: Optional[float] = Field(None, ge=-180, le=180)
    receiver_latitude: Optional[float] = Field(None, ge=-90, le=90)
    receiver_longitude: Optional[float] = Field(None, ge=-180, le=180)
    timestamp: datetime = Field(default_factory=utcnow, description="Observation time (UTC)")

    @field_validator('transmitter_callsign', 'receiver_callsign')
    @classmethod
    def strip_callsign(cls, v):
        return v.strip()

    @field_validator('timestamp')
    @classmethod
    def ensure_utc(cls, v):
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @model_validator(mode='after')
    def validate_coordinate_pairs(self):
        for station in ('transmitter', 'receiver'):
            lat = getattr(self, f'{station}_latitude')
            lon = getattr(self, f'{station}_longitude')
            if (lat is None) != (lon is None):
                raise ValueError(f"{station} latitude and longitude must both be present or both absent")
        return self

    @property
    def transmitter_position(self) -> Optional[Tuple[float, float]]:
        if self.transmitter_latitude is None or self.transmitter_longitude is None:
            return None
        return (self.transmitter_latitude, self.transmitter_longitude)

    @property
    def receiver_position(self) -> Optional[Tuple[float, float]]:
        if self.receiver_latitude is None or self.receiver_longitude is None:
            return None
        return (self.receiver_latitude, self.receiver_longitude)

    @property
    def frequency_mhz(self) -> float:
        return self.frequency_hz / 1_000_000.0


class DecodedReception(_ReceptionFields):
    """A single reception decoded from the wire. Immutable."""

    model_config = ConfigDict(frozen=True)


class EnrichedReport(_ReceptionFields):
    """A watched reception with computed distance and notification state.

    ``notified`` only ever moves from False to True.
    """

    id: Optional[int] = Field(None, description="Identifier assigned by the report store")
    distance_km: Optional[int] = Field(None, ge=0, description="Great-circle distance in km")
    notified: bool = Field(False, description="Whether an alert was delivered")

    @classmethod
    def from_reception(
        cls, reception: DecodedReception, distance_km: Optional[int]
    ) -> "EnrichedReport":
        return cls(**reception.model_dump(), distance_km=distance_km, notified=False)


class AlertThresholds(BaseModel):
    """Effective SNR/distance thresholds for one callsign."""

    model_config = ConfigDict(frozen=True)

    snr_db: int
    distance_km: int


class AlertDecision(BaseModel):
    """Outcome of one alert evaluation."""

    notified: bool = False
    reason: str = ""


class ListenerStats(BaseModel):
    """Counters maintained by the UDP listener."""

    datagrams_received: int = 0
    records_decoded: int = 0
    records_forwarded: int = 0
    records_dropped: int = 0
    transient_errors: int = 0
    sink_errors: int = 0
