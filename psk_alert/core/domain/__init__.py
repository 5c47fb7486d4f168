"""Core domain layer for PSKAlert."""

from psk_alert.core.domain.models import (
    AlertDecision,
    AlertThresholds,
    DecodedReception,
    EnrichedReport,
    FieldSpec,
    ListenerState,
    ListenerStats,
    NotifierKind,
    TemplateDefinition,
    WatchEntry,
    WatchListSnapshot,
    normalize_callsign,
)

__all__ = [
    "AlertDecision",
    "AlertThresholds",
    "DecodedReception",
    "EnrichedReport",
    "FieldSpec",
    "ListenerState",
    "ListenerStats",
    "NotifierKind",
    "TemplateDefinition",
    "WatchEntry",
    "WatchListSnapshot",
    "normalize_callsign",
]
