"""
IPFIX framing constants and the information elements PSKReporter uses.

Reference: RFC 7011 and https://pskreporter.info/pskdev.html
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from psk_alert.core.domain.models import VARIABLE_LENGTH

IPFIX_VERSION = 10
TEMPLATE_SET_ID = 2
OPTIONS_TEMPLATE_SET_ID = 3
MIN_DATA_SET_ID = 256

PSKREPORTER_ENTERPRISE = 30351
ENTERPRISE_BIT = 0x8000

MESSAGE_HEADER = struct.Struct('!HHIII')
SET_HEADER = struct.Struct('!HH')
TEMPLATE_HEADER = struct.Struct('!HH')
OPTIONS_TEMPLATE_HEADER = struct.Struct('!HHH')
FIELD_SPECIFIER = struct.Struct('!HH')
ENTERPRISE_NUMBER = struct.Struct('!I')


class ElementKind(str, Enum):
    """How the bytes of an information element are interpreted."""
    STRING = "string"
    UNSIGNED = "unsigned"
    SIGNED = "signed"
    FLOAT = "float"


@dataclass(frozen=True)
class InformationElement:
    """A known field type: where it lives in the registry and how to read it."""

    name: str
    element_id: int
    enterprise_number: Optional[int]
    kind: ElementKind
    length: int

    @property
    def key(self) -> Tuple[Optional[int], int]:
        return (self.enterprise_number, self.element_id)


def _psk(name: str, element_id: int, kind: ElementKind, length: int) -> InformationElement:
    return InformationElement(name, element_id, PSKREPORTER_ENTERPRISE, kind, length)


SENDER_CALLSIGN = _psk("sender_callsign", 1, ElementKind.STRING, VARIABLE_LENGTH)
RECEIVER_CALLSIGN = _psk("receiver_callsign", 2, ElementKind.STRING, VARIABLE_LENGTH)
SENDER_LOCATOR = _psk("sender_locator", 3, ElementKind.STRING, VARIABLE_LENGTH)
RECEIVER_LOCATOR = _psk("receiver_locator", 4, ElementKind.STRING, VARIABLE_LENGTH)
FREQUENCY = _psk("frequency", 5, ElementKind.UNSIGNED, 4)
SNR = _psk("snr", 6, ElementKind.SIGNED, 1)
IMD = _psk("imd", 7, ElementKind.SIGNED, 1)
DECODER_SOFTWARE = _psk("decoder_software", 8, ElementKind.STRING, VARIABLE_LENGTH)
ANTENNA_INFORMATION = _psk("antenna_information", 9, ElementKind.STRING, VARIABLE_LENGTH)
MODE = _psk("mode", 10, ElementKind.STRING, VARIABLE_LENGTH)
INFORMATION_SOURCE = _psk("information_source", 11, ElementKind.UNSIGNED, 1)
PERSISTENT_IDENTIFIER = _psk("persistent_identifier", 12, ElementKind.STRING, VARIABLE_LENGTH)
# Raw coordinates, sent by aggregators that resolve locators themselves
SENDER_LATITUDE = _psk("sender_latitude", 20, ElementKind.FLOAT, 8)
SENDER_LONGITUDE = _psk("sender_longitude", 21, ElementKind.FLOAT, 8)
RECEIVER_LATITUDE = _psk("receiver_latitude", 22, ElementKind.FLOAT, 8)
RECEIVER_LONGITUDE = _psk("receiver_longitude", 23, ElementKind.FLOAT, 8)
# IANA flowStartSeconds
FLOW_START_SECONDS = InformationElement("flow_start_seconds", 150, None, ElementKind.UNSIGNED, 4)

INFORMATION_ELEMENTS: Tuple[InformationElement, ...] = (
    SENDER_CALLSIGN,
    RECEIVER_CALLSIGN,
    SENDER_LOCATOR,
    RECEIVER_LOCATOR,
    FREQUENCY,
    SNR,
    IMD,
    DECODER_SOFTWARE,
    ANTENNA_INFORMATION,
    MODE,
    INFORMATION_SOURCE,
    PERSISTENT_IDENTIFIER,
    SENDER_LATITUDE,
    SENDER_LONGITUDE,
    RECEIVER_LATITUDE,
    RECEIVER_LONGITUDE,
    FLOW_START_SECONDS,
)

ELEMENTS_BY_KEY: Dict[Tuple[Optional[int], int], InformationElement] = {
    element.key: element for element in INFORMATION_ELEMENTS
}
