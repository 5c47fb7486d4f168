"""
Template-based decoder for PSKReporter IPFIX datagrams.

A datagram is one IPFIX message: a 16 byte header followed by sets. Template
sets teach the decoder field layouts, data sets carry records laid out by a
previously learned template. Templates are cached for the life of the
decoder and a redefinition replaces the cached layout.
"""

import logging
import struct
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from psk_alert.core.domain.models import DecodedReception, FieldSpec, TemplateDefinition
from psk_alert.core.exceptions import DecodeError
from psk_alert.core.services import ipfix
from psk_alert.core.services.geo import locator_to_latlon

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

# Fields a sender record may inherit from the message's receiver-information record
_RECEIVER_CONTEXT_FIELDS = (
    'receiver_callsign',
    'receiver_locator',
    'receiver_latitude',
    'receiver_longitude',
    'decoder_software',
    'antenna_information',
)


@dataclass
class DecoderStats:
    """Running counters for diagnostics."""

    messages: int = 0
    malformed_messages: int = 0
    malformed_sets: int = 0
    unknown_template_sets: int = 0
    templates_learned: int = 0
    records_decoded: int = 0
    incomplete_records: int = 0


class MessageDecoder:
    """Decodes IPFIX messages into receptions, caching templates as it goes.

    ``decode`` is called from a single thread (the listener's receive loop);
    the lock only protects readers such as the health command.
    """

    def __init__(self) -> None:
        self._templates: Dict[int, TemplateDefinition] = {}
        self._lock = threading.Lock()
        self.stats = DecoderStats()

    @property
    def templates(self) -> Dict[int, TemplateDefinition]:
        with self._lock:
            return dict(self._templates)

    def get_template(self, template_id: int) -> Optional[TemplateDefinition]:
        with self._lock:
            return self._templates.get(template_id)

    def decode(self, data: bytes) -> List[DecodedReception]:
        """Decode one datagram. Never raises; malformed input yields []."""
        self.stats.messages += 1
        try:
            export_time, records = self._decode_message(bytes(data))
        except DecodeError as e:
            self.stats.malformed_messages += 1
            logger.warning(f"Dropping malformed datagram ({len(data)} bytes): {e.message}")
            return []

        return self._build_receptions(records, export_time)

    def _decode_message(self, data: bytes) -> tuple:
        if len(data) < ipfix.MESSAGE_HEADER.size:
            raise DecodeError(f"message shorter than header ({len(data)} bytes)")

        version, length, export_time, sequence, domain_id = ipfix.MESSAGE_HEADER.unpack_from(data, 0)
        if version != ipfix.IPFIX_VERSION:
            raise DecodeError(f"unsupported version {version}")
        if length < ipfix.MESSAGE_HEADER.size:
            raise DecodeError(f"declared message length {length} is shorter than the header")

        end = length
        if length > len(data):
            logger.debug(f"Message {sequence} declares {length} bytes but only {len(data)} arrived")
            end = len(data)

        records: List[Record] = []
        offset = ipfix.MESSAGE_HEADER.size
        while offset + ipfix.SET_HEADER.size <= end:
            set_id, set_length = ipfix.SET_HEADER.unpack_from(data, offset)
            if set_length < ipfix.SET_HEADER.size:
                self.stats.malformed_sets += 1
                logger.debug(f"Set {set_id} has invalid length {set_length}, stopping")
                break
            if offset + set_length > end:
                self.stats.malformed_sets += 1
                logger.debug(
                    f"Set {set_id} truncated: declares {set_length} bytes, {end - offset} remain"
                )
                break

            body = data[offset + ipfix.SET_HEADER.size:offset + set_length]
            try:
                self._decode_set(set_id, body, records)
            except (DecodeError, struct.error, ValueError) as e:
                self.stats.malformed_sets += 1
                logger.debug(f"Skipping rest of set {set_id} in message {sequence}: {e}")
            offset += set_length

        return export_time, records

    def _decode_set(self, set_id: int, body: bytes, records: List[Record]) -> None:
        if set_id == ipfix.TEMPLATE_SET_ID:
            self._parse_template_set(body, options=False)
        elif set_id == ipfix.OPTIONS_TEMPLATE_SET_ID:
            self._parse_template_set(body, options=True)
        elif set_id >= ipfix.MIN_DATA_SET_ID:
            self._parse_data_set(set_id, body, records)
        else:
            logger.debug(f"Ignoring set with reserved id {set_id}")

    def _parse_template_set(self, body: bytes, options: bool) -> None:
        header = ipfix.OPTIONS_TEMPLATE_HEADER if options else ipfix.TEMPLATE_HEADER
        pos = 0
        while len(body) - pos >= header.size:
            if options:
                template_id, field_count, _scope_count = header.unpack_from(body, pos)
            else:
                template_id, field_count = header.unpack_from(body, pos)
            pos += header.size

            if template_id < ipfix.MIN_DATA_SET_ID:
                raise DecodeError(f"invalid template id {template_id}")

            if field_count == 0:
                with self._lock:
                    withdrawn = self._templates.pop(template_id, None)
                if withdrawn is not None:
                    logger.info(f"Template {template_id} withdrawn")
                continue

            fields = []
            for _ in range(field_count):
                if pos + ipfix.FIELD_SPECIFIER.size > len(body):
                    raise DecodeError(f"template {template_id} truncated")
                element_id, length = ipfix.FIELD_SPECIFIER.unpack_from(body, pos)
                pos += ipfix.FIELD_SPECIFIER.size

                enterprise_number = None
                if element_id & ipfix.ENTERPRISE_BIT:
                    if pos + ipfix.ENTERPRISE_NUMBER.size > len(body):
                        raise DecodeError(f"template {template_id} truncated in enterprise number")
                    (enterprise_number,) = ipfix.ENTERPRISE_NUMBER.unpack_from(body, pos)
                    pos += ipfix.ENTERPRISE_NUMBER.size
                    element_id &= ~ipfix.ENTERPRISE_BIT

                fields.append(FieldSpec(
                    element_id=element_id,
                    length=length,
                    enterprise_number=enterprise_number,
                ))

            self._store_template(TemplateDefinition(template_id=template_id, fields=tuple(fields)))

    def _store_template(self, template: TemplateDefinition) -> None:
        with self._lock:
            previous = self._templates.get(template.template_id)
            self._templates[template.template_id] = template

        if previous is None:
            self.stats.templates_learned += 1
            logger.info(f"Learned template {template.template_id} with {len(template.fields)} fields")
        elif previous != template:
            logger.info(f"Template {template.template_id} redefined")

    def _parse_data_set(self, set_id: int, body: bytes, records: List[Record]) -> None:
        template = self.get_template(set_id)
        if template is None:
            self.stats.unknown_template_sets += 1
            raise DecodeError(f"data set references unknown template {set_id}")

        min_length = template.min_record_length
        if min_length == 0:
            raise DecodeError(f"template {set_id} describes empty records")

        pos = 0
        # Anything shorter than one record at the end is padding
        while len(body) - pos >= min_length:
            record, pos = self._parse_record(template, body, pos)
            records.append(record)
            self.stats.records_decoded += 1

    def _parse_record(self, template: TemplateDefinition, body: bytes, pos: int) -> tuple:
        record: Record = {}
        for spec in template.fields:
            length = spec.length
            if spec.is_variable_length:
                if pos >= len(body):
                    raise DecodeError("record truncated before variable length prefix")
                length = body[pos]
                pos += 1
                if length == 255:
                    if pos + 2 > len(body):
                        raise DecodeError("record truncated in long length prefix")
                    (length,) = struct.unpack_from('!H', body, pos)
                    pos += 2

            if pos + length > len(body):
                raise DecodeError(f"field {spec.element_id} runs past end of set")
            raw = body[pos:pos + length]
            pos += length

            element = ipfix.ELEMENTS_BY_KEY.get(spec.key)
            if element is None:
                # Unseen field types are skipped by their declared length
                continue
            value = self._convert(element, raw)
            if value is not None:
                record[element.name] = value
        return record, pos

    @staticmethod
    def _convert(element: ipfix.InformationElement, raw: bytes) -> Any:
        if element.kind == ipfix.ElementKind.STRING:
            text = raw.rstrip(b'\x00').decode('utf-8', errors='replace').strip()
            return text or None
        if element.kind in (ipfix.ElementKind.UNSIGNED, ipfix.ElementKind.SIGNED):
            if not 1 <= len(raw) <= 8:
                return None
            return int.from_bytes(raw, 'big', signed=element.kind == ipfix.ElementKind.SIGNED)
        if element.kind == ipfix.ElementKind.FLOAT:
            if len(raw) == 8:
                value = struct.unpack('!d', raw)[0]
            elif len(raw) == 4:
                value = struct.unpack('!f', raw)[0]
            else:
                return None
            return None if value != value else value  # NaN means absent
        return None

    def _build_receptions(self, records: List[Record], export_time: int) -> List[DecodedReception]:
        receiver_context: Record = {}
        for record in records:
            if 'sender_callsign' not in record and 'receiver_callsign' in record:
                receiver_context = record
                break

        receptions = []
        for record in records:
            if 'sender_callsign' not in record:
                continue
            merged = dict(record)
            for field in _RECEIVER_CONTEXT_FIELDS:
                if field not in merged and field in receiver_context:
                    merged[field] = receiver_context[field]

            reception = self._to_reception(merged, export_time)
            if reception is None:
                self.stats.incomplete_records += 1
            else:
                receptions.append(reception)
        return receptions

    def _to_reception(self, record: Record, export_time: int) -> Optional[DecodedReception]:
        if 'receiver_callsign' not in record or 'frequency' not in record:
            logger.debug(f"Incomplete reception record for {record.get('sender_callsign')}")
            return None

        tx_position = self._position(record, 'sender')
        rx_position = self._position(record, 'receiver')
        seconds = record.get('flow_start_seconds', export_time)

        try:
            return DecodedReception(
                transmitter_callsign=record['sender_callsign'],
                receiver_callsign=record['receiver_callsign'],
                frequency_hz=record['frequency'],
                snr_db=record.get('snr'),
                mode=record.get('mode'),
                transmitter_locator=record.get('sender_locator'),
                receiver_locator=record.get('receiver_locator'),
                transmitter_latitude=tx_position[0] if tx_position else None,
                transmitter_longitude=tx_position[1] if tx_position else None,
                receiver_latitude=rx_position[0] if rx_position else None,
                receiver_longitude=rx_position[1] if rx_position else None,
                timestamp=datetime.fromtimestamp(seconds, tz=timezone.utc),
            )
        except (ValidationError, ValueError, OverflowError, OSError) as e:
            logger.debug(f"Invalid reception record for {record.get('sender_callsign')}: {e}")
            return None

    @staticmethod
    def _position(record: Record, station: str) -> Optional[tuple]:
        lat = record.get(f'{station}_latitude')
        lon = record.get(f'{station}_longitude')
        if lat is not None and lon is not None:
            return (lat, lon)
        return locator_to_latlon(record.get(f'{station}_locator'))
