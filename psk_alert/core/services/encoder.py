"""
IPFIX message builder for PSKReporter-style reception records.

Used by the ``simulate`` command to feed synthetic traffic to a listener.
"""

import struct
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from psk_alert.core.domain.models import DecodedReception, FieldSpec, TemplateDefinition
from psk_alert.core.services import ipfix

# Reception attribute -> information element, in wire order
_RECEPTION_FIELDS: Tuple[Tuple[str, ipfix.InformationElement], ...] = (
    ('transmitter_callsign', ipfix.SENDER_CALLSIGN),
    ('receiver_callsign', ipfix.RECEIVER_CALLSIGN),
    ('frequency_hz', ipfix.FREQUENCY),
    ('snr_db', ipfix.SNR),
    ('mode', ipfix.MODE),
    ('transmitter_locator', ipfix.SENDER_LOCATOR),
    ('receiver_locator', ipfix.RECEIVER_LOCATOR),
    ('transmitter_latitude', ipfix.SENDER_LATITUDE),
    ('transmitter_longitude', ipfix.SENDER_LONGITUDE),
    ('receiver_latitude', ipfix.RECEIVER_LATITUDE),
    ('receiver_longitude', ipfix.RECEIVER_LONGITUDE),
)


def field_spec(element: ipfix.InformationElement, length: Optional[int] = None) -> FieldSpec:
    return FieldSpec(
        element_id=element.element_id,
        length=element.length if length is None else length,
        enterprise_number=element.enterprise_number,
    )


def encode_value(spec: FieldSpec, value: Any) -> bytes:
    """Encode one field value according to its specifier."""
    element = ipfix.ELEMENTS_BY_KEY.get(spec.key)
    kind = element.kind if element else None

    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif kind == ipfix.ElementKind.STRING or isinstance(value, str):
        raw = str(value).encode('utf-8')
    elif kind == ipfix.ElementKind.FLOAT:
        raw = struct.pack('!d' if spec.length in (8, ipfix.VARIABLE_LENGTH) else '!f', float(value))
    else:
        signed = kind == ipfix.ElementKind.SIGNED
        width = 8 if spec.is_variable_length else spec.length
        raw = int(value).to_bytes(width, 'big', signed=signed)

    if spec.is_variable_length:
        if len(raw) < 255:
            return bytes([len(raw)]) + raw
        return b'\xff' + struct.pack('!H', len(raw)) + raw

    if len(raw) > spec.length:
        raise ValueError(f"value for element {spec.element_id} exceeds {spec.length} bytes")
    # Fixed-length strings are NUL padded
    return raw.ljust(spec.length, b'\x00')


def template_set(templates: Iterable[TemplateDefinition]) -> bytes:
    body = b''
    for template in templates:
        body += ipfix.TEMPLATE_HEADER.pack(template.template_id, len(template.fields))
        for spec in template.fields:
            if spec.enterprise_number is not None:
                body += ipfix.FIELD_SPECIFIER.pack(spec.element_id | ipfix.ENTERPRISE_BIT, spec.length)
                body += ipfix.ENTERPRISE_NUMBER.pack(spec.enterprise_number)
            else:
                body += ipfix.FIELD_SPECIFIER.pack(spec.element_id, spec.length)
    return ipfix.SET_HEADER.pack(ipfix.TEMPLATE_SET_ID, ipfix.SET_HEADER.size + len(body)) + body


def data_set(template: TemplateDefinition, rows: Iterable[Sequence[Any]]) -> bytes:
    """Build a data set; each row holds one value per template field."""
    body = b''
    for row in rows:
        if len(row) != len(template.fields):
            raise ValueError("row does not match template field count")
        for spec, value in zip(template.fields, row):
            body += encode_value(spec, value)
    return ipfix.SET_HEADER.pack(template.template_id, ipfix.SET_HEADER.size + len(body)) + body


def message(
    sets: Iterable[bytes],
    export_time: Optional[int] = None,
    sequence: int = 0,
    observation_domain_id: int = 0,
) -> bytes:
    payload = b''.join(sets)
    export_time = int(time.time()) if export_time is None else export_time
    length = ipfix.MESSAGE_HEADER.size + len(payload)
    header = ipfix.MESSAGE_HEADER.pack(
        ipfix.IPFIX_VERSION, length, export_time, sequence, observation_domain_id
    )
    return header + payload


class MessageEncoder:
    """Encodes receptions into self-describing IPFIX messages.

    Receptions with the same set of present fields share a template; each
    message carries the templates it uses followed by one data set per
    template.
    """

    def __init__(self, observation_domain_id: int = 0, first_template_id: int = 256) -> None:
        self.observation_domain_id = observation_domain_id
        self._next_template_id = first_template_id
        self._templates: Dict[Tuple[str, ...], TemplateDefinition] = {}
        self._sequence = 0

    def _template_for(self, names: Tuple[str, ...]) -> TemplateDefinition:
        template = self._templates.get(names)
        if template is None:
            elements = dict(_RECEPTION_FIELDS)
            fields = [field_spec(elements[name]) for name in names]
            fields.append(field_spec(ipfix.FLOW_START_SECONDS))
            template = TemplateDefinition(template_id=self._next_template_id, fields=tuple(fields))
            self._templates[names] = template
            self._next_template_id += 1
        return template

    def encode(
        self,
        receptions: Iterable[DecodedReception],
        include_templates: bool = True,
        export_time: Optional[int] = None,
    ) -> bytes:
        groups: Dict[int, Tuple[TemplateDefinition, List[List[Any]]]] = {}
        for reception in receptions:
            names = tuple(
                name for name, _ in _RECEPTION_FIELDS if getattr(reception, name) is not None
            )
            template = self._template_for(names)
            row = [getattr(reception, name) for name in names]
            row.append(int(reception.timestamp.timestamp()))
            groups.setdefault(template.template_id, (template, []))[1].append(row)

        sets = []
        if include_templates and groups:
            sets.append(template_set(template for template, _ in groups.values()))
        for template, rows in groups.values():
            sets.append(data_set(template, rows))

        encoded = message(
            sets,
            export_time=export_time,
            sequence=self._sequence,
            observation_domain_id=self.observation_domain_id,
        )
        self._sequence += sum(len(rows) for _, rows in groups.values())
        return encoded
