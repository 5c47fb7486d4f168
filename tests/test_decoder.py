from __future__ import annotations

import struct
from datetime import datetime, timezone

import pytest

from psk_alert.core.domain.models import TemplateDefinition
from psk_alert.core.services import ipfix
from psk_alert.core.services.decoder import MessageDecoder
from psk_alert.core.services.encoder import (
    MessageEncoder,
    data_set,
    field_spec,
    message,
    template_set,
)

from conftest import make_reception

EXPORT_TIME = 1_700_000_000


def _sender_template(template_id: int = 256) -> TemplateDefinition:
    return TemplateDefinition(
        template_id=template_id,
        fields=(
            field_spec(ipfix.SENDER_CALLSIGN),
            field_spec(ipfix.RECEIVER_CALLSIGN),
            field_spec(ipfix.FREQUENCY),
            field_spec(ipfix.SNR),
            field_spec(ipfix.MODE),
            field_spec(ipfix.SENDER_LOCATOR),
            field_spec(ipfix.RECEIVER_LOCATOR),
            field_spec(ipfix.FLOW_START_SECONDS),
        ),
    )


def _varlen(text: str) -> bytes:
    raw = text.encode()
    return bytes([len(raw)]) + raw


def _hand_built_message() -> bytes:
    """Template set + data set written out byte by byte."""
    template_body = struct.pack("!HH", 300, 4)
    for element_id, length in ((1, 0xFFFF), (2, 0xFFFF), (5, 4), (6, 1)):
        template_body += struct.pack("!HHI", element_id | 0x8000, length, 30351)
    template = struct.pack("!HH", 2, 4 + len(template_body)) + template_body

    record = _varlen("K2ABC") + _varlen("W3XYZ") + struct.pack("!Ib", 14_074_000, -12)
    data = struct.pack("!HH", 300, 4 + len(record)) + record

    payload = template + data
    header = struct.pack("!HHIII", 10, 16 + len(payload), EXPORT_TIME, 1, 0)
    return header + payload


def test_two_set_message_decodes_one_reception() -> None:
    decoder = MessageDecoder()

    receptions = decoder.decode(_hand_built_message())

    assert len(receptions) == 1
    reception = receptions[0]
    assert reception.transmitter_callsign == "K2ABC"
    assert reception.receiver_callsign == "W3XYZ"
    assert reception.frequency_hz == 14_074_000
    assert reception.snr_db == -12
    assert reception.mode is None
    assert reception.timestamp == datetime.fromtimestamp(EXPORT_TIME, tz=timezone.utc)
    assert decoder.get_template(300) is not None


def test_flow_start_seconds_sets_timestamp_and_locators_set_positions() -> None:
    template = _sender_template()
    row = ["N4QRS", "VE6WXY", 7_074_000, 20, "FT8", "FN20", "DO21", EXPORT_TIME - 60]
    data = message([template_set([template]), data_set(template, [row])], export_time=EXPORT_TIME)

    (reception,) = MessageDecoder().decode(data)

    assert reception.timestamp == datetime.fromtimestamp(EXPORT_TIME - 60, tz=timezone.utc)
    assert reception.mode == "FT8"
    assert reception.transmitter_position == pytest.approx((40.5, -75.0))
    assert reception.receiver_position == pytest.approx((51.5, -115.0))


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"\x00",
        b"garbage that is not ipfix at all",
        struct.pack("!HHIII", 9, 16, EXPORT_TIME, 0, 0),
        struct.pack("!HHIII", 10, 8, EXPORT_TIME, 0, 0),
        bytes(range(256)) * 4,
    ],
)
def test_garbage_never_raises(data: bytes) -> None:
    decoder = MessageDecoder()
    assert decoder.decode(data) == []


def test_truncated_message_keeps_earlier_sets() -> None:
    decoder = MessageDecoder()
    full = _hand_built_message()

    # Cut into the data set: the template set still gets learned
    assert decoder.decode(full[:-3]) == []
    assert decoder.get_template(300) is not None
    assert decoder.stats.malformed_sets == 1

    # A later message using the learned template decodes normally
    assert len(decoder.decode(full)) == 1


def test_empty_message_yields_nothing() -> None:
    data = struct.pack("!HHIII", 10, 16, EXPORT_TIME, 0, 0)
    assert MessageDecoder().decode(data) == []


def test_unknown_template_set_is_skipped_and_later_sets_decode() -> None:
    template = _sender_template(256)
    row = ["K2ABC", "W3XYZ", 14_074_000, 3, "FT8", "FN20", "FN31", EXPORT_TIME]
    unknown = struct.pack("!HH", 999, 8) + b"\x00" * 4
    data = message(
        [unknown, template_set([template]), data_set(template, [row])],
        export_time=EXPORT_TIME,
    )
    decoder = MessageDecoder()

    receptions = decoder.decode(data)

    assert [r.transmitter_callsign for r in receptions] == ["K2ABC"]
    assert decoder.stats.unknown_template_sets == 1


def test_template_redefinition_replaces_layout() -> None:
    decoder = MessageDecoder()
    first = TemplateDefinition(
        template_id=256,
        fields=(field_spec(ipfix.SENDER_CALLSIGN), field_spec(ipfix.RECEIVER_CALLSIGN),
                field_spec(ipfix.FREQUENCY)),
    )
    second = TemplateDefinition(
        template_id=256,
        fields=(field_spec(ipfix.FREQUENCY), field_spec(ipfix.SNR),
                field_spec(ipfix.SENDER_CALLSIGN), field_spec(ipfix.RECEIVER_CALLSIGN)),
    )

    decoder.decode(message([template_set([first]),
                            data_set(first, [["K2ABC", "W3XYZ", 7_074_000]])]))
    receptions = decoder.decode(message([template_set([second]),
                                         data_set(second, [[14_074_000, 7, "N4QRS", "K2ABC"]])]))

    assert decoder.get_template(256) == second
    assert receptions[0].transmitter_callsign == "N4QRS"
    assert receptions[0].snr_db == 7


def test_template_with_zero_fields_withdraws_it() -> None:
    decoder = MessageDecoder()
    template = _sender_template(256)
    decoder.decode(message([template_set([template])]))
    assert decoder.get_template(256) is not None

    withdrawal = struct.pack("!HH", 2, 8) + struct.pack("!HH", 256, 0)
    decoder.decode(message([withdrawal]))

    assert decoder.get_template(256) is None


def test_sender_records_inherit_receiver_context() -> None:
    receiver = TemplateDefinition(
        template_id=256,
        fields=(field_spec(ipfix.RECEIVER_CALLSIGN), field_spec(ipfix.RECEIVER_LOCATOR),
                field_spec(ipfix.DECODER_SOFTWARE)),
    )
    sender = TemplateDefinition(
        template_id=257,
        fields=(field_spec(ipfix.SENDER_CALLSIGN), field_spec(ipfix.FREQUENCY),
                field_spec(ipfix.SNR), field_spec(ipfix.MODE), field_spec(ipfix.SENDER_LOCATOR)),
    )
    data = message([
        template_set([receiver, sender]),
        data_set(receiver, [["VE6WXY", "DO21", "WSJT-X"]]),
        data_set(sender, [["K2ABC", 14_074_000, -3, "FT8", "FN20"],
                          ["N4QRS", 14_075_000, 5, "FT8", "EM73"]]),
    ], export_time=EXPORT_TIME)

    receptions = MessageDecoder().decode(data)

    assert [r.transmitter_callsign for r in receptions] == ["K2ABC", "N4QRS"]
    assert all(r.receiver_callsign == "VE6WXY" for r in receptions)
    assert all(r.receiver_locator == "DO21" for r in receptions)


def test_records_without_receiver_are_not_receptions() -> None:
    template = TemplateDefinition(
        template_id=256,
        fields=(field_spec(ipfix.SENDER_CALLSIGN), field_spec(ipfix.FREQUENCY)),
    )
    data = message([template_set([template]), data_set(template, [["K2ABC", 14_074_000]])])
    decoder = MessageDecoder()

    assert decoder.decode(data) == []
    assert decoder.stats.incomplete_records == 1


def test_unknown_elements_are_skipped_by_length() -> None:
    body = struct.pack("!HH", 256, 4)
    body += struct.pack("!HHI", 1 | 0x8000, 0xFFFF, 30351)
    body += struct.pack("!HH", 7777, 3)  # unknown IANA element
    body += struct.pack("!HHI", 2 | 0x8000, 0xFFFF, 30351)
    body += struct.pack("!HHI", 5 | 0x8000, 4, 30351)
    templates = struct.pack("!HH", 2, 4 + len(body)) + body

    record = _varlen("K2ABC") + b"xyz" + _varlen("W3XYZ") + struct.pack("!I", 10_136_000)
    data = struct.pack("!HH", 256, 4 + len(record)) + record

    (reception,) = MessageDecoder().decode(message([templates, data]))

    assert reception.receiver_callsign == "W3XYZ"
    assert reception.frequency_hz == 10_136_000


def test_long_variable_length_prefix() -> None:
    template = TemplateDefinition(
        template_id=256,
        fields=(field_spec(ipfix.SENDER_CALLSIGN), field_spec(ipfix.RECEIVER_CALLSIGN),
                field_spec(ipfix.FREQUENCY), field_spec(ipfix.ANTENNA_INFORMATION)),
    )
    antenna = "dipole " * 50
    data = message([template_set([template]),
                    data_set(template, [["K2ABC", "W3XYZ", 14_074_000, antenna]])])

    assert len(MessageDecoder().decode(data)) == 1


def test_trailing_padding_is_ignored() -> None:
    template = _sender_template()
    row = ["K2ABC", "W3XYZ", 14_074_000, 3, "FT8", "FN20", "FN31", EXPORT_TIME]
    padded = data_set(template, [row]) + b"\x00\x00"
    # Patch the set length to cover the padding
    padded = struct.pack("!HH", 256, len(padded)) + padded[4:]

    receptions = MessageDecoder().decode(message([template_set([template]), padded]))

    assert len(receptions) == 1


def test_encoder_output_decodes_to_the_same_receptions() -> None:
    originals = [
        make_reception(transmitter_callsign="K2ABC", snr_db=12,
                       transmitter_latitude=40.0, transmitter_longitude=-74.0,
                       receiver_latitude=51.0, receiver_longitude=0.0),
        make_reception(transmitter_callsign="N4QRS", snr_db=None, mode=None,
                       transmitter_locator="EM73", receiver_locator="FN31"),
    ]

    decoded = MessageDecoder().decode(MessageEncoder().encode(originals))

    assert [r.transmitter_callsign for r in decoded] == ["K2ABC", "N4QRS"]
    assert decoded[0].transmitter_position == (40.0, -74.0)
    assert decoded[0].snr_db == 12
    assert decoded[1].snr_db is None
    assert decoded[1].transmitter_position == pytest.approx((33.5, -85.0))
    assert all(r.timestamp == originals[0].timestamp for r in decoded)
