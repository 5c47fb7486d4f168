from __future__ import annotations

import socket
import time

from psk_alert.application.services.orchestration import AlertSweepJob, IngestionPipeline
from psk_alert.application.use_cases.alert_evaluation import AlertEvaluator
from psk_alert.core.services.decoder import MessageDecoder
from psk_alert.core.services.encoder import MessageEncoder
from psk_alert.infrastructure.listener import UDPListener

from conftest import FakeWatchList, make_reception, make_report


def _pipeline(alert_settings, notifier, store, watchlist):
    evaluator = AlertEvaluator(alert_settings, notifier, store, watchlist)
    return IngestionPipeline(watchlist, store, evaluator), evaluator


def test_watched_strong_distant_reception_is_stored_and_alerted(alert_settings, notifier, store) -> None:
    watchlist = FakeWatchList("N4QRS")
    pipeline, _ = _pipeline(alert_settings, notifier, store, watchlist)
    reception = make_reception(
        transmitter_callsign="N4QRS", snr_db=20,
        transmitter_latitude=0.0, transmitter_longitude=0.0,
        receiver_latitude=13.5, receiver_longitude=0.0,
    )

    report = pipeline.handle(reception)

    assert report is not None
    assert report.distance_km > 1000
    assert report.notified is True
    assert len(store.reports) == 1
    assert notifier.calls == 1
    reason_line = notifier.sent[0][2].splitlines()[2]
    assert "SNR 20 dB" in reason_line
    assert "Distance" in reason_line
    assert pipeline.counters == {'seen': 1, 'dropped': 0, 'persisted': 1, 'notified': 1}


def test_unwatched_reception_is_not_stored(alert_settings, notifier, store) -> None:
    pipeline, _ = _pipeline(alert_settings, notifier, store, FakeWatchList("N4QRS"))

    assert pipeline.handle(make_reception(transmitter_callsign="W3XYZ", snr_db=40)) is None
    assert store.reports == {}
    assert notifier.calls == 0
    assert pipeline.counters['dropped'] == 1


def test_weak_reception_is_stored_without_alert(alert_settings, notifier, store) -> None:
    pipeline, _ = _pipeline(alert_settings, notifier, store, FakeWatchList("K2ABC"))

    report = pipeline.handle(make_reception(snr_db=-15))

    assert report.id in store.reports
    assert report.notified is False
    assert notifier.calls == 0


def test_sweep_retries_failed_delivery(alert_settings, failing_notifier, store) -> None:
    watchlist = FakeWatchList("K2ABC")
    pipeline, evaluator = _pipeline(alert_settings, failing_notifier, store, watchlist)
    report = pipeline.handle(make_reception(snr_db=15))
    assert report.notified is False

    failing_notifier.result = True
    sweep = AlertSweepJob(evaluator, store, watchlist, interval_seconds=60)

    assert sweep.run_once() == 1
    assert store.reports[report.id].notified is True
    # Nothing left to deliver
    assert sweep.run_once() == 0
    assert failing_notifier.calls == 2


def test_sweep_applies_lowered_override(alert_settings, notifier, store) -> None:
    watchlist = FakeWatchList("K2ABC")
    store.save(make_report(snr_db=5))
    evaluator = AlertEvaluator(alert_settings, notifier, store, watchlist)
    sweep = AlertSweepJob(evaluator, store, watchlist)

    assert sweep.run_once() == 0

    watchlist.add("K2ABC", snr_threshold=3)
    assert sweep.run_once() == 1
    assert notifier.calls == 1


def test_sweep_ignores_removed_callsigns(alert_settings, notifier, store) -> None:
    watchlist = FakeWatchList("K2ABC")
    store.save(make_report(snr_db=30))
    watchlist.remove("K2ABC")
    sweep = AlertSweepJob(AlertEvaluator(alert_settings, notifier, store, watchlist), store, watchlist)

    assert sweep.run_once() == 0
    assert notifier.calls == 0


def test_sweep_thread_runs_until_stopped(alert_settings, notifier, store) -> None:
    watchlist = FakeWatchList("K2ABC")
    store.save(make_report(snr_db=30))
    sweep = AlertSweepJob(
        AlertEvaluator(alert_settings, notifier, store, watchlist), store, watchlist,
        interval_seconds=0.05,
    )

    sweep.start()
    try:
        deadline = time.monotonic() + 5
        while notifier.calls == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert sweep.running
    finally:
        sweep.stop()

    assert not sweep.running
    assert notifier.calls == 1


def test_sweep_with_zero_interval_does_not_start(alert_settings, notifier, store) -> None:
    watchlist = FakeWatchList("K2ABC")
    sweep = AlertSweepJob(
        AlertEvaluator(alert_settings, notifier, store, watchlist), store, watchlist,
        interval_seconds=0,
    )

    sweep.start()

    assert not sweep.running
    sweep.stop()


def test_datagram_flows_from_listener_to_notifier(alert_settings, notifier, store) -> None:
    watchlist = FakeWatchList("N4QRS")
    pipeline, _ = _pipeline(alert_settings, notifier, store, watchlist)
    reception = make_reception(
        transmitter_callsign="N4QRS", snr_db=20,
        transmitter_latitude=0.0, transmitter_longitude=0.0,
        receiver_latitude=13.5, receiver_longitude=0.0,
    )

    with UDPListener("127.0.0.1", 0, MessageDecoder(), pipeline.handle, receive_timeout=0.5) as udp:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sender:
            sender.sendto(MessageEncoder().encode([reception]), udp.address)
        deadline = time.monotonic() + 5
        while notifier.calls == 0 and time.monotonic() < deadline:
            time.sleep(0.01)

    assert len(store.reports) == 1
    (stored,) = store.reports.values()
    assert abs(stored.distance_km - 1500) <= 5
    assert stored.notified is True
    assert notifier.calls == 1
    body = notifier.sent[0][2]
    assert "SNR 20 dB exceeds threshold of 10 dB." in body
    assert f"Distance {stored.distance_km} km exceeds threshold of 1000 km." in body


def test_sweep_thread_survives_unexpected_errors(alert_settings, notifier, store) -> None:
    class FlakyStore(type(store)):
        failures = 1

        def find_pending_alerts(self, *args, **kwargs):
            if self.failures:
                self.failures -= 1
                raise RuntimeError("cursor closed")
            return super().find_pending_alerts(*args, **kwargs)

    flaky = FlakyStore()
    watchlist = FakeWatchList("K2ABC")
    flaky.save(make_report(snr_db=30))
    sweep = AlertSweepJob(
        AlertEvaluator(alert_settings, notifier, flaky, watchlist), flaky, watchlist,
        interval_seconds=0.05,
    )

    sweep.start()
    try:
        deadline = time.monotonic() + 5
        while notifier.calls == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        sweep.stop()

    assert sweep.failed_runs == 1
    assert notifier.calls == 1
