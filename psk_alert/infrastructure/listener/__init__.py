"""
UDP listener for the PSKReporter feed
"""

import logging
import queue
import socket
import threading
import time
from typing import Any, Callable, Optional, Tuple

from psk_alert.core.domain.models import DecodedReception, ListenerState, ListenerStats
from psk_alert.core.exceptions import BindError, ListenerError, PSKAlertError, TransientSocketError
from psk_alert.core.services.decoder import MessageDecoder

logger = logging.getLogger(__name__)

ReceptionSink = Callable[[DecodedReception], Any]

_STOP = object()
_DROP_WARNING_INTERVAL = 10.0


class UDPListener:
    """Receives datagrams, decodes them and hands receptions to a sink.

    The receive thread owns the socket and is the only caller of the
    decoder. Decoded records go through a bounded queue to a dispatcher
    thread that runs the sink. When the queue is full the newest record is
    dropped and counted.
    """

    def __init__(self, host: str, port: int, decoder: MessageDecoder, sink: ReceptionSink,
                 receive_timeout: float = 10.0, queue_size: int = 1000,
                 buffer_size: int = 65535) -> None:
        self.host = host
        self.port = port
        self.decoder = decoder
        self.sink = sink
        self.receive_timeout = receive_timeout
        self.buffer_size = buffer_size

        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=queue_size)
        self._state = ListenerState.STOPPED
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sock: Optional[socket.socket] = None
        self._receive_thread: Optional[threading.Thread] = None
        self._dispatch_thread: Optional[threading.Thread] = None
        self._address: Optional[Tuple[str, int]] = None
        self._stats = ListenerStats()
        self._last_drop_warning = 0.0

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """Bound (host, port) while running."""
        return self._address

    @property
    def stats(self) -> ListenerStats:
        return self._stats.model_copy()

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Bind the socket and start the receive and dispatch threads."""
        # The whole transition runs under the lock so stop() never sees STARTING
        with self._state_lock:
            if self._state != ListenerState.STOPPED:
                raise ListenerError(f"Listener cannot start while {self._state.value}")
            self._state = ListenerState.STARTING

            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                sock.bind((self.host, self.port))
                sock.settimeout(self.receive_timeout)
            except OSError as e:
                sock.close()
                self._state = ListenerState.STOPPED
                logger.error(f"Cannot bind UDP listener to {self.host}:{self.port}: {e}")
                raise BindError(
                    f"Failed to bind {self.host}:{self.port}: {e}",
                    details={"host": self.host, "port": self.port},
                    cause=e,
                )

            self._sock = sock
            self._address = sock.getsockname()[:2]
            self._stop_event.clear()
            self._drain_queue()

            self._dispatch_thread = threading.Thread(
                target=self._dispatch_loop, name="psk-dispatch", daemon=True
            )
            self._receive_thread = threading.Thread(
                target=self._receive_loop, name="psk-receive", daemon=True
            )
            self._dispatch_thread.start()
            self._receive_thread.start()
            self._state = ListenerState.RUNNING
        logger.info(f"Listening for PSKReporter datagrams on {self._address[0]}:{self._address[1]}")

    def stop(self) -> None:
        """Stop both threads and release the socket. Safe to call repeatedly."""
        with self._state_lock:
            if self._state in (ListenerState.STOPPED, ListenerState.STOPPING):
                return
            self._state = ListenerState.STOPPING

        logger.info("Stopping UDP listener")
        self._stop_event.set()

        sock = self._sock
        if sock is not None:
            try:
                # Wakes a blocked recvfrom on Linux; unconnected UDP still reports ENOTCONN
                sock.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug(f"Socket shutdown: {e}")

        if self._receive_thread is not None:
            self._receive_thread.join(self.receive_timeout + 1.0)
            if self._receive_thread.is_alive():
                logger.warning("Receive thread did not exit within the receive timeout")

        if sock is not None:
            sock.close()
        self._sock = None

        discarded = self._drain_queue()
        if discarded:
            logger.info(f"Discarded {discarded} queued receptions on shutdown")
        self._queue.put(_STOP)

        if self._dispatch_thread is not None:
            self._dispatch_thread.join()

        with self._state_lock:
            self._receive_thread = None
            self._dispatch_thread = None
            self._address = None
            self._state = ListenerState.STOPPED
        logger.info("UDP listener stopped")

    def __enter__(self) -> "UDPListener":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def _receive_loop(self) -> None:
        sock = self._sock
        while not self._stop_event.is_set():
            try:
                data, addr = sock.recvfrom(self.buffer_size)
            except socket.timeout:
                continue
            except OSError as e:
                if self._stop_event.is_set():
                    break
                self._stats.transient_errors += 1
                err = TransientSocketError(f"Receive failed: {e}", cause=e)
                logger.error(err.message)
                self._stop_event.wait(0.1)
                continue

            if self._stop_event.is_set():
                break
            if not data:
                continue

            self._stats.datagrams_received += 1
            logger.debug(f"Datagram of {len(data)} bytes from {addr[0]}:{addr[1]}")

            receptions = self.decoder.decode(data)
            self._stats.records_decoded += len(receptions)
            for reception in receptions:
                self._enqueue(reception)

    def _enqueue(self, reception: DecodedReception) -> None:
        try:
            self._queue.put_nowait(reception)
            self._stats.records_forwarded += 1
        except queue.Full:
            self._stats.records_dropped += 1
            now = time.monotonic()
            if now - self._last_drop_warning >= _DROP_WARNING_INTERVAL:
                self._last_drop_warning = now
                logger.warning(
                    f"Processing queue full, dropping receptions "
                    f"({self._stats.records_dropped} dropped so far)"
                )

    def _dispatch_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP or self._stop_event.is_set():
                break
            try:
                self.sink(item)
            except PSKAlertError as e:
                self._stats.sink_errors += 1
                logger.error(f"Failed to process reception from {item.transmitter_callsign}: {e.message}")
            except Exception:
                self._stats.sink_errors += 1
                logger.exception(f"Unexpected error processing reception from {item.transmitter_callsign}")

    def _drain_queue(self) -> int:
        discarded = 0
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return discarded
            discarded += 1


__all__ = ["ReceptionSink", "UDPListener"]
