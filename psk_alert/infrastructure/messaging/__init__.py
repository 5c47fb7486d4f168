"""
Alert delivery for PSKAlert: log, email and MQTT notifiers
"""

import json
import logging
import smtplib
import threading
import time
from email.mime.text import MIMEText
from typing import Optional, Sequence

import paho.mqtt.client as mqtt

from psk_alert.config.settings import EmailSettings, MQTTSettings, PSKAlertSettings
from psk_alert.core.domain.models import NotifierKind, utcnow
from psk_alert.core.exceptions import ConfigurationError, NetworkError, NotificationError

logger = logging.getLogger(__name__)


class LogNotifier:
    """Writes alerts to the log. Used when no transport is configured."""

    def __init__(self) -> None:
        self.sent = 0

    def send(self, recipients: Sequence[str], subject: str, body: str) -> bool:
        to = ", ".join(recipients) if recipients else "(no recipients)"
        logger.info(f"ALERT to {to}: {subject}\n{body}")
        self.sent += 1
        return True


class EmailNotifier:
    """Sends plain-text alerts through an SMTP server."""

    def __init__(self, settings: EmailSettings) -> None:
        if not settings.smtp_host:
            raise ConfigurationError("SMTP host is required for email alerts")
        self.settings = settings

    def send(self, recipients: Sequence[str], subject: str, body: str) -> bool:
        if not recipients:
            logger.warning(f"No recipients configured, alert not emailed: {subject}")
            return False

        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self.settings.from_address
        msg["To"] = ", ".join(recipients)

        try:
            with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port,
                              timeout=self.settings.timeout_seconds) as s:
                if self.settings.use_tls:
                    s.starttls()
                if self.settings.username and self.settings.password:
                    s.login(self.settings.username, self.settings.password)
                s.sendmail(self.settings.from_address, list(recipients), msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Failed to send alert email: {e}", cause=e)

        logger.info(f"Alert email sent to {len(recipients)} recipient(s): {subject}")
        return True


class MQTTNotifier:
    """Publishes alerts as JSON to ``<topic_prefix>/alert``."""

    def __init__(self, settings: MQTTSettings, client: Optional[mqtt.Client] = None) -> None:
        self.settings = settings
        self.topic = f"{settings.topic_prefix}/alert"
        self.connected = False
        self._lock = threading.Lock()
        self.client = client or mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2, client_id=settings.client_id
        )
        self._setup_client()

    def _setup_client(self) -> None:
        """Setup MQTT client with callbacks"""
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_publish = self._on_publish

        if self.settings.username and self.settings.password:
            self.client.username_pw_set(self.settings.username, self.settings.password)
        if self.settings.tls_enabled:
            self.client.tls_set()

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            self.connected = False
            logger.error(f"Failed to connect to MQTT broker: {reason_code}")
        else:
            self.connected = True
            logger.info(f"Connected to MQTT broker at {self.settings.broker_host}:{self.settings.broker_port}")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        self.connected = False
        if reason_code.is_failure:
            logger.warning(f"Unexpected disconnection from MQTT broker: {reason_code}")
        else:
            logger.info("Disconnected from MQTT broker")

    def _on_publish(self, client, userdata, mid, reason_code, properties):
        logger.debug(f"Message {mid} published")

    def connect(self, timeout: float = 10.0) -> bool:
        """Connect to the broker and wait until the session is up."""
        try:
            logger.info(f"Connecting to MQTT broker at {self.settings.broker_host}:{self.settings.broker_port}")
            self.client.connect(self.settings.broker_host, self.settings.broker_port,
                                self.settings.keepalive_seconds)
            self.client.loop_start()
        except OSError as e:
            raise NetworkError(f"Failed to connect to MQTT broker: {e}", cause=e)

        deadline = time.monotonic() + timeout
        while not self.connected and time.monotonic() < deadline:
            time.sleep(0.1)
        return self.connected

    def disconnect(self) -> None:
        self.client.loop_stop()
        self.client.disconnect()
        self.connected = False

    def send(self, recipients: Sequence[str], subject: str, body: str) -> bool:
        with self._lock:
            if not self.connected:
                try:
                    if not self.connect():
                        logger.warning("Not connected to MQTT broker")
                        return False
                except NetworkError as e:
                    raise NotificationError(f"MQTT broker unavailable: {e}", cause=e)

            message = {
                'timestamp': utcnow().isoformat(),
                'type': 'alert',
                'recipients': list(recipients),
                'subject': subject,
                'body': body,
            }
            result = self.client.publish(self.topic, json.dumps(message), qos=self.settings.qos)

        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"Failed to publish alert: {mqtt.error_string(result.rc)}")
            return False
        logger.debug(f"Alert published to {self.topic}")
        return True


def build_notifier(settings: PSKAlertSettings):
    """Create the notifier selected by ``alert.notifier``."""
    kind = settings.alert.notifier
    if kind == NotifierKind.EMAIL:
        return EmailNotifier(settings.email)
    if kind == NotifierKind.MQTT:
        return MQTTNotifier(settings.mqtt)
    return LogNotifier()


__all__ = ["EmailNotifier", "LogNotifier", "MQTTNotifier", "build_notifier"]
