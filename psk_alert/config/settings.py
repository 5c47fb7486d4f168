"""Configuration settings models using Pydantic."""

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from psk_alert.core.domain.models import NotifierKind, normalize_callsign


def _split_list(v):
    """Accept comma separated strings from INI files and environment variables."""
    if v is None:
        return []
    if isinstance(v, str):
        return [item.strip() for item in v.split(',') if item.strip()]
    return v


class ListenerSettings(BaseModel):
    """UDP listener configuration."""

    host: str = Field("0.0.0.0", description="Address to bind")
    port: int = Field(4739, ge=0, le=65535, description="UDP port (PSKReporter uses 4739)")
    receive_timeout_seconds: float = Field(10.0, gt=0, description="Receive timeout per loop iteration")
    buffer_size: int = Field(65535, gt=0, le=65535, description="Maximum datagram size")
    queue_size: int = Field(1000, gt=0, description="Records buffered between receive and processing")


class WatchListSettings(BaseModel):
    """Monitored callsign configuration."""

    monitored_callsigns: List[str] = Field(default_factory=list, description="Callsigns seeded at startup")
    refresh_seconds: float = Field(5.0, ge=0, description="How long a watch-list snapshot stays fresh")

    @field_validator('monitored_callsigns', mode='before')
    @classmethod
    def split_callsigns(cls, v):
        return _split_list(v)

    @field_validator('monitored_callsigns')
    @classmethod
    def normalize_callsigns(cls, v):
        return [normalize_callsign(c) for c in v if c.strip()]


class AlertSettings(BaseModel):
    """Alert thresholds and delivery configuration."""

    enabled: bool = Field(True, description="Enable alerting")
    snr_threshold: int = Field(10, description="Global SNR threshold in dB")
    distance_threshold: int = Field(1000, ge=0, description="Global distance threshold in km")
    recipients: List[str] = Field(default_factory=list, description="Alert recipients")
    notifier: NotifierKind = Field(NotifierKind.LOG, description="Notification transport (log/email/mqtt)")
    subject_prefix: str = Field("PSKReporter Alert", description="Alert subject prefix")
    sweep_interval_seconds: float = Field(300.0, ge=0, description="Pending-alert sweep interval, 0 disables")

    @field_validator('recipients', mode='before')
    @classmethod
    def split_recipients(cls, v):
        return _split_list(v)

    @field_validator('notifier', mode='before')
    @classmethod
    def validate_notifier(cls, v):
        if isinstance(v, str):
            return v.lower()
        return v


class EmailSettings(BaseModel):
    """SMTP configuration for the email notifier."""

    smtp_host: Optional[str] = Field(None, description="SMTP server hostname")
    smtp_port: int = Field(587, gt=0, le=65535, description="SMTP server port")
    username: Optional[str] = Field(None, description="SMTP username")
    password: Optional[str] = Field(None, description="SMTP password")
    use_tls: bool = Field(True, description="Issue STARTTLS before login")
    from_address: str = Field("psk-alert@localhost", description="Sender address")
    timeout_seconds: float = Field(20.0, gt=0, description="SMTP timeout")


class MQTTSettings(BaseModel):
    """MQTT broker configuration."""

    enabled: bool = Field(False, description="Enable MQTT publishing")
    broker_host: str = Field("localhost", description="MQTT broker hostname")
    broker_port: int = Field(1883, gt=0, le=65535, description="MQTT broker port")
    username: Optional[str] = Field(None, description="MQTT username")
    password: Optional[str] = Field(None, description="MQTT password")
    client_id: str = Field("psk_alert", description="MQTT client ID")
    topic_prefix: str = Field("psk_alert", description="Topic prefix")
    qos: int = Field(1, ge=0, le=2, description="Quality of service level")
    keepalive_seconds: int = Field(60, gt=0, description="Keepalive interval")
    tls_enabled: bool = Field(False, description="Enable TLS encryption")


class StorageSettings(BaseModel):
    """Report storage configuration."""

    database_path: Path = Field(Path("data/psk_alert.db"), description="SQLite database file")
    log_directory: Path = Field(Path("logs"), description="Log file directory")
    retention_days: int = Field(30, gt=0, description="Report retention period")


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field("INFO", description="Log level")
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format"
    )
    file_enabled: bool = Field(True, description="Enable file logging")
    console_enabled: bool = Field(True, description="Enable console logging")
    max_file_size_mb: int = Field(10, gt=0, description="Maximum log file size")
    backup_count: int = Field(5, gt=0, description="Number of backup log files")

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()


class PSKAlertSettings(BaseModel):
    """Main configuration settings for PSKAlert."""

    # Core settings
    environment: str = Field("development", description="Environment (dev/prod/test)")

    # Component settings - use Optional and provide defaults in methods
    listener: Optional[ListenerSettings] = None
    watchlist: Optional[WatchListSettings] = None
    alert: Optional[AlertSettings] = None
    email: Optional[EmailSettings] = None
    mqtt: Optional[MQTTSettings] = None
    storage: Optional[StorageSettings] = None
    logging: Optional[LoggingSettings] = None

    @model_validator(mode='after')
    def fill_defaults(self):
        # Initialize with defaults if not provided
        if self.listener is None:
            self.listener = ListenerSettings()
        if self.watchlist is None:
            self.watchlist = WatchListSettings()
        if self.alert is None:
            self.alert = AlertSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.mqtt is None:
            self.mqtt = MQTTSettings()
        if self.storage is None:
            self.storage = StorageSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        return self

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        valid_envs = ['development', 'production', 'testing']
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of: {valid_envs}")
        return v.lower()

    def get_log_path(self, filename: str) -> Path:
        """Get full path to a log file."""
        return self.storage.log_directory / filename
