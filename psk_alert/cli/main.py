"""
Command Line Interface for PSKAlert
"""

import logging
import random
import signal
import socket
import threading
import time
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from psk_alert import __version__
from psk_alert.config.manager import ConfigurationManager
from psk_alert.config.settings import PSKAlertSettings
from psk_alert.core.domain.models import DecodedReception, utcnow
from psk_alert.core.exceptions import BindError, ConfigurationError, PSKAlertError
from psk_alert.core.services.geo import latlon_to_locator

# Create the main app
app = typer.Typer(
    name="psk-alert",
    help="PSKReporter reception monitoring and alerting",
    add_completion=False
)

# Rich console for better output
console = Console()

# Sub-commands
watchlist_app = typer.Typer(help="Monitored callsign commands")
reports_app = typer.Typer(help="Stored reception report commands")
alerts_app = typer.Typer(help="Alert delivery commands")
config_app = typer.Typer(help="Configuration commands")
system_app = typer.Typer(help="System management commands")

app.add_typer(watchlist_app, name="watchlist")
app.add_typer(reports_app, name="reports")
app.add_typer(alerts_app, name="alerts")
app.add_typer(config_app, name="config")
app.add_typer(system_app, name="system")

logger = logging.getLogger(__name__)

# Common ham radio FT8 dial frequencies (in Hz)
DEMO_FREQUENCIES = (
    3_573_000,   # 80m
    7_074_000,   # 40m
    10_136_000,  # 30m
    14_074_000,  # 20m
    18_100_000,  # 17m
    21_074_000,  # 15m
    24_915_000,  # 12m
    28_074_000,  # 10m
)
DEMO_MODES = ("FT8", "FT4", "CW", "SSB", "PSK31")
DEMO_RECEIVERS = ("K2ABC", "W3XYZ", "N4QRS", "KD5TUV", "VE6WXY")


class _State:
    config_path: Optional[Path] = None


state = _State()


def setup_logging(verbose: bool = False):
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    handler = RichHandler(console=console, rich_tracebacks=True)
    handler.setLevel(level)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler]
    )


def load_settings() -> PSKAlertSettings:
    try:
        return ConfigurationManager(state.config_path).to_settings()
    except ConfigurationError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)


def open_report_store(settings: PSKAlertSettings):
    from psk_alert.infrastructure.storage import SQLiteReportStore
    return SQLiteReportStore(settings.storage.database_path)


def open_watchlist(settings: PSKAlertSettings):
    from psk_alert.infrastructure.storage import SQLiteWatchList
    return SQLiteWatchList(settings.storage.database_path, settings.watchlist.refresh_seconds)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file (default config/config.ini)"),
):
    """PSKAlert - PSKReporter reception monitoring and alerting"""
    setup_logging(verbose)
    state.config_path = config


@app.command("run")
def run_service(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (overrides config)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="UDP port (overrides config)"),
    metrics_interval: float = typer.Option(300.0, "--metrics-interval", help="Seconds between service metric logs"),
):
    """Listen for PSKReporter datagrams and raise alerts"""
    from psk_alert.application.services.orchestration import AlertSweepJob, IngestionPipeline
    from psk_alert.application.use_cases.alert_evaluation import AlertEvaluator
    from psk_alert.core.services.decoder import MessageDecoder
    from psk_alert.infrastructure.listener import UDPListener
    from psk_alert.infrastructure.messaging import MQTTNotifier, build_notifier
    from psk_alert.infrastructure.monitoring import ServiceMonitor
    from psk_alert.utils.logger import setup_logging as setup_file_logging

    settings = load_settings()
    # Console output stays with the rich handler
    setup_file_logging(
        settings.logging.model_copy(update={'console_enabled': False}),
        log_dir=str(settings.storage.log_directory),
    )

    try:
        store = open_report_store(settings)
        watchlist = open_watchlist(settings)
        added = watchlist.seed(settings.watchlist.monitored_callsigns)
        notifier = build_notifier(settings)
    except PSKAlertError as e:
        console.print(f"[red]Startup failed: {e.message}[/red]")
        raise typer.Exit(1)

    if not settings.watchlist.monitored_callsigns:
        logger.warning("No monitored callsigns configured")
    console.print(f"[bold green]Starting PSKAlert {__version__}[/bold green]")
    console.print(
        f"Watching {len(watchlist.snapshot())} callsign(s) ({added} new), "
        f"notifier: {settings.alert.notifier.value}"
    )

    evaluator = AlertEvaluator(settings.alert, notifier, store, watchlist)
    pipeline = IngestionPipeline(watchlist, store, evaluator)
    listener = UDPListener(
        host or settings.listener.host,
        settings.listener.port if port is None else port,
        MessageDecoder(),
        pipeline.handle,
        receive_timeout=settings.listener.receive_timeout_seconds,
        queue_size=settings.listener.queue_size,
        buffer_size=settings.listener.buffer_size,
    )
    sweep = AlertSweepJob(evaluator, store, watchlist, settings.alert.sweep_interval_seconds)
    monitor = ServiceMonitor(listener=listener, pipeline=pipeline)

    stop_requested = threading.Event()

    def _request_stop(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stop_requested.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    try:
        listener.start()
    except BindError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    try:
        sweep.start()
        while not stop_requested.wait(metrics_interval):
            monitor.log_metrics()
    finally:
        sweep.stop()
        listener.stop()
        if isinstance(notifier, MQTTNotifier) and notifier.connected:
            notifier.disconnect()
        counters = pipeline.counters
        console.print(
            f"[yellow]Stopped.[/yellow] Receptions: {counters['seen']}, "
            f"saved: {counters['persisted']}, alerts: {counters['notified']}"
        )


@watchlist_app.command("add")
def watchlist_add(
    callsign: str = typer.Argument(..., help="Callsign to monitor"),
    snr: Optional[int] = typer.Option(None, "--snr", help="SNR threshold override in dB"),
    distance: Optional[int] = typer.Option(None, "--distance", help="Distance threshold override in km"),
):
    """Start monitoring a callsign"""
    settings = load_settings()
    try:
        entry = open_watchlist(settings).add(callsign, snr_threshold=snr, distance_threshold=distance)
    except (PSKAlertError, ValueError) as e:
        console.print(f"[red]Cannot add {callsign}: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Monitoring {entry.callsign}[/green]")


@watchlist_app.command("remove")
def watchlist_remove(callsign: str = typer.Argument(..., help="Callsign to stop monitoring")):
    """Stop monitoring a callsign"""
    settings = load_settings()
    entry = open_watchlist(settings).remove(callsign)
    if entry is None:
        console.print(f"[yellow]{callsign.strip().upper()} is not monitored[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]Stopped monitoring {entry.callsign}[/green]")


@watchlist_app.command("list")
def watchlist_list(
    show_all: bool = typer.Option(False, "--all", "-a", help="Include inactive callsigns"),
):
    """List monitored callsigns"""
    settings = load_settings()
    watchlist = open_watchlist(settings)
    entries = watchlist.all_entries() if show_all else watchlist.active_entries()

    if not entries:
        console.print("[yellow]No monitored callsigns[/yellow]")
        return

    table = Table(title="Monitored Callsigns", show_header=True, header_style="bold magenta")
    table.add_column("Callsign", style="cyan")
    table.add_column("Active")
    table.add_column("SNR threshold", justify="right")
    table.add_column("Distance threshold", justify="right")
    table.add_column("Added")

    for entry in entries:
        table.add_row(
            entry.callsign,
            "yes" if entry.active else "no",
            f"{entry.snr_threshold} dB" if entry.snr_threshold is not None else f"({settings.alert.snr_threshold} dB)",
            f"{entry.distance_threshold} km" if entry.distance_threshold is not None else f"({settings.alert.distance_threshold} km)",
            entry.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@reports_app.command("list")
def reports_list(
    callsign: Optional[str] = typer.Option(None, "--callsign", help="Transmitter callsign"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum number of reports"),
    hours: Optional[int] = typer.Option(None, "--hours", help="Only reports from the last N hours"),
):
    """Show the most recent reception reports"""
    settings = load_settings()
    since = utcnow() - timedelta(hours=hours) if hours else None
    reports = open_report_store(settings).recent(callsign=callsign, limit=limit, since=since)

    if not reports:
        console.print("[yellow]No reports found[/yellow]")
        return

    table = Table(title="Reception Reports", show_header=True, header_style="bold magenta")
    table.add_column("ID", justify="right")
    table.add_column("Time (UTC)")
    table.add_column("TX", style="cyan")
    table.add_column("RX")
    table.add_column("MHz", justify="right")
    table.add_column("Mode")
    table.add_column("SNR", justify="right")
    table.add_column("km", justify="right")
    table.add_column("Alert")

    for report in reports:
        table.add_row(
            str(report.id),
            report.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            report.transmitter_callsign,
            report.receiver_callsign,
            f"{report.frequency_mhz:.3f}",
            report.mode or "-",
            "-" if report.snr_db is None else str(report.snr_db),
            "-" if report.distance_km is None else str(report.distance_km),
            "[green]sent[/green]" if report.notified else "",
        )
    console.print(table)


@reports_app.command("show")
def reports_show(report_id: int = typer.Argument(..., help="Report ID")):
    """Show one reception report"""
    from psk_alert.application.use_cases.alert_evaluation import format_location

    settings = load_settings()
    report = open_report_store(settings).get(report_id)
    if report is None:
        console.print(f"[red]Report {report_id} not found[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Report {report_id}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Transmitter", report.transmitter_callsign)
    table.add_row("Receiver", report.receiver_callsign)
    table.add_row("Frequency", f"{report.frequency_hz:,} Hz ({report.frequency_mhz:.3f} MHz)")
    table.add_row("Mode", report.mode or "Unknown")
    table.add_row("SNR", "Unknown" if report.snr_db is None else f"{report.snr_db} dB")
    table.add_row("Distance", "Unknown" if report.distance_km is None else f"{report.distance_km} km")
    table.add_row("Timestamp", report.timestamp.isoformat())
    table.add_row("Transmitter location",
                  format_location(report.transmitter_latitude, report.transmitter_longitude))
    table.add_row("Receiver location",
                  format_location(report.receiver_latitude, report.receiver_longitude))
    table.add_row("Alert sent", "yes" if report.notified else "no")
    console.print(table)


@reports_app.command("cleanup")
def reports_cleanup(
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Maximum report age (default: retention_days)"),
):
    """Delete old reception reports"""
    settings = load_settings()
    max_age = days if days is not None else settings.storage.retention_days
    removed = open_report_store(settings).cleanup_old_reports(max_age)
    console.print(f"[green]Removed {removed} report(s) older than {max_age} days[/green]")


def _build_evaluator(settings: PSKAlertSettings):
    from psk_alert.application.use_cases.alert_evaluation import AlertEvaluator
    from psk_alert.infrastructure.messaging import build_notifier

    store = open_report_store(settings)
    watchlist = open_watchlist(settings)
    return AlertEvaluator(settings.alert, build_notifier(settings), store, watchlist), store, watchlist


@alerts_app.command("sweep")
def alerts_sweep():
    """Re-evaluate stored reports that were never notified"""
    from psk_alert.application.services.orchestration import AlertSweepJob

    settings = load_settings()
    try:
        evaluator, store, watchlist = _build_evaluator(settings)
        notified = AlertSweepJob(evaluator, store, watchlist).run_once()
    except PSKAlertError as e:
        console.print(f"[red]Sweep failed: {e.message}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Delivered {notified} pending alert(s)[/green]")


@alerts_app.command("test")
def alerts_test(
    to: Optional[List[str]] = typer.Option(None, "--to", help="Recipient (repeatable, overrides config)"),
):
    """Send a test notification through the configured notifier"""
    from psk_alert.infrastructure.messaging import build_notifier

    settings = load_settings()
    recipients = to or settings.alert.recipients
    try:
        delivered = build_notifier(settings).send(
            recipients,
            f"{settings.alert.subject_prefix}: test",
            "This is a test alert from PSKAlert.",
        )
    except PSKAlertError as e:
        console.print(f"[red]Test alert failed: {e.message}[/red]")
        raise typer.Exit(1)

    if not delivered:
        console.print("[yellow]Test alert was not delivered[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]Test alert sent via {settings.alert.notifier.value}[/green]")


def random_reception(callsigns: List[str], rng: random.Random) -> DecodedReception:
    """A synthetic North American reception for one of the callsigns."""
    tx_lat = 35.0 + rng.random() * 15.0
    tx_lon = -120.0 + rng.random() * 40.0
    rx_lat = 35.0 + rng.random() * 15.0
    rx_lon = -120.0 + rng.random() * 40.0
    return DecodedReception(
        transmitter_callsign=rng.choice(callsigns),
        receiver_callsign=rng.choice(DEMO_RECEIVERS),
        frequency_hz=rng.choice(DEMO_FREQUENCIES),
        snr_db=rng.randint(-10, 24),
        mode=rng.choice(DEMO_MODES),
        transmitter_locator=latlon_to_locator(tx_lat, tx_lon),
        receiver_locator=latlon_to_locator(rx_lat, rx_lon),
        transmitter_latitude=tx_lat,
        transmitter_longitude=tx_lon,
        receiver_latitude=rx_lat,
        receiver_longitude=rx_lon,
        timestamp=utcnow(),
    )


@app.command("simulate")
def simulate(
    host: str = typer.Option("127.0.0.1", "--host", help="Listener address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Listener port (default from config)"),
    count: int = typer.Option(10, "--count", "-n", help="Number of datagrams to send"),
    interval: float = typer.Option(1.0, "--interval", "-i", help="Seconds between datagrams"),
    callsign: Optional[List[str]] = typer.Option(None, "--callsign", help="Transmitter callsign (repeatable)"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed"),
):
    """Send synthetic PSKReporter datagrams to a listener"""
    from psk_alert.core.services.encoder import MessageEncoder

    settings = load_settings()
    callsigns = [c.strip().upper() for c in callsign] if callsign else []
    if not callsigns:
        callsigns = open_watchlist(settings).snapshot().callsigns or settings.watchlist.monitored_callsigns
    if not callsigns:
        console.print("[red]No callsigns to simulate; pass --callsign or configure the watch-list[/red]")
        raise typer.Exit(1)

    target = (host, settings.listener.port if port is None else port)
    rng = random.Random(seed)
    encoder = MessageEncoder()
    console.print(f"[bold green]Sending {count} datagram(s) to {target[0]}:{target[1]}[/bold green]")

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        for i in range(count):
            # 1-3 receptions per datagram
            receptions = [random_reception(callsigns, rng) for _ in range(rng.randint(1, 3))]
            sock.sendto(encoder.encode(receptions), target)
            for r in receptions:
                console.print(
                    f"{r.transmitter_callsign} -> {r.receiver_callsign} "
                    f"{r.frequency_mhz:.3f} MHz {r.mode} SNR {r.snr_db} dB"
                )
            if i < count - 1:
                time.sleep(interval)
    except OSError as e:
        console.print(f"[red]Send failed: {e}[/red]")
        raise typer.Exit(1)
    finally:
        sock.close()


@config_app.command("show")
def config_show():
    """Show the effective configuration"""
    manager = ConfigurationManager(state.config_path)
    console.print(f"[bold blue]Configuration[/bold blue] ({manager.config_path})")

    for section, values in manager.to_dict().items():
        table = Table(title=section, show_header=True, header_style="bold magenta")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        for key, value in values.items():
            if 'password' in key and value:
                value = '********'
            table.add_row(key, str(value))
        console.print(table)


@config_app.command("create")
def config_create(
    path: Optional[Path] = typer.Option(None, "--path", help="Where to write the file"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
):
    """Write a configuration file with default values"""
    target = path or state.config_path or Path("config/config.ini")
    if target.exists() and not force:
        console.print(f"[yellow]{target} already exists (use --force to overwrite)[/yellow]")
        raise typer.Exit(1)

    try:
        saved = ConfigurationManager(config_path=target, use_environment=False, load_file=False).save_configuration()
    except ConfigurationError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Configuration written to {saved}[/green]")


@config_app.command("validate")
def config_validate():
    """Check the configuration for missing or inconsistent values"""
    try:
        ConfigurationManager(state.config_path).validate_configuration()
    except ConfigurationError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)
    console.print("[green]Configuration is valid[/green]")


@system_app.command("health")
def system_health():
    """Show service and host health"""
    from psk_alert.infrastructure.monitoring import ServiceMonitor

    settings = load_settings()
    health = ServiceMonitor().check_health()

    colour = {'healthy': 'green', 'warning': 'yellow'}.get(health['overall'], 'red')
    console.print(f"[bold]Overall:[/bold] [{colour}]{health['overall']}[/{colour}]")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Resource")
    table.add_column("Usage")
    table.add_column("Available")
    table.add_column("Total")

    system = health.get('system')
    if system:
        table.add_row(
            "CPU", f"{system['cpu']['percent']:.1f}%",
            f"{system['cpu']['count']} cores", f"{system['cpu']['count']} cores"
        )
        table.add_row(
            "Memory", f"{system['memory']['percent']:.1f}%",
            f"{system['memory']['available_gb']:.1f} GB", f"{system['memory']['total_gb']:.1f} GB"
        )
        table.add_row(
            "Disk", f"{system['disk']['percent']:.1f}%",
            f"{system['disk']['free_gb']:.1f} GB", f"{system['disk']['total_gb']:.1f} GB"
        )
        console.print(table)

    try:
        store = open_report_store(settings)
        watchlist = open_watchlist(settings)
        console.print(f"[bold]Database:[/bold] {settings.storage.database_path}")
        console.print(f"[bold]Stored reports:[/bold] {store.count()}")
        console.print(f"[bold]Monitored callsigns:[/bold] {len(watchlist.snapshot())}")
    except PSKAlertError as e:
        console.print(f"[red]Database unavailable: {e.message}[/red]")
        raise typer.Exit(1)

    for warning in health['warnings']:
        console.print(f"[yellow]- {warning}[/yellow]")
    for error in health['errors']:
        console.print(f"[red]- {error}[/red]")


@app.command("version")
def version():
    """Show version information"""
    console.print(f"[bold green]PSKAlert v{__version__}[/bold green]")
    console.print("PSKReporter reception monitoring and alerting")


if __name__ == "__main__":
    app()
