"""
Service monitoring for PSKAlert
"""

import logging
import time
from dataclasses import asdict
from typing import Any, Dict, Optional

import psutil

from psk_alert.core.domain.models import ListenerState, utcnow
from psk_alert.core.exceptions import MonitoringError

logger = logging.getLogger(__name__)


class ServiceMonitor:
    """Collects host, process and pipeline metrics for health reporting"""

    def __init__(self, listener=None, pipeline=None, cpu_interval: float = 0.5):
        self.start_time = time.time()
        self.listener = listener
        self.pipeline = pipeline
        self.cpu_interval = cpu_interval

    def get_system_metrics(self) -> Dict[str, Any]:
        """Get current host metrics"""
        try:
            memory = psutil.virtual_memory()
            disk = psutil.disk_usage('/')
            return {
                'timestamp': utcnow().isoformat(),
                'uptime_seconds': time.time() - self.start_time,
                'cpu': {
                    'percent': psutil.cpu_percent(interval=self.cpu_interval),
                    'count': psutil.cpu_count(),
                },
                'memory': {
                    'percent': memory.percent,
                    'available_gb': round(memory.available / (1024**3), 2),
                    'total_gb': round(memory.total / (1024**3), 2),
                },
                'disk': {
                    'percent': disk.percent,
                    'free_gb': round(disk.free / (1024**3), 2),
                    'total_gb': round(disk.total / (1024**3), 2),
                },
            }
        except (psutil.Error, OSError) as e:
            logger.error(f"Error getting system metrics: {e}")
            raise MonitoringError(f"Failed to get system metrics: {e}", cause=e)

    def get_process_metrics(self) -> Dict[str, Any]:
        """Get metrics for the current process"""
        try:
            process = psutil.Process()
            with process.oneshot():
                memory_info = process.memory_info()
                return {
                    'pid': process.pid,
                    'num_threads': process.num_threads(),
                    'cpu_percent': process.cpu_percent(interval=None),
                    'memory_mb': round(memory_info.rss / (1024**2), 2),
                }
        except psutil.Error as e:
            logger.error(f"Error getting process metrics: {e}")
            raise MonitoringError(f"Failed to get process metrics: {e}", cause=e)

    def get_pipeline_metrics(self) -> Dict[str, Any]:
        """Counters of the listener, decoder and pipeline that are attached"""
        metrics: Dict[str, Any] = {}
        if self.listener is not None:
            metrics['listener'] = {
                'state': self.listener.state.value,
                'queue_depth': self.listener.queue_depth,
                **self.listener.stats.model_dump(),
            }
            metrics['decoder'] = {
                **asdict(self.listener.decoder.stats),
                'templates_cached': len(self.listener.decoder.templates),
            }
        if self.pipeline is not None:
            metrics['pipeline'] = self.pipeline.counters
        return metrics

    def check_health(self) -> Dict[str, Any]:
        """Check overall service health"""
        health: Dict[str, Any] = {
            'overall': 'healthy',
            'warnings': [],
            'errors': [],
            'uptime': self.get_uptime_string(),
        }

        try:
            system = self.get_system_metrics()
            health['system'] = system
            health['process'] = self.get_process_metrics()
        except MonitoringError as e:
            health['overall'] = 'error'
            health['errors'].append(e.message)
            return health

        if system['memory']['percent'] > 95:
            health['errors'].append('Critical memory usage (>95%)')
        elif system['memory']['percent'] > 80:
            health['warnings'].append('High memory usage (>80%)')

        if system['disk']['percent'] > 95:
            health['errors'].append('Critical disk usage (>95%)')
        elif system['disk']['percent'] > 85:
            health['warnings'].append('High disk usage (>85%)')

        pipeline = self.get_pipeline_metrics()
        health.update(pipeline)

        if self.listener is not None:
            if self.listener.state != ListenerState.RUNNING:
                health['errors'].append(f"Listener is {self.listener.state.value}")
            if pipeline['listener']['records_dropped']:
                health['warnings'].append(
                    f"{pipeline['listener']['records_dropped']} receptions dropped by backpressure"
                )

        if health['errors']:
            health['overall'] = 'critical'
        elif health['warnings']:
            health['overall'] = 'warning'
        return health

    def log_metrics(self) -> None:
        """Log a one-line summary of the service counters"""
        parts = [f"Uptime: {self.get_uptime_string()}"]
        pipeline = self.get_pipeline_metrics()
        if 'listener' in pipeline:
            stats = pipeline['listener']
            parts.append(
                f"Datagrams: {stats['datagrams_received']}, "
                f"Decoded: {stats['records_decoded']}, Dropped: {stats['records_dropped']}"
            )
        if 'pipeline' in pipeline:
            counters = pipeline['pipeline']
            parts.append(
                f"Watched: {counters['persisted']}, Alerts: {counters['notified']}"
            )
        logger.info("Service Metrics - " + " | ".join(parts))

    def get_uptime_string(self) -> str:
        """Get formatted uptime string"""
        uptime_seconds = time.time() - self.start_time
        hours = int(uptime_seconds // 3600)
        minutes = int((uptime_seconds % 3600) // 60)
        seconds = int(uptime_seconds % 60)

        if hours > 0:
            return f"{hours}h {minutes}m {seconds}s"
        elif minutes > 0:
            return f"{minutes}m {seconds}s"
        else:
            return f"{seconds}s"


__all__ = ["ServiceMonitor"]
