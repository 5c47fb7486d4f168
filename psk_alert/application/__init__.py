"""
Application layer for PSKAlert
"""

from psk_alert.application.use_cases.alert_evaluation import AlertEvaluator
from psk_alert.application.use_cases.reception_filter import ReceptionFilter
from psk_alert.application.services.orchestration import AlertSweepJob, IngestionPipeline

__all__ = [
    "AlertEvaluator",
    "ReceptionFilter",
    "AlertSweepJob",
    "IngestionPipeline",
]
