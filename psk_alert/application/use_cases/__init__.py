"""
Application use cases for PSKAlert
"""

from .alert_evaluation import AlertEvaluator, build_alert_body
from .reception_filter import ReceptionFilter

__all__ = [
    'AlertEvaluator',
    'ReceptionFilter',
    'build_alert_body',
]
