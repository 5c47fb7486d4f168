"""Application services for PSKAlert."""

from .orchestration import AlertSweepJob, IngestionPipeline

__all__ = ["AlertSweepJob", "IngestionPipeline"]
