"""
Metrics collection for extraction passes.
Counters are updated under an asyncio lock since passes for many pages run
concurrently on one event loop.
"""
import asyncio
import time
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

from paperscout.utils.logger import setup_logger


logger = setup_logger()


@dataclass
class ExtractionMetrics:
    """Data class for extraction metrics."""
    started_at: Optional[float] = None
    passes: int = 0
    passes_extracted: int = 0
    passes_stale: int = 0
    passes_unlearned: int = 0
    passes_skipped: int = 0
    records_extracted: int = 0
    learning_requested: int = 0
    learning_deduplicated: int = 0
    learning_succeeded: int = 0
    learning_failed: int = 0
    stale_by_key: Dict[str, int] = field(default_factory=dict)

    # Derived metrics
    elapsed_time: float = 0.0
    success_rate: float = 0.0
    stale_rate: float = 0.0

    def calculate_derived_metrics(self) -> None:
        """Calculate derived metrics from base metrics."""
        if self.started_at:
            self.elapsed_time = time.time() - self.started_at

        if self.passes > 0:
            self.success_rate = self.passes_extracted / self.passes
            self.stale_rate = self.passes_stale / self.passes


class MetricsCollector:
    """Async-safe metrics collection for the extraction orchestrator."""

    def __init__(self):
        self._metrics = ExtractionMetrics(started_at=time.time())
        self._metrics_lock = asyncio.Lock()

    async def increment(self, metric_name: str, value: int = 1) -> None:
        async with self._metrics_lock:
            current = getattr(self._metrics, metric_name, 0)
            setattr(self._metrics, metric_name, current + value)

    async def record_pass(self, status: str, records: int = 0, key: Optional[str] = None) -> None:
        """Record the outcome of one extraction pass."""
        async with self._metrics_lock:
            self._metrics.passes += 1
            if status == "extracted":
                self._metrics.passes_extracted += 1
                self._metrics.records_extracted += records
            elif status == "stale":
                self._metrics.passes_stale += 1
                if key:
                    self._metrics.stale_by_key[key] = self._metrics.stale_by_key.get(key, 0) + 1
            elif status == "learning_requested":
                self._metrics.passes_unlearned += 1
            elif status == "skipped":
                self._metrics.passes_skipped += 1

    async def get_metrics_snapshot(self) -> ExtractionMetrics:
        """Get current metrics snapshot with calculated derived metrics."""
        async with self._metrics_lock:
            snapshot = replace(self._metrics, stale_by_key=self._metrics.stale_by_key.copy())

        snapshot.calculate_derived_metrics()
        return snapshot

    async def log_final_metrics(self) -> None:
        """Log a summary of all passes so far."""
        metrics = await self.get_metrics_snapshot()

        logger.info(
            f"Extraction Metrics - "
            f"Duration: {metrics.elapsed_time:.1f}s, "
            f"Passes: {metrics.passes}, "
            f"Extracted: {metrics.passes_extracted}, "
            f"Stale: {metrics.passes_stale}, "
            f"Unlearned: {metrics.passes_unlearned}, "
            f"Records: {metrics.records_extracted}, "
            f"Success Rate: {metrics.success_rate:.1%}"
        )
        logger.info(
            f"Learning - Requested: {metrics.learning_requested}, "
            f"Deduplicated: {metrics.learning_deduplicated}, "
            f"Succeeded: {metrics.learning_succeeded}, "
            f"Failed: {metrics.learning_failed}"
        )

        if metrics.stale_by_key:
            logger.info(
                "Stale Summary - " + ", ".join(
                    f"{key}: {count}" for key, count in metrics.stale_by_key.items()
                )
            )
