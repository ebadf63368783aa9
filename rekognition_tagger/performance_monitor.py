"""
Performance monitoring utilities for the Rekognition Tagger service.
"""

import time
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from .logging import get_logger


@dataclass
class PerformanceMetrics:
    """Performance metrics tracking."""

    # Provider call tracking
    api_calls_total: int = 0
    api_calls_failed: int = 0
    api_response_times: List[float] = field(default_factory=list)

    # Job tracking
    jobs_scheduled: int = 0
    jobs_run: int = 0

    # Enrichment runs
    attachments_enriched: int = 0
    total_processing_time: float = 0.0
    average_processing_time: Optional[float] = None

    def update_averages(self):
        """Update calculated averages."""
        if self.attachments_enriched > 0:
            self.average_processing_time = self.total_processing_time / self.attachments_enriched

    def get_failure_rate(self) -> float:
        """Calculate provider failure rate as a percentage."""
        total = self.api_calls_total + self.api_calls_failed
        if total == 0:
            return 0.0
        return (self.api_calls_failed / total) * 100

    def get_average_response_time(self) -> float:
        if not self.api_response_times:
            return 0.0
        return sum(self.api_response_times) / len(self.api_response_times)

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for logging."""
        self.update_averages()
        return {
            "api_calls_total": self.api_calls_total,
            "api_calls_failed": self.api_calls_failed,
            "api_failure_rate_percent": round(self.get_failure_rate(), 2),
            "average_api_response_time": round(self.get_average_response_time(), 3),
            "jobs_scheduled": self.jobs_scheduled,
            "jobs_run": self.jobs_run,
            "attachments_enriched": self.attachments_enriched,
            "average_processing_time": round(self.average_processing_time or 0, 3),
        }


class PerformanceMonitor:
    """Performance monitoring and metrics collection."""

    def __init__(self):
        self.logger = get_logger("performance")
        self.metrics = PerformanceMetrics()
        self.start_time = time.time()

    def record_api_call(self, response_time: float):
        """Record a successful provider call."""
        self.metrics.api_calls_total += 1
        self.metrics.api_response_times.append(response_time)

    def record_api_failure(self):
        """Record a failed provider call."""
        self.metrics.api_calls_failed += 1

    def record_job_scheduled(self):
        self.metrics.jobs_scheduled += 1

    def record_job_run(self):
        self.metrics.jobs_run += 1

    def record_attachment_enriched(self, processing_time: float):
        """Record enrichment run completion."""
        self.metrics.attachments_enriched += 1
        self.metrics.total_processing_time += processing_time

    def get_runtime_seconds(self) -> float:
        """Get total runtime in seconds."""
        return time.time() - self.start_time

    def log_performance_summary(self):
        """Log a summary of performance metrics."""
        runtime = self.get_runtime_seconds()
        metrics_dict = self.metrics.to_dict()

        self.logger.info(
            f"📈 Performance Summary: Runtime {runtime:.1f}s, "
            f"Provider calls {metrics_dict['api_calls_total']} "
            f"({metrics_dict['api_failure_rate_percent']:.1f}% failed), "
            f"Jobs run {metrics_dict['jobs_run']}"
        )

        if self.metrics.attachments_enriched > 0:
            attachments_per_minute = self.metrics.attachments_enriched / (runtime / 60) if runtime > 0 else 0
            self.logger.info(
                f"🎯 Throughput: {attachments_per_minute:.1f} attachments/min, "
                f"{metrics_dict['average_processing_time']:.2f}s per attachment"
            )

    def get_metrics_dict(self) -> Dict[str, Any]:
        """Get all metrics as a dictionary."""
        runtime = self.get_runtime_seconds()
        metrics_dict = self.metrics.to_dict()
        metrics_dict["runtime_seconds"] = round(runtime, 2)
        return metrics_dict


# Global performance monitor instance
performance_monitor = PerformanceMonitor()
