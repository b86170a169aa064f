"""In-process request metrics, mirrored into Prometheus."""
from __future__ import annotations

import logging
import threading
from collections import Counter, deque
from datetime import datetime, timezone

from .models import MetricsSnapshot, RequestMetric, ValidationIssue
from .observability import PIPELINE_ERRORS, PIPELINE_OUTCOMES, PIPELINE_RETRIES, VALIDATION_ISSUES

logger = logging.getLogger(__name__)


class RagMetrics:
    """Lock-guarded counters for pipeline outcomes, retries and validation issues."""

    def __init__(self, max_recent: int = 100) -> None:
        self._lock = threading.Lock()
        self._max_recent = max_recent
        self._reset_state()

    def _reset_state(self) -> None:
        self._total = 0
        self._successful = 0
        self._failed = 0
        self._retries = 0
        self._total_response_time_ms = 0.0
        self._validation_issues: Counter[ValidationIssue] = Counter()
        self._error_types: Counter[str] = Counter()
        self._recent: deque[RequestMetric] = deque(maxlen=self._max_recent)

    def record_success(self, response_time_ms: float) -> None:
        with self._lock:
            self._total += 1
            self._successful += 1
            self._total_response_time_ms += response_time_ms
            self._recent.append(RequestMetric(datetime.now(tz=timezone.utc), response_time_ms, True))
        PIPELINE_OUTCOMES.labels("success").inc()
        logger.debug("Recorded successful request, response time: %.0fms", response_time_ms)

    def record_failure(self, error: BaseException) -> None:
        error_type = type(error).__name__
        with self._lock:
            self._total += 1
            self._failed += 1
            self._error_types[error_type] += 1
            self._recent.append(RequestMetric(datetime.now(tz=timezone.utc), 0.0, False, error_type))
        PIPELINE_OUTCOMES.labels("failure").inc()
        PIPELINE_ERRORS.labels(error_type).inc()
        logger.debug("Recorded failed request, error: %s", error_type)

    def record_retry(self) -> None:
        with self._lock:
            self._retries += 1
        PIPELINE_RETRIES.inc()

    def record_validation_failure(self, issue: ValidationIssue) -> None:
        with self._lock:
            self._validation_issues[issue] += 1
        VALIDATION_ISSUES.labels(issue.value).inc()
        logger.debug("Recorded validation issue: %s", issue.value)

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            total = self._total
            successful = self._successful
            return MetricsSnapshot(
                total_requests=total,
                successful_requests=successful,
                failed_requests=self._failed,
                total_retries=self._retries,
                success_rate=successful / total * 100 if total else 0.0,
                avg_response_time_ms=self._total_response_time_ms / successful if successful else 0.0,
                validation_issues=dict(self._validation_issues),
                error_types=dict(self._error_types),
                recent_requests=tuple(self._recent),
            )

    def reset(self) -> None:
        with self._lock:
            self._reset_state()
        logger.info("Metrics reset")
