"""
Metrics collection for crawler runs.
"""

import logging
from typing import Dict, Optional

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, start_http_server


VISIT_OUTCOMES = ('found', 'failed', 'duplicate', 'depth_exhausted')


class CrawlMetrics:
    """Prometheus metrics for visits, fetch latency and in-flight tasks."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.logger = logging.getLogger(__name__)
        self.registry = registry or CollectorRegistry()

        self.visits_total = Counter(
            'depthcrawl_visits_total',
            'Visits by outcome',
            ['outcome'],
            registry=self.registry
        )
        self.fetch_seconds = Histogram(
            'depthcrawl_fetch_seconds',
            'Time spent in the retrieval capability',
            registry=self.registry
        )
        self.tasks_in_flight = Gauge(
            'depthcrawl_tasks_in_flight',
            'Visit tasks spawned but not yet finished',
            registry=self.registry
        )

        self.logger.debug("Prometheus metrics initialized")

    def record_visit(self, outcome: str):
        if outcome not in VISIT_OUTCOMES:
            raise ValueError(f"Unknown visit outcome: {outcome}")
        self.visits_total.labels(outcome=outcome).inc()

    def observe_fetch(self, seconds: float):
        self.fetch_seconds.observe(seconds)

    def task_started(self):
        self.tasks_in_flight.inc()

    def task_finished(self):
        self.tasks_in_flight.dec()

    def get_summary(self) -> Dict[str, float]:
        """Current visit counts per outcome and in-flight tasks."""
        summary = {}
        for outcome in VISIT_OUTCOMES:
            value = self.registry.get_sample_value(
                'depthcrawl_visits_total', {'outcome': outcome}
            )
            summary[outcome] = value or 0.0
        summary['in_flight'] = self.registry.get_sample_value('depthcrawl_tasks_in_flight') or 0.0
        return summary

    def start_server(self, port: int):
        """Expose the registry over HTTP."""
        start_http_server(port, registry=self.registry)
        self.logger.info(f"Prometheus metrics server started on port {port}")
