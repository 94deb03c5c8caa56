"""Prometheus metrics for slashoor."""

import logging
import threading

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Info,
    start_http_server,
)

logger = logging.getLogger(__name__)

DEFAULT_METRICS_PORT = 8008
METRICS_NAMESPACE = "slashoor"


class SlashingMetrics:
    """Counters for processed blocks and detected slashings.

    prometheus_client metrics are safe to update from concurrent handlers.
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.registry = registry

        self.release = Info(
            "release",
            "Release version",
            namespace=METRICS_NAMESPACE,
            registry=registry,
        )

        self.ready = Gauge(
            "ready",
            "Whether the service is ready (1) or not (0)",
            namespace=METRICS_NAMESPACE,
            registry=registry,
        )

        self.blocks_processed = Counter(
            "blocks_processed_total",
            "Total number of blocks processed",
            namespace=METRICS_NAMESPACE,
            registry=registry,
        )

        self.slashings = Counter(
            "slashings_total",
            "Register of slashings found",
            ["index"],
            namespace=METRICS_NAMESPACE,
            registry=registry,
        )

    def set_release(self, version: str) -> None:
        self.release.info({"version": version})

    def set_ready(self, ready: bool) -> None:
        self.ready.set(1 if ready else 0)

    def record_block_processed(self) -> None:
        """Record a block having been checked for slashings."""
        self.blocks_processed.inc()

    def record_slashing(self, validator_index: int) -> None:
        """Record a slashing of the given validator."""
        self.slashings.labels(index=str(validator_index)).inc()


_server_started = False
_server_lock = threading.Lock()


def start_metrics_server(
    port: int = DEFAULT_METRICS_PORT,
    registry: CollectorRegistry = REGISTRY,
) -> bool:
    """Start the Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default 8008)
        registry: Registry to expose

    Returns:
        True if server started successfully, False if already running
    """
    global _server_started

    with _server_lock:
        if _server_started:
            logger.warning("Metrics server already running")
            return False

        try:
            start_http_server(port, registry=registry)
        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False
        _server_started = True
        logger.info(f"Prometheus metrics server started on port {port}")
        return True
