"""
Prometheus metrics collection and HTTP exposition.

Module-level metric objects are shared by every component of the process.
Components record through a [ComponentMetrics][zapview.core.metrics.ComponentMetrics]
handle bound to their ``component`` label; recording is unconditional and
cheap, and only exposition is gated by
[MetricsConfig.enabled][zapview.core.metrics.MetricsConfig].

Architecture:
    ZAPVIEW_GAUGE:              Point-in-time values (open views, pending fetches).
    ZAPVIEW_COUNTER:            Cumulative totals (batches, evictions, events).
    BATCH_DURATION_SECONDS:     Histogram of coalesced batch latency.

Label conventions:
    gauge:   {component="coordinator", name="open_views"}
    counter: {component="cache.profiles", name="evictions"}
    counter: {component="coalescer.references", name="batch_failures"}
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from pydantic import BaseModel, Field


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus metrics endpoint.

    The endpoint is only started when ``enabled`` is True.
    """

    enabled: bool = Field(default=False, description="Expose /metrics over HTTP")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


ZAPVIEW_GAUGE = Gauge(
    "zapview_gauge",
    "zapview gauge values (point-in-time state)",
    ["component", "name"],
)

ZAPVIEW_COUNTER = Counter(
    "zapview_counter",
    "zapview counter values (cumulative totals)",
    ["component", "name"],
)

BATCH_DURATION_SECONDS = Histogram(
    "zapview_batch_duration_seconds",
    "Duration of one coalesced batch in seconds",
    ["component"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 20, 30),
)


class ComponentMetrics:
    """Metric handle bound to one ``component`` label value."""

    __slots__ = ("component",)

    def __init__(self, component: str) -> None:
        self.component = component

    def inc(self, name: str, value: float = 1) -> None:
        ZAPVIEW_COUNTER.labels(component=self.component, name=name).inc(value)

    def set(self, name: str, value: float) -> None:
        ZAPVIEW_GAUGE.labels(component=self.component, name=name).set(value)

    def observe_batch(self, seconds: float) -> None:
        BATCH_DURATION_SECONDS.labels(component=self.component).observe(seconds)


class MetricsServer:
    """Async HTTP server exposing a Prometheus-compatible endpoint.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=8001))
        await server.start()
        # ... views run ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Start listening for scrape requests (no-op when disabled).

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        if not self._config.enabled or self._runner is not None:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        runner = web.AppRunner(app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self._config.host, self._config.port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner

    async def stop(self) -> None:
        """Stop the HTTP server. Idempotent."""
        if self._runner is not None:
            runner, self._runner = self._runner, None
            await runner.cleanup()

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )
