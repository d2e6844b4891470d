"""Prometheus metrics for the SEO report service."""

from prometheus_client import Counter, Histogram, Info

from seoreport import __version__


class ReportMetrics:
    """Metrics collection for report generation."""

    def __init__(self) -> None:
        # Application info
        self.info = Info("seoreport", "SEO report service")
        self.info.info({"version": __version__, "provider": "dataforseo"})

        # Request counters
        self.http_requests_total = Counter(
            "seoreport_http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status"],
        )

        self.rate_limit_total = Counter(
            "seoreport_rate_limit_total",
            "Total number of rate limit checks",
            ["result"],
        )

        self.reports_total = Counter(
            "seoreport_reports_total",
            "Total number of reports built",
            ["tier"],
        )

        self.sections_total = Counter(
            "seoreport_sections_total",
            "Report sections by outcome",
            ["section", "status"],
        )

        self.upstream_calls_total = Counter(
            "seoreport_upstream_calls_total",
            "Total upstream API calls",
            ["endpoint", "outcome"],
        )

        self.usage_events_total = Counter(
            "seoreport_usage_events_total",
            "Usage events recorded",
            ["action", "result"],
        )

        # Latency histograms
        self.http_request_duration = Histogram(
            "seoreport_http_request_duration_seconds",
            "Duration of HTTP requests",
            ["method", "endpoint"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
        )

        self.report_duration = Histogram(
            "seoreport_report_duration_seconds",
            "Duration of report assembly",
            ["tier"],
            buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
        )

        self.upstream_latency = Histogram(
            "seoreport_upstream_latency_seconds",
            "Upstream API call latency",
            ["endpoint"],
            buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
        )


# Singleton instance
metrics = ReportMetrics()
