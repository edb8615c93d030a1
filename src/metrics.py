"""Prometheus metrics for IBKR Pulse.

Exposes an HTTP endpoint (default :9090/metrics) that Prometheus can scrape.
Metric objects are module-level singletons; import and use them directly.

Metrics exposed:
  ibkrpulse_gateway_requests_total       counter  method=GET|POST, outcome=ok|error
  ibkrpulse_gateway_cache_hits_total     counter
  ibkrpulse_transactions_dropped_total   counter  reason=no_instrument|no_quantity|no_amount|not_mapping
  ibkrpulse_account_build_seconds        histogram
  ibkrpulse_reports_total                counter  result=sent|failed
  ibkrpulse_commands_total               counter  command=<name>, success=true|false
"""
import logging

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

gateway_requests_total = Counter(
    "ibkrpulse_gateway_requests_total",
    "Requests sent to the Client Portal gateway (cache misses only)",
    ["method", "outcome"],   # outcome = "ok" | "error"
)

gateway_cache_hits_total = Counter(
    "ibkrpulse_gateway_cache_hits_total",
    "Gateway responses served from the response cache",
)

transactions_dropped_total = Counter(
    "ibkrpulse_transactions_dropped_total",
    "Transactions discarded during normalization",
    ["reason"],
)

account_build_seconds = Histogram(
    "ibkrpulse_account_build_seconds",
    "Wall-clock duration of building one account view (seconds)",
    buckets=[0.5, 1, 2, 5, 10, 30, 60],
)

reports_total = Counter(
    "ibkrpulse_reports_total",
    "Daily reports built and sent",
    ["result"],   # "sent" | "failed"
)

commands_total = Counter(
    "ibkrpulse_commands_total",
    "Bot commands executed",
    ["command", "success"],   # success = "true" | "false"
)


# ---------------------------------------------------------------------------
# Server bootstrap
# ---------------------------------------------------------------------------

def start_metrics_server(port: int = 9090) -> None:
    """Start the Prometheus metrics HTTP server in a background thread.

    Logs a warning and continues if the port is already in use.
    """
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server listening on :{port}/metrics")
    except OSError as exc:
        logger.warning(f"Could not start metrics server on port {port}: {exc}")
