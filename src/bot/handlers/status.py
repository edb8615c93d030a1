import asyncio
import logging

from telegram import Update
from telegram.ext import ContextTypes, CommandHandler

from prometheus_client import REGISTRY

from src.bot import services
from src.bot.access import command
from src.gateway.health import is_authenticated

logger = logging.getLogger(__name__)


def _get_counter(name: str, labels: dict | None = None) -> int:
    v = REGISTRY.get_sample_value(name, labels or {})
    return int(v) if v is not None else 0


def _get_float(name: str) -> float:
    v = REGISTRY.get_sample_value(name)
    return float(v) if v is not None else 0.0


def _labelled_counts(family: str, sample_name: str, label: str, **match) -> dict[str, int]:
    counts: dict[str, int] = {}
    for mf in REGISTRY.collect():
        if mf.name != family:
            continue
        for sample in mf.samples:
            if sample.name != sample_name or sample.value <= 0:
                continue
            if any(sample.labels.get(k) != v for k, v in match.items()):
                continue
            counts[sample.labels[label]] = counts.get(sample.labels[label], 0) + int(sample.value)
    return counts


def _md(name: str) -> str:
    return name.replace("_", "\\_")


def build_status_text(authenticated: bool) -> str:
    requests_ok = _get_counter("ibkrpulse_gateway_requests_total", {"method": "GET", "outcome": "ok"}) \
        + _get_counter("ibkrpulse_gateway_requests_total", {"method": "POST", "outcome": "ok"})
    requests_err = _get_counter("ibkrpulse_gateway_requests_total", {"method": "GET", "outcome": "error"}) \
        + _get_counter("ibkrpulse_gateway_requests_total", {"method": "POST", "outcome": "error"})
    cache_hits = _get_counter("ibkrpulse_gateway_cache_hits_total")

    build_sum = _get_float("ibkrpulse_account_build_seconds_sum")
    build_count = _get_float("ibkrpulse_account_build_seconds_count")
    avg_build = build_sum / build_count if build_count > 0 else None

    sent = _get_counter("ibkrpulse_reports_total", {"result": "sent"})
    failed = _get_counter("ibkrpulse_reports_total", {"result": "failed"})

    dropped = _labelled_counts(
        "ibkrpulse_transactions_dropped", "ibkrpulse_transactions_dropped_total", "reason",
    )
    cmd_counts = _labelled_counts(
        "ibkrpulse_commands", "ibkrpulse_commands_total", "command", success="true",
    )

    lines = ["📊 *IBKR Pulse — status*", ""]
    lines.append("🟢 Gateway: authenticated" if authenticated else "🔴 Gateway: not authenticated")
    lines.append(f"🌐 Requests: {requests_ok} ok · {requests_err} failed · {cache_hits} cached")

    if avg_build is not None:
        lines.append(f"⏱ Avg account build: {avg_build:.2f} s")

    lines.append(f"📰 Daily reports: {sent} sent · {failed} failed")

    if dropped:
        parts = ", ".join(f"{_md(reason)} x{n}" for reason, n in sorted(dropped.items()))
        lines.append(f"🧹 Dropped transactions: {sum(dropped.values())} ({parts})")

    if cmd_counts:
        cmd_parts = [f"{_md(cmd)} x{n}" for cmd, n in sorted(cmd_counts.items(), key=lambda x: -x[1])]
        lines.append(f"📋 Commands: {' · '.join(cmd_parts)}")
    else:
        lines.append("📋 Commands: none yet")

    lines += ["", "_Counters since last restart._"]
    return "\n".join(lines)


@command("status")
async def cmd_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Gateway session state plus operational counters since last restart."""
    loop = asyncio.get_event_loop()
    authenticated = await loop.run_in_executor(None, is_authenticated, services.client)
    await update.message.reply_text(build_status_text(authenticated), parse_mode="Markdown")


def get_handlers():
    return [CommandHandler("status", cmd_status)]
