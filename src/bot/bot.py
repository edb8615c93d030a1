import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from telegram.ext import Application

from src.config import settings, app_config
from src.bot import services
from src.bot.handlers.portfolio import get_handlers as portfolio_handlers
from src.bot.handlers.report import get_handlers as report_handlers, send_daily_report
from src.bot.handlers.status import get_handlers as status_handlers
from src.bot.handlers.help import get_handlers as help_handlers
from src.metrics import start_metrics_server

logger = logging.getLogger(__name__)


def report_trigger(report_cfg: dict) -> CronTrigger:
    """Daily cron trigger at ``report.time`` (HH:MM) in ``report.timezone``."""
    hour, minute = str(report_cfg.get("time", "08:00")).split(":")
    return CronTrigger(
        hour=int(hour),
        minute=int(minute),
        timezone=report_cfg.get("timezone", "Europe/Amsterdam"),
    )


async def run() -> None:
    metrics_port = app_config.get("metrics", {}).get("port", 9090)
    start_metrics_server(metrics_port)

    if not settings.telegram_chat:
        logger.warning("TELEGRAM_CHAT is not set: commands will be ignored and no report is scheduled")

    app = Application.builder().token(settings.telegram_token).build()

    for handler in portfolio_handlers():
        app.add_handler(handler)
    for handler in report_handlers():
        app.add_handler(handler)
    for handler in status_handlers():
        app.add_handler(handler)
    for handler in help_handlers():          # ← LAST: fallback catches unknown commands
        app.add_handler(handler)

    report_cfg = app_config.get("report", {})
    scheduler = AsyncIOScheduler()
    if settings.telegram_chat:
        scheduler.add_job(
            send_daily_report,
            report_trigger(report_cfg),
            args=[app.bot, settings.telegram_chat],
            misfire_grace_time=3600,
        )

    async with app:
        await app.start()
        scheduler.start()
        logger.info(
            f"IBKR Pulse starting — daily report at {report_cfg.get('time', '08:00')} "
            f"{report_cfg.get('timezone', 'Europe/Amsterdam')}"
        )
        await app.updater.start_polling(drop_pending_updates=True)
        try:
            await asyncio.sleep(float("inf"))
        except (KeyboardInterrupt, asyncio.CancelledError):
            pass
        finally:
            scheduler.shutdown(wait=False)
            await app.updater.stop()
            await app.stop()
            services.client.close()


async def send_report_once() -> bool:
    """Build and send the daily report without starting the bot."""
    app = Application.builder().token(settings.telegram_token).build()
    async with app:
        return await send_daily_report(app.bot, settings.telegram_chat)
