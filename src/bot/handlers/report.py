import asyncio
import logging

from telegram import Bot, Update
from telegram.constants import ParseMode
from telegram.ext import ContextTypes, CommandHandler

from src.bot import services
from src.bot.access import command
from src.metrics import reports_total
from src.report.daily import ReportError, render_daily_report

logger = logging.getLogger(__name__)


async def build_report_text() -> str:
    loop = asyncio.get_event_loop()
    report = await loop.run_in_executor(None, services.report_builder.build)
    return render_daily_report(report)


async def send_daily_report(bot: Bot, chat_id: str) -> bool:
    """Scheduled job: build the daily report and post it to *chat_id*."""
    try:
        text = await build_report_text()
        await bot.send_message(chat_id=chat_id, text=text, parse_mode=ParseMode.MARKDOWN_V2)
    except ReportError as e:
        logger.error(f"Daily report not sent: {e}")
        reports_total.labels(result="failed").inc()
        return False
    except Exception as e:
        logger.error(f"Daily report failed: {e}")
        reports_total.labels(result="failed").inc()
        return False
    reports_total.labels(result="sent").inc()
    logger.info(f"Daily report sent to chat {chat_id}")
    return True


@command("report")
async def cmd_report(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    msg = await update.message.reply_text("⏳ Building daily report...")
    try:
        text = await build_report_text()
    except ReportError as e:
        await msg.edit_text(f"❌ {e}")
        return False
    except Exception as e:
        logger.error(f"Report error: {e}")
        await msg.edit_text(f"❌ Error building report: {e}")
        return False
    await msg.edit_text(text, parse_mode=ParseMode.MARKDOWN_V2)
    return True


def get_handlers():
    return [CommandHandler("report", cmd_report)]
