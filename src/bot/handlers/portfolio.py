import asyncio
import logging

from telegram import Update
from telegram.constants import ParseMode
from telegram.ext import ContextTypes, CommandHandler

from src.bot import services
from src.bot.access import command
from src.config import app_config
from src.portfolio.models import AccountView, PositionView
from src.reconcile.values import try_parse_decimal
from src.utils.text import (
    emoji_for_change,
    format_amount,
    format_money,
    format_percent,
    md_bold,
    md_code,
    md_escape,
    trend_emoji,
)

logger = logging.getLogger(__name__)

_SOURCE_LABELS = {"native": "native", "average_fx": "avg FX", "transactions": "txn replay"}


def _period_change(view: AccountView) -> float | None:
    values = view.nav.values
    if len(values) < 2 or values[0] == 0:
        return None
    return (values[-1] - values[0]) / values[0] * 100


def render_account(view: AccountView) -> str:
    ccy = view.base_currency
    nlv = try_parse_decimal(view.net_liquidation.value)
    nlv_ccy = view.net_liquidation.currency or ccy
    lines = [md_bold(f"🏦 Account {view.account_id}"), ""]
    lines.append(
        f"• Net liquidation: {md_code(format_money(nlv, nlv_ccy)) if nlv is not None else md_escape('n/a')}"
    )

    pnl = view.intraday_pnl
    if pnl.dpl is not None:
        lines.append(f"• Daily P&L: {md_code(format_money(pnl.dpl, ccy, True))} {emoji_for_change(pnl.dpl)}")
    if pnl.upl is not None:
        lines.append(f"• Unrealized P&L: {md_code(format_money(pnl.upl, ccy, True))}")

    change = _period_change(view)
    if change is not None:
        period = md_escape(f"{view.nav.labels[0]} → {view.nav.labels[-1]}")
        lines.append(f"• Performance {period}: {md_code(format_percent(change, 1, True))} {trend_emoji(change)}")
    elif not view.has_performance_data:
        lines.append(f"• Performance: {md_escape('n/a')}")

    if view.cash_balances:
        lines += ["", md_bold("Cash")]
        for cash in view.cash_balances:
            lines.append(f"• {md_escape(cash.currency)}: {md_code(format_money(cash.value, cash.currency))}")
    if view.base_cash_balance is not None:
        lines.append(f"• Total \\({md_escape(ccy)}\\): {md_code(format_money(view.base_cash_balance, ccy))}")
    return "\n".join(lines)


def _position_line(position: PositionView, base_currency: str) -> str:
    snap, base = position.snapshot, position.base
    qty = format_amount(snap.quantity, 4).rstrip("0").rstrip(".") if snap.quantity is not None else "n/a"
    price = format_money(snap.market_price, snap.currency) if snap.market_price is not None else "n/a"
    value = format_money(snap.market_value, snap.currency) if snap.market_value is not None else "n/a"
    line = f"• {md_escape(snap.symbol)}: {md_code(qty)} × {md_code(price)} \\= {md_code(value)}"

    if base.unrealized_base is not None:
        line += (
            f"\n  {emoji_for_change(base.unrealized_base)} P&L {md_escape(base_currency)}: "
            f"{md_code(format_money(base.unrealized_base, base_currency, True))}"
        )
        if base.unrealized_pct_base is not None:
            line += f" \\({md_code(format_percent(base.unrealized_pct_base, 1, True))}\\)"
        if base.source and base.source != "native":
            line += f" {md_escape('· ' + _SOURCE_LABELS.get(base.source, base.source))}"
    elif snap.unrealized_pnl is not None:
        line += f"\n  P&L {md_escape(snap.currency)}: {md_code(format_money(snap.unrealized_pnl, snap.currency, True))}"
    return line


def render_positions(view: AccountView, limit: int = 15) -> str:
    lines = [md_bold(f"📋 Positions {view.account_id}"), ""]
    if view.positions_error:
        lines.append(md_escape(f"❌ Positions unavailable: {view.positions_error}"))
        return "\n".join(lines)
    if not view.positions:
        lines.append(md_escape("No open positions."))
        return "\n".join(lines)
    for position in view.positions[:limit]:
        lines.append(_position_line(position, view.base_currency))
    if len(view.positions) > limit:
        lines.append(md_escape(f"… and {len(view.positions) - limit} more"))
    return "\n".join(lines)


@command("accounts")
async def cmd_accounts(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    msg = await update.message.reply_text("⏳ Loading accounts...")
    loop = asyncio.get_event_loop()
    try:
        views = await loop.run_in_executor(None, services.engine.get_accounts)
    except Exception as e:
        logger.error(f"Accounts error: {e}")
        await msg.edit_text(f"❌ Error loading accounts: {e}")
        return False

    if not views:
        await msg.edit_text("No IBKR accounts found.")
        return False
    await msg.edit_text("\n\n".join(render_account(v) for v in views), parse_mode=ParseMode.MARKDOWN_V2)
    return True


@command("positions")
async def cmd_positions(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    """Usage: /positions [ACCOUNT]"""
    limit = app_config.get("accounts", {}).get("positions_shown", 15)
    account_id = context.args[0] if context.args else None
    loop = asyncio.get_event_loop()
    try:
        if account_id:
            known = await loop.run_in_executor(None, services.engine.list_accounts)
            if account_id not in known:
                await update.message.reply_text(f"Account '{account_id}' not found.")
                return False
            views = [await loop.run_in_executor(None, services.engine.get_account, account_id)]
        else:
            views = await loop.run_in_executor(None, services.engine.get_accounts)
    except Exception as e:
        logger.error(f"Positions error: {e}")
        await update.message.reply_text(f"❌ Error loading positions: {e}")
        return False

    if not views:
        await update.message.reply_text("No IBKR accounts found.")
        return False
    for view in views:
        await update.message.reply_text(render_positions(view, limit), parse_mode=ParseMode.MARKDOWN_V2)
    return True


def get_handlers():
    return [
        CommandHandler("accounts", cmd_accounts),
        CommandHandler("positions", cmd_positions),
    ]
