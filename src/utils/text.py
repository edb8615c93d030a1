"""Number formatting and Telegram MarkdownV2 helpers."""
import re

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CHF": "CHF ",
    "CAD": "C$",
    "AUD": "A$",
}

_MD_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!])")


def currency_symbol(currency: str) -> str:
    """'EUR' → '€'; unknown codes are used as a prefix ('SEK ')."""
    if not currency:
        return "$"
    return CURRENCY_SYMBOLS.get(currency, f"{currency} ")


def _sign(value) -> str:
    return "+" if value > 0 else "-" if value < 0 else ""


def format_money(value, currency: str, signed: bool = False) -> str:
    """format_money(-1234.5, 'EUR', signed=True) → '-€1,234.50'."""
    prefix = _sign(value) if signed else ""
    return f"{prefix}{currency_symbol(currency)}{abs(value):,.2f}"


def format_percent(value, decimals: int = 2, signed: bool = False) -> str:
    if value is None:
        return "n/a"
    prefix = _sign(value) if signed else ""
    return f"{prefix}{abs(value):,.{decimals}f}%"


def format_amount(value, decimals: int = 2) -> str:
    return "n/a" if value is None else f"{value:,.{decimals}f}"


def emoji_for_change(value) -> str:
    if value is None or value == 0:
        return "⚪"
    return "🟢" if value > 0 else "🔴"


def trend_emoji(value) -> str:
    if value is None:
        return ""
    if value == 0:
        return "➖"
    return "📈" if value > 0 else "📉"


def md_escape(text: str) -> str:
    return _MD_SPECIAL.sub(r"\\\1", text.replace("\\", "\\\\"))


def md_bold(text: str) -> str:
    return f"*{md_escape(text)}*"


def md_code(text: str) -> str:
    return "`" + text.replace("\\", "\\\\").replace("`", "\\`") + "`"
