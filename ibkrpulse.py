import argparse
import asyncio
import logging
import sys

from loguru import logger


class _InterceptHandler(logging.Handler):
    """Route stdlib logging calls into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _setup_logging() -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>: <level>{message}</level>",
        level="INFO",
        colorize=True,
    )
    logger.add(
        "ibkrpulse.log",
        rotation="10 MB",
        retention="30 days",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}: {message}",
        level="DEBUG",
    )
    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for noisy in ("httpx", "httpcore", "apscheduler.executors"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="ibkrpulse", description="IBKR portfolio bot and daily report")
    parser.add_argument(
        "command",
        nargs="?",
        default="bot",
        choices=("bot", "report", "health"),
        help="bot: run the Telegram bot (default); report: send the daily report once; "
             "health: exit 0 when the gateway session is authenticated",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    _setup_logging()

    if args.command == "health":
        from src.bot.services import client
        from src.gateway.health import check
        return check(client)

    from src.bot.bot import run, send_report_once
    if args.command == "report":
        return 0 if asyncio.run(send_report_once()) else 1
    asyncio.run(run())
    return 0


if __name__ == "__main__":
    sys.exit(main())
