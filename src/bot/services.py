"""Process-wide gateway client and account engine shared by the handlers and jobs."""
from src.config import app_config, settings
from src.gateway.client import GatewayClient
from src.portfolio.engine import AccountEngine
from src.report.daily import DailyReportBuilder

_accounts_cfg = app_config.get("accounts", {})

client = GatewayClient.from_settings(settings)
engine = AccountEngine(
    client,
    transaction_days=settings.transaction_days,
    performance_period=_accounts_cfg.get("performance_period", "30D"),
    fallback_period=_accounts_cfg.get("fallback_period", "1M"),
)
report_builder = DailyReportBuilder(client, app_config.get("report", {}))
