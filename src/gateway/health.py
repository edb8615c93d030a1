"""Container health check: healthy while the gateway session is authenticated."""
import logging

from src.gateway.client import GatewayClient

logger = logging.getLogger(__name__)


def is_authenticated(client: GatewayClient) -> bool:
    data = client.auth_status().json
    return isinstance(data, dict) and data.get("authenticated") is True


def check(client: GatewayClient) -> int:
    """Exit status for the health check: 0 authenticated, 1 otherwise."""
    if is_authenticated(client):
        return 0
    logger.warning("Gateway session is not authenticated")
    return 1
