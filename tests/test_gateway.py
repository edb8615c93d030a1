import json

import httpx
import pytest
from prometheus_client import REGISTRY

from src.gateway.cache import ResponseCache, cache_key
from src.gateway.client import GatewayClient
from src.gateway.health import check, is_authenticated


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _client(handler, **kwargs):
    return GatewayClient("https://gw.test/v1/api/", transport=httpx.MockTransport(handler), **kwargs)


def _requests(method, outcome):
    return REGISTRY.get_sample_value(
        "ibkrpulse_gateway_requests_total", {"method": method, "outcome": outcome},
    ) or 0


# -- cache -----------------------------------------------------------------

def test_cache_key_format():
    key = cache_key("GET", "https://x/a", None, "application/json", "UA")
    assert key.startswith("ibkr_http_get_")
    assert len(key) == len("ibkr_http_get_") + 40


def test_cache_key_depends_on_body():
    a = cache_key("POST", "https://x/a", '{"a":1}', "application/json", "UA")
    b = cache_key("POST", "https://x/a", '{"a":2}', "application/json", "UA")
    assert a != b


def test_cache_expires():
    clock = FakeClock()
    cache = ResponseCache(clock=clock)
    cache.put("k", "v", ttl=300)
    clock.now += 299
    assert cache.get("k") == "v"
    clock.now += 1
    assert cache.get("k") is None
    assert len(cache) == 0


def test_cache_zero_ttl_not_stored():
    cache = ResponseCache()
    cache.put("k", "v", ttl=0)
    assert cache.get("k") is None


# -- client ----------------------------------------------------------------

def test_get_parses_json_and_sends_headers():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["ua"] = request.headers["user-agent"]
        seen["accept"] = request.headers["accept"]
        return httpx.Response(200, json=[{"accountId": "U1"}])

    resp = _client(handler, user_agent="Test/1.0").accounts()
    assert resp.ok
    assert resp.json == [{"accountId": "U1"}]
    assert seen == {
        "url": "https://gw.test/v1/api/iserver/accounts",
        "ua": "Test/1.0",
        "accept": "application/json",
    }


def test_post_sends_compact_json_body():
    bodies = []

    def handler(request):
        bodies.append(request.content.decode())
        assert request.headers["content-type"] == "application/json"
        return httpx.Response(200, json={"ok": True})

    _client(handler).transactions("U1", 265598, "EUR", days=30)
    assert json.loads(bodies[0]) == {"acctIds": ["U1"], "conids": [265598], "currency": "EUR", "days": 30}
    assert " " not in bodies[0]


def test_transactions_without_days_omits_field():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={})

    _client(handler).transactions("U1", 1, "EUR")
    assert "days" not in bodies[0]


def test_successful_responses_are_cached():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"authenticated": True})

    client = _client(handler)
    first = client.auth_status()
    second = client.auth_status()
    assert len(calls) == 1
    assert second is first


def test_http_error_is_returned_not_raised_or_cached():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="busy")

    client = _client(handler)
    before = _requests("GET", "error")
    resp = client.ledger("U1")
    client.ledger("U1")
    assert not resp.ok
    assert resp.json is None
    assert "503" in resp.error
    assert len(calls) == 2
    assert _requests("GET", "error") - before == 2


def test_transport_error_is_returned():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    resp = _client(handler).summary("U1")
    assert resp.error
    assert resp.raw is None


def test_non_json_body():
    resp = _client(lambda request: httpx.Response(200, text="<html>")).positions("U1")
    assert resp.ok
    assert resp.raw == "<html>"
    assert resp.json is None


def test_account_id_is_url_encoded():
    urls = []

    def handler(request):
        urls.append(request.url.raw_path.decode())
        return httpx.Response(200, json={})

    _client(handler).summary("U1 x")
    assert urls[0] == "/v1/api/portfolio/U1%20x/summary"


# -- health ----------------------------------------------------------------

@pytest.mark.parametrize("payload,authenticated", [
    ({"authenticated": True, "connected": True}, True),
    ({"authenticated": False}, False),
    ({"authenticated": "true"}, False),
    ([], False),
])
def test_is_authenticated(payload, authenticated):
    client = _client(lambda request: httpx.Response(200, json=payload))
    assert is_authenticated(client) is authenticated
    assert check(client) == (0 if authenticated else 1)


def test_health_fails_when_gateway_down():
    client = _client(lambda request: httpx.Response(500))
    assert check(client) == 1
