"""
Prober tests: verdicts, latency, TLS inference and error normalization.

Run with:
    pytest tests/test_checker.py -v
"""

import threading
import time
from collections import namedtuple
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import httpx
import pytest

from ai_magellan.core.config import settings
from ai_magellan.worker import checker
from ai_magellan.worker.checker import (
    PROBE_ERROR,
    PROBE_OFFLINE,
    PROBE_ONLINE,
    PROBE_SLOW,
    probe_batch,
    probe_url,
)

_Item = namedtuple("_Item", "id url")


def test_ok_response_is_online(site_handlers, http_client):
    site_handlers["ok.test"] = lambda req: httpx.Response(200)

    result = probe_url("https://ok.test/", client=http_client)

    assert result.alive is True
    assert result.status == PROBE_ONLINE
    assert result.status_code == 200
    assert result.ssl_enabled is True
    assert result.response_time_ms is not None and result.response_time_ms >= 0
    assert result.error is None


def test_plain_http_is_not_ssl(site_handlers, http_client):
    site_handlers["plain.test"] = lambda req: httpx.Response(204)

    result = probe_url("http://plain.test/", client=http_client)

    assert result.alive is True
    assert result.ssl_enabled is False


def test_sends_head_with_user_agent(site_handlers, http_client, probe_requests):
    site_handlers["ok.test"] = lambda req: httpx.Response(200)

    probe_url("https://ok.test/", client=http_client)

    assert [r.method for r in probe_requests] == ["HEAD"]
    assert probe_requests[0].headers["User-Agent"] == settings.user_agent


def test_redirect_is_followed_to_final_response(site_handlers, http_client):
    def site(req):
        if req.url.scheme == "http":
            return httpx.Response(301, headers={"Location": "https://moved.test/home"})
        return httpx.Response(200)

    site_handlers["moved.test"] = site

    result = probe_url("http://moved.test/", client=http_client)

    assert result.alive is True
    assert result.status_code == 200
    assert result.ssl_enabled is True


def test_redirect_to_error_is_offline(site_handlers, http_client):
    def site(req):
        if req.url.path == "/":
            return httpx.Response(302, headers={"Location": "/gone"})
        return httpx.Response(410)

    site_handlers["gone.test"] = site

    result = probe_url("https://gone.test/", client=http_client)

    assert result.alive is False
    assert result.status_code == 410


def test_non_2xx_is_offline_but_keeps_latency(site_handlers, http_client):
    site_handlers["missing.test"] = lambda req: httpx.Response(404)

    result = probe_url("https://missing.test/", client=http_client)

    assert result.alive is False
    assert result.status == PROBE_OFFLINE
    assert result.status_code == 404
    assert result.error == "HTTP_STATUS_404"
    assert result.response_time_ms is not None


@pytest.mark.parametrize("refusal", [405, 501])
def test_head_refused_falls_back_to_get(site_handlers, http_client, probe_requests, refusal):
    def site(req):
        if req.method == "HEAD":
            return httpx.Response(refusal)
        return httpx.Response(200)

    site_handlers["nohead.test"] = site

    result = probe_url("https://nohead.test/", client=http_client)

    assert result.alive is True
    assert [r.method for r in probe_requests] == ["HEAD", "GET"]


def test_timeout_is_error_without_latency(site_handlers, http_client):
    def site(req):
        raise httpx.ConnectTimeout("timed out", request=req)

    site_handlers["slowpoke.test"] = site

    result = probe_url("https://slowpoke.test/", client=http_client)

    assert result.alive is False
    assert result.status == PROBE_ERROR
    assert result.error == "REQUEST_TIMEOUT"
    assert result.response_time_ms is None
    assert result.ssl_enabled is False


def test_unknown_host_is_dns_failure(http_client):
    result = probe_url("https://nowhere.test/", client=http_client)

    assert result.alive is False
    assert result.error == "DNS_RESOLUTION_FAILED"


def test_connection_refused(site_handlers, http_client):
    def site(req):
        raise httpx.ConnectError("[Errno 111] Connection refused", request=req)

    site_handlers["closed.test"] = site

    result = probe_url("https://closed.test/", client=http_client)

    assert result.error == "CONNECTION_REFUSED"


def test_slow_response_is_still_alive(site_handlers, http_client, monkeypatch):
    monkeypatch.setattr(settings, "slow_threshold_ms", -1)
    site_handlers["ok.test"] = lambda req: httpx.Response(200)

    result = probe_url("https://ok.test/", client=http_client)

    assert result.alive is True
    assert result.status == PROBE_SLOW


# ============================================================================
# OVERALL DEADLINE
# ============================================================================

class _SlowHandler(BaseHTTPRequestHandler):
    """Refuses HEAD and answers GET, each after `delay` seconds."""

    delay = 0.6

    def _reply(self, status):
        time.sleep(self.delay)
        self.send_response(status)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_HEAD(self):
        self._reply(405)

    def do_GET(self):
        self._reply(200)

    def log_message(self, format, *args):
        pass


@pytest.fixture()
def slow_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _SlowHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}/"
    server.shutdown()
    server.server_close()


def test_get_fallback_shares_the_deadline(slow_server):
    started = time.monotonic()

    result = probe_url(slow_server, timeout=1.0)

    assert time.monotonic() - started < 1.5
    assert result.alive is False
    assert result.status == PROBE_ERROR
    assert result.error == "REQUEST_TIMEOUT"
    assert result.response_time_ms is None


def test_answer_after_the_deadline_is_a_timeout(site_handlers, http_client):
    def site(req):
        time.sleep(0.3)
        return httpx.Response(200)

    site_handlers["late.test"] = site

    result = probe_url("https://late.test/", client=http_client, timeout=0.2)

    assert result.alive is False
    assert result.status == PROBE_ERROR
    assert result.error == "REQUEST_TIMEOUT"
    assert result.response_time_ms is None
    assert result.ssl_enabled is False


def test_redirect_hops_share_the_deadline(site_handlers, http_client, probe_requests):
    def site(req):
        time.sleep(0.1)
        hop = int(req.url.path.strip("/") or 0)
        return httpx.Response(302, headers={"Location": f"https://hops.test/{hop + 1}"})

    site_handlers["hops.test"] = site

    result = probe_url("https://hops.test/", client=http_client, timeout=0.35)

    assert result.error == "REQUEST_TIMEOUT"
    assert result.response_time_ms is None
    # the hop that would start past the deadline is never sent
    assert len(probe_requests) <= 4


def test_too_many_redirects_is_an_error(site_handlers, http_client):
    site_handlers["loop.test"] = lambda req: httpx.Response(302, headers={"Location": "https://loop.test/"})

    result = probe_url("https://loop.test/", client=http_client)

    assert result.alive is False
    assert result.status == PROBE_ERROR
    assert result.response_time_ms is None


# ============================================================================
# BATCH
# ============================================================================

def test_batch_yields_results_in_order(site_handlers, http_client):
    site_handlers["up.test"] = lambda req: httpx.Response(200)
    site_handlers["down.test"] = lambda req: httpx.Response(503)
    items = [_Item(1, "https://up.test/"), _Item(2, "https://down.test/")]

    pairs = list(probe_batch(items, client=http_client))

    assert [item.id for item, _ in pairs] == [1, 2]
    assert [result.status for _, result in pairs] == [PROBE_ONLINE, PROBE_OFFLINE]


def test_batch_survives_a_crash(site_handlers, http_client, monkeypatch):
    site_handlers["up.test"] = lambda req: httpx.Response(200)
    real_check = checker.probe_url

    def crashing(url, client=None, timeout=None):
        if url == "https://boom.test/":
            raise RuntimeError("boom")
        return real_check(url, client=client, timeout=timeout)

    monkeypatch.setattr(checker, "probe_url", crashing)
    items = [_Item(1, "https://boom.test/"), _Item(2, "https://up.test/")]

    results = [result for _, result in probe_batch(items, client=http_client)]

    assert results[0].status == PROBE_ERROR
    assert results[0].error == "PROBE_FAILED"
    assert results[1].alive is True


@pytest.mark.parametrize(
    "exc, expected",
    [
        (httpx.UnsupportedProtocol("Request URL is missing an 'http://' or 'https://' protocol."), "INVALID_URL"),
        (httpx.ReadTimeout("The read operation timed out"), "REQUEST_TIMEOUT"),
        (httpx.ConnectError("Temporary failure in name resolution"), "DNS_RESOLUTION_FAILED"),
        (httpx.ConnectError("[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed"), "TLS_ERROR"),
        (RuntimeError("boom"), "EXCEPTION: boom"),
    ],
)
def test_normalize_error(exc, expected):
    assert checker._normalize_error(exc) == expected
