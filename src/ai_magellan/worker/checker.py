# worker/checker.py
import logging
import time
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Tuple

import httpx

from ai_magellan.core.config import settings

logger = logging.getLogger(__name__)

PROBE_ONLINE = "online"
PROBE_SLOW = "slow"
PROBE_OFFLINE = "offline"
PROBE_ERROR = "error"

# servers that refuse HEAD get one GET instead
_HEAD_UNSUPPORTED = (405, 501)
_MAX_REDIRECTS = 10


@dataclass
class ProbeResult:
    url: str
    alive: bool
    status: str
    status_code: Optional[int] = None
    response_time_ms: Optional[int] = None
    ssl_enabled: bool = False
    error: Optional[str] = None


def _normalize_error(e: Exception) -> str:
    msg = str(e)
    if isinstance(e, (httpx.InvalidURL, httpx.UnsupportedProtocol)):
        return "INVALID_URL"
    if isinstance(e, httpx.TimeoutException) or "timed out" in msg.lower():
        return "REQUEST_TIMEOUT"
    if "Name or service not known" in msg or "Temporary failure in name resolution" in msg \
            or "nodename nor servname" in msg:
        return "DNS_RESOLUTION_FAILED"
    if "Connection refused" in msg:
        return "CONNECTION_REFUSED"
    if "SSL" in msg or "CERTIFICATE" in msg.upper():
        return "TLS_ERROR"
    return f"EXCEPTION: {msg[:400]}"


def _remaining(deadline: float) -> float:
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise httpx.TimeoutException("probe deadline exceeded")
    return remaining


def _request(client: httpx.Client, method: str, url, headers: dict, deadline: float) -> httpx.Response:
    # redirects are followed by hand so every hop shares the same deadline
    for _ in range(_MAX_REDIRECTS + 1):
        resp = client.request(
            method,
            url,
            headers=headers,
            timeout=httpx.Timeout(_remaining(deadline)),
            follow_redirects=False,
        )
        if resp.next_request is None:
            return resp
        method = resp.next_request.method
        url = resp.next_request.url
    raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.")


def _send(client: httpx.Client, url: str, deadline: float) -> httpx.Response:
    headers = {"User-Agent": settings.user_agent, "Accept": "*/*"}
    resp = _request(client, "HEAD", url, headers, deadline)
    if resp.status_code in _HEAD_UNSUPPORTED:
        resp = _request(client, "GET", url, headers, deadline)
    return resp


def _timed_out(url: str) -> ProbeResult:
    return ProbeResult(url=url, alive=False, status=PROBE_ERROR, error="REQUEST_TIMEOUT")


def probe_url(
    url: str,
    client: Optional[httpx.Client] = None,
    timeout: Optional[float] = None,
) -> ProbeResult:
    """
    Liveness probe:
      HEAD {url} (GET if HEAD is refused), redirects followed

    `timeout` bounds the whole probe, every redirect hop and the GET
    fallback included. alive only for a final 2xx. Exceptions never escape:
    a timeout, DNS or TLS failure becomes an "error" result without latency.
    """
    if timeout is None:
        timeout = settings.request_timeout

    start = time.monotonic()
    deadline = start + timeout
    try:
        if client is None:
            with httpx.Client() as own_client:
                resp = _send(own_client, url, deadline)
        else:
            resp = _send(client, url, deadline)
    except Exception as e:
        return ProbeResult(url=url, alive=False, status=PROBE_ERROR, error=_normalize_error(e))

    elapsed_ms = int((time.monotonic() - start) * 1000)
    # a slow trickle of bytes can outlast the per-read limits
    if elapsed_ms > timeout * 1000:
        return _timed_out(url)

    ssl_enabled = resp.url.scheme == "https"
    http_status = resp.status_code

    if not resp.is_success:
        return ProbeResult(
            url=url,
            alive=False,
            status=PROBE_OFFLINE,
            status_code=http_status,
            response_time_ms=elapsed_ms,
            ssl_enabled=ssl_enabled,
            error=f"HTTP_STATUS_{http_status}",
        )

    status = PROBE_SLOW if elapsed_ms > settings.slow_threshold_ms else PROBE_ONLINE
    return ProbeResult(
        url=url,
        alive=True,
        status=status,
        status_code=http_status,
        response_time_ms=elapsed_ms,
        ssl_enabled=ssl_enabled,
    )


def probe_batch(items: Iterable, client: Optional[httpx.Client] = None) -> Iterator[Tuple[object, ProbeResult]]:
    """
    Probe items (anything with a `url`) one at a time, yielding
    (item, result) as each probe finishes. A crash while probing one item
    becomes an "error" result and the rest are still probed.
    """
    for item in items:
        try:
            result = probe_url(item.url, client=client)
        except Exception:
            logger.exception("Probe crashed for %s", item.url)
            result = ProbeResult(url=item.url, alive=False, status=PROBE_ERROR, error="PROBE_FAILED")
        yield item, result
