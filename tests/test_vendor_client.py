"""Outbound vendor calls: response classification and failure mapping."""
import asyncio
import json

import httpx
import pytest

from vendor_dispatch.errors import DispatchFailure
from vendor_dispatch.vendors.client import ASYNC, SYNC, USER_AGENT, VendorClient, VendorSpec

VENDORS = {
    SYNC: VendorSpec(SYNC, "http://sync.test", SYNC, 5),
    ASYNC: VendorSpec(ASYNC, "http://async.test/", ASYNC, 5),
}


def _client(handler):
    return VendorClient(VENDORS, transport=httpx.MockTransport(handler))


def _dispatch(client, vendor=SYNC, request_id="r-1", payload=None):
    return asyncio.run(client.dispatch(vendor, request_id, payload or {"k": "v"}))


def test_success_response_carries_data():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["ua"] = request.headers["user-agent"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": "success", "data": {"d": " z "}})

    resp = _dispatch(_client(handler))
    assert resp.kind == "success"
    assert resp.data == {"d": " z "}
    assert seen["url"] == "http://sync.test/process"
    assert seen["ua"] == USER_AGENT
    assert seen["body"] == {"request_id": "r-1", "payload": {"k": "v"}}


def test_vendor_reported_error_is_not_a_dispatch_failure():
    def handler(request):
        return httpx.Response(200, json={"status": "error", "error": "bad input"})

    resp = _dispatch(_client(handler))
    assert resp.kind == "error"
    assert resp.error == "bad input"


def test_accepted_by_async_vendor():
    def handler(request):
        assert str(request.url) == "http://async.test/process"
        return httpx.Response(202, json={"status": "accepted", "request_id": "r-1"})

    resp = _dispatch(_client(handler), vendor=ASYNC)
    assert resp.accepted


def test_bare_202_counts_as_accepted():
    resp = _dispatch(_client(lambda request: httpx.Response(202, json={})), vendor=ASYNC)
    assert resp.accepted


@pytest.mark.parametrize("code, body", [
    (429, {"status": "error", "error": "Rate limit exceeded", "retry_after": 60}),
    (500, {"status": "error", "error": "Internal vendor error"}),
])
def test_non_2xx_raises_dispatch_failure(code, body):
    with pytest.raises(DispatchFailure) as exc:
        _dispatch(_client(lambda request: httpx.Response(code, json=body)))
    assert exc.value.status_code == code
    assert exc.value.detail == body["error"]
    assert exc.value.vendor == SYNC


def test_timeout_raises_dispatch_failure():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(DispatchFailure) as exc:
        _dispatch(_client(handler))
    assert "timeout" in exc.value.detail
    assert exc.value.status_code is None


def test_connection_error_raises_dispatch_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(DispatchFailure) as exc:
        _dispatch(_client(handler))
    assert "connection error" in exc.value.detail


def test_non_json_body_is_malformed():
    with pytest.raises(DispatchFailure) as exc:
        _dispatch(_client(lambda request: httpx.Response(200, text="<html>ok</html>")))
    assert "malformed" in exc.value.detail


def test_unknown_status_is_malformed():
    with pytest.raises(DispatchFailure) as exc:
        _dispatch(_client(lambda request: httpx.Response(200, json={"status": "maybe"})))
    assert "unknown status" in exc.value.detail


def test_unknown_vendor():
    client = _client(lambda request: httpx.Response(200, json={"status": "success"}))
    with pytest.raises(DispatchFailure):
        _dispatch(client, vendor="nope")
