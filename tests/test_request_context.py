"""Tests for request/tab context middleware and logging."""
from __future__ import annotations

import json
import logging

import pytest

from learnhub.logging_config import JSONFormatter, RequestContextFilter
from learnhub.middleware.request_context import request_id_var, tab_id_var


@pytest.mark.asyncio
async def test_response_includes_request_id(client):
    """Every response should have X-Request-ID header."""
    resp = await client.get("/health")
    assert len(resp.headers["x-request-id"]) == 36  # UUID format


@pytest.mark.asyncio
async def test_client_request_id_honored(client):
    resp = await client.get("/health", headers={"X-Request-ID": "my-trace-12345"})
    assert resp.headers["x-request-id"] == "my-trace-12345"


@pytest.mark.asyncio
async def test_tab_id_truncated(client):
    resp = await client.get("/health", headers={"X-Tab-Id": "t" * 100})
    assert resp.headers["x-tab-id"] == "t" * 64


@pytest.mark.asyncio
async def test_no_tab_header_no_echo(client):
    resp = await client.get("/health")
    assert "x-tab-id" not in resp.headers


@pytest.mark.asyncio
async def test_health(client):
    body = (await client.get("/health")).json()
    assert body["status"] == "ok"
    assert body["db"] == "connected"
    assert body["analytics"] is True


def test_json_log_line_carries_context():
    request_token = request_id_var.set("req-1")
    tab_token = tab_id_var.set("tab-1")
    try:
        record = logging.LogRecord("learnhub.test", logging.WARNING, __file__, 1, "tracking failed", None, None)
        record.event_name = "Page viewed"
        RequestContextFilter().filter(record)
        line = json.loads(JSONFormatter().format(record))
    finally:
        request_id_var.reset(request_token)
        tab_id_var.reset(tab_token)

    assert line["level"] == "WARNING"
    assert line["request_id"] == "req-1"
    assert line["tab_id"] == "tab-1"
    assert line["event_name"] == "Page viewed"
    assert "session_id" not in line
