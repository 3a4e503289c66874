from __future__ import annotations

import asyncio
import io
import logging

import pytest

from repairdesk.core.request_context import (
    RequestIdFilter,
    attach_request_id_filter,
    get_request_id,
    get_request_id_value,
    reset_request_id,
    set_request_id,
)

pytestmark = pytest.mark.unit


def test_set_get_reset_request_id() -> None:
    token = set_request_id("req-123")
    assert get_request_id() == "req-123"
    reset_request_id(token)
    assert get_request_id() is None


def test_get_request_id_default() -> None:
    assert get_request_id("fallback") == "fallback"
    assert get_request_id_value() == "no-request"


def test_request_id_isolated_between_tasks() -> None:
    async def _capture(value: str) -> str | None:
        token = set_request_id(value)
        await asyncio.sleep(0)
        result = get_request_id()
        reset_request_id(token)
        return result

    async def _run():
        return await asyncio.gather(_capture("req-a"), _capture("req-b"))

    first, second = asyncio.run(_run())
    assert {first, second} == {"req-a", "req-b"}


def test_logging_filter_injects_request_id() -> None:
    logger = logging.getLogger("request-context-test")
    logger.setLevel(logging.INFO)
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(request_id)s %(message)s"))
    handler.addFilter(RequestIdFilter())
    logger.addHandler(handler)
    logger.propagate = False

    try:
        token = set_request_id("req-555")
        logger.info("inside")
        reset_request_id(token)
        logger.info("outside")
    finally:
        logger.removeHandler(handler)

    lines = stream.getvalue().strip().splitlines()
    assert lines[0].startswith("req-555 ")
    assert lines[1].startswith("no-request ")


def test_attach_to_specific_logger() -> None:
    logger = logging.getLogger("request-context-attach")
    handler = logging.StreamHandler()
    logger.addHandler(handler)
    try:
        attach_request_id_filter(logger)
        assert any(isinstance(f, RequestIdFilter) for f in handler.filters)
    finally:
        logger.removeHandler(handler)
