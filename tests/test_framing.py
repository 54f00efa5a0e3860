"""Tests for silence-based response framing."""

import logging

import anyio
import pytest

from conftest import FakeSerial
from weighscale.errors import ResponseTimeoutError
from weighscale.framing import MAX_RESPONSE_SIZE, collect_response, normalize_command

pytestmark = pytest.mark.anyio


@pytest.fixture
def port():
    fake = FakeSerial()
    fake.open()
    return fake


@pytest.mark.parametrize("command, expected", [
    ("W", "W\r\n"),
    ("W\r\n", "W\r\n"),
    ("P\r", "P\r"),
    ("SI\n", "SI\n"),
])
def test_normalize_command(command, expected):
    assert normalize_command(command) == expected


async def test_bytes_then_silence_complete_the_response(port):
    port.feed(b"W: 12.340 kg\r\n")
    start = anyio.current_time()
    data = await collect_response(port, timeout=2.0)
    elapsed = anyio.current_time() - start

    assert data == b"W: 12.340 kg\r\n"
    assert elapsed < 1.0


async def test_chunks_closer_than_the_poll_interval_are_joined(port):
    port.feed(b"W: 1")
    port.feed(b"2.5 g\r\n", delay=0.13)
    data = await collect_response(port, timeout=2.0)
    assert data == b"W: 12.5 g\r\n"


async def test_silence_gap_ends_the_response(port):
    port.feed(b"first\r\n")
    port.feed(b"second\r\n", delay=0.6)
    assert await collect_response(port, timeout=2.0) == b"first\r\n"


async def test_waits_for_a_late_first_byte(port):
    port.feed(b"OK\r\n", delay=0.3)
    assert await collect_response(port, timeout=1.0) == b"OK\r\n"


async def test_silent_line_times_out_at_the_read_timeout(port):
    start = anyio.current_time()
    with pytest.raises(ResponseTimeoutError):
        await collect_response(port, timeout=0.3)
    elapsed = anyio.current_time() - start
    assert 0.29 <= elapsed < 0.6


async def test_silent_line_is_empty_when_not_waiting(port):
    start = anyio.current_time()
    data = await collect_response(port, timeout=2.0, wait_for_data=False)
    assert data == b""
    assert anyio.current_time() - start < 1.0


async def test_endless_stream_times_out(port):
    for i in range(60):
        port.feed(b"x", delay=i * 0.02)
    with pytest.raises(ResponseTimeoutError):
        await collect_response(port, timeout=0.4)


async def test_response_is_capped_at_max_size(port, caplog):
    port.feed(b"9" * (MAX_RESPONSE_SIZE + 500))
    with caplog.at_level(logging.WARNING, logger="weighscale.framing"):
        data = await collect_response(port, timeout=2.0)
    assert len(data) == MAX_RESPONSE_SIZE
    assert "truncated" in caplog.text


async def test_custom_timing(port):
    port.feed(b"A")
    port.feed(b"B", delay=0.05)
    data = await collect_response(port, timeout=1.0, settle_delay=0.01, poll_interval=0.2)
    assert data == b"AB"
