"""
Command/response framing over a byte stream without message delimiters.

Scales on a plain RS-232 line answer a text command with a burst of bytes
and then go quiet. The end of a response is therefore inferred from a
silence gap:

1. Wait SETTLE_DELAY so the device can start transmitting.
2. If nothing is waiting, sleep POLL_INTERVAL and look again.
3. Still nothing: the response is complete.
4. Otherwise read everything waiting (up to MAX_RESPONSE_SIZE) and repeat.

The whole collection is bounded by the read timeout. The settle delay, poll
interval and buffer ceiling are protocol constants, not tuning knobs: real
devices are timed against them.
"""

import logging

import anyio

from .errors import ResponseTimeoutError

logger = logging.getLogger(__name__)

LINE_TERMINATOR = "\r\n"
SETTLE_DELAY = 0.1  # seconds before the first look at the input buffer
POLL_INTERVAL = 0.05  # silence longer than this ends a response
MAX_RESPONSE_SIZE = 4096


def normalize_command(command: str, terminator: str = LINE_TERMINATOR) -> str:
    """Append the line terminator unless the command already ends a line."""
    if command.endswith("\r") or command.endswith("\n"):
        return command
    return command + terminator


async def collect_response(
    port,
    timeout: float,
    wait_for_data: bool = True,
    settle_delay: float = SETTLE_DELAY,
    poll_interval: float = POLL_INTERVAL,
    max_size: int = MAX_RESPONSE_SIZE,
) -> bytes:
    """
    Collect one response from a pyserial-like port.

    Args:
        port: Object exposing in_waiting and read(n)
        timeout: Upper bound for the whole collection, in seconds
        wait_for_data: If True, keep waiting for the first byte until the
            timeout. If False, a silent line yields b"" after one settle and
            poll window.
        settle_delay: Delay before the first check
        poll_interval: Silence gap that ends the response
        max_size: Maximum number of bytes to collect

    Returns:
        The bytes received, possibly empty

    Raises:
        ResponseTimeoutError: If the response did not complete within timeout
    """
    buffer = bytearray()
    try:
        with anyio.fail_after(timeout):
            await anyio.sleep(settle_delay)
            while len(buffer) < max_size:
                waiting = port.in_waiting
                if waiting == 0:
                    await anyio.sleep(poll_interval)
                    waiting = port.in_waiting
                    if waiting == 0:
                        if buffer or not wait_for_data:
                            break
                        continue

                chunk = port.read(min(waiting, max_size - len(buffer)))
                if not chunk:
                    break
                buffer.extend(chunk)
    except TimeoutError:
        raise ResponseTimeoutError(
            f"No complete response within {timeout:.3f}s ({len(buffer)} bytes received)"
        ) from None

    if len(buffer) >= max_size:
        logger.warning(f"Response truncated at {max_size} bytes")
    logger.debug(f"Collected {len(buffer)} bytes")
    return bytes(buffer)
