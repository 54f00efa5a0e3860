"""
Shared fixtures and test doubles.

FakeSerial mimics the part of the pyserial API the library uses. Replies can
be scheduled with a delay so silence-based framing can be exercised with
real timing.
"""

import time
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple, Union

import anyio
import pytest
from serial.serialutil import PortNotOpenError

from weighscale.backend import ScaleBackend
from weighscale.models import ConnectionConfig, ConnectionType, WeightReading, WeightUnit
from weighscale.parsers import parse_weight_response
from weighscale.protocol import GENERIC_COMMANDS, SerialScaleBackend

Reply = Union[bytes, Sequence[Tuple[float, bytes]]]


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeSerial:
    """In-memory stand-in for serial.Serial."""

    def __init__(self, replies: Optional[Dict[str, Reply]] = None, open_error: Optional[Exception] = None):
        # Settings written by the backend before open()
        self.port = None
        self.baudrate = None
        self.bytesize = None
        self.parity = None
        self.stopbits = None
        self.xonxoff = None
        self.rtscts = None
        self.timeout = None
        self.write_timeout = None

        self.replies: Dict[str, Reply] = dict(replies or {})
        self.open_error = open_error
        self.io_error: Optional[Exception] = None
        self.is_open = False
        self.open_count = 0
        self.close_count = 0
        self.written: List[bytes] = []
        self._buffer = bytearray()
        self._pending: List[Tuple[float, bytes]] = []

    def open(self):
        if self.open_error is not None:
            raise self.open_error
        self.is_open = True
        self.open_count += 1

    def close(self):
        self.is_open = False
        self.close_count += 1

    def feed(self, data: bytes, delay: float = 0.0):
        """Make data readable after delay seconds."""
        self._pending.append((time.monotonic() + delay, data))

    def _release_due(self):
        now = time.monotonic()
        remaining = []
        for due, data in self._pending:
            if due <= now:
                self._buffer.extend(data)
            else:
                remaining.append((due, data))
        self._pending = remaining

    def _check(self):
        if not self.is_open:
            raise PortNotOpenError()
        if self.io_error is not None:
            raise self.io_error

    @property
    def in_waiting(self) -> int:
        self._check()
        self._release_due()
        return len(self._buffer)

    def read(self, size: int = 1) -> bytes:
        self._check()
        self._release_due()
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def reset_input_buffer(self):
        self._check()
        self._release_due()
        self._buffer.clear()

    def write(self, data: bytes) -> int:
        self._check()
        self.written.append(data)
        reply = self.replies.get(data.decode("ascii").strip())
        if isinstance(reply, bytes):
            self.feed(reply)
        elif reply is not None:
            for delay, chunk in reply:
                self.feed(chunk, delay)
        return len(data)

    def flush(self):
        self._check()


def make_serial_backend(fake: FakeSerial, read_timeout_ms: int = 500, **kwargs) -> SerialScaleBackend:
    """SerialScaleBackend wired to a FakeSerial, with no open settle delay."""
    options = dict(
        name="Bench Scale",
        manufacturer="Acme",
        model="B-100",
        parse=parse_weight_response,
        commands=GENERIC_COMMANDS,
        supports_continuous_reading=True,
        open_settle_delay=0.0,
        serial_factory=lambda: fake,
    )
    options.update(kwargs)
    config = ConnectionConfig.serial("/dev/ttyFAKE0", read_timeout_ms=read_timeout_ms)
    return SerialScaleBackend(config, **options)


@pytest.fixture
def fake_serial():
    return FakeSerial(replies={"W": b"W: 12.340 kg\r\n"})


class RecordingBackend(ScaleBackend):
    """Scriptable backend that records extension-point calls."""

    def __init__(self, supports_continuous: bool = True):
        super().__init__(ConnectionConfig(ConnectionType.CUSTOM, "recording", connection_timeout_ms=500))
        self.name = "Recording Scale"
        self.manufacturer = "Test"
        self.model = "R-1"
        self.open_result = True
        self.open_error: Optional[BaseException] = None
        self.open_delay = 0.0
        self.read_error: Optional[BaseException] = None
        self.stop_error: Optional[BaseException] = None
        self.fetch = None
        self.opened = False
        self.calls: List[str] = []
        self.close_count = 0
        self._supports_continuous = supports_continuous

    @property
    def supports_continuous_reading(self) -> bool:
        return self._supports_continuous

    @property
    def is_open(self) -> bool:
        return self.opened

    async def open(self) -> bool:
        self.calls.append("open")
        if self.open_delay:
            await anyio.sleep(self.open_delay)
        if self.open_error is not None:
            raise self.open_error
        self.opened = self.open_result
        return self.open_result

    async def close(self) -> None:
        self.calls.append("close")
        if self.opened:
            self.close_count += 1
        self.opened = False

    async def read_once(self) -> WeightReading:
        self.calls.append("read_once")
        if self.read_error is not None:
            raise self.read_error
        return WeightReading(Decimal("1.5"), WeightUnit.KILOGRAM)

    async def zero(self) -> None:
        self.calls.append("zero")

    async def send_raw(self, command: str) -> str:
        self.calls.append(f"send_raw:{command}")
        return f"echo {command}"

    async def start_continuous(self) -> None:
        self.calls.append("start_continuous")

    async def next_continuous_reading(self):
        if self.fetch is not None:
            return await self.fetch()
        await anyio.sleep(0.01)
        return WeightReading(Decimal("1.5"), WeightUnit.KILOGRAM)

    async def stop_continuous(self) -> None:
        self.calls.append("stop_continuous")
        if self.stop_error is not None:
            raise self.stop_error


@pytest.fixture
def recording_backend():
    return RecordingBackend()
