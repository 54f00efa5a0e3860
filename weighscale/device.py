"""
Weighscale Device

The session engine shared by every device variant. WeighingDevice owns:
- The connection state machine (DISCONNECTED -> CONNECTING -> CONNECTED / ERROR)
- Guard conditions (connected, not disposed, continuous reading supported)
- Wrapping of backend failures into DeviceFault
- The continuous-reading task and the two event hooks
- Deterministic teardown through aclose() / async with

Transport work is delegated to a ScaleBackend.
"""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

import anyio
import anyio.abc

from .backend import ScaleBackend
from .continuous import ERROR_BACKOFF, STOP_GRACE_PERIOD, ContinuousReader
from .errors import (
    DeviceDisposedError,
    DeviceFault,
    InvalidStateError,
    UnsupportedOperationError,
    WeighingError,
)
from .events import EventHook
from .models import ConnectionConfig, ConnectionStatus, WeightReading

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WeighingDevice:
    """
    A weighing device: lifecycle policy around a transport backend.

    Usage:
        async with WeighingDevice(backend) as scale:
            scale.on_weight_reading(print)
            if await scale.connect():
                print(await scale.get_weight())
                await scale.start_continuous_reading()
                await anyio.sleep(10)
    """

    def __init__(
        self,
        backend: ScaleBackend,
        error_backoff: float = ERROR_BACKOFF,
        stop_grace_period: float = STOP_GRACE_PERIOD,
    ):
        """
        Initialize the device.

        Args:
            backend: Variant-specific implementation of the extension points
            error_backoff: Delay after a failed continuous-reading iteration
            stop_grace_period: How long stopping continuous reading waits for the loop
        """
        self._backend = backend
        self.error_backoff = error_backoff
        self.stop_grace_period = stop_grace_period

        self._status = ConnectionStatus.DISCONNECTED
        self._disposed = False
        self._continuous_active = False
        self._reader: Optional[ContinuousReader] = None
        self._tg: Optional[anyio.abc.TaskGroup] = None

        self.weight_reading_received: EventHook[WeightReading] = EventHook("weight_reading_received")
        self.connection_status_changed: EventHook[ConnectionStatus] = EventHook("connection_status_changed")

        backend.on_reading = self._publish_reading

    # ----- Identity and state --------------------------------------------

    @property
    def name(self) -> str:
        return self._backend.name

    @property
    def manufacturer(self) -> str:
        return self._backend.manufacturer

    @property
    def model(self) -> str:
        return self._backend.model

    @property
    def configuration(self) -> ConnectionConfig:
        return self._backend.config

    @property
    def backend(self) -> ScaleBackend:
        return self._backend

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectionStatus.CONNECTED

    @property
    def supports_continuous_reading(self) -> bool:
        return self._backend.supports_continuous_reading

    @property
    def is_continuous_reading_active(self) -> bool:
        return self._continuous_active

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def __repr__(self) -> str:
        return f"<WeighingDevice {self.name!r} {self._status.value}>"

    # ----- Events --------------------------------------------------------

    def on_weight_reading(self, callback: Callable[[WeightReading], None]) -> Callable[[], None]:
        """Subscribe to readings. Returns an unsubscribe function."""
        return self.weight_reading_received.subscribe(callback)

    def on_status_changed(self, callback: Callable[[ConnectionStatus], None]) -> Callable[[], None]:
        """Subscribe to connection status changes. Returns an unsubscribe function."""
        return self.connection_status_changed.subscribe(callback)

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        logger.debug(f"{self.name}: {self._status.value} -> {status.value}")
        self._status = status
        self.connection_status_changed.emit(status)

    def _publish_reading(self, reading: WeightReading) -> None:
        self.weight_reading_received.emit(reading)

    # ----- Guards --------------------------------------------------------

    def _ensure_not_disposed(self) -> None:
        if self._disposed:
            raise DeviceDisposedError(self.name)

    def _ensure_connected(self, operation: str) -> None:
        self._ensure_not_disposed()
        if self._status is not ConnectionStatus.CONNECTED:
            raise InvalidStateError(
                f"Cannot {operation}: device {self.name} is not connected (status: {self._status.value})",
                operation=operation,
                device_name=self.name,
            )

    async def _call_backend(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run one backend call, wrapping failures into DeviceFault."""
        try:
            return await call()
        except WeighingError:
            raise
        except Exception as e:
            fault = DeviceFault.wrap(self.name, operation, e)
            if fault.is_fatal:
                logger.error(f"{self.name}: fatal fault during {operation}: {e}")
                self._set_status(ConnectionStatus.ERROR)
            raise fault from e

    async def _close_backend(self) -> None:
        # Shielded so cancellation cannot leak the transport handle
        with anyio.CancelScope(shield=True):
            try:
                await self._backend.close()
            except Exception as e:
                logger.warning(f"{self.name}: error closing connection: {e}")

    # ----- Lifecycle -----------------------------------------------------

    async def connect(self) -> bool:
        """
        Open the connection to the device.

        Returns:
            True if connected (also when already connected), False if the
            device did not answer

        Raises:
            DeviceFault: If the transport failed or timed out
        """
        self._ensure_not_disposed()
        if self._status is ConnectionStatus.CONNECTED:
            return True

        self._set_status(ConnectionStatus.CONNECTING)
        logger.info(f"Connecting to {self.name}")
        try:
            with anyio.fail_after(self.configuration.connection_timeout):
                opened = await self._backend.open()
        except anyio.get_cancelled_exc_class():
            await self._close_backend()
            self._set_status(ConnectionStatus.ERROR)
            raise
        except Exception as e:
            await self._close_backend()
            self._set_status(ConnectionStatus.ERROR)
            logger.error(f"Failed to connect to {self.name}: {e}")
            if isinstance(e, WeighingError):
                raise
            raise DeviceFault.wrap(self.name, "connect", e) from e

        if not opened:
            await self._close_backend()
            self._set_status(ConnectionStatus.ERROR)
            logger.error(f"Failed to connect to {self.name}: device did not respond")
            return False

        self._set_status(ConnectionStatus.CONNECTED)
        logger.info(f"Connected to {self.name}")
        return True

    async def disconnect(self) -> None:
        """
        Close the connection. Always completes; failures are logged.

        Continuous reading is stopped first.
        """
        if self._disposed or self._status is ConnectionStatus.DISCONNECTED:
            return

        if self._continuous_active:
            try:
                await self.stop_continuous_reading()
            except WeighingError as e:
                logger.warning(f"{self.name}: error stopping continuous reading: {e}")

        await self._close_backend()
        self._set_status(ConnectionStatus.DISCONNECTED)
        logger.info(f"Disconnected from {self.name}")

    async def aclose(self) -> None:
        """Disconnect and dispose the device. Safe to call more than once."""
        if self._disposed:
            return
        try:
            await self.disconnect()
        finally:
            self._disposed = True

    async def __aenter__(self) -> "WeighingDevice":
        self._ensure_not_disposed()
        self._tg = await anyio.create_task_group().__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        try:
            # Teardown must finish even when the body was cancelled
            with anyio.CancelScope(shield=True):
                await self.aclose()
        finally:
            await self._cancel_task_group_safely()

    async def _cancel_task_group_safely(self):
        # The body's exception propagates on its own; the group only holds the loop
        if self._tg is not None:
            try:
                # A loop that ignored the grace period is cancelled here
                self._tg.cancel_scope.cancel()
                await self._tg.__aexit__(None, None, None)
            finally:
                self._tg = None

    # ----- Operations ----------------------------------------------------

    async def get_weight(self) -> WeightReading:
        """Request one reading from the device."""
        self._ensure_connected("get weight")
        return await self._call_backend("get weight", self._backend.read_once)

    async def zero_scale(self) -> None:
        """Zero/tare the scale."""
        self._ensure_connected("zero scale")
        await self._call_backend("zero scale", self._backend.zero)

    async def send_raw_command(self, command: str) -> str:
        """
        Send a raw command to the device.

        Returns:
            The device's response text
        """
        self._ensure_connected("send raw command")
        if not command:
            raise ValueError("Command cannot be empty")
        return await self._call_backend("send raw command", lambda: self._backend.send_raw(command))

    async def start_continuous_reading(self, task_group: Optional[anyio.abc.TaskGroup] = None) -> None:
        """
        Start streaming readings to weight_reading_received subscribers.

        Args:
            task_group: Task group that hosts the reading loop. Defaults to
                the device's own, available inside 'async with device'.
        """
        operation = "start continuous reading"
        self._ensure_connected(operation)
        if not self.supports_continuous_reading:
            raise UnsupportedOperationError(f"Device {self.name} does not support continuous reading")
        if self._continuous_active:
            return

        tg = task_group or self._tg
        if tg is None:
            raise InvalidStateError(
                f"Cannot {operation} on {self.name}: pass a task group or use 'async with device'",
                operation=operation,
                device_name=self.name,
            )

        await self._call_backend(operation, self._backend.start_continuous)

        reader = ContinuousReader(
            self.name,
            fetch=self._next_continuous_reading,
            publish=self._publish_reading,
            is_alive=self._stream_alive,
            error_backoff=self.error_backoff,
            grace_period=self.stop_grace_period,
            on_finished=lambda: self._continuous_loop_finished(reader),
        )
        self._reader = reader
        reader.start(tg)
        self._continuous_active = True
        logger.info(f"{self.name}: continuous reading started")

    async def _next_continuous_reading(self) -> Optional[WeightReading]:
        return await self._call_backend("continuous reading", self._backend.next_continuous_reading)

    def _stream_alive(self) -> bool:
        # A fatal fault moves the device to ERROR, which ends the loop
        return self._backend.is_open and self._status is ConnectionStatus.CONNECTED

    def _continuous_loop_finished(self, reader: ContinuousReader) -> None:
        if self._reader is not reader:
            return
        # The loop ended by itself (transport closed or fatal fault)
        self._reader = None
        self._continuous_active = False
        logger.warning(f"{self.name}: continuous reading ended (status: {self._status.value})")

    async def stop_continuous_reading(self) -> None:
        """
        Stop streaming. The active flag is cleared even if the stop command fails.
        """
        self._ensure_not_disposed()
        if not self._continuous_active:
            return

        reader, self._reader = self._reader, None
        try:
            if reader is not None:
                await reader.stop()
            await self._call_backend("stop continuous reading", self._backend.stop_continuous)
        finally:
            self._continuous_active = False
            logger.info(f"{self.name}: continuous reading stopped")
