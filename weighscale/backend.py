"""
Extension points supplied by each device variant.

A WeighingDevice owns the lifecycle policy (state machine, guards, fault
wrapping, disposal) and delegates the transport-specific work to a
ScaleBackend.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from .models import ConnectionConfig, WeightReading


class ScaleBackend(ABC):
    """
    Strategy interface for one weighing device variant.

    Backends raise transport-level errors (see weighscale.errors); the
    session engine wraps them into DeviceFault before they reach callers.
    """

    #: Display name, manufacturer and model of the device
    name: str = "Weighing device"
    manufacturer: str = ""
    model: str = ""

    def __init__(self, config: ConnectionConfig):
        self.config = config
        # Wired by WeighingDevice to its reading event
        self.on_reading: Callable[[WeightReading], None] = lambda reading: None

    @property
    def supports_continuous_reading(self) -> bool:
        return False

    @property
    def is_open(self) -> bool:
        """Whether the transport is currently usable."""
        return True

    @abstractmethod
    async def open(self) -> bool:
        """Open the transport. Return False if the device did not answer."""

    @abstractmethod
    async def close(self) -> None:
        """Release the transport. Must be safe to call when already closed."""

    @abstractmethod
    async def read_once(self) -> WeightReading:
        """Request and return one reading."""

    @abstractmethod
    async def zero(self) -> None:
        """Zero/tare the scale."""

    @abstractmethod
    async def send_raw(self, command: str) -> str:
        """Send a command and return the raw response text."""

    async def start_continuous(self) -> None:
        """Put the device into streaming mode."""

    async def next_continuous_reading(self) -> Optional[WeightReading]:
        """
        One iteration of the continuous-reading loop.

        Returns:
            A reading, or None when nothing usable arrived this time
        """
        return await self.read_once()

    async def stop_continuous(self) -> None:
        """Take the device out of streaming mode."""
