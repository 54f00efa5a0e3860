"""
Hardware-free device variants for development, demos and tests.

- SimulatedScaleBackend: a scale you put weight on with add_weight()
- DemoScaleBackend: plays predefined weight patterns (DemoProgram)

Both plug into WeighingDevice like the serial backend does, so they share
its state machine, events and guards.
"""

import logging
import random
from decimal import ROUND_HALF_EVEN, Decimal
from enum import Enum
from typing import Optional, Union

import anyio

from .backend import ScaleBackend
from .errors import ScaleOverloadError
from .models import ConnectionConfig, ConnectionType, WeightReading, WeightUnit

logger = logging.getLogger(__name__)

READING_INTERVAL = 1.0  # seconds between continuous readings
NOISE_QUANTUM = Decimal("0.0001")

Number = Union[Decimal, int, float, str]


def _dec(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


class SimulatedScaleBackend(ScaleBackend):
    """
    Simulated scale with bounded weight and a little read noise.
    """

    def __init__(
        self,
        name: str = "Simulated Scale",
        manufacturer: str = "Virtual Scales Inc.",
        model: str = "VS-2025",
        initial_weight: Number = 0,
        unit: WeightUnit = WeightUnit.GRAM,
        min_weight: Number = 0,
        max_weight: Number = 5000,
        noise: Number = "0.005",
        interval: float = READING_INTERVAL,
        add_delay: float = 0.1,
        seed: Optional[int] = None,
    ):
        super().__init__(ConnectionConfig(ConnectionType.CUSTOM, "simulation"))
        self.name = name
        self.manufacturer = manufacturer
        self.model = model
        self.unit = unit
        self.min_weight = _dec(min_weight)
        self.max_weight = _dec(max_weight)
        self.noise = _dec(noise)
        self.interval = interval
        self.add_delay = add_delay
        self._random = random.Random(seed)
        self._weight = self._clamp(_dec(initial_weight))

    @property
    def supports_continuous_reading(self) -> bool:
        return True

    @property
    def current_weight(self) -> Decimal:
        return self._weight

    def _clamp(self, weight: Decimal) -> Decimal:
        return max(self.min_weight, min(self.max_weight, weight))

    def _noise(self) -> Decimal:
        if not self.noise:
            return Decimal(0)
        offset = (Decimal(self._random.random()) - Decimal("0.5")) * 2 * self.noise
        return offset.quantize(NOISE_QUANTUM, rounding=ROUND_HALF_EVEN)

    async def add_weight(self, delta: Number) -> WeightReading:
        """
        Put weight on (or take it off) the scale and publish the new reading.

        The weight is clamped to [min_weight, max_weight].
        """
        self._weight = self._clamp(self._weight + _dec(delta))
        await anyio.sleep(self.add_delay)
        reading = WeightReading(self._weight, self.unit)
        self.on_reading(reading)
        return reading

    async def open(self) -> bool:
        logger.info(f"{self.name}: simulated connection opened")
        return True

    async def close(self) -> None:
        logger.info(f"{self.name}: simulated connection closed")

    async def read_once(self) -> WeightReading:
        return WeightReading(self._weight + self._noise(), self.unit)

    async def zero(self) -> None:
        self._weight = Decimal(0)

    async def send_raw(self, command: str) -> str:
        return f"ACK: {command}"

    async def next_continuous_reading(self) -> Optional[WeightReading]:
        await anyio.sleep(self.interval)
        return await self.read_once()


class DemoProgram(Enum):
    STABLE = "stable"
    GRADUAL_INCREASE = "gradual_increase"
    UNSTABLE = "unstable"
    STEP_CHANGES = "step_changes"
    OVERLOAD = "overload"
    ZERO_STABILITY = "zero_stability"


_PROGRAM_START_WEIGHT = {
    DemoProgram.STABLE: Decimal("5.0"),
    DemoProgram.UNSTABLE: Decimal("2.5"),
}

OVERLOAD_CAPACITY = Decimal("18.0")


class DemoScaleBackend(ScaleBackend):
    """
    Scripted scale producing one of several demo weight patterns.

    Programs:
        STABLE            5.0 with tiny noise, always stable
        GRADUAL_INCREASE  rises to 10.0 over 30 readings, every third unstable
        UNSTABLE          2.5 +/- 0.15, stable 60% of the time
        STEP_CHANGES      steps of 2.0 every 5 readings, unstable right after a step
        OVERLOAD          +0.5 per reading, unstable from 15.0, overload above 18.0
        ZERO_STABILITY    drift around zero, back to exactly zero every 10 readings

    An overload is raised as ScaleOverloadError, which the device reports as
    a DeviceFault of kind OVERLOAD.
    """

    def __init__(
        self,
        name: str = "Demo Scale",
        manufacturer: str = "Demo Scales Inc.",
        model: str = "DEMO-2025",
        unit: WeightUnit = WeightUnit.GRAM,
        program: DemoProgram = DemoProgram.STABLE,
        interval: float = READING_INTERVAL,
        program_switch_delay: float = 0.5,
        seed: Optional[int] = None,
    ):
        super().__init__(ConnectionConfig(ConnectionType.CUSTOM, "demo"))
        self.name = name
        self.manufacturer = manufacturer
        self.model = model
        self.unit = unit
        self.interval = interval
        self.program_switch_delay = program_switch_delay
        self._random = random.Random(seed)
        self._program = program
        self._step = 0
        self._weight = _PROGRAM_START_WEIGHT.get(program, Decimal(0))
        self._stable = True

    @property
    def supports_continuous_reading(self) -> bool:
        return True

    @property
    def program(self) -> DemoProgram:
        return self._program

    async def set_program(self, program: DemoProgram) -> None:
        """Switch to another demo pattern, restarting it from its first step."""
        self._program = program
        self._step = 0
        self._weight = _PROGRAM_START_WEIGHT.get(program, Decimal(0))
        await anyio.sleep(self.program_switch_delay)
        logger.info(f"{self.name}: demo program {program.value}")

    def _jitter(self, spread: str) -> Decimal:
        offset = (Decimal(self._random.random()) - Decimal("0.5")) * Decimal(spread)
        return offset.quantize(NOISE_QUANTUM, rounding=ROUND_HALF_EVEN)

    def generate_reading(self) -> WeightReading:
        """Advance the current program by one step and return its reading."""
        weight = self._weight
        stable = self._stable
        self._step += 1
        step = self._step

        if self._program is DemoProgram.STABLE:
            weight = Decimal("5.0") + self._jitter("0.002")
            stable = True

        elif self._program is DemoProgram.GRADUAL_INCREASE:
            if step <= 30:
                weight = (Decimal(step) / 3).quantize(NOISE_QUANTUM)
                stable = step % 3 != 0

        elif self._program is DemoProgram.UNSTABLE:
            weight = Decimal("2.5") + self._jitter("0.3")
            stable = self._random.randrange(10) >= 4

        elif self._program is DemoProgram.STEP_CHANGES:
            weight = Decimal((step // 5) % 5) * 2
            stable = step % 5 > 1

        elif self._program is DemoProgram.OVERLOAD:
            if step <= 40:
                weight = Decimal(step) * Decimal("0.5")
                stable = weight < 15
                if weight > OVERLOAD_CAPACITY:
                    self._weight = weight
                    self._stable = False
                    raise ScaleOverloadError(
                        f"Scale capacity exceeded ({weight} {self.unit.symbol} > "
                        f"{OVERLOAD_CAPACITY} {self.unit.symbol})")

        elif self._program is DemoProgram.ZERO_STABILITY:
            if step % 10 == 0:
                weight = Decimal(0)
                stable = True
            else:
                weight = self._jitter("0.05")
                stable = abs(weight) < Decimal("0.02")

        self._weight = weight
        self._stable = stable
        return WeightReading(weight, self.unit, is_stable=stable)

    async def open(self) -> bool:
        return True

    async def close(self) -> None:
        pass

    async def read_once(self) -> WeightReading:
        return self.generate_reading()

    async def zero(self) -> None:
        self._weight = Decimal(0)

    async def send_raw(self, command: str) -> str:
        if "STATUS" in command.upper():
            return f"STATUS: READY, PROGRAM: {self._program.name}"
        return f"ACK: {command}"

    async def next_continuous_reading(self) -> Optional[WeightReading]:
        await anyio.sleep(self.interval)
        return self.generate_reading()
