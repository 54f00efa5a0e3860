#!/usr/bin/env python3
"""
Weighscale Console Example

Interactive console for any weighing device variant.

Variants:
- serial:    a real scale on a serial port (on-demand or continuous reading)
- simulated: a virtual scale you load with the 'a' / 's' commands
- demo:      predefined weight patterns (stable, overload, ...)

Usage:
    python examples/console.py --variant simulated
    python examples/console.py --variant serial --port COM3 --baud 9600
    python examples/console.py --variant demo --program overload --duration 20
"""

import sys
import os
import logging
import argparse
import anyio
import anyio.to_thread

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from weighscale import (
    ConnectionConfig,
    DemoProgram,
    DemoScaleBackend,
    SimulatedScaleBackend,
    WeighingDevice,
    WeighingError,
    WeightUnit,
    create_serial_scale,
    find_scale_ports,
)

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def show_reading(reading):
    stability = "stable" if reading.is_stable else "unstable"
    print(f"⚖️  {reading.value:>10} {reading.unit.symbol:<2} ({stability})")


async def prompt(text):
    """Read one line from stdin without blocking the event loop."""
    return (await anyio.to_thread.run_sync(input, text)).strip().lower()


def build_device(args):
    if args.variant == "simulated":
        return WeighingDevice(SimulatedScaleBackend(unit=WeightUnit.KILOGRAM, max_weight=100))

    if args.variant == "demo":
        program = DemoProgram[args.program.upper()]
        return WeighingDevice(DemoScaleBackend(unit=WeightUnit.KILOGRAM, program=program))

    port = args.port
    if not port:
        ports = find_scale_ports()
        if not ports:
            return None
        port = ports[0]
        print(f"✅ Using detected port: {port}")
    return create_serial_scale(ConnectionConfig.serial(port, baud_rate=args.baud))


async def run_simulated(device):
    backend = device.backend
    print("\nCommands: a = add 1 kg, s = subtract 1 kg, z = zero, q = quit")
    while True:
        command = await prompt("> ")
        if command == "a":
            await backend.add_weight(1)
        elif command == "s":
            await backend.add_weight(-1)
        elif command == "z":
            await device.zero_scale()
            print("Scale zeroed")
        elif command == "q":
            return


async def run_on_demand(device):
    print("\nCommands: <enter> = read weight, z = zero, raw <cmd> = send raw command, q = quit")
    while True:
        command = await prompt("> ")
        try:
            if command == "":
                show_reading(await device.get_weight())
            elif command == "z":
                await device.zero_scale()
                print("Scale zeroed")
            elif command.startswith("raw "):
                response = await device.send_raw_command(command[4:].upper())
                print(f"📨 {response.strip()!r}")
            elif command == "q":
                return
        except WeighingError as e:
            print(f"❌ {e}")


async def async_main(args):
    device = build_device(args)
    if device is None:
        print("❌ No serial ports found")
        print("💡 Try: python examples/console.py --variant serial --port <PORT>")
        return 1

    async with device:
        device.on_status_changed(lambda status: print(f"🔌 Status: {status.value}"))
        device.on_weight_reading(show_reading)

        print(f"Connecting to {device.name}...")
        try:
            if not await device.connect():
                print("❌ Device did not respond")
                return 1
        except WeighingError as e:
            print(f"❌ Connection failed: {e}")
            return 1

        print(f"✅ Connected: {device.name} ({device.manufacturer} {device.model})")

        if args.variant == "simulated":
            await device.start_continuous_reading()
            await run_simulated(device)
        elif args.continuous or args.variant == "demo":
            if not device.supports_continuous_reading:
                print("❌ Device does not support continuous reading")
                return 1
            await device.start_continuous_reading()
            print(f"📡 Receiving readings for {args.duration} seconds (Ctrl-C to stop)...")
            await anyio.sleep(args.duration)
            await device.stop_continuous_reading()
        else:
            await run_on_demand(device)

    print("🔌 Disconnected")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Weighscale Console")
    parser.add_argument("--variant", choices=["serial", "simulated", "demo"], default="simulated",
                        help="Device variant")
    parser.add_argument("--port", help="Serial port (auto-detect if not specified)")
    parser.add_argument("--baud", type=int, default=9600, help="Baud rate")
    parser.add_argument("--continuous", action="store_true", help="Stream readings instead of polling")
    parser.add_argument("--duration", type=float, default=30.0, help="Streaming duration (seconds)")
    parser.add_argument("--program", choices=[p.value for p in DemoProgram], default="stable",
                        help="Demo weight pattern")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.debug:
        logging.getLogger("weighscale").setLevel(logging.DEBUG)

    try:
        return anyio.run(async_main, args)
    except KeyboardInterrupt:
        print("\n⏹️  Stopped by user (Ctrl-C)")
        return 0


if __name__ == "__main__":
    sys.exit(main())
