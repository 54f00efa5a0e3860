#!/usr/bin/env python3
"""
Weighscale Basic Monitoring Example

Connects to a serial scale, switches it to continuous output and writes
every reading to the console and a log file.

Expected behavior:
- Connects to the scale (auto-detects the port if none is given)
- Logs each reading with its stability flag
- Prints reading statistics and transport statistics at the end
"""

import sys
import os
import time
import logging
import argparse
import anyio
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from weighscale import WeighingError, connect_serial_scale

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def async_main(args, dual_print, log_file_path):
    dual_print("🔍 Connecting to scale...")
    device = await connect_serial_scale(args.port, baud_rate=args.baud)
    if device is None:
        dual_print("❌ No scale found")
        dual_print("💡 Try: python examples/basic_monitoring.py --port <PORT>")
        return 1

    reading_count = 0
    unstable_count = 0

    def on_reading(reading):
        nonlocal reading_count, unstable_count
        reading_count += 1
        if not reading.is_stable:
            unstable_count += 1
        marker = "" if reading.is_stable else " (unstable)"
        dual_print(f"⚖️  {reading.value} {reading.unit.symbol}{marker}")

    start_time = time.time()
    try:
        async with device:
            dual_print(f"✅ Connected to {device.name} on {device.configuration.connection_string}")
            device.on_weight_reading(on_reading)
            device.on_status_changed(lambda status: dual_print(f"🔌 Status: {status.value}"))

            await device.start_continuous_reading()
            dual_print(f"📡 Monitoring for {args.duration} seconds...")
            dual_print("=" * 60)
            await anyio.sleep(args.duration)
            dual_print(f"\n⏱️  Duration reached ({args.duration}s)")

            stats = device.backend.get_stats()
    except WeighingError as e:
        dual_print(f"\n❌ Error: {e}")
        dual_print(f"📁 Log saved to: {log_file_path}")
        return 1

    elapsed = time.time() - start_time
    rate = reading_count / elapsed if elapsed > 0 else 0

    dual_print("\n🏁 Final Results:")
    dual_print(f"   Total time: {elapsed:.1f}s")
    dual_print(f"   Readings received: {reading_count} ({rate:.1f}/sec)")
    dual_print(f"   Unstable readings: {unstable_count}")
    dual_print(f"   Transport stats: {stats}")
    dual_print(f"\n📁 Log saved to: {log_file_path}")
    return 0


def main():
    """Main monitoring function."""
    parser = argparse.ArgumentParser(description="Weighscale Basic Monitoring")
    parser.add_argument("--port", help="Serial port (auto-detect if not specified)")
    parser.add_argument("--baud", type=int, default=9600, help="Baud rate")
    parser.add_argument("--duration", type=float, default=30.0, help="Monitoring duration (seconds)")
    parser.add_argument("--logfile", help="Log file path (auto-generated if not specified)")
    args = parser.parse_args()

    if args.logfile:
        log_file_path = args.logfile
    else:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file_path = f"scale_monitor_{timestamp}.log"

    with open(log_file_path, "w", encoding="utf-8") as log_file:
        print(f"📝 Logging to file: {log_file_path}")

        def dual_print(message):
            """Print to both console and file."""
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
            print(message)
            log_file.write(f"[{timestamp}] {message}\n")
            log_file.flush()

        try:
            return anyio.run(async_main, args, dual_print, log_file_path)
        except KeyboardInterrupt:
            print("\n⏹️  Monitoring stopped by user (Ctrl-C)")
            print(f"📁 Log saved to: {log_file_path}")
            return 0


if __name__ == "__main__":
    sys.exit(main())
