"""
Weighscale Connection Utilities

Utilities for finding serial scales and building connected devices.
"""

import logging
from typing import Any, Dict, List, Optional

import serial.tools.list_ports

from .device import WeighingDevice
from .errors import WeighingError
from .models import ConnectionConfig
from .parsers import parse_weight_response
from .protocol import GENERIC_COMMANDS, ParseFunction, ScaleCommands, SerialScaleBackend

logger = logging.getLogger(__name__)

# USB VID/PID pairs of USB-to-serial bridges commonly built into scales and adapters
USB_SERIAL_IDS = [
    (0x0403, 0x6001),  # FTDI FT232R
    (0x0403, 0x6015),  # FTDI FT230X
    (0x067b, 0x2303),  # Prolific PL2303
    (0x10c4, 0xea60),  # Silicon Labs CP210x
    (0x1a86, 0x7523),  # CH340 USB-to-serial chip
]

# Description keywords that suggest a serial line
SERIAL_KEYWORDS = ["ch340", "cp210", "ftdi", "pl2303", "prolific", "usb serial", "usb-serial", "uart", "rs232", "rs-232"]

# Keywords to exclude (likely not scales)
EXCLUDE_KEYWORDS = [
    "bluetooth", "hid", "mouse", "keyboard", "audio", "webcam",
    "camera", "printer", "modem", "fax", "virtual", "loopback"
]


def list_serial_ports() -> List[str]:
    """Names of all serial ports on this machine."""
    return sorted(port.device for port in serial.tools.list_ports.comports())


def find_scale_ports() -> List[str]:
    """
    Find serial ports that are likely to have a scale attached.

    Returns:
        Candidate port names, best matches first. Falls back to all ports
        when nothing looks like a USB-serial bridge.
    """
    logger.info("Searching for serial scales...")
    available_ports = serial.tools.list_ports.comports()
    logger.debug(f"Found {len(available_ports)} total serial ports")

    candidates = []

    # Method 1: USB VID/PID matching (most reliable)
    for port in available_ports:
        if port.vid is not None and port.pid is not None and (port.vid, port.pid) in USB_SERIAL_IDS:
            candidates.append(port.device)
            logger.info(f"USB VID/PID match: {port.device} - {port.description} "
                        f"(VID:0x{port.vid:04x}, PID:0x{port.pid:04x})")

    # Method 2: Description-based filtering (fallback)
    if not candidates:
        for port in available_ports:
            description = (port.description or "").lower()
            manufacturer = (port.manufacturer or "").lower()

            if any(keyword in description or keyword in manufacturer for keyword in EXCLUDE_KEYWORDS):
                logger.debug(f"Excluding {port.device}: {port.description}")
                continue

            if any(keyword in description or keyword in manufacturer for keyword in SERIAL_KEYWORDS):
                candidates.append(port.device)
                logger.info(f"Description match: {port.device} - {port.description}")

    if not candidates:
        logger.warning("No scale candidates found, returning all available ports")
        candidates = [port.device for port in available_ports]

    logger.info(f"Final candidates: {candidates}")
    return candidates


def get_port_info(port: str) -> Dict[str, Any]:
    """
    Get detailed information about a serial port.

    Args:
        port: Serial port name

    Returns:
        Dictionary with port information
    """
    for p in serial.tools.list_ports.comports():
        if p.device == port:
            return {
                'device': p.device,
                'description': p.description,
                'manufacturer': p.manufacturer,
                'vid': f"0x{p.vid:04x}" if p.vid else None,
                'pid': f"0x{p.pid:04x}" if p.pid else None,
                'serial_number': p.serial_number,
                'location': p.location,
            }

    return {'device': port, 'description': 'Port not found'}


def create_serial_scale(
    config: ConnectionConfig,
    name: str = "Generic Serial Scale",
    manufacturer: str = "Generic",
    model: str = "RS232 Scale",
    commands: ScaleCommands = GENERIC_COMMANDS,
    parse: ParseFunction = parse_weight_response,
    supports_continuous_reading: bool = True,
    **backend_options: Any,
) -> WeighingDevice:
    """
    Build a WeighingDevice for a scale on a serial line.

    Extra keyword arguments go to SerialScaleBackend (timing, encoding, ...).
    """
    backend = SerialScaleBackend(
        config,
        name=name,
        manufacturer=manufacturer,
        model=model,
        parse=parse,
        commands=commands,
        supports_continuous_reading=supports_continuous_reading,
        **backend_options,
    )
    return WeighingDevice(backend)


async def connect_serial_scale(
    port: Optional[str] = None,
    baud_rate: int = 9600,
    **scale_options: Any,
) -> Optional[WeighingDevice]:
    """
    Connect to a serial scale.

    Args:
        port: Specific port to connect to, or None to auto-detect
        baud_rate: Baud rate (default: 9600)
        **scale_options: Passed to create_serial_scale

    Returns:
        A connected WeighingDevice, or None if no port answered
    """
    ports_to_try = [port] if port else find_scale_ports()

    for port_name in ports_to_try:
        logger.info(f"Attempting to connect to {port_name}")
        device = create_serial_scale(ConnectionConfig.serial(port_name, baud_rate=baud_rate), **scale_options)
        try:
            if await device.connect():
                logger.info(f"Successfully connected to scale on {port_name}")
                return device
        except WeighingError as e:
            logger.debug(f"Failed to connect to {port_name}: {e}")
        await device.aclose()

    logger.error("Failed to connect to any scale")
    return None
