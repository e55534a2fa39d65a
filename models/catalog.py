"""Seed data: the demo device fleet, known protocols and AI provider defaults."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

from app.schemas import (
    AIProvider,
    AISettings,
    Device,
    DeviceStatus,
    ProtocolField,
    ProviderSettings,
    Reading,
)

_SEED_FLEET = (
    (
        "cnc-001",
        "CNC Machine Alpha",
        "Ethernet/IP",
        {"ipAddress": "192.168.1.10", "subnetMask": "255.255.255.0", "defaultGateway": "192.168.1.1"},
        (55.0, 105.0, 1.2),
        DeviceStatus.normal,
    ),
    (
        "rbt-002",
        "Welding Robot Beta",
        "Profibus",
        {"stationAddress": 3, "baudRate": 19200},
        (65.0, 150.0, 2.1),
        DeviceStatus.normal,
    ),
    (
        "pmp-003",
        "Coolant Pump Gamma",
        "Modbus RTU",
        {"slaveAddress": 5, "baudRate": 9600, "parity": "None", "dataBits": 8, "stopBits": 1},
        (78.0, 180.0, 3.5),
        DeviceStatus.warning,
    ),
    (
        "asm-004",
        "Assembly Line Delta",
        "EtherCAT",
        {"ipAddress": "192.168.1.12", "subnetMask": "255.255.255.0", "defaultGateway": "192.168.1.1"},
        (45.0, 90.0, 0.8),
        DeviceStatus.normal,
    ),
    (
        "vlv-005",
        "Flow Control Valve",
        "HART",
        {"deviceTag": "FT-101"},
        (50.0, 115.0, 1.0),
        DeviceStatus.normal,
    ),
)


def initial_devices(now: Optional[datetime] = None) -> List[Device]:
    """Build a fresh copy of the demo fleet stamped at ``now``."""
    stamp = now or datetime.now(timezone.utc)
    devices = []
    for device_id, name, protocol, params, (temp, pressure, vibration), status in _SEED_FLEET:
        reading = Reading(time=stamp, temperature=temp, pressure=pressure, vibration=vibration)
        devices.append(
            Device(
                id=device_id,
                name=name,
                protocol=protocol,
                connection_params=dict(params),
                status=status,
                current_data=reading,
                history=[reading],
            )
        )
    return devices


PROTOCOL_INFO: Dict[str, str] = {
    "Modbus RTU": (
        "A serial communication protocol (RS-485, RS-232) for connecting industrial "
        "electronic devices. It's known for its simplicity and reliability."
    ),
    "Modbus TCP/IP": (
        "An adaptation of Modbus for Ethernet networks. It encapsulates Modbus RTU "
        "request/response data packets in a TCP/IP wrapper."
    ),
    "Profibus": (
        "A standard for fieldbus communication in automation technology. It's suited "
        "for complex communication tasks and time-critical applications."
    ),
    "Ethernet/IP": (
        "An industrial network protocol that adapts the Common Industrial Protocol (CIP) "
        "to standard Ethernet. It offers a wide range of network services."
    ),
    "EtherCAT": (
        "Ethernet for Control Automation Technology is an Ethernet-based fieldbus system. "
        "It's known for high performance and flexible topology."
    ),
    "HART": (
        "Highway Addressable Remote Transducer Protocol is a hybrid analog+digital "
        "protocol widely used in process and instrumentation systems."
    ),
}


def _ip_fields(example_ip: str) -> List[ProtocolField]:
    return [
        ProtocolField(name="ipAddress", label="IP Address", type="text", placeholder=f"e.g., {example_ip}"),
        ProtocolField(name="subnetMask", label="Subnet Mask", type="text", placeholder="e.g., 255.255.255.0"),
        ProtocolField(name="defaultGateway", label="Default Gateway", type="text", placeholder="e.g., 192.168.1.1"),
    ]


PROTOCOL_FIELDS: Dict[str, List[ProtocolField]] = {
    "Modbus RTU": [
        ProtocolField(name="slaveAddress", label="Slave Address", type="number", placeholder="1-247"),
        ProtocolField(name="baudRate", label="Baud Rate", type="number", placeholder="e.g., 9600"),
        ProtocolField(name="parity", label="Parity", type="select", options=["None", "Even", "Odd"]),
        ProtocolField(name="dataBits", label="Data Bits", type="number", placeholder="e.g., 8"),
        ProtocolField(name="stopBits", label="Stop Bits", type="number", placeholder="e.g., 1"),
    ],
    "Modbus TCP/IP": _ip_fields("192.168.1.10"),
    "Profibus": [
        ProtocolField(name="stationAddress", label="Station Address", type="number", placeholder="1-126"),
        ProtocolField(name="baudRate", label="Baud Rate", type="number", placeholder="e.g., 19200"),
    ],
    "Ethernet/IP": _ip_fields("192.168.1.11"),
    "EtherCAT": _ip_fields("192.168.1.12"),
    "HART": [
        ProtocolField(name="deviceTag", label="Device Tag", type="text", placeholder="e.g., FT-101"),
    ],
}


def default_ai_settings() -> AISettings:
    return AISettings(
        provider=AIProvider.gemini,
        gemini=ProviderSettings(
            model="gemini-2.5-flash",
            base_url="https://generativelanguage.googleapis.com/v1beta",
        ),
        openai=ProviderSettings(model="gpt-4o", base_url="https://api.openai.com/v1"),
        anthropic=ProviderSettings(model="claude-3-5-sonnet-20240620"),
        iotteam=ProviderSettings(model="iot-model-v1", base_url="https://api.iotteam.com/v1"),
    )
