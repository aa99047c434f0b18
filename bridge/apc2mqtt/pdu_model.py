# apc2mqtt -- APC PDU to MQTT Bridge
# Home Assistant switches for APC switched rack PDUs
# Copyright 2026 GPL-3.0 License

"""OID constants and data models for APC switched rack PDUs (PowerNet MIB)."""

from dataclasses import dataclass

# snmptranslate -m PowerNet-MIB -Pu -Tso
BASE_OID = "1.3.6.1.4.1.318.1.1.4"

# Device identity
OID_PDU_NAME = f"{BASE_OID}.3.3.0"        # sPDUMasterConfigPDUName
OID_SERIAL = f"{BASE_OID}.1.5.0"          # sPDUIdentSerialNumber
OID_MODEL = f"{BASE_OID}.1.4.0"           # sPDUIdentModelNumber

# Outlet tables (walked as subtrees)
OID_OUTLET_NAME = f"{BASE_OID}.5.2.1.3"   # sPDUOutletName
OID_OUTLET_CTL = f"{BASE_OID}.4.2.1.3"    # sPDUOutletCtl


def oid_outlet_ctl(n: int) -> str:
    return f"{OID_OUTLET_CTL}.{n}"


# Outlet control values (1=on, 2=off; the MIB reserves 3+ for reboot/delays)
OUTLET_CTL_ON = 1
OUTLET_CTL_OFF = 2

# MQTT switch payloads
PAYLOAD_ON = "ON"
PAYLOAD_OFF = "OFF"

MANUFACTURER = "APC"
UID_PREFIX = "apc"


@dataclass(frozen=True)
class Outlet:
    name: str
    state: bool


@dataclass(frozen=True)
class DeviceState:
    """One poll's snapshot of a PDU.

    ``outlets[i]`` is controlled at SNMP index ``i + 1``.
    """
    name: str
    serial: str
    model: str
    outlets: tuple[Outlet, ...] = ()


@dataclass(frozen=True)
class Command:
    outlet_index: int  # 1-based, as addressed on the device
    desired_state: bool

    @classmethod
    def from_payload(cls, outlet_index: int, payload: bytes) -> "Command":
        """Build a command from an MQTT payload. Only an exact ``ON`` turns on."""
        return cls(
            outlet_index=outlet_index,
            desired_state=payload == PAYLOAD_ON.encode(),
        )


def payload_for(state: bool) -> str:
    return PAYLOAD_ON if state else PAYLOAD_OFF
