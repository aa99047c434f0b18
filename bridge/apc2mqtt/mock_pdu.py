# apc2mqtt -- APC PDU to MQTT Bridge
# Home Assistant switches for APC switched rack PDUs
# Copyright 2026 GPL-3.0 License

"""Simulated APC PDU for running the bridge without real hardware.

Speaks the same small interface as :class:`SNMPClient` (open/get/walk/
set_int/close) over an in-memory OID table.
"""

import logging
from typing import Any

from .pdu_model import (
    OID_MODEL,
    OID_OUTLET_CTL,
    OID_OUTLET_NAME,
    OID_PDU_NAME,
    OID_SERIAL,
    OUTLET_CTL_OFF,
    OUTLET_CTL_ON,
)
from .snmp_client import SNMPError

logger = logging.getLogger(__name__)


class MockPDU:
    """Simulates an APC switched PDU."""

    def __init__(self, num_outlets: int = 8, serial: str = "MOCK0001",
                 model: str = "AP7920", device_name: str = "Mock PDU",
                 label: str = "mock"):
        self._scalars = {
            OID_PDU_NAME: device_name,
            OID_SERIAL: serial,
            OID_MODEL: model,
        }
        self.outlet_names: dict[int, str] = {
            n: f"Outlet {n}" for n in range(1, num_outlets + 1)
        }
        self.outlet_ctl: dict[int, int] = {
            n: OUTLET_CTL_ON for n in range(1, num_outlets + 1)
        }
        self._label = label
        self._open = False

    @property
    def target(self) -> str:
        return self._label

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        self._open = True

    def _require_open(self):
        if not self._open:
            raise SNMPError("mock: client is not open")

    async def get(self, oids: list[str]) -> list[Any]:
        self._require_open()
        missing = [oid for oid in oids if oid not in self._scalars]
        if missing:
            raise SNMPError(f"GET {missing}: noSuchName")
        return [self._scalars[oid] for oid in oids]

    async def walk(self, oid: str) -> list[Any]:
        self._require_open()
        if oid == OID_OUTLET_NAME:
            table = self.outlet_names
        elif oid == OID_OUTLET_CTL:
            table = self.outlet_ctl
        else:
            return []
        return [table[n] for n in sorted(table)]

    async def set_int(self, oid: str, value: int) -> None:
        self._require_open()
        base, _, index = oid.rpartition(".")
        if base != OID_OUTLET_CTL or not index.isdigit():
            raise SNMPError(f"SET {oid}={value}: notWritable")
        n = int(index)
        if n not in self.outlet_ctl:
            raise SNMPError(f"SET {oid}={value}: noSuchName")
        if value not in (OUTLET_CTL_ON, OUTLET_CTL_OFF):
            raise SNMPError(f"SET {oid}={value}: badValue")
        self.outlet_ctl[n] = value
        logger.info("Mock outlet %d -> %s", n, "on" if value == OUTLET_CTL_ON else "off")

    def close(self):
        self._open = False
