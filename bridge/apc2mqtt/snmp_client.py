# apc2mqtt -- APC PDU to MQTT Bridge
# Home Assistant switches for APC switched rack PDUs
# Copyright 2026 GPL-3.0 License

"""SNMPv1 GET/WALK/SET wrapper for APC PDUs.

Every failure, whether the request timed out or the agent answered with an
error status, is raised as :class:`SNMPError`. Callers decide what a failure
means (a poll failure drops the connection, a failed SET does not).
"""

import asyncio
import functools
import logging
from typing import Any

from pysnmp.error import PySnmpError
from pysnmp.hlapi.asyncio import (
    CommunityData,
    ContextData,
    Integer32,
    ObjectIdentity,
    ObjectType,
    SnmpEngine,
    UdpTransportTarget,
    getCmd,
    setCmd,
    walkCmd,
)

logger = logging.getLogger(__name__)


class SNMPError(Exception):
    """Raised when an SNMP request fails or the agent returns an error."""


def _format_error(error_status, error_index, var_binds) -> str:
    where = var_binds[int(error_index) - 1][0] if error_index else "?"
    return f"{error_status.prettyPrint()} at {where}"


class SNMPClient:
    """SNMPv1 client bound to one agent.

    :meth:`open` must be called before any request; :meth:`close` releases
    the engine's sockets so the client can be opened again.
    """

    def __init__(self, host: str, port: int = 161, community: str = "private",
                 timeout: float = 2.0, retries: int = 3):
        self._host = host
        self._port = port
        self._timeout = timeout
        self._retries = retries
        # mpModel=0 selects SNMPv1
        self._community = CommunityData(community, mpModel=0)
        self.engine: SnmpEngine | None = None
        self._target: UdpTransportTarget | None = None

    @property
    def target(self) -> str:
        return f"{self._host}:{self._port}"

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    async def open(self) -> None:
        """Create the engine and resolve the agent address.

        The address lookup blocks, so it runs in the default executor.
        """
        loop = asyncio.get_running_loop()
        try:
            target = await loop.run_in_executor(None, functools.partial(
                UdpTransportTarget,
                (self._host, self._port),
                timeout=self._timeout,
                retries=self._retries,
            ))
        except PySnmpError as e:
            raise SNMPError(f"open {self.target}: {e}") from e
        self._target = target
        self.engine = SnmpEngine()
        logger.debug("SNMP engine opened for %s", self.target)

    def _require_open(self):
        if self.engine is None or self._target is None:
            raise SNMPError(f"{self.target}: client is not open")

    async def get(self, oids: list[str]) -> list[Any]:
        """GET several scalars in one request; values come back in order."""
        self._require_open()
        try:
            error_indication, error_status, error_index, var_binds = await getCmd(
                self.engine,
                self._community,
                self._target,
                ContextData(),
                *(ObjectType(ObjectIdentity(oid)) for oid in oids),
            )
        except PySnmpError as e:
            raise SNMPError(f"GET {oids}: {e}") from e

        if error_indication:
            raise SNMPError(f"GET {oids}: {error_indication}")
        if error_status:
            raise SNMPError(f"GET {oids}: {_format_error(error_status, error_index, var_binds)}")

        return [value for _oid, value in var_binds]

    async def walk(self, oid: str) -> list[Any]:
        """Walk the subtree under *oid* and return its values in OID order."""
        self._require_open()
        values = []
        try:
            async for error_indication, error_status, error_index, var_binds in walkCmd(
                self.engine,
                self._community,
                self._target,
                ContextData(),
                ObjectType(ObjectIdentity(oid)),
                lexicographicMode=False,
            ):
                if error_indication:
                    raise SNMPError(f"WALK {oid}: {error_indication}")
                if error_status:
                    raise SNMPError(
                        f"WALK {oid}: {_format_error(error_status, error_index, var_binds)}"
                    )
                values.extend(value for _oid, value in var_binds)
        except PySnmpError as e:
            raise SNMPError(f"WALK {oid}: {e}") from e
        return values

    async def set_int(self, oid: str, value: int) -> None:
        """SET an INTEGER value."""
        self._require_open()
        try:
            error_indication, error_status, error_index, var_binds = await setCmd(
                self.engine,
                self._community,
                self._target,
                ContextData(),
                ObjectType(ObjectIdentity(oid), Integer32(value)),
            )
        except PySnmpError as e:
            raise SNMPError(f"SET {oid}={value}: {e}") from e

        if error_indication:
            raise SNMPError(f"SET {oid}={value}: {error_indication}")
        if error_status:
            raise SNMPError(
                f"SET {oid}={value}: {_format_error(error_status, error_index, var_binds)}"
            )

    def close(self):
        engine, self.engine, self._target = self.engine, None, None
        if engine is None:
            return
        try:
            engine.transportDispatcher.closeDispatcher()
        except Exception:
            logger.debug("Error closing SNMP engine", exc_info=True)
