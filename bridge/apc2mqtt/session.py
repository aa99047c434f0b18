# apc2mqtt -- APC PDU to MQTT Bridge
# Home Assistant switches for APC switched rack PDUs
# Copyright 2026 GPL-3.0 License

"""Device session -- one long-lived SNMP connection to a single PDU.

The session alternates between two states:

DISCONNECTED  -- try to open the client; on failure wait the reconnect
                 interval and try again, forever.
CONNECTED     -- wait for whichever comes first, the next poll tick or a
                 queued command, and handle it. Only one SNMP request is
                 ever in flight.

A failed poll drops the connection and starts over from DISCONNECTED. A
failed command is logged and the connection is kept: polling is the health
signal, commands are best effort.
"""

import asyncio
import enum
import logging

from .pdu_model import (
    OID_MODEL,
    OID_OUTLET_CTL,
    OID_OUTLET_NAME,
    OID_PDU_NAME,
    OID_SERIAL,
    OUTLET_CTL_OFF,
    OUTLET_CTL_ON,
    Command,
    DeviceState,
    Outlet,
    oid_outlet_ctl,
)
from .snmp_client import SNMPError

logger = logging.getLogger(__name__)


class ConnectError(Exception):
    """The device could not be reached. Retried after the backoff interval."""


class PollError(Exception):
    """A GET or WALK against a connected device failed. Forces a reconnect."""


class CommandError(Exception):
    """An outlet SET failed. Logged; the connection is kept."""


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


def _is_on(value) -> bool:
    try:
        return int(value) == OUTLET_CTL_ON
    except (ValueError, TypeError):
        return False


class DeviceSession:
    """Poll/command loop for one PDU.

    Polled states are put on *states* (awaiting until the consumer has
    room, so no observation is dropped). Commands arrive via :meth:`submit`.
    """

    def __init__(
        self,
        client,
        states: asyncio.Queue,
        *,
        poll_interval: float = 1.0,
        reconnect_interval: float = 5.0,
        logger: logging.Logger = logger,
    ):
        self.client = client
        self.states = states
        self.commands: asyncio.Queue[Command] = asyncio.Queue()
        self.poll_interval = poll_interval
        self.reconnect_interval = reconnect_interval
        self.state = SessionState.DISCONNECTED
        self.label = client.target
        self._log = logger

        self.connect_attempts = 0
        self.poll_count = 0
        self.poll_errors = 0
        self.command_errors = 0

    async def submit(self, command: Command):
        """Queue a command for the device."""
        await self.commands.put(command)

    # -- Connection -------------------------------------------------------

    async def connect(self):
        self.connect_attempts += 1
        self._log.info("[%s] Opening SNMP connection", self.label)
        try:
            await self.client.open()
        except SNMPError as e:
            raise ConnectError(str(e)) from e
        self.state = SessionState.CONNECTED

    def disconnect(self):
        self.state = SessionState.DISCONNECTED
        self.client.close()

    # -- Device I/O -------------------------------------------------------

    async def poll(self) -> DeviceState:
        """Read identity and both outlet tables. All or nothing."""
        try:
            name, serial, model = await self.client.get(
                [OID_PDU_NAME, OID_SERIAL, OID_MODEL]
            )
            names = await self.client.walk(OID_OUTLET_NAME)
            controls = await self.client.walk(OID_OUTLET_CTL)
        except SNMPError as e:
            raise PollError(str(e)) from e

        if len(names) != len(controls):
            raise PollError(
                f"outlet table size mismatch: {len(names)} names, "
                f"{len(controls)} control states"
            )

        return DeviceState(
            name=str(name),
            serial=str(serial),
            model=str(model),
            outlets=tuple(
                Outlet(name=str(n), state=_is_on(c))
                for n, c in zip(names, controls)
            ),
        )

    async def apply_command(self, command: Command):
        value = OUTLET_CTL_ON if command.desired_state else OUTLET_CTL_OFF
        try:
            await self.client.set_int(oid_outlet_ctl(command.outlet_index), value)
        except SNMPError as e:
            raise CommandError(
                f"outlet {command.outlet_index} -> {value}: {e}"
            ) from e

    # -- Loop -------------------------------------------------------------

    async def run(self):
        """Run forever: connect, serve until a poll fails, reconnect."""
        while True:
            try:
                await self.connect()
            except ConnectError as e:
                self._log.warning(
                    "[%s] Error connecting SNMP target: %s. Retrying in %.0fs",
                    self.label, e, self.reconnect_interval,
                )
                await asyncio.sleep(self.reconnect_interval)
                continue

            await self._serve()

    async def _serve(self):
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.poll_interval

        while True:
            remaining = next_tick - loop.time()
            if remaining > 0:
                try:
                    command = await asyncio.wait_for(self.commands.get(), remaining)
                except asyncio.TimeoutError:
                    pass
                else:
                    await self._handle_command(command)
                    continue

            # Missed ticks collapse into one, like a dropped ticker tick
            next_tick = max(next_tick + self.poll_interval, loop.time())

            try:
                state = await self.poll()
            except PollError as e:
                self.poll_errors += 1
                self._log.error("[%s] Getting PDU state: %s", self.label, e)
                self.disconnect()
                return

            self.poll_count += 1
            self._log.debug("[%s] Got state: %s", self.label, state)
            await self.states.put(state)

    async def _handle_command(self, command: Command):
        try:
            await self.apply_command(command)
        except CommandError as e:
            self.command_errors += 1
            self._log.error("[%s] Setting PDU state: %s", self.label, e)
            return
        self._log.info(
            "[%s] Outlet %d -> %s",
            self.label, command.outlet_index,
            "on" if command.desired_state else "off",
        )
