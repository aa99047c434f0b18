# apc2mqtt -- APC PDU to MQTT Bridge
# Home Assistant switches for APC switched rack PDUs
# Copyright 2026 GPL-3.0 License

"""Target supervisor -- glue between one PDU session and the MQTT gateway."""

import asyncio
import json
import logging
from dataclasses import dataclass

from .mqtt_handler import MQTTHandler
from .pdu_model import Command, DeviceState
from .reconciler import DISCOVERY_PREFIX, Announce, PublishValue, Subscribe, reconcile
from .session import DeviceSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutletCommandHandler:
    """MQTT callback for one outlet's ``set`` topic."""
    session: DeviceSession
    outlet_index: int

    async def __call__(self, payload: bytes) -> None:
        await self.session.submit(Command.from_payload(self.outlet_index, payload))


class TargetSupervisor:
    """Owns one PDU's session, its state feed and its last announced state.

    Every state the session emits goes through exactly one reconcile pass,
    in order.
    """

    def __init__(
        self,
        client,
        mqtt: MQTTHandler,
        *,
        discovery_prefix: str = DISCOVERY_PREFIX,
        poll_interval: float = 1.0,
        reconnect_interval: float = 5.0,
        logger: logging.Logger = logger,
    ):
        self.mqtt = mqtt
        self.discovery_prefix = discovery_prefix
        self._log = logger
        self.states: asyncio.Queue[DeviceState] = asyncio.Queue(maxsize=1)
        self.session = DeviceSession(
            client,
            self.states,
            poll_interval=poll_interval,
            reconnect_interval=reconnect_interval,
            logger=logger,
        )
        self.label = self.session.label
        self.last_state: DeviceState | None = None

    async def run(self):
        consumer = asyncio.ensure_future(self._consume())
        try:
            await self.session.run()
        finally:
            consumer.cancel()

    async def _consume(self):
        while True:
            state = await self.states.get()
            self.handle_state(state)

    def handle_state(self, state: DeviceState):
        """Reconcile *state* against the last one and execute the actions."""
        first = self.last_state is None
        for action in reconcile(state, self.last_state, self.discovery_prefix):
            try:
                self._execute(action)
            except Exception:
                self._log.exception("[%s] Error executing %r", self.label, action)
        self.last_state = state
        if first:
            self._log.info(
                "[%s] Announced %s (serial %s, model %s) with %d outlets",
                self.label, state.name, state.serial, state.model, len(state.outlets),
            )

    def _execute(self, action):
        if isinstance(action, Announce):
            self._log.debug("[%s] Announcing %s", self.label, action.uid)
            self.mqtt.publish(action.topic, json.dumps(action.descriptor), retain=True)
        elif isinstance(action, Subscribe):
            self.mqtt.subscribe(
                action.topic, OutletCommandHandler(self.session, action.outlet_index),
            )
        elif isinstance(action, PublishValue):
            self.mqtt.publish(action.topic, action.payload, retain=True)
        else:
            raise TypeError(f"unknown action {action!r}")
