# apc2mqtt -- APC PDU to MQTT Bridge
# Home Assistant switches for APC switched rack PDUs
# Copyright 2026 GPL-3.0 License

"""MQTT gateway -- one broker connection shared by every PDU target.

Offers two operations to the rest of the bridge: :meth:`MQTTHandler.publish`
and :meth:`MQTTHandler.subscribe`. paho runs its network loop in its own
thread; message callbacks are coroutines and are scheduled on the asyncio
event loop the handler was connected from.

Subscriptions are remembered and re-issued on every (re)connect, since a
clean-session broker forgets them when the connection drops.
"""

import asyncio
import logging
import threading
from typing import Awaitable, Callable

import paho.mqtt.client as mqtt

from .config import Config

logger = logging.getLogger(__name__)

MessageCallback = Callable[[bytes], Awaitable[None]]


class MQTTHandler:
    def __init__(self, config: Config, logger: logging.Logger = logger):
        self.config = config
        self._log = logger
        self._loop: asyncio.AbstractEventLoop | None = None

        # topic -> coroutine callback
        self._subscriptions: dict[str, MessageCallback] = {}
        self._lock = threading.Lock()

        self._connected: bool = False
        self._was_connected: bool = False
        self._publish_errors: int = 0

        self.client = mqtt.Client(
            client_id=config.mqtt_client_id,
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        )
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect
        # Auto-reconnect with backoff once the first connect succeeded
        self.client.reconnect_delay_set(min_delay=1, max_delay=30)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self):
        """Connect to the broker, retrying forever with a fixed backoff."""
        self._loop = asyncio.get_running_loop()

        if self.config.mqtt_username:
            self.client.username_pw_set(
                self.config.mqtt_username, self.config.mqtt_password or None
            )
            self._log.info("MQTT authentication configured for user %s", self.config.mqtt_username)

        while True:
            self._log.info(
                "Connecting to MQTT broker %s:%d", self.config.mqtt_broker, self.config.mqtt_port,
            )
            try:
                await self._loop.run_in_executor(
                    None, self.client.connect,
                    self.config.mqtt_broker, self.config.mqtt_port, 60,
                )
                break
            except OSError as e:
                self._log.warning(
                    "Error connecting to MQTT broker: %s. Retrying in %.0fs",
                    e, self.config.reconnect_interval,
                )
                await asyncio.sleep(self.config.reconnect_interval)

        self.client.loop_start()

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            self._log.error("MQTT connection refused (rc=%s)", reason_code)
            return
        self._log.info("MQTT connected (rc=%s)", reason_code)
        if self._was_connected:
            self._log.info("MQTT reconnected, restoring subscriptions")
        self._connected = True
        self._was_connected = True

        with self._lock:
            topics = list(self._subscriptions)
        for topic in topics:
            client.subscribe(topic, qos=0)
        if topics:
            self._log.info("Subscribed to %d command topic(s)", len(topics))

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._log.warning("MQTT disconnected (rc=%s)", reason_code)
        self._connected = False

    # ------------------------------------------------------------------
    # Publish / subscribe
    # ------------------------------------------------------------------

    def publish(self, topic: str, payload, retain: bool = False, qos: int = 0):
        """Publish with error tracking. Failures are logged, never raised."""
        try:
            info = self.client.publish(topic, payload, qos=qos, retain=retain)
            if info.rc != mqtt.MQTT_ERR_SUCCESS:
                self._publish_errors += 1
                if self._publish_errors % 100 == 1:
                    self._log.warning("MQTT publish failed (rc=%s, topic=%s)", info.rc, topic)
        except Exception:
            self._publish_errors += 1
            if self._publish_errors % 100 == 1:
                self._log.exception("MQTT publish exception (topic=%s)", topic)

    def subscribe(self, topic: str, callback: MessageCallback):
        """Register *callback* for messages on *topic* and subscribe.

        If the broker is not connected yet the subscription is issued by
        the next connect.
        """
        with self._lock:
            self._subscriptions[topic] = callback
        if self._connected:
            result, _mid = self.client.subscribe(topic, qos=0)
            if result != mqtt.MQTT_ERR_SUCCESS:
                self._log.warning("MQTT subscribe failed (rc=%s, topic=%s)", result, topic)
        self._log.debug("Subscribed to %s", topic)

    # ------------------------------------------------------------------
    # Incoming message routing
    # ------------------------------------------------------------------

    def _on_message(self, client, userdata, msg: mqtt.MQTTMessage):
        """Hand an incoming message to its callback on the event loop."""
        try:
            with self._lock:
                callback = self._subscriptions.get(msg.topic)
            if callback is None:
                self._log.warning("No callback registered for %s", msg.topic)
                return
            if not self._loop:
                self._log.warning("Event loop not set -- cannot dispatch %s", msg.topic)
                return
            self._log.debug("Message on %s: %r", msg.topic, msg.payload)
            asyncio.run_coroutine_threadsafe(callback(bytes(msg.payload)), self._loop)
        except Exception:
            self._log.exception("Error handling MQTT message on %s", msg.topic)

    # ------------------------------------------------------------------
    # Disconnect
    # ------------------------------------------------------------------

    def disconnect(self):
        try:
            self.client.loop_stop()
            self.client.disconnect()
        except Exception:
            self._log.debug("Error during MQTT disconnect", exc_info=True)
