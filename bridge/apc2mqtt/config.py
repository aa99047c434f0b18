# apc2mqtt -- APC PDU to MQTT Bridge
# Home Assistant switches for APC switched rack PDUs
# Copyright 2026 GPL-3.0 License

"""Configuration from environment variables with validation."""

import logging
import os

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration is invalid."""


class Config:
    def __init__(self):
        self.mqtt_broker = os.environ.get("MQTT_BROKER", "localhost")
        self.mqtt_port = self._int("MQTT_PORT", "1883", 1, 65535)
        self.mqtt_username = os.environ.get("MQTT_USERNAME", "")
        self.mqtt_password = os.environ.get("MQTT_PASSWORD", "")
        self.mqtt_client_id = os.environ.get("MQTT_CLIENT_ID", "apc2mqtt")
        self.discovery_prefix = os.environ.get("HA_DISCOVERY_PREFIX", "homeassistant")

        self.poll_interval = self._float("BRIDGE_POLL_INTERVAL", "1.0", 0.1, 300)
        self.reconnect_interval = self._float("BRIDGE_RECONNECT_INTERVAL", "5.0", 0.1, 3600)
        self.snmp_timeout = self._float("BRIDGE_SNMP_TIMEOUT", "2.0", 0.5, 30)
        self.snmp_retries = self._int("BRIDGE_SNMP_RETRIES", "3", 0, 5)
        self.log_level = os.environ.get("BRIDGE_LOG_LEVEL", "INFO").upper()
        self.mock_mode = os.environ.get("BRIDGE_MOCK_MODE", "false").lower() in ("true", "1", "yes")

        self.targets_file = os.environ.get("BRIDGE_TARGETS_FILE", "/data/targets.json")

        # Single target from env (used when no targets file exists)
        self.pdu_host = os.environ.get("PDU_HOST", "")
        self.pdu_snmp_port = self._int("PDU_SNMP_PORT", "161", 1, 65535)
        self.pdu_community = os.environ.get("PDU_COMMUNITY", "private")

        if not self.mqtt_client_id:
            raise ConfigError("MQTT_CLIENT_ID must not be empty")
        if not self.discovery_prefix or any(c in self.discovery_prefix for c in "#+ "):
            raise ConfigError(
                f"HA_DISCOVERY_PREFIX is not a valid topic prefix: {self.discovery_prefix!r}"
            )

        self._log_config()

    def apply_mqtt_section(self, section: dict):
        """Override broker settings from a config file's ``[MQTT]`` table.

        Keys are ``Host``, ``Port``, ``User`` and ``Pass``; missing keys keep
        the environment value.
        """
        if "Host" in section:
            self.mqtt_broker = str(section["Host"])
        if "Port" in section:
            port = section["Port"]
            if not isinstance(port, int) or not (1 <= port <= 65535):
                raise ConfigError(f"MQTT.Port={port!r} out of range [1, 65535]")
            self.mqtt_port = port
        if "User" in section:
            self.mqtt_username = str(section["User"])
        if "Pass" in section:
            self.mqtt_password = str(section["Pass"])
        if not self.mqtt_broker:
            raise ConfigError("MQTT.Host must not be empty")

    @staticmethod
    def _int(env: str, default: str, min_val: int, max_val: int) -> int:
        raw = os.environ.get(env, default)
        try:
            val = int(raw)
        except (ValueError, TypeError):
            raise ConfigError(f"{env}={raw!r} is not a valid integer")
        if not (min_val <= val <= max_val):
            raise ConfigError(f"{env}={val} out of range [{min_val}, {max_val}]")
        return val

    @staticmethod
    def _float(env: str, default: str, min_val: float, max_val: float) -> float:
        raw = os.environ.get(env, default)
        try:
            val = float(raw)
        except (ValueError, TypeError):
            raise ConfigError(f"{env}={raw!r} is not a valid number")
        if not (min_val <= val <= max_val):
            raise ConfigError(f"{env}={val} out of range [{min_val}, {max_val}]")
        return val

    def _log_config(self):
        logger.info(
            "Config: mqtt=%s:%d mock=%s poll=%.1fs reconnect=%.1fs targets=%s",
            self.mqtt_broker, self.mqtt_port, self.mock_mode,
            self.poll_interval, self.reconnect_interval, self.targets_file,
        )
