# apc2mqtt -- APC PDU to MQTT Bridge
# Home Assistant switches for APC switched rack PDUs
# Copyright 2026 GPL-3.0 License

"""Shared fixtures: isolated environment, fake SNMP agent, fake MQTT gateway."""

import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "bridge"))

from apc2mqtt.pdu_model import OID_OUTLET_CTL, OID_OUTLET_NAME

# Every variable Config reads
ENV_VARS = (
    "MQTT_BROKER", "MQTT_PORT", "MQTT_USERNAME", "MQTT_PASSWORD", "MQTT_CLIENT_ID",
    "HA_DISCOVERY_PREFIX", "BRIDGE_POLL_INTERVAL", "BRIDGE_RECONNECT_INTERVAL",
    "BRIDGE_SNMP_TIMEOUT", "BRIDGE_SNMP_RETRIES", "BRIDGE_LOG_LEVEL",
    "BRIDGE_MOCK_MODE", "BRIDGE_TARGETS_FILE", "PDU_HOST", "PDU_SNMP_PORT",
    "PDU_COMMUNITY",
)


def pytest_report_header(config):
    from apc2mqtt.main import __version__
    return f"apc2mqtt {__version__}"


@pytest.fixture
def clean_env(monkeypatch):
    """Strip bridge settings from the environment; returns monkeypatch for setenv."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def make_client():
    """Factory for a fake SNMP client answering a small APC PDU.

    Mirrors the SNMPClient interface: ``open``/``get``/``walk``/``set_int``
    are AsyncMocks, ``close`` is a plain MagicMock.
    """
    def factory(names=("Lamp", "Heater"), controls=(2, 1),
                identity=("Rack PDU", "AB1234", "AP7920")):
        client = MagicMock()
        client.target = "10.0.0.5:161"
        client.open = AsyncMock()
        client.get = AsyncMock(return_value=list(identity))

        async def walk(oid):
            if oid == OID_OUTLET_NAME:
                return list(names)
            if oid == OID_OUTLET_CTL:
                return list(controls)
            return []

        client.walk = AsyncMock(side_effect=walk)
        client.set_int = AsyncMock()
        client.close = MagicMock()
        return client

    return factory


@pytest.fixture
def mqtt_gateway():
    """Stand-in for MQTTHandler recording publishes and subscriptions."""
    gateway = MagicMock()
    gateway.connect = AsyncMock()
    gateway.publish = MagicMock()
    gateway.subscribe = MagicMock()
    gateway.disconnect = MagicMock()
    return gateway
