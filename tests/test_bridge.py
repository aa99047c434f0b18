# apc2mqtt -- APC PDU to MQTT Bridge
# Home Assistant switches for APC switched rack PDUs
# Copyright 2026 GPL-3.0 License

"""Unit tests for bridge components."""

import asyncio
import pytest
import sys
import os
from unittest.mock import AsyncMock, MagicMock, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "bridge"))

from apc2mqtt.config import Config, ConfigError
from apc2mqtt.main import BridgeManager, BuildInfo, __version__, main, parse_args
from apc2mqtt.mock_pdu import MockPDU
from apc2mqtt.pdu_model import (
    BASE_OID,
    OID_OUTLET_CTL,
    OID_OUTLET_NAME,
    OID_PDU_NAME,
    OID_MODEL,
    OID_SERIAL,
    Command,
    DeviceState,
    payload_for,
    oid_outlet_ctl,
)
from apc2mqtt.snmp_client import SNMPClient, SNMPError
from apc2mqtt.target_config import TargetConfig


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

def test_oid_functions():
    assert OID_PDU_NAME == "1.3.6.1.4.1.318.1.1.4.3.3.0"
    assert OID_SERIAL == "1.3.6.1.4.1.318.1.1.4.1.5.0"
    assert OID_MODEL == "1.3.6.1.4.1.318.1.1.4.1.4.0"
    assert oid_outlet_ctl(24) == f"{BASE_OID}.4.2.1.3.24"


def test_command_from_payload():
    assert Command.from_payload(2, b"ON") == Command(2, True)
    assert Command.from_payload(2, b"OFF") == Command(2, False)
    assert Command.from_payload(2, b"on") == Command(2, False)


def test_payload_for():
    assert payload_for(True) == "ON"
    assert payload_for(False) == "OFF"


def test_device_state_defaults():
    state = DeviceState(name="PDU", serial="S1", model="M")
    assert state.outlets == ()


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

def test_config_defaults(clean_env):
    config = Config()
    assert config.mqtt_broker == "localhost"
    assert config.mqtt_port == 1883
    assert config.mqtt_client_id == "apc2mqtt"
    assert config.discovery_prefix == "homeassistant"
    assert config.poll_interval == 1.0
    assert config.reconnect_interval == 5.0
    assert config.snmp_timeout == 2.0
    assert config.snmp_retries == 3
    assert config.mock_mode is False
    assert config.pdu_host == ""
    assert config.pdu_snmp_port == 161
    assert config.pdu_community == "private"
    assert config.targets_file == "/data/targets.json"


def test_config_from_env(clean_env):
    clean_env.setenv("PDU_HOST", "10.0.0.1")
    clean_env.setenv("BRIDGE_MOCK_MODE", "true")
    clean_env.setenv("BRIDGE_POLL_INTERVAL", "0.5")
    clean_env.setenv("HA_DISCOVERY_PREFIX", "ha")
    clean_env.setenv("MQTT_CLIENT_ID", "apc2mqtt-rack1")
    config = Config()
    assert config.pdu_host == "10.0.0.1"
    assert config.mock_mode is True
    assert config.poll_interval == 0.5
    assert config.discovery_prefix == "ha"
    assert config.mqtt_client_id == "apc2mqtt-rack1"


@pytest.mark.parametrize("name,value", [
    ("MQTT_PORT", "not-a-port"),
    ("MQTT_PORT", "70000"),
    ("BRIDGE_POLL_INTERVAL", "0"),
    ("BRIDGE_SNMP_RETRIES", "9"),
    ("PDU_SNMP_PORT", "0"),
    ("MQTT_CLIENT_ID", ""),
    ("HA_DISCOVERY_PREFIX", "home/#"),
])
def test_config_rejects_invalid(clean_env, name, value):
    clean_env.setenv(name, value)
    with pytest.raises(ConfigError):
        Config()


# ---------------------------------------------------------------------------
# Mock PDU
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_mock_pdu_identity():
    mock = MockPDU()
    await mock.open()
    assert await mock.get([OID_PDU_NAME, OID_SERIAL, OID_MODEL]) == [
        "Mock PDU", "MOCK0001", "AP7920",
    ]


@pytest.mark.asyncio
async def test_mock_pdu_tables():
    mock = MockPDU(num_outlets=3)
    await mock.open()
    assert await mock.walk(OID_OUTLET_NAME) == ["Outlet 1", "Outlet 2", "Outlet 3"]
    assert await mock.walk(OID_OUTLET_CTL) == [1, 1, 1]


@pytest.mark.asyncio
async def test_mock_pdu_command():
    mock = MockPDU(num_outlets=3)
    await mock.open()
    await mock.set_int(oid_outlet_ctl(2), 2)
    assert await mock.walk(OID_OUTLET_CTL) == [1, 2, 1]


@pytest.mark.asyncio
@pytest.mark.parametrize("oid,value", [
    (oid_outlet_ctl(9), 1),
    (oid_outlet_ctl(1), 3),
    (f"{OID_OUTLET_NAME}.1", 1),
])
async def test_mock_pdu_rejects_bad_set(oid, value):
    mock = MockPDU(num_outlets=8)
    await mock.open()
    with pytest.raises(SNMPError):
        await mock.set_int(oid, value)


@pytest.mark.asyncio
async def test_mock_pdu_requires_open():
    mock = MockPDU()
    with pytest.raises(SNMPError):
        await mock.walk(OID_OUTLET_CTL)
    await mock.open()
    mock.close()
    assert not mock.is_open


# ---------------------------------------------------------------------------
# BridgeManager
# ---------------------------------------------------------------------------

def make_config(**overrides):
    config = MagicMock()
    config.mock_mode = False
    config.discovery_prefix = "homeassistant"
    config.poll_interval = 0.01
    config.reconnect_interval = 0.01
    config.snmp_timeout = 2.0
    config.snmp_retries = 3
    config.mqtt_client_id = "apc2mqtt"
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


@patch("paho.mqtt.client.Client")
def test_manager_builds_one_supervisor_per_target(mock_client_cls):
    targets = [TargetConfig("10.0.0.1"), TargetConfig("10.0.0.2", 1161, "secret")]
    manager = BridgeManager(make_config(), targets)

    assert len(manager.supervisors) == 2
    clients = [s.session.client for s in manager.supervisors]
    assert all(isinstance(c, SNMPClient) for c in clients)
    assert [c.target for c in clients] == ["10.0.0.1:161", "10.0.0.2:1161"]
    assert all(s.mqtt is manager.mqtt for s in manager.supervisors)


@patch("paho.mqtt.client.Client")
def test_manager_mock_mode_uses_mock_pdu(mock_client_cls):
    manager = BridgeManager(make_config(mock_mode=True), [TargetConfig("mock")])

    (supervisor,) = manager.supervisors
    assert isinstance(supervisor.session.client, MockPDU)
    assert supervisor.label == "mock-mock"
    assert supervisor.session.client._scalars[OID_SERIAL] == "MOCK0001"


@pytest.mark.asyncio
@patch("paho.mqtt.client.Client")
async def test_manager_mock_targets_do_not_collide(mock_client_cls):
    """Each mock target gets its own serial, so topics and routing stay apart."""
    manager = BridgeManager(
        make_config(mock_mode=True), [TargetConfig("a"), TargetConfig("b")],
    )
    for supervisor in manager.supervisors:
        await supervisor.session.client.open()
        supervisor.handle_state(await supervisor.session.poll())

    assert [s.label for s in manager.supervisors] == ["mock-a", "mock-b"]
    subs = manager.mqtt._subscriptions
    assert len(subs) == 16

    first, second = manager.supervisors
    assert subs["homeassistant/switch/apc_mock0001_0/set"].session is first.session
    assert subs["homeassistant/switch/apc_mock0002_0/set"].session is second.session


@patch("paho.mqtt.client.Client")
def test_build_info_default_version(mock_client_cls):
    manager = BridgeManager(make_config(), [])
    assert manager.build == BuildInfo(version=__version__)


@pytest.mark.asyncio
@patch("paho.mqtt.client.Client")
async def test_manager_run_and_stop(mock_client_cls):
    manager = BridgeManager(make_config(mock_mode=True), [TargetConfig("mock")])
    manager.mqtt.connect = AsyncMock()
    manager.mqtt.publish = MagicMock()
    manager.mqtt.subscribe = MagicMock()
    manager.mqtt.disconnect = MagicMock()

    task = asyncio.create_task(manager.run())
    try:
        for _ in range(200):
            if manager.mqtt.subscribe.call_count == 8:
                break
            await asyncio.sleep(0.01)
    finally:
        manager.stop()
        await task

    manager.mqtt.connect.assert_awaited_once()
    assert manager.mqtt.subscribe.call_count == 8
    manager.mqtt.disconnect.assert_called_once()
    assert not manager.supervisors[0].session.client.is_open


@pytest.mark.asyncio
@patch("paho.mqtt.client.Client")
async def test_manager_logs_crashed_target(mock_client_cls):
    logger = MagicMock()
    logger.getChild.return_value = logger
    manager = BridgeManager(make_config(mock_mode=True), [TargetConfig("mock")], logger=logger)
    manager.mqtt.connect = AsyncMock()
    manager.supervisors[0].run = AsyncMock(side_effect=RuntimeError("boom"))

    await manager.run()

    logger.error.assert_called_once()
    assert "boom" in str(logger.error.call_args)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def test_parse_args():
    args = parse_args(["--targets", "/tmp/t.json", "-v"])
    assert args.targets == "/tmp/t.json"
    assert args.verbose is True

    args = parse_args([])
    assert args.targets is None
    assert args.verbose is False
    assert args.conf is None

    assert parse_args(["-c", "config.toml"]).conf == "config.toml"


def test_main_exits_without_targets(clean_env, tmp_path, capsys):
    clean_env.setenv("BRIDGE_TARGETS_FILE", str(tmp_path / "missing.json"))
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 1
    assert "No PDU targets configured" in capsys.readouterr().err


def test_main_exits_on_bad_config(clean_env, capsys):
    clean_env.setenv("MQTT_PORT", "nope")
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 1
    assert "MQTT_PORT" in capsys.readouterr().err


def test_main_targets_flag_overrides_env(clean_env, tmp_path):
    targets = tmp_path / "targets.json"
    targets.write_text('{"targets": [{"host": "10.1.1.1"}]}')
    clean_env.setenv("BRIDGE_TARGETS_FILE", str(tmp_path / "missing.json"))

    with patch("apc2mqtt.main.BridgeManager") as mock_manager, \
            patch("apc2mqtt.main.asyncio.new_event_loop") as mock_loop_factory:
        loop = mock_loop_factory.return_value
        with patch("apc2mqtt.main.asyncio.set_event_loop"):
            main(["--targets", str(targets)])

    config, loaded = mock_manager.call_args.args[:2]
    assert config.targets_file == str(targets)
    assert loaded == [TargetConfig("10.1.1.1")]
    loop.run_until_complete.assert_called_once()
    mock_manager.return_value.stop.assert_called_once()
    loop.close.assert_called_once()


def test_main_reads_toml_config(clean_env, tmp_path):
    conf = tmp_path / "config.toml"
    conf.write_text(
        '[MQTT]\nHost = "broker.lan"\nPort = 1883\n\n'
        '[[Targets]]\nHost = "10.2.2.2"\nPort = 161\n'
    )
    clean_env.setenv("BRIDGE_TARGETS_FILE", str(tmp_path / "missing.json"))

    with patch("apc2mqtt.main.BridgeManager") as mock_manager, \
            patch("apc2mqtt.main.asyncio.new_event_loop"), \
            patch("apc2mqtt.main.asyncio.set_event_loop"):
        main(["--conf", str(conf)])

    config, loaded = mock_manager.call_args.args[:2]
    assert config.mqtt_broker == "broker.lan"
    assert loaded == [TargetConfig("10.2.2.2")]


def test_main_exits_on_bad_toml(clean_env, tmp_path, capsys):
    conf = tmp_path / "config.toml"
    conf.write_text("[[Targets]\n")
    with pytest.raises(SystemExit) as exc:
        main(["--conf", str(conf)])
    assert exc.value.code == 1
    assert "invalid TOML" in capsys.readouterr().err
