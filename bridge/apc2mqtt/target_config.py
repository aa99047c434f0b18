# apc2mqtt -- APC PDU to MQTT Bridge
# Home Assistant switches for APC switched rack PDUs
# Copyright 2026 GPL-3.0 License

"""Target configuration -- one or more PDUs from a JSON file or env vars."""

import json
import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TARGETS_FILE = "/data/targets.json"


@dataclass
class TargetConfig:
    """Configuration for a single PDU."""
    host: str
    port: int = 161
    community: str = "private"

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def from_dict(cls, d: dict) -> "TargetConfig":
        return cls(
            host=d.get("host", ""),
            port=int(d.get("port", 161)),
            community=d.get("community", "private"),
        )

    def validate(self):
        if not self.host:
            raise ValueError("target has no host configured")
        if not (1 <= self.port <= 65535):
            raise ValueError(f"target {self.host!r} port out of range: {self.port}")
        if not self.community:
            raise ValueError(f"target {self.host!r} has an empty community string")


def load_target_configs(targets_file: str = DEFAULT_TARGETS_FILE,
                        env_host: str = "",
                        env_port: int = 161,
                        env_community: str = "private",
                        mock_mode: bool = False) -> list[TargetConfig]:
    """Load target configs.

    Priority:
    1. targets file if it exists (``{"targets": [{"host": ..., "port": ...}]}``)
    2. PDU_HOST / PDU_SNMP_PORT / PDU_COMMUNITY (single target)
    3. Mock mode generates a mock target

    A targets file that exists but cannot be parsed is an error; a
    misconfigured bridge should not silently fall back to another target.
    """
    path = Path(targets_file)

    if path.exists():
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise ValueError(f"{path}: invalid JSON: {e}") from e
        targets = []
        for d in data.get("targets", []):
            target = TargetConfig.from_dict(d)
            target.validate()
            targets.append(target)
        if targets:
            logger.info("Loaded %d target(s) from %s", len(targets), path)
            return targets
        logger.warning("%s has no targets, falling back to env vars", path)

    if env_host:
        target = TargetConfig(host=env_host, port=env_port, community=env_community)
        target.validate()
        logger.info("Using single target from env vars: %s", target.address)
        return [target]

    if mock_mode:
        logger.info("Mock mode -- using simulated PDU target")
        return [TargetConfig(host="mock")]

    raise ValueError(
        "No PDU targets configured. Either:\n"
        f"  1. Create {targets_file} with a \"targets\" list\n"
        "  2. Set PDU_HOST (and optionally PDU_SNMP_PORT, PDU_COMMUNITY)\n"
        "  3. Enable BRIDGE_MOCK_MODE=true for testing"
    )


def load_toml_config(path: str, config) -> list[TargetConfig]:
    """Read a TOML config file: an optional ``[MQTT]`` table and ``[[Targets]]``.

    ::

        [MQTT]
        Host = "broker.lan"
        Port = 1883
        User = "bridge"
        Pass = "secret"

        [[Targets]]
        Host = "10.0.0.5"
        Port = 161

    The ``[MQTT]`` table is applied to *config*. Target tables take ``Host``,
    ``Port`` and ``Community`` (default ``private``). Returns the validated
    targets, possibly empty.
    """
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ValueError(f"{path}: cannot read config file: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"{path}: invalid TOML: {e}") from e

    config.apply_mqtt_section(data.get("MQTT", {}))

    targets = []
    for table in data.get("Targets", []):
        target = TargetConfig.from_dict({k.lower(): v for k, v in table.items()})
        target.validate()
        targets.append(target)
    logger.info("Loaded %d target(s) from %s", len(targets), path)
    return targets
