# apc2mqtt -- APC PDU to MQTT Bridge
# Home Assistant switches for APC switched rack PDUs
# Copyright 2026 GPL-3.0 License

"""Turn polled PDU states into Home Assistant MQTT discovery actions.

For every outlet of a new state:

1. announce the switch (discovery config) on the first observation, or
   when the outlet at that position was renamed;
2. subscribe to its command topic, on the first observation only;
3. publish its current value.

Outlets are compared by position, never by name.
"""

from dataclasses import dataclass

from .pdu_model import MANUFACTURER, UID_PREFIX, DeviceState, payload_for

DISCOVERY_PREFIX = "homeassistant"


@dataclass(frozen=True)
class Announce:
    uid: str
    topic: str
    descriptor: dict


@dataclass(frozen=True)
class PublishValue:
    topic: str
    payload: str


@dataclass(frozen=True)
class Subscribe:
    topic: str
    outlet_index: int  # 1-based


def unique_id(serial: str, index: int) -> str:
    """Stable entity id for the outlet at zero-based *index*."""
    return f"{UID_PREFIX}_{serial.lower()}_{index}"


def topic_base(uid: str, discovery_prefix: str = DISCOVERY_PREFIX) -> str:
    return f"{discovery_prefix}/switch/{uid}"


def switch_descriptor(state: DeviceState, index: int,
                      discovery_prefix: str = DISCOVERY_PREFIX) -> dict:
    uid = unique_id(state.serial, index)
    base = topic_base(uid, discovery_prefix)
    return {
        "name": state.outlets[index].name,
        "command_topic": f"{base}/set",
        "state_topic": f"{base}/state",
        "unique_id": uid,
        "device": {
            "name": state.name,
            "identifiers": state.serial,
            "model": state.model,
            "manufacturer": MANUFACTURER,
        },
    }


def reconcile(state: DeviceState, previous: DeviceState | None,
              discovery_prefix: str = DISCOVERY_PREFIX) -> list:
    """Return the actions needed to bring the bus in line with *state*."""
    actions = []
    for i, outlet in enumerate(state.outlets):
        uid = unique_id(state.serial, i)
        base = topic_base(uid, discovery_prefix)

        renamed = (
            previous is None
            or i >= len(previous.outlets)
            or previous.outlets[i].name != outlet.name
        )
        if renamed:
            actions.append(Announce(
                uid=uid,
                topic=f"{base}/config",
                descriptor=switch_descriptor(state, i, discovery_prefix),
            ))

        if previous is None:
            actions.append(Subscribe(topic=f"{base}/set", outlet_index=i + 1))

        actions.append(PublishValue(topic=f"{base}/state", payload=payload_for(outlet.state)))
    return actions
