# apc2mqtt -- APC PDU to MQTT Bridge
# Home Assistant switches for APC switched rack PDUs
# Copyright 2026 GPL-3.0 License

"""Entry point -- multi-PDU SNMP->MQTT bridge for APC switched PDUs.

Architecture
------------
BridgeManager     -- connects the shared MQTT gateway and launches one
                     TargetSupervisor per configured PDU.
TargetSupervisor  -- owns a single PDU's DeviceSession and publishes its
                     outlets as Home Assistant switches.
"""

__version__ = "1.0.0"

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass

from .config import Config, ConfigError
from .mock_pdu import MockPDU
from .mqtt_handler import MQTTHandler
from .snmp_client import SNMPClient
from .supervisor import TargetSupervisor
from .target_config import TargetConfig, load_target_configs, load_toml_config

logger = logging.getLogger("apc2mqtt")


@dataclass(frozen=True)
class BuildInfo:
    version: str = __version__


class BridgeManager:
    """Build every supervisor from config and run them until stopped."""

    def __init__(self, config: Config, targets: list[TargetConfig],
                 build: BuildInfo = BuildInfo(), logger: logging.Logger = logger):
        self.config = config
        self.targets = targets
        self.build = build
        self._log = logger
        self.mqtt = MQTTHandler(config, logger=logger.getChild("mqtt"))
        self.supervisors = [
            TargetSupervisor(
                self._create_client(target, n),
                self.mqtt,
                discovery_prefix=config.discovery_prefix,
                poll_interval=config.poll_interval,
                reconnect_interval=config.reconnect_interval,
                logger=logger.getChild("target"),
            )
            for n, target in enumerate(targets, start=1)
        ]
        self._tasks: list[asyncio.Task] = []
        self._running = False

    def _create_client(self, target: TargetConfig, n: int):
        if self.config.mock_mode:
            # Distinct serials keep entity ids and command topics apart
            return MockPDU(
                serial=f"MOCK{n:04d}",
                device_name=f"Mock PDU {target.host}",
                label=f"mock-{target.host}",
            )
        return SNMPClient(
            target.host,
            target.port,
            community=target.community,
            timeout=self.config.snmp_timeout,
            retries=self.config.snmp_retries,
        )

    async def run(self):
        self._running = True
        self._log.info("Starting version %s", self.build.version)

        await self.mqtt.connect()

        loop = asyncio.get_running_loop()
        for supervisor in self.supervisors:
            task = loop.create_task(supervisor.run(), name=f"target-{supervisor.label}")
            self._tasks.append(task)
            self._log.info("Launched target %s", supervisor.label)

        # Targets run forever; a task only ends on an unexpected error
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for supervisor, result in zip(self.supervisors, results):
            if isinstance(result, Exception):
                self._log.error(
                    "Target %s stopped: %s", supervisor.label, result, exc_info=result,
                )

    def stop(self):
        if not self._running:
            return
        self._running = False
        for task in self._tasks:
            if not task.done():
                task.cancel()
        self._tasks.clear()
        for supervisor in self.supervisors:
            supervisor.session.disconnect()
        self.mqtt.disconnect()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Expose APC PDU outlets as Home Assistant switches over MQTT"
    )
    parser.add_argument("-c", "--conf", help="Path to a TOML config file with [MQTT] and [[Targets]] tables")
    parser.add_argument("--targets", help="Path to targets JSON file (overrides BRIDGE_TARGETS_FILE)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    try:
        config = Config()
        if args.targets:
            config.targets_file = args.targets
        targets = load_toml_config(args.conf, config) if args.conf else []
        if not targets:
            targets = load_target_configs(
                config.targets_file,
                env_host=config.pdu_host,
                env_port=config.pdu_snmp_port,
                env_community=config.pdu_community,
                mock_mode=config.mock_mode,
            )
    except (ConfigError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    manager = BridgeManager(config, targets, BuildInfo(version=__version__))

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    main_task = loop.create_task(manager.run())

    def _shutdown(sig):
        logger.info("Received signal %s, shutting down...", sig.name)
        main_task.cancel()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _shutdown, sig)

    try:
        loop.run_until_complete(main_task)
    except asyncio.CancelledError:
        pass
    finally:
        manager.stop()
        loop.close()
        logger.info("Bridge stopped.")


if __name__ == "__main__":
    main()
