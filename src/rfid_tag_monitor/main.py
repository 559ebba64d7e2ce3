"""
RFID Tag Monitor entrypoint.

CLI:
  rfid-tag-monitor SERVER [PORT]   -> subscribe to BAC tag reports and print them
"""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from dataclasses import dataclass
from typing import Optional

from rfid_tag_monitor.config import (
    ConfigError,
    MonitorConfig,
    load_config,
    load_env_files,
    package_version,
)
from rfid_tag_monitor.core.console import print_decode_failure, print_event
from rfid_tag_monitor.core.log_config import configure_logging

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    shutdown: threading.Event
    subscriber: Optional[object] = None


def _install_signal_handlers(rt: Runtime) -> None:
    def _handler(signum: int, frame) -> None:  # frame is unused, keep signature
        logger.info("Received signal %s; requesting shutdown", signum)
        rt.shutdown.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def run_monitor(cfg: MonitorConfig) -> int:
    """
    Subscribe and print tag reports until SIGINT/SIGTERM.
    Returns process exit code.
    """
    from rfid_tag_monitor.mqtt_client import BrokerEndpoint, TagSubscriber

    rt = Runtime(shutdown=threading.Event())
    _install_signal_handlers(rt)

    logger.info("============================================================")
    logger.info("RFID Tag Monitor")
    logger.info("Version: %s", cfg.version)
    logger.info("Broker: %s:%s", cfg.mqtt_host, cfg.mqtt_port)
    logger.info("Topic: %s", cfg.topic)
    logger.info("============================================================")

    subscriber = TagSubscriber(
        BrokerEndpoint(cfg.mqtt_host, cfg.mqtt_port),
        cfg.topic,
        on_event=print_event,
        on_decode_failure=print_decode_failure,
        retry_delay_s=cfg.retry_delay_s,
        keepalive=cfg.keepalive_s,
        client_id=cfg.client_id,
    )
    rt.subscriber = subscriber
    subscriber.start()

    logger.info("Monitor running (stop with Ctrl+C)")

    try:
        while not rt.shutdown.is_set():
            rt.shutdown.wait(timeout=0.5)
    finally:
        _shutdown(rt)

    return 0


def _shutdown(rt: Runtime) -> None:
    logger.info("Shutting down...")
    if rt.subscriber:
        try:
            rt.subscriber.stop()
        except Exception:
            logger.exception("Error stopping subscriber")


def _port(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {raw!r}")
    if not (1 <= value <= 65535):
        raise argparse.ArgumentTypeError(f"port out of range: {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="rfid-tag-monitor",
        description="Print RFID tag presence reported by BAC readers over MQTT.",
    )
    p.add_argument("--version", action="version", version=package_version())
    p.add_argument("server", help="MQTT broker address")
    p.add_argument("port", nargs="?", type=_port, default=None, help="MQTT broker port (default 1883)")
    p.add_argument("--bac", metavar="NAME", default=None, help="only report readers of this BAC")
    p.add_argument(
        "--retry-delay",
        metavar="SECONDS",
        type=float,
        default=None,
        help="delay before reconnecting after a lost connection (default 5)",
    )
    p.add_argument("--log-level", metavar="LEVEL", default=None, help="log level (default INFO)")
    return p


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    # env files may set RFID_LOG_LEVEL
    load_env_files()
    configure_logging(args.log_level)

    try:
        cfg = load_config(
            args.server,
            args.port,
            bac_name=args.bac,
            retry_delay_s=args.retry_delay,
        )
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        raise SystemExit(1)

    raise SystemExit(run_monitor(cfg))


if __name__ == "__main__":
    main()
