"""CLI entry point for nostrdht.

Announce a message on a topic, or listen to a topic and log every event
received. Both commands connect to the configured relays first and exit
with status 1 if the minimum number of live relays is not reached in time.

Examples:
    ```bash
    python -m nostrdht announce --tag t --topic demo --message hello --once
    python -m nostrdht announce --tag t --topic demo --message hello
    python -m nostrdht listen --tag t --topic demo --duration 60
    python -m nostrdht --config config/nostrdht.yaml --log-level DEBUG listen --topic demo
    ```
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from nostrdht.core.dht import NostrDht
from nostrdht.core.logger import Logger, setup_logging
from nostrdht.core.metrics import MetricsServer
from nostrdht.core.yaml import load_yaml
from nostrdht.exceptions import NostrDhtError
from nostrdht.models.event import Event


DEFAULT_CONFIG = Path("config") / "nostrdht.yaml"

logger = Logger("cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="nostrdht",
        description="Topic publish/subscribe over Nostr relays",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Config path (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--min-connections",
        type=int,
        help="Live relays required before proceeding (default: from config)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds to wait for the minimum connections (default: from config)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    announce = commands.add_parser("announce", help="Publish a message on a topic")
    announce.add_argument("--tag", default="t", help="Tag name (default: t)")
    announce.add_argument("--topic", required=True, help="Tag value")
    announce.add_argument("--message", required=True, help="Event content")
    announce.add_argument(
        "--once",
        action="store_true",
        help="Publish once and exit (default: re-announce until interrupted)",
    )

    listen = commands.add_parser("listen", help="Log events published on a topic")
    listen.add_argument("--tag", default="t", help="Tag name (default: t)")
    listen.add_argument("--topic", required=True, help="Tag value")
    listen.add_argument(
        "--duration",
        type=float,
        help="Stop after this many seconds (default: run until interrupted)",
    )

    return parser.parse_args(argv)


def _load_yaml_dict(path: Path) -> dict[str, Any]:
    """Load a YAML file as a dict, returning ``{}`` if the file does not exist."""
    if not path.exists():
        logger.warning("config_not_found", path=str(path))
        return {}
    return load_yaml(path)


def _install_signal_handlers(stop: asyncio.Event) -> None:
    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        stop.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)


async def _wait(stop: asyncio.Event, duration: float | None) -> None:
    try:
        await asyncio.wait_for(stop.wait(), timeout=duration)
    except TimeoutError:
        logger.info("duration_elapsed", duration_s=duration)


async def run_announce(dht: NostrDht, args: argparse.Namespace, stop: asyncio.Event) -> int:
    """Publish once (``--once``) or re-announce until *stop* is set."""
    if args.once:
        result = await dht.publish(args.message, args.tag, args.topic)
        logger.info(
            "announce_completed",
            sent=result.sent,
            skipped=result.skipped,
            failed=result.failed,
        )
        return 0 if result.sent else 1

    announcer = await dht.announce_data(args.message, args.tag, args.topic)
    try:
        await _wait(stop, None)
    finally:
        await announcer.stop()
    return 0


async def run_listen(dht: NostrDht, args: argparse.Namespace, stop: asyncio.Event) -> int:
    """Log every event on ``(tag, topic)`` until *stop* is set or *duration* elapses."""

    def on_event(event: Event) -> None:
        logger.info(
            "event_received",
            id=event.id,
            pubkey=event.pubkey,
            created_at=event.created_at,
            content=event.content,
        )

    subscription_id = await dht.subscribe_to_data(args.tag, args.topic, on_event)
    try:
        await _wait(stop, args.duration)
    finally:
        await dht.unsubscribe(subscription_id)
    return 0


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, build the client, run the command."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        dht = NostrDht.from_dict(_load_yaml_dict(args.config))
    except (NostrDhtError, ValidationError) as e:
        logger.error("config_error", error=str(e))
        return 1

    metrics_config = dht.config.metrics
    metrics_server = MetricsServer(metrics_config)
    try:
        await metrics_server.start()
    except OSError as e:
        logger.error(
            "metrics_server_failed", host=metrics_config.host, port=metrics_config.port, error=str(e)
        )
        await metrics_server.stop()
        return 1
    if metrics_config.enabled:
        logger.info(
            "metrics_server_started",
            host=metrics_config.host,
            port=metrics_config.port,
            path=metrics_config.path,
        )

    stop = asyncio.Event()
    _install_signal_handlers(stop)
    logger.info("identity", public_key=dht.public_key)

    try:
        async with dht:
            if not await dht.start_connections(args.min_connections, args.timeout):
                logger.error("minimum_connections_not_reached", live=dht.pool.live_count)
                return 1
            if args.command == "announce":
                return await run_announce(dht, args, stop)
            return await run_listen(dht, args, stop)
    except NostrDhtError as e:
        logger.error(f"{args.command}_failed", error=str(e))
        return 1
    finally:
        await metrics_server.stop()


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
