from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv
from pydantic import ValidationError

from kube_balance.adapters.endpoints import http_endpoint_builder
from kube_balance.adapters.kubernetes import parse_endpoint_slice
from kube_balance.app import discover
from kube_balance.channel import EndpointTable, Insert, balance_channel
from kube_balance.config import (
    ConfigurationError,
    DiscoveryConfig,
    configure_logging,
    get_discovery_config,
    parse_port,
)
from kube_balance.config.discovery import NAMESPACE_ENV, PORT_ENV, SERVICE_ENV
from kube_balance.domain.events import InsertEndpoint, Resync
from kube_balance.domain.reconcile import KnownEndpoints, process_event

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from kube_balance.adapters.endpoints import HttpEndpoint, Scheme
    from kube_balance.channel import ChangeReceiver, ChangeSender
    from kube_balance.domain.types import EndpointSlice, Port, SocketAddress

log = logging.getLogger(__name__)

DEFAULT_CHANNEL_CAPACITY = 64


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log every endpoint change at DEBUG level",
    )

    parser = argparse.ArgumentParser(description="Kubernetes endpoint discovery for load balancing")
    subparsers = parser.add_subparsers(dest="command", required=True)

    watch = subparsers.add_parser(
        "watch",
        parents=[common],
        help="Watch a service's ready endpoints",
    )
    watch.add_argument(
        "--service",
        type=str,
        help=f"Service whose EndpointSlices to watch (defaults to ${SERVICE_ENV})",
    )
    watch.add_argument(
        "--port",
        type=str,
        help=f"Port number or port name to balance over (defaults to ${PORT_ENV})",
    )
    watch.add_argument(
        "--namespace",
        type=str,
        help=f"Namespace of the service (defaults to ${NAMESPACE_ENV} or the cluster context)",
    )
    watch.add_argument(
        "--capacity",
        type=int,
        default=DEFAULT_CHANNEL_CAPACITY,
        help="Maximum number of undelivered endpoint changes",
    )
    watch.add_argument(
        "--scheme",
        choices=("http", "https"),
        default="http",
        help="URL scheme of the balanced backends",
    )

    inspect = subparsers.add_parser(
        "inspect",
        parents=[common],
        help="Print the ready endpoints of EndpointSlice JSON",
    )
    inspect.add_argument(
        "file",
        type=str,
        help="EndpointSlice or EndpointSliceList JSON document ('-' reads stdin)",
    )
    inspect.add_argument(
        "--port",
        type=str,
        required=True,
        help="Port number or port name to resolve",
    )

    return parser.parse_args(list(argv))


def _build_config(args: argparse.Namespace) -> DiscoveryConfig:
    return get_discovery_config(
        service_name=args.service,
        port=args.port,
        namespace=args.namespace,
    )


async def _watch(config: DiscoveryConfig, *, capacity: int, scheme: Scheme) -> None:
    sender: ChangeSender[SocketAddress, HttpEndpoint]
    receiver: ChangeReceiver[SocketAddress, HttpEndpoint]
    sender, receiver = balance_channel(capacity)
    task = discover(config, sender, http_endpoint_builder(scheme=scheme))
    table: EndpointTable[SocketAddress, HttpEndpoint] = EndpointTable()
    try:
        async for change in receiver:
            table.apply(change)
            if isinstance(change, Insert):
                log.info("+ %s (%s)", change.key, change.endpoint.url)
            else:
                log.info("- %s", change.key)
            log.info("%d endpoints available", len(table))
    finally:
        await receiver.aclose()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


def _read_document(source: str) -> Any:
    if source == "-":
        return json.load(sys.stdin)
    with Path(source).open(encoding="utf-8") as handle:
        return json.load(handle)


def _slices_from_document(document: Any) -> list[EndpointSlice]:
    if not isinstance(document, dict):
        raise ValueError("Expected a JSON object")
    items = document["items"] if "items" in document else [document]
    try:
        return [parse_endpoint_slice(item) for item in items or ()]
    except ValidationError as exc:
        raise ValueError(f"Invalid EndpointSlice document: {exc}") from exc


def _inspect(source: str, port: Port) -> list[SocketAddress]:
    slices = _slices_from_document(_read_document(source))
    actions = process_event(Resync(tuple(slices)), KnownEndpoints(), port)
    return [action.address for action in actions if isinstance(action, InsertEndpoint)]


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args: argparse.Namespace
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
        config: DiscoveryConfig | None = None
        if parsed_args.command == "watch":
            if parsed_args.capacity < 1:
                raise ValueError("--capacity must be positive")  # noqa: TRY301
            config = _build_config(parsed_args)
        port = parse_port(parsed_args.port) if parsed_args.command == "inspect" else None
    except (ValueError, ConfigurationError):
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "watch" and config is not None:
            asyncio.run(
                _watch(config, capacity=parsed_args.capacity, scheme=parsed_args.scheme)
            )
        elif parsed_args.command == "inspect" and port is not None:
            for address in _inspect(parsed_args.file, port):
                sys.stdout.write(f"{address}\n")
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except (ValueError, OSError):
        log.exception("Invalid input")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during discovery")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
