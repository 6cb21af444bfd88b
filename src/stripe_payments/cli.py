"""
Command-line interface for exercising the client-side payments API.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Iterable, Sequence, Tuple

import requests

from .api import create_api_client
from .core.client import APIClient
from .core.config import DEFAULT_API_URL, ConfigError, layered_environment, load_client_config
from .core.errors import PaymentsError
from .core.models import EphemeralKey
from .core.payloads import parse_bracketed_pairs


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )


def _key_value(value: str) -> Tuple[str, str]:
    if "=" not in value:
        raise argparse.ArgumentTypeError("Values must look like KEY=VALUE")
    key, val = value.split("=", 1)
    key = key.strip()
    if not key:
        raise argparse.ArgumentTypeError("Key must not be empty")
    return key, val


def _collect_overrides(pairs: Iterable[Tuple[str, str]]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, value in pairs:
        overrides[key] = value
    return overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stripe-payments",
        description="Call the client-side payments API from the command line",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to the .env file containing STRIPE_* settings (default: .env)",
    )
    parser.add_argument(
        "--set",
        action="append",
        type=_key_value,
        metavar="KEY=VALUE",
        default=None,
        help="Override an environment variable without editing the .env file",
    )
    parser.add_argument(
        "--api-url",
        default=None,
        help="Override the API base URL (default: https://api.stripe.com/v1)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Seconds to wait for the operation to finish (default: 60)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    token = commands.add_parser("token", help="Create a token from card or bank parameters")
    token.add_argument(
        "--param",
        action="append",
        type=_key_value,
        metavar="KEY=VALUE",
        required=True,
        help="Token parameter; nest with brackets, e.g. card[number]=4242424242424242",
    )

    source = commands.add_parser("source", help="Retrieve a source")
    source.add_argument("source_id")
    source.add_argument("--client-secret", required=True)

    customer = commands.add_parser("customer", help="Customer operations using an ephemeral key")
    customer.add_argument(
        "--ephemeral-key",
        required=True,
        type=Path,
        help="Path to the ephemeral key JSON issued by your backend",
    )
    actions = customer.add_subparsers(dest="action", required=True)
    actions.add_parser("get", help="Retrieve the customer")
    update = actions.add_parser("update", help="Update the customer")
    update.add_argument(
        "--param",
        action="append",
        type=_key_value,
        metavar="KEY=VALUE",
        required=True,
    )
    attach = actions.add_parser("attach", help="Attach a source to the customer")
    attach.add_argument("source_id")
    detach = actions.add_parser("detach", help="Detach a source from the customer")
    detach.add_argument("source_id")
    return parser


def _load_ephemeral_key(path: Path) -> EphemeralKey:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Cannot read ephemeral key from {path}: {exc}") from exc
    return EphemeralKey.from_response(payload)


def _print_record(record: Any) -> None:
    print(json.dumps(record.raw, indent=2, sort_keys=True))


def _run_customer(args: argparse.Namespace, overrides: dict[str, str]) -> Any:
    environment = layered_environment(env_file=args.env_file, overrides=overrides)
    api_url = args.api_url or environment.get("STRIPE_API_URL", DEFAULT_API_URL)
    key = _load_ephemeral_key(args.ephemeral_key)
    options = {"api_url": api_url}

    if args.action == "get":
        handle = APIClient.retrieve_customer(key, **options)
    elif args.action == "update":
        parameters = parse_bracketed_pairs(args.param)
        handle = APIClient.update_customer(parameters, key, **options)
    elif args.action == "attach":
        handle = APIClient.add_source(args.source_id, key, **options)
    else:
        handle = APIClient.detach_source(args.source_id, key, **options)
    return handle.result(args.timeout)


def run_cli(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.log_level)
    overrides = _collect_overrides(args.set or ())

    try:
        if args.command == "customer":
            record = _run_customer(args, overrides)
        else:
            config = load_client_config(
                env_file=args.env_file,
                overrides=overrides,
                api_url=args.api_url,
            )
            with create_api_client(config=config, session=requests.Session()) as client:
                if args.command == "token":
                    handle = client.create_token(parse_bracketed_pairs(args.param))
                else:
                    handle = client.retrieve_source(args.source_id, args.client_secret)
                record = handle.result(args.timeout)
    except (KeyError, ConfigError, ValueError) as exc:
        logging.error("Invalid configuration: %s", exc)
        return 1
    except PaymentsError as exc:
        logging.error("%s failed: %s", args.command, exc)
        return 1
    except TimeoutError as exc:
        logging.error("%s", exc)
        return 1

    _print_record(record)
    return 0


def main() -> None:
    sys.exit(run_cli())
