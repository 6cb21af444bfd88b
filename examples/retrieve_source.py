"""
Minimal script that uses the public API to fetch a source and wait for it.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Iterable, Optional, Tuple

from stripe_payments import (
    ConfigError,
    PaymentsError,
    Source,
    create_api_client,
    load_client_config,
)


def _override(value: str) -> Tuple[str, str]:
    if "=" not in value:
        raise argparse.ArgumentTypeError("Overrides must look like KEY=VALUE")
    key, val = value.split("=", 1)
    key = key.strip()
    if not key:
        raise argparse.ArgumentTypeError("Override key must not be empty")
    return key, val


def _build_overrides(pairs: Iterable[Tuple[str, str]]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, value in pairs:
        overrides[key] = value
    return overrides


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Retrieve a source using the SDK API")
    parser.add_argument("source_id", help="Identifier of the source (src_...)")
    parser.add_argument("--client-secret", required=True, help="The source's client secret")
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to the .env file containing STRIPE_* settings",
    )
    parser.add_argument(
        "--set",
        action="append",
        type=_override,
        metavar="KEY=VALUE",
        default=None,
        help="Override an environment variable without editing the .env file",
    )
    parser.add_argument(
        "--publishable-key",
        help="Provide the publishable key without relying on environment data",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        config = load_client_config(
            env_file=args.env_file,
            overrides=_build_overrides(args.set or ()),
            publishable_key=args.publishable_key,
        )
    except (KeyError, ConfigError, ValueError) as exc:
        logging.error("Invalid configuration: %s", exc)
        return 1

    def on_source(source: Optional[Source], error: Optional[PaymentsError]) -> None:
        if error is not None:
            logging.error("Source retrieval failed: %s", error)
            return
        logging.info("Source %s is %s (%s)", source.id, source.status, source.type)

    with create_api_client(config=config) as client:
        handle = client.retrieve_source(args.source_id, args.client_secret, on_source)
        handle.wait(config.timeout_seconds + 5)

    try:
        handle.result(0)
    except (PaymentsError, TimeoutError):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
