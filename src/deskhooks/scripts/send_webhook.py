"""Send a single webhook with retry from the command line.

Usage:
    python -m deskhooks.scripts.send_webhook https://example.com/hook \
        --data '{"a": 1}' --header "Authorization: Bearer token" --max-attempts 3
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..core.logging_config import setup_logging
from ..core.settings import get_settings
from ..webhooks.dispatcher import WebhookRetryDispatcher
from ..webhooks.models import WebhookPayload, RetryConfig

logger = logging.getLogger("SendWebhook")


def parse_headers(values: List[str]) -> Dict[str, str]:
    """Turn "Name: value" strings into a header dict."""
    headers = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise argparse.ArgumentTypeError(f"Invalid header (expected 'Name: value'): {value}")
        headers[name.strip()] = content.strip()
    return headers


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Deliver a JSON webhook with retry and backoff.")
    parser.add_argument("url", help="Endpoint URL")
    parser.add_argument("--data", default="{}", help="JSON body (default: {})")
    parser.add_argument("--method", default="POST", help="HTTP method (default: POST)")
    parser.add_argument("--header", action="append", default=[], help="Extra header 'Name: value'")
    parser.add_argument("--max-attempts", type=int, help="Attempts before giving up")
    parser.add_argument("--base-delay-ms", type=float, help="First backoff delay")
    parser.add_argument("--max-delay-ms", type=float, help="Backoff cap")
    parser.add_argument("--multiplier", type=float, help="Backoff multiplier")
    return parser


def build_retry_config(args: argparse.Namespace) -> RetryConfig:
    """Only the options given on the command line override the defaults."""
    overrides = {
        "max_attempts": args.max_attempts,
        "base_delay_ms": args.base_delay_ms,
        "max_delay_ms": args.max_delay_ms,
        "backoff_multiplier": args.multiplier,
    }
    return RetryConfig(**{key: value for key, value in overrides.items() if value is not None})


async def run(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        data = json.loads(args.data)
        headers = parse_headers(args.header)
        retry_config = build_retry_config(args)
    except ValidationError as e:
        parser.error(f"Invalid retry options: {e}")
    except (ValueError, argparse.ArgumentTypeError) as e:
        parser.error(str(e))

    settings = get_settings()
    dispatcher = WebhookRetryDispatcher(
        default_config=settings.retry,
        timeout_seconds=settings.request_timeout_seconds,
        jitter_ms=settings.jitter_ms,
    )

    payload = WebhookPayload(url=args.url, data=data, headers=headers, method=args.method)
    logger.info(f"Sending {payload.method} to {payload.url}")

    result = await dispatcher.send_with_retry(payload, retry_config)
    print(result.model_dump_json(indent=2))

    return 0 if result.success else 1


def main() -> None:
    setup_logging(get_settings().log_level)
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
