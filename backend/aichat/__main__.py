"""Command-line entry point: ``aichat`` (web server) or ``aichat --console``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time

import uvicorn
from pydantic import ValidationError

from aichat.chat.client import build_client
from aichat.chat.errors import ConfigError
from aichat.config import Settings
from aichat.logging_config import setup_logging

logger = logging.getLogger("aichat")

# flag name -> Settings field
_FLAGS = {
    "openai_api_type": str,
    "openai_api_key": str,
    "openai_api_base_url": str,
    "openai_api_version": str,
    "openai_proxy": str,
    "openai_model": str,
    "openai_system": str,
    "openai_max_tokens": int,
    "openai_history": int,
    "log_level": str,
    "log_format": str,
    "httpd_host": str,
    "httpd_port": int,
}


def _bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "t", "true", "yes", "on"):
        return True
    if lowered in ("0", "f", "false", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aichat",
        description="AI chat for OpenAI-compatible APIs: terminal loop or streaming web server.",
    )
    parser.add_argument("--console", action="store_true", help="run the terminal chat loop")
    for name, kind in _FLAGS.items():
        parser.add_argument(f"--{name}", dest=name, type=kind, default=None)
    parser.add_argument("--openai_stream", dest="openai_stream", type=_bool, default=None,
                        help="stream replies token by token (true/false)")
    parser.add_argument("--log_caller", dest="log_caller", action="store_true", default=None,
                        help="annotate log lines with file, line and function")
    parser.add_argument("--sse_auto_replay", dest="sse_auto_replay", action="store_true",
                        default=None, help="replay missed events to reconnecting browsers")
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    overrides = {
        key: value
        for key, value in vars(args).items()
        if key != "console" and value is not None
    }
    return Settings(**overrides)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    start = time.monotonic()

    try:
        settings = load_settings(args)
    except ValidationError as e:
        setup_logging()
        logger.error("config setup failed: %s", e)
        return 1

    setup_logging(settings.log_level, settings.log_format, settings.log_caller)

    if args.console:
        try:
            client = build_client(
                settings.openai_api_key,
                settings.openai_api_type,
                settings.openai_api_base_url,
                settings.openai_proxy,
                settings.openai_api_version,
            )
        except ConfigError as e:
            logger.error("config setup failed: %s", e)
            return 1
        from aichat.console import run_console

        try:
            asyncio.run(run_console(client, settings.chat_options()))
        except KeyboardInterrupt:
            pass
    else:
        if not settings.openai_configured:
            logger.error("config setup failed: missed api key")
            return 1
        from aichat.main import create_app

        uvicorn.run(
            create_app(settings),
            host=settings.httpd_host,
            port=settings.httpd_port,
            log_config=None,
            access_log=False,
        )

    logger.info("aichat exit (uptime %.1fs)", time.monotonic() - start)
    return 0


if __name__ == "__main__":
    sys.exit(main())
