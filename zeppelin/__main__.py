from __future__ import annotations

import argparse
import logging

import uvicorn

from .app import build_app
from .config import ZeppelinConfig
from .logs import configure_logging


def _build_parser(defaults: ZeppelinConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve a live topology view of a Gas Town fleet.")
    parser.add_argument("--bind", type=str, default=defaults.bind, help="Bind address.")
    parser.add_argument("--port", type=int, default=defaults.port, help="HTTP server port.")
    parser.add_argument("--root", type=str, default=defaults.root, help="Gas Town root directory.")
    parser.add_argument("--poll-interval", type=float, default=defaults.poll_interval)
    parser.add_argument("--command-timeout", type=float, default=defaults.command_timeout)
    parser.add_argument("--subscriber-queue-size", type=int, default=defaults.subscriber_queue_size)
    parser.add_argument("--static-dir", type=str, default=defaults.static_dir)
    parser.add_argument("--log-level", type=str, default=defaults.log_level)
    parser.add_argument("--log-path", type=str, default=defaults.log_path)
    return parser


def main() -> None:
    defaults = ZeppelinConfig.from_env()
    args = _build_parser(defaults).parse_args()
    config = defaults.with_overrides(
        bind=args.bind,
        port=args.port,
        root=args.root,
        poll_interval=args.poll_interval,
        command_timeout=args.command_timeout,
        subscriber_queue_size=args.subscriber_queue_size,
        static_dir=args.static_dir,
        log_level=args.log_level,
        log_path=args.log_path,
    )
    logger = configure_logging(config.log_level, config.log_path)
    logger.info("ZEPPELIN_START url=http://%s:%d root=%s", config.bind, config.port, config.root)

    app = build_app(config)
    try:
        uvicorn.run(app, host=config.bind, port=config.port, log_level=config.log_level)
    finally:
        logging.getLogger("zeppelin").info("ZEPPELIN_STOP")


if __name__ == "__main__":
    main()
