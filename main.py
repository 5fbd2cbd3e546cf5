#!/usr/bin/env python3
"""
Main entry point for the Tagwatch repository tag monitoring agent.

Polls every configured repository on a fixed interval and notifies whenever
a repository's most recent tag changes. Runs until interrupted.
"""

import argparse
import logging
import queue
import sys

from core.detector import ChangeDetector
from core.notifier import Notifier
from core.registry import RepositoryRegistry, ConfigError
from utils.logger import setup_logging


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Tagwatch - Repository Tag Monitoring Agent'
    )
    parser.add_argument(
        '--config',
        type=str,
        help='Path to repositories.yaml (default: config/repositories.yaml)'
    )
    parser.add_argument(
        '--settings',
        type=str,
        help='Path to settings.yaml (default: config/settings.yaml)'
    )
    parser.add_argument(
        '--interval',
        type=float,
        help='Seconds between polling cycles (overrides settings)'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        help='Also write logs to this file'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        registry = RepositoryRegistry(args.config, args.settings)
        log_settings = registry.get_settings()['logging']
        setup_logging(
            level='DEBUG' if args.verbose else log_settings['level'],
            format_str=log_settings['format'],
            log_file=args.log_file
        )

        polling = registry.get_polling_settings()
        interval = args.interval if args.interval is not None else polling['interval']
        if interval <= 0:
            raise ConfigError(f"--interval must be positive, got {interval}")

        repositories = registry.list_repositories()
        handler = registry.get_handler()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logger = logging.getLogger('Tagwatch')
    if not repositories:
        logger.error("No repositories configured")
        return 2

    events = queue.Queue(maxsize=polling['queue_size'])
    notifier = Notifier(events, registry.get_settings()['notifier'])
    detector = ChangeDetector(
        handler,
        timeout=polling['timeout'],
        workers=polling['workers'],
        publish_timeout=polling['publish_timeout']
    )

    notifier.start()
    try:
        detector.run(interval, repositories, events)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        notifier.stop(timeout=5)

    return 0


if __name__ == '__main__':
    sys.exit(main())
