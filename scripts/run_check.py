#!/usr/bin/env python3
"""
CLI script to query watched repositories once.

Usage:
    python run_check.py                         # Check all repositories
    python run_check.py --repo grafana/grafana  # Check a specific repository
    python run_check.py --list                  # List watched repositories
"""

import argparse
import queue
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.detector import ChangeDetector
from core.registry import RepositoryRegistry, ConfigError
from utils.logger import setup_logging


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Tagwatch - One-shot tag check'
    )
    parser.add_argument(
        '--repo',
        type=str,
        help='Specific owner/name to check (checks all if not specified)'
    )
    parser.add_argument(
        '--list',
        action='store_true',
        help='List all watched repositories'
    )
    parser.add_argument(
        '--config',
        type=str,
        help='Path to repositories.yaml'
    )
    parser.add_argument(
        '--settings',
        type=str,
        help='Path to settings.yaml'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    args = parser.parse_args(argv)

    setup_logging(level='DEBUG' if args.verbose else 'WARNING')

    try:
        registry = RepositoryRegistry(args.config, args.settings)
        repositories = [args.repo] if args.repo else registry.list_repositories()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    if args.list:
        print("\nWatched Repositories:")
        print("-" * 50)
        for identifier in repositories:
            print(f"  {identifier}")
        return

    try:
        polling = registry.get_polling_settings()
        handler = registry.get_handler()
        detector = ChangeDetector(handler, timeout=polling['timeout'], workers=polling['workers'])
    except (ConfigError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    print("\nChecking latest tags...")
    print("-" * 50)
    try:
        results = detector.run_cycle(repositories, queue.Queue())
    except ValueError as e:
        print(f"Invalid repository: {e}", file=sys.stderr)
        sys.exit(2)
    finally:
        detector.close()

    for result in results:
        print(result)

    errors = sum(1 for r in results if not r.is_success)
    print(f"\nSummary: {len(results) - errors} ok, {errors} errors")
    if errors:
        sys.exit(1)


if __name__ == '__main__':
    main()
