#!/usr/bin/env python3
"""
Fact Pruning Script

Deletes weather facts whose created_at is older than the retention window.
Forecasts go stale quickly, so run this from cron or before a backup.

Usage:
    python scripts/prune_facts.py [--days 30] [--dry-run] [--path ~/.weather-agents/facts.json]
"""

import sys
import argparse


def main():
    from weather_agents.common.config import load_config
    from weather_agents.common.fact_store import FactStoreError, JsonFileFactStore

    config = load_config()

    parser = argparse.ArgumentParser(description="Delete stale weather facts")
    parser.add_argument(
        "--days", type=int, default=config.fact_store.retention_days,
        help="Delete facts created more than this many days ago",
    )
    parser.add_argument("--dry-run", action="store_true", help="Report what would be deleted without deleting")
    parser.add_argument("--path", type=str, default=config.fact_store.path, help="Fact store JSON file")
    args = parser.parse_args()

    if args.days < 0:
        print("[Prune] ERROR: --days must not be negative")
        sys.exit(1)

    store = JsonFileFactStore(args.path)
    print(f"[Prune] Fact store: {store.path}")

    try:
        before = store.stats()
        count = store.prune(older_than_days=args.days, dry_run=args.dry_run)
    except FactStoreError as e:
        print(f"[Prune] ERROR: {e}")
        sys.exit(1)

    if args.dry_run:
        print("[Prune] DRY RUN - no changes will be made")
        print(f"[Prune] Would delete {count} of {before['total']} facts older than {args.days} days")
        return

    print(f"[Prune] Deleted {count} of {before['total']} facts older than {args.days} days")


if __name__ == "__main__":
    main()
