#!/usr/bin/env python3
"""
Re-embedding Script

Recomputes embeddings for extracted and archived records. By default only
records whose embedding is missing (ingest-time embedding failures) are
touched; pass --all after switching embedding models.

Usage:
    python scripts/reindex_embeddings.py [--owner OWNER] [--all] [--dry-run]
"""

import argparse
import sys


def main():
    parser = argparse.ArgumentParser(description="Recompute record embeddings")
    parser.add_argument("--owner", type=str, default=None, help="Only this owner's records (default: all owners)")
    parser.add_argument("--all", action="store_true", help="Re-embed every record, not just those missing a vector")
    parser.add_argument("--dry-run", action="store_true", help="Print what would be done without executing")
    args = parser.parse_args()

    from dotenv import load_dotenv

    from sift.common.config import load_config, validate_config
    from sift.common.record_store import SEARCHABLE_STATUSES
    from sift.service import KnowledgePipeline

    load_dotenv()
    config = load_config()
    validate_config(config)

    print(f"[Reindex] Embedding provider: {config.embedding.provider}, model: {config.embedding.model}")
    pipeline = KnowledgePipeline.from_config(config)

    if not pipeline.embedder.is_available:
        print("[Reindex] ERROR: Embedding service not available")
        sys.exit(1)

    records = pipeline.store.list_records(args.owner, statuses=SEARCHABLE_STATUSES)
    targets = [r for r in records if args.all or not r.embedding]
    print(f"[Reindex] {len(targets)} of {len(records)} records selected")

    if args.dry_run:
        print("[Reindex] DRY RUN - no changes will be made")
        for record in targets[:20]:
            print(f"  - {record.id} ({record.owner_id}): {record.display_title[:60]}")
        return

    if not targets:
        print("[Reindex] Nothing to do")
        return

    result = pipeline.reindex_embeddings(args.owner, missing_only=not args.all)
    print(f"[Reindex] Done: {result.processed} succeeded, {result.failed} failed")
    for error in result.errors[:10]:
        print(f"  ! {error}")
    if result.failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
