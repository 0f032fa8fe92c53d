#!/usr/bin/env python3
"""
Re-ingest Documents Script

Re-runs ingestion for every document whose last run did not reach
``ready`` (uploaded, empty_text, error, chunk_insert_error).

Usage:
    Requires the database and the embedding backend to be reachable:
    $ python scripts/reingest_documents.py
    $ python scripts/reingest_documents.py --dry-run
    $ python scripts/reingest_documents.py --document 5f0c...  --document 9a1e...
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import uuid

from app.core.database import dispose_engine, session_scope
from app.core.exceptions import RAGError
from app.core.logging import setup_logging
from app.repositories.rag import RAGRepository
from app.services.ingestion import IngestionPipeline

logger = logging.getLogger("app.scripts.reingest")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Re-ingest unfinished documents")
    parser.add_argument(
        "--document",
        action="append",
        type=uuid.UUID,
        default=[],
        help="Only re-ingest this document id (repeatable)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the documents that would be processed and exit",
    )
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args()


async def main(args: argparse.Namespace) -> int:
    """Return the number of documents that still failed."""
    repository = RAGRepository()
    pipeline = IngestionPipeline(repository=repository)
    failures = 0

    async with session_scope() as session:
        if args.document:
            targets = list(args.document)
        else:
            documents = await repository.list_unfinished_documents(session)
            targets = [d.id for d in documents]

    logger.info("%d document(s) to re-ingest", len(targets))
    if args.dry_run:
        for document_id in targets:
            logger.info("Would re-ingest %s", document_id)
        return 0

    for document_id in targets:
        # One session per document so a failed rollback never leaks across runs.
        async with session_scope() as session:
            try:
                outcome = await pipeline.ingest(session, document_id)
            except RAGError as e:
                failures += 1
                logger.error("Document %s failed: %s (%s)", document_id, e, e.code)
                continue
        logger.info(
            "Document %s -> %s (%d chunks)",
            document_id,
            outcome.status,
            outcome.chunk_count,
        )

    await dispose_engine()
    logger.info("Done: %d ok, %d failed", len(targets) - failures, failures)
    return failures


if __name__ == "__main__":
    arguments = parse_args()
    setup_logging(arguments.log_level)
    raise SystemExit(1 if asyncio.run(main(arguments)) else 0)
