#!/usr/bin/env python3
"""Operator script: requeue every invoice stuck in Error.

Usage:
    python -m scripts.reprocess_errors [--dry-run] [--user USER_ID]

Invoices whose stored file is gone are reported and left in Error. Run
`cardwise process` (or keep `cardwise worker` running) afterwards to
process the requeued jobs.
"""

import argparse

from cardwise.config import Config, Settings
from cardwise.database.models import InvoiceStatus
from cardwise.database.repository import Repository
from cardwise.errors import CardwiseError
from cardwise.pipeline.queue import JobQueue
from cardwise.services.invoices import InvoiceService
from cardwise.storage.local import LocalStorage
from cardwise.storage.s3 import S3Storage


def main():
    parser = argparse.ArgumentParser(description="Requeue invoices in Error")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be requeued without writing")
    parser.add_argument("--user", help="Only invoices of this user")
    args = parser.parse_args()

    settings = Settings.from_env()
    config = Config(settings.config_dir)
    repo = Repository(db_path=settings.db_path)
    repo.apply_migrations(settings.migrations_dir)
    storage = (
        S3Storage(settings.s3_bucket, prefix=settings.s3_prefix)
        if settings.s3_bucket else LocalStorage(settings.storage_dir)
    )
    service = InvoiceService(repo, storage, JobQueue(repo), config, settings)

    failed = repo.list_invoices(user_id=args.user, status=InvoiceStatus.ERROR.value, limit=10_000)
    if not failed:
        print("No invoices in Error.")
        return

    print(f"Found {len(failed)} invoices in Error")

    requeued = 0
    skipped = 0
    for invoice in failed:
        print(f"  {invoice.id} {invoice.reference_date}  {(invoice.error_message or '')[:60]}")
        if args.dry_run:
            continue
        try:
            service.reprocess(invoice.id)
            requeued += 1
        except CardwiseError as e:
            print(f"    skipped: {e}")
            skipped += 1

    if args.dry_run:
        print("\n(dry run, no changes written)")
    else:
        print(f"\nRequeued: {requeued}")
        print(f"Skipped:  {skipped}")
    repo.close()


if __name__ == "__main__":
    main()
