"""CLI entry point for Cardwise.

Commands:
    cardwise init                            Apply migrations, seed catalogs
    cardwise user add NAME EMAIL             Register a user
    cardwise card add USER NAME [...]        Register a card (optionally linked to a program)
    cardwise upload USER CARD FILE           Store an invoice file and queue it
    cardwise worker                          Run the invoice worker pool
    cardwise process                         Drain queued jobs once, then exit
    cardwise watch                           Drop-folder watcher plus worker pool
    cardwise reprocess INVOICE               Requeue an invoice in Error
    cardwise set-status INVOICE STATUS       Manual status override
    cardwise status [--invoice ID]           Queue/invoice counts or one invoice
    cardwise classify MERCHANT               Suggest a category code
    cardwise recommend USER                  Card recommendations
    cardwise optimize USER                   Better card per recent purchase
    cardwise points USER                     Points by program, expiring, monthly
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from pathlib import Path

from cardwise.errors import CardwiseError, ExternalServiceError

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    """Configure logging based on FINANCE_LOG_LEVEL env var."""
    level = os.environ.get("FINANCE_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_settings():
    from cardwise.config import Settings

    return Settings.from_env()


def _get_config(settings):
    """Load business config from the config directory."""
    from cardwise.config import Config

    return Config(config_dir=settings.config_dir)


def _get_repo(settings):
    """Create a Repository connected to the configured database, schema applied."""
    from cardwise.database.repository import Repository

    repo = Repository(db_path=settings.db_path)
    repo.apply_migrations(settings.migrations_dir)
    return repo


def _get_storage(settings):
    """S3 when a bucket is configured, else the local storage directory."""
    if settings.s3_bucket:
        from cardwise.storage.s3 import S3Storage

        return S3Storage(settings.s3_bucket, prefix=settings.s3_prefix)

    from cardwise.storage.local import LocalStorage

    return LocalStorage(settings.storage_dir)


def _make_claude_fn(settings):
    """Create a Claude API callback shared by extraction, classification
    and recommendations.

    Returns a callable (system, content, *, model, max_tokens, timeout) -> str,
    or None if ANTHROPIC_API_KEY is not set. content is a prompt string or
    a list of message content blocks. API errors surface as
    ExternalServiceError.
    """
    if not settings.anthropic_api_key:
        return None

    import anthropic

    client = anthropic.Anthropic(api_key=settings.anthropic_api_key)

    def claude_fn(system, content, *, model=None, max_tokens=1024, timeout=None) -> str:
        try:
            response = client.messages.create(
                model=model or settings.document_model,
                max_tokens=max_tokens,
                system=system,
                messages=[{"role": "user", "content": content}],
                timeout=timeout,
            )
        except anthropic.APIError as e:
            raise ExternalServiceError(f"Claude API call failed: {e}") from e
        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )

    return claude_fn


def _get_classifier(settings, config, repo, claude_fn):
    from cardwise.categorize.classifier import CategoryClassifier

    return CategoryClassifier.from_config(config, settings, claude_fn=claude_fn, repo=repo)


def _get_invoice_service(settings, config, repo, storage):
    from cardwise.pipeline.queue import JobQueue
    from cardwise.services.invoices import InvoiceService

    return InvoiceService(repo, storage, JobQueue(repo), config, settings)


def _get_worker_pool(settings, config, storage, claude_fn):
    """Worker pool where every worker gets its own repo and pipeline."""
    from cardwise.extract.extractor import build_extractor
    from cardwise.pipeline.invoice import InvoiceProcessingPipeline
    from cardwise.pipeline.queue import WorkerPool
    from cardwise.rewards.points import PointsCalculator

    calculator = PointsCalculator(config.bonus_table)

    def repo_factory():
        return _get_repo(settings)

    def pipeline_factory(repo):
        classifier = _get_classifier(settings, config, repo, claude_fn)
        extractor = build_extractor(
            settings, config, storage, claude_fn,
            classify=classifier.classify_by_keywords,
        )
        return InvoiceProcessingPipeline(
            repo, storage, extractor, classifier, calculator, config,
        )

    return WorkerPool(
        repo_factory, pipeline_factory,
        workers=settings.workers, poll_interval=settings.poll_interval,
        max_attempts=settings.job_max_attempts, retry_delay=settings.job_retry_delay,
        stale_after=settings.stale_job_timeout,
    )


def _get_engine(settings, config, repo, claude_fn):
    from cardwise.recommend.engine import RecommendationEngine
    from cardwise.rewards.points import PointsCalculator

    return RecommendationEngine(
        repo, config, PointsCalculator(config.bonus_table),
        claude_fn=claude_fn, model=settings.recommendation_model,
        timeout=settings.recommendation_timeout,
    )


def _fmt_cents(cents: int | None) -> str:
    if cents is None:
        return "-"
    return f"{cents / 100:,.2f}"


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


# ── Command handlers ─────────────────────────────────────


def cmd_init(args: argparse.Namespace) -> int:
    """Apply migrations and seed the category and reward program catalogs."""
    from cardwise.services.catalog import seed_catalogs

    settings = _get_settings()
    config = _get_config(settings)
    repo = _get_repo(settings)
    try:
        n_categories, n_programs = seed_catalogs(repo, config)
    finally:
        repo.close()
    print(f"Database ready at {settings.db_path}: {n_categories} categories, {n_programs} reward programs.")
    return 0


def cmd_user(args: argparse.Namespace) -> int:
    from cardwise.services.catalog import add_user

    if args.user_command != "add":
        print("Usage: cardwise user add NAME EMAIL")
        return 1
    settings = _get_settings()
    repo = _get_repo(settings)
    try:
        user = add_user(repo, args.name, args.email)
    finally:
        repo.close()
    print(f"User {user.id} ({user.email})")
    return 0


def cmd_card(args: argparse.Namespace) -> int:
    from cardwise.services.catalog import add_card, link_program

    if args.card_command != "add":
        print("Usage: cardwise card add USER_ID NAME [options]")
        return 1
    settings = _get_settings()
    config = _get_config(settings)
    repo = _get_repo(settings)
    try:
        card = add_card(
            repo, args.user_id, args.name, bank=args.bank,
            last_digits=args.last_digits, conversion_rate=args.rate,
            annual_fee=args.annual_fee, tier=args.tier, config=config,
        )
        if args.program:
            link_program(repo, card.id, args.program, conversion_rate=args.program_rate)
    finally:
        repo.close()
    print(f"Card {card.id} ({card.name}, rate {card.conversion_rate})")
    return 0


def cmd_upload(args: argparse.Namespace) -> int:
    """Store an invoice file and queue it for processing."""
    filepath = args.file.resolve()
    if not filepath.exists():
        print(f"Error: File not found: {filepath}")
        return 1

    settings = _get_settings()
    config = _get_config(settings)
    storage = _get_storage(settings)
    repo = _get_repo(settings)
    try:
        service = _get_invoice_service(settings, config, repo, storage)
        result = service.upload(
            args.user_id, args.card_id, filepath.name, filepath.read_bytes(),
            reference_date=args.reference_date,
        )
    finally:
        repo.close()
    print(f"Invoice {result['invoice_id']}: {result['status']}")

    if args.process:
        pool = _get_worker_pool(settings, config, storage, _make_claude_fn(settings))
        drained = pool.run_pending()
        print(f"Processed {drained.total} jobs ({drained.failed} failed)")
        return 1 if drained.failed else 0
    return 0


def cmd_worker(args: argparse.Namespace) -> int:
    """Run the worker pool until interrupted."""
    settings = _get_settings()
    config = _get_config(settings)
    pool = _get_worker_pool(settings, config, _get_storage(settings), _make_claude_fn(settings))

    print(f"Running {settings.workers} invoice workers... (Ctrl+C to stop)")
    pool.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping workers...")
    finally:
        pool.stop()
    return 0


def cmd_process(args: argparse.Namespace) -> int:
    """Drain the queue once on this thread."""
    settings = _get_settings()
    config = _get_config(settings)
    pool = _get_worker_pool(settings, config, _get_storage(settings), _make_claude_fn(settings))
    result = pool.run_pending(max_jobs=args.max_jobs)
    if result.total == 0:
        print("No queued jobs.")
        return 0
    print(
        f"Processed {result.total} jobs: {result.completed} completed,"
        f" {result.failed} failed, {result.retried} retried"
    )
    return 1 if result.failed else 0


def cmd_watch(args: argparse.Namespace) -> int:
    """Start the drop-folder watcher together with the worker pool."""
    from cardwise.watcher.observer import FileWatcher

    settings = _get_settings()
    config = _get_config(settings)
    storage = _get_storage(settings)
    repo = _get_repo(settings)
    pool = _get_worker_pool(settings, config, storage, _make_claude_fn(settings))

    watcher = FileWatcher(
        watch_dir=settings.watch_dir,
        service=_get_invoice_service(settings, config, repo, storage),
    )

    print(f"Watching {watcher.watch_dir}/<card_id>/ for invoices... (Ctrl+C to stop)")
    pool.start()
    watcher.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping watcher...")
    finally:
        watcher.stop()
        pool.stop()
        repo.close()
    return 0


def cmd_reprocess(args: argparse.Namespace) -> int:
    settings = _get_settings()
    config = _get_config(settings)
    repo = _get_repo(settings)
    try:
        service = _get_invoice_service(settings, config, repo, _get_storage(settings))
        result = service.reprocess(args.invoice_id)
    finally:
        repo.close()
    print(f"Invoice {result['invoice_id']}: {result['status']}")
    return 0


def cmd_set_status(args: argparse.Namespace) -> int:
    settings = _get_settings()
    config = _get_config(settings)
    repo = _get_repo(settings)
    try:
        service = _get_invoice_service(settings, config, repo, _get_storage(settings))
        invoice = service.set_status(args.invoice_id, args.status)
    finally:
        repo.close()
    print(f"Invoice {invoice.id}: {invoice.status}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Display queue counts, or the detail of one invoice."""
    from datetime import datetime

    from cardwise.database.queries import get_invoice_category_summary, get_status_counts

    settings = _get_settings()
    repo = _get_repo(settings)
    try:
        if args.invoice:
            invoice = repo.get_invoice(args.invoice)
            if invoice is None:
                print(f"Error: Invoice not found: {args.invoice}")
                return 1
            print(f"Invoice {invoice.id}")
            print("=" * 40)
            print(f"  Status:        {invoice.status}")
            print(f"  Total:         {_fmt_cents(invoice.total_amount)}")
            print(f"  Due date:      {invoice.due_date or '-'}")
            print(f"  Closing date:  {invoice.closing_date or '-'}")
            if invoice.error_message:
                print(f"  Error:         {invoice.error_message}")
            for row in get_invoice_category_summary(repo.conn, invoice.id):
                print(f"    {row['code'] or 'UNCATEGORIZED':<10} {_fmt_cents(row['total']):>12}  ({row['txn_count']})")
            for job in repo.get_jobs_for_invoice(invoice.id):
                print(f"  Job {job.id}: {job.status} (attempts={job.attempts})"
                      + (f" {job.error_message}" if job.error_message else ""))
            return 0

        counts = get_status_counts(repo.conn)
        print("Cardwise Status")
        print("=" * 40)
        print(f"  Invoices:            {counts['total_invoices']:,}")
        print(f"  Processing:          {counts['processing']:,}")
        print(f"  Pending:             {counts['pending']:,}")
        print(f"  Error:               {counts['errors']:,}")
        print(f"  Transactions:        {counts['total_txns']:,}")
        print(f"  Queued jobs:         {counts['queued_jobs']:,}")
        print(f"  Failed jobs:         {counts['failed_jobs']:,}")

        month = datetime.now().strftime("%Y-%m")
        cost_cents = repo.get_monthly_cost(month)
        print(f"\n  API cost ({month}):     ${cost_cents / 100:.2f}")
    finally:
        repo.close()
    return 0


def cmd_classify(args: argparse.Namespace) -> int:
    settings = _get_settings()
    config = _get_config(settings)
    repo = _get_repo(settings)
    try:
        classifier = _get_classifier(settings, config, repo, _make_claude_fn(settings))
        code = classifier.classify(args.merchant)
    finally:
        repo.close()
    print(code or "none")
    return 0


def cmd_recommend(args: argparse.Namespace) -> int:
    settings = _get_settings()
    config = _get_config(settings)
    repo = _get_repo(settings)
    try:
        result = _get_engine(settings, config, repo, _make_claude_fn(settings)).recommend_cards(args.user_id)
    finally:
        repo.close()

    if args.json:
        _print_json(result)
        return 0
    if result.get("message"):
        print(result["message"])
    for rec in result["recommendations"]:
        print(f"- {rec.get('card_name')}: {rec.get('description')}"
              f" (fee {_fmt_cents(rec.get('annual_fee'))}, +{rec.get('potential_points_increase')})")
        if rec.get("analysis"):
            print(f"    {rec['analysis']}")
    if result.get("summary"):
        print(f"\n{result['summary']}")
    for item in result.get("action_items", []):
        print(f"  * {item}")
    return 0


def cmd_optimize(args: argparse.Namespace) -> int:
    settings = _get_settings()
    config = _get_config(settings)
    repo = _get_repo(settings)
    try:
        result = _get_engine(settings, config, repo, _make_claude_fn(settings)).optimize_transactions(args.user_id)
    finally:
        repo.close()

    if args.json:
        _print_json(result)
        return 0
    for opt in result["optimizations"]:
        details = opt["transaction_details"]
        print(f"- {details['transaction_date']} {details['merchant_name']} {_fmt_cents(details['amount'])}:"
              f" {opt['current_card']['name']} -> {opt['recommended_card']['name']}"
              f" (+{opt['additional_points']} pts, +{opt['potential_increase_percentage']}%)")
        print(f"    {opt['reason']}")
    print(result["summary"])
    return 0


def cmd_points(args: argparse.Namespace) -> int:
    settings = _get_settings()
    config = _get_config(settings)
    repo = _get_repo(settings)
    try:
        result = _get_engine(settings, config, repo, None).points_summary(args.user_id)
    finally:
        repo.close()

    if args.json:
        _print_json(result)
        return 0
    print(f"Active points: {result['total_active']:,}")
    for program in result["by_program"]:
        print(f"  {program['name']:<20} {program['total']:>10,}")
    if result["expiring_total"]:
        print(f"Expiring soon: {result['expiring_total']:,}")
    for action in result["suggested_actions"]:
        print(f"  * {action}")
    return 0


# ── Main entry point ─────────────────────────────────────


_COMMANDS = {
    "init": cmd_init,
    "user": cmd_user,
    "card": cmd_card,
    "upload": cmd_upload,
    "worker": cmd_worker,
    "process": cmd_process,
    "watch": cmd_watch,
    "reprocess": cmd_reprocess,
    "set-status": cmd_set_status,
    "status": cmd_status,
    "classify": cmd_classify,
    "recommend": cmd_recommend,
    "optimize": cmd_optimize,
    "points": cmd_points,
}


def main(argv: list[str] | None = None):
    _setup_logging()

    parser = argparse.ArgumentParser(
        prog="cardwise",
        description="Cardwise credit card invoice and rewards tracker",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init", help="Apply migrations and seed catalogs")

    user_p = subparsers.add_parser("user", help="Manage users")
    user_sub = user_p.add_subparsers(dest="user_command")
    user_add_p = user_sub.add_parser("add", help="Register a user")
    user_add_p.add_argument("name")
    user_add_p.add_argument("email")

    card_p = subparsers.add_parser("card", help="Manage cards")
    card_sub = card_p.add_subparsers(dest="card_command")
    card_add_p = card_sub.add_parser("add", help="Register a card")
    card_add_p.add_argument("user_id")
    card_add_p.add_argument("name")
    card_add_p.add_argument("--bank")
    card_add_p.add_argument("--last-digits")
    card_add_p.add_argument("--rate", type=float, default=1.0, help="Points per currency unit")
    card_add_p.add_argument("--annual-fee", type=int, help="Annual fee in cents")
    card_add_p.add_argument("--tier", help="Tier key from card_tiers.yaml")
    card_add_p.add_argument("--program", help="Reward program code to link as primary")
    card_add_p.add_argument("--program-rate", type=float, default=1.0)

    upload_p = subparsers.add_parser("upload", help="Upload an invoice file")
    upload_p.add_argument("user_id")
    upload_p.add_argument("card_id")
    upload_p.add_argument("file", type=Path)
    upload_p.add_argument("--reference-date", help="YYYY-MM-DD, default today")
    upload_p.add_argument("--process", action="store_true", help="Drain the queue right away")

    subparsers.add_parser("worker", help="Run the invoice worker pool")

    process_p = subparsers.add_parser("process", help="Process queued jobs once")
    process_p.add_argument("--max-jobs", type=int)

    subparsers.add_parser("watch", help="Watch the drop folder and run workers")

    reprocess_p = subparsers.add_parser("reprocess", help="Requeue an invoice in Error")
    reprocess_p.add_argument("invoice_id")

    set_status_p = subparsers.add_parser("set-status", help="Override an invoice status")
    set_status_p.add_argument("invoice_id")
    set_status_p.add_argument("status", help="Processing, Pending (Analyzed), Error, Paid or Late")

    status_p = subparsers.add_parser("status", help="Show queue and invoice status")
    status_p.add_argument("--invoice", help="Invoice ID to show in detail")

    classify_p = subparsers.add_parser("classify", help="Suggest a category for a merchant")
    classify_p.add_argument("merchant")

    for name, help_text in (
        ("recommend", "Card recommendations for a user"),
        ("optimize", "Better card per recent purchase"),
        ("points", "Points summary for a user"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("user_id")
        p.add_argument("--json", action="store_true", help="Print raw JSON")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    try:
        code = handler(args)
    except CardwiseError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
