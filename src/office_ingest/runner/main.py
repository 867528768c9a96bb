"""
CLI main entry point.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from ..assistant_client import AssistantClient
from ..config import Config, create_default_config, load_config
from ..pipeline.service import build_document_service
from ..services import (
    AssistantProvisioner,
    FineTuningQueueService,
    FineTuningService,
    HistoryRecorder,
    PromptService,
)
from ..state_store import StateStore, ValidationStatus

logger = logging.getLogger(__name__)

STATUS_CHOICES = {
    "correct": ValidationStatus.CORRECT,
    "incorrect": ValidationStatus.INCORRECT,
    "corrected": ValidationStatus.CORRECTED,
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="office-ingest",
        description="Extract check payments from office documents with an OpenAI assistant",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init-config command
    subparsers.add_parser("init-config", help="Write a default config file")

    # process command
    process_parser = subparsers.add_parser("process", help="Process one document")
    process_parser.add_argument("file", type=Path, help="PDF, Excel, CSV or text file")
    process_parser.add_argument("--office", type=int, required=True, help="Office ID")
    process_parser.add_argument("--user", type=int, default=0, help="Uploading user ID")
    process_parser.add_argument(
        "--output",
        type=Path,
        help="Write the JSON result here instead of stdout",
    )

    # history command
    history_parser = subparsers.add_parser("history", help="List extraction history")
    history_parser.add_argument("--office", type=int, required=True, help="Office ID")
    history_parser.add_argument(
        "--status",
        choices=[s.value for s in ValidationStatus],
        help="Only records with this validation status",
    )
    history_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum records to list (default: 50)",
    )

    # validate command
    validate_parser = subparsers.add_parser("validate", help="Validate an extraction record")
    validate_parser.add_argument("record_id", type=int, help="History record ID")
    validate_parser.add_argument(
        "--status",
        choices=sorted(STATUS_CHOICES),
        required=True,
        help="Validation decision",
    )
    validate_parser.add_argument("--by", required=True, help="Who validated the record")
    validate_parser.add_argument(
        "--corrected-json",
        type=Path,
        help="File with the corrected JSON array (required for 'corrected')",
    )
    validate_parser.add_argument("--notes", help="Free-form notes")

    # prompt command
    prompt_parser = subparsers.add_parser("prompt", help="Show or update an office prompt")
    prompt_sub = prompt_parser.add_subparsers(dest="prompt_command")
    show_parser = prompt_sub.add_parser("show", help="Print the current prompt")
    show_parser.add_argument("--office", type=int, required=True, help="Office ID")
    set_parser = prompt_sub.add_parser("set", help="Store a new prompt version")
    set_parser.add_argument("--office", type=int, required=True, help="Office ID")
    set_parser.add_argument("file", type=Path, help="Text file with the prompt")
    set_parser.add_argument("--name", help="Prompt name")

    # worker command
    worker_parser = subparsers.add_parser(
        "worker", help="Process pending fine-tuning eligibility checks"
    )
    worker_parser.add_argument(
        "--daemon",
        action="store_true",
        help="Keep polling the queue",
    )
    worker_parser.add_argument(
        "--interval",
        type=float,
        default=30.0,
        help="Seconds between polls in daemon mode (default: 30)",
    )
    worker_parser.add_argument(
        "--batch-size",
        type=int,
        default=10,
        help="Checks per poll (default: 10)",
    )

    # monitor command
    monitor_parser = subparsers.add_parser("monitor", help="Poll running fine-tuning jobs")
    monitor_parser.add_argument(
        "--daemon",
        action="store_true",
        help="Keep polling at fine_tuning.monitor_interval_seconds",
    )

    # status command
    subparsers.add_parser("status", help="Show pipeline status and statistics")

    return parser


def _check_config(config: Config) -> bool:
    errors = config.validate()
    if errors:
        print("❌ Invalid configuration:")
        for error in errors:
            print(f"   - {error}")
        return False
    return True


def _assistant_client(config: Config) -> AssistantClient:
    return AssistantClient(
        api_key=config.openai.api_key,
        base_url=config.openai.base_url,
        timeout=config.openai.timeout_seconds,
        run_timeout=config.openai.run_timeout_seconds,
        poll_interval=config.openai.poll_interval_seconds,
    )


def _fine_tuning_service(
    config: Config, store: StateStore, client: AssistantClient
) -> FineTuningService:
    provisioner = AssistantProvisioner(
        store,
        client,
        default_model=config.openai.default_model,
        cache_ttl=config.pipeline.assistant_cache_ttl_seconds,
    )
    return FineTuningService(store, client, config.fine_tuning, provisioner)


def cmd_init_config(config_path: Path) -> int:
    """Write a default configuration file."""
    if config_path.exists():
        print(f"❌ {config_path} already exists")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote {config_path}")
    return 0


def cmd_process(config: Config, file: Path, office_id: int, user_id: int, output: Path | None) -> int:
    """Process one document and print the result."""
    if not _check_config(config):
        return 1
    if not file.is_file():
        print(f"❌ File not found: {file}")
        return 1

    print(f"📄 Processing {file.name} for office {office_id}...")
    file_bytes = file.read_bytes()

    async def run():
        async with _assistant_client(config) as client:
            service = build_document_service(config, StateStore(config.state_db_path), client)
            return await service.process_document(file_bytes, file.name, office_id, user_id)

    result = asyncio.run(run())
    payload = json.dumps(result.to_dict(), indent=2, ensure_ascii=False)

    if output:
        output.write_text(payload, encoding="utf-8")
        print(f"   → Result written to {output}")
    else:
        print(payload)

    if not result.success:
        print(f"❌ {result.error}")
        return 1

    print(
        f"✓ {result.batch.total_transactions} rows from "
        f"{result.batch.chunks_processed} chunk(s) in {result.total_seconds}s"
    )
    return 0


def cmd_history(config: Config, office_id: int, status: str | None, limit: int) -> int:
    """List extraction history of an office."""
    store = StateStore(config.state_db_path)
    recorder = HistoryRecorder(store)
    records = recorder.list_records(
        office_id,
        status=ValidationStatus(status) if status else None,
        limit=limit,
    )

    if not records:
        print("No extraction records")
        return 0

    for record in records:
        print(f"  [{record.id}] {record.created_at}  {record.status.value:<22} {record.file_name}")
        if record.validated_by:
            print(f"       validated by {record.validated_by} at {record.validated_at}")

    print(f"\n✓ {len(records)} record(s)")
    return 0


def cmd_validate(
    config: Config,
    record_id: int,
    status: str,
    validated_by: str,
    corrected_json: Path | None,
    notes: str | None,
) -> int:
    """Record a human validation decision."""
    store = StateStore(config.state_db_path)
    queue = FineTuningQueueService(store, max_retries=config.fine_tuning.queue_max_retries)
    recorder = HistoryRecorder(store, queue)

    corrected = corrected_json.read_text(encoding="utf-8") if corrected_json else None
    try:
        record = recorder.validate(
            record_id,
            STATUS_CHOICES[status],
            validated_by,
            corrected_json=corrected,
            notes=notes,
        )
    except KeyError as e:
        print(f"❌ {e.args[0]}")
        return 1
    except ValueError as e:
        print(f"❌ {e}")
        return 1

    count = store.count_validated(record.office_id)
    print(f"✓ Record {record.id} marked {record.status.value}")
    print(f"   Office {record.office_id} now has {count} validated record(s)")
    return 0


def cmd_prompt(config: Config, action: str | None, office_id: int, file: Path | None, name: str | None) -> int:
    """Show or update an office's extraction prompt."""
    prompts = PromptService(StateStore(config.state_db_path))

    if action == "show":
        prompt = prompts.get_or_create(office_id)
        print(f"# {prompt.name} ({prompt.created_at})")
        print(prompt.content)
        return 0

    if action == "set":
        try:
            prompt = prompts.update(office_id, file.read_text(encoding="utf-8"), name=name)
        except ValueError as e:
            print(f"❌ {e}")
            return 1
        print(f"✓ Prompt {prompt.id} is now active for office {office_id}")
        return 0

    print("❌ Use 'prompt show' or 'prompt set'")
    return 1


def cmd_worker(config: Config, daemon: bool, interval: float, batch_size: int) -> int:
    """Drain the fine-tuning eligibility queue."""
    if not _check_config(config):
        return 1
    store = StateStore(config.state_db_path)

    async def run() -> int:
        async with _assistant_client(config) as client:
            queue = FineTuningQueueService(
                store,
                _fine_tuning_service(config, store, client),
                max_retries=config.fine_tuning.queue_max_retries,
            )
            total = 0
            while True:
                total += await queue.run_once(batch_size)
                if not daemon:
                    return total
                await asyncio.sleep(interval)

    print("🔧 Processing fine-tuning checks...")
    try:
        completed = asyncio.run(run())
    except KeyboardInterrupt:
        print("\nStopped")
        return 0

    FineTuningQueueService(store).cleanup_old_entries()
    stats = store.get_queue_stats()
    print(f"✓ Completed {completed} check(s); {stats['pending']} pending, {stats['failed']} failed")
    return 0


def cmd_monitor(config: Config, daemon: bool) -> int:
    """Poll running fine-tuning jobs."""
    if not _check_config(config):
        return 1
    store = StateStore(config.state_db_path)

    async def run():
        async with _assistant_client(config) as client:
            service = _fine_tuning_service(config, store, client)
            if daemon:
                await service.monitor()
                return []
            return await service.check_running_jobs()

    try:
        finished = asyncio.run(run())
    except KeyboardInterrupt:
        print("\nStopped")
        return 0

    for job in finished:
        refreshed = store.get_fine_tuning_job(job.job_id)
        print(f"  [{job.job_id}] office {job.office_id}: {refreshed.status if refreshed else '?'}")
    print(f"✓ {len(finished)} job(s) finished")
    return 0


def cmd_status(config: Config) -> int:
    """Show pipeline status."""
    store = StateStore(config.state_db_path)
    stats = store.get_stats()
    queue = store.get_queue_stats()

    print("\n📊 Pipeline Status")
    print("=" * 40)
    print(f"  Active assistants:      {stats['active_assistants']}")
    print(f"  Extractions total:      {stats['extractions_total']}")
    print(f"  Pending validation:     {stats['pending_validation']}")
    print(f"  Validated:              {stats['validated']}")
    print(f"  Fine-tuning jobs:       {stats['fine_tuning_jobs']}")
    print(f"  Fine-tuning running:    {stats['fine_tuning_running']}")
    print(f"  Queued checks:          {queue['pending']}")
    print()

    jobs = store.list_fine_tuning_jobs()[:5]
    if jobs:
        print("Recent fine-tuning jobs:")
        for job in jobs:
            model = job.fine_tuned_model_id or "-"
            print(f"  [{job.job_id}] office {job.office_id}: {job.status} ({model})")
        print()

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config)

    # Load config
    try:
        config = load_config(parsed.config)
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    if parsed.command == "process":
        return cmd_process(config, parsed.file, parsed.office, parsed.user, parsed.output)
    elif parsed.command == "history":
        return cmd_history(config, parsed.office, parsed.status, parsed.limit)
    elif parsed.command == "validate":
        return cmd_validate(
            config,
            parsed.record_id,
            parsed.status,
            parsed.by,
            parsed.corrected_json,
            parsed.notes,
        )
    elif parsed.command == "prompt":
        return cmd_prompt(
            config,
            parsed.prompt_command,
            getattr(parsed, "office", 0),
            getattr(parsed, "file", None),
            getattr(parsed, "name", None),
        )
    elif parsed.command == "worker":
        return cmd_worker(config, parsed.daemon, parsed.interval, parsed.batch_size)
    elif parsed.command == "monitor":
        return cmd_monitor(config, parsed.daemon)
    elif parsed.command == "status":
        return cmd_status(config)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
