"""
CLI entrypoint for LLM Answer Positions.

Provides a dual-mode command-line interface with:
- Human-friendly output: Rich spinners, tables, progress bars, colored text
- Agent-friendly output: Structured JSON (--format json)

Commands:
    extract: Compute position records for unprocessed answers
    analyze: Run the position engine on one answer text (no database, no network)
    validate: Validate configuration without running
    import: Load brands, competitors and answers from a JSON fixture
    export positions: Export position records to CSV or JSON

Exit codes:
    0: Success - every selected answer processed
    1: Configuration error (invalid YAML, missing API keys, bad input)
    2: Database error (cannot create/access SQLite, batch aborted)
    3: Partial failure (some answers failed, but the batch completed)
    4: Complete failure (no answer succeeded)

Examples:
    # Human-friendly output with progress bar
    llm-answer-positions extract --config positions.config.yaml

    # Agent-friendly JSON output
    llm-answer-positions extract --config positions.config.yaml --format json

    # Try the engine on a snippet
    llm-answer-positions analyze --brand Nike --competitor Adidas \\
        --text "I love Nike shoes and Nike Air Max"

Security:
    - API keys are loaded from environment variables only
    - Errors may contain file paths but never API keys
"""

import asyncio
import signal
from dataclasses import asdict
from pathlib import Path

import typer
from rich.traceback import install as install_rich_traceback

from llm_answer_positions import __version__
from llm_answer_positions.config.constants import MAX_BRAND_PRODUCTS
from llm_answer_positions.config.loader import load_config
from llm_answer_positions.enrichment.resolver import ProductNameResolver
from llm_answer_positions.exceptions import (
    APIKeyMissingError,
    BatchAbortedError,
    ConfigFileNotFoundError,
    ConfigValidationError,
    DatabaseError,
    ExtractionError,
)
from llm_answer_positions.extractor.position_matcher import TrackedEntity
from llm_answer_positions.extractor.product_names import clean_product_names
from llm_answer_positions.pipeline.batch import BatchOptions, BatchSummary, run_batch
from llm_answer_positions.pipeline.models import (
    AnswerRecord,
    BrandRecord,
    normalize_competitor_inputs,
)
from llm_answer_positions.pipeline.orchestrator import (
    PositionExtractor,
    compute_extraction,
)
from llm_answer_positions.storage.db import (
    SQLiteBrandRepository,
    SQLitePositionStore,
    init_db_if_needed,
)
from llm_answer_positions.utils.console import (
    create_progress_bar,
    error,
    info,
    output_mode,
    print_batch_summary,
    print_positions_table,
    spinner,
    success,
    warning,
)
from llm_answer_positions.utils.logging import setup_logging
from llm_answer_positions.utils.time import parse_timestamp

# Install Rich tracebacks for better error messages
install_rich_traceback(show_locals=False)

# Exit codes
EXIT_SUCCESS = 0  # All answers processed
EXIT_CONFIG_ERROR = 1  # Config validation failed or bad input
EXIT_DB_ERROR = 2  # Database initialization failed or batch aborted
EXIT_PARTIAL_FAILURE = 3  # Some answers failed
EXIT_COMPLETE_FAILURE = 4  # All answers failed

app = typer.Typer(
    name="llm-answer-positions",
    help="Measure where and how often brands appear in AI answers",
    add_completion=False,
)


def _setup(format: str, verbose: bool) -> None:
    if format not in ("text", "json"):
        raise typer.BadParameter("must be 'text' or 'json'", param_hint="--format")

    output_mode.reset()
    output_mode.format = format

    # JSON logs on stderr only interleave with Rich output when asked for
    setup_logging(verbose=verbose, quiet_logs=output_mode.is_human())


def _finish(code: int) -> None:
    output_mode.flush_json()
    raise typer.Exit(code)


def _exit_code_for(summary: BatchSummary) -> int:
    if summary.status in ("empty", "success"):
        return EXIT_SUCCESS
    if summary.status == "failed":
        return EXIT_COMPLETE_FAILURE
    return EXIT_PARTIAL_FAILURE


async def _run_extraction(
    extractor: PositionExtractor,
    store: SQLitePositionStore,
    options: BatchOptions,
) -> BatchSummary:
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    # Ctrl+C stops scheduling new answers; in-flight answers finish
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        handler_installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        handler_installed = False

    progress = create_progress_bar()
    try:
        with progress:
            task = progress.add_task("Extracting positions...", total=None)

            def on_progress(_answer_id: int, _status: str) -> None:
                progress.advance(task)

            return await run_batch(
                extractor,
                store,
                options,
                cancel_event=cancel_event,
                progress_callback=on_progress,
            )
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


@app.command()
def extract(
    config: Path = typer.Option(
        ...,
        "--config",
        "-c",
        help="Path to YAML configuration file",
    ),
    limit: int = typer.Option(
        None,
        "--limit",
        "-n",
        help="Maximum number of answers to process (overrides batch.limit)",
        min=1,
    ),
    brand_id: list[str] = typer.Option(
        None,
        "--brand-id",
        help="Only process answers of this brand (repeatable)",
    ),
    answer_id: list[int] = typer.Option(
        None,
        "--answer-id",
        help="Re-process exactly this answer, even if already processed (repeatable)",
    ),
    since: str = typer.Option(
        None,
        "--since",
        help="Only answers created at or after this ISO 8601 timestamp (e.g. 2025-11-01T00:00:00Z)",
    ),
    customer_id: str = typer.Option(
        None,
        "--customer-id",
        help="Only process answers of this customer",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
):
    """
    Compute position records for answers that have none yet.

    Answers are processed newest first. Each answer's records are written
    in one transaction, replacing any earlier records for that answer.

    Exit codes:
      0: All answers processed (or nothing to do)
      1: Configuration error
      2: Database error
      3: Partial failure (some answers failed)
      4: Complete failure (all answers failed)

    Examples:
      llm-answer-positions extract --config positions.config.yaml
      llm-answer-positions extract -c positions.config.yaml --brand-id brand-1 --limit 50
      llm-answer-positions extract -c positions.config.yaml --answer-id 42 --format json
      llm-answer-positions extract -c positions.config.yaml --customer-id cust-1
    """
    _setup(format, verbose)

    try:
        with spinner("Loading configuration..."):
            runtime_config = load_config(config)
        success(f"Loaded configuration with {len(runtime_config.providers)} enrichment providers")
    except ConfigFileNotFoundError as e:
        error(f"Configuration file not found: {e}")
        _finish(EXIT_CONFIG_ERROR)
    except APIKeyMissingError as e:
        error(f"API key missing: {e}")
        _finish(EXIT_CONFIG_ERROR)
    except ConfigValidationError as e:
        error(f"Configuration validation failed: {e}")
        _finish(EXIT_CONFIG_ERROR)

    try:
        since_dt = parse_timestamp(since) if since else None
    except ValueError as e:
        error(f"Invalid --since value: {e}")
        _finish(EXIT_CONFIG_ERROR)

    db_path = runtime_config.storage.sqlite_db_path
    try:
        with spinner("Initializing database..."):
            init_db_if_needed(db_path)
        success(f"Database ready: {db_path}")
    except DatabaseError as e:
        error(f"Failed to initialize database: {e}")
        _finish(EXIT_DB_ERROR)

    options = BatchOptions(
        limit=limit or runtime_config.batch.limit,
        max_concurrency=runtime_config.batch.max_concurrency,
        max_consecutive_failures=runtime_config.batch.max_consecutive_failures,
        brand_ids=tuple(brand_id or ()),
        answer_ids=tuple(answer_id or ()),
        since=since_dt,
        customer_id=customer_id,
    )

    store = SQLitePositionStore(db_path)
    extractor = PositionExtractor(
        brand_repository=SQLiteBrandRepository(
            db_path, competitor_products=runtime_config.competitor_products
        ),
        enricher=ProductNameResolver.from_config(runtime_config),
        store=store,
    )

    try:
        summary = asyncio.run(_run_extraction(extractor, store, options))
    except BatchAbortedError as e:
        if e.summary is not None:
            print_batch_summary(e.summary.to_dict())
        error(str(e))
        _finish(EXIT_DB_ERROR)
    except DatabaseError as e:
        error(f"Database error: {e}")
        _finish(EXIT_DB_ERROR)

    print_batch_summary(summary.to_dict())

    if summary.selected == 0:
        info("No unprocessed answers found")
    if summary.cancelled:
        warning(f"Cancelled: {summary.skipped} answers not started")

    exit_code = _exit_code_for(summary)
    if exit_code == EXIT_SUCCESS:
        success(f"Processed {summary.processed} answers, wrote {summary.records_written} records")
    elif exit_code == EXIT_PARTIAL_FAILURE:
        warning(f"{summary.failed} of {summary.selected} answers failed")
    else:
        error(f"All {summary.selected} answers failed")

    _finish(exit_code)


def _parse_competitor_products(values: list[str]) -> list[dict]:
    competitors = []
    for value in values:
        name, separator, product = value.partition("=")
        if not separator or not name.strip() or not product.strip():
            raise typer.BadParameter(
                f"expected NAME=PRODUCT, got {value!r}",
                param_hint="--competitor-product",
            )
        competitors.append({"name": name.strip(), "products": [product.strip()]})
    return competitors


@app.command()
def analyze(
    brand: str = typer.Option(..., "--brand", "-b", help="Brand name"),
    product: list[str] = typer.Option(
        None, "--product", "-p", help="Brand product name (repeatable)"
    ),
    competitor: list[str] = typer.Option(
        None, "--competitor", help="Competitor name (repeatable)"
    ),
    competitor_product: list[str] = typer.Option(
        None,
        "--competitor-product",
        help="Competitor product as NAME=PRODUCT (repeatable)",
    ),
    text: str = typer.Option(None, "--text", "-t", help="Answer text"),
    file: Path = typer.Option(None, "--file", help="Read the answer text from a file"),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    Run the position engine on one answer and print the rows.

    No database and no network: brand products come from --product only.

    Examples:
      llm-answer-positions analyze --brand Nike --product "Air Max" \\
          --competitor Adidas --text "I love Nike shoes and Nike Air Max"
      llm-answer-positions analyze --brand Nike --file answer.txt --format json
    """
    _setup(format, verbose)

    if (text is None) == (file is None):
        error("Provide exactly one of --text or --file")
        _finish(EXIT_CONFIG_ERROR)

    if file is not None:
        try:
            text = file.read_text(encoding="utf-8")
        except OSError as e:
            error(f"Cannot read {file}: {e}")
            _finish(EXIT_CONFIG_ERROR)

    if not brand.strip():
        error("--brand cannot be empty")
        _finish(EXIT_CONFIG_ERROR)

    competitors = normalize_competitor_inputs(
        [*(competitor or []), *_parse_competitor_products(competitor_product or [])]
    )
    brand_record = BrandRecord(id="cli", name=brand.strip())
    extraction = compute_extraction(
        AnswerRecord(id=0, answer_text=text, brand_id=brand_record.id, competitors=competitors),
        brand_record,
        TrackedEntity(
            name=brand_record.name,
            products=tuple(clean_product_names(product or [], limit=MAX_BRAND_PRODUCTS)),
        ),
        [TrackedEntity(name=spec.name, products=spec.products) for spec in competitors],
    )

    rows = [asdict(record) for record in extraction.records]
    info(f"{extraction.total_word_count} words")
    print_positions_table(rows, title=f"Positions for {brand_record.name}")
    output_mode.add_json("total_word_count", extraction.total_word_count)
    _finish(EXIT_SUCCESS)


@app.command()
def validate(
    config: Path = typer.Option(
        ...,
        "--config",
        "-c",
        help="Path to YAML configuration file",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    Validate configuration file without running anything.

    Checks YAML syntax, schema and that every provider's API key variable
    is set.

    Examples:
      llm-answer-positions validate --config positions.config.yaml
    """
    _setup(format, verbose)

    try:
        with spinner("Validating configuration..."):
            runtime_config = load_config(config)
    except ConfigFileNotFoundError as e:
        error(f"Configuration file not found: {e}")
        _finish(EXIT_CONFIG_ERROR)
    except APIKeyMissingError as e:
        error(f"API key missing: {e}")
        _finish(EXIT_CONFIG_ERROR)
    except ConfigValidationError as e:
        error(f"Configuration validation failed: {e}")
        _finish(EXIT_CONFIG_ERROR)

    providers = [provider.provider for provider in runtime_config.providers]
    if not providers:
        warning("No enrichment providers configured: brands are matched by name only")

    output_mode.add_json("database", runtime_config.storage.sqlite_db_path)
    output_mode.add_json("providers", providers)
    output_mode.add_json("competitor_products", len(runtime_config.competitor_products))
    info(f"Database: {runtime_config.storage.sqlite_db_path}")
    info(f"Enrichment providers: {', '.join(providers) or 'none'}")
    success("Configuration is valid")
    _finish(EXIT_SUCCESS)


@app.command("import")
def import_fixture_command(
    fixture: Path = typer.Argument(..., help="JSON fixture with brands and answers"),
    db: Path = typer.Option(
        "./output/positions.db",
        "--db",
        help="Path to SQLite database (created if missing)",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    Load brands, competitors and answers from a JSON fixture.

    Examples:
      llm-answer-positions import examples/answers.fixture.json --db ./output/positions.db
    """
    from llm_answer_positions.storage.importer import import_fixture

    _setup(format, verbose)

    try:
        with spinner(f"Importing {fixture}..."):
            summary = import_fixture(fixture, str(db))
    except ExtractionError as e:
        error(f"Invalid fixture: {e}")
        _finish(EXIT_CONFIG_ERROR)
    except OSError as e:
        error(f"Cannot read fixture: {e}")
        _finish(EXIT_CONFIG_ERROR)
    except DatabaseError as e:
        error(f"Import failed: {e}")
        _finish(EXIT_DB_ERROR)

    output_mode.add_json("imported", asdict(summary))
    success(
        f"Imported {summary.brands} brands, {summary.competitors} competitors, "
        f"{summary.answers} answers into {db}"
    )
    _finish(EXIT_SUCCESS)


# Create export command subapp
export_app = typer.Typer(help="Export data to CSV or JSON")
app.add_typer(export_app, name="export")


@export_app.command("positions")
def export_positions(
    output: Path = typer.Option(
        ...,
        "--output",
        "-o",
        help="Output file path (extension determines format: .csv or .json)",
    ),
    db: Path = typer.Option(
        "./output/positions.db",
        "--db",
        help="Path to SQLite database",
    ),
    brand_id: str = typer.Option(
        None,
        "--brand-id",
        help="Only export records of this brand",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="CLI output format: 'text' or 'json'",
    ),
):
    """
    Export position records to CSV or JSON.

    The output format is determined by the file extension:
    - .csv: Comma-separated values (position lists as JSON arrays)
    - .json: JSON array for programmatic processing

    Examples:
      llm-answer-positions export positions --output positions.csv
      llm-answer-positions export positions --output nike.json --brand-id brand-1
    """
    from llm_answer_positions.storage.exporter import (
        export_positions_csv,
        export_positions_json,
    )

    _setup(format, verbose=False)

    file_ext = output.suffix.lower()
    if file_ext not in [".csv", ".json"]:
        error("Output file must have .csv or .json extension")
        _finish(EXIT_CONFIG_ERROR)

    try:
        with spinner(f"Exporting position records to {output}..."):
            if file_ext == ".csv":
                count = export_positions_csv(str(output), str(db), brand_id=brand_id)
            else:
                count = export_positions_json(str(output), str(db), brand_id=brand_id)
    except DatabaseError as e:
        error(f"Export failed: {e}")
        _finish(EXIT_DB_ERROR)
    except OSError as e:
        error(f"Export failed: {e}")
        _finish(EXIT_DB_ERROR)

    output_mode.add_json("exported", count)
    success(f"Exported {count} position records to {output}")
    _finish(EXIT_SUCCESS)


def _read_version() -> str:
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("llm-answer-positions")
    except PackageNotFoundError:
        return __version__


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
    ),
):
    """
    LLM Answer Positions - where, how early and how often brands appear in AI answers.

    Exit codes:
      0: Success
      1: Configuration error
      2: Database error
      3: Partial failure (some answers failed)
      4: Complete failure (all answers failed)

    Use 'llm-answer-positions COMMAND --help' for detailed command documentation.
    """
    if version:
        from rich.console import Console

        Console().print(f"[bold cyan]llm-answer-positions[/bold cyan] version {_read_version()}")
        raise typer.Exit(EXIT_SUCCESS)

    if ctx.invoked_subcommand is None:
        from rich.console import Console

        console = Console()
        console.print("[yellow]Use --help to see available commands[/yellow]")
        console.print()
        console.print("Quick start:")
        console.print("  llm-answer-positions import examples/answers.fixture.json")
        console.print("  llm-answer-positions extract --config examples/positions.config.yaml")


if __name__ == "__main__":
    app()
