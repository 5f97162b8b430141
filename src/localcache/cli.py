"""Command-line interface for localcache.

Provides commands for configuration validation, dictionary downloads,
word lookup and cache maintenance.

Usage:
    python -m localcache validate-config
    python -m localcache download es fr
    python -m localcache status
    python -m localcache lookup casa --lang es
    python -m localcache sweep
"""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from localcache.config import validate_config_file
from localcache.core.logging import configure_logging

if TYPE_CHECKING:
    from localcache.config_schema import AppConfig
    from localcache.db.models import SchemaManager
    from localcache.db.store import CacheStore, EmailSummaryStore, WordDefinitionStore
    from localcache.dictionary.client import DefinitionApiClient, ShardClient
    from localcache.dictionary.lookup import WordLookupService
    from localcache.dictionary.sync import DictionarySyncEngine

console = Console()


@dataclass(frozen=True, slots=True)
class CLIOptions:
    """Global options from the cli group, passed to every command."""

    config_path: Path | None = None
    debug: bool = False


@dataclass(frozen=True, slots=True)
class CLIDeps:
    """Shared dependencies initialized by _init_cli_deps()."""

    config: AppConfig
    databases: tuple[SchemaManager, ...]
    cache_store: CacheStore
    email_summaries: EmailSummaryStore
    word_store: WordDefinitionStore
    shard_client: ShardClient
    api_client: DefinitionApiClient
    engine: DictionarySyncEngine
    lookup_service: WordLookupService

    async def close(self) -> None:
        await self.shard_client.aclose()
        await self.api_client.aclose()
        for database in self.databases:
            await database.close()


async def _init_cli_deps(options: CLIOptions) -> CLIDeps:
    """Initialize shared CLI dependencies.

    Loads config, opens the three databases and builds the stores, HTTP
    clients, sync engine and lookup service. Prints actionable error
    messages and calls sys.exit(1) on failure.
    """
    from localcache.config import get_config
    from localcache.core.errors import ConfigLoadError, ConfigValidationError, DatabaseError
    from localcache.core.rate_limiter import get_bucket
    from localcache.db.models import (
        CACHE_SCHEMA,
        CHECKPOINT_SCHEMA,
        DICTIONARY_SCHEMA,
        SchemaManager,
    )
    from localcache.db.store import CacheStore, EmailSummaryStore, WordDefinitionStore
    from localcache.dictionary.checkpoint import CheckpointStore
    from localcache.dictionary.client import DefinitionApiClient, ShardClient
    from localcache.dictionary.lookup import WordLookupService
    from localcache.dictionary.store import DictionaryStore
    from localcache.dictionary.sync import DictionarySyncEngine

    # 1. Load config
    try:
        config = get_config(options.config_path)
    except (ConfigLoadError, ConfigValidationError) as e:
        console.print(
            f"[red]Config error:[/red] {e}\n\n"
            "Copy config/config.yaml.example to config/config.yaml, or set "
            "[cyan]LOCALCACHE_CONFIG_PATH[/cyan]."
        )
        sys.exit(1)

    # --debug wins over the configured level; console output unless config asks for JSON
    configure_logging(
        log_level="DEBUG" if options.debug else config.logging.level,
        json_output=config.logging.json_output,
    )

    # 2. Open databases
    storage = config.storage
    cache_db = SchemaManager(storage.path_for(storage.cache_db), CACHE_SCHEMA)
    dictionary_db = SchemaManager(storage.path_for(storage.dictionary_db), DICTIONARY_SCHEMA)
    checkpoint_db = SchemaManager(storage.path_for(storage.checkpoint_db), CHECKPOINT_SCHEMA)
    databases = (cache_db, dictionary_db, checkpoint_db)

    try:
        for database in databases:
            await database.open()
    except DatabaseError as e:
        for database in databases:
            await database.close()
        console.print(f"[red]Storage error:[/red] {e}")
        sys.exit(1)

    # 3. Initialize HTTP clients
    dictionary = config.dictionary
    shard_client = ShardClient(
        dictionary.base_url,
        timeout=dictionary.fetch_timeout_seconds,
        max_retries=dictionary.max_retries,
        retry_delays=dictionary.retry_delays,
        rate_limiter=get_bucket(
            "dictionary_shards",
            rate=dictionary.requests_per_second,
            capacity=max(1, int(dictionary.requests_per_second)),
        ),
    )
    api_client = DefinitionApiClient(dictionary.api_host)

    # 4. Stores, engine and lookup service
    word_store = WordDefinitionStore(cache_db)
    engine = DictionarySyncEngine(
        DictionaryStore(dictionary_db),
        CheckpointStore(checkpoint_db),
        shard_client,
    )

    return CLIDeps(
        config=config,
        databases=databases,
        cache_store=CacheStore(cache_db, default_ttl=timedelta(days=config.cache.default_ttl_days)),
        email_summaries=EmailSummaryStore(cache_db),
        word_store=word_store,
        shard_client=shard_client,
        api_client=api_client,
        engine=engine,
        lookup_service=WordLookupService(
            word_store, engine, api_client, languages=dictionary.languages
        ),
    )


def _run(coro) -> None:
    """Run an async command with the shared interrupt and error handling."""
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow] Run the command again to resume.")
        sys.exit(130)
    except SystemExit:
        raise
    except Exception as e:
        console.print(f"\n[red]Error:[/red] {e}")
        sys.exit(1)


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: config/config.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, config_path: Path | None) -> None:
    """localcache - local cache and offline dictionary manager."""
    ctx.obj = CLIOptions(config_path=config_path, debug=debug)
    # Human-readable until a command loads the config's logging section
    configure_logging(log_level="DEBUG" if debug else "INFO", json_output=False)


@cli.command("validate-config")
@click.pass_context
def validate_config(ctx: click.Context) -> None:
    """Validate the configuration file.

    Checks that config.yaml exists and passes Pydantic schema validation.
    Reports specific errors for invalid fields.
    """
    config_path = ctx.obj.config_path
    console.print(f"Validating config: [cyan]{config_path or 'config/config.yaml'}[/cyan]")

    is_valid, message = validate_config_file(config_path)

    if is_valid:
        console.print(f"\n[green]✓[/green] {message}")
        sys.exit(0)
    else:
        console.print(f"\n[red]✗[/red] {message}")
        sys.exit(1)


@cli.command("download")
@click.argument("languages", nargs=-1, required=True)
@click.pass_context
def download(ctx: click.Context, languages: tuple[str, ...]) -> None:
    """Download offline dictionaries for one or more LANGUAGES.

    Interrupted downloads resume from their last checkpoint. Languages
    download concurrently.
    """
    _run(_run_download(ctx.obj, languages))


async def _run_download(options: CLIOptions, languages: tuple[str, ...]) -> None:
    """Async implementation of download command."""
    from localcache.db.languages import parse_language
    from localcache.dictionary.sync import DownloadProgress

    unknown = [code for code in languages if parse_language(code) is None]
    if unknown:
        console.print(
            f"[red]Unsupported language(s):[/red] {', '.join(unknown)}\n"
            "Run [cyan]localcache status[/cyan] to list supported codes."
        )
        sys.exit(1)

    deps = await _init_cli_deps(options)
    try:
        with Progress(
            TextColumn("[bold]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TextColumn("{task.fields[entries]} entries"),
            console=console,
        ) as progress:
            tasks = {
                code: progress.add_task(code, total=100, entries=0) for code in languages
            }

            def on_progress(update: DownloadProgress) -> None:
                progress.update(
                    tasks[update.language],
                    completed=update.percent_complete,
                    entries=update.entries_processed,
                )

            results = await asyncio.gather(
                *(deps.engine.download_language(code, on_progress=on_progress) for code in languages)
            )
    finally:
        await deps.close()

    console.print("\n[bold]Download Summary[/bold]")
    failed = False
    for result in results:
        if result.already_downloaded:
            console.print(
                f"  {result.language}: [dim]already downloaded[/dim] "
                f"({result.entries_processed} entries)"
            )
        elif result.downloaded:
            skipped = f", skipped shards: {''.join(result.shards_failed)}" if result.shards_failed else ""
            console.print(
                f"  {result.language}: [green]downloaded[/green] "
                f"{result.entries_processed} entries in {result.duration_ms}ms{skipped}"
            )
        else:
            failed = True
            console.print(
                f"  {result.language}: [red]not downloaded[/red] "
                f"({len(result.shards_failed)} shards failed, no entries stored)"
            )

    if failed:
        sys.exit(1)


@cli.command("status")
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show download state and entry counts for every language."""
    _run(_run_status(ctx.obj))


async def _run_status(options: CLIOptions) -> None:
    from localcache.dictionary.sync import LanguageState

    deps = await _init_cli_deps(options)
    try:
        statuses = await deps.engine.statuses()
        cached = await deps.cache_store.count()
    finally:
        await deps.close()

    styles = {
        LanguageState.DOWNLOADED: "green",
        LanguageState.DOWNLOADING: "yellow",
        LanguageState.NOT_DOWNLOADED: "dim",
    }

    table = Table(title="Offline dictionaries")
    table.add_column("Code", style="cyan")
    table.add_column("Language")
    table.add_column("State")
    table.add_column("Entries", justify="right")
    table.add_column("Next shard", justify="right")

    for item in statuses:
        next_shard = str(item.checkpoint.next_shard_index) if item.checkpoint else ""
        table.add_row(
            item.language,
            item.name,
            f"[{styles[item.state]}]{item.state.value}[/{styles[item.state]}]",
            str(item.entries),
            next_shard,
        )

    console.print(table)
    console.print(f"Generic cache entries: {cached}")


@cli.command("lookup")
@click.argument("word")
@click.option(
    "--lang",
    "-l",
    "languages",
    multiple=True,
    help="Language code to search (repeatable; default: dictionary.languages)",
)
@click.pass_context
def lookup(ctx: click.Context, word: str, languages: tuple[str, ...]) -> None:
    """Look up WORD in the cache, offline dictionaries and the definition API."""
    _run(_run_lookup(ctx.obj, word, languages))


async def _run_lookup(options: CLIOptions, word: str, languages: tuple[str, ...]) -> None:
    deps = await _init_cli_deps(options)
    try:
        result = await deps.lookup_service.lookup(word, list(languages) or None)
    finally:
        await deps.close()

    if result is None:
        console.print(f"[yellow]No definition found for '{word}'.[/yellow]")
        sys.exit(1)

    console.print(
        f"[bold]{result.word}[/bold] [dim]({result.language}, {result.source})[/dim]"
    )
    if result.pos:
        console.print(f"  [italic]{result.pos}[/italic]")
    console.print(f"  {result.definition or '(no definition text)'}")


@cli.command("delete-language")
@click.argument("language")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def delete_language(ctx: click.Context, language: str, yes: bool) -> None:
    """Delete a downloaded dictionary and its resume state."""
    if not yes:
        click.confirm(f"Delete the offline dictionary for '{language}'?", abort=True)
    _run(_run_delete_language(ctx.obj, language))


async def _run_delete_language(options: CLIOptions, language: str) -> None:
    deps = await _init_cli_deps(options)
    try:
        await deps.engine.delete_language(language)
    finally:
        await deps.close()
    console.print(f"[green]✓[/green] Deleted dictionary for {language}")


@cli.command("sweep")
@click.pass_context
def sweep(ctx: click.Context) -> None:
    """Remove expired entries from the generic cache."""
    _run(_run_sweep(ctx.obj))


async def _run_sweep(options: CLIOptions) -> None:
    deps = await _init_cli_deps(options)
    try:
        removed = await deps.cache_store.sweep()
    finally:
        await deps.close()
    console.print(f"Removed {removed} expired cache entries")


@cli.command("clear-cache")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def clear_cache(ctx: click.Context, yes: bool) -> None:
    """Clear the generic cache, email summaries and word definitions.

    Offline dictionaries are not affected; use delete-language for those.
    """
    if not yes:
        click.confirm("Clear all cached entries?", abort=True)
    _run(_run_clear_cache(ctx.obj))


async def _run_clear_cache(options: CLIOptions) -> None:
    deps = await _init_cli_deps(options)
    try:
        await deps.cache_store.clear_all()
    finally:
        await deps.close()
    console.print("[green]✓[/green] Cache cleared")


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
